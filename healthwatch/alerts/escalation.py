"""EscalationScheduler — delayed re-notification per escalation level."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from healthwatch.core.types import Alert, AlertStatus, EscalationLevel, EscalationPolicy

logger = structlog.get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
LevelCallback = Callable[[Alert, EscalationLevel], Awaitable[None]]


def should_escalate(alert: Alert, level: EscalationLevel) -> bool:
    """Whether *alert* is still eligible for *level* at fire time."""
    if alert.status == AlertStatus.ACTIVE:
        return True
    if alert.status == AlertStatus.ACKNOWLEDGED:
        return not level.stop_on_acknowledge
    return False


class EscalationScheduler:
    """Owns one cancellable timer task per escalating alert.

    The task walks the policy's levels in order: sleep for the level's
    delay, re-check the alert, run the level callback, move on. Cancelling
    an alert's escalation cancels the pending sleep; a level callback that
    is already running is shielded and completes.

    Usage::

        scheduler = EscalationScheduler()
        scheduler.arm(alert, policy, on_level=store.escalate)
        # ...
        scheduler.cancel(alert.id)
    """

    def __init__(self, sleep: SleepFn = asyncio.sleep) -> None:
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def arm(self, alert: Alert, policy: EscalationPolicy, on_level: LevelCallback) -> bool:
        """Schedule escalation for *alert*. Returns False if nothing was armed."""
        if not policy.enabled or not policy.levels:
            return False
        self.cancel(alert.id)
        task = asyncio.create_task(
            self._run(alert, policy, on_level),
            name=f"escalation-{alert.id}",
        )
        self._tasks[alert.id] = task
        task.add_done_callback(lambda t, alert_id=alert.id: self._forget(alert_id, t))
        logger.info(
            "escalation_armed",
            alert_id=alert.id,
            policy_id=policy.id,
            levels=len(policy.levels),
        )
        return True

    def cancel(self, alert_id: str) -> bool:
        """Cancel outstanding escalation for *alert_id*. Returns True if one existed."""
        task = self._tasks.pop(alert_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("escalation_cancelled", alert_id=alert_id)
        return True

    def is_armed(self, alert_id: str) -> bool:
        task = self._tasks.get(alert_id)
        return task is not None and not task.done()

    @property
    def pending(self) -> list[str]:
        return [aid for aid, t in self._tasks.items() if not t.done()]

    async def close(self) -> None:
        """Cancel every outstanding escalation and wait for the tasks to exit."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ── Internal ────────────────────────────────────────────────

    def _forget(self, alert_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(alert_id) is task:
            del self._tasks[alert_id]

    async def _run(self, alert: Alert, policy: EscalationPolicy, on_level: LevelCallback) -> None:
        for level in policy.levels:
            await self._sleep(level.delay_minutes * 60.0)

            if not should_escalate(alert, level):
                logger.info(
                    "escalation_stopped",
                    alert_id=alert.id,
                    status=alert.status.value,
                    level=level.level,
                )
                return

            try:
                await asyncio.shield(on_level(alert, level))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("escalation_level_error", alert_id=alert.id, level=level.level)
