"""Runtime metric samplers — host resources via psutil, unit probes via httpx."""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import httpx
import psutil
import structlog

from healthwatch.core.config import ProbeConfig
from healthwatch.core.types import HealthMetrics

logger = structlog.stdlib.get_logger()


class RuntimeSampler(ABC):
    """Produces a :class:`HealthMetrics` snapshot for a unit."""

    @abstractmethod
    async def sample(self, unit_id: str) -> HealthMetrics: ...

    async def close(self) -> None:
        """Release resources. Override if needed."""


# ── Host resources ──────────────────────────────────────────────


@dataclass(frozen=True)
class HostResources:
    cpu_usage: float
    memory_usage: float
    disk_usage: float


class HostResourceSampler(RuntimeSampler):
    """CPU, memory and disk utilisation of the host, as fractions 0..1.

    Units share the host, so every unit gets the same resource figures.
    """

    def __init__(self, disk_path: str = "/") -> None:
        self._disk_path = disk_path

    def read(self) -> HostResources:
        return HostResources(
            cpu_usage=psutil.cpu_percent(interval=None) / 100.0,
            memory_usage=psutil.virtual_memory().percent / 100.0,
            disk_usage=psutil.disk_usage(self._disk_path).percent / 100.0,
        )

    async def sample(self, unit_id: str) -> HealthMetrics:
        res = await asyncio.to_thread(self.read)
        return HealthMetrics(
            cpu_usage=res.cpu_usage,
            memory_usage=res.memory_usage,
            disk_usage=res.disk_usage,
        )


# ── HTTP probes ─────────────────────────────────────────────────


@dataclass(frozen=True)
class ProbeSample:
    at: float
    ok: bool
    latency_ms: float


class ProbeWindow:
    """Rolling window of the most recent probe results for one unit."""

    def __init__(self, size: int = 20) -> None:
        self._samples: deque[ProbeSample] = deque(maxlen=size)

    def record(self, sample: ProbeSample) -> None:
        self._samples.append(sample)

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def error_rate(self) -> float:
        if not self._samples:
            return 0.0
        return sum(1 for s in self._samples if not s.ok) / len(self._samples)

    @property
    def mean_latency_ms(self) -> float:
        if not self._samples:
            return 0.0
        return sum(s.latency_ms for s in self._samples) / len(self._samples)

    def throughput_per_minute(self, now: float) -> float:
        """Successful probes observed over the last minute."""
        return float(sum(1 for s in self._samples if s.ok and now - s.at <= 60.0))

    @property
    def last(self) -> ProbeSample | None:
        return self._samples[-1] if self._samples else None


class HttpProbeSampler(RuntimeSampler):
    """Probes each unit's health endpoint and derives request metrics.

    Response time, error rate and throughput come from a rolling window of
    probe results. A probe that answers with a JSON object carrying
    ``dependency_health`` (0..1) sets that field. Host resource figures are
    merged in when a :class:`HostResourceSampler` is given. Units without a
    configured probe report host resources only.

    Usage::

        sampler = HttpProbeSampler(settings.runtime.probes, host=HostResourceSampler())
        metrics = await sampler.sample("auth")
    """

    def __init__(
        self,
        probes: Mapping[str, ProbeConfig],
        window_size: int = 20,
        host: HostResourceSampler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._probes = dict(probes)
        self._window_size = window_size
        self._host = host
        self._transport = transport
        self._clock = clock
        self._windows: dict[str, ProbeWindow] = {}
        self._http: httpx.AsyncClient | None = None

    def window(self, unit_id: str) -> ProbeWindow:
        win = self._windows.get(unit_id)
        if win is None:
            win = ProbeWindow(self._window_size)
            self._windows[unit_id] = win
        return win

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(transport=self._transport)
        return self._http

    async def _probe(self, unit_id: str, probe: ProbeConfig) -> float | None:
        """Run one probe; returns ``dependency_health`` if the unit reported it."""
        start = self._clock()
        ok = False
        dependency_health: float | None = None
        try:
            response = await self._client().get(probe.url, timeout=probe.timeout_ms / 1000.0)
            ok = response.is_success
            if ok and response.headers.get("content-type", "").startswith("application/json"):
                body = response.json()
                if isinstance(body, dict) and "dependency_health" in body:
                    dependency_health = min(1.0, max(0.0, float(body["dependency_health"])))
        except httpx.HTTPError as exc:
            logger.warning("probe_failed", unit_id=unit_id, url=probe.url, error=str(exc))
        except (TypeError, ValueError):
            logger.warning("probe_body_invalid", unit_id=unit_id, url=probe.url)
        end = self._clock()
        self.window(unit_id).record(ProbeSample(at=end, ok=ok, latency_ms=(end - start) * 1000.0))
        return dependency_health

    async def sample(self, unit_id: str) -> HealthMetrics:
        fields: dict[str, float] = {}
        if self._host is not None:
            res = await asyncio.to_thread(self._host.read)
            fields.update(
                cpu_usage=res.cpu_usage,
                memory_usage=res.memory_usage,
                disk_usage=res.disk_usage,
            )

        probe = self._probes.get(unit_id)
        if probe is None:
            return HealthMetrics(**fields)

        dependency_health = await self._probe(unit_id, probe)
        win = self.window(unit_id)
        last = win.last
        fields.update(
            response_time_ms=win.mean_latency_ms,
            error_rate=win.error_rate,
            throughput=win.throughput_per_minute(self._clock()),
            network_latency_ms=last.latency_ms if last else 0.0,
        )
        if dependency_health is not None:
            fields["dependency_health"] = dependency_health
        return HealthMetrics(**fields)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
