"""Notification channels — console, file, email, Slack, webhook and SMS delivery.

Channels differ only in their delivery primitive. Rate limiting and retries
are handled by the dispatcher; ``send`` makes exactly one attempt and
reports success as a bool.
"""

from __future__ import annotations

import abc
import asyncio
import json
import smtplib
import time
from collections.abc import Callable
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, TypeVar

import aiohttp
import structlog
from pydantic import BaseModel, ValidationError

from healthwatch.core.config import (
    ChannelConfig,
    EmailChannelOptions,
    FileChannelOptions,
    SlackChannelOptions,
    SmsChannelOptions,
    WebhookChannelOptions,
)
from healthwatch.core.types import ChannelType
from healthwatch.notifications.exceptions import ChannelConfigError
from healthwatch.notifications.formatters import (
    SEVERITY_COLORS,
    render_summary,
    render_text,
)
from healthwatch.notifications.types import AlertMessage

logger = structlog.get_logger(__name__)

_OptionsT = TypeVar("_OptionsT", bound=BaseModel)


def _parse_options(config: ChannelConfig, model: type[_OptionsT]) -> _OptionsT:
    try:
        return model.model_validate(config.options)
    except ValidationError as exc:
        raise ChannelConfigError(
            f"invalid options for {config.type.value} channel {config.id!r}: {exc}"
        ) from exc


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    def __init__(self, config: ChannelConfig) -> None:
        self._config = config

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def config(self) -> ChannelConfig:
        return self._config

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> bool:
        """Send an alert message. Returns True on success."""

    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HttpChannel(NotificationChannel):
    """Shared lazy aiohttp session handling."""

    def __init__(self, config: ChannelConfig) -> None:
        super().__init__(config)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class ConsoleChannel(NotificationChannel):
    """Prints alerts to stdout."""

    async def send(self, msg: AlertMessage) -> bool:
        print(render_text(msg, include_details=False), flush=True)
        return True


class FileChannel(NotificationChannel):
    """Appends alerts to a local file as text, JSON lines or CSV rows."""

    def __init__(self, config: ChannelConfig) -> None:
        super().__init__(config)
        self._opts = _parse_options(config, FileChannelOptions)
        self._path = Path(self._opts.path)

    @property
    def path(self) -> Path:
        return self._path

    def _line(self, msg: AlertMessage) -> str:
        if self._opts.format == "json":
            return json.dumps({
                "alert": msg.raw,
                "message": render_text(msg),
                "timestamp": msg.timestamp,
            }, default=str) + "\n"
        if self._opts.format == "csv":
            cells = [msg.alert_id, msg.severity.value, msg.unit_id, msg.title, str(msg.timestamp)]
            return ",".join('"' + c.replace('"', '""') + '"' for c in cells) + "\n"
        return f"[{msg.timestamp}] {render_text(msg)}\n"

    def _append(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(line)

    async def send(self, msg: AlertMessage) -> bool:
        try:
            await asyncio.to_thread(self._append, self._line(msg))
        except OSError:
            logger.exception("file_send_error", path=str(self._path))
            return False
        return True


class EmailChannel(NotificationChannel):
    """Delivers alerts over SMTP. The blocking client runs in a worker thread."""

    def __init__(self, config: ChannelConfig) -> None:
        super().__init__(config)
        self._opts = _parse_options(config, EmailChannelOptions)

    def _build_message(self, msg: AlertMessage) -> MIMEText:
        mime = MIMEText(render_text(msg), "plain", "utf-8")
        mime["Subject"] = f"Alert: [{msg.severity.value.upper()}] {msg.title}"
        mime["From"] = self._opts.from_address
        mime["To"] = ", ".join(self._opts.to)
        return mime

    def _deliver(self, mime: MIMEText) -> None:
        opts = self._opts
        with smtplib.SMTP(opts.smtp_host, opts.smtp_port, timeout=opts.timeout_secs) as server:
            if opts.use_tls:
                server.starttls()
            if opts.username:
                server.login(opts.username, opts.password.get_secret_value())
            server.sendmail(opts.from_address, opts.to, mime.as_string())

    async def send(self, msg: AlertMessage) -> bool:
        try:
            await asyncio.to_thread(self._deliver, self._build_message(msg))
        except (smtplib.SMTPException, OSError):
            logger.exception("email_send_error", host=self._opts.smtp_host)
            return False
        return True


class SlackChannel(_HttpChannel):
    """Delivers alerts to a Slack incoming webhook as colour-coded attachments."""

    def __init__(self, config: ChannelConfig) -> None:
        super().__init__(config)
        self._opts = _parse_options(config, SlackChannelOptions)

    def build_payload(self, msg: AlertMessage) -> dict[str, Any]:
        fields = [
            {"title": "Module", "value": msg.unit_id, "short": True},
            {"title": "Severity", "value": msg.severity.value.upper(), "short": True},
        ]
        for key in ("status", "escalation_level", "created"):
            if key in msg.fields:
                fields.append({"title": key.replace("_", " ").title(), "value": msg.fields[key], "short": True})

        payload: dict[str, Any] = {
            "username": self._opts.username,
            "icon_emoji": self._opts.icon_emoji,
            "attachments": [{
                "color": SEVERITY_COLORS.get(msg.severity, "#808080"),
                "title": msg.title,
                "text": msg.body,
                "fields": fields,
                "ts": int(msg.timestamp),
            }],
        }
        if self._opts.channel:
            payload["channel"] = self._opts.channel
        return payload

    async def send(self, msg: AlertMessage) -> bool:
        url = self._opts.webhook_url.get_secret_value()
        try:
            session = self._get_session()
            timeout = aiohttp.ClientTimeout(total=self._opts.timeout_secs)
            async with session.post(url, json=self.build_payload(msg), timeout=timeout) as resp:
                if resp.status == 200:
                    return True
                body = await resp.text()
                logger.warning(
                    "slack_send_failed",
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("slack_send_error")
            return False


class WebhookChannel(_HttpChannel):
    """Sends the alert as JSON to an arbitrary HTTP endpoint."""

    def __init__(self, config: ChannelConfig) -> None:
        super().__init__(config)
        self._opts = _parse_options(config, WebhookChannelOptions)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self._opts.headers}
        if self._opts.auth_type == "bearer":
            headers["Authorization"] = f"Bearer {self._opts.token.get_secret_value()}"
        elif self._opts.auth_type == "api_key":
            headers[self._opts.api_key_header] = self._opts.token.get_secret_value()
        return headers

    async def send(self, msg: AlertMessage) -> bool:
        opts = self._opts
        payload = {
            "alert": msg.raw,
            "message": render_text(msg, include_details=False),
            "timestamp": msg.timestamp,
        }
        auth = None
        if opts.auth_type == "basic":
            auth = aiohttp.BasicAuth(opts.username, opts.password.get_secret_value())

        kwargs: dict[str, Any] = {
            "headers": self._headers(),
            "auth": auth,
            "timeout": aiohttp.ClientTimeout(total=opts.timeout_secs),
        }
        if opts.method == "GET":
            kwargs["params"] = {"alert_id": msg.alert_id, "unit": msg.unit_id, "severity": msg.severity.value}
        else:
            kwargs["json"] = payload

        try:
            session = self._get_session()
            async with session.request(opts.method, opts.url, **kwargs) as resp:
                if 200 <= resp.status < 300:
                    return True
                body = await resp.text()
                logger.warning(
                    "webhook_send_failed",
                    url=opts.url,
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("webhook_send_error", url=opts.url)
            return False


class SmsChannel(_HttpChannel):
    """Sends a 160-character summary through the Twilio Messages API.

    Numbers that accepted a message are remembered for the length of the
    channel's retry schedule, so a retry after a partial failure only goes
    to the numbers that failed.
    """

    def __init__(self, config: ChannelConfig, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__(config)
        self._opts = _parse_options(config, SmsChannelOptions)
        self._clock = clock
        retry = config.retry
        self._retry_window = retry.max_attempts * retry.max_delay_ms / 1000.0 + 60.0
        # (alert_id, timestamp) -> (first attempt, numbers delivered)
        self._delivered: dict[tuple[str, float], tuple[float, set[str]]] = {}

    def _prune(self, now: float) -> None:
        expired = [
            k for k, (started, _) in self._delivered.items() if now - started > self._retry_window
        ]
        for key in expired:
            del self._delivered[key]

    async def send(self, msg: AlertMessage) -> bool:
        opts = self._opts
        url = f"{opts.api_base}/Accounts/{opts.account_sid}/Messages.json"
        auth = aiohttp.BasicAuth(opts.account_sid, opts.auth_token.get_secret_value())
        text = render_summary(msg)
        timeout = aiohttp.ClientTimeout(total=opts.timeout_secs)

        now = self._clock()
        self._prune(now)
        key = (msg.alert_id, msg.timestamp)
        started, done = self._delivered.get(key, (now, set()))
        pending = [n for n in dict.fromkeys(opts.to) if n not in done]
        try:
            session = self._get_session()
            for number in pending:
                form = {"To": number, "From": opts.from_number, "Body": text}
                async with session.post(url, data=form, auth=auth, timeout=timeout) as resp:
                    if resp.status in (200, 201):
                        done.add(number)
                        continue
                    body = await resp.text()
                    logger.warning(
                        "sms_send_failed",
                        to=number,
                        status=resp.status,
                        body=body[:200],
                    )
        except Exception:
            logger.exception("sms_send_error")

        if len(done) < len(set(opts.to)):
            self._delivered[key] = (started, done)
            return False
        self._delivered.pop(key, None)
        return True


_CHANNEL_TYPES: dict[ChannelType, type[NotificationChannel]] = {
    ChannelType.CONSOLE: ConsoleChannel,
    ChannelType.FILE: FileChannel,
    ChannelType.EMAIL: EmailChannel,
    ChannelType.SLACK: SlackChannel,
    ChannelType.WEBHOOK: WebhookChannel,
    ChannelType.SMS: SmsChannel,
}


def build_channel(config: ChannelConfig) -> NotificationChannel:
    """Instantiate the channel class matching ``config.type``."""
    cls = _CHANNEL_TYPES.get(config.type)
    if cls is None:
        raise ChannelConfigError(f"unsupported channel type: {config.type}")
    return cls(config)
