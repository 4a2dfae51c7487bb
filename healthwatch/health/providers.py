"""MetricsProvider / RecoveryService contracts and their HTTP adapters."""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog
from pydantic import ValidationError

from healthwatch.core.config import ProviderConfig
from healthwatch.core.types import (
    RecoveryOptions,
    RecoveryResult,
    ValidationOptions,
    ValidationResult,
)
from healthwatch.health.exceptions import MetricsProviderError, RecoveryError

logger = structlog.stdlib.get_logger()


class MetricsProvider(Protocol):
    """Structural health signal for one unit: a 0-100 score plus issues."""

    async def validate(self, unit_id: str, options: ValidationOptions) -> ValidationResult: ...


class RecoveryService(Protocol):
    """Attempts automated remediation of a unit."""

    async def execute_recovery(
        self, unit_id: str, strategy: str, options: RecoveryOptions,
    ) -> RecoveryResult: ...


class _HttpAdapter:
    """Shared httpx client handling for the HTTP adapters."""

    def __init__(
        self,
        base_url: str,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._config = config
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            headers: dict[str, str] = {}
            api_key = self._config.api_key.get_secret_value()
            if api_key:
                headers["Authorization"] = f"Bearer {api_key}"
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._config.request_timeout_secs),
                transport=self._transport,
            )
        return self._http

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client().post(path, json=payload)
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError("expected a JSON object")
        return body

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


class HttpMetricsProvider(_HttpAdapter):
    """Calls ``POST {metrics_base_url}/units/{unit_id}/validate``.

    The response body must match :class:`ValidationResult`.
    """

    def __init__(
        self, config: ProviderConfig, transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config.metrics_base_url, config, transport)

    async def validate(self, unit_id: str, options: ValidationOptions) -> ValidationResult:
        try:
            body = await self._post_json(f"/units/{unit_id}/validate", options.model_dump())
        except httpx.HTTPStatusError as exc:
            raise MetricsProviderError(
                f"validation for {unit_id} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MetricsProviderError(f"validation request for {unit_id} failed: {exc}") from exc
        except ValueError as exc:
            raise MetricsProviderError(f"validation for {unit_id} returned invalid JSON") from exc

        try:
            return ValidationResult.model_validate(body)
        except ValidationError as exc:
            raise MetricsProviderError(f"unexpected validation payload for {unit_id}") from exc


class HttpRecoveryService(_HttpAdapter):
    """Calls ``POST {recovery_base_url}/units/{unit_id}/recover``.

    Accepts ``success`` and ``final_health_score`` (or ``finalHealthScore``)
    in the response; the whole body is kept on the result as ``raw``.
    """

    def __init__(
        self, config: ProviderConfig, transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config.recovery_base_url, config, transport)

    async def execute_recovery(
        self, unit_id: str, strategy: str, options: RecoveryOptions,
    ) -> RecoveryResult:
        payload = {"strategy": strategy, **options.model_dump()}
        try:
            body = await self._post_json(f"/units/{unit_id}/recover", payload)
        except httpx.HTTPStatusError as exc:
            raise RecoveryError(
                f"recovery for {unit_id} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RecoveryError(f"recovery request for {unit_id} failed: {exc}") from exc
        except ValueError as exc:
            raise RecoveryError(f"recovery for {unit_id} returned invalid JSON") from exc

        score = body.get("final_health_score", body.get("finalHealthScore", 0.0))
        try:
            return RecoveryResult(
                success=bool(body.get("success", False)),
                final_health_score=float(score),
                raw=body,
            )
        except (TypeError, ValueError) as exc:
            raise RecoveryError(f"unexpected recovery payload for {unit_id}") from exc
