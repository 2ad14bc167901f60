"""
Request/response bridge to the BrowserTools server.

``RequestBridge.execute`` issues exactly one logical call per command, applies
the timeout and retry policy, and normalizes whatever comes back into a
CommandResult value.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional

import httpx

from browserbridge.commands.router import RequestDescriptor
from browserbridge.core.config import RequestConfig
from browserbridge.core.types import CommandResult, Degraded, Ok, ServerEndpoint
from browserbridge.errors import (
    BridgeError,
    MalformedResponse,
    RequestTimeout,
    ServerError,
    TransportError,
)

logger = logging.getLogger("BrowserBridge.Client")

_DEGRADED_STATUSES = ("partial", "degraded")
_ERROR_STATUSES = ("error", "failed", "failure")


def _coerce_error_detail(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            detail = payload.get(key)
            if isinstance(detail, str) and detail:
                return detail
            if detail:
                try:
                    return json.dumps(detail, sort_keys=True)
                except (TypeError, ValueError):
                    return str(detail)
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return fallback


def _coerce_warnings(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw] if raw else []
    if isinstance(raw, list):
        return [w if isinstance(w, str) else json.dumps(w, sort_keys=True) for w in raw if w]
    return [str(raw)]


class RequestBridge:
    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or RequestConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(headers={"Accept": "application/json"})
        self.retry_count = 0

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RequestBridge":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def timeout_for(self, descriptor: RequestDescriptor) -> float:
        if descriptor.timeout is not None:
            return descriptor.timeout
        return self.config.timeout_for(descriptor.domain)

    async def execute(self, descriptor: RequestDescriptor, endpoint: ServerEndpoint) -> CommandResult:
        try:
            response = await self._send_with_retry(descriptor, endpoint)
            return self._normalize(descriptor, response)
        except BridgeError as exc:
            logger.warning("%s %s failed: %s", descriptor.method, descriptor.path, exc)
            return exc.to_result(route=descriptor.path, label=descriptor.label)

    async def _send_with_retry(self, descriptor: RequestDescriptor, endpoint: ServerEndpoint) -> httpx.Response:
        try:
            return await self._send(descriptor, endpoint)
        except RequestTimeout:
            raise
        except TransportError as exc:
            if not descriptor.idempotent:
                raise
            self.retry_count += 1
            logger.info("Retrying idempotent %s once after transport error: %s", descriptor.path, exc)
            await asyncio.sleep(self.config.retry_delay_sec)
            return await self._send(descriptor, endpoint)

    async def _send(self, descriptor: RequestDescriptor, endpoint: ServerEndpoint) -> httpx.Response:
        url = endpoint.url(descriptor.path)
        timeout = self.timeout_for(descriptor)
        try:
            return await self._client.request(
                method=descriptor.method,
                url=url,
                json=descriptor.body if descriptor.method != "GET" else None,
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeout(
                f"{descriptor.label} timed out after {timeout:.0f}s",
                hint=descriptor.hint,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                f"HTTP request to {url} failed: {exc}",
                hint=descriptor.hint,
            ) from exc

    def _normalize(self, descriptor: RequestDescriptor, response: httpx.Response) -> CommandResult:
        path = descriptor.path
        payload: Any
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                if response.status_code >= 400:
                    payload = response.text
                else:
                    raise MalformedResponse(
                        f"Unparseable response from {path}: {response.text[:200]!r}",
                        hint="The server package version may not match this bridge.",
                    )
        else:
            payload = {}

        if response.status_code >= 400:
            detail = _coerce_error_detail(payload, f"HTTP {response.status_code} error")
            raise ServerError(
                detail,
                status_code=response.status_code,
                path=path,
                payload=payload,
                hint=descriptor.hint,
            )

        common = {"route": path, "label": descriptor.label}
        if isinstance(payload, dict) and isinstance(payload.get("status"), str):
            status = payload["status"].lower()
            if status in _ERROR_STATUSES:
                detail = _coerce_error_detail(payload, "BrowserTools reported an error")
                raise ServerError(
                    detail,
                    status_code=response.status_code,
                    path=path,
                    payload=payload,
                    hint=descriptor.hint,
                )
            if status == "success" or status in _DEGRADED_STATUSES:
                data = payload.get("data", {})
                warnings = _coerce_warnings(payload.get("warnings"))
                if status in _DEGRADED_STATUSES and not warnings:
                    warnings = [_coerce_error_detail(payload, "Operation partially completed")]
                if warnings:
                    return Degraded(payload=data, warnings=warnings, **common)
                return Ok(payload=data, **common)

        if isinstance(payload, dict):
            warnings = _coerce_warnings(payload.get("warnings"))
            if warnings:
                return Degraded(payload=payload, warnings=warnings, **common)
        return Ok(payload=payload, **common)
