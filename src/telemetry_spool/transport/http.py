"""
OTLP/HTTP transport.

Posts protobuf-encoded export requests to the collector. Every failure
(connection error, timeout, non-2xx status) is reported as a transient
SendResult; nothing is raised to the coordinator.
"""

from __future__ import annotations

from typing import Mapping, Optional

import httpx
from loguru import logger

from ..coordinator.types import SendResult

PROTOBUF_CONTENT_TYPE = "application/x-protobuf"

SIGNAL_PATHS = {
    "traces": "v1/traces",
    "metrics": "v1/metrics",
    "logs": "v1/logs",
}


def signal_endpoint(base_url: str, signal: str) -> str:
    """Build the per-signal export URL, e.g. ``http://host:4318/v1/traces``."""
    if signal not in SIGNAL_PATHS:
        raise ValueError(f"Invalid signal: {signal}. Must be one of {sorted(SIGNAL_PATHS)}")
    return f"{base_url.rstrip('/')}/{SIGNAL_PATHS[signal]}"


class HttpTransport:
    """Sends byte payloads to one collector endpoint with ``httpx.AsyncClient``.

    The client is created lazily on first send (or by ``start``) and must be
    closed with ``aclose`` / ``async with``.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        content_type: str = PROTOBUF_CONTENT_TYPE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self._headers = {"Content-Type": content_type, **(headers or {})}
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HttpTransport":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def start(self) -> None:
        self._ensure_client()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers=self._headers)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send(self, request: bytes, *, timeout: float) -> SendResult:
        client = self._ensure_client()
        try:
            resp = await client.post(
                self.endpoint, content=request, headers=self._headers, timeout=timeout
            )
        except httpx.HTTPError as exc:
            logger.debug(f"Failed to reach collector {self.endpoint}: {type(exc).__name__}: {exc}")
            return SendResult.transient(f"{type(exc).__name__}: {exc}")

        if 200 <= resp.status_code < 300:
            return SendResult.ok()

        logger.debug(f"Collector {self.endpoint} answered {resp.status_code}")
        return SendResult.transient(f"HTTP {resp.status_code}: {resp.text[:200]}")
