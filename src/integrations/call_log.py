"""Client for the call-log collaborator."""

from __future__ import annotations

import logging

import httpx

from config.settings import get_settings
from session.schemas import CallLogRecord

LOGGER = logging.getLogger(__name__)


class CallLogClient:
    """Posts call audit records. The response body is not inspected."""

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        endpoint = endpoint or settings.call_log_url
        if not endpoint:
            raise ValueError("Call-log endpoint is not configured.")
        self._endpoint = endpoint.rstrip("/")
        self._timeout = settings.http_timeout_seconds
        self._transport = transport

    async def submit(self, record: CallLogRecord) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self._endpoint,
                json=record.to_payload(),
                headers={"Content-Type": "application/json"},
            )
        try:
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("Call-log submission failed: %s", exc)
            raise
