"""Client for the access-key verification collaborator."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from config.settings import get_settings
from session.errors import UnauthorizedError
from session.schemas import AccessVerification

LOGGER = logging.getLogger(__name__)


class AccessVerifier:
    """Checks an operator access key and returns the organisation it belongs to."""

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        endpoint = endpoint or settings.verify_url
        if not endpoint:
            raise ValueError("Access verification endpoint is not configured.")
        self._endpoint = endpoint.rstrip("/")
        self._timeout = settings.http_timeout_seconds
        self._transport = transport

    async def verify(self, key: str) -> str | None:
        """Return the verified org id (may be None); raise UnauthorizedError otherwise."""

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._endpoint, json={"key": key})
        except httpx.HTTPError as exc:
            LOGGER.warning("Access verification request failed: %s", exc)
            raise UnauthorizedError() from exc

        if not response.is_success:
            LOGGER.info("Access key rejected with HTTP %s", response.status_code)
            raise UnauthorizedError()

        try:
            data = response.json()
        except ValueError:
            data = {}
        try:
            return AccessVerification.model_validate(data or {}).org_id
        except ValidationError:
            LOGGER.warning("Access verification payload without usable orgId: %r", data)
            return None
