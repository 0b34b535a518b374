"""Client for the identity-token collaborator."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from config.settings import get_settings
from session.errors import CollaboratorError
from session.schemas import IdentityToken

LOGGER = logging.getLogger(__name__)


class TokenClient:
    """Fetches signed identity tokens for the telephony SDK."""

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        endpoint = endpoint or settings.token_url
        if not endpoint:
            raise ValueError("Token endpoint is not configured.")
        self._endpoint = endpoint.rstrip("/")
        self._timeout = settings.http_timeout_seconds
        self._transport = transport

    async def fetch_token(self, identity: str) -> str:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self._endpoint, params={"identity": identity})

        response.raise_for_status()
        try:
            return IdentityToken.model_validate(response.json()).token
        except (ValueError, ValidationError) as exc:
            LOGGER.error("Token endpoint returned an unusable payload: %s", exc)
            raise CollaboratorError("Token response contains no token.") from exc
