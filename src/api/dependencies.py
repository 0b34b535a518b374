"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from session.coordinator import SessionCoordinator


@lru_cache(maxsize=1)
def _coordinator_factory() -> SessionCoordinator:
    # Lazy import so the SDK/audio implementations load only when a session is needed.
    from config.settings import get_settings
    from integrations.access import AccessVerifier
    from integrations.call_log import CallLogClient
    from integrations.identity import TokenClient
    from session.coordinator import SessionCoordinator
    from telephony.factory import build_audio_devices, build_telephony_client_factory

    settings = get_settings()
    return SessionCoordinator(
        telephony_factory=build_telephony_client_factory(),
        audio_devices=build_audio_devices(),
        token_client=TokenClient(),
        call_log_sink=CallLogClient(),
        access_verifier=AccessVerifier() if settings.verify_url else None,
        settings=settings,
    )


def get_coordinator() -> SessionCoordinator:
    return _coordinator_factory()


def built_coordinator() -> SessionCoordinator | None:
    """Return the coordinator if one has been created, without creating it."""

    if _coordinator_factory.cache_info().currsize == 0:
        return None
    return _coordinator_factory()
