"""Event/command surface of the telephony SDK consumed by the coordinator."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Mapping

LOGGER = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventEmitter:
    """Minimal synchronous event emitter, mirroring the SDK's `on`/`emit` style."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def remove_all_listeners(self) -> None:
        self._handlers.clear()

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                LOGGER.exception("Handler for %r event failed", event)


@dataclass(frozen=True, slots=True)
class TelephonyOptions:
    enable_ringing_state: bool = True
    close_protection: bool = True


class CallHandle(EventEmitter, ABC):
    """SDK call object.

    Emits ``ringing``, ``accept``, ``disconnect`` and ``error`` (with an
    exception-like argument carrying ``message``).
    """

    parameters: Mapping[str, str]

    @abstractmethod
    def accept(self) -> None:
        """Answer an incoming call."""

    @abstractmethod
    def reject(self) -> None:
        """Decline an incoming call."""

    @abstractmethod
    def disconnect(self) -> None:
        """Hang up the call."""

    @abstractmethod
    def mute(self, muted: bool) -> None:
        """Mute or unmute the local microphone on this call."""


class TelephonyClient(EventEmitter, ABC):
    """SDK device handle.

    Emits ``registered``, ``error`` and ``incoming`` (with a CallHandle).
    """

    @abstractmethod
    def attach_incoming_audio(self, sink: Any) -> None:
        """Route incoming-call audio (ringtone and remote party) to ``sink``."""

    @abstractmethod
    async def register(self) -> None:
        """Register for inbound signaling. Raises on failure."""

    @abstractmethod
    async def connect(self, params: Mapping[str, str]) -> CallHandle:
        """Place an outbound call."""

    @abstractmethod
    def destroy(self) -> None:
        """Unregister and release all SDK resources."""


TelephonyClientFactory = Callable[[str, TelephonyOptions], TelephonyClient]


def error_message(error: Any) -> str:
    """Extract a human-readable message from an SDK error payload."""

    if error is None:
        return "Unknown error"
    message = getattr(error, "message", None)
    if message is None and isinstance(error, Mapping):
        message = error.get("message")
    if message is None and isinstance(error, BaseException):
        message = str(error)
    if message is None and isinstance(error, str):
        message = error
    message = str(message or "").strip()
    return message or "Unknown error"
