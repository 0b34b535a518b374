"""Audio device abstractions used during bootstrap."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol


class AudioCapture(Protocol):
    """A live microphone capture."""

    def stop(self) -> None:  # pragma: no cover - protocol stub
        ...


class AudioDevices(ABC):
    """Microphone permission and output sink provider."""

    @abstractmethod
    async def request_microphone(self) -> AudioCapture:
        """Request microphone access.

        Raises ``MicrophonePermissionError`` when access is denied or no
        capture device is available.
        """

    @abstractmethod
    def create_output_sink(self) -> Any:
        """Create the output sink used for ringing and call audio."""
