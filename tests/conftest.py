from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Mapping

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from config.settings import Settings  # noqa: E402
from session.coordinator import SessionCoordinator  # noqa: E402
from session.errors import MicrophonePermissionError, UnauthorizedError  # noqa: E402
from telephony.audio import AudioDevices  # noqa: E402
from telephony.client import CallHandle, TelephonyClient, TelephonyOptions  # noqa: E402


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeCall(CallHandle):
    def __init__(self, from_number: str | None = "+41791234567") -> None:
        super().__init__()
        self.parameters = {"From": from_number} if from_number else {}
        self.commands: list[Any] = []

    def accept(self) -> None:
        self.commands.append("accept")

    def reject(self) -> None:
        self.commands.append("reject")

    def disconnect(self) -> None:
        self.commands.append("disconnect")

    def mute(self, muted: bool) -> None:
        self.commands.append(("mute", muted))


class SdkError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FakeTelephonyClient(TelephonyClient):
    def __init__(self, token: str, options: TelephonyOptions) -> None:
        super().__init__()
        self.token = token
        self.options = options
        self.sink: Any = None
        self.register_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.incoming_during_register: FakeCall | None = None
        self.register_gate: asyncio.Event | None = None
        self.connect_params: Mapping[str, str] | None = None
        self.outbound_call = FakeCall(from_number=None)
        self.destroyed = False
        self.register_calls = 0

    def attach_incoming_audio(self, sink: Any) -> None:
        self.sink = sink

    async def register(self) -> None:
        self.register_calls += 1
        if self.register_gate is not None:
            await self.register_gate.wait()
        if self.incoming_during_register is not None:
            self.emit("incoming", self.incoming_during_register)
        if self.register_error is not None:
            raise self.register_error
        self.emit("registered")

    async def connect(self, params: Mapping[str, str]) -> CallHandle:
        self.connect_params = dict(params)
        if self.connect_error is not None:
            raise self.connect_error
        return self.outbound_call

    def destroy(self) -> None:
        self.destroyed = True


class FakeTelephonyFactory:
    """Builds FakeTelephonyClient instances and remembers them."""

    def __init__(self) -> None:
        self.clients: list[FakeTelephonyClient] = []
        self.configure = lambda client: None
        self.error: Exception | None = None

    def __call__(self, token: str, options: TelephonyOptions) -> FakeTelephonyClient:
        if self.error is not None:
            raise self.error
        client = FakeTelephonyClient(token, options)
        self.configure(client)
        self.clients.append(client)
        return client

    @property
    def client(self) -> FakeTelephonyClient:
        return self.clients[-1]


class FakeCapture:
    def __init__(self) -> None:
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeAudioDevices(AudioDevices):
    def __init__(self, *, granted: bool = True) -> None:
        self.granted = granted
        self.requests = 0
        self.captures: list[FakeCapture] = []
        self.sinks: list[object] = []

    async def request_microphone(self) -> FakeCapture:
        self.requests += 1
        if not self.granted:
            raise MicrophonePermissionError("Permission denied")
        capture = FakeCapture()
        self.captures.append(capture)
        return capture

    def create_output_sink(self) -> object:
        sink = object()
        self.sinks.append(sink)
        return sink


class FakeTokenClient:
    def __init__(self, token: str = "jwt-token", error: Exception | None = None) -> None:
        self.token = token
        self.error = error
        self.identities: list[str] = []
        # Holds the next fetch open until set; later fetches return immediately.
        self.gate: asyncio.Event | None = None

    async def fetch_token(self, identity: str) -> str:
        self.identities.append(identity)
        gate, self.gate = self.gate, None
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        return self.token


class FakeAccessVerifier:
    def __init__(self, org_id: str | None = "org-verified", allowed: bool = True) -> None:
        self.org_id = org_id
        self.allowed = allowed
        self.keys: list[str] = []
        self.gate: asyncio.Event | None = None

    async def verify(self, key: str) -> str | None:
        self.keys.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if not self.allowed:
            raise UnauthorizedError()
        return self.org_id


class RecordingLogSink:
    def __init__(self, error: Exception | None = None) -> None:
        self.records: list = []
        self.error = error

    async def submit(self, record) -> None:
        self.records.append(record)
        if self.error is not None:
            raise self.error


class Harness:
    def __init__(self, **overrides: Any) -> None:
        self.clock = FakeClock()
        self.telephony = FakeTelephonyFactory()
        self.audio = overrides.pop("audio", FakeAudioDevices())
        self.tokens = overrides.pop("tokens", FakeTokenClient())
        self.verifier = overrides.pop("verifier", FakeAccessVerifier())
        self.log_sink = overrides.pop("log_sink", RecordingLogSink())
        self.settings = Settings(
            token_url="https://backend.test/token",
            call_log_url="https://backend.test/log",
            verify_url="https://backend.test/verify",
            timer_interval_seconds=0.01,
            **overrides,
        )
        self.coordinator = SessionCoordinator(
            telephony_factory=self.telephony,
            audio_devices=self.audio,
            token_client=self.tokens,
            call_log_sink=self.log_sink,
            access_verifier=self.verifier,
            settings=self.settings,
            clock=self.clock,
        )

    @property
    def records(self) -> list:
        return self.log_sink.records


@pytest.fixture()
def harness() -> Harness:
    return Harness()


@pytest.fixture()
def make_harness():
    return Harness


@pytest.fixture(scope="session")
def app():
    import importlib

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app, harness):
    from fastapi.testclient import TestClient

    import api.dependencies as deps

    app.dependency_overrides[deps.get_coordinator] = lambda: harness.coordinator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
