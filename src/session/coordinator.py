"""Session coordinator: bootstrap pipeline plus operator and SDK event routing."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from config.settings import Settings, get_settings
from integrations.access import AccessVerifier
from integrations.identity import TokenClient
from session.call_log import CallLogEmitter, CallLogSink
from session.context import resolve_context
from session.errors import BootstrapError, MicrophonePermissionError, SessionStateError, UnauthorizedError
from session.lifecycle import CallEvent, CallLifecycle, Transition
from session.models import (
    AuthorizationState,
    Call,
    CallState,
    CallStatus,
    Clock,
    Session,
    SessionMode,
    SessionStatus,
    utcnow,
)
from telephony.audio import AudioDevices
from telephony.client import CallHandle, TelephonyClient, TelephonyClientFactory, TelephonyOptions, error_message

LOGGER = logging.getLogger(__name__)

SnapshotListener = Callable[[dict[str, Any]], None]


class SessionCoordinator:
    """Drives one softphone session from launch parameters to teardown.

    Bootstrap order: context -> access gate (outbound) -> audio -> token and
    telephony client -> register (inbound) or dial (outbound). All call state
    changes go through ``CallLifecycle``.
    """

    def __init__(
        self,
        *,
        telephony_factory: TelephonyClientFactory,
        audio_devices: AudioDevices,
        token_client: TokenClient,
        call_log_sink: CallLogSink,
        access_verifier: AccessVerifier | None = None,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings or get_settings()
        self._telephony_factory = telephony_factory
        self._audio = audio_devices
        self._token_client = token_client
        self._access_verifier = access_verifier
        self._emitter = CallLogEmitter(call_log_sink)
        self._clock = clock

        self.session: Session | None = None
        self.lifecycle: CallLifecycle | None = None
        self._client: TelephonyClient | None = None
        self._sink: Any = None
        self._listeners: list[SnapshotListener] = []

    # ------------------------------------------------------------------ bootstrap

    async def start(self, params: Mapping[str, str]) -> Session:
        if self.session is not None and not self.session.status.is_fatal:
            raise SessionStateError("A session is already running.")
        if self.session is not None:
            self.teardown()

        context = resolve_context(params)
        session = Session(
            mode=context.mode,
            org_id=context.org_id,
            customer_id=context.customer_id if context.mode == SessionMode.OUTBOUND else None,
            destination=context.destination if context.mode == SessionMode.OUTBOUND else None,
            access_key=context.access_key,
        )
        self.session = session
        self.lifecycle = CallLifecycle(
            session,
            self._emitter,
            on_transition=self._on_transition,
            on_tick=self._on_tick,
            timer_interval=self._settings.timer_interval_seconds,
            clock=self._clock,
        )
        LOGGER.info("Starting %s session (org=%s)", session.mode, session.org_id)
        self._publish()

        if session.mode == SessionMode.OUTBOUND and not await self._authorize(session):
            return session

        await self._bootstrap(session)
        return session

    async def retry_audio(self) -> Session:
        """One operator-triggered re-attempt of the audio bootstrap."""

        session = self._require_session()
        if session.status == SessionStatus.INIT_FAILED:
            raise BootstrapError("Init failed; start a new session.")
        if session.status != SessionStatus.BLOCKED:
            raise SessionStateError("Audio retry is only available while the microphone is blocked.")
        session.set_status(SessionStatus.INITIALIZING, "Initializing…")
        self._publish()
        await self._bootstrap(session)
        return session

    def _superseded(self, session: Session) -> bool:
        """True once ``session`` was torn down or replaced while a bootstrap step awaited."""

        return self.session is not session or session.status == SessionStatus.CLOSED

    async def _authorize(self, session: Session) -> bool:
        if not session.access_key:
            LOGGER.warning("Outbound session started without access key")
            self._deny(session)
            return False
        if self._access_verifier is None:
            LOGGER.error("Access verification endpoint is not configured; denying outbound session")
            self._deny(session)
            return False

        try:
            org_id = await self._access_verifier.verify(session.access_key)
        except UnauthorizedError:
            if not self._superseded(session):
                self._deny(session)
            return False
        if self._superseded(session):
            LOGGER.info("Session closed during access verification")
            return False

        session.authorization = AuthorizationState.AUTHORIZED
        if org_id:
            session.org_id = org_id
        LOGGER.info("Access granted (org=%s)", session.org_id)
        return True

    def _deny(self, session: Session) -> None:
        session.authorization = AuthorizationState.DENIED
        session.set_status(SessionStatus.UNAUTHORIZED, "Unauthorized")
        self._publish()

    async def _bootstrap(self, session: Session) -> None:
        if not await self._prepare_audio(session):
            return
        await self._start_telephony(session)

    async def _prepare_audio(self, session: Session) -> bool:
        try:
            capture = await self._audio.request_microphone()
            # Only the permission grant is needed; release the capture right away.
            capture.stop()
            sink = self._audio.create_output_sink()
        except MicrophonePermissionError as exc:
            LOGGER.warning("Microphone unavailable: %s", exc.detail)
            if not self._superseded(session):
                self._block(session)
            return False
        except Exception:
            LOGGER.exception("Audio bootstrap failed")
            if not self._superseded(session):
                self._block(session)
            return False

        if self._superseded(session):
            LOGGER.info("Session closed during audio bootstrap")
            return False
        self._sink = sink
        session.audio_ready = True
        return True

    def _block(self, session: Session) -> None:
        session.audio_ready = False
        session.set_status(SessionStatus.BLOCKED, "Microphone access blocked")
        self._publish()

    async def _start_telephony(self, session: Session) -> None:
        if session.mode == SessionMode.OUTBOUND and not session.destination:
            LOGGER.error("Outbound session has no destination number")
            self._fail_bootstrap(session)
            return

        try:
            token = await self._token_client.fetch_token(self._settings.agent_identity)
        except Exception:
            LOGGER.exception("Session bootstrap failed")
            if not self._superseded(session):
                self._fail_bootstrap(session)
            return
        if self._superseded(session):
            LOGGER.info("Session closed while fetching the telephony token")
            return

        try:
            client = self._telephony_factory(
                token,
                TelephonyOptions(enable_ringing_state=True, close_protection=True),
            )
        except Exception:
            LOGGER.exception("Session bootstrap failed")
            self._fail_bootstrap(session)
            return

        self._client = client
        client.attach_incoming_audio(self._sink)
        client.on("error", self._on_device_error)

        if session.mode == SessionMode.OUTBOUND:
            await self._dial(client, session.destination)
            return

        # Subscribe before registering so a call arriving mid-registration is not missed.
        client.on("incoming", self._on_incoming)
        client.on("registered", self._on_registered)
        try:
            await client.register()
        except Exception:
            LOGGER.exception("Telephony registration failed")
            if not self._superseded(session):
                self._fail_bootstrap(session)
            return
        if self._superseded(session):
            # Teardown already destroyed this client.
            LOGGER.info("Session closed during telephony registration")
            return

        if self.lifecycle is not None and self.lifecycle.current is None:
            session.set_status(SessionStatus.READY, "Ready for inbound calls")
            self._publish()

    def _fail_bootstrap(self, session: Session) -> None:
        self._destroy_client()
        session.set_status(SessionStatus.INIT_FAILED, "Init failed")
        self._publish()

    async def _dial(self, client: TelephonyClient, number: str) -> None:
        lifecycle = self._require_lifecycle()
        call = lifecycle.begin(SessionMode.OUTBOUND, number, CallEvent.DIAL)
        try:
            handle = await client.connect({"To": number})
        except Exception as exc:
            LOGGER.exception("Outbound connect to %s failed", number)
            lifecycle.handle(call, CallEvent.ERROR, reason=error_message(exc))
            return

        call.handle = handle
        if call.is_terminal:
            # Operator hung up while the connect request was in flight.
            handle.disconnect()
            return
        self._bind_call(call, handle)

    # ------------------------------------------------------------------ SDK events

    def _bind_call(self, call: Call, handle: CallHandle) -> None:
        lifecycle = self._require_lifecycle()

        def on_ringing(*_: Any) -> None:
            lifecycle.handle(call, CallEvent.RINGING)

        def on_accept(*_: Any) -> None:
            lifecycle.handle(call, CallEvent.ANSWERED)

        def on_disconnect(*_: Any) -> None:
            lifecycle.handle(call, CallEvent.DISCONNECT)

        def on_error(error: Any = None, *_: Any) -> None:
            message = error_message(error)
            LOGGER.warning("Call %s reported error: %s", call.remote_number, message)
            lifecycle.handle(call, CallEvent.ERROR, reason=message)

        handle.on("ringing", on_ringing)
        handle.on("accept", on_accept)
        handle.on("disconnect", on_disconnect)
        handle.on("error", on_error)

    def _on_incoming(self, handle: CallHandle) -> None:
        lifecycle = self._require_lifecycle()
        if lifecycle.current is not None:
            LOGGER.warning("Rejecting incoming call while another call is in progress")
            handle.reject()
            return

        remote = (handle.parameters or {}).get("From")
        call = lifecycle.begin(SessionMode.INBOUND, remote, CallEvent.INCOMING, handle=handle)
        self._bind_call(call, handle)

    def _on_registered(self, *_: Any) -> None:
        LOGGER.info("Telephony client registered")

    def _on_device_error(self, error: Any = None, *_: Any) -> None:
        LOGGER.error("Telephony client error: %s", error_message(error))

    def _on_transition(self, call: Call, event: CallEvent, transition: Transition) -> None:
        session = self._require_session()
        target = transition.target
        if target == CallState.RINGING_IN:
            session.duration_seconds = 0
            session.set_status(SessionStatus.INCOMING, "Incoming call")
        elif target == CallState.DIALING_OUT:
            if event == CallEvent.RINGING:
                session.set_status(SessionStatus.RINGING, "Ringing…")
            else:
                session.duration_seconds = 0
                session.set_status(SessionStatus.DIALING, f"Calling {call.remote_number}…")
        elif target == CallState.ACTIVE:
            session.set_status(SessionStatus.CONNECTED, "Connected")
        elif target == CallState.ENDED:
            session.muted = False
            if call.status == CallStatus.REJECTED:
                session.set_status(SessionStatus.REJECTED, "Rejected")
            elif call.status == CallStatus.FAILED:
                session.set_status(SessionStatus.FAILED, f"Call failed: {call.reason}")
            else:
                session.set_status(SessionStatus.ENDED, "Call ended")
            if session.mode == SessionMode.OUTBOUND and self._settings.close_session_after_outbound_call:
                self._close()
                return
        self._publish()

    def _on_tick(self, _seconds: int) -> None:
        self._publish()

    # ------------------------------------------------------------------ operator actions

    def accept(self) -> Call:
        call = self._require_call()
        if self._require_lifecycle().handle(call, CallEvent.ACCEPT) is None:
            raise SessionStateError("There is no incoming call to accept.")
        call.handle.accept()
        return call

    def reject(self) -> Call:
        call = self._require_call()
        if self._require_lifecycle().handle(call, CallEvent.REJECT) is None:
            raise SessionStateError("There is no incoming call to reject.")
        call.handle.reject()
        return call

    def hangup(self) -> Call:
        self._require_mode(SessionMode.OUTBOUND, "Hang-up")
        call = self._require_call()
        if self._require_lifecycle().handle(call, CallEvent.HANGUP) is None:
            raise SessionStateError("There is no call to hang up.")
        if call.handle is not None:
            call.handle.disconnect()
        return call

    def set_muted(self, muted: bool) -> Session:
        session = self._require_mode(SessionMode.OUTBOUND, "Mute")
        call = self._require_call()
        if call.state != CallState.ACTIVE:
            raise SessionStateError("Mute is only available during an active call.")
        call.handle.mute(muted)
        session.muted = muted
        self._publish()
        return session

    # ------------------------------------------------------------------ teardown

    def teardown(self) -> Session | None:
        """Release the telephony client; an in-progress call is ended and logged."""

        session = self.session
        lifecycle = self.lifecycle
        if session is None or lifecycle is None:
            return None

        call = lifecycle.current
        if call is not None:
            LOGGER.warning("Tearing down session with call in state %s", call.state.value)
            handle = call.handle
            lifecycle.handle(call, CallEvent.DISCONNECT)
            if handle is not None:
                handle.disconnect()
        lifecycle.stop()
        if session.status != SessionStatus.CLOSED:
            self._close()
        return session

    def _close(self) -> None:
        session = self._require_session()
        self._destroy_client()
        session.set_status(SessionStatus.CLOSED, "Session closed")
        LOGGER.info("Session closed")
        self._publish()

    def _destroy_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.destroy()
        finally:
            client.remove_all_listeners()

    async def drain(self) -> None:
        await self._emitter.drain()

    # ------------------------------------------------------------------ snapshots

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> dict[str, Any]:
        session = self._require_session()
        lifecycle = self._require_lifecycle()
        current = lifecycle.current
        last = lifecycle.last_call
        return {
            "mode": session.mode.value,
            "status": session.status.value,
            "status_text": session.status_text,
            "authorization": session.authorization.value,
            "audio_ready": session.audio_ready,
            "org_id": session.org_id,
            "destination": session.destination,
            "call_state": lifecycle.state.value,
            "remote_number": current.remote_number if current is not None else None,
            "duration_seconds": session.duration_seconds,
            "muted": session.muted,
            "last_call": _call_summary(last) if last is not None else None,
        }

    def _publish(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Snapshot listener failed")

    # ------------------------------------------------------------------ guards

    def _require_session(self) -> Session:
        if self.session is None:
            raise SessionStateError("No session has been started.")
        return self.session

    def _require_lifecycle(self) -> CallLifecycle:
        if self.lifecycle is None:
            raise SessionStateError("No session has been started.")
        return self.lifecycle

    def _require_call(self) -> Call:
        call = self._require_lifecycle().current
        if call is None:
            raise SessionStateError("There is no call in progress.")
        return call

    def _require_mode(self, mode: SessionMode, action: str) -> Session:
        session = self._require_session()
        if session.mode != mode:
            raise SessionStateError(f"{action} is only available in {mode.value} sessions.")
        return session


def _call_summary(call: Call) -> dict[str, Any]:
    return {
        "direction": call.direction.value,
        "remote_number": call.remote_number,
        "status": call.status.value if call.status is not None else None,
        "reason": call.reason,
        "duration_seconds": call.duration_seconds,
        "logged": call.logged,
    }
