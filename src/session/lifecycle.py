"""Call lifecycle state machine.

Transitions are declared as data in ``TRANSITIONS``, keyed by
``(current state, event)``. Anything not in the table is ignored, which is how
a second terminal event for an already-ended call is dropped: the first
terminal event moves the call to ``ended`` and no row leaves that state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from session.call_log import CallLogEmitter
from session.errors import SessionStateError
from session.models import Call, CallState, CallStatus, Clock, Session, SessionMode, utcnow
from session.timer import DurationTimer

LOGGER = logging.getLogger(__name__)

REJECT_REASON = "Agent rejected"
UNKNOWN_ERROR = "Unknown error"


class CallEvent(str, Enum):
    INCOMING = "incoming"
    DIAL = "dial"
    ACCEPT = "accept"  # operator answers an incoming call
    ANSWERED = "answered"  # SDK reports the remote party answered
    RINGING = "ringing"
    REJECT = "reject"
    HANGUP = "hangup"
    DISCONNECT = "disconnect"
    ERROR = "error"


class Effect(str, Enum):
    RECORD_START = "record_start"
    START_TIMER = "start_timer"
    STOP_TIMER = "stop_timer"
    RECORD_END = "record_end"
    EMIT_LOG = "emit_log"


@dataclass(frozen=True, slots=True)
class Transition:
    target: CallState
    status: CallStatus | None = None
    effects: tuple[Effect, ...] = ()


_CONNECT = (Effect.RECORD_START, Effect.START_TIMER)
_TERMINATE = (Effect.RECORD_END, Effect.EMIT_LOG)
_TERMINATE_ACTIVE = (Effect.STOP_TIMER, Effect.RECORD_END, Effect.EMIT_LOG)

TRANSITIONS: dict[tuple[CallState, CallEvent], Transition] = {
    (CallState.IDLE, CallEvent.INCOMING): Transition(CallState.RINGING_IN),
    (CallState.IDLE, CallEvent.DIAL): Transition(CallState.DIALING_OUT),
    (CallState.RINGING_IN, CallEvent.ACCEPT): Transition(CallState.ACTIVE, effects=_CONNECT),
    (CallState.RINGING_IN, CallEvent.REJECT): Transition(CallState.ENDED, CallStatus.REJECTED, _TERMINATE),
    (CallState.RINGING_IN, CallEvent.DISCONNECT): Transition(CallState.ENDED, CallStatus.ENDED, _TERMINATE),
    (CallState.RINGING_IN, CallEvent.ERROR): Transition(CallState.ENDED, CallStatus.FAILED, _TERMINATE),
    (CallState.DIALING_OUT, CallEvent.RINGING): Transition(CallState.DIALING_OUT),
    (CallState.DIALING_OUT, CallEvent.ANSWERED): Transition(CallState.ACTIVE, effects=_CONNECT),
    (CallState.DIALING_OUT, CallEvent.HANGUP): Transition(CallState.ENDED, CallStatus.ENDED, _TERMINATE),
    (CallState.DIALING_OUT, CallEvent.DISCONNECT): Transition(CallState.ENDED, CallStatus.ENDED, _TERMINATE),
    (CallState.DIALING_OUT, CallEvent.ERROR): Transition(CallState.ENDED, CallStatus.FAILED, _TERMINATE),
    (CallState.ACTIVE, CallEvent.HANGUP): Transition(CallState.ENDED, CallStatus.ENDED, _TERMINATE_ACTIVE),
    (CallState.ACTIVE, CallEvent.DISCONNECT): Transition(CallState.ENDED, CallStatus.ENDED, _TERMINATE_ACTIVE),
    (CallState.ACTIVE, CallEvent.ERROR): Transition(CallState.ENDED, CallStatus.FAILED, _TERMINATE_ACTIVE),
}

TransitionListener = Callable[[Call, CallEvent, Transition], None]


def terminal_reason(status: CallStatus | None, reason: str | None) -> str | None:
    if status == CallStatus.REJECTED:
        return REJECT_REASON
    if status == CallStatus.FAILED:
        return reason or UNKNOWN_ERROR
    return None


class CallLifecycle:
    """Owns the session's single non-terminal call and applies transitions to it."""

    def __init__(
        self,
        session: Session,
        emitter: CallLogEmitter,
        *,
        on_transition: TransitionListener | None = None,
        on_tick: Callable[[int], None] | None = None,
        timer_interval: float = 1.0,
        clock: Clock = utcnow,
    ) -> None:
        self._session = session
        self._emitter = emitter
        self._on_transition = on_transition
        self._on_tick = on_tick
        self._clock = clock
        self.timer = DurationTimer(self._tick, interval=timer_interval, clock=clock)
        self.current: Call | None = None
        self.last_call: Call | None = None

    @property
    def state(self) -> CallState:
        return self.current.state if self.current is not None else CallState.IDLE

    def begin(
        self,
        direction: SessionMode,
        remote_number: str | None,
        event: CallEvent,
        *,
        handle: Any = None,
    ) -> Call:
        """Create a fresh call (``logged`` starts False) and apply its opening event."""

        if self.current is not None:
            raise SessionStateError("Another call is already in progress.")
        call = Call(direction=direction, remote_number=remote_number, handle=handle)
        self.current = call
        if self.handle(call, event) is None:
            self.current = None
            raise SessionStateError(f"{event.value!r} cannot open a call.")
        return call

    def handle(self, call: Call, event: CallEvent, *, reason: str | None = None) -> Transition | None:
        transition = TRANSITIONS.get((call.state, event))
        if transition is None:
            LOGGER.debug("Ignoring %s event for call in state %s", event.value, call.state.value)
            return None

        previous = call.state
        call.state = transition.target
        if transition.status is not None:
            call.status = transition.status
            call.reason = terminal_reason(transition.status, reason)

        for effect in transition.effects:
            self._apply(effect, call)

        LOGGER.info(
            "Call %s: %s -[%s]-> %s",
            call.remote_number,
            previous.value,
            event.value,
            transition.target.value,
        )

        if call.is_terminal:
            self.last_call = call
            if self.current is call:
                self.current = None

        if self._on_transition is not None:
            self._on_transition(call, event, transition)
        return transition

    def stop(self) -> None:
        self.timer.stop()

    def _apply(self, effect: Effect, call: Call) -> None:
        if effect is Effect.RECORD_START:
            call.started_at = self._clock()
            self._session.duration_seconds = 0
        elif effect is Effect.START_TIMER:
            self.timer.start(call.started_at)
        elif effect is Effect.STOP_TIMER:
            self.timer.stop()
        elif effect is Effect.RECORD_END:
            call.ended_at = self._clock()
            if call.started_at is not None:
                self._session.duration_seconds = call.duration_seconds
        elif effect is Effect.EMIT_LOG:
            self._emitter.emit(call, self._session)

    def _tick(self, seconds: int) -> None:
        self._session.duration_seconds = seconds
        if self._on_tick is not None:
            self._on_tick(seconds)
