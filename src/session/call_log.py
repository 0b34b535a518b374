"""Exactly-once dispatch of call audit records."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from session.models import Call, Session
from session.schemas import CallLogRecord

LOGGER = logging.getLogger(__name__)


class CallLogSink(Protocol):
    async def submit(self, record: CallLogRecord) -> None:  # pragma: no cover - protocol stub
        ...


class CallLogEmitter:
    """Builds one CallLogRecord per terminated call and submits it in the background.

    The ``logged`` flag is checked and set before the first await, so racing
    terminal events on the single event loop cannot produce a second record.
    Submission failures are logged and dropped.
    """

    def __init__(self, sink: CallLogSink) -> None:
        self._sink = sink
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def emit(self, call: Call, session: Session) -> CallLogRecord | None:
        if call.logged:
            LOGGER.debug("Call to %s already logged; skipping", call.remote_number)
            return None
        call.logged = True

        record = CallLogRecord.from_call(call, session)
        task = asyncio.get_running_loop().create_task(self._submit(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return record

    async def _submit(self, record: CallLogRecord) -> None:
        try:
            await self._sink.submit(record)
        except Exception as exc:
            LOGGER.warning("Dropping call-log record for %s (%s): %s", record.to, record.status, exc)
            return
        LOGGER.info(
            "Call logged: to=%s status=%s duration=%ss",
            record.to,
            record.status,
            record.duration_seconds,
        )

    async def drain(self) -> None:
        """Wait for in-flight submissions, e.g. on shutdown."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
