"""FastAPI routes exposing the operator controls of the softphone session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from api.dependencies import get_coordinator
from api.schemas import MuteRequest, SessionSnapshot
from session.coordinator import SessionCoordinator
from session.errors import SoftphoneError

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _snapshot(coordinator: SessionCoordinator) -> SessionSnapshot:
    return SessionSnapshot.model_validate(coordinator.snapshot())


def _http_error(exc: SoftphoneError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


@router.post("/session", response_model=SessionSnapshot)
async def start_session(
    request: Request,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    params = dict(request.query_params)
    try:
        await coordinator.start(params)
    except SoftphoneError as exc:
        raise _http_error(exc) from exc
    return _snapshot(coordinator)


@router.get("/session", response_model=SessionSnapshot)
async def get_session(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    if coordinator.session is None:
        raise HTTPException(status_code=404, detail="No session has been started.")
    return _snapshot(coordinator)


@router.delete("/session", response_model=SessionSnapshot)
async def teardown_session(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    if coordinator.teardown() is None:
        raise HTTPException(status_code=404, detail="No session has been started.")
    return _snapshot(coordinator)


@router.post("/session/audio/retry", response_model=SessionSnapshot)
async def retry_audio(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    try:
        await coordinator.retry_audio()
    except SoftphoneError as exc:
        raise _http_error(exc) from exc
    return _snapshot(coordinator)


@router.post("/call/accept", response_model=SessionSnapshot)
async def accept_call(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    try:
        coordinator.accept()
    except SoftphoneError as exc:
        raise _http_error(exc) from exc
    return _snapshot(coordinator)


@router.post("/call/reject", response_model=SessionSnapshot)
async def reject_call(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    try:
        coordinator.reject()
    except SoftphoneError as exc:
        raise _http_error(exc) from exc
    return _snapshot(coordinator)


@router.post("/call/hangup", response_model=SessionSnapshot)
async def hangup_call(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    try:
        coordinator.hangup()
    except SoftphoneError as exc:
        raise _http_error(exc) from exc
    return _snapshot(coordinator)


@router.post("/call/mute", response_model=SessionSnapshot)
async def mute_call(
    payload: MuteRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    try:
        coordinator.set_muted(payload.muted)
    except SoftphoneError as exc:
        raise _http_error(exc) from exc
    return _snapshot(coordinator)


@router.websocket("/session/events")
async def session_events(
    websocket: WebSocket,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> None:
    await websocket.accept()
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    unsubscribe = coordinator.subscribe(queue.put_nowait)

    async def forward() -> None:
        while True:
            await websocket.send_json(await queue.get())

    forwarder: asyncio.Task | None = None
    try:
        if coordinator.session is not None:
            await websocket.send_json(coordinator.snapshot())
        forwarder = asyncio.create_task(forward())
        # Client messages are ignored; the loop only watches for disconnect.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        LOGGER.debug("Session event subscriber disconnected")
    finally:
        unsubscribe()
        if forwarder is not None:
            forwarder.cancel()
