"""Transfer session endpoints and the session event stream."""

import asyncio
import json
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from ..dependencies import get_orchestrator
from ..models import (
    SessionCreate,
    SessionListResponse,
    SessionResponse,
    SessionStartedResponse,
    SnapshotResponse,
    SnapshotSaveRequest,
)
from ...errors import (
    InvalidSelection,
    InvalidSnapshot,
    InvalidState,
    MissingDependencyError,
    SessionNotFound,
    SourceUnavailable,
)
from ...models.transfer import StateChangeEvent
from ...orchestrator import TransferOrchestrator

router = APIRouter()

PING_INTERVAL = 15.0


@router.post("", response_model=SessionStartedResponse, status_code=201)
async def start_session(
    data: SessionCreate,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Start transferring a selection of objects."""
    try:
        session_id = await orchestrator.start_session(
            data.selection,
            resume_from=data.resume_from,
            name=data.name,
        )
    except InvalidSelection as e:
        raise HTTPException(
            status_code=400,
            detail={"message": str(e), "unknown": e.unknown, "duplicates": e.duplicates},
        )
    except FileNotFoundError:
        raise HTTPException(status_code=400, detail=f"Snapshot file not found: {data.resume_from}")
    except InvalidSnapshot as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (SourceUnavailable, MissingDependencyError) as e:
        raise HTTPException(status_code=503, detail=str(e))

    return SessionStartedResponse(
        session_id=session_id,
        status=orchestrator.get_snapshot(session_id).status,
    )


@router.get("", response_model=SessionListResponse)
async def list_sessions(orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """List sessions started by this server."""
    sessions = [SessionResponse.from_session(s) for s in orchestrator.list_sessions()]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/{session_id}", response_model=SnapshotResponse)
async def get_snapshot(
    session_id: str,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Get the current snapshot of a session."""
    try:
        return SnapshotResponse.from_snapshot(orchestrator.get_snapshot(session_id))
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")


@router.post("/{session_id}/cancel")
async def cancel_session(
    session_id: str,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Cancel a session. Cancelling twice is the same as cancelling once."""
    try:
        orchestrator.cancel_session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "cancelled", "session_id": session_id}


@router.post("/{session_id}/items/{name}/retry")
async def retry_item(
    session_id: str,
    name: str,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Retry a failed item."""
    try:
        orchestrator.retry_item(session_id, name)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"status": "retrying", "session_id": session_id, "name": name}


@router.post("/{session_id}/snapshot")
async def save_snapshot(
    session_id: str,
    data: SnapshotSaveRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Write the session's item states to a file for a later resume."""
    try:
        path = orchestrator.save_snapshot(session_id, data.path)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "saved", "path": str(path)}


async def _event_generator(
    request: Request,
    orchestrator: TransferOrchestrator,
    session_id: str,
    queue: asyncio.Queue,
) -> AsyncGenerator[dict, None]:
    """
    Yield the session snapshot, then its state changes until it finishes.

    A ping is sent when nothing happened for ``PING_INTERVAL`` seconds.
    """
    yield _snapshot_message(orchestrator, session_id)

    finished = asyncio.ensure_future(orchestrator.wait(session_id))
    try:
        while not finished.done():
            if await request.is_disconnected():
                return

            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait(
                {getter, finished},
                timeout=PING_INTERVAL,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if getter.cancel():
                if not done:
                    yield {"data": json.dumps({"event": "ping"})}
                continue
            yield _event_message(getter.result())
    finally:
        finished.cancel()

    # Drain what was queued before the session went idle
    while not queue.empty():
        yield _event_message(queue.get_nowait())

    yield _snapshot_message(orchestrator, session_id, event_name="finished")


def _event_message(event: StateChangeEvent) -> dict:
    return {"data": json.dumps({"event": event.type.value, "data": event.to_dict()})}


def _snapshot_message(orchestrator: TransferOrchestrator, session_id: str, event_name: str = "snapshot") -> dict:
    snapshot = orchestrator.get_snapshot(session_id)
    return {"data": json.dumps({"event": event_name, "data": snapshot.to_dict()})}


@router.get("/{session_id}/events")
async def stream_events(
    request: Request,
    session_id: str,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> EventSourceResponse:
    """Stream a session's state changes via Server-Sent Events."""
    try:
        orchestrator.get_session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def listener(event: StateChangeEvent) -> None:
        if event.session_id == session_id:
            loop.call_soon_threadsafe(queue.put_nowait, event)

    orchestrator.subscribe(listener)

    async def events() -> AsyncGenerator[dict, None]:
        try:
            async for message in _event_generator(request, orchestrator, session_id, queue):
                yield message
        finally:
            # Always unsubscribe when the client goes away
            orchestrator.unsubscribe(listener)

    return EventSourceResponse(events(), media_type="text/event-stream")
