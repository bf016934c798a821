"""Game session endpoints: start, inspect, act, read the log, end."""

from fastapi import APIRouter, HTTPException

from backend.sessions import get_manager
from dungeon_crawl.models import PlayerAction

from .models import CreateSession, SessionCreated, TurnResponse

router = APIRouter()


@router.post("/sessions", status_code=201)
async def create_session(body: CreateSession) -> SessionCreated:
    """Start a new game in the dungeon entrance."""
    session = get_manager().create(body.player_name)
    state = session.engine.state
    return SessionCreated(id=session.id, message=state.log[-1].message, turn=state.turn)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    """Full game state for a session."""
    session = get_manager().get(session_id)
    if not session:
        raise HTTPException(404, "Session not found")
    return session.engine.state.model_dump(mode="json")


@router.post("/sessions/{session_id}/actions")
async def act(session_id: str, body: PlayerAction) -> TurnResponse:
    """Resolve one turn for a player command."""
    result = await get_manager().act(session_id, body)
    if result is None:
        raise HTTPException(404, "Session not found")
    return TurnResponse(
        message=result.message, success=result.success, turn=result.turn,
        over=result.over, events=result.events,
    )


@router.get("/sessions/{session_id}/log")
async def get_log(session_id: str, since: int = 0):
    """Event log, optionally only events with seq greater than `since`."""
    session = get_manager().get(session_id)
    if not session:
        raise HTTPException(404, "Session not found")
    return [e.model_dump(mode="json") for e in session.engine.state.log if e.seq > since]


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """End a session and drop its state."""
    if not get_manager().delete(session_id):
        raise HTTPException(404, "Session not found")
    return {"ok": True}
