"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel

from dungeon_crawl.models import GameEvent


class CreateSession(BaseModel):
    player_name: str = "Adventurer"


class SessionCreated(BaseModel):
    id: str
    message: str
    turn: int


class TurnResponse(BaseModel):
    message: str
    success: bool
    turn: int
    over: bool
    events: list[GameEvent]
