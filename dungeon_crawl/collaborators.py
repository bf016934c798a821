"""External collaborators — the LLM-backed services the engine awaits.

Protocols (what the engine depends on):

    NarrativeInterpreter  — player command -> narrative + ordered intents
    RoomGenerator         — theme/difficulty/required exits -> room descriptor
    CraftingOracle        — matched items -> crafted item or None
    CorpseSearchNarrator  — empty body -> supplemental loot + narration

LLM-backed implementations render a Handlebars prompt, call the injected
LLM, strip markdown fences, parse JSON, and validate the payload with
pydantic. Any failure along that path surfaces as CollaboratorError; the
engine catches it and degrades to a local default.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, Field, ValidationError

from dungeon_crawl import prompts
from dungeon_crawl.llm import LLM, LLMError
from dungeon_crawl.models import (
    Corpse,
    Door,
    Intent,
    Item,
    NPC,
    StatusEffect,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CollaboratorError(RuntimeError):
    """Raised when a collaborator cannot produce a valid response."""


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------

class RoomSnapshot(BaseModel):
    """What the interpreter is allowed to see of the current room."""

    name: str
    description: str = ""
    items: list[str] = Field(default_factory=list)
    npcs: list[str] = Field(default_factory=list)
    bodies: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    doors: list[str] = Field(default_factory=list)


class InterpretRequest(BaseModel):
    room: RoomSnapshot
    inventory: list[Item] = Field(default_factory=list)
    statuses: list[StatusEffect] = Field(default_factory=list)
    health: int
    max_health: int
    level: int
    damage: int
    action: str
    action_type: str | None = None
    target: str | None = None


class NarrativeResponse(BaseModel):
    narrative: str
    success: bool = True
    intents: list[Intent] = Field(default_factory=list)
    consequences: list[str] = Field(default_factory=list)


class RoomRequest(BaseModel):
    theme: str
    difficulty: float
    required_exits: list[str]


class GeneratedRoom(BaseModel):
    """Room descriptor as produced by a generator; ids are reassigned locally."""

    name: str = "Unnamed Chamber"
    description: str = ""
    items: list[Item] = Field(default_factory=list)
    npcs: list[NPC] = Field(default_factory=list)
    doors: list[Door] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)


class SearchNarration(BaseModel):
    narration: str = ""
    items: list[Item] = Field(default_factory=list)


class CraftResult(BaseModel):
    success: bool = False
    item: Item | None = None


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class NarrativeInterpreter(Protocol):
    async def interpret(self, request: InterpretRequest) -> NarrativeResponse: ...


class RoomGenerator(Protocol):
    async def generate(self, request: RoomRequest) -> GeneratedRoom: ...


class CraftingOracle(Protocol):
    async def craft(self, items: list[Item], player_level: int) -> Item | None: ...


class CorpseSearchNarrator(Protocol):
    async def narrate_search(
        self, corpse: Corpse, searcher_id: str, room_context: str
    ) -> SearchNarration: ...


# ---------------------------------------------------------------------------
# JSON handling
# ---------------------------------------------------------------------------

def parse_json_output(text: str) -> Any:
    """Parse JSON from LLM output, stripping markdown fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines[1:] if not line.strip().startswith("```")]
        cleaned = "\n".join(lines)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise CollaboratorError(f"Collaborator output is not valid JSON: {e}") from e


async def _ask(llm: LLM, stage: str, prompt: str) -> Any:
    try:
        text = await llm(stage, prompt)
    except LLMError as e:
        raise CollaboratorError(f"{stage}: {e}") from e
    return parse_json_output(text)


async def bounded(call: Awaitable[T], timeout: float | None) -> T:
    """Await a collaborator call, giving up after `timeout` seconds when set."""
    if timeout is None:
        return await call
    return await asyncio.wait_for(call, timeout)


def _validate(model: type[BaseModel], data: Any, stage: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning("%s returned an invalid payload: %s", stage, e.error_count())
        raise CollaboratorError(f"{stage}: invalid payload") from e


# ---------------------------------------------------------------------------
# LLM-backed implementations
# ---------------------------------------------------------------------------

class LLMNarrativeInterpreter:
    stage = "interpreter"

    def __init__(self, llm: LLM) -> None:
        self._llm = llm

    async def interpret(self, request: InterpretRequest) -> NarrativeResponse:
        ctx = {
            "room": request.room.model_dump(),
            "inventory": [prompts.item_line(i) for i in request.inventory],
            "statuses": [prompts.status_line(s) for s in request.statuses],
            "health": request.health,
            "max_health": request.max_health,
            "level": request.level,
            "damage": request.damage,
            "action": request.action,
            "action_type": request.action_type,
            "target": request.target,
        }
        prompt = prompts.render_prompt(prompts.INTERPRETER_PROMPT, ctx)
        data = await _ask(self._llm, self.stage, prompt)
        return _validate(NarrativeResponse, data, self.stage)


class LLMRoomGenerator:
    stage = "room_generator"

    def __init__(self, llm: LLM) -> None:
        self._llm = llm

    async def generate(self, request: RoomRequest) -> GeneratedRoom:
        ctx = {
            "theme": request.theme,
            "difficulty": round(request.difficulty, 1),
            "required_exits": request.required_exits,
            "exit_count": len(request.required_exits),
        }
        prompt = prompts.render_prompt(prompts.ROOM_PROMPT, ctx)
        data = await _ask(self._llm, self.stage, prompt)
        if isinstance(data, dict):
            # Some models answer with the legacy "monsters" key.
            if "npcs" not in data and "monsters" in data:
                data["npcs"] = data.pop("monsters")
            data["doors"] = [
                d for d in data.get("doors", [])
                if isinstance(d, dict) and str(d.get("direction", "")).lower().strip()
                in ("north", "south", "east", "west", "up", "down")
            ]
        return _validate(GeneratedRoom, data, self.stage)


class LLMCraftingOracle:
    stage = "crafting"

    def __init__(self, llm: LLM) -> None:
        self._llm = llm

    async def craft(self, items: list[Item], player_level: int) -> Item | None:
        ctx = {
            "level": player_level,
            "items": [f"{i.name} ({i.type}): {i.description}" for i in items],
        }
        prompt = prompts.render_prompt(prompts.CRAFT_PROMPT, ctx)
        data = await _ask(self._llm, self.stage, prompt)
        result = _validate(CraftResult, data, self.stage)
        return result.item if result.success else None


class LLMCorpseSearchNarrator:
    stage = "corpse_search"

    def __init__(self, llm: LLM) -> None:
        self._llm = llm

    async def narrate_search(
        self, corpse: Corpse, searcher_id: str, room_context: str
    ) -> SearchNarration:
        ctx = {
            "name": corpse.name,
            "condition": corpse.condition.value,
            "decomposition": corpse.decomposition,
            "cause": corpse.cause,
            "occupation": corpse.occupation or "unknown",
            "searcher": searcher_id,
            "room": room_context,
        }
        prompt = prompts.render_prompt(prompts.SEARCH_PROMPT, ctx)
        data = await _ask(self._llm, self.stage, prompt)
        return _validate(SearchNarration, data, self.stage)


@dataclass
class Collaborators:
    """The four collaborators an Engine needs, bundled for wiring."""

    interpreter: NarrativeInterpreter
    room_generator: RoomGenerator
    crafting_oracle: CraftingOracle
    search_narrator: CorpseSearchNarrator

    @classmethod
    def from_llm(cls, llm: LLM) -> Collaborators:
        return cls(
            interpreter=LLMNarrativeInterpreter(llm),
            room_generator=LLMRoomGenerator(llm),
            crafting_oracle=LLMCraftingOracle(llm),
            search_narrator=LLMCorpseSearchNarrator(llm),
        )
