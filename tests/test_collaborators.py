"""Tests for dungeon_crawl.collaborators — JSON parsing and the LLM-backed
interpreter, room generator, crafting oracle and search narrator."""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from dungeon_crawl.collaborators import (
    CollaboratorError,
    Collaborators,
    InterpretRequest,
    LLMCorpseSearchNarrator,
    LLMCraftingOracle,
    LLMNarrativeInterpreter,
    LLMRoomGenerator,
    RoomRequest,
    RoomSnapshot,
    bounded,
    parse_json_output,
)
from dungeon_crawl.llm import LLMError
from dungeon_crawl.models import Corpse, Item


def _llm(payload) -> AsyncMock:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return AsyncMock(return_value=text)


def _request() -> InterpretRequest:
    return InterpretRequest(
        room=RoomSnapshot(name="Dungeon Entrance"),
        health=100, max_health=100, level=1, damage=10,
        action="take all and go north",
    )


# ── parse_json_output ────────────────────────────────────────


class TestParseJsonOutput:
    def test_plain(self) -> None:
        assert parse_json_output('{"a": 1}') == {"a": 1}

    def test_markdown_fences_stripped(self) -> None:
        assert parse_json_output('```json\n{"a": 1}\n```') == {"a": 1}

    def test_invalid_raises(self) -> None:
        with pytest.raises(CollaboratorError, match="not valid JSON"):
            parse_json_output("The goblin attacks!")


# ── Narrative interpreter ────────────────────────────────────


class TestNarrativeInterpreter:
    async def test_parses_intents(self) -> None:
        llm = _llm("```json\n" + json.dumps({
            "narrative": "You gather everything and head north.",
            "success": True,
            "intents": [{"items_to_take": ["all"]}, {"move_direction": "NORTH"}],
        }) + "\n```")
        response = await LLMNarrativeInterpreter(llm).interpret(_request())
        assert response.success
        assert response.intents[0].items_to_take == ["all"]
        assert response.intents[1].move_direction == "north"
        assert llm.call_args[0][0] == "interpreter"
        assert "take all and go north" in llm.call_args[0][1]

    async def test_llm_error_becomes_collaborator_error(self) -> None:
        llm = AsyncMock(side_effect=LLMError("down"))
        with pytest.raises(CollaboratorError, match="interpreter"):
            await LLMNarrativeInterpreter(llm).interpret(_request())

    async def test_invalid_payload_rejected(self) -> None:
        llm = _llm({"success": True, "intents": "not a list"})
        with pytest.raises(CollaboratorError, match="invalid payload"):
            await LLMNarrativeInterpreter(llm).interpret(_request())


# ── Room generator ───────────────────────────────────────────


class TestRoomGenerator:
    async def test_legacy_monsters_key_and_bad_doors(self) -> None:
        llm = _llm({
            "name": "Bone Pit",
            "description": "Bones everywhere.",
            "monsters": [{"name": "Ghoul", "health": 12, "disposition": "aggressive"}],
            "doors": [{"direction": "South"}, {"direction": "sideways"}, "junk"],
            "items": [{"name": "Femur", "type": "tool"}],
        })
        room = await LLMRoomGenerator(llm).generate(
            RoomRequest(theme="crypt", difficulty=2.0, required_exits=["south"])
        )
        assert room.npcs[0].name == "Ghoul"
        assert room.npcs[0].disposition == "hostile"
        assert room.npcs[0].max_health == 12
        assert [d.direction for d in room.doors] == ["south"]
        assert room.items[0].type == "misc"
        assert "south" in llm.call_args[0][1]


# ── Crafting oracle ──────────────────────────────────────────


class TestCraftingOracle:
    async def test_success_returns_item(self) -> None:
        llm = _llm({"success": True, "item": {"name": "Torch", "type": "misc"}})
        item = await LLMCraftingOracle(llm).craft([Item(name="Stick"), Item(name="Rag")], 2)
        assert item.name == "Torch"
        assert "Stick (misc)" in llm.call_args[0][1]

    async def test_refusal_returns_none(self) -> None:
        llm = _llm({"success": False, "item": None})
        assert await LLMCraftingOracle(llm).craft([Item(name="A"), Item(name="B")], 1) is None


# ── Corpse search narrator ───────────────────────────────────


class TestSearchNarrator:
    async def test_returns_items_and_narration(self) -> None:
        llm = _llm({"narration": "A ring on a bony finger.", "items": [{"name": "Ring"}]})
        corpse = Corpse(
            npc_id="n1", name="Griznak", cause="slain by Tester", room_id="r1",
            time_of_death=datetime(2024, 1, 1, tzinfo=timezone.utc), occupation="smith",
        )
        result = await LLMCorpseSearchNarrator(llm).narrate_search(corpse, "player", "Forge")
        assert result.narration == "A ring on a bony finger."
        assert [i.name for i in result.items] == ["Ring"]
        prompt = llm.call_args[0][1]
        assert "Griznak" in prompt and "smith" in prompt and "Forge" in prompt


# ── wiring ───────────────────────────────────────────────────


def test_from_llm_builds_all_four() -> None:
    bundle = Collaborators.from_llm(_llm({}))
    assert isinstance(bundle.interpreter, LLMNarrativeInterpreter)
    assert isinstance(bundle.room_generator, LLMRoomGenerator)
    assert isinstance(bundle.crafting_oracle, LLMCraftingOracle)
    assert isinstance(bundle.search_narrator, LLMCorpseSearchNarrator)


async def test_bounded_times_out() -> None:
    with pytest.raises(asyncio.TimeoutError):
        await bounded(asyncio.sleep(1), 0.01)


async def test_bounded_without_timeout() -> None:
    assert await bounded(asyncio.sleep(0, result=7), None) == 7
