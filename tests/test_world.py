"""Tests for dungeon_crawl.world — lazy room generation, linking, fallback."""

import pytest

from dungeon_crawl.collaborators import GeneratedRoom
from dungeon_crawl.models import NPC, Door, Item, Room
from dungeon_crawl.world import (
    EXPLORATION_XP,
    FALLBACK_ROOM_NAME,
    SYNTHESIZED_DOOR_DESCRIPTION,
    WorldGraph,
)


@pytest.fixture
def world(state, collaborators, rng) -> WorldGraph:
    return WorldGraph(state, collaborators.room_generator, rng)


def _single_door_room(state) -> Room:
    room = Room(name="Cell", doors=[Door(direction="north")], visited=True)
    state.rooms[room.id] = room
    state.player.current_room_id = room.id
    return room


class TestMovement:
    async def test_no_door_is_silent_noop(self, world, state) -> None:
        origin = state.player.current_room_id
        events = len(state.log)
        assert await world.move("south") is None
        assert state.player.current_room_id == origin
        assert len(state.log) == events

    async def test_locked_door_reports_and_stops(self, world, state, collaborators) -> None:
        room = state.current_room
        room.door("north").locked = True
        assert await world.move("north") is None
        assert "locked" in state.log[-1].message
        assert collaborators.room_generator.requests == []

    async def test_key_opens_locked_door(self, world, state) -> None:
        door = state.current_room.door("north")
        door.locked = True
        door.key_required = "Iron Key"
        state.player.inventory.append(Item(name="iron key"))
        entered = await world.move("north")
        assert entered is not None
        assert not door.locked

    async def test_first_visit_awards_exploration_xp_once(self, world, state) -> None:
        origin = state.current_room
        entered = await world.move("north")
        assert entered.visited
        assert state.player.experience == EXPLORATION_XP
        await world.move("south")
        assert state.player.current_room_id == origin.id
        await world.move("north")
        assert state.player.experience == EXPLORATION_XP

    async def test_linked_door_reused(self, world, state, collaborators) -> None:
        first = await world.move("north")
        await world.move("south")
        second = await world.move("north")
        assert first.id == second.id
        assert len(collaborators.room_generator.requests) == 1


class TestFallback:
    async def test_generator_failure_builds_linked_fallback(self, world, state) -> None:
        origin = _single_door_room(state)
        new_room = await world.move("north")
        assert new_room.name == FALLBACK_ROOM_NAME
        back = new_room.door("south")
        assert back is not None and back.leads_to == origin.id
        assert origin.door("north").leads_to == new_room.id
        assert state.rooms[new_room.id] is new_room

    async def test_fallback_has_forward_door_per_extra_exit(
        self, world, state, collaborators
    ) -> None:
        _single_door_room(state)
        new_room = await world.move("north")
        required = collaborators.room_generator.requests[0].required_exits
        assert sorted(d.direction for d in new_room.doors) == sorted(required)
        forward = [d for d in new_room.doors if d.direction != "south"]
        assert 1 <= len(forward) <= 3
        assert all(d.leads_to is None for d in forward)

    async def test_failure_logged_as_system_event(self, world, state) -> None:
        await world.move("north")
        assert any(e.type == "system" for e in state.log)


class TestGeneration:
    async def test_request_contents(self, world, state, collaborators) -> None:
        state.player.level = 3
        await world.move("east")
        request = collaborators.room_generator.requests[0]
        assert request.theme == "dark fantasy dungeon"
        assert request.difficulty == 3.0
        assert request.required_exits[0] == "west"
        assert "west" not in request.required_exits[1:]
        assert 2 <= len(request.required_exits) <= 4

    async def test_generated_room_patched_and_linked(self, world, state, collaborators) -> None:
        origin = state.current_room
        collaborators.room_generator.rooms.append(GeneratedRoom(
            name="Fungal Grotto",
            items=[Item(id="dup", name="Glowcap")],
            npcs=[NPC(id="dup", name="Myconid")],
            doors=[
                Door(direction="south", locked=True, leads_to="bogus"),
                Door(direction="south"),
                Door(direction="up", leads_to="bogus"),
            ],
        ))
        new_room = await world.move("north")
        assert new_room.name == "Fungal Grotto"
        assert [d.direction for d in new_room.doors].count("south") == 1
        back = new_room.door("south")
        assert back.leads_to == origin.id and not back.locked
        assert new_room.door("up").leads_to is None
        assert new_room.items[0].id != "dup"
        assert new_room.npcs[0].id != "dup"
        required = collaborators.room_generator.requests[0].required_exits
        for direction in required:
            door = new_room.door(direction)
            assert door is not None
            if direction not in ("south", "up"):
                assert door.description == SYNTHESIZED_DOOR_DESCRIPTION
        assert any(e.type == "discovery" and "Fungal Grotto" in e.message for e in state.log)
