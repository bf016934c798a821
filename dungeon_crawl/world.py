"""World graph: rooms keyed by id, doors linking them, lazy expansion.

A door with no `leads_to` is an unexplored exit. Walking through it asks the
room generator for a new room that must have a door back the way the player
came plus 1-3 further exits. Whatever the generator returns is patched so the
required exits exist; if it fails outright a bare fallback room is built
instead, so the map never dead-ends.
"""

from __future__ import annotations

import logging
import random

from dungeon_crawl.collaborators import GeneratedRoom, RoomGenerator, RoomRequest, bounded
from dungeon_crawl.models import (
    DIRECTIONS,
    OPPOSITE_DIRECTIONS,
    Door,
    GameState,
    Item,
    Room,
    new_id,
)
from dungeon_crawl.progression import award_experience

logger = logging.getLogger(__name__)

DEFAULT_THEME = "dark fantasy dungeon"

EXPLORATION_XP = 10

MAX_DIFFICULTY = 10.0

FALLBACK_ROOM_NAME = "Empty Chamber"
FALLBACK_ROOM_DESCRIPTION = (
    "A bare stone chamber. Dust hangs in the still air and nothing stirs."
)
BACK_DOOR_DESCRIPTION = "The way back"
FORWARD_DOOR_DESCRIPTION = "A dark passage leading further into the dungeon"
SYNTHESIZED_DOOR_DESCRIPTION = "A dark passage leading deeper into the dungeon"


def difficulty_for(level: int) -> float:
    return min(float(level), MAX_DIFFICULTY)


class WorldGraph:
    def __init__(
        self,
        state: GameState,
        generator: RoomGenerator,
        rng: random.Random,
        theme: str = DEFAULT_THEME,
        timeout: float | None = None,
    ) -> None:
        self.state = state
        self.generator = generator
        self.rng = rng
        self.theme = theme
        self.timeout = timeout

    def add_room(self, room: Room) -> Room:
        self.state.rooms[room.id] = room
        return room

    # -- movement -----------------------------------------------------------

    async def move(self, direction: str) -> Room | None:
        """Move the player through the door in `direction`.

        Returns the room entered, or None if nothing happened.
        """
        origin = self.state.current_room
        if origin is None:
            return None
        destination = await self.ensure_exit(origin, direction)
        if destination is None:
            return None

        self.state.player.current_room_id = destination.id
        self.state.add_event(
            "action", f"You go {direction} into {destination.name}.",
            {"room_id": destination.id, "direction": direction},
        )
        if not destination.visited:
            destination.visited = True
            award_experience(self.state, EXPLORATION_XP, "exploration")
        return destination

    async def ensure_exit(self, room: Room, direction: str) -> Room | None:
        """Return the room behind `direction`, generating it on first use."""
        door = room.door(direction)
        if door is None:
            return None
        if door.locked and not self._unlock(door):
            self.state.add_event(
                "action", f"The {door.direction} door is locked.",
                {"door_id": door.id, "locked": True},
            )
            return None

        if door.leads_to is not None:
            return self.state.rooms.get(door.leads_to)

        opposite = OPPOSITE_DIRECTIONS[door.direction]
        candidates = [d for d in DIRECTIONS if d != opposite]
        extras = self.rng.sample(candidates, self.rng.randint(1, 3))
        required = [opposite, *extras]

        request = RoomRequest(
            theme=self.theme,
            difficulty=difficulty_for(self.state.player.level),
            required_exits=required,
        )
        try:
            generated = await bounded(self.generator.generate(request), self.timeout)
            new_room = self._materialize(generated, room, opposite, required)
            self.state.add_event(
                "discovery", f"You discover {new_room.name}.", {"room_id": new_room.id},
            )
        except Exception as e:
            logger.warning("Room generation failed, using fallback room: %s", e)
            new_room = self._fallback(room, opposite, extras)
            self.state.add_event(
                "system", "The passage opens into a plain, empty chamber.",
                {"room_id": new_room.id, "error": str(e)},
            )

        door.leads_to = new_room.id
        self.add_room(new_room)
        return new_room

    # -- keys ---------------------------------------------------------------

    def _unlock(self, door: Door) -> bool:
        if not door.key_required:
            return False
        key = door.key_required.lower()
        for item in self.state.player.inventory:
            if item.id == door.key_required or item.name.lower() == key:
                door.locked = False
                self.state.add_event(
                    "action", f"You unlock the {door.direction} door with the {item.name}.",
                    {"door_id": door.id, "item_id": item.id},
                )
                return True
        return False

    # -- room construction ----------------------------------------------------

    def _materialize(
        self, generated: GeneratedRoom, origin: Room, back: str, required: list[str]
    ) -> Room:
        doors: list[Door] = []
        seen: set[str] = set()
        for d in generated.doors:
            if d.direction in seen:
                continue
            seen.add(d.direction)
            door = d.model_copy(update={"id": new_id(), "leads_to": None})
            if door.direction == back:
                door.locked = False
                door.leads_to = origin.id
            doors.append(door)

        for direction in required:
            if direction in seen:
                continue
            logger.debug("generator omitted required exit %s", direction)
            doors.append(Door(
                direction=direction,
                description=SYNTHESIZED_DOOR_DESCRIPTION,
                leads_to=origin.id if direction == back else None,
            ))
            seen.add(direction)

        return Room(
            name=generated.name,
            description=generated.description,
            items=[_fresh(i) for i in generated.items],
            npcs=[n.model_copy(update={
                "id": new_id(), "loot": [_fresh(i) for i in n.loot],
                "possessions": [_fresh(i) for i in n.possessions],
            }) for n in generated.npcs],
            doors=doors,
            features=list(generated.features),
        )

    def _fallback(self, origin: Room, back: str, extras: list[str]) -> Room:
        doors = [Door(direction=back, description=BACK_DOOR_DESCRIPTION, leads_to=origin.id)]
        doors.extend(Door(direction=d, description=FORWARD_DOOR_DESCRIPTION) for d in extras)
        return Room(name=FALLBACK_ROOM_NAME, description=FALLBACK_ROOM_DESCRIPTION, doors=doors)


def _fresh(item: Item) -> Item:
    return item.model_copy(update={"id": new_id()})
