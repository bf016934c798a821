"""Corpse lifecycle: creation on death, decomposition, and searching.

Decomposition bands (hours since death -> condition / level):

  0 - 2      fresh           0
  2 - 24     recently_dead   0..2
  24 - 168   decomposing     2..7
  168+       skeletal        7..10   (reaches 10 after two weeks)

Levels are proportional to the time spent inside a band and never go down.
Above level 7 a body can no longer be searched; at level 10 it is removed
from its room and from the global registry.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable
from datetime import datetime

from dungeon_crawl.collaborators import CorpseSearchNarrator, bounded
from dungeon_crawl.models import (
    NPC,
    PLAYER_ACTOR_ID,
    Corpse,
    CorpseCondition,
    GameState,
    Item,
    Room,
    stack_into,
    utcnow,
)
from dungeon_crawl.rapport import RapportLedger

logger = logging.getLogger(__name__)

FRESH_HOURS = 2
RECENT_HOURS = 24
DECOMPOSING_HOURS = 168

UNSEARCHABLE_ABOVE = 7
REMOVAL_LEVEL = 10

LOOTING_RAPPORT = -5

_CONDITION_ORDER = [
    CorpseCondition.FRESH,
    CorpseCondition.RECENTLY_DEAD,
    CorpseCondition.DECOMPOSING,
    CorpseCondition.SKELETAL,
]

# occupation substring -> (name, type, stackable, quantity, properties)
OCCUPATION_POSSESSIONS = [
    ("smith", [
        ("Smith's Hammer", "weapon", False, 1, {"damage": 3}),
        ("Tongs", "misc", False, 1, {}),
        ("Iron Ingot", "material", True, 3, {}),
    ]),
    ("merchant", [
        ("Ledger", "misc", False, 1, {}),
        ("Coin Pouch", "misc", False, 1, {"gold": 25}),
    ]),
    ("healer", [
        ("Mortar and Pestle", "misc", False, 1, {}),
        ("Healing Potion", "consumable", False, 1, {"healing": 20}),
    ]),
    ("guard", [
        ("Guard Badge", "misc", False, 1, {}),
        ("Short Sword", "weapon", False, 1, {"damage": 4}),
    ]),
    ("scholar", [
        ("Worn Journal", "misc", False, 1, {}),
        ("Ink and Quill", "misc", False, 1, {}),
    ]),
    ("hunter", [
        ("Skinning Knife", "weapon", False, 1, {"damage": 2}),
        ("Animal Pelt", "material", True, 1, {}),
    ]),
]

GENERIC_FOOD = [
    ("Dried Meat", {"healing": 5}),
    ("Hard Bread", {"healing": 3}),
    ("Water Flask", {"healing": 2}),
]
GENERIC_TRINKETS = ["Bone Dice", "Personal Letter", "Tarnished Locket", "Lucky Coin"]

FOOD_CHANCE = 0.5
TRINKET_CHANCE = 0.3


def decomposition_for(hours: float) -> tuple[CorpseCondition, int]:
    """Map elapsed hours to the condition/level of that band."""
    if hours <= FRESH_HOURS:
        return CorpseCondition.FRESH, 0
    if hours <= RECENT_HOURS:
        span = RECENT_HOURS - FRESH_HOURS
        return CorpseCondition.RECENTLY_DEAD, math.floor(2 * (hours - FRESH_HOURS) / span)
    if hours <= DECOMPOSING_HOURS:
        span = DECOMPOSING_HOURS - RECENT_HOURS
        return CorpseCondition.DECOMPOSING, 2 + math.floor(5 * (hours - RECENT_HOURS) / span)
    level = 7 + math.floor(3 * (hours - DECOMPOSING_HOURS) / DECOMPOSING_HOURS)
    return CorpseCondition.SKELETAL, min(REMOVAL_LEVEL, level)


def derive_possessions(npc: NPC, rng: random.Random) -> list[Item]:
    """Items a humanoid carried because of who they were."""
    if not npc.is_humanoid:
        return []
    items: list[Item] = []
    occupation = (npc.occupation or "").lower()
    for keyword, entries in OCCUPATION_POSSESSIONS:
        if keyword in occupation:
            for name, type_, stackable, quantity, properties in entries:
                items.append(Item(
                    name=name, type=type_, stackable=stackable, quantity=quantity,
                    properties=dict(properties),
                    description=f"Belonged to {npc.name}.",
                ))
    if rng.random() < FOOD_CHANCE:
        name, properties = rng.choice(GENERIC_FOOD)
        items.append(Item(name=name, type="consumable", properties=dict(properties)))
    if rng.random() < TRINKET_CHANCE:
        items.append(Item(name=rng.choice(GENERIC_TRINKETS), type="misc"))
    return items


class CorpseManager:
    def __init__(
        self,
        state: GameState,
        narrator: CorpseSearchNarrator,
        rng: random.Random,
        clock: Callable[[], datetime] = utcnow,
        timeout: float | None = None,
    ) -> None:
        self.state = state
        self.narrator = narrator
        self.rng = rng
        self.clock = clock
        self.timeout = timeout

    def on_death(self, npc: NPC, room: Room, cause: str) -> Corpse:
        corpse = Corpse(
            npc_id=npc.id,
            name=npc.name,
            description=f"The body of {npc.name}. {npc.description}".strip(),
            time_of_death=self.clock(),
            cause=cause,
            witnesses=[n.id for n in room.npcs if n.is_humanoid and n.id != npc.id],
            loot=[item.model_copy(deep=True) for item in npc.possessions],
            possessions=derive_possessions(npc, self.rng),
            room_id=room.id,
            occupation=npc.occupation,
        )
        self.state.corpses[corpse.id] = corpse
        room.corpse_ids.append(corpse.id)
        return corpse

    def in_room(self, room: Room) -> list[Corpse]:
        return [self.state.corpses[c] for c in room.corpse_ids if c in self.state.corpses]

    def find(self, room: Room, name: str) -> Corpse | None:
        """Match a body by name; "body"/"corpse" picks the first searchable one."""
        needle = name.lower().strip().removeprefix("the ")
        for suffix in ("'s body", "'s corpse", " body", " corpse"):
            if needle.endswith(suffix):
                needle = needle[: -len(suffix)]
                break
        corpses = self.in_room(room)
        if needle in ("body", "corpse", "bodies", "corpses"):
            return next((c for c in corpses if c.searchable), corpses[0] if corpses else None)
        for corpse in corpses:
            if corpse.name.lower() == needle:
                return corpse
        for corpse in corpses:
            if needle in corpse.name.lower():
                return corpse
        return None

    def tick(self, room: Room, now: datetime | None = None) -> list[Corpse]:
        """Age every corpse in `room`. Returns the corpses removed."""
        now = now or self.clock()
        removed: list[Corpse] = []
        for corpse in self.in_room(room):
            hours = (now - corpse.time_of_death).total_seconds() / 3600
            condition, level = decomposition_for(hours)
            corpse.decomposition = max(corpse.decomposition, level)
            if _CONDITION_ORDER.index(condition) > _CONDITION_ORDER.index(corpse.condition):
                corpse.condition = condition
            if corpse.decomposition > UNSEARCHABLE_ABOVE:
                corpse.searchable = False
            if corpse.decomposition >= REMOVAL_LEVEL:
                removed.append(corpse)

        for corpse in removed:
            room.corpse_ids.remove(corpse.id)
            del self.state.corpses[corpse.id]
            self.state.add_event(
                "system", f"The remains of {corpse.name} have crumbled to dust.",
                {"corpse_id": corpse.id},
            )
        return removed

    async def search(self, corpse: Corpse, actor_id: str, room: Room) -> list[Item]:
        """Transfer whatever the body holds to the actor. Never loots twice."""
        if actor_id != PLAYER_ACTOR_ID and not any(n.id == actor_id for n in room.npcs):
            return []
        if not corpse.searchable:
            self.state.add_event(
                "action", f"The body of {corpse.name} is too far gone to search.",
                {"corpse_id": corpse.id},
            )
            return []
        if actor_id in corpse.searched_by:
            self.state.add_event(
                "action", f"The body of {corpse.name} has already been searched.",
                {"corpse_id": corpse.id},
            )
            return []

        found = corpse.loot + corpse.possessions
        narration = ""
        if not found:
            try:
                result = await bounded(
                    self.narrator.narrate_search(corpse, actor_id, room.name), self.timeout,
                )
                found = list(result.items)
                narration = result.narration
            except Exception as e:
                logger.warning("Corpse search narrator failed: %s", e)
                self.state.add_event(
                    "system", "Nothing else turns up on the body.", {"error": str(e)},
                )

        self._transfer(found, actor_id, room)
        corpse.loot = []
        corpse.possessions = []
        corpse.searched_by.append(actor_id)

        names = ", ".join(item.name for item in found) or "nothing"
        self.state.add_event(
            "discovery", narration or f"You search the body of {corpse.name} and find: {names}.",
            {"corpse_id": corpse.id, "items": [item.name for item in found]},
        )

        ledger = RapportLedger(self.state, self.clock)
        for npc in room.npcs:
            if npc.is_humanoid and npc.id != actor_id:
                ledger.update(npc.id, actor_id, LOOTING_RAPPORT, "witnessed", "looted the dead")
                self.state.add_event(
                    "relationship", f"{npc.name} watches you rifle through the dead.",
                    {"npc_id": npc.id, "delta": LOOTING_RAPPORT},
                )
        return found

    def _transfer(self, items: list[Item], actor_id: str, room: Room) -> None:
        if actor_id == PLAYER_ACTOR_ID:
            target = self.state.player.inventory
        else:
            target = next(n for n in room.npcs if n.id == actor_id).possessions
        for item in items:
            stack_into(target, item)
