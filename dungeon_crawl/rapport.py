"""Relationship ledger: how each NPC feels about each actor.

Levels are clamped to [-100, 100] and mapped to a category:

   80..100   devoted
   40..79    close_friend
   20..39    ally
    5..19    friendly
   -4..4     neutral
  -19..-5    unfriendly
  -39..-20   hostile
  -79..-40   enemy
 -100..-80   mortal_enemy

Only deltas with |delta| > SIGNIFICANT_DELTA are remembered, and at most
MAX_EVENTS of them per pair (oldest dropped). Unknown pairs read as 0/neutral;
a record is created on the first non-zero update.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from dungeon_crawl.models import GameState, RapportEvent, RapportRecord, utcnow

MIN_LEVEL = -100
MAX_LEVEL = 100

SIGNIFICANT_DELTA = 3

MAX_EVENTS = 20

# (min_level, category), checked top-down
CATEGORY_THRESHOLDS = [
    (80, "devoted"),
    (40, "close_friend"),
    (20, "ally"),
    (5, "friendly"),
    (-4, "neutral"),
    (-19, "unfriendly"),
    (-39, "hostile"),
    (-79, "enemy"),
]


def categorize(level: int) -> str:
    for min_level, category in CATEGORY_THRESHOLDS:
        if level >= min_level:
            return category
    return "mortal_enemy"


def rapport_key(npc_id: str, actor_id: str) -> str:
    return f"{npc_id}:{actor_id}"


class RapportLedger:
    """Reads and updates the rapport records stored on a GameState."""

    def __init__(self, state: GameState, clock: Callable[[], datetime] = utcnow) -> None:
        self.state = state
        self.clock = clock

    def get(self, npc_id: str, actor_id: str) -> RapportRecord:
        """Return the record for a pair, or a detached neutral one if unknown."""
        record = self.state.rapport.get(rapport_key(npc_id, actor_id))
        if record is None:
            return RapportRecord(npc_id=npc_id, actor_id=actor_id)
        return record

    def level(self, npc_id: str, actor_id: str) -> int:
        return self.get(npc_id, actor_id).level

    def update(
        self, npc_id: str, actor_id: str, delta: int, kind: str = "interaction",
        description: str = "",
    ) -> RapportRecord:
        key = rapport_key(npc_id, actor_id)
        record = self.state.rapport.get(key)
        if record is None:
            if delta == 0:
                return RapportRecord(npc_id=npc_id, actor_id=actor_id)
            record = RapportRecord(npc_id=npc_id, actor_id=actor_id)
            self.state.rapport[key] = record

        now = self.clock()
        record.level = max(MIN_LEVEL, min(MAX_LEVEL, record.level + delta))
        record.category = categorize(record.level)
        record.last_interaction = now

        if abs(delta) > SIGNIFICANT_DELTA:
            record.events.append(
                RapportEvent(timestamp=now, kind=kind, description=description, delta=delta)
            )
            if len(record.events) > MAX_EVENTS:
                del record.events[: len(record.events) - MAX_EVENTS]
        return record

    def is_positive(self, a: str, b: str) -> bool:
        """True when either side of the pair holds the other in positive regard."""
        return self.level(a, b) > 0 or self.level(b, a) > 0
