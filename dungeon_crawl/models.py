"""Core domain models.

Every engine component and collaborator operates on these types.
Pydantic is used for validation and serialisation at every data boundary;
collaborator output is validated here before the engine trusts it.

Rooms reference each other only by id (doors carry `leads_to`), and corpses
live in one global registry on GameState with rooms holding their ids, so the
whole state serialises without reference cycles.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


DIRECTIONS: tuple[str, ...] = ("north", "south", "east", "west", "up", "down")

OPPOSITE_DIRECTIONS = {
    "north": "south",
    "south": "north",
    "east": "west",
    "west": "east",
    "up": "down",
    "down": "up",
}

PLAYER_ACTOR_ID = "player"

# Status durations at this value never count down.
PERMANENT = -1

Direction = Literal["north", "south", "east", "west", "up", "down"]

ItemType = Literal["weapon", "armor", "consumable", "material", "quest", "misc"]

Disposition = Literal["hostile", "neutral", "friendly"]

NPCKind = Literal["monster", "humanoid"]

EventType = Literal[
    "player",
    "action",
    "combat",
    "discovery",
    "system",
    "levelup",
    "relationship",
]


# ---------------------------------------------------------------------------
# Items, doors, rooms
# ---------------------------------------------------------------------------

class Item(BaseModel):
    """An item in a room, an inventory, or on a body."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    type: ItemType = "misc"
    stackable: bool = False
    quantity: int = Field(default=1, ge=1)
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _fresh_id_when_blank(cls, v: Any) -> Any:
        return v or new_id()

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, v: Any) -> Any:
        # Generators invent categories ("tool", "food"); fold them into misc.
        if isinstance(v, str):
            v = v.lower()
            if v not in ("weapon", "armor", "consumable", "material", "quest", "misc"):
                return "misc"
        return v

    @property
    def healing(self) -> int:
        return int(self.properties.get("healing", 0) or 0)

    @property
    def damage(self) -> int:
        return int(self.properties.get("damage", 0) or 0)


def stack_into(items: list[Item], item: Item) -> Item:
    """Append `item`, merging it into a same-named stackable entry when one exists."""
    if item.stackable:
        for existing in items:
            if existing.stackable and existing.name.lower() == item.name.lower():
                existing.quantity += item.quantity
                return existing
    items.append(item)
    return item


class Door(BaseModel):
    id: str = Field(default_factory=new_id)
    direction: Direction
    description: str = ""
    locked: bool = False
    key_required: str | None = None  # item id or name
    leads_to: str | None = None  # room id; write-once

    @field_validator("direction", mode="before")
    @classmethod
    def _lower_direction(cls, v: Any) -> Any:
        return v.lower().strip() if isinstance(v, str) else v


class StatusEffect(BaseModel):
    """A timed buff or debuff.

    Modifiers are fractions: damage_modifier=0.2 means +20 % outgoing damage,
    damage_taken_modifier=-0.5 halves incoming damage.
    """

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    kind: Literal["buff", "debuff", "neutral"] = "neutral"
    duration: int = 3
    damage_per_turn: int = Field(default=0, ge=0)
    healing_per_turn: int = Field(default=0, ge=0)
    damage_modifier: float = 0.0
    damage_taken_modifier: float = 0.0

    @field_validator("id", mode="before")
    @classmethod
    def _fresh_id_when_blank(cls, v: Any) -> Any:
        return v or new_id()

    @field_validator("duration")
    @classmethod
    def _valid_duration(cls, v: int) -> int:
        if v == PERMANENT or v >= 1:
            return v
        return 1

    @property
    def permanent(self) -> bool:
        return self.duration == PERMANENT


class NPC(BaseModel):
    """A creature or person in a room.

    `kind` is the explicit capability tag: only humanoids carry occupation,
    personality traits and emotions, surrender, and witness events.
    """

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    kind: NPCKind = "monster"
    health: int = Field(default=10, ge=0)
    max_health: int = Field(default=10, ge=1)
    damage: int = Field(default=2, ge=0)
    disposition: Disposition = "hostile"
    loot: list[Item] = Field(default_factory=list)
    possessions: list[Item] = Field(default_factory=list)
    statuses: list[StatusEffect] = Field(default_factory=list)

    # humanoid-only
    occupation: str | None = None
    traits: list[str] = Field(default_factory=list)
    emotion: str = "calm"
    emotion_intensity: int = Field(default=0, ge=0, le=10)
    surrendered: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _fresh_id_when_blank(cls, v: Any) -> Any:
        return v or new_id()

    @field_validator("disposition", mode="before")
    @classmethod
    def _fold_disposition(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.lower()
            if v == "aggressive":
                return "hostile"
            if v not in ("hostile", "neutral", "friendly"):
                return "neutral"
        return v

    @field_validator("traits", mode="before")
    @classmethod
    def _lower_traits(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [t.lower() for t in v if isinstance(t, str)]
        return v

    @model_validator(mode="after")
    def _health_within_max(self) -> NPC:
        if self.health > self.max_health:
            self.max_health = self.health
        return self

    @property
    def is_humanoid(self) -> bool:
        return self.kind == "humanoid"

    @property
    def health_fraction(self) -> float:
        return self.health / self.max_health if self.max_health else 0.0


class Room(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    items: list[Item] = Field(default_factory=list)
    npcs: list[NPC] = Field(default_factory=list)
    doors: list[Door] = Field(default_factory=list)
    visited: bool = False
    features: list[str] = Field(default_factory=list)
    corpse_ids: list[str] = Field(default_factory=list)

    def door(self, direction: str) -> Door | None:
        direction = direction.lower().strip()
        for d in self.doors:
            if d.direction == direction:
                return d
        return None


# ---------------------------------------------------------------------------
# Corpses and rapport
# ---------------------------------------------------------------------------

class CorpseCondition(str, Enum):
    FRESH = "fresh"
    RECENTLY_DEAD = "recently_dead"
    DECOMPOSING = "decomposing"
    SKELETAL = "skeletal"


class Corpse(BaseModel):
    """The persistent remains of a dead NPC."""

    id: str = Field(default_factory=new_id)
    npc_id: str
    name: str
    description: str = ""
    condition: CorpseCondition = CorpseCondition.FRESH
    time_of_death: datetime
    cause: str
    decomposition: int = Field(default=0, ge=0, le=10)
    searchable: bool = True
    witnesses: list[str] = Field(default_factory=list)
    loot: list[Item] = Field(default_factory=list)
    possessions: list[Item] = Field(default_factory=list)
    searched_by: list[str] = Field(default_factory=list)
    room_id: str
    occupation: str | None = None


class RapportEvent(BaseModel):
    timestamp: datetime
    kind: str
    description: str = ""
    delta: int


class RapportRecord(BaseModel):
    """How one NPC feels about one actor."""

    npc_id: str
    actor_id: str
    level: int = Field(default=0, ge=-100, le=100)
    category: str = "neutral"
    last_interaction: datetime | None = None
    events: list[RapportEvent] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Player and game state
# ---------------------------------------------------------------------------

class Player(BaseModel):
    name: str
    health: int = Field(default=100, ge=0)
    max_health: int = Field(default=100, ge=1)
    level: int = Field(default=1, ge=1)
    experience: int = Field(default=0, ge=0)
    experience_to_next: int = Field(default=100, ge=1)
    inventory: list[Item] = Field(default_factory=list)
    equipped: dict[Literal["weapon", "armor", "accessory"], Item] = Field(default_factory=dict)
    statuses: list[StatusEffect] = Field(default_factory=list)
    current_room_id: str

    @property
    def weapon(self) -> Item | None:
        return self.equipped.get("weapon")


class GameEvent(BaseModel):
    """A single entry in the append-only game log."""

    turn: int
    seq: int
    type: EventType
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class GameState(BaseModel):
    """Root aggregate. Owned by exactly one Engine; never shared."""

    id: str = Field(default_factory=new_id)
    player: Player
    rooms: dict[str, Room] = Field(default_factory=dict)
    corpses: dict[str, Corpse] = Field(default_factory=dict)
    rapport: dict[str, RapportRecord] = Field(default_factory=dict)
    turn: int = Field(default=0, ge=0)
    log: list[GameEvent] = Field(default_factory=list)
    over: bool = False
    victorious: bool = False

    @property
    def current_room(self) -> Room | None:
        return self.rooms.get(self.player.current_room_id)

    def add_event(
        self, type: EventType, message: str, details: dict[str, Any] | None = None
    ) -> GameEvent:
        seq = self.log[-1].seq + 1 if self.log else 1
        event = GameEvent(
            turn=self.turn, seq=seq, type=type,
            message=message, details=details or {},
        )
        self.log.append(event)
        return event


# ---------------------------------------------------------------------------
# Intents: the Narrative Interpreter's instruction batches
# ---------------------------------------------------------------------------

class StateChanges(BaseModel):
    health_delta: int = 0
    add_statuses: list[StatusEffect] = Field(default_factory=list)
    remove_statuses: list[str] = Field(default_factory=list)  # ids or names
    add_features: list[str] = Field(default_factory=list)


class CustomEffect(BaseModel):
    type: EventType = "action"
    message: str = "Something strange happens..."

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, v: Any) -> Any:
        if v not in ("player", "action", "combat", "discovery", "system", "levelup", "relationship"):
            return "action"
        return v


MAX_SOCIAL_DELTA = 10


class RapportChange(BaseModel):
    """How one NPC in the room reacts to the player this turn (talk, gifts, threats)."""

    npc: str  # id or name
    delta: int = 0
    emotion: str | None = None
    intensity: int | None = None
    reason: str = ""

    @field_validator("delta", mode="before")
    @classmethod
    def _clamp_delta(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return max(-MAX_SOCIAL_DELTA, min(MAX_SOCIAL_DELTA, int(v)))
        return v

    @field_validator("intensity", mode="before")
    @classmethod
    def _clamp_intensity(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return max(0, min(10, int(v)))
        return v

    @field_validator("emotion", mode="before")
    @classmethod
    def _lower_emotion(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.lower().strip() or None
        return v


class Intent(BaseModel):
    """One atomic instruction batch. Every field is optional."""

    state_changes: StateChanges | None = None
    items_to_remove: list[str] = Field(default_factory=list)
    items_to_add: list[Item] = Field(default_factory=list)
    items_to_take: list[str] = Field(default_factory=list)
    items_to_use: list[str] = Field(default_factory=list)
    move_direction: str | None = None
    targets_to_attack: list[str] = Field(default_factory=list)
    items_to_craft: list[str] = Field(default_factory=list)
    bodies_to_search: list[str] = Field(default_factory=list)
    custom_effects: list[CustomEffect] = Field(default_factory=list)
    rapport_changes: list[RapportChange] = Field(default_factory=list)

    @field_validator("move_direction", mode="before")
    @classmethod
    def _normalise_direction(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.lower().strip()
            return v or None
        return v


ActionType = Literal[
    "move", "take", "use", "attack", "talk", "examine", "craft", "search", "custom",
]


class PlayerAction(BaseModel):
    """A classified player command as received from the presentation layer."""

    type: ActionType = "custom"
    target: str | None = None
    details: str | None = None

    @property
    def text(self) -> str:
        if self.details:
            return self.details
        if self.target:
            return f"{self.type} {self.target}"
        return self.type


class TurnResult(BaseModel):
    """What the engine hands back to the caller after one turn."""

    message: str
    success: bool
    turn: int
    events: list[GameEvent] = Field(default_factory=list)
    over: bool = False
