"""Tests for dungeon_crawl.models."""

import pytest
from pydantic import ValidationError

from dungeon_crawl.models import (
    NPC,
    PERMANENT,
    CustomEffect,
    Door,
    GameState,
    Intent,
    Item,
    Player,
    PlayerAction,
    RapportChange,
    RapportRecord,
    Room,
    StatusEffect,
    stack_into,
)


class TestItem:
    def test_blank_id_replaced(self) -> None:
        item = Item(id="", name="Coin")
        assert item.id

    def test_unknown_type_folds_to_misc(self) -> None:
        assert Item(name="Rope", type="tool").type == "misc"
        assert Item(name="Axe", type="WEAPON").type == "weapon"

    def test_quantity_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Item(name="Arrow", quantity=0)

    def test_property_helpers(self) -> None:
        item = Item(name="Potion", properties={"healing": 15, "damage": None})
        assert item.healing == 15
        assert item.damage == 0


class TestStackInto:
    def test_merges_same_named_stack(self) -> None:
        items = [Item(name="Iron Ingot", stackable=True, quantity=2)]
        merged = stack_into(items, Item(name="iron ingot", stackable=True, quantity=3))
        assert len(items) == 1
        assert merged.quantity == 5

    def test_non_stackable_appends(self) -> None:
        items = [Item(name="Sword")]
        stack_into(items, Item(name="Sword"))
        assert len(items) == 2


class TestDoorAndRoom:
    def test_direction_lowercased(self) -> None:
        assert Door(direction=" North ").direction == "north"

    def test_invalid_direction_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Door(direction="sideways")

    def test_room_door_lookup(self) -> None:
        room = Room(name="Hall", doors=[Door(direction="east")])
        assert room.door("EAST") is room.doors[0]
        assert room.door("west") is None


class TestStatusEffect:
    def test_permanent(self) -> None:
        effect = StatusEffect(name="Curse", duration=PERMANENT)
        assert effect.permanent

    def test_zero_duration_coerced_to_one(self) -> None:
        assert StatusEffect(name="Daze", duration=0).duration == 1
        assert StatusEffect(name="Daze", duration=-7).duration == 1

    def test_negative_damage_per_turn_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StatusEffect(name="Odd", damage_per_turn=-1)


class TestNPC:
    def test_aggressive_means_hostile(self) -> None:
        assert NPC(name="Orc", disposition="Aggressive").disposition == "hostile"

    def test_unknown_disposition_is_neutral(self) -> None:
        assert NPC(name="Cat", disposition="curious").disposition == "neutral"

    def test_max_health_raised_to_health(self) -> None:
        npc = NPC(name="Ogre", health=40, max_health=20)
        assert npc.max_health == 40
        assert npc.health_fraction == 1.0

    def test_traits_lowercased(self) -> None:
        npc = NPC(name="Bran", kind="humanoid", traits=["Brave", "PROUD"])
        assert npc.traits == ["brave", "proud"]
        assert npc.is_humanoid


class TestRapportRecord:
    def test_level_bounded(self) -> None:
        with pytest.raises(ValidationError):
            RapportRecord(npc_id="a", actor_id="b", level=101)


class TestGameState:
    def _state(self) -> GameState:
        room = Room(name="Start")
        return GameState(player=Player(name="Tess", current_room_id=room.id),
                         rooms={room.id: room})

    def test_current_room(self) -> None:
        state = self._state()
        assert state.current_room.name == "Start"

    def test_add_event_sequences(self) -> None:
        state = self._state()
        first = state.add_event("system", "one")
        state.turn = 3
        second = state.add_event("action", "two", {"x": 1})
        assert (first.seq, first.turn) == (1, 0)
        assert (second.seq, second.turn) == (2, 3)
        assert second.details == {"x": 1}

    def test_serialise_roundtrip(self) -> None:
        state = self._state()
        state.add_event("system", "hello")
        restored = GameState.model_validate(state.model_dump(mode="json"))
        assert restored.model_dump() == state.model_dump()


class TestIntent:
    def test_all_fields_optional(self) -> None:
        intent = Intent()
        assert intent.state_changes is None
        assert intent.items_to_take == []
        assert intent.move_direction is None

    def test_direction_normalised(self) -> None:
        assert Intent(move_direction=" NORTH ").move_direction == "north"
        assert Intent(move_direction="  ").move_direction is None

    def test_unknown_custom_effect_type(self) -> None:
        assert CustomEffect(type="weather", message="It rains.").type == "action"


class TestRapportChange:
    def test_delta_and_intensity_clamped(self) -> None:
        change = RapportChange(npc="Mara", delta=50, intensity=-3)
        assert (change.delta, change.intensity) == (10, 0)
        assert RapportChange(npc="Mara", delta=-12).delta == -10

    def test_emotion_lowercased(self) -> None:
        assert RapportChange(npc="Mara", emotion=" Suspicious ").emotion == "suspicious"

    def test_parsed_from_intent_payload(self) -> None:
        intent = Intent.model_validate(
            {"rapport_changes": [{"npc": "Mara", "delta": 4, "emotion": "happy"}]}
        )
        assert intent.rapport_changes[0].npc == "Mara"
        assert Intent().rapport_changes == []


class TestPlayerAction:
    def test_details_win(self) -> None:
        assert PlayerAction(type="take", target="torch", details="grab the torch").text == "grab the torch"

    def test_type_and_target(self) -> None:
        assert PlayerAction(type="attack", target="goblin").text == "attack goblin"

    def test_type_only(self) -> None:
        assert PlayerAction(type="search").text == "search"
