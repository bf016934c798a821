"""Turn orchestrator: runs one player turn end-to-end.

Turn flow:
  1. Log the player's command.
  2. Ask the narrative interpreter for a narrative and an ordered intent list.
     Any failure there becomes a failed, intent-free response.
  3. If the response succeeded, apply each intent in order. Inside one intent
     the sub-steps always run as:
       state deltas -> item removal -> item addition -> pickup -> item use
       -> movement -> attacks -> crafting -> corpse search -> custom effects
       -> NPC reactions (rapport and emotion)
     Player death ends the intent at once; no later sub-step or intent runs.
  4. Log the narrative.
  5. Close the turn: advance the turn counter once, tick status effects once,
     age the corpses in the player's room once, then check invariants.
     Ticks and aging are skipped once the game is over.

If an invariant breaks (or anything unexpected is raised) the whole state is
restored to its pre-turn snapshot and the confused narrative is returned.
Missing references (unknown item, target, body, door) are silent no-ops.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from datetime import datetime

from dungeon_crawl.collaborators import (
    Collaborators,
    InterpretRequest,
    NarrativeResponse,
    RoomSnapshot,
    bounded,
)
from dungeon_crawl.combat import CombatResolver
from dungeon_crawl.corpses import CorpseManager
from dungeon_crawl.models import (
    OPPOSITE_DIRECTIONS,
    PLAYER_ACTOR_ID,
    Door,
    GameState,
    Intent,
    Item,
    Player,
    PlayerAction,
    RapportChange,
    Room,
    StateChanges,
    TurnResult,
    utcnow,
)
from dungeon_crawl.pipeline import inventory
from dungeon_crawl.prompts import room_context
from dungeon_crawl.statuses import StatusLedger
from dungeon_crawl.world import DEFAULT_THEME, WorldGraph

logger = logging.getLogger(__name__)

CONFUSED_MESSAGE = "The dungeon master is confused by your action. Try something else."
UNINTERPRETED_MESSAGE = "Nothing seems to happen."
GAME_OVER_MESSAGE = "The game is over."


class InvariantViolation(RuntimeError):
    """Raised when a turn would leave the game state inconsistent."""


def new_game(player_name: str) -> GameState:
    """Create a fresh game: the player standing in the dungeon entrance."""
    start = Room(
        name="Dungeon Entrance",
        description=(
            "You stand at the entrance of a dimly lit dungeon. The air is musty and cold. "
            "Stone walls drip with moisture, and you can hear distant echoes from deeper within."
        ),
        items=[
            Item(name="Rusty Torch", description="A barely functional torch that provides dim light",
                 type="misc", properties={"light_radius": 5}),
            Item(name="Stale Bread", description="A piece of bread that has seen better days",
                 type="consumable", stackable=True, quantity=2, properties={"healing": 5}),
        ],
        doors=[
            Door(direction="north", description="A heavy wooden door with iron reinforcements"),
            Door(direction="east", description="A narrow archway leading into darkness"),
            Door(direction="west", description="A crumbling stone doorway covered in moss"),
        ],
        visited=True,
        features=["ancient_inscription", "dripping_water"],
    )
    state = GameState(
        player=Player(name=player_name, current_room_id=start.id),
        rooms={start.id: start},
    )
    state.add_event("system", f"{player_name} enters the dungeon...")
    return state


class Engine:
    """Owns one GameState and resolves turns against it.

    Args:
        state:                 The game to drive. Never shared between engines.
        collaborators:         Interpreter, room generator, crafting oracle and
                               corpse search narrator.
        rng:                   Source of every random roll. Seed it for replays.
        clock:                 Returns the current aware datetime; drives corpse aging.
        collaborator_timeout:  Seconds to wait on any collaborator call, or None.
        theme:                 Passed to the room generator.
    """

    def __init__(
        self,
        state: GameState,
        collaborators: Collaborators,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
        collaborator_timeout: float | None = None,
        theme: str = DEFAULT_THEME,
    ) -> None:
        self.state = state
        self.collaborators = collaborators
        self.rng = rng or random.Random()
        self.clock = clock
        self.timeout = collaborator_timeout
        self.world = WorldGraph(state, collaborators.room_generator, self.rng, theme, self.timeout)
        self.corpses = CorpseManager(
            state, collaborators.search_narrator, self.rng, clock, self.timeout,
        )
        self.combat = CombatResolver(state, self.corpses, self.rng)
        self._turn_started_at: int | None = None

    # -- public entry points -------------------------------------------------

    async def process_action(self, action: PlayerAction | str) -> TurnResult:
        """Run one full turn for a player command."""
        if isinstance(action, str):
            action = PlayerAction(details=action)
        return await self._run_turn(action.text, lambda: self._interpret(action))

    async def apply_intents(self, intents: list[Intent], narrative: str = "") -> TurnResult:
        """Run one turn from an already-interpreted intent list."""
        response = NarrativeResponse(narrative=narrative, intents=intents)

        async def _given() -> NarrativeResponse:
            return response

        return await self._run_turn(None, _given)

    # -- turn ---------------------------------------------------------------

    async def _run_turn(
        self, player_text: str | None, respond: Callable[[], Awaitable[NarrativeResponse]]
    ) -> TurnResult:
        state = self.state
        if state.over:
            return TurnResult(message=GAME_OVER_MESSAGE, success=False, turn=state.turn, over=True)

        snapshot = state.model_copy(deep=True)
        first_event = len(state.log)
        self._turn_started_at = state.turn
        try:
            if player_text:
                state.add_event("player", player_text)
            response = await respond()
            if response.success:
                for intent in response.intents:
                    if state.over:
                        break
                    await self._apply_intent(intent)
            if response.narrative:
                state.add_event("action", response.narrative)
            self._end_turn()
        except InvariantViolation as e:
            logger.error("Turn aborted, invariant violated: %s", e)
            self._restore(snapshot)
            return TurnResult(message=CONFUSED_MESSAGE, success=False, turn=state.turn, over=state.over)
        except Exception:
            logger.exception("Turn aborted by unexpected error")
            self._restore(snapshot)
            return TurnResult(message=CONFUSED_MESSAGE, success=False, turn=state.turn, over=state.over)
        finally:
            self._turn_started_at = None

        return TurnResult(
            message=response.narrative or UNINTERPRETED_MESSAGE,
            success=response.success,
            turn=state.turn,
            events=state.log[first_event:],
            over=state.over,
        )

    async def _interpret(self, action: PlayerAction) -> NarrativeResponse:
        state = self.state
        player = state.player
        request = InterpretRequest(
            room=RoomSnapshot(**room_context(state.current_room, state.corpses, state.rapport)),
            inventory=player.inventory,
            statuses=player.statuses,
            health=player.health,
            max_health=player.max_health,
            level=player.level,
            damage=self.combat.player_damage(),
            action=action.text,
            action_type=action.type,
            target=action.target,
        )
        try:
            return await bounded(self.collaborators.interpreter.interpret(request), self.timeout)
        except Exception as e:
            logger.warning("Narrative interpreter failed: %s", e)
            state.add_event("system", "The dungeon master could not make sense of that.",
                            {"error": str(e)})
            return NarrativeResponse(narrative=UNINTERPRETED_MESSAGE, success=False)

    async def _apply_intent(self, intent: Intent) -> None:
        state = self.state

        if intent.state_changes is not None:
            self._apply_state_changes(intent.state_changes)
        if state.over:
            return
        if intent.items_to_remove:
            inventory.remove_items(state, intent.items_to_remove)
        if intent.items_to_add:
            inventory.add_items(state, intent.items_to_add)
        if intent.items_to_take:
            inventory.pick_up(state, intent.items_to_take)
        if intent.items_to_use:
            inventory.use_items(state, intent.items_to_use)
        if intent.move_direction:
            await self.world.move(intent.move_direction)
        for target in intent.targets_to_attack:
            self.combat.attack(target)
            if state.over:
                return
        if intent.items_to_craft:
            await inventory.craft(
                state, self.collaborators.crafting_oracle, intent.items_to_craft, self.timeout,
            )
        for name in intent.bodies_to_search:
            room = state.current_room
            corpse = self.corpses.find(room, name) if room else None
            if corpse is not None:
                await self.corpses.search(corpse, PLAYER_ACTOR_ID, room)
        for effect in intent.custom_effects:
            state.add_event(effect.type, effect.message)
        for change in intent.rapport_changes:
            self._apply_rapport_change(change)

    def _apply_rapport_change(self, change: RapportChange) -> None:
        room = self.state.current_room
        npc = self.combat.find_target(room, change.npc) if room else None
        if npc is None or not npc.is_humanoid:
            return
        if change.delta:
            record = self.combat.rapport.update(
                npc.id, PLAYER_ACTOR_ID, change.delta, "conversation", change.reason,
            )
            feeling = "warms to you" if change.delta > 0 else "cools toward you"
            self.state.add_event(
                "relationship", f"{npc.name} {feeling}.",
                {"npc_id": npc.id, "delta": change.delta, "rapport": record.level},
            )
        if change.emotion:
            npc.emotion = change.emotion
            if change.intensity is not None:
                npc.emotion_intensity = change.intensity

    def _apply_state_changes(self, changes: StateChanges) -> None:
        state = self.state
        player = state.player
        if changes.health_delta:
            before = player.health
            player.health = max(0, min(player.max_health, player.health + changes.health_delta))
            if player.health < before:
                state.add_event("combat", f"You take {before - player.health} damage.",
                                {"health_delta": player.health - before})
            elif player.health > before:
                state.add_event("action", f"You recover {player.health - before} health.",
                                {"health_delta": player.health - before})
            self._check_player_death()

        ledger = StatusLedger(player, state)
        for effect in changes.add_statuses:
            ledger.add(effect.model_copy(deep=True))
        for key in changes.remove_statuses:
            ledger.remove(key)

        room = state.current_room
        if room is not None:
            for feature in changes.add_features:
                if feature not in room.features:
                    room.features.append(feature)

    # -- end of turn ----------------------------------------------------------

    def _advance_turn(self) -> None:
        if self._turn_started_at is None or self.state.turn != self._turn_started_at:
            raise InvariantViolation("turn counter advanced more than once in a turn")
        self.state.turn += 1

    def _end_turn(self) -> None:
        state = self.state
        self._advance_turn()

        # A dead player stays dead: nothing ticks or ages after game over.
        if not state.over:
            StatusLedger(state.player, state).tick()
            self._check_player_death()

        room = state.current_room
        if room is not None and not state.over:
            for npc in list(room.npcs):
                if not npc.statuses:
                    continue
                StatusLedger(npc, state).tick()
                if npc.health <= 0:
                    names = ", ".join(s.name for s in npc.statuses) or "its wounds"
                    self.combat.slay(npc, room, f"succumbed to {names}")
            self.corpses.tick(room, self.clock())

        self._check_invariants()

    def _check_player_death(self) -> None:
        state = self.state
        if state.player.health <= 0 and not state.over:
            state.over = True
            state.add_event("system", "You have been slain. Your adventure ends here.")

    def _check_invariants(self) -> None:
        state = self.state
        player = state.player
        if not 0 <= player.health <= player.max_health:
            raise InvariantViolation(f"player health {player.health} outside [0, {player.max_health}]")
        if player.current_room_id not in state.rooms:
            raise InvariantViolation(f"player is in unknown room {player.current_room_id}")

        for room in state.rooms.values():
            directions = [d.direction for d in room.doors]
            if len(directions) != len(set(directions)):
                raise InvariantViolation(f"room {room.id} has two doors facing the same way")
            for npc in room.npcs:
                if not 0 <= npc.health <= npc.max_health:
                    raise InvariantViolation(f"npc {npc.id} health {npc.health} out of range")
            for door in room.doors:
                if door.leads_to is None:
                    continue
                target = state.rooms.get(door.leads_to)
                if target is None:
                    raise InvariantViolation(f"door {door.id} leads to unknown room")
                back = target.door(OPPOSITE_DIRECTIONS[door.direction])
                if back is None or back.leads_to != room.id:
                    raise InvariantViolation(f"door {door.id} has no matching door back")

        for record in state.rapport.values():
            if not -100 <= record.level <= 100:
                raise InvariantViolation(f"rapport {record.npc_id}:{record.actor_id} out of range")
        for corpse in state.corpses.values():
            if not 0 <= corpse.decomposition <= 10:
                raise InvariantViolation(f"corpse {corpse.id} decomposition out of range")

    def _restore(self, snapshot: GameState) -> None:
        for field in GameState.model_fields:
            setattr(self.state, field, getattr(snapshot, field))
