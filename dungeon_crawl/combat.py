"""Combat resolution and NPC disposition.

One player attack resolves as:

  1. damage = BASE_MELEE_DAMAGE + equipped weapon "damage", run through the
     player's outgoing modifiers.
  2. damage >= target health -> the target dies: loot drops into the room,
     a corpse is created, experience is awarded and every humanoid present
     remembers what it saw.
  3. otherwise the target is hurt and picks a stance:

       FIGHT      default; hits back once.
       SURRENDER  humanoids only, checked first; terminal for the encounter.
                  The NPC turns neutral and never counter-attacks again.
       RETREAT    rolls to escape. Success -> FLED (leaves the room);
                  failure -> back to FIGHT and it hits back this attack.

Each attack evaluates the target's stance exactly once.

Surrender:  fraction < 0.2 and not proud
            outnumbered, fraction < 0.4 and cowardly or pragmatic
Retreat:    fraction < 0.15
            fraction < 0.35 and (cowardly, cautious, or fear >= 7)
            outnumbered and not brave
Escape chance = (0.7 with more than one exit, else 0.3) * fraction.

"Outnumbered" means the player's threat (2 when wielding a weapon, else 1)
exceeds the target's allies + 1. Allies are other NPCs in the room that have
not surrendered and either share the target's disposition or have a positive
rapport link with it.
"""

from __future__ import annotations

import logging
import random
from enum import Enum

from pydantic import BaseModel

from dungeon_crawl.corpses import CorpseManager
from dungeon_crawl.models import NPC, PLAYER_ACTOR_ID, Corpse, GameState, Room, stack_into
from dungeon_crawl.progression import award_experience
from dungeon_crawl.rapport import RapportLedger
from dungeon_crawl.statuses import StatusLedger

logger = logging.getLogger(__name__)

BASE_MELEE_DAMAGE = 10
MIN_KILL_XP = 5

SURRENDER_FRACTION = 0.2
OUTNUMBERED_SURRENDER_FRACTION = 0.4
RETREAT_FRACTION = 0.15
NERVOUS_RETREAT_FRACTION = 0.35
FEAR_THRESHOLD = 7

ESCAPE_CHANCE_MANY_EXITS = 0.7
ESCAPE_CHANCE_ONE_EXIT = 0.3

# Rapport deltas, from the NPC's point of view toward the attacker.
ATTACKED_RAPPORT = -10
SURRENDER_RAPPORT = -15
WITNESSED_KILLING_RAPPORT = -20
WITNESSED_RESCUE_RAPPORT = 5

FEAR_EMOTIONS = ("fearful", "afraid", "terrified", "scared")

SURRENDER_LINES = {
    "cowardly": [
        "Please, please don't kill me! Take whatever you want!",
        "I yield! I yield! Mercy!",
    ],
    "pragmatic": [
        "Enough. You've won. There's no profit in dying here.",
        "All right, I surrender. Let's talk terms.",
    ],
    "cautious": [
        "Stop! I won't fight you any more.",
    ],
    "brave": [
        "You have bested me. I yield, with what honour I have left.",
    ],
}
DEFAULT_SURRENDER_LINES = [
    "I surrender! Spare me!",
    "No more... I yield.",
]


class Stance(str, Enum):
    FIGHT = "fight"
    RETREAT = "retreat"
    SURRENDER = "surrender"
    FLED = "fled"


class AttackOutcome(BaseModel):
    target_id: str
    damage: int
    defeated: bool = False
    stance: Stance = Stance.FIGHT
    counter_damage: int = 0
    corpse_id: str | None = None


class CombatResolver:
    def __init__(self, state: GameState, corpses: CorpseManager, rng: random.Random) -> None:
        self.state = state
        self.corpses = corpses
        self.rng = rng
        self.rapport = RapportLedger(state, corpses.clock)

    # -- lookups ------------------------------------------------------------

    @staticmethod
    def find_target(room: Room, name: str) -> NPC | None:
        needle = name.lower().strip()
        for npc in room.npcs:
            if npc.id == name or npc.name.lower() == needle:
                return npc
        for npc in room.npcs:
            if needle and needle in npc.name.lower():
                return npc
        return None

    def player_damage(self) -> int:
        weapon = self.state.player.weapon
        base = BASE_MELEE_DAMAGE + (weapon.damage if weapon else 0)
        return StatusLedger(self.state.player, self.state).outgoing_damage(base)

    def is_outnumbered(self, npc: NPC, room: Room) -> bool:
        threat = 2 if self.state.player.weapon else 1
        allies = sum(
            1 for other in room.npcs
            if other.id != npc.id and not other.surrendered
            and (other.disposition == npc.disposition
                 or self.rapport.is_positive(other.id, npc.id))
        )
        return threat > allies + 1

    # -- disposition ----------------------------------------------------------

    def evaluate(self, npc: NPC, room: Room) -> Stance:
        fraction = npc.health_fraction
        traits = set(npc.traits)
        outnumbered = self.is_outnumbered(npc, room)

        if npc.is_humanoid:
            if fraction < SURRENDER_FRACTION and "proud" not in traits:
                return Stance.SURRENDER
            if (outnumbered and fraction < OUTNUMBERED_SURRENDER_FRACTION
                    and traits & {"cowardly", "pragmatic"}):
                return Stance.SURRENDER

        afraid = npc.emotion in FEAR_EMOTIONS and npc.emotion_intensity >= FEAR_THRESHOLD
        if fraction < RETREAT_FRACTION:
            return Stance.RETREAT
        if fraction < NERVOUS_RETREAT_FRACTION and (traits & {"cowardly", "cautious"} or afraid):
            return Stance.RETREAT
        if outnumbered and "brave" not in traits:
            return Stance.RETREAT
        return Stance.FIGHT

    # -- attack -------------------------------------------------------------

    def attack(self, target: str) -> AttackOutcome | None:
        """Resolve one player attack on the NPC named `target` in the current room."""
        room = self.state.current_room
        if room is None:
            return None
        npc = self.find_target(room, target)
        if npc is None:
            logger.debug("attack target %r not in room", target)
            return None

        damage = self.player_damage()
        self.state.add_event(
            "combat", f"You strike {npc.name} for {damage} damage.",
            {"npc_id": npc.id, "damage": damage},
        )
        outcome = AttackOutcome(target_id=npc.id, damage=damage)

        if damage >= npc.health:
            corpse = self.slay(npc, room, self._cause(), by_player=True)
            outcome.defeated = True
            outcome.corpse_id = corpse.id
            return outcome

        npc.health -= damage
        if npc.is_humanoid:
            self.rapport.update(npc.id, PLAYER_ACTOR_ID, ATTACKED_RAPPORT, "attacked",
                                "was attacked")
        if npc.surrendered:
            outcome.stance = Stance.SURRENDER
            return outcome
        if npc.disposition != "hostile":
            npc.disposition = "hostile"
            self.state.add_event("combat", f"{npc.name} turns on you!", {"npc_id": npc.id})

        stance = self.evaluate(npc, room)
        if stance is Stance.SURRENDER:
            self._surrender(npc)
        elif stance is Stance.RETREAT:
            stance = self._retreat(npc, room)

        outcome.stance = stance
        if stance is Stance.FIGHT:
            outcome.counter_damage = self._counter_attack(npc)
        return outcome

    def slay(self, npc: NPC, room: Room, cause: str, by_player: bool = False) -> Corpse:
        """Kill `npc`: drop loot, leave a corpse, and notify witnesses."""
        npc.health = 0
        corpse = self.corpses.on_death(npc, room, cause)
        room.npcs = [n for n in room.npcs if n.id != npc.id]
        for item in npc.loot:
            stack_into(room.items, item)
        self.state.add_event(
            "combat", f"{npc.name} is defeated!",
            {"npc_id": npc.id, "corpse_id": corpse.id, "loot": [i.name for i in npc.loot]},
        )

        if by_player:
            for witness in room.npcs:
                if not witness.is_humanoid:
                    continue
                if npc.disposition == "hostile" and witness.disposition != "hostile":
                    delta = WITNESSED_RESCUE_RAPPORT
                else:
                    delta = WITNESSED_KILLING_RAPPORT
                self.rapport.update(witness.id, PLAYER_ACTOR_ID, delta, "death",
                                    f"witnessed the death of {npc.name}")
                self.state.add_event(
                    "relationship", f"{witness.name} saw you kill {npc.name}.",
                    {"npc_id": witness.id, "delta": delta},
                )
            award_experience(self.state, max(MIN_KILL_XP, npc.max_health // 2),
                             f"defeated {npc.name}")
        return corpse

    def _cause(self) -> str:
        player = self.state.player
        if player.weapon:
            return f"slain by {player.name} with {player.weapon.name}"
        return f"slain by {player.name}"

    def _surrender(self, npc: NPC) -> None:
        npc.surrendered = True
        npc.disposition = "neutral"
        npc.emotion = "fearful"
        npc.emotion_intensity = max(npc.emotion_intensity, 8)
        self.rapport.update(npc.id, PLAYER_ACTOR_ID, SURRENDER_RAPPORT, "surrender",
                            "was beaten into surrender")

        lines = DEFAULT_SURRENDER_LINES
        for trait in npc.traits:
            if trait in SURRENDER_LINES:
                lines = SURRENDER_LINES[trait]
                break
        line = self.rng.choice(lines)
        self.state.add_event(
            "combat", f'{npc.name} drops to their knees. "{line}"',
            {"npc_id": npc.id, "stance": Stance.SURRENDER.value},
        )

    def _retreat(self, npc: NPC, room: Room) -> Stance:
        multiplier = ESCAPE_CHANCE_MANY_EXITS if len(room.doors) > 1 else ESCAPE_CHANCE_ONE_EXIT
        chance = multiplier * npc.health_fraction
        if self.rng.random() >= chance:
            self.state.add_event(
                "combat", f"{npc.name} tries to flee but finds no way out!",
                {"npc_id": npc.id, "stance": Stance.RETREAT.value},
            )
            return Stance.FIGHT

        room.npcs = [n for n in room.npcs if n.id != npc.id]
        exits = [
            (d.direction, self.state.rooms[d.leads_to]) for d in room.doors
            if d.leads_to and not d.locked and d.leads_to in self.state.rooms
        ]
        if exits:
            direction, refuge = self.rng.choice(exits)
            refuge.npcs.append(npc)
            message = f"{npc.name} flees {direction}!"
        else:
            message = f"{npc.name} flees into the darkness!"
        self.state.add_event("combat", message, {"npc_id": npc.id, "stance": Stance.FLED.value})
        return Stance.FLED

    def _counter_attack(self, npc: NPC) -> int:
        player = self.state.player
        damage = StatusLedger(player, self.state).incoming_damage(npc.damage)
        player.health = max(0, player.health - damage)
        self.state.add_event(
            "combat", f"{npc.name} hits you for {damage} damage.",
            {"npc_id": npc.id, "damage": damage},
        )
        if player.health <= 0:
            self.state.over = True
            self.state.add_event("system", "You have been slain. Your adventure ends here.")
        return damage
