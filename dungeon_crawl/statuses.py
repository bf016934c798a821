"""Status effect ledger: timed buffs/debuffs on the player or an NPC.

add():    same name (case-insensitive) refreshes. Duration becomes the max of
          old and new; every effect parameter is replaced by the new payload.
          A permanent effect on either side stays permanent.
tick():   in list order, apply damage_per_turn (health floored at 0) and
          healing_per_turn (capped at max_health), then count down unless
          permanent. Effects reaching exactly 0 are removed and logged.

Damage modifiers are not applied by tick(). Combat reads them through
outgoing_damage() / incoming_damage(): each active modifier multiplies in
turn and the result is floored after every multiplication.
"""

from __future__ import annotations

import math

from dungeon_crawl.models import NPC, PERMANENT, EventType, GameState, Player, StatusEffect


def apply_modifiers(base: int, modifiers: list[float]) -> int:
    damage = base
    for modifier in modifiers:
        if modifier:
            damage = math.floor(damage * (1 + modifier))
    return max(0, damage)


class StatusLedger:
    """Operates on the `statuses` list of one holder (player or NPC)."""

    def __init__(self, holder: Player | NPC, state: GameState) -> None:
        self.holder = holder
        self.state = state

    @property
    def active(self) -> list[StatusEffect]:
        return self.holder.statuses

    def find(self, name: str) -> StatusEffect | None:
        key = name.lower().strip()
        for effect in self.holder.statuses:
            if effect.name.lower() == key:
                return effect
        return None

    def add(self, effect: StatusEffect) -> StatusEffect:
        existing = self.find(effect.name)
        if existing is None:
            self.holder.statuses.append(effect)
            self._event("action", f"You are now {effect.name}.",
                        f"{self.holder.name} is now {effect.name}.", status=effect.name)
            return effect

        if PERMANENT in (existing.duration, effect.duration):
            duration = PERMANENT
        else:
            duration = max(existing.duration, effect.duration)
        existing.description = effect.description
        existing.kind = effect.kind
        existing.damage_per_turn = effect.damage_per_turn
        existing.healing_per_turn = effect.healing_per_turn
        existing.damage_modifier = effect.damage_modifier
        existing.damage_taken_modifier = effect.damage_taken_modifier
        existing.duration = duration
        self._event(
            "action", f"{existing.name} is renewed.",
            f"{existing.name} on {self.holder.name} is renewed.",
            status=existing.name, duration=duration,
        )
        return existing

    def remove(self, key: str) -> bool:
        """Remove by id or case-insensitive name. Missing keys are ignored."""
        needle = key.lower().strip()
        for i, effect in enumerate(self.holder.statuses):
            if effect.id == key or effect.name.lower() == needle:
                del self.holder.statuses[i]
                self._event("action", f"{effect.name} fades.",
                            f"{effect.name} fades from {self.holder.name}.", status=effect.name)
                return True
        return False

    def tick(self) -> list[StatusEffect]:
        """Apply one turn of every active effect. Returns the expired ones."""
        holder = self.holder
        expired: list[StatusEffect] = []
        remaining: list[StatusEffect] = []

        for effect in holder.statuses:
            if effect.damage_per_turn:
                holder.health = max(0, holder.health - effect.damage_per_turn)
                self._event(
                    "combat", f"{effect.name} deals {effect.damage_per_turn} damage.",
                    f"{effect.name} deals {effect.damage_per_turn} damage to {holder.name}.",
                    status=effect.name, damage=effect.damage_per_turn,
                )
            if effect.healing_per_turn:
                holder.health = min(holder.max_health, holder.health + effect.healing_per_turn)
                self._event(
                    "action", f"{effect.name} restores {effect.healing_per_turn} health.",
                    f"{effect.name} restores {effect.healing_per_turn} health to {holder.name}.",
                    status=effect.name, healing=effect.healing_per_turn,
                )

            if not effect.permanent:
                effect.duration -= 1
            if effect.duration == 0:
                expired.append(effect)
                self._event("system", f"{effect.name} has worn off.",
                            f"{effect.name} has worn off {holder.name}.", status=effect.name)
            else:
                remaining.append(effect)

        holder.statuses = remaining
        return expired

    def _event(self, type: EventType, player_text: str, npc_text: str, **details) -> None:
        if isinstance(self.holder, NPC):
            details["npc_id"] = self.holder.id
            self.state.add_event(type, npc_text, details)
        else:
            self.state.add_event(type, player_text, details)

    def outgoing_damage(self, base: int) -> int:
        return apply_modifiers(base, [e.damage_modifier for e in self.holder.statuses])

    def incoming_damage(self, base: int) -> int:
        return apply_modifiers(base, [e.damage_taken_modifier for e in self.holder.statuses])
