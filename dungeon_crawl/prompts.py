"""Handlebars prompt templates for the LLM-backed collaborators.

Each collaborator renders one template with a context dict built here from
engine models. Free text (names, descriptions, player input) goes through
triple-stash so Handlebars does not HTML-escape it.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pybars

from dungeon_crawl.models import PLAYER_ACTOR_ID, Corpse, Item, NPC, RapportRecord, Room, StatusEffect
from dungeon_crawl.rapport import rapport_key

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_join(this, items, separator=", "):
    """{{join list ", "}} — plain list of strings joined, or "none"."""
    values = [str(i) for i in (items or [])]
    return separator.join(values) if values else "none"


_HELPERS: dict[str, Callable] = {
    "join": _helper_join,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Context builders ─────────────────────────────────────


def item_line(item: Item) -> str:
    suffix = f" x{item.quantity}" if item.quantity > 1 else ""
    return f"{item.name} ({item.type}){suffix}"


def npc_line(npc: NPC, rapport: int | None = None) -> str:
    parts = [f"{npc.name} ({npc.health}/{npc.max_health} HP, {npc.disposition}"]
    if npc.surrendered:
        parts.append(", surrendered")
    if npc.occupation:
        parts.append(f", {npc.occupation}")
    if npc.is_humanoid and npc.emotion != "calm":
        parts.append(f", {npc.emotion} {npc.emotion_intensity}/10")
    if rapport:
        parts.append(f", rapport {rapport:+d}")
    parts.append(")")
    return "".join(parts)


def status_line(effect: StatusEffect) -> str:
    turns = "permanent" if effect.permanent else f"{effect.duration} turns"
    return f"{effect.name} ({turns})"


def _player_rapport(rapport: dict[str, RapportRecord] | None, npc_id: str) -> int | None:
    record = (rapport or {}).get(rapport_key(npc_id, PLAYER_ACTOR_ID))
    return record.level if record else None


def room_context(
    room: Room | None, corpses: dict[str, Corpse], rapport: dict[str, RapportRecord] | None = None,
) -> dict[str, Any]:
    if room is None:
        return {"name": "Nowhere", "description": "", "items": [], "npcs": [],
                "bodies": [], "features": [], "doors": []}
    return {
        "name": room.name,
        "description": room.description,
        "items": [item_line(i) for i in room.items],
        "npcs": [npc_line(n, _player_rapport(rapport, n.id)) for n in room.npcs],
        "bodies": [f"{corpses[c].name}'s body" for c in room.corpse_ids if c in corpses],
        "features": list(room.features),
        "doors": [
            f"{d.direction} ({d.description}{', locked' if d.locked else ''})"
            for d in room.doors
        ],
    }


# ── Templates ────────────────────────────────────────────


INTERPRETER_PROMPT = """\
You are the dungeon master of a dark fantasy dungeon crawler. Be concise and direct.

## Current Situation
- Room: {{{room.name}}} - {{{room.description}}}
- Items in room: {{{join room.items}}}
- Creatures in room: {{{join room.npcs}}}
- Dead bodies in room: {{{join room.bodies}}}
- Room features: {{{join room.features}}}
- Exits: {{{join room.doors}}}
- Player health: {{health}}/{{max_health}} HP
- Player level: {{level}}
- Player inventory: {{{join inventory}}}
- Active effects: {{{join statuses}}}
- Player damage per attack: {{damage}}

## Player Action
{{{action}}}
{{#if action_type}}Action type: {{action_type}}{{/if}}
{{#if target}}Target: {{{target}}}{{/if}}

## Rules
1. Split compound commands ("take all and go north") into several intents, in order.
2. "take all" / "grab everything" -> items_to_take: ["all"]. Never list the items.
3. Movement sets move_direction to one of the exits. Do not describe the next room.
4. Combat only through targets_to_attack. Never use health_delta for combat or healing items.
5. health_delta is for environmental harm only (traps, falls, poison gas).
6. Searching bodies uses bodies_to_search with the dead creature's name.
7. Status effects: duration in turns (-1 = permanent), damage_per_turn, healing_per_turn,
   damage_modifier and damage_taken_modifier as fractions (0.2 = +20%).
8. Talking, bargaining, gifts or threats toward a person go in rapport_changes:
   npc name, delta from -10 to 10, and optionally their new emotion and intensity (0-10).
9. Set success=true unless the action is impossible.

Return only a JSON object of this shape:
{"narrative": "...", "success": true, "consequences": [],
 "intents": [{"items_to_take": [], "items_to_use": [], "items_to_remove": [],
   "items_to_add": [], "move_direction": null, "targets_to_attack": [],
   "items_to_craft": [], "bodies_to_search": [],
   "state_changes": {"health_delta": 0, "add_statuses": [], "remove_statuses": [], "add_features": [] },
   "custom_effects": [],
   "rapport_changes": [{"npc": "...", "delta": 0, "emotion": null, "intensity": null, "reason": "..."}] }] }
"""


ROOM_PROMPT = """\
You are a game master generating one room of a text dungeon crawler.

Theme: {{{theme}}}
Difficulty: {{difficulty}}/10
REQUIRED exits (the room MUST have a door for EACH of these): {{{join required_exits}}}

Include:
1. A short atmospheric description with one memorable detail.
2. 0-4 items (prefer potions, food and consumables; healing goes in properties.healing).
3. 0-4 creatures. Monsters use kind "monster"; people (merchants, guards, hermits,
   smiths, healers) use kind "humanoid" with an occupation and 1-3 personality traits
   such as brave, proud, cowardly, cautious, pragmatic.
4. Exactly {{exit_count}} doors, one per required exit.

Return only a JSON object:
{"name": "...", "description": "...", "features": [],
 "items": [{"name": "...", "description": "...", "type": "consumable", "stackable": false, "quantity": 1, "properties": {"healing": 10} }],
 "npcs": [{"name": "...", "description": "...", "kind": "monster", "health": 12, "max_health": 12,
   "damage": 3, "disposition": "hostile", "occupation": null, "traits": [], "possessions": [] }],
 "doors": [{"direction": "north", "description": "...", "locked": false }] }
"""


CRAFT_PROMPT = """\
A player (level {{level}}) tries to combine these items:
{{#each items}}
- {{{this}}}
{{/each}}

Decide whether they can be combined into something useful. Be creative but plausible.
Return only a JSON object:
{"success": true, "item": {"name": "...", "description": "...", "type": "weapon", "stackable": false, "quantity": 1, "properties": {} } }
or {"success": false, "item": null} if they cannot be combined.
"""


SEARCH_PROMPT = """\
A body is being searched in a dungeon.

Body: {{{name}}}
Condition: {{condition}} (decomposition {{decomposition}}/10)
Cause of death: {{{cause}}}
Occupation in life: {{{occupation}}}
Searcher: {{searcher}}
Room: {{{room}}}

The body carries nothing obvious. Generate 0-3 items that fit who this person was in
life and how long they have been dead, and describe the search in 1-2 sentences.
Return only a JSON object:
{"narration": "...", "items": [{"name": "...", "description": "...", "type": "misc", "stackable": false, "quantity": 1, "properties": {} }] }
"""
