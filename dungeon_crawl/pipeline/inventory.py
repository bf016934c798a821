"""Item steps of an intent: removal, addition, pickup, use and crafting.

Name lookup everywhere is: id or exact name, then case-insensitive name,
then case-insensitive substring. A name that matches nothing is skipped
without an event.
"""

from __future__ import annotations

import logging

from dungeon_crawl.collaborators import CraftingOracle, bounded
from dungeon_crawl.models import GameState, Item, new_id, stack_into
from dungeon_crawl.progression import award_experience

logger = logging.getLogger(__name__)

TAKE_ALL = ("all", "everything")

CRAFT_XP = 5

EQUIP_SLOTS = {"weapon": "weapon", "armor": "armor"}


def find_item(items: list[Item], name: str) -> int | None:
    """Return the index of the best match for `name`, or None."""
    for i, item in enumerate(items):
        if item.id == name or item.name == name:
            return i
    needle = name.lower().strip()
    if not needle:
        return None
    for i, item in enumerate(items):
        if item.name.lower() == needle:
            return i
    for i, item in enumerate(items):
        if needle in item.name.lower():
            return i
    return None


def take_one(items: list[Item], index: int) -> Item:
    """Remove one unit of items[index] and return it as its own entry."""
    item = items[index]
    if item.stackable and item.quantity > 1:
        item.quantity -= 1
        return item.model_copy(update={"id": new_id(), "quantity": 1})
    return items.pop(index)


def remove_items(state: GameState, names: list[str]) -> None:
    room = state.current_room
    for name in names:
        index = find_item(state.player.inventory, name)
        if index is not None:
            item = take_one(state.player.inventory, index)
            state.add_event("action", f"Lost {item.name}.", {"item": item.name})
            continue
        if room is None:
            continue
        index = find_item(room.items, name)
        if index is not None:
            item = take_one(room.items, index)
            state.add_event("action", f"The {item.name} is gone.", {"item": item.name})


def add_items(state: GameState, items: list[Item]) -> None:
    for item in items:
        stack_into(state.player.inventory, item.model_copy(deep=True))
        state.add_event("discovery", f"Obtained {item.name}.", {"item": item.name})


def pick_up(state: GameState, names: list[str]) -> None:
    room = state.current_room
    if room is None:
        return
    for name in names:
        if name.lower().strip() in TAKE_ALL:
            taken, room.items = room.items, []
            for item in taken:
                stack_into(state.player.inventory, item)
            if taken:
                state.add_event(
                    "action", f"Picked up: {', '.join(i.name for i in taken)}",
                    {"items": [i.name for i in taken]},
                )
            continue
        index = find_item(room.items, name)
        if index is None:
            continue
        item = room.items.pop(index)
        stack_into(state.player.inventory, item)
        state.add_event("action", f"Picked up {item.name}", {"item": item.name})


def use_items(state: GameState, names: list[str]) -> None:
    player = state.player
    room = state.current_room
    for name in names:
        index = find_item(player.inventory, name)
        if index is not None:
            item = player.inventory[index]
            if item.type == "consumable" and item.healing:
                take_one(player.inventory, index)
                before = player.health
                player.health = min(player.max_health, player.health + item.healing)
                state.add_event(
                    "action", f"Used {item.name} and restored {player.health - before} health",
                    {"item": item.name, "healing": item.healing},
                )
            elif item.type in EQUIP_SLOTS:
                equip(state, index)
            continue

        if room is None:
            continue
        index = find_item(room.items, name)
        if index is not None and room.items[index].type != "consumable":
            item = room.items.pop(index)
            stack_into(player.inventory, item)
            state.add_event("action", f"You take the {item.name}.", {"item": item.name})


def equip(state: GameState, index: int) -> None:
    player = state.player
    item = player.inventory.pop(index)
    slot = EQUIP_SLOTS[item.type]
    previous = player.equipped.get(slot)
    if previous is not None:
        player.inventory.append(previous)
    player.equipped[slot] = item
    state.add_event("action", f"You equip the {item.name}.", {"item": item.name, "slot": slot})


async def craft(
    state: GameState, oracle: CraftingOracle, names: list[str], timeout: float | None = None
) -> Item | None:
    inventory = state.player.inventory
    # One unit per name; a stack can supply as many units as its quantity.
    used = [0] * len(inventory)
    matched: list[int] = []
    for name in names:
        remaining = [i for i, item in enumerate(inventory) if used[i] < _units(item)]
        index = find_item([inventory[i] for i in remaining], name)
        if index is not None:
            used[remaining[index]] += 1
            matched.append(remaining[index])

    if len(matched) < 2:
        state.add_event("action", "You need at least two items to craft something.")
        return None

    components = [inventory[i].model_copy(update={"quantity": 1}) for i in matched]
    try:
        result = await bounded(oracle.craft(components, state.player.level), timeout)
    except Exception as e:
        logger.warning("Crafting oracle failed: %s", e)
        state.add_event("system", "The crafting attempt failed mysteriously.", {"error": str(e)})
        return None
    if result is None:
        state.add_event("action", "These items cannot be combined.")
        return None

    for index in sorted(matched, reverse=True):
        take_one(inventory, index)
    crafted = result.model_copy(update={"id": new_id()})
    stack_into(inventory, crafted)
    state.add_event(
        "discovery", f"You crafted {crafted.name}!",
        {"item": crafted.name, "components": [c.name for c in components]},
    )
    award_experience(state, CRAFT_XP, "crafting")
    return crafted


def _units(item: Item) -> int:
    return item.quantity if item.stackable else 1
