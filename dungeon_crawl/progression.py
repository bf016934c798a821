"""Experience and levelling.

Thresholds grow by LEVEL_GROWTH each level; every level-up adds
LEVEL_HEALTH_BONUS to max health and heals by the same amount.
"""

from dungeon_crawl.models import GameState

LEVEL_GROWTH = 1.5
LEVEL_HEALTH_BONUS = 10


def award_experience(state: GameState, amount: int, reason: str) -> int:
    """Grant experience to the player, levelling up as often as it allows.

    Returns the number of levels gained. A finished game awards nothing.
    """
    if amount <= 0 or state.over:
        return 0
    player = state.player
    player.experience += amount
    state.add_event("action", f"Gained {amount} experience ({reason})", {"xp": amount})

    gained = 0
    while player.experience >= player.experience_to_next:
        player.experience -= player.experience_to_next
        player.experience_to_next = int(player.experience_to_next * LEVEL_GROWTH)
        player.level += 1
        player.max_health += LEVEL_HEALTH_BONUS
        player.health = min(player.health + LEVEL_HEALTH_BONUS, player.max_health)
        gained += 1
        state.add_event("levelup", f"You reached level {player.level}!", {"level": player.level})
    return gained
