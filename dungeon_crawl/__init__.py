"""Turn-resolution and world-state engine for a text dungeon crawl.

The engine owns the authoritative GameState. Everything creative (reading the
player's command, writing rooms, crafting, narrating a body search) is done by
collaborators the engine awaits and falls back from when they fail.
"""

from .collaborators import Collaborators  # noqa: F401
from .models import GameState, Intent, PlayerAction, TurnResult  # noqa: F401
from .pipeline import Engine, InvariantViolation, new_game  # noqa: F401
