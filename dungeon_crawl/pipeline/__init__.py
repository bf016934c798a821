"""Turn pipeline.

Executes one player turn against a GameState:
  1. Narrative interpreter turns the command into a narrative + ordered intents.
  2. Each intent is applied through the world graph, inventory steps, combat
     resolver and corpse manager in a fixed sub-order.
  3. The turn counter advances once; statuses and corpses tick once.

inventory     — removal/addition/pickup/use/craft steps on the player's items
orchestrator  — Engine (owns one GameState), new_game(), InvariantViolation
"""

from . import inventory  # noqa: F401
from .orchestrator import (  # noqa: F401
    CONFUSED_MESSAGE,
    Engine,
    InvariantViolation,
    new_game,
)
