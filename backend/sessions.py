"""In-memory game sessions.

Each session owns one Engine (and through it one GameState). Turns for a
session are serialised by its own asyncio.Lock; different sessions never
share state and run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from dungeon_crawl.collaborators import Collaborators
from dungeon_crawl.llm import LLM, HttpLLM, OfflineLLM
from dungeon_crawl.models import PlayerAction, TurnResult, new_id
from dungeon_crawl.pipeline import Engine, new_game

logger = logging.getLogger(__name__)


@dataclass
class Session:
    id: str
    engine: Engine
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def build_llm(settings: dict[str, Any]) -> LLM:
    """HttpLLM when a provider URL is configured, otherwise OfflineLLM."""
    if not settings.get("llm_provider_url"):
        return OfflineLLM()
    return HttpLLM(
        provider_url=settings["llm_provider_url"],
        api_key=settings.get("llm_api_key", ""),
        provider_format=settings.get("llm_provider_format", "koboldcpp"),
        model=settings.get("llm_model", ""),
        timeout=settings.get("llm_timeout") or 60.0,
    )


class SessionManager:
    def __init__(
        self,
        settings: dict[str, Any],
        collaborators_factory: Callable[[], Collaborators] | None = None,
    ) -> None:
        self.settings = settings
        self._factory = collaborators_factory or (
            lambda: Collaborators.from_llm(build_llm(settings))
        )
        self._sessions: dict[str, Session] = {}

    def create(self, player_name: str) -> Session:
        seed = self.settings.get("rng_seed")
        engine = Engine(
            new_game(player_name),
            self._factory(),
            rng=random.Random(seed),
            collaborator_timeout=self.settings.get("collaborator_timeout"),
            theme=self.settings.get("dungeon_theme") or "dark fantasy dungeon",
        )
        session = Session(id=new_id(), engine=engine)
        self._sessions[session.id] = session
        logger.info("session %s started for %s", session.id, player_name)
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        if self._sessions.pop(session_id, None) is None:
            return False
        logger.info("session %s closed", session_id)
        return True

    async def act(self, session_id: str, action: PlayerAction) -> TurnResult | None:
        """Run one turn. Returns None if the session does not exist."""
        session = self.get(session_id)
        if session is None:
            return None
        async with session.lock:
            return await session.engine.process_action(action)


_manager: SessionManager | None = None


def init_sessions(
    settings: dict[str, Any],
    collaborators_factory: Callable[[], Collaborators] | None = None,
) -> SessionManager:
    global _manager
    _manager = SessionManager(settings, collaborators_factory)
    return _manager


def get_manager() -> SessionManager:
    if _manager is None:
        raise RuntimeError("Sessions not initialised; call init_sessions() first")
    return _manager
