import random
from datetime import datetime, timedelta, timezone

import pytest

from dungeon_crawl.collaborators import (
    CollaboratorError,
    Collaborators,
    GeneratedRoom,
    NarrativeResponse,
    SearchNarration,
)
from dungeon_crawl.pipeline import Engine, new_game

START_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, hours: float) -> None:
        self.now += timedelta(hours=hours)


class ScriptedInterpreter:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self) -> None:
        self.responses: list = []
        self.requests: list = []

    async def interpret(self, request):
        self.requests.append(request)
        if not self.responses:
            return NarrativeResponse(narrative="You wait.")
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class ScriptedRoomGenerator:
    """Fails unless a room has been queued."""

    def __init__(self) -> None:
        self.rooms: list[GeneratedRoom] = []
        self.requests: list = []

    async def generate(self, request):
        self.requests.append(request)
        if not self.rooms:
            raise CollaboratorError("room generator offline")
        return self.rooms.pop(0)


class ScriptedOracle:
    def __init__(self) -> None:
        self.result = None
        self.calls: list = []

    async def craft(self, items, player_level):
        self.calls.append(([i.name for i in items], player_level))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class ScriptedNarrator:
    def __init__(self) -> None:
        self.result = SearchNarration()
        self.calls: list = []

    async def narrate_search(self, corpse, searcher_id, room_context):
        self.calls.append((corpse.name, searcher_id, room_context))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def collaborators() -> Collaborators:
    return Collaborators(
        interpreter=ScriptedInterpreter(),
        room_generator=ScriptedRoomGenerator(),
        crafting_oracle=ScriptedOracle(),
        search_narrator=ScriptedNarrator(),
    )


@pytest.fixture
def state():
    return new_game("Tester")


@pytest.fixture
def engine(state, collaborators, rng, clock) -> Engine:
    return Engine(state, collaborators, rng=rng, clock=clock)
