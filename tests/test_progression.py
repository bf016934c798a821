"""Tests for dungeon_crawl.progression."""

from dungeon_crawl.pipeline import new_game
from dungeon_crawl.progression import award_experience


def test_below_threshold_only_accumulates() -> None:
    state = new_game("Tess")
    assert award_experience(state, 40, "exploration") == 0
    assert state.player.experience == 40
    assert state.player.level == 1
    assert state.log[-1].message == "Gained 40 experience (exploration)"


def test_level_up_raises_threshold_and_health() -> None:
    state = new_game("Tess")
    state.player.health = 50
    assert award_experience(state, 110, "combat") == 1
    player = state.player
    assert player.level == 2
    assert player.experience == 10
    assert player.experience_to_next == 150
    assert player.max_health == 110
    assert player.health == 60
    assert state.log[-1].type == "levelup"
    assert state.log[-1].message == "You reached level 2!"


def test_several_levels_at_once() -> None:
    state = new_game("Tess")
    # 100 + 150 + 225 = 475
    assert award_experience(state, 480, "slaying a dragon") == 3
    assert state.player.level == 4
    assert state.player.experience == 5
    assert state.player.experience_to_next == 337
    assert [e.message for e in state.log if e.type == "levelup"] == [
        "You reached level 2!", "You reached level 3!", "You reached level 4!",
    ]


def test_health_never_exceeds_max() -> None:
    state = new_game("Tess")
    award_experience(state, 100, "combat")
    assert state.player.health == state.player.max_health == 110


def test_non_positive_amount_ignored() -> None:
    state = new_game("Tess")
    before = len(state.log)
    assert award_experience(state, 0, "nothing") == 0
    assert len(state.log) == before


def test_finished_game_awards_nothing() -> None:
    state = new_game("Tess")
    state.player.health = 0
    state.over = True
    state.player.experience = 95
    before = len(state.log)
    assert award_experience(state, 50, "exploration") == 0
    assert (state.player.experience, state.player.level, state.player.health) == (95, 1, 0)
    assert len(state.log) == before
