"""Tests for backend.config."""

import pytest

from backend.config import get_settings

_VARS = (
    "LLM_PROVIDER_URL", "LLM_API_KEY", "LLM_PROVIDER_FORMAT", "LLM_MODEL", "LLM_TIMEOUT",
    "COLLABORATOR_TIMEOUT", "DUNGEON_THEME", "RNG_SEED", "HOST", "PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _VARS:
        monkeypatch.delenv(var, raising=False)


def test_defaults() -> None:
    s = get_settings()
    assert s["llm_provider_url"] == ""
    assert s["llm_provider_format"] == "koboldcpp"
    assert s["collaborator_timeout"] == 90.0
    assert s["rng_seed"] is None
    assert s["port"] == 13013


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER_URL", "http://localhost:5001")
    monkeypatch.setenv("LLM_PROVIDER_FORMAT", "OpenAI")
    monkeypatch.setenv("COLLABORATOR_TIMEOUT", "12.5")
    monkeypatch.setenv("DUNGEON_THEME", "sunken temple")
    monkeypatch.setenv("RNG_SEED", "42")
    monkeypatch.setenv("PORT", "8080")
    s = get_settings()
    assert s["llm_provider_url"] == "http://localhost:5001"
    assert s["llm_provider_format"] == "openai"
    assert s["collaborator_timeout"] == 12.5
    assert s["dungeon_theme"] == "sunken temple"
    assert s["rng_seed"] == 42
    assert s["port"] == 8080


def test_zero_timeout_disables(monkeypatch) -> None:
    monkeypatch.setenv("COLLABORATOR_TIMEOUT", "0")
    assert get_settings()["collaborator_timeout"] is None


def test_unknown_provider_format_ignored(monkeypatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER_FORMAT", "carrier-pigeon")
    assert get_settings()["llm_provider_format"] == "koboldcpp"
