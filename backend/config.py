"""Server configuration read from the environment (and .env, if present)."""

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

_SETTINGS_DEFAULTS: dict[str, Any] = {
    "llm_provider_url": "",
    "llm_api_key": "",
    "llm_provider_format": "koboldcpp",
    "llm_model": "",
    "llm_timeout": 60.0,
    "collaborator_timeout": 90.0,
    "dungeon_theme": "dark fantasy dungeon",
    "rng_seed": None,
    "host": "0.0.0.0",
    "port": 13013,
}


def _float(value: str | None, default: float | None) -> float | None:
    if value is None or value == "":
        return default
    return float(value)


def get_settings() -> dict[str, Any]:
    """Return defaults merged with whatever the environment sets."""
    settings = dict(_SETTINGS_DEFAULTS)
    settings["llm_provider_url"] = os.getenv("LLM_PROVIDER_URL", settings["llm_provider_url"])
    settings["llm_api_key"] = os.getenv("LLM_API_KEY", settings["llm_api_key"])
    fmt = os.getenv("LLM_PROVIDER_FORMAT", settings["llm_provider_format"]).lower()
    if fmt in ("koboldcpp", "openai"):
        settings["llm_provider_format"] = fmt
    settings["llm_model"] = os.getenv("LLM_MODEL", settings["llm_model"])
    settings["llm_timeout"] = _float(os.getenv("LLM_TIMEOUT"), settings["llm_timeout"])
    # An explicit 0 disables the collaborator timeout.
    timeout = _float(os.getenv("COLLABORATOR_TIMEOUT"), settings["collaborator_timeout"])
    settings["collaborator_timeout"] = timeout or None
    settings["dungeon_theme"] = os.getenv("DUNGEON_THEME") or settings["dungeon_theme"]
    seed = os.getenv("RNG_SEED")
    if seed:
        settings["rng_seed"] = int(seed)
    settings["host"] = os.getenv("HOST", settings["host"])
    settings["port"] = int(os.getenv("PORT", settings["port"]))
    return settings
