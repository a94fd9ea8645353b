"""Bot configuration utilities."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .constants import DEFAULT_FINDER_CHANCE, DEFAULT_MIN_DAYS

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass(slots=True)
class BotConfig:
    token: str
    unlock_portal: bool = False
    min_days: int = DEFAULT_MIN_DAYS
    finder_chance: float = DEFAULT_FINDER_CHANCE

    @classmethod
    def from_env(cls) -> "BotConfig":
        token = env("DISCORD_TOKEN")
        unlock_portal = env_flag("UNLOCK_PORTAL")
        min_days = int(os.getenv("PORTAL_MIN_DAYS", str(DEFAULT_MIN_DAYS)))
        finder_chance = float(
            os.getenv("PORTAL_FINDER_CHANCE", str(DEFAULT_FINDER_CHANCE))
        )
        return cls(
            token=token,
            unlock_portal=unlock_portal,
            min_days=max(0, min_days),
            finder_chance=min(1.0, max(0.0, finder_chance)),
        )


__all__ = ["BotConfig"]
