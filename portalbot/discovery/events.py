"""Typed signals delivered to the discovery coordinator and its outbound notices."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..models.participants import ItemStack


@dataclass(frozen=True, slots=True)
class DayEnding:
    """Fired once per simulated day before the next day starts."""

    total_days: int
    raining: bool


@dataclass(frozen=True, slots=True)
class DayStarted:
    """Fired once per simulated day after day-ending processing."""

    total_days: int
    raining: bool


@dataclass(frozen=True, slots=True)
class InventoryChanged:
    """Items added to or removed from one participant's inventory this tick."""

    user_id: int
    added: Tuple[ItemStack, ...] = ()
    removed: Tuple[ItemStack, ...] = ()


@dataclass(frozen=True, slots=True)
class ForcePlacement:
    """Administrative request to bury the artifact right now."""


class NotificationScope(str, Enum):
    LOCAL = "local"
    BROADCAST = "broadcast"


@dataclass(frozen=True, slots=True)
class Notification:
    """Player-facing ephemeral message requested by the discovery flow."""

    text: str
    scope: NotificationScope = NotificationScope.BROADCAST
    recipient_id: Optional[int] = None


__all__ = [
    "DayEnding",
    "DayStarted",
    "ForcePlacement",
    "InventoryChanged",
    "Notification",
    "NotificationScope",
]
