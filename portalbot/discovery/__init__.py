"""Progressive unlock of the Junimo portal recipe."""

from __future__ import annotations

from .coordinator import DiscoveryCoordinator
from .events import (
    DayEnding,
    DayStarted,
    ForcePlacement,
    InventoryChanged,
    Notification,
    NotificationScope,
)
from .flags import FlagStore
from .machine import DiscoveryStage, DiscoveryStateMachine
from .notifications import NotificationGate
from .placement import PlacementSelector
from .unlock import UnlockStatusEvaluator

__all__ = [
    "DayEnding",
    "DayStarted",
    "DiscoveryCoordinator",
    "DiscoveryStage",
    "DiscoveryStateMachine",
    "FlagStore",
    "ForcePlacement",
    "InventoryChanged",
    "Notification",
    "NotificationGate",
    "NotificationScope",
    "PlacementSelector",
    "UnlockStatusEvaluator",
]
