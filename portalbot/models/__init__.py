"""Domain models shared by the discovery flow and the Discord host."""

from __future__ import annotations

from ._validation import ModelValidationError, validate_dataclass_payload
from .farm import FarmSnapshot, SceneryFeature, TileCoordinate, WorldObject
from .participants import ItemStack, Participant, Session

__all__ = [
    "FarmSnapshot",
    "ItemStack",
    "ModelValidationError",
    "Participant",
    "SceneryFeature",
    "Session",
    "TileCoordinate",
    "WorldObject",
    "validate_dataclass_payload",
]
