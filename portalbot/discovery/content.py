"""Structured content registrations handed to the host game.

Only identifiers, costs and placement rules live here.  Display text, dialogue
and the event script itself are authored elsewhere and looked up by key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

from ..config import BotConfig
from ..constants import (
    ANY_WILD_SEEDS_ID,
    DISCOVERY_EVENT,
    DISCOVERY_EVENT_LOCATION,
    JUNIMO_PORTAL,
    JUNIMO_PORTAL_RECIPE,
    OLD_PORTAL_QIID,
    OLD_PORTAL_QUEST,
    SAP_ID,
    WOOD_ID,
)


@dataclass(frozen=True, slots=True)
class RecipeRequest:
    recipe_id: str
    ingredients: Tuple[Tuple[str, int], ...]
    yields: str
    big_craftable: bool = True

    def ingredient_string(self) -> str:
        return " ".join(f"{item_id} {amount}" for item_id, amount in self.ingredients)


@dataclass(frozen=True, slots=True)
class BigCraftableRequest:
    item_id: str
    sprite_index: int = 0
    placeable_indoors: bool = True
    placeable_outdoors: bool = True


@dataclass(frozen=True, slots=True)
class QuestItemRequest:
    qualified_id: str
    sprite_index: int = 0


@dataclass(frozen=True, slots=True)
class QuestRequest:
    quest_id: str
    quest_type: str = "Basic"
    next_quest: int = -1
    money_reward: int = 0
    can_cancel: bool = False


@dataclass(frozen=True, slots=True)
class EventRequest:
    event_id: str
    location: str
    host_only: bool
    required_item: str

    def precondition_key(self) -> str:
        parts = [self.event_id]
        if self.host_only:
            parts.append("H")
        parts.append(f"i {self.required_item}")
        return "/".join(parts)


@dataclass(frozen=True, slots=True)
class ObjectFinderRequest:
    qualified_id: str
    chance: float


ContentRequest = Union[
    RecipeRequest,
    BigCraftableRequest,
    QuestItemRequest,
    QuestRequest,
    EventRequest,
    ObjectFinderRequest,
]


PORTAL_RECIPE = RecipeRequest(
    recipe_id=JUNIMO_PORTAL_RECIPE,
    ingredients=((WOOD_ID, 20), (SAP_ID, 30), (ANY_WILD_SEEDS_ID, 5)),
    yields=JUNIMO_PORTAL,
)

DISCOVERY_EVENT_REQUEST = EventRequest(
    event_id=DISCOVERY_EVENT,
    location=DISCOVERY_EVENT_LOCATION,
    host_only=True,
    required_item=OLD_PORTAL_QIID,
)


def registration_requests(config: BotConfig) -> List[ContentRequest]:
    """Everything the host has to register for the discovery flow to work."""

    return [
        PORTAL_RECIPE,
        BigCraftableRequest(JUNIMO_PORTAL),
        QuestItemRequest(OLD_PORTAL_QIID),
        QuestRequest(OLD_PORTAL_QUEST),
        DISCOVERY_EVENT_REQUEST,
        ObjectFinderRequest(OLD_PORTAL_QIID, config.finder_chance),
    ]


__all__ = [
    "BigCraftableRequest",
    "ContentRequest",
    "DISCOVERY_EVENT_REQUEST",
    "EventRequest",
    "ObjectFinderRequest",
    "PORTAL_RECIPE",
    "QuestItemRequest",
    "QuestRequest",
    "RecipeRequest",
    "registration_requests",
]
