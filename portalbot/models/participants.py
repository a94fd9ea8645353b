"""Session participants and their shared records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ._validation import FieldSpec, MappingSpec, ModelValidator, SequenceSpec, is_non_empty_str


@dataclass(frozen=True, slots=True)
class ItemStack:
    qualified_id: str
    quantity: int = 1


@dataclass(slots=True)
class Participant:
    """A farmer taking part in the shared session."""

    user_id: int
    name: str
    inventory: Dict[str, int] = field(default_factory=dict)
    quests: List[str] = field(default_factory=list)
    events_seen: List[str] = field(default_factory=list)
    known_recipes: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.user_id = int(self.user_id)
        inventory: Dict[str, int] = {}
        for item_id, amount in dict(self.inventory).items():
            count = int(amount)
            if count > 0:
                inventory[str(item_id)] = count
        self.inventory = inventory
        self.quests = list(dict.fromkeys(str(q) for q in self.quests))
        self.events_seen = list(dict.fromkeys(str(e) for e in self.events_seen))
        self.known_recipes = list(dict.fromkeys(str(r) for r in self.known_recipes))

    def has_item(self, qualified_id: str) -> bool:
        return self.inventory.get(qualified_id, 0) > 0

    def add_item(self, qualified_id: str, quantity: int = 1) -> ItemStack:
        amount = max(0, int(quantity))
        self.inventory[qualified_id] = self.inventory.get(qualified_id, 0) + amount
        return ItemStack(qualified_id, amount)

    def remove_item(self, qualified_id: str, quantity: int = 1) -> int:
        held = self.inventory.get(qualified_id, 0)
        removed = min(held, max(0, int(quantity)))
        if held - removed > 0:
            self.inventory[qualified_id] = held - removed
        else:
            self.inventory.pop(qualified_id, None)
        return removed

    def has_quest(self, quest_id: str) -> bool:
        return quest_id in self.quests

    def add_quest(self, quest_id: str) -> bool:
        if quest_id in self.quests:
            return False
        self.quests.append(quest_id)
        return True

    def remove_quest(self, quest_id: str) -> bool:
        if quest_id not in self.quests:
            return False
        self.quests.remove(quest_id)
        return True

    def has_seen_event(self, event_id: str) -> bool:
        return event_id in self.events_seen

    def mark_event_seen(self, event_id: str) -> None:
        if event_id not in self.events_seen:
            self.events_seen.append(event_id)

    def learn_recipe(self, recipe_id: str) -> bool:
        if recipe_id in self.known_recipes:
            return False
        self.known_recipes.append(recipe_id)
        return True

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "inventory": dict(self.inventory),
            "quests": list(self.quests),
            "events_seen": list(self.events_seen),
            "known_recipes": list(self.known_recipes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Participant":
        payload = {key: data[key] for key in data if key in cls.__dataclass_fields__}
        return cls(**payload)


class ParticipantValidator(ModelValidator):
    model = Participant
    fields = {
        "user_id": FieldSpec(int, "a Discord user id"),
        "name": FieldSpec(is_non_empty_str, "a non-empty display name"),
        "inventory": FieldSpec(
            MappingSpec(str, int), "a mapping of item ids to counts", required=False
        ),
        "quests": FieldSpec(SequenceSpec(str), "a list of quest ids", required=False),
        "events_seen": FieldSpec(SequenceSpec(str), "a list of event ids", required=False),
        "known_recipes": FieldSpec(
            SequenceSpec(str), "a list of recipe ids", required=False
        ),
    }


Participant.validator = ParticipantValidator  # type: ignore[attr-defined]


class Session:
    """Participants of one shared farm and the identity of its host.

    The host is the only participant allowed to mutate shared state.  Quest
    grants and event-history lookups for the discovery flow go through here so
    the flow never has to know how participants are stored.
    """

    def __init__(self, host_id: int, participants: Iterable[Participant] = ()) -> None:
        self.host_id = int(host_id)
        self.participants: Dict[int, Participant] = {}
        for participant in participants:
            self.register(participant)

    def register(self, participant: Participant) -> Participant:
        self.participants[participant.user_id] = participant
        return participant

    def get(self, user_id: int) -> Optional[Participant]:
        return self.participants.get(int(user_id))

    def ensure(self, user_id: int, name: str) -> Participant:
        participant = self.get(user_id)
        if participant is None:
            participant = self.register(Participant(user_id=user_id, name=name))
        return participant

    @property
    def host(self) -> Optional[Participant]:
        return self.participants.get(self.host_id)

    def is_host(self, user_id: int) -> bool:
        return int(user_id) == self.host_id

    def host_has_seen(self, event_id: str) -> bool:
        host = self.host
        return host is not None and host.has_seen_event(event_id)

    def transfer_item(
        self, giver_id: int, recipient_id: int, qualified_id: str, quantity: int = 1
    ) -> Optional[Tuple[ItemStack, ItemStack]]:
        """Move items between two known participants.

        Returns the ``(removed, added)`` stacks, or ``None`` when either side is
        unknown, both are the same participant, or the giver holds none.
        """

        giver = self.get(giver_id)
        recipient = self.get(recipient_id)
        if giver is None or recipient is None or giver is recipient:
            return None
        moved = giver.remove_item(qualified_id, quantity)
        if moved <= 0:
            return None
        return ItemStack(qualified_id, moved), recipient.add_item(qualified_id, moved)

    def grant_quest(self, user_id: int, quest_id: str) -> bool:
        participant = self.get(user_id)
        if participant is None:
            return False
        return participant.add_quest(quest_id)

    def remove_quest(self, user_id: int, quest_id: str) -> bool:
        participant = self.get(user_id)
        if participant is None:
            return False
        return participant.remove_quest(quest_id)


__all__ = ["ItemStack", "Participant", "Session"]
