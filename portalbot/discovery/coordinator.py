"""Routes typed farm signals to the discovery flow."""

from __future__ import annotations

import logging
import random
from typing import Callable, Dict, Iterable, List

from ..constants import DEFAULT_MIN_DAYS
from ..models.farm import FarmSnapshot
from ..models.participants import Session
from .events import (
    DayEnding,
    DayStarted,
    ForcePlacement,
    InventoryChanged,
    Notification,
)
from .flags import FlagStore
from .machine import DiscoveryStage, DiscoveryStateMachine
from .notifications import NotificationGate
from .placement import PlacementSelector
from .unlock import UnlockStatusEvaluator

log = logging.getLogger(__name__)


class DiscoveryCoordinator:
    """Single entry point for every signal touching the discovery flow.

    Signals are handled one at a time and synchronously; the caller must not
    dispatch concurrently for the same farm.  A coordinator that is not
    authoritative ignores everything that would write flags or terrain and
    only produces local notifications.
    """

    def __init__(
        self,
        session: Session,
        world: FarmSnapshot,
        flags: FlagStore,
        *,
        unlock_override: bool = False,
        min_days: int = DEFAULT_MIN_DAYS,
        rng: random.Random | None = None,
        authoritative: bool = True,
    ) -> None:
        self.session = session
        self.world = world
        self.flags = flags
        self.authoritative = authoritative
        self.unlock = UnlockStatusEvaluator(session, override=unlock_override)
        self.machine = DiscoveryStateMachine(
            flags,
            session,
            PlacementSelector(rng),
            self.unlock,
            min_days=min_days,
        )
        self.gate = NotificationGate(flags)
        self.outbox: List[Notification] = []
        self._handlers: Dict[type, Callable[[object], None]] = {
            DayEnding: self._on_day_ending,
            DayStarted: self._on_day_started,
            InventoryChanged: self._on_inventory_changed,
            ForcePlacement: self._on_force_placement,
        }

    def dispatch(self, event: object) -> List[Notification]:
        """Handle one signal and return the notifications it produced."""

        try:
            handler = self._handlers[type(event)]
        except KeyError:
            raise TypeError(f"Unsupported discovery event: {type(event).__name__}") from None
        before = len(self.outbox)
        handler(event)
        return self.outbox[before:]

    def replay(self, events: Iterable[object]) -> List[Notification]:
        produced: List[Notification] = []
        for event in events:
            produced.extend(self.dispatch(event))
        return produced

    def drain_notifications(self) -> List[Notification]:
        pending, self.outbox = self.outbox, []
        return pending

    def stage(self) -> DiscoveryStage:
        return self.machine.stage()

    def is_unlocked(self) -> bool:
        return self.unlock.is_unlocked()

    def _on_day_ending(self, event: DayEnding) -> None:
        if not self.authoritative:
            return
        self.machine.on_day_ending(event, self.world)

    def _on_day_started(self, event: DayStarted) -> None:
        if not self.authoritative:
            return
        notice = self.gate.on_day_started(event)
        if notice is not None:
            self.outbox.append(notice)
        self.machine.retire_stale_quest()

    def _on_inventory_changed(self, event: InventoryChanged) -> None:
        if not self.authoritative and self.session.is_host(event.user_id):
            return
        notice = self.machine.on_inventory_changed(event)
        if notice is not None:
            self.outbox.append(notice)

    def _on_force_placement(self, event: ForcePlacement) -> None:
        if not self.authoritative:
            log.debug("Ignoring forced placement on a non-authoritative coordinator")
            return
        self.machine.place_artifact(self.world)


__all__ = ["DiscoveryCoordinator"]
