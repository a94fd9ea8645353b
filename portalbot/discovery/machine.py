"""The discovery flow: buried, found, carried to the wizard, unlocked."""

from __future__ import annotations

import logging
from enum import Enum

from ..constants import (
    DEFAULT_MIN_DAYS,
    FLAG_PLACED_OLD_PORTAL,
    OLD_PORTAL_QIID,
    OLD_PORTAL_QUEST,
)
from ..models.farm import FarmSnapshot, TileCoordinate, WorldObject
from ..models.participants import Session
from .events import DayEnding, InventoryChanged, Notification, NotificationScope
from .flags import FlagStore
from .placement import PlacementSelector
from .unlock import UnlockStatusEvaluator

log = logging.getLogger(__name__)

GIVE_TO_HOST_HINT = (
    "Give the strange little structure to the host player - only the host can "
    "advance this quest.  (Put it in a chest for them.)"
)


class DiscoveryStage(str, Enum):
    HIDDEN = "hidden"
    PLACED = "placed"
    QUEST_ACTIVE = "quest_active"
    RESOLVED = "resolved"


class DiscoveryStateMachine:
    """Drives the old portal from hidden to unlocked.

    Every mutating step checks persisted state first, so repeated or
    out-of-order signals are harmless.  Resolution is never set here: it is
    observed through :class:`UnlockStatusEvaluator` whenever the stage is read.
    """

    def __init__(
        self,
        flags: FlagStore,
        session: Session,
        selector: PlacementSelector,
        unlock: UnlockStatusEvaluator,
        *,
        min_days: int = DEFAULT_MIN_DAYS,
    ) -> None:
        self.flags = flags
        self.session = session
        self.selector = selector
        self.unlock = unlock
        self.min_days = min_days

    @property
    def placement_recorded(self) -> bool:
        return self.flags.get(FLAG_PLACED_OLD_PORTAL) is not None

    def stage(self) -> DiscoveryStage:
        if self.unlock.is_unlocked():
            return DiscoveryStage.RESOLVED
        host = self.session.host
        if host is not None and host.has_quest(OLD_PORTAL_QUEST):
            return DiscoveryStage.QUEST_ACTIVE
        if self.placement_recorded:
            return DiscoveryStage.PLACED
        return DiscoveryStage.HIDDEN

    def on_day_ending(self, tick: DayEnding, world: FarmSnapshot) -> TileCoordinate | None:
        if not tick.raining or tick.total_days <= self.min_days:
            return None
        if self.placement_recorded:
            return None
        return self.place_artifact(world)

    def place_artifact(self, world: FarmSnapshot) -> TileCoordinate | None:
        """Bury the old portal on the farm and record where.

        Returns the recorded tile, or ``None`` when no tile qualifies (nothing
        is recorded, so a later tick retries).  Once the flag is set this is a
        no-op, even if the artifact has since been picked up.
        """

        recorded = self.flags.get(FLAG_PLACED_OLD_PORTAL)
        if recorded is not None:
            log.debug("%s was already placed at %s", OLD_PORTAL_QIID, recorded)
            return TileCoordinate.from_key(recorded)

        existing = world.find_object(OLD_PORTAL_QIID)
        if existing is not None:
            tile, _ = existing
            log.debug("%s is already placed at %s", OLD_PORTAL_QIID, tile)
            self.flags.set(FLAG_PLACED_OLD_PORTAL, tile.to_key())
            return tile

        tile = self.selector.select_tile(world)
        if tile is None:
            log.warning("No weeds or grass on farm, can't place the old junimo portal")
            return None

        world.place_object(
            tile, WorldObject(OLD_PORTAL_QIID, quest_item=True, spawned=True)
        )
        self.flags.set(FLAG_PLACED_OLD_PORTAL, tile.to_key())
        log.info("%s placed at %s", OLD_PORTAL_QIID, tile)
        return tile

    def on_inventory_changed(self, signal: InventoryChanged) -> Notification | None:
        if not any(stack.qualified_id == OLD_PORTAL_QIID for stack in signal.added):
            return None
        if self.session.is_host(signal.user_id):
            if self.session.grant_quest(signal.user_id, OLD_PORTAL_QUEST):
                log.info("Granted %s to host %s", OLD_PORTAL_QUEST, signal.user_id)
            return None
        return Notification(
            GIVE_TO_HOST_HINT, NotificationScope.LOCAL, recipient_id=signal.user_id
        )

    def retire_stale_quest(self) -> bool:
        """Drop the quest from the host once the recipe is already unlocked."""

        if not self.unlock.is_unlocked():
            return False
        if self.session.remove_quest(self.session.host_id, OLD_PORTAL_QUEST):
            log.info("Removed stale %s from host", OLD_PORTAL_QUEST)
            return True
        return False


__all__ = ["DiscoveryStage", "DiscoveryStateMachine", "GIVE_TO_HOST_HINT"]
