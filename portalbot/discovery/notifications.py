"""One-time hint shown after the storm that uncovered the artifact."""

from __future__ import annotations

import logging

from ..constants import FLAG_ALERTED_PLAYER, FLAG_PLACED_OLD_PORTAL
from .events import DayStarted, Notification, NotificationScope
from .flags import FlagStore

log = logging.getLogger(__name__)

STORM_HINT = (
    "That was some storm!  I wonder if the rain washed the mud off of any of "
    "Grandpa's old stuff!"
)


class NotificationGate:
    def __init__(self, flags: FlagStore) -> None:
        self.flags = flags

    def on_day_started(self, tick: DayStarted) -> Notification | None:
        """Return the storm hint the first clear morning after placement."""

        if self.flags.get(FLAG_PLACED_OLD_PORTAL) is None:
            return None
        if self.flags.get(FLAG_ALERTED_PLAYER) is not None:
            return None
        if tick.raining:
            return None
        self.flags.set(FLAG_ALERTED_PLAYER, tick.total_days)
        log.info("Showing storm hint on day %s", tick.total_days)
        return Notification(STORM_HINT, NotificationScope.BROADCAST)


__all__ = ["NotificationGate", "STORM_HINT"]
