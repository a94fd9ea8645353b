"""Whether the Junimo portal recipe is available."""

from __future__ import annotations

from ..constants import DISCOVERY_EVENT
from ..models.participants import Session


class UnlockStatusEvaluator:
    """Unlocked when configured so, or once the host has seen the discovery event.

    Event history only ever grows, so a true answer never turns false.
    """

    def __init__(
        self,
        session: Session,
        *,
        override: bool = False,
        event_id: str = DISCOVERY_EVENT,
    ) -> None:
        self.session = session
        self.override = override
        self.event_id = event_id

    def is_unlocked(self) -> bool:
        return self.override or self.session.host_has_seen(self.event_id)


__all__ = ["UnlockStatusEvaluator"]
