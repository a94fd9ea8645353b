"""End-to-end behaviour of the old portal discovery flow."""

from __future__ import annotations

import logging
import random
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from portalbot.cogs.discovery import hand_to_host, run_discovery_event
from portalbot.constants import (
    DISCOVERY_EVENT,
    FLAG_ALERTED_PLAYER,
    FLAG_PLACED_OLD_PORTAL,
    OLD_PORTAL_QIID,
    OLD_PORTAL_QUEST,
    WEED_QIID,
)
from portalbot.discovery import (
    DayEnding,
    DayStarted,
    DiscoveryCoordinator,
    DiscoveryStage,
    FlagStore,
    ForcePlacement,
    InventoryChanged,
    NotificationScope,
)
from portalbot.discovery.machine import GIVE_TO_HOST_HINT
from portalbot.discovery.notifications import STORM_HINT
from portalbot.models.farm import GRASS, FarmSnapshot, TileCoordinate, WorldObject
from portalbot.models.participants import ItemStack, Participant, Session

HOST_ID = 1
GUEST_ID = 2


def _session() -> Session:
    return Session(
        HOST_ID,
        [Participant(user_id=HOST_ID, name="Host"), Participant(user_id=GUEST_ID, name="Guest")],
    )


def _weedy_farm(*tiles: TileCoordinate) -> FarmSnapshot:
    return FarmSnapshot(objects={tile: WorldObject(WEED_QIID) for tile in tiles})


def _coordinator(
    world: FarmSnapshot,
    *,
    session: Session | None = None,
    flags: FlagStore | None = None,
    override: bool = False,
    authoritative: bool = True,
) -> DiscoveryCoordinator:
    return DiscoveryCoordinator(
        session or _session(),
        world,
        flags if flags is not None else FlagStore(),
        unlock_override=override,
        rng=random.Random(42),
        authoritative=authoritative,
    )


def _portal_pickup(user_id: int) -> InventoryChanged:
    return InventoryChanged(user_id, added=(ItemStack(OLD_PORTAL_QIID),))


def _artifact_count(world: FarmSnapshot) -> int:
    return len(world.tiles_with_object(OLD_PORTAL_QIID))


def test_rainy_day_end_buries_portal_under_weed() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)

    coordinator.dispatch(DayEnding(total_days=10, raining=True))

    placed = world.object_at(TileCoordinate(3, 4))
    assert placed is not None
    assert placed.qualified_id == OLD_PORTAL_QIID
    assert placed.quest_item is True
    assert coordinator.flags.get(FLAG_PLACED_OLD_PORTAL) == "3,4"
    assert coordinator.stage() is DiscoveryStage.PLACED


@pytest.mark.parametrize("total_days", [1, 3, 7])
def test_too_early_in_the_year_nothing_is_buried(total_days: int) -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)

    coordinator.dispatch(DayEnding(total_days=total_days, raining=True))

    assert _artifact_count(world) == 0
    assert coordinator.flags.snapshot() == {}
    assert coordinator.stage() is DiscoveryStage.HIDDEN


def test_dry_day_end_buries_nothing() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)

    coordinator.dispatch(DayEnding(total_days=20, raining=False))

    assert _artifact_count(world) == 0
    assert FLAG_PLACED_OLD_PORTAL not in coordinator.flags


def test_repeated_placement_keeps_one_artifact() -> None:
    world = _weedy_farm(TileCoordinate(3, 4), TileCoordinate(9, 9))
    coordinator = _coordinator(world)

    coordinator.dispatch(ForcePlacement())
    first = coordinator.flags.get(FLAG_PLACED_OLD_PORTAL)
    coordinator.dispatch(ForcePlacement())
    coordinator.dispatch(DayEnding(total_days=12, raining=True))

    assert _artifact_count(world) == 1
    assert coordinator.flags.get(FLAG_PLACED_OLD_PORTAL) == first


def test_existing_artifact_heals_missing_flag(caplog: pytest.LogCaptureFixture) -> None:
    world = _weedy_farm(TileCoordinate(1, 1))
    world.place_object(TileCoordinate(6, 2), WorldObject(OLD_PORTAL_QIID, quest_item=True))
    coordinator = _coordinator(world)

    with caplog.at_level(logging.DEBUG, logger="portalbot.discovery.machine"):
        coordinator.dispatch(DayEnding(total_days=30, raining=True))

    assert coordinator.flags.get(FLAG_PLACED_OLD_PORTAL) == "6,2"
    assert _artifact_count(world) == 1
    assert world.object_at(TileCoordinate(1, 1)).qualified_id == WEED_QIID
    assert any("already placed" in record.getMessage() for record in caplog.records)


def test_barren_farm_defers_placement(caplog: pytest.LogCaptureFixture) -> None:
    world = FarmSnapshot()
    coordinator = _coordinator(world)

    with caplog.at_level(logging.WARNING, logger="portalbot.discovery.machine"):
        coordinator.dispatch(DayEnding(total_days=10, raining=True))

    assert coordinator.flags.snapshot() == {}
    assert coordinator.flags.drain_changes() == {}
    assert any(record.levelno == logging.WARNING for record in caplog.records)

    world.ground_cover[TileCoordinate(4, 4)] = GRASS
    coordinator.dispatch(DayEnding(total_days=11, raining=True))

    assert coordinator.flags.get(FLAG_PLACED_OLD_PORTAL) == "4,4"
    assert world.ground_cover_at(TileCoordinate(4, 4)) is None
    assert world.object_at(TileCoordinate(4, 4)).qualified_id == OLD_PORTAL_QIID


def test_storm_hint_shown_once_on_first_clear_morning() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)

    assert coordinator.dispatch(DayStarted(total_days=9, raining=False)) == []
    coordinator.dispatch(DayEnding(total_days=9, raining=True))
    assert coordinator.dispatch(DayStarted(total_days=10, raining=True)) == []
    assert FLAG_ALERTED_PLAYER not in coordinator.flags

    notices = coordinator.dispatch(DayStarted(total_days=11, raining=False))

    assert [notice.text for notice in notices] == [STORM_HINT]
    assert notices[0].scope is NotificationScope.BROADCAST
    assert coordinator.flags.get(FLAG_ALERTED_PLAYER) == "11"
    assert coordinator.dispatch(DayStarted(total_days=12, raining=False)) == []


@pytest.mark.parametrize("seed", range(8))
def test_hint_never_precedes_placement(seed: int) -> None:
    rng = random.Random(seed)
    world = FarmSnapshot()
    coordinator = _coordinator(world)

    for day in range(1, 40):
        if day == 15:
            world.ground_cover[TileCoordinate(2, 3)] = GRASS
        raining = rng.random() < 0.4
        events = [DayEnding(day, raining), DayStarted(day + 1, rng.random() < 0.4)]
        if rng.random() < 0.3:
            events.reverse()
        for event in events:
            coordinator.dispatch(event)
            if FLAG_ALERTED_PLAYER in coordinator.flags:
                assert FLAG_PLACED_OLD_PORTAL in coordinator.flags


def test_guest_pickup_asks_them_to_hand_it_over() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)
    coordinator.dispatch(DayEnding(total_days=10, raining=True))

    notices = coordinator.dispatch(_portal_pickup(GUEST_ID))

    assert len(notices) == 1
    assert notices[0].text == GIVE_TO_HOST_HINT
    assert notices[0].scope is NotificationScope.LOCAL
    assert notices[0].recipient_id == GUEST_ID
    assert coordinator.session.get(GUEST_ID).quests == []
    assert coordinator.session.host.quests == []
    assert coordinator.stage() is DiscoveryStage.PLACED


def test_host_pickup_starts_the_quest() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)
    coordinator.dispatch(DayEnding(total_days=10, raining=True))

    notices = coordinator.dispatch(_portal_pickup(HOST_ID))
    coordinator.dispatch(_portal_pickup(HOST_ID))

    assert notices == []
    assert coordinator.session.host.quests == [OLD_PORTAL_QUEST]
    assert coordinator.stage() is DiscoveryStage.QUEST_ACTIVE


def test_unrelated_items_are_ignored() -> None:
    coordinator = _coordinator(FarmSnapshot())

    notices = coordinator.dispatch(
        InventoryChanged(GUEST_ID, added=(ItemStack(WEED_QIID, 3),))
    )

    assert notices == []
    assert coordinator.session.host.quests == []


def test_seen_event_unlocks_without_override() -> None:
    session = _session()
    session.host.mark_event_seen(DISCOVERY_EVENT)
    coordinator = _coordinator(FarmSnapshot(), session=session, override=False)

    assert coordinator.is_unlocked() is True
    assert coordinator.stage() is DiscoveryStage.RESOLVED


def test_guest_history_does_not_unlock() -> None:
    session = _session()
    session.get(GUEST_ID).mark_event_seen(DISCOVERY_EVENT)

    assert _coordinator(FarmSnapshot(), session=session).is_unlocked() is False


def test_override_unlocks_from_the_start() -> None:
    coordinator = _coordinator(FarmSnapshot(), override=True)

    assert coordinator.is_unlocked() is True
    assert coordinator.stage() is DiscoveryStage.RESOLVED


def test_unlock_survives_later_signals() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)
    coordinator.dispatch(DayEnding(total_days=10, raining=True))
    coordinator.dispatch(_portal_pickup(HOST_ID))
    coordinator.session.host.mark_event_seen(DISCOVERY_EVENT)
    assert coordinator.is_unlocked()

    coordinator.replay(
        [
            DayStarted(11, False),
            _portal_pickup(GUEST_ID),
            _portal_pickup(HOST_ID),
            DayEnding(11, True),
            ForcePlacement(),
            DayStarted(12, False),
        ]
    )

    assert coordinator.is_unlocked()
    assert coordinator.stage() is DiscoveryStage.RESOLVED
    assert OLD_PORTAL_QUEST not in coordinator.session.host.quests


def test_observer_coordinator_never_writes() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    flags = FlagStore({FLAG_PLACED_OLD_PORTAL: "9,9"})
    coordinator = _coordinator(world, flags=flags, authoritative=False)

    coordinator.replay(
        [DayEnding(10, True), ForcePlacement(), DayStarted(11, False), _portal_pickup(HOST_ID)]
    )
    notices = coordinator.dispatch(_portal_pickup(GUEST_ID))

    assert _artifact_count(world) == 0
    assert flags.drain_changes() == {}
    assert coordinator.session.host.quests == []
    assert [notice.recipient_id for notice in notices] == [GUEST_ID]


def test_unknown_signal_is_rejected() -> None:
    with pytest.raises(TypeError):
        _coordinator(FarmSnapshot()).dispatch("dawn")


def test_outbox_collects_until_drained() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)

    coordinator.replay([DayEnding(10, True), DayStarted(11, False), _portal_pickup(GUEST_ID)])

    pending = coordinator.drain_notifications()
    assert [notice.text for notice in pending] == [STORM_HINT, GIVE_TO_HOST_HINT]
    assert coordinator.drain_notifications() == []


def test_forced_placement_after_pickup_buries_nothing_new() -> None:
    world = _weedy_farm(TileCoordinate(3, 4), TileCoordinate(9, 9))
    coordinator = _coordinator(world)
    coordinator.dispatch(DayEnding(total_days=10, raining=True))
    recorded = coordinator.flags.get(FLAG_PLACED_OLD_PORTAL)
    tile = TileCoordinate.from_key(recorded)
    world.remove_object(tile)
    stack = coordinator.session.host.add_item(OLD_PORTAL_QIID)
    coordinator.dispatch(InventoryChanged(HOST_ID, added=(stack,)))

    assert coordinator.dispatch(ForcePlacement()) == []
    coordinator.dispatch(DayEnding(total_days=11, raining=True))

    assert coordinator.flags.get(FLAG_PLACED_OLD_PORTAL) == recorded
    assert _artifact_count(world) == 0
    assert coordinator.session.host.inventory == {OLD_PORTAL_QIID: 1}


def test_guest_hands_portal_to_host_and_quest_follows() -> None:
    world = _weedy_farm(TileCoordinate(3, 4))
    coordinator = _coordinator(world)
    coordinator.dispatch(DayEnding(total_days=10, raining=True))
    tile, _ = world.find_object(OLD_PORTAL_QIID)
    world.remove_object(tile)
    guest = coordinator.session.get(GUEST_ID)
    coordinator.dispatch(InventoryChanged(GUEST_ID, added=(guest.add_item(OLD_PORTAL_QIID),)))
    coordinator.drain_notifications()
    assert coordinator.stage() is DiscoveryStage.PLACED

    assert hand_to_host(coordinator, GUEST_ID) is True

    assert not guest.has_item(OLD_PORTAL_QIID)
    assert coordinator.session.host.has_item(OLD_PORTAL_QIID)
    assert coordinator.session.host.quests == [OLD_PORTAL_QUEST]
    assert coordinator.drain_notifications() == []
    assert coordinator.stage() is DiscoveryStage.QUEST_ACTIVE

    assert run_discovery_event(coordinator.session, HOST_ID) is True
    assert coordinator.stage() is DiscoveryStage.RESOLVED


def test_handing_over_needs_the_item_and_a_guest() -> None:
    coordinator = _coordinator(FarmSnapshot())

    assert hand_to_host(coordinator, GUEST_ID) is False

    coordinator.session.host.add_item(OLD_PORTAL_QIID)
    assert hand_to_host(coordinator, HOST_ID) is False
    assert coordinator.session.host.inventory == {OLD_PORTAL_QIID: 1}
    assert coordinator.session.host.quests == []
