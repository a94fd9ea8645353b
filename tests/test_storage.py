from __future__ import annotations

import asyncio
import sys
from fnmatch import fnmatch
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

import tomllib

from portalbot.constants import FLAG_ALERTED_PLAYER, FLAG_PLACED_OLD_PORTAL, OLD_PORTAL_QIID
from portalbot.discovery import FlagStore
from portalbot.models.farm import FarmSnapshot, SceneryFeature, TileCoordinate, WorldObject
from portalbot.models.participants import Participant
from portalbot import storage as storage_module
from portalbot.storage import DataStore, _toml_dumps, _write_toml, resolve_storage_root


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> DataStore:
    monkeypatch.setenv("PORTAL_DATA_ROOT", str(tmp_path))
    return DataStore()


def test_write_toml_preserves_original_on_replace_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "farm.toml"
    _write_toml(target, {"flags": {FLAG_PLACED_OLD_PORTAL: "1,2"}})
    original_contents = target.read_text(encoding="utf8")

    def _boom(src: Path, dst: Path) -> None:
        raise RuntimeError("simulated failure")

    monkeypatch.setattr("portalbot.storage.os.replace", _boom)

    with pytest.raises(RuntimeError):
        _write_toml(target, {"flags": {FLAG_PLACED_OLD_PORTAL: "3,4"}})

    assert target.read_text(encoding="utf8") == original_contents
    leftovers = [p for p in target.parent.iterdir() if p.name != "farm.toml"]
    assert leftovers == []


def test_dotted_and_punctuated_keys_survive_a_round_trip() -> None:
    document = {
        "flags": {FLAG_PLACED_OLD_PORTAL: "3,4", FLAG_ALERTED_PLAYER: "11"},
        "inventory": {OLD_PORTAL_QIID: 1},
    }

    assert tomllib.loads(_toml_dumps(document)) == document


def test_resolve_storage_root_prefers_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    override = tmp_path / "custom"
    monkeypatch.setenv("PORTAL_DATA_ROOT", str(override))

    assert resolve_storage_root(Path("/ignored/base")) == override.resolve()


def test_resolve_storage_root_handles_site_packages(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("PORTAL_DATA_ROOT", raising=False)
    package_root = tmp_path / "lib" / "python3.12" / "site-packages" / "portalbot"
    package_root.mkdir(parents=True)
    working_dir = tmp_path / "runtime"
    working_dir.mkdir()
    monkeypatch.chdir(working_dir)

    assert resolve_storage_root(package_root) == working_dir.resolve()


def test_flag_store_tracks_only_new_writes() -> None:
    flags = FlagStore({FLAG_PLACED_OLD_PORTAL: "3,4"})

    assert flags.get(FLAG_PLACED_OLD_PORTAL) == "3,4"
    assert flags.get(FLAG_ALERTED_PLAYER) is None
    assert flags.drain_changes() == {}

    flags.set(FLAG_ALERTED_PLAYER, 12)

    assert flags.drain_changes() == {FLAG_ALERTED_PLAYER: "12"}
    assert flags.drain_changes() == {}
    assert flags.snapshot() == {FLAG_PLACED_OLD_PORTAL: "3,4", FLAG_ALERTED_PLAYER: "12"}


def test_farm_and_flags_share_one_document(store: DataStore) -> None:
    farm = FarmSnapshot(
        total_days=9,
        raining=True,
        objects={TileCoordinate(3, 4): WorldObject(OLD_PORTAL_QIID, quest_item=True, spawned=True)},
        ground_cover={TileCoordinate(1, 1): "grass"},
        scenery={TileCoordinate(5, 5): SceneryFeature("tree", height=2)},
        blocked={TileCoordinate(0, 0)},
    )

    async def scenario():
        await store.bulk_set(42, "flags", [(FLAG_PLACED_OLD_PORTAL, "3,4")])
        await store.bulk_set(42, "farm", farm.to_mapping().items())
        return await store.get_many(42, ("flags", "farm"))

    buckets = asyncio.run(scenario())

    assert dict(buckets["flags"]) == {FLAG_PLACED_OLD_PORTAL: "3,4"}
    assert FarmSnapshot.from_dict(buckets["farm"]) == farm
    farm_file = store.storage_root / "data" / "guilds" / "42" / "farm.toml"
    assert farm_file.exists()
    assert (farm_file.parent / "schema_version.toml").exists()


def test_participants_are_stored_per_record(store: DataStore) -> None:
    host = Participant(user_id=7, name="Host", inventory={OLD_PORTAL_QIID: 1})

    async def scenario():
        await store.upsert_participant(42, host.to_mapping())
        single = await store.get_participant(42, 7)
        bucket = await store.get(42, "players")
        missing = await store.get_participant(42, 8)
        return single, bucket, missing

    single, bucket, missing = asyncio.run(scenario())

    assert Participant.from_dict(single) == host
    assert list(bucket) == ["7"]
    assert missing is None


def test_unknown_collection_and_missing_guild(store: DataStore) -> None:
    with pytest.raises(KeyError):
        asyncio.run(store.get(1, "weather"))
    with pytest.raises(ValueError):
        asyncio.run(store.get(None, "flags"))


def test_storage_layout_ships_inside_the_package() -> None:
    package_dir = Path(storage_module.__file__).resolve().parent
    shipped = {
        path.relative_to(package_dir).as_posix()
        for path in [package_dir / "storage.toml", *package_dir.glob("migrations/*/*.py")]
    }
    with (PROJECT_BASE / "pyproject.toml").open("rb") as handle:
        patterns = tomllib.load(handle)["tool"]["setuptools"]["package-data"]["portalbot"]

    assert "storage.toml" in shipped
    assert {"migrations/farm/0001_initial.py", "migrations/players/0001_initial.py"} <= shipped
    for name in shipped:
        assert any(fnmatch(name, pattern) for pattern in patterns), name


def test_store_runs_outside_the_checkout(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("PORTAL_DATA_ROOT", str(tmp_path / "data-root"))
    monkeypatch.chdir(tmp_path)
    store = DataStore()

    async def _exercise() -> str:
        await store.bulk_set(7, "flags", [(FLAG_PLACED_OLD_PORTAL, "2,2")])
        return (await store.get(7, "flags"))[FLAG_PLACED_OLD_PORTAL]

    assert asyncio.run(_exercise()) == "2,2"
    assert (tmp_path / "data-root" / "data" / "guilds" / "7" / "farm.toml").exists()
