"""Initial migration for participant saves."""

from __future__ import annotations

from typing import MutableMapping

from portalbot.storage import _read_toml, _write_toml


FROM_VERSION = 0
TO_VERSION = 1
DESCRIPTION = "Create participant save directories and list fields"


def apply(context) -> None:  # type: ignore[override]
    if context.guild_id is None:
        return

    directory = context.collection.record_directory(context.base, guild_id=context.guild_id)
    directory.mkdir(parents=True, exist_ok=True)

    updated = 0
    for path in sorted(directory.glob("*.toml")):
        if path.name == "schema_version.toml":
            continue
        payload = _read_toml(path)
        if not isinstance(payload, MutableMapping):
            continue
        changed = False
        for key in ("quests", "events_seen", "known_recipes"):
            if key not in payload:
                payload[key] = []
                changed = True
        if "inventory" not in payload:
            payload["inventory"] = {}
            changed = True
        if changed:
            _write_toml(path, payload)
            updated += 1

    if updated:
        context.log(f"added discovery fields to {updated} participant save(s)")
