"""Initial farm document migration."""

from __future__ import annotations

from portalbot.storage import _read_toml, _write_toml

FROM_VERSION = 0
TO_VERSION = 1
DESCRIPTION = "Create the flags and farm sections of farm.toml"


def apply(context) -> None:  # type: ignore[override]
    if context.guild_id is None:
        return

    farm_path = context.collection.resolve_path(context.base, guild_id=context.guild_id)
    document = _read_toml(farm_path)
    if not isinstance(document, dict):
        document = {}

    changed = False
    for collection in context.config.values():
        if collection.migration_key != context.collection.migration_key:
            continue
        if collection.section and collection.section not in document:
            document[collection.section] = {}
            changed = True

    if changed:
        _write_toml(farm_path, document)
        context.log(f"initialised {farm_path.name} for guild {context.guild_id}")
