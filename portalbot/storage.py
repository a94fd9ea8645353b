"""TOML persistence for farm flags, farm layouts and participant saves.

Collections are declared in ``portalbot/storage.toml`` with their relative path,
optional document section and schema version.  :class:`DataStore` serialises
every read and write behind one lock, runs pending migrations from
``portalbot/migrations/<collection>/`` before touching a collection, and records the
applied version in a ``schema_version.toml`` file next to the data.
"""

from __future__ import annotations

import asyncio
import importlib.util
import math
import os
import re
import tempfile
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional
from urllib.parse import quote, unquote

import tomllib


_STORAGE_LOCK = asyncio.Lock()

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _is_site_packages(path: Path) -> bool:
    normalized = {part.lower() for part in path.parts}
    return "site-packages" in normalized or "dist-packages" in normalized


def resolve_storage_root(package_root: Path) -> Path:
    """Return the directory that mutable save data lives under.

    ``PORTAL_DATA_ROOT`` wins when set.  Installed copies (site-packages or a
    read-only tree) fall back to the working directory; a checkout keeps its
    data beside the sources.
    """

    override = os.getenv("PORTAL_DATA_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    if _is_site_packages(package_root) or not os.access(package_root, os.W_OK):
        return Path.cwd().resolve()

    return package_root


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def _normalize_for_toml(value: Any) -> Any:
    if isinstance(value, MappingProxyType):
        value = dict(value)
    if isinstance(value, Mapping):
        return {
            str(key): _normalize_for_toml(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (set, frozenset)):
        items = [_normalize_for_toml(item) for item in value if item is not None]
        return sorted(items, key=repr)
    if isinstance(value, (list, tuple)):
        return [_normalize_for_toml(item) for item in value if item is not None]
    if isinstance(value, Enum):
        enum_value = value.value
        if isinstance(enum_value, (str, bool, int)):
            return enum_value
        return str(enum_value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (str, int, bool)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else 0.0
    if isinstance(value, bytes):
        return value.decode("utf8", "replace")
    return str(value)


def _quote_string(value: str) -> str:
    replacements = {
        "\\": "\\\\",
        '"': '\\"',
        "\b": "\\b",
        "\t": "\\t",
        "\n": "\\n",
        "\f": "\\f",
        "\r": "\\r",
    }

    def _escape_char(char: str) -> str:
        if char in replacements:
            return replacements[char]
        code = ord(char)
        if 0x20 <= code <= 0x7E:
            return char
        return f"\\u{code:04x}"

    return '"' + "".join(_escape_char(char) for char in value) + '"'


def _format_key(key: str) -> str:
    # Flag keys carry dots ("Junimatic.AlertedPlayer") and item ids carry
    # parentheses, so anything outside the bare-key alphabet is quoted.
    if _BARE_KEY.match(key):
        return key
    return _quote_string(key)


def _format_toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        text = f"{value:.10g}"
        if "e" not in text and "E" not in text and "." not in text:
            text += ".0"
        return text
    if isinstance(value, str):
        return _quote_string(value)
    if isinstance(value, list):
        return "[" + ", ".join(_format_toml_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        inner = ", ".join(
            f"{_format_key(str(key))} = {_format_toml_value(item)}"
            for key, item in value.items()
        )
        return "{ " + inner + " }" if inner else "{}"
    return _quote_string(str(value))


def _serialize_table(
    data: Mapping[str, Any],
    *,
    parent: tuple[str, ...] = (),
    output: list[str],
) -> None:
    simple_items: list[tuple[str, Any]] = []
    tables: list[tuple[str, Mapping[str, Any]]] = []
    array_tables: list[tuple[str, list[Mapping[str, Any]]]] = []

    for key, value in data.items():
        if isinstance(value, Mapping):
            tables.append((key, value))
        elif isinstance(value, list) and value and all(
            isinstance(item, Mapping) for item in value
        ):
            array_tables.append((key, value))
        else:
            simple_items.append((key, value))

    for key, value in sorted(simple_items, key=lambda item: item[0]):
        output.append(f"{_format_key(key)} = {_format_toml_value(value)}")

    for key, value in sorted(tables, key=lambda item: item[0]):
        path = (*parent, key)
        if output and output[-1] != "":
            output.append("")
        output.append("[" + ".".join(_format_key(part) for part in path) + "]")
        _serialize_table(value, parent=path, output=output)

    for key, items in sorted(array_tables, key=lambda item: item[0]):
        path = (*parent, key)
        header = ".".join(_format_key(part) for part in path)
        for item in items:
            if output and output[-1] != "":
                output.append("")
            output.append(f"[[{header}]]")
            # Inline nested mappings so array entries stay self-contained.
            for entry_key, entry_value in sorted(item.items()):
                output.append(
                    f"{_format_key(entry_key)} = {_format_toml_value(entry_value)}"
                )


def _toml_dumps(data: Mapping[str, Any]) -> str:
    normalized = _normalize_for_toml(data)
    if not isinstance(normalized, Mapping):
        raise TypeError("Top level TOML document must be a mapping")
    output: list[str] = []
    _serialize_table(normalized, output=output)
    return "\n".join(output) + "\n"


def _read_toml(path: Path) -> Any:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except (FileNotFoundError, tomllib.TOMLDecodeError, OSError):
        return None


def _write_toml(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    data = _toml_dumps(payload)
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf8", dir=path.parent, delete=False
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass


# ---------------------------------------------------------------------------
# Configuration handling
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CollectionConfig:
    name: str
    path: str
    version: int
    section: str | None = None
    migration_key: str | None = None

    def requires_key(self) -> bool:
        return "{key}" in self.path

    def requires_guild(self) -> bool:
        return "{guild_id}" in self.path

    def resolve_path(
        self,
        base: Path,
        *,
        guild_id: str | None = None,
        key: str | None = None,
    ) -> Path:
        mapping: dict[str, str] = {}
        if self.requires_guild():
            if guild_id is None:
                raise ValueError(f"Collection {self.name!r} requires a guild id")
            mapping["guild_id"] = guild_id
        if self.requires_key():
            if key is None:
                raise ValueError(f"Collection {self.name!r} requires a key")
            mapping["key"] = key
        return base / self.path.format(**mapping)

    def record_directory(self, base: Path, *, guild_id: str | None = None) -> Path:
        if not self.requires_key():
            raise ValueError(f"Collection {self.name!r} does not store records per key")
        return self.resolve_path(base, guild_id=guild_id, key="__dummy__").parent

    def scope_directory(self, base: Path, *, guild_id: str | None = None) -> Path:
        if self.requires_key():
            return self.record_directory(base, guild_id=guild_id).resolve()
        return self.resolve_path(base, guild_id=guild_id).parent.resolve()


def _load_storage_config(path: Path) -> dict[str, CollectionConfig]:
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise RuntimeError(f"Missing storage configuration at {path}") from exc

    raw_collections = payload.get("collections")
    if not isinstance(raw_collections, Mapping):
        raise RuntimeError("storage configuration must define a [collections] table")

    collections: dict[str, CollectionConfig] = {}
    for name, options in raw_collections.items():
        if not isinstance(options, Mapping):
            continue
        path_value = str(options.get("path", "")).strip()
        if not path_value:
            raise RuntimeError(f"Collection {name!r} is missing a path entry")
        section_value = options.get("section")
        migration_key = options.get("migration")
        collections[str(name)] = CollectionConfig(
            name=str(name),
            path=path_value,
            version=int(options.get("version", 0)),
            section=str(section_value) if section_value is not None else None,
            migration_key=str(migration_key) if migration_key else str(name),
        )
    return collections


# ---------------------------------------------------------------------------
# Migration runner
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class MigrationModule:
    from_version: int
    to_version: int
    apply: Callable[["MigrationContext"], None]
    description: str


@dataclass(slots=True)
class MigrationContext:
    guild_id: str | None
    collection: CollectionConfig
    config: Mapping[str, CollectionConfig]
    base: Path
    scope_path: Path

    def log(self, message: str) -> None:
        print(f"[migration:{self.collection.name}] {message}")


class MissingMigrationError(RuntimeError):
    pass


class VersionManager:
    def __init__(
        self,
        *,
        base: Path,
        collections: Mapping[str, CollectionConfig],
        migrations_base: Path,
    ) -> None:
        self._base = base
        self._collections = collections
        self._migrations_base = migrations_base
        self._cache: dict[tuple[str, str | None], int] = {}
        self._modules: dict[str, list[MigrationModule]] = {}

    def ensure(self, collection: CollectionConfig, guild_id: str | None) -> None:
        migration_key = collection.migration_key or collection.name
        scope_key = (migration_key, guild_id)
        current = self._cache.get(scope_key)
        if current is None:
            current = self._read_version(collection, guild_id)
            self._cache[scope_key] = current
        target = collection.version
        if current >= target:
            return

        migrations = self._load_migrations(migration_key)
        plan: list[MigrationModule] = []
        version = current
        while version < target:
            step = next((m for m in migrations if m.from_version == version), None)
            if step is None:
                raise MissingMigrationError(
                    f"Missing migration for {collection.name!r}: {version} -> {target}"
                )
            plan.append(step)
            version = step.to_version

        if version != target:
            raise MissingMigrationError(
                f"Incomplete migration chain for {collection.name!r}: {current} -> {target}"
            )

        scope_path = collection.scope_directory(self._base, guild_id=guild_id)
        scope_path.mkdir(parents=True, exist_ok=True)
        context = MigrationContext(
            guild_id=guild_id,
            collection=collection,
            config=self._collections,
            base=self._base,
            scope_path=scope_path,
        )
        for step in plan:
            step.apply(context)
            self._cache[scope_key] = step.to_version
        self._write_version(collection, guild_id, target)
        self._cache[scope_key] = target

    def _versions_file(self, collection: CollectionConfig, guild_id: str | None) -> Path:
        return collection.scope_directory(self._base, guild_id=guild_id) / "schema_version.toml"

    def _read_version(self, collection: CollectionConfig, guild_id: str | None) -> int:
        payload = _read_toml(self._versions_file(collection, guild_id))
        if not isinstance(payload, Mapping):
            return 0
        collections = payload.get("collections")
        if not isinstance(collections, Mapping):
            return 0
        version = collections.get(collection.migration_key or collection.name)
        try:
            return int(version)
        except (TypeError, ValueError):
            return 0

    def _write_version(self, collection: CollectionConfig, guild_id: str | None, version: int) -> None:
        path = self._versions_file(collection, guild_id)
        payload = _read_toml(path)
        if not isinstance(payload, MutableMapping):
            payload = {}
        collections = payload.get("collections")
        if not isinstance(collections, MutableMapping):
            collections = {}
            payload["collections"] = collections
        collections[collection.migration_key or collection.name] = int(version)
        _write_toml(path, payload)

    def _load_migrations(self, collection: str) -> list[MigrationModule]:
        cached = self._modules.get(collection)
        if cached is not None:
            return cached
        directory = self._migrations_base / collection
        modules: list[MigrationModule] = []
        if directory.is_dir():
            for path in sorted(directory.glob("*.py")):
                if path.name.startswith("__"):
                    continue
                spec = importlib.util.spec_from_file_location(
                    f"migrations.{collection}.{path.stem}", path
                )
                if spec is None or spec.loader is None:
                    continue
                module = importlib.util.module_from_spec(spec)
                try:
                    spec.loader.exec_module(module)
                except Exception:
                    continue
                from_version = getattr(module, "FROM_VERSION", None)
                to_version = getattr(module, "TO_VERSION", None)
                apply = getattr(module, "apply", None)
                if not isinstance(from_version, int) or not isinstance(to_version, int):
                    continue
                if not callable(apply):
                    continue
                modules.append(
                    MigrationModule(
                        from_version=from_version,
                        to_version=to_version,
                        apply=apply,
                        description=str(getattr(module, "DESCRIPTION", path.stem)),
                    )
                )
        modules.sort(key=lambda module: module.from_version)
        self._modules[collection] = modules
        return modules


# ---------------------------------------------------------------------------
# DataStore implementation
# ---------------------------------------------------------------------------


class DataStore:
    """Asynchronous datastore routing collections based on configuration."""

    def __init__(self) -> None:
        self._package_root = Path(__file__).resolve().parent
        self._storage_root = resolve_storage_root(self._package_root.parent)
        self._collections = _load_storage_config(
            self._package_root / "storage.toml"
        )
        self._versions = VersionManager(
            base=self._storage_root,
            collections=self._collections,
            migrations_base=self._package_root / "migrations",
        )

    @property
    def storage_root(self) -> Path:
        return self._storage_root

    async def get(self, guild_id: int | str | None, collection: str) -> Mapping[str, Any]:
        async with _STORAGE_LOCK:
            config = self._collection(collection)
            return MappingProxyType(self._read_collection(config, self._guild_key(guild_id, config)))

    async def get_many(
        self, guild_id: int | str | None, collections: Iterable[str]
    ) -> dict[str, Mapping[str, Any]]:
        async with _STORAGE_LOCK:
            result: dict[str, Mapping[str, Any]] = {}
            for name in dict.fromkeys(collections):
                config = self._collection(name)
                guild_key = self._guild_key(guild_id, config)
                result[name] = MappingProxyType(self._read_collection(config, guild_key))
            return result

    async def set(
        self,
        guild_id: int | str | None,
        collection: str,
        key: str,
        value: Any,
    ) -> None:
        await self.bulk_set(guild_id, collection, [(key, value)])

    async def bulk_set(
        self, guild_id: int | str | None, collection: str, values: Iterable[tuple[str, Any]]
    ) -> None:
        async with _STORAGE_LOCK:
            config = self._collection(collection)
            guild_key = self._guild_key(guild_id, config)
            items = [(str(key), deepcopy(value)) for key, value in values]
            if items:
                self._write_many(config, guild_key, items)

    async def get_participant(
        self, guild_id: int | str, user_id: int | str
    ) -> Optional[Dict[str, Any]]:
        async with _STORAGE_LOCK:
            config = self._collection("players")
            guild_key = self._guild_key(guild_id, config)
            self._versions.ensure(config, guild_key)
            payload = _read_toml(self._record_path(config, guild_key, str(user_id)))
            if isinstance(payload, MutableMapping):
                return dict(payload)
            return None

    async def upsert_participant(self, guild_id: int | str, payload: Mapping[str, Any]) -> None:
        await self.set(guild_id, "players", str(payload.get("user_id")), dict(payload))

    def _collection(self, name: str) -> CollectionConfig:
        try:
            return self._collections[name]
        except KeyError as exc:
            raise KeyError(f"Unknown collection: {name}") from exc

    def _guild_key(self, guild_id: int | str | None, config: CollectionConfig) -> str | None:
        if config.requires_guild() and guild_id is None:
            raise ValueError(f"Collection {config.name!r} requires a guild id")
        return str(guild_id) if guild_id is not None else None

    def _read_collection(self, config: CollectionConfig, guild_id: str | None) -> dict[str, Any]:
        self._versions.ensure(config, guild_id)
        if config.requires_key():
            directory = config.record_directory(self._storage_root, guild_id=guild_id)
            if not directory.exists():
                return {}
            result: dict[str, Any] = {}
            for path in sorted(directory.glob("*.toml")):
                if path.name == "schema_version.toml":
                    continue
                payload = _read_toml(path)
                if isinstance(payload, MutableMapping):
                    result[unquote(path.stem)] = payload
            return result
        _, section = self._load_document(config, guild_id)
        return {str(key): value for key, value in section.items()}

    def _write_many(
        self,
        config: CollectionConfig,
        guild_id: str | None,
        values: Iterable[tuple[str, Any]],
    ) -> None:
        self._versions.ensure(config, guild_id)
        if config.requires_key():
            for key, value in values:
                _write_toml(self._record_path(config, guild_id, key), value)
            return
        document, section = self._load_document(config, guild_id)
        for key, value in values:
            section[key] = value
        _write_toml(config.resolve_path(self._storage_root, guild_id=guild_id), document)

    def _load_document(
        self, config: CollectionConfig, guild_id: str | None
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        payload = _read_toml(config.resolve_path(self._storage_root, guild_id=guild_id))
        if not isinstance(payload, MutableMapping):
            payload = {}
        if not config.section:
            return payload, payload
        section = payload.get(config.section)
        if not isinstance(section, MutableMapping):
            section = {}
            payload[config.section] = section
        return payload, section

    def _record_path(self, config: CollectionConfig, guild_id: str | None, key: str) -> Path:
        directory = config.record_directory(self._storage_root, guild_id=guild_id)
        return directory / f"{quote(key, safe='')}.toml"


__all__ = ["DataStore", "MissingMigrationError", "resolve_storage_root"]
