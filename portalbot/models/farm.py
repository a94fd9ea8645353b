"""Farm layout models consumed by artifact placement.

The farm is not simulated here.  A :class:`FarmSnapshot` is the host's view of
the shared farm at the moment a tick is handled: which objects sit on which
tiles, where grass grows, which tall scenery hides tiles from view, and which
tiles cannot be walked on.  Snapshots are rebuilt from storage for every tick.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple

from ._validation import (
    FieldSpec,
    MappingSpec,
    ModelValidator,
    SequenceSpec,
    is_non_empty_str,
    is_tile_key,
)

GRASS = "grass"


@dataclass(frozen=True, slots=True, order=True)
class TileCoordinate:
    """Integer tile position on the farm."""

    x: int
    y: int

    def to_key(self) -> str:
        return f"{self.x},{self.y}"

    @classmethod
    def from_key(cls, key: str) -> "TileCoordinate":
        try:
            x_str, y_str = str(key).split(",")
            return cls(int(x_str), int(y_str))
        except ValueError:
            raise ValueError(f"Invalid tile key: {key!r}") from None

    def __str__(self) -> str:
        return self.to_key()


@dataclass(slots=True)
class WorldObject:
    """A placeable object occupying a single tile."""

    qualified_id: str
    quest_item: bool = False
    spawned: bool = False

    def to_mapping(self, tile: TileCoordinate) -> Dict[str, Any]:
        return {
            "tile": tile.to_key(),
            "qualified_id": self.qualified_id,
            "quest_item": self.quest_item,
            "spawned": self.spawned,
        }


@dataclass(frozen=True, slots=True)
class SceneryFeature:
    """Tall scenery such as a tree or bush that hides the tiles above it."""

    kind: str
    height: int = 1

    def hides(self, feature_tile: TileCoordinate, tile: TileCoordinate) -> bool:
        if feature_tile.x != tile.x:
            return False
        return 0 < feature_tile.y - tile.y <= self.height


@dataclass(slots=True)
class FarmSnapshot:
    """The shared farm as seen by the authoritative participant."""

    total_days: int = 1
    raining: bool = False
    objects: Dict[TileCoordinate, WorldObject] = field(default_factory=dict)
    ground_cover: Dict[TileCoordinate, str] = field(default_factory=dict)
    scenery: Dict[TileCoordinate, SceneryFeature] = field(default_factory=dict)
    blocked: Set[TileCoordinate] = field(default_factory=set)

    # -- tile predicates -------------------------------------------------

    def object_at(self, tile: TileCoordinate) -> Optional[WorldObject]:
        return self.objects.get(tile)

    def ground_cover_at(self, tile: TileCoordinate) -> Optional[str]:
        return self.ground_cover.get(tile)

    def is_obscured(self, tile: TileCoordinate) -> bool:
        # TODO: buildings hide tiles as well; they are not part of the snapshot yet.
        return any(
            feature.hides(feature_tile, tile)
            for feature_tile, feature in self.scenery.items()
        )

    def is_passable(self, tile: TileCoordinate) -> bool:
        return tile not in self.blocked

    # -- queries ---------------------------------------------------------

    def tiles_with_object(self, qualified_id: str) -> List[TileCoordinate]:
        return sorted(
            tile for tile, obj in self.objects.items() if obj.qualified_id == qualified_id
        )

    def tiles_with_ground_cover(self, kind: str = GRASS) -> List[TileCoordinate]:
        return sorted(tile for tile, cover in self.ground_cover.items() if cover == kind)

    def find_object(self, qualified_id: str) -> Optional[Tuple[TileCoordinate, WorldObject]]:
        for tile in self.tiles_with_object(qualified_id):
            return tile, self.objects[tile]
        return None

    def iter_objects(self) -> Iterator[Tuple[TileCoordinate, WorldObject]]:
        return iter(sorted(self.objects.items()))

    # -- mutation --------------------------------------------------------

    def place_object(self, tile: TileCoordinate, obj: WorldObject) -> Optional[WorldObject]:
        """Put ``obj`` on ``tile`` and return whatever it displaced."""

        displaced = self.objects.get(tile)
        self.objects[tile] = obj
        return displaced

    def remove_object(self, tile: TileCoordinate) -> Optional[WorldObject]:
        return self.objects.pop(tile, None)

    def remove_ground_cover(self, tile: TileCoordinate) -> Optional[str]:
        return self.ground_cover.pop(tile, None)

    # -- persistence -----------------------------------------------------

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "total_days": self.total_days,
            "raining": self.raining,
            "objects": [obj.to_mapping(tile) for tile, obj in self.iter_objects()],
            "ground_cover": {
                tile.to_key(): kind for tile, kind in sorted(self.ground_cover.items())
            },
            "scenery": [
                {"tile": tile.to_key(), "kind": feature.kind, "height": feature.height}
                for tile, feature in sorted(self.scenery.items())
            ],
            "blocked": [tile.to_key() for tile in sorted(self.blocked)],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FarmSnapshot":
        objects: Dict[TileCoordinate, WorldObject] = {}
        for entry in data.get("objects", ()):
            tile = TileCoordinate.from_key(entry["tile"])
            objects[tile] = WorldObject(
                qualified_id=str(entry["qualified_id"]),
                quest_item=bool(entry.get("quest_item", False)),
                spawned=bool(entry.get("spawned", False)),
            )
        scenery: Dict[TileCoordinate, SceneryFeature] = {}
        for entry in data.get("scenery", ()):
            scenery[TileCoordinate.from_key(entry["tile"])] = SceneryFeature(
                kind=str(entry.get("kind", "tree")),
                height=max(1, int(entry.get("height", 1))),
            )
        return cls(
            total_days=max(1, int(data.get("total_days", 1))),
            raining=bool(data.get("raining", False)),
            objects=objects,
            ground_cover={
                TileCoordinate.from_key(key): str(kind)
                for key, kind in dict(data.get("ground_cover", {})).items()
            },
            scenery=scenery,
            blocked={TileCoordinate.from_key(key) for key in data.get("blocked", ())},
        )


def _is_object_entry(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and is_tile_key(value.get("tile"))
        and is_non_empty_str(value.get("qualified_id"))
    )


def _is_scenery_entry(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and is_tile_key(value.get("tile"))
        and isinstance(value.get("height", 1), int)
    )


class FarmSnapshotValidator(ModelValidator):
    model = FarmSnapshot
    fields = {
        "total_days": FieldSpec(int, "an elapsed day count", required=False),
        "raining": FieldSpec(bool, "a rain flag", required=False),
        "objects": FieldSpec(
            SequenceSpec(_is_object_entry), "a list of placed objects", required=False
        ),
        "ground_cover": FieldSpec(
            MappingSpec(is_tile_key, str), "a mapping of tiles to ground cover", required=False
        ),
        "scenery": FieldSpec(
            SequenceSpec(_is_scenery_entry), "a list of scenery features", required=False
        ),
        "blocked": FieldSpec(
            SequenceSpec(is_tile_key), "a list of blocked tile keys", required=False
        ),
    }


FarmSnapshot.validator = FarmSnapshotValidator  # type: ignore[attr-defined]


__all__ = [
    "FarmSnapshot",
    "GRASS",
    "SceneryFeature",
    "TileCoordinate",
    "WorldObject",
]
