"""Choosing where on the farm the old portal is buried."""

from __future__ import annotations

import random

from ..constants import WEED_QIID
from ..models.farm import GRASS, FarmSnapshot, TileCoordinate


class PlacementSelector:
    """Pick a visible, walkable farm tile for the artifact.

    Weed tiles are preferred so the artifact passes for ordinary clutter.
    Without weeds a grass tile is used and its grass is cleared as part of the
    selection; the caller places the artifact in the same handler so nobody
    observes bare ground.  ``None`` means no tile qualifies and the caller
    should retry on a later tick.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        decoy_id: str = WEED_QIID,
        ground_cover: str = GRASS,
    ) -> None:
        self.rng = rng or random.Random()
        self.decoy_id = decoy_id
        self.ground_cover = ground_cover

    @staticmethod
    def is_candidate(world: FarmSnapshot, tile: TileCoordinate) -> bool:
        return not world.is_obscured(tile) and world.is_passable(tile)

    def decoy_candidates(self, world: FarmSnapshot) -> list[TileCoordinate]:
        return [
            tile
            for tile in world.tiles_with_object(self.decoy_id)
            if self.is_candidate(world, tile)
        ]

    def ground_cover_candidates(self, world: FarmSnapshot) -> list[TileCoordinate]:
        return [
            tile
            for tile in world.tiles_with_ground_cover(self.ground_cover)
            if self.is_candidate(world, tile)
        ]

    def select_tile(self, world: FarmSnapshot) -> TileCoordinate | None:
        decoys = self.decoy_candidates(world)
        if decoys:
            return self.rng.choice(decoys)

        cover = self.ground_cover_candidates(world)
        if not cover:
            return None
        tile = cover[self.rng.randrange(len(cover))]
        world.remove_ground_cover(tile)
        return tile


__all__ = ["PlacementSelector"]
