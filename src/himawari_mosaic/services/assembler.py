from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Callable, List, Optional, Set

from PIL import Image

from ..config import GRID_SIZE, TILE_COUNT, TILE_EDGE
from ..errors import DecodeError, InvariantViolation
from ..models import GridCoordinate, TileDelivery

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def decode_tile(payload: bytes, tile_edge: int = TILE_EDGE) -> Image.Image:
    try:
        with Image.open(BytesIO(payload)) as img:
            tile = img.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"{len(payload)} bytes are not a readable image: {exc}") from exc
    if tile.size != (tile_edge, tile_edge):
        raise DecodeError(f"tile is {tile.size[0]}x{tile.size[1]}, expected {tile_edge}x{tile_edge}")
    return tile


class MosaicAssembler:
    """
    Pastes tile deliveries into a pre-allocated canvas as they arrive.

    Placement is keyed by coordinate, so arrival order does not matter. Assembly is
    complete after one delivery per grid cell; duplicates are ignored and undecodable
    tiles leave their region blank.
    """

    def __init__(
        self,
        tile_edge: int = TILE_EDGE,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.tile_edge = tile_edge
        self.total = TILE_COUNT
        self.on_progress = on_progress
        self.consumed = 0
        self.blank: List[GridCoordinate] = []
        self._seen: Set[GridCoordinate] = set()
        edge = GRID_SIZE * tile_edge
        self._canvas: Optional[Image.Image] = Image.new("RGB", (edge, edge))

    @property
    def complete(self) -> bool:
        return self.consumed >= self.total

    def _accept(self, delivery: TileDelivery) -> bool:
        if self._canvas is None:
            raise InvariantViolation("canvas already handed off")
        coord = delivery.coord
        if not isinstance(coord, GridCoordinate):
            raise InvariantViolation(f"delivery carries {coord!r}, not a GridCoordinate")
        if coord in self._seen:
            log.warning("Duplicate delivery for %s ignored", coord)
            return False
        self._seen.add(coord)
        return True

    def _record(self, coord: GridCoordinate, tile: Optional[Image.Image]) -> None:
        if self._canvas is None:
            raise InvariantViolation("canvas already handed off")
        if tile is None:
            self.blank.append(coord)
        else:
            self._canvas.paste(tile, coord.pixel_offset(self.tile_edge))
        self.consumed += 1
        if self.on_progress is not None:
            self.on_progress(self.consumed, self.total)

    def _decode(self, delivery: TileDelivery) -> Optional[Image.Image]:
        try:
            return decode_tile(delivery.payload, self.tile_edge)
        except DecodeError as exc:
            log.error("tile %s left blank: %s", delivery.coord, exc)
            return None

    def place(self, delivery: TileDelivery) -> bool:
        """Consume one delivery on the calling thread. Returns False when it was a duplicate."""
        if not self._accept(delivery):
            return False
        self._record(delivery.coord, self._decode(delivery))
        return True

    def take_canvas(self) -> Image.Image:
        if not self.complete:
            raise InvariantViolation(f"canvas incomplete: {self.consumed}/{self.total} tiles")
        if self._canvas is None:
            raise InvariantViolation("canvas already handed off")
        canvas, self._canvas = self._canvas, None
        return canvas

    async def assemble(self, conduit: "asyncio.Queue[TileDelivery]") -> Image.Image:
        while not self.complete:
            delivery = await conduit.get()
            try:
                if self._accept(delivery):
                    # Queue.get does not yield while items are waiting
                    tile = await asyncio.to_thread(self._decode, delivery)
                    self._record(delivery.coord, tile)
            finally:
                conduit.task_done()
        log.info(
            "Assembled %d tiles (%d blank)", self.consumed, len(self.blank)
        )
        return self.take_canvas()
