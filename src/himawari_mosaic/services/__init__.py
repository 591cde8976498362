"""Tile acquisition and streaming assembly."""

from .assembler import MosaicAssembler, decode_tile
from .coordinator import FetchCoordinator, FetchHandle
from .tiles import RetryPolicy, TileFetcher, TileState, build_http_client

__all__ = [
    "FetchCoordinator",
    "FetchHandle",
    "MosaicAssembler",
    "RetryPolicy",
    "TileFetcher",
    "TileState",
    "build_http_client",
    "decode_tile",
]
