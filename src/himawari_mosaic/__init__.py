"""Himawari full-disc tile downloader and mosaic assembler."""

from .errors import MosaicError
from .models import GridCoordinate, SnapshotId, TileDelivery
from .services.artifacts import MosaicArtifact, finalize
from .services.pipeline import run_snapshot
from .services.snapshots import closest_snapshot, locator_for, parse_snapshot_from_artifact_name
from .version import __version__

__all__ = [
    "GridCoordinate",
    "MosaicArtifact",
    "MosaicError",
    "SnapshotId",
    "TileDelivery",
    "__version__",
    "closest_snapshot",
    "finalize",
    "locator_for",
    "parse_snapshot_from_artifact_name",
    "run_snapshot",
]
