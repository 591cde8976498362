from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PIL import Image
from pydantic import BaseModel

from ..config import GRID_SIZE, TILE_EDGE
from ..errors import EncodeError, PersistError
from ..models import SnapshotId
from .snapshots import parse_snapshot_from_artifact_name, pretty_filename

log = logging.getLogger(__name__)

# a full disc is 121 MP, above Pillow's default decompression-bomb threshold
if Image.MAX_IMAGE_PIXELS is not None:
    Image.MAX_IMAGE_PIXELS = max(Image.MAX_IMAGE_PIXELS, (GRID_SIZE * TILE_EDGE) ** 2)

RESIZE_QUALITY = 90


def save_atomically(image: Image.Image, target: Path, **params) -> None:
    """Encode next to `target` and rename into place; a failed encode leaves no file behind."""
    partial = target.with_name(target.name + ".partial")
    try:
        image.save(partial, **params)
        partial.replace(target)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise


class MosaicArtifact(BaseModel):
    """A finished mosaic as it exists on disk."""

    path: Path
    width: int
    height: int
    size: int
    snapshot: SnapshotId

    @classmethod
    def from_path(cls, path: Path, snapshot: Optional[SnapshotId] = None) -> "MosaicArtifact":
        """Read dimensions and size from the file itself, never from memory."""
        try:
            resolved = Path(path).resolve(strict=True)
            with Image.open(resolved) as img:
                width, height = img.size
            size = resolved.stat().st_size
        except (OSError, ValueError) as exc:
            raise PersistError(f"cannot read back {path}: {exc}") from exc
        return cls(
            path=resolved,
            width=width,
            height=height,
            size=size,
            snapshot=snapshot or parse_snapshot_from_artifact_name(resolved.name),
        )

    def resize(self, width: int, height: int) -> None:
        """
        Downscale to width x height and re-encode as JPEG.
        Note: the original PNG is replaced by `<stem>.jpg`.
        """
        source = self.path
        target = source.with_suffix(".jpg")
        try:
            with Image.open(source) as img:
                resized = img.convert("RGB").resize((width, height), Image.Resampling.LANCZOS)
            save_atomically(resized, target, format="JPEG", quality=RESIZE_QUALITY)
            if target != source:
                source.unlink()
        except (OSError, ValueError) as exc:
            raise EncodeError(f"resize of {source} failed: {exc}") from exc

        try:
            refreshed = MosaicArtifact.from_path(target, self.snapshot)
        except PersistError as exc:
            raise EncodeError(str(exc)) from exc
        self.path = refreshed.path
        self.width = refreshed.width
        self.height = refreshed.height
        self.size = refreshed.size
        log.debug("Resize, success: %s", self.path)


def finalize(canvas: Image.Image, snapshot: SnapshotId, destination_dir: Path) -> MosaicArtifact:
    destination_dir = Path(destination_dir).expanduser()
    target = destination_dir / pretty_filename(snapshot)
    try:
        destination_dir.mkdir(parents=True, exist_ok=True)
        save_atomically(canvas, target, format="PNG")
    except (OSError, ValueError) as exc:
        raise PersistError(f"cannot write {target}: {exc}") from exc
    artifact = MosaicArtifact.from_path(target, snapshot)
    log.info(
        "Saved %s (%dx%d, %.1f MB)",
        artifact.path,
        artifact.width,
        artifact.height,
        artifact.size / 1_000_000,
    )
    return artifact
