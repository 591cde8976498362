from __future__ import annotations

import logging
import re
import warnings
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import httpx
from pydantic import ValidationError

from ..config import BASE_URL, DATASET_START, MINUTE_STEP, PUBLISH_LAG_MINUTES
from ..errors import MalformedLocator, SnapshotValidationWarning, UnrecognizedArtifactName
from ..models import GridCoordinate, SnapshotId

log = logging.getLogger(__name__)

ONESHOT_FORMAT = "%Y-%m-%d %H:%M"

# fulldisc-2022-09-21 00_10.png; older artifacts were written without padding
_ARTIFACT_NAME = re.compile(
    r"^fulldisc-(\d{4})-(\d{1,2})-(\d{1,2}) (\d{1,2})_(\d{1,2})(?:\.[A-Za-z0-9]+)?$"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def earliest_snapshot() -> SnapshotId:
    return SnapshotId.from_datetime(DATASET_START)


def closest_snapshot(now: Optional[datetime] = None) -> SnapshotId:
    """
    Snapshot published at or before `now`.

    Without an explicit instant the publication lag is subtracted from the current
    UTC time so that every tile of the returned snapshot should already exist.
    An instant in the future or before the dataset start is replaced by the earliest
    snapshot, with a SnapshotValidationWarning.
    """
    current = _utcnow()
    if now is None:
        instant = current - timedelta(minutes=PUBLISH_LAG_MINUTES)
        log.debug("closest_snapshot() set at: %s", instant)
    else:
        instant = _as_utc(now)
        if instant > current or instant < DATASET_START:
            earliest = earliest_snapshot()
            message = (
                f"{instant:%Y-%m-%d %H:%M} is outside the dataset "
                f"({DATASET_START:%Y-%m-%d %H:%M} .. now), using {earliest}"
            )
            log.warning(message)
            warnings.warn(message, SnapshotValidationWarning, stacklevel=2)
            return earliest
    floored = instant.replace(
        minute=instant.minute - instant.minute % MINUTE_STEP, second=0, microsecond=0
    )
    return SnapshotId.from_datetime(floored)


def snapshot_from_string(text: str) -> SnapshotId:
    """Parse the 'YYYY-MM-DD HH:MM' one-shot form (UTC)."""
    dt = datetime.strptime(text.strip(), ONESHOT_FORMAT)
    return closest_snapshot(dt.replace(tzinfo=timezone.utc))


def locator_for(
    snapshot: SnapshotId,
    coord: GridCoordinate,
    base_url: str = BASE_URL,
) -> str:
    s = snapshot
    locator = (
        f"{base_url.rstrip('/')}/{s.year}/{s.month:02}/{s.day:02}/"
        f"{s.hour:02}{s.minute:02}00_{coord.col}_{coord.row}.png"
    )
    try:
        url = httpx.URL(locator)
    except httpx.InvalidURL as exc:
        raise MalformedLocator(f"{locator!r}: {exc}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise MalformedLocator(f"{locator!r} is not an absolute http(s) URL")
    return locator


def pretty_filename(snapshot: SnapshotId, ext: str = "png") -> str:
    s = snapshot
    return (
        f"fulldisc-{s.year}-{s.month:02}-{s.day:02} "
        f"{s.hour:02}_{s.minute:02}.{ext.lstrip('.')}"
    )


def parse_snapshot_from_artifact_name(name: str | Path) -> SnapshotId:
    base = Path(name).name
    match = _ARTIFACT_NAME.match(base)
    if match is None:
        raise UnrecognizedArtifactName(f"{base!r} does not look like a fulldisc artifact")
    year, month, day, hour, minute = (int(part) for part in match.groups())
    try:
        return SnapshotId(year=year, month=month, day=day, hour=hour, minute=minute)
    except ValidationError as exc:
        raise UnrecognizedArtifactName(f"{base!r}: {exc}") from exc
