from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .config import GRID_SIZE, MINUTE_STEP
from .errors import InvariantViolation


@dataclass(frozen=True)
class GridCoordinate:
    """One cell of the fixed 20x20 tile grid."""

    row: int
    col: int

    def __post_init__(self) -> None:
        for name in ("row", "col"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvariantViolation(f"{name} must be an int, got {value!r}")
            if not 0 <= value < GRID_SIZE:
                raise InvariantViolation(
                    f"{name}={value} outside [0, {GRID_SIZE - 1}]"
                )

    def __str__(self) -> str:
        return f"R{self.row}_C{self.col}"

    @classmethod
    def all(cls) -> Iterator["GridCoordinate"]:
        for row in range(GRID_SIZE):
            for col in range(GRID_SIZE):
                yield cls(row=row, col=col)

    def pixel_offset(self, tile_edge: int) -> Tuple[int, int]:
        # PIL box origin: x follows columns, y follows rows
        return self.col * tile_edge, self.row * tile_edge


class SnapshotId(BaseModel):
    year: int
    month: int
    day: int
    hour: int
    minute: int

    model_config = ConfigDict(frozen=True)

    @field_validator("minute")
    @classmethod
    def check_minute(cls, value: int) -> int:
        if value % MINUTE_STEP or not 0 <= value <= 60 - MINUTE_STEP:
            raise ValueError(
                f"minute must be a multiple of {MINUTE_STEP} in [0, {60 - MINUTE_STEP}]"
            )
        return value

    @model_validator(mode="after")
    def check_calendar(self) -> "SnapshotId":
        # raises ValueError for e.g. February 30th or hour 24
        datetime(self.year, self.month, self.day, self.hour, self.minute)
        return self

    @classmethod
    def from_datetime(cls, dt: datetime) -> "SnapshotId":
        return cls(
            year=dt.year,
            month=dt.month,
            day=dt.day,
            hour=dt.hour,
            minute=dt.minute,
        )

    def as_datetime(self) -> datetime:
        return datetime(
            self.year, self.month, self.day, self.hour, self.minute, tzinfo=timezone.utc
        )

    def __str__(self) -> str:
        return f"{self.as_datetime():%Y-%m-%d %H:%M}"


@dataclass(frozen=True)
class TileDelivery:
    coord: GridCoordinate
    payload: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.payload)
