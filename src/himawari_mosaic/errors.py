from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import GridCoordinate


class MosaicError(Exception):
    """Base class for every runtime failure raised by the mosaic pipeline."""


class TransportError(MosaicError):
    """Connection-level failure, or a zero-byte tile body."""


class HttpStatusError(MosaicError):
    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"HTTP {status_code} for {url}")
        self.status_code = status_code
        self.url = url


class TileFetchFailed(MosaicError):
    def __init__(
        self,
        coord: "GridCoordinate",
        attempts: int,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"tile {coord} failed after {attempts} attempt(s): {last_error}"
        )
        self.coord = coord
        self.attempts = attempts
        self.last_error = last_error


class SnapshotDeadlineExceeded(MosaicError):
    pass


class DecodeError(MosaicError):
    pass


class InvariantViolation(Exception):
    """
    A programming or configuration error: never retried and never downgraded to a
    warning. Not a MosaicError, so loops that survive runtime failures stop on it.
    """


class MalformedLocator(InvariantViolation):
    pass


class UnrecognizedArtifactName(MosaicError):
    pass


class EncodeError(MosaicError):
    pass


class PersistError(MosaicError):
    pass


class WallpaperError(MosaicError):
    pass


class ConfigFileError(MosaicError):
    """The YAML config file cannot be read or does not describe a UserConfig."""


class SnapshotValidationWarning(UserWarning):
    """An out-of-range snapshot was requested and replaced by the earliest one."""
