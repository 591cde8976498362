from __future__ import annotations

import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from .errors import WallpaperError

log = logging.getLogger(__name__)

_GNOME_BACKGROUND = "org.gnome.desktop.background"
# SystemParametersInfoW action and flags (SPIF_UPDATEINIFILE | SPIF_SENDCHANGE)
_SPI_SETDESKWALLPAPER = 20
_SPIF_PERSIST = 0x01 | 0x02


def _run(cmd: List[str]) -> None:
    log.debug("running %s", cmd)
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise WallpaperError(f"{cmd[0]} is not available: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        raise WallpaperError(
            f"{' '.join(cmd)} exited with {exc.returncode}: {(exc.stderr or '').strip()}"
        ) from exc


def wallpaper_commands(path: Path, platform: str) -> List[List[str]]:
    """Shell commands that set `path` as desktop background on `platform`."""
    if platform.startswith("linux"):
        uri = path.as_uri()
        return [
            ["gsettings", "set", _GNOME_BACKGROUND, "picture-uri", uri],
            ["gsettings", "set", _GNOME_BACKGROUND, "picture-uri-dark", uri],
            ["gsettings", "set", _GNOME_BACKGROUND, "picture-options", "scaled"],
        ]
    if platform == "darwin":
        script = f'tell application "Finder" to set desktop picture to POSIX file "{path}"'
        return [["osascript", "-e", script]]
    raise WallpaperError(f"no wallpaper command for platform {platform!r}")


def _set_windows_wallpaper(path: Path) -> None:
    import ctypes

    ok = ctypes.windll.user32.SystemParametersInfoW(  # type: ignore[attr-defined]
        _SPI_SETDESKWALLPAPER, 0, str(path), _SPIF_PERSIST
    )
    if not ok:
        raise WallpaperError(f"SystemParametersInfoW refused {path}")


def set_wallpaper(path: Path, platform: Optional[str] = None) -> None:
    platform = platform or sys.platform
    path = Path(path).resolve()
    if not path.is_file() or path.stat().st_size == 0:
        raise WallpaperError(f"{path} is missing or empty, refusing to set it as wallpaper")

    log.info("Setting wallpaper to %s", path)
    if platform == "win32":
        _set_windows_wallpaper(path)
        return
    for cmd in wallpaper_commands(path, platform):
        _run(cmd)


def open_in_viewer(path: Path, platform: Optional[str] = None) -> None:
    platform = platform or sys.platform
    path = Path(path).resolve()
    if platform == "win32":
        os.startfile(path)  # type: ignore[attr-defined]
        return
    opener = "open" if platform == "darwin" else "xdg-open"
    try:
        subprocess.Popen([opener, str(path)])
    except OSError as exc:
        raise WallpaperError(f"cannot open {path} with {opener}: {exc}") from exc
