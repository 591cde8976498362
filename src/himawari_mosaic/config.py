import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from .version import __version__

BASE_URL = os.environ.get(
    "HIMAWARI_BASE_URL", "https://himawari8.nict.go.jp/img/D531106/20d/550"
).rstrip("/")
APP_VERSION = os.environ.get("APP_VERSION", __version__)
USER_AGENT = f"himawari-mosaic/{APP_VERSION}"
REQUEST_TIMEOUT = 30.0
CONNECT_TIMEOUT = 20.0
MAX_CONNECTIONS = int(os.environ.get("HIMAWARI_MAX_CONNECTIONS", "32"))

GRID_SIZE = 20
TILE_EDGE = 550
TILE_COUNT = GRID_SIZE * GRID_SIZE

# publisher cadence and the delay before a snapshot is fully available
MINUTE_STEP = 10
PUBLISH_LAG_MINUTES = 20
DATASET_START = datetime(2015, 7, 7, 1, 50, tzinfo=timezone.utc)

# 0 means retry forever
RETRY_MAX_ATTEMPTS = int(os.environ.get("HIMAWARI_RETRY_MAX_ATTEMPTS", "8"))
RETRY_BASE_DELAY = float(os.environ.get("HIMAWARI_RETRY_BASE_DELAY", "0.5"))
RETRY_MAX_DELAY = float(os.environ.get("HIMAWARI_RETRY_MAX_DELAY", "30"))
# seconds, 0 disables
SNAPSHOT_DEADLINE = float(os.environ.get("HIMAWARI_SNAPSHOT_DEADLINE", "900"))

RESIZE_EDGE = 5120
REFRESH_INTERVAL = 601.0


def _app_root() -> Path:
    """
    Application root:
    - in a frozen bundle, the folder of the executable;
    - in development, the repository root.
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    try:
        return Path(__file__).resolve().parents[2]
    except Exception:  # noqa: BLE001
        return Path.cwd()


def _user_data_dir() -> Path:
    home = Path.home()
    return home / ".local" / "share" / "himawari-mosaic"


def _resolve_app_data_dir() -> Path:
    # 1) explicit override
    custom = os.environ.get("HIMAWARI_APP_DATA")
    if custom:
        return Path(custom).expanduser()

    # 2) frozen bundle keeps data next to the executable
    if getattr(sys, "frozen", False):
        return _app_root()

    # 3) user data dir
    return _user_data_dir()


APP_DATA_DIR = _resolve_app_data_dir()
COMPLETED_DIR_OVERRIDE = os.environ.get("HIMAWARI_COMPLETED_DIR") or None
DEFAULT_COMPLETED_DIR = Path(COMPLETED_DIR_OVERRIDE or APP_DATA_DIR / "completed").expanduser()
