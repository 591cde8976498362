from __future__ import annotations

import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Optional

LOG_FORMAT = "[%(asctime)s][%(levelname)s][%(name)s][%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d][%H:%M:%S"


def log_file_name(day: Optional[date] = None) -> str:
    return f"himawari_mosaic_{(day or date.today()):%Y-%m-%d}.log"


def setup_logging(
    level: Optional[str] = None,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure the root logger once.
    Level precedence:
      - explicit `level` arg
      - DEBUG when `verbose`
      - env LOG_LEVEL (e.g., DEBUG/INFO/WARNING/ERROR)
      - default INFO
    Verbose runs additionally write a dated log file into `log_dir` (cwd by default).
    """
    root = logging.getLogger()
    if getattr(root, "_himawari_configured", False):  # idempotent
        return

    lvl_name = (level or ("DEBUG" if verbose else None) or os.environ.get("LOG_LEVEL") or "INFO").upper()
    lvl = getattr(logging, lvl_name, None)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if verbose:
        target = (log_dir or Path.cwd()) / log_file_name()
        handlers.append(logging.FileHandler(target, encoding="utf-8"))

    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(lvl)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(lvl, logging.WARNING))
    root._himawari_configured = True  # type: ignore[attr-defined]


def reset_logging() -> None:
    """Drop the handlers installed by setup_logging (used by tests)."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root._himawari_configured = False  # type: ignore[attr-defined]
