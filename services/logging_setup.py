"""Centralized logging setup for the file server.

Design goals
- One core log for application events and an optional access log.
- The log file rotates by size; rotated copies are gzip-compressed and pruned
  by age so a long-running server does not fill the disk.

Notes
- Setup is idempotent: calling it again replaces the handlers instead of
  stacking duplicates (tests and reloads create several apps per process).
"""

from __future__ import annotations

import glob
import gzip
import logging
import os
import shutil
import sys
import time
from logging.handlers import RotatingFileHandler
from typing import Dict, List, Optional, TYPE_CHECKING

from services.errors import ConfigError

if TYPE_CHECKING:
    from services.config import LoggingConfig


CORE_LOGGER_NAME = "fileserver"
ACCESS_LOGGER_NAME = "fileserver.access"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

_STATE: Dict[str, object] = {
    "configured": False,
    "handlers": [],
    "access_enabled": False,
}


def parse_level(level_name: Optional[str]) -> int:
    s = (level_name or "").strip().upper()
    if s in ("CRITICAL", "FATAL"):
        return logging.CRITICAL
    if s == "ERROR":
        return logging.ERROR
    if s in ("WARN", "WARNING"):
        return logging.WARNING
    if s in ("DEBUG", "TRACE"):
        return logging.DEBUG
    return logging.INFO


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as sf, gzip.open(dest, "wb") as df:
        shutil.copyfileobj(sf, df)
    os.remove(source)


class AgedRotatingFileHandler(RotatingFileHandler):
    """Size-based rotation with gzip backups and age-based pruning."""

    def __init__(self, filename: str, *, max_bytes: int, backups: int, max_age_days: int) -> None:
        super().__init__(
            filename,
            maxBytes=max_bytes,
            backupCount=backups,
            encoding="utf-8",
            delay=True,
        )
        self.max_age_days = max_age_days
        self.namer = lambda name: name + ".gz"
        self.rotator = _gzip_rotator

    def backups(self) -> List[str]:
        return sorted(glob.glob(glob.escape(self.baseFilename) + ".*.gz"))

    def prune_old_backups(self, now: Optional[float] = None) -> List[str]:
        if self.max_age_days <= 0:
            return []
        cutoff = (now if now is not None else time.time()) - self.max_age_days * 86400
        removed: List[str] = []
        for path in self.backups():
            try:
                if os.path.getmtime(path) < cutoff:
                    os.remove(path)
                    removed.append(path)
            except FileNotFoundError:
                continue
        return removed

    def doRollover(self) -> None:
        super().doRollover()
        self.prune_old_backups()


def _check_writable(path: str) -> None:
    if os.path.exists(path):
        if os.path.isdir(path) or not os.access(path, os.W_OK):
            raise ConfigError(f"log file is not writable: {path}")
        return
    parent = os.path.dirname(os.path.abspath(path))
    if os.path.isdir(parent) and not os.access(parent, os.W_OK):
        raise ConfigError(f"log directory is not writable: {parent}")


def _mk_handler(cfg: "LoggingConfig") -> logging.Handler:
    if not cfg.log_file:
        return logging.StreamHandler(sys.stderr)
    _check_writable(cfg.log_file)
    os.makedirs(os.path.dirname(os.path.abspath(cfg.log_file)), exist_ok=True)
    return AgedRotatingFileHandler(
        cfg.log_file,
        max_bytes=max(1, cfg.log_max_size) * 1024 * 1024,
        backups=max(1, cfg.log_max_files),
        max_age_days=cfg.log_max_age,
    )


def setup_logging(cfg: "LoggingConfig") -> None:
    """Configure core/access loggers with one shared handler."""
    teardown_logging()

    handler = _mk_handler(cfg)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    core = logging.getLogger(CORE_LOGGER_NAME)
    core.propagate = False
    core.addHandler(handler)
    core.setLevel(parse_level(cfg.log_severity))

    # Child of core: inherits the handler through propagation.
    access = logging.getLogger(ACCESS_LOGGER_NAME)
    access.setLevel(logging.INFO)

    _STATE["configured"] = True
    _STATE["handlers"] = [handler]
    _STATE["access_enabled"] = bool(cfg.access_log)

    core.info("logger minimum severity is '%s'", logging.getLevelName(core.level))


def teardown_logging() -> None:
    core = logging.getLogger(CORE_LOGGER_NAME)
    for h in list(_STATE.get("handlers") or []):  # type: ignore[union-attr]
        core.removeHandler(h)
        h.close()
    core.propagate = True
    _STATE["handlers"] = []
    _STATE["configured"] = False
    _STATE["access_enabled"] = False


def access_enabled() -> bool:
    return bool(_STATE.get("access_enabled"))


def core_logger() -> logging.Logger:
    return logging.getLogger(CORE_LOGGER_NAME)


def access_logger() -> logging.Logger:
    return logging.getLogger(ACCESS_LOGGER_NAME)


def core_log(level: str, msg: str, **extra) -> None:
    """Write ``msg | k=v, ...`` into the core log."""
    if extra:
        tail = ", ".join(f"{k}={v}" for k, v in extra.items())
        full = f"{msg} | {tail}"
    else:
        full = msg
    logger = core_logger()
    fn = getattr(logger, str(level or "info").lower(), None)
    if callable(fn):
        fn(full)
    else:
        logger.info(full)
