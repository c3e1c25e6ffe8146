"""Central logging setup for revesicle.

One file handler is active at a time: ``step.log`` in the working directory
for the orchestrator and ``process.log`` in a phase directory while that
phase runs. Console (stderr) output is optional and never duplicated.

Environment variables:
    REVESICLE_LOG_LEVEL       Root log level (default: INFO).
    REVESICLE_DEDUP_HEADERS   Suppress repeated identical header lines (1/true/yes/on).

Public API:
    setup_logging(path, also_console=True, suppress_initial_message=False)
    log_run_header(step_name)
    enable_header_dedup(enable=True)
    reset_logging()
"""
from __future__ import annotations

import logging
import os
import subprocess
from threading import RLock
from logging.handlers import WatchedFileHandler
from pathlib import Path

from revesicle import __version__ as _revesicle_version

_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
_TRUTHY = {"1", "true", "yes", "on"}

_header_cache: set[str] = set()
_dedup_headers_enabled: bool = str(os.getenv("REVESICLE_DEDUP_HEADERS", "0")).lower() in _TRUTHY
_header_lock = RLock()


def enable_header_dedup(enable: bool = True) -> None:
    """Enable/disable suppression of repeated header lines until the next reset_logging()."""
    global _dedup_headers_enabled
    with _header_lock:
        _dedup_headers_enabled = bool(enable)
        if not enable:
            _header_cache.clear()


class ResilientWatchedFileHandler(WatchedFileHandler):
    """WatchedFileHandler that recreates a deleted log directory and retries once.

    Phase directories of a previous run may be removed while a handler is
    still registered (tests clean up temporary workdirs the same way).
    """

    def emit(self, record):  # type: ignore[override]
        try:
            super().emit(record)
            return
        except FileNotFoundError:
            Path(getattr(self, "baseFilename", ".")).parent.mkdir(parents=True, exist_ok=True)
        try:
            super().emit(record)
        except OSError:
            self.handleError(record)


def _is_console(h: logging.Handler) -> bool:
    return isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)


def setup_logging(log_path, also_console: bool = True, suppress_initial_message: bool = False) -> None:
    """Point the root logger at ``log_path``.

    Handlers for other files are closed and removed; an existing handler for
    the same file is kept. The root level is lowered to ``REVESICLE_LOG_LEVEL``
    but never raised. With ``also_console`` exactly one stderr handler is
    present, otherwise console handlers are removed.
    """
    path = Path(log_path).resolve()
    root = logging.getLogger()
    env_level = os.getenv("REVESICLE_LOG_LEVEL", "INFO").upper()
    desired_level = getattr(logging, env_level, logging.INFO)
    if root.level > desired_level:
        root.setLevel(desired_level)
    effective_level = logging.getLevelName(root.level)

    existing_same = False
    for h in list(root.handlers):
        if not isinstance(h, logging.FileHandler):
            continue
        existing = Path(getattr(h, "baseFilename", ""))
        if existing.parent.exists() and existing.resolve() == path:
            existing_same = True
            continue
        root.removeHandler(h)
        h.close()

    consoles = [h for h in root.handlers if _is_console(h)]
    if also_console and not consoles:
        ch = logging.StreamHandler()
        ch.setLevel(root.level)
        ch.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(ch)
    elif not also_console:
        for h in consoles:
            root.removeHandler(h)
            h.close()

    if not existing_same:
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = ResilientWatchedFileHandler(path, mode="a", encoding="utf-8", delay=False)
        fh.setLevel(root.level)
        fh.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(fh)
        if not suppress_initial_message:
            root.info(f"Logging initialized. Log file: {path} (level={effective_level})")


def _git_commit_short() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "--short", "HEAD"], stderr=subprocess.DEVNULL, timeout=1)
        return out.decode().strip()
    except (OSError, subprocess.SubprocessError):  # pragma: no cover
        return ""


def log_run_header(step_name: str):
    """Emit ``revesicle <version> | step=<step_name> | git=<short-hash>``.

    The git part is omitted outside a repository.
    """
    commit = _git_commit_short()
    parts = [f"revesicle {_revesicle_version}", f"step={step_name}"]
    if commit:
        parts.append(f"git={commit}")
    header = " | ".join(parts)
    global _dedup_headers_enabled
    # The variable may be set after import (tests do).
    if not _dedup_headers_enabled and str(os.getenv("REVESICLE_DEDUP_HEADERS", "0")).lower() in _TRUTHY:
        _dedup_headers_enabled = True
    if _dedup_headers_enabled:
        with _header_lock:
            if header in _header_cache:
                return
            _header_cache.add(header)
    logging.getLogger().info(header)


def reset_logging():
    """Close and remove all handlers of the root and named loggers; clear the header cache."""
    logging.shutdown()
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for logger_name in list(logging.Logger.manager.loggerDict):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            handler.close()
        logger.filters = []
    with _header_lock:
        _header_cache.clear()
