"""Phase-tagged log lines and selective configuration summaries.

``log_relevant_config`` prints only the dotted config paths a phase actually
uses, as a single line, an aligned table, or both
(``REVESICLE_LOG_TABLE_MODE`` = ``line`` | ``table`` | ``both``; default table).
"""
from __future__ import annotations
from typing import Any, Iterable, Callable
import os
import logging

StepLogFn = Callable[[str], None]


def _extract(obj: Any, path: str) -> Any:
    cur = obj
    for part in path.split('.'):
        if cur is None:
            return None
        if hasattr(cur, part):
            cur = getattr(cur, part)
        elif isinstance(cur, dict):
            cur = cur.get(part)
        else:
            return None
    return cur


def log_step_header(step: str, msg: str, log_fn: StepLogFn | None = None) -> None:
    (log_fn or logging.info)(f"[{step}] {msg}")


def log_relevant_config(step: str, cfg: Any, fields: Iterable[str], log_fn: StepLogFn | None = None) -> dict[str, Any]:
    """Log the selected dotted attribute paths of ``cfg``; return them as a mapping."""
    emit = log_fn or logging.info
    summary: dict[str, Any] = {f: _extract(cfg, f) for f in fields}
    mode = os.environ.get('REVESICLE_LOG_TABLE_MODE', 'table').lower()
    if mode in {'both', 'line'}:
        emit(f"[{step}][cfg] " + ", ".join(f"{k}={v!r}" for k, v in summary.items()))
    if mode in {'both', 'table'} and summary:
        k_width = min(max(len(k) for k in summary), 40)
        emit(f"[{step}][cfg] ── configuration summary ──")
        for k, v in summary.items():
            key = (k[:37] + '...') if len(k) > 40 else k
            emit(f"[{step}][cfg] {key.ljust(k_width)} : {v!r}")
    return summary


__all__ = [
    'log_step_header',
    'log_relevant_config',
]
