#!/usr/bin/env python3
"""
logging_utils.py — Structured logs for the wavetable service

• One JSON object per line on stdout (LOG_JSON=false → one text line)
• Every record carries the run_id bound in the current context: a batch
  binds its own, an HTTP request binds one in RequestIdMiddleware
• numpy scalars, Paths and enums are stringified instead of failing
• Oversized field values are trimmed; user fields cannot shadow core keys
"""

from __future__ import annotations

import json
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_run_id_ctx: ContextVar[Optional[str]] = ContextVar("_run_id", default=None)

LOG_JSON = os.getenv("LOG_JSON", "true").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}
_MIN = _LEVELS.get(LOG_LEVEL, 20)

_MAX_FIELD_LEN = 2000
_CORE_KEYS = ("ts", "level", "run_id", "scope", "action", "status", "message")


# ────────────────────────────────────────────────
# Run id
# ────────────────────────────────────────────────
def set_run_id(value: Optional[str]) -> None:
    _run_id_ctx.set(value)


def new_run_id() -> str:
    """Mint a run id, bind it to the current context and return it."""
    rid = uuid.uuid4().hex[:12]
    _run_id_ctx.set(rid)
    return rid


def current_run_id() -> Optional[str]:
    return _run_id_ctx.get()


# ────────────────────────────────────────────────
# Record building
# ────────────────────────────────────────────────
def _enabled(level: str) -> bool:
    return _LEVELS.get(level, 20) >= _MIN


def _trim(value: Any) -> Any:
    if isinstance(value, str) and len(value) > _MAX_FIELD_LEN:
        return value[:_MAX_FIELD_LEN] + "...[truncated]"
    return value


def _build_record(level: str, message: str, scope: str, action: str, status: str,
                  fields: Dict[str, Any]) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "level": level,
        "run_id": _run_id_ctx.get(),
        "scope": scope or "general",
        "action": action or "log",
        "status": status,
        "message": _trim(message),
    }
    for key, value in fields.items():
        record[f"user_{key}" if key in _CORE_KEYS else key] = _trim(value)
    return record


def _as_text(record: Dict[str, Any]) -> str:
    extras = " ".join(f"{k}={v}" for k, v in record.items() if k not in _CORE_KEYS)
    head = (
        f"[{record['ts']}] {record['level']:<5} ({record['run_id'] or '-'}) "
        f"{record['scope']}.{record['action']}: {record['message']}"
    )
    return f"{head} {extras}" if extras else head


def _write(record: Dict[str, Any]) -> None:
    try:
        line = json.dumps(record, ensure_ascii=False, default=str) if LOG_JSON else _as_text(record)
    except (TypeError, ValueError) as e:
        line = f"[LOGGING ERROR] unencodable record from {record.get('scope')}: {e}"
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


# ────────────────────────────────────────────────
# Public API
# ────────────────────────────────────────────────
def log_event(
    level: str = "INFO",
    message: str = "",
    *,
    scope: str = "",
    action: str = "",
    status: str = "ok",
    **fields: Any,
) -> None:
    level = level.upper()
    if _enabled(level):
        _write(_build_record(level, message, scope, action, status, fields))


def log_timing(scope: str, action: str, t_start: float, **fields: Any) -> None:
    """INFO record with duration_ms measured from t_start (time.time())."""
    duration_ms = int((time.time() - t_start) * 1000)
    log_event("INFO", f"{action} completed", scope=scope, action=action, duration_ms=duration_ms, **fields)


def log_error(message: str, *, scope: str, action: str, **fields: Any) -> None:
    log_event("ERROR", message, scope=scope, action=action, status="error", **fields)


def log_warning(message: str, *, scope: str, action: str, **fields: Any) -> None:
    log_event("WARN", message, scope=scope, action=action, status="warning", **fields)


if __name__ == "__main__":
    new_run_id()
    log_event("INFO", "logging bootstrap", scope="obs", action="boot")
    t0 = time.time()
    time.sleep(0.005)
    log_timing("obs", "sleep", t0, frames=64)
    log_warning("example warning", scope="obs", action="demo", path="sounds/missing.wav")
