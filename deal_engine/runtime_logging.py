"""Runtime diagnostics for the deal workbench.

Events are appended as JSON lines to ``runtime_events.jsonl`` in the storage
root (``MNA_STORAGE_ROOT``), next to the saved deals, workspaces and buy-box
profiles. The Diagnostics tab reads them back through :func:`events_frame`.
Writing an event must never break a calculation or a save, so failures to
write are reported on stderr instead of raised.
"""

from __future__ import annotations

import json
import os
import sys
import traceback
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
from streamlit.runtime.scriptrunner import get_script_run_ctx


STORAGE_ENV_VAR = "MNA_STORAGE_ROOT"
LOG_FILE_NAME = "runtime_events.jsonl"
LEVELS = ("INFO", "WARNING", "ERROR")
EVENT_COLUMNS = ["timestamp_utc", "level", "event", "message", "exception_type", "exception_message", "context"]

LOG_DIR = Path(".local_store")
RUNTIME_EVENTS_LOG_FILE = LOG_DIR / LOG_FILE_NAME

_hook_installed = False


def _json_default(value: Any):
    if isinstance(value, (set, frozenset, tuple)):
        return sorted(value, key=str) if isinstance(value, (set, frozenset)) else list(value)
    if isinstance(value, Path):
        return str(value)
    return repr(value)


def configure_log_root(path_value: str | Path | None) -> Path:
    """Point the runtime log at ``path_value`` (``~`` and ``$VARS`` expanded)."""
    global LOG_DIR, RUNTIME_EVENTS_LOG_FILE
    text = str(path_value or "").strip()
    LOG_DIR = Path(os.path.expandvars(os.path.expanduser(text))) if text else Path(".local_store")
    RUNTIME_EVENTS_LOG_FILE = LOG_DIR / LOG_FILE_NAME
    return LOG_DIR


def runtime_log_path() -> str:
    return str(RUNTIME_EVENTS_LOG_FILE.resolve())


def _new_event(level: str, event: str, message: str, context: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "level": str(level).upper(),
        "event": str(event),
        "message": str(message),
        "context": dict(context or {}),
    }


def append_runtime_event(
    level: str,
    event: str,
    message: str,
    context: dict[str, Any] | None = None,
    exc: BaseException | None = None,
) -> None:
    record = _new_event(level, event, message, context)
    if exc is not None:
        record.update(
            exception_type=type(exc).__name__,
            exception_message=str(exc),
            traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )
    line = json.dumps(record, default=_json_default, ensure_ascii=False)
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        with RUNTIME_EVENTS_LOG_FILE.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
    except OSError as write_error:
        print(f"runtime log unavailable ({write_error}): {line}", file=sys.stderr)


def log_migration(kind: str, name: str, warnings: list[str], unknown_keys: list[str]) -> bool:
    """Record that a loaded deal/workspace/profile needed repair. Returns True if anything was logged."""
    if not warnings and not unknown_keys:
        return False
    append_runtime_event(
        level="INFO",
        event=f"load_{kind}_migrated",
        message=f"{len(warnings)} field(s) repaired, {len(unknown_keys)} unknown key(s) dropped.",
        context={"name": name, "warnings": list(warnings), "unknown_keys": list(unknown_keys)},
    )
    return True


def read_runtime_events(limit: int = 200, level: str | None = None) -> list[dict[str, Any]]:
    """The last ``limit`` log lines as events, oldest first, optionally filtered by level.

    Lines that are not valid JSON come back as ``log_parse_error`` events.
    """
    if limit <= 0 or not RUNTIME_EVENTS_LOG_FILE.exists():
        return []
    try:
        with RUNTIME_EVENTS_LOG_FILE.open("r", encoding="utf-8") as handle:
            tail = deque((ln for ln in handle if ln.strip()), maxlen=int(limit))
    except OSError:
        return []

    events = []
    for line in tail:
        try:
            events.append(json.loads(line))
        except json.JSONDecodeError:
            events.append(_new_event("ERROR", "log_parse_error", "Malformed log line encountered.", {"line": line.rstrip("\n")}))
    if level:
        events = [e for e in events if str(e.get("level", "")).upper() == level.upper()]
    return events


def events_frame(events: list[dict[str, Any]]) -> pd.DataFrame:
    """Events as a string table with the usual columns first."""
    df = pd.DataFrame(events)
    if df.empty:
        return pd.DataFrame(columns=EVENT_COLUMNS)
    ordered = [c for c in EVENT_COLUMNS if c in df.columns]
    ordered += [c for c in df.columns if c not in EVENT_COLUMNS]
    return df[ordered].fillna("").astype(str)


def clear_runtime_events() -> bool:
    if not RUNTIME_EVENTS_LOG_FILE.exists():
        return False
    RUNTIME_EVENTS_LOG_FILE.unlink()
    return True


def install_global_exception_logging() -> None:
    """Log uncaught exceptions from dashboard script runs, then defer to the previous hook."""
    global _hook_installed
    if _hook_installed:
        return
    previous_hook = sys.excepthook

    def _log_and_forward(exc_type, exc, exc_tb):
        if get_script_run_ctx() is not None:
            append_runtime_event(
                level="ERROR",
                event="uncaught_exception",
                message=str(exc),
                context={"exception_type": getattr(exc_type, "__name__", str(exc_type))},
                exc=exc,
            )
        previous_hook(exc_type, exc, exc_tb)

    sys.excepthook = _log_and_forward
    _hook_installed = True


configure_log_root(os.getenv(STORAGE_ENV_VAR, ""))
