import json
import sys
from datetime import datetime
from typing import Any, Dict, Optional


def log_error(message: str) -> None:
    print(f"[termxfer] {message}", file=sys.stderr, flush=True)


def clamp_float(value: Any, default: float, min_value: float, max_value: float) -> float:
    try:
        numeric = float(value)
    except Exception:
        numeric = default
    if numeric < min_value:
        return min_value
    if numeric > max_value:
        return max_value
    return numeric


def to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    s = str(value).lower().strip()
    if s in ("true", "1", "yes", "on"):
        return True
    if s in ("false", "0", "no", "off"):
        return False
    return default


def iso_now() -> str:
    return datetime.now().isoformat(timespec="milliseconds")


def json_line(path: str, payload: Dict[str, Any]) -> None:
    try:
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
    except Exception as exc:
        log_error(f"log write failed ({path}): {exc}")


class EventLog:
    """JSON-lines event log for one session. Disabled when no path is set."""

    def __init__(self, path: Optional[str] = None):
        self.path = path

    def event(self, direction: str, event: str, **fields: Any) -> None:
        if not self.path:
            return
        data = {"ts": iso_now(), "dir": direction, "event": event}
        data.update(fields)
        json_line(self.path, data)
