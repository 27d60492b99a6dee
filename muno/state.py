"""Persisted position and session bookkeeping.

This is the only durable mutable state. It never describes the tree itself;
clone status is always re-derived from disk. Session records written by other
tools are carried through every save unchanged.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .exceptions import ConfigParseError, ConfigReadError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class SessionRecord:
    node_path: str
    status: str = "running"
    pid: int | None = None
    start_time: str = ""
    last_activity: str = ""


@dataclass
class SessionState:
    current_node_path: str = "/"
    sessions: dict[str, SessionRecord] = field(default_factory=dict)
    timestamp: str = ""

    @classmethod
    def load(cls, path: Path) -> SessionState:
        if not path.exists():
            return cls()
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigReadError(f"reading state file {path}: {exc}", path) from exc
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise ConfigParseError(f"parsing state {path}: {exc}", path) from exc
        if not isinstance(data, dict):
            raise ConfigParseError(f"parsing state {path}: top level must be an object", path)
        sessions: dict[str, SessionRecord] = {}
        for key, item in (data.get("sessions") or {}).items():
            if not isinstance(item, dict):
                continue
            sessions[key] = SessionRecord(
                node_path=item.get("node_path") or key,
                status=item.get("status") or "running",
                pid=item.get("pid"),
                start_time=item.get("start_time") or "",
                last_activity=item.get("last_activity") or "",
            )
        return cls(
            current_node_path=data.get("current_node_path") or "/",
            sessions=sessions,
            timestamp=data.get("timestamp") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "current_node_path": self.current_node_path,
            "sessions": {key: asdict(record) for key, record in self.sessions.items()},
        }

    def save(self, path: Path) -> None:
        self.timestamp = _now()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            raise ConfigReadError(f"writing state file {path}: {exc}", path) from exc
