"""Todo data model and its state transitions."""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .errors import InvalidPriorityError, InvalidStatusError, ValidationError

SCHEMA_VERSION = 1

_TS_RE = re.compile(r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})(?P<frac>\.\d+)?(?P<tz>.*)$")
_ZERO_TIME = dt.datetime(1, 1, 1, tzinfo=dt.timezone.utc)


# -----------------------------
# Enumerations
# -----------------------------
class Status(str, Enum):
    OPEN = "open"
    DONE = "done"
    BLOCKED = "blocked"
    WAITING = "waiting"
    TECH_DEBT = "tech-debt"

    @classmethod
    def parse(cls, raw: object) -> "Status":
        if not cls.is_valid(raw):
            raise InvalidStatusError(raw)
        return cls(str(raw))

    @classmethod
    def is_valid(cls, raw: object) -> bool:
        return str(raw) in {member.value for member in cls}

    def __str__(self) -> str:
        return self.value


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, raw: object) -> "Priority":
        if not cls.is_valid(raw):
            raise InvalidPriorityError(raw)
        return cls(str(raw))

    @classmethod
    def is_valid(cls, raw: object) -> bool:
        return str(raw) in {member.value for member in cls}

    @property
    def weight(self) -> int:
        return priority_weight(self)

    def __str__(self) -> str:
        return self.value


_PRIORITY_WEIGHTS = {"high": 3, "medium": 2, "low": 1}


def priority_weight(value: object) -> int:
    """high=3, medium=2, low=1; anything unrecognized sorts last with 0."""
    key = value.value if isinstance(value, Priority) else str(value or "").lower()
    return _PRIORITY_WEIGHTS.get(key, 0)


# -----------------------------
# Timestamps
# -----------------------------
def now() -> dt.datetime:
    return dt.datetime.now().astimezone()


def parse_timestamp(raw: object) -> dt.datetime:
    """Parse an RFC 3339 timestamp, including 'Z' and nanosecond fractions."""
    if not raw:
        return _ZERO_TIME
    s = str(raw).strip()
    if s[-1:] in ("Z", "z"):
        s = s[:-1] + "+00:00"
    m = _TS_RE.match(s)
    if not m:
        raise ValueError(f"invalid timestamp: {raw!r}")
    frac = m.group("frac") or ""
    if frac:
        frac = "." + (frac[1:] + "000000")[:6]
    value = dt.datetime.fromisoformat(m.group("base") + frac + m.group("tz"))
    if value.tzinfo is None:
        value = value.astimezone()
    return value


def format_timestamp(value: dt.datetime) -> str:
    return value.isoformat()


# -----------------------------
# Todo
# -----------------------------
@dataclass
class TodoContext:
    paths: List[str] = field(default_factory=list)
    branch: str = ""
    commit: str = ""

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {}
        if self.paths:
            out["paths"] = list(self.paths)
        if self.branch:
            out["branch"] = self.branch
        if self.commit:
            out["commit"] = self.commit
        return out

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "TodoContext":
        raw = raw or {}
        paths = raw.get("paths") or []
        if not isinstance(paths, list):
            raise ValueError("context.paths must be a list")
        return cls(
            paths=[str(p) for p in paths],
            branch=str(raw.get("branch") or ""),
            commit=str(raw.get("commit") or ""),
        )


@dataclass
class TodoMeta:
    source: str = ""
    ai_hint: str = ""

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {}
        if self.source:
            out["source"] = self.source
        if self.ai_hint:
            out["aiHint"] = self.ai_hint
        return out

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "TodoMeta":
        raw = raw or {}
        return cls(source=str(raw.get("source") or ""), ai_hint=str(raw.get("aiHint") or ""))


@dataclass
class Todo:
    id: str
    text: str
    status: Status = Status.OPEN
    priority: Priority = Priority.MEDIUM
    created_at: dt.datetime = field(default_factory=now)
    updated_at: dt.datetime = field(default_factory=now)
    context: TodoContext = field(default_factory=TodoContext)
    meta: TodoMeta = field(default_factory=TodoMeta)

    @classmethod
    def create(cls, todo_id: str, text: str) -> "Todo":
        ts = now()
        return cls(
            id=todo_id,
            text=text,
            status=Status.OPEN,
            priority=Priority.MEDIUM,
            created_at=ts,
            updated_at=ts,
            meta=TodoMeta(source="cli"),
        )

    def touch(self) -> None:
        self.updated_at = now()

    def mark_done(self) -> None:
        self.status = Status.DONE
        self.touch()

    def mark_open(self) -> None:
        self.status = Status.OPEN
        self.touch()

    def toggle(self) -> None:
        """done -> open, anything else -> done."""
        if self.status == Status.DONE:
            self.mark_open()
        else:
            self.mark_done()

    def set_status(self, status: object) -> None:
        self.status = status if isinstance(status, Status) else Status.parse(status)
        self.touch()

    def set_priority(self, priority: object) -> None:
        self.priority = priority if isinstance(priority, Priority) else Priority.parse(priority)
        self.touch()

    def set_text(self, text: str) -> None:
        text = (text or "").strip()
        if not text:
            raise ValidationError("todo text cannot be empty")
        self.text = text
        self.touch()

    def set_paths(self, paths: List[str]) -> None:
        self.context.paths = list(paths)
        self.touch()

    def set_git_context(self, branch: str, commit: str) -> None:
        self.context.branch = branch
        self.context.commit = commit
        self.touch()

    @property
    def short_id(self) -> str:
        return self.id[:8]

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "text": self.text,
            "status": self.status.value,
            "priority": self.priority.value,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "context": self.context.to_dict(),
            "meta": self.meta.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "Todo":
        if not isinstance(raw, dict):
            raise ValueError("todo record must be an object")
        todo_id = raw.get("id")
        if not isinstance(todo_id, str) or not todo_id:
            raise ValueError("todo record is missing an id")
        priority = raw.get("priority") or Priority.MEDIUM.value
        return cls(
            id=todo_id,
            text=str(raw.get("text") or ""),
            status=Status.parse(raw.get("status") or Status.OPEN.value),
            priority=Priority.parse(priority),
            created_at=parse_timestamp(raw.get("createdAt")),
            updated_at=parse_timestamp(raw.get("updatedAt")),
            context=TodoContext.from_dict(raw.get("context")),
            meta=TodoMeta.from_dict(raw.get("meta")),
        )


# -----------------------------
# Project config
# -----------------------------
@dataclass
class ProjectConfig:
    version: int = SCHEMA_VERSION
    auto_git: bool = True
    default_branch: str = ""

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"version": self.version}
        if self.default_branch:
            out["defaultBranch"] = self.default_branch
        out["autoGit"] = self.auto_git
        return out

    @classmethod
    def from_dict(cls, raw: dict) -> "ProjectConfig":
        if not isinstance(raw, dict):
            raise ValueError("config must be an object")
        return cls(
            version=int(raw.get("version") or SCHEMA_VERSION),
            auto_git=bool(raw.get("autoGit", True)),
            default_branch=str(raw.get("defaultBranch") or ""),
        )
