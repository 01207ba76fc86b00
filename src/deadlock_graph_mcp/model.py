from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

# Plain data types shared by the parser, the detector and the graph engine.
# Nothing here depends on the MCP runtime.


class ThreadState(Enum):
    NEW = "NEW"
    RUNNABLE = "RUNNABLE"
    BLOCKED = "BLOCKED"
    WAITING = "WAITING"
    TIMED_WAITING = "TIMED_WAITING"
    TERMINATED = "TERMINATED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, keyword: str) -> "ThreadState":
        """Map a `java.lang.Thread.State:` keyword, e.g. ``BLOCKED``."""
        try:
            state = cls(keyword.strip().upper())
        except ValueError:
            return cls.UNKNOWN
        return state

    @classmethod
    def from_description(cls, description: str) -> "ThreadState":
        """Best guess from the free-form text that ends a thread header line."""
        text = description.strip().lower()
        if not text:
            return cls.UNKNOWN
        for prefix, state in _HEADER_DESCRIPTIONS:
            if text.startswith(prefix):
                return state
        return cls.parse(text)


_HEADER_DESCRIPTIONS: Tuple[Tuple[str, ThreadState], ...] = (
    ("runnable", ThreadState.RUNNABLE),
    ("waiting for monitor entry", ThreadState.BLOCKED),
    ("in object.wait()", ThreadState.WAITING),
    ("waiting on condition", ThreadState.WAITING),
    ("sleeping", ThreadState.TIMED_WAITING),
    ("parked", ThreadState.WAITING),
)


class LockRelation(Enum):
    HELD = "held"
    AWAITING_ACQUIRE = "awaiting-acquire"
    AWAITING_NOTIFY = "awaiting-notify"


@dataclass(frozen=True)
class LockId:
    """A monitor or synchronizer, identified by its address token.

    The label is informative only: two locks are the same lock iff their
    tokens match.
    """

    token: str
    label: str = field(default="", compare=False)

    def __str__(self) -> str:
        if self.label:
            return f"{self.label} <{self.token}>"
        return f"<{self.token}>"


@dataclass(frozen=True)
class AwaitedLock:
    lock: LockId
    relation: LockRelation


@dataclass(frozen=True)
class ThreadEntry:
    name: str
    state: ThreadState = ThreadState.UNKNOWN
    held: Tuple[LockId, ...] = ()
    awaited: Tuple[AwaitedLock, ...] = ()

    @property
    def awaiting_acquire(self) -> Tuple[LockId, ...]:
        return tuple(a.lock for a in self.awaited if a.relation is LockRelation.AWAITING_ACQUIRE)

    @property
    def awaiting_notify(self) -> Tuple[LockId, ...]:
        return tuple(a.lock for a in self.awaited if a.relation is LockRelation.AWAITING_NOTIFY)


@dataclass(frozen=True)
class BlockedOnEdge:
    """`source` is trying to enter `lock`, which `target` currently owns."""

    source: str
    lock: LockId
    target: str


@dataclass(frozen=True)
class DeadlockElement:
    blocked_thread: str
    awaited_lock: LockId
    owner_thread: str


@dataclass(frozen=True)
class Report:
    """A parsed dump. Built once by the parser and never modified afterwards."""

    threads: Tuple[ThreadEntry, ...] = ()
    deadlock_elements: Tuple[DeadlockElement, ...] = ()

    @property
    def thread_names(self) -> List[str]:
        return [t.name for t in self.threads]

    @property
    def has_deadlock(self) -> bool:
        return bool(self.deadlock_elements)

    @property
    def deadlocked_threads(self) -> List[str]:
        seen: Dict[str, None] = {}
        for element in self.deadlock_elements:
            seen.setdefault(element.blocked_thread)
            seen.setdefault(element.owner_thread)
        return list(seen)

    def state_counts(self) -> Dict[str, int]:
        counts = Counter(t.state.value for t in self.threads)
        return {s.value: counts.get(s.value, 0) for s in ThreadState}

    def thread(self, name: str) -> Optional[ThreadEntry]:
        return next((t for t in self.threads if t.name == name), None)
