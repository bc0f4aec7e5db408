"""
Review data model.

Items carry display metadata, ReviewStates carry the SM-2 scheduling state.
Both serialize to plain dicts for the key-value store; timestamps are stored
as ISO-8601 UTC strings and tag sets as sorted lists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from leetanki.exceptions import UnknownOutcome
from leetanki.timeutils import ensure_utc, format_timestamp, parse_timestamp, utcnow

INITIAL_OUTCOME = "initial"


# =============================================================================
# Outcomes
# =============================================================================


class Outcome(str, Enum):
    """Learner self-assessment after a review."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @classmethod
    def parse(cls, value: Outcome | str) -> Outcome:
        """
        Convert a raw outcome string.

        Raises:
            UnknownOutcome: value is not one of the four variants
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise UnknownOutcome(value)


# =============================================================================
# Items
# =============================================================================


@dataclass
class Item:
    """A unit of study material (a problem) with display metadata."""

    item_id: str
    title: str = ""
    difficulty: str = ""
    tags: set[str] = field(default_factory=set)
    updated_at: datetime | None = None

    def merge(
        self,
        title: str | None = None,
        difficulty: str | None = None,
        tags: set[str] | list[str] | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        """Last write wins for scalars that are provided, union for tags."""
        if title:
            self.title = title
        if difficulty:
            self.difficulty = difficulty
        if tags:
            self.tags |= {t for t in tags if t}
        if updated_at is not None:
            self.updated_at = ensure_utc(updated_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "difficulty": self.difficulty,
            "tags": sorted(self.tags),
            "updated_at": format_timestamp(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, item_id: str, data: dict[str, Any]) -> Item:
        updated_at = data.get("updated_at")
        return cls(
            item_id=item_id,
            title=data.get("title") or "",
            difficulty=data.get("difficulty") or "",
            tags=set(data.get("tags") or []),
            updated_at=parse_timestamp(updated_at) if updated_at else None,
        )


# =============================================================================
# Review State
# =============================================================================


@dataclass(frozen=True)
class HistoryEntry:
    """One recorded outcome."""

    timestamp: datetime
    outcome: str

    def to_dict(self) -> dict[str, str]:
        return {"timestamp": format_timestamp(self.timestamp), "outcome": self.outcome}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(timestamp=parse_timestamp(data["timestamp"]), outcome=str(data["outcome"]))


@dataclass(frozen=True)
class SM2State:
    """The part of a review state the scheduling engine reads and writes."""

    ease_factor: float
    interval: int
    consecutive_correct: int


@dataclass
class ReviewState:
    """SM-2 state for a single item."""

    ease_factor: float
    interval: int
    consecutive_correct: int
    next_review_at: datetime
    last_reviewed_at: datetime
    history: list[HistoryEntry] = field(default_factory=list)

    @property
    def sm2(self) -> SM2State:
        return SM2State(
            ease_factor=self.ease_factor,
            interval=self.interval,
            consecutive_correct=self.consecutive_correct,
        )

    @property
    def has_been_reviewed(self) -> bool:
        """True once any outcome other than the initial sighting is recorded."""
        return any(entry.outcome != INITIAL_OUTCOME for entry in self.history)

    def is_due(self, now: datetime | None = None) -> bool:
        return ensure_utc(now or utcnow()) >= self.next_review_at

    def days_overdue(self, now: datetime | None = None) -> int:
        delta = ensure_utc(now or utcnow()) - self.next_review_at
        return max(0, delta.days)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ease_factor": self.ease_factor,
            "interval": self.interval,
            "consecutive_correct": self.consecutive_correct,
            "next_review_at": format_timestamp(self.next_review_at),
            "last_reviewed_at": format_timestamp(self.last_reviewed_at),
            "history": [entry.to_dict() for entry in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewState:
        return cls(
            ease_factor=float(data["ease_factor"]),
            interval=int(data["interval"]),
            consecutive_correct=int(data["consecutive_correct"]),
            next_review_at=parse_timestamp(data["next_review_at"]),
            last_reviewed_at=parse_timestamp(data["last_reviewed_at"]),
            history=[HistoryEntry.from_dict(h) for h in data.get("history") or []],
        )


@dataclass
class ReviewRecord:
    """An item joined with its review state; either side may be missing."""

    item_id: str
    item: Item | None
    state: ReviewState | None


@dataclass(frozen=True)
class DueEntry:
    """One row of a due query."""

    item_id: str
    title: str
    difficulty: str
    tags: list[str]
    ease_factor: float
    interval: int
    next_review_at: datetime

    @classmethod
    def from_parts(cls, item: Item, state: ReviewState) -> DueEntry:
        return cls(
            item_id=item.item_id,
            title=item.title,
            difficulty=item.difficulty,
            tags=sorted(item.tags),
            ease_factor=state.ease_factor,
            interval=state.interval,
            next_review_at=state.next_review_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemId": self.item_id,
            "title": self.title,
            "difficulty": self.difficulty,
            "tags": list(self.tags),
            "easeFactor": self.ease_factor,
            "interval": self.interval,
            "nextReviewAt": format_timestamp(self.next_review_at),
        }
