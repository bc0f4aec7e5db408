"""
SM-2 Spaced Repetition Scheduler.

Implements the four-button SM-2 variant used for problem review:

Outcome | ease            | streak
--------|-----------------|-------
easy    | ease + 0.15     | +1
good    | unchanged       | +1
hard    | ease - 0.15     | reset
again   | ease - 0.20     | reset

Hard and again both reset the streak, but hard only shrinks the interval
while again sends the item back to a one-day interval.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from loguru import logger

from leetanki.exceptions import UnknownOutcome
from leetanki.review.models import INITIAL_OUTCOME, HistoryEntry, Outcome, ReviewState, SM2State
from leetanki.timeutils import ensure_utc, utcnow

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass(frozen=True)
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    easy_bonus: float = 0.15
    hard_penalty: float = 0.15
    again_penalty: float = 0.20
    hard_interval_factor: float = 0.8
    first_interval: int = 1  # Days after the first successful rep
    second_interval: int = 3  # Days after the second successful rep
    max_interval: int = 365
    history_limit: int = 10


class SM2Scheduler:
    """
    Computes review state transitions.

    `advance` is the pure ease/interval/streak transform. `apply` wraps it with
    the bookkeeping every caller needs (timestamps and bounded history), and
    `initial_state` is the one place default review state is built.
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def advance(self, prior: SM2State, outcome: Outcome | str) -> SM2State:
        """
        Compute the next ease, interval and streak.

        Args:
            prior: Current scheduling values
            outcome: Review outcome; unrecognized values leave the prior unchanged

        Returns:
            New SM2State, clamped to the configured bounds
        """
        cfg = self.config

        try:
            outcome = Outcome.parse(outcome)
        except UnknownOutcome as exc:
            logger.warning("{} - leaving schedule unchanged", exc)
            return prior

        ease = prior.ease_factor
        streak = prior.consecutive_correct

        if outcome is Outcome.EASY:
            ease += cfg.easy_bonus
            streak += 1
        elif outcome is Outcome.GOOD:
            streak += 1
        elif outcome is Outcome.HARD:
            ease = max(cfg.minimum_easiness, ease - cfg.hard_penalty)
            streak = 0
        else:
            ease = max(cfg.minimum_easiness, ease - cfg.again_penalty)
            streak = 0

        ease = max(round(ease, 4), cfg.minimum_easiness)

        if outcome is Outcome.AGAIN:
            interval = 1
        elif outcome is Outcome.HARD:
            interval = max(1, _ceil(prior.interval * cfg.hard_interval_factor))
        elif streak <= 1:
            interval = cfg.first_interval
        elif streak == 2:
            interval = cfg.second_interval
        else:
            interval = _ceil(prior.interval * ease)

        interval = min(max(interval, 1), cfg.max_interval)

        return SM2State(ease_factor=ease, interval=interval, consecutive_correct=streak)

    def apply(
        self,
        state: ReviewState,
        outcome: Outcome | str,
        now: datetime | None = None,
    ) -> ReviewState:
        """
        Record an outcome against a full review state.

        Args:
            state: Current review state (not modified)
            outcome: Review outcome
            now: Review time (defaults to current UTC time)

        Returns:
            New ReviewState with updated schedule, timestamps and history
        """
        now = ensure_utc(now or utcnow())
        nxt = self.advance(state.sm2, outcome)
        try:
            label = Outcome.parse(outcome).value
        except UnknownOutcome:
            label = str(outcome)

        history = [*state.history, HistoryEntry(timestamp=now, outcome=label)]
        history = history[-self.config.history_limit :]

        return replace(
            state,
            ease_factor=nxt.ease_factor,
            interval=nxt.interval,
            consecutive_correct=nxt.consecutive_correct,
            last_reviewed_at=now,
            next_review_at=now + timedelta(days=nxt.interval),
            history=history,
        )

    def initial_state(self, first_seen_at: datetime) -> ReviewState:
        """Default review state for an item first completed at `first_seen_at`."""
        first_seen_at = ensure_utc(first_seen_at)
        return ReviewState(
            ease_factor=self.config.initial_easiness,
            interval=1,
            consecutive_correct=0,
            next_review_at=first_seen_at + timedelta(days=1),
            last_reviewed_at=first_seen_at,
            history=[HistoryEntry(timestamp=first_seen_at, outcome=INITIAL_OUTCOME)],
        )


def _ceil(value: float) -> int:
    # Float noise such as 13.000000000000002 must not add a day.
    return math.ceil(round(value, 6))
