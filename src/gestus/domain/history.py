"""Practice statistics over a student's attempt history."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from gestus.domain.model import StoredAttempt


@dataclass(frozen=True, slots=True)
class AttemptHistorySummary:
    total_attempts: int = 0
    average_score: int = 0
    best_score: int = 0
    last_practice: datetime | None = None

    @property
    def progress_percent(self) -> int:
        return self.average_score

    def to_dict(self) -> dict[str, object]:
        return {
            "totalAttempts": self.total_attempts,
            "averageScore": self.average_score,
            "bestScore": self.best_score,
            "lastPractice": self.last_practice.isoformat() if self.last_practice else None,
            "progressPercent": self.progress_percent,
        }


def summarize_attempts(attempts: Sequence[StoredAttempt]) -> AttemptHistorySummary:
    """Summarize attempts; the order of ``attempts`` does not matter."""

    if not attempts:
        return AttemptHistorySummary()
    scores = [attempt.score for attempt in attempts]
    mean = Decimal(sum(scores)) / Decimal(len(scores))
    return AttemptHistorySummary(
        total_attempts=len(attempts),
        average_score=int(mean.quantize(Decimal(1), rounding=ROUND_HALF_UP)),
        best_score=max(scores),
        last_practice=max(attempt.timestamp for attempt in attempts),
    )
