"""
Progress Tracking
In-memory, append-only log of comparison scores with per-technique bests
and improvement events.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from config import get_thresholds, ThresholdConfig
from .pose_comparator import ComparisonResult, MetricDetail


@dataclass
class ProgressEntry:
    timestamp: datetime
    technique_id: str
    score: float
    details: Dict[str, MetricDetail] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "technique_id": self.technique_id,
            "score": round(self.score, 1),
            "details": {name: d.to_dict() for name, d in self.details.items()},
        }


@dataclass
class BestScore:
    score: float
    timestamp: datetime

    def to_dict(self) -> dict:
        return {"score": round(self.score, 1), "timestamp": self.timestamp.isoformat()}


@dataclass
class Improvement:
    technique_id: str
    improvement: float
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "technique_id": self.technique_id,
            "improvement": round(self.improvement, 1),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ProgressSnapshot:
    overall_score: float
    last_session: Optional[ProgressEntry]
    best_scores: Dict[str, BestScore]
    recent_improvements: List[Improvement]
    total_sessions: int

    def to_dict(self) -> dict:
        return {
            "overall_score": round(self.overall_score, 1),
            "last_session": self.last_session.to_dict() if self.last_session else None,
            "best_scores": {k: v.to_dict() for k, v in self.best_scores.items()},
            "recent_improvements": [i.to_dict() for i in self.recent_improvements],
            "total_sessions": self.total_sessions,
        }


class ProgressTracker:
    """
    Records every comparison result.

    A best score is replaced only by a strictly greater one. An improvement
    is recorded only against the immediately preceding entry, and only when
    that entry is for the same technique and scored lower.
    """

    def __init__(self, thresholds: Optional[ThresholdConfig] = None):
        self._thresholds = thresholds or get_thresholds()
        self.sessions: List[ProgressEntry] = []
        self.best_scores: Dict[str, BestScore] = {}
        self.improvements: List[Improvement] = []
        self._score_sum = 0.0

    def record(
        self,
        comparison: ComparisonResult,
        technique_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> ProgressEntry:
        timestamp = timestamp or datetime.now(timezone.utc)
        entry = ProgressEntry(
            timestamp=timestamp,
            technique_id=technique_id or comparison.technique_id,
            score=comparison.score,
            details=dict(comparison.details),
        )

        best = self.best_scores.get(entry.technique_id)
        if best is None or entry.score > best.score:
            self.best_scores[entry.technique_id] = BestScore(entry.score, timestamp)

        if self.sessions:
            previous = self.sessions[-1]
            if previous.technique_id == entry.technique_id and entry.score > previous.score:
                self.improvements.append(
                    Improvement(entry.technique_id, entry.score - previous.score, timestamp)
                )

        self.sessions.append(entry)
        self._score_sum += entry.score
        return entry

    @property
    def last_session(self) -> Optional[ProgressEntry]:
        return self.sessions[-1] if self.sessions else None

    def get_progress(self) -> ProgressSnapshot:
        count = len(self.sessions)
        limit = self._thresholds.progress.recent_improvements
        return ProgressSnapshot(
            overall_score=self._score_sum / count if count else 0.0,
            last_session=self.last_session,
            best_scores=dict(self.best_scores),
            recent_improvements=self.improvements[-limit:] if limit > 0 else [],
            total_sessions=count,
        )
