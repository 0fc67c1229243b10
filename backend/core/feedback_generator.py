"""
Coaching Feedback
Turns a comparison into a short, prioritized list of cues and rate-limits
how often new feedback is shown.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from config import get_thresholds, ThresholdConfig
from .keypoints import Pose
from .pose_comparator import ComparisonResult, MetricSpec, PoseComparator, METRIC_SPECS

logger = logging.getLogger(__name__)

HIGH = "high"
MEDIUM = "medium"
LOW = "low"
PRIORITY_RANK = {HIGH: 0, MEDIUM: 1, LOW: 2}

STANCE_MESSAGE = "Adjust your stance for better balance"
STANCE_TIP = "Keep your weight evenly distributed between both feet"


@dataclass
class FeedbackItem:
    priority: str
    message: str
    tip: str

    def to_dict(self) -> dict:
        return {"priority": self.priority, "message": self.message, "tip": self.tip}


@dataclass
class Feedback:
    technique_id: str
    score: float
    items: List[FeedbackItem] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "technique_id": self.technique_id,
            "score": round(self.score, 1),
            "items": [item.to_dict() for item in self.items],
            "timestamp": self.timestamp.isoformat(),
        }


def build_feedback(
    comparison: ComparisonResult,
    thresholds: Optional[ThresholdConfig] = None,
    metric_specs: Optional[Dict[str, MetricSpec]] = None,
) -> Feedback:
    """
    Prioritized cues for a comparison.

    A low overall score yields the high priority stance cue. Metrics below
    the metric threshold yield medium cues, and metrics that merely missed
    the suggestion threshold yield low cues. Items are ordered high to low
    (stable) and capped. ``metric_specs`` should be the table the comparison
    was scored with.
    """
    t = thresholds or get_thresholds()
    cfg = t.feedback
    specs = metric_specs if metric_specs is not None else METRIC_SPECS

    items: List[FeedbackItem] = []
    if comparison.score < cfg.low_score_threshold:
        items.append(FeedbackItem(HIGH, STANCE_MESSAGE, STANCE_TIP))

    seen = {STANCE_MESSAGE}
    for name, detail in comparison.details.items():
        if detail.score >= t.comparator.suggestion_threshold:
            continue
        spec = specs.get(name)
        if spec is None:
            continue
        priority = MEDIUM if detail.score < cfg.metric_threshold else LOW
        message = detail.suggestion or spec.low
        if message in seen:
            continue
        seen.add(message)
        items.append(FeedbackItem(priority, message, spec.tip))

    items.sort(key=lambda item: PRIORITY_RANK[item.priority])
    return Feedback(
        technique_id=comparison.technique_id,
        score=comparison.score,
        items=items[:cfg.max_items],
    )


class FeedbackCooldown:
    """
    Time-based debounce. ``ready`` is true once the window has elapsed since
    the last ``trigger``; calls inside the window are simply dropped.
    """

    def __init__(self, window_sec: float, clock: Callable[[], float] = time.monotonic):
        self.window_sec = window_sec
        self._clock = clock
        self._last: Optional[float] = None

    def now(self) -> float:
        return self._clock()

    def ready(self, now: Optional[float] = None) -> bool:
        if self._last is None:
            return True
        now = self._clock() if now is None else now
        return now - self._last >= self.window_sec

    def trigger(self, now: Optional[float] = None):
        self._last = self._clock() if now is None else now

    def reset(self):
        self._last = None


class FeedbackGenerator:
    """Rate-limited feedback for a live stream of poses."""

    def __init__(
        self,
        thresholds: Optional[ThresholdConfig] = None,
        comparator: Optional[PoseComparator] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._thresholds = thresholds or get_thresholds()
        self.comparator = comparator or PoseComparator(self._thresholds)
        self.cooldown = FeedbackCooldown(self._thresholds.feedback.cooldown_sec, clock)

    def generate(
        self,
        pose: Optional[Pose],
        technique_id: str,
        history: Optional[Sequence[Pose]] = None,
        now: Optional[float] = None,
    ) -> Optional[Feedback]:
        """Feedback for a pose, or None when inside the cooldown or the technique is unknown"""
        now = self.cooldown.now() if now is None else now
        if not self.cooldown.ready(now):
            return None
        comparison = self.comparator.compare(pose, technique_id, history)
        return self.from_comparison(comparison, now)

    def from_comparison(
        self,
        comparison: Optional[ComparisonResult],
        now: Optional[float] = None,
    ) -> Optional[Feedback]:
        now = self.cooldown.now() if now is None else now
        if comparison is None or not self.cooldown.ready(now):
            return None
        self.cooldown.trigger(now)
        feedback = build_feedback(comparison, self._thresholds, self.comparator.metric_specs)
        logger.debug(
            "Feedback emitted",
            extra={"technique_id": feedback.technique_id, "items": len(feedback.items)}
        )
        return feedback
