"""
Ideal-Pose Comparison
Scores a pose against a technique template, metric by metric.

The metric table maps each template metric name to a measurement on
``BodyPoints``, its kind (which fixes the deviation divisor), and the
directional phrasing used when the metric falls short.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from config import get_thresholds, ThresholdConfig
from .fencing_metrics import BodyPoints, measure_stability
from .keypoints import Pose
from .technique_catalog import MetricRange, PositionRange, resolve_technique, IDEAL_POSES

logger = logging.getLogger(__name__)

ANGLE = "angle"
RATIO = "ratio"
POSITION = "position"

Value = Union[float, Tuple[float, float]]
Measure = Callable[[BodyPoints, Optional[Sequence[Pose]], ThresholdConfig], Optional[Value]]


@dataclass(frozen=True)
class MetricSpec:
    """How to measure and phrase one template metric"""
    name: str
    kind: str
    measure: Measure
    low: str
    high: str
    tip: str
    # Position metrics: phrasing per axis, keyed "x_low", "x_high", "y_low", "y_high"
    axis_phrases: Dict[str, str] = field(default_factory=dict)

    @property
    def unit(self) -> str:
        return "°" if self.kind == ANGLE else ""


def _arm_extension(b: BodyPoints, h, t: ThresholdConfig):
    return b.arm_extension(t.arm.ideal_angle)


def _stability(b: BodyPoints, h, t: ThresholdConfig):
    return measure_stability(h, t)


_FRONT_KNEE = dict(
    kind=ANGLE,
    measure=lambda b, h, t: b.front_knee_angle(),
    low="Bend your front knee less",
    high="Bend your front knee more",
    tip="Keep your front knee aligned with your ankle",
)
_BACK_LEG = dict(
    kind=ANGLE,
    measure=lambda b, h, t: b.back_knee_angle(),
    low="Straighten your back leg",
    high="Soften your back knee",
    tip="Push from the back leg while keeping the knee flexible",
)
_ALIGNMENT = dict(
    kind=RATIO,
    measure=lambda b, h, t: b.alignment(),
    low="Square your shoulders over your hips",
    high="Turn your shoulders more in profile",
    tip="Keep your shoulders stacked over your hips",
)
_EXTENSION = dict(
    kind=RATIO,
    measure=_arm_extension,
    low="Extend your weapon arm further",
    high="Relax your weapon arm slightly",
    tip="Lead with the point, extending the arm before the legs",
)
_STABILITY = dict(
    kind=RATIO,
    measure=_stability,
    low="Steady your body between actions",
    high="Steady your body between actions",
    tip="Stay low and keep your head level as you move",
)


def _spec(name: str, **kwargs) -> MetricSpec:
    return MetricSpec(name=name, **kwargs)


METRIC_SPECS: Dict[str, MetricSpec] = {spec.name: spec for spec in [
    _spec("front_knee_angle", **_FRONT_KNEE),
    _spec("back_knee_angle", **_BACK_LEG),
    _spec("back_leg_angle", **_BACK_LEG),
    _spec(
        "knee_bend", kind=ANGLE,
        measure=lambda b, h, t: b.knee_bend(),
        low="Straighten your legs slightly",
        high="Bend your knees more",
        tip="Stay in a slight sit throughout your footwork",
    ),
    _spec(
        "torso_angle", kind=ANGLE,
        measure=lambda b, h, t: b.torso_angle(),
        low="Keep your torso more upright",
        high="Keep your torso more upright",
        tip="Keep your back straight with your head over your hips",
    ),
    _spec(
        "body_lean", kind=ANGLE,
        measure=lambda b, h, t: b.body_lean(),
        low="Lean further forward into the attack",
        high="Lean less, stay in control",
        tip="Let the weapon arm pull your weight forward",
    ),
    _spec(
        "weapon_arm_angle", kind=ANGLE,
        measure=lambda b, h, t: b.weapon_arm_angle(),
        low="Raise your weapon arm away from your body",
        high="Bring your weapon arm closer to your body",
        tip="Keep your elbow about a hand's width from your side",
    ),
    _spec(
        "elbow_angle", kind=ANGLE,
        measure=lambda b, h, t: b.elbow_angle(),
        low="Open your elbow slightly",
        high="Bend your elbow more",
        tip="Keep the elbow bent and relaxed when parrying",
    ),
    _spec(
        "guard_hand_height", kind=RATIO,
        measure=lambda b, h, t: b.guard_hand_height(),
        low="Raise your weapon hand",
        high="Lower your weapon hand",
        tip="Hold the guard at about chest height",
    ),
    _spec(
        "guard_hand_position", kind=POSITION,
        measure=lambda b, h, t: b.guard_hand_position(),
        low="Adjust your hand position for the parry",
        high="Adjust your hand position for the parry",
        tip="Move the hand, not the whole arm, to close the line",
        axis_phrases={
            "x_low": "Move your hand further across your body",
            "x_high": "Bring your hand back toward your weapon side",
            "y_low": "Lower your hand to close the line",
            "y_high": "Raise your hand to close the line",
        },
    ),
    _spec(
        "feet_distance", kind=RATIO,
        measure=lambda b, h, t: b.feet_distance(),
        low="Widen your stance",
        high="Narrow your stance",
        tip="Keep your feet about shoulder width apart",
    ),
    _spec("shoulder_hip_alignment", **_ALIGNMENT),
    _spec("hip_shoulder_alignment", **_ALIGNMENT),
    _spec("body_alignment", **_ALIGNMENT),
    _spec("weapon_arm_extension", **_EXTENSION),
    _spec("arm_extension", **_EXTENSION),
    _spec("extension", **_EXTENSION),
    _spec(
        "step_length", kind=RATIO,
        measure=lambda b, h, t: b.step_length(),
        low="Take longer steps",
        high="Take shorter steps",
        tip="Move in small, even steps to keep control of distance",
    ),
    _spec(
        "weight_distribution", kind=RATIO,
        measure=lambda b, h, t: b.weight_distribution(),
        low="Shift your weight toward your back foot",
        high="Shift your weight toward your front foot",
        tip="Keep your weight evenly distributed between both feet",
    ),
    _spec(
        "balance", kind=RATIO,
        measure=lambda b, h, t: b.balance(t.balance.offset_scale),
        low="Center your weight for better balance",
        high="Center your weight for better balance",
        tip="Keep your shoulders over your hips and your hips between your feet",
    ),
    _spec("landing_stability", **_STABILITY),
    _spec("smoothness", **_STABILITY),
]}


@dataclass
class MetricDetail:
    current: Value
    ideal: str
    score: float
    # Directional cue for this metric when it falls outside the range
    suggestion: Optional[str] = None

    def to_dict(self) -> dict:
        current = self.current
        if isinstance(current, tuple):
            current = {"x": round(current[0], 3), "y": round(current[1], 3)}
        else:
            current = round(current, 3)
        result = {"current": current, "ideal": self.ideal, "score": round(self.score, 2)}
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result


@dataclass
class ComparisonResult:
    technique_id: str
    score: float
    feedback: List[str] = field(default_factory=list)
    details: Dict[str, MetricDetail] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "technique_id": self.technique_id,
            "technique_name": IDEAL_POSES[self.technique_id].name,
            "score": round(self.score, 1),
            "feedback": list(self.feedback),
            "details": {name: detail.to_dict() for name, detail in self.details.items()},
        }


def range_deviation(value: float, rng: MetricRange) -> float:
    """Distance from value to the nearest edge of the range (0 inside it)"""
    return max(0.0, rng.min - value) + max(0.0, value - rng.max)


def range_score(value: float, rng: MetricRange, divisor: float) -> float:
    return max(0.0, 1 - range_deviation(value, rng) / divisor)


class PoseComparator:
    """
    Compares a pose against the ideal template of a technique.

    Unknown techniques produce None rather than an error. Template metrics
    without a registered measurement, or whose landmarks are missing, are
    skipped.
    """

    def __init__(
        self,
        thresholds: Optional[ThresholdConfig] = None,
        metric_specs: Optional[Dict[str, MetricSpec]] = None,
    ):
        self._thresholds = thresholds or get_thresholds()
        self._specs = metric_specs if metric_specs is not None else METRIC_SPECS

    @property
    def metric_specs(self) -> Dict[str, MetricSpec]:
        return self._specs

    def _divisor(self, kind: str) -> float:
        cfg = self._thresholds.comparator
        return {
            ANGLE: cfg.angle_divisor,
            RATIO: cfg.ratio_divisor,
            POSITION: cfg.position_divisor,
        }[kind]

    def compare(
        self,
        pose: Optional[Pose],
        technique_id: str,
        history: Optional[Sequence[Pose]] = None,
    ) -> Optional[ComparisonResult]:
        resolved = resolve_technique(technique_id)
        if resolved is None:
            logger.warning("Unknown technique requested", extra={"technique_id": technique_id})
            return None

        template = IDEAL_POSES[resolved]
        body = BodyPoints.from_pose(pose, self._thresholds.keypoint.min_confidence)
        threshold = self._thresholds.comparator.suggestion_threshold

        result = ComparisonResult(technique_id=resolved, score=0.0)
        # History-based metrics must not score a frame with nobody in it
        if body.is_empty:
            logger.debug("No usable keypoints to compare", extra={"technique_id": resolved})
            return result

        for name, rng in template.ranges.items():
            spec = self._specs.get(name)
            if spec is None:
                continue
            value = spec.measure(body, history, self._thresholds)
            if value is None:
                continue

            score, suggestion = self._score(spec, value, rng)
            result.details[name] = MetricDetail(
                current=value,
                ideal=rng.describe(spec.unit),
                score=score,
                suggestion=suggestion if score < 1.0 else None,
            )
            if score < threshold:
                result.feedback.append(suggestion)

        if result.details:
            scores = [d.score for d in result.details.values()]
            result.score = sum(scores) / len(scores) * 100

        logger.debug(
            "Compared pose",
            extra={"technique_id": resolved, "score": result.score, "metrics": len(result.details)}
        )
        return result

    def _score(self, spec: MetricSpec, value: Value, rng) -> Tuple[float, str]:
        divisor = self._divisor(spec.kind)

        if isinstance(rng, PositionRange):
            x, y = value
            axis_scores = {"x": range_score(x, rng.x, divisor), "y": range_score(y, rng.y, divisor)}
            deviations = {"x": (x, rng.x), "y": (y, rng.y)}
            worst = max(deviations, key=lambda a: range_deviation(*deviations[a]))
            axis_value, axis_range = deviations[worst]
            direction = "low" if axis_value < axis_range.min else "high"
            phrase = spec.axis_phrases.get(f"{worst}_{direction}", spec.low if direction == "low" else spec.high)
            return sum(axis_scores.values()) / 2, phrase

        score = range_score(value, rng, divisor)
        phrase = spec.low if value < rng.min else spec.high
        return score, phrase
