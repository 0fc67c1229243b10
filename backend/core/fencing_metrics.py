"""
Fencing Metric Extraction
Turns a (smoothed) pose into stance, lunge, arm, balance and stability
metrics plus the corrective suggestions they imply.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from config import get_thresholds, ThresholdConfig
from .keypoints import Point, Pose, get_keypoint

logger = logging.getLogger(__name__)

BODY_LANDMARKS = (
    "nose",
    "left_shoulder", "right_shoulder",
    "left_elbow", "right_elbow",
    "left_wrist", "right_wrist",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
)

SUGGEST_WIDEN_STANCE = "Widen your stance for better balance"
SUGGEST_EXTEND_ARM = "Extend your weapon arm further"
SUGGEST_CENTER_WEIGHT = "Center your weight for better balance"


# =============================================================================
# Geometry
# =============================================================================

def distance(p1: Point, p2: Point) -> float:
    return math.hypot(p1[0] - p2[0], p1[1] - p2[1])


def midpoint(p1: Point, p2: Point) -> Point:
    return ((p1[0] + p2[0]) / 2, (p1[1] + p2[1]) / 2)


def calculate_angle(a: Point, b: Point, c: Point) -> float:
    """
    Angle at ``b`` (degrees) in the triangle a-b-c, by the law of cosines.

    Returns 0 when a side touching ``b`` has zero length. The cosine is
    clamped, so collinear points give exactly 0 or 180.
    """
    ab = distance(a, b)
    cb = distance(c, b)
    ac = distance(a, c)
    if ab == 0 or cb == 0:
        return 0.0

    cos_angle = (ab ** 2 + cb ** 2 - ac ** 2) / (2 * ab * cb)
    cos_angle = max(-1.0, min(1.0, cos_angle))
    angle = math.degrees(math.acos(cos_angle))
    return 0.0 if math.isnan(angle) else angle


# =============================================================================
# Resolved body landmarks
# =============================================================================

@dataclass
class BodyPoints:
    """Usable body landmarks of one pose, resolved once through the accessor"""
    nose: Optional[Point] = None
    left_shoulder: Optional[Point] = None
    right_shoulder: Optional[Point] = None
    left_elbow: Optional[Point] = None
    right_elbow: Optional[Point] = None
    left_wrist: Optional[Point] = None
    right_wrist: Optional[Point] = None
    left_hip: Optional[Point] = None
    right_hip: Optional[Point] = None
    left_knee: Optional[Point] = None
    right_knee: Optional[Point] = None
    left_ankle: Optional[Point] = None
    right_ankle: Optional[Point] = None
    usable: List[Point] = field(default_factory=list)

    @classmethod
    def from_pose(cls, pose: Optional[Pose], min_confidence: Optional[float] = None) -> "BodyPoints":
        points = cls()
        if pose is None:
            return points
        for kp in pose.keypoints:
            point = get_keypoint(pose, kp.name, min_confidence)
            if point is None:
                continue
            points.usable.append(point)
            if kp.name in BODY_LANDMARKS:
                setattr(points, kp.name, point)
        return points

    @property
    def is_empty(self) -> bool:
        return not self.usable

    def _side(self, side: str, part: str) -> Optional[Point]:
        return getattr(self, f"{side}_{part}")

    # ---- midpoints -----------------------------------------------------------

    def _mid(self, part: str) -> Optional[Point]:
        left, right = self._side("left", part), self._side("right", part)
        if left is None or right is None:
            return None
        return midpoint(left, right)

    @property
    def shoulder_mid(self) -> Optional[Point]:
        return self._mid("shoulder")

    @property
    def hip_mid(self) -> Optional[Point]:
        return self._mid("hip")

    @property
    def ankle_mid(self) -> Optional[Point]:
        return self._mid("ankle")

    # ---- stance --------------------------------------------------------------

    def stance_ratio(self) -> Optional[float]:
        """Horizontal shoulder width over horizontal hip width"""
        if None in (self.left_shoulder, self.right_shoulder, self.left_hip, self.right_hip):
            return None
        hip_width = abs(self.left_hip[0] - self.right_hip[0])
        if hip_width == 0:
            return None
        return abs(self.left_shoulder[0] - self.right_shoulder[0]) / hip_width

    def feet_distance(self) -> Optional[float]:
        """Ankle distance relative to shoulder distance"""
        if None in (self.left_ankle, self.right_ankle, self.left_shoulder, self.right_shoulder):
            return None
        shoulder_dist = distance(self.left_shoulder, self.right_shoulder)
        if shoulder_dist == 0:
            return None
        return distance(self.left_ankle, self.right_ankle) / shoulder_dist

    # ---- legs ----------------------------------------------------------------

    def front_side(self) -> Optional[str]:
        """Side of the front leg: the knee lower in the image (greater y)"""
        if self.left_knee is None or self.right_knee is None:
            return None
        return "left" if self.left_knee[1] > self.right_knee[1] else "right"

    def back_side(self) -> Optional[str]:
        front = self.front_side()
        if front is None:
            return None
        return "right" if front == "left" else "left"

    def knee_angle(self, side: Optional[str]) -> Optional[float]:
        """Hip-knee-ankle angle of one leg"""
        if side is None:
            return None
        hip, knee, ankle = (self._side(side, p) for p in ("hip", "knee", "ankle"))
        if None in (hip, knee, ankle):
            return None
        return calculate_angle(hip, knee, ankle)

    def front_knee_angle(self) -> Optional[float]:
        return self.knee_angle(self.front_side())

    def back_knee_angle(self) -> Optional[float]:
        return self.knee_angle(self.back_side())

    def knee_bend(self) -> Optional[float]:
        angles = [a for a in (self.knee_angle("left"), self.knee_angle("right")) if a is not None]
        if not angles:
            return None
        return sum(angles) / len(angles)

    def thigh_angle(self, reference_length: float) -> Optional[float]:
        """
        Front thigh angle from vertical, measured at the front knee against a
        synthetic point straight above it. 0 = upright, 90 = horizontal.
        """
        if None in (self.left_knee, self.right_knee, self.left_ankle, self.right_ankle):
            return None
        side = self.front_side()
        knee, hip = self._side(side, "knee"), self._side(side, "hip")
        if hip is None:
            return None
        vertical = (knee[0], knee[1] - reference_length)
        return calculate_angle(vertical, knee, hip)

    def step_length(self) -> Optional[float]:
        """Horizontal ankle spread relative to standing height (shoulders to ankles)"""
        if None in (self.left_ankle, self.right_ankle, self.shoulder_mid):
            return None
        height = self.ankle_mid[1] - self.shoulder_mid[1]
        if height <= 0:
            return None
        return abs(self.left_ankle[0] - self.right_ankle[0]) / height

    def weight_distribution(self) -> Optional[float]:
        """Hip center position between the ankles: 0 = over left ankle, 1 = over right"""
        if None in (self.left_ankle, self.right_ankle, self.hip_mid):
            return None
        span = self.right_ankle[0] - self.left_ankle[0]
        if span == 0:
            return None
        return (self.hip_mid[0] - self.left_ankle[0]) / span

    # ---- torso ---------------------------------------------------------------

    def torso_angle(self) -> Optional[float]:
        """Torso angle from horizontal, 90 when upright"""
        shoulder_mid, hip_mid = self.shoulder_mid, self.hip_mid
        if shoulder_mid is None or hip_mid is None or shoulder_mid == hip_mid:
            return None
        return math.degrees(math.atan2(hip_mid[1] - shoulder_mid[1], abs(shoulder_mid[0] - hip_mid[0])))

    def body_lean(self) -> Optional[float]:
        torso = self.torso_angle()
        return None if torso is None else 90.0 - torso

    def alignment(self) -> Optional[float]:
        return self.stance_ratio()

    # ---- weapon arm ----------------------------------------------------------

    def weapon_side(self) -> Optional[str]:
        """Right arm when the right wrist is usable, otherwise the left"""
        if self.right_wrist is not None:
            return "right"
        if self.left_wrist is not None:
            return "left"
        return None

    def weapon_arm(self) -> Optional[Tuple[Point, Point, Point]]:
        side = self.weapon_side()
        if side is None:
            return None
        shoulder, elbow, wrist = (self._side(side, p) for p in ("shoulder", "elbow", "wrist"))
        if None in (shoulder, elbow, wrist):
            return None
        return shoulder, elbow, wrist

    def elbow_angle(self) -> Optional[float]:
        arm = self.weapon_arm()
        return None if arm is None else calculate_angle(*arm)

    def arm_extension(self, ideal_angle: float) -> Optional[float]:
        angle = self.elbow_angle()
        if angle is None:
            return None
        return 1 - abs(angle - ideal_angle) / ideal_angle

    def weapon_arm_angle(self) -> Optional[float]:
        """Shoulder angle between the torso line (down to the hip) and the upper arm"""
        side = self.weapon_side()
        if side is None:
            return None
        hip, shoulder, elbow = (self._side(side, p) for p in ("hip", "shoulder", "elbow"))
        if None in (hip, shoulder, elbow):
            return None
        return calculate_angle(hip, shoulder, elbow)

    def guard_hand_height(self) -> Optional[float]:
        """Weapon hand height above the hips as a fraction of torso length"""
        side = self.weapon_side()
        shoulder_mid, hip_mid = self.shoulder_mid, self.hip_mid
        if side is None or shoulder_mid is None or hip_mid is None:
            return None
        torso = hip_mid[1] - shoulder_mid[1]
        if torso <= 0:
            return None
        return (hip_mid[1] - self._side(side, "wrist")[1]) / torso

    def guard_hand_position(self) -> Optional[Tuple[float, float]]:
        """Weapon hand position normalized to the bounding box of the usable landmarks"""
        side = self.weapon_side()
        if side is None or len(self.usable) < 2:
            return None
        xs = [p[0] for p in self.usable]
        ys = [p[1] for p in self.usable]
        width, height = max(xs) - min(xs), max(ys) - min(ys)
        if width == 0 or height == 0:
            return None
        wrist = self._side(side, "wrist")
        return (wrist[0] - min(xs)) / width, (wrist[1] - min(ys)) / height

    # ---- balance -------------------------------------------------------------

    def balance(self, offset_scale: float) -> Optional[float]:
        """1 when shoulders, hips and ankles are stacked, falling toward 0 with horizontal offset"""
        shoulder_mid, hip_mid, ankle_mid = self.shoulder_mid, self.hip_mid, self.ankle_mid
        if None in (shoulder_mid, hip_mid, ankle_mid):
            return None
        upper = abs(shoulder_mid[0] - hip_mid[0]) / offset_scale
        lower = abs(hip_mid[0] - ankle_mid[0]) / offset_scale
        return 1 - min(1.0, (upper + lower) / 2)

    def centroid(self) -> Optional[Point]:
        if not self.usable:
            return None
        xs, ys = zip(*self.usable)
        return float(np.mean(xs)), float(np.mean(ys))


def measure_stability(
    history: Optional[Sequence[Pose]],
    thresholds: Optional[ThresholdConfig] = None,
) -> Optional[float]:
    """
    Stability from frame-to-frame motion of the body centroid over the history.

    Returns None when fewer than ``min_history`` poses have a centroid.
    """
    cfg = (thresholds or get_thresholds())
    if not history:
        return None
    centroids = [
        c for c in (BodyPoints.from_pose(p, cfg.keypoint.min_confidence).centroid() for p in history)
        if c is not None
    ]
    if len(centroids) < cfg.stability.min_history:
        return None
    steps = np.diff(np.asarray(centroids), axis=0)
    jitter = float(np.mean(np.hypot(steps[:, 0], steps[:, 1])))
    return 1 - min(1.0, jitter / cfg.stability.jitter_scale)


# =============================================================================
# Extractor
# =============================================================================

@dataclass
class FencingMetrics:
    """Per-pose fencing metrics"""
    en_garde: bool = False
    lunge: bool = False
    riposte: bool = False
    parry: bool = False
    balance: float = 0.5
    lunge_extension: float = 0.0
    arm_extension: Optional[float] = None
    stability: float = 0.8
    suggestions: List[str] = field(default_factory=list)

    # Raw measurements behind the flags
    stance_ratio: Optional[float] = None
    lunge_angle: Optional[float] = None
    arm_angle: Optional[float] = None

    @property
    def extension(self) -> float:
        """Arm extension when the arm was measured, otherwise lunge extension"""
        if self.arm_extension is not None:
            return self.arm_extension
        return self.lunge_extension

    def to_dict(self) -> dict:
        def r(value):
            return None if value is None else round(value, 3)

        return {
            "en_garde": self.en_garde,
            "lunge": self.lunge,
            "riposte": self.riposte,
            "parry": self.parry,
            "balance": r(self.balance),
            "extension": r(self.extension),
            "lunge_extension": r(self.lunge_extension),
            "arm_extension": r(self.arm_extension),
            "stability": r(self.stability),
            "stance_ratio": r(self.stance_ratio),
            "lunge_angle": r(self.lunge_angle),
            "arm_angle": r(self.arm_angle),
            "suggestions": list(self.suggestions),
        }


class FencingMetricExtractor:
    """
    Computes stance, lunge, arm, balance and stability metrics for one pose.

    Each check runs only when its landmarks are usable; a skipped check
    leaves its default in place. Riposte and parry are never detected from a
    single pose and stay False.
    """

    def __init__(self, thresholds: Optional[ThresholdConfig] = None):
        self._thresholds = thresholds or get_thresholds()

    def extract(
        self,
        pose: Optional[Pose],
        history: Optional[Sequence[Pose]] = None,
    ) -> Optional[FencingMetrics]:
        t = self._thresholds
        body = BodyPoints.from_pose(pose, t.keypoint.min_confidence)
        if body.is_empty:
            return None

        metrics = FencingMetrics(
            balance=t.balance.default_balance,
            stability=t.stability.default_stability,
        )
        self._check_stance(body, metrics)
        self._check_lunge(body, metrics)
        self._check_arm(body, metrics)
        self._check_balance(body, metrics)

        stability = measure_stability(history, t)
        if stability is not None:
            metrics.stability = stability

        logger.debug("Extracted fencing metrics", extra={"metrics": metrics.to_dict()})
        return metrics

    def _check_stance(self, body: BodyPoints, metrics: FencingMetrics):
        if None in (body.left_shoulder, body.right_shoulder, body.left_hip, body.right_hip):
            return
        cfg = self._thresholds.stance
        ratio = body.stance_ratio()
        metrics.stance_ratio = ratio
        # Zero hip width has no ratio and counts as out of range
        if ratio is not None and cfg.min_ratio <= ratio <= cfg.max_ratio:
            metrics.en_garde = True
        else:
            metrics.suggestions.append(SUGGEST_WIDEN_STANCE)

    def _check_lunge(self, body: BodyPoints, metrics: FencingMetrics):
        cfg = self._thresholds.lunge
        angle = body.thigh_angle(cfg.reference_length)
        if angle is None:
            return
        metrics.lunge_angle = angle
        if cfg.min_angle < angle < cfg.max_angle:
            metrics.lunge = True
            metrics.lunge_extension = 1 - angle / cfg.max_angle

    def _check_arm(self, body: BodyPoints, metrics: FencingMetrics):
        cfg = self._thresholds.arm
        angle = body.elbow_angle()
        if angle is None:
            return
        metrics.arm_angle = angle
        metrics.arm_extension = 1 - abs(angle - cfg.ideal_angle) / cfg.ideal_angle
        if angle < cfg.min_extended_angle:
            metrics.suggestions.append(SUGGEST_EXTEND_ARM)

    def _check_balance(self, body: BodyPoints, metrics: FencingMetrics):
        cfg = self._thresholds.balance
        balance = body.balance(cfg.offset_scale)
        if balance is None:
            return
        metrics.balance = balance
        if balance < cfg.min_balance:
            metrics.suggestions.append(SUGGEST_CENTER_WEIGHT)
