"""
Pose data model and keypoint accessor.

Poses carry the 17 COCO-style landmarks produced by single-person detectors
(MoveNet in the browser, MediaPipe on the server after mapping). Coordinates
are image pixels with y growing downward.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from config import get_thresholds

Point = Tuple[float, float]
Segment = Tuple[Point, Point]


# Canonical landmark names, in detector output order
LANDMARK_NAMES = [
    "nose", "left_eye", "right_eye", "left_ear", "right_ear",
    "left_shoulder", "right_shoulder", "left_elbow", "right_elbow",
    "left_wrist", "right_wrist", "left_hip", "right_hip",
    "left_knee", "right_knee", "left_ankle", "right_ankle",
]

LANDMARK_INDICES = {name: i for i, name in enumerate(LANDMARK_NAMES)}

# MediaPipe BlazePose (33 landmarks) index for each canonical landmark
MEDIAPIPE_INDICES = {
    "nose": 0,
    "left_eye": 2, "right_eye": 5,
    "left_ear": 7, "right_ear": 8,
    "left_shoulder": 11, "right_shoulder": 12,
    "left_elbow": 13, "right_elbow": 14,
    "left_wrist": 15, "right_wrist": 16,
    "left_hip": 23, "right_hip": 24,
    "left_knee": 25, "right_knee": 26,
    "left_ankle": 27, "right_ankle": 28,
}

# Overlay skeleton: torso box, arms, legs
SKELETON_CONNECTIONS = [
    ("left_shoulder", "right_shoulder"),
    ("left_shoulder", "left_hip"),
    ("right_shoulder", "right_hip"),
    ("left_hip", "right_hip"),
    ("left_shoulder", "left_elbow"),
    ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"),
    ("right_elbow", "right_wrist"),
    ("left_hip", "left_knee"),
    ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"),
    ("right_knee", "right_ankle"),
]


def normalize_name(name: str) -> str:
    return name.strip().lower()


@dataclass(frozen=True)
class Keypoint:
    """A single detected landmark"""
    name: str
    x: float
    y: float
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "x": round(self.x, 2),
            "y": round(self.y, 2),
            "score": round(self.confidence, 4),
        }


@dataclass(frozen=True)
class Pose:
    """Ordered keypoints for one subject at one instant"""
    keypoints: Tuple[Keypoint, ...]
    timestamp: Optional[float] = None
    score: Optional[float] = None
    _by_name: Dict[str, Keypoint] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self):
        object.__setattr__(self, "keypoints", tuple(self.keypoints))
        object.__setattr__(self, "_by_name", {kp.name: kp for kp in self.keypoints})

    def get(self, name: str) -> Optional[Keypoint]:
        return self._by_name.get(normalize_name(name))

    @property
    def names(self) -> List[str]:
        return [kp.name for kp in self.keypoints]

    def __len__(self) -> int:
        return len(self.keypoints)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keypoints": [kp.to_dict() for kp in self.keypoints],
            "timestamp": self.timestamp,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Pose":
        """
        Build a Pose from detector JSON.

        Accepts ``{"keypoints": [{"name", "x", "y", "score"}], "timestamp", "score"}``.
        ``confidence`` is accepted in place of ``score``. Keypoints without a
        name take the canonical name for their index.

        Raises:
            ValueError: if the payload is not shaped like a pose.
        """
        raw_keypoints = payload.get("keypoints")
        if not isinstance(raw_keypoints, Sequence) or isinstance(raw_keypoints, (str, bytes)):
            raise ValueError("pose payload needs a 'keypoints' list")

        keypoints = []
        for i, raw in enumerate(raw_keypoints):
            if not isinstance(raw, Mapping):
                raise ValueError(f"keypoint {i} is not an object")
            name = raw.get("name") or raw.get("part")
            if name is None:
                if i >= len(LANDMARK_NAMES):
                    raise ValueError(f"keypoint {i} has no name and no canonical slot")
                name = LANDMARK_NAMES[i]
            confidence = raw.get("score", raw.get("confidence", 0.0))
            try:
                x, y, confidence = float(raw["x"]), float(raw["y"]), float(confidence)
            except (KeyError, TypeError, ValueError):
                raise ValueError(f"keypoint {i} needs numeric x, y and score")
            if not all(math.isfinite(v) for v in (x, y, confidence)):
                raise ValueError(f"keypoint {i} has non-finite values")
            keypoints.append(Keypoint(normalize_name(str(name)), x, y, confidence))

        timestamp = payload.get("timestamp")
        score = payload.get("score")
        return cls(
            keypoints=tuple(keypoints),
            timestamp=float(timestamp) if timestamp is not None else None,
            score=float(score) if score is not None else None,
        )


def get_keypoint(
    pose: Optional[Pose],
    name: str,
    min_confidence: Optional[float] = None,
) -> Optional[Point]:
    """
    Resolve a landmark to a usable (x, y) point.

    Returns None when the pose is missing, lacks the landmark, or the
    landmark's confidence is not strictly above ``min_confidence``.
    """
    if pose is None:
        return None
    if min_confidence is None:
        min_confidence = get_thresholds().keypoint.min_confidence

    kp = pose.get(name)
    if kp is None or not kp.confidence > min_confidence:
        return None
    return (kp.x, kp.y)


def skeleton_segments(pose: Optional[Pose], min_confidence: Optional[float] = None) -> List[Segment]:
    """Line segments for the overlay, skipping any with an unusable endpoint"""
    segments = []
    for start_name, end_name in SKELETON_CONNECTIONS:
        start = get_keypoint(pose, start_name, min_confidence)
        end = get_keypoint(pose, end_name, min_confidence)
        if start is not None and end is not None:
            segments.append((start, end))
    return segments


def pose_from_landmarks(
    landmarks: Sequence[Any],
    width: int,
    height: int,
    timestamp: Optional[float] = None,
) -> Pose:
    """
    Convert a 33-landmark MediaPipe result to a canonical 17-landmark Pose.

    Landmarks carry normalized ``x``/``y`` and a ``visibility`` that becomes the
    keypoint confidence. Objects and dicts are both accepted.
    """
    def attr(lm, key, default=0.0):
        if isinstance(lm, Mapping):
            return lm.get(key, default)
        value = getattr(lm, key, default)
        return default if value is None else value

    keypoints = []
    for name in LANDMARK_NAMES:
        index = MEDIAPIPE_INDICES[name]
        if index >= len(landmarks):
            continue
        lm = landmarks[index]
        keypoints.append(Keypoint(
            name=name,
            x=float(attr(lm, "x")) * width,
            y=float(attr(lm, "y")) * height,
            confidence=float(attr(lm, "visibility")),
        ))

    score = sum(kp.confidence for kp in keypoints) / len(keypoints) if keypoints else 0.0
    return Pose(keypoints=tuple(keypoints), timestamp=timestamp, score=score)
