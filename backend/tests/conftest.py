"""
Shared pose fixtures for FenceSense tests
"""

from typing import Dict, Optional, Tuple

import pytest

from core.keypoints import Keypoint, Pose, LANDMARK_NAMES


# Front-facing en garde, right-handed, pixel coordinates (y down).
# Front knee (left) ~117 deg, back knee ~155 deg, upright torso,
# weapon arm ~41 deg from the torso, guard hand at 0.4 of torso height,
# feet ~1.06x shoulder width, shoulders/hips ~1.14.
EN_GARDE_POINTS: Dict[str, Tuple[float, float]] = {
    "nose": (320, 100),
    "left_eye": (312, 92),
    "right_eye": (328, 92),
    "left_ear": (300, 98),
    "right_ear": (340, 98),
    "left_shoulder": (280, 160),
    "right_shoulder": (360, 160),
    "left_elbow": (250, 215),
    "right_elbow": (405, 215),
    "left_wrist": (240, 150),
    "right_wrist": (445, 244),
    "left_hip": (285, 300),
    "right_hip": (355, 300),
    "left_knee": (235, 385),
    "right_knee": (380, 380),
    "left_ankle": (285, 465),
    "right_ankle": (370, 460),
}


def build_pose(
    points: Dict[str, Tuple[float, float]],
    confidence: float = 0.9,
    overrides: Optional[Dict[str, Tuple[float, float]]] = None,
    confidences: Optional[Dict[str, float]] = None,
    timestamp: Optional[float] = None,
) -> Pose:
    points = {**points, **(overrides or {})}
    confidences = confidences or {}
    keypoints = [
        Keypoint(name, float(points[name][0]), float(points[name][1]), confidences.get(name, confidence))
        for name in LANDMARK_NAMES
        if name in points
    ]
    return Pose(keypoints=tuple(keypoints), timestamp=timestamp)


@pytest.fixture
def make_pose():
    """Factory: make_pose(overrides=..., confidence=..., confidences=...)"""
    def _make(**kwargs):
        return build_pose(EN_GARDE_POINTS, **kwargs)
    return _make


@pytest.fixture
def en_garde_pose():
    return build_pose(EN_GARDE_POINTS)


@pytest.fixture
def blind_pose():
    """Every landmark present but with zero confidence"""
    return build_pose(EN_GARDE_POINTS, confidence=0.0)
