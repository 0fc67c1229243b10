"""
Temporal smoothing of detector jitter.

Keeps a short newest-first history of poses and replaces each landmark of the
newest pose with a recency-weighted average over that history.
"""

from collections import deque
from typing import Deque, Optional, Tuple

import numpy as np

from config import get_thresholds, ThresholdConfig
from .keypoints import Keypoint, Pose


class PoseSmoother:
    """
    Recency-weighted moving average over the last few poses.

    History position ``i`` (0 = newest) has weight ``1 / (i + 1)``. A landmark
    missing from an older pose is skipped and the remaining weights are
    renormalized. Until the history holds ``min_history`` poses the input is
    returned unchanged.
    """

    def __init__(self, thresholds: Optional[ThresholdConfig] = None):
        cfg = (thresholds or get_thresholds()).smoothing
        self.min_history = cfg.min_history
        self._history: Deque[Pose] = deque(maxlen=cfg.history_size)

    @property
    def history(self) -> Tuple[Pose, ...]:
        """Raw input poses, newest first"""
        return tuple(self._history)

    def smooth(self, pose: Optional[Pose]) -> Optional[Pose]:
        if pose is None or not pose.keypoints:
            return pose

        self._history.appendleft(pose)
        if len(self._history) < self.min_history:
            return pose

        return Pose(
            keypoints=tuple(self._smooth_keypoint(kp) for kp in pose.keypoints),
            timestamp=pose.timestamp,
            score=pose.score,
        )

    def _smooth_keypoint(self, newest: Keypoint) -> Keypoint:
        weights, dx, dy, dc = [], [], [], []
        for i, past in enumerate(self._history):
            kp = newest if i == 0 else past.get(newest.name)
            if kp is None:
                continue
            weights.append(1.0 / (i + 1))
            dx.append(kp.x - newest.x)
            dy.append(kp.y - newest.y)
            dc.append(kp.confidence - newest.confidence)

        # Averaging offsets from the newest value keeps a stationary landmark exact
        w = np.asarray(weights)
        return Keypoint(
            name=newest.name,
            x=newest.x + float(np.average(dx, weights=w)),
            y=newest.y + float(np.average(dy, weights=w)),
            confidence=newest.confidence + float(np.average(dc, weights=w)),
        )

    def reset(self):
        """Clear history (e.g. when the subject changes)"""
        self._history.clear()
