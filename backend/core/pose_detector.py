"""
Server-side pose detection using MediaPipe Pose Landmarker.
Decodes camera frames and maps the 33 BlazePose landmarks onto the
canonical 17-landmark Pose.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks.python import BaseOptions
from mediapipe.tasks.python.vision import PoseLandmarker, PoseLandmarkerOptions, RunningMode

from exceptions import DetectorError
from logging_config import LogTimer
from .keypoints import Pose, pose_from_landmarks

logger = logging.getLogger(__name__)


def decode_frame(data: bytes) -> np.ndarray:
    """Decode JPEG/PNG bytes into an RGB array"""
    if not data:
        raise DetectorError("Empty frame data")
    arr = np.frombuffer(data, dtype=np.uint8)
    bgr = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if bgr is None:
        raise DetectorError("Failed to decode frame")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


class MediaPipePoseDetector:
    """
    Single-person pose detector.

    ``detect`` is blocking; the live loop runs it in a worker thread.
    """

    def __init__(self, model_path: str, min_detection_confidence: float = 0.3):
        if not Path(model_path).is_file():
            raise DetectorError(f"Pose model not found: {model_path}")

        self.model_path = model_path
        self.min_detection_confidence = min_detection_confidence
        # One landmarker shared by all sessions
        self._lock = threading.Lock()
        with LogTimer(logger, "Pose model load", model_path=model_path):
            self._landmarker = PoseLandmarker.create_from_options(
                PoseLandmarkerOptions(
                    base_options=BaseOptions(model_asset_path=model_path),
                    running_mode=RunningMode.IMAGE,
                    num_poses=1,
                    min_pose_detection_confidence=min_detection_confidence,
                )
            )

    def detect(self, frame: np.ndarray, timestamp: Optional[float] = None) -> Optional[Pose]:
        """Detect the subject in an RGB frame; None when nobody is visible"""
        if frame is None or frame.ndim != 3:
            raise DetectorError("Expected an RGB frame")

        height, width = frame.shape[:2]
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(frame))
        try:
            with self._lock:
                result = self._landmarker.detect(mp_image)
        except (RuntimeError, ValueError) as e:
            raise DetectorError(f"Pose detection failed: {e}")

        if not result.pose_landmarks:
            return None
        return pose_from_landmarks(result.pose_landmarks[0], width, height, timestamp)

    def close(self):
        """Release MediaPipe resources"""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
