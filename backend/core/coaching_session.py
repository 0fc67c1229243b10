"""
Live Coaching Session
Owns all per-session state and runs one pose through the coaching chain:
smooth -> extract metrics -> compare -> record progress -> feedback.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import numpy as np

from config import get_thresholds, ThresholdConfig
from exceptions import SessionNotFound, UnknownTechnique, UnknownWeapon, ResourceExhausted
from .environment import EnvironmentMonitor, EnvironmentReading
from .feedback_generator import Feedback, FeedbackGenerator
from .fencing_metrics import FencingMetricExtractor, FencingMetrics
from .keypoints import Pose, skeleton_segments
from .pose_comparator import ComparisonResult, PoseComparator
from .pose_smoother import PoseSmoother
from .progress_tracker import ProgressTracker
from .technique_catalog import (
    DEFAULT_TECHNIQUE, DEFAULT_WEAPON, IDEAL_POSES, WEAPONS,
    resolve_technique, resolve_weapon,
)

logger = logging.getLogger(__name__)


class FpsCounter:
    """Counts frames and publishes a rounded rate once per window"""

    def __init__(self, window_sec: float = 1.0):
        self.window_sec = window_sec
        self.fps = 0
        self._frames = 0
        self._window_start: Optional[float] = None

    def tick(self, now: float) -> int:
        if self._window_start is None:
            self._window_start = now
        self._frames += 1
        elapsed = now - self._window_start
        if elapsed >= self.window_sec:
            self.fps = round(self._frames / elapsed)
            self._frames = 0
            self._window_start = now
        return self.fps


@dataclass
class FrameAnalysis:
    """Everything produced for one frame"""
    session_id: str
    frame_index: int
    technique_id: str
    weapon: str
    pose: Optional[Pose] = None
    metrics: Optional[FencingMetrics] = None
    comparison: Optional[ComparisonResult] = None
    feedback: Optional[Feedback] = None
    fps: int = 0
    environment: Optional[EnvironmentReading] = None
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "session_id": self.session_id,
            "frame_index": self.frame_index,
            "technique_id": self.technique_id,
            "weapon": WEAPONS[self.weapon].to_dict(),
            "pose": self.pose.to_dict() if self.pose else None,
            "skeleton": [[list(a), list(b)] for a, b in skeleton_segments(self.pose)],
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "feedback": self.feedback.to_dict() if self.feedback else None,
            "fps": self.fps,
            "environment": self.environment.to_dict() if self.environment else None,
            "processing_time_ms": round(self.processing_time_ms, 2),
        }


class CoachingSession:
    """
    One athlete's live coaching session.

    Technique and weapon changes take effect on the next processed frame.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        technique_id: str = DEFAULT_TECHNIQUE,
        weapon: str = DEFAULT_WEAPON,
        thresholds: Optional[ThresholdConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._thresholds = thresholds or get_thresholds()
        self._clock = clock

        self.session_id = session_id or str(uuid.uuid4())
        self.created_at = datetime.now(timezone.utc)
        self.technique_id = self._resolve_technique(technique_id)
        self.weapon = self._resolve_weapon(weapon)

        self.smoother = PoseSmoother(self._thresholds)
        self.extractor = FencingMetricExtractor(self._thresholds)
        self.comparator = PoseComparator(self._thresholds)
        self.feedback_generator = FeedbackGenerator(self._thresholds, self.comparator, clock)
        self.progress = ProgressTracker(self._thresholds)
        self.environment = EnvironmentMonitor(self._thresholds, clock)
        self.fps_counter = FpsCounter(self._thresholds.live_loop.fps_window_sec)

        self.frame_count = 0
        self.last_feedback: Optional[Feedback] = None
        self.last_analysis: Optional[FrameAnalysis] = None

    @staticmethod
    def _resolve_technique(technique_id: str) -> str:
        resolved = resolve_technique(technique_id)
        if resolved is None:
            raise UnknownTechnique(technique_id, IDEAL_POSES.keys())
        return resolved

    @staticmethod
    def _resolve_weapon(weapon: str) -> str:
        resolved = resolve_weapon(weapon)
        if resolved is None:
            raise UnknownWeapon(weapon, WEAPONS.keys())
        return resolved

    def set_technique(self, technique_id: str):
        self.technique_id = self._resolve_technique(technique_id)
        logger.info(f"[{self.session_id}] Technique set to {self.technique_id}")

    def set_weapon(self, weapon: str):
        self.weapon = self._resolve_weapon(weapon)
        logger.info(f"[{self.session_id}] Weapon set to {self.weapon}")

    def observe_frame(self, frame: Optional[np.ndarray], now: Optional[float] = None) -> EnvironmentReading:
        """Feed a raw camera frame to the environment monitor"""
        return self.environment.update(frame, now)

    def process_pose(self, pose: Optional[Pose], now: Optional[float] = None) -> FrameAnalysis:
        start = time.perf_counter()
        now = self._clock() if now is None else now
        technique_id, weapon = self.technique_id, self.weapon

        self.frame_count += 1
        analysis = FrameAnalysis(
            session_id=self.session_id,
            frame_index=self.frame_count,
            technique_id=technique_id,
            weapon=weapon,
            fps=self.fps_counter.tick(now),
            environment=self.environment.reading if self.environment.reading.last_update is not None else None,
        )

        if pose is None or not pose.keypoints:
            self.last_feedback = None
        else:
            smoothed = self.smoother.smooth(pose)
            history = self.smoother.history

            analysis.pose = smoothed
            analysis.metrics = self.extractor.extract(smoothed, history)
            analysis.comparison = self.comparator.compare(smoothed, technique_id, history)
            if analysis.comparison is not None:
                self.progress.record(analysis.comparison, technique_id)

            feedback = self.feedback_generator.from_comparison(analysis.comparison, now)
            if feedback is not None:
                self.last_feedback = feedback
                analysis.feedback = feedback

        analysis.processing_time_ms = (time.perf_counter() - start) * 1000
        self.last_analysis = analysis
        return analysis

    def reset(self):
        """Forget pose history and rate-limit state, keep progress"""
        self.smoother.reset()
        self.feedback_generator.cooldown.reset()
        self.last_feedback = None

    def to_dict(self) -> Dict:
        return {
            "session_id": self.session_id,
            "technique_id": self.technique_id,
            "technique_name": IDEAL_POSES[self.technique_id].name,
            "weapon": WEAPONS[self.weapon].to_dict(),
            "created_at": self.created_at.isoformat(),
            "frames_processed": self.frame_count,
            "fps": self.fps_counter.fps,
            "last_feedback": self.last_feedback.to_dict() if self.last_feedback else None,
            "environment": self.environment.reading.to_dict(),
        }


class SessionManager:
    """In-memory registry of live sessions"""

    def __init__(self, max_sessions: int = 100, thresholds: Optional[ThresholdConfig] = None):
        self.max_sessions = max_sessions
        self._thresholds = thresholds
        self._sessions: Dict[str, CoachingSession] = {}

    def create(self, technique_id: str = DEFAULT_TECHNIQUE, weapon: str = DEFAULT_WEAPON) -> CoachingSession:
        if len(self._sessions) >= self.max_sessions:
            raise ResourceExhausted(
                "sessions", current=str(len(self._sessions)), limit=str(self.max_sessions)
            )
        session = CoachingSession(technique_id=technique_id, weapon=weapon, thresholds=self._thresholds)
        self._sessions[session.session_id] = session
        logger.info(f"Session created: {session.session_id}")
        return session

    def get(self, session_id: str) -> CoachingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def delete(self, session_id: str) -> CoachingSession:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        logger.info(f"Session deleted: {session_id}")
        return session

    def list(self) -> List[CoachingSession]:
        return list(self._sessions.values())

    def clear(self):
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
