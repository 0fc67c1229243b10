"""
Live Coaching Loop
Single-task, self-rescheduling frame loop: the next frame is requested only
after the current one has been detected, analyzed and published.
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from exceptions import DetectorError
from .coaching_session import CoachingSession, FrameAnalysis
from .keypoints import Pose

logger = logging.getLogger(__name__)

FrameSource = Callable[[], Awaitable[Optional[Any]]]
ResultCallback = Callable[[FrameAnalysis], Any]
ErrorCallback = Callable[[Exception], Any]


class PoseDetector(Protocol):
    def detect(self, frame: Any, timestamp: Optional[float] = None) -> Optional[Pose]:
        ...


class KeypointPayloadDetector:
    """
    Detector for clients that run pose estimation themselves and send the
    keypoints as JSON (raw text or already decoded).
    """

    blocking = False

    def detect(self, frame: Any, timestamp: Optional[float] = None) -> Optional[Pose]:
        if frame is None:
            return None
        if isinstance(frame, Pose):
            return frame if frame.keypoints else None
        if isinstance(frame, (str, bytes, bytearray)):
            try:
                frame = json.loads(frame)
            except ValueError as e:
                raise DetectorError(f"Pose payload is not valid JSON: {e}")
        if not isinstance(frame, dict):
            raise DetectorError(f"Unsupported pose payload type: {type(frame).__name__}")
        if frame.get("keypoints") is None:
            return None
        try:
            pose = Pose.from_dict(frame)
        except ValueError as e:
            raise DetectorError(f"Invalid pose payload: {e}")
        return pose if pose.keypoints else None


async def _maybe_await(value):
    if inspect.isawaitable(value):
        await value


class LiveCoachingLoop:
    """
    Drives a CoachingSession from a frame source.

    Detector failures are logged, reported through ``on_error`` and the frame
    is skipped; the loop keeps going. The loop ends when the frame source
    returns None or ``stop()`` is called.
    """

    def __init__(
        self,
        session: CoachingSession,
        frame_source: FrameSource,
        detector: PoseDetector,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        observe_frames: bool = False,
    ):
        self.session = session
        self.frame_source = frame_source
        self.detector = detector
        self.on_result = on_result
        self.on_error = on_error
        self.observe_frames = observe_frames

        self.frames_processed = 0
        self.errors = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._running = True
            self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self):
        self._running = True
        logger.info(f"[{self.session.session_id}] Live loop started")
        try:
            while self._running:
                frame = await self.frame_source()
                if frame is None or not self._running:
                    break
                await self._process(frame)
        finally:
            self._running = False
            logger.info(
                f"[{self.session.session_id}] Live loop stopped",
                extra={"frames_processed": self.frames_processed, "detector_errors": self.errors}
            )

    async def _process(self, frame: Any):
        if self.observe_frames:
            self.session.observe_frame(frame)

        try:
            pose = await self._detect(frame)
        except Exception as e:
            self.errors += 1
            logger.warning(f"[{self.session.session_id}] Pose detection failed, frame skipped: {e}")
            if self.on_error is not None:
                await _maybe_await(self.on_error(e))
            return

        if not self._running:
            return
        result = self.session.process_pose(pose)
        self.frames_processed += 1
        if self.on_result is not None:
            await _maybe_await(self.on_result(result))

    async def _detect(self, frame: Any) -> Optional[Pose]:
        if not getattr(self.detector, "blocking", True):
            return self.detector.detect(frame)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.detector.detect, frame)

    async def stop(self):
        """Stop scheduling frames and cancel the pending iteration"""
        self._running = False
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait(self):
        if self._task is not None:
            await self._task
