"""
FastAPI Application - FenceSense Live Coach API
Live fencing form coaching over REST and WebSocket.
"""

import os
import time
import logging
from typing import List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Internal imports
from config.settings import get_settings
from core.coaching_session import SessionManager, FrameAnalysis
from core.keypoints import Pose
from core.live_loop import LiveCoachingLoop, KeypointPayloadDetector
from core.technique_catalog import IDEAL_POSES, WEAPONS, DEFAULT_TECHNIQUE, DEFAULT_WEAPON
from exceptions import (
    FenceSenseException,
    DetectorError,
    InvalidPoseData,
    ServiceUnavailable,
    ValidationError,
)
from logging_config import correlation_scope, setup_logging
from middleware.error_handler import setup_error_handlers
from middleware.performance import PerformanceMiddleware
from middleware.rate_limiter import limit_frames, limit_sessions, setup_rate_limiting

# Load settings
settings = get_settings()

setup_logging(
    level=settings.LOG_LEVEL,
    json_format=settings.json_logs,
    log_file=settings.LOG_FILE,
)
logger = logging.getLogger(__name__)

# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=settings.APP_NAME,
        description="Real-time fencing form coaching from pose keypoints",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID"],
        max_age=3600,
    )
    app.add_middleware(PerformanceMiddleware)
    setup_error_handlers(app)
    setup_rate_limiting(app)

    return app


# Create app instance
app = create_app()

# =============================================================================
# Global State
# =============================================================================

sessions = SessionManager(max_sessions=settings.MAX_ACTIVE_SESSIONS)
started_at = time.time()

# Server-side detector, loaded on first video stream
_pose_detector = None


def get_pose_detector():
    """
    Load the MediaPipe detector on first use.

    Raises:
        ServiceUnavailable: if no model is configured or it cannot be loaded
    """
    global _pose_detector
    if _pose_detector is not None:
        return _pose_detector
    if not settings.POSE_MODEL_PATH:
        raise ServiceUnavailable("Server-side pose detection is not configured (POSE_MODEL_PATH)")

    from core.pose_detector import MediaPipePoseDetector
    try:
        _pose_detector = MediaPipePoseDetector(
            settings.POSE_MODEL_PATH,
            min_detection_confidence=settings.MIN_DETECTION_CONFIDENCE,
        )
    except DetectorError as e:
        raise ServiceUnavailable(e.message)
    return _pose_detector


# =============================================================================
# Request/Response Models
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


class CreateSessionRequest(BaseModel):
    technique_id: str = Field(default=DEFAULT_TECHNIQUE, description="Technique to coach, e.g. ENGARDE, LUNGE, PARRY")
    weapon: str = Field(default=DEFAULT_WEAPON, description="FOIL, EPEE or SABRE")


class SelectionRequest(BaseModel):
    technique_id: Optional[str] = None
    weapon: Optional[str] = None


class KeypointIn(BaseModel):
    name: Optional[str] = Field(default=None, description="Landmark name, e.g. left_knee")
    x: float
    y: float
    score: float = Field(default=0.0, description="Detector confidence")


class PosePayload(BaseModel):
    keypoints: List[KeypointIn] = Field(default_factory=list)
    timestamp: Optional[float] = None
    score: Optional[float] = None

    def to_pose(self) -> Optional[Pose]:
        if not self.keypoints:
            return None
        try:
            return Pose.from_dict(self.model_dump())
        except ValueError as e:
            raise InvalidPoseData(str(e))


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/", response_model=HealthResponse, tags=["Health"])
async def root():
    """Root endpoint - basic health check."""
    return HealthResponse(
        status="ok",
        service=settings.APP_NAME,
        version=settings.APP_VERSION
    )


@app.get("/health", tags=["Health"])
async def health():
    """Simple health check for load balancers."""
    return {"status": "healthy"}


@app.get("/health/live", tags=["Health"])
async def health_live():
    """Liveness probe - is service responding?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
async def health_ready():
    """Readiness probe - is service ready for traffic?"""
    return {
        "status": "ready",
        "active_sessions": len(sessions),
        "max_sessions": sessions.max_sessions,
        "video_detection": bool(settings.POSE_MODEL_PATH),
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    """Basic metrics endpoint for monitoring."""
    import psutil

    try:
        process = psutil.Process(os.getpid())
        active = sessions.list()
        return {
            "uptime_seconds": round(time.time() - started_at, 1),
            "memory_mb": round(process.memory_info().rss / 1024 / 1024, 2),
            "cpu_percent": process.cpu_percent(interval=0.1),
            "sessions_count": len(active),
            "frames_processed": sum(s.frame_count for s in active),
        }
    except psutil.Error as e:
        logger.error(f"Metrics collection failed: {e}")
        return {"error": str(e)}


# =============================================================================
# Catalog Endpoints
# =============================================================================

@app.get("/api/techniques", tags=["Catalog"])
async def list_techniques():
    """Techniques with their ideal metric ranges."""
    return {"techniques": [t.to_dict() for t in IDEAL_POSES.values()]}


@app.get("/api/weapons", tags=["Catalog"])
async def list_weapons():
    """Weapons and their valid target areas."""
    return {"weapons": [w.to_dict() for w in WEAPONS.values()]}


# =============================================================================
# Session Endpoints
# =============================================================================

@app.post("/api/sessions", status_code=201, tags=["Sessions"])
@limit_sessions
async def create_session(request: Request, body: Optional[CreateSessionRequest] = None):
    """
    Start a live coaching session.

    - **technique_id**: technique to coach (aliases such as PARRY are accepted)
    - **weapon**: FOIL, EPEE or SABRE
    """
    body = body or CreateSessionRequest()
    session = sessions.create(technique_id=body.technique_id, weapon=body.weapon)
    return session.to_dict()


@app.get("/api/sessions", tags=["Sessions"])
async def list_sessions():
    """List active coaching sessions."""
    return {"sessions": [s.to_dict() for s in sessions.list()]}


@app.get("/api/sessions/{session_id}", tags=["Sessions"])
async def get_session(session_id: str):
    return sessions.get(session_id).to_dict()


@app.delete("/api/sessions/{session_id}", tags=["Sessions"])
async def delete_session(session_id: str):
    """End a session and drop its in-memory state."""
    sessions.delete(session_id)
    return {"deleted": session_id}


@app.put("/api/sessions/{session_id}/selection", tags=["Sessions"])
async def update_selection(session_id: str, body: SelectionRequest):
    """Change the coached technique and/or weapon; applies from the next frame."""
    if body.technique_id is None and body.weapon is None:
        raise ValidationError("Provide technique_id and/or weapon")

    session = sessions.get(session_id)
    if body.technique_id is not None:
        session.set_technique(body.technique_id)
    if body.weapon is not None:
        session.set_weapon(body.weapon)
    return session.to_dict()


@app.post("/api/sessions/{session_id}/frames", tags=["Coaching"])
@limit_frames
async def analyze_frame(request: Request, session_id: str, payload: PosePayload):
    """
    Analyze one pose from the client-side detector.

    Returns the smoothed pose, skeleton segments, metrics, the comparison
    against the current technique and (when not rate limited) feedback.
    """
    session = sessions.get(session_id)
    analysis = session.process_pose(payload.to_pose())
    return analysis.to_dict()


@app.get("/api/sessions/{session_id}/progress", tags=["Coaching"])
async def get_progress(session_id: str):
    """Score history summary for the session."""
    return sessions.get(session_id).progress.get_progress().to_dict()


# =============================================================================
# WebSocket Streams
# =============================================================================

async def _open_stream(websocket: WebSocket, session_id: str):
    await websocket.accept()
    try:
        return sessions.get(session_id)
    except FenceSenseException as e:
        await websocket.send_json(e.to_dict())
        await websocket.close(code=4404)
        return None


def _stream_callbacks(websocket: WebSocket):
    async def publish(result: FrameAnalysis):
        await websocket.send_json(result.to_dict())

    async def report(exc: Exception):
        if isinstance(exc, FenceSenseException):
            await websocket.send_json(exc.to_dict())
        else:
            await websocket.send_json({"error": "POSE_DETECTION_ERROR", "detail": str(exc)})

    return publish, report


@app.websocket("/ws/sessions/{session_id}")
async def pose_stream(websocket: WebSocket, session_id: str):
    """
    Live stream of client-side poses: one pose JSON per message in, one
    frame analysis per message out.
    """
    session = await _open_stream(websocket, session_id)
    if session is None:
        return

    publish, report = _stream_callbacks(websocket)

    async def next_frame():
        while True:
            try:
                return await websocket.receive_text()
            except WebSocketDisconnect:
                return None
            except KeyError:
                # Starlette raises KeyError for a binary message
                await report(InvalidPoseData("Pose messages must be JSON text"))

    loop = LiveCoachingLoop(session, next_frame, KeypointPayloadDetector(), publish, report)
    with correlation_scope(session_id):
        try:
            await loop.run()
        except WebSocketDisconnect:
            logger.info(f"[{session_id}] Pose stream disconnected")


@app.websocket("/ws/sessions/{session_id}/video")
async def video_stream(websocket: WebSocket, session_id: str):
    """
    Live stream of encoded camera frames (JPEG/PNG bytes); detection runs on
    the server.
    """
    session = await _open_stream(websocket, session_id)
    if session is None:
        return

    try:
        detector = get_pose_detector()
    except ServiceUnavailable as e:
        await websocket.send_json(e.to_dict())
        await websocket.close(code=1013)
        return

    from core.pose_detector import decode_frame

    async def next_frame():
        while True:
            try:
                data = await websocket.receive_bytes()
            except WebSocketDisconnect:
                return None
            try:
                return decode_frame(data)
            except DetectorError as e:
                await websocket.send_json(e.to_dict())

    publish, report = _stream_callbacks(websocket)
    loop = LiveCoachingLoop(session, next_frame, detector, publish, report, observe_frames=True)
    with correlation_scope(session_id):
        try:
            await loop.run()
        except WebSocketDisconnect:
            logger.info(f"[{session_id}] Video stream disconnected")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8001,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
