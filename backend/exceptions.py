"""
Custom Exceptions for FenceSense
Provides structured error handling with error codes and HTTP status mapping.
"""

from typing import Optional, Dict, Any, Iterable


class FenceSenseException(Exception):
    """Base exception for all FenceSense errors"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format"""
        result = {
            "error": self.code,
            "detail": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Resource Errors (404)
# =============================================================================

class SessionNotFound(FenceSenseException):
    """Raised when a coaching session doesn't exist"""
    def __init__(self, session_id: str):
        super().__init__(
            f"Session not found: {session_id}",
            "SESSION_NOT_FOUND",
            404,
            {"session_id": session_id}
        )


# =============================================================================
# Validation / Configuration Errors (400, 422)
# =============================================================================

class ValidationError(FenceSenseException):
    """Raised when input validation fails"""
    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", 400, details)


class UnknownTechnique(FenceSenseException):
    """Raised when a technique identifier is not in the catalog"""
    def __init__(self, technique_id: str, allowed: Iterable[str] = ()):
        super().__init__(
            f"Unknown technique: {technique_id}",
            "UNKNOWN_TECHNIQUE",
            422,
            {"technique_id": technique_id, "allowed": sorted(allowed)}
        )


class UnknownWeapon(FenceSenseException):
    """Raised when a weapon identifier is not in the catalog"""
    def __init__(self, weapon: str, allowed: Iterable[str] = ()):
        super().__init__(
            f"Unknown weapon: {weapon}",
            "UNKNOWN_WEAPON",
            422,
            {"weapon": weapon, "allowed": sorted(allowed)}
        )


class InvalidPoseData(FenceSenseException):
    """Raised when a pose payload cannot be parsed"""
    def __init__(self, message: str = "Invalid pose payload"):
        super().__init__(message, "INVALID_POSE_DATA", 422)


# =============================================================================
# Processing Errors (422)
# =============================================================================

class DetectorError(FenceSenseException):
    """Raised when the pose detector fails on a frame"""
    def __init__(self, message: str):
        super().__init__(message, "POSE_DETECTION_ERROR", 422, {"stage": "pose_detection"})


# =============================================================================
# Resource Exhaustion Errors (503, 507)
# =============================================================================

class ResourceExhausted(FenceSenseException):
    """Raised when system resources are exhausted"""
    def __init__(self, resource: str, current: Optional[str] = None, limit: Optional[str] = None):
        details = {"resource": resource}
        if current:
            details["current"] = current
        if limit:
            details["limit"] = limit
        super().__init__(
            f"Resource exhausted: {resource}",
            "RESOURCE_EXHAUSTED",
            507,
            details
        )


class ServiceUnavailable(FenceSenseException):
    """Raised when service is temporarily unavailable"""
    def __init__(self, message: str = "Service temporarily unavailable"):
        super().__init__(message, "SERVICE_UNAVAILABLE", 503)
