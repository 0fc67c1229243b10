from .thresholds import (
    ThresholdConfig,
    get_thresholds,
    THRESHOLDS,
    MIN_KEYPOINT_CONFIDENCE,
    FEEDBACK_COOLDOWN_SEC,
)
from .settings import Settings, get_settings, settings

__all__ = [
    "ThresholdConfig",
    "get_thresholds",
    "THRESHOLDS",
    "MIN_KEYPOINT_CONFIDENCE",
    "FEEDBACK_COOLDOWN_SEC",
    "Settings", "get_settings", "settings"
]
