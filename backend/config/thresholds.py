"""
FenceSense - Configurable Thresholds
All thresholds can be tuned without code changes by modifying this file.
"""

from dataclasses import dataclass, field


@dataclass
class KeypointConfig:
    """Keypoint accessor thresholds"""
    # A landmark is usable only when its confidence is strictly above this
    min_confidence: float = 0.3


@dataclass
class SmoothingConfig:
    """Temporal smoother parameters"""
    # Pose history capacity (newest first)
    history_size: int = 5
    # Below this many poses the smoother is the identity
    min_history: int = 3


@dataclass
class StanceConfig:
    """En garde stance thresholds"""
    # Stance ratio = shoulder width / hip width (horizontal)
    min_ratio: float = 0.8
    max_ratio: float = 1.2


@dataclass
class LungeConfig:
    """Lunge detection thresholds"""
    # Front thigh angle from vertical (degrees), exclusive bounds
    min_angle: float = 45.0
    max_angle: float = 90.0
    # Length of the synthetic vertical reference above the knee (pixels)
    reference_length: float = 100.0


@dataclass
class ArmConfig:
    """Weapon arm extension thresholds"""
    # Elbow angle of a fully extended weapon arm (degrees)
    ideal_angle: float = 170.0
    # Below this the arm is flagged as not extended
    min_extended_angle: float = 150.0


@dataclass
class BalanceConfig:
    """Balance thresholds"""
    # Horizontal offset (pixels) that counts as a full imbalance
    offset_scale: float = 50.0
    # Suggest re-centering below this balance value
    min_balance: float = 0.7
    # Reported when the balance landmarks are missing
    default_balance: float = 0.5


@dataclass
class StabilityConfig:
    """Stability thresholds"""
    # Placeholder reported when there is not enough history
    default_stability: float = 0.8
    # Mean frame-to-frame centroid displacement (pixels) that counts as fully unstable
    jitter_scale: float = 25.0
    # Minimum poses in history before stability is measured
    min_history: int = 2


@dataclass
class ComparatorConfig:
    """Ideal-pose comparison parameters"""
    # Deviation that drives a metric score to zero, per metric kind
    angle_divisor: float = 45.0
    ratio_divisor: float = 0.5
    position_divisor: float = 0.5
    # Per-metric score below which a directional suggestion is emitted
    suggestion_threshold: float = 0.8


@dataclass
class FeedbackConfig:
    """Feedback generation thresholds"""
    # Debounce window between emitted feedback (seconds)
    cooldown_sec: float = 0.5
    # Maximum items shown at once
    max_items: int = 3
    # Overall score below this triggers the high priority stance cue
    low_score_threshold: float = 70.0
    # Metric score below this triggers a medium priority cue
    metric_threshold: float = 0.7


@dataclass
class ProgressConfig:
    """Progress tracking parameters"""
    # Number of improvement events reported in a snapshot
    recent_improvements: int = 5


@dataclass
class EnvironmentConfig:
    """Lighting and contrast adaptation"""
    # Minimum time between two environment samples (seconds)
    update_interval_sec: float = 5.0
    # Sample every Nth pixel
    sample_stride: int = 4
    # Brightness gain before clamping to [0, 1]
    brightness_gain: float = 1.2
    # Luma standard deviation mapped to full contrast
    contrast_reference: float = 64.0


@dataclass
class LiveLoopConfig:
    """Live loop parameters"""
    # FPS counter publication period (seconds)
    fps_window_sec: float = 1.0


@dataclass
class ThresholdConfig:
    """Master threshold configuration"""
    keypoint: KeypointConfig = field(default_factory=KeypointConfig)
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    stance: StanceConfig = field(default_factory=StanceConfig)
    lunge: LungeConfig = field(default_factory=LungeConfig)
    arm: ArmConfig = field(default_factory=ArmConfig)
    balance: BalanceConfig = field(default_factory=BalanceConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    comparator: ComparatorConfig = field(default_factory=ComparatorConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)
    live_loop: LiveLoopConfig = field(default_factory=LiveLoopConfig)


# Global config instance - modify this to tune thresholds
THRESHOLDS = ThresholdConfig()


def get_thresholds() -> ThresholdConfig:
    """Get the current threshold configuration"""
    return THRESHOLDS


# Commonly referenced thresholds (aliases)
MIN_KEYPOINT_CONFIDENCE = THRESHOLDS.keypoint.min_confidence
FEEDBACK_COOLDOWN_SEC = THRESHOLDS.feedback.cooldown_sec
