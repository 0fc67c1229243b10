"""
Environment adaptation: lighting and contrast estimates from camera frames.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from config import get_thresholds, ThresholdConfig

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights for RGB
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])


@dataclass
class EnvironmentReading:
    lighting: float = 1.0
    contrast: float = 1.0
    last_update: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "lighting": round(self.lighting, 3),
            "contrast": round(self.contrast, 3),
            "last_update": self.last_update,
        }


class EnvironmentMonitor:
    """
    Per-session lighting/contrast state, re-sampled at most once per interval.

    Frames are HxWx3 (RGB) or HxW (grayscale) uint8 arrays.
    """

    def __init__(
        self,
        thresholds: Optional[ThresholdConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = (thresholds or get_thresholds()).environment
        self._clock = clock
        self.reading = EnvironmentReading()

    def update(self, frame: Optional[np.ndarray], now: Optional[float] = None) -> EnvironmentReading:
        now = self._clock() if now is None else now
        last = self.reading.last_update
        if frame is None or (last is not None and now - last < self.config.update_interval_sec):
            return self.reading

        try:
            lighting, contrast = self._measure(frame)
        except (ValueError, TypeError) as e:
            logger.warning(f"Environment analysis failed: {e}")
            return self.reading

        self.reading = EnvironmentReading(lighting=lighting, contrast=contrast, last_update=now)
        logger.debug("Environment updated", extra=self.reading.to_dict())
        return self.reading

    def _measure(self, frame: np.ndarray):
        pixels = np.asarray(frame, dtype=np.float64)
        if pixels.ndim == 3:
            pixels = pixels[..., :3].reshape(-1, min(3, pixels.shape[-1]))
            if pixels.shape[1] != 3:
                raise ValueError(f"expected 3 color channels, got {pixels.shape[1]}")
            sampled = pixels[::self.config.sample_stride]
            luma = sampled @ LUMA_WEIGHTS
        elif pixels.ndim == 2:
            sampled = pixels.reshape(-1)[::self.config.sample_stride]
            luma = sampled
        else:
            raise ValueError(f"unsupported frame shape {pixels.shape}")

        if sampled.size == 0:
            raise ValueError("empty frame")
        brightness = float(sampled.mean())

        lighting = min(1.0, max(0.0, brightness / 255 * self.config.brightness_gain))
        contrast = min(1.0, float(np.std(luma)) / self.config.contrast_reference)
        return lighting, contrast

    def reset(self):
        self.reading = EnvironmentReading()
