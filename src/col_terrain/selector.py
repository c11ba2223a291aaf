"""Visualization mode and quality selection.

select() is a pure function of the capability snapshot, the benchmark result
and any explicit user choice. Rules, first match wins:

1. An explicit mode other than "auto" is used as given, except that 3D
   terrain is never chosen without accelerated rendering.
2. No accelerated rendering: 2D profile.
3. Otherwise the combined benchmark score picks the mode (< 30 mini profile,
   < 60 2D profile, else 3D terrain). Without a benchmark the device class
   default applies, downgraded to 2D on a low rendering tier.

Quality is the explicit choice if any, else from the score (< 40 low, < 75
medium, else high) or the device default. It is clamped to low for the mini
profile and for mobile devices with a low rendering tier.
"""

import logging
from dataclasses import dataclass

from col_terrain.models import (
    DEVICE_DESKTOP,
    DEVICE_MOBILE,
    DEVICE_TABLET,
    MODE_AUTO,
    MODE_MINI_PROFILE,
    MODE_PROFILE_2D,
    MODE_TERRAIN_3D,
    MODES,
    QUALITIES,
    QUALITY_AUTO,
    QUALITY_HIGH,
    QUALITY_LOW,
    QUALITY_MEDIUM,
    BenchmarkResult,
    CapabilitySnapshot,
)

logger = logging.getLogger(__name__)

MINI_PROFILE_BELOW = 30
PROFILE_2D_BELOW = 60
LOW_QUALITY_BELOW = 40
MEDIUM_QUALITY_BELOW = 75


@dataclass(frozen=True)
class DeviceDefaults:
    mode: str
    fallback_mode: str
    quality: str


DEVICE_DEFAULTS = {
    DEVICE_MOBILE: DeviceDefaults(mode=MODE_PROFILE_2D, fallback_mode=MODE_MINI_PROFILE, quality=QUALITY_LOW),
    DEVICE_TABLET: DeviceDefaults(mode=MODE_PROFILE_2D, fallback_mode=MODE_MINI_PROFILE, quality=QUALITY_MEDIUM),
    DEVICE_DESKTOP: DeviceDefaults(mode=MODE_TERRAIN_3D, fallback_mode=MODE_PROFILE_2D, quality=QUALITY_HIGH),
}


@dataclass(frozen=True)
class QualityPreset:
    """Rendering settings for a quality tier."""
    width_segments: int  # terrain mesh columns
    max_length_segments: int | None  # cap on terrain mesh rows, None for every sample
    shadows: bool
    antialiasing: bool
    flat_shading: bool
    marker_segments: int  # sphere segments for start/summit markers

    def to_dict(self) -> dict:
        return {
            "widthSegments": self.width_segments,
            "maxLengthSegments": self.max_length_segments,
            "shadows": self.shadows,
            "antialiasing": self.antialiasing,
            "flatShading": self.flat_shading,
            "markerSegments": self.marker_segments,
        }


QUALITY_PRESETS = {
    QUALITY_LOW: QualityPreset(
        width_segments=16, max_length_segments=50, shadows=False,
        antialiasing=False, flat_shading=True, marker_segments=8,
    ),
    QUALITY_MEDIUM: QualityPreset(
        width_segments=32, max_length_segments=100, shadows=True,
        antialiasing=True, flat_shading=False, marker_segments=8,
    ),
    QUALITY_HIGH: QualityPreset(
        width_segments=64, max_length_segments=None, shadows=True,
        antialiasing=True, flat_shading=False, marker_segments=16,
    ),
}


@dataclass(frozen=True)
class Selection:
    mode: str
    quality: str
    reason: str

    def to_dict(self) -> dict:
        return {"mode": self.mode, "quality": self.quality, "reason": self.reason}


def preset_for(quality: str) -> QualityPreset:
    """Rendering preset for a quality tier.

    Raises:
        ValueError: If quality is not low, medium or high.
    """
    try:
        return QUALITY_PRESETS[quality]
    except KeyError:
        raise ValueError(f"Unknown quality: {quality!r}") from None


def recommended_mode(score: float) -> str:
    if score < MINI_PROFILE_BELOW:
        return MODE_MINI_PROFILE
    if score < PROFILE_2D_BELOW:
        return MODE_PROFILE_2D
    return MODE_TERRAIN_3D


def recommended_quality(score: float) -> str:
    if score < LOW_QUALITY_BELOW:
        return QUALITY_LOW
    if score < MEDIUM_QUALITY_BELOW:
        return QUALITY_MEDIUM
    return QUALITY_HIGH


def _resolve_mode(
    capability: CapabilitySnapshot,
    benchmark: BenchmarkResult | None,
    explicit_mode: str | None,
) -> tuple[str, str]:
    supported = capability.webgl.supported

    if explicit_mode and explicit_mode != MODE_AUTO:
        if explicit_mode not in MODES:
            raise ValueError(f"Unknown mode: {explicit_mode!r}")
        if explicit_mode == MODE_TERRAIN_3D and not supported:
            return MODE_PROFILE_2D, "3D terrain requested but accelerated rendering is unavailable"
        return explicit_mode, "explicit mode"

    if not supported:
        return MODE_PROFILE_2D, "accelerated rendering unavailable"

    if benchmark is not None:
        return recommended_mode(benchmark.combined_score), f"benchmark score {benchmark.combined_score:.0f}"

    defaults = DEVICE_DEFAULTS[capability.device_class]
    if capability.gpu.tier == QUALITY_LOW and defaults.mode == MODE_TERRAIN_3D:
        return MODE_PROFILE_2D, f"{capability.device_class} default, low rendering tier"
    return defaults.mode, f"{capability.device_class} default"


def select(
    capability: CapabilitySnapshot,
    benchmark: BenchmarkResult | None = None,
    explicit_mode: str | None = None,
    explicit_quality: str | None = None,
) -> Selection:
    """Choose the visualization mode and quality tier.

    Args:
        capability: Snapshot from CapabilityDetector.detect()
        benchmark: Benchmark result, if one has been run
        explicit_mode: User choice of mode, or None/"auto"
        explicit_quality: User choice of quality, or None/"auto"

    Returns:
        Selection with the mode, the quality and a short explanation.

    Raises:
        ValueError: If an explicit mode or quality is not recognised.
    """
    mode, reason = _resolve_mode(capability, benchmark, explicit_mode)

    if explicit_quality and explicit_quality != QUALITY_AUTO:
        if explicit_quality not in QUALITIES:
            raise ValueError(f"Unknown quality: {explicit_quality!r}")
        quality = explicit_quality
    elif benchmark is not None:
        quality = recommended_quality(benchmark.combined_score)
    else:
        quality = DEVICE_DEFAULTS[capability.device_class].quality

    if quality != QUALITY_LOW:
        if mode == MODE_MINI_PROFILE:
            quality = QUALITY_LOW
            reason += "; quality clamped for mini profile"
        elif capability.device_class == DEVICE_MOBILE and capability.gpu.tier == QUALITY_LOW:
            quality = QUALITY_LOW
            reason += "; quality clamped for low-tier mobile"

    logger.debug("Selected mode=%s quality=%s (%s)", mode, quality, reason)
    return Selection(mode=mode, quality=quality, reason=reason)
