"""Elevation profile synthesis for cols.

Turns sparse col metadata (summit, length, average and maximum gradient,
named sub-climbs) into a dense distance/elevation curve in four steps:

1. An eased cubic base curve from the start to the summit
2. Steeper sections injected at random when a maximum gradient is known
3. Named sub-climbs overlaid with their own gradient
4. A pass-through summary of the declared values

Steps 2 and 3 draw from a random.Random; pass a seed or a generator to make
the output reproducible. Without one, injected sections land in different
places on every call.
"""

import logging
import math
import random
from bisect import bisect_left
from dataclasses import dataclass

from col_terrain.models import Col, ElevationPoint, ElevationProfile, SubClimb
from col_terrain.smoothing import recompute_gradients, smooth_elevations

logger = logging.getLogger(__name__)

MIN_SAMPLES = 50
SAMPLES_PER_KM = 10

# Difficulty injection
MIN_INJECTED_SPANS = 2
MAX_INJECTED_SPANS = 4
MIN_SPAN_SAMPLES = 2
INJECTION_ATTEMPTS = 50
INJECTED_GRADIENT_FLOOR = 0.8  # fraction of max_gradient

# Upper bounds (percent, exclusive) for each difficulty class
GRADIENT_CLASSES = (
    (4.0, "easy"),
    (7.0, "moderate"),
    (10.0, "challenging"),
    (15.0, "difficult"),
)
EXTREME = "extreme"


@dataclass
class SynthesisResult:
    profile: ElevationProfile
    points: list[ElevationPoint]

    def to_dict(self) -> dict:
        return {
            "profile": self.profile.to_dict(),
            "points": [p.to_dict() for p in self.points],
        }


@dataclass
class GradientSection:
    """A run of consecutive samples sharing the same rounded gradient."""
    start_index: int
    end_index: int  # inclusive, shared with the next section
    start_distance: float  # km
    end_distance: float  # km
    gradient: int  # percent, rounded
    difficulty: str

    def to_dict(self) -> dict:
        return {
            "startIndex": self.start_index,
            "endIndex": self.end_index,
            "startDistance": self.start_distance,
            "endDistance": self.end_distance,
            "gradient": self.gradient,
            "difficulty": self.difficulty,
        }


@dataclass
class PointOfInterest:
    label: str
    kind: str  # "start", "summit" or "climb"
    distance: float  # km
    elevation: float  # meters

    def to_dict(self) -> dict:
        return {"label": self.label, "kind": self.kind, "distance": self.distance, "elevation": self.elevation}


def sample_count(length_km: float) -> int:
    """Number of samples for a climb: at least 50, and 10 per km."""
    return max(MIN_SAMPLES, math.ceil(SAMPLES_PER_KM * length_km))


def ease_in_out_cubic(t: float) -> float:
    """Smooth S-curve on [0, 1]: slow start, steady middle, easing into the summit."""
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


def base_curve(col: Col) -> tuple[list[float], list[float]]:
    """Evenly spaced distances over [0, length] and eased elevations from start to summit."""
    n = sample_count(col.length)
    start = col.resolved_start_elevation
    summit = col.elevation

    distances = [col.length * i / (n - 1) for i in range(n)]
    elevations = [start + (summit - start) * ease_in_out_cubic(i / (n - 1)) for i in range(n)]

    # Pin the ends exactly against float rounding
    distances[0], distances[-1] = 0.0, col.length
    elevations[0], elevations[-1] = start, summit
    return distances, elevations


def _spans_overlap(start: int, end: int, spans: list[tuple[int, int]]) -> bool:
    return any(start < other_end and other_start < end for other_start, other_end in spans)


def inject_difficulty(
    distances: list[float],
    elevations: list[float],
    max_gradient: float,
    rng: random.Random,
) -> list[float]:
    """Inject 2-4 short, steep sections into the middle half of the profile.

    Each section climbs at a gradient drawn from [0.8 * max_gradient, max_gradient],
    accumulating sample by sample inside the section only. The whole curve is
    then smoothed to soften the steps left at section boundaries.
    """
    n = len(elevations)
    # Never touch the first or last sample
    lo = max(1, n // 4)
    hi = min(n - 1, n - n // 4)  # exclusive
    if hi - lo < MIN_SPAN_SAMPLES:
        return list(elevations)

    max_span = max(MIN_SPAN_SAMPLES, min(n // 10, (hi - lo) // MAX_INJECTED_SPANS))
    wanted = rng.randint(MIN_INJECTED_SPANS, MAX_INJECTED_SPANS)

    spans: list[tuple[int, int]] = []
    for _ in range(INJECTION_ATTEMPTS):
        if len(spans) >= wanted:
            break
        span_len = rng.randint(MIN_SPAN_SAMPLES, max_span)
        start = rng.randint(lo, hi - span_len)
        end = start + span_len
        if _spans_overlap(start, end, spans):
            continue
        spans.append((start, end))

    result = list(elevations)
    for start, end in sorted(spans):
        gradient = rng.uniform(INJECTED_GRADIENT_FLOOR * max_gradient, max_gradient)
        for i in range(start, end):
            step_m = (distances[i] - distances[i - 1]) * 1000
            result[i] = result[i - 1] + gradient / 100 * step_m

    logger.debug("Injected %d steep sections (max gradient %.1f%%): %s", len(spans), max_gradient, spans)
    return smooth_elevations(result)


def _index_at_or_after(distances: list[float], distance: float) -> int:
    """First sample index whose distance is >= distance, else the last index."""
    return min(bisect_left(distances, distance), len(distances) - 1)


def overlay_climbs(
    distances: list[float],
    elevations: list[float],
    climbs: list[SubClimb],
    final_elevation: float,
) -> list[float]:
    """Overlay named sub-climbs that declare both a gradient and a length.

    Each sub-climb rises linearly at its own gradient from the elevation at its
    start sample. The samples after it are re-graded so the curve still reaches
    final_elevation at the last sample. Sub-climbs are applied in order, so when
    ranges overlap the later entry wins. Sub-climbs starting outside the col
    are skipped.
    """
    result = list(elevations)
    n = len(result)
    col_length = distances[-1]
    applied = 0

    for climb in climbs:
        if climb.gradient is None or climb.length is None or climb.length <= 0:
            continue
        if climb.start_distance < 0 or climb.start_distance > col_length:
            logger.debug(
                "Skipping sub-climb %r: start %.2f km outside [0, %.2f]",
                climb.name, climb.start_distance, col_length,
            )
            continue

        start_idx = _index_at_or_after(distances, climb.start_distance)
        end_idx = _index_at_or_after(distances, climb.start_distance + climb.length)

        anchor = result[start_idx]
        for i in range(start_idx + 1, end_idx + 1):
            result[i] = anchor + climb.gradient / 100 * (distances[i] - distances[start_idx]) * 1000

        if end_idx < n - 1:
            remaining_m = (distances[-1] - distances[end_idx]) * 1000
            remaining_gradient = (final_elevation - result[end_idx]) / remaining_m * 100
            for i in range(end_idx + 1, n):
                result[i] = result[end_idx] + remaining_gradient / 100 * (distances[i] - distances[end_idx]) * 1000
        applied += 1

    if not applied:
        return result

    result[-1] = final_elevation
    return smooth_elevations(result)


def synthesize(col: Col, seed: int | None = None, rng: random.Random | None = None) -> SynthesisResult:
    """Synthesize a dense elevation profile for a col.

    Args:
        col: Col description
        seed: Seed for a fresh random generator (ignored when rng is given)
        rng: Random generator used for difficulty injection

    Returns:
        SynthesisResult with the pass-through profile summary and the points.
        The first point sits at the resolved start elevation and the last one
        at the summit, at distance col.length.

    Raises:
        InvalidColData: If the col has missing or non-positive dimensions.
    """
    col.validate()
    if rng is None:
        rng = random.Random(seed)

    distances, elevations = base_curve(col)
    if col.max_gradient is not None and col.max_gradient > 0:
        elevations = inject_difficulty(distances, elevations, col.max_gradient, rng)
    if col.climbs:
        elevations = overlay_climbs(distances, elevations, col.climbs, col.elevation)

    gradients = recompute_gradients(distances, elevations)
    points = [ElevationPoint(distance=d, elevation=e, gradient=g) for d, e, g in zip(distances, elevations, gradients)]

    profile = ElevationProfile(
        start=col.resolved_start_elevation,
        summit=col.elevation,
        distance=col.length,
        gradient=col.avg_gradient,
        max_gradient=col.max_gradient,
    )
    return SynthesisResult(profile=profile, points=points)


def classify_gradient(gradient: float) -> str:
    """Difficulty class for a gradient in percent."""
    for upper, label in GRADIENT_CLASSES:
        if gradient < upper:
            return label
    return EXTREME


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def gradient_sections(points: list[ElevationPoint]) -> list[GradientSection]:
    """Group consecutive points by rounded gradient for colouring a profile.

    The first point has no gradient of its own and joins the section of the
    point after it. Adjacent sections share their boundary point.
    """
    if not points:
        return []

    def key(i: int) -> int:
        gradient = points[min(max(i, 1), len(points) - 1)].gradient
        return _round_half_up(gradient or 0.0)

    sections = []
    start_idx = 0
    current = key(0)
    for i in range(1, len(points)):
        g = key(i)
        if g != current:
            sections.append(_make_section(points, start_idx, i - 1, current))
            start_idx = i - 1
            current = g
    sections.append(_make_section(points, start_idx, len(points) - 1, current))
    return sections


def _make_section(points: list[ElevationPoint], start_idx: int, end_idx: int, gradient: int) -> GradientSection:
    return GradientSection(
        start_index=start_idx,
        end_index=end_idx,
        start_distance=points[start_idx].distance,
        end_distance=points[end_idx].distance,
        gradient=gradient,
        difficulty=classify_gradient(gradient),
    )


def elevation_at(points: list[ElevationPoint], distance: float) -> float:
    """Linearly interpolated elevation at a distance (km), clamped to the ends."""
    if not points:
        return 0.0
    if distance <= points[0].distance:
        return points[0].elevation
    if distance >= points[-1].distance:
        return points[-1].elevation

    distances = [p.distance for p in points]
    i = bisect_left(distances, distance)
    p1, p2 = points[i - 1], points[i]
    if p2.distance == p1.distance:
        return p2.elevation
    ratio = (distance - p1.distance) / (p2.distance - p1.distance)
    return p1.elevation + ratio * (p2.elevation - p1.elevation)


def points_of_interest(col: Col, points: list[ElevationPoint]) -> list[PointOfInterest]:
    """Start, summit and the start of each named sub-climb inside the col."""
    pois = [
        PointOfInterest(label="Start", kind="start", distance=0.0, elevation=elevation_at(points, 0.0)),
        PointOfInterest(label="Summit", kind="summit", distance=col.length, elevation=elevation_at(points, col.length)),
    ]
    for climb in col.climbs:
        if 0 < climb.start_distance <= col.length:
            pois.append(PointOfInterest(
                label=climb.name or "Section",
                kind="climb",
                distance=climb.start_distance,
                elevation=elevation_at(points, climb.start_distance),
            ))
    return pois
