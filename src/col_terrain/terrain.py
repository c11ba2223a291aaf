"""Terrain mesh generation from a synthesized elevation profile.

The climb runs along +z. Each elevation sample becomes one row of a regular
grid spanning a corridor of 0.4 * length across x; the narrow central band is
the road, and the ground falls away gently on either side of it.
"""

import numpy as np

from col_terrain.errors import InsufficientSamples
from col_terrain.models import ElevationPoint, TerrainMesh
from col_terrain.smoothing import recompute_gradients

DEFAULT_WIDTH_SEGMENTS = 32
DEFAULT_HORIZONTAL_EXAGGERATION = 1.0
DEFAULT_VERTICAL_EXAGGERATION = 1.5

CORRIDOR_WIDTH_RATIO = 0.4  # corridor width as a fraction of the climb length
ROAD_HALF_WIDTH = 0.05  # in v units, either side of the centre line
SHOULDER_DROP = 0.3  # elevation offset per unit of lateral distance off the road
METERS_PER_SCENE_UNIT = 1000


def terrain_noise(x, z):
    """Low-frequency perturbation in [0, 1] for grid column x and row z."""
    return 0.5 + 0.25 * (np.sin(np.asarray(x) * 0.5) + np.cos(np.asarray(z) * 0.3))


def build_mesh(
    points: list[ElevationPoint],
    length: float,
    width_segments: int = DEFAULT_WIDTH_SEGMENTS,
    horizontal_exaggeration: float = DEFAULT_HORIZONTAL_EXAGGERATION,
    vertical_exaggeration: float = DEFAULT_VERTICAL_EXAGGERATION,
) -> TerrainMesh:
    """Build a grid mesh with one row per elevation sample.

    Args:
        points: Elevation samples ordered by distance
        length: Climb length in km
        width_segments: Number of grid columns across the corridor
        horizontal_exaggeration: Scale applied along the climb (z)
        vertical_exaggeration: Scale applied to elevations (y)

    Returns:
        TerrainMesh with (width_segments + 1) * len(points) vertices, two
        triangles per cell wound (a, c, b) and (c, d, b), up-vector normals
        and (u, v) texture coordinates.

    Raises:
        InsufficientSamples: If fewer than 2 points are given.
        ValueError: If width_segments is less than 1.
    """
    if len(points) < 2:
        raise InsufficientSamples(f"Need at least 2 elevation samples to build a mesh, got {len(points)}")
    if width_segments < 1:
        raise ValueError(f"width_segments must be at least 1, got {width_segments}")

    length_segments = len(points) - 1
    corridor_width = CORRIDOR_WIDTH_RATIO * length

    zz, xx = np.meshgrid(
        np.arange(length_segments + 1), np.arange(width_segments + 1), indexing="ij"
    )
    u = zz / length_segments
    v = xx / width_segments

    elevations = np.array([p.elevation for p in points], dtype=np.float64)
    x_pos = (v - 0.5) * corridor_width
    z_pos = u * length * horizontal_exaggeration
    y_pos = np.broadcast_to(
        elevations[:, np.newaxis] * vertical_exaggeration / METERS_PER_SCENE_UNIT, zz.shape
    )

    lateral = np.abs(v - 0.5)
    shoulder = np.where(
        lateral > ROAD_HALF_WIDTH,
        -(lateral - ROAD_HALF_WIDTH) * SHOULDER_DROP * terrain_noise(xx, zz),
        0.0,
    )
    y_pos = y_pos + shoulder

    vertices = np.stack([x_pos, y_pos, z_pos], axis=-1).reshape(-1)
    uvs = np.stack([u, v], axis=-1).reshape(-1).astype(np.float64)
    vertex_count = (width_segments + 1) * (length_segments + 1)
    normals = np.tile(np.array([0.0, 1.0, 0.0]), vertex_count)

    row = width_segments + 1
    a = np.arange(length_segments)[:, np.newaxis] * row + np.arange(width_segments)[np.newaxis, :]
    b = a + 1
    c = a + row
    d = c + 1
    indices = np.stack([a, c, b, c, d, b], axis=-1).reshape(-1).astype(np.uint32)

    return TerrainMesh(
        vertices=vertices,
        indices=indices,
        normals=normals,
        uvs=uvs,
        width_segments=width_segments,
        length_segments=length_segments,
    )


def road_centerline(
    points: list[ElevationPoint],
    horizontal_exaggeration: float = DEFAULT_HORIZONTAL_EXAGGERATION,
    vertical_exaggeration: float = DEFAULT_VERTICAL_EXAGGERATION,
) -> np.ndarray:
    """Road polyline along the centre of the corridor, shape (len(points), 3)."""
    if not points:
        return np.zeros((0, 3))
    distances = np.array([p.distance for p in points], dtype=np.float64)
    elevations = np.array([p.elevation for p in points], dtype=np.float64)
    return np.column_stack([
        np.zeros_like(distances),
        elevations * vertical_exaggeration / METERS_PER_SCENE_UNIT,
        distances * horizontal_exaggeration,
    ])


def resample_points(points: list[ElevationPoint], max_segments: int | None) -> list[ElevationPoint]:
    """Reduce a profile to at most max_segments segments.

    Keeps the first and last samples and picks evenly spaced samples in between.
    Gradients are recomputed against the new neighbours. Returns the points
    unchanged when they already fit or max_segments is None.
    """
    if max_segments is None or len(points) - 1 <= max_segments:
        return list(points)
    if max_segments < 1:
        raise ValueError(f"max_segments must be at least 1, got {max_segments}")

    picks = np.unique(np.round(np.linspace(0, len(points) - 1, max_segments + 1)).astype(int))
    kept = [points[i] for i in picks]
    distances = [p.distance for p in kept]
    elevations = [p.elevation for p in kept]
    gradients = recompute_gradients(distances, elevations)
    return [ElevationPoint(distance=d, elevation=e, gradient=g) for d, e, g in zip(distances, elevations, gradients)]
