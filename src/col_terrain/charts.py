"""Elevation profile chart generation."""

import io

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for server
import matplotlib.pyplot as plt
from matplotlib.collections import PolyCollection

from col_terrain.models import ElevationPoint
from col_terrain.profile import GradientSection, PointOfInterest


DIFFICULTY_COLORS = {
    "easy": "#4caf50",
    "moderate": "#ffc107",
    "challenging": "#ff9800",
    "difficult": "#f44336",
    "extreme": "#8b0000",
}

POI_COLOR = '#2c3e50'


def profile_floor(points: list[ElevationPoint]) -> float:
    """Bottom of the y axis: a little below the lowest sample, never below sea level."""
    low = min(p.elevation for p in points)
    high = max(p.elevation for p in points)
    margin = max((high - low) * 0.1, 10.0)
    return max(0.0, low - margin)


def section_polygons(
    points: list[ElevationPoint],
    sections: list[GradientSection],
    floor: float,
) -> tuple[list[list[tuple[float, float]]], list[str]]:
    """One filled polygon per gradient section, closed down to floor.

    Returns:
        (polygons, colors) ready for a PolyCollection.
    """
    polygons = []
    colors = []
    for section in sections:
        seg = points[section.start_index:section.end_index + 1]
        outline = [(p.distance, p.elevation) for p in seg]
        polygons.append([(seg[0].distance, floor)] + outline + [(seg[-1].distance, floor)])
        colors.append(DIFFICULTY_COLORS[section.difficulty])
    return polygons, colors


def generate_elevation_profile(
    points: list[ElevationPoint],
    sections: list[GradientSection],
    pois: list[PointOfInterest] | None = None,
    title: str | None = None,
    aspect_ratio: float = 3.5,
) -> bytes:
    """Generate elevation profile image coloured by gradient difficulty.

    Args:
        points: Synthesized profile samples
        sections: Gradient sections over the same points
        pois: Optional start, summit and sub-climb markers
        title: Optional chart title, usually the col name
        aspect_ratio: Width/height ratio (3.5 = wide default)

    Returns PNG image as bytes.
    """
    if not points:
        raise ValueError("Cannot chart an empty profile")

    fig_height = 4
    fig_width = fig_height * aspect_ratio
    fig, ax = plt.subplots(figsize=(fig_width, fig_height), facecolor='white')

    floor = profile_floor(points)
    polygons, colors = section_polygons(points, sections, floor)
    coll = PolyCollection(polygons, facecolors=colors, edgecolors='none', linewidths=0)
    ax.add_collection(coll)

    distances = [p.distance for p in points]
    elevations = [p.elevation for p in points]
    ax.plot(distances, elevations, color='#333333', linewidth=0.8)

    high = max(elevations)
    top = high + (high - floor) * 0.12
    for poi in pois or []:
        ax.plot([poi.distance], [poi.elevation], marker='o', markersize=4, color=POI_COLOR)
        ax.annotate(poi.label, (poi.distance, poi.elevation), textcoords='offset points',
                    xytext=(0, 8), ha='center', fontsize=8, color=POI_COLOR)

    ax.set_xlim(0, distances[-1] or 1.0)
    ax.set_ylim(floor, top)
    ax.set_xlabel('Distance (km)', fontsize=10)
    ax.set_ylabel('Elevation (m)', fontsize=10)
    if title:
        ax.set_title(title, fontsize=11)

    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)
    ax.grid(axis='y', alpha=0.3, linestyle='-', linewidth=0.5)
    fig.tight_layout()

    buf = io.BytesIO()
    fig.savefig(buf, format='png', dpi=100,
                facecolor='white', edgecolor='none')
    plt.close(fig)
    buf.seek(0)
    return buf.getvalue()
