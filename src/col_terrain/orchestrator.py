"""Wires profile synthesis, mesh building and mode selection together.

The orchestrator owns one CapabilityDetector and one BenchmarkRunner, picks
a visualization mode and quality, and prepares the data the active renderer
needs. Rendering itself happens elsewhere.
"""

import asyncio
import logging
import random
from dataclasses import dataclass

import numpy as np

from col_terrain.benchmark import BenchmarkRunner, ProgressCallback
from col_terrain.capability import CapabilityDetector
from col_terrain.models import (
    MODE_TERRAIN_3D,
    Col,
    ElevationPoint,
    ElevationProfile,
    TerrainMesh,
)
from col_terrain.profile import synthesize
from col_terrain.selector import QualityPreset, Selection, preset_for, select
from col_terrain.terrain import (
    DEFAULT_HORIZONTAL_EXAGGERATION,
    DEFAULT_VERTICAL_EXAGGERATION,
    build_mesh,
    resample_points,
    road_centerline,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class VisualizationPlan:
    """Everything a renderer needs to draw one col in the selected mode."""
    selection: Selection
    preset: QualityPreset
    profile: ElevationProfile
    points: list[ElevationPoint]
    mesh: TerrainMesh | None = None
    centerline: np.ndarray | None = None

    def to_dict(self) -> dict:
        return {
            "selection": self.selection.to_dict(),
            "preset": self.preset.to_dict(),
            "profile": self.profile.to_dict(),
            "points": [p.to_dict() for p in self.points],
            "mesh": self.mesh.to_dict() if self.mesh is not None else None,
            "centerline": self.centerline.tolist() if self.centerline is not None else None,
        }


class VisualizationOrchestrator:
    def __init__(
        self,
        detector: CapabilityDetector,
        benchmark_runner: BenchmarkRunner | None = None,
        preferred_mode: str | None = None,
        preferred_quality: str | None = None,
        seed: int | None = None,
        horizontal_exaggeration: float = DEFAULT_HORIZONTAL_EXAGGERATION,
        vertical_exaggeration: float = DEFAULT_VERTICAL_EXAGGERATION,
        width_segments: int | None = None,
    ):
        self.detector = detector
        self.benchmark_runner = benchmark_runner or BenchmarkRunner(detector.context_factory)
        self.preferred_mode = preferred_mode
        self.preferred_quality = preferred_quality
        self.horizontal_exaggeration = horizontal_exaggeration
        self.vertical_exaggeration = vertical_exaggeration
        self.width_segments = width_segments
        self._rng = random.Random(seed) if seed is not None else None
        self._selection: Selection | None = None

    @property
    def selection(self) -> Selection:
        if self._selection is None:
            self._selection = self.choose()
        return self._selection

    def choose(self) -> Selection:
        """Select from the current snapshot and any completed benchmark."""
        capability = self.detector.detect()
        self._selection = select(
            capability,
            self.benchmark_runner.result,
            self.preferred_mode,
            self.preferred_quality,
        )
        return self._selection

    async def calibrate(
        self,
        progress: ProgressCallback | None = None,
        abort: asyncio.Event | None = None,
    ) -> Selection:
        """Run the benchmark, then re-select.

        The benchmark is skipped when the runtime has no accelerated
        rendering, since the 2D profile is forced anyway.
        """
        capability = self.detector.detect()
        if not capability.webgl.supported:
            logger.debug("Skipping benchmark: accelerated rendering unavailable")
            return self.choose()

        result = await self.benchmark_runner.run(progress, abort)
        if result.aborted:
            logger.info("Benchmark aborted; keeping device defaults")
        return self.choose()

    def on_environment_change(self) -> Selection:
        """Re-detect after a resize or orientation flip and re-select."""
        previous = self._selection
        previous_class = self.detector.detect().device_class
        self.detector.reset()
        current_class = self.detector.detect().device_class
        if current_class != previous_class:
            logger.info("Device class changed: %s -> %s", previous_class, current_class)
        selection = self.choose()
        if previous is not None and previous != selection:
            logger.info("Visualization changed: %s/%s -> %s/%s",
                        previous.mode, previous.quality, selection.mode, selection.quality)
        return selection

    def set_preference(self, mode: str | None = None, quality: str | None = None) -> Selection:
        """Apply an explicit user toggle and re-select."""
        self.preferred_mode = mode
        self.preferred_quality = quality
        return self.choose()

    def prepare(self, col: Col) -> VisualizationPlan:
        """Synthesize the profile and, for 3D terrain, the mesh and road.

        Raises:
            InvalidColData: If the col is malformed.
        """
        selection = self.selection
        preset = preset_for(selection.quality)
        result = synthesize(col, rng=self._rng)

        plan = VisualizationPlan(
            selection=selection,
            preset=preset,
            profile=result.profile,
            points=result.points,
        )
        if selection.mode == MODE_TERRAIN_3D:
            mesh_points = resample_points(result.points, preset.max_length_segments)
            plan.mesh = build_mesh(
                mesh_points,
                col.length,
                width_segments=self.width_segments or preset.width_segments,
                horizontal_exaggeration=self.horizontal_exaggeration,
                vertical_exaggeration=self.vertical_exaggeration,
            )
            plan.centerline = road_centerline(
                mesh_points,
                horizontal_exaggeration=self.horizontal_exaggeration,
                vertical_exaggeration=self.vertical_exaggeration,
            )
        return plan
