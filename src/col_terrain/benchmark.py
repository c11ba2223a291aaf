"""Rendering and CPU micro-benchmarks.

A fixed battery of short workloads, each scored 0-100 against the time a
mid-range reference machine takes:

    score = min(100, 100 * expected_ms / max(floor_ms, measured_ms))

Render score is the mean of three sub-tests run on an accelerated rendering
context (0 without one). CPU score is a weighted mean of four sub-tests.
The combined score is render * 0.7 + cpu * 0.3.

BenchmarkRunner.run() yields to the event loop between sub-tests and reports
progress through a callback. The first complete result is memoized until
reset(); callers arriving while a run is in flight share it.
"""

import asyncio
import logging
import math
import random
import time
from typing import Callable

from col_terrain.capability import ContextFactory, RenderContext, no_accelerated_context
from col_terrain.models import (
    STATUS_COMPLETE,
    STATUS_CPU,
    STATUS_STARTING,
    STATUS_WEBGL,
    BenchmarkResult,
    Progress,
)
from col_terrain.selector import recommended_mode, recommended_quality

logger = logging.getLogger(__name__)

RENDER_WEIGHT = 0.7
CPU_WEIGHT = 0.3

# Share of the progress bar taken by the render phase
RENDER_PROGRESS_SHARE = 0.6

# Render workloads
TRIANGLE_COUNT = 10_000
TRIANGLE_PASSES = 10
TRIANGLE_EXPECTED_MS = 500.0
TRIANGLE_FLOOR_MS = 10.0
TRIANGLE_FAILURE_SCORE = 10.0

TEXTURE_REFERENCE_SIZE = 8192
TEXTURE_REFERENCE_UNITS = 16
TEXTURE_FAILURE_SCORE = 20.0

TRANSFORM_ITERATIONS = 1000
TRANSFORM_EXPECTED_MS = 50.0
TRANSFORM_FLOOR_MS = 1.0
TRANSFORM_FAILURE_SCORE = 30.0

# CPU workloads, expected times tuned for CPython on a mid-range machine
CPU_FLOOR_MS = 10.0
CPU_FAILURE_SCORE = 10.0
MATH_ITERATIONS = 200_000
MATH_EXPECTED_MS = 120.0
OBJECT_COUNT = 10_000
OBJECT_EXPECTED_MS = 40.0
STRING_COUNT = 100_000
STRING_EXPECTED_MS = 60.0
TREE_NODES = 1000
TREE_EXPECTED_MS = 15.0

ProgressCallback = Callable[[Progress], None]


def score_time(expected_ms: float, measured_ms: float, floor_ms: float) -> float:
    """Score a timing against the reference: 100 at or under expected, less when slower."""
    return min(100.0, max(0.0, 100.0 * expected_ms / max(floor_ms, measured_ms)))


def build_result(
    render_score: float,
    cpu_score: float,
    aborted: bool = False,
    timestamp: float | None = None,
) -> BenchmarkResult:
    """Combine category scores and attach the recommended mode and quality."""
    combined = render_score * RENDER_WEIGHT + cpu_score * CPU_WEIGHT
    return BenchmarkResult(
        render_score=render_score,
        cpu_score=cpu_score,
        combined_score=combined,
        recommended_mode=recommended_mode(combined),
        recommended_quality=recommended_quality(combined),
        timestamp=time.time() if timestamp is None else timestamp,
        aborted=aborted,
    )


class _Node:
    """Element in the tree-manipulation workload."""

    __slots__ = ("tag", "text", "children", "parent")

    def __init__(self, tag: str, text: str = ""):
        self.tag = tag
        self.text = text
        self.children: list["_Node"] = []
        self.parent: "_Node | None" = None

    def append(self, child: "_Node") -> None:
        child.parent = self
        self.children.append(child)


class BenchmarkRunner:
    """Runs the micro-benchmark battery once per session."""

    def __init__(
        self,
        context_factory: ContextFactory = no_accelerated_context,
        clock: Callable[[], float] = time.perf_counter,
        workload_scale: float = 1.0,
    ):
        self.context_factory = context_factory
        self.clock = clock
        self.workload_scale = workload_scale
        self._result: BenchmarkResult | None = None
        self._inflight: asyncio.Task | None = None

    @property
    def result(self) -> BenchmarkResult | None:
        """The memoized result, or None before the first complete run."""
        return self._result

    def reset(self) -> None:
        """Forget the memoized result so the next run() measures again."""
        self._result = None
        self._inflight = None

    async def run(
        self,
        progress: ProgressCallback | None = None,
        abort: asyncio.Event | None = None,
    ) -> BenchmarkResult:
        """Run the battery, or return the memoized or in-flight result.

        Args:
            progress: Called with Progress updates; only the caller that
                starts a run receives them.
            abort: When set between sub-tests, the remaining sub-tests are
                skipped and score 0. The partial result is returned with
                aborted=True and is not memoized.
        """
        if self._result is not None:
            return self._result

        loop = asyncio.get_running_loop()
        if self._inflight is None or self._inflight.get_loop() is not loop:
            self._inflight = loop.create_task(self._run(progress, abort))

        inflight = self._inflight
        try:
            return await asyncio.shield(inflight)
        finally:
            if inflight.done() and self._inflight is inflight:
                self._inflight = None

    def _scaled(self, count: int) -> int:
        return max(1, int(count * self.workload_scale))

    def _elapsed_ms(self, start: float) -> float:
        return (self.clock() - start) * 1000

    def _open_context(self) -> RenderContext | None:
        try:
            return self.context_factory()
        except Exception as e:
            logger.warning("No rendering context for benchmark: %s", e)
            return None

    def _run_subtest(self, name: str, test: Callable[[], float], failure_score: float) -> float:
        try:
            score = test()
        except Exception as e:
            logger.warning("Benchmark sub-test %s failed, scoring %.0f: %s", name, failure_score, e)
            return failure_score
        logger.debug("Benchmark sub-test %s scored %.1f", name, score)
        return score

    async def _run(self, progress: ProgressCallback | None, abort: asyncio.Event | None) -> BenchmarkResult:
        report = progress or (lambda p: None)
        report(Progress(status=STATUS_STARTING, progress=0.0))

        def aborted() -> bool:
            return abort is not None and abort.is_set()

        was_aborted = False

        context = self._open_context()
        render_score = 0.0
        if context is None:
            report(Progress(status=STATUS_WEBGL, progress=RENDER_PROGRESS_SHARE))
        else:
            render_tests = [
                ("triangles", lambda: self._test_draw_triangles(context), TRIANGLE_FAILURE_SCORE),
                ("textures", lambda: self._test_textures(context), TEXTURE_FAILURE_SCORE),
                ("transforms", lambda: self._test_transforms(context), TRANSFORM_FAILURE_SCORE),
            ]
            total = 0.0
            for i, (name, test, failure_score) in enumerate(render_tests):
                await asyncio.sleep(0)
                if aborted():
                    was_aborted = True
                    break
                total += self._run_subtest(name, test, failure_score)
                report(Progress(status=STATUS_WEBGL, progress=RENDER_PROGRESS_SHARE * (i + 1) / len(render_tests)))
            render_score = min(100.0, total / len(render_tests))

        cpu_score = 0.0
        if not was_aborted:
            cpu_tests = [
                ("math", self._test_math, 0.3),
                ("objects", self._test_objects, 0.3),
                ("strings", self._test_strings, 0.2),
                ("tree", self._test_tree, 0.2),
            ]
            for i, (name, test, weight) in enumerate(cpu_tests):
                await asyncio.sleep(0)
                if aborted():
                    was_aborted = True
                    break
                cpu_score += weight * self._run_subtest(name, test, CPU_FAILURE_SCORE)
                share = 1.0 - RENDER_PROGRESS_SHARE
                report(Progress(status=STATUS_CPU, progress=RENDER_PROGRESS_SHARE + share * (i + 1) / len(cpu_tests)))

        result = build_result(render_score, cpu_score, aborted=was_aborted)
        if was_aborted:
            logger.info("Benchmark aborted; returning partial scores")
        else:
            self._result = result
            logger.info(
                "Benchmark complete: render=%.1f cpu=%.1f combined=%.1f",
                result.render_score, result.cpu_score, result.combined_score,
            )
        report(Progress(status=STATUS_COMPLETE, progress=1.0, result=result))
        return result

    # Render sub-tests

    def _test_draw_triangles(self, context: RenderContext) -> float:
        """Submit many small triangles, one draw call each."""
        count = self._scaled(TRIANGLE_COUNT)
        rng = random.Random()
        vertices = [rng.uniform(-1.0, 1.0) for _ in range(count * 6)]
        context.upload_vertices(vertices)

        start = self.clock()
        for _ in range(TRIANGLE_PASSES):
            context.clear()
            for first in range(0, count, 3):
                context.draw_arrays(first, 3)
        context.finish()
        elapsed = self._elapsed_ms(start)

        return score_time(TRIANGLE_EXPECTED_MS * self.workload_scale, elapsed, TRIANGLE_FLOOR_MS)

    def _test_textures(self, context: RenderContext) -> float:
        """Score texture capabilities: maximum size, float formats and texture units."""
        size_score = min(100.0, context.max_texture_size / TEXTURE_REFERENCE_SIZE * 100)
        if context.has_extension("OES_texture_float"):
            format_score = 100.0
        elif context.has_extension("OES_texture_half_float"):
            format_score = 60.0
        else:
            format_score = 30.0
        units_score = min(100.0, context.max_texture_image_units / TEXTURE_REFERENCE_UNITS * 100)
        return size_score * 0.5 + format_score * 0.3 + units_score * 0.2

    def _test_transforms(self, context: RenderContext) -> float:
        """Upload a rotation matrix and draw a triangle, once per frame."""
        iterations = self._scaled(TRANSFORM_ITERATIONS)
        context.upload_vertices([-0.5, -0.5, 0.5, -0.5, 0.0, 0.5])

        start = self.clock()
        for i in range(iterations):
            angle = i / iterations * math.pi * 2
            c = math.cos(angle)
            s = math.sin(angle)
            context.set_transform([
                c, -s, 0.0, 0.0,
                s, c, 0.0, 0.0,
                0.0, 0.0, 1.0, 0.0,
                0.0, 0.0, 0.0, 1.0,
            ])
            context.draw_arrays(0, 3)
        context.finish()
        elapsed = self._elapsed_ms(start)

        return score_time(TRANSFORM_EXPECTED_MS * self.workload_scale, elapsed, TRANSFORM_FLOOR_MS)

    # CPU sub-tests

    def _test_math(self) -> float:
        iterations = self._scaled(MATH_ITERATIONS)
        start = self.clock()
        total = 0.0
        for i in range(iterations):
            total += math.sin(i) * math.cos(i)
        elapsed = self._elapsed_ms(start)
        return score_time(MATH_EXPECTED_MS * self.workload_scale, elapsed, CPU_FLOOR_MS)

    def _test_objects(self) -> float:
        count = self._scaled(OBJECT_COUNT)
        rng = random.Random()
        start = self.clock()
        records = [{"id": i, "value": rng.random(), "data": f"item-{i}"} for i in range(count)]
        records.sort(key=lambda r: r["value"])
        elapsed = self._elapsed_ms(start)
        return score_time(OBJECT_EXPECTED_MS * self.workload_scale, elapsed, CPU_FLOOR_MS)

    def _test_strings(self) -> float:
        count = self._scaled(STRING_COUNT)
        start = self.clock()
        items = [str(i) for i in range(count)]
        joined = "".join(items)[:1000]
        chars = list(joined)
        chars.reverse()
        elapsed = self._elapsed_ms(start)
        return score_time(STRING_EXPECTED_MS * self.workload_scale, elapsed, CPU_FLOOR_MS)

    def _test_tree(self) -> float:
        """Build, measure and detach a flat element tree."""
        count = self._scaled(TREE_NODES)
        start = self.clock()
        root = _Node("div")
        for i in range(count):
            root.append(_Node("span", f"Item {i}"))
        text_length = sum(len(child.text) for child in root.children)
        for child in root.children:
            child.parent = None
        root.children.clear()
        elapsed = self._elapsed_ms(start)
        logger.debug("Tree workload laid out %d characters", text_length)
        return score_time(TREE_EXPECTED_MS * self.workload_scale, elapsed, CPU_FLOOR_MS)


def run_benchmark_sync(runner: BenchmarkRunner, progress: ProgressCallback | None = None) -> BenchmarkResult:
    """Run the benchmark from synchronous code."""
    return asyncio.run(runner.run(progress))
