import asyncio

import pytest

from col_terrain.benchmark import (
    CPU_FAILURE_SCORE,
    TEXTURE_FAILURE_SCORE,
    BenchmarkRunner,
    build_result,
    run_benchmark_sync,
    score_time,
)
from col_terrain.capability import StaticRenderContext


class TestScoreTime:
    def test_faster_than_expected_caps_at_100(self):
        assert score_time(expected_ms=100, measured_ms=50, floor_ms=10) == 100.0

    def test_slower_than_expected(self):
        assert score_time(expected_ms=100, measured_ms=400, floor_ms=10) == pytest.approx(25.0)

    def test_floor_avoids_blow_up(self):
        assert score_time(expected_ms=5, measured_ms=0.0, floor_ms=10) == pytest.approx(50.0)


class TestBuildResult:
    def test_weights(self):
        result = build_result(80.0, 50.0, timestamp=123.0)
        assert result.combined_score == pytest.approx(71.0)
        assert result.recommended_mode == "terrain-3d"
        assert result.recommended_quality == "medium"
        assert result.timestamp == 123.0
        assert result.aborted is False

    def test_low_scores(self):
        result = build_result(0.0, 20.0)
        assert result.combined_score == pytest.approx(6.0)
        assert result.recommended_mode == "mini-profile"
        assert result.recommended_quality == "low"


def _runner(clock, context=None):
    """Runner with a tiny workload so tests stay fast."""
    return BenchmarkRunner(context_factory=lambda: context, clock=clock, workload_scale=0.01)


class TestBenchmarkRunner:
    def test_without_context_render_score_is_zero(self, fake_clock):
        result = run_benchmark_sync(_runner(fake_clock))
        assert result.render_score == 0.0
        assert 0.0 < result.cpu_score <= 100.0
        assert result.combined_score == pytest.approx(result.cpu_score * 0.3)

    def test_with_context(self, fake_clock, high_end_context):
        result = run_benchmark_sync(_runner(fake_clock, high_end_context))
        assert result.render_score > 0.0
        assert high_end_context.draw_calls > 0
        assert high_end_context.transforms == 10

    def test_fast_clock_scores_high(self, fake_clock, high_end_context):
        """With every clock tick 0 ms apart all timed sub-tests hit the cap."""
        fake_clock.step = 0.0
        result = run_benchmark_sync(BenchmarkRunner(lambda: high_end_context, clock=fake_clock))
        assert result.cpu_score == pytest.approx(100.0)
        assert result.render_score == pytest.approx(100.0)
        assert result.recommended_mode == "terrain-3d"
        assert result.recommended_quality == "high"

    def test_slow_clock_scores_low(self, fake_clock):
        fake_clock.step = 10.0  # 10 s per measured interval
        result = run_benchmark_sync(BenchmarkRunner(clock=fake_clock))
        assert result.cpu_score < 5.0
        assert result.recommended_mode == "mini-profile"

    def test_texture_score_from_capabilities(self, fake_clock):
        context = StaticRenderContext(max_texture_size=4096, extensions=["OES_texture_half_float"], max_texture_image_units=8)
        runner = _runner(fake_clock, context)
        # 50% size, half-float format, half the reference units
        assert runner._test_textures(context) == pytest.approx(50 * 0.5 + 60 * 0.3 + 50 * 0.2)

    def test_progress_is_monotonic_and_complete(self, fake_clock, high_end_context):
        updates = []
        result = run_benchmark_sync(_runner(fake_clock, high_end_context), progress=updates.append)
        values = [u.progress for u in updates]
        assert values == sorted(values)
        assert all(0.0 <= v <= 1.0 for v in values)
        assert updates[0].status == "starting"
        assert updates[-1].status == "complete"
        assert updates[-1].progress == 1.0
        assert updates[-1].result is result
        assert {u.status for u in updates} == {"starting", "webgl", "cpu", "complete"}

    def test_result_is_memoized(self, fake_clock):
        runner = _runner(fake_clock)
        first = run_benchmark_sync(runner)
        ticks = fake_clock.now
        second = run_benchmark_sync(runner)
        assert second is first
        assert fake_clock.now == ticks
        assert runner.result is first

    def test_reset_measures_again(self, fake_clock):
        runner = _runner(fake_clock)
        first = run_benchmark_sync(runner)
        runner.reset()
        assert runner.result is None
        second = run_benchmark_sync(runner)
        assert second is not first

    def test_concurrent_runs_share_one_measurement(self, fake_clock):
        runner = _runner(fake_clock)
        calls = []
        original = runner._test_math

        def counting_math():
            calls.append(1)
            return original()

        runner._test_math = counting_math

        async def run_both():
            return await asyncio.gather(runner.run(), runner.run(), runner.run())

        results = asyncio.run(run_both())
        assert len(calls) == 1
        assert results[0] is results[1] is results[2]

    def test_yields_between_subtests(self, fake_clock):
        """Other tasks get to run while the benchmark is in progress."""
        runner = _runner(fake_clock)
        ticks = []

        async def ticker():
            for _ in range(3):
                ticks.append(runner.result)
                await asyncio.sleep(0)

        async def run_both():
            await asyncio.gather(runner.run(), ticker())

        asyncio.run(run_both())
        assert ticks == [None, None, None]

    def test_abort_before_start(self, fake_clock, high_end_context):
        runner = _runner(fake_clock, high_end_context)
        updates = []

        async def run_aborted():
            abort = asyncio.Event()
            abort.set()
            return await runner.run(updates.append, abort)

        result = asyncio.run(run_aborted())
        assert result.aborted is True
        assert result.render_score == 0.0
        assert result.cpu_score == 0.0
        assert result.recommended_quality == "low"
        assert updates[-1].status == "complete"
        assert runner.result is None

    def test_abort_midway(self, fake_clock):
        runner = _runner(fake_clock)
        abort = None

        def stop_after_math():
            abort.set()
            return 100.0

        runner._test_math = stop_after_math

        async def run_aborted():
            nonlocal abort
            abort = asyncio.Event()
            return await runner.run(None, abort)

        result = asyncio.run(run_aborted())
        assert result.aborted is True
        assert result.cpu_score == pytest.approx(30.0)
        assert runner.result is None

    def test_failing_subtest_scores_conservatively(self, fake_clock, high_end_context):
        def broken(context):
            raise RuntimeError("float textures unavailable")

        def broken_cpu():
            raise MemoryError("allocation failed")

        fake_clock.step = 0.0
        runner = BenchmarkRunner(lambda: high_end_context, clock=fake_clock)
        runner._test_textures = broken
        runner._test_tree = broken_cpu
        result = run_benchmark_sync(runner)
        assert result.aborted is False
        assert result.render_score == pytest.approx((100.0 + TEXTURE_FAILURE_SCORE + 100.0) / 3)
        assert result.cpu_score == pytest.approx(0.8 * 100.0 + 0.2 * CPU_FAILURE_SCORE)

    def test_context_factory_error_scores_render_zero(self, fake_clock):
        def broken():
            raise RuntimeError("no GPU")

        result = run_benchmark_sync(BenchmarkRunner(broken, clock=fake_clock, workload_scale=0.01))
        assert result.render_score == 0.0
