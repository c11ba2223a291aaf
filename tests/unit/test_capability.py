import threading

import pytest

from col_terrain.capability import (
    GIB,
    MIB,
    CapabilityDetector,
    Environment,
    StaticRenderContext,
    classify_device,
    estimate_memory,
    memory_tier,
    no_accelerated_context,
    rendering_tier,
)


class TestClassifyDevice:
    @pytest.mark.parametrize("width,expected", [
        (320, "mobile"),
        (767, "mobile"),
        (768, "tablet"),
        (1023, "tablet"),
        (1024, "desktop"),
        (2560, "desktop"),
    ])
    def test_viewport_thresholds(self, width, expected):
        assert classify_device(width) == expected

    def test_phone_hint_on_wide_viewport(self):
        assert classify_device(1280, "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)") == "mobile"

    def test_android_phone_is_mobile(self):
        assert classify_device(1280, "Mozilla/5.0 (Linux; Android 14; Pixel 8) Mobile Safari") == "mobile"

    def test_ipad_hint(self):
        assert classify_device(1366, "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)") == "tablet"

    def test_desktop_hint_does_not_shrink_viewport_class(self):
        assert classify_device(500, "Mozilla/5.0 (X11; Linux x86_64)") == "mobile"


class TestRenderingTier:
    @pytest.mark.parametrize("texture_size,extensions,expected", [
        (16384, 30, "high"),
        (8192, 21, "high"),
        (8192, 20, "medium"),
        (4096, 16, "medium"),
        (4096, 15, "low"),
        (2048, 40, "low"),
        (0, 0, "low"),
    ])
    def test_thresholds(self, texture_size, extensions, expected):
        assert rendering_tier(texture_size, extensions) == expected


class TestMemory:
    def test_memory_tier(self):
        assert memory_tier(512 * MIB) == "low"
        assert memory_tier(1 * GIB) == "medium"
        assert memory_tier(2 * GIB) == "high"

    def test_reported_memory(self):
        env = Environment(device_memory=4 * GIB, memory_used=1 * GIB)
        memory = estimate_memory(env, "desktop")
        assert memory.total == 4 * GIB
        assert memory.available == 3 * GIB
        assert memory.is_estimate is False
        assert memory.tier == "high"

    @pytest.mark.parametrize("device_class,total,tier", [
        ("mobile", 512 * MIB, "low"),
        ("tablet", 1 * GIB, "medium"),
        ("desktop", 2 * GIB, "high"),
    ])
    def test_estimated_from_device_class(self, device_class, total, tier):
        memory = estimate_memory(Environment(), device_class)
        assert memory.is_estimate is True
        assert memory.total == total
        assert memory.available + memory.used == total
        assert memory.tier == tier


class TestEnvironmentFromDict:
    def test_camel_case(self):
        env = Environment.from_dict({
            "viewportWidth": 390,
            "viewportHeight": 844,
            "deviceHint": "iPhone",
            "maxTouchPoints": 5,
            "deviceMemory": 4,
            "pixelRatio": 3,
        })
        assert env.viewport_width == 390
        assert env.device_hint == "iPhone"
        assert env.device_memory == 4 * GIB
        assert env.pixel_ratio == 3.0

    def test_defaults(self):
        env = Environment.from_dict({})
        assert env.viewport_width == 1920
        assert env.device_memory is None


class TestStaticRenderContext:
    def test_from_dict(self):
        context = StaticRenderContext.from_dict({
            "maxTextureSize": 8192,
            "extensions": ["OES_texture_float"],
            "webgl2": True,
            "renderer": "ANGLE",
        })
        assert context.max_texture_size == 8192
        assert context.has_extension("OES_texture_float")
        assert not context.has_extension("OES_texture_half_float")
        assert context.max_texture_image_units == 8


class TestCapabilityDetector:
    def test_no_accelerated_context(self, desktop_environment):
        detector = CapabilityDetector(lambda: desktop_environment, no_accelerated_context)
        snapshot = detector.detect()
        assert snapshot.device_class == "desktop"
        assert snapshot.webgl.supported is False
        assert snapshot.gpu.supported is False
        assert snapshot.gpu.tier == "low"

    def test_context_factory_error_is_recorded_not_raised(self, desktop_environment):
        def broken():
            raise RuntimeError("driver crashed")

        snapshot = CapabilityDetector(lambda: desktop_environment, broken).detect()
        assert snapshot.webgl.supported is False

    def test_high_end_context(self, desktop_environment, high_end_context):
        snapshot = CapabilityDetector(lambda: desktop_environment, lambda: high_end_context).detect()
        assert snapshot.webgl.supported is True
        assert snapshot.webgl.webgl2 is True
        assert snapshot.gpu.tier == "high"
        assert snapshot.gpu.renderer == "Test GPU"
        assert snapshot.gpu.extension_count == 25

    def test_mobile_snapshot(self, mobile_environment, low_end_context):
        snapshot = CapabilityDetector(lambda: mobile_environment, lambda: low_end_context).detect()
        assert snapshot.device_class == "mobile"
        assert snapshot.has_touch_screen is True
        assert snapshot.orientation == "portrait"
        assert snapshot.pixel_ratio == 3.0
        assert snapshot.gpu.tier == "low"
        assert snapshot.memory.is_estimate is True

    def test_detect_is_memoized(self, desktop_environment):
        calls = []

        def provider():
            calls.append(1)
            return desktop_environment

        detector = CapabilityDetector(provider)
        first = detector.detect()
        second = detector.detect()
        assert first == second
        assert second is first
        assert len(calls) == 1

    def test_reset_detects_again(self):
        env = Environment(viewport_width=1920)
        detector = CapabilityDetector(lambda: env)
        assert detector.detect().device_class == "desktop"
        env.viewport_width = 800
        assert detector.detect().device_class == "desktop"
        detector.reset()
        assert detector.detect().device_class == "tablet"

    def test_concurrent_first_calls_detect_once(self, desktop_environment):
        calls = []
        started = threading.Event()

        def provider():
            calls.append(1)
            started.wait(timeout=1)
            return desktop_environment

        detector = CapabilityDetector(provider)
        results = []
        threads = [threading.Thread(target=lambda: results.append(detector.detect())) for _ in range(4)]
        for t in threads:
            t.start()
        started.set()
        for t in threads:
            t.join()
        assert len(calls) == 1
        assert all(r is results[0] for r in results)

    def test_detect_waits_for_lock(self, desktop_environment):
        calls = []

        def provider():
            calls.append(1)
            return desktop_environment

        detector = CapabilityDetector(provider)
        with detector.lock:
            thread = threading.Thread(target=detector.detect)
            thread.start()
            thread.join(timeout=0.05)
            assert calls == []
        thread.join()
        assert calls == [1]

    def test_snapshot_to_dict(self, desktop_environment):
        data = CapabilityDetector(lambda: desktop_environment).detect().to_dict()
        assert data["device_class"] == "desktop"
        assert data["webgl"] == {"webgl1": False, "webgl2": False, "supported": False}
        assert data["memory"]["tier"] == "high"
