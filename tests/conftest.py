import pytest

from col_terrain import config
from col_terrain.capability import Environment, StaticRenderContext
from col_terrain.models import Col, SubClimb


@pytest.fixture
def galibier():
    """A long alpine col with an estimated start elevation."""
    return Col(name="Col du Galibier", elevation=2642, length=18.1, avg_gradient=6.9)


@pytest.fixture
def steep_col():
    """A col with a known maximum gradient and an explicit base."""
    return Col(
        name="Mur de Huy",
        elevation=204,
        length=1.3,
        avg_gradient=9.6,
        start_elevation=79,
        max_gradient=19.0,
    )


@pytest.fixture
def col_with_climbs():
    """A 10 km col with one named sub-climb in the middle."""
    return Col(
        name="Col de Test",
        elevation=1500,
        length=10.0,
        avg_gradient=7.0,
        start_elevation=800,
        climbs=[SubClimb(name="Les lacets", gradient=9.0, length=2.0, start_distance=4.0)],
    )


class RecordingRenderContext(StaticRenderContext):
    """Static context that counts draw calls."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.draw_calls = 0
        self.transforms = 0

    def draw_arrays(self, first: int, count: int) -> None:
        self.draw_calls += 1

    def set_transform(self, matrix: list[float]) -> None:
        self.transforms += 1


@pytest.fixture
def high_end_context():
    return RecordingRenderContext(
        max_texture_size=16384,
        extensions=[f"EXT_{i}" for i in range(24)] + ["OES_texture_float"],
        webgl2=True,
        max_texture_image_units=16,
        renderer="Test GPU",
        vendor="Test Vendor",
    )


@pytest.fixture
def low_end_context():
    return RecordingRenderContext(max_texture_size=2048, extensions=["EXT_a", "EXT_b"])


class FakeClock:
    """perf_counter stand-in that advances a fixed step on every call."""

    def __init__(self, step: float = 0.001):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def desktop_environment():
    return Environment(viewport_width=1920, viewport_height=1080, device_memory=8 * 1024 ** 3)


@pytest.fixture
def mobile_environment():
    return Environment(
        viewport_width=390,
        viewport_height=844,
        device_hint="Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile",
        max_touch_points=5,
        pixel_ratio=3.0,
    )


@pytest.fixture
def no_config(tmp_path, monkeypatch):
    """Ensure no config files or environment overrides exist."""
    monkeypatch.setattr(config, "LOCAL_CONFIG_PATH", tmp_path / "nonexistent" / "col-terrain.json")
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "nonexistent" / "global.json")
    for env_var in config.ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
