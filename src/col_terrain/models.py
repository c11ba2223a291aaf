import math
import numbers
from dataclasses import asdict, dataclass, field

import numpy as np

from col_terrain.errors import InvalidColData

# Visualization modes
MODE_AUTO = "auto"
MODE_PROFILE_2D = "profile-2d"
MODE_TERRAIN_3D = "terrain-3d"
MODE_MINI_PROFILE = "mini-profile"
MODES = (MODE_PROFILE_2D, MODE_TERRAIN_3D, MODE_MINI_PROFILE)

# Quality tiers, ordered from lowest to highest
QUALITY_AUTO = "auto"
QUALITY_LOW = "low"
QUALITY_MEDIUM = "medium"
QUALITY_HIGH = "high"
QUALITIES = (QUALITY_LOW, QUALITY_MEDIUM, QUALITY_HIGH)

# Device classes
DEVICE_MOBILE = "mobile"
DEVICE_TABLET = "tablet"
DEVICE_DESKTOP = "desktop"
DEVICE_CLASSES = (DEVICE_MOBILE, DEVICE_TABLET, DEVICE_DESKTOP)

# Benchmark progress phases
STATUS_STARTING = "starting"
STATUS_WEBGL = "webgl"
STATUS_CPU = "cpu"
STATUS_COMPLETE = "complete"


def _required_number(value, field_name: str) -> float:
    """Coerce a required numeric field, raising InvalidColData when unusable."""
    if value is None or value == "":
        raise InvalidColData(f"Missing required field: {field_name}")
    if isinstance(value, bool):
        raise InvalidColData(f"Field {field_name} is not numeric: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidColData(f"Field {field_name} is not numeric: {value!r}") from None
    if not math.isfinite(number):
        raise InvalidColData(f"Field {field_name} is not finite: {value!r}")
    return number


def _optional_number(value) -> float | None:
    """Coerce an optional numeric field; noisy values become None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _is_finite_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


@dataclass
class SubClimb:
    """A named section inside a col, distances in km."""
    name: str | None = None
    gradient: float | None = None  # percent
    length: float | None = None  # km
    start_distance: float = 0.0  # km from the foot of the col

    @classmethod
    def from_dict(cls, data: dict) -> "SubClimb":
        start = _optional_number(data.get("startDistance", data.get("start_distance")))
        return cls(
            name=data.get("name"),
            gradient=_optional_number(data.get("gradient")),
            length=_optional_number(data.get("length")),
            start_distance=start if start is not None else 0.0,
        )


@dataclass
class Col:
    """A mountain pass climb as delivered by the data layer."""
    name: str
    elevation: float  # summit altitude, meters
    length: float  # km
    avg_gradient: float  # percent
    start_elevation: float | None = None  # meters
    max_gradient: float | None = None  # percent
    climbs: list[SubClimb] = field(default_factory=list)

    def validate(self) -> None:
        """Check the required numeric fields.

        Raises:
            InvalidColData: If elevation, length or avg_gradient are missing,
                non-numeric or non-finite, or elevation/length are not positive.
        """
        for field_name in ("elevation", "length", "avg_gradient"):
            if not _is_finite_number(getattr(self, field_name)):
                raise InvalidColData(f"Field {field_name} must be a finite number, got {getattr(self, field_name)!r}")
        if self.elevation <= 0:
            raise InvalidColData(f"Col elevation must be positive, got {self.elevation}")
        if self.length <= 0:
            raise InvalidColData(f"Col length must be positive, got {self.length}")
        for field_name in ("start_elevation", "max_gradient"):
            value = getattr(self, field_name)
            if value is not None and not _is_finite_number(value):
                raise InvalidColData(f"Field {field_name} must be a finite number, got {value!r}")

    @property
    def resolved_start_elevation(self) -> float:
        """Base altitude: explicit, else estimated from length and average gradient."""
        if self.start_elevation is not None:
            return float(self.start_elevation)
        estimate = self.elevation - self.length * self.avg_gradient / 100 * 1000
        return max(0.0, estimate)

    @classmethod
    def from_dict(cls, data: dict) -> "Col":
        """Build a Col from a record in either camelCase or snake_case.

        Raises:
            InvalidColData: If the record is not a mapping or required fields are unusable.
        """
        if not isinstance(data, dict):
            raise InvalidColData("Col record must be a JSON object")

        def pick(*keys):
            for key in keys:
                if key in data:
                    return data[key]
            return None

        climbs = pick("climbs") or []
        if not isinstance(climbs, list):
            raise InvalidColData("Field climbs must be a list")

        col = cls(
            name=str(data.get("name") or ""),
            elevation=_required_number(pick("elevation"), "elevation"),
            length=_required_number(pick("length"), "length"),
            avg_gradient=_required_number(pick("avgGradient", "avg_gradient"), "avgGradient"),
            start_elevation=_optional_number(pick("startElevation", "start_elevation")),
            max_gradient=_optional_number(pick("maxGradient", "max_gradient")),
            climbs=[SubClimb.from_dict(c) for c in climbs if isinstance(c, dict)],
        )
        col.validate()
        return col


@dataclass(frozen=True)
class ElevationPoint:
    distance: float  # km from the foot of the col
    elevation: float  # meters
    gradient: float | None = None  # percent, slope from the previous point

    def to_dict(self) -> dict:
        return {"distance": self.distance, "elevation": self.elevation, "gradient": self.gradient}


@dataclass(frozen=True)
class ElevationProfile:
    """Scalar summary of a col, passed through from the input unchanged."""
    start: float
    summit: float
    distance: float
    gradient: float
    max_gradient: float | None = None

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "summit": self.summit,
            "distance": self.distance,
            "gradient": self.gradient,
            "maxGradient": self.max_gradient,
        }


@dataclass(eq=False)
class TerrainMesh:
    """Renderable grid mesh as flat buffers.

    Normals are a (0, 1, 0) placeholder; renderers recompute them from the
    index buffer.
    """
    vertices: np.ndarray  # flat XYZ, float64
    indices: np.ndarray  # flat triangle triples, uint32
    normals: np.ndarray  # flat XYZ, float64
    uvs: np.ndarray  # flat UV, float64
    width_segments: int
    length_segments: int

    @property
    def vertex_count(self) -> int:
        return len(self.vertices) // 3

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    def to_dict(self) -> dict:
        return {
            "vertices": self.vertices.tolist(),
            "indices": self.indices.tolist(),
            "normals": self.normals.tolist(),
            "uvs": self.uvs.tolist(),
            "widthSegments": self.width_segments,
            "lengthSegments": self.length_segments,
        }


@dataclass(frozen=True)
class RenderingSupport:
    webgl1: bool = False
    webgl2: bool = False
    supported: bool = False


@dataclass(frozen=True)
class GpuInfo:
    supported: bool = False
    webgl2_supported: bool = False
    renderer: str | None = None
    vendor: str | None = None
    extension_count: int = 0
    max_texture_size: int = 0
    tier: str = QUALITY_LOW


@dataclass(frozen=True)
class MemoryInfo:
    total: int  # bytes
    available: int  # bytes
    used: int  # bytes
    is_estimate: bool = False
    tier: str = QUALITY_LOW


@dataclass(frozen=True)
class CapabilitySnapshot:
    """What the current runtime can render, captured at detection time."""
    device_class: str
    webgl: RenderingSupport
    gpu: GpuInfo
    memory: MemoryInfo
    has_touch_screen: bool = False
    pixel_ratio: float = 1.0
    orientation: str = "landscape"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BenchmarkResult:
    render_score: float  # 0-100
    cpu_score: float  # 0-100
    combined_score: float  # 0-100
    recommended_mode: str
    recommended_quality: str
    timestamp: float
    aborted: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Progress:
    status: str
    progress: float  # 0-1
    result: BenchmarkResult | None = None
