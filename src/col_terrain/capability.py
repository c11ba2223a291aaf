"""Rendering capability detection.

Works from two inputs so it can run against any platform:

- an Environment (viewport size, optional device-family hint, touch points,
  memory) supplied by an environment provider
- a context factory that tries to open a hardware-accelerated rendering
  context and returns None when there is none

A missing accelerated context is recorded as supported=False, never raised,
so the selector can fall back to a 2D profile.
"""

import logging
import os
import re
from threading import Lock
from dataclasses import dataclass, field
from typing import Callable, Protocol

from col_terrain.models import (
    DEVICE_DESKTOP,
    DEVICE_MOBILE,
    DEVICE_TABLET,
    QUALITY_HIGH,
    QUALITY_LOW,
    QUALITY_MEDIUM,
    CapabilitySnapshot,
    GpuInfo,
    MemoryInfo,
    RenderingSupport,
)

logger = logging.getLogger(__name__)

# Viewport width thresholds in CSS pixels
MOBILE_MAX_WIDTH = 768
TABLET_MAX_WIDTH = 1024

MOBILE_HINT_PATTERN = re.compile(r"android|webos|iphone|ipod|blackberry|iemobile|opera mini", re.IGNORECASE)
TABLET_HINT_PATTERN = re.compile(r"ipad|android", re.IGNORECASE)
PHONE_QUALIFIER_PATTERN = re.compile(r"mobile", re.IGNORECASE)

# Rendering tier thresholds
HIGH_TIER_TEXTURE_SIZE = 8192
HIGH_TIER_EXTENSIONS = 20
MEDIUM_TIER_TEXTURE_SIZE = 4096
MEDIUM_TIER_EXTENSIONS = 15

MIB = 1024 * 1024
GIB = 1024 * MIB

# Total memory assumed per device class when the runtime can't report it
MEMORY_ESTIMATES = {
    DEVICE_MOBILE: 512 * MIB,
    DEVICE_TABLET: 1 * GIB,
    DEVICE_DESKTOP: 2 * GIB,
}


@dataclass
class Environment:
    """Viewport and device facts reported by the runtime."""
    viewport_width: int = 1920
    viewport_height: int = 1080
    device_hint: str = ""  # user agent or device family, may be empty
    max_touch_points: int = 0
    device_memory: int | None = None  # total bytes, when known
    memory_used: int | None = None  # bytes, when known
    pixel_ratio: float = 1.0

    @classmethod
    def from_dict(cls, data: dict) -> "Environment":
        """Build from a client report.

        Accepts camelCase or snake_case keys. deviceMemory is in GB, as
        browsers report it.
        """
        def pick(camel: str, snake: str, default=None):
            return data.get(camel, data.get(snake, default))

        memory_gb = pick("deviceMemory", "device_memory_gb")
        return cls(
            viewport_width=int(pick("viewportWidth", "viewport_width", 1920)),
            viewport_height=int(pick("viewportHeight", "viewport_height", 1080)),
            device_hint=str(pick("deviceHint", "device_hint", "") or ""),
            max_touch_points=int(pick("maxTouchPoints", "max_touch_points", 0) or 0),
            device_memory=int(float(memory_gb) * GIB) if memory_gb else None,
            pixel_ratio=float(pick("pixelRatio", "pixel_ratio", 1.0) or 1.0),
        )


def _physical_memory() -> int | None:
    """Total physical memory in bytes, where the OS exposes it."""
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        return None


def current_environment() -> Environment:
    """Environment of the running process: a desktop-sized viewport and physical memory."""
    return Environment(device_memory=_physical_memory())


class RenderContext(Protocol):
    """The slice of an accelerated rendering API used for probing and benchmarking."""
    webgl2: bool
    max_texture_size: int
    max_texture_image_units: int
    extensions: list[str]
    renderer: str | None
    vendor: str | None

    def has_extension(self, name: str) -> bool: ...

    def upload_vertices(self, vertices: list[float]) -> None: ...

    def clear(self) -> None: ...

    def draw_arrays(self, first: int, count: int) -> None: ...

    def set_transform(self, matrix: list[float]) -> None: ...

    def finish(self) -> None: ...


@dataclass
class StaticRenderContext:
    """A context described by values a client reported; draw calls do nothing."""
    max_texture_size: int = 0
    extensions: list[str] = field(default_factory=list)
    webgl2: bool = False
    max_texture_image_units: int = 8
    renderer: str | None = None
    vendor: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "StaticRenderContext":
        return cls(
            max_texture_size=int(data.get("maxTextureSize", data.get("max_texture_size", 0)) or 0),
            extensions=list(data.get("extensions") or []),
            webgl2=bool(data.get("webgl2", False)),
            max_texture_image_units=int(data.get("maxTextureImageUnits", data.get("max_texture_image_units", 8)) or 8),
            renderer=data.get("renderer"),
            vendor=data.get("vendor"),
        )

    def has_extension(self, name: str) -> bool:
        return name in self.extensions

    def upload_vertices(self, vertices: list[float]) -> None:
        pass

    def clear(self) -> None:
        pass

    def draw_arrays(self, first: int, count: int) -> None:
        pass

    def set_transform(self, matrix: list[float]) -> None:
        pass

    def finish(self) -> None:
        pass


ContextFactory = Callable[[], "RenderContext | None"]


def no_accelerated_context() -> None:
    """Context factory for runtimes without accelerated rendering."""
    return None


def classify_device(viewport_width: int, device_hint: str = "") -> str:
    """Device class from viewport width, overridden upward by a device-family hint."""
    hint = device_hint or ""
    is_mobile = bool(MOBILE_HINT_PATTERN.search(hint))
    is_tablet = bool(TABLET_HINT_PATTERN.search(hint)) and not PHONE_QUALIFIER_PATTERN.search(hint)

    if viewport_width < MOBILE_MAX_WIDTH or is_mobile:
        return DEVICE_MOBILE
    if viewport_width < TABLET_MAX_WIDTH or is_tablet:
        return DEVICE_TABLET
    return DEVICE_DESKTOP


def rendering_tier(max_texture_size: int, extension_count: int) -> str:
    if max_texture_size >= HIGH_TIER_TEXTURE_SIZE and extension_count > HIGH_TIER_EXTENSIONS:
        return QUALITY_HIGH
    if max_texture_size >= MEDIUM_TIER_TEXTURE_SIZE and extension_count > MEDIUM_TIER_EXTENSIONS:
        return QUALITY_MEDIUM
    return QUALITY_LOW


def memory_tier(total_bytes: int) -> str:
    if total_bytes < 1 * GIB:
        return QUALITY_LOW
    if total_bytes < 2 * GIB:
        return QUALITY_MEDIUM
    return QUALITY_HIGH


def estimate_memory(env: Environment, device_class: str) -> MemoryInfo:
    """Reported memory when available, else a per-device-class estimate."""
    if env.device_memory:
        used = env.memory_used or 0
        return MemoryInfo(
            total=env.device_memory,
            available=max(0, env.device_memory - used),
            used=used,
            is_estimate=False,
            tier=memory_tier(env.device_memory),
        )
    total = MEMORY_ESTIMATES[device_class]
    available = total // 2
    return MemoryInfo(
        total=total,
        available=available,
        used=total - available,
        is_estimate=True,
        tier=memory_tier(total),
    )


class CapabilityDetector:
    """Detects rendering capabilities and memoizes the snapshot until reset()."""

    def __init__(
        self,
        environment_provider: Callable[[], Environment] = current_environment,
        context_factory: ContextFactory = no_accelerated_context,
    ):
        self.environment_provider = environment_provider
        self.context_factory = context_factory
        self._snapshot: CapabilitySnapshot | None = None
        self.lock = Lock()

    def detect(self) -> CapabilitySnapshot:
        """Return the memoized snapshot, detecting it on first use.

        Concurrent first callers wait for a single detection.
        """
        with self.lock:
            if self._snapshot is None:
                self._snapshot = self._detect()
            return self._snapshot

    def reset(self) -> None:
        """Forget the memoized snapshot so the next detect() probes again."""
        with self.lock:
            self._snapshot = None

    def _detect(self) -> CapabilitySnapshot:
        env = self.environment_provider()
        device_class = classify_device(env.viewport_width, env.device_hint)
        webgl, gpu = self._probe_rendering()
        snapshot = CapabilitySnapshot(
            device_class=device_class,
            webgl=webgl,
            gpu=gpu,
            memory=estimate_memory(env, device_class),
            has_touch_screen=env.max_touch_points > 0,
            pixel_ratio=env.pixel_ratio,
            orientation="portrait" if env.viewport_height > env.viewport_width else "landscape",
        )
        logger.debug(
            "Detected %s device, rendering supported=%s tier=%s",
            device_class, webgl.supported, gpu.tier,
        )
        return snapshot

    def _probe_rendering(self) -> tuple[RenderingSupport, GpuInfo]:
        try:
            context = self.context_factory()
            if context is None:
                logger.info("No accelerated rendering context; 3D terrain disabled")
                return RenderingSupport(), GpuInfo()
            extensions = list(context.extensions or [])
            max_texture_size = int(context.max_texture_size or 0)
            webgl2 = bool(context.webgl2)
            renderer = context.renderer
            vendor = context.vendor
        except Exception as e:
            logger.warning("Accelerated rendering context unavailable: %s", e)
            return RenderingSupport(), GpuInfo()

        support = RenderingSupport(webgl1=True, webgl2=webgl2, supported=True)
        gpu = GpuInfo(
            supported=True,
            webgl2_supported=webgl2,
            renderer=renderer,
            vendor=vendor,
            extension_count=len(extensions),
            max_texture_size=max_texture_size,
            tier=rendering_tier(max_texture_size, len(extensions)),
        )
        return support, gpu
