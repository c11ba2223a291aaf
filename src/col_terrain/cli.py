import argparse
import json
import logging
import sys

from col_terrain import version_string
from col_terrain.benchmark import BenchmarkRunner, run_benchmark_sync
from col_terrain.capability import CapabilityDetector, current_environment
from col_terrain.config import DEFAULTS, get_setting, load_config
from col_terrain.errors import ColTerrainError
from col_terrain.models import MODE_AUTO, MODES, QUALITIES, QUALITY_AUTO, Col
from col_terrain.profile import gradient_sections, points_of_interest, synthesize
from col_terrain.selector import select
from col_terrain.terrain import build_mesh, road_centerline


def build_parser(config: dict | None = None) -> argparse.ArgumentParser:
    """Build argument parser with defaults from config file."""
    if config is None:
        config = {}

    def get_default(key: str):
        return get_setting(config, key)

    parser = argparse.ArgumentParser(
        description="Synthesize an elevation profile and terrain mesh for a col."
    )
    parser.add_argument("col_file", nargs="?", help="Path to a JSON col record (or use --elevation/--length/--avg-gradient)")
    parser.add_argument("--name", type=str, default="", help="Col name")
    parser.add_argument("--elevation", type=float, help="Summit elevation in meters")
    parser.add_argument("--length", type=float, help="Climb length in km")
    parser.add_argument("--avg-gradient", type=float, help="Average gradient in percent")
    parser.add_argument("--start-elevation", type=float, help="Base elevation in meters (estimated if omitted)")
    parser.add_argument("--max-gradient", type=float, help="Maximum gradient in percent; injects steeper sections")
    parser.add_argument(
        "--seed",
        type=int,
        default=get_default("seed"),
        help="Random seed for reproducible steep-section placement",
    )
    parser.add_argument("--mesh", action="store_true", help="Also build the terrain mesh")
    parser.add_argument(
        "--width-segments",
        type=int,
        default=get_default("width_segments"),
        help=f"Terrain mesh columns (default: {DEFAULTS['width_segments']})",
    )
    parser.add_argument(
        "--horizontal-exaggeration",
        type=float,
        default=get_default("horizontal_exaggeration"),
        help=f"Scale along the climb (default: {DEFAULTS['horizontal_exaggeration']})",
    )
    parser.add_argument(
        "--vertical-exaggeration",
        type=float,
        default=get_default("vertical_exaggeration"),
        help=f"Scale applied to elevations (default: {DEFAULTS['vertical_exaggeration']})",
    )
    parser.add_argument(
        "--mode",
        choices=(MODE_AUTO,) + MODES,
        default=get_default("mode"),
        help=f"Visualization mode (default: {DEFAULTS['mode']})",
    )
    parser.add_argument(
        "--quality",
        choices=(QUALITY_AUTO,) + QUALITIES,
        default=get_default("quality"),
        help=f"Rendering quality (default: {DEFAULTS['quality']})",
    )
    parser.add_argument("--viewport", type=str, default=None, help="Viewport size as WIDTHxHEIGHT")
    parser.add_argument("--device-hint", type=str, default="", help="Device family or user agent string")
    parser.add_argument("--benchmark", action="store_true", help="Run the micro-benchmark before selecting a mode")
    parser.add_argument("--json", action="store_true", help="Print a JSON document instead of a report")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=version_string())
    return parser


def parse_viewport(value: str) -> tuple[int, int]:
    """Parse WIDTHxHEIGHT.

    Raises:
        ValueError: If the value is not two positive integers separated by 'x'.
    """
    try:
        width_str, height_str = value.lower().split("x")
        width, height = int(width_str), int(height_str)
    except ValueError:
        raise ValueError(f"Invalid viewport {value!r}, expected WIDTHxHEIGHT") from None
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid viewport {value!r}, dimensions must be positive")
    return width, height


def load_col(args: argparse.Namespace) -> Col:
    """Col from the JSON file argument or from the command line flags.

    Raises:
        FileNotFoundError: If the col file does not exist.
        ColTerrainError: If the record is invalid or required flags are missing.
    """
    if args.col_file:
        with open(args.col_file) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ColTerrainError(f"Invalid JSON in {args.col_file}: {e}") from None
        return Col.from_dict(data)

    return Col.from_dict({
        "name": args.name,
        "elevation": args.elevation,
        "length": args.length,
        "avgGradient": args.avg_gradient,
        "startElevation": args.start_elevation,
        "maxGradient": args.max_gradient,
    })


def difficulty_breakdown(sections) -> dict[str, float]:
    """Distance in km per difficulty class."""
    breakdown: dict[str, float] = {}
    for section in sections:
        span = section.end_distance - section.start_distance
        breakdown[section.difficulty] = breakdown.get(section.difficulty, 0.0) + span
    return breakdown


def main(argv: list[str] | None = None) -> None:
    config = load_config()
    parser = build_parser(config)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        col = load_col(args)
    except FileNotFoundError:
        print(f"Error: File not found: {args.col_file}", file=sys.stderr)
        sys.exit(1)
    except ColTerrainError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    environment = current_environment()
    if args.viewport:
        try:
            environment.viewport_width, environment.viewport_height = parse_viewport(args.viewport)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    environment.device_hint = args.device_hint

    detector = CapabilityDetector(environment_provider=lambda: environment)
    capability = detector.detect()

    benchmark = None
    if args.benchmark:
        benchmark = run_benchmark_sync(BenchmarkRunner(detector.context_factory))

    selection = select(capability, benchmark, args.mode, args.quality)

    result = synthesize(col, seed=args.seed)
    points = result.points
    profile = result.profile
    sections = gradient_sections(points)

    mesh = None
    centerline = None
    if args.mesh:
        try:
            mesh = build_mesh(
                points,
                col.length,
                width_segments=args.width_segments,
                horizontal_exaggeration=args.horizontal_exaggeration,
                vertical_exaggeration=args.vertical_exaggeration,
            )
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        centerline = road_centerline(points, args.horizontal_exaggeration, args.vertical_exaggeration)

    if args.json:
        document = {
            "profile": profile.to_dict(),
            "points": [p.to_dict() for p in points],
            "sections": [s.to_dict() for s in sections],
            "pointsOfInterest": [p.to_dict() for p in points_of_interest(col, points)],
            "capability": capability.to_dict(),
            "selection": selection.to_dict(),
        }
        if benchmark is not None:
            document["benchmark"] = benchmark.to_dict()
        if mesh is not None:
            document["mesh"] = mesh.to_dict()
            document["centerline"] = centerline.tolist()
        print(json.dumps(document))
        return

    print("=== Col Profile ===")
    if col.name:
        print(f"Name:           {col.name}")
    print(f"Start:          {profile.start:.0f} m")
    print(f"Summit:         {profile.summit:.0f} m")
    print(f"Distance:       {profile.distance:.2f} km")
    print(f"Avg Gradient:   {profile.gradient:.1f}%")
    if profile.max_gradient is not None:
        print(f"Max Gradient:   {profile.max_gradient:.1f}%")
    print(f"Samples:        {len(points)}")
    steepest = max(points[1:], key=lambda p: p.gradient)
    print(f"Steepest:       {steepest.gradient:.1f}% at km {steepest.distance:.2f}")
    for difficulty, km in difficulty_breakdown(sections).items():
        print(f"  {difficulty + ':':<14}{km:.2f} km")
    print(f"Device:         {capability.device_class} ({capability.orientation})")
    print(f"Mode:           {selection.mode}")
    print(f"Quality:        {selection.quality}")
    print(f"Reason:         {selection.reason}")
    if benchmark is not None:
        print(
            f"Benchmark:      render={benchmark.render_score:.0f} cpu={benchmark.cpu_score:.0f} "
            f"combined={benchmark.combined_score:.0f}"
        )
    if mesh is not None:
        print(f"Mesh:           {mesh.vertex_count} vertices, {mesh.triangle_count} triangles")
