"""Web interface and JSON API for col profiles, terrain meshes and mode selection."""

import io

from flask import Flask, jsonify, render_template_string, request, send_file

from col_terrain import version_info
from col_terrain.benchmark import build_result
from col_terrain.capability import CapabilityDetector, Environment, StaticRenderContext
from col_terrain.charts import generate_elevation_profile
from col_terrain.config import get_setting, load_config
from col_terrain.errors import ColTerrainError
from col_terrain.models import Col
from col_terrain.orchestrator import VisualizationOrchestrator
from col_terrain.profile import gradient_sections, points_of_interest, synthesize
from col_terrain.selector import preset_for, select
from col_terrain.terrain import build_mesh, resample_points, road_centerline


# Request limits; a mesh row holds width_segments + 1 vertices and a col
# gets 10 samples per km.
MAX_WIDTH_SEGMENTS = 256
MAX_COL_LENGTH_KM = 300.0

PROFILE_FORM_FIELDS = ("name", "elevation", "length", "avg_gradient", "max_gradient", "seed")

app = Flask(__name__)


def _json_body() -> dict:
    """Request JSON body as a dict.

    Raises:
        ColTerrainError: If the body is missing or not a JSON object.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ColTerrainError("Request body must be a JSON object")
    return data


def _optional_int(value, name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ColTerrainError(f"{name} must be an integer, got {value!r}") from None


def _float_setting(data: dict, key: str, config: dict) -> float:
    value = data.get(key, get_setting(config, key))
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ColTerrainError(f"{key} must be a number, got {value!r}") from None


def _load_col(data) -> Col:
    """Col.from_dict plus the request-size limit on its length."""
    col = Col.from_dict(data)
    if col.length > MAX_COL_LENGTH_KM:
        raise ColTerrainError(f"Col length must be at most {MAX_COL_LENGTH_KM:g} km, got {col.length}")
    return col


def _width_segments(data: dict, config: dict) -> int:
    width_segments = _optional_int(data.get("width_segments"), "width_segments")
    if width_segments is None:
        width_segments = get_setting(config, "width_segments")
    if width_segments > MAX_WIDTH_SEGMENTS:
        raise ColTerrainError(f"width_segments must be at most {MAX_WIDTH_SEGMENTS}, got {width_segments}")
    return width_segments


def _form_col(values) -> Col:
    """Col from the HTML form field names used by the index page."""
    return _load_col({
        "name": values.get("name", ""),
        "elevation": values.get("elevation", ""),
        "length": values.get("length", ""),
        "avgGradient": values.get("avg_gradient", ""),
        "maxGradient": values.get("max_gradient", ""),
    })


def _profile_png(col: Col, seed: int | None):
    points = synthesize(col, seed=seed).points
    img_bytes = generate_elevation_profile(
        points,
        gradient_sections(points),
        points_of_interest(col, points),
        title=col.name or None,
    )
    return send_file(io.BytesIO(img_bytes), mimetype='image/png')


def _profile_document(col: Col, seed: int | None) -> dict:
    result = synthesize(col, seed=seed)
    return {
        "profile": result.profile.to_dict(),
        "points": [p.to_dict() for p in result.points],
        "sections": [s.to_dict() for s in gradient_sections(result.points)],
        "pointsOfInterest": [p.to_dict() for p in points_of_interest(col, result.points)],
    }


@app.route("/api/version")
def api_version():
    return jsonify(version_info())


@app.route("/api/profile", methods=["POST"])
def api_profile():
    """Synthesize the elevation profile for a col record.

    The body is the col record itself. An optional ?seed= query parameter
    makes the injected steep sections reproducible.
    """
    try:
        seed = _optional_int(request.args.get("seed"), "seed")
        col = _load_col(_json_body())
        return jsonify(_profile_document(col, seed))
    except ColTerrainError as e:
        return jsonify({"error": str(e)}), 400


@app.route("/api/profile.png", methods=["POST"])
def api_profile_png():
    """Same input as /api/profile, answered with the profile chart as PNG."""
    try:
        seed = _optional_int(request.args.get("seed"), "seed")
        col = _load_col(_json_body())
    except ColTerrainError as e:
        return jsonify({"error": str(e)}), 400
    return _profile_png(col, seed)


@app.route("/elevation-profile")
def elevation_profile():
    """Profile chart for the index page, with the form fields as query parameters."""
    try:
        col = _form_col(request.args)
        seed = _optional_int(request.args.get("seed"), "seed")
    except ColTerrainError as e:
        return jsonify({"error": str(e)}), 400
    return _profile_png(col, seed)


@app.route("/api/mesh", methods=["POST"])
def api_mesh():
    """Build the terrain mesh and road centre line for a col.

    Body: {"col": {...}, "width_segments", "horizontal_exaggeration",
    "vertical_exaggeration", "seed", "quality"}; all but col are optional.
    A quality caps the number of mesh rows like the 3D renderer does.
    """
    config = load_config()
    try:
        data = _json_body()
        col = _load_col(data.get("col"))
        seed = _optional_int(data.get("seed"), "seed")
        width_segments = _width_segments(data, config)
        h = _float_setting(data, "horizontal_exaggeration", config)
        v = _float_setting(data, "vertical_exaggeration", config)

        points = synthesize(col, seed=seed).points
        if data.get("quality"):
            points = resample_points(points, preset_for(data["quality"]).max_length_segments)
        mesh = build_mesh(
            points,
            col.length,
            width_segments=width_segments,
            horizontal_exaggeration=h,
            vertical_exaggeration=v,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "mesh": mesh.to_dict(),
        "centerline": road_centerline(points, h, v).tolist(),
        "vertexCount": mesh.vertex_count,
        "triangleCount": mesh.triangle_count,
    })


@app.route("/api/select", methods=["POST"])
def api_select():
    """Choose a visualization mode and quality for a client.

    Body: {"environment": {...}, "gpu": {...} or null, "benchmark":
    {"renderScore", "cpuScore"} or null, "mode", "quality"}. The client
    reports its own viewport and rendering context; no gpu means no
    accelerated rendering.
    """
    try:
        data = _json_body()
        environment = Environment.from_dict(data.get("environment") or {})
        gpu = data.get("gpu")
        context = StaticRenderContext.from_dict(gpu) if isinstance(gpu, dict) else None

        detector = CapabilityDetector(
            environment_provider=lambda: environment,
            context_factory=lambda: context,
        )
        capability = detector.detect()

        benchmark = None
        reported = data.get("benchmark")
        if isinstance(reported, dict):
            render = float(reported.get("renderScore", reported.get("render_score", 0)))
            cpu = float(reported.get("cpuScore", reported.get("cpu_score", 0)))
            benchmark = build_result(min(100.0, max(0.0, render)), min(100.0, max(0.0, cpu)))

        selection = select(capability, benchmark, data.get("mode"), data.get("quality"))
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "selection": selection.to_dict(),
        "preset": preset_for(selection.quality).to_dict(),
        "capability": capability.to_dict(),
        "benchmark": benchmark.to_dict() if benchmark is not None else None,
    })


@app.route("/api/plan", methods=["POST"])
def api_plan():
    """Everything a renderer needs for one col: selection, profile and, for 3D, the mesh.

    Body: {"col": {...}, "environment", "gpu", "mode", "quality", "seed"}
    with the same meaning as for /api/select.
    """
    config = load_config()
    try:
        data = _json_body()
        col = _load_col(data.get("col"))
        environment = Environment.from_dict(data.get("environment") or {})
        gpu = data.get("gpu")
        context = StaticRenderContext.from_dict(gpu) if isinstance(gpu, dict) else None

        orchestrator = VisualizationOrchestrator(
            CapabilityDetector(
                environment_provider=lambda: environment,
                context_factory=lambda: context,
            ),
            preferred_mode=data.get("mode") or get_setting(config, "mode"),
            preferred_quality=data.get("quality") or get_setting(config, "quality"),
            seed=_optional_int(data.get("seed"), "seed"),
            horizontal_exaggeration=_float_setting(data, "horizontal_exaggeration", config),
            vertical_exaggeration=_float_setting(data, "vertical_exaggeration", config),
        )
        plan = orchestrator.prepare(col)
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(plan.to_dict())


HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Col Terrain</title>
<style>
body { font-family: sans-serif; margin: 2em; color: #2c3e50; }
label { display: inline-block; width: 12em; }
.error { color: #c0392b; }
.summary td { padding: 0.2em 1em 0.2em 0; }
.profile-chart { max-width: 100%; }
</style>
</head>
<body>
<h1>Col Terrain</h1>
<form method="post">
  <div><label>Name</label><input name="name" value="{{ form.name }}"></div>
  <div><label>Summit elevation (m)</label><input name="elevation" value="{{ form.elevation }}"></div>
  <div><label>Length (km)</label><input name="length" value="{{ form.length }}"></div>
  <div><label>Average gradient (%)</label><input name="avg_gradient" value="{{ form.avg_gradient }}"></div>
  <div><label>Max gradient (%)</label><input name="max_gradient" value="{{ form.max_gradient }}"></div>
  <div><label>Seed</label><input name="seed" value="{{ form.seed }}"></div>
  <button type="submit">Profile</button>
</form>
{% if error %}<p class="error">{{ error }}</p>{% endif %}
{% if profile %}
<h2>{{ form.name or "Col" }}</h2>
<table class="summary">
  <tr><td>Start</td><td>{{ "%.0f"|format(profile.start) }} m</td></tr>
  <tr><td>Summit</td><td>{{ "%.0f"|format(profile.summit) }} m</td></tr>
  <tr><td>Distance</td><td>{{ "%.2f"|format(profile.distance) }} km</td></tr>
  <tr><td>Average gradient</td><td>{{ "%.1f"|format(profile.gradient) }}%</td></tr>
</table>
<img class="profile-chart" src="/elevation-profile?{{ form|urlencode }}" alt="Elevation Profile">
<ul>
  {% for poi in pois %}
  <li>{{ poi.label }}: km {{ "%.1f"|format(poi.distance) }}, {{ "%.0f"|format(poi.elevation) }} m</li>
  {% endfor %}
</ul>
{% endif %}
<p><small>Version {{ version.version }}, {{ version.date }} ({{ version.git_hash }})</small></p>
</body>
</html>
"""


@app.route("/", methods=["GET", "POST"])
def index():
    form = {name: request.form.get(name, "") for name in PROFILE_FORM_FIELDS}
    profile = None
    pois = []
    error = None

    if request.method == "POST":
        try:
            col = _form_col(form)
            result = synthesize(col, seed=_optional_int(form["seed"], "seed"))
            profile = result.profile
            pois = points_of_interest(col, result.points)
        except ColTerrainError as e:
            error = str(e)

    return render_template_string(
        HTML_TEMPLATE,
        form=form,
        profile=profile,
        pois=pois,
        error=error,
        version=version_info(),
    )


def main():
    """Run the web server."""
    import os
    port = int(os.environ.get("PORT", 5050))
    print("Starting Col Terrain web server...")
    print(f"Open http://localhost:{port} in your browser")
    app.run(host="0.0.0.0", port=port, debug=True)


if __name__ == "__main__":
    main()
