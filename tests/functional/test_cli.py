import json
import os
import subprocess
import sys

import pytest

GALIBIER_PATH = os.path.join(
    os.path.dirname(__file__), "data", "col_du_galibier.json"
)


@pytest.fixture
def run_cli(tmp_path):
    """Run the CLI in an empty directory with no user config."""
    env = dict(os.environ, HOME=str(tmp_path))
    env.pop("COL_TERRAIN_MODE", None)
    env.pop("COL_TERRAIN_QUALITY", None)

    def run(*args):
        return subprocess.run(
            [sys.executable, "-m", "col_terrain", *args],
            capture_output=True,
            text=True,
            cwd=tmp_path,
            env=env,
        )

    return run


class TestCli:
    def test_run_with_col_file(self, run_cli):
        result = run_cli("--seed", "1", GALIBIER_PATH)
        assert result.returncode == 0
        output = result.stdout
        assert "=== Col Profile ===" in output
        assert "Name:           Col du Galibier" in output
        assert "Start:          1393 m" in output
        assert "Summit:         2642 m" in output
        assert "Distance:       18.10 km" in output
        assert "Max Gradient:   10.1%" in output
        assert "Samples:        181" in output
        assert "Mode:           profile-2d" in output

    def test_run_with_flags(self, run_cli):
        result = run_cli("--elevation", "1850", "--length", "13.8", "--avg-gradient", "8.1", "--name", "Alpe d'Huez")
        assert result.returncode == 0
        assert "Alpe d'Huez" in result.stdout
        assert "Avg Gradient:   8.1%" in result.stdout

    def test_mesh(self, run_cli):
        result = run_cli("--seed", "1", "--mesh", "--width-segments", "8", GALIBIER_PATH)
        assert result.returncode == 0
        assert f"Mesh:           {9 * 181} vertices, {2 * 8 * 180} triangles" in result.stdout

    def test_json_output(self, run_cli):
        result = run_cli("--seed", "1", "--json", "--mesh", "--width-segments", "2", GALIBIER_PATH)
        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert data["profile"]["summit"] == 2642
        assert len(data["points"]) == 181
        assert data["selection"]["mode"] == "profile-2d"
        assert data["mesh"]["widthSegments"] == 2
        assert len(data["centerline"]) == 181
        assert "Plan Lachat" in [p["label"] for p in data["pointsOfInterest"]]

    def test_seed_reproducible(self, run_cli):
        first = json.loads(run_cli("--seed", "5", "--json", GALIBIER_PATH).stdout)
        second = json.loads(run_cli("--seed", "5", "--json", GALIBIER_PATH).stdout)
        assert first["points"] == second["points"]

    def test_mobile_viewport(self, run_cli):
        result = run_cli("--viewport", "390x844", GALIBIER_PATH)
        assert result.returncode == 0
        assert "Device:         mobile (portrait)" in result.stdout
        assert "Quality:        low" in result.stdout

    def test_explicit_3d_without_acceleration(self, run_cli):
        result = run_cli("--mode", "terrain-3d", GALIBIER_PATH)
        assert result.returncode == 0
        assert "Mode:           profile-2d" in result.stdout
        assert "accelerated rendering is unavailable" in result.stdout

    def test_benchmark(self, run_cli):
        result = run_cli("--benchmark", "--json", GALIBIER_PATH)
        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert data["benchmark"]["render_score"] == 0.0
        assert data["selection"]["mode"] == "profile-2d"

    def test_local_config_file(self, run_cli, tmp_path):
        (tmp_path / "col-terrain.json").write_text(json.dumps({"mode": "mini-profile"}))
        result = run_cli(GALIBIER_PATH)
        assert result.returncode == 0
        assert "Mode:           mini-profile" in result.stdout
        assert "Quality:        low" in result.stdout

    def test_nonexistent_file(self, run_cli):
        result = run_cli("/nonexistent/col.json")
        assert result.returncode != 0
        assert "Error" in result.stderr

    def test_missing_flags(self, run_cli):
        result = run_cli("--elevation", "1850")
        assert result.returncode == 1
        assert "Error: Missing required field: length" in result.stderr

    def test_invalid_length(self, run_cli):
        result = run_cli("--elevation", "1850", "--length", "0", "--avg-gradient", "8")
        assert result.returncode == 1
        assert "Error" in result.stderr

    def test_invalid_viewport(self, run_cli):
        result = run_cli("--viewport", "huge", GALIBIER_PATH)
        assert result.returncode == 1
        assert "Invalid viewport" in result.stderr

    def test_invalid_mode_rejected_by_parser(self, run_cli):
        result = run_cli("--mode", "hologram", GALIBIER_PATH)
        assert result.returncode == 2

    def test_version(self, run_cli):
        result = run_cli("--version")
        assert result.returncode == 0
        assert result.stdout.startswith("col-terrain 0.1.0 (")
