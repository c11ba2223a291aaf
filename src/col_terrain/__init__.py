"""Col Terrain - elevation profiles, terrain meshes and adaptive rendering for mountain passes."""

import os
import subprocess

__version__ = "0.1.0"
__version_date__ = "2026-10-18"

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def get_git_hash(repo_dir: str = PACKAGE_DIR) -> str:
    """Short commit hash of the checkout holding repo_dir, or 'unknown'.

    Looks up the package's own checkout rather than the caller's working
    directory, so a server started elsewhere still reports its source.
    """
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
            cwd=repo_dir,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except Exception:
        pass
    return "unknown"


def version_info() -> dict:
    """Version fields shown by the CLI and the web API."""
    return {
        "version": __version__,
        "date": __version_date__,
        "git_hash": get_git_hash(),
    }


def version_string() -> str:
    info = version_info()
    return f"col-terrain {info['version']} ({info['date']}, {info['git_hash']})"
