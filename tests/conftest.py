"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add package paths to sys.path
root_dir = Path(__file__).parent.parent
packages_dir = root_dir / "packages"
sys.path.insert(0, str(packages_dir / "qdyn"))
# Repository root, so the example models/ package is importable
sys.path.insert(0, str(root_dir))


@pytest.fixture
def temp_workspace(tmp_path):
    """Create a temporary workspace with job and output directories."""
    workspace = tmp_path / "workspace"
    (workspace / "configs" / "jobs").mkdir(parents=True)
    (workspace / "runs").mkdir()
    yield workspace
