"""
Shared fixtures: configuration isolation and temporary step-forge projects.
"""

import textwrap
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from step_forge_analysis.config import StepForgeConfig, reset_config


DEFAULT_PYPROJECT = """
[project]
name = "sample-features"

[tool.step-forge]
step-files = ["features/**/*.py"]
feature-files = ["features/**/*.feature"]
"""


@pytest.fixture(autouse=True)
def fresh_config():
    """Keep the global configuration from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def default_config(tmp_path: Path) -> StepForgeConfig:
    """Configuration with every default (no pyproject.toml is read)."""
    return StepForgeConfig(config_file=str(tmp_path / "absent" / "pyproject.toml"))


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a project (pyproject.toml plus files) into tmp_path."""

    def _make(files: Dict[str, str], pyproject: Optional[str] = DEFAULT_PYPROJECT) -> Path:
        if pyproject is not None:
            (tmp_path / "pyproject.toml").write_text(textwrap.dedent(pyproject))
        for relative, content in files.items():
            path = tmp_path / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(content))
        return tmp_path

    return _make
