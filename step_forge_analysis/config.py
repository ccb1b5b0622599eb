"""
Configuration handling for step-forge-analysis.

This module reads the ``[tool.step-forge]`` section of pyproject.toml. The
location of that pyproject.toml also defines the project root used to
resolve imports while analysing step files.
"""

from typing import List, Optional, Set
import fnmatch
import sys
import logging
from pathlib import Path

# Use tomllib for Python 3.11+, tomli for earlier versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


TOOL_SECTION = "step-forge"

DEFAULT_STEP_FILES = ["features/**/*.py"]
DEFAULT_FEATURE_FILES = ["**/*.feature"]
DEFAULT_EXCLUDE = [".venv/**", "venv/**", "node_modules/**", "build/**"]
DEFAULT_BUILDER_MODULES = ["step_forge_analysis.runtime", "step_forge"]


class ProjectConfigError(Exception):
    """Raised when the project configuration cannot be located or read."""
    pass


class StepForgeConfig:
    """Configuration for step-forge-analysis."""

    def __init__(
        self,
        config_file: Optional[str] = None,
        start_dir: Optional[Path] = None,
        strict: bool = False,
    ):
        """Initialize configuration.

        Args:
            config_file: Path to pyproject.toml file. If None, searches upward.
            start_dir: Directory the upward search starts from (default: cwd)
            strict: Raise ProjectConfigError instead of falling back to defaults
        """
        self.strict = strict
        self.config_path: Optional[Path] = None

        # Globs relative to the project root
        self.step_files: List[str] = list(DEFAULT_STEP_FILES)
        self.feature_files: List[str] = list(DEFAULT_FEATURE_FILES)
        self.exclude: List[str] = list(DEFAULT_EXCLUDE)

        # Modules whose GivenBuilder/WhenBuilder/ThenBuilder count as builders
        self.builder_modules: List[str] = list(DEFAULT_BUILDER_MODULES)

        self.report_ambiguous_steps = True
        self.disabled_rules: Set[str] = set()

        if config_file:
            self.config_path = Path(config_file)
        else:
            self.config_path = find_pyproject_toml(start_dir)

        if self.config_path and self.config_path.exists():
            self._load_config()

    @property
    def project_root(self) -> Path:
        """Directory holding the pyproject.toml (cwd when there is none)."""
        if self.config_path is not None:
            return self.config_path.resolve().parent
        return Path.cwd()

    def _load_list_config(self, tool_config: dict, key: str) -> Optional[List[str]]:
        """Load a list-of-strings configuration value.

        Args:
            tool_config: Configuration dictionary
            key: Configuration key

        Returns:
            The list if present and valid, None otherwise
        """
        if key in tool_config:
            value = tool_config[key]
            if isinstance(value, list) and all(isinstance(v, str) for v in value):
                return list(value)
            logging.warning(f"Ignoring [tool.{TOOL_SECTION}] {key}: expected a list of strings")
        return None

    def _read_tool_section(self, path: Path) -> dict:
        """Read the [tool.step-forge] table, raising on unreadable files."""
        with open(path, "rb") as f:
            data = tomllib.load(f)
        tool_config = data.get("tool", {}).get(TOOL_SECTION, {})
        if not isinstance(tool_config, dict):
            raise ValueError(f"[tool.{TOOL_SECTION}] must be a table")
        return tool_config

    def _apply(self, tool_config: dict) -> None:
        step_files = self._load_list_config(tool_config, "step-files")
        if step_files is not None:
            self.step_files = step_files

        feature_files = self._load_list_config(tool_config, "feature-files")
        if feature_files is not None:
            self.feature_files = feature_files

        exclude = self._load_list_config(tool_config, "exclude")
        if exclude is not None:
            self.exclude = exclude

        builder_modules = self._load_list_config(tool_config, "builder-modules")
        if builder_modules is not None:
            self.builder_modules = builder_modules

        disabled = self._load_list_config(tool_config, "disable-rules")
        if disabled is not None:
            self.disabled_rules.update(disabled)

        if "report-ambiguous-steps" in tool_config:
            value = tool_config["report-ambiguous-steps"]
            if isinstance(value, bool):
                self.report_ambiguous_steps = value

    def _load_config(self) -> None:
        """Load configuration from pyproject.toml, keeping defaults on error."""
        try:
            self._apply(self._read_tool_section(self.config_path))
        except FileNotFoundError as e:
            if self.strict:
                raise ProjectConfigError(f"Config file not found: {self.config_path}") from e
            logging.debug(f"Config file not found: {self.config_path}")
        except (tomllib.TOMLDecodeError, KeyError, ValueError, TypeError) as e:
            if self.strict:
                raise ProjectConfigError(f"Could not read {self.config_path}: {e}") from e
            logging.warning(f"Error parsing config from {self.config_path}: {e}")
        except OSError as e:
            if self.strict:
                raise ProjectConfigError(f"Could not read {self.config_path}: {e}") from e
            logging.error(f"Unexpected error loading config from {self.config_path}: {e}")

    def is_rule_disabled(self, rule: str) -> bool:
        """Check if a rule (pylint symbol or diagnostic code) is disabled."""
        return rule in self.disabled_rules

    def is_excluded(self, path: Path) -> bool:
        """Check if a path matches one of the exclude patterns."""
        try:
            relative = path.resolve().relative_to(self.project_root).as_posix()
        except ValueError:
            relative = path.as_posix()
        return any(fnmatch.fnmatch(relative, pattern) for pattern in self.exclude)

    def _glob(self, patterns: List[str]) -> List[Path]:
        root = self.project_root
        found: List[Path] = []
        seen: Set[Path] = set()
        for pattern in patterns:
            for path in sorted(root.glob(pattern)):
                resolved = path.resolve()
                if not path.is_file() or resolved in seen or self.is_excluded(path):
                    continue
                seen.add(resolved)
                found.append(resolved)
        return found

    def find_step_files(self) -> List[Path]:
        """All step declaration files of the project."""
        return [p for p in self._glob(self.step_files) if p.suffix == ".py"]

    def find_feature_files(self) -> List[Path]:
        """All specification documents of the project."""
        return self._glob(self.feature_files)


def find_pyproject_toml(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Find pyproject.toml by searching upward from a directory.

    Args:
        start_dir: Directory to start from (default: current directory)

    Returns:
        Path to pyproject.toml if found, None otherwise
    """
    current = Path(start_dir).resolve() if start_dir else Path.cwd()
    if current.is_file():
        current = current.parent
    while True:
        pyproject = current / "pyproject.toml"
        if pyproject.exists():
            return pyproject

        # Stop at filesystem root
        if current.parent == current:
            return None
        current = current.parent


def load_project_config(
    start_dir: Optional[Path] = None, config_file: Optional[Path] = None
) -> StepForgeConfig:
    """Load the configuration an extraction pass depends on.

    Unlike ``StepForgeConfig()``, a missing or unreadable pyproject.toml is
    fatal here: without it there is no project root to resolve step files
    and imports against.

    Args:
        start_dir: Directory to search upward from
        config_file: Explicit pyproject.toml path

    Returns:
        The loaded configuration

    Raises:
        ProjectConfigError: If pyproject.toml is missing or invalid
    """
    path = Path(config_file) if config_file else find_pyproject_toml(start_dir)
    if path is None or not path.is_file():
        raise ProjectConfigError(
            f"Could not find pyproject.toml (searched from {start_dir or Path.cwd()})"
        )

    config = StepForgeConfig(config_file=str(path), strict=True)
    logging.debug(f"Using project configuration at {path}")
    return config


# Global config instance (will be initialized by the checker)
_config: Optional[StepForgeConfig] = None


def get_config() -> StepForgeConfig:
    """Get the global configuration instance.

    Returns:
        The global configuration instance
    """
    global _config
    if _config is None:
        _config = StepForgeConfig()
    return _config


def set_config(config: StepForgeConfig) -> None:
    """Set the global configuration instance.

    Args:
        config: The configuration instance to set
    """
    global _config
    _config = config


def reset_config() -> None:
    """Drop the global configuration so the next access reloads it."""
    global _config
    _config = None
