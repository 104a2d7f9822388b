"""
Batch configuration.

Settings come from, in increasing precedence: built-in defaults,
``config/charts.yaml`` (or the file named by CHARTPIPE_CONFIG), and the
CHARTPIPE_OUTPUT_DIR / CHARTPIPE_DATA_DIR environment variables.

Usage:
    from chartpipe.config import load_pipeline_config

    config = load_pipeline_config()
    builds = get_builds(config.charts, config.projects)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from chartpipe.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/charts.yaml")
DEFAULT_OUTPUT_DIR = "output"
DEFAULT_DATA_DIR = "data"


@dataclass
class PipelineConfig:
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    fail_fast: bool = False
    charts: Optional[List[str]] = None  # None: every catalogued chart
    projects: Dict[str, str] = field(default_factory=dict)
    source: Optional[Path] = None


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot load config {path}: {e}") from e
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config {path} must be a mapping, got {type(loaded).__name__}")
    return loaded


def _parse_charts(raw: Any, path: Path) -> Dict[str, Any]:
    """Accept either a list of names or a ``{name: {enabled, project}}`` mapping."""
    if raw is None:
        return {"charts": None, "projects": {}}
    if isinstance(raw, list):
        return {"charts": [str(name) for name in raw], "projects": {}}
    if not isinstance(raw, dict):
        raise ConfigError(f"'charts' in {path} must be a list or mapping")

    charts: List[str] = []
    projects: Dict[str, str] = {}
    for name, options in raw.items():
        options = options or {}
        if not isinstance(options, dict):
            raise ConfigError(f"Options for chart '{name}' in {path} must be a mapping")
        if not options.get("enabled", True):
            logger.info(f"Chart {name} disabled in {path}")
            continue
        charts.append(str(name))
        if options.get("project"):
            projects[str(name)] = str(options["project"])
    return {"charts": charts, "projects": projects}


def load_pipeline_config(path: Union[str, Path, None] = None) -> PipelineConfig:
    """
    Load the batch configuration.

    Args:
        path: Config file; defaults to CHARTPIPE_CONFIG or config/charts.yaml.
            An explicitly named file must exist; the default may be absent.

    Raises:
        ConfigError: If the file is unreadable or malformed
    """
    explicit = path is not None or bool(os.environ.get("CHARTPIPE_CONFIG"))
    config_path = Path(path or os.environ.get("CHARTPIPE_CONFIG") or DEFAULT_CONFIG_PATH)

    config = PipelineConfig()
    if config_path.exists():
        raw = _read_yaml(config_path)
        config.source = config_path
        config.output_dir = Path(raw.get("output_dir", DEFAULT_OUTPUT_DIR))
        config.data_dir = Path(raw.get("data_dir", DEFAULT_DATA_DIR))
        config.fail_fast = bool(raw.get("fail_fast", False))
        parsed = _parse_charts(raw.get("charts"), config_path)
        config.charts = parsed["charts"]
        config.projects = parsed["projects"]
    elif explicit:
        raise ConfigError(f"Config file not found: {config_path}")
    else:
        logger.debug(f"No config at {config_path}, using defaults")

    if os.environ.get("CHARTPIPE_OUTPUT_DIR"):
        config.output_dir = Path(os.environ["CHARTPIPE_OUTPUT_DIR"])
    if os.environ.get("CHARTPIPE_DATA_DIR"):
        config.data_dir = Path(os.environ["CHARTPIPE_DATA_DIR"])

    return config
