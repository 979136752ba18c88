"""
Configuration loaders for taskplan.

Generation settings come from an optional taskplan.env in the working
directory. Missing keys and unknown values fall back to defaults.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from . import envparse
from .constants import (
    CONFIG_FILE_NAME,
    DEFAULT_AGENT_TIMEOUT,
    DEFAULT_TASKS_MAX_LINES,
    STATE_DIR_NAME,
)

logger = logging.getLogger(__name__)

VALID_COLLABORATORS = ("rule", "agent")


@dataclass
class GeneratorConfig:
    """Generation settings from taskplan.env"""
    work_dir: Path
    extractor: str = "rule"        # rule | agent
    grouper: str = "rule"
    expander: str = "rule"
    tasks_max_lines: int = DEFAULT_TASKS_MAX_LINES
    agent_timeout: int = DEFAULT_AGENT_TIMEOUT
    output_dir: Path | None = None  # Defaults to work_dir

    @property
    def state_dir(self) -> Path:
        return self.work_dir / STATE_DIR_NAME

    @property
    def resolved_output_dir(self) -> Path:
        return self.output_dir if self.output_dir is not None else self.work_dir


def _collaborator(env: dict, key: str) -> str:
    value = env.get(key, "rule").strip().lower()
    if value not in VALID_COLLABORATORS:
        logger.warning(f"Unknown {key} '{value}', using 'rule'. Valid values: {VALID_COLLABORATORS}")
        return "rule"
    return value


def _positive_int(env: dict, key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {key} '{raw}', using {default}")
        return default
    if value <= 0:
        logger.warning(f"{key} must be positive (got {value}), using {default}")
        return default
    return value


def load_config(work_dir: Path) -> GeneratorConfig:
    """Load taskplan.env from work_dir and return GeneratorConfig."""
    work_dir = Path(work_dir)
    config_path = work_dir / CONFIG_FILE_NAME
    env = envparse.load_env(config_path) if config_path.exists() else {}

    output_dir = None
    if env.get("OUTPUT_DIR"):
        output_dir = Path(env["OUTPUT_DIR"])
        if not output_dir.is_absolute():
            output_dir = work_dir / output_dir

    return GeneratorConfig(
        work_dir=work_dir,
        extractor=_collaborator(env, "EXTRACTOR"),
        grouper=_collaborator(env, "GROUPER"),
        expander=_collaborator(env, "EXPANDER"),
        tasks_max_lines=_positive_int(env, "TASKS_MAX_LINES", DEFAULT_TASKS_MAX_LINES),
        agent_timeout=_positive_int(env, "AGENT_TIMEOUT", DEFAULT_AGENT_TIMEOUT),
        output_dir=output_dir,
    )
