"""
Agent command configuration.

Loads agents.yaml to decide which CLI command runs each collaborator stage
when EXTRACTOR/GROUPER/EXPANDER is set to "agent". Without a config file
every stage uses the defaults below.

Templates may contain {prompt}; if present the prompt is passed as an
argument, otherwise it is written to the command's stdin.

Example agents.yaml:

    stages:
      extract: claude -p --output-format json
      group: llm -m gpt-4o {prompt}
"""

import logging
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .constants import AGENTS_FILE_NAME

logger = logging.getLogger(__name__)

DEFAULT_STAGE_COMMANDS = {
    "extract": "claude -p --output-format json",
    # PRD/architecture/techreq/context -> requirements JSON

    "group": "claude -p --output-format json",
    # Requirements + operator feedback -> grouping JSON

    "expand": "claude -p --output-format json",
    # One approved task group -> subtasks JSON
}

_PLACEHOLDER = "__PROMPT_PLACEHOLDER__"


@dataclass
class AgentsConfig:
    """Agent configuration from agents.yaml."""
    stages: dict[str, str] = field(default_factory=lambda: DEFAULT_STAGE_COMMANDS.copy())


def load_agents_config(work_dir: Optional[Path]) -> AgentsConfig:
    """Load agents.yaml from work_dir, falling back to defaults."""
    if work_dir is None:
        return AgentsConfig()

    config_path = Path(work_dir) / AGENTS_FILE_NAME
    if not config_path.exists():
        return AgentsConfig()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return AgentsConfig()

    stages = DEFAULT_STAGE_COMMANDS.copy()
    if isinstance(data, dict) and isinstance(data.get("stages"), dict):
        for stage, command in data["stages"].items():
            if stage not in DEFAULT_STAGE_COMMANDS:
                logger.warning(f"Ignoring unknown stage '{stage}' in {config_path}")
                continue
            stages[stage] = str(command)
    return AgentsConfig(stages=stages)


@dataclass
class StageCommand:
    """Result of building a stage command."""
    cmd: list[str]
    prompt_via_stdin: bool
    output_format: str | None  # "json" if --output-format json, else None

    def get_stdin_input(self, prompt: str) -> str | None:
        return prompt if self.prompt_via_stdin else None


def get_stage_command(config: AgentsConfig, stage: str, prompt: str) -> StageCommand:
    """Build the command list for a collaborator stage.

    Raises:
        ValueError: If stage is unknown.
    """
    if stage not in config.stages:
        raise ValueError(f"Unknown stage: {stage}")

    template = config.stages[stage]
    prompt_via_stdin = "{prompt}" not in template

    parts = shlex.split(template.replace("{prompt}", _PLACEHOLDER))

    output_format = None
    for i, part in enumerate(parts):
        if part == "--output-format" and i + 1 < len(parts):
            output_format = parts[i + 1]
            break
        if part.startswith("--output-format="):
            output_format = part.split("=", 1)[1]
            break

    leftover = [p for p in parts if re.search(r'\{\w+\}', p)]
    if leftover:
        logger.error(f"Stage '{stage}' has unsubstituted variables: {leftover}")

    cmd = [prompt if p == _PLACEHOLDER else p for p in parts]
    return StageCommand(cmd=cmd, prompt_via_stdin=prompt_via_stdin, output_format=output_format)


def check_binary_available(config: AgentsConfig, stage: str) -> bool:
    """Check that the binary for a stage is on PATH."""
    parts = shlex.split(config.stages.get(stage, ""))
    return bool(parts) and shutil.which(parts[0]) is not None
