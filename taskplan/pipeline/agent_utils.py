"""
Shared agent invocation utilities for the collaborator stages.
"""

import json
import logging
import os
import re
import subprocess

from taskplan.lib.agents_config import AgentsConfig, get_stage_command
from taskplan.lib.errors import CollaboratorError
from taskplan.lib.validate import ValidationError, validate

logger = logging.getLogger(__name__)


def run_agent(config: AgentsConfig, stage: str, prompt: str, timeout: int = 300) -> tuple[bool, str]:
    """Run the configured agent command for a stage.

    Returns:
        Tuple of (success, response_text). On failure response_text is an
        error message.
    """
    command = get_stage_command(config, stage, prompt)

    # Remove ANTHROPIC_API_KEY so the CLI uses its own OAuth session
    env = {k: v for k, v in os.environ.items() if k != "ANTHROPIC_API_KEY"}

    logger.debug(f"Running {stage} agent: {command.cmd[0]}")
    try:
        result = subprocess.run(
            command.cmd,
            input=command.get_stdin_input(prompt),
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except subprocess.TimeoutExpired:
        return False, f"{stage} agent timed out after {timeout}s"
    except FileNotFoundError:
        return False, f"{stage} agent command not found: {command.cmd[0]}"

    if result.returncode != 0:
        error_msg = result.stderr.strip() or result.stdout.strip() or "(no output)"
        return False, f"{stage} agent failed (exit {result.returncode}): {error_msg}"

    response = result.stdout
    if command.output_format == "json":
        # The CLI wraps the model output: {"result": "..."}
        try:
            wrapper = json.loads(result.stdout.strip())
            if isinstance(wrapper, dict) and "result" in wrapper:
                response = wrapper["result"]
        except json.JSONDecodeError:
            pass

    return True, response


_FENCE_RE = re.compile(r'^```[\w-]*[ \t]*\n(.*?)\n?```$', re.DOTALL)

_decoder = json.JSONDecoder()


def strip_markdown_fences(text: str) -> str:
    """Body of a response wrapped in one ``` fence, else the stripped text."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text


def extract_json(text: str):
    """Parse the first JSON object in an agent response.

    Accepts bare JSON, fenced JSON, or JSON surrounded by prose.

    Raises:
        ValueError: no parseable JSON object found
    """
    try:
        return json.loads(strip_markdown_fences(text))
    except json.JSONDecodeError:
        pass

    for brace in re.finditer(r'\{', text):
        try:
            value, _ = _decoder.raw_decode(text, brace.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value

    raise ValueError("No JSON object in agent response")


def call_agent_json(config: AgentsConfig, stage: str, prompt: str, schema_name: str, timeout: int = 300) -> dict:
    """Run an agent stage and return its schema-validated JSON output.

    Raises:
        CollaboratorError: agent failed, returned no JSON, or JSON violates the schema
    """
    success, response = run_agent(config, stage, prompt, timeout)
    if not success:
        raise CollaboratorError(response)

    try:
        data = extract_json(response)
    except ValueError as e:
        raise CollaboratorError(f"{stage} agent returned invalid JSON: {e}") from None

    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise CollaboratorError(f"{stage} agent output rejected: {e}") from None

    return data
