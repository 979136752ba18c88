"""
Agent prompt templates.

Each collaborator stage has a Markdown template in taskplan/prompts/.
<!-- ... --> blocks document a template's variables and are removed before
the prompt is sent. Placeholders use str.format, so literal braces in the
JSON examples are doubled.
"""

import logging
import re
import string
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_COMMENT_RE = re.compile(r'<!--.*?-->\s*', re.DOTALL)


class PromptError(Exception):
    """A template is missing or cannot be filled."""


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Template text with comments stripped (cached).

    Raises:
        PromptError: no taskplan/prompts/<name>.md
    """
    path = PROMPTS_DIR / f"{name}.md"
    if not path.is_file():
        raise PromptError(f"No prompt template '{name}' (expected {path})")
    logger.debug(f"Loaded prompt template {path.name}")
    return _COMMENT_RE.sub("", path.read_text(encoding="utf-8")).lstrip()


def clear_cache():
    load_prompt.cache_clear()


def template_fields(name: str) -> set[str]:
    """Placeholder names used by a template."""
    return {f for _, f, _, _ in string.Formatter().parse(load_prompt(name)) if f}


def render_prompt(name: str, **values) -> str:
    """Fill every placeholder of a template.

    Raises:
        PromptError: a placeholder has no value, or a value has no placeholder
    """
    fields = template_fields(name)
    missing = sorted(fields - values.keys())
    unexpected = sorted(values.keys() - fields)
    if missing or unexpected:
        problems = []
        if missing:
            problems.append(f"missing {', '.join(missing)}")
        if unexpected:
            problems.append(f"unexpected {', '.join(unexpected)}")
        raise PromptError(f"Cannot render prompt '{name}': {'; '.join(problems)}")
    return load_prompt(name).format(**values)


def build_section(content: str | None, header: str, empty_msg: str | None = None) -> str:
    """Header plus body, or "" when there is neither content nor empty_msg."""
    body = content or empty_msg
    return f"{header}\n\n{body}\n" if body else ""
