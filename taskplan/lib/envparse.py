"""
Reader for taskplan.env.

The file is plain KEY=value lines (optionally prefixed with `export`) so it
can also be sourced by a shell. It is never executed: values containing
shell syntax are refused instead of being passed through.
"""

import re
from pathlib import Path

# Shell constructs that have no business in a config value
_FORBIDDEN = re.compile(r'`|\$\(|\$\{|;|&&|\|')

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')

_QUOTES = ('"', "'")


def _parse_line(lineno: int, line: str) -> tuple[str, str]:
    if line.startswith('export '):
        line = line[7:].lstrip()

    key, sep, value = line.partition('=')
    if not sep:
        raise ValueError(f"Line {lineno}: Invalid syntax (no '=')")
    key = key.strip()
    if not KEY_PATTERN.match(key):
        raise ValueError(f"Line {lineno}: Invalid key '{key}'")

    value = value.strip()
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
        value = value[1:-1]
    if _FORBIDDEN.search(value):
        raise ValueError(f"Line {lineno}: Forbidden shell syntax in value of {key}")
    return key, value


def parse_env_text(text: str) -> dict[str, str]:
    """
    Raises:
        ValueError: a line is malformed or a value contains shell syntax
    """
    pairs = {}
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if line and not line.startswith('#'):
            key, value = _parse_line(lineno, line)
            pairs[key] = value
    return pairs


def load_env(filepath: Path) -> dict[str, str]:
    path = Path(filepath)
    if not path.is_file():
        raise FileNotFoundError(f"No env file at {path}")
    return parse_env_text(path.read_text(encoding="utf-8"))
