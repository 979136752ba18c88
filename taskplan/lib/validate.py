"""
JSON Schema checks for agent output, stored batches and run results.

Schemas live in taskplan/schemas/<name>.schema.json (draft-07). Every
violation is reported, not just the first, so a bad agent response or a
hand-edited batch can be fixed in one pass. Invalid data is never written.
"""

import json
from functools import lru_cache
from pathlib import Path

import jsonschema

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"

# Violations listed in one error message
MAX_REPORTED = 5


class ValidationError(Exception):
    """Data does not match its schema."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" in {path}" if path else ""))


@lru_cache(maxsize=None)
def _validator(schema_name: str) -> jsonschema.Draft7Validator:
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
    schema = json.loads(schema_path.read_text(encoding="utf-8"))
    jsonschema.Draft7Validator.check_schema(schema)
    return jsonschema.Draft7Validator(schema)


def schema_errors(data, schema_name: str) -> list[str]:
    """'<location>: <message>' for every violation, ordered by location."""
    errors = sorted(
        _validator(schema_name).iter_errors(data),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    return [f"{'.'.join(str(p) for p in e.absolute_path) or '(root)'}: {e.message}" for e in errors]


def validate(data, schema_name: str) -> None:
    """
    Raises:
        ValidationError: listing up to MAX_REPORTED violations
    """
    errors = schema_errors(data, schema_name)
    if not errors:
        return
    message = "; ".join(errors[:MAX_REPORTED])
    if len(errors) > MAX_REPORTED:
        message += f" (and {len(errors) - MAX_REPORTED} more)"
    raise ValidationError(schema_name, message)


def load_validated(filepath: Path, schema_name: str) -> dict:
    """Read a JSON file and check it against a schema.

    Raises:
        FileNotFoundError: no such file
        ValidationError: not JSON, or does not match the schema
    """
    if not filepath.exists():
        raise FileNotFoundError(f"Not found: {filepath}")
    try:
        data = json.loads(filepath.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(schema_name, f"Invalid JSON: {e}", str(filepath)) from None
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(schema_name, str(e), str(filepath)) from None
    return data


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """
    Raises:
        ValidationError: data does not match; nothing may be written to filepath
    """
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(schema_name, f"Refusing to write: {e}", str(filepath)) from None
