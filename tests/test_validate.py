"""Tests for schema validation helpers."""

import json

import pytest

from taskplan.lib.validate import (
    MAX_REPORTED,
    ValidationError,
    load_validated,
    schema_errors,
    validate,
    validate_before_write,
)


GOOD = {"groups": [{"name": "Cart", "requirement_ids": ["REQ-1"]}]}


class TestValidate:

    def test_valid(self):
        validate(GOOD, "grouping")

    def test_reports_every_violation(self):
        data = {"groups": [{"name": "Cart"}, {"requirement_ids": []}]}
        errors = schema_errors(data, "grouping")
        assert len(errors) == 2
        assert errors[0].startswith("groups.0:")
        assert errors[1].startswith("groups.1:")

    def test_root_location(self):
        assert schema_errors({}, "grouping") == ["(root): 'groups' is a required property"]

    def test_message_is_capped(self):
        data = {"groups": [{} for _ in range(MAX_REPORTED + 2)]}
        with pytest.raises(ValidationError) as exc_info:
            validate(data, "grouping")
        assert "more)" in str(exc_info.value)
        assert exc_info.value.schema_name == "grouping"

    def test_unknown_schema(self):
        with pytest.raises(ValidationError, match="Schema file not found"):
            validate({}, "no_such_schema")


class TestLoadValidated:

    def test_loads(self, tmp_path):
        path = tmp_path / "g.json"
        path.write_text(json.dumps(GOOD))
        assert load_validated(path, "grouping") == GOOD

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_validated(tmp_path / "absent.json", "grouping")

    def test_not_json(self, tmp_path):
        path = tmp_path / "g.json"
        path.write_text("{not json")
        with pytest.raises(ValidationError) as exc_info:
            load_validated(path, "grouping")
        assert exc_info.value.path == str(path)

    def test_schema_mismatch_names_file(self, tmp_path):
        path = tmp_path / "g.json"
        path.write_text("{}")
        with pytest.raises(ValidationError, match="g.json"):
            load_validated(path, "grouping")


class TestValidateBeforeWrite:

    def test_refuses(self, tmp_path):
        with pytest.raises(ValidationError, match="Refusing to write"):
            validate_before_write({}, "grouping", tmp_path / "g.json")
