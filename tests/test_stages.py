"""Tests for taskplan.runner.stages and taskplan.runner.context modules."""

import json

import pytest

from taskplan.lib.errors import GroupingError, RunAbandoned
from taskplan.runner.context import RunContext
from taskplan.runner.stages import STAGE_ORDER, StageFailure, run_stage


class TestStageOrder:

    def test_order(self):
        assert STAGE_ORDER == ["load", "extract", "group", "expand", "validate", "emit"]


class TestRunStage:

    def test_passed(self, tmp_path):
        ctx = RunContext.create(tmp_path, "checkout")
        assert run_stage(ctx, "load", lambda: 42) == 42
        assert ctx.stages["load"]["status"] == "passed"

    def test_pipeline_error_wrapped(self, tmp_path):
        ctx = RunContext.create(tmp_path, "checkout")

        def fail():
            raise GroupingError("bad proposal", ["REQ-1"])

        with pytest.raises(StageFailure) as exc_info:
            run_stage(ctx, "group", fail)
        assert exc_info.value.stage == "group"
        assert isinstance(exc_info.value.error, GroupingError)
        assert ctx.stages["group"]["status"] == "failed"
        assert ctx.stages["group"]["notes"] == "bad proposal"

    def test_abandon_recorded(self, tmp_path):
        ctx = RunContext.create(tmp_path, "checkout")

        def abandon():
            raise RunAbandoned(2)

        with pytest.raises(StageFailure):
            run_stage(ctx, "group", abandon)
        assert ctx.stages["group"]["status"] == "abandoned"

    def test_unexpected_error_propagates(self, tmp_path):
        ctx = RunContext.create(tmp_path, "checkout")

        def crash():
            raise KeyError("x")

        with pytest.raises(KeyError):
            run_stage(ctx, "expand", crash)
        assert ctx.stages["expand"]["status"] == "failed"


class TestRunContext:

    def test_create(self, tmp_path):
        ctx = RunContext.create(tmp_path, "checkout")
        assert ctx.run_id.endswith("_checkout")
        assert ctx.run_dir == tmp_path / "runs" / ctx.run_id
        assert ctx.run_dir.is_dir()

    def test_dry_run_has_no_directory(self, tmp_path):
        ctx = RunContext.create(tmp_path, "checkout", dry_run=True)
        ctx.log("hello")
        ctx.write_result("passed")
        assert ctx.run_dir is None
        assert not (tmp_path / "runs").exists()

    def test_log_appends(self, tmp_path):
        ctx = RunContext.create(tmp_path, "checkout")
        ctx.log("first")
        ctx.log("second")
        lines = (ctx.run_dir / "run.log").read_text().splitlines()
        assert lines[0].endswith("first")
        assert lines[1].endswith("second")

    def test_write_result(self, tmp_path):
        ctx = RunContext.create(tmp_path, "checkout")
        run_stage(ctx, "load", lambda: None)
        ctx.write_result("failed", failed_stage="extract", error="nothing found", exit_code=2)

        result = json.loads((ctx.run_dir / "result.json").read_text())
        assert result["status"] == "failed"
        assert result["failed_stage"] == "extract"
        assert result["exit_code"] == 2
        assert "batch_id" not in result
        assert result["stages"]["load"]["status"] == "passed"
