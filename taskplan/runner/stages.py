"""
Stage execution framework.

Defines the pipeline stage order and per-stage timing/recording.
"""

import time
from enum import Enum
from typing import Callable, TypeVar

from taskplan.lib.errors import PipelineError, RunAbandoned
from taskplan.runner.context import RunContext

T = TypeVar("T")


class StageResult(Enum):
    PASSED = "passed"
    FAILED = "failed"
    ABANDONED = "abandoned"


STAGE_ORDER = [
    "load",
    "extract",
    "group",
    "expand",
    "validate",
    "emit",
]


class StageFailure(Exception):
    """Wraps an error with the stage it escaped from."""

    def __init__(self, stage: str, error: PipelineError):
        self.stage = stage
        self.error = error
        super().__init__(f"[{stage}] {error}")


def run_stage(ctx: RunContext, stage_name: str, stage_fn: Callable[[], T]) -> T:
    """
    Run a single stage with timing and error handling.

    Returns the stage function's result and updates ctx.stages.
    PipelineErrors are re-raised as StageFailure; anything else propagates
    unchanged after being recorded.
    """
    ctx.log(f"Starting stage: {stage_name}")
    start = time.time()

    try:
        value = stage_fn()
    except RunAbandoned as e:
        ctx.record_stage(stage_name, StageResult.ABANDONED.value, time.time() - start, str(e))
        ctx.log(f"Stage {stage_name} abandoned: {e}")
        raise StageFailure(stage_name, e) from e
    except PipelineError as e:
        ctx.record_stage(stage_name, StageResult.FAILED.value, time.time() - start, str(e))
        ctx.log(f"Stage {stage_name} failed: {e}")
        raise StageFailure(stage_name, e) from e
    except Exception as e:
        ctx.record_stage(stage_name, StageResult.FAILED.value, time.time() - start, str(e))
        ctx.log(f"Stage {stage_name} error: {e}")
        raise

    duration = time.time() - start
    ctx.record_stage(stage_name, StageResult.PASSED.value, duration)
    ctx.log(f"Stage {stage_name} passed ({duration:.2f}s)")
    return value
