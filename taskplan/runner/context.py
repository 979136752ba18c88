"""
Run context and run directory management.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from taskplan.lib.validate import validate_before_write

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Context for a single generation run.

    run_dir is None for dry runs: audit lines then go to the logger only.
    """
    run_id: str
    feature: str
    run_dir: Optional[Path] = None
    start_time: datetime = field(default_factory=datetime.now)
    stages: dict = field(default_factory=dict)

    @classmethod
    def create(cls, state_dir: Path, feature: str, dry_run: bool = False) -> 'RunContext':
        """Create a new run context with a fresh run directory."""
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        run_id = f"{timestamp}_{feature}"

        if dry_run:
            return cls(run_id=run_id, feature=feature)

        run_dir = state_dir / "runs" / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        return cls(run_id=run_id, feature=feature, run_dir=run_dir)

    def log(self, message: str):
        """Append to the run's audit log."""
        logger.info(f"[{self.feature}] {message}")
        if self.run_dir is None:
            return
        timestamp = datetime.now().isoformat()
        with open(self.run_dir / "run.log", "a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] {message}\n")

    def record_stage(self, stage: str, status: str, duration: float, notes: str = ""):
        """Record stage result."""
        self.stages[stage] = {
            "status": status,
            "duration_seconds": duration,
            "notes": notes,
        }

    def write_result(
        self,
        status: str,
        batch_id: str | None = None,
        failed_stage: str | None = None,
        error: str | None = None,
        exit_code: int = 0,
    ):
        """Write result.json (skipped for dry runs)."""
        if self.run_dir is None:
            return

        end_time = datetime.now()
        result = {
            "version": 1,
            "feature": self.feature,
            "run_id": self.run_id,
            "status": status,
            "exit_code": exit_code,
            "timestamps": {
                "started": self.start_time.isoformat(),
                "ended": end_time.isoformat(),
                "duration_seconds": (end_time - self.start_time).total_seconds(),
            },
            "stages": self.stages,
        }
        if batch_id:
            result["batch_id"] = batch_id
        if failed_stage:
            result["failed_stage"] = failed_stage
        if error:
            result["error"] = error

        result_path = self.run_dir / "result.json"
        validate_before_write(result, "result", result_path)
        result_path.write_text(json.dumps(result, indent=2), encoding="utf-8")
