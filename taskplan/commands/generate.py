"""
taskplan generate - Build the task list and traceability matrix for a feature.
"""

import logging
from pathlib import Path

from taskplan.lib.config import GeneratorConfig
from taskplan.pipeline.gate import AutoApproveGate, ConsoleGate
from taskplan.runner.pipeline import run_generation

logger = logging.getLogger(__name__)


def cmd_generate(args, config: GeneratorConfig) -> int:
    """Run the generation pipeline. Errors propagate to the CLI."""
    feature = args.feature

    if getattr(args, "output_dir", None):
        output_dir = Path(args.output_dir)
        config.output_dir = output_dir if output_dir.is_absolute() else Path.cwd() / output_dir

    gate = AutoApproveGate() if args.non_interactive else ConsoleGate()
    result = run_generation(
        config,
        feature,
        gate,
        dry_run=args.dry_run,
        max_lines=getattr(args, "max_lines", None),
    )
    batch = result.batch

    for warning in result.warnings:
        print(f"WARNING: {warning}")

    if args.dry_run:
        for name, text in result.documents:
            print(f"==> {name} <==")
            print(text)
        print(f"Dry run: {len(result.documents)} document(s) rendered, nothing written")
        return 0

    print(
        f"Generated {len(batch.groups)} task group(s), {len(batch.subtasks)} subtask(s) "
        f"covering {len(batch.requirements)} requirement(s)"
    )
    print(f"  Batch: {batch.batch_id}")
    print(f"  Proposals: {result.attempts}")
    for path in result.written:
        print(f"  Wrote: {path}")
    return 0
