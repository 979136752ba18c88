"""
taskplan status - Show the current batch for a feature.
"""

from collections import Counter

from taskplan.lib.config import GeneratorConfig
from taskplan.lib.constants import EXIT_MISSING_INPUT
from taskplan.pipeline.models import SubtaskStatus
from taskplan.pipeline.storage import list_batches, load_current_batch
from taskplan.pipeline.validation import orphaned_requirements
from taskplan.runner.locking import is_locked, lock_path, read_holder


def cmd_status(args, config: GeneratorConfig) -> int:
    """Show progress and coverage of the current batch."""
    feature = args.feature
    batch = load_current_batch(config.state_dir, feature)

    if batch is None:
        print(f"ERROR: No task list generated for '{feature}'")
        print(f"  Generate one: taskplan generate {feature}")
        return EXIT_MISSING_INPUT

    counts = Counter(s.status for s in batch.subtasks)
    orphans = orphaned_requirements(batch)

    print(f"Feature: {feature}")
    print("=" * 60)
    print()
    print(f"Batch:          {batch.batch_id}")
    print(f"Created:        {batch.created}")
    print(f"Batches:        {len(list_batches(config.state_dir, feature))}")
    if is_locked(config.state_dir, feature):
        holder = read_holder(lock_path(config.state_dir, feature)) or "?"
        print(f"Lock:           held (pid {holder})")
    print()
    print(f"Requirements:   {len(batch.requirements)}")
    print(f"Task groups:    {len(batch.groups)}")
    print(
        f"Subtasks:       {counts[SubtaskStatus.DONE]}/{len(batch.subtasks)} done, "
        f"{counts[SubtaskStatus.IN_PROGRESS]} in progress, {counts[SubtaskStatus.PENDING]} pending"
    )
    if batch.retired:
        print(f"Retired:        {', '.join(batch.retired)}")
    print(f"Coverage:       {'complete' if not orphans else 'MISSING ' + ', '.join(orphans)}")

    if batch.warnings:
        print()
        for warning in batch.warnings:
            print(f"WARNING: {warning}")

    print()
    for group in batch.groups:
        print(f"{group.label} {group.name}")
        for subtask in batch.subtasks_for(group.ordinal):
            print(f"  [{subtask.status.checkbox}] {subtask.ordinal} {subtask.name}{subtask.status.suffix}")

    return 0
