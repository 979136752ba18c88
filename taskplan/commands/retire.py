"""
taskplan retire - Delete a subtask, leaving a documented gap in the ordinals.

Remaining subtasks keep their ordinals so existing references stay valid.
"""

from dataclasses import replace

from taskplan.commands.mark import find_subtask
from taskplan.lib.config import GeneratorConfig
from taskplan.lib.constants import EXIT_MISSING_INPUT
from taskplan.lib.errors import OrphanedRequirement
from taskplan.pipeline.models import parse_ordinal
from taskplan.pipeline.storage import load_current_batch
from taskplan.pipeline.validation import orphaned_requirements
from taskplan.runner.locking import feature_lock
from taskplan.runner.pipeline import reemit_batch


def cmd_retire(args, config: GeneratorConfig) -> int:
    """Retire one subtask. Refused if a requirement would lose its last subtask."""
    feature = args.feature

    with feature_lock(config.state_dir, feature):
        batch = load_current_batch(config.state_dir, feature)
        if batch is None:
            print(f"ERROR: No task list generated for '{feature}'")
            return EXIT_MISSING_INPUT

        subtask = find_subtask(batch, args.ordinal)
        updated = replace(
            batch,
            subtasks=[s for s in batch.subtasks if s is not subtask],
            retired=sorted(batch.retired + [subtask.ordinal], key=parse_ordinal),
        )

        orphans = orphaned_requirements(updated)
        if orphans:
            raise OrphanedRequirement(orphans)

        written = reemit_batch(config, updated)

    print(f"Retired {subtask.ordinal} {subtask.name}")
    for path in written:
        print(f"  Updated: {path}")
    return 0
