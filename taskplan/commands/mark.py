"""
taskplan mark - Update a subtask's implementation status.
"""

import logging

from taskplan.lib.config import GeneratorConfig
from taskplan.lib.constants import EXIT_MISSING_INPUT
from taskplan.lib.errors import InvalidOrdinal
from taskplan.pipeline.models import Batch, Subtask, SubtaskStatus
from taskplan.pipeline.storage import load_current_batch
from taskplan.runner.locking import feature_lock
from taskplan.runner.pipeline import reemit_batch

logger = logging.getLogger(__name__)


def find_subtask(batch: Batch, ordinal: str) -> Subtask:
    """Look up a live subtask.

    Raises:
        InvalidOrdinal: ordinal unknown or retired
    """
    subtask = batch.find_subtask(ordinal)
    if subtask is not None:
        return subtask
    if ordinal in batch.retired:
        raise InvalidOrdinal(f"Subtask {ordinal} is retired", [ordinal])
    raise InvalidOrdinal(f"No subtask {ordinal} in batch {batch.batch_id}", [ordinal])


def cmd_mark(args, config: GeneratorConfig) -> int:
    """Set the status of one subtask and re-emit the documents."""
    feature = args.feature
    status = SubtaskStatus.parse(args.status)

    with feature_lock(config.state_dir, feature):
        batch = load_current_batch(config.state_dir, feature)
        if batch is None:
            print(f"ERROR: No task list generated for '{feature}'")
            return EXIT_MISSING_INPUT

        subtask = find_subtask(batch, args.ordinal)
        if subtask.status == status:
            print(f"{subtask.ordinal} already {status.value}")
            return 0

        previous = subtask.status
        subtask.status = status
        written = reemit_batch(config, batch)
        logger.info(f"{feature} {subtask.ordinal}: {previous.value} -> {status.value}")

    print(f"{subtask.ordinal} {subtask.name}: {previous.value} -> {status.value}")
    for path in written:
        print(f"  Updated: {path}")
    return 0
