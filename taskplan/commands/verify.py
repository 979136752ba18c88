"""
taskplan verify - Check emitted documents against each other and the batch.

Reads tasks-<feature>-<n>.md and tracmat-<feature>.md from the output
directory, so hand edits to either file are caught.
"""

from taskplan.lib.config import GeneratorConfig
from taskplan.lib.constants import EXIT_MISSING_INPUT, EXIT_VALIDATION
from taskplan.lib.taskparse import emitted_pairs, parse_task_files
from taskplan.pipeline.emitter import task_document_paths
from taskplan.pipeline.storage import load_current_batch
from taskplan.pipeline.traceability import (
    check_round_trip,
    matrix_filename,
    parse_matrix,
    uncovered_requirements,
)


def verify_documents(config: GeneratorConfig, feature: str) -> list[str]:
    """Return a list of problems (empty when the documents are consistent).

    Raises:
        FileNotFoundError: no batch, task documents or matrix for the feature
    """
    batch = load_current_batch(config.state_dir, feature)
    if batch is None:
        raise FileNotFoundError(f"No task list generated for '{feature}'")

    output_dir = config.resolved_output_dir
    task_paths = task_document_paths(output_dir, feature)
    if not task_paths:
        raise FileNotFoundError(f"No task documents found in {output_dir}")
    matrix_path = output_dir / matrix_filename(feature)
    if not matrix_path.exists():
        raise FileNotFoundError(f"Traceability matrix not found: {matrix_path}")

    groups = parse_task_files(task_paths)
    rows = parse_matrix(matrix_path.read_text(encoding="utf-8"))
    problems = []

    for row in check_round_trip(rows, emitted_pairs(groups)):
        problems.append(
            f"Matrix row {row.requirement_id} -> {row.group_ordinal}/{row.subtask_ordinal} "
            f"does not match any subtask in the task list"
        )

    for req_id in uncovered_requirements([r.id for r in batch.requirements], rows):
        problems.append(f"Requirement {req_id} has no row in the traceability matrix")

    parsed_subtasks = {s.ordinal: s for g in groups for s in g.subtasks}
    for ordinal, subtask in parsed_subtasks.items():
        if not subtask.testing:
            problems.append(f"Subtask {ordinal} has no testing requirements")

    batch_ordinals = {s.ordinal for s in batch.subtasks}
    for ordinal in sorted(batch_ordinals - set(parsed_subtasks)):
        problems.append(f"Subtask {ordinal} is missing from the task list")
    for ordinal in sorted(set(parsed_subtasks) - batch_ordinals):
        problems.append(f"Subtask {ordinal} in the task list is not in batch {batch.batch_id}")

    for row in rows:
        subtask = parsed_subtasks.get(row.subtask_ordinal)
        if subtask is not None and subtask.status != row.implementation_status:
            problems.append(
                f"Status of {row.subtask_ordinal} differs: task list {subtask.status.value}, "
                f"matrix {row.implementation_status.value}"
            )

    return problems


def cmd_verify(args, config: GeneratorConfig) -> int:
    feature = args.feature
    try:
        problems = verify_documents(config, feature)
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        return EXIT_MISSING_INPUT

    if problems:
        print(f"Verification failed for '{feature}' ({len(problems)} problem(s)):")
        for problem in problems:
            print(f"  - {problem}")
        return EXIT_VALIDATION

    print(f"Verified '{feature}': task list and traceability matrix are consistent")
    return 0
