"""
Generation pipeline.

Runs load -> extract -> group -> expand -> validate -> emit for one
feature under the feature lock. The only suspension point is the
grouping approval gate.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from taskplan.lib.agents_config import check_binary_available, load_agents_config
from taskplan.lib.config import GeneratorConfig
from taskplan.lib.errors import (
    BatchValidationError,
    CollaboratorError,
    OrphanedRequirement,
    PipelineError,
    RunAbandoned,
)
from taskplan.lib.taskparse import emitted_pairs, parse_task_text
from taskplan.lib.validate import ValidationError
from taskplan.pipeline.emitter import render_task_documents, write_documents
from taskplan.pipeline.expander import AgentExpander, Expander, RuleBasedExpander, expand_groups
from taskplan.pipeline.extractor import AgentExtractor, Extractor, RuleBasedExtractor, normalize_requirements
from taskplan.pipeline.gate import ApprovalGate
from taskplan.pipeline.grouper import AgentGrouper, Grouper, RuleBasedGrouper, run_grouping
from taskplan.pipeline.loader import load_documents
from taskplan.pipeline.models import Batch, DocumentKind
from taskplan.pipeline.storage import save_batch
from taskplan.pipeline.traceability import (
    build_matrix,
    check_round_trip,
    matrix_filename,
    render_matrix,
    uncovered_requirements,
)
from taskplan.pipeline.validation import validate_batch
from taskplan.runner.context import RunContext
from taskplan.runner.locking import feature_lock
from taskplan.runner.stages import StageFailure, run_stage

logger = logging.getLogger(__name__)


@dataclass
class Collaborators:
    extractor: Extractor
    grouper: Grouper
    expander: Expander


@dataclass
class GenerationResult:
    batch: Batch
    documents: list[tuple[str, str]]
    run_id: str
    attempts: int
    written: list[Path] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return self.batch.warnings


def build_collaborators(config: GeneratorConfig, architecture_text: str = "") -> Collaborators:
    """Choose rule-based or agent collaborators per taskplan.env.

    Raises:
        CollaboratorError: an agent stage is configured but its binary is not on PATH
    """
    roles = {"extract": config.extractor, "group": config.grouper, "expand": config.expander}
    agents = None
    if "agent" in roles.values():
        agents = load_agents_config(config.work_dir)
        missing = [s for s, kind in roles.items() if kind == "agent" and not check_binary_available(agents, s)]
        if missing:
            raise CollaboratorError(
                f"Agent command not found on PATH for stage(s): {', '.join(missing)}. "
                f"Check agents.yaml or set the stage back to 'rule' in taskplan.env"
            )

    return Collaborators(
        extractor=AgentExtractor(agents, config.agent_timeout) if roles["extract"] == "agent" else RuleBasedExtractor(),
        grouper=AgentGrouper(agents, config.agent_timeout) if roles["group"] == "agent" else RuleBasedGrouper(),
        expander=(
            AgentExpander(agents, config.agent_timeout, architecture_text)
            if roles["expand"] == "agent" else RuleBasedExpander()
        ),
    )


def render_outputs(batch: Batch, architecture_text: str, max_lines: int) -> list[tuple[str, str]]:
    """Task documents plus the traceability matrix, cross-checked against each other.

    Raises:
        OrphanedRequirement: a requirement has no matrix row
        BatchValidationError: a matrix row does not resolve to an emitted subtask
    """
    documents = render_task_documents(batch, architecture_text, max_lines)
    rows = build_matrix(batch)

    uncovered = uncovered_requirements([r.id for r in batch.requirements], rows)
    if uncovered:
        raise OrphanedRequirement(uncovered)

    parsed = [g for _, text in documents for g in parse_task_text(text)]
    unresolved = check_round_trip(rows, emitted_pairs(parsed))
    if unresolved:
        ids = [f"{r.requirement_id}@{r.subtask_ordinal}" for r in unresolved]
        raise BatchValidationError(f"Traceability rows do not resolve to emitted subtasks: {', '.join(ids)}", ids)

    documents.append((matrix_filename(batch.feature), render_matrix(batch, rows)))
    return documents


def publish_batch(config: GeneratorConfig, batch: Batch, documents: list[tuple[str, str]]) -> list[Path]:
    """Persist the batch as current and write its documents.

    Raises:
        BatchValidationError: the batch does not match batch.schema.json
    """
    try:
        save_batch(config.state_dir, batch)
    except ValidationError as e:
        raise BatchValidationError(str(e)) from None
    return write_documents(config.resolved_output_dir, batch.feature, documents)


def _generate(
    ctx: RunContext,
    config: GeneratorConfig,
    gate: ApprovalGate,
    collaborators: Optional[Collaborators],
    max_lines: int,
    dry_run: bool,
) -> GenerationResult:
    feature = ctx.feature

    loaded = run_stage(ctx, "load", lambda: load_documents(config.work_dir, feature))
    for warning in loaded.warnings:
        ctx.log(f"WARNING: {warning}")
    architecture_text = loaded.get(DocumentKind.ARCHITECTURE).raw_text

    if collaborators is None:
        collaborators = build_collaborators(config, architecture_text)

    requirements = run_stage(ctx, "extract", lambda: normalize_requirements(
        collaborators.extractor.extract(loaded.documents), feature,
    ))
    ctx.log(f"Extracted {len(requirements)} requirement(s)")

    bind = getattr(gate, "bind_requirements", None)
    if bind is not None:
        bind(requirements)

    outcome = run_stage(ctx, "group", lambda: run_grouping(requirements, collaborators.grouper, gate, ctx))
    ctx.log(f"Approved {len(outcome.groups)} task group(s) after {outcome.attempts} proposal(s)")

    groups, subtasks = run_stage(ctx, "expand", lambda: expand_groups(outcome.groups, requirements, collaborators.expander))

    batch = Batch(
        batch_id=ctx.run_id,
        feature=feature,
        created=ctx.start_time.isoformat(timespec="seconds"),
        requirements=requirements,
        groups=groups,
        subtasks=subtasks,
        warnings=list(loaded.warnings),
    )
    run_stage(ctx, "validate", lambda: validate_batch(batch))

    def emit():
        documents = render_outputs(batch, architecture_text, max_lines)
        written = [] if dry_run else publish_batch(config, batch, documents)
        return documents, written

    documents, written = run_stage(ctx, "emit", emit)
    for path in written:
        ctx.log(f"Wrote {path}")

    return GenerationResult(
        batch=batch,
        documents=documents,
        run_id=ctx.run_id,
        attempts=outcome.attempts,
        written=written,
    )


def run_generation(
    config: GeneratorConfig,
    feature: str,
    gate: ApprovalGate,
    dry_run: bool = False,
    collaborators: Optional[Collaborators] = None,
    max_lines: Optional[int] = None,
) -> GenerationResult:
    """Generate the task list and traceability matrix for a feature.

    With dry_run, nothing is written: no documents, batch, run directory or
    lock file. An existing feature lock is still honoured.

    Raises:
        ConcurrentRunDetected: another run holds the feature lock
        PipelineError: any stage failure (see lib/errors.py for exit codes)
    """
    max_lines = max_lines or config.tasks_max_lines

    with feature_lock(config.state_dir, feature, readonly=dry_run):
        ctx = RunContext.create(config.state_dir, feature, dry_run=dry_run)
        ctx.log(f"Run {ctx.run_id} started" + (" (dry run)" if dry_run else ""))
        try:
            result = _generate(ctx, config, gate, collaborators, max_lines, dry_run)
        except StageFailure as failure:
            status = "abandoned" if isinstance(failure.error, RunAbandoned) else "failed"
            ctx.write_result(
                status,
                failed_stage=failure.stage,
                error=str(failure.error),
                exit_code=failure.error.exit_code,
            )
            raise failure.error
        except PipelineError as e:
            # Raised outside a stage, e.g. while building collaborators
            ctx.log(f"Run failed: {e}")
            ctx.write_result("failed", error=str(e), exit_code=e.exit_code)
            raise

        ctx.write_result("passed", batch_id=result.batch.batch_id)
        ctx.log(f"Run {ctx.run_id} complete")
        return result


def reemit_batch(config: GeneratorConfig, batch: Batch) -> list[Path]:
    """Re-render and rewrite the documents of an existing batch.

    Used after a status change or a retirement. The architecture document
    is re-read so the overview stays in step with the source.
    """
    loaded = load_documents(config.work_dir, batch.feature)
    validate_batch(batch)
    documents = render_outputs(batch, loaded.get(DocumentKind.ARCHITECTURE).raw_text, config.tasks_max_lines)
    return publish_batch(config, batch, documents)
