"""
Batch persistence under .taskplan/batches/<feature>/.

Each generation run writes a new <batch_id>.json; the 'current' file
names the batch the emitted documents were rendered from. Old batches
are kept for reference and never rewritten except for status updates.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from taskplan.lib.validate import load_validated, validate_before_write
from taskplan.pipeline.models import Batch

logger = logging.getLogger(__name__)


def batches_dir(state_dir: Path, feature: str) -> Path:
    return state_dir / "batches" / feature


def save_batch(state_dir: Path, batch: Batch, make_current: bool = True) -> Path:
    """Validate and write a batch. Raises ValidationError before touching disk."""
    directory = batches_dir(state_dir, batch.feature)
    path = directory / f"{batch.batch_id}.json"
    data = batch.to_dict()
    validate_before_write(data, "batch", path)

    directory.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)

    if make_current:
        (directory / "current").write_text(batch.batch_id + "\n", encoding="utf-8")
    logger.debug(f"Saved batch {batch.batch_id} to {path}")
    return path


def current_batch_id(state_dir: Path, feature: str) -> Optional[str]:
    pointer = batches_dir(state_dir, feature) / "current"
    if not pointer.exists():
        return None
    return pointer.read_text(encoding="utf-8").strip() or None


def load_batch(state_dir: Path, feature: str, batch_id: str) -> Batch:
    path = batches_dir(state_dir, feature) / f"{batch_id}.json"
    return Batch.from_dict(load_validated(path, "batch"))


def load_current_batch(state_dir: Path, feature: str) -> Optional[Batch]:
    """The current batch for a feature, or None if none has been generated."""
    batch_id = current_batch_id(state_dir, feature)
    if batch_id is None:
        return None
    return load_batch(state_dir, feature, batch_id)


def list_batches(state_dir: Path, feature: str) -> list[str]:
    """Batch ids for a feature, oldest first."""
    directory = batches_dir(state_dir, feature)
    if not directory.exists():
        return []
    return sorted(p.stem for p in directory.glob("*.json"))
