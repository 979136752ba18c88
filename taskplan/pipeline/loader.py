"""
Input loader.

Finds the feature's source documents by filename convention:

    prd-<feature>.md            mandatory
    architecture-<feature>.md   mandatory
    techreq-<feature>.md        optional
    context-<feature>.md        optional

A missing optional document degrades to an empty SourceDocument and a
recorded warning.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from taskplan.lib.constants import FEATURE_PATTERN, MAX_FEATURE_LEN
from taskplan.lib.errors import MissingRequiredDocument
from taskplan.pipeline.models import DocumentKind, SourceDocument

logger = logging.getLogger(__name__)

LOAD_ORDER = (
    DocumentKind.PRD,
    DocumentKind.ARCHITECTURE,
    DocumentKind.TECHREQ,
    DocumentKind.CONTEXT,
)


@dataclass
class LoadResult:
    documents: list[SourceDocument]
    warnings: list[str] = field(default_factory=list)

    def get(self, kind: DocumentKind) -> SourceDocument:
        for doc in self.documents:
            if doc.kind == kind:
                return doc
        raise KeyError(kind)


def is_valid_feature(feature: str) -> bool:
    return bool(FEATURE_PATTERN.match(feature)) and len(feature) <= MAX_FEATURE_LEN


def load_documents(work_dir: Path, feature: str) -> LoadResult:
    """Load the source documents for a feature.

    Raises:
        ValueError: feature name is not usable in a filename
        MissingRequiredDocument: PRD or architecture document not found
    """
    if not is_valid_feature(feature):
        raise ValueError(
            f"Invalid feature name '{feature}'. Use lowercase letters, digits, '.', '_' or '-'."
        )

    work_dir = Path(work_dir)
    documents = []
    warnings = []

    for kind in LOAD_ORDER:
        path = work_dir / kind.filename(feature)
        if path.is_file():
            logger.debug(f"Loaded {kind.value} document: {path}")
            documents.append(SourceDocument(kind=kind, path=path, raw_text=path.read_text(encoding="utf-8")))
            continue

        if kind.mandatory:
            raise MissingRequiredDocument(kind.value, kind.filename(feature))

        message = f"Optional {kind.value} document not found ({kind.filename(feature)}); continuing without it"
        logger.warning(message)
        warnings.append(message)
        documents.append(SourceDocument(kind=kind, path=None, raw_text=""))

    return LoadResult(documents=documents, warnings=warnings)
