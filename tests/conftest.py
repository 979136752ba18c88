"""Shared fixtures: a small checkout feature and batch builders."""

import pytest

from taskplan.lib.config import GeneratorConfig
from taskplan.pipeline.models import (
    Batch,
    CoverageKind,
    Requirement,
    Subtask,
    TaskGroup,
    TestingRequirement,
)

PRD_TEXT = """\
# Checkout PRD

Shoppers need a quick way to buy what is in their cart.

## Cart

- REQ-1: Users can add items to the cart through the cart API endpoint.
- REQ-2: The cart page displays the items added by REQ-1.

## Payments

- REQ-3: A failed payment shows an error message and lets the user retry.
"""

ARCHITECTURE_TEXT = """\
# Checkout Architecture

## Overview

Next.js front end talking to a Node.js API layer backed by Postgres.

## Components

| Component | Responsibility |
|-----------|----------------|
| CartService | Stores cart contents per session |
| PaymentGateway | Wraps the payment provider |
"""


@pytest.fixture
def feature_dir(tmp_path):
    """Working directory with prd-checkout.md and architecture-checkout.md."""
    (tmp_path / "prd-checkout.md").write_text(PRD_TEXT)
    (tmp_path / "architecture-checkout.md").write_text(ARCHITECTURE_TEXT)
    return tmp_path


@pytest.fixture
def config(feature_dir):
    return GeneratorConfig(work_dir=feature_dir)


def make_requirements(*ids, cross_cutting=()):
    return [
        Requirement(
            id=req_id,
            text=f"Requirement {req_id} text.",
            source_document="prd",
            cross_cutting=req_id in cross_cutting,
        )
        for req_id in ids
    ]


def unit_test(name="it works"):
    return [TestingRequirement(CoverageKind.UNIT, name)]


def make_batch(layout, requirements=None, retired=None, feature="checkout"):
    """Build a batch from {group_ordinal: [[req ids of subtask 1], [req ids of subtask 2], ...]}."""
    groups = []
    subtasks = []
    for ordinal, subtask_reqs in layout.items():
        group_reqs = list(dict.fromkeys(r for reqs in subtask_reqs for r in reqs))
        groups.append(TaskGroup(ordinal=ordinal, name=f"Group {ordinal}", requirement_ids=tuple(group_reqs)))
        for index, reqs in enumerate(subtask_reqs, 1):
            subtasks.append(Subtask(
                group_ordinal=ordinal,
                index=index,
                name=f"Subtask {ordinal}.{index}",
                specific_context=f"Context for {ordinal}.{index}.",
                requirement_ids=list(reqs),
                testing_requirements=unit_test(),
            ))

    if requirements is None:
        ids = list(dict.fromkeys(r for g in groups for r in g.requirement_ids))
        requirements = make_requirements(*ids)

    return Batch(
        batch_id="20250101-120000-000000_checkout",
        feature=feature,
        created="2025-01-01T12:00:00",
        requirements=requirements,
        groups=groups,
        subtasks=subtasks,
        retired=list(retired or []),
    )
