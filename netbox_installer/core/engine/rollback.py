"""
Rollback: partial-state cleanup after an aborted run.

Derives the rollback plan from the steps this run touched (reverse
order) and executes it. Rollback never raises: each hook's error is
logged and collected so every remaining hook still gets its turn.
"""

from __future__ import annotations

import logging

from netbox_installer.core.models.context import RunContext
from netbox_installer.core.models.step import Step

logger = logging.getLogger(__name__)


def generate_rollback(touched: list[Step]) -> list[Step]:
    """Steps whose rollback hooks must run, in reverse execution order."""
    return [step for step in reversed(touched) if step.rollback is not None]


def run_rollback(touched: list[Step], ctx: RunContext) -> list[str]:
    """Execute rollback hooks; returns error messages (empty when clean)."""
    errors: list[str] = []
    for step in generate_rollback(touched):
        logger.info("Rolling back '%s'", step.name)
        try:
            step.rollback(ctx)  # type: ignore[misc]
        except Exception as e:
            logger.error("Rollback of '%s' failed: %s", step.name, e)
            errors.append(f"{step.name}: {e}")
    return errors
