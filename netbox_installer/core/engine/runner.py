"""
Step runner: the central provisioning loop.

Takes an ordered step list and a run context, and visits each step
strictly in order:

    check predicate → skip | run action (with bounded retry) → record

An abort-policy failure halts the loop, runs rollback for the steps
this run touched, and is reported as the run's fatal error. A
warn-policy failure is recorded and the loop moves on.

Steps execute one at a time to completion. KeyboardInterrupt is not
caught here: interruption is only safe between steps, and a re-run
resumes through the predicates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from netbox_installer.core.engine.rollback import run_rollback
from netbox_installer.core.models.context import RunContext
from netbox_installer.core.models.step import (
    RunResult,
    Step,
    StepFailure,
    StepRecord,
)
from netbox_installer.core.reliability.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

RecordListener = Callable[[Step, StepRecord], None]


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class StepRunner:
    """Execute steps in order with idempotency checks and a failure policy.

    Args:
        on_record: Optional listener called after every step is visited
            (used by the CLI to print status lines).
        retry_base_delay: Base backoff for steps declared with retries.
        sleep: Sleep function used between retries (tests pass a no-op).
    """

    def __init__(
        self,
        on_record: RecordListener | None = None,
        retry_base_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._on_record = on_record
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep

    def run(self, steps: Iterable[Step], ctx: RunContext) -> RunResult:
        """Run every step in order and return the aggregate result."""
        ordered = list(steps)
        result = RunResult(total=len(ordered))
        touched: list[Step] = []

        logger.info("Running %d steps on %s", len(ordered), ctx.host.name)

        for ordinal, step in enumerate(ordered, start=1):
            record = self.run_step(step, ctx, ordinal=ordinal)
            result.records.append(record)
            if self._on_record is not None:
                self._on_record(step, record)

            if record.status == "completed":
                ctx.completed.append(step.name)
                touched.append(step)
                continue

            if record.status == "skipped":
                continue

            if not record.fatal:
                logger.warning("Step '%s' failed, continuing: %s", step.name, record.error)
                continue

            touched.append(step)
            result.fatal_error = StepFailure(
                step=step.name, ordinal=ordinal, error=record.error or ""
            )
            logger.error("Aborting at step %d '%s': %s", ordinal, step.name, record.error)
            result.rollback_errors = run_rollback(touched, ctx)
            break

        logger.info(
            "Run finished: %d completed, %d skipped, %d failed of %d",
            result.completed,
            result.skipped,
            result.failed,
            result.total,
        )
        return result

    def run_step(self, step: Step, ctx: RunContext, ordinal: int = 1) -> StepRecord:
        """Visit a single step: predicate, then action if needed."""
        start = time.monotonic()

        def _record(status: str, **kwargs) -> StepRecord:
            return StepRecord(
                step=step.name,
                ordinal=ordinal,
                status=status,
                policy=step.policy,
                duration_ms=int((time.monotonic() - start) * 1000),
                **kwargs,
            )

        try:
            satisfied = step.check(ctx)
        except Exception as e:
            logger.debug("Predicate of '%s' raised", step.name, exc_info=True)
            return _record("failed", error=f"idempotency check failed: {_describe(e)}")

        if satisfied:
            logger.debug("Step '%s' already satisfied", step.name)
            return _record("skipped")

        logger.info("Step %d: %s", ordinal, step.description)
        policy = RetryPolicy(retries=step.retries, base_delay=self._retry_base_delay)
        try:
            produced, attempts = call_with_retry(
                lambda: step.action(ctx), policy, label=step.name, sleep=self._sleep
            )
            if produced:
                ctx.merge(produced)
        except Exception as e:
            logger.debug("Action of '%s' raised", step.name, exc_info=True)
            return _record("failed", error=_describe(e), attempts=step.retries + 1)

        return _record("completed", attempts=attempts)
