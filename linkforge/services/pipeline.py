"""
Pipeline engine: a resumable, linear state machine over one submission row.

    received -[extract]-> extracted -[classify]-> classified
             -[generate]-> generated -[publish]-> published

Before a step runs its in-progress label (e.g. 'extracting') is written to both
`status` and `last_step`. A crash therefore leaves enough on the row to resume
at the same step; a handled failure moves the row to 'failed' (retryable) or
'dead' (permanent error or retries exhausted) and keeps `last_step`.

Callers must not advance the same submission concurrently; see
linkforge.services.locks.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from linkforge.config import settings
from linkforge.models.submission import (
    COMPLETED_TO_NEXT_STEP,
    STATUS_TO_STEP,
    STEP_IN_PROGRESS_STATUS,
    TERMINAL_STATUSES,
    Submission,
)
from linkforge.repositories.base import AbstractSubmissionRepository
from linkforge.services.errors import PipelineError, retry_delay, sleep
from linkforge.services.locks import SubmissionBusy, SubmissionLocks
from linkforge.services.pipeline_steps import PipelineSteps, StepResult

logger = logging.getLogger(__name__)


@dataclass
class PipelineOptions:
    hot_news: bool = False
    budget_ms: int | None = None


@dataclass
class PipelineResult:
    success: bool
    status: str
    tutorial_id: str | None = None
    error: str | None = None


@dataclass
class RetryAllResult:
    attempted: int = 0
    succeeded: int = 0
    results: list[tuple[str, PipelineResult]] = field(default_factory=list)


def resolve_step(submission: Submission) -> str | None:
    """
    Step to run next, or None when the submission is terminal.

    For 'failed' rows last_step decides: an in-progress label retries its own
    step, a done label moves on to the following step.
    """
    if submission.status in TERMINAL_STATUSES:
        return None
    if submission.status == "failed":
        last_step = submission.last_step
        if not last_step:
            return "extract"
        if last_step in STEP_IN_PROGRESS_STATUS.values():
            return STATUS_TO_STEP[last_step]
        return COMPLETED_TO_NEXT_STEP.get(last_step, "extract")
    return STATUS_TO_STEP.get(submission.status)


class PipelineEngine:
    def __init__(
        self,
        repository: AbstractSubmissionRepository,
        steps: PipelineSteps,
        max_step_retries: int | None = None,
        default_budget_ms: int | None = None,
    ) -> None:
        self._repository = repository
        self._max_step_retries = (
            settings.MAX_STEP_RETRIES if max_step_retries is None else max_step_retries
        )
        self._default_budget_ms = (
            settings.PIPELINE_BUDGET_MS if default_budget_ms is None else default_budget_ms
        )
        self._step_functions: dict[str, Callable[[Submission, PipelineOptions], Awaitable[StepResult]]] = {
            "extract": lambda sub, opts: steps.extract(sub),
            "classify": lambda sub, opts: steps.classify(sub),
            "generate": lambda sub, opts: steps.generate(sub),
            "publish": lambda sub, opts: steps.publish(sub, hot_news=opts.hot_news),
        }

    async def advance(self, submission_id: str, options: PipelineOptions | None = None) -> PipelineResult:
        """
        Run every remaining step of a submission until it is published, fails,
        or the time budget runs out. Safe to call again on any non-terminal row.
        """
        options = options or PipelineOptions()
        budget_ms = self._default_budget_ms if options.budget_ms is None else options.budget_ms
        started = time.monotonic()

        def elapsed_ms() -> float:
            return (time.monotonic() - started) * 1000

        submission = self._repository.get(submission_id)
        if submission is None:
            logger.error("[pipeline] submission not found | id=%s", submission_id)
            return PipelineResult(success=False, status="not_found", error="Submission not found")

        if submission.status == "published":
            return PipelineResult(success=True, status="published", tutorial_id=submission.tutorial_id)
        if submission.status == "dead":
            return PipelineResult(
                success=False, status="dead", error=submission.last_error or "Permanently failed"
            )

        if submission.started_at is None:
            self._repository.update(submission_id, {"started_at": datetime.utcnow()})

        while True:
            step = resolve_step(submission)
            if step is None:
                return PipelineResult(
                    success=submission.status == "published",
                    status=submission.status,
                    tutorial_id=submission.tutorial_id,
                )

            if elapsed_ms() > budget_ms:
                logger.info(
                    "[pipeline] budget exhausted | id=%s | step=%s | elapsed=%dms | budget=%dms",
                    submission_id,
                    step,
                    elapsed_ms(),
                    budget_ms,
                )
                return PipelineResult(
                    success=False,
                    status=submission.status,
                    error=f"Budget exhausted at step: {step}",
                )

            in_progress = STEP_IN_PROGRESS_STATUS[step]
            self._repository.update(submission_id, {"status": in_progress, "last_step": in_progress})

            result, error = await self._run_with_retries(submission, step, options, budget_ms, elapsed_ms)

            if error is not None:
                return self._record_failure(submission, step, in_progress, error)

            self._repository.update(
                submission_id,
                {
                    "status": result.next_status,
                    "last_step": result.next_status,
                    "last_error": None,
                    **result.updates,
                },
            )
            logger.info(
                "[pipeline] step succeeded | id=%s | step=%s | status=%s",
                submission_id,
                step,
                result.next_status,
            )
            submission = self._repository.get(submission_id)

            if submission.status == "published":
                return PipelineResult(success=True, status="published", tutorial_id=submission.tutorial_id)

    async def _run_with_retries(
        self,
        submission: Submission,
        step: str,
        options: PipelineOptions,
        budget_ms: int,
        elapsed_ms: Callable[[], float],
    ) -> tuple[StepResult | None, PipelineError | None]:
        step_fn = self._step_functions[step]
        last_error: PipelineError | None = None
        attempts = self._max_step_retries + 1

        for attempt in range(attempts):
            if attempt > 0:
                # A failed attempt may already have persisted part of its work (e.g. tutorial_id).
                submission = self._repository.get(submission.id) or submission
            logger.info(
                "[pipeline] running step | id=%s | step=%s | attempt=%d/%d",
                submission.id,
                step,
                attempt + 1,
                attempts,
            )
            try:
                return await step_fn(submission, options), None
            except Exception as exc:
                last_error = PipelineError.from_error(exc, step)

            if last_error.kind == "permanent":
                logger.error(
                    "[pipeline] permanent failure | id=%s | step=%s | error=%s",
                    submission.id,
                    step,
                    last_error.message,
                )
                break
            if attempt == attempts - 1:
                break

            delay = retry_delay(attempt)
            remaining = budget_ms - elapsed_ms()
            if delay > remaining:
                logger.info(
                    "[pipeline] no budget for retry delay | id=%s | step=%s | delay=%dms | remaining=%dms",
                    submission.id,
                    step,
                    delay,
                    remaining,
                )
                break
            logger.warning(
                "[pipeline] transient failure, retrying | id=%s | step=%s | delay=%dms | error=%s",
                submission.id,
                step,
                delay,
                last_error.message,
            )
            await sleep(delay)

        return None, last_error

    def _record_failure(
        self, submission: Submission, step: str, in_progress: str, error: PipelineError
    ) -> PipelineResult:
        retry_count = submission.retry_count + 1
        is_dead = error.kind == "permanent" or retry_count >= submission.max_retries
        status = "dead" if is_dead else "failed"

        self._repository.update(
            submission.id,
            {
                "status": status,
                "retry_count": retry_count,
                "last_step": in_progress,
                "last_error": error.message,
            },
        )
        logger.error(
            "[pipeline] step %s | id=%s | step=%s | retry=%d/%d | error=%s",
            status,
            submission.id,
            step,
            retry_count,
            submission.max_retries,
            error.message,
        )
        return PipelineResult(success=False, status=status, error=error.message)

    async def retry_all_failed(
        self,
        budget_ms: int | None = None,
        limit: int | None = None,
        locks: SubmissionLocks | None = None,
    ) -> RetryAllResult:
        """
        Advance the oldest failed submissions that still have retry budget, one
        at a time, handing each the budget that is left. With `locks`, rows
        another caller is advancing are skipped.
        """
        budget_ms = self._default_budget_ms if budget_ms is None else budget_ms
        started = time.monotonic()
        outcome = RetryAllResult()

        for submission in self._repository.list_retryable(limit or settings.RETRY_BATCH_SIZE):
            elapsed = (time.monotonic() - started) * 1000
            if elapsed > budget_ms:
                logger.info("[pipeline] retry-all budget exhausted | processed=%d", outcome.attempted)
                break
            options = PipelineOptions(budget_ms=int(budget_ms - elapsed))
            if locks is None:
                result = await self.advance(submission.id, options)
            else:
                try:
                    async with locks.hold(submission.id):
                        result = await self.advance(submission.id, options)
                except SubmissionBusy:
                    logger.info("[pipeline] retry-all skipped busy submission | id=%s", submission.id)
                    continue
            outcome.attempted += 1
            outcome.results.append((submission.id, result))
            if result.success:
                outcome.succeeded += 1
        return outcome
