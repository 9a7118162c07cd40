"""Integration tests for the resumable pipeline engine."""
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from linkforge.models.submission import Submission
from linkforge.services.errors import PipelineError
from linkforge.services.locks import SubmissionLocks
from linkforge.services.pipeline import PipelineEngine, PipelineOptions, resolve_step
from linkforge.services.pipeline_steps import StepResult

URL = "https://example.com/post"


@pytest.fixture
def steps(make_classification, make_generated):
    return MagicMock(
        extract=AsyncMock(return_value=StepResult("extracted", {"extracted_text": "text"})),
        classify=AsyncMock(return_value=StepResult("classified", {"classification": make_classification()})),
        generate=AsyncMock(return_value=StepResult("generated", {"generated_tutorial": make_generated()})),
        publish=AsyncMock(
            return_value=StepResult(
                "published", {"tutorial_id": "tut-1", "completed_at": datetime(2026, 1, 1)}
            )
        ),
    )


@pytest.fixture
def engine(submissions, steps):
    return PipelineEngine(submissions, steps, max_step_retries=2, default_budget_ms=55_000)


@pytest.fixture
def mock_sleep():
    with patch("linkforge.services.pipeline.sleep", new_callable=AsyncMock) as mocked:
        yield mocked


# resolve_step

@pytest.mark.parametrize(
    "status, last_step, expected",
    [
        ("received", None, "extract"),
        ("extracting", "extracting", "extract"),
        ("extracted", "extracted", "classify"),
        ("classifying", "classifying", "classify"),
        ("generated", "generated", "publish"),
        ("publishing", "publishing", "publish"),
        ("failed", None, "extract"),
        ("failed", "classifying", "classify"),
        ("failed", "classified", "generate"),
        ("failed", "generated", "publish"),
        ("failed", "publishing", "publish"),
        ("published", "published", None),
        ("dead", "extracting", None),
    ],
)
def test_resolve_step(status, last_step, expected):
    sub = Submission(id="s", url=URL, source_type="article", status=status, last_step=last_step)
    assert resolve_step(sub) == expected


# advance

@pytest.mark.asyncio
async def test_full_run_publishes(engine, submissions, steps):
    sub = submissions.create(URL, "article")

    result = await engine.advance(sub.id)

    assert result.success is True
    assert result.status == "published"
    assert result.tutorial_id == "tut-1"
    stored = submissions.get(sub.id)
    assert stored.status == "published"
    assert stored.last_step == "published"
    assert stored.started_at is not None
    assert stored.completed_at == datetime(2026, 1, 1)
    assert stored.extracted_text == "text"
    steps.publish.assert_awaited_once()
    assert steps.publish.await_args.kwargs == {"hot_news": False}


@pytest.mark.asyncio
async def test_hot_news_option_reaches_publish(engine, submissions, steps):
    sub = submissions.create(URL, "article")
    await engine.advance(sub.id, PipelineOptions(hot_news=True))
    assert steps.publish.await_args.kwargs == {"hot_news": True}


@pytest.mark.asyncio
async def test_not_found(engine):
    result = await engine.advance("missing")
    assert result.success is False
    assert result.status == "not_found"


@pytest.mark.asyncio
async def test_terminal_rows_are_not_advanced(engine, submissions, steps):
    published = submissions.create(URL, "article")
    submissions.update(published.id, {"status": "published", "tutorial_id": "tut-9"})
    dead = submissions.create(URL, "article")
    submissions.update(dead.id, {"status": "dead", "last_error": "no transcript"})

    assert (await engine.advance(published.id)).tutorial_id == "tut-9"
    dead_result = await engine.advance(dead.id)
    assert dead_result.status == "dead"
    assert dead_result.error == "no transcript"
    steps.extract.assert_not_awaited()


@pytest.mark.asyncio
async def test_exhausted_budget_stops_before_first_step(engine, submissions, steps):
    sub = submissions.create(URL, "article")

    result = await engine.advance(sub.id, PipelineOptions(budget_ms=-1))

    assert result.success is False
    assert result.error == "Budget exhausted at step: extract"
    assert submissions.get(sub.id).status == "received"
    steps.extract.assert_not_awaited()


@pytest.mark.asyncio
async def test_exhausted_budget_stops_before_resumed_step(engine, submissions, steps):
    sub = submissions.create(URL, "article")
    submissions.update(sub.id, {"status": "extracted", "last_step": "extracted", "extracted_text": "text"})

    result = await engine.advance(sub.id, PipelineOptions(budget_ms=-1))

    assert result.success is False
    assert result.status == "extracted"
    assert result.error == "Budget exhausted at step: classify"
    stored = submissions.get(sub.id)
    assert stored.status == "extracted"
    assert stored.last_step == "extracted"
    steps.extract.assert_not_awaited()
    steps.classify.assert_not_awaited()


@pytest.mark.asyncio
async def test_zero_default_budget_is_not_replaced_by_settings(submissions, steps, mock_sleep):
    engine = PipelineEngine(submissions, steps, max_step_retries=2, default_budget_ms=0)
    steps.extract.side_effect = RuntimeError("timeout")
    sub = submissions.create(URL, "article")

    result = await engine.advance(sub.id)

    assert result.success is False
    assert steps.extract.await_count <= 1
    mock_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_permanent_error_goes_dead_after_one_attempt(engine, submissions, steps, mock_sleep):
    steps.extract.side_effect = PipelineError("TikTok video is private or unavailable: gone", "extract")
    sub = submissions.create(URL, "tiktok")

    result = await engine.advance(sub.id)

    assert result.status == "dead"
    assert steps.extract.await_count == 1
    mock_sleep.assert_not_awaited()
    stored = submissions.get(sub.id)
    assert stored.status == "dead"
    assert stored.retry_count == 1
    assert stored.last_step == "extracting"
    assert "private or unavailable" in stored.last_error


@pytest.mark.asyncio
async def test_transient_error_retries_with_backoff_then_fails(engine, submissions, steps, mock_sleep):
    steps.extract.side_effect = RuntimeError("Reader fetch failed with status 503 for " + URL)
    sub = submissions.create(URL, "article")

    result = await engine.advance(sub.id)

    assert result.status == "failed"
    assert steps.extract.await_count == 3
    assert [c.args[0] for c in mock_sleep.await_args_list] == [3000, 9000]
    stored = submissions.get(sub.id)
    assert stored.status == "failed"
    assert stored.retry_count == 1
    assert stored.last_step == "extracting"
    assert stored.last_error.startswith("Reader fetch failed with status 503")


@pytest.mark.asyncio
async def test_transient_error_recovers_within_step(engine, submissions, steps, mock_sleep):
    steps.classify.side_effect = [RuntimeError("connection reset"), steps.classify.return_value]
    sub = submissions.create(URL, "article")

    result = await engine.advance(sub.id)

    assert result.status == "published"
    assert steps.classify.await_count == 2
    mock_sleep.assert_awaited_once_with(3000)
    assert submissions.get(sub.id).last_error is None


@pytest.mark.asyncio
async def test_last_retry_goes_dead(engine, submissions, steps, mock_sleep):
    steps.extract.side_effect = RuntimeError("timeout")
    sub = submissions.create(URL, "article")
    submissions.update(sub.id, {"status": "failed", "retry_count": 2})

    result = await engine.advance(sub.id)

    assert result.status == "dead"
    assert submissions.get(sub.id).retry_count == 3


@pytest.mark.asyncio
async def test_retry_skips_delay_that_does_not_fit_budget(submissions, steps, mock_sleep):
    engine = PipelineEngine(submissions, steps, max_step_retries=2, default_budget_ms=2_000)
    steps.extract.side_effect = RuntimeError("timeout")
    sub = submissions.create(URL, "article")

    result = await engine.advance(sub.id)

    assert result.status == "failed"
    assert steps.extract.await_count == 1
    mock_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_row_resumes_after_last_completed_step(engine, submissions, steps, make_classification):
    sub = submissions.create(URL, "article")
    submissions.update(
        sub.id,
        {
            "status": "failed",
            "last_step": "classified",
            "retry_count": 1,
            "extracted_text": "text",
            "classification": make_classification(),
        },
    )

    result = await engine.advance(sub.id)

    assert result.status == "published"
    steps.extract.assert_not_awaited()
    steps.classify.assert_not_awaited()
    steps.generate.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_row_retries_the_step_that_failed(engine, submissions, steps):
    sub = submissions.create(URL, "article")
    submissions.update(sub.id, {"status": "failed", "last_step": "classifying", "extracted_text": "text"})

    await engine.advance(sub.id)

    steps.extract.assert_not_awaited()
    steps.classify.assert_awaited_once()


@pytest.mark.asyncio
async def test_crash_mid_step_resumes_same_step(engine, submissions, steps):
    sub = submissions.create(URL, "article")
    submissions.update(sub.id, {"status": "generating", "last_step": "generating", "extracted_text": "t"})

    await engine.advance(sub.id)

    steps.classify.assert_not_awaited()
    steps.generate.assert_awaited_once()


# retry_all_failed

@pytest.mark.asyncio
async def test_retry_all_failed_advances_retryable_rows(engine, submissions, steps):
    first = submissions.create(URL, "article")
    second = submissions.create(URL, "article")
    exhausted = submissions.create(URL, "article")
    for sub_id, retries in ((first.id, 1), (second.id, 2), (exhausted.id, 3)):
        submissions.update(sub_id, {"status": "failed", "retry_count": retries})

    outcome = await engine.retry_all_failed()

    assert outcome.attempted == 2
    assert outcome.succeeded == 2
    assert [sub_id for sub_id, _ in outcome.results] == [first.id, second.id]
    assert submissions.get(exhausted.id).status == "failed"


@pytest.mark.asyncio
async def test_retry_all_failed_respects_limit(engine, submissions):
    for _ in range(3):
        sub = submissions.create(URL, "article")
        submissions.update(sub.id, {"status": "failed", "retry_count": 1})

    outcome = await engine.retry_all_failed(limit=2)
    assert outcome.attempted == 2


@pytest.mark.asyncio
async def test_retry_all_failed_skips_busy_rows(engine, submissions, steps):
    busy = submissions.create(URL, "article")
    free = submissions.create(URL, "article")
    for sub_id in (busy.id, free.id):
        submissions.update(sub_id, {"status": "failed", "retry_count": 1})
    locks = SubmissionLocks()

    async with locks.hold(busy.id):
        outcome = await engine.retry_all_failed(locks=locks)

    assert [sub_id for sub_id, _ in outcome.results] == [free.id]
    assert submissions.get(busy.id).status == "failed"
    assert not locks.is_held(free.id)


@pytest.mark.asyncio
async def test_retry_all_failed_without_budget(engine, submissions, steps):
    sub = submissions.create(URL, "article")
    submissions.update(sub.id, {"status": "failed", "retry_count": 1})

    outcome = await engine.retry_all_failed(budget_ms=-1)

    assert outcome.attempted == 0
    steps.extract.assert_not_awaited()
