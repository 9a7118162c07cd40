import httpx
import pytest

from linkforge.services.errors import PipelineError, classify_error, retry_delay


@pytest.mark.parametrize(
    "message",
    [
        "TikTok video is private or unavailable: removed",
        "Article has insufficient content (12 chars)",
        "PDF has insufficient extractable text (3 chars)",
        "Video abc123 has no transcript available",
        "This video does not have transcripts available",
        "LinkedIn blocked automated access (login wall)",
        "Invalid URL: no YouTube video id in https://youtube.com/",
        "Reader fetch failed with status 404 for https://example.com",
        "PDF download failed with status 403",
    ],
)
def test_permanent_signatures(message):
    assert classify_error(RuntimeError(message)) == "permanent"


@pytest.mark.parametrize(
    "message",
    [
        "Reader fetch failed with status 503 for https://example.com",
        "Reader fetch failed with status 429 for https://example.com",
        "Connection reset by peer",
        "Request timed out",
        "something nobody has seen before",
        "",
    ],
)
def test_everything_else_is_transient(message):
    assert classify_error(RuntimeError(message)) == "transient"


def test_status_code_without_failure_word_is_transient():
    assert classify_error("got 404 pages of results") == "transient"


def test_classification_is_case_insensitive():
    assert classify_error("NO TRANSCRIPT for this one") == "permanent"


def test_classify_accepts_plain_strings_and_library_errors():
    assert classify_error("private or unavailable") == "permanent"
    assert classify_error(httpx.ReadTimeout("read timed out")) == "transient"


def test_retry_delay_schedule():
    assert retry_delay(0) == 3000
    assert retry_delay(1) == 9000
    assert retry_delay(2) == 27000
    assert retry_delay(3) == 30000
    assert retry_delay(10) == 30000


def test_retry_delay_is_non_decreasing():
    delays = [retry_delay(n) for n in range(8)]
    assert delays == sorted(delays)


def test_pipeline_error_infers_kind_from_message():
    err = PipelineError("Article has insufficient content (3 chars)", "extract")
    assert err.kind == "permanent"
    assert err.step == "extract"
    assert str(err) == "Article has insufficient content (3 chars)"


def test_pipeline_error_explicit_kind_wins():
    err = PipelineError("no transcript", "extract", "transient")
    assert err.kind == "transient"


def test_from_error_passes_pipeline_errors_through():
    original = PipelineError("boom", "classify", "permanent")
    assert PipelineError.from_error(original, "generate") is original


def test_from_error_normalizes_other_exceptions():
    err = PipelineError.from_error(ValueError("upstream 502"), "generate")
    assert isinstance(err, PipelineError)
    assert err.step == "generate"
    assert err.kind == "transient"
    assert err.message == "upstream 502"


def test_from_error_uses_type_name_for_empty_messages():
    err = PipelineError.from_error(TimeoutError(), "extract")
    assert err.message == "TimeoutError"
    assert err.kind == "transient"


def test_explicit_kind_overrides_message():
    error = RuntimeError("Video abc has no transcript available")
    error.kind = "transient"
    assert classify_error(error) == "transient"


def test_pipeline_error_from_error_keeps_explicit_kind():
    error = RuntimeError("timed out")
    error.kind = "permanent"
    assert PipelineError.from_error(error, "extract").kind == "permanent"
