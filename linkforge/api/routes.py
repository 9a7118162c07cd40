import logging
from xml.sax.saxutils import escape

from fastapi import APIRouter, BackgroundTasks, Form, HTTPException, Request
from fastapi.responses import Response

from linkforge.config import settings
from linkforge.schemas.ingest import (
    PipelineResponse,
    ProcessRequest,
    RetryAllResponse,
    RetryOutcome,
    SubmitRequest,
    SubmitResponse,
)
from linkforge.services.ingestion_service import (
    InvalidSubmission,
    extract_url_from_message,
    normalize_sender,
)
from linkforge.services.locks import SubmissionBusy, SubmissionLocks
from linkforge.services.pipeline import PipelineEngine, PipelineOptions

logger = logging.getLogger(__name__)

router = APIRouter()


def _twiml(message: str, status_code: int = 200) -> Response:
    xml = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f"<Response>\n  <Message>{escape(message)}</Message>\n</Response>"
    )
    return Response(content=xml, status_code=status_code, media_type="text/xml")


async def _advance_submission(
    pipeline: PipelineEngine, locks: SubmissionLocks, submission_id: str, options: PipelineOptions
) -> None:
    """Background task: advance a fresh submission. Failures are recorded on the row by the engine."""
    try:
        async with locks.hold(submission_id):
            result = await pipeline.advance(submission_id, options)
        logger.info(
            "[ingest] background run finished | id=%s | status=%s | error=%s",
            submission_id,
            result.status,
            result.error,
        )
    except SubmissionBusy:
        logger.info("[ingest] already processing, skipped | id=%s", submission_id)
    except Exception:
        logger.exception("[ingest] background run crashed | id=%s", submission_id)


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@router.post("/ingest")
async def ingest_message(
    request: Request,
    background_tasks: BackgroundTasks,
    body: str | None = Form(None, alias="Body"),
    raw_from: str | None = Form(None, alias="From"),
) -> Response:
    """Twilio SMS/WhatsApp webhook. Always answers with TwiML."""
    if not body or not raw_from:
        return _twiml("Missing message body or sender.", status_code=400)

    sender, channel = normalize_sender(raw_from)
    url = extract_url_from_message(body)
    if url is None:
        return _twiml("No URL found in your message. Send a link and I'll process it.")

    try:
        submission = request.app.state.ingestion_service.create_submission(
            url, phone_number=sender, raw_message=body
        )
    except InvalidSubmission:
        return _twiml("That link doesn't look valid. Send a full http(s) URL.")
    except Exception:
        logger.exception("[ingest] failed to store submission | from=%s", sender)
        return _twiml("Something went wrong. Try again in a moment.", status_code=500)

    background_tasks.add_task(
        _advance_submission,
        request.app.state.pipeline,
        request.app.state.locks,
        submission.id,
        PipelineOptions(),
    )
    return _twiml(f"Got it, processing your {submission.source_type} link via {channel}.")


@router.post("/submit", response_model=SubmitResponse)
async def submit(
    payload: SubmitRequest,
    request: Request,
    background_tasks: BackgroundTasks,
) -> SubmitResponse:
    try:
        submission = request.app.state.ingestion_service.create_submission(
            payload.url, phone_number="web", raw_message=payload.note or payload.url
        )
    except InvalidSubmission as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    background_tasks.add_task(
        _advance_submission,
        request.app.state.pipeline,
        request.app.state.locks,
        submission.id,
        PipelineOptions(),
    )
    return SubmitResponse(
        status="queued",
        message="Link received, processing queued.",
        submission_id=submission.id,
        source_type=submission.source_type,
    )


@router.post("/process", response_model=PipelineResponse)
async def process(payload: ProcessRequest, request: Request) -> PipelineResponse:
    """Advance one submission synchronously. Safe to call repeatedly; resumes where it stopped."""
    pipeline: PipelineEngine = request.app.state.pipeline
    try:
        async with request.app.state.locks.hold(payload.submission_id):
            result = await pipeline.advance(
                payload.submission_id, PipelineOptions(hot_news=payload.hot_news)
            )
    except SubmissionBusy as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if result.status == "not_found":
        raise HTTPException(status_code=404, detail="Submission not found")
    if not result.success:
        raise HTTPException(
            status_code=500,
            detail={"error": "Processing failed", "status": result.status, "details": result.error},
        )
    return PipelineResponse(**vars(result))


def _is_admin(request: Request) -> bool:
    secret = settings.ADMIN_SECRET
    if not secret:
        raise HTTPException(status_code=500, detail="ADMIN_SECRET not configured")
    return (
        request.headers.get("authorization") == f"Bearer {secret}"
        or request.query_params.get("secret") == secret
    )


@router.post("/admin/retry-all", response_model=RetryAllResponse)
async def retry_all(request: Request) -> RetryAllResponse:
    if not _is_admin(request):
        raise HTTPException(status_code=401, detail="Unauthorized")

    pipeline: PipelineEngine = request.app.state.pipeline
    outcome = await pipeline.retry_all_failed(locks=request.app.state.locks)
    return RetryAllResponse(
        attempted=outcome.attempted,
        succeeded=outcome.succeeded,
        results=[RetryOutcome(id=sub_id, **vars(result)) for sub_id, result in outcome.results],
    )
