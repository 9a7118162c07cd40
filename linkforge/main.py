import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from linkforge.api.routes import router
from linkforge.config import Settings, settings
from linkforge.db.connection import run_migrations
from linkforge.repositories.submission_repository import SubmissionRepository
from linkforge.repositories.tutorial_repository import TutorialRepository
from linkforge.services.audio_service import AudioService
from linkforge.services.extraction_service import ExtractionService
from linkforge.services.image_service import ImageService
from linkforge.services.ingestion_service import IngestionService
from linkforge.services.llm_service import LLMService
from linkforge.services.locks import SubmissionLocks
from linkforge.services.pipeline import PipelineEngine
from linkforge.services.pipeline_steps import PipelineSteps
from linkforge.storage.media_storage import create_media_storage


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_pipeline(config: Settings, submissions: SubmissionRepository) -> PipelineEngine:
    """Wire the pipeline engine and its collaborators from settings."""
    tutorials = TutorialRepository(config.DB_PATH)
    storage = create_media_storage(config)
    llm = LLMService()
    steps = PipelineSteps(
        submissions=submissions,
        tutorials=tutorials,
        extractor=ExtractionService(),
        llm=llm,
        images=ImageService(storage),
        audio=AudioService(llm, storage),
        merge_threshold=config.MERGE_TOPIC_THRESHOLD,
    )
    return PipelineEngine(submissions, steps)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _configure_logging()
    logger = logging.getLogger(__name__)
    logger.info(
        "linkforge starting | db=%s | port=%s | media=%s | audio=%s",
        settings.DB_PATH,
        settings.PORT,
        settings.MEDIA_BACKEND,
        settings.AUDIO_ENABLED,
    )
    run_migrations(settings.DB_PATH)
    app.state.repository = SubmissionRepository(settings.DB_PATH)
    app.state.ingestion_service = IngestionService(app.state.repository)
    app.state.pipeline = build_pipeline(settings, app.state.repository)
    app.state.locks = SubmissionLocks()
    yield
    logger.info("linkforge shutting down")


def create_app() -> FastAPI:
    app = FastAPI(title="linkforge", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router)

    if settings.MEDIA_BACKEND == "local":
        app.mount("/media", StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False), name="media")

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.getLogger(__name__).exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"},
        )

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("linkforge.main:app", host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL)
