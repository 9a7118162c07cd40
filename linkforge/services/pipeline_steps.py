"""
Pipeline step implementations.

Each step takes the current submission snapshot and returns a StepResult with
the status to write and the columns to persist alongside it. A step whose
output is already on the submission returns its done status with no updates,
so re-running a step after a crash costs nothing.
"""

import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from linkforge.config import settings
from linkforge.models.submission import Submission
from linkforge.repositories.base import (
    AbstractSubmissionRepository,
    AbstractTutorialRepository,
    SlugConflictError,
)
from linkforge.schemas.tutorial import GeneratedTutorialData
from linkforge.services.audio_service import AudioService
from linkforge.services.errors import PipelineError
from linkforge.services.extraction_service import ExtractionService
from linkforge.services.image_service import ImageService
from linkforge.services.llm_service import LLMService
from linkforge.services.merge_resolver import select_merge_target, shared_topic_count

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    next_status: str
    updates: dict[str, Any] = field(default_factory=dict)


class PipelineSteps:
    def __init__(
        self,
        submissions: AbstractSubmissionRepository,
        tutorials: AbstractTutorialRepository,
        extractor: ExtractionService,
        llm: LLMService,
        images: ImageService,
        audio: AudioService,
        merge_threshold: int | None = None,
    ) -> None:
        self._submissions = submissions
        self._tutorials = tutorials
        self._extractor = extractor
        self._llm = llm
        self._images = images
        self._audio = audio
        self._merge_threshold = (
            settings.MERGE_TOPIC_THRESHOLD if merge_threshold is None else merge_threshold
        )

    async def extract(self, submission: Submission) -> StepResult:
        if submission.extracted_text:
            return StepResult("extracted")

        try:
            content = await self._extractor.extract(submission.url)
        except Exception as exc:
            raise PipelineError.from_error(exc, "extract") from exc

        self._submissions.insert_source(
            submission.id, submission.url, content.source_type, content.raw_text
        )
        return StepResult("extracted", {"extracted_text": content.raw_text})

    async def classify(self, submission: Submission) -> StepResult:
        if submission.classification:
            return StepResult("classified")
        if not submission.extracted_text:
            raise PipelineError("Cannot classify: no extracted_text on submission", "classify", "permanent")

        try:
            classification = await self._llm.classify_content(submission.extracted_text)
        except Exception as exc:
            raise PipelineError.from_error(exc, "classify") from exc
        return StepResult("classified", {"classification": classification})

    async def generate(self, submission: Submission) -> StepResult:
        if submission.generated_tutorial:
            return StepResult("generated")
        if not submission.extracted_text or not submission.classification:
            raise PipelineError(
                "Cannot generate: missing extracted_text or classification", "generate", "permanent"
            )

        try:
            tutorial = await self._llm.generate_tutorial(
                submission.extracted_text, submission.url, submission.classification
            )
        except Exception as exc:
            raise PipelineError.from_error(exc, "generate") from exc
        return StepResult("generated", {"generated_tutorial": tutorial})

    async def publish(self, submission: Submission, hot_news: bool = False) -> StepResult:
        """
        Merge into or create the tutorial, attach media, link sources.

        The tutorial id is written to the submission as soon as the tutorial
        exists, so a crash during media generation resumes without merging or
        inserting a second time.
        """
        gen = submission.generated_tutorial
        if gen is None:
            raise PipelineError("Cannot publish: no generated_tutorial on submission", "publish", "permanent")

        existing = self._tutorials.get(submission.tutorial_id) if submission.tutorial_id else None
        if existing is not None and submission.completed_at is not None:
            return StepResult("published")

        if existing is not None:
            tutorial_id, audio_body, slug = existing.id, existing.body, existing.slug
        else:
            if submission.tutorial_id:
                logger.warning(
                    "[publish] linked tutorial missing, publishing again | id=%s | tutorial=%s",
                    submission.id,
                    submission.tutorial_id,
                )
            try:
                tutorial_id, audio_body, slug = await self._merge_or_create(submission, gen)
            except PipelineError:
                raise
            except Exception as exc:
                raise PipelineError.from_error(exc, "publish") from exc
            self._submissions.update(submission.id, {"tutorial_id": tutorial_id})

        await self._attach_media(tutorial_id, gen, audio_body, slug)
        if hot_news:
            await self._mark_hot_news(tutorial_id, gen)

        self._submissions.link_sources(submission.id, tutorial_id)
        return StepResult(
            "published",
            {"tutorial_id": tutorial_id, "completed_at": datetime.utcnow()},
        )

    async def _merge_or_create(
        self, submission: Submission, gen: GeneratedTutorialData
    ) -> tuple[str, str, str]:
        """Returns (tutorial_id, body to narrate, tutorial slug for media paths)."""
        topics = gen.classification.topics
        candidates = self._tutorials.find_merge_candidates(gen.classification.maturity_level, topics)
        for candidate in candidates:
            logger.debug(
                "[publish] merge check | id=%s | tutorial=%s | shared=%d",
                submission.id,
                candidate.id,
                shared_topic_count(topics, candidate.topics),
            )
        target = select_merge_target(candidates, topics, self._merge_threshold)

        if target is not None:
            merged = await self._llm.merge_tutorial(
                target, submission.extracted_text or gen.body, submission.url
            )
            self._tutorials.apply_merge(
                target.id, merged.body, merged.summary, merged.action_items, submission.url
            )
            logger.info("[publish] merged | id=%s | tutorial=%s", submission.id, target.id)
            return target.id, merged.body, target.slug

        payload = {
            "slug": gen.slug,
            "title": gen.title,
            "summary": gen.summary,
            "body": gen.body,
            "maturity_level": gen.classification.maturity_level,
            "level_relation": gen.classification.level_relation,
            "topics": gen.classification.topics,
            "tags": gen.classification.tags,
            "tools_mentioned": gen.classification.tools_mentioned,
            "difficulty": gen.classification.difficulty,
            "action_items": gen.action_items,
            "source_urls": [submission.url],
            "source_count": 1,
        }
        try:
            tutorial_id = self._tutorials.create(payload)
        except SlugConflictError:
            payload["slug"] = f"{gen.slug}-{secrets.token_hex(3)}"
            logger.info("[publish] slug collision, retrying | slug=%s", payload["slug"])
            tutorial_id = self._tutorials.create(payload)
        logger.info("[publish] created | id=%s | tutorial=%s", submission.id, tutorial_id)
        return tutorial_id, gen.body, payload["slug"]

    async def _attach_media(
        self, tutorial_id: str, gen: GeneratedTutorialData, audio_body: str, slug: str
    ) -> None:
        """Image and audio run concurrently; either failing only costs that medium."""
        image_url, audio_url = await asyncio.gather(
            self._images.generate(gen.title, gen.classification.topics, gen.summary, slug),
            self._audio.generate(audio_body, slug),
            return_exceptions=True,
        )
        media: dict[str, Any] = {}
        for column, result in (("image_url", image_url), ("audio_url", audio_url)):
            if isinstance(result, BaseException):
                logger.error(
                    "[publish] %s generation failed (non-fatal) | tutorial=%s | error=%s",
                    column.removesuffix("_url"),
                    tutorial_id,
                    result,
                )
            elif result:
                media[column] = result

        try:
            self._tutorials.update(tutorial_id, media)
        except Exception:
            logger.exception("[publish] failed to store media urls (non-fatal) | tutorial=%s", tutorial_id)

    async def _mark_hot_news(self, tutorial_id: str, gen: GeneratedTutorialData) -> None:
        try:
            blurb = await self._llm.generate_hot_news_blurb(
                gen.title, gen.summary, gen.classification.tools_mentioned
            )
            headline, teaser = blurb.headline, blurb.teaser
        except Exception as exc:
            logger.warning("[publish] hot news blurb failed, using title | tutorial=%s | error=%s", tutorial_id, exc)
            headline, teaser = gen.title, gen.summary[:200]
        self._tutorials.update(
            tutorial_id,
            {"is_hot_news": True, "hot_news_headline": headline, "hot_news_teaser": teaser},
        )
