"""
LLM completion service.

Wraps the Anthropic Messages API behind the operations the pipeline needs:
classify, generate, merge, audio-script rewrite and hot-news blurb. Structured
operations ask for a JSON object, extract it from the reply (tolerating
fenced blocks and surrounding prose) and validate it with pydantic.
"""

import json
import logging
import re
from typing import TypeVar

from anthropic import AsyncAnthropic
from pydantic import BaseModel, ValidationError

from linkforge.config import settings
from linkforge.models.tutorial import Tutorial
from linkforge.schemas.tutorial import (
    Classification,
    GeneratedTutorialData,
    HotNewsBlurb,
    MergedTutorialContent,
    TutorialDraft,
)
from linkforge.services import prompts

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Source text sent to the model is capped to keep prompts inside the context window.
MAX_SOURCE_CHARS = 30_000

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


class LLMResponseError(Exception):
    """The model replied, but not with the structure that was asked for."""


def extract_json_object(text: str) -> str:
    """Return the outermost {...} in an LLM reply, or '' if there is none."""
    if not text:
        return ""
    cleaned = text.strip()
    match = _CODE_BLOCK.search(cleaned)
    if match:
        cleaned = match.group(1).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        return ""
    return cleaned[start : end + 1]


def _truncate(text: str, limit: int = MAX_SOURCE_CHARS) -> str:
    return text if len(text) <= limit else text[:limit] + "\n[truncated]"


class LLMService:
    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str | None = None,
    ) -> None:
        self._client = client or AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY or None,
            timeout=settings.LLM_TIMEOUT,
            max_retries=1,
        )
        self._model = model or settings.LLM_MODEL

    async def complete(self, prompt: str, max_tokens: int = 4096) -> str:
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(block.text for block in response.content if block.type == "text").strip()
        logger.debug(
            "[llm] completion | model=%s | in=%s | out=%s",
            self._model,
            getattr(response.usage, "input_tokens", "?"),
            getattr(response.usage, "output_tokens", "?"),
        )
        return text

    async def _complete_json(self, prompt: str, model_cls: type[ModelT], max_tokens: int = 4096) -> ModelT:
        reply = await self.complete(prompt, max_tokens=max_tokens)
        raw = extract_json_object(reply)
        if not raw:
            raise LLMResponseError(f"LLM reply contained no JSON object for {model_cls.__name__}")
        try:
            return model_cls.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise LLMResponseError(f"LLM reply did not match {model_cls.__name__}: {exc}") from exc

    async def classify_content(self, text: str) -> Classification:
        prompt = prompts.CLASSIFY_PROMPT.format(framework=prompts.MATURITY_FRAMEWORK, text=_truncate(text))
        classification = await self._complete_json(prompt, Classification, max_tokens=1024)
        logger.info(
            "[llm] classified | level=%d | topics=%s", classification.maturity_level, classification.topics
        )
        return classification

    async def generate_tutorial(
        self, text: str, source_url: str, classification: Classification
    ) -> GeneratedTutorialData:
        prompt = prompts.GENERATE_PROMPT.format(
            framework=prompts.MATURITY_FRAMEWORK,
            url=source_url,
            classification=classification.model_dump_json(indent=2),
            text=_truncate(text),
        )
        draft = await self._complete_json(prompt, TutorialDraft, max_tokens=8192)
        logger.info("[llm] generated | slug=%s | chars=%d", draft.slug, len(draft.body))
        return GeneratedTutorialData(**draft.model_dump(), classification=classification)

    async def merge_tutorial(self, existing: Tutorial, new_text: str, new_url: str) -> MergedTutorialContent:
        prompt = prompts.MERGE_PROMPT.format(
            title=existing.title,
            summary=existing.summary,
            body=existing.body,
            action_items="\n".join(f"- {item}" for item in existing.action_items) or "(none)",
            url=new_url,
            text=_truncate(new_text),
        )
        return await self._complete_json(prompt, MergedTutorialContent, max_tokens=8192)

    async def generate_hot_news_blurb(self, title: str, summary: str, tools: list[str]) -> HotNewsBlurb:
        prompt = prompts.HOT_NEWS_PROMPT.format(
            title=title, summary=summary, tools=", ".join(tools) or "none"
        )
        return await self._complete_json(prompt, HotNewsBlurb, max_tokens=512)

    async def generate_audio_script(self, body: str) -> str | None:
        """Rewrite a tutorial body as plain spoken prose. Returns None on any failure."""
        try:
            script = await self.complete(prompts.AUDIO_SCRIPT_PROMPT.format(body=body))
        except Exception as exc:
            logger.error("[llm] audio script failed | error=%s", exc)
            return None
        return script or None
