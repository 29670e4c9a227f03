import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import status
from pydantic import ValidationError

from scamlens.schemas.analyze_schemas import (
    AnalysisRequest,
    FetchOutcome,
    Verdict,
    fallback_verdict,
)
from scamlens.pipelines.prompt_builder import build_prompt
from scamlens.services.content_fetcher import ContentFetcher
from scamlens.services.llm_client import LLMClient
from scamlens.utils.logging_config import StructuredLogger, metrics

logger = StructuredLogger(__name__)


class InvalidModelResponse(ValueError):
    """The model's reply is not a JSON object with the verdict fields."""


@dataclass
class AnalysisOutcome:
    status_code: int
    body: Dict[str, Any]


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text[3:]
        if text[:4].lower() == "json":
            text = text[4:]
        if text.endswith("```"):
            text = text[:-3]
    return text.strip()


def parse_verdict(raw_text: Optional[str]) -> Dict[str, Any]:
    """
    Decode the model reply and check it has the verdict shape.

    Returns the decoded object unchanged so extra fields the model added
    are relayed as-is.

    Raises:
        InvalidModelResponse: empty reply, invalid JSON, not an object,
            or missing/ill-typed verdict fields.
    """
    if not raw_text or not raw_text.strip():
        raise InvalidModelResponse("model reply is empty")

    try:
        decoded = json.loads(_strip_code_fence(raw_text))
    except json.JSONDecodeError as e:
        raise InvalidModelResponse(f"model reply is not valid JSON: {e}") from e

    if not isinstance(decoded, dict):
        raise InvalidModelResponse(f"model reply is a JSON {type(decoded).__name__}, expected an object")

    try:
        Verdict.model_validate(decoded)
    except ValidationError as e:
        raise InvalidModelResponse(f"model reply does not match the verdict shape: {e}") from e

    return decoded


class ScamAnalyzer:
    """
    Runs one request through fetch → prompt → model → validation.

    Holds only read-only collaborators built at startup; safe to share
    between concurrent requests.
    """

    def __init__(self, settings, llm_client: LLMClient, fetcher: Optional[ContentFetcher] = None):
        self.settings = settings
        self.llm_client = llm_client
        self.fetcher = fetcher or ContentFetcher.from_settings(settings)

    async def _fetch(self, url: str) -> FetchOutcome:
        outcome = await self.fetcher.fetch(url)
        if not outcome.ok:
            metrics.increment("analyze.fetch.failed")
        return outcome

    async def _invoke_model(self, prompt: str, images) -> str:
        start = time.time()
        try:
            return await asyncio.wait_for(
                self.llm_client.generate(prompt, images),
                timeout=self.settings.llm_timeout_seconds,
            )
        finally:
            metrics.timing("analyze.llm.latency", time.time() - start)

    async def analyze(self, request: AnalysisRequest) -> AnalysisOutcome:
        """
        Produce the response for an already-validated request.

        Every failure past input validation ends in the fallback verdict
        with status 500; nothing is retried.
        """
        try:
            fetch_outcome = None
            if request.url and request.url.strip():
                fetch_outcome = await self._fetch(request.url)

            document = build_prompt(
                request,
                fetch_outcome=fetch_outcome,
                output_language=self.settings.output_language,
                max_text_chars=self.settings.fetch_max_text_chars,
                max_form_chars=self.settings.fetch_max_form_chars,
            )
            logger.debug(
                "Prompt assembled",
                segments=len(document.segments),
                prompt_chars=len(document.text),
                images=len(document.images),
            )

            raw_reply = await self._invoke_model(document.text, document.images)
            verdict = parse_verdict(raw_reply)

        except Exception as e:
            metrics.increment("analyze.errors")
            logger.error(
                "Analysis failed, returning fallback verdict",
                exc_info=True,
                error_type=type(e).__name__,
                provider=self.llm_client.provider,
            )
            return AnalysisOutcome(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, body=fallback_verdict())

        metrics.increment(f"analyze.verdict.{str(verdict['verdict']).lower().replace(' ', '_')}")
        logger.info(
            "Analysis finished",
            verdict=verdict["verdict"],
            confidence=verdict["confidence"],
            red_flags=len(verdict.get("red_flags") or []),
        )
        return AnalysisOutcome(status_code=status.HTTP_200_OK, body=verdict)
