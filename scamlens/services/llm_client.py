import base64
import copy
import logging
from typing import Any, Dict, List, Sequence

from openai import AsyncOpenAI

from scamlens.schemas.analyze_schemas import VERDICT_VALUES, ImageAttachment

logger = logging.getLogger(__name__)


VERDICT_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "verdict": {
            "type": "string",
            "enum": list(VERDICT_VALUES),
            "description": "Final verdict: 'SCAM', 'NOT A SCAM' or 'UNCERTAIN'.",
        },
        "confidence": {
            "type": "number",
            "description": "Confidence in the verdict, an integer from 0 to 100.",
        },
        "reason": {
            "type": "string",
            "description": "Short explanation of the verdict, in the requested language.",
        },
        "red_flags": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Suspicious signs that were found, in the requested language.",
        },
        "advice": {
            "type": "string",
            "description": "Concrete next steps for the user, in the requested language.",
        },
    },
    "required": ["verdict", "confidence", "reason", "advice"],
}

# Scam material routinely discusses threats, sex and fraud; blocking on
# these categories would hide exactly the messages users need checked.
SAFETY_SETTINGS: List[Dict[str, str]] = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]


class LLMClient:
    """
    Sends an assembled prompt (plus screenshots) to a hosted model and
    returns the raw reply text, which should hold one JSON object.

    Implementations raise on any failure; the caller decides what the
    user sees.
    """

    provider = "base"

    def __init__(self, model: str):
        self.model = model

    async def generate(self, prompt: str, images: Sequence[ImageAttachment] = ()) -> str:
        raise NotImplementedError


class OpenAIClient(LLMClient):
    """Chat Completions with a JSON schema response format."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_tokens: int = 1000,
        timeout: float = 30.0,
    ):
        super().__init__(model)
        # One attempt per request; the analyzer does not retry either
        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _build_content(self, prompt: str, images: Sequence[ImageAttachment]) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image in images:
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": image.as_data_url(), "detail": "high"},
                }
            )
        return content

    async def generate(self, prompt: str, images: Sequence[ImageAttachment] = ()) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "scam_verdict", "schema": VERDICT_RESPONSE_SCHEMA},
            },
            messages=[{"role": "user", "content": self._build_content(prompt, images)}],
        )

        message = response.choices[0].message
        if not message.content:
            refusal = getattr(message, "refusal", None)
            raise ValueError(f"OpenAI returned no content (refusal: {refusal!r})")
        return message.content


def to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Gemini's schema dialect spells types in upper case ("OBJECT", "STRING")."""
    converted = copy.deepcopy(schema)

    def _upper(node):
        if isinstance(node, dict):
            for key, value in node.items():
                if key == "type" and isinstance(value, str):
                    node[key] = value.upper()
                else:
                    _upper(value)
        elif isinstance(node, list):
            for item in node:
                _upper(item)

    _upper(converted)
    return converted


class GeminiClient(LLMClient):
    """google-generativeai GenerativeModel with response schema and relaxed safety filters."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        temperature: float = 0.2,
        max_tokens: int = 1000,
        timeout: float = 30.0,
    ):
        super().__init__(model)
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        self.timeout = timeout
        self._model = genai.GenerativeModel(
            model_name=model,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": max_tokens,
                "response_mime_type": "application/json",
                "response_schema": to_gemini_schema(VERDICT_RESPONSE_SCHEMA),
            },
            safety_settings=SAFETY_SETTINGS,
        )

    async def generate(self, prompt: str, images: Sequence[ImageAttachment] = ()) -> str:
        parts: List[Any] = [prompt]
        for image in images:
            parts.append(
                {
                    "mime_type": image.mime_type or "image/jpeg",
                    "data": base64.b64decode(image.data),
                }
            )

        response = await self._model.generate_content_async(
            parts,
            request_options={"timeout": self.timeout},
        )

        if not response.parts:
            candidate = response.candidates[0] if response.candidates else None
            finish_reason = candidate.finish_reason if candidate else None
            raise ValueError(f"Gemini returned no parts (finish reason: {finish_reason})")
        return response.text


def build_llm_client(settings) -> LLMClient:
    """
    Create the process-wide model client from settings.

    Raises ValueError if the selected provider is unknown or its API key
    is not configured, so a misconfigured server fails at startup.
    """
    provider = settings.llm_provider.lower()
    common = {
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
        "timeout": settings.llm_timeout_seconds,
    }

    if provider == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY not found in environment variables")
        client: LLMClient = OpenAIClient(settings.openai_api_key, model=settings.openai_model, **common)
    elif provider == "gemini":
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY not found in environment variables")
        client = GeminiClient(settings.gemini_api_key, model=settings.gemini_model, **common)
    else:
        raise ValueError(f"Unsupported LLM_PROVIDER '{settings.llm_provider}'. Use 'openai' or 'gemini'.")

    logger.info(f"LLM client ready: provider={client.provider} model={client.model}")
    return client
