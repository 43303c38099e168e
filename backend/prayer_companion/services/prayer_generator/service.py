"""Prayer generation service: Gemini (primary) + Groq (fallback).

Provider-agnostic base class with two concrete implementations:
- GeminiPrayerGenerator: Google Gemini with Google Search grounding, so the
  result carries the web sources the prayers were found in
- GroqPrayerGenerator:   Groq LPU, JSON mode, no grounding sources

``generate()`` returns the raw decoded payload. Shape validation is left to
the caller so a schema mismatch can be told apart from a transport failure.
Errors are classified on the way out:
- timeouts, provider/API errors, empty answers -> ``TransientFailure``
- text that is not a JSON object               -> ``InvalidResponse``
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from prayer_companion.config import Settings, get_settings
from prayer_companion.models import InvalidResponse, TransientFailure

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a master of world religions and liturgy. Your goal is to provide "
    "authentic, real prayers from established traditions. You never invent "
    "scripture references, and you say plainly when a prayer is a new "
    "composition rather than a historical text."
)

PRAYER_COUNT = 3


@dataclass
class GenerationOutput:
    """Raw provider answer: model text plus any grounding sources."""
    text: str
    sources: list[dict[str, str]] = field(default_factory=list)


class PrayerGeneratorService(ABC):
    """Base class for prayer generators.

    Prompt construction, JSON extraction and error classification live here.
    Subclasses only implement ``_generate()`` for their specific API client.
    """

    _timeout: float

    @abstractmethod
    async def _generate(self, prompt: str, timeout: float | None = None) -> GenerationOutput:
        """Send prompt to the AI provider and return its raw answer."""
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name for logging."""
        ...

    # ── Utilities ─────────────────────────────────────────────────────

    @staticmethod
    def _sanitize_input(text: str, max_length: int = 500) -> str:
        """Sanitize user input before passing it to AI prompts.

        Strips control characters and limits length to prevent
        prompt injection and abuse.
        """
        cleaned = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
        return cleaned[:max_length].strip()

    @staticmethod
    def _extract_json(text: str) -> str:
        if "```json" in text:
            return text.split("```json")[1].split("```")[0].strip()
        if "```" in text:
            return text.split("```")[1].split("```")[0].strip()
        return text.strip()

    @staticmethod
    def _build_prompt(tradition: str, situation: str) -> str:
        return (
            f"The user is seeking {PRAYER_COUNT} distinct, REAL, AUTHENTIC prayers "
            f"from their tradition.\n\n"
            f"Tradition: {tradition}\n"
            f'Situation: "{situation}"\n\n'
            f"INSTRUCTIONS:\n"
            f"1. Search for EXISTING, VERBATIM prayers, mantras or scriptures from the "
            f"{tradition} tradition that address this situation.\n"
            f"2. Provide {PRAYER_COUNT} DIFFERENT options that vary in length, focus or "
            f"source (e.g. one from scripture, one from a well-known teacher or saint, "
            f"one traditional liturgical piece).\n"
            f"3. If well-known scriptural or liturgical prayers exist, give their exact text.\n"
            f"4. If no verbatim prayer fits, compose one that strictly follows the "
            f"theological structure, language and conventions of {tradition}.\n"
            f"5. Mark verbatim texts as canonical and new compositions as not canonical.\n\n"
            f"Respond ONLY with valid JSON:\n"
            f'{{"prayers": [{{"title": "Traditional name or descriptive title", '
            f'"body": "Full text of the prayer", '
            f'"explanation": "Where it comes from, e.g. Verse 5 of Psalm 23", '
            f'"is_canonical": true, '
            f'"origin_label": "Specific text or historical source"}}]}}\n\n'
            f"Generate exactly {PRAYER_COUNT} prayers. Keep the language reverent."
        )

    # ── Shared implementation ─────────────────────────────────────────

    async def generate(self, tradition: str, situation: str) -> dict[str, Any]:
        """Generate a raw prayer payload ``{"prayers": [...], "sources": [...]}``.

        Raises:
            TransientFailure: The provider timed out, errored or answered empty.
            InvalidResponse: The answer is not a JSON object.
        """
        tradition = self._sanitize_input(tradition, max_length=100)
        situation = self._sanitize_input(situation, max_length=500)
        prompt = self._build_prompt(tradition, situation)

        try:
            output = await self._generate(prompt)
        except asyncio.TimeoutError as e:
            raise TransientFailure(f"{self.provider_name} timed out") from e
        except Exception as e:
            raise TransientFailure(
                f"{self.provider_name} request failed: {type(e).__name__}: {e}"
            ) from e

        if not output.text:
            raise TransientFailure(f"{self.provider_name} returned no response")

        try:
            data = json.loads(self._extract_json(output.text))
        except json.JSONDecodeError as e:
            raise InvalidResponse(f"{self.provider_name} returned malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise InvalidResponse(
                f"{self.provider_name} returned {type(data).__name__}, expected an object"
            )

        data["sources"] = output.sources
        logger.info(
            f"[{self.provider_name}] Generated {len(data.get('prayers') or [])} prayers, "
            f"{len(output.sources)} sources"
        )
        return data


# ═══════════════════════════════════════════════════════════════════════
# Provider: Gemini  (primary, search grounded)
# ═══════════════════════════════════════════════════════════════════════

class GeminiPrayerGenerator(PrayerGeneratorService):
    """Google Gemini with the Google Search tool enabled."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        from google import genai

        self._api_key = api_key
        if not self._api_key:
            raise ValueError("GEMINI_API_KEY not provided")
        self._client = genai.Client(api_key=self._api_key)
        self._model_name = model_name or "gemini-2.5-flash"
        self._timeout = timeout_seconds
        logger.info(f"[AI] Gemini ready: {self._model_name}")

    @property
    def provider_name(self) -> str:
        return "Gemini"

    @staticmethod
    def _extract_sources(response: Any) -> list[dict[str, str]]:
        """Collect web citations from the grounding metadata, if any."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return []
        metadata = getattr(candidates[0], "grounding_metadata", None)
        chunks = getattr(metadata, "grounding_chunks", None) or []
        sources: list[dict[str, str]] = []
        for chunk in chunks:
            web = getattr(chunk, "web", None)
            if web is None:
                continue
            sources.append({
                "title": getattr(web, "title", None) or "Religious Source",
                "uri": getattr(web, "uri", None) or "",
            })
        return sources

    async def _generate(self, prompt: str, timeout: float | None = None) -> GenerationOutput:
        from google.genai import types

        t = timeout or self._timeout
        config = types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            tools=[types.Tool(google_search=types.GoogleSearch())],
            temperature=0.4,
        )
        try:
            resp = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._model_name,
                    contents=prompt,
                    config=config,
                ),
                timeout=t,
            )
            return GenerationOutput(
                text=(resp.text or "").strip(),
                sources=self._extract_sources(resp),
            )
        except asyncio.TimeoutError:
            logger.warning(f"[Gemini] Timeout after {t}s")
            raise
        except Exception as e:
            logger.warning(f"[Gemini] Error: {e}")
            raise


# ═══════════════════════════════════════════════════════════════════════
# Provider: Groq  (fallback, no grounding)
# ═══════════════════════════════════════════════════════════════════════

class GroqPrayerGenerator(PrayerGeneratorService):
    """Groq LPU in JSON mode."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        from groq import AsyncGroq

        self._api_key = api_key
        if not self._api_key:
            raise ValueError("GROQ_API_KEY not provided")
        self._client = AsyncGroq(api_key=self._api_key)
        self._model_name = model_name or "llama-3.3-70b-versatile"
        self._timeout = timeout_seconds
        logger.info(f"[AI] Groq ready: {self._model_name}")

    @property
    def provider_name(self) -> str:
        return "Groq"

    async def _generate(self, prompt: str, timeout: float | None = None) -> GenerationOutput:
        t = timeout or self._timeout
        try:
            resp = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model_name,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    response_format={"type": "json_object"},
                    temperature=0.4,
                    max_tokens=4096,
                ),
                timeout=t,
            )
            return GenerationOutput(text=(resp.choices[0].message.content or "").strip())
        except asyncio.TimeoutError:
            logger.warning(f"[Groq] Timeout after {t}s")
            raise
        except Exception as e:
            logger.warning(f"[Groq] Error: {e}")
            raise


# ═══════════════════════════════════════════════════════════════════════
# Factory: Gemini → Groq
# ═══════════════════════════════════════════════════════════════════════

def create_prayer_generator(settings: Settings | None = None) -> PrayerGeneratorService:
    """Create the best available generator. Gemini first, Groq fallback."""
    settings = settings or get_settings()

    if settings.gemini_api_key:
        try:
            return GeminiPrayerGenerator(
                api_key=settings.gemini_api_key,
                model_name=settings.gemini_model,
                timeout_seconds=settings.generation_timeout_seconds,
            )
        except Exception as e:
            logger.info(f"[AI] Gemini init failed: {e}")

    if settings.groq_api_key:
        try:
            return GroqPrayerGenerator(
                api_key=settings.groq_api_key,
                model_name=settings.groq_model,
                timeout_seconds=settings.generation_timeout_seconds,
            )
        except Exception as e:
            logger.info(f"[AI] Groq init failed: {e}")

    raise ValueError("No AI provider available. Set GEMINI_API_KEY or GROQ_API_KEY in .env")
