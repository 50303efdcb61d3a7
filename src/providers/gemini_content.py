"""
Gemini generateContent client for the one-shot calls around a live session.

- describe_scene(): captions the first camera still; the caption seeds the
  tutor's system instruction. Never fails: falls back to a generic caption.
- enrich(): translation + IPA phonetics for one utterance, constrained to a
  JSON schema. Raises EnrichmentFailure so the worker can mark the entry.
"""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from ..config import ContentConfig, EnrichmentConfig, TutorConfig
from ..core.errors import EnrichmentFailure
from ..core.models import ContextTurn, EnrichmentResult, Phonetic
from ..core.prompts import ENRICHMENT_RESPONSE_SCHEMA, SCENE_PROMPT, build_enrichment_prompt
from ..logging_config import get_logger

logger = get_logger(__name__)


def extract_text(response: Dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = response.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def parse_enrichment(raw_text: str) -> EnrichmentResult:
    """Parse the schema-constrained JSON answer. Raises EnrichmentFailure on bad shape."""
    try:
        data = json.loads(raw_text.strip())
    except json.JSONDecodeError as e:
        raise EnrichmentFailure(cause=e) from e
    if not isinstance(data, dict) or not isinstance(data.get("translation"), str):
        raise EnrichmentFailure("enrichment response missing translation")

    phonetics: List[Phonetic] = []
    for item in data.get("phonetics") or []:
        if isinstance(item, dict) and item.get("word") and item.get("ipa"):
            phonetics.append(Phonetic(word=str(item["word"]), ipa=str(item["ipa"])))
    return EnrichmentResult(translation=data["translation"], phonetics=phonetics)


class GeminiContentClient:
    """Scene description and enrichment over the REST generateContent endpoint."""

    def __init__(
        self,
        config: ContentConfig,
        enrichment: Optional[EnrichmentConfig] = None,
        tutor: Optional[TutorConfig] = None,
    ):
        self.config = config
        self.enrichment = enrichment or EnrichmentConfig()
        self.tutor = tutor or TutorConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _generate(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.config.api_key:
            raise RuntimeError("GOOGLE_API_KEY is required for Gemini content calls")
        session = await self._ensure_session()
        url = f"{self.config.base_url.rstrip('/')}/models/{model}:generateContent"
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_sec)
        headers = {"x-goog-api-key": self.config.api_key}
        async with session.post(url, json=payload, headers=headers, timeout=timeout) as response:
            if response.status >= 400:
                body = await response.text()
                logger.error(
                    "Gemini API error",
                    model=model,
                    status=response.status,
                    body_preview=body[:200],
                )
                response.raise_for_status()
            return await response.json()

    async def describe_scene(self, image: bytes) -> str:
        payload = {
            "contents": [{
                "parts": [
                    {"text": SCENE_PROMPT},
                    {"inlineData": {"mimeType": "image/jpeg", "data": base64.b64encode(image).decode("ascii")}},
                ]
            }]
        }
        try:
            data = await self._generate(self.config.scene_model, payload)
            caption = extract_text(data).strip()
        except asyncio.TimeoutError:
            logger.warning("Scene description timed out", timeout=self.config.timeout_sec)
            return self.config.scene_fallback
        except (aiohttp.ClientError, RuntimeError, ValueError) as e:
            logger.error("Error getting scene description", error=str(e))
            return self.config.scene_fallback

        if not caption:
            return self.config.scene_fallback
        logger.info("Scene described", preview=caption[:80])
        return caption

    async def enrich(self, text: str, context: Sequence[ContextTurn]) -> EnrichmentResult:
        prompt = build_enrichment_prompt(
            text,
            context,
            difficulty=self.tutor.difficulty,
            learner_language=self.enrichment.learner_language,
            max_words=self.enrichment.max_phonetic_words,
        )
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": ENRICHMENT_RESPONSE_SCHEMA,
            },
        }
        try:
            data = await self._generate(self.config.enrichment_model, payload)
        except asyncio.TimeoutError as e:
            raise EnrichmentFailure("enrichment timed out", cause=e) from e
        except (aiohttp.ClientError, RuntimeError, ValueError) as e:
            raise EnrichmentFailure(cause=e) from e
        return parse_enrichment(extract_text(data))
