from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from bepit.agents.llm import ChatLlm
from bepit.agents.prompts import EXTRACTION_PROMPT
from bepit.agents.schemas import ExtractionResult
from bepit.core.text import normalize

logger = logging.getLogger("bepit.extractor")

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass(frozen=True)
class KnownCity:
    id: str
    name: str
    slug: str


def strip_code_fences(output: str) -> str:
    text = (output or "").strip()
    if text.startswith("```"):
        text = _FENCE.sub("", text).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start : end + 1]
    return text


def detect_city(text: str, cities: Sequence[KnownCity]) -> Optional[KnownCity]:
    """Longest city name or slug contained in the normalized message."""
    normalized = normalize(text)
    if not normalized:
        return None
    best: Optional[KnownCity] = None
    best_length = 0
    for city in cities:
        for candidate in (normalize(city.name), normalize(city.slug.replace("-", " ")), city.slug.lower()):
            if candidate and candidate in normalized and len(candidate) > best_length:
                best, best_length = city, len(candidate)
    return best


class KeywordExtractor:
    """
    Turns a user message into search keywords and a light traveller profile.

    With an LLM the message is sent through a JSON extraction prompt; without one only the
    city is detected by substring. Every failure degrades to an empty extraction.
    """

    def __init__(self, llm: ChatLlm | None = None) -> None:
        self._llm = llm

    async def extract_async(
        self,
        text: str,
        cities: Sequence[KnownCity],
        *,
        region_name: str = "",
    ) -> ExtractionResult:
        if self._llm is None:
            return self._extract_deterministic(text, cities)

        variables = {
            "region_name": region_name,
            "cities": "\n".join(f"- {city.slug}: {city.name}" for city in cities) or "- (nenhuma)",
            "user_message": text,
        }
        prompt_text = EXTRACTION_PROMPT.render(variables)
        start = time.perf_counter()
        try:
            raw = await self._llm.generate_async(prompt_text, prompt_id=EXTRACTION_PROMPT.prompt_id)
            result = self._parse(raw, text)
        except (ValueError, ValidationError) as exc:
            self._log_call("parse_error", start, error=str(exc))
            return ExtractionResult.empty(text)
        except Exception as exc:
            self._log_call("error", start, error=str(exc))
            return ExtractionResult.empty(text)

        known_slugs = {city.slug for city in cities}
        if result.suggestedCitySlug and result.suggestedCitySlug not in known_slugs:
            result = result.model_copy(update={"suggestedCitySlug": None})
        self._log_call("success", start, keywords=result.keywords, city=result.suggestedCitySlug)
        return result

    @staticmethod
    def _parse(raw: str, original_text: str) -> ExtractionResult:
        payload: Any = json.loads(strip_code_fences(raw))
        if not isinstance(payload, dict):
            raise ValueError("Extraction output is not a JSON object.")
        if not str(payload.get("correctedText") or "").strip():
            payload["correctedText"] = original_text
        return ExtractionResult.model_validate(payload)

    @staticmethod
    def _extract_deterministic(text: str, cities: Sequence[KnownCity]) -> ExtractionResult:
        city = detect_city(text, cities)
        return ExtractionResult(
            correctedText=text,
            suggestedCitySlug=city.slug if city else None,
        )

    @staticmethod
    def _log_call(status: str, start: float, **extra: Any) -> None:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        log = logger.warning if status != "success" else logger.info
        log(
            "llm.extraction",
            extra={"promptId": EXTRACTION_PROMPT.prompt_id, "status": status, "latencyMs": latency_ms, **extra},
        )
