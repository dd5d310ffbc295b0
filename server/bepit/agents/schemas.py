from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from bepit.core.text import normalize

CompanionLiteral = Literal["sozinho", "casal", "familia", "amigos"]
BudgetLiteral = Literal["economico", "moderado", "luxo"]

MAX_KEYWORDS = 5

_COMPANIONS = frozenset({"sozinho", "casal", "familia", "amigos"})
_BUDGETS = frozenset({"economico", "moderado", "luxo"})


def _coerce_choice(value: object, allowed: frozenset[str]) -> object:
    # Unknown labels from the model degrade to None instead of failing the whole extraction.
    if not isinstance(value, str):
        return value
    cleaned = normalize(value)
    return cleaned if cleaned in allowed else None


class ExtractionResult(BaseModel):
    """Structured output for keyword and traveller-profile extraction."""

    correctedText: str = Field(
        ...,
        description="User message with spelling fixed; the original text when unavailable.",
    )
    companionType: Optional[CompanionLiteral] = Field(
        default=None,
        description="Who the user is travelling with.",
    )
    mood: Optional[str] = Field(
        default=None,
        description="Short description of the desired vibe (romantic, agitado, tranquilo...).",
    )
    budget: Optional[BudgetLiteral] = Field(
        default=None,
        description="Inferred spending band.",
    )
    suggestedCitySlug: Optional[str] = Field(
        default=None,
        description="Slug of a known city mentioned or implied by the message.",
    )
    keywords: List[str] = Field(
        default_factory=list,
        description="Search keywords (tags, categories, dishes).",
    )

    @field_validator("correctedText")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        return value.strip()

    @field_validator("mood", "suggestedCitySlug")
    @classmethod
    def _strip_optional(cls, value: Optional[str]) -> Optional[str]:
        return (value.strip() or None) if value else None

    @field_validator("companionType", mode="before")
    @classmethod
    def _coerce_companion(cls, value: object) -> object:
        return _coerce_choice(value, _COMPANIONS)

    @field_validator("budget", mode="before")
    @classmethod
    def _coerce_budget(cls, value: object) -> object:
        return _coerce_choice(value, _BUDGETS)

    @field_validator("keywords", mode="before")
    @classmethod
    def _clean_keywords(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        cleaned: list[str] = []
        for keyword in value:  # type: ignore[union-attr]
            text = str(keyword).strip().lower()
            if text and text not in cleaned:
                cleaned.append(text)
        return cleaned[:MAX_KEYWORDS]

    @classmethod
    def empty(cls, text: str) -> "ExtractionResult":
        return cls(correctedText=text)

    def profile_summary(self) -> str:
        parts: list[str] = []
        if self.companionType:
            parts.append(f"companhia: {self.companionType}")
        if self.mood:
            parts.append(f"clima: {self.mood}")
        if self.budget:
            parts.append(f"orçamento: {self.budget}")
        return ", ".join(parts) or "sem perfil identificado"
