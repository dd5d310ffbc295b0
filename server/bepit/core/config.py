from functools import lru_cache
from typing import List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    api_title: str = "BEPIT Concierge API"
    api_version: str = "0.1.0"

    db_backend: str = Field("sqlite", alias="DB_BACKEND")  # sqlite | postgres
    sqlite_url: str = Field(
        default="sqlite:///./data/sqlite/bepit.db",
        validation_alias=AliasChoices("BEPIT_SQLITE_URL", "SQLITE_URL"),
    )
    postgres_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("BEPIT_POSTGRES_URL", "DATABASE_URL"),
    )
    db_auto_create: bool = False

    llm_provider: str = "none"  # none | fake | openai | local | gemini
    llm_model: str = "gpt-4.1-mini"
    llm_temperature: float = 0.3
    llm_timeout_sec: int = 15
    openai_api_key: str | None = None
    google_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_API_KEY", "GEMINI_API_KEY"),
    )
    ollama_host: str | None = None

    admin_api_key: str | None = None

    itinerary_default_days: int = 1
    itinerary_max_days: int = 7
    itinerary_max_tips: int = 3
    composer_template_items: int = 3
    composer_llm_items: int = 8

    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "https://bepitnexus.netlify.app",
        ]
    )
    frontend_origin: str | None = Field(default=None, alias="FRONTEND_ORIGIN")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def llm_enabled(self) -> bool:
        return (self.llm_provider or "none").strip().lower() not in {"", "none"}

    @property
    def resolved_cors_origins(self) -> List[str]:
        """
        Returns the configured CORS origins plus the optional deployed frontend origin, deduped.
        """
        normalized: list[str] = []

        def _append(origin: str | None) -> None:
            if not origin:
                return
            cleaned = origin.rstrip("/")
            if cleaned not in normalized:
                normalized.append(cleaned)

        for origin in self.cors_origins:
            _append(origin)

        _append(self.frontend_origin)
        return normalized


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings()
