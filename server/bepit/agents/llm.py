from __future__ import annotations

import hashlib
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Protocol, Tuple

from bepit.core.config import AppSettings

try:
    from langchain_openai import ChatOpenAI
except ImportError:  # pragma: no cover - optional dependency
    ChatOpenAI = None  # type: ignore[assignment]

try:
    from langchain_community.chat_models import ChatOllama
except ImportError:  # pragma: no cover - optional dependency
    ChatOllama = None  # type: ignore[assignment]

try:
    from langchain_google_genai import ChatGoogleGenerativeAI
except ImportError:  # pragma: no cover - optional dependency
    ChatGoogleGenerativeAI = None  # type: ignore[assignment]


class ChatLlmError(RuntimeError):
    """Raised when the text LLM cannot complete a request."""


class ChatLlm(Protocol):
    def generate(self, prompt: str, *, prompt_id: str) -> str:
        ...

    async def generate_async(self, prompt: str, *, prompt_id: str) -> str:
        ...


def _hash_prompt(prompt: str) -> str:
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()


def _message_text(result: object) -> str:
    if isinstance(result, str):
        return result.strip()

    content = getattr(result, "content", None)
    if isinstance(content, str):
        return content.strip()

    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                text = item.get("text")
                if text:
                    parts.append(str(text))
        return "\n".join(parts).strip()

    return str(result or "").strip()


class _BaseChatLlm:
    def __init__(self, *, cache_size: int = 64) -> None:
        self._cache_size = cache_size
        self._cache_lock = threading.RLock()
        self._cache: Dict[Tuple[str, str], str] = {}
        self._cache_order: Deque[Tuple[str, str]] = deque(maxlen=cache_size)

    def generate(self, prompt: str, *, prompt_id: str) -> str:
        cache_key = (prompt_id, _hash_prompt(prompt))
        cached = self._lookup_cache(cache_key)
        if cached is not None:
            return cached

        text = self._invoke_model(prompt)
        self._store_cache(cache_key, text)
        return text

    async def generate_async(self, prompt: str, *, prompt_id: str) -> str:
        cache_key = (prompt_id, _hash_prompt(prompt))
        cached = self._lookup_cache(cache_key)
        if cached is not None:
            return cached

        text = await self._invoke_model_async(prompt)
        self._store_cache(cache_key, text)
        return text

    def _lookup_cache(self, cache_key: Tuple[str, str]) -> Optional[str]:
        with self._cache_lock:
            cached = self._cache.get(cache_key)
            if cached is None:
                return None
            self._touch(cache_key)
            return cached

    def _store_cache(self, cache_key: Tuple[str, str], text: str) -> None:
        if not text:
            return
        with self._cache_lock:
            if cache_key not in self._cache and len(self._cache_order) >= self._cache_size:
                oldest = self._cache_order.popleft()
                self._cache.pop(oldest, None)
            self._cache[cache_key] = text
            self._touch(cache_key)

    def _touch(self, cache_key: Tuple[str, str]) -> None:
        try:
            self._cache_order.remove(cache_key)
        except ValueError:
            pass
        self._cache_order.append(cache_key)

    def _invoke_model(self, prompt: str) -> str:
        raise NotImplementedError  # pragma: no cover - implemented by subclasses

    async def _invoke_model_async(self, prompt: str) -> str:
        raise NotImplementedError  # pragma: no cover - implemented by subclasses


_fake_responses: Deque[str] = deque()
_fake_lock = threading.RLock()


def queue_fake_response(text: str) -> None:
    with _fake_lock:
        _fake_responses.append(text)


def clear_fake_responses() -> None:
    with _fake_lock:
        _fake_responses.clear()


class _FakeChatLlm(_BaseChatLlm):
    def _invoke_model(self, prompt: str) -> str:
        with _fake_lock:
            if not _fake_responses:
                raise ChatLlmError("No fake responses queued for chat LLM")
            return _fake_responses.popleft()

    async def _invoke_model_async(self, prompt: str) -> str:
        return self._invoke_model(prompt)


class _LangchainChatLlm(_BaseChatLlm):
    """Shared invoke path for LangChain chat models."""

    def __init__(self, client: Any, *, timeout: int, cache_size: int = 64) -> None:
        super().__init__(cache_size=cache_size)
        self._client = client
        self._timeout = timeout

    def _invoke_model(self, prompt: str) -> str:
        return _message_text(self._client.invoke(prompt, config=self._config()))

    async def _invoke_model_async(self, prompt: str) -> str:
        return _message_text(await self._client.ainvoke(prompt, config=self._config()))

    def _config(self) -> dict[str, Any]:
        return {"timeout": self._timeout}


def _openai_client(settings: AppSettings) -> Any:
    if ChatOpenAI is None:  # pragma: no cover - optional dependency
        raise ChatLlmError("langchain-openai is not installed.")
    client_kwargs: dict[str, Any] = {
        "model": settings.llm_model,
        "temperature": settings.llm_temperature,
        "timeout": settings.llm_timeout_sec,
    }
    if settings.openai_api_key:
        client_kwargs["api_key"] = settings.openai_api_key
    return ChatOpenAI(**client_kwargs)


def _ollama_client(settings: AppSettings) -> Any:
    if ChatOllama is None:  # pragma: no cover - optional dependency
        raise ChatLlmError("langchain-community is not installed.")
    client_kwargs: dict[str, Any] = {
        "model": settings.llm_model,
        "temperature": settings.llm_temperature,
    }
    if settings.ollama_host:
        client_kwargs["base_url"] = settings.ollama_host
    return ChatOllama(**client_kwargs)


def _gemini_client(settings: AppSettings) -> Any:
    if ChatGoogleGenerativeAI is None:  # pragma: no cover - optional dependency
        raise ChatLlmError("langchain-google-genai is not installed.")
    if not settings.google_api_key:
        raise ChatLlmError("GEMINI_API_KEY / GOOGLE_API_KEY is not configured.")
    return ChatGoogleGenerativeAI(
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        google_api_key=settings.google_api_key,
    )


ChatLlmFactory = Callable[[], ChatLlm]

_CLIENT_BUILDERS: dict[str, Callable[[AppSettings], Any]] = {
    "openai": _openai_client,
    "local": _ollama_client,
    "gemini": _gemini_client,
}


def get_chat_llm(settings: AppSettings) -> Optional[ChatLlmFactory]:
    """
    Resolve the configured provider into a factory; ``None`` means the LLM is disabled
    and callers use their deterministic paths.
    """
    provider = (settings.llm_provider or "none").strip().lower()
    cache_size = 64

    if not settings.llm_enabled:
        return None

    if provider == "fake":
        return lambda: _FakeChatLlm(cache_size=cache_size)

    builder = _CLIENT_BUILDERS.get(provider)
    if builder is None:
        raise ChatLlmError(f"Unsupported LLM provider '{settings.llm_provider}'")

    return lambda: _LangchainChatLlm(
        builder(settings),
        timeout=settings.llm_timeout_sec,
        cache_size=cache_size,
    )


__all__ = [
    "ChatLlm",
    "ChatLlmError",
    "ChatLlmFactory",
    "clear_fake_responses",
    "get_chat_llm",
    "queue_fake_response",
]
