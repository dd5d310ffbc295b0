from __future__ import annotations

import pytest

from bepit.agents import llm as llm_module
from bepit.agents.llm import ChatLlmError, clear_fake_responses, get_chat_llm, queue_fake_response
from bepit.core.config import AppSettings


def setup_function() -> None:
    clear_fake_responses()


def test_provider_none_disables_llm() -> None:
    assert get_chat_llm(AppSettings(llm_provider="none")) is None


def test_unknown_provider_raises() -> None:
    with pytest.raises(ChatLlmError):
        get_chat_llm(AppSettings(llm_provider="mystery"))


def test_fake_llm_returns_enqueued_response() -> None:
    factory = get_chat_llm(AppSettings(llm_provider="fake"))
    queue_fake_response("first")

    llm = factory()

    assert llm.generate("prompt", prompt_id="concierge.response.v1") == "first"


def test_fake_llm_caches_results_by_prompt_id_and_text() -> None:
    factory = get_chat_llm(AppSettings(llm_provider="fake"))
    queue_fake_response("cached")

    llm = factory()
    first = llm.generate("cache me", prompt_id="concierge.response.v1")
    second = llm.generate("cache me", prompt_id="concierge.response.v1")

    assert first == second == "cached"


def test_fake_llm_raises_when_queue_is_empty() -> None:
    llm = get_chat_llm(AppSettings(llm_provider="fake"))()

    with pytest.raises(ChatLlmError):
        llm.generate("nothing queued", prompt_id="concierge.response.v1")


@pytest.mark.asyncio
async def test_fake_llm_async_path() -> None:
    queue_fake_response("async reply")
    llm = get_chat_llm(AppSettings(llm_provider="fake"))()

    assert await llm.generate_async("prompt", prompt_id="concierge.extraction.v1") == "async reply"


def test_langchain_llm_extracts_message_content(monkeypatch) -> None:
    class StubMessage:
        content = [{"type": "text", "text": "Olá"}, " do BEPIT"]

    class StubClient:
        def __init__(self) -> None:
            self.configs: list[dict] = []

        def invoke(self, prompt, config=None):
            self.configs.append(config)
            return StubMessage()

    client = StubClient()
    monkeypatch.setitem(llm_module._CLIENT_BUILDERS, "openai", lambda settings: client)

    llm = get_chat_llm(AppSettings(llm_provider="openai", llm_timeout_sec=7))()

    assert llm.generate("prompt", prompt_id="concierge.response.v1") == "Olá\n do BEPIT"
    assert client.configs == [{"timeout": 7}]


def test_gemini_client_requires_api_key(monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with pytest.raises(ChatLlmError):
        llm_module._gemini_client(AppSettings(_env_file=None, llm_provider="gemini"))
