from __future__ import annotations

import json

from fastapi.testclient import TestClient
from sqlalchemy import select

from bepit.agents.llm import queue_fake_response
from bepit.core.config import get_settings
from bepit.db.models import AnalyticsEvent, Interaction

CHAT_URL = "/api/chat/regiao-dos-lagos"


def _post(client: TestClient, message: str, conversation_id: str | None = None, url: str = CHAT_URL):
    payload = {"message": message}
    if conversation_id:
        payload["conversationId"] = conversation_id
    return client.post(url, json=payload)


def test_chat_conversation_flow(client: TestClient) -> None:
    first = _post(client, "jantar em Búzios")
    assert first.status_code == 200
    body = first.json()
    conversation_id = body["conversationId"]
    assert body["interactionId"]
    assert body["photoLinks"] == []
    assert "1. Bistrô do Mar" in body["reply"]
    assert "2. Churrascaria Gaúcha" in body["reply"]
    assert "3. Pizzaria Capricciosa" in body["reply"]

    second = _post(client, "2", conversation_id).json()
    assert second["conversationId"] == conversation_id
    assert second["reply"].startswith("Boa escolha! Churrascaria Gaúcha")

    third = _post(client, "qual o horário?", conversation_id).json()
    assert third["reply"] == "O horário de funcionamento de Churrascaria Gaúcha é: 12h-23h."

    fourth = _post(client, "tem fotos?", conversation_id).json()
    assert fourth["reply"] == "Ainda não tenho fotos de Churrascaria Gaúcha."
    assert fourth["photoLinks"] == []


def test_chat_returns_photos_for_focused_item(client: TestClient) -> None:
    conversation_id = _post(client, "pizza em Búzios").json()["conversationId"]

    response = _post(client, "me mostra fotos", conversation_id).json()

    assert response["reply"] == "Aqui estão algumas fotos de Pizzaria Capricciosa."
    assert response["photoLinks"] == [
        "https://img.example/capricciosa-1.jpg",
        "https://img.example/capricciosa-2.jpg",
    ]


def test_chat_search_is_scoped_to_city(client: TestClient) -> None:
    reply = _post(client, "pizza em Cabo Frio").json()["reply"]

    assert "Pizzaria Forno da Praia" in reply
    assert "Capricciosa" not in reply


def test_chat_itinerary(client: TestClient) -> None:
    reply = _post(client, "quero um roteiro para o fim de semana em Búzios").json()["reply"]

    assert "roteiro de 2 dias" in reply
    assert "Dia 1:" in reply
    assert "Trânsito na Estrada da Usina" in reply


def test_chat_persists_interaction_and_events(client: TestClient, session_factory) -> None:
    body = _post(client, "pizza em Búzios").json()

    with session_factory() as session:
        interaction = session.get(Interaction, body["interactionId"])
        assert interaction.conversation_id == body["conversationId"]
        assert interaction.ai_answer == body["reply"]
        event_types = set(session.scalars(select(AnalyticsEvent.type)).all())
    assert {"search", "partner_view"} <= event_types


def test_chat_rejects_blank_message(client: TestClient) -> None:
    response = client.post(CHAT_URL, json={"message": "   "}, headers={"X-Request-ID": "req-blank"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["type"] == "VALIDATION_ERROR"
    assert error["details"]["fields"] == ["message"]
    assert error["traceId"] == "req-blank"


def test_chat_rejects_missing_message(client: TestClient) -> None:
    response = client.post(CHAT_URL, json={"conversationId": "abc"})

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "VALIDATION_ERROR"


def test_chat_unknown_region(client: TestClient) -> None:
    response = _post(client, "pizza", url="/api/chat/atlantida")

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["type"] == "REGION_NOT_FOUND"
    assert error["details"] == {"regionSlug": "atlantida"}


def test_chat_echoes_request_id(client: TestClient) -> None:
    response = client.post(CHAT_URL, json={"message": "pizza"}, headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"


def test_chat_with_fake_llm(client: TestClient, monkeypatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "fake")
    get_settings.cache_clear()
    queue_fake_response(
        json.dumps(
            {
                "correctedText": "quero moqueca",
                "companionType": "casal",
                "suggestedCitySlug": None,
                "keywords": ["moqueca"],
            }
        )
    )
    queue_fake_response("Para um casal, o Bistrô do Mar serve uma moqueca excelente.")

    body = _post(client, "qero mokeca").json()

    assert body["reply"] == "Para um casal, o Bistrô do Mar serve uma moqueca excelente."
