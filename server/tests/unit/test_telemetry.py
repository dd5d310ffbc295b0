from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from bepit.db.models import AnalyticsEvent, Interaction, Item
from bepit.models.items import ItemRecord
from bepit.services import telemetry as telemetry_module
from bepit.services.telemetry import EVENT_FEEDBACK, InteractionNotFoundError, TelemetryWriter


def _store_error(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


def test_record_interaction_persists_snapshot(db_session, catalog) -> None:
    item = ItemRecord(id=catalog.capricciosa_id, cityId=catalog.buzios_id, name="Pizzaria Capricciosa")

    result = TelemetryWriter(db_session).record_interaction(
        region_id=catalog.region_id,
        conversation_id="conv-1",
        question="pizza em Búzios",
        answer="Encontrei estas opções",
        suggested_items=[item],
    )

    assert result.ok is True
    stored = db_session.get(Interaction, result.value)
    assert stored.user_question == "pizza em Búzios"
    assert stored.suggested_items[0]["name"] == "Pizzaria Capricciosa"


def test_increment_views(db_session, catalog) -> None:
    writer = TelemetryWriter(db_session)

    writer.increment_views(catalog.churrascaria_id)
    result = writer.increment_views(catalog.churrascaria_id)

    assert result.ok is True
    assert result.value == 1
    db_session.expire_all()
    assert db_session.get(Item, catalog.churrascaria_id).view_count == 2


def test_write_failures_are_swallowed(db_session, catalog, monkeypatch) -> None:
    warnings: list[tuple[str, dict]] = []
    monkeypatch.setattr(db_session, "commit", _store_error)
    monkeypatch.setattr(
        telemetry_module.logger, "warning", lambda message, extra=None: warnings.append((message, extra or {}))
    )
    writer = TelemetryWriter(db_session)

    interaction = writer.record_interaction(
        region_id=catalog.region_id,
        conversation_id="conv-1",
        question="oi",
        answer="olá",
        suggested_items=[],
    )
    event = writer.record_event("search", region_id=catalog.region_id, payload={"terms": ["pizza"]})
    views = writer.increment_views(catalog.capricciosa_id)

    assert [interaction.ok, event.ok, views.ok] == [False, False, False]
    assert "disk I/O error" in interaction.error
    assert [message for message, _ in warnings] == ["telemetry.write_failed"] * 3
    assert [extra["operation"] for _, extra in warnings] == ["interaction", "event.search", "item_views"]


def test_record_feedback_updates_interaction_and_logs_event(db_session, catalog) -> None:
    writer = TelemetryWriter(db_session)
    interaction_id = writer.record_interaction(
        region_id=catalog.region_id,
        conversation_id="conv-9",
        question="pizza",
        answer="Encontrei",
        suggested_items=[],
    ).value

    result = writer.record_feedback(interaction_id, "gostei")

    assert result.ok is True
    assert db_session.get(Interaction, interaction_id).user_feedback == "gostei"
    events = db_session.scalars(select(AnalyticsEvent).where(AnalyticsEvent.type == EVENT_FEEDBACK)).all()
    assert events[0].payload == {"interactionId": interaction_id, "feedback": "gostei"}
    assert events[0].conversation_id == "conv-9"


def test_record_feedback_unknown_interaction(db_session, catalog) -> None:
    with pytest.raises(InteractionNotFoundError):
        TelemetryWriter(db_session).record_feedback("missing", "gostei")
