from __future__ import annotations

import pytest

from bepit.core.exceptions import ConflictError, RegionNotFoundError, ResourceNotFoundError
from bepit.db.models import Item
from bepit.models.items import CityPatch, CityWrite, ItemPatch, ItemWrite, RegionPatch, RegionWrite
from bepit.services.admin import AdminService
from bepit.services.items import ItemSearchService
from bepit.services.telemetry import TelemetryWriter


@pytest.fixture()
def admin(db_session) -> AdminService:
    return AdminService(db_session)


def test_create_region_generates_slug(admin) -> None:
    region = admin.create_region(RegionWrite(name="Costa do Sol"))

    assert region.slug == "costa-do-sol"
    assert {row.slug for row in admin.list_regions()} == {"costa-do-sol", "costa-verde", "regiao-dos-lagos"}


def test_create_region_rejects_duplicate_slug(admin) -> None:
    with pytest.raises(ConflictError):
        admin.create_region(RegionWrite(name="Região dos Lagos"))


def test_update_region_slug_conflict(admin, catalog) -> None:
    with pytest.raises(ConflictError):
        admin.update_region(catalog.other_region_id, RegionPatch(slug="regiao-dos-lagos"))


def test_update_region_renames(admin, catalog) -> None:
    region = admin.update_region(catalog.other_region_id, RegionPatch(name="Costa Verde Sul"))

    assert region.name == "Costa Verde Sul"
    assert region.slug == "costa-verde"


def test_update_missing_region_raises(admin) -> None:
    with pytest.raises(ResourceNotFoundError):
        admin.update_region("missing", RegionPatch(name="x"))


def test_list_cities_filters_by_region(admin, catalog) -> None:
    cities = admin.list_cities(catalog.region_id)

    assert {city.name for city in cities} == {"Búzios", "Cabo Frio"}
    assert len(admin.list_cities()) == 3


def test_create_city_requires_region(admin) -> None:
    with pytest.raises(ResourceNotFoundError):
        admin.create_city(CityWrite(regionId="missing", name="Arraial do Cabo"))


def test_create_city_rejects_duplicate_slug_in_region(admin, catalog) -> None:
    with pytest.raises(ConflictError):
        admin.create_city(CityWrite(regionId=catalog.region_id, name="Buzios"))


def test_same_city_slug_allowed_in_other_region(admin, catalog) -> None:
    city = admin.create_city(CityWrite(regionId=catalog.other_region_id, name="Búzios"))

    assert city.slug == "buzios"
    assert city.regionId == catalog.other_region_id


def test_update_city_slug(admin, catalog) -> None:
    city = admin.update_city(catalog.cabo_frio_id, CityPatch(slug="Cabo Frio Centro"))

    assert city.slug == "cabo-frio-centro"


def test_created_item_is_searchable_by_tag(admin, db_session, catalog) -> None:
    created = admin.create_item(
        ItemWrite(
            cityId=catalog.buzios_id,
            name="Escuna Pérola",
            category="Passeio",
            tags=["Barco", " mergulho ", "barco"],
            photos=["https://img.example/escuna.jpg"],
        )
    )

    assert created.kind == "PARTNER"
    assert created.tags == ["barco", "mergulho"]
    results = ItemSearchService(db_session).search([catalog.buzios_id], ["mergulho"])
    assert [item.id for item in results] == [created.id]


def test_create_item_requires_city(admin) -> None:
    with pytest.raises(ResourceNotFoundError):
        admin.create_item(ItemWrite(cityId="missing", name="Bar do Zé"))


def test_update_item_applies_only_sent_fields(admin, catalog) -> None:
    updated = admin.update_item(catalog.capricciosa_id, ItemPatch(hours="19h-01h", tags=["pizza", "vinho"]))

    assert updated.hours == "19h-01h"
    assert updated.tags == ["pizza", "vinho"]
    assert updated.name == "Pizzaria Capricciosa"
    assert updated.benefit == "10% de desconto"
    assert len(updated.photos) == 2


def test_update_item_ignores_null_required_fields(admin, catalog) -> None:
    updated = admin.update_item(catalog.capricciosa_id, ItemPatch(name=None, active=None, benefit=None))

    assert updated.name == "Pizzaria Capricciosa"
    assert updated.active is True
    assert updated.benefit is None


def test_update_item_rejects_unknown_city(admin, catalog) -> None:
    with pytest.raises(ResourceNotFoundError):
        admin.update_item(catalog.capricciosa_id, ItemPatch(cityId="missing"))


def test_list_items_filters(admin, catalog) -> None:
    region_items = admin.list_items(region_id=catalog.region_id)
    assert "Pizzaria Paraty" not in {item.name for item in region_items}
    assert len(region_items) == 7

    tips = admin.list_items(region_id=catalog.region_id, kind="TIP")
    assert {item.id for item in tips} == {catalog.transit_tip_id, catalog.parking_tip_id}

    inactive = admin.list_items(active=False)
    assert [item.id for item in inactive] == [catalog.closed_id]

    cabo_frio = admin.list_items(city_id=catalog.cabo_frio_id)
    assert {item.id for item in cabo_frio} == {catalog.forno_id, catalog.parking_tip_id}


def test_get_and_delete_item(admin, catalog) -> None:
    assert admin.get_item(catalog.bistro_id).name == "Bistrô do Mar"

    admin.delete_item(catalog.bistro_id)

    with pytest.raises(ResourceNotFoundError):
        admin.get_item(catalog.bistro_id)


def test_delete_region_removes_cities_and_items(admin, db_session, catalog) -> None:
    admin.delete_region(catalog.other_region_id)

    assert [region.slug for region in admin.list_regions()] == ["regiao-dos-lagos"]
    assert admin.list_cities(catalog.other_region_id) == []
    assert db_session.query(Item).filter(Item.name == "Pizzaria Paraty").count() == 0


def test_metrics_summary_counts(admin, db_session, catalog) -> None:
    telemetry = TelemetryWriter(db_session)
    telemetry.increment_views(catalog.capricciosa_id)
    telemetry.increment_views(catalog.capricciosa_id)
    telemetry.increment_views(catalog.bistro_id)
    telemetry.record_event("search", region_id=catalog.region_id, payload={"terms": ["pizza"]})
    telemetry.record_event("search", region_id=catalog.region_id, payload={"terms": ["moqueca"]})
    telemetry.record_event("search", region_id=catalog.other_region_id, payload={"terms": ["pizza"]})
    interaction = telemetry.record_interaction(
        region_id=catalog.region_id,
        conversation_id="conv-1",
        question="pizza",
        answer="Encontrei estas opções",
        suggested_items=[],
    )
    telemetry.record_feedback(interaction.value, "ótimo")

    summary = admin.metrics_summary("regiao-dos-lagos")

    assert summary.regionSlug == "regiao-dos-lagos"
    assert summary.regions == 1
    assert summary.cities == 2
    assert summary.items == 7
    assert summary.activeItems == 6
    assert summary.interactions == 1
    assert summary.interactionsWithFeedback == 1
    assert summary.eventsByType == {"search": 2, "feedback": 1}
    assert [(item.name, item.viewCount) for item in summary.topItems] == [
        ("Pizzaria Capricciosa", 2),
        ("Bistrô do Mar", 1),
    ]

    overall = admin.metrics_summary()
    assert overall.regions == 2
    assert overall.items == 8
    assert overall.eventsByType["search"] == 3


def test_metrics_summary_unknown_region(admin) -> None:
    with pytest.raises(RegionNotFoundError):
        admin.metrics_summary("atlantida")


def test_query_logs_filters(admin, db_session, catalog) -> None:
    telemetry = TelemetryWriter(db_session)
    telemetry.record_event("search", region_id=catalog.region_id, conversation_id="conv-1")
    telemetry.record_event("partner_view", region_id=catalog.region_id, conversation_id="conv-1")
    telemetry.record_event("search", region_id=catalog.other_region_id, conversation_id="conv-2")

    searches = admin.query_logs(event_type="search")
    assert searches.count == 2

    scoped = admin.query_logs(region_slug="regiao-dos-lagos")
    assert {event.type for event in scoped.events} == {"search", "partner_view"}

    by_conversation = admin.query_logs(conversation_id="conv-2")
    assert [event.regionId for event in by_conversation.events] == [catalog.other_region_id]

    assert admin.query_logs(limit=1).count == 1
