from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from bepit.core.exceptions import ConflictError, RegionNotFoundError, ResourceNotFoundError, StoreUnavailableError
from bepit.core.text import slugify
from bepit.db.models import AnalyticsEvent, City, Conversation, Interaction, Item, Region
from bepit.models.admin import AnalyticsEventRecord, AnalyticsLogResponse, MetricsSummary, TopItem
from bepit.models.items import (
    CityPatch,
    CityRecord,
    CityWrite,
    ItemPatch,
    ItemRecord,
    ItemWrite,
    RegionPatch,
    RegionRecord,
    RegionWrite,
)

logger = logging.getLogger("bepit.admin")

_ITEM_COLUMNS = {
    "cityId": "city_id",
    "kind": "kind",
    "name": "name",
    "category": "category",
    "description": "description",
    "benefit": "benefit",
    "address": "address",
    "contact": "contact",
    "hours": "hours",
    "priceRange": "price_range",
    "photos": "photos",
    "active": "active",
}
_REQUIRED_COLUMNS = {"city_id", "kind", "name", "active"}

TOP_ITEMS_LIMIT = 5


@dataclass
class AdminService:
    """Catalogue maintenance and reporting behind the admin key."""

    session: Session

    # Regions -----------------------------------------------------------------

    def list_regions(self) -> list[RegionRecord]:
        rows = self._scalars(select(Region).order_by(Region.name))
        return [RegionRecord.from_orm_region(row) for row in rows]

    def create_region(self, payload: RegionWrite) -> RegionRecord:
        region = Region(name=payload.name.strip(), slug=slugify(payload.slug or payload.name))
        self._ensure_region_slug_free(region.slug)
        self.session.add(region)
        self._commit("region", region.slug)
        logger.info("admin.region_created", extra={"regionId": region.id, "regionSlug": region.slug})
        return RegionRecord.from_orm_region(region)

    def update_region(self, region_id: str, payload: RegionPatch) -> RegionRecord:
        region = self._require(Region, region_id, "Região")
        if payload.name is not None:
            region.name = payload.name.strip()
        if payload.slug is not None:
            slug = slugify(payload.slug)
            if slug != region.slug:
                self._ensure_region_slug_free(slug)
            region.slug = slug
        self._commit("region", region.slug)
        return RegionRecord.from_orm_region(region)

    def delete_region(self, region_id: str) -> None:
        region = self._require(Region, region_id, "Região")
        self.session.delete(region)
        self._commit("region", region_id)
        logger.info("admin.region_deleted", extra={"regionId": region_id})

    # Cities ------------------------------------------------------------------

    def list_cities(self, region_id: Optional[str] = None) -> list[CityRecord]:
        statement = select(City).order_by(City.name)
        if region_id:
            statement = statement.where(City.region_id == region_id)
        return [CityRecord.from_orm_city(row) for row in self._scalars(statement)]

    def create_city(self, payload: CityWrite) -> CityRecord:
        self._require(Region, payload.regionId, "Região")
        city = City(region_id=payload.regionId, name=payload.name.strip(), slug=slugify(payload.slug or payload.name))
        self._ensure_city_slug_free(payload.regionId, city.slug)
        self.session.add(city)
        self._commit("city", city.slug)
        logger.info("admin.city_created", extra={"cityId": city.id, "regionId": city.region_id})
        return CityRecord.from_orm_city(city)

    def update_city(self, city_id: str, payload: CityPatch) -> CityRecord:
        city = self._require(City, city_id, "Cidade")
        if payload.name is not None:
            city.name = payload.name.strip()
        if payload.slug is not None:
            slug = slugify(payload.slug)
            if slug != city.slug:
                self._ensure_city_slug_free(city.region_id, slug)
            city.slug = slug
        self._commit("city", city.slug)
        return CityRecord.from_orm_city(city)

    def delete_city(self, city_id: str) -> None:
        city = self._require(City, city_id, "Cidade")
        self.session.delete(city)
        self._commit("city", city_id)
        logger.info("admin.city_deleted", extra={"cityId": city_id})

    # Items -------------------------------------------------------------------

    def list_items(
        self,
        *,
        region_id: Optional[str] = None,
        city_id: Optional[str] = None,
        kind: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> list[ItemRecord]:
        statement = select(Item).order_by(Item.name)
        if region_id:
            statement = statement.join(City, City.id == Item.city_id).where(City.region_id == region_id)
        if city_id:
            statement = statement.where(Item.city_id == city_id)
        if kind:
            statement = statement.where(Item.kind == kind)
        if active is not None:
            statement = statement.where(Item.active.is_(active))
        return [ItemRecord.from_orm_item(row) for row in self._scalars(statement)]

    def get_item(self, item_id: str) -> ItemRecord:
        return ItemRecord.from_orm_item(self._require(Item, item_id, "Item"))

    def create_item(self, payload: ItemWrite) -> ItemRecord:
        self._require(City, payload.cityId, "Cidade")
        item = Item()
        self._apply_item_fields(item, payload.model_dump())
        self.session.add(item)
        self._commit("item", payload.name)
        logger.info("admin.item_created", extra={"itemId": item.id, "cityId": item.city_id, "kind": item.kind})
        return ItemRecord.from_orm_item(item)

    def update_item(self, item_id: str, payload: ItemPatch) -> ItemRecord:
        item = self._require(Item, item_id, "Item")
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("cityId"):
            self._require(City, changes["cityId"], "Cidade")
        self._apply_item_fields(item, changes)
        self._commit("item", item_id)
        return ItemRecord.from_orm_item(item)

    def delete_item(self, item_id: str) -> None:
        item = self._require(Item, item_id, "Item")
        self.session.delete(item)
        self._commit("item", item_id)
        logger.info("admin.item_deleted", extra={"itemId": item_id})

    # Reporting ---------------------------------------------------------------

    def metrics_summary(self, region_slug: Optional[str] = None) -> MetricsSummary:
        region_id = self._region_id_for(region_slug) if region_slug else None

        def count(model: Any, *criteria: Any, join_city: bool = False) -> int:
            statement = select(func.count()).select_from(model)
            if join_city:
                statement = statement.join(City, City.id == Item.city_id)
            for criterion in criteria:
                statement = statement.where(criterion)
            return int(self._scalar(statement) or 0)

        if region_id:
            region_filter = (Region.id == region_id,)
            city_filter = (City.region_id == region_id,)
            item_filter = (City.region_id == region_id,)
            conversation_filter = (Conversation.region_id == region_id,)
            interaction_filter = (Interaction.region_id == region_id,)
            event_filter = (AnalyticsEvent.region_id == region_id,)
        else:
            region_filter = city_filter = item_filter = ()
            conversation_filter = interaction_filter = event_filter = ()

        events_statement = select(AnalyticsEvent.type, func.count()).group_by(AnalyticsEvent.type)
        for criterion in event_filter:
            events_statement = events_statement.where(criterion)

        top_statement = (
            select(Item)
            .join(City, City.id == Item.city_id)
            .where(Item.view_count > 0)
            .order_by(Item.view_count.desc(), Item.name)
            .limit(TOP_ITEMS_LIMIT)
        )
        for criterion in item_filter:
            top_statement = top_statement.where(criterion)

        try:
            event_counts = {event_type: int(total) for event_type, total in self.session.execute(events_statement)}
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError("Falha ao consultar métricas.") from exc

        return MetricsSummary(
            regionSlug=region_slug,
            regions=count(Region, *region_filter),
            cities=count(City, *city_filter),
            items=count(Item, *item_filter, join_city=True),
            activeItems=count(Item, Item.active.is_(True), *item_filter, join_city=True),
            conversations=count(Conversation, *conversation_filter),
            interactions=count(Interaction, *interaction_filter),
            interactionsWithFeedback=count(Interaction, Interaction.user_feedback.is_not(None), *interaction_filter),
            eventsByType=event_counts,
            topItems=[
                TopItem(id=row.id, name=row.name, category=row.category, viewCount=row.view_count)
                for row in self._scalars(top_statement)
            ],
        )

    def query_logs(
        self,
        *,
        event_type: Optional[str] = None,
        region_slug: Optional[str] = None,
        conversation_id: Optional[str] = None,
        limit: int = 50,
    ) -> AnalyticsLogResponse:
        statement = select(AnalyticsEvent).order_by(AnalyticsEvent.created_at.desc()).limit(limit)
        if event_type:
            statement = statement.where(AnalyticsEvent.type == event_type)
        if region_slug:
            statement = statement.where(AnalyticsEvent.region_id == self._region_id_for(region_slug))
        if conversation_id:
            statement = statement.where(AnalyticsEvent.conversation_id == conversation_id)
        events = [AnalyticsEventRecord.from_orm_event(row) for row in self._scalars(statement)]
        return AnalyticsLogResponse(events=events, count=len(events))

    # Helpers -----------------------------------------------------------------

    def _apply_item_fields(self, item: Item, values: dict[str, Any]) -> None:
        for field_name, column in _ITEM_COLUMNS.items():
            if field_name not in values:
                continue
            value = values[field_name]
            if value is None and column in _REQUIRED_COLUMNS:
                continue
            if column == "photos":
                value = list(value or [])
            setattr(item, column, value)
        if values.get("tags") is not None:
            item.set_tags(values["tags"])

    def _region_id_for(self, slug: str) -> str:
        region_id = self._scalar(select(Region.id).where(Region.slug == slug))
        if region_id is None:
            raise RegionNotFoundError(f"Região '{slug}' não encontrada.", details={"regionSlug": slug})
        return region_id

    def _ensure_region_slug_free(self, slug: str) -> None:
        if self._scalar(select(Region.id).where(Region.slug == slug)) is not None:
            raise ConflictError("Já existe uma região com este slug.", details={"slug": slug})

    def _ensure_city_slug_free(self, region_id: str, slug: str) -> None:
        existing = self._scalar(select(City.id).where(City.region_id == region_id, City.slug == slug))
        if existing is not None:
            raise ConflictError("Já existe uma cidade com este slug na região.", details={"slug": slug})

    def _require(self, model: Any, identifier: str, label: str) -> Any:
        try:
            row = self.session.get(model, identifier)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError("Falha ao consultar o banco de dados.") from exc
        if row is None:
            raise ResourceNotFoundError(f"{label} não encontrado(a).", details={"id": identifier})
        return row

    def _scalar(self, statement: Any) -> Any:
        try:
            return self.session.scalar(statement)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError("Falha ao consultar o banco de dados.") from exc

    def _scalars(self, statement: Any) -> list[Any]:
        try:
            return list(self.session.scalars(statement).all())
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError("Falha ao consultar o banco de dados.") from exc

    def _commit(self, entity: str, key: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(f"Conflito ao gravar {entity}.", details={"key": key}) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError("Falha ao gravar no banco de dados.") from exc
