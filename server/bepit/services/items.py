from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bepit.core.exceptions import StoreUnavailableError
from bepit.db.models import Item, ItemTag
from bepit.models.items import ItemKind, ItemRecord

logger = logging.getLogger("bepit.items")


def merge_unique(
    accumulated: list[ItemRecord],
    incoming: Iterable[ItemRecord],
    seen: set[tuple[str, str, str]] | None = None,
) -> list[ItemRecord]:
    """
    Append items whose (name, category, address) triple is not present yet.

    The triple is compared case-insensitively and is the only identity used, so two
    distinct items sharing all three fields collapse into one.
    """
    keys = seen if seen is not None else {item.dedup_key() for item in accumulated}
    for item in incoming:
        key = item.dedup_key()
        if key in keys:
            continue
        keys.add(key)
        accumulated.append(item)
    return accumulated


@dataclass
class ItemSearchService:
    session: Session

    def search(
        self,
        city_ids: Sequence[str],
        terms: Sequence[str],
        *,
        kind: ItemKind | None = None,
    ) -> list[ItemRecord]:
        cleaned_terms = [term.strip().lower() for term in terms if term and term.strip()]
        if not city_ids or not cleaned_terms:
            return []

        try:
            results = merge_unique([], self._wildcard_matches(city_ids, cleaned_terms, kind))
            seen = {item.dedup_key() for item in results}
            for term in cleaned_terms:
                merge_unique(results, self._tag_matches(city_ids, term, kind), seen)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError("Falha ao buscar parceiros.") from exc

        logger.info(
            "items.search",
            extra={"terms": cleaned_terms, "cityCount": len(city_ids), "kind": kind, "resultCount": len(results)},
        )
        return results

    def list_by_kind(self, city_ids: Sequence[str], kind: ItemKind, *, limit: int = 3) -> list[ItemRecord]:
        if not city_ids:
            return []
        statement = (
            select(Item)
            .where(Item.active.is_(True), Item.city_id.in_(list(city_ids)), Item.kind == kind)
            .order_by(Item.view_count.desc(), Item.name)
            .limit(limit)
        )
        try:
            rows = self.session.scalars(statement).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError("Falha ao buscar dicas.") from exc
        return [ItemRecord.from_orm_item(item) for item in rows]

    async def search_async(
        self,
        city_ids: Sequence[str],
        terms: Sequence[str],
        *,
        kind: ItemKind | None = None,
    ) -> list[ItemRecord]:
        return await asyncio.to_thread(self.search, city_ids, terms, kind=kind)

    async def list_by_kind_async(
        self,
        city_ids: Sequence[str],
        kind: ItemKind,
        *,
        limit: int = 3,
    ) -> list[ItemRecord]:
        return await asyncio.to_thread(self.list_by_kind, city_ids, kind, limit=limit)

    def _base_query(self, city_ids: Sequence[str], kind: ItemKind | None):
        statement = select(Item).where(Item.active.is_(True), Item.city_id.in_(list(city_ids)))
        if kind is not None:
            statement = statement.where(Item.kind == kind)
        return statement

    def _wildcard_matches(
        self,
        city_ids: Sequence[str],
        terms: Sequence[str],
        kind: ItemKind | None,
    ) -> list[ItemRecord]:
        clauses = []
        for term in terms:
            pattern = f"%{term}%"
            clauses.append(Item.name.ilike(pattern))
            clauses.append(Item.category.ilike(pattern))
        statement = self._base_query(city_ids, kind).where(or_(*clauses)).order_by(Item.name)
        return [ItemRecord.from_orm_item(item) for item in self.session.scalars(statement).all()]

    def _tag_matches(self, city_ids: Sequence[str], term: str, kind: ItemKind | None) -> list[ItemRecord]:
        statement = (
            self._base_query(city_ids, kind)
            .join(ItemTag, ItemTag.item_id == Item.id)
            .where(func.lower(ItemTag.tag) == term)
            .order_by(Item.name)
        )
        return [ItemRecord.from_orm_item(item) for item in self.session.scalars(statement).unique().all()]
