from __future__ import annotations

import asyncio
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bepit.agents.extractor import KnownCity
from bepit.core.exceptions import RegionNotFoundError, StoreUnavailableError
from bepit.db.models import City, Region


@dataclass(frozen=True)
class RegionContext:
    id: str
    name: str
    slug: str
    cities: tuple[KnownCity, ...]

    def city_by_slug(self, slug: str | None) -> KnownCity | None:
        if not slug:
            return None
        for city in self.cities:
            if city.slug == slug:
                return city
        return None

    @property
    def city_ids(self) -> list[str]:
        return [city.id for city in self.cities]


@dataclass
class CatalogService:
    """Primary-path reads: failures here abort the turn."""

    session: Session

    def get_region(self, slug: str) -> RegionContext:
        try:
            region = self.session.scalars(select(Region).where(Region.slug == slug)).first()
            if region is None:
                raise RegionNotFoundError(f"Região '{slug}' não encontrada.", details={"regionSlug": slug})
            cities = self.session.scalars(
                select(City).where(City.region_id == region.id).order_by(City.name)
            ).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError("Falha ao consultar o banco de dados.") from exc

        return RegionContext(
            id=region.id,
            name=region.name,
            slug=region.slug,
            cities=tuple(KnownCity(id=city.id, name=city.name, slug=city.slug) for city in cities),
        )

    async def get_region_async(self, slug: str) -> RegionContext:
        return await asyncio.to_thread(self.get_region, slug)
