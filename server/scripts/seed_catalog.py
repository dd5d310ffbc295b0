from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator
from sqlalchemy import create_engine, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bepit.core.config import AppSettings
from bepit.core.text import slugify
from bepit.db.models import City, Item, Region
from bepit.db.session import init_db

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger("seed_catalog")

DEFAULT_CATALOG_PATH = Path("data/catalog/regiao-dos-lagos.json")


class ItemSeed(BaseModel):
    kind: Literal["PARTNER", "TIP"] = "PARTNER"
    name: str = Field(..., min_length=2)
    category: str | None = None
    description: str | None = None
    benefit: str | None = None
    address: str | None = None
    contact: str | None = None
    tags: List[str] = Field(default_factory=list)
    hours: str | None = None
    price_range: str | None = Field(default=None, alias="priceRange")
    photos: List[str] = Field(default_factory=list)
    active: bool = True

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @model_validator(mode="before")
    @classmethod
    def _normalise_raw(cls, values: dict) -> dict:
        tags = values.get("tags") or []
        if isinstance(tags, str):
            tags = [part for part in tags.replace("|", ",").split(",")]
        values["tags"] = [str(tag).strip() for tag in tags if str(tag).strip()]
        for key in ("category", "description", "benefit", "address", "contact", "hours", "priceRange"):
            raw_value = values.get(key)
            if isinstance(raw_value, str):
                values[key] = raw_value.strip() or None
        return values


class CitySeed(BaseModel):
    name: str = Field(..., min_length=2)
    slug: str | None = None
    items: List[ItemSeed] = Field(default_factory=list)

    @property
    def resolved_slug(self) -> str:
        return slugify(self.slug or self.name)


class RegionSeed(BaseModel):
    name: str = Field(..., min_length=2)
    slug: str | None = None
    cities: List[CitySeed] = Field(default_factory=list)

    @property
    def resolved_slug(self) -> str:
        return slugify(self.slug or self.name)


@dataclass
class SeedResult:
    regions: int = 0
    cities: int = 0
    inserted: int = 0
    updated: int = 0


def _default_db_url() -> str:
    settings = AppSettings()
    backend = (settings.db_backend or "sqlite").strip().lower()
    if backend == "postgres":
        postgres_url = (settings.postgres_url or "").strip()
        if postgres_url:
            return postgres_url
        raise ValueError("BEPIT_POSTGRES_URL must be set when DB_BACKEND=postgres.")
    return settings.sqlite_url.strip()


def load_catalog(path: Path) -> List[RegionSeed]:
    if not path.exists():
        raise FileNotFoundError(f"Catalogue file not found at {path}")

    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)

    raw_regions = payload if isinstance(payload, list) else payload.get("regions", [payload])
    regions: list[RegionSeed] = []
    for raw in raw_regions:
        try:
            regions.append(RegionSeed.model_validate(raw))
        except ValidationError as exc:
            raise ValueError(f"Invalid region entry {raw.get('name')!r}: {exc}") from exc

    if not regions:
        raise ValueError("Catalogue file did not contain any regions.")
    return regions


def _prepare_engine(db_url: str):
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite" and url.database:
        db_path = Path(url.database).expanduser()
        if not db_path.is_absolute():
            db_path = (Path.cwd() / db_path).resolve()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = url.set(database=str(db_path))
    return create_engine(url)


def _upsert_item(session: Session, city: City, record: ItemSeed, result: SeedResult) -> None:
    stmt = select(Item).where(Item.city_id == city.id, Item.name == record.name, Item.kind == record.kind)
    item = session.execute(stmt).scalar_one_or_none()
    if item is None:
        item = Item(city_id=city.id, kind=record.kind, name=record.name)
        session.add(item)
        result.inserted += 1
    else:
        result.updated += 1
    item.category = record.category
    item.description = record.description
    item.benefit = record.benefit
    item.address = record.address
    item.contact = record.contact
    item.hours = record.hours
    item.price_range = record.price_range
    item.photos = list(record.photos)
    item.active = record.active
    item.set_tags(record.tags)


def seed_catalog(*, regions: List[RegionSeed], db_url: str) -> SeedResult:
    if not regions:
        raise ValueError("No regions were provided.")

    engine = _prepare_engine(db_url)
    init_db(engine)

    result = SeedResult()
    try:
        with Session(engine) as session:
            for region_seed in regions:
                region_slug = region_seed.resolved_slug
                region = session.execute(select(Region).where(Region.slug == region_slug)).scalar_one_or_none()
                if region is None:
                    region = Region(name=region_seed.name, slug=region_slug)
                    session.add(region)
                    session.flush()
                region.name = region_seed.name
                result.regions += 1

                for city_seed in region_seed.cities:
                    city_slug = city_seed.resolved_slug
                    city = session.execute(
                        select(City).where(City.region_id == region.id, City.slug == city_slug)
                    ).scalar_one_or_none()
                    if city is None:
                        city = City(region_id=region.id, name=city_seed.name, slug=city_slug)
                        session.add(city)
                        session.flush()
                    city.name = city_seed.name
                    result.cities += 1

                    for item_seed in city_seed.items:
                        _upsert_item(session, city, item_seed, result)
            session.commit()
    except SQLAlchemyError as exc:
        logger.error("Failed to seed catalogue: %s", exc)
        raise

    logger.info(
        "Seeded catalogue at %s (regions=%d, cities=%d, inserted=%d, updated=%d)",
        db_url,
        result.regions,
        result.cities,
        result.inserted,
        result.updated,
    )
    return result


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the BEPIT tables and load a region catalogue from JSON.")
    parser.add_argument(
        "--json",
        type=Path,
        default=DEFAULT_CATALOG_PATH,
        help="Path to the catalogue JSON file (a region object or a list of regions).",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="SQLAlchemy database URL (defaults to the configured backend).",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    regions = load_catalog(args.json)
    seed_catalog(regions=regions, db_url=args.db or _default_db_url())


if __name__ == "__main__":
    main()
