from __future__ import annotations

from typing import Any, List, Literal

from pydantic import BaseModel, Field, field_validator

from bepit.db.models import City, Item, Region

ItemKind = Literal["PARTNER", "TIP"]


class ItemRecord(BaseModel):
    """Snapshot of a catalogue item as shown to the user and kept in conversation state."""

    id: str = Field(..., description="Item identifier")
    cityId: str = Field(..., description="Owning city identifier")
    kind: ItemKind = Field("PARTNER", description="Partner business or local tip")
    name: str = Field(..., description="Display name")
    category: str | None = Field(None, description="Business category, e.g. restaurante")
    description: str | None = None
    benefit: str | None = Field(None, description="Exclusive BEPIT benefit")
    address: str | None = None
    contact: str | None = None
    tags: List[str] = Field(default_factory=list)
    hours: str | None = Field(None, description="Opening hours, free text")
    priceRange: str | None = Field(None, description="Price band, free text")
    photos: List[str] = Field(default_factory=list, description="Photo URLs")
    active: bool = True

    @classmethod
    def from_orm_item(cls, item: Item) -> "ItemRecord":
        return cls(
            id=item.id,
            cityId=item.city_id,
            kind=item.kind,
            name=item.name,
            category=item.category,
            description=item.description,
            benefit=item.benefit,
            address=item.address,
            contact=item.contact,
            tags=item.tags,
            hours=item.hours,
            priceRange=item.price_range,
            photos=list(item.photos or []),
            active=item.active,
        )

    def dedup_key(self) -> tuple[str, str, str]:
        return (
            (self.name or "").strip().lower(),
            (self.category or "").strip().lower(),
            (self.address or "").strip().lower(),
        )

    def snapshot(self) -> dict[str, Any]:
        return self.model_dump()


class ItemWrite(BaseModel):
    cityId: str = Field(..., min_length=1)
    kind: ItemKind = "PARTNER"
    name: str = Field(..., min_length=1)
    category: str | None = None
    description: str | None = None
    benefit: str | None = None
    address: str | None = None
    contact: str | None = None
    tags: List[str] = Field(default_factory=list)
    hours: str | None = None
    priceRange: str | None = None
    photos: List[str] = Field(default_factory=list)
    active: bool = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Name cannot be blank.")
        return cleaned


class ItemPatch(BaseModel):
    cityId: str | None = None
    kind: ItemKind | None = None
    name: str | None = None
    category: str | None = None
    description: str | None = None
    benefit: str | None = None
    address: str | None = None
    contact: str | None = None
    tags: List[str] | None = None
    hours: str | None = None
    priceRange: str | None = None
    photos: List[str] | None = None
    active: bool | None = None


class RegionRecord(BaseModel):
    id: str
    name: str
    slug: str

    @classmethod
    def from_orm_region(cls, region: Region) -> "RegionRecord":
        return cls(id=region.id, name=region.name, slug=region.slug)


class RegionWrite(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str | None = Field(None, description="Generated from the name when omitted")


class RegionPatch(BaseModel):
    name: str | None = None
    slug: str | None = None


class CityRecord(BaseModel):
    id: str
    regionId: str
    name: str
    slug: str

    @classmethod
    def from_orm_city(cls, city: City) -> "CityRecord":
        return cls(id=city.id, regionId=city.region_id, name=city.name, slug=city.slug)


class CityWrite(BaseModel):
    regionId: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    slug: str | None = None


class CityPatch(BaseModel):
    name: str | None = None
    slug: str | None = None
