from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from bepit.db.models import AnalyticsEvent


class TopItem(BaseModel):
    id: str
    name: str
    category: str | None = None
    viewCount: int = 0


class MetricsSummary(BaseModel):
    regionSlug: str | None = Field(None, description="Region filter applied, if any")
    regions: int = 0
    cities: int = 0
    items: int = 0
    activeItems: int = 0
    conversations: int = 0
    interactions: int = 0
    interactionsWithFeedback: int = 0
    eventsByType: Dict[str, int] = Field(default_factory=dict)
    topItems: List[TopItem] = Field(default_factory=list)


class AnalyticsEventRecord(BaseModel):
    id: str
    type: str
    regionId: str | None = None
    cityId: str | None = None
    itemId: str | None = None
    conversationId: str | None = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    createdAt: datetime | None = None

    @classmethod
    def from_orm_event(cls, event: AnalyticsEvent) -> "AnalyticsEventRecord":
        return cls(
            id=event.id,
            type=event.type,
            regionId=event.region_id,
            cityId=event.city_id,
            itemId=event.item_id,
            conversationId=event.conversation_id,
            payload=dict(event.payload or {}),
            createdAt=event.created_at,
        )


class AnalyticsLogResponse(BaseModel):
    events: List[AnalyticsEventRecord] = Field(default_factory=list)
    count: int = 0
