from __future__ import annotations

import hmac
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.orm import Session

from bepit.core.config import get_settings
from bepit.core.exceptions import AdminAuthError
from bepit.db.session import get_session
from bepit.models.admin import AnalyticsLogResponse, MetricsSummary
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
from bepit.services.admin import AdminService


def require_admin_key(x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key")) -> None:
    expected = get_settings().admin_api_key
    if not expected:
        raise AdminAuthError("Acesso administrativo não configurado.")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise AdminAuthError("Chave de administrador inválida.")


router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])


def get_admin_service(session: Session = Depends(get_session)) -> AdminService:
    return AdminService(session)


@router.get("/regions", response_model=List[RegionRecord])
def list_regions(service: AdminService = Depends(get_admin_service)) -> List[RegionRecord]:
    return service.list_regions()


@router.post("/regions", response_model=RegionRecord, status_code=201)
def create_region(payload: RegionWrite, service: AdminService = Depends(get_admin_service)) -> RegionRecord:
    return service.create_region(payload)


@router.patch("/regions/{region_id}", response_model=RegionRecord)
def update_region(
    region_id: str,
    payload: RegionPatch,
    service: AdminService = Depends(get_admin_service),
) -> RegionRecord:
    return service.update_region(region_id, payload)


@router.delete("/regions/{region_id}", status_code=204)
def delete_region(region_id: str, service: AdminService = Depends(get_admin_service)) -> Response:
    service.delete_region(region_id)
    return Response(status_code=204)


@router.get("/cities", response_model=List[CityRecord])
def list_cities(
    region_id: Optional[str] = Query(None, alias="regionId"),
    service: AdminService = Depends(get_admin_service),
) -> List[CityRecord]:
    return service.list_cities(region_id)


@router.post("/cities", response_model=CityRecord, status_code=201)
def create_city(payload: CityWrite, service: AdminService = Depends(get_admin_service)) -> CityRecord:
    return service.create_city(payload)


@router.patch("/cities/{city_id}", response_model=CityRecord)
def update_city(
    city_id: str,
    payload: CityPatch,
    service: AdminService = Depends(get_admin_service),
) -> CityRecord:
    return service.update_city(city_id, payload)


@router.delete("/cities/{city_id}", status_code=204)
def delete_city(city_id: str, service: AdminService = Depends(get_admin_service)) -> Response:
    service.delete_city(city_id)
    return Response(status_code=204)


@router.get("/items", response_model=List[ItemRecord])
def list_items(
    region_id: Optional[str] = Query(None, alias="regionId"),
    city_id: Optional[str] = Query(None, alias="cityId"),
    kind: Optional[Literal["PARTNER", "TIP"]] = Query(None),
    active: Optional[bool] = Query(None),
    service: AdminService = Depends(get_admin_service),
) -> List[ItemRecord]:
    return service.list_items(region_id=region_id, city_id=city_id, kind=kind, active=active)


@router.get("/items/{item_id}", response_model=ItemRecord)
def get_item(item_id: str, service: AdminService = Depends(get_admin_service)) -> ItemRecord:
    return service.get_item(item_id)


@router.post("/items", response_model=ItemRecord, status_code=201)
def create_item(payload: ItemWrite, service: AdminService = Depends(get_admin_service)) -> ItemRecord:
    return service.create_item(payload)


@router.patch("/items/{item_id}", response_model=ItemRecord)
def update_item(
    item_id: str,
    payload: ItemPatch,
    service: AdminService = Depends(get_admin_service),
) -> ItemRecord:
    return service.update_item(item_id, payload)


@router.delete("/items/{item_id}", status_code=204)
def delete_item(item_id: str, service: AdminService = Depends(get_admin_service)) -> Response:
    service.delete_item(item_id)
    return Response(status_code=204)


@router.get("/metrics/summary", response_model=MetricsSummary)
def metrics_summary(
    region_slug: Optional[str] = Query(None, alias="regionSlug"),
    service: AdminService = Depends(get_admin_service),
) -> MetricsSummary:
    return service.metrics_summary(region_slug)


@router.get("/logs", response_model=AnalyticsLogResponse)
def analytics_logs(
    event_type: Optional[str] = Query(None, alias="type"),
    region_slug: Optional[str] = Query(None, alias="regionSlug"),
    conversation_id: Optional[str] = Query(None, alias="conversationId"),
    limit: int = Query(50, ge=1, le=500),
    service: AdminService = Depends(get_admin_service),
) -> AnalyticsLogResponse:
    return service.query_logs(
        event_type=event_type,
        region_slug=region_slug,
        conversation_id=conversation_id,
        limit=limit,
    )
