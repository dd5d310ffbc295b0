from __future__ import annotations

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from bepit.agents.composer import ResponseComposer
from bepit.agents.extractor import KeywordExtractor
from bepit.agents.llm import get_chat_llm
from bepit.agents.memory import ConversationCache, get_conversation_cache
from bepit.agents.planner import ChatPlanner, create_planner
from bepit.core.config import get_settings
from bepit.db.session import get_session
from bepit.models.chat import ChatRequest, ChatResponse
from bepit.services.catalog import CatalogService
from bepit.services.conversations import ConversationStateStore
from bepit.services.items import ItemSearchService
from bepit.services.telemetry import TelemetryWriter

router = APIRouter(prefix="/api/chat", tags=["chat"])


def get_chat_planner(
    session: Session = Depends(get_session),
    cache: ConversationCache = Depends(get_conversation_cache),
) -> ChatPlanner:
    settings = get_settings()
    llm_factory = get_chat_llm(settings)
    llm = llm_factory() if llm_factory is not None else None
    return create_planner(
        catalog=CatalogService(session),
        conversations=ConversationStateStore(session, cache),
        items=ItemSearchService(session),
        telemetry=TelemetryWriter(session),
        extractor=KeywordExtractor(llm),
        composer=ResponseComposer(
            llm,
            template_items=settings.composer_template_items,
            llm_items=settings.composer_llm_items,
        ),
        itinerary_default_days=settings.itinerary_default_days,
        itinerary_max_days=settings.itinerary_max_days,
        itinerary_max_tips=settings.itinerary_max_tips,
    )


@router.post("/{region_slug}", response_model=ChatResponse)
async def chat_with_concierge(
    request: ChatRequest,
    region_slug: str = Path(..., min_length=1, description="Slug of the region being visited."),
    planner: ChatPlanner = Depends(get_chat_planner),
) -> ChatResponse:
    return await planner.run_async(region_slug, request)
