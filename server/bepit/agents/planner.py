from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from langgraph.graph import END, START, StateGraph

from bepit.agents.composer import ResponseComposer, answer_detail, summarize_item
from bepit.agents.extractor import KeywordExtractor, KnownCity, detect_city
from bepit.agents.intents import Intent, classify_intent
from bepit.agents.itinerary import SLOTS, build_itinerary, render_itinerary, requested_days
from bepit.agents.selection import select_candidate
from bepit.agents.state import (
    ConversationPhase,
    ConversationState,
    Route,
    TurnState,
    phase_of,
    resolve_route,
)
from bepit.core.context import bind_conversation_id, reset_conversation_id
from bepit.core.exceptions import StoreUnavailableError
from bepit.core.text import normalize, search_terms, tokenize
from bepit.db.models import ITEM_KIND_PARTNER, ITEM_KIND_TIP
from bepit.models.chat import ChatRequest, ChatResponse
from bepit.models.items import ItemRecord
from bepit.services.catalog import CatalogService, RegionContext
from bepit.services.conversations import ConversationStateStore
from bepit.services.items import ItemSearchService
from bepit.services.telemetry import EVENT_PARTNER_VIEW, EVENT_SEARCH, TelemetryWriter

logger = logging.getLogger("bepit.planner")

_SELECTED = "selected"
_UNMATCHED = "unmatched"


@dataclass
class PlannerContext:
    catalog: CatalogService
    conversations: ConversationStateStore
    items: ItemSearchService
    telemetry: TelemetryWriter
    extractor: KeywordExtractor
    composer: ResponseComposer
    itinerary_default_days: int = 1
    itinerary_max_days: int = 7
    itinerary_max_tips: int = 3


class ChatPlanner:
    """
    Runs one chat turn as a small graph: classify the message, pick a route from
    the transition table, run it, then log the turn.
    """

    def __init__(self, context: PlannerContext) -> None:
        self._context = context
        self._graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(dict)
        graph.add_node("classify_intent", self._node_classify_intent)
        graph.add_node("answer_detail", self._node_answer_detail)
        graph.add_node("select_candidate", self._node_select_candidate)
        graph.add_node("build_itinerary", self._node_build_itinerary)
        graph.add_node("search", self._node_search)
        graph.add_node("compose", self._node_compose)
        graph.add_node("finalize", self._node_finalize)

        graph.add_edge(START, "classify_intent")
        graph.add_conditional_edges(
            "classify_intent",
            self._route_after_classify,
            {
                Route.answer_detail.value: "answer_detail",
                Route.select_candidate.value: "select_candidate",
                Route.build_itinerary.value: "build_itinerary",
                Route.search.value: "search",
            },
        )
        graph.add_conditional_edges(
            "select_candidate",
            self._route_after_selection,
            {
                _SELECTED: "finalize",
                _UNMATCHED: "search",
            },
        )
        graph.add_edge("answer_detail", "finalize")
        graph.add_edge("build_itinerary", "finalize")
        graph.add_edge("search", "compose")
        graph.add_edge("compose", "finalize")
        graph.add_edge("finalize", END)
        return graph.compile()

    async def run_async(self, region_slug: str, request: ChatRequest) -> ChatResponse:
        region = await self._context.catalog.get_region_async(region_slug)
        conversation = await self._load_conversation(region, request.conversationId)

        token = bind_conversation_id(conversation.conversationId)
        try:
            turn = TurnState(
                regionId=region.id,
                regionName=region.name,
                regionSlug=region.slug,
                message=request.message,
                conversation=conversation,
            )
            result_state = await self._graph.ainvoke({"turn": turn, "region": region})
            final_turn: TurnState = result_state["turn"]
        finally:
            reset_conversation_id(token)

        return ChatResponse(
            reply=final_turn.reply,
            interactionId=final_turn.interactionId,
            photoLinks=final_turn.photoLinks,
            conversationId=final_turn.conversation.conversationId,
        )

    def run(self, region_slug: str, request: ChatRequest) -> ChatResponse:
        return asyncio.run(self.run_async(region_slug, request))

    async def _load_conversation(self, region: RegionContext, conversation_id: Optional[str]) -> ConversationState:
        store = self._context.conversations
        if conversation_id:
            existing = await store.get_async(conversation_id)
            if existing is not None and existing.regionId == region.id:
                return existing
            if existing is not None:
                logger.info(
                    "conversation.region_mismatch",
                    extra={"conversationId": conversation_id, "regionSlug": region.slug},
                )
                conversation_id = None
        return await store.create_async(conversation_id or str(uuid.uuid4()), region.id)

    # Node implementations -------------------------------------------------

    async def _node_classify_intent(self, state: dict[str, Any]) -> dict[str, Any]:
        turn: TurnState = state["turn"]
        turn.intent = classify_intent(turn.message)
        turn.phase = phase_of(turn.conversation)
        turn.route = resolve_route(turn.phase, turn.intent, bool(turn.conversation.suggestedItems))
        logger.info(
            "planner.route",
            extra={"intent": turn.intent.value, "phase": turn.phase.value, "route": turn.route.value},
        )
        return state

    async def _node_answer_detail(self, state: dict[str, Any]) -> dict[str, Any]:
        turn: TurnState = state["turn"]
        item = turn.conversation.focusedItem
        if item is None:  # pragma: no cover - guarded by the transition table
            raise RuntimeError("answer_detail reached without a focused item")
        turn.reply, turn.photoLinks = answer_detail(turn.intent, item)
        turn.candidates = [item]
        turn.shownItem = item
        turn.phase = ConversationPhase.focused
        return state

    async def _node_select_candidate(self, state: dict[str, Any]) -> dict[str, Any]:
        turn: TurnState = state["turn"]
        conversation = turn.conversation
        item = select_candidate(turn.message, conversation.suggestedItems)
        if item is None:
            turn.metadata["selection"] = _UNMATCHED
            return state

        await self._context.conversations.set_focus_async(conversation.conversationId, item, region_id=turn.regionId)
        conversation.focusedItem = item
        turn.shownItem = item
        turn.reply = summarize_item(item)
        turn.photoLinks = list(item.photos)
        turn.candidates = [item]
        turn.phase = ConversationPhase.focused
        turn.metadata["selection"] = _SELECTED
        return state

    async def _node_build_itinerary(self, state: dict[str, Any]) -> dict[str, Any]:
        turn: TurnState = state["turn"]
        region: RegionContext = state["region"]
        context = self._context

        days = requested_days(
            turn.message,
            default=context.itinerary_default_days,
            maximum=context.itinerary_max_days,
        )
        items = await self._search(turn, region, kind=ITEM_KIND_PARTNER)
        if not items:
            items = [item for item in turn.conversation.suggestedItems if item.kind == ITEM_KIND_PARTNER]

        target_city_ids = [turn.cityId] if turn.cityId else region.city_ids
        if not items:
            items = await context.items.list_by_kind_async(
                target_city_ids, ITEM_KIND_PARTNER, limit=days * len(SLOTS)
            )
        try:
            tips = await context.items.list_by_kind_async(
                target_city_ids, ITEM_KIND_TIP, limit=context.itinerary_max_tips
            )
        except StoreUnavailableError:
            logger.warning("planner.tips_unavailable", extra={"regionSlug": region.slug})
            tips = []

        itinerary = build_itinerary(items, days, tips)
        if itinerary.items:
            await self._replace_suggestions(turn, itinerary.items)

        turn.reply = render_itinerary(itinerary, region_name=turn.regionName)
        turn.candidates = itinerary.items + itinerary.tips
        turn.phase = ConversationPhase.responding
        return state

    async def _node_search(self, state: dict[str, Any]) -> dict[str, Any]:
        turn: TurnState = state["turn"]
        region: RegionContext = state["region"]
        kind = ITEM_KIND_TIP if turn.intent == Intent.dica else None

        items = await self._search(turn, region, kind=kind)
        if items:
            await self._replace_suggestions(turn, items)
        turn.candidates = items
        return state

    async def _node_compose(self, state: dict[str, Any]) -> dict[str, Any]:
        turn: TurnState = state["turn"]
        turn.reply = await self._context.composer.compose_async(
            turn.message,
            turn.candidates,
            region_name=turn.regionName,
            extraction=turn.extraction,
        )
        turn.phase = ConversationPhase.responding
        return state

    async def _node_finalize(self, state: dict[str, Any]) -> dict[str, Any]:
        turn: TurnState = state["turn"]
        telemetry = self._context.telemetry
        conversation_id = turn.conversation.conversationId

        logged = await telemetry.record_interaction_async(
            region_id=turn.regionId,
            conversation_id=conversation_id,
            question=turn.message,
            answer=turn.reply,
            suggested_items=turn.candidates,
        )
        turn.interactionId = logged.value if logged.ok else None

        shown = turn.shownItem
        if shown is not None:
            await telemetry.increment_views_async(shown.id)
            await telemetry.record_event_async(
                EVENT_PARTNER_VIEW,
                region_id=turn.regionId,
                city_id=shown.cityId,
                item_id=shown.id,
                conversation_id=conversation_id,
                payload={"route": turn.route.value if turn.route else None, "intent": turn.intent.value},
            )
        return state

    def _route_after_classify(self, state: dict[str, Any]) -> str:
        turn: TurnState = state["turn"]
        return (turn.route or Route.search).value

    def _route_after_selection(self, state: dict[str, Any]) -> str:
        turn: TurnState = state["turn"]
        if turn.metadata.get("selection") == _SELECTED:
            return _SELECTED
        turn.route = Route.search
        return _UNMATCHED

    # Helpers ---------------------------------------------------------------

    async def _search(self, turn: TurnState, region: RegionContext, *, kind: Optional[str]) -> list[ItemRecord]:
        context = self._context
        turn.phase = ConversationPhase.searching

        extraction = await context.extractor.extract_async(
            turn.message,
            region.cities,
            region_name=region.name,
        )
        turn.extraction = extraction

        city = region.city_by_slug(extraction.suggestedCitySlug) or detect_city(turn.message, region.cities)
        turn.cityId = city.id if city else None
        target_city_ids = [city.id] if city else region.city_ids

        terms = extraction.keywords or search_terms(extraction.correctedText or turn.message)
        turn.terms = _drop_city_terms(terms, region.cities)

        items = await context.items.search_async(target_city_ids, turn.terms, kind=kind)  # type: ignore[arg-type]
        await context.telemetry.record_event_async(
            EVENT_SEARCH,
            region_id=turn.regionId,
            city_id=turn.cityId,
            conversation_id=turn.conversation.conversationId,
            payload={
                "terms": turn.terms,
                "intent": turn.intent.value,
                "kind": kind,
                "resultCount": len(items),
                "profile": {
                    "companionType": extraction.companionType,
                    "mood": extraction.mood,
                    "budget": extraction.budget,
                },
            },
        )
        return items

    async def _replace_suggestions(self, turn: TurnState, items: list[ItemRecord]) -> None:
        store = self._context.conversations
        conversation = turn.conversation
        await store.set_suggestions_async(conversation.conversationId, items, region_id=turn.regionId)
        await store.set_focus_async(conversation.conversationId, items[0], region_id=turn.regionId)
        conversation.suggestedItems = list(items)
        conversation.focusedItem = items[0]
        turn.shownItem = items[0]


def _drop_city_terms(terms: list[str], cities: tuple[KnownCity, ...]) -> list[str]:
    # Multi-word names ("Cabo Frio") arrive as separate terms.
    city_words: set[str] = set()
    for city in cities:
        for name in (city.name, city.slug.replace("-", " ")):
            normalized = normalize(name)
            city_words.add(normalized)
            city_words.update(tokenize(normalized))
    return [term for term in terms if normalize(term) not in city_words]


def create_planner(
    *,
    catalog: CatalogService,
    conversations: ConversationStateStore,
    items: ItemSearchService,
    telemetry: TelemetryWriter,
    extractor: KeywordExtractor,
    composer: ResponseComposer,
    itinerary_default_days: int = 1,
    itinerary_max_days: int = 7,
    itinerary_max_tips: int = 3,
) -> ChatPlanner:
    context = PlannerContext(
        catalog=catalog,
        conversations=conversations,
        items=items,
        telemetry=telemetry,
        extractor=extractor,
        composer=composer,
        itinerary_default_days=itinerary_default_days,
        itinerary_max_days=itinerary_max_days,
        itinerary_max_tips=itinerary_max_tips,
    )
    return ChatPlanner(context)
