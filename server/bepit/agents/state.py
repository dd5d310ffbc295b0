from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from bepit.agents.intents import DETAIL_INTENTS, Intent
from bepit.agents.schemas import ExtractionResult
from bepit.models.items import ItemRecord


class ConversationState(BaseModel):
    conversationId: str = Field(..., description="Conversation identifier.")
    regionId: str = Field(..., description="Region the conversation is scoped to.")
    focusedItem: Optional[ItemRecord] = Field(default=None)
    suggestedItems: List[ItemRecord] = Field(default_factory=list)



class ConversationPhase(str, Enum):
    idle = "idle"
    awaiting_selection = "awaiting_selection"
    focused = "focused"
    searching = "searching"
    responding = "responding"


class Route(str, Enum):
    answer_detail = "answer_detail"
    select_candidate = "select_candidate"
    build_itinerary = "build_itinerary"
    search = "search"


def phase_of(state: ConversationState) -> ConversationPhase:
    if state.focusedItem is not None:
        return ConversationPhase.focused
    if state.suggestedItems:
        return ConversationPhase.awaiting_selection
    return ConversationPhase.idle


@dataclass(frozen=True)
class Transition:
    route: Route
    guard: Callable[[ConversationPhase, Intent, bool], bool]
    description: str


# Evaluated in order; the first matching guard picks the route for the turn.
TRANSITIONS: tuple[Transition, ...] = (
    Transition(
        route=Route.answer_detail,
        guard=lambda phase, intent, has_candidates: phase == ConversationPhase.focused
        and intent in DETAIL_INTENTS,
        description="focused item + detail question",
    ),
    Transition(
        route=Route.select_candidate,
        guard=lambda phase, intent, has_candidates: has_candidates and intent == Intent.nenhuma,
        description="pick one of the suggested items",
    ),
    Transition(
        route=Route.build_itinerary,
        guard=lambda phase, intent, has_candidates: intent == Intent.roteiro,
        description="itinerary request",
    ),
    Transition(
        route=Route.search,
        guard=lambda phase, intent, has_candidates: True,
        description="fresh search",
    ),
)


def resolve_route(phase: ConversationPhase, intent: Intent, has_candidates: bool) -> Route:
    for transition in TRANSITIONS:
        if transition.guard(phase, intent, has_candidates):
            return transition.route
    return Route.search


class TurnState(BaseModel):
    """Mutable state carried through the planner graph for a single chat turn."""

    regionId: str
    regionName: str
    regionSlug: str
    message: str
    conversation: ConversationState
    intent: Intent = Intent.nenhuma
    phase: ConversationPhase = ConversationPhase.idle
    route: Optional[Route] = None
    extraction: Optional[ExtractionResult] = None
    cityId: Optional[str] = None
    terms: List[str] = Field(default_factory=list)
    candidates: List[ItemRecord] = Field(default_factory=list)
    reply: str = ""
    photoLinks: List[str] = Field(default_factory=list)
    interactionId: Optional[str] = None
    shownItem: Optional[ItemRecord] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
