from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from sqlalchemy import update
from sqlalchemy.orm import Session

from bepit.core.exceptions import ResourceNotFoundError
from bepit.db.models import AnalyticsEvent, Interaction, Item
from bepit.models.items import ItemRecord

logger = logging.getLogger("bepit.telemetry")

T = TypeVar("T")

EVENT_SEARCH = "search"
EVENT_PARTNER_VIEW = "partner_view"
EVENT_FEEDBACK = "feedback"


@dataclass(frozen=True)
class WriteResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


class InteractionNotFoundError(ResourceNotFoundError):
    error_type = "INTERACTION_NOT_FOUND"


@dataclass
class TelemetryWriter:
    """
    Side-channel writes for interactions, analytics events and view counters.

    Each write commits on its own; a failure is rolled back, logged and reported
    through ``WriteResult`` so the caller can carry on.
    """

    session: Session

    def record_interaction(
        self,
        *,
        region_id: str,
        conversation_id: str | None,
        question: str,
        answer: str,
        suggested_items: Sequence[ItemRecord],
    ) -> WriteResult[str]:
        def write() -> str:
            interaction = Interaction(
                region_id=region_id,
                conversation_id=conversation_id,
                user_question=question,
                ai_answer=answer,
                suggested_items=[item.snapshot() for item in suggested_items],
            )
            self.session.add(interaction)
            self.session.flush()
            return interaction.id

        return self._best_effort("interaction", write, conversation_id=conversation_id)

    def record_event(
        self,
        event_type: str,
        *,
        region_id: str | None = None,
        city_id: str | None = None,
        item_id: str | None = None,
        conversation_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> WriteResult[str]:
        def write() -> str:
            event = AnalyticsEvent(
                type=event_type,
                region_id=region_id,
                city_id=city_id,
                item_id=item_id,
                conversation_id=conversation_id,
                payload=payload or {},
            )
            self.session.add(event)
            self.session.flush()
            return event.id

        return self._best_effort(f"event.{event_type}", write, conversation_id=conversation_id)

    def increment_views(self, item_id: str) -> WriteResult[int]:
        def write() -> int:
            result = self.session.execute(
                update(Item).where(Item.id == item_id).values(view_count=Item.view_count + 1)
            )
            return result.rowcount or 0

        return self._best_effort("item_views", write, item_id=item_id)

    def record_feedback(self, interaction_id: str, feedback: str) -> WriteResult[str]:
        """
        Attach feedback to an interaction. An unknown interaction raises
        ``InteractionNotFoundError``; store failures are swallowed like any other write.
        """
        interaction = self.session.get(Interaction, interaction_id)
        if interaction is None:
            raise InteractionNotFoundError(
                "Interação não encontrada.", details={"interactionId": interaction_id}
            )
        region_id = interaction.region_id
        conversation_id = interaction.conversation_id

        def write() -> str:
            interaction.user_feedback = feedback
            return interaction.id

        result = self._best_effort("feedback", write, conversation_id=conversation_id)
        if result.ok:
            self.record_event(
                EVENT_FEEDBACK,
                region_id=region_id,
                conversation_id=conversation_id,
                payload={"interactionId": interaction_id, "feedback": feedback},
            )
        return result

    async def record_interaction_async(self, **kwargs: Any) -> WriteResult[str]:
        return await asyncio.to_thread(self.record_interaction, **kwargs)

    async def record_event_async(self, event_type: str, **kwargs: Any) -> WriteResult[str]:
        return await asyncio.to_thread(self.record_event, event_type, **kwargs)

    async def increment_views_async(self, item_id: str) -> WriteResult[int]:
        return await asyncio.to_thread(self.increment_views, item_id)

    async def record_feedback_async(self, interaction_id: str, feedback: str) -> WriteResult[str]:
        return await asyncio.to_thread(self.record_feedback, interaction_id, feedback)

    def _best_effort(self, operation: str, write: Callable[[], T], **context: Any) -> WriteResult[T]:
        try:
            value = write()
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            logger.warning(
                "telemetry.write_failed",
                extra={"operation": operation, "error": str(exc), **context},
            )
            return WriteResult(ok=False, error=str(exc))
        return WriteResult(ok=True, value=value)
