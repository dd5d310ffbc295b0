from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bepit.agents.memory import ConversationCache
from bepit.agents.state import ConversationState
from bepit.db.models import Conversation
from bepit.models.items import ItemRecord

logger = logging.getLogger("bepit.conversations")


def _to_state(row: Conversation) -> ConversationState:
    focused = ItemRecord.model_validate(row.focused_item) if row.focused_item else None
    suggested = [ItemRecord.model_validate(item) for item in (row.suggested_items or [])]
    return ConversationState(
        conversationId=row.id,
        regionId=row.region_id,
        focusedItem=focused,
        suggestedItems=suggested,
    )


@dataclass
class ConversationStateStore:
    """
    Focus and suggestion list per conversation, relational store first.

    A failed read or write falls back to the injected cache. A turn reads, then
    writes, without any lock: two concurrent turns on the same conversation can
    both read the old state and the later write wins.
    """

    session: Session
    cache: ConversationCache

    def create(self, conversation_id: str, region_id: str) -> ConversationState:
        state = ConversationState(conversationId=conversation_id, regionId=region_id)
        try:
            self.session.add(Conversation(id=conversation_id, region_id=region_id, suggested_items=[]))
            self.session.commit()
        except SQLAlchemyError as exc:
            self._fallback("create", conversation_id, exc)
            self.cache.set(state)
        return state

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        try:
            row = self.session.get(Conversation, conversation_id, populate_existing=True)
        except SQLAlchemyError as exc:
            self._fallback("get", conversation_id, exc)
            return self.cache.get(conversation_id)
        if row is None:
            return self.cache.get(conversation_id)
        return _to_state(row)

    def set_focus(self, conversation_id: str, item: Optional[ItemRecord], *, region_id: str) -> None:
        snapshot = item.snapshot() if item is not None else None
        try:
            row = self._row_for_write(conversation_id, region_id)
            row.focused_item = snapshot
            self.session.commit()
        except SQLAlchemyError as exc:
            self._fallback("set_focus", conversation_id, exc)
            state = self._cached_or_new(conversation_id, region_id)
            state.focusedItem = item
            self.cache.set(state)

    def set_suggestions(
        self,
        conversation_id: str,
        items: Sequence[ItemRecord],
        *,
        region_id: str,
    ) -> None:
        snapshots = [item.snapshot() for item in items]
        try:
            row = self._row_for_write(conversation_id, region_id)
            row.suggested_items = snapshots
            self.session.commit()
        except SQLAlchemyError as exc:
            self._fallback("set_suggestions", conversation_id, exc)
            state = self._cached_or_new(conversation_id, region_id)
            state.suggestedItems = list(items)
            self.cache.set(state)

    # Async variants run the blocking store calls in a worker thread.

    async def create_async(self, conversation_id: str, region_id: str) -> ConversationState:
        return await asyncio.to_thread(self.create, conversation_id, region_id)

    async def get_async(self, conversation_id: str) -> Optional[ConversationState]:
        return await asyncio.to_thread(self.get, conversation_id)

    async def set_focus_async(self, conversation_id: str, item: Optional[ItemRecord], *, region_id: str) -> None:
        await asyncio.to_thread(self.set_focus, conversation_id, item, region_id=region_id)

    async def set_suggestions_async(
        self,
        conversation_id: str,
        items: Sequence[ItemRecord],
        *,
        region_id: str,
    ) -> None:
        await asyncio.to_thread(self.set_suggestions, conversation_id, items, region_id=region_id)

    def _row_for_write(self, conversation_id: str, region_id: str) -> Conversation:
        row = self.session.get(Conversation, conversation_id)
        if row is None:
            row = Conversation(id=conversation_id, region_id=region_id, suggested_items=[])
            self.session.add(row)
        return row

    def _cached_or_new(self, conversation_id: str, region_id: str) -> ConversationState:
        return self.cache.get(conversation_id) or ConversationState(
            conversationId=conversation_id,
            regionId=region_id,
        )

    def _fallback(self, operation: str, conversation_id: str, exc: Exception) -> None:
        try:
            self.session.rollback()
        except SQLAlchemyError:
            logger.exception("conversation.rollback_failed", extra={"operation": operation})
        logger.warning(
            "conversation.store_fallback",
            extra={"operation": operation, "conversationId": conversation_id, "error": str(exc)},
        )
