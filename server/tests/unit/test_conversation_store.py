from __future__ import annotations

from sqlalchemy.exc import OperationalError

from bepit.agents.memory import InMemoryConversationCache
from bepit.agents.state import ConversationState
from bepit.db.models import Conversation
from bepit.models.items import ItemRecord
from bepit.services.conversations import ConversationStateStore

ITEM_A = ItemRecord(id="a", cityId="c1", name="Pizzaria Capricciosa", hours="18h-00h")
ITEM_B = ItemRecord(id="b", cityId="c1", name="Churrascaria Gaúcha")


def _store_error(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("connection refused"))


def test_create_and_read_back_from_database(db_session, catalog, conversation_cache) -> None:
    store = ConversationStateStore(db_session, conversation_cache)

    store.create("conv-1", catalog.region_id)
    store.set_suggestions("conv-1", [ITEM_A, ITEM_B], region_id=catalog.region_id)
    store.set_focus("conv-1", ITEM_B, region_id=catalog.region_id)

    state = store.get("conv-1")
    assert state.regionId == catalog.region_id
    assert [item.id for item in state.suggestedItems] == ["a", "b"]
    assert state.focusedItem.name == "Churrascaria Gaúcha"
    assert db_session.get(Conversation, "conv-1") is not None
    assert len(conversation_cache) == 0


def test_get_unknown_conversation_returns_none(db_session, catalog, conversation_cache) -> None:
    assert ConversationStateStore(db_session, conversation_cache).get("missing") is None


def test_writes_fall_back_to_cache_when_store_fails(db_session, catalog, monkeypatch) -> None:
    cache = InMemoryConversationCache()
    store = ConversationStateStore(db_session, cache)
    monkeypatch.setattr(db_session, "commit", _store_error)

    store.create("conv-2", catalog.region_id)
    store.set_suggestions("conv-2", [ITEM_A, ITEM_B], region_id=catalog.region_id)
    store.set_focus("conv-2", ITEM_A, region_id=catalog.region_id)

    cached = cache.get("conv-2")
    assert cached is not None
    assert [item.id for item in cached.suggestedItems] == ["a", "b"]
    assert cached.focusedItem.id == "a"


def test_read_falls_back_to_cache_when_store_fails(db_session, catalog, monkeypatch) -> None:
    cache = InMemoryConversationCache()
    cache.set(ConversationState(conversationId="conv-3", regionId=catalog.region_id, focusedItem=ITEM_A))
    store = ConversationStateStore(db_session, cache)
    monkeypatch.setattr(db_session, "get", _store_error)

    state = store.get("conv-3")

    assert state.focusedItem.hours == "18h-00h"


def test_missing_row_reads_cache(db_session, catalog) -> None:
    cache = InMemoryConversationCache()
    cache.set(ConversationState(conversationId="conv-4", regionId=catalog.region_id, suggestedItems=[ITEM_B]))

    state = ConversationStateStore(db_session, cache).get("conv-4")

    assert [item.id for item in state.suggestedItems] == ["b"]


def test_cache_returns_copies() -> None:
    cache = InMemoryConversationCache()
    cache.set(ConversationState(conversationId="conv-5", regionId="r"))

    copy = cache.get("conv-5")
    copy.suggestedItems.append(ITEM_A)

    assert cache.get("conv-5").suggestedItems == []
    cache.clear("conv-5")
    assert cache.get("conv-5") is None
