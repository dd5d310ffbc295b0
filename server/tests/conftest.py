from __future__ import annotations

from types import SimpleNamespace
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bepit.agents.composer import ResponseComposer
from bepit.agents.extractor import KeywordExtractor
from bepit.agents.llm import ChatLlm, clear_fake_responses
from bepit.agents.memory import InMemoryConversationCache, get_conversation_cache
from bepit.agents.planner import ChatPlanner, create_planner
from bepit.core.config import get_settings
from bepit.db.models import City, Item, Region
from bepit.db.session import get_session, init_db
from bepit.main import create_app
from bepit.services.catalog import CatalogService
from bepit.services.conversations import ConversationStateStore
from bepit.services.items import ItemSearchService
from bepit.services.telemetry import TelemetryWriter

ADMIN_KEY = "test-admin-key"
REGION_SLUG = "regiao-dos-lagos"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch) -> Iterator[None]:
    monkeypatch.setenv("LLM_PROVIDER", "none")
    monkeypatch.setenv("ADMIN_API_KEY", ADMIN_KEY)
    monkeypatch.setenv("DB_AUTO_CREATE", "false")
    get_settings.cache_clear()
    clear_fake_responses()
    yield
    get_settings.cache_clear()
    clear_fake_responses()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def _item(city: City, name: str, **fields) -> Item:
    tags = fields.pop("tags", [])
    item = Item(city_id=city.id, name=name, **fields)
    item.set_tags(tags)
    return item


@pytest.fixture()
def catalog(session_factory) -> SimpleNamespace:
    with session_factory() as session:
        region = Region(name="Região dos Lagos", slug=REGION_SLUG)
        other_region = Region(name="Costa Verde", slug="costa-verde")
        session.add_all([region, other_region])
        session.flush()

        buzios = City(region_id=region.id, name="Búzios", slug="buzios")
        cabo_frio = City(region_id=region.id, name="Cabo Frio", slug="cabo-frio")
        paraty = City(region_id=other_region.id, name="Paraty", slug="paraty")
        session.add_all([buzios, cabo_frio, paraty])
        session.flush()

        capricciosa = _item(
            buzios,
            "Pizzaria Capricciosa",
            category="Pizzaria",
            description="Pizza de forno a lenha na Rua das Pedras.",
            benefit="10% de desconto",
            address="Rua das Pedras, 200",
            contact="(22) 2623-0000",
            hours="18h-00h",
            price_range="$$",
            photos=["https://img.example/capricciosa-1.jpg", "https://img.example/capricciosa-2.jpg"],
            tags=["pizza", "jantar"],
        )
        churrascaria = _item(
            buzios,
            "Churrascaria Gaúcha",
            category="Churrascaria",
            description="Rodízio completo.",
            benefit="Sobremesa cortesia",
            address="Av. José Bento Ribeiro Dantas, 500",
            hours="12h-23h",
            tags=["carne", "rodízio", "jantar"],
        )
        bistro = _item(
            buzios,
            "Bistrô do Mar",
            category="Frutos do mar",
            address="Orla Bardot, 10",
            hours="12h-22h",
            tags=["peixe", "moqueca", "jantar"],
        )
        closed = _item(buzios, "Pizzaria Fechada", category="Pizzaria", active=False, tags=["pizza"])
        transit_tip = _item(
            buzios,
            "Trânsito na Estrada da Usina",
            kind="TIP",
            description="Evite a Estrada da Usina entre 17h e 19h.",
            tags=["trânsito", "estacionar"],
        )
        forno = _item(
            cabo_frio,
            "Pizzaria Forno da Praia",
            category="Pizzaria",
            address="Av. do Contorno, 80",
            hours="18h-23h",
            tags=["pizza"],
        )
        parking_tip = _item(
            cabo_frio,
            "Estacionamento na Praia do Forte",
            kind="TIP",
            description="Chegue antes das 9h.",
            tags=["estacionar"],
        )
        paraty_pizza = _item(paraty, "Pizzaria Paraty", category="Pizzaria", tags=["pizza"])
        session.add_all([capricciosa, churrascaria, bistro, closed, transit_tip, forno, parking_tip, paraty_pizza])
        session.commit()

        return SimpleNamespace(
            region_id=region.id,
            other_region_id=other_region.id,
            buzios_id=buzios.id,
            cabo_frio_id=cabo_frio.id,
            capricciosa_id=capricciosa.id,
            churrascaria_id=churrascaria.id,
            bistro_id=bistro.id,
            closed_id=closed.id,
            transit_tip_id=transit_tip.id,
            forno_id=forno.id,
            parking_tip_id=parking_tip.id,
        )


@pytest.fixture()
def db_session(session_factory, catalog) -> Iterator[Session]:
    with session_factory() as session:
        yield session


@pytest.fixture()
def conversation_cache() -> InMemoryConversationCache:
    return InMemoryConversationCache()


@pytest.fixture()
def planner_factory(db_session, conversation_cache):
    def _build(llm: ChatLlm | None = None, *, session: Session | None = None) -> ChatPlanner:
        active_session = session or db_session
        return create_planner(
            catalog=CatalogService(active_session),
            conversations=ConversationStateStore(active_session, conversation_cache),
            items=ItemSearchService(active_session),
            telemetry=TelemetryWriter(active_session),
            extractor=KeywordExtractor(llm),
            composer=ResponseComposer(llm),
        )

    return _build


@pytest.fixture()
def app(session_factory, catalog, conversation_cache):
    application = create_app()

    def _session() -> Iterator[Session]:
        with session_factory() as session:
            yield session

    application.dependency_overrides[get_session] = _session
    application.dependency_overrides[get_conversation_cache] = lambda: conversation_cache
    return application


@pytest.fixture()
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": ADMIN_KEY}
