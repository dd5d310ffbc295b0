from __future__ import annotations

import re
from enum import Enum

from bepit.core.text import normalize


class Intent(str, Enum):
    roteiro = "roteiro"
    horario = "horario"
    endereco = "endereco"
    contato = "contato"
    fotos = "fotos"
    preco = "preco"
    dica = "dica"
    nenhuma = "nenhuma"


DETAIL_INTENTS = frozenset(
    {Intent.horario, Intent.endereco, Intent.contato, Intent.fotos, Intent.preco}
)

_ITINERARY_PATTERN = re.compile(r"\b\d+\s*dias?\b")

_ITINERARY_PHRASES = (
    "roteiro",
    "itinerario",
    "planejar",
    "planejamento",
    "programacao",
    "cronograma",
    "fim de semana",
    "final de semana",
    "feriado",
    "o que fazer em",
)

# Ordered: the first intent whose phrase appears wins.
_DETAIL_PHRASES: tuple[tuple[Intent, tuple[str, ...]], ...] = (
    (
        Intent.horario,
        (
            "horario",
            "que horas",
            "abre",
            "fecha",
            "funciona",
            "funcionamento",
            "aberto",
            "expediente",
        ),
    ),
    (
        Intent.endereco,
        (
            "endereco",
            "onde fica",
            "localizacao",
            "como chegar",
            "mapa",
        ),
    ),
    (
        Intent.contato,
        (
            "contato",
            "telefone",
            "whatsapp",
            "zap",
            "instagram",
            "e-mail",
            "email",
            "ligar",
        ),
    ),
    (
        Intent.fotos,
        (
            "foto",
            "imagem",
            "imagens",
            "me mostra",
            "mostrar",
            "ver como e",
        ),
    ),
    (
        Intent.preco,
        (
            "preco",
            "faixa de preco",
            "quanto custa",
            "quanto e",
            "valor",
            "caro",
            "barato",
            "custo",
        ),
    ),
)

_TIP_PHRASES = (
    "transito",
    "engarrafamento",
    "estacionar",
    "estacionamento",
    "onde parar o carro",
    "cafe da manha",
    "padaria",
    "seguranca",
    "seguro andar",
    "perigoso",
    "evitar",
    "dica local",
)


def _contains_any(text: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in text for phrase in phrases)


def classify_intent(message: str | None) -> Intent:
    """
    Map a user message to a follow-up intent.

    Priority order is itinerary, then detail intents (hours, address, contact,
    photos, price), then local tips; anything else is ``nenhuma``.
    """
    text = normalize(message)
    if not text:
        return Intent.nenhuma

    if _ITINERARY_PATTERN.search(text) or _contains_any(text, _ITINERARY_PHRASES):
        return Intent.roteiro

    for intent, phrases in _DETAIL_PHRASES:
        if _contains_any(text, phrases):
            return intent

    if _contains_any(text, _TIP_PHRASES):
        return Intent.dica

    return Intent.nenhuma


def is_detail_intent(intent: Intent) -> bool:
    return intent in DETAIL_INTENTS
