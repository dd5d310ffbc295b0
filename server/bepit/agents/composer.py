from __future__ import annotations

import logging
import time
from typing import Optional, Sequence

from bepit.agents.intents import Intent
from bepit.agents.llm import ChatLlm
from bepit.agents.prompts import RESPONSE_PROMPT
from bepit.agents.schemas import ExtractionResult
from bepit.models.items import ItemRecord

logger = logging.getLogger("bepit.composer")

_NO_RESULTS_REPLY = (
    "Ainda não encontrei parceiros para isso na {region}. "
    "Pode me contar um pouco mais? Por exemplo: tipo de comida, passeio ou a cidade que vai visitar."
)


def answer_detail(intent: Intent, item: ItemRecord) -> tuple[str, list[str]]:
    """Reply with one stored field of the focused item, plus photo links for ``fotos``."""
    name = item.name
    if intent == Intent.horario:
        if item.hours:
            return f"O horário de funcionamento de {name} é: {item.hours}.", []
        return f"Não tenho o horário de {name} cadastrado. Vale confirmar direto com eles.", []

    if intent == Intent.endereco:
        if item.address:
            return f"{name} fica em: {item.address}.", []
        return f"Não tenho o endereço de {name} cadastrado.", []

    if intent == Intent.contato:
        if item.contact:
            return f"Você pode falar com {name} pelo contato: {item.contact}.", []
        return f"Não tenho um contato de {name} cadastrado.", []

    if intent == Intent.fotos:
        if item.photos:
            return f"Aqui estão algumas fotos de {name}.", list(item.photos)
        return f"Ainda não tenho fotos de {name}.", []

    if intent == Intent.preco:
        if item.priceRange:
            return f"A faixa de preço de {name} é: {item.priceRange}.", []
        return f"Não tenho a faixa de preço de {name} cadastrada.", []

    return summarize_item(item), list(item.photos)


def summarize_item(item: ItemRecord) -> str:
    header = item.name if not item.category else f"{item.name} ({item.category})"
    lines = [f"Boa escolha! {header}."]
    if item.description:
        lines.append(item.description.strip())
    if item.benefit:
        lines.append(f"Benefício BEPIT: {item.benefit.strip()}")
    if item.address:
        lines.append(f"Endereço: {item.address}")
    if item.hours:
        lines.append(f"Horário: {item.hours}")
    lines.append("Quer saber horário, endereço, contato, fotos ou preço?")
    return "\n".join(lines)


def format_candidates(items: Sequence[ItemRecord], *, limit: int) -> str:
    if not items:
        return "Nenhum parceiro específico encontrado em nossa base de dados para esta pergunta."
    blocks: list[str] = []
    for position, item in enumerate(items[:limit], start=1):
        block = [f"{position}. {item.name}"]
        if item.category:
            block.append(f"   Categoria: {item.category}")
        if item.description:
            block.append(f"   Descrição: {item.description}")
        if item.benefit:
            block.append(f"   Benefício BEPIT: {item.benefit}")
        if item.address:
            block.append(f"   Endereço: {item.address}")
        if item.priceRange:
            block.append(f"   Preço: {item.priceRange}")
        blocks.append("\n".join(block))
    return "\n".join(blocks)


def template_reply(items: Sequence[ItemRecord], *, region_name: str, limit: int = 3) -> str:
    if not items:
        return _NO_RESULTS_REPLY.format(region=region_name or "região")
    lines = ["Encontrei estas opções de parceiros BEPIT:"]
    for position, item in enumerate(items[:limit], start=1):
        detail = f" ({item.category})" if item.category else ""
        benefit = f" Benefício: {item.benefit}." if item.benefit else ""
        lines.append(f"{position}. {item.name}{detail}.{benefit}")
    lines.append("Me diga o número ou o nome de uma opção para ver mais detalhes.")
    return "\n".join(lines)


class ResponseComposer:
    """Free-form reply for a fresh search, through the LLM when one is configured."""

    def __init__(
        self,
        llm: ChatLlm | None = None,
        *,
        template_items: int = 3,
        llm_items: int = 8,
    ) -> None:
        self._llm = llm
        self._template_items = template_items
        self._llm_items = llm_items

    async def compose_async(
        self,
        message: str,
        items: Sequence[ItemRecord],
        *,
        region_name: str,
        extraction: Optional[ExtractionResult] = None,
    ) -> str:
        if self._llm is None:
            return template_reply(items, region_name=region_name, limit=self._template_items)

        variables = {
            "region_name": region_name,
            "profile": extraction.profile_summary() if extraction else "sem perfil identificado",
            "candidates": format_candidates(items, limit=self._llm_items),
            "user_message": extraction.correctedText if extraction else message,
        }
        prompt_text = RESPONSE_PROMPT.render(variables)
        start = time.perf_counter()
        try:
            reply = await self._llm.generate_async(prompt_text, prompt_id=RESPONSE_PROMPT.prompt_id)
        except Exception as exc:
            logger.warning(
                "llm.response",
                extra={
                    "promptId": RESPONSE_PROMPT.prompt_id,
                    "status": "error",
                    "latencyMs": round((time.perf_counter() - start) * 1000, 2),
                    "error": str(exc),
                },
            )
            reply = ""

        if not reply.strip():
            return template_reply(items, region_name=region_name, limit=self._template_items)
        logger.info(
            "llm.response",
            extra={
                "promptId": RESPONSE_PROMPT.prompt_id,
                "status": "success",
                "latencyMs": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return reply.strip()
