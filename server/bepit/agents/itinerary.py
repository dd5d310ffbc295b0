from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Sequence

from bepit.core.text import normalize
from bepit.models.items import ItemRecord

SLOTS = ("manhã", "tarde", "noite")

_DAYS_PATTERN = re.compile(r"\b(\d+)\s*dias?\b")
_WEEKEND_PHRASES = ("fim de semana", "final de semana")


@dataclass
class ItineraryDay:
    number: int
    slots: dict[str, ItemRecord] = field(default_factory=dict)


@dataclass
class Itinerary:
    days: List[ItineraryDay]
    tips: List[ItemRecord] = field(default_factory=list)

    @property
    def items(self) -> list[ItemRecord]:
        ordered: list[ItemRecord] = []
        for day in self.days:
            for slot in SLOTS:
                item = day.slots.get(slot)
                if item is not None:
                    ordered.append(item)
        return ordered


def requested_days(message: str | None, *, default: int = 1, maximum: int = 7) -> int:
    text = normalize(message)
    match = _DAYS_PATTERN.search(text)
    if match:
        days = int(match.group(1))
    elif any(phrase in text for phrase in _WEEKEND_PHRASES):
        days = 2
    else:
        days = default
    return max(1, min(days, maximum))


def build_itinerary(items: Sequence[ItemRecord], days: int, tips: Sequence[ItemRecord] = ()) -> Itinerary:
    """
    Spread the first ``days * 3`` items over the days round-robin, filling
    morning, afternoon and evening in that order. No ranking or routing.
    """
    plan = [ItineraryDay(number=index + 1) for index in range(days)]
    capacity = days * len(SLOTS)
    for position, item in enumerate(list(items)[:capacity]):
        day = plan[position % days]
        slot = SLOTS[position // days]
        day.slots[slot] = item
    return Itinerary(days=plan, tips=list(tips))


def render_itinerary(itinerary: Itinerary, *, region_name: str) -> str:
    if not itinerary.items:
        return (
            f"Ainda não tenho parceiros suficientes para montar um roteiro na {region_name}. "
            "Me conte o que gosta de fazer (praia, passeio de barco, gastronomia) que eu busco opções."
        )

    total = len(itinerary.days)
    title = "1 dia" if total == 1 else f"{total} dias"
    lines = [f"Aqui está uma sugestão de roteiro de {title} na {region_name}:"]
    for day in itinerary.days:
        if not day.slots:
            continue
        lines.append("")
        lines.append(f"Dia {day.number}:")
        for slot in SLOTS:
            item = day.slots.get(slot)
            if item is None:
                continue
            benefit = f" (Benefício BEPIT: {item.benefit})" if item.benefit else ""
            lines.append(f"- {slot.capitalize()}: {item.name}{benefit}")

    if itinerary.tips:
        lines.append("")
        lines.append("Dicas locais:")
        for tip in itinerary.tips:
            detail = f": {tip.description}" if tip.description else ""
            lines.append(f"- {tip.name}{detail}")
    return "\n".join(lines)
