from __future__ import annotations

import re
from collections import Counter
from typing import Optional, Sequence

from bepit.core.text import normalize, tokenize
from bepit.models.items import ItemRecord

SIMILARITY_THRESHOLD = 0.45

_EXPLICIT_MARKER = re.compile(r"(?:opcao|numero|num\.?|item|#)\s*(\d+)")
_BARE_NUMBER = re.compile(r"(?<![\w#])(\d+)(?!\w)")

_ORDINAL_WORDS = {
    "primeiro": 0,
    "primeira": 0,
    "segundo": 1,
    "segunda": 1,
    "terceiro": 2,
    "terceira": 2,
    "quarto": 3,
    "quarta": 3,
    "quinto": 4,
    "quinta": 4,
}

# Room and weekday words: ordinals only alone or after an article ("a segunda").
_AMBIGUOUS_ORDINALS = frozenset({"segunda", "quarto", "quarta", "quinta"})
_ORDINAL_ARTICLES = frozenset({"o", "a"})

_CARDINAL_WORDS = {
    "um": 0,
    "uma": 0,
    "dois": 1,
    "duas": 1,
    "tres": 2,
    "quatro": 3,
    "cinco": 4,
}

# Cardinal words double as articles ("um restaurante"), so they only count in short replies.
_CARDINAL_MAX_TOKENS = 3

CATEGORY_SYNONYMS: dict[str, tuple[str, ...]] = {
    "restaurante": ("comer", "comida", "almoco", "almocar", "jantar", "jantinha"),
    "pizzaria": ("pizza",),
    "churrascaria": ("churrasco", "carne", "rodizio"),
    "frutos do mar": ("peixe", "camarao", "lagosta", "moqueca", "marisco"),
    "bar": ("bebida", "beber", "drink", "drinks", "cerveja", "chopp", "happy hour"),
    "cafeteria": ("cafe", "cafezinho", "lanche"),
    "sorveteria": ("sorvete", "acai", "gelato"),
    "passeio": ("barco", "escuna", "lancha", "mergulho", "trilha", "buggy"),
    "hospedagem": ("pousada", "hotel", "hostel", "dormir", "hospedar"),
    "praia": ("mar", "areia", "banho de mar"),
}


def extract_ordinal(text: str | None) -> Optional[int]:
    """
    Parse a zero-based selection index from a reply such as "2", "opção 3" or "segundo".
    """
    normalized = normalize(text)
    if not normalized:
        return None

    for pattern in (_EXPLICIT_MARKER, _BARE_NUMBER):
        match = pattern.search(normalized)
        if match:
            index = int(match.group(1)) - 1
            return index if index >= 0 else None

    tokens = tokenize(normalized)
    for position, token in enumerate(tokens):
        if token not in _ORDINAL_WORDS:
            continue
        if token in _AMBIGUOUS_ORDINALS and len(tokens) > 1:
            if position == 0 or tokens[position - 1] not in _ORDINAL_ARTICLES:
                continue
        return _ORDINAL_WORDS[token]
    if len(tokens) <= _CARDINAL_MAX_TOKENS:
        for token in tokens:
            if token in _CARDINAL_WORDS:
                return _CARDINAL_WORDS[token]
    return None


def _bigrams(value: str) -> Counter[str]:
    compact = re.sub(r"\s+", "", value)
    return Counter(compact[index : index + 2] for index in range(len(compact) - 1))


def bigram_similarity(first: str | None, second: str | None) -> float:
    """Dice coefficient over character bigrams of the normalized strings."""
    a = normalize(first)
    b = normalize(second)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    a_grams = _bigrams(a)
    b_grams = _bigrams(b)
    total = sum(a_grams.values()) + sum(b_grams.values())
    if total == 0:
        return 0.0
    overlap = sum((a_grams & b_grams).values())
    return 2.0 * overlap / total


def _category_matches(text: str, category: str) -> bool:
    if not category:
        return False
    if category in text or (len(text) >= 3 and text in category):
        return True
    for canonical, synonyms in CATEGORY_SYNONYMS.items():
        if canonical not in category and category not in canonical:
            continue
        if any(synonym in text for synonym in synonyms):
            return True
    return False


def match_candidate(text: str | None, candidates: Sequence[ItemRecord]) -> Optional[ItemRecord]:
    """
    Resolve free text to one of the previously suggested items.

    Tries name containment, then category containment or synonyms, then the
    best bigram similarity against name and category.
    """
    normalized = normalize(text)
    if not normalized or not candidates:
        return None

    for item in candidates:
        name = normalize(item.name)
        if not name:
            continue
        if name in normalized or (len(normalized) >= 3 and normalized in name):
            return item

    for item in candidates:
        if _category_matches(normalized, normalize(item.category)):
            return item

    best_item: Optional[ItemRecord] = None
    best_score = 0.0
    for item in candidates:
        score = max(
            bigram_similarity(normalized, item.name),
            bigram_similarity(normalized, item.category),
        )
        if score > best_score:
            best_item, best_score = item, score

    if best_score >= SIMILARITY_THRESHOLD:
        return best_item
    return None


def select_candidate(text: str | None, candidates: Sequence[ItemRecord]) -> Optional[ItemRecord]:
    """Ordinal lookup first, fuzzy name/category matching second."""
    if not candidates:
        return None
    index = extract_ordinal(text)
    if index is not None and index < len(candidates):
        return candidates[index]
    return match_candidate(text, candidates)
