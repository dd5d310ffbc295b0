from __future__ import annotations

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9]+")
_TOKEN = re.compile(r"[a-z0-9]+")
_WORD = re.compile(r"\w+")

_STOPWORDS = frozenset(
    {
        "a", "o", "as", "os", "um", "uma", "uns", "umas", "de", "do", "da", "dos", "das",
        "em", "no", "na", "nos", "nas", "para", "pra", "pro", "por", "com", "sem", "que",
        "qual", "quais", "onde", "como", "quando", "quero", "queria", "gostaria", "voce",
        "voces", "me", "eu", "meu", "minha", "tem", "ter", "algum", "alguma", "alguns",
        "algumas", "sobre", "mais", "muito", "muita", "bom", "boa", "bons", "boas", "ola",
        "oi", "dica", "dicas", "lugar", "lugares", "indica", "indicar", "sugere", "sugestao",
        "sugestoes", "perto", "aqui", "hoje", "amanha", "agora", "tambem", "isso", "esse",
        "essa", "este", "esta", "estou", "vou", "ir", "fazer", "e", "ou", "ai", "la",
    }
)


def normalize(text: str | None) -> str:
    """Lowercase, strip diacritics and collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(char for char in decomposed if unicodedata.category(char) != "Mn")
    return _WHITESPACE.sub(" ", stripped.lower()).strip()


def slugify(text: str | None) -> str:
    return _NON_SLUG.sub("-", normalize(text)).strip("-")


def tokenize(text: str | None) -> list[str]:
    return _TOKEN.findall(normalize(text))


def search_terms(text: str | None, *, limit: int = 5) -> list[str]:
    """
    Content words of a message, used as search terms when no extracted keywords exist.
    """
    terms: list[str] = []
    for token in _WORD.findall((text or "").lower()):
        if len(token) < 3 or normalize(token) in _STOPWORDS or token.isdigit():
            continue
        if token not in terms:
            terms.append(token)
        if len(terms) >= limit:
            break
    return terms
