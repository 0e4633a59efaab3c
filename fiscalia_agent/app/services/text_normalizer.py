"""
Text Normalizer
================

Single canonicalization point for every comparison in the engine:
district names, aliases, offense names, category labels and yes/no answers
all go through normalize() before they are compared.

All helpers are pure and total: None and "" yield empty results.
"""

import re
import unicodedata
from typing import Optional, Set, Tuple

_WS_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^a-z0-9]+")
_PARENTHETICAL_RE = re.compile(r"^(.*?)\s*\(([^()]*)\)\s*$")

LEADING_ARTICLES = ("el ", "la ", "los ", "las ")

# ─── Stop-words ──────────────────────────────────────────────────────────────
# Spanish function words plus chat filler. Only words of length >= 3 matter
# because shorter tokens are dropped by content_tokens() anyway.

STOP_WORDS: Set[str] = {
    "ante", "aqui", "asi", "aun", "bajo", "cada", "como", "con", "contra",
    "cual", "cuando", "del", "desde", "donde", "durante", "ella", "ellas",
    "ello", "ellos", "entre", "era", "eran", "esa", "esas", "ese", "eso",
    "esos", "esta", "estaba", "estan", "estar", "este", "esto", "estos",
    "estoy", "fue", "fueron", "hace", "hacia", "han", "hasta", "hay",
    "las", "les", "los", "mas", "mis", "muy", "nos", "nosotros", "nuestra",
    "nuestro", "otra", "otro", "para", "pero", "por", "porque", "que",
    "quien", "sea", "ser", "sido", "sin", "sobre", "son", "sus", "tambien",
    "tan", "tener", "tengo", "tiene", "todo", "todos", "una", "uno", "unos",
    "usted", "ustedes", "vez", "hola", "buenas", "buenos", "dias", "tardes",
    "noches", "gracias", "favor", "quiero", "quisiera", "necesito", "puedo",
    "ayuda", "ayudar", "senor", "senora", "caso", "algo", "alguien", "ahi",
    "mucho", "poco", "solo", "ayer", "hoy",
}


def normalize(text: Optional[str]) -> str:
    """Canonicalize free text for comparison.

    NFD decomposition, combining marks removed, lower-cased, whitespace
    collapsed and trimmed. Never fails: None or "" returns "".
    """
    if text is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(text))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WS_RE.sub(" ", stripped.lower()).strip()


def strip_qualifiers(text: Optional[str]) -> Tuple[str, str]:
    """Split a place name into (base, qualifier), both normalized.

    Drops one leading article and one trailing parenthetical qualifier:
        "La Encañada"            -> ("encanada", "")
        "Bambamarca (Hualgayoc)" -> ("bambamarca", "hualgayoc")
    """
    value = normalize(text)
    qualifier = ""
    match = _PARENTHETICAL_RE.match(value)
    if match:
        value, qualifier = match.group(1).strip(), match.group(2).strip()
    for article in LEADING_ARTICLES:
        if value.startswith(article) and len(value) > len(article):
            value = value[len(article):]
            break
    return value, qualifier


def words(text: Optional[str]) -> list[str]:
    """Normalized words with punctuation removed, in order."""
    return [w for w in _NON_WORD_RE.split(normalize(text)) if w]


def content_tokens(text: Optional[str]) -> Set[str]:
    """Content words: normalized, stop-words removed, length >= 3."""
    return {w for w in words(text) if len(w) >= 3 and w not in STOP_WORDS}


def contains_phrase(haystack: Optional[str], needle: Optional[str]) -> bool:
    """Word-boundary containment on normalized text.

    "me robaron en san marcos ayer" contains "San Marcos", but
    "sanmarcos" does not contain "marcos".
    """
    hay = " ".join(words(haystack))
    ndl = " ".join(words(needle))
    if not hay or not ndl:
        return False
    return f" {ndl} " in f" {hay} "


def slugify(text: Optional[str]) -> str:
    """Identifier form: [a-z0-9_], used for district ids."""
    return _NON_WORD_RE.sub("_", normalize(text)).strip("_")
