"""
Family-Link Policy
===================

Decides whether the citizen must be asked about their relationship to the
accused, and parses the answer.

The question is intrusive, so it is asked only when the answer can change
the outcome: the offense's link requirement is SI or DEPENDE *and* the
resolved district actually has a family-violence office to route to.
"""

import re
from typing import Optional, Set

import structlog

from app.models.case_context import LinkAnswer
from app.models.knowledge import District, LinkRequirement
from app.services.text_normalizer import contains_phrase, normalize, words

logger = structlog.get_logger(__name__)

YES_WORDS: Set[str] = {"si", "s", "sip", "claro", "correcto", "afirmativo", "efectivamente", "yes"}
NO_WORDS: Set[str] = {"no", "n", "nop", "negativo", "ninguno", "ninguna"}

# Replies that open with a yes/no word but do not answer the question
HEDGE_PHRASES = [
    "no se", "no lo se", "no sabria", "no sabemos", "no recuerdo",
    "no estoy seguro", "no estoy segura",
    "no lo tengo claro", "tal vez", "quizas", "puede ser",
    "nada que ver",
]

# Words that may follow a bare yes/no without a comma ("si es mi esposo")
CLAUSE_WORDS: Set[str] = {
    "es", "era", "fue", "son", "eran", "fueron", "lo", "la", "le", "el",
    "ella", "mi", "soy", "somos", "tenemos", "vivimos", "gracias",
}

# Yes/no word followed by punctuation before any further clause
_ANSWER_RE = re.compile(r"^[\W_]*(\w+)\s*[,.;:!)\-]")

# ─── Narrative refinement (optional, flag-gated) ─────────────────────────────
# Phrases that place the aggressor outside the family. Used only when
# NARRATIVE_LINK_SUPPRESSION is enabled; the district gate above stays the
# primary signal.

NON_FAMILY_AGGRESSOR_PHRASES = [
    "un desconocido",
    "una desconocida",
    "unos desconocidos",
    "un extrano",
    "un vecino",
    "una vecina",
    "mi vecino",
    "mi vecina",
    "un delincuente",
    "unos delincuentes",
    "un ladron",
    "unos ladrones",
    "companero de trabajo",
    "companera de trabajo",
    "mi jefe",
    "mi jefa",
    "un taxista",
]

FAMILY_PHRASES = [
    "mi esposo", "mi esposa", "mi pareja", "mi expareja", "mi ex pareja",
    "mi conviviente", "mi padre", "mi madre", "mi papa", "mi mama",
    "mi hijo", "mi hija", "mi hermano", "mi hermana", "mi suegro", "mi suegra",
    "mi enamorado", "mi enamorada", "mi cunado", "mi cunada", "mi tio", "mi tia",
]


def needs_link_question(requirement: LinkRequirement, district: Optional[District]) -> bool:
    """Whether to ask the family-relationship question.

    Args:
        requirement: The offense's family-link requirement.
        district: The resolved district (None when not yet resolved).

    Returns:
        False for NO, always. For SI/DEPENDE, True only when the district
        offers a family-violence office (flag or violence office code).
    """
    if requirement is LinkRequirement.NO:
        return False
    if district is None:
        return False
    return district.offers_family_violence_office


def parse_link_answer(utterance: Optional[str]) -> Optional[LinkAnswer]:
    """Recognize a yes/no answer; None if unclear.

    Accepted: the yes/no word alone ("Sí", "NO!"), followed by punctuation
    and a clause ("sí, es mi esposo"), or followed directly by a short
    clause opener ("no es familiar"). Hedges such as "no sé" or
    "no estoy segura" are unclear, so the caller asks again.
    """
    tokens = words(utterance)
    if not tokens:
        return None
    if any(contains_phrase(utterance, hedge) for hedge in HEDGE_PHRASES):
        return None

    first = tokens[0]
    if first in YES_WORDS:
        answer = LinkAnswer.SI
    elif first in NO_WORDS:
        answer = LinkAnswer.NO
    else:
        return None

    if len(tokens) == 1 or _ANSWER_RE.match(normalize(utterance)) or tokens[1] in CLAUSE_WORDS:
        return answer
    return None


def implies_non_family_aggressor(narrative: Optional[str]) -> bool:
    """True when the narrative names a non-family aggressor and no relative."""
    text = normalize(narrative)
    if not text:
        return False
    if any(contains_phrase(text, p) for p in FAMILY_PHRASES):
        return False
    hit = next((p for p in NON_FAMILY_AGGRESSOR_PHRASES if contains_phrase(text, p)), None)
    if hit:
        logger.info("link_question_suppressed", phrase=hit)
        return True
    return False
