"""
District Resolver
==================

Maps a user-supplied location string to NONE, UNIQUE(district) or
AMBIGUOUS(districts).

Matching Priority (short-circuits on first success):
  Step 1: Alias substitution (restart on the alias target)
  Step 2: Exact name (also without leading article / parenthetical qualifier)
  Step 3: Containment (district embedded in a longer sentence, or vice versa)
  Step 4: Bounded fuzzy match (Levenshtein distance <= max_distance)

Several districts share a base name and differ only by province. Any
genuine tie is returned as AMBIGUOUS so the conversation can ask instead of
silently routing the citizen to the wrong office.
"""

import re
from typing import List, Optional, Sequence

import structlog
from rapidfuzz.distance import Levenshtein

from app.models.knowledge import District, KnowledgeBase
from app.models.resolution import DistrictMatch, MatchKind, NO_DISTRICT
from app.services.text_normalizer import contains_phrase, normalize, strip_qualifiers, words

logger = structlog.get_logger(__name__)

MAX_ALIAS_HOPS = 3
MIN_FUZZY_LENGTH = 4
MIN_CONTAINED_LENGTH = 4

_POSITION_RE = re.compile(r"^(?:(?:la|el|opcion|numero|nro)\s*)*#?\s*(\d{1,2})\b")


def _resolve_alias(text: str, knowledge: KnowledgeBase) -> str:
    """Follow alias → target substitutions, bounded against cycles."""
    current = text
    for _ in range(MAX_ALIAS_HOPS):
        key = normalize(current)
        hit = next((a for a in knowledge.aliases if normalize(a.alias) == key), None)
        if hit is None or normalize(hit.target) == key:
            break
        logger.debug("district_alias_applied", alias=hit.alias, target=hit.target)
        current = hit.target
    return current


def _result(candidates: Sequence[District], method: str, max_options: int) -> DistrictMatch:
    if len(candidates) == 1:
        return DistrictMatch(kind=MatchKind.UNIQUE, districts=(candidates[0],), method=method)
    return DistrictMatch(
        kind=MatchKind.AMBIGUOUS,
        districts=tuple(candidates[:max_options]),
        method=method,
    )


def _exact_candidates(text: str, knowledge: KnowledgeBase) -> List[District]:
    full = normalize(text)
    base, qualifier = strip_qualifiers(text)
    candidates = [
        d for d in knowledge.districts
        if normalize(d.district) == full or strip_qualifiers(d.district)[0] == base
    ]
    if qualifier and candidates:
        narrowed = [d for d in candidates if normalize(d.province) == qualifier]
        if narrowed:
            return narrowed
    return candidates


def _containment_candidates(text: str, knowledge: KnowledgeBase) -> List[District]:
    base, _ = strip_qualifiers(text)
    candidates = []
    for d in knowledge.districts:
        name, _ = strip_qualifiers(d.district)
        if contains_phrase(text, name):
            candidates.append(d)
        elif len(base) >= MIN_CONTAINED_LENGTH and contains_phrase(name, base):
            candidates.append(d)
    return candidates


def _fuzzy_candidates(text: str, knowledge: KnowledgeBase, max_distance: int) -> List[District]:
    base, _ = strip_qualifiers(text)
    if len(base) < MIN_FUZZY_LENGTH:
        return []
    best = max_distance + 1
    candidates: List[District] = []
    for d in knowledge.districts:
        name, _ = strip_qualifiers(d.district)
        distance = Levenshtein.distance(base, name, score_cutoff=max_distance)
        if distance > max_distance:
            continue
        if distance < best:
            best = distance
            candidates = [d]
        elif distance == best:
            candidates.append(d)
    if candidates:
        logger.debug("district_fuzzy_candidates", input=base[:40], distance=best, count=len(candidates))
    return candidates


def resolve_district(
    raw_text: Optional[str],
    knowledge: KnowledgeBase,
    *,
    max_distance: int = 2,
    max_options: int = 5,
) -> DistrictMatch:
    """Resolve location text to district records.

    Args:
        raw_text: Whatever the citizen typed (a name, or a whole sentence).
        knowledge: Reference tables.
        max_distance: Largest accepted edit distance for the fuzzy step.
        max_options: Cap on candidates returned for AMBIGUOUS.

    Returns:
        DistrictMatch with kind NONE, UNIQUE or AMBIGUOUS, plus the method used.
    """
    if not normalize(raw_text):
        return NO_DISTRICT

    text = _resolve_alias(raw_text, knowledge)

    candidates = _exact_candidates(text, knowledge)
    if candidates:
        return _result(candidates, "exact", max_options)

    candidates = _containment_candidates(text, knowledge)
    if candidates:
        return _result(candidates, "containment", max_options)

    candidates = _fuzzy_candidates(text, knowledge, max_distance)
    if candidates:
        return _result(candidates, "fuzzy", max_options)

    logger.debug("district_not_resolved", input=normalize(raw_text)[:40])
    return NO_DISTRICT


def select_candidate(utterance: Optional[str], candidates: Sequence[District]) -> Optional[District]:
    """Pick one previously offered candidate from the citizen's reply.

    Accepts a 1-based position ("2", "opción 2") or a term that names exactly
    one candidate (its province, or its full "District (Province)" label).
    Anything else returns None so the caller can ask again.
    """
    text = normalize(utterance)
    if not text or not candidates:
        return None

    position = _POSITION_RE.match(" ".join(words(text)))
    if position:
        index = int(position.group(1)) - 1
        if 0 <= index < len(candidates):
            return candidates[index]
        return None

    by_label = [d for d in candidates if normalize(d.label) == text]
    if len(by_label) == 1:
        return by_label[0]

    by_province = [d for d in candidates if contains_phrase(text, d.province)]
    if len(by_province) == 1:
        return by_province[0]
    return None
