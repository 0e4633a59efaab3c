"""
Category Classifier
====================

Maps an offense description (free text) or an explicit offense name to a
legal category using the Competency table.

Classification Priority:
  Tier 1: Explicit offense name, exact (case/diacritic-insensitive), always wins
  Tier 2: Longest offense name contained in the free text
  Tier 3: Conservative token overlap against offense descriptions
  Default → None (the caller asks, or defers to the external classifier)

Tier 3 is deliberately strict. Short or generic narratives used to match
unrelated descriptions, and a wrong category sends the citizen to the wrong
building. Near-ties between categories return None instead of a guess.
"""

from functools import lru_cache
from typing import Dict, FrozenSet, Optional, Tuple

import structlog

from app.models.knowledge import Competency, KnowledgeBase
from app.models.resolution import CategoryMatch
from app.services.text_normalizer import contains_phrase, content_tokens, normalize

logger = structlog.get_logger(__name__)


@lru_cache(maxsize=4096)
def _description_tokens(description: str) -> FrozenSet[str]:
    return frozenset(content_tokens(description))


def _match_explicit(explicit_offense: Optional[str], knowledge: KnowledgeBase) -> Optional[CategoryMatch]:
    key = normalize(explicit_offense)
    if not key:
        return None
    for row in knowledge.competencies:
        if row.specific_offense and normalize(row.specific_offense) == key:
            return CategoryMatch(
                category=row.category,
                specific_offense=row.specific_offense,
                competency=row,
                method="explicit",
            )
    return None


def _match_substring(freetext: str, knowledge: KnowledgeBase) -> Optional[CategoryMatch]:
    hits = [
        row for row in knowledge.competencies
        if row.specific_offense and contains_phrase(freetext, row.specific_offense)
    ]
    if not hits:
        return None
    # max() keeps the first of equal-length names, i.e. source order
    row = max(hits, key=lambda r: len(normalize(r.specific_offense)))
    return CategoryMatch(
        category=row.category,
        specific_offense=row.specific_offense,
        competency=row,
        method="substring",
    )


def _match_token_overlap(
    freetext: str,
    knowledge: KnowledgeBase,
    *,
    min_shared: int,
    min_ratio: float,
    token_cap: int,
    tie_margin: int,
    min_tokens: int,
) -> Optional[CategoryMatch]:
    tokens = content_tokens(freetext)
    if len(tokens) < min_tokens:
        logger.debug("category_insufficient_tokens", tokens=len(tokens))
        return None

    denominator = min(len(tokens), token_cap)
    best: Dict[str, Tuple[int, Competency]] = {}
    for row in knowledge.competencies:
        shared = len(tokens & _description_tokens(row.description))
        if shared < min_shared or shared / denominator < min_ratio:
            continue
        key = normalize(row.category)
        if key not in best or shared > best[key][0]:
            best[key] = (shared, row)

    if not best:
        return None

    ranked = sorted(best.values(), key=lambda item: item[0], reverse=True)
    top_shared, top = ranked[0]
    if len(ranked) > 1 and top_shared - ranked[1][0] < tie_margin:
        logger.info(
            "category_tie",
            first=top.category,
            second=ranked[1][1].category,
            shared=top_shared,
        )
        return None

    return CategoryMatch(
        category=top.category,
        specific_offense=top.specific_offense or None,
        competency=top,
        method="token_overlap",
        score=round(top_shared / denominator, 3),
    )


def classify(
    freetext: Optional[str],
    explicit_offense: Optional[str],
    knowledge: KnowledgeBase,
    *,
    min_shared: int = 4,
    min_ratio: float = 0.3,
    token_cap: int = 12,
    tie_margin: int = 1,
    min_tokens: int = 3,
) -> Optional[CategoryMatch]:
    """Classify an offense into a legal category.

    Args:
        freetext: The citizen's narrative (may be None/empty).
        explicit_offense: An offense name from a hint or a menu choice.
        knowledge: Reference tables.
        min_shared: Minimum shared content tokens for Tier 3.
        min_ratio: Minimum shared / min(input tokens, token_cap) for Tier 3.
        token_cap: Cap on the input token count used as the ratio denominator.
        tie_margin: Best category must beat the runner-up by this many tokens.
        min_tokens: Inputs with fewer content tokens skip Tier 3.

    Returns:
        CategoryMatch, or None when no tier is confident.
    """
    result = _match_explicit(explicit_offense, knowledge)
    if result is None and normalize(freetext):
        result = _match_substring(freetext, knowledge) or _match_token_overlap(
            freetext,
            knowledge,
            min_shared=min_shared,
            min_ratio=min_ratio,
            token_cap=token_cap,
            tie_margin=tie_margin,
            min_tokens=min_tokens,
        )

    if result is not None:
        logger.info(
            "category_classified",
            category=result.category,
            offense=result.specific_offense,
            method=result.method,
            score=result.score,
        )
    return result


def match_category_name(text: Optional[str], knowledge: KnowledgeBase) -> Optional[CategoryMatch]:
    """Accept text that is itself a known category name (e.g. a quick reply)."""
    category = knowledge.canonical_category(text)
    if category is None:
        return None
    return CategoryMatch(
        category=category,
        specific_offense=None,
        competency=None,
        method="category_name",
    )
