"""
Rule Matcher — Competent-Office Resolution
===========================================

Selects the destination office for a final category and a resolved district.

Resolution Priority (first applicable tier decides):
  Tier 0: Family absolute priority: district's own family office code
  Tier 1: DISTRICT-scoped rule for (category, district)
  Tier 2: DISTRICT_WIDE rule for category
  Tier 3: Per-district fallback office field for the category kind
  Default → None (NO_MATCH)

A rule whose office code is missing from the Office table yields None,
exactly like no rule at all, never a partial result.

resolve() is the engine's inbound interface: CaseContext → ResolutionResult.
It is pure and idempotent.
"""

from enum import Enum
from typing import Dict, Optional

import structlog

from app.models.case_context import CaseContext, LinkAnswer
from app.models.knowledge import District, KnowledgeBase, LinkRequirement, RuleScope, ScopeRule
from app.models.resolution import MatchOutcome, ResolutionResult, ResolutionStatus
from app.services.family_link_policy import needs_link_question
from app.services.text_normalizer import normalize

logger = structlog.get_logger(__name__)


class OfficeKind(str, Enum):
    GENERAL = "GENERAL"
    FAMILY = "FAMILY"
    VIOLENCE = "VIOLENCE"
    PREVENTION = "PREVENTION"


# ─── Category kind keywords ──────────────────────────────────────────────────
# Order matters: "Violencia Familiar" is VIOLENCE, not FAMILY.

KIND_KEYWORDS: Dict[OfficeKind, tuple] = {
    OfficeKind.VIOLENCE: ("violencia",),
    OfficeKind.FAMILY: ("familia", "familiar"),
    OfficeKind.PREVENTION: ("prevencion",),
}


def office_kind_for(category: Optional[str], family_category: str = "Familia") -> OfficeKind:
    """Classify a category into the district office field it falls back to."""
    text = normalize(category)
    if text and text == normalize(family_category):
        return OfficeKind.FAMILY
    words = set(text.split())
    for kind, keywords in KIND_KEYWORDS.items():
        if any(kw in words for kw in keywords):
            return kind
    return OfficeKind.GENERAL


def _fallback_code(district: District, kind: OfficeKind) -> str:
    """Office code field on the district record for a category kind."""
    if kind is OfficeKind.VIOLENCE:
        return district.violence_office_code or district.general_office_code
    if kind is OfficeKind.FAMILY:
        return district.family_office_code or district.general_office_code
    if kind is OfficeKind.PREVENTION:
        return district.prevention_office_code or district.general_office_code
    return district.general_office_code


def _find_rule(
    knowledge: KnowledgeBase,
    category: str,
    scope: RuleScope,
    district: Optional[District] = None,
) -> Optional[ScopeRule]:
    """First rule (source order) matching category and scope."""
    key = normalize(category)
    names = set()
    if district is not None:
        names = {normalize(district.district), normalize(district.label)}
    for rule in knowledge.scope_rules:
        if rule.scope is not scope or normalize(rule.category) != key:
            continue
        if scope is RuleScope.DISTRICT and normalize(rule.district) not in names:
            continue
        return rule
    return None


def match(
    category: Optional[str],
    district: Optional[District],
    knowledge: KnowledgeBase,
    link_answer: Optional[LinkAnswer] = None,
    *,
    family_category: str = "Familia",
) -> Optional[MatchOutcome]:
    """Select the destination office.

    Args:
        category: Final category (after any category-if-familial swap).
        district: Resolved district record, never raw text.
        knowledge: Reference tables.
        link_answer: Family-link answer, carried into the outcome.
        family_category: Category that gets the family absolute priority.

    Returns:
        MatchOutcome with the office and the tier that chose it, or None.
    """
    if not normalize(category) or district is None:
        return None

    familial = link_answer is LinkAnswer.SI

    def _outcome(office, method, rule=None) -> MatchOutcome:
        logger.info(
            "office_matched",
            category=category,
            district=district.district_id,
            office=office.code,
            method=method,
        )
        return MatchOutcome(
            office=office, method=method, category=category, rule=rule, familial=familial,
        )

    # Tier 0: family absolute priority (bypasses scope rules)
    if normalize(category) == normalize(family_category) and district.family_office_code:
        office = knowledge.find_office(district.family_office_code)
        if office is not None:
            return _outcome(office, "family_priority")
        logger.warning(
            "family_office_code_unknown",
            district=district.district_id,
            code=district.family_office_code,
        )

    # Tier 1 / Tier 2: scope rules
    rule = _find_rule(knowledge, category, RuleScope.DISTRICT, district)
    method = "district_rule"
    if rule is None:
        rule = _find_rule(knowledge, category, RuleScope.DISTRICT_WIDE)
        method = "district_wide_rule"
    if rule is not None:
        office = knowledge.find_office(rule.office_code)
        if office is None:
            logger.warning("rule_office_code_unknown", category=category, code=rule.office_code)
            return None
        return _outcome(office, method, rule)

    # Tier 3: per-district fallback fields
    kind = office_kind_for(category, family_category)
    code = _fallback_code(district, kind)
    office = knowledge.find_office(code)
    if office is None:
        logger.info(
            "no_office_found",
            category=category,
            district=district.district_id,
            kind=kind.value,
            code=code or None,
        )
        return None
    return _outcome(office, "district_fallback")


def resolve(
    context: CaseContext,
    knowledge: KnowledgeBase,
    *,
    family_category: str = "Familia",
) -> ResolutionResult:
    """Resolve a case context to an outcome.

    Checks the missing inputs in fixed priority (category, district, link)
    before matching. Reads the context, never mutates it.

    Returns:
        ResolutionResult: OK, ASK_CATEGORY, ASK_DISTRICT,
        ASK_DISTRICT_AMBIGUOUS, ASK_LINK or NO_MATCH.
    """
    if not normalize(context.category):
        return ResolutionResult(status=ResolutionStatus.ASK_CATEGORY)

    if context.district is None:
        if context.pending_options:
            return ResolutionResult(
                status=ResolutionStatus.ASK_DISTRICT_AMBIGUOUS,
                candidates=tuple(context.pending_options),
            )
        return ResolutionResult(status=ResolutionStatus.ASK_DISTRICT)

    if (
        context.link_requirement is not LinkRequirement.NO
        and context.link_answer is None
        and needs_link_question(context.link_requirement, context.district)
    ):
        return ResolutionResult(status=ResolutionStatus.ASK_LINK)

    outcome = match(
        context.category,
        context.district,
        knowledge,
        context.link_answer,
        family_category=family_category,
    )
    if outcome is None:
        return ResolutionResult(status=ResolutionStatus.NO_MATCH)
    return ResolutionResult(status=ResolutionStatus.OK, office=outcome.office, outcome=outcome)
