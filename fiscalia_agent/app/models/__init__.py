"""
Fiscalía Agent Models Package
=============================

- knowledge:    reference tables (District, Office, Competency, ScopeRule,
                DistrictAlias) and the immutable KnowledgeBase bundle
- case_context: per-conversation CaseContext and the state enum
- resolution:   immutable engine results
"""

from .knowledge import (
    Competency,
    District,
    DistrictAlias,
    KnowledgeBase,
    LinkRequirement,
    Office,
    RuleScope,
    ScopeRule,
)
from .case_context import CaseContext, ConversationState, InvalidTransitionError, LinkAnswer
from .resolution import (
    CategoryMatch,
    DistrictMatch,
    MatchKind,
    MatchOutcome,
    ResolutionResult,
    ResolutionStatus,
)

__all__ = [
    "CaseContext",
    "CategoryMatch",
    "Competency",
    "ConversationState",
    "District",
    "DistrictAlias",
    "DistrictMatch",
    "InvalidTransitionError",
    "KnowledgeBase",
    "LinkAnswer",
    "LinkRequirement",
    "MatchKind",
    "MatchOutcome",
    "Office",
    "ResolutionResult",
    "ResolutionStatus",
    "RuleScope",
    "ScopeRule",
]
