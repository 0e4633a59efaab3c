"""
Engine Result Types
====================

Immutable results returned by the resolution engine. Every engine entry
point returns one of these, never an unstructured dict, never an exception
for recoverable data issues.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from app.models.knowledge import Competency, District, Office, ScopeRule


# ─── District Resolver ───────────────────────────────────────────────────────


class MatchKind(str, Enum):
    NONE = "NONE"
    UNIQUE = "UNIQUE"
    AMBIGUOUS = "AMBIGUOUS"


@dataclass(frozen=True)
class DistrictMatch:
    """Outcome of resolve_district()."""

    kind: MatchKind
    districts: Tuple[District, ...] = ()
    method: str = "none"  # "exact" | "containment" | "fuzzy" | "none"

    @property
    def district(self) -> Optional[District]:
        """The district for a UNIQUE match, else None."""
        if self.kind is MatchKind.UNIQUE:
            return self.districts[0]
        return None


NO_DISTRICT = DistrictMatch(kind=MatchKind.NONE)


# ─── Category Classifier ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class CategoryMatch:
    """Outcome of classify() when a category was found."""

    category: str
    specific_offense: Optional[str]
    competency: Optional[Competency]
    method: str  # "explicit" | "substring" | "token_overlap" | "category_name"
    score: float = 1.0


# ─── Rule Matcher ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MatchOutcome:
    """Destination office plus the tier that produced it."""

    office: Office
    method: str  # "family_priority" | "district_rule" | "district_wide_rule" | "district_fallback"
    category: str
    rule: Optional[ScopeRule] = None
    familial: bool = False


class ResolutionStatus(str, Enum):
    OK = "OK"
    ASK_CATEGORY = "ASK_CATEGORY"
    ASK_DISTRICT = "ASK_DISTRICT"
    ASK_DISTRICT_AMBIGUOUS = "ASK_DISTRICT_AMBIGUOUS"
    ASK_LINK = "ASK_LINK"
    NO_MATCH = "NO_MATCH"


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of resolve(case_context)."""

    status: ResolutionStatus
    office: Optional[Office] = None
    candidates: Tuple[District, ...] = field(default_factory=tuple)
    outcome: Optional[MatchOutcome] = None
