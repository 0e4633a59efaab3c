"""
Case Context + Conversation States
===================================

One CaseContext per active conversation. It is owned by the orchestration
layer (session store) and passed by reference into the engine; no engine
function keeps per-citizen state of its own.

States form a closed enum with an explicit transition table. The table is
checked once at import time and again on every transition.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from app.models.knowledge import District, LinkRequirement


class LinkAnswer(str, Enum):
    """Citizen's answer to 'is the accused a relative or partner?'."""

    SI = "SI"
    NO = "NO"


class ConversationState(str, Enum):
    AWAITING_NARRATIVE = "AWAITING_NARRATIVE"
    AWAITING_DISTRICT = "AWAITING_DISTRICT"
    AWAITING_DISAMBIGUATION = "AWAITING_DISAMBIGUATION"
    AWAITING_LINK = "AWAITING_LINK"
    RESOLVED = "RESOLVED"
    NO_MATCH = "NO_MATCH"

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self]


_S = ConversationState

TRANSITIONS: Dict[ConversationState, FrozenSet[ConversationState]] = {
    _S.AWAITING_NARRATIVE: frozenset({
        _S.AWAITING_NARRATIVE, _S.AWAITING_DISTRICT, _S.AWAITING_DISAMBIGUATION,
        _S.AWAITING_LINK, _S.RESOLVED, _S.NO_MATCH,
    }),
    _S.AWAITING_DISTRICT: frozenset({
        _S.AWAITING_DISTRICT, _S.AWAITING_DISAMBIGUATION, _S.AWAITING_LINK,
        _S.RESOLVED, _S.NO_MATCH,
    }),
    _S.AWAITING_DISAMBIGUATION: frozenset({
        _S.AWAITING_DISAMBIGUATION, _S.AWAITING_LINK, _S.RESOLVED, _S.NO_MATCH,
    }),
    _S.AWAITING_LINK: frozenset({_S.AWAITING_LINK, _S.RESOLVED, _S.NO_MATCH}),
    _S.RESOLVED: frozenset(),
    _S.NO_MATCH: frozenset(),
}


def _check_transition_table() -> None:
    missing = set(ConversationState) - set(TRANSITIONS)
    if missing:
        raise RuntimeError(f"States without transitions entry: {sorted(s.value for s in missing)}")
    for source, targets in TRANSITIONS.items():
        if source.is_terminal and targets:
            raise RuntimeError(f"Terminal state {source.value} has outgoing transitions")


_check_transition_table()


class InvalidTransitionError(RuntimeError):
    """Raised when code attempts a transition the table does not allow."""

    def __init__(self, source: ConversationState, target: ConversationState):
        super().__init__(f"Invalid transition {source.value} → {target.value}")
        self.source = source
        self.target = target


@dataclass
class CaseContext:
    """Everything known about the current case.

    Invariant: link_answer is never SI while category still holds the
    pre-answer value; record_link_answer() swaps in category_if_familial
    in the same call.
    """

    category: Optional[str] = None
    specific_offense: Optional[str] = None
    link_requirement: LinkRequirement = LinkRequirement.NO
    category_if_familial: Optional[str] = None
    district_text: Optional[str] = None
    district: Optional[District] = None
    link_answer: Optional[LinkAnswer] = None
    pending_options: Optional[List[District]] = None
    narrative: str = ""
    district_hint: Optional[str] = None
    summary: Optional[str] = None
    state: ConversationState = ConversationState.AWAITING_NARRATIVE
    clarify_attempts: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def transition_to(self, target: ConversationState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, target)
        self.state = target
        self.touch()

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def set_district(self, district: District) -> None:
        """Confirm a resolved district and drop any pending options."""
        self.district = district
        self.pending_options = None

    def record_link_answer(self, answer: LinkAnswer) -> None:
        """Store the answer and settle the final category immediately."""
        self.link_answer = answer
        if answer is LinkAnswer.SI and self.category_if_familial:
            self.category = self.category_if_familial
        self.touch()
