"""
Conversation State Machine
===========================

Orchestrates the multi-turn exchange for one case:

  AWAITING_NARRATIVE → AWAITING_DISTRICT | AWAITING_DISAMBIGUATION
                     | AWAITING_LINK | RESOLVED | NO_MATCH

Each turn consumes one utterance, updates the CaseContext for the state it
was waiting in, then re-evaluates resolve() in a bounded loop. Missing
inputs are requested in fixed priority: category, district, link.

RESOLVED and NO_MATCH are terminal. Only an explicit new-case signal starts
over, and it replaces the CaseContext wholesale.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import structlog

from config import Settings, settings as default_settings
from app.models.case_context import CaseContext, ConversationState, LinkAnswer
from app.models.knowledge import KnowledgeBase, LinkRequirement
from app.models.resolution import CategoryMatch, DistrictMatch, MatchKind, ResolutionResult, ResolutionStatus
from app.services import replies
from app.services.category_classifier import classify, match_category_name
from app.services.district_resolver import resolve_district, select_candidate
from app.services.family_link_policy import implies_non_family_aggressor, parse_link_answer
from app.services.intent_classifier import EMPTY_HINTS, IntentHints, classify_intent
from app.services.rule_matcher import resolve
from app.services.text_normalizer import normalize

logger = structlog.get_logger(__name__)

Classifier = Callable[..., Awaitable[IntentHints]]

NEW_CASE_PAYLOADS = {"GET_STARTED", "DENUNCIA", "NUEVO_CASO", "PRESENTAR_DENUNCIA"}
NEW_CASE_PHRASES = {
    "nuevo caso", "nueva consulta", "nueva denuncia", "denuncia",
    "presentar denuncia", "empezar", "reiniciar", "otra consulta",
}
GREETINGS = {
    "hola", "ola", "buenas", "buen dia", "buenos dias", "buenas tardes",
    "buenas noches", "hi", "hello", "hola buenas", "hola buenos dias",
}

_STATE_FOR_STATUS: Dict[ResolutionStatus, ConversationState] = {
    ResolutionStatus.ASK_CATEGORY: ConversationState.AWAITING_NARRATIVE,
    ResolutionStatus.ASK_DISTRICT: ConversationState.AWAITING_DISTRICT,
    ResolutionStatus.ASK_DISTRICT_AMBIGUOUS: ConversationState.AWAITING_DISAMBIGUATION,
    ResolutionStatus.ASK_LINK: ConversationState.AWAITING_LINK,
    ResolutionStatus.OK: ConversationState.RESOLVED,
    ResolutionStatus.NO_MATCH: ConversationState.NO_MATCH,
}


@dataclass
class TurnReply:
    """Outbound result of one turn."""

    text: str
    quick_replies: Tuple[str, ...]
    state: ConversationState
    context: CaseContext
    result: Optional[ResolutionResult] = None


def _clean_phrase(text: Optional[str]) -> str:
    return normalize(text).strip(" .,!?¡¿")


def is_new_case_signal(utterance: Optional[str], payload: Optional[str] = None) -> bool:
    """Explicit request to start a new case (postback or exact phrase)."""
    if payload and payload.strip().upper() in NEW_CASE_PAYLOADS:
        return True
    return _clean_phrase(utterance) in NEW_CASE_PHRASES


class ConversationEngine:
    """Turn-by-turn driver around the pure resolution engine.

    Holds only read-only collaborators (reference tables, thresholds, the
    external classifier). All per-citizen state lives in the CaseContext
    passed to handle_turn().
    """

    def __init__(
        self,
        knowledge: KnowledgeBase,
        *,
        classifier: Classifier = classify_intent,
        family_category: str = "Familia",
        fuzzy_max_distance: int = 2,
        max_options: int = 5,
        min_shared: int = 4,
        min_ratio: float = 0.3,
        max_reevaluations: int = 3,
        narrative_link_suppression: bool = False,
    ):
        self.knowledge = knowledge
        self.classifier = classifier
        self.family_category = family_category
        self.fuzzy_max_distance = fuzzy_max_distance
        self.max_options = max_options
        self.min_shared = min_shared
        self.min_ratio = min_ratio
        self.max_reevaluations = max_reevaluations
        self.narrative_link_suppression = narrative_link_suppression

    @classmethod
    def from_settings(
        cls,
        knowledge: KnowledgeBase,
        cfg: Optional[Settings] = None,
        classifier: Classifier = classify_intent,
    ) -> "ConversationEngine":
        cfg = cfg or default_settings
        return cls(
            knowledge,
            classifier=classifier,
            family_category=cfg.family_category,
            fuzzy_max_distance=cfg.fuzzy_max_distance,
            max_options=cfg.max_disambiguation_options,
            min_shared=cfg.category_min_shared_tokens,
            min_ratio=cfg.category_min_overlap_ratio,
            max_reevaluations=cfg.max_reevaluations,
            narrative_link_suppression=cfg.narrative_link_suppression,
        )

    # ─── Entry Point ──────────────────────────────────────────────────────

    async def handle_turn(
        self,
        context: CaseContext,
        utterance: Optional[str],
        payload: Optional[str] = None,
    ) -> TurnReply:
        """Process one citizen utterance.

        Args:
            context: The conversation's current CaseContext (mutated in place).
            utterance: Message text (may be empty).
            payload: Optional postback / quick-reply payload.

        Returns:
            TurnReply. Its context is a fresh CaseContext when the turn
            started a new case; otherwise the same object that was passed in.
        """
        text = (utterance or "").strip()

        if is_new_case_signal(text, payload):
            fresh = CaseContext()
            logger.info("case_started", previous_state=context.state.value)
            return self._reply(fresh, replies.ask_story())

        if context.state.is_terminal:
            return self._reply(context, replies.closing())

        if not text:
            return self._reply(context, replies.ask_text())

        state = context.state
        if state is ConversationState.AWAITING_NARRATIVE:
            if not context.narrative and _clean_phrase(text) in GREETINGS:
                return self._reply(context, replies.welcome())
            await self._on_narrative(context, text)
            return self._advance(context)

        if state is ConversationState.AWAITING_DISTRICT:
            found = self._apply_district(context, text)
            return self._advance(context, retry_district=found.kind is MatchKind.NONE)

        if state is ConversationState.AWAITING_DISAMBIGUATION:
            chosen = select_candidate(text, context.pending_options or [])
            if chosen is None:
                logger.info("disambiguation_reprompt", options=len(context.pending_options or []))
                return self._advance(context)
            context.set_district(chosen)
            logger.info("district_disambiguated", district=chosen.district_id)
            return self._advance(context)

        # AWAITING_LINK
        answer = parse_link_answer(text)
        if answer is None:
            logger.info("link_answer_unrecognized")
            return self._advance(context)
        context.record_link_answer(answer)
        logger.info("link_answer_recorded", answer=answer.value, category=context.category)
        return self._advance(context)

    # ─── State Handlers ───────────────────────────────────────────────────

    async def _on_narrative(self, context: CaseContext, text: str) -> None:
        """Classify the narrative and opportunistically resolve a district."""
        context.narrative = f"{context.narrative} {text}".strip()

        match = match_category_name(text, self.knowledge) or classify(
            context.narrative,
            None,
            self.knowledge,
            min_shared=self.min_shared,
            min_ratio=self.min_ratio,
        )

        if context.district is None and not context.pending_options:
            self._apply_district(context, text)

        hints = EMPTY_HINTS
        if match is None or (context.district is None and not context.pending_options):
            hints = await self._classify(context, text)
            if hints.summary:
                context.summary = hints.summary
            if hints.district_hint:
                context.district_hint = hints.district_hint

        if match is None and hints.specific_offense:
            match = classify(None, hints.specific_offense, self.knowledge)
        if match is None and hints.category:
            match = match_category_name(hints.category, self.knowledge)

        if match is not None:
            self._apply_category(context, match)

    async def _classify(self, context: CaseContext, text: str) -> IntentHints:
        """Call the external classifier; any failure degrades to no hints."""
        prior: Dict[str, Any] = {
            "category": context.category,
            "district": context.district.district if context.district else None,
            "state": context.state.value,
        }
        try:
            return await self.classifier(text, prior, categories=self.knowledge.categories)
        except Exception as exc:
            logger.warning("classifier_unavailable", error=str(exc))
            return EMPTY_HINTS

    def _apply_category(self, context: CaseContext, match: CategoryMatch) -> None:
        context.category = match.category
        context.specific_offense = match.specific_offense
        if match.competency is not None:
            context.link_requirement = match.competency.link_requirement
            context.category_if_familial = match.competency.category_if_familial or None
        else:
            context.link_requirement = LinkRequirement.NO
            context.category_if_familial = None
        context.touch()

    def _apply_district(self, context: CaseContext, text: str) -> DistrictMatch:
        found = resolve_district(
            text,
            self.knowledge,
            max_distance=self.fuzzy_max_distance,
            max_options=self.max_options,
        )
        if found.kind is MatchKind.UNIQUE:
            context.set_district(found.district)
            context.district_text = text
        elif found.kind is MatchKind.AMBIGUOUS:
            context.pending_options = list(found.districts)
            context.district_text = text
        if found.kind is not MatchKind.NONE:
            logger.info(
                "district_resolved",
                kind=found.kind.value,
                method=found.method,
                candidates=[d.district_id for d in found.districts],
            )
        return found

    # ─── Re-evaluation Loop ───────────────────────────────────────────────

    def _auto_complete(self, context: CaseContext, result: ResolutionResult) -> bool:
        """Fill a missing input without asking, when possible.

        Returns True if the context changed and resolve() must run again.
        """
        if result.status is ResolutionStatus.ASK_DISTRICT and context.district_hint:
            hint, context.district_hint = context.district_hint, None
            found = self._apply_district(context, hint)
            return found.kind is not MatchKind.NONE

        if (
            result.status is ResolutionStatus.ASK_LINK
            and self.narrative_link_suppression
            and implies_non_family_aggressor(context.narrative)
        ):
            context.record_link_answer(LinkAnswer.NO)
            return True

        return False

    def _advance(self, context: CaseContext, *, retry_district: bool = False) -> TurnReply:
        result = resolve(context, self.knowledge, family_category=self.family_category)
        for _ in range(self.max_reevaluations):
            if not self._auto_complete(context, result):
                break
            result = resolve(context, self.knowledge, family_category=self.family_category)

        context.transition_to(_STATE_FOR_STATUS[result.status])
        return self._reply(context, self._render(context, result, retry_district), result)

    def _render(self, context: CaseContext, result: ResolutionResult, retry_district: bool) -> replies.Reply:
        status = result.status
        if status is ResolutionStatus.ASK_CATEGORY:
            context.clarify_attempts += 1
            logger.info("category_clarification_requested", attempts=context.clarify_attempts)
            return replies.ask_category(self.knowledge.categories, repeat=context.clarify_attempts > 1)
        if status is ResolutionStatus.ASK_DISTRICT:
            return replies.ask_district(retry=retry_district)
        if status is ResolutionStatus.ASK_DISTRICT_AMBIGUOUS:
            return replies.ask_disambiguation(result.candidates)
        if status is ResolutionStatus.ASK_LINK:
            return replies.ask_link()
        if status is ResolutionStatus.OK:
            logger.info(
                "case_resolved",
                category=result.outcome.category,
                office=result.office.code,
                method=result.outcome.method,
            )
            return replies.office_card(result.outcome, context.district, context.summary)
        logger.info("case_no_match", category=context.category, district=context.district.district_id)
        return replies.no_match(context.district)

    @staticmethod
    def _reply(
        context: CaseContext,
        reply: replies.Reply,
        result: Optional[ResolutionResult] = None,
    ) -> TurnReply:
        return TurnReply(
            text=reply.text,
            quick_replies=reply.quick_replies,
            state=context.state,
            context=context,
            result=result,
        )
