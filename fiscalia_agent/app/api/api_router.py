"""
API Router
===========

Transport-agnostic endpoints for the orientation agent:
  POST /message        — One conversational turn for a sender
  POST /resolve        — Stateless single-shot resolution
  POST /session/reset  — Forget a sender's open case
  GET  /offices/{code} — Office lookup by code
  GET  /health         — Reference table counts and classifier mode

Channel adapters (webhooks, signature checks, message delivery) sit in
front of /message and are not part of this service.

Rate limited via SlowAPI.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from slowapi import Limiter
from slowapi.util import get_remote_address

from config import settings
from app.models.api_models import (
    DistrictOption,
    HealthResponse,
    MessageRequest,
    MessageResponse,
    OfficeResponse,
    ResetRequest,
    ResetResponse,
    ResolveRequest,
    ResolveResponse,
)
from app.models.case_context import CaseContext
from app.models.knowledge import District, KnowledgeBase, Office
from app.models.resolution import MatchKind
from app.services.category_classifier import classify, match_category_name
from app.services.conversation import ConversationEngine
from app.services.district_resolver import resolve_district
from app.services.knowledge_loader import load_knowledge
from app.services.rule_matcher import resolve
from app.services.session_store import InMemorySessionStore, session_store
from app.services.text_normalizer import normalize

logger = structlog.get_logger(__name__)

# ─── Rate Limiter (separate instance to avoid circular import from main) ──────
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


# ─── Dependencies ─────────────────────────────────────────────────────────────


def get_knowledge() -> KnowledgeBase:
    """Reference tables (cached after the first load)."""
    return load_knowledge()


def get_engine(knowledge: KnowledgeBase = Depends(get_knowledge)) -> ConversationEngine:
    return ConversationEngine.from_settings(knowledge, settings)


def get_session_store() -> InMemorySessionStore:
    return session_store


# ─── Mappers ──────────────────────────────────────────────────────────────────


def _office(office: Optional[Office]) -> Optional[OfficeResponse]:
    if office is None:
        return None
    return OfficeResponse(
        code=office.code,
        name=office.name,
        office_type=office.office_type or None,
        address=office.address or None,
        phone=office.phone or None,
        hours=office.hours or None,
    )


def _district(district: District) -> DistrictOption:
    return DistrictOption(
        district_id=district.district_id,
        district=district.district,
        province=district.province,
        label=district.label,
    )


# =============================================================================
# POST /message — One Conversational Turn
# =============================================================================


@router.post("/message", response_model=MessageResponse)
@limiter.limit(f"{settings.rate_limit}/minute")
async def post_message(
    request: Request,
    body: MessageRequest,
    engine: ConversationEngine = Depends(get_engine),
    store: InMemorySessionStore = Depends(get_session_store),
):
    """Advance the sender's conversation by one utterance."""
    async with store.turn(body.sender_id):
        context = await store.get_or_create(body.sender_id)
        reply = await engine.handle_turn(context, body.text, body.payload)

        # New case: the engine hands back a fresh context
        if reply.context is not context:
            await store.replace(body.sender_id, reply.context)

    return MessageResponse(
        text=reply.text,
        quick_replies=list(reply.quick_replies),
        state=reply.state.value,
        status=reply.result.status.value if reply.result else None,
        office=_office(reply.result.office) if reply.result else None,
    )


# =============================================================================
# POST /resolve — Stateless Resolution
# =============================================================================


@router.post("/resolve", response_model=ResolveResponse)
@limiter.limit(f"{settings.rate_limit}/minute")
async def post_resolve(
    request: Request,
    body: ResolveRequest,
    knowledge: KnowledgeBase = Depends(get_knowledge),
):
    """Resolve a fully described case in one call (no session)."""
    context = CaseContext()

    match = classify(
        body.description,
        body.specific_offense,
        knowledge,
        min_shared=settings.category_min_shared_tokens,
        min_ratio=settings.category_min_overlap_ratio,
    )
    # A named category refines anything but an explicit offense match
    named = match_category_name(body.category, knowledge)
    if named is not None and (match is None or match.method != "explicit"):
        if match is None or normalize(match.category) != normalize(named.category):
            match = named
    if match is not None:
        context.category = match.category
        context.specific_offense = match.specific_offense
        if match.competency is not None:
            context.link_requirement = match.competency.link_requirement
            context.category_if_familial = match.competency.category_if_familial or None

    if body.district_text:
        found = resolve_district(
            body.district_text,
            knowledge,
            max_distance=settings.fuzzy_max_distance,
            max_options=settings.max_disambiguation_options,
        )
        context.district_text = body.district_text
        if found.kind is MatchKind.UNIQUE:
            context.set_district(found.district)
        elif found.kind is MatchKind.AMBIGUOUS:
            context.pending_options = list(found.districts)

    if body.link_answer is not None:
        context.record_link_answer(body.link_answer)

    result = resolve(context, knowledge, family_category=settings.family_category)
    logger.info(
        "stateless_resolution",
        status=result.status.value,
        category=context.category,
        district=context.district.district_id if context.district else None,
    )

    return ResolveResponse(
        status=result.status.value,
        category=context.category,
        specific_offense=context.specific_offense,
        district=_district(context.district) if context.district else None,
        candidates=[_district(d) for d in result.candidates],
        office=_office(result.office),
        method=result.outcome.method if result.outcome else None,
    )


# =============================================================================
# POST /session/reset — Forget a Sender's Case
# =============================================================================


@router.post("/session/reset", response_model=ResetResponse)
@limiter.limit(f"{settings.rate_limit}/minute")
async def reset_session(
    request: Request,
    body: ResetRequest,
    store: InMemorySessionStore = Depends(get_session_store),
):
    """Drop the sender's open case; the next message starts over."""
    cleared = await store.clear_session(body.sender_id.strip())
    return ResetResponse(cleared=cleared)


# =============================================================================
# GET /offices/{code} — Office Lookup
# =============================================================================


@router.get("/offices/{code}", response_model=OfficeResponse)
@limiter.limit(f"{settings.rate_limit}/minute")
async def get_office(
    request: Request,
    code: str,
    knowledge: KnowledgeBase = Depends(get_knowledge),
):
    """Look up a destination office by its code."""
    office = knowledge.find_office(code)
    if office is None:
        raise HTTPException(status_code=404, detail="Office not found")
    return _office(office)


# =============================================================================
# GET /health — Reference Table Health
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def api_health(
    request: Request,
    knowledge: KnowledgeBase = Depends(get_knowledge),
):
    """Table counts; degraded when districts or offices are empty."""
    counts = knowledge.counts()
    ok = counts["districts"] > 0 and counts["offices"] > 0

    # Disabled or keyless, classify_intent still answers with the heuristic
    if settings.classifier_enabled and settings.gemini_api_key:
        classifier = "llm"
    else:
        classifier = "heuristic"

    return HealthResponse(
        status="healthy" if ok else "degraded",
        tables=counts,
        classifier=classifier,
    )
