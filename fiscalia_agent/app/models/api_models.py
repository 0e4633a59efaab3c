"""
API Request/Response Models
============================

Pydantic models for API endpoint validation.
Maps engine results (TurnReply, ResolutionResult) to the client-facing schema.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.case_context import LinkAnswer


# ─── Request Models ───────────────────────────────────────────────────────────


class MessageRequest(BaseModel):
    """Request body for POST /api/message (one citizen turn)."""

    sender_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Channel-scoped identifier of the citizen",
    )
    text: Optional[str] = Field(
        None,
        max_length=2000,
        description="Message text (may be empty, e.g. a sticker or attachment)",
    )
    payload: Optional[str] = Field(
        None,
        max_length=64,
        description="Postback / quick-reply payload, e.g. GET_STARTED",
    )

    @field_validator("sender_id")
    @classmethod
    def strip_sender(cls, v: str) -> str:
        """Strip whitespace and reject empty-after-strip identifiers."""
        v = v.strip()
        if not v:
            raise ValueError("sender_id cannot be empty or just whitespace")
        return v


class ResolveRequest(BaseModel):
    """Request body for POST /api/resolve (stateless, single shot)."""

    category: Optional[str] = Field(None, max_length=120)
    specific_offense: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(
        None,
        max_length=2000,
        description="Free-text narrative used to classify the offense",
    )
    district_text: Optional[str] = Field(None, max_length=200)
    link_answer: Optional[LinkAnswer] = None

    @field_validator("link_answer", mode="before")
    @classmethod
    def coerce_link_answer(cls, v):
        """Accept "sí"/"si"/"no" in any case."""
        if isinstance(v, str):
            value = v.strip().upper().replace("Í", "I")
            return value or None
        return v


class ResetRequest(BaseModel):
    """Request body for POST /api/session/reset."""

    sender_id: str = Field(..., min_length=1, max_length=128)


# ─── Response Models ──────────────────────────────────────────────────────────


class OfficeResponse(BaseModel):
    """One destination office."""

    code: str
    name: str
    office_type: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    hours: Optional[str] = None


class DistrictOption(BaseModel):
    """A district offered for disambiguation."""

    district_id: str
    district: str
    province: str
    label: str


class MessageResponse(BaseModel):
    """Response from POST /api/message.

    Field mapping from TurnReply:
        text          ← reply.text
        quick_replies ← reply.quick_replies
        state         ← reply.state (ConversationState value)
        status        ← reply.result.status (None when nothing was resolved)
        office        ← reply.result.office
    """

    text: str
    quick_replies: List[str] = Field(default_factory=list)
    state: str
    status: Optional[str] = None
    office: Optional[OfficeResponse] = None


class ResolveResponse(BaseModel):
    """Response from POST /api/resolve."""

    status: str
    category: Optional[str] = None
    specific_offense: Optional[str] = None
    district: Optional[DistrictOption] = None
    candidates: List[DistrictOption] = Field(default_factory=list)
    office: Optional[OfficeResponse] = None
    method: Optional[str] = None  # tier that chose the office


class ResetResponse(BaseModel):
    """Response from POST /api/session/reset."""

    cleared: bool


class HealthResponse(BaseModel):
    """Response from GET /api/health."""

    status: str
    tables: Dict[str, int] = Field(default_factory=dict)
    classifier: str = "heuristic"  # "llm" | "heuristic"
