"""
Configuration for the Fiscalía Orientation Agent
"""
import os
from pathlib import Path

from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()

DEFAULT_KNOWLEDGE_PATH = Path(__file__).parent / "data" / "knowledge.json"


def _safe_float(env_var: str, default: float) -> float:
    """Parse float env var with fallback — never crash at import time."""
    try:
        return float(os.getenv(env_var, str(default)))
    except (ValueError, TypeError):
        return default


def _safe_int(env_var: str, default: int) -> int:
    """Parse int env var with fallback — never crash at import time."""
    try:
        return int(os.getenv(env_var, str(default)))
    except (ValueError, TypeError):
        return default


class Settings(BaseModel):
    """Orientation agent settings with production defaults"""

    # =========================================================================
    # Reference tables
    # =========================================================================
    knowledge_path: str = Field(
        default_factory=lambda: os.getenv("KNOWLEDGE_PATH", str(DEFAULT_KNOWLEDGE_PATH))
    )
    family_category: str = Field(
        default_factory=lambda: os.getenv("FAMILY_CATEGORY", "Familia")
    )

    # =========================================================================
    # Google AI (external intent classifier)
    # =========================================================================
    gemini_api_key: str = Field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    classifier_model: str = Field(
        default_factory=lambda: os.getenv("CLASSIFIER_MODEL", "gemini-2.5-flash")
    )
    classifier_timeout: float = Field(
        default_factory=lambda: _safe_float("CLASSIFIER_TIMEOUT", 4.0)
    )
    classifier_enabled: bool = Field(
        default_factory=lambda: os.getenv("CLASSIFIER_ENABLED", "true").lower() == "true"
    )

    # =========================================================================
    # Resolution engine
    # =========================================================================
    fuzzy_max_distance: int = Field(
        default_factory=lambda: _safe_int("FUZZY_MAX_DISTANCE", 2)
    )
    max_disambiguation_options: int = Field(
        default_factory=lambda: _safe_int("MAX_DISAMBIGUATION_OPTIONS", 5)
    )
    category_min_shared_tokens: int = Field(
        default_factory=lambda: _safe_int("CATEGORY_MIN_SHARED_TOKENS", 4)
    )
    category_min_overlap_ratio: float = Field(
        default_factory=lambda: _safe_float("CATEGORY_MIN_OVERLAP_RATIO", 0.3)
    )
    max_reevaluations: int = Field(
        default_factory=lambda: _safe_int("MAX_REEVALUATIONS", 3)
    )

    # =========================================================================
    # Feature Flags (default off)
    # =========================================================================
    narrative_link_suppression: bool = Field(
        default_factory=lambda: os.getenv("NARRATIVE_LINK_SUPPRESSION", "false").lower() == "true"
    )

    # =========================================================================
    # Sessions
    # =========================================================================
    session_ttl_minutes: int = Field(
        default_factory=lambda: _safe_int("SESSION_TTL_MINUTES", 60)
    )

    # =========================================================================
    # Server
    # =========================================================================
    host: str = "0.0.0.0"
    port: int = Field(
        default_factory=lambda: int(os.getenv("PORT", "8000"))
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true"
    )
    rate_limit: int = Field(
        default_factory=lambda: int(os.getenv("RATE_LIMIT", "30"))
    )
    allowed_origins: str = Field(
        default_factory=lambda: os.getenv("ALLOWED_ORIGINS", "http://localhost:3010")
    )

    class Config:
        env_file = ".env"


settings = Settings()
