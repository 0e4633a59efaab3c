"""
Reference Table Loader
=======================
Loads the five reference tables from knowledge.json (the spreadsheet export)
once per process and caches the resulting KnowledgeBase per path.

Row-level problems never abort the load: malformed rows are logged and
skipped, duplicate keys keep the first occurrence. Only a missing or
unparseable file is fatal (KnowledgeLoadError at startup).
"""
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from config import settings
from app.models.knowledge import (
    Competency,
    District,
    DistrictAlias,
    KnowledgeBase,
    Office,
    ScopeRule,
)
from app.services.text_normalizer import normalize

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

# ─── Source sections ─────────────────────────────────────────────────────────
# Section keys as written by the spreadsheet export; English keys accepted too.

SECTION_KEYS: Dict[str, Tuple[str, ...]] = {
    "districts": ("distritos", "districts"),
    "offices": ("fiscalias", "offices"),
    "competencies": ("competencias", "competencies"),
    "scope_rules": ("reglasCompetencia", "scope_rules"),
    "aliases": ("aliasDistritos", "aliases"),
}

# ─── Cache ───────────────────────────────────────────────────────────────────
_cache: dict[str, KnowledgeBase] = {}


class KnowledgeLoadError(RuntimeError):
    """The reference table file is missing or not valid JSON."""


def clear_cache() -> None:
    """Reset the knowledge cache. Used in tests and after hot-reload."""
    _cache.clear()


def _section(data: Dict[str, Any], name: str) -> List[Any]:
    for key in SECTION_KEYS[name]:
        rows = data.get(key)
        if isinstance(rows, list):
            return rows
    return []


def _validate_rows(
    rows: List[Any],
    model: Type[RecordT],
    table: str,
    key: Optional[Callable[[RecordT], Any]] = None,
) -> List[RecordT]:
    """Validate rows against a schema, skipping invalid rows and duplicate keys."""
    records: List[RecordT] = []
    seen = set()
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            logger.warning("knowledge_row_rejected", table=table, row=index, error="not an object")
            continue
        try:
            record = model.model_validate(row)
        except ValidationError as exc:
            logger.warning(
                "knowledge_row_rejected",
                table=table,
                row=index,
                error=exc.errors(include_url=False)[0]["msg"],
            )
            continue
        if key is not None:
            k = key(record)
            if k in seen:
                logger.warning("knowledge_row_duplicate", table=table, row=index, key=str(k))
                continue
            seen.add(k)
        records.append(record)
    return records


def build_knowledge(data: Dict[str, Any]) -> KnowledgeBase:
    """Validate an in-memory knowledge payload into a KnowledgeBase.

    Args:
        data: Dict shaped like knowledge.json (Spanish or English section keys).

    Returns:
        KnowledgeBase with only the rows that passed validation.
    """
    kb = KnowledgeBase(
        districts=_validate_rows(
            _section(data, "districts"), District, "districts",
            key=lambda d: (normalize(d.province), normalize(d.district)),
        ),
        offices=_validate_rows(
            _section(data, "offices"), Office, "offices",
            key=lambda o: normalize(o.code),
        ),
        competencies=_validate_rows(_section(data, "competencies"), Competency, "competencies"),
        scope_rules=_validate_rows(_section(data, "scope_rules"), ScopeRule, "scope_rules"),
        aliases=_validate_rows(
            _section(data, "aliases"), DistrictAlias, "aliases",
            key=lambda a: normalize(a.alias),
        ),
    )
    logger.info("knowledge_built", **kb.counts())
    return kb


def load_knowledge(path: Optional[str] = None) -> KnowledgeBase:
    """Return the KnowledgeBase for a JSON file, loading it on first use.

    Args:
        path: knowledge.json location. Defaults to settings.knowledge_path.

    Returns:
        Cached KnowledgeBase.

    Raises:
        KnowledgeLoadError: file missing, unreadable or not a JSON object.
    """
    location = str(Path(path or settings.knowledge_path).resolve())
    if location in _cache:
        return _cache[location]

    try:
        raw = Path(location).read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("knowledge_read_error", path=location, error=str(exc))
        raise KnowledgeLoadError(f"Cannot read knowledge file {location}: {exc}") from exc
    except json.JSONDecodeError as exc:
        logger.error("knowledge_json_error", path=location, error=str(exc))
        raise KnowledgeLoadError(f"Invalid JSON in {location}: {exc}") from exc

    if not isinstance(data, dict):
        raise KnowledgeLoadError(f"Knowledge file {location} must contain a JSON object")

    kb = build_knowledge(data)
    _cache[location] = kb
    logger.info("knowledge_loaded", path=location)
    return kb
