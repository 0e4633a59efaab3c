"""
Reference Table Models
=======================

Canonical pydantic schema for each of the five reference tables:
District, DistrictAlias, Office, Competency, ScopeRule.

Source rows come from the spreadsheet export (knowledge.json) with Spanish
column names; those are accepted as field aliases so every call site reads
one field name per concept.

Design decisions:
- frozen=True: reference data is immutable for the process lifetime
- extra="ignore": unknown spreadsheet columns are dropped silently
- Blank optional cells become "" (never None) so callers test truthiness only
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.services.text_normalizer import normalize, slugify

TRUTHY_FLAGS = {"si", "yes", "true", "1", "x", "s"}


def _clean(value: Any) -> str:
    """None → "", everything else → stripped str."""
    if value is None:
        return ""
    return str(value).strip()


class LinkRequirement(str, Enum):
    """Whether the accused's family relationship changes the category."""

    NO = "NO"
    SI = "SI"
    DEPENDE = "DEPENDE"


class RuleScope(str, Enum):
    """Reach of a scope rule: one district, or the whole fiscal district."""

    DISTRICT = "DISTRICT"
    DISTRICT_WIDE = "DISTRICT_WIDE"


_RECORD_CONFIG = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


# =============================================================================
# District
# =============================================================================


class District(BaseModel):
    """One administrative district with its office-code fields."""

    model_config = _RECORD_CONFIG

    province: str = Field(min_length=1, alias="provincia")
    district: str = Field(min_length=1, alias="distrito")
    district_id: str = Field(default="", alias="distrito_id")
    has_violence_office: bool = Field(default=False, alias="tiene_fiscalia_violencia")
    general_office_code: str = Field(default="", alias="fiscalia_penal_mixta_codigo")
    family_office_code: str = Field(default="", alias="fiscalia_familia_codigo")
    violence_office_code: str = Field(default="", alias="fiscalia_violencia_codigo")
    prevention_office_code: str = Field(default="", alias="fiscalia_prevencion_codigo")

    @model_validator(mode="before")
    @classmethod
    def derive_district_id(cls, data: Any) -> Any:
        """district_id defaults to slug(province + "_" + district)."""
        if not isinstance(data, dict):
            return data
        if _clean(data.get("distrito_id") or data.get("district_id")):
            return data
        province = data.get("provincia", data.get("province"))
        district = data.get("distrito", data.get("district"))
        data = dict(data)
        data["distrito_id"] = slugify(f"{_clean(province)}_{_clean(district)}")
        return data

    @field_validator(
        "province", "district", "district_id", "general_office_code",
        "family_office_code", "violence_office_code", "prevention_office_code",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return _clean(v)

    @field_validator("has_violence_office", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        """Spreadsheet flags arrive as "Sí", "SI", "x", "1", True..."""
        if isinstance(v, bool):
            return v
        return normalize(_clean(v)) in TRUTHY_FLAGS

    @property
    def label(self) -> str:
        """Display form used when asking the citizen to disambiguate."""
        return f"{self.district} ({self.province})"

    @property
    def offers_family_violence_office(self) -> bool:
        """True when the district routes family violence to a dedicated office."""
        return self.has_violence_office or bool(self.violence_office_code)


class DistrictAlias(BaseModel):
    """Colloquial or historical name pointing at a canonical district name."""

    model_config = _RECORD_CONFIG

    alias: str = Field(min_length=1)
    target: str = Field(min_length=1, alias="distrito_destino")

    @field_validator("alias", "target", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return _clean(v)


# =============================================================================
# Office
# =============================================================================


class Office(BaseModel):
    """A destination office (fiscalía)."""

    model_config = _RECORD_CONFIG

    code: str = Field(min_length=1, alias="codigo_fiscalia")
    name: str = Field(min_length=1, alias="nombre_fiscalia")
    office_type: str = Field(default="", alias="tipo")
    address: str = Field(default="", alias="direccion")
    phone: str = Field(default="", alias="telefono")
    hours: str = Field(default="", alias="horario")

    @field_validator("code", "name", "office_type", "address", "phone", "hours", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return _clean(v)


# =============================================================================
# Competency
# =============================================================================


class Competency(BaseModel):
    """Offense → category mapping row."""

    model_config = _RECORD_CONFIG

    category: str = Field(min_length=1, alias="categoria")
    generic: str = Field(default="", alias="generico")
    sub_category: str = Field(default="", alias="subgenerico")
    specific_offense: str = Field(default="", alias="especifico")
    description: str = Field(default="", alias="descripcion")
    link_requirement: LinkRequirement = Field(
        default=LinkRequirement.NO, alias="requiere_vinculo_familiar"
    )
    category_if_familial: str = Field(default="", alias="categoria_si_familiar")

    @field_validator(
        "category", "generic", "sub_category", "specific_offense",
        "description", "category_if_familial",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return _clean(v)

    @field_validator("link_requirement", mode="before")
    @classmethod
    def coerce_requirement(cls, v: Any) -> LinkRequirement:
        """Unknown or blank values default to NO."""
        if isinstance(v, LinkRequirement):
            return v
        value = normalize(_clean(v))
        if value in ("si", "yes"):
            return LinkRequirement.SI
        if value == "depende":
            return LinkRequirement.DEPENDE
        return LinkRequirement.NO


# =============================================================================
# Scope Rule
# =============================================================================


class ScopeRule(BaseModel):
    """category + scope → destination office code."""

    model_config = _RECORD_CONFIG

    category: str = Field(min_length=1, alias="materia")
    scope: RuleScope = Field(alias="alcance")
    district: str = Field(default="", alias="distrito")
    office_code: str = Field(min_length=1, alias="fiscalia_destino_codigo")
    note: str = Field(default="", alias="observacion_opcional")

    @field_validator("category", "district", "office_code", "note", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return _clean(v)

    @field_validator("scope", mode="before")
    @classmethod
    def coerce_scope(cls, v: Any) -> RuleScope:
        """Accepts 'distrito', 'distrito_fiscal', 'distrito fiscal'."""
        if isinstance(v, RuleScope):
            return v
        value = normalize(_clean(v)).replace("_", " ").replace("-", " ")
        if value in ("distrito", "district"):
            return RuleScope.DISTRICT
        if value in ("distrito fiscal", "district wide"):
            return RuleScope.DISTRICT_WIDE
        raise ValueError(f"Unknown rule scope: {v!r}")

    @model_validator(mode="after")
    def check_district_matches_scope(self) -> "ScopeRule":
        """District name is required iff scope is DISTRICT."""
        if self.scope is RuleScope.DISTRICT and not self.district:
            raise ValueError("DISTRICT-scoped rule requires a district name")
        if self.scope is RuleScope.DISTRICT_WIDE and self.district:
            raise ValueError("DISTRICT_WIDE rule must not name a district")
        return self


# =============================================================================
# Knowledge Base
# =============================================================================


class KnowledgeBase:
    """Immutable bundle of the five reference tables.

    Tables keep source order (tuples) because several matching steps are
    "first match wins" or "source order" by definition. Built once per
    process and shared read-only by every conversation.
    """

    def __init__(
        self,
        districts: Iterable[District] = (),
        offices: Iterable[Office] = (),
        competencies: Iterable[Competency] = (),
        scope_rules: Iterable[ScopeRule] = (),
        aliases: Iterable[DistrictAlias] = (),
    ):
        self.districts: Tuple[District, ...] = tuple(districts)
        self.offices: Tuple[Office, ...] = tuple(offices)
        self.competencies: Tuple[Competency, ...] = tuple(competencies)
        self.scope_rules: Tuple[ScopeRule, ...] = tuple(scope_rules)
        self.aliases: Tuple[DistrictAlias, ...] = tuple(aliases)

        by_code: Dict[str, Office] = {}
        for office in self.offices:
            by_code.setdefault(normalize(office.code), office)
        self._offices_by_code: Mapping[str, Office] = MappingProxyType(by_code)

        seen: Dict[str, str] = {}
        for name in (
            [c.category for c in self.competencies]
            + [c.category_if_familial for c in self.competencies]
            + [r.category for r in self.scope_rules]
        ):
            if name:
                seen.setdefault(normalize(name), name)
        self._categories: Mapping[str, str] = MappingProxyType(seen)

    def find_office(self, code: Optional[str]) -> Optional[Office]:
        """Office by code (case/diacritic-insensitive), None for blank/unknown."""
        key = normalize(code)
        if not key:
            return None
        return self._offices_by_code.get(key)

    @property
    def categories(self) -> List[str]:
        """Known category display names, first-seen order."""
        return list(self._categories.values())

    def canonical_category(self, name: Optional[str]) -> Optional[str]:
        """Display name of a known category, or None."""
        return self._categories.get(normalize(name))

    def counts(self) -> Dict[str, int]:
        """Row counts per table (health/diagnostics)."""
        return {
            "districts": len(self.districts),
            "offices": len(self.offices),
            "competencies": len(self.competencies),
            "scope_rules": len(self.scope_rules),
            "aliases": len(self.aliases),
        }
