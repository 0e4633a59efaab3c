"""
Category Classifier Tests
==========================

Explicit offense → substring → conservative token overlap.
"""

import pytest

from app.services import category_classifier
from app.services.category_classifier import classify, match_category_name
from app.services.knowledge_loader import build_knowledge


# ─── Tier 1: Explicit Offense ────────────────────────────────────────────────


class TestExplicitOffense:
    def test_exact_offense_name_wins(self, kb):
        result = classify(None, "HURTO", kb)
        assert result.category == "Penal"
        assert result.specific_offense == "Hurto"
        assert result.method == "explicit"

    def test_explicit_beats_free_text(self, kb):
        """Free text pointing elsewhere is ignored when the offense matches."""
        result = classify("contaminan el agua de los canales con relaves", "Cohecho", kb)
        assert result.category == "Corrupción de Funcionarios"
        assert result.method == "explicit"

    def test_explicit_bypasses_token_overlap(self, kb, monkeypatch):
        def boom(*args, **kwargs):
            raise AssertionError("token overlap must not run")

        monkeypatch.setattr(category_classifier, "_match_token_overlap", boom)
        result = classify("cualquier relato largo sobre hechos diversos", "lesiones", kb)
        assert result.category == "Penal"
        assert result.competency.category_if_familial == "Violencia Familiar"

    def test_diacritics_ignored(self, kb):
        assert classify(None, "contaminacion ambiental", kb).category == "Ambiental"

    def test_unknown_offense_falls_through(self, kb):
        assert classify(None, "delito inexistente", kb) is None


# ─── Tier 2: Substring ───────────────────────────────────────────────────────


class TestSubstring:
    def test_offense_name_inside_narrative(self, kb):
        result = classify("Ayer hubo contaminación ambiental en el río", None, kb)
        assert result.category == "Ambiental"
        assert result.method == "substring"

    def test_longest_name_wins(self, kb):
        """'Robo' must not shadow 'Robo agravado'."""
        result = classify("sufrí un robo agravado anoche", None, kb)
        assert result.specific_offense == "Robo agravado"

    def test_whole_words_only(self, kb):
        """'robaron' does not contain the offense 'Robo'."""
        assert classify("me robaron", None, kb) is None


# ─── Tier 3: Token Overlap ───────────────────────────────────────────────────


class TestTokenOverlap:
    def test_descriptive_narrative_matches(self, kb):
        text = "Los vecinos contaminan el agua del rio y los canales con relaves de la mineria ilegal"
        result = classify(text, None, kb)
        assert result.category == "Ambiental"
        assert result.method == "token_overlap"
        assert 0.3 <= result.score <= 1.0

    def test_below_min_shared_tokens(self, kb):
        assert classify("agua canales mineria sucia", None, kb) is None

    def test_ratio_threshold_applies(self, kb):
        text = "Los vecinos contaminan el agua del rio y los canales con relaves de la mineria ilegal"
        assert classify(text, None, kb, min_ratio=0.9) is None

    def test_near_tie_between_categories_returns_none(self):
        desc = "golpes heridas fracturas moretones hospital"
        kb = build_knowledge({"competencias": [
            {"categoria": "Uno", "especifico": "A", "descripcion": desc},
            {"categoria": "Dos", "especifico": "B", "descripcion": desc},
        ]})
        assert classify("golpes heridas fracturas moretones hospital", None, kb) is None

    def test_same_category_rows_do_not_tie(self):
        desc = "golpes heridas fracturas moretones hospital"
        kb = build_knowledge({"competencias": [
            {"categoria": "Uno", "especifico": "A", "descripcion": desc},
            {"categoria": "Uno", "especifico": "B", "descripcion": desc},
        ]})
        result = classify("golpes heridas fracturas moretones hospital", None, kb)
        assert result.category == "Uno"
        assert result.specific_offense == "A"


# ─── Insufficient Signal ─────────────────────────────────────────────────────


class TestInsufficientSignal:
    def test_fewer_than_three_tokens_never_scored(self, kb, monkeypatch):
        def boom(*args, **kwargs):
            raise AssertionError("descriptions must not be scored")

        monkeypatch.setattr(category_classifier, "_description_tokens", boom)
        assert classify("me pasó algo feo", None, kb) is None

    @pytest.mark.parametrize("text", [None, "", "   ", "hola"])
    def test_empty_input(self, kb, text):
        assert classify(text, None, kb) is None


# ─── Category Names ──────────────────────────────────────────────────────────


class TestMatchCategoryName:
    def test_known_category(self, kb):
        result = match_category_name("familia", kb)
        assert result.category == "Familia"
        assert result.method == "category_name"
        assert result.competency is None

    def test_category_if_familial_is_known(self, kb):
        assert match_category_name("Violencia familiar", kb).category == "Violencia Familiar"

    def test_unknown_category(self, kb):
        assert match_category_name("tránsito", kb) is None
        assert match_category_name(None, kb) is None
