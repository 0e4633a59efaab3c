"""
Text Normalizer Tests
======================

normalize() is the single comparison point for the whole engine, so its
behaviour on accents, case, whitespace and None is pinned down here.
"""

from app.services.text_normalizer import (
    contains_phrase,
    content_tokens,
    normalize,
    slugify,
    strip_qualifiers,
    words,
)


# ─── normalize ───────────────────────────────────────────────────────────────


class TestNormalize:
    def test_strips_diacritics_and_case(self):
        assert normalize("Baños del Inca") == "banos del inca"
        assert normalize("JESÚS") == "jesus"
        assert normalize("Celendín") == "celendin"

    def test_collapses_and_trims_whitespace(self):
        assert normalize("  San \t Marcos \n ") == "san marcos"

    def test_total_on_empty_input(self):
        """None and "" never raise."""
        assert normalize(None) == ""
        assert normalize("") == ""
        assert normalize("   ") == ""

    def test_idempotent(self):
        once = normalize("  Pedro GÁLVEZ ")
        assert normalize(once) == once

    def test_non_string_input_is_stringified(self):
        assert normalize(123) == "123"


# ─── strip_qualifiers ────────────────────────────────────────────────────────


class TestStripQualifiers:
    def test_parenthetical_becomes_qualifier(self):
        assert strip_qualifiers("Bambamarca (Hualgayoc)") == ("bambamarca", "hualgayoc")

    def test_leading_article_dropped(self):
        assert strip_qualifiers("La Encañada") == ("encanada", "")

    def test_article_alone_is_kept(self):
        """A bare article is not stripped down to nothing."""
        assert strip_qualifiers("la ") == ("la", "")

    def test_plain_name_unchanged(self):
        assert strip_qualifiers("Cajamarca") == ("cajamarca", "")


# ─── Tokens ──────────────────────────────────────────────────────────────────


class TestTokens:
    def test_words_remove_punctuation(self):
        assert words("¡Sí, claro!") == ["si", "claro"]

    def test_content_tokens_drop_stop_words_and_short_words(self):
        tokens = content_tokens("Hola, me robaron el celular en la plaza")
        assert tokens == {"robaron", "celular", "plaza"}

    def test_content_tokens_empty(self):
        assert content_tokens(None) == set()


# ─── contains_phrase / slugify ───────────────────────────────────────────────


class TestContainsPhrase:
    def test_word_boundary_match(self):
        assert contains_phrase("me robaron en San Marcos ayer", "san marcos") is True

    def test_no_partial_word_match(self):
        assert contains_phrase("sanmarcos", "marcos") is False
        assert contains_phrase("me robaron", "robo") is False

    def test_empty_needle_never_matches(self):
        assert contains_phrase("cualquier texto", "") is False


def test_slugify_matches_district_id_format():
    assert slugify("Cajamarca_Baños del Inca") == "cajamarca_banos_del_inca"
    assert slugify("  San Marcos / Pedro Gálvez ") == "san_marcos_pedro_galvez"
