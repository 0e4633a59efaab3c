"""
Intent Classifier Tests
========================

The LLM call is always mocked. Every failure mode must degrade to empty
hints, and a missing API key must fall back to the keyword heuristic.
"""

import time

import pytest
from unittest.mock import MagicMock, patch

from app.services import intent_classifier
from app.services.intent_classifier import (
    EMPTY_HINTS,
    _extract_json,
    classify_intent,
    heuristic_hints,
)


@pytest.fixture
def llm_enabled(monkeypatch):
    """Pretend an API key is configured and the classifier is on."""
    monkeypatch.setattr(intent_classifier.settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(intent_classifier.settings, "classifier_enabled", True)
    monkeypatch.setattr(intent_classifier.settings, "classifier_timeout", 1.0)


@pytest.fixture
def mock_genai():
    """Patch get_genai_client; set .text on the returned response per test."""
    with patch("app.services.intent_classifier.get_genai_client") as mock_getter:
        mock_client = MagicMock()
        mock_response = MagicMock()
        mock_client.models.generate_content.return_value = mock_response
        mock_getter.return_value = mock_client
        yield mock_client, mock_response


# ─── LLM Path ────────────────────────────────────────────────────────────────


class TestLLMPath:
    async def test_parses_json(self, llm_enabled, mock_genai):
        client, response = mock_genai
        response.text = (
            '{"categoria": "Penal", "delito": "Robo", "distrito": "Cajamarca", '
            '"resumen": "Te robaron el celular."}'
        )
        hints = await classify_intent("me robaron en cajamarca", {"category": None},
                                      categories=["Penal", "Familia"])

        assert hints.category == "Penal"
        assert hints.specific_offense == "Robo"
        assert hints.district_hint == "Cajamarca"
        assert hints.summary == "Te robaron el celular."
        assert hints.source == "llm"

        prompt = client.models.generate_content.call_args.kwargs["contents"]
        assert "me robaron en cajamarca" in prompt
        assert '"Penal"' in prompt

    async def test_markdown_fence_stripped(self, llm_enabled, mock_genai):
        _, response = mock_genai
        response.text = '```json\n{"categoria": "Familia", "delito": null}\n```'
        hints = await classify_intent("tenencia de mi hijo")
        assert hints.category == "Familia"
        assert hints.specific_offense is None

    async def test_literal_null_strings_tolerated(self, llm_enabled, mock_genai):
        _, response = mock_genai
        response.text = '{"categoria": "null", "delito": "", "distrito": "N/A"}'
        hints = await classify_intent("algo pasó")
        assert hints.category is None
        assert hints.specific_offense is None
        assert hints.district_hint is None
        assert hints.source == "llm"

    async def test_invalid_json_returns_empty(self, llm_enabled, mock_genai):
        _, response = mock_genai
        response.text = "Claro, la categoría es Penal."
        assert await classify_intent("me robaron") is EMPTY_HINTS

    async def test_non_object_json_returns_empty(self, llm_enabled, mock_genai):
        _, response = mock_genai
        response.text = '["Penal"]'
        assert await classify_intent("me robaron") is EMPTY_HINTS

    async def test_empty_response_returns_empty(self, llm_enabled, mock_genai):
        _, response = mock_genai
        response.text = ""
        assert await classify_intent("me robaron") is EMPTY_HINTS

    async def test_api_error_returns_empty(self, llm_enabled, mock_genai):
        client, _ = mock_genai
        client.models.generate_content.side_effect = RuntimeError("quota exceeded")
        assert await classify_intent("me robaron") is EMPTY_HINTS

    async def test_timeout_returns_empty(self, llm_enabled, mock_genai, monkeypatch):
        client, _ = mock_genai
        monkeypatch.setattr(intent_classifier.settings, "classifier_timeout", 0.05)
        client.models.generate_content.side_effect = lambda **kwargs: time.sleep(0.5)
        assert await classify_intent("me robaron") is EMPTY_HINTS


# ─── Heuristic Path ──────────────────────────────────────────────────────────


class TestHeuristicPath:
    async def test_no_api_key_uses_heuristic(self, monkeypatch, mock_genai):
        client, _ = mock_genai
        monkeypatch.setattr(intent_classifier.settings, "gemini_api_key", "")
        hints = await classify_intent("Mi expareja no me deja ver a mi hijo")
        assert hints.category == "Familia"
        assert hints.source == "heuristic"
        client.models.generate_content.assert_not_called()

    async def test_disabled_uses_heuristic(self, llm_enabled, monkeypatch, mock_genai):
        client, _ = mock_genai
        monkeypatch.setattr(intent_classifier.settings, "classifier_enabled", False)
        hints = await classify_intent("quiero pedir pensión de alimentos")
        assert hints.category == "Familia"
        client.models.generate_content.assert_not_called()

    def test_heuristic_without_keyword(self):
        hints = heuristic_hints("me robaron el celular")
        assert hints.category is None
        assert hints.source == "heuristic"

    async def test_empty_text(self, llm_enabled, mock_genai):
        client, _ = mock_genai
        assert await classify_intent("   ") is EMPTY_HINTS
        client.models.generate_content.assert_not_called()


def test_extract_json_plain_passthrough():
    assert _extract_json('  {"a": 1} ') == '{"a": 1}'
