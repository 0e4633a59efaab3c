"""
Google GenAI Client
====================

Lazy singleton for the google-genai client used by the intent classifier.

SDK Compatibility:
    generate_content is synchronous; callers wrap it in asyncio.to_thread.
"""

import structlog

logger = structlog.get_logger(__name__)

_client = None


def _get_client():
    """
    Lazy-initialize the Google GenAI client (singleton).

    Returns:
        google.genai.Client configured with API key from settings.
    """
    global _client
    if _client is None:
        from google import genai
        from config import settings

        _client = genai.Client(api_key=settings.gemini_api_key)
        logger.info("genai_client_initialized")
    return _client


def reset_client():
    """Reset the client singleton (for testing)."""
    global _client
    _client = None


def get_genai_client():
    """Public accessor for the Google GenAI client singleton."""
    return _get_client()
