"""
Gemini provider.

This module provides the GeminiProvider class, which generates news briefs
and articles with the Google Gemini API.
"""

import logging
from typing import List, Optional

from google import genai
from google.genai import types

from src.errors import ProviderFailure
from src.models import Candidate, ContentKind
from src.providers.base import GenerationProvider
from src.providers.parsing import parse_generated_items
from src.providers.prompts import build_prompt

logger = logging.getLogger(__name__)


class GeminiProvider(GenerationProvider):
    """Generation provider backed by the Google Gemini API."""

    def __init__(
        self,
        api_key: str,
        kind: ContentKind,
        model: str = "gemini-2.0-flash",
        timeout: float = 45.0,
        allow_padding: bool = False,
    ):
        self.name = "gemini"
        self.kind = kind
        self.model = model
        self.allow_padding = allow_padding
        self.client: Optional[genai.Client] = None
        try:
            self.client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=int(timeout * 1000)),
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Failed to initialize Gemini client: %s", e)
            self.client = None

    def generate(
        self, category: str, keywords: List[str], item_count: int
    ) -> List[Candidate]:
        """Asks Gemini for item_count items as JSON."""
        if not self.client:
            raise ProviderFailure(self.name, "client not initialized")

        system, user = build_prompt(self.kind, category, keywords, item_count)
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=user,
                config={
                    "system_instruction": system,
                    "response_mime_type": "application/json",
                },
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise ProviderFailure(self.name, f"API error: {e}") from e

        response_text = response.text if response.text else ""
        candidates = parse_generated_items(
            response_text,
            category,
            item_count,
            self.name,
            allow_padding=self.allow_padding,
        )
        if not candidates:
            raise ProviderFailure(self.name, "no parseable items in response")
        return candidates
