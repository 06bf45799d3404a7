"""
OpenAI-compatible chat completion provider.

Used for OpenRouter (several upstream models) and OpenAI itself; both expose
the same /chat/completions endpoint.
"""

import logging
from typing import Any, Dict, List

import requests

from src.errors import ProviderFailure
from src.models import Candidate, ContentKind
from src.providers.base import GenerationProvider
from src.providers.parsing import parse_generated_items
from src.providers.prompts import build_prompt

logger = logging.getLogger(__name__)


class ChatCompletionProvider(GenerationProvider):
    """Calls a /chat/completions endpoint and parses the reply into candidates."""

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str,
        model: str,
        kind: ContentKind,
        timeout: float = 45.0,
        max_tokens: int = 4000,
        allow_padding: bool = False,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.kind = kind
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.allow_padding = allow_padding

    def _request(self, messages: List[Dict[str, str]]) -> str:
        try:
            resp = requests.post(
                f"{self.base_url}/chat/completions",
                json={
                    "model": self.model,
                    "messages": messages,
                    "max_tokens": self.max_tokens,
                    "temperature": 0.7,
                },
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data: Any = resp.json()
        except requests.Timeout as e:
            raise ProviderFailure(self.name, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ProviderFailure(self.name, f"request failed: {e}") from e
        except ValueError as e:
            raise ProviderFailure(self.name, f"invalid JSON body: {e}") from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderFailure(self.name, "unexpected response shape") from e

    def generate(
        self, category: str, keywords: List[str], item_count: int
    ) -> List[Candidate]:
        system, user = build_prompt(self.kind, category, keywords, item_count)
        content = self._request(
            [{"role": "system", "content": system}, {"role": "user", "content": user}]
        )
        candidates = parse_generated_items(
            content, category, item_count, self.name, allow_padding=self.allow_padding
        )
        if not candidates:
            raise ProviderFailure(self.name, "no parseable items in response")
        return candidates
