"""
Base classes and interfaces for generation providers.

This module defines the contract every provider follows and the ordered
fallback chain the curation engine calls.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Protocol, Sequence

from src.errors import AllProvidersExhausted
from src.models import Candidate

logger = logging.getLogger(__name__)


class GenerationProvider(Protocol):
    """
    Protocol for content generation providers.

    generate returns at least one candidate or raises (ProviderFailure for
    expected failures such as timeouts, HTTP errors or unparseable output).
    """

    name: str

    def generate(
        self, category: str, keywords: List[str], item_count: int
    ) -> List[Candidate]:
        """Generates candidate items for a topic category and keywords."""


@dataclass
class ChainResult:
    """The winning provider and its candidates."""

    provider: str
    candidates: List[Candidate]


class ProviderChain:
    """Tries providers strictly in order; the first non-empty result wins."""

    def __init__(self, providers: Sequence[GenerationProvider]):
        self.providers = list(providers)

    @property
    def names(self) -> List[str]:
        return [provider.name for provider in self.providers]

    def generate(
        self, category: str, keywords: List[str], item_count: int
    ) -> ChainResult:
        failures: Dict[str, str] = {}
        for provider in self.providers:
            logger.info("Attempting generation via %s for %s...", provider.name, category)
            try:
                candidates = provider.generate(category, keywords, item_count)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning("Provider %s failed for %s: %s", provider.name, category, e)
                failures[provider.name] = str(e)
                continue

            if not candidates:
                logger.warning("Provider %s returned no items for %s", provider.name, category)
                failures[provider.name] = "empty result"
                continue

            logger.info(
                "Provider %s returned %d items for %s",
                provider.name,
                len(candidates),
                category,
            )
            return ChainResult(provider=provider.name, candidates=list(candidates))

        raise AllProvidersExhausted(failures)
