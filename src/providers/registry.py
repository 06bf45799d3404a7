"""
Builds provider chains from settings.
"""

import logging
from typing import Callable, Dict, List, Optional

from src.config import Settings
from src.errors import ConfigError
from src.models import ContentKind
from src.providers.base import GenerationProvider, ProviderChain
from src.providers.chat import ChatCompletionProvider
from src.providers.gemini import GeminiProvider
from src.providers.rss import GoogleNewsRSSProvider

logger = logging.getLogger(__name__)

Factory = Callable[[Settings, ContentKind, bool], Optional[GenerationProvider]]


def _google_news(settings: Settings, kind: ContentKind, _pad: bool):
    if kind is not ContentKind.NEWS:
        logger.info("google_news_rss only serves news; skipped for %s", kind.label)
        return None
    return GoogleNewsRSSProvider(timeout=settings.provider_timeout_seconds)


def _openrouter(name: str, model_attr: str) -> Factory:
    def factory(settings: Settings, kind: ContentKind, pad: bool):
        if not settings.openrouter_api_key:
            return None
        return ChatCompletionProvider(
            name=name,
            base_url=settings.openrouter_base_url,
            api_key=settings.openrouter_api_key,
            model=getattr(settings, model_attr),
            kind=kind,
            timeout=settings.provider_timeout_seconds,
            max_tokens=8000 if kind is ContentKind.ARTICLE else 4000,
            allow_padding=pad,
        )

    return factory


def _openai(settings: Settings, kind: ContentKind, pad: bool):
    if not settings.openai_api_key:
        return None
    return ChatCompletionProvider(
        name="openai",
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        kind=kind,
        timeout=settings.provider_timeout_seconds,
        max_tokens=8000 if kind is ContentKind.ARTICLE else 2000,
        allow_padding=pad,
    )


def _gemini(settings: Settings, kind: ContentKind, pad: bool):
    if not settings.gemini_api_key:
        return None
    return GeminiProvider(
        api_key=settings.gemini_api_key,
        kind=kind,
        model=settings.gemini_model,
        timeout=settings.provider_timeout_seconds,
        allow_padding=pad,
    )


PROVIDER_FACTORIES: Dict[str, Factory] = {
    "google_news_rss": _google_news,
    "openrouter_perplexity": _openrouter("openrouter_perplexity", "openrouter_news_model"),
    "openrouter_claude": _openrouter("openrouter_claude", "openrouter_writer_model"),
    "openai": _openai,
    "gemini": _gemini,
}


def build_provider_chain(settings: Settings, kind: ContentKind) -> ProviderChain:
    """Creates the ordered chain for one content kind; unconfigured providers are skipped."""
    # Placeholder padding is never allowed in production
    allow_padding = not settings.environment.is_production
    providers: List[GenerationProvider] = []
    for name in settings.provider_order.get(kind.label, []):
        factory = PROVIDER_FACTORIES.get(name)
        if factory is None:
            raise ConfigError(f"Unknown generation provider: {name}")
        provider = factory(settings, kind, allow_padding)
        if provider is None:
            logger.info("Provider %s not configured, skipping for %s", name, kind.label)
            continue
        providers.append(provider)

    if not providers:
        logger.warning("No generation providers configured for %s", kind.label)
    return ProviderChain(providers)
