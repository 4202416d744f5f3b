"""
Metadata providers for Anime Organizer.

Each provider turns a batch of folder names into identification results;
the registry picks one from settings.
"""

from .base import MetadataProvider, ModelCatalogProvider, ProviderResult, fill_error
from .pacing import RequestPacer, compute_backoff, parse_retry_after, is_quota_exhausted
from .gemini import GeminiMetadataProvider
from .openai_compat import (
    OpenAICompatibleMetadataProvider,
    DeepseekProxyMetadataProvider,
    OpenRouterMetadataProvider,
)
from .mock import MockMetadataProvider, SAMPLE_METADATA
from .registry import register_provider, create_provider

__all__ = [
    "MetadataProvider",
    "ModelCatalogProvider",
    "ProviderResult",
    "fill_error",
    "RequestPacer",
    "compute_backoff",
    "parse_retry_after",
    "is_quota_exhausted",
    "GeminiMetadataProvider",
    "OpenAICompatibleMetadataProvider",
    "DeepseekProxyMetadataProvider",
    "OpenRouterMetadataProvider",
    "MockMetadataProvider",
    "SAMPLE_METADATA",
    "register_provider",
    "create_provider",
]
