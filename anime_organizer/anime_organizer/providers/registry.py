"""
Provider factory keyed by the configured ApiProvider.
"""
import logging
from typing import Callable, Dict, Optional

from .base import MetadataProvider
from .gemini import GeminiMetadataProvider
from .openai_compat import (
    OpenAICompatibleMetadataProvider,
    DeepseekProxyMetadataProvider,
    OpenRouterMetadataProvider,
)
from .mock import MockMetadataProvider
from ..config import ApiProvider, ProviderConfig, get_provider_config
from ..logging import ConfigError

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ProviderConfig], MetadataProvider]

_FACTORIES: Dict[ApiProvider, ProviderFactory] = {}


def register_provider(kind: ApiProvider, factory: ProviderFactory) -> None:
    """Registers (or replaces) the factory used for `kind`."""
    _FACTORIES[ApiProvider(kind)] = factory


def _http_factory(cls) -> ProviderFactory:
    def factory(config: ProviderConfig) -> MetadataProvider:
        return cls(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
            cooldown_seconds=config.cooldown_seconds,
            backoff_base_seconds=config.backoff_base_seconds,
        )
    return factory


def _custom_factory(config: ProviderConfig) -> MetadataProvider:
    if not config.base_url:
        raise ConfigError("AI_BASE_URL is required for the custom provider")
    if not config.model:
        raise ConfigError("AI_MODEL is required for the custom provider")
    return _http_factory(OpenAICompatibleMetadataProvider)(config)


register_provider(ApiProvider.GEMINI, _http_factory(GeminiMetadataProvider))
register_provider(ApiProvider.DEEPSEEK_PROXY, _http_factory(DeepseekProxyMetadataProvider))
register_provider(ApiProvider.OPENROUTER, _http_factory(OpenRouterMetadataProvider))
register_provider(ApiProvider.CUSTOM, _custom_factory)
register_provider(ApiProvider.MOCK, lambda config: MockMetadataProvider())


def create_provider(config: Optional[ProviderConfig] = None) -> MetadataProvider:
    """
    Builds the provider selected by `config.provider`.

    Raises:
        ConfigError: If no factory is registered or the settings are incomplete
    """
    config = config or get_provider_config()
    try:
        factory = _FACTORIES[ApiProvider(config.provider)]
    except (KeyError, ValueError):
        raise ConfigError(f"Unknown metadata provider: {config.provider}")
    provider = factory(config)
    logger.info(f"Using metadata provider '{provider.name}'")
    return provider
