"""
Configuration package for Anime Organizer.

This package provides centralized, type-safe configuration management.
"""

from .manager import (
    ApiProvider,
    NamingLanguage,
    ProviderConfig,
    SubShareConfig,
    VerificationConfig,
    NamingConfig,
    ScanConfig,
    HistoryConfig,
    LoggingConfig,
    AnimeOrganizerConfig,
    setup_config,
    get_config,
    reload_config,
    get_target_path,
    get_provider_config,
    get_subshare_config,
    get_verification_config,
    get_naming_config,
    get_scan_config,
    get_history_config,
    get_logging_config,
)

__all__ = [
    "ApiProvider",
    "NamingLanguage",
    "ProviderConfig",
    "SubShareConfig",
    "VerificationConfig",
    "NamingConfig",
    "ScanConfig",
    "HistoryConfig",
    "LoggingConfig",
    "AnimeOrganizerConfig",
    "setup_config",
    "get_config",
    "reload_config",
    "get_target_path",
    "get_provider_config",
    "get_subshare_config",
    "get_verification_config",
    "get_naming_config",
    "get_scan_config",
    "get_history_config",
    "get_logging_config",
]
