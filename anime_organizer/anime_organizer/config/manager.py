"""
Centralized configuration management for Anime Organizer.

Type-safe, validated settings loaded from environment variables and `.env`
files through pydantic-settings.
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import (
    SUBSHARE_DB_FILENAME,
    SUBSHARE_PRIMARY_URL,
    SUBSHARE_BACKUP_URL,
    SUBSHARE_TIMEOUT_SECONDS,
    ANIMEDB_SEARCH_URL,
    ANIMEDB_TIMEOUT_SECONDS,
    DEFAULT_NAMING_FORMAT,
    SCAN_BATCH_SIZE,
    SCAN_STATE_FILENAME,
    HISTORY_DB_FILENAME,
    HISTORY_RECENT_LIMIT,
    PROVIDER_MAX_RETRIES,
    PROVIDER_COOLDOWN_SECONDS,
    PROVIDER_BACKOFF_BASE_SECONDS,
    PROVIDER_TIMEOUT_SECONDS,
)


class ApiProvider(str, Enum):
    """Metadata provider families selectable from settings."""
    GEMINI = "gemini"
    DEEPSEEK_PROXY = "deepseek_proxy"
    OPENROUTER = "openrouter"
    CUSTOM = "custom"
    MOCK = "mock"


class NamingLanguage(str, Enum):
    """Preferred language for the display title used in folder names."""
    TRADITIONAL_CHINESE = "traditional_chinese"
    SIMPLIFIED_CHINESE = "simplified_chinese"
    JAPANESE = "japanese"
    ENGLISH = "english"


class ProviderConfig(BaseSettings):
    """Configuration for the metadata (LLM) provider"""

    model_config = SettingsConfigDict(
        env_prefix="AI_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    provider: ApiProvider = Field(default=ApiProvider.GEMINI, description="Provider: gemini, deepseek_proxy, openrouter, custom, mock")
    api_key: Optional[str] = Field(default=None, description="API key for the provider")
    model: Optional[str] = Field(default=None, description="Model name (provider default when unset)")
    base_url: Optional[str] = Field(default=None, description="Base URL for OpenAI-compatible providers")
    timeout: int = Field(default=PROVIDER_TIMEOUT_SECONDS, description="HTTP timeout in seconds")
    max_retries: int = Field(default=PROVIDER_MAX_RETRIES, description="Retries after HTTP 429 or transient errors")
    cooldown_seconds: float = Field(default=PROVIDER_COOLDOWN_SECONDS, description="Minimum gap between requests")
    backoff_base_seconds: float = Field(default=PROVIDER_BACKOFF_BASE_SECONDS, description="Base delay for exponential backoff")


class SubShareConfig(BaseSettings):
    """Configuration for the SubShare title database"""

    model_config = SettingsConfigDict(
        env_prefix="SUBSHARE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    db_path: Path = Field(default=Path(SUBSHARE_DB_FILENAME), description="Local path of db.xml")
    primary_url: str = Field(default=SUBSHARE_PRIMARY_URL, description="Primary download mirror")
    backup_url: str = Field(default=SUBSHARE_BACKUP_URL, description="Backup download mirror")
    timeout: int = Field(default=SUBSHARE_TIMEOUT_SECONDS, description="Download timeout in seconds")


class VerificationConfig(BaseSettings):
    """Configuration for AnimeDB title verification"""

    model_config = SettingsConfigDict(
        env_prefix="ANIMEDB_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    enabled: bool = Field(default=True, description="Verify provider titles against AnimeDB")
    search_url: str = Field(default=ANIMEDB_SEARCH_URL, description="AnimeDB search endpoint")
    timeout: int = Field(default=ANIMEDB_TIMEOUT_SECONDS, description="HTTP timeout in seconds")


class NamingConfig(BaseSettings):
    """Configuration for folder naming"""

    model_config = SettingsConfigDict(
        env_prefix="NAMING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    format: str = Field(default=DEFAULT_NAMING_FORMAT, description="Folder name template")
    preferred_language: NamingLanguage = Field(
        default=NamingLanguage.TRADITIONAL_CHINESE,
        description="Language used for {Title}"
    )

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Fall back to the default template when blank"""
        return v if v and v.strip() else DEFAULT_NAMING_FORMAT


class ScanConfig(BaseSettings):
    """Configuration for folder scans"""

    model_config = SettingsConfigDict(
        env_prefix="SCAN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    batch_size: int = Field(default=SCAN_BATCH_SIZE, ge=1, description="Folder names per provider call")
    state_file: Path = Field(default=Path(SCAN_STATE_FILENAME), description="Where the last scan is saved")


class HistoryConfig(BaseSettings):
    """Configuration for the rename history log"""

    model_config = SettingsConfigDict(
        env_prefix="HISTORY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    db_path: Path = Field(default=Path(HISTORY_DB_FILENAME), description="SQLite history database")
    recent_limit: int = Field(default=HISTORY_RECENT_LIMIT, description="Rows shown by default")


class LoggingConfig(BaseSettings):
    """Configuration for logging behavior"""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    level: str = Field(default="INFO", description="Default logging level")
    file_level: str = Field(default="INFO", description="File logging level")
    console_level: str = Field(default="WARNING", description="Console logging level")
    log_file: str = Field(default="anime_organizer.log", description="Log file path")

    @field_validator('level', 'file_level', 'console_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log level is one of the allowed values"""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class AnimeOrganizerConfig(BaseSettings):
    """
    Main configuration class for Anime Organizer.

    Single source of truth for all settings. Loads from environment
    variables and .env files; nested sections can be overridden with
    double-underscore names (e.g. ``AI__MODEL``).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    target_path: Optional[Path] = Field(default=None, description="Folder whose sub-folders are organized")

    ai: ProviderConfig = Field(default_factory=ProviderConfig, description="Metadata provider configuration")
    subshare: SubShareConfig = Field(default_factory=SubShareConfig, description="SubShare database configuration")
    verification: VerificationConfig = Field(default_factory=VerificationConfig, description="AnimeDB verification")
    naming: NamingConfig = Field(default_factory=NamingConfig, description="Naming template configuration")
    scan: ScanConfig = Field(default_factory=ScanConfig, description="Scan configuration")
    history: HistoryConfig = Field(default_factory=HistoryConfig, description="Rename history configuration")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    dry_run: bool = Field(default=False, description="Plan renames without touching the filesystem")


# Global configuration instance
_config_instance: Optional[AnimeOrganizerConfig] = None


def setup_config(
    target_path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
    **kwargs
) -> AnimeOrganizerConfig:
    """
    Set up the global configuration.

    Args:
        target_path: Folder to organize
        env_file: Path to .env file
        **kwargs: Additional configuration overrides

    Returns:
        AnimeOrganizerConfig instance
    """
    global _config_instance

    config_kwargs = {}
    if target_path:
        config_kwargs["target_path"] = Path(target_path)

    if env_file:
        config_kwargs["_env_file"] = str(env_file)

    config_kwargs.update(kwargs)

    _config_instance = AnimeOrganizerConfig(**config_kwargs)
    return _config_instance


def get_config() -> AnimeOrganizerConfig:
    """Get the global configuration instance, creating it from the environment on first use."""
    global _config_instance
    if _config_instance is None:
        _config_instance = AnimeOrganizerConfig()
    return _config_instance


def reload_config() -> AnimeOrganizerConfig:
    """Reload configuration from environment and .env files."""
    global _config_instance
    _config_instance = AnimeOrganizerConfig()
    return _config_instance


def get_target_path() -> Optional[Path]:
    """Get the configured target folder."""
    return get_config().target_path


def get_provider_config() -> ProviderConfig:
    """Get metadata provider configuration."""
    return get_config().ai


def get_subshare_config() -> SubShareConfig:
    """Get SubShare database configuration."""
    return get_config().subshare


def get_verification_config() -> VerificationConfig:
    """Get AnimeDB verification configuration."""
    return get_config().verification


def get_naming_config() -> NamingConfig:
    """Get naming configuration."""
    return get_config().naming


def get_scan_config() -> ScanConfig:
    """Get scan configuration."""
    return get_config().scan


def get_history_config() -> HistoryConfig:
    """Get rename history configuration."""
    return get_config().history


def get_logging_config() -> LoggingConfig:
    """Get logging configuration."""
    return get_config().logging


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
