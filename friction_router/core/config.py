"""
Configuration management via environment variables.

This module loads configuration from .env file using python-dotenv.
All configuration values are accessed through the Settings class.

AI_ENABLED is the kill switch: flipping it pauses every model call without
a redeploy.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import FrozenSet, Optional

from dotenv import load_dotenv


# Load .env file from project root
# This must happen before accessing os.environ
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    frozen=True makes the dataclass immutable, preventing accidental
    modification of settings at runtime.

    Credentials default to None: a missing key only fails the request
    that needs it (ConfigurationError), never application startup.
    """
    # Application settings
    app_name: str = "FrictionRouter"
    app_env: str = "development"
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    ai_enabled: bool = False

    # Key-value store
    store_url: str = "sqlite:///./friction_kv.db"

    # Identity
    google_client_id: Optional[str] = None
    admin_email: Optional[str] = None
    admin_only_models: FrozenSet[str] = field(default_factory=frozenset)
    identity_cache_ttl_seconds: int = 3600
    identity_cache_size: int = 1024
    identity_cache_backend: str = "memory"

    # Provider credentials
    gemini_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    xai_api_key: Optional[str] = None
    perplexity_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    youtube_api_key: Optional[str] = None

    # Provider models
    gemini_model: str = "gemini-2.0-flash"
    claude_model: str = "claude-sonnet-4-20250514"
    gpt_model: str = "gpt-4o"
    grok_model: str = "grok-3"
    perplexity_model: str = "sonar"
    llama_model: str = "llama-3.3-70b-versatile"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2048
    provider_timeout_seconds: float = 60.0

    # Request limits
    max_body_bytes: int = 50_000
    max_message_chars: int = 8000
    backup_max_bytes: int = 1_000_000
    appointment_max_bytes: int = 2_000_000

    # Admission control
    burst_window_seconds: int = 10
    user_burst_limit: int = 5
    ip_burst_limit: int = 10
    daily_limit: int = 200
    reset_timezone: str = "Australia/Sydney"
    store_retry_after_seconds: int = 5

    # Retention
    analytics_retention_days: int = 30
    user_retention_days: int = 90
    backup_retention_days: int = 365
    analytics_salt: str = "friction"

    # HTTP surface
    cors_origins: tuple = ("*",)
    trusted_proxy_ips: tuple = ()
    enable_audit_logging: bool = True

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env.lower() == "development"

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """
    Get environment variable with optional default.

    Empty strings are treated as unset so that `KEY=` lines in .env
    behave like a missing key.
    """
    value = os.environ.get(key)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _get_bool(key: str, default: str) -> bool:
    return _get_env(key, default).lower() == "true"


def _get_list(key: str, default: str = "") -> tuple:
    raw = _get_env(key, default) or ""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance with all configuration values
    """
    return Settings(
        # Application
        app_name=_get_env("APP_NAME", "FrictionRouter"),
        app_env=_get_env("APP_ENV", "development"),
        log_level=_get_env("LOG_LEVEL", "INFO"),
        log_dir=_get_env("LOG_DIR"),
        ai_enabled=_get_bool("AI_ENABLED", "false"),

        # Store
        store_url=_get_env("STORE_URL", "sqlite:///./friction_kv.db"),

        # Identity
        google_client_id=_get_env("GOOGLE_CLIENT_ID"),
        admin_email=_get_env("ADMIN_EMAIL"),
        admin_only_models=frozenset(m.lower() for m in _get_list("ADMIN_ONLY_MODELS")),
        identity_cache_ttl_seconds=int(_get_env("IDENTITY_CACHE_TTL_SECONDS", "3600")),
        identity_cache_size=int(_get_env("IDENTITY_CACHE_SIZE", "1024")),
        identity_cache_backend=_get_env("IDENTITY_CACHE_BACKEND", "memory").lower(),

        # Provider credentials
        gemini_api_key=_get_env("GEMINI_API_KEY"),
        anthropic_api_key=_get_env("ANTHROPIC_API_KEY"),
        openai_api_key=_get_env("OPENAI_API_KEY"),
        xai_api_key=_get_env("XAI_API_KEY"),
        perplexity_api_key=_get_env("PERPLEXITY_API_KEY"),
        groq_api_key=_get_env("GROQ_API_KEY"),
        youtube_api_key=_get_env("YOUTUBE_API_KEY"),

        # Provider models
        gemini_model=_get_env("GEMINI_MODEL", "gemini-2.0-flash"),
        claude_model=_get_env("CLAUDE_MODEL", "claude-sonnet-4-20250514"),
        gpt_model=_get_env("GPT_MODEL", "gpt-4o"),
        grok_model=_get_env("GROK_MODEL", "grok-3"),
        perplexity_model=_get_env("PERPLEXITY_MODEL", "sonar"),
        llama_model=_get_env("LLAMA_MODEL", "llama-3.3-70b-versatile"),
        llm_temperature=float(_get_env("LLM_TEMPERATURE", "0.7")),
        llm_max_tokens=int(_get_env("LLM_MAX_TOKENS", "2048")),
        provider_timeout_seconds=float(_get_env("PROVIDER_TIMEOUT_SECONDS", "60")),

        # Request limits
        max_body_bytes=int(_get_env("MAX_BODY_BYTES", "50000")),
        max_message_chars=int(_get_env("MAX_MESSAGE_CHARS", "8000")),
        backup_max_bytes=int(_get_env("BACKUP_MAX_BYTES", "1000000")),
        appointment_max_bytes=int(_get_env("APPOINTMENT_MAX_BYTES", "2000000")),

        # Admission control
        burst_window_seconds=int(_get_env("BURST_WINDOW_SECONDS", "10")),
        user_burst_limit=int(_get_env("USER_BURST_LIMIT", "5")),
        ip_burst_limit=int(_get_env("IP_BURST_LIMIT", "10")),
        daily_limit=int(_get_env("DAILY_LIMIT", "200")),
        reset_timezone=_get_env("RESET_TIMEZONE", "Australia/Sydney"),
        store_retry_after_seconds=int(_get_env("STORE_RETRY_AFTER_SECONDS", "5")),

        # Retention
        analytics_retention_days=int(_get_env("ANALYTICS_RETENTION_DAYS", "30")),
        user_retention_days=int(_get_env("USER_RETENTION_DAYS", "90")),
        backup_retention_days=int(_get_env("BACKUP_RETENTION_DAYS", "365")),
        analytics_salt=_get_env("ANALYTICS_SALT", "friction"),

        # HTTP surface
        cors_origins=_get_list("CORS_ORIGINS", "*"),
        trusted_proxy_ips=_get_list("TRUSTED_PROXY_IPS"),
        enable_audit_logging=_get_bool("ENABLE_AUDIT_LOGGING", "true"),
    )
