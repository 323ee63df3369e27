"""
Centralized configuration with environment variable overrides.

All restaurant-specific values, session timings, and collaborator settings
are configurable here. Nothing is hardcoded in conversation or tool logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from tablebot.logging_context import install_conversation_filter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class RestaurantConfig:
    """Restaurant profile shared with the reply generator."""

    name: str = os.getenv("RESTAURANT_NAME", "Trattoria Demo")
    address: str = os.getenv("RESTAURANT_ADDRESS", "Via Roma 1, Milano")
    opening: str = os.getenv("RESTAURANT_OPENING", "12-15 e 19-23")
    menu_url: str = os.getenv("RESTAURANT_MENU_URL", "bit.ly/menu-demo")
    parking: str = os.getenv("RESTAURANT_PARKING", "Disponibile vicino")
    default_tenant: str = os.getenv("DEFAULT_TENANT", "demo")


@dataclass(frozen=True)
class SessionConfig:
    """Lifetimes and bounds of the per-customer conversation state."""

    pending_ttl_ms: int = _safe_int("SESSION_PENDING_TTL_MS", "600000")
    history_limit: int = _safe_int("SESSION_HISTORY_LIMIT", "12")
    reply_dedupe_ms: int = _safe_int("REPLY_DEDUPE_MS", "750")


@dataclass(frozen=True)
class LocaleConfig:
    """Timezone and language the restaurant operates in."""

    timezone: str = os.getenv("TIMEZONE", "Europe/Rome")
    locale: str = os.getenv("LOCALE", "it-IT")


@dataclass(frozen=True)
class ModelConfig:
    """LLM settings for intent parsing and reply generation."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.0")
    reply_temperature: float = _safe_float("REPLY_TEMPERATURE", "0.5")
    llm_max_tokens: int = _safe_int("LLM_MAX_TOKENS", "150")
    api_key: str = os.getenv("OPENAI_API_KEY", "")
    base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    timeout_sec: float = _safe_float("LLM_TIMEOUT_SEC", "15.0")
    max_attempts: int = _safe_int("LLM_MAX_ATTEMPTS", "3")


@dataclass(frozen=True)
class MessagingConfig:
    """WhatsApp Cloud API defaults, used when a tenant has no own credentials."""

    phone_number_id: str = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    token: str = os.getenv("WHATSAPP_TOKEN", "")
    graph_base: str = os.getenv("WHATSAPP_GRAPH_BASE", "https://graph.facebook.com/v20.0")
    max_attempts: int = _safe_int("WHATSAPP_MAX_ATTEMPTS", "3")
    timeout_sec: float = _safe_float("WHATSAPP_TIMEOUT_SEC", "10.0")


@dataclass(frozen=True)
class DatabaseConfig:
    """Relational store holding reservations and processed message ids."""

    url: str = os.getenv("DATABASE_URL", "sqlite:///./tablebot.db")
    echo: bool = os.getenv("DATABASE_ECHO", "0") == "1"


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    restaurant: RestaurantConfig = field(default_factory=RestaurantConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    locale: LocaleConfig = field(default_factory=LocaleConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    messaging: MessagingConfig = field(default_factory=MessagingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.session.pending_ttl_ms < 1000:
        raise ValueError(
            f"SESSION_PENDING_TTL_MS must be >= 1000, got {config.session.pending_ttl_ms}"
        )
    if config.session.history_limit < 1:
        raise ValueError(
            f"SESSION_HISTORY_LIMIT must be >= 1, got {config.session.history_limit}"
        )
    if config.session.reply_dedupe_ms < 0:
        raise ValueError(
            f"REPLY_DEDUPE_MS must be >= 0, got {config.session.reply_dedupe_ms}"
        )
    for name, value in [
        ("LLM_TEMPERATURE", config.model.llm_temperature),
        ("REPLY_TEMPERATURE", config.model.reply_temperature),
    ]:
        if not 0.0 <= value <= 2.0:
            raise ValueError(f"{name} must be between 0.0 and 2.0, got {value}")
    if config.model.llm_max_tokens < 1:
        raise ValueError(
            f"LLM_MAX_TOKENS must be >= 1, got {config.model.llm_max_tokens}"
        )

    for attempts_name, attempts in [
        ("LLM_MAX_ATTEMPTS", config.model.max_attempts),
        ("WHATSAPP_MAX_ATTEMPTS", config.messaging.max_attempts),
    ]:
        if attempts < 1:
            raise ValueError(f"{attempts_name} must be >= 1, got {attempts}")

    for timeout_name, timeout in [
        ("LLM_TIMEOUT_SEC", config.model.timeout_sec),
        ("WHATSAPP_TIMEOUT_SEC", config.messaging.timeout_sec),
    ]:
        if timeout <= 0:
            raise ValueError(f"{timeout_name} must be > 0, got {timeout}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s [%(conversation_id)s]: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_conversation_filter()
    logger.info("Configuration loaded for '%s'", config.restaurant.name)
    return config


# Singleton instance
settings = load_config()
