"""
Centralized configuration with environment variable overrides.

Clinic hours policy, cache sizing, model settings and rate-limit budgets
are configurable here. Nothing is hardcoded in the flow or service logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from vetchat.logging_context import LOG_FORMAT, install_session_filter

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


def _csv(env_var: str, default: str) -> tuple[str, ...]:
    """Split a comma separated env var into a tuple of trimmed values."""
    raw = os.getenv(env_var, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class ClinicConfig:
    """Clinic identity and scheduling policy."""

    name: str = os.getenv("CLINIC_NAME", "Happy Paws Veterinary Clinic")
    phone: str = os.getenv("CLINIC_PHONE", "(555) 010-2030")
    veterinarians: tuple[str, ...] = _csv(
        "VETERINARIANS", "Dr. Smith,Dr. Johnson,Dr. Williams"
    )
    slot_duration_minutes: int = _safe_int("SLOT_DURATION_MINUTES", "30")
    buffer_minutes: int = _safe_int("BUFFER_MINUTES", "10")
    max_daily_appointments: int = _safe_int("MAX_DAILY_APPOINTMENTS", "20")
    reservation_hold_minutes: int = _safe_int("RESERVATION_HOLD_MINUTES", "5")
    booking_retention_hours: int = _safe_int("BOOKING_RETENTION_HOURS", "24")
    next_day_opening_hour: int = _safe_int("NEXT_DAY_OPENING_HOUR", "9")
    max_months_ahead: int = _safe_int("MAX_MONTHS_AHEAD", "6")
    suggestion_count: int = _safe_int("SUGGESTION_COUNT", "3")
    slot_cleanup_interval_sec: float = _safe_float("SLOT_CLEANUP_INTERVAL", "3600")


@dataclass(frozen=True)
class ModelConfig:
    """Upstream text generation settings."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.3")
    max_output_tokens: int = _safe_int("LLM_MAX_OUTPUT_TOKENS", "400")
    request_timeout_sec: float = _safe_float("LLM_TIMEOUT", "20.0")
    history_turns: int = _safe_int("LLM_HISTORY_TURNS", "10")


@dataclass(frozen=True)
class CacheConfig:
    """Response cache sizing, expiry and persistence."""

    hot_max_size: int = _safe_int("CACHE_HOT_MAX_SIZE", "100")
    warm_max_size: int = _safe_int("CACHE_WARM_MAX_SIZE", "500")
    default_ttl_sec: float = _safe_float("CACHE_TTL", "3600")
    static_ttl_sec: float = _safe_float("CACHE_STATIC_TTL", "86400")
    topic_ttl_sec: float = _safe_float("CACHE_TOPIC_TTL", "900")
    promotion_threshold: int = _safe_int("CACHE_PROMOTION_THRESHOLD", "5")
    similarity_threshold: float = _safe_float("CACHE_SIMILARITY_THRESHOLD", "0.8")
    fuzzy_max_length: int = _safe_int("CACHE_FUZZY_MAX_LENGTH", "500")
    sweep_interval_sec: float = _safe_float("CACHE_SWEEP_INTERVAL", "60")
    persist_interval_sec: float = _safe_float("CACHE_PERSIST_INTERVAL", "300")
    snapshot_path: str = os.getenv("CACHE_SNAPSHOT_PATH", "cache/response_cache.json")


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-route request budgets and abuse screening."""

    chat_per_minute: int = _safe_int("RATE_LIMIT_CHAT", "30")
    chat_block_sec: float = _safe_float("RATE_LIMIT_CHAT_BLOCK", "300")
    appointments_per_minute: int = _safe_int("RATE_LIMIT_APPOINTMENTS", "5")
    appointments_block_sec: float = _safe_float("RATE_LIMIT_APPOINTMENTS_BLOCK", "600")
    health_per_minute: int = _safe_int("RATE_LIMIT_HEALTH", "60")
    health_block_sec: float = _safe_float("RATE_LIMIT_HEALTH_BLOCK", "60")
    default_per_minute: int = _safe_int("RATE_LIMIT_DEFAULT", "20")
    default_block_sec: float = _safe_float("RATE_LIMIT_DEFAULT_BLOCK", "300")
    suspicious_block_sec: float = _safe_float("RATE_LIMIT_SUSPICIOUS_BLOCK", "3600")
    max_message_length: int = _safe_int("MAX_MESSAGE_LENGTH", "5000")
    bucket_idle_sec: float = _safe_float("RATE_LIMIT_BUCKET_IDLE", "3600")


@dataclass(frozen=True)
class ServerConfig:
    """HTTP server binding."""

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = _safe_int("PORT", "5000")
    cors_origins: tuple[str, ...] = _csv("CORS_ORIGINS", "*")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    clinic: ClinicConfig = field(default_factory=ClinicConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.model.request_timeout_sec <= 0:
        raise ValueError(
            f"LLM_TIMEOUT must be > 0, got {config.model.request_timeout_sec}"
        )
    if not config.clinic.veterinarians:
        raise ValueError("VETERINARIANS must name at least one veterinarian")

    for name, value in [
        ("SLOT_DURATION_MINUTES", config.clinic.slot_duration_minutes),
        ("MAX_DAILY_APPOINTMENTS", config.clinic.max_daily_appointments),
        ("RESERVATION_HOLD_MINUTES", config.clinic.reservation_hold_minutes),
        ("MAX_MONTHS_AHEAD", config.clinic.max_months_ahead),
        ("CACHE_HOT_MAX_SIZE", config.cache.hot_max_size),
        ("CACHE_WARM_MAX_SIZE", config.cache.warm_max_size),
        ("CACHE_FUZZY_MAX_LENGTH", config.cache.fuzzy_max_length),
        ("RATE_LIMIT_CHAT", config.rate_limits.chat_per_minute),
        ("RATE_LIMIT_APPOINTMENTS", config.rate_limits.appointments_per_minute),
        ("RATE_LIMIT_HEALTH", config.rate_limits.health_per_minute),
        ("RATE_LIMIT_DEFAULT", config.rate_limits.default_per_minute),
    ]:
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")

    if 60 % config.clinic.slot_duration_minutes != 0:
        raise ValueError(
            "SLOT_DURATION_MINUTES must divide an hour evenly, "
            f"got {config.clinic.slot_duration_minutes}"
        )
    if config.clinic.buffer_minutes < 0:
        raise ValueError(
            f"BUFFER_MINUTES must be >= 0, got {config.clinic.buffer_minutes}"
        )
    if not 0 <= config.clinic.next_day_opening_hour <= 23:
        raise ValueError(
            "NEXT_DAY_OPENING_HOUR must be between 0 and 23, "
            f"got {config.clinic.next_day_opening_hour}"
        )
    if not 0.0 < config.cache.similarity_threshold <= 1.0:
        raise ValueError(
            "CACHE_SIMILARITY_THRESHOLD must be between 0.0 and 1.0, "
            f"got {config.cache.similarity_threshold}"
        )
    if min(
        config.cache.default_ttl_sec, config.cache.static_ttl_sec, config.cache.topic_ttl_sec
    ) <= 0:
        raise ValueError("CACHE_TTL, CACHE_STATIC_TTL and CACHE_TOPIC_TTL must be > 0")
    if config.rate_limits.max_message_length < 1:
        raise ValueError(
            f"MAX_MESSAGE_LENGTH must be >= 1, got {config.rate_limits.max_message_length}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_session_filter()
    logger.info("Configuration loaded for '%s'", config.clinic.name)
    return config


# Singleton instance
settings = load_config()
