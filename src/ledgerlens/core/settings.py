import os
from collections.abc import Callable
from typing import TypeVar

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

from ledgerlens.logger import get_logger

logger = get_logger(__name__)

N = TypeVar("N", int, float)

_ENV_PREFIX = "LEDGERLENS_"


def _dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        path = os.path.join(config_dir, ".env")
        if os.path.exists(path):
            return path
    return find_dotenv(usecwd=True) or None


def load_environment() -> None:
    """Load a .env file into os.environ without overriding existing variables."""
    path = _dotenv_path()
    if path:
        load_dotenv(dotenv_path=path, override=False)


def _read_env_number(name: str, default: N, parse: Callable[[str], N], min_value: N | None) -> N:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = parse(raw)
    except ValueError:
        logger.warning("[ENV] %s='%s' is not a number, using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("[ENV] %s=%s is below %s, using default %s.", name, value, min_value, default)
        return default
    return value


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    return _read_env_number(name, default, int, min_value)


def get_env_float(name: str, default: float, min_value: float | None = None) -> float:
    return _read_env_number(name, default, float, min_value)


class EngineConfig(BaseModel):
    """Tunables shared by the categorization and insight paths."""

    ai_timeout_ms: int = Field(default=30_000, ge=1)
    ai_max_retries: int = Field(default=3, ge=0)
    cache_ttl_ms: int = Field(default=300_000, ge=0)
    cache_sweep_interval_ms: int = Field(default=600_000, ge=1)
    max_transactions_per_insight_call: int = Field(default=1000, ge=1)
    anomaly_sigma_threshold: float = Field(default=2.0, gt=0)
    major_category_percent_threshold: float = Field(default=30.0, ge=0, le=100)
    recent_context_limit: int = Field(default=10, ge=0)
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    ai_temperature: float = Field(default=0.1, ge=0, le=2)
    ai_max_tokens: int = Field(default=1000, ge=1)
    insights_rate_limit: int = Field(default=5, ge=1)
    insights_rate_window_ms: int = Field(default=60_000, ge=1)

    @property
    def ai_timeout_seconds(self) -> float:
        return self.ai_timeout_ms / 1000.0


def load_engine_config() -> EngineConfig:
    defaults = EngineConfig()
    return EngineConfig(
        ai_timeout_ms=get_env_int(f"{_ENV_PREFIX}AI_TIMEOUT_MS", defaults.ai_timeout_ms, min_value=1),
        ai_max_retries=get_env_int(f"{_ENV_PREFIX}AI_MAX_RETRIES", defaults.ai_max_retries, min_value=0),
        cache_ttl_ms=get_env_int(f"{_ENV_PREFIX}CACHE_TTL_MS", defaults.cache_ttl_ms, min_value=0),
        cache_sweep_interval_ms=get_env_int(
            f"{_ENV_PREFIX}CACHE_SWEEP_INTERVAL_MS",
            defaults.cache_sweep_interval_ms,
            min_value=1,
        ),
        max_transactions_per_insight_call=get_env_int(
            f"{_ENV_PREFIX}MAX_TRANSACTIONS_PER_INSIGHT_CALL",
            defaults.max_transactions_per_insight_call,
            min_value=1,
        ),
        anomaly_sigma_threshold=get_env_float(
            f"{_ENV_PREFIX}ANOMALY_SIGMA",
            defaults.anomaly_sigma_threshold,
            min_value=0.1,
        ),
        major_category_percent_threshold=get_env_float(
            f"{_ENV_PREFIX}MAJOR_CATEGORY_PERCENT",
            defaults.major_category_percent_threshold,
            min_value=0.0,
        ),
        recent_context_limit=get_env_int(
            f"{_ENV_PREFIX}RECENT_CONTEXT_LIMIT",
            defaults.recent_context_limit,
            min_value=0,
        ),
        insights_rate_limit=get_env_int(
            f"{_ENV_PREFIX}INSIGHTS_RATE_LIMIT",
            defaults.insights_rate_limit,
            min_value=1,
        ),
        insights_rate_window_ms=get_env_int(
            f"{_ENV_PREFIX}INSIGHTS_RATE_WINDOW_MS",
            defaults.insights_rate_window_ms,
            min_value=1,
        ),
        openai_model=os.getenv("OPENAI_MODEL") or defaults.openai_model,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
    )


_SECRET_NAME_MARKERS = ("KEY", "TOKEN", "SECRET", "PASS", "AUTH", "BEARER", "PRIVATE")
_SECRET_VALUE_PREFIXES = ("sk-", "rk-", "Bearer ", "bearer ")

_LOGGED_ENV_KEYS = (
    "LOG_LEVEL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    *(
        f"{_ENV_PREFIX}{suffix}"
        for suffix in (
            "AI_TIMEOUT_MS",
            "AI_MAX_RETRIES",
            "CACHE_TTL_MS",
            "CACHE_SWEEP_INTERVAL_MS",
            "MAX_TRANSACTIONS_PER_INSIGHT_CALL",
            "ANOMALY_SIGMA",
            "MAJOR_CATEGORY_PERCENT",
            "RECENT_CONTEXT_LIMIT",
            "INSIGHTS_RATE_LIMIT",
            "INSIGHTS_RATE_WINDOW_MS",
        )
    ),
)


def mask_env_value(name: str, value: str) -> str:
    """Escape line breaks and hide everything but the ends of secret-looking values."""
    shown = value.replace("\r", "\\r").replace("\n", "\\n")
    secret = any(marker in name.upper() for marker in _SECRET_NAME_MARKERS) or shown.startswith(
        _SECRET_VALUE_PREFIXES
    )
    if not secret:
        return shown
    return "****" if len(shown) <= 4 else f"{shown[:2]}...{shown[-2:]}"


def log_environment() -> None:
    logger.info("[ENV] Engine environment (masked where needed):")
    for name in _LOGGED_ENV_KEYS:
        raw = os.getenv(name)
        logger.info("[ENV] %s=%s", name, "<unset>" if raw is None else mask_env_value(name, raw))


def ai_enabled() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


load_environment()
