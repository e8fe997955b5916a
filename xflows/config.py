# xflows/config.py
import os
from dataclasses import dataclass
from typing import Final, TypedDict

from xflows.models import ConfigValidationError

# =============================================================================
# Environment Variable Names
# =============================================================================

ENV_VAR_PREFIX: Final[str] = "XFLOWS_"

# =============================================================================
# Default Configuration Values
# =============================================================================

DEFAULT_HTTP_TIMEOUT_MS: Final[int] = 10_000
DEFAULT_RETRY_MAX: Final[int] = 0
DEFAULT_BACKOFF_MS: Final[int] = 1000
DEFAULT_BACKOFF_MULTIPLIER: Final[float] = 2.0
DEFAULT_LOG_LEVEL: Final[str] = "WARNING"

TRUTHY_VALUES: Final[tuple[str, ...]] = ("true", "1", "yes", "on")
FALSY_VALUES: Final[tuple[str, ...]] = ("false", "0", "no", "off")

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class RuntimeConfigDict(TypedDict, total=False):
    """TypedDict for runtime configuration dictionary"""
    http_base_url: str | None
    http_timeout_ms: int
    default_retry_max: int
    default_backoff_ms: int
    default_backoff_multiplier: float
    log_level: str
    strict_templates: bool


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in TRUTHY_VALUES:
        return True
    if value in FALSY_VALUES:
        return False
    raise ConfigValidationError(f"{name} must be a boolean, got '{raw}'")


def _parse_number(name: str, raw: str, kind: type[int] | type[float]) -> int | float:
    try:
        return kind(raw.strip())
    except ValueError as e:
        raise ConfigValidationError(f"{name} must be a number, got '{raw}'") from e


@dataclass(frozen=True)
class RuntimeConfig:
    """Configuration shared by the compiler, actors and CLI"""

    http_base_url: str | None = None
    http_timeout_ms: int = DEFAULT_HTTP_TIMEOUT_MS

    # Applied to invokes that declare no retry block
    default_retry_max: int = DEFAULT_RETRY_MAX
    default_backoff_ms: int = DEFAULT_BACKOFF_MS
    default_backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    log_level: str = DEFAULT_LOG_LEVEL
    strict_templates: bool = False

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.http_timeout_ms <= 0:
            raise ConfigValidationError("http_timeout_ms must be positive")
        if self.default_retry_max < 0:
            raise ConfigValidationError("default_retry_max must be non-negative")
        if self.default_backoff_ms < 0:
            raise ConfigValidationError("default_backoff_ms must be non-negative")
        if self.default_backoff_multiplier <= 0:
            raise ConfigValidationError("default_backoff_multiplier must be positive")

        level = self.log_level.upper()
        if level not in LOG_LEVELS:
            raise ConfigValidationError(f"Invalid log_level: {self.log_level}")
        object.__setattr__(self, "log_level", level)

        if self.http_base_url is not None:
            object.__setattr__(self, "http_base_url", self.http_base_url.rstrip("/") or None)

    @classmethod
    def from_env(cls, env_prefix: str = ENV_VAR_PREFIX) -> "RuntimeConfig":
        """Create configuration from environment variables"""

        def env(name: str) -> str | None:
            return os.environ.get(f"{env_prefix}{name}")

        values: RuntimeConfigDict = {}
        if (raw := env("HTTP_BASE_URL")) is not None:
            values["http_base_url"] = raw or None
        if (raw := env("HTTP_TIMEOUT_MS")) is not None:
            values["http_timeout_ms"] = int(_parse_number(f"{env_prefix}HTTP_TIMEOUT_MS", raw, int))
        if (raw := env("DEFAULT_RETRY_MAX")) is not None:
            values["default_retry_max"] = int(_parse_number(f"{env_prefix}DEFAULT_RETRY_MAX", raw, int))
        if (raw := env("DEFAULT_BACKOFF_MS")) is not None:
            values["default_backoff_ms"] = int(_parse_number(f"{env_prefix}DEFAULT_BACKOFF_MS", raw, int))
        if (raw := env("DEFAULT_BACKOFF_MULTIPLIER")) is not None:
            values["default_backoff_multiplier"] = float(
                _parse_number(f"{env_prefix}DEFAULT_BACKOFF_MULTIPLIER", raw, float)
            )
        if (raw := env("LOG_LEVEL")) is not None:
            values["log_level"] = raw
        if (raw := env("STRICT_TEMPLATES")) is not None:
            values["strict_templates"] = _parse_bool(f"{env_prefix}STRICT_TEMPLATES", raw)

        return cls.from_dict(values)

    @classmethod
    def from_dict(cls, config_dict: RuntimeConfigDict) -> "RuntimeConfig":
        """Create configuration from typed dictionary"""
        unknown = set(config_dict) - set(RuntimeConfigDict.__annotations__)
        if unknown:
            raise ConfigValidationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        return cls(
            http_base_url=config_dict.get("http_base_url"),
            http_timeout_ms=config_dict.get("http_timeout_ms", DEFAULT_HTTP_TIMEOUT_MS),
            default_retry_max=config_dict.get("default_retry_max", DEFAULT_RETRY_MAX),
            default_backoff_ms=config_dict.get("default_backoff_ms", DEFAULT_BACKOFF_MS),
            default_backoff_multiplier=config_dict.get("default_backoff_multiplier", DEFAULT_BACKOFF_MULTIPLIER),
            log_level=config_dict.get("log_level", DEFAULT_LOG_LEVEL),
            strict_templates=config_dict.get("strict_templates", False),
        )

    def to_dict(self) -> RuntimeConfigDict:
        """Convert configuration to typed dictionary"""
        return RuntimeConfigDict(
            http_base_url=self.http_base_url,
            http_timeout_ms=self.http_timeout_ms,
            default_retry_max=self.default_retry_max,
            default_backoff_ms=self.default_backoff_ms,
            default_backoff_multiplier=self.default_backoff_multiplier,
            log_level=self.log_level,
            strict_templates=self.strict_templates,
        )


# Environment variable reference:
# XFLOWS_HTTP_BASE_URL - Base url joined to relative HTTP actor urls (default: unset)
# XFLOWS_HTTP_TIMEOUT_MS - Transport timeout for HTTP actors (default: 10000)
# XFLOWS_DEFAULT_RETRY_MAX - Retries for invokes without a retry block (default: 0)
# XFLOWS_DEFAULT_BACKOFF_MS - Initial retry delay (default: 1000)
# XFLOWS_DEFAULT_BACKOFF_MULTIPLIER - Backoff growth factor (default: 2.0)
# XFLOWS_LOG_LEVEL - Log level used by the CLI (default: WARNING)
# XFLOWS_STRICT_TEMPLATES - Treat missing template variables as errors: true|false (default: false)
