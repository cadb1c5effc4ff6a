"""
Global configuration for the conduit SDK.

Every client reads its defaults from the `CONDUIT` singleton. Applications that
are happy with the defaults never touch it; others call `CONDUIT.configure()`
once at startup or export `CONDUIT_<SECTION>_<FIELD>` variables.

A value is taken from the first of:
1. Arguments passed to HttpClient / ClientBuilder
2. Values set via CONDUIT.configure()
3. Environment variables (CONDUIT_*) - when allow_env_override=True
4. Hardcoded defaults (in dataclass fields)

Example:
    >>> from conduit import CONDUIT
    >>>
    >>> # Loaded at import time
    >>> timeout = CONDUIT.config.http.timeout
    >>>
    >>> # Turn on caching for every client built from config
    >>> CONDUIT.configure(
    ...     retry={"max_attempts": 5},
    ...     cache={"enabled": True, "default_ttl": 60},
    ... )
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

from conduit._retry import DEFAULT_RETRYABLE_STATUS_CODES, parse_status_codes

if TYPE_CHECKING:
    from conduit._retry import RetryPolicy

_SECTIONS = ("http", "retry", "rate_limit", "cache", "cookies")


# =============================================================================
# Exceptions
# =============================================================================


class ConfigEnvVarError(ValueError):
    """A `CONDUIT_*` variable is set but cannot be converted to the field type."""

    def __init__(
        self,
        env_var: str,
        value: str,
        expected_type: str,
        cause: Exception | None = None,
    ):
        self.env_var = env_var
        self.value = value
        self.expected_type = expected_type
        super().__init__(f"Invalid value for {env_var}: '{value}' (expected {expected_type})")
        self.__cause__ = cause


class ConfigValidationError(ValueError):
    """A section field holds a value outside its allowed range."""

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        section: str | None = None,
    ):
        self.field = field
        self.value = value
        self.section = section
        prefix = f"[{section}] " if section else ""
        super().__init__(f"{prefix}Invalid value for '{field}': {value!r}. {message}")


# =============================================================================
# Environment Variables
# =============================================================================


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_methods(value: str) -> tuple[str, ...]:
    methods = tuple(part.strip().upper() for part in value.split(",") if part.strip())
    if not methods:
        raise ValueError("empty method list")
    return methods


_CONVERTERS_BY_TYPE_NAME: dict[str, Callable[[str], Any]] = {
    "int": int,
    "float": float,
    "bool": _parse_bool,
}


class EnvVars:
    """
    Typed access to environment variables.

    Example:
        >>> EnvVars.get("CONDUIT_HTTP_TIMEOUT", type_hint=float)
        30.0
        >>> EnvVars.get("CONDUIT_NOT_SET") is None
        True
    """

    @staticmethod
    def get(
        var_name: str,
        type_hint: Any = str,
        converter: Callable[[str], Any] | None = None,
    ) -> Any:
        """
        Return `var_name` converted by `converter`, or by a converter picked
        from `type_hint` when none is given. Unset and empty variables yield None.

        Raises:
            ConfigEnvVarError: If conversion fails.
        """
        raw = os.environ.get(var_name, "")
        if raw == "":
            return None

        # Annotations arrive as strings under `from __future__ import annotations`
        type_name = getattr(type_hint, "__name__", str(type_hint))
        convert = converter or _CONVERTERS_BY_TYPE_NAME.get(type_name, str)
        try:
            return convert(raw)
        except (ValueError, TypeError) as e:
            raise ConfigEnvVarError(var_name, raw, type_name, cause=e) from e


# =============================================================================
# Base Class
# =============================================================================


@dataclass(frozen=True)
class OverridableConfig:
    """
    Frozen config section that can be copied with some fields replaced.

    Field metadata may declare an `env` variable name and a `converter`.
    Misspelled field names in overrides raise instead of being dropped.

    Example:
        >>> config = HttpConfig()
        >>> custom = config.with_overrides({"timeout": 60})
        >>> custom.timeout
        60
    """

    def with_overrides(self, overrides: dict[str, Any]) -> Self:
        """
        Copy with `overrides` applied. Keys mapped to None keep the current value.

        Raises:
            ValueError: On a key that is not a field of this section.
        """
        if not overrides:
            return self

        known = [f.name for f in fields(self)]
        unknown = sorted(name for name in overrides if name not in known)
        if unknown:
            raise ValueError(f"Unknown {type(self).__name__} fields: {unknown}. Known fields: {known}")

        changes = {name: value for name, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    def with_env_vars(self) -> Self:
        """
        Copy with every field whose `env` variable is set taken from the environment.

        Raises:
            ConfigEnvVarError: If a variable cannot be converted.
        """
        from_env = {
            f.name: EnvVars.get(f.metadata["env"], f.type, f.metadata.get("converter"))
            for f in fields(self)
            if "env" in f.metadata
        }
        return self.with_overrides(from_env)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass(frozen=True)
class SdkConfig:
    """Installed package metadata, shown by `explain()` but never overridden."""

    version: str

    @classmethod
    def detect(cls) -> SdkConfig:
        from conduit import __version__

        return cls(version=__version__)


@dataclass(frozen=True)
class HttpConfig(OverridableConfig):
    """
    Transport defaults for HttpClient.

    Attributes:
        timeout: Read timeout in seconds.
            Env var: CONDUIT_HTTP_TIMEOUT

        connect_timeout: Connect timeout in seconds.
            Env var: CONDUIT_HTTP_CONNECT_TIMEOUT

        user_agent: Value of the default User-Agent header.
            Env var: CONDUIT_HTTP_USER_AGENT
    """

    timeout: float = field(default=30, metadata={"env": "CONDUIT_HTTP_TIMEOUT", "converter": float})
    connect_timeout: float = field(default=10, metadata={"env": "CONDUIT_HTTP_CONNECT_TIMEOUT", "converter": float})
    user_agent: str = field(default="conduit-http", metadata={"env": "CONDUIT_HTTP_USER_AGENT"})

    def validate(self) -> Self:
        """Validate HTTP configuration fields."""
        if self.timeout <= 0:
            raise ConfigValidationError(
                "timeout", self.timeout,
                "Must be greater than 0.", section="http"
            )
        if self.connect_timeout <= 0:
            raise ConfigValidationError(
                "connect_timeout", self.connect_timeout,
                "Must be greater than 0.", section="http"
            )
        if not self.user_agent:
            raise ConfigValidationError(
                "user_agent", self.user_agent,
                "Must not be empty.", section="http"
            )
        return self


@dataclass(frozen=True)
class RetryConfig(OverridableConfig):
    """
    Default retry policy for HttpClient.

    Attributes:
        max_attempts: Total attempts including the first one. Use 1 to disable retries.
            Env var: CONDUIT_RETRY_MAX_ATTEMPTS

        retryable_status_codes: Comma-separated in the env var, e.g. "429,503".
            Env var: CONDUIT_RETRY_RETRYABLE_STATUS_CODES

        exponential_backoff: Double the delay after each attempt.
            Env var: CONDUIT_RETRY_EXPONENTIAL_BACKOFF

        base_delay_ms: Delay before the second attempt, in milliseconds.
            Env var: CONDUIT_RETRY_BASE_DELAY_MS

        max_delay_ms: Upper bound for a single delay, in milliseconds.
            Env var: CONDUIT_RETRY_MAX_DELAY_MS

    Example:
        >>> from conduit import CONDUIT
        >>> CONDUIT.config.retry.to_policy().get_delay(2)
        2000
    """

    max_attempts: int = field(default=3, metadata={"env": "CONDUIT_RETRY_MAX_ATTEMPTS"})
    retryable_status_codes: tuple[int, ...] = field(
        default=tuple(sorted(DEFAULT_RETRYABLE_STATUS_CODES)),
        metadata={"env": "CONDUIT_RETRY_RETRYABLE_STATUS_CODES", "converter": parse_status_codes},
    )
    exponential_backoff: bool = field(default=True, metadata={"env": "CONDUIT_RETRY_EXPONENTIAL_BACKOFF"})
    base_delay_ms: int = field(default=1000, metadata={"env": "CONDUIT_RETRY_BASE_DELAY_MS"})
    max_delay_ms: int = field(default=30000, metadata={"env": "CONDUIT_RETRY_MAX_DELAY_MS"})

    def to_policy(self) -> RetryPolicy:
        """Build the RetryPolicy described by this section."""
        from conduit._retry import RetryPolicy

        return RetryPolicy(
            max_attempts=self.max_attempts,
            retryable_status_codes=frozenset(self.retryable_status_codes),
            exponential_backoff=self.exponential_backoff,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
        )

    def validate(self) -> Self:
        """Validate retry configuration fields."""
        if self.max_attempts < 1:
            raise ConfigValidationError(
                "max_attempts", self.max_attempts,
                "Must be >= 1.", section="retry"
            )
        if self.base_delay_ms < 0:
            raise ConfigValidationError(
                "base_delay_ms", self.base_delay_ms,
                "Must be >= 0.", section="retry"
            )
        if self.max_delay_ms < self.base_delay_ms:
            raise ConfigValidationError(
                "max_delay_ms", self.max_delay_ms,
                "Must be >= base_delay_ms.", section="retry"
            )
        invalid_codes = [code for code in self.retryable_status_codes if not 100 <= code <= 599]
        if invalid_codes:
            raise ConfigValidationError(
                "retryable_status_codes", self.retryable_status_codes,
                "Must contain HTTP status codes between 100 and 599.", section="retry"
            )
        return self


@dataclass(frozen=True)
class RateLimitConfig(OverridableConfig):
    """
    Token bucket rate limiting, applied by ClientBuilder.from_config() when enabled.

    Attributes:
        enabled: Whether to add rate limiting middleware.
            Env var: CONDUIT_RATE_LIMIT_ENABLED

        max_requests: Bucket capacity (burst size).
            Env var: CONDUIT_RATE_LIMIT_MAX_REQUESTS

        per_seconds: Seconds to refill a full bucket.
            Env var: CONDUIT_RATE_LIMIT_PER_SECONDS

        key: Bucket key shared by all requests of the client.
            Env var: CONDUIT_RATE_LIMIT_KEY
    """

    enabled: bool = field(default=False, metadata={"env": "CONDUIT_RATE_LIMIT_ENABLED"})
    max_requests: int = field(default=60, metadata={"env": "CONDUIT_RATE_LIMIT_MAX_REQUESTS"})
    per_seconds: float = field(default=60.0, metadata={"env": "CONDUIT_RATE_LIMIT_PER_SECONDS"})
    key: str = field(default="default", metadata={"env": "CONDUIT_RATE_LIMIT_KEY"})

    def validate(self) -> Self:
        """Validate rate limit configuration fields."""
        if self.max_requests <= 0:
            raise ConfigValidationError(
                "max_requests", self.max_requests,
                "Must be greater than 0.", section="rate_limit"
            )
        if self.per_seconds <= 0:
            raise ConfigValidationError(
                "per_seconds", self.per_seconds,
                "Must be greater than 0.", section="rate_limit"
            )
        if not self.key:
            raise ConfigValidationError(
                "key", self.key,
                "Must not be empty.", section="rate_limit"
            )
        return self


@dataclass(frozen=True)
class CacheConfig(OverridableConfig):
    """
    Response caching, applied by ClientBuilder.from_config() when enabled.

    Attributes:
        enabled: Whether to add caching middleware with an in-memory store.
            Env var: CONDUIT_CACHE_ENABLED

        default_ttl: TTL in seconds for responses without freshness headers.
            Env var: CONDUIT_CACHE_DEFAULT_TTL

        cacheable_methods: Comma-separated in the env var, e.g. "GET,HEAD".
            Env var: CONDUIT_CACHE_CACHEABLE_METHODS
    """

    enabled: bool = field(default=False, metadata={"env": "CONDUIT_CACHE_ENABLED"})
    default_ttl: int = field(default=300, metadata={"env": "CONDUIT_CACHE_DEFAULT_TTL"})
    cacheable_methods: tuple[str, ...] = field(
        default=("GET",),
        metadata={"env": "CONDUIT_CACHE_CACHEABLE_METHODS", "converter": _parse_methods},
    )

    def validate(self) -> Self:
        """Validate cache configuration fields."""
        if self.default_ttl < 0:
            raise ConfigValidationError(
                "default_ttl", self.default_ttl,
                "Must be >= 0.", section="cache"
            )
        if not self.cacheable_methods:
            raise ConfigValidationError(
                "cacheable_methods", self.cacheable_methods,
                "Must name at least one method.", section="cache"
            )
        return self


@dataclass(frozen=True)
class CookiesConfig(OverridableConfig):
    """
    Cookie session handling, applied by ClientBuilder.from_config() when enabled.

    Attributes:
        enabled: Whether to add cookie middleware with a fresh jar.
            Env var: CONDUIT_COOKIES_ENABLED
    """

    enabled: bool = field(default=False, metadata={"env": "CONDUIT_COOKIES_ENABLED"})

    def validate(self) -> Self:
        return self


@dataclass(frozen=True)
class ConfigEntry:
    """
    One row of `CONDUIT.explain()`.

    `source` is "default", "env:<VARIABLE>" or "user" (set through
    `CONDUIT.configure()`). SDK metadata rows use "-".

    Example:
        >>> entry = ConfigEntry("timeout", 60, "user")
        >>> entry.formatted_value
        '60'
    """

    name: str
    value: Any
    source: str

    @property
    def formatted_value(self) -> str:
        """Display form: tuples comma-joined, anything past 50 characters elided."""
        if self.value is None:
            return "None"

        if isinstance(self.value, tuple):
            str_value = ", ".join(str(v) for v in self.value)
        else:
            str_value = str(self.value)

        max_length = 50
        if len(str_value) > max_length:
            return str_value[: max_length - 3] + "..."

        return str_value


@dataclass(frozen=True)
class ConduitConfigTracker:
    """
    Remembers where each non-default field value came from.

    `sources` maps section name to field name to source label. Fields absent
    from it still hold their default.

    Example:
        >>> config = ConduitConfig().with_env_vars()
        >>> config._tracker.sources.get("http", {}).get("timeout")
        'env:CONDUIT_HTTP_TIMEOUT'
    """

    sources: dict[str, dict[str, str]] = field(default_factory=dict)

    @staticmethod
    def track_changes(
        source_type: str,
    ) -> Callable[[Callable[..., ConduitConfig]], Callable[..., ConduitConfig]]:
        """
        Decorator that records which fields the decorated method touched.

        Args:
            source_type: Source label ("env" or "user").
        """

        def decorator(
            method: Callable[..., ConduitConfig],
        ) -> Callable[..., ConduitConfig]:
            @wraps(method)
            def wrapper(self: ConduitConfig, *args: Any, **kwargs: Any) -> ConduitConfig:
                new_config = method(self, *args, **kwargs)
                new_tracker = self._tracker.with_changes_tracked(
                    new_config, source_type, overrides=kwargs
                )
                return replace(new_config, _tracker=new_tracker)

            return wrapper

        return decorator

    def with_changes_tracked(
        self,
        new_config: ConduitConfig,
        source_type: str,
        overrides: dict[str, Any] | None = None,
    ) -> ConduitConfigTracker:
        """Return a new tracker with the fields touched by the source recorded."""
        new_sources = {section: dict(flds) for section, flds in self.sources.items()}

        for section_name in _SECTIONS:
            section_config = getattr(new_config, section_name)
            section_overrides = (overrides or {}).get(section_name) or {}

            for f in fields(section_config):
                env_var = f.metadata.get("env")
                if source_type == "env":
                    # Empty env vars are treated as unset, consistent with EnvVars.get
                    if env_var and os.environ.get(env_var):
                        new_sources.setdefault(section_name, {})[f.name] = f"env:{env_var}"
                elif source_type == "user" and f.name in section_overrides:
                    if section_overrides[f.name] is not None:
                        new_sources.setdefault(section_name, {})[f.name] = source_type

        return ConduitConfigTracker(sources=new_sources)


@dataclass(frozen=True)
class ConduitConfig:
    """
    Global configuration for the conduit SDK.

    Aggregates all configuration sections. Access via `CONDUIT.config`.

    Attributes:
        sdk: SDK metadata. Read-only.
        http: Transport defaults.
        retry: Default retry policy.
        rate_limit: Rate limiting middleware settings.
        cache: Caching middleware settings.
        cookies: Cookie middleware settings.

    Example:
        >>> from conduit import CONDUIT
        >>> CONDUIT.config.http.timeout
        30
        >>> CONDUIT.config.cache.enabled
        False
    """

    sdk: SdkConfig = field(default_factory=SdkConfig.detect)
    http: HttpConfig = field(default_factory=HttpConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    cookies: CookiesConfig = field(default_factory=CookiesConfig)
    _tracker: ConduitConfigTracker = field(default_factory=ConduitConfigTracker, repr=False)

    @ConduitConfigTracker.track_changes("env")
    def with_env_vars(self) -> ConduitConfig:
        """Return a new config with CONDUIT_* environment variables applied on top."""
        return ConduitConfig(
            sdk=self.sdk,
            http=self.http.with_env_vars(),
            retry=self.retry.with_env_vars(),
            rate_limit=self.rate_limit.with_env_vars(),
            cache=self.cache.with_env_vars(),
            cookies=self.cookies.with_env_vars(),
            _tracker=self._tracker,
        )

    @ConduitConfigTracker.track_changes("user")
    def with_section_overrides(
        self,
        *,
        http: dict[str, Any] | None = None,
        retry: dict[str, Any] | None = None,
        rate_limit: dict[str, Any] | None = None,
        cache: dict[str, Any] | None = None,
        cookies: dict[str, Any] | None = None,
    ) -> ConduitConfig:
        """
        Copy with per-section override dicts applied.

        Example:
            >>> custom = ConduitConfig().with_section_overrides(
            ...     http={"timeout": 60},
            ...     retry={"max_attempts": 1},
            ... )
        """
        return ConduitConfig(
            sdk=self.sdk,
            http=self.http.with_overrides(http or {}),
            retry=self.retry.with_overrides(retry or {}),
            rate_limit=self.rate_limit.with_overrides(rate_limit or {}),
            cache=self.cache.with_overrides(cache or {}),
            cookies=self.cookies.with_overrides(cookies or {}),
            _tracker=self._tracker,
        )

    def validate(self) -> ConduitConfig:
        """Validate every section, raising ConfigValidationError on the first invalid value."""
        for section_name in _SECTIONS:
            getattr(self, section_name).validate()
        return self

    def explain_data(self) -> dict[str, list[ConfigEntry]]:
        """
        Rows for `explain()`, grouped by section, SDK metadata first.

        Example:
            >>> data = ConduitConfig().with_env_vars().explain_data()
            >>> for entry in data["http"]:
            ...     print(f"{entry.name}: {entry.value} ({entry.source})")
            timeout: 30 (default)
            ...
        """
        result: dict[str, list[ConfigEntry]] = {
            "sdk": [
                ConfigEntry(name=f.name, value=getattr(self.sdk, f.name), source="-")
                for f in fields(self.sdk)
            ]
        }

        for section_name in _SECTIONS:
            section_config = getattr(self, section_name)
            section_sources = self._tracker.sources.get(section_name, {})
            result[section_name] = [
                ConfigEntry(
                    name=f.name,
                    value=getattr(section_config, f.name),
                    source=section_sources.get(f.name, "default"),
                )
                for f in fields(section_config)
            ]

        return result


# =============================================================================
# Global Configuration Singleton
# =============================================================================


class _Conduit:
    """
    Holder of the process-wide `ConduitConfig`.

    Clients read `CONDUIT.config` when they are constructed, so changes made
    by `configure()` affect clients created afterwards only.

    Example:
        >>> from conduit import CONDUIT
        >>> CONDUIT.configure(http={"timeout": 5})
        >>> print(CONDUIT.config.http.timeout)
        5
    """

    def __init__(self) -> None:
        self._config: ConduitConfig = ConduitConfig().with_env_vars()

    def configure(
        self,
        *,
        http: dict[str, Any] | None = None,
        retry: dict[str, Any] | None = None,
        rate_limit: dict[str, Any] | None = None,
        cache: dict[str, Any] | None = None,
        cookies: dict[str, Any] | None = None,
        allow_env_override: bool = True,
    ) -> ConduitConfig:
        """
        Replace the global configuration.

        Each call starts over from defaults, so earlier `configure()` calls are
        discarded.

        Args:
            http: Transport overrides (timeout, connect_timeout, user_agent).
            retry: Retry policy overrides.
            rate_limit: Rate limiting overrides (enabled, max_requests, per_seconds, key).
            cache: Caching overrides (enabled, default_ttl, cacheable_methods).
            cookies: Cookie overrides (enabled).
            allow_env_override: Read `CONDUIT_*` variables for fields left out of
                the dicts above. When False only defaults and the dicts apply.

        Returns:
            The configured ConduitConfig instance.

        Raises:
            ValueError: On an unknown field name.
            ConfigValidationError: When the resulting config is invalid.

        Precedence:
            CONDUIT.configure() > ENV vars > defaults
        """
        base = ConduitConfig()
        if allow_env_override:
            base = base.with_env_vars()

        self._config = base.with_section_overrides(
            http=http,
            retry=retry,
            rate_limit=rate_limit,
            cache=cache,
            cookies=cookies,
        )

        return self.validate()

    @property
    def config(self) -> ConduitConfig:
        """The current configuration."""
        return self._config

    def reset(self) -> ConduitConfig:
        """
        Drop `configure()` overrides and reload the environment.
        """
        self._config = ConduitConfig().with_env_vars()
        return self.validate()

    def validate(self) -> ConduitConfig:
        """
        Check every section, raising ConfigValidationError on the first bad value.

        Runs at import time and after `configure()` and `reset()`.
        """
        return self._config.validate()

    def explain(
        self,
        output: Callable[[str], None] = print,
    ) -> None:
        """
        Write a table of every field, its value and where the value came from.

        Args:
            output: Receives one line at a time, e.g. `logger.info`.

        Example:
            >>> CONDUIT.explain()
            Conduit Configuration:
            ======================
            [http]
              timeout ........... 60 ✎ user
            ...
        """
        name_width = 25
        value_width = 50
        total_width = 2 + name_width + 2 + (value_width + 2) + 1 + 8

        output("Conduit Configuration:")
        output("=" * total_width)

        output(f"  {'Field':<{name_width}} │ {'Value':<{value_width}} │ Source")
        output(f"--{'-' * name_width}-+{'-' * (value_width + 2)}+--------")

        for section_name, entries in self._config.explain_data().items():
            output(f"[{section_name}]")
            for entry in entries:
                dots = "." * (name_width - len(entry.name))
                value_padded = entry.formatted_value.ljust(value_width)
                marker = "✎" if entry.source not in ("default", "-") else " "
                output(f"  {entry.name} {dots} {value_padded} {marker} {entry.source}")

        output("=" * total_width)

    def __repr__(self) -> str:
        return f"CONDUIT(config={self._config!r})"


# Validated at import so a bad CONDUIT_* variable fails fast
CONDUIT: _Conduit = _Conduit()
CONDUIT.validate()
