"""
Settings for the Plausible query client, read from environment variables
"""
import os
import logging
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .errors import ConfigFailure

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://plausible.io/api/v2/query"
DEFAULT_CACHE_DIR = os.path.join(os.path.expanduser("~"), ".plausible_query_cache")
DEFAULT_TIMEOUT = 30.0
DEFAULT_CACHE_TTL = 300


@dataclass(frozen=True)
class Settings:
    """Resolved client configuration"""
    api_key: Optional[str] = None
    site_id: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    cache_dir: str = DEFAULT_CACHE_DIR
    log_file: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    cache_ttl: int = DEFAULT_CACHE_TTL
    debug: bool = False

    @property
    def audit_log_path(self) -> str:
        return self.log_file or os.path.join(self.cache_dir, "query.log")

    def require_site_id(self, site_id: Optional[str] = None) -> str:
        """Return the explicit site id, falling back to the configured default"""
        resolved = site_id or self.site_id
        if not resolved:
            raise ConfigFailure(
                "No site identifier given and no default configured",
                code="MISSING_SITE_ID",
                suggestion="Set PLAUSIBLE_SITE_ID or pass --site-id example.com",
            )
        return resolved

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigFailure(
                "No Plausible API key configured",
                code="MISSING_API_KEY",
                suggestion="Set PLAUSIBLE_API_KEY or pass --api-key",
            )
        return self.api_key

    def with_overrides(self, **overrides) -> "Settings":
        """Copy with every non-None override applied"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def _read_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigFailure(
            f"{name} must be a number, got {raw!r}",
            code="INVALID_SETTING",
            details={"variable": name, "value": raw},
        )
    if value <= 0:
        raise ConfigFailure(
            f"{name} must be positive, got {raw!r}",
            code="INVALID_SETTING",
            details={"variable": name, "value": raw},
        )
    return value


def load_settings(env: Optional[Mapping[str, str]] = None, **overrides) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)
        **overrides: Values that win over the environment when not None

    Returns:
        Settings: Frozen settings object
    """
    if env is None:
        env = os.environ

    settings = Settings(
        api_key=env.get("PLAUSIBLE_API_KEY") or None,
        site_id=env.get("PLAUSIBLE_SITE_ID") or None,
        api_url=env.get("PLAUSIBLE_API_URL") or DEFAULT_API_URL,
        cache_dir=env.get("PLAUSIBLE_CACHE_DIR") or DEFAULT_CACHE_DIR,
        log_file=env.get("PLAUSIBLE_LOG_FILE") or None,
        timeout=_read_number(env, "PLAUSIBLE_TIMEOUT", DEFAULT_TIMEOUT, float),
        cache_ttl=_read_number(env, "PLAUSIBLE_CACHE_TTL", DEFAULT_CACHE_TTL, int),
        debug=env.get("DEBUG_MODE", "false").lower() == "true",
    )
    settings = settings.with_overrides(**overrides)
    logger.debug(f"Loaded settings: api_url={settings.api_url}, cache_dir={settings.cache_dir}, "
                 f"site_id={settings.site_id}, timeout={settings.timeout}")
    return settings
