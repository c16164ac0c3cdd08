"""Client configuration read from the environment and command-line overrides."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_CACHE_TTL_SECONDS = 86400

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """Identity, rate credential and cache options for one PubMed client."""

    email: str
    api_key: str | None = None
    cache_dir: str | None = None
    cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS

    def describe(self) -> str:
        """One-line summary that never prints the API key itself."""
        return (
            f"email={self.email} "
            f"api_key={'configured' if self.api_key else 'not configured'} "
            f"cache_dir={self.cache_dir or 'disabled'} "
            f"cache_ttl={self.cache_ttl}s"
        )


def load_settings(
    overrides: Mapping[str, str | None] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ClientSettings:
    """Build settings from PUBMED_* variables, letting non-empty overrides win.

    Override keys are "email", "api_key", "cache_dir" and "cache_ttl".
    """
    env = os.environ if environ is None else environ
    overrides = overrides or {}

    def _pick(key: str, env_name: str) -> str | None:
        value = overrides.get(key) or env.get(env_name)
        return value.strip() if isinstance(value, str) and value.strip() else None

    email = _pick("email", "PUBMED_EMAIL")
    if not email:
        raise RuntimeError("PUBMED_EMAIL environment variable or --email argument is required")

    ttl_raw = _pick("cache_ttl", "PUBMED_CACHE_TTL")
    try:
        cache_ttl = int(ttl_raw) if ttl_raw else DEFAULT_CACHE_TTL_SECONDS
    except ValueError as exc:
        raise RuntimeError(f"PUBMED_CACHE_TTL must be an integer number of seconds, got {ttl_raw!r}") from exc

    settings = ClientSettings(
        email=email,
        api_key=_pick("api_key", "PUBMED_API_KEY"),
        cache_dir=_pick("cache_dir", "PUBMED_CACHE_DIR"),
        cache_ttl=cache_ttl,
    )
    LOGGER.debug("Loaded settings: %s", settings.describe())
    return settings
