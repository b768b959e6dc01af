import os
from collections.abc import Mapping
from typing import Union

from .types import (
    DEFAULT_CACHE_TTL,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    ClientConfig,
    EffectiveConfig,
    RateLimit,
    RequestOptions,
)

# Sent with every request unless overridden
BUILTIN_HEADERS: dict[str, str] = {"Accept": "application/json"}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def merge_headers(*sources: Union[Mapping[str, str], None]) -> dict[str, str]:
    """Merge header mappings left to right, comparing names case-insensitively.

    A later source replaces an earlier value for the same name and its
    spelling of the name is kept.
    """
    merged: dict[str, str] = {}
    names: dict[str, str] = {}
    for source in sources:
        if not source:
            continue
        for name, value in source.items():
            lowered = name.lower()
            previous = names.get(lowered)
            if previous is not None:
                merged.pop(previous)
            names[lowered] = name
            merged[name] = value
    return merged


def _first(*values):
    for v in values:
        if v is not None:
            return v
    return None


def resolve(
    defaults: ClientConfig, overrides: Union[RequestOptions, None] = None
) -> EffectiveConfig:
    """Compute the effective configuration for one request.

    Per-call overrides win over the client's defaults, which win over the
    built-in fallbacks (10s timeout, 3 retries, caching off, 300s TTL, no
    rate limit). Headers are merged key-wise rather than replaced.
    """
    o = overrides or RequestOptions()
    return EffectiveConfig(
        base_url=defaults.base_url,
        headers=merge_headers(BUILTIN_HEADERS, defaults.headers, o.headers),
        timeout=_first(o.timeout, defaults.timeout, DEFAULT_TIMEOUT),
        retries=_first(o.retries, defaults.retries, DEFAULT_RETRIES),
        cache=_first(o.cache, defaults.cache, False),
        cache_ttl=_first(o.cache_ttl, defaults.cache_ttl, DEFAULT_CACHE_TTL),
        rate_limit=defaults.rate_limit,
        dedupe=o.dedupe,
    )


# ---------- environment ----------


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present. A missing file
    yields an empty dict.
    """
    values: dict[str, str] = {}
    if not os.path.exists(env_path):
        return values
    with open(env_path) as f:
        for raw_line in f:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, val = line.split("=", 1)
            key = key.strip()
            if key.startswith("export "):
                key = key[len("export ") :].strip()
            val = val.strip().strip('"').strip("'")
            if key:
                values[key] = val
    return values


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(f"{name}: expected a boolean, got {raw!r}")


def load_config_from_env(
    prefix: str = "QUICKCALL_",
    env_path: Union[str, None] = None,
    **kwargs,
) -> ClientConfig:
    """Build a ClientConfig from environment variables.

    Recognised names (after `prefix`): BASE_URL, TIMEOUT, RETRIES, CACHE,
    CACHE_TTL and RATE_LIMIT ("requests/window", e.g. "5/1.0"). If
    `env_path` is given, the .env file augments the lookup; values in the
    real environment take precedence. Any ClientConfig field passed in
    `kwargs` wins over both.
    """
    file_env = _parse_env_file(env_path) if env_path else {}
    env_map: dict[str, str] = {**file_env, **os.environ}

    parsers = {
        "BASE_URL": ("base_url", str),
        "TIMEOUT": ("timeout", float),
        "RETRIES": ("retries", int),
        "CACHE": ("cache", lambda raw: _parse_bool(prefix + "CACHE", raw)),
        "CACHE_TTL": ("cache_ttl", float),
        "RATE_LIMIT": ("rate_limit", RateLimit.parse),
    }
    fields: dict = {}
    for env_name, (field_name, parse) in parsers.items():
        raw = env_map.get(prefix + env_name)
        if raw is None or raw == "":
            continue
        fields[field_name] = parse(raw)
    fields.update(kwargs)
    return ClientConfig(**fields)
