"""Provider backend configuration."""

import hashlib
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_CAMEL_KEYS = {
    "apiKey": "api_key",
    "baseURL": "base_url",
    "baseUrl": "base_url",
    "maxRetries": "max_retries",
    "maxConcurrentRequests": "max_concurrent_requests",
}


@dataclass(frozen=True)
class ProviderConfig:
    """One backend: an API key and endpoint plus its limits.

    ``timeout`` is in seconds. Two configs with the same field values have
    the same :func:`generate_config_id`.
    """
    api_key: str
    base_url: Optional[str] = None
    max_retries: Optional[int] = None
    max_concurrent_requests: Optional[int] = None
    timeout: Optional[float] = None
    headers: Optional[Mapping[str, str]] = None

    def __post_init__(self):
        if not isinstance(self.api_key, str):
            raise ValueError("api_key must be a string")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.max_concurrent_requests is not None and self.max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be >= 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderConfig":
        """Build a config from a mapping; camelCase keys are accepted."""
        kwargs = {_CAMEL_KEYS.get(k, k): v for k, v in data.items()}
        unknown = set(kwargs) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown provider config keys: {', '.join(sorted(unknown))}")
        if "api_key" not in kwargs:
            raise ValueError("Provider config requires an api_key")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Field values with unset (``None``) fields left out."""
        data = {name: getattr(self, name) for name in self.__dataclass_fields__}
        if self.headers is not None:
            data["headers"] = dict(self.headers)
        return {k: v for k, v in data.items() if v is not None}


def generate_config_id(config: ProviderConfig) -> str:
    """Content hash of a config: sha1 over its sorted-key JSON form."""
    normalized = json.dumps(config.to_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()


def configs_from_env(prefix: str, dotenv_path: Optional[str] = None) -> List[ProviderConfig]:
    """Read provider configs from ``<PREFIX>_*`` environment variables.

    ``<PREFIX>_API_KEY`` may hold several comma-separated keys; each key
    becomes its own config sharing the other settings.

    Environment variables:
        <PREFIX>_API_KEY: API key(s), comma separated
        <PREFIX>_BASE_URL: Endpoint base URL
        <PREFIX>_MAX_RETRIES: Retries per request
        <PREFIX>_MAX_CONCURRENT_REQUESTS: In-flight cap per key
        <PREFIX>_TIMEOUT: Per-attempt timeout in seconds
    """
    load_dotenv(dotenv_path)
    prefix = prefix.upper().rstrip("_")

    raw_keys = os.getenv(f"{prefix}_API_KEY", "")
    api_keys = [k.strip() for k in raw_keys.split(",") if k.strip()]
    if not api_keys:
        logger.debug(f"No {prefix}_API_KEY set")
        return []

    base_url = os.getenv(f"{prefix}_BASE_URL") or None
    max_retries = _optional_number(f"{prefix}_MAX_RETRIES", int)
    max_concurrent = _optional_number(f"{prefix}_MAX_CONCURRENT_REQUESTS", int)
    timeout = _optional_number(f"{prefix}_TIMEOUT", float)

    return [
        ProviderConfig(
            api_key=key,
            base_url=base_url,
            max_retries=max_retries,
            max_concurrent_requests=max_concurrent,
            timeout=timeout,
        )
        for key in api_keys
    ]


def _optional_number(name: str, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
