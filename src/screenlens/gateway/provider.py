"""Provider configuration resolution.

Resolved per call, never cached beyond it. Precedence per field:

  base URL      settings (config file / SCREENLENS_BASE_URL) → built-in default
  credential    secret store → static fallback (explicit value, then
                DASHSCOPE_API_KEY) → ConfigurationError
  models        settings → built-in defaults; the vision model is used iff an
                image is attached

Base URLs are normalized so that ``https://host``, ``https://host/`` and
``https://host/v1/`` all address ``https://host/v1/chat/completions``.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from screenlens.config import (
    DEFAULT_BASE_URL,
    DEFAULT_TEXT_MODEL,
    DEFAULT_VISION_MODEL,
    ProviderCfg,
)
from screenlens.errors import ConfigurationError, MissingCredentialError

logger = logging.getLogger(__name__)

STATIC_API_KEY_ENV = "DASHSCOPE_API_KEY"
CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


class CredentialSource(Protocol):
    """Anything that can read the stored gateway credential (see SecretStore)."""

    def read(self) -> str | None: ...


@dataclass(frozen=True)
class ProviderConfig:
    """Endpoint, credential and model identifiers for one gateway call."""

    base_url: str
    api_key: str
    text_model: str
    vision_model: str

    @property
    def api_base(self) -> str:
        """OpenAI-compatible API root (``<base>/v1``)."""
        return f"{self.base_url}/v1"

    @property
    def chat_completions_url(self) -> str:
        return f"{self.base_url}{CHAT_COMPLETIONS_PATH}"

    def model_for(self, has_image: bool) -> str:
        return self.vision_model if has_image else self.text_model

    def __repr__(self) -> str:
        return (
            f"ProviderConfig(base_url={self.base_url!r}, api_key='***', "
            f"text_model={self.text_model!r}, vision_model={self.vision_model!r})"
        )


def normalize_base_url(raw: str | None) -> str:
    """Return the provider root URL without trailing slashes or ``/v1``.

    Raises:
        ConfigurationError: If the URL has no http(s) scheme or no host.
    """
    base = (raw or "").strip() or DEFAULT_BASE_URL
    base = base.rstrip("/")
    if base.endswith("/v1"):
        base = base[: -len("/v1")].rstrip("/")

    parsed = urllib.parse.urlparse(base)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"Base URL cannot be parsed: '{raw}'. Expected e.g. https://api.example.com"
        )
    return base


def resolve_api_key(
    secret_store: CredentialSource | None,
    static_api_key: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Return the gateway credential using the documented precedence.

    Raises:
        ConfigurationError: If no tier yields a non-blank credential.
    """
    if secret_store is not None:
        try:
            stored = secret_store.read()
        except sqlite3.Error as exc:
            logger.warning("Secret store unavailable, trying fallback credential: %s", exc)
            stored = None
        if stored and stored.strip():
            return stored.strip()

    if static_api_key and static_api_key.strip():
        return static_api_key.strip()

    env = os.environ if environ is None else environ
    from_env = env.get(STATIC_API_KEY_ENV, "")
    if from_env.strip():
        return from_env.strip()

    raise MissingCredentialError(
        "API key is not configured. Save one with `screenlens key set` "
        f"or export {STATIC_API_KEY_ENV}."
    )


def resolve_provider_config(
    settings: ProviderCfg | None = None,
    secret_store: CredentialSource | None = None,
    *,
    static_api_key: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProviderConfig:
    """Resolve a full ProviderConfig for one call.

    Raises:
        ConfigurationError: Missing credential or unparsable base URL.
    """
    settings = settings if settings is not None else ProviderCfg()
    base_url = normalize_base_url(settings.base_url)
    api_key = resolve_api_key(secret_store, static_api_key, environ)
    return ProviderConfig(
        base_url=base_url,
        api_key=api_key,
        text_model=settings.text_model.strip() or DEFAULT_TEXT_MODEL,
        vision_model=settings.vision_model.strip() or DEFAULT_VISION_MODEL,
    )
