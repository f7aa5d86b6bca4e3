"""screenlens configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (SCREENLENS_BASE_URL, SCREENLENS_TEXT_MODEL, ...)
  3. Per-project screenlens.yaml  (current working directory)
  4. Global ~/.screenlens/config.yaml
  5. Hardcoded defaults

Config files must never contain credentials. The gateway API key lives in the
secret store (``screenlens key set``) with DASHSCOPE_API_KEY as the static
fallback; phone-tag service keys come from environment variables only.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".screenlens"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "screenlens.yaml"

DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode"
DEFAULT_TEXT_MODEL = "qwen-plus"
DEFAULT_VISION_MODEL = "qwen3-vl-plus"

DEFAULT_HISTORY_LIMIT = 20
HISTORY_LIMIT_CHOICES: tuple[int, ...] = (5, 10, 20, 50, 100, 200, 500)

DEFAULT_PHONE_TAG_ENDPOINT = "https://pnvs.baidubce.com/haoma-cloud/openapi/phone-tag/1.0"

# Matches: api_key, apikey, api-key, api_secret, secret_key, access_key, _token,
# standalone token/secret, password, passwd, credential(s).
# Does NOT match legitimate keys like max_count or debounce_ms.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|(?:secret|access)[_\-]?key"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["provider", "history", "search", "chat", "warmup", "image", "phone_tags", "storage"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ProviderCfg:
    """Model gateway configuration (screenlens.yaml: provider:).

    Blank strings mean "use the built-in default"; resolution happens per call
    in screenlens.gateway.provider.
    """

    base_url: str = ""
    text_model: str = ""
    vision_model: str = ""
    timeout: float = 30.0
    num_retries: int = 2


@dataclass
class HistoryCfg:
    """History retention (screenlens.yaml: history:).

    Attributes:
        enabled: When False, new analyses are not recorded.
        max_count: Retention limit, one of HISTORY_LIMIT_CHOICES.
    """

    enabled: bool = True
    max_count: int = DEFAULT_HISTORY_LIMIT


@dataclass
class SearchCfg:
    """Incremental search tuning (screenlens.yaml: search:)."""

    debounce_ms: int = 200
    min_query_length: int = 2


@dataclass
class ChatCfg:
    """Follow-up chat (screenlens.yaml: chat:)."""

    display_limit: int = 50


@dataclass
class WarmupCfg:
    """Connection warm-up (screenlens.yaml: warmup:)."""

    enabled: bool = True
    delay: float = 1.0


@dataclass
class ImageCfg:
    """Screenshot encoding (screenlens.yaml: image:)."""

    jpeg_quality: float = 0.7


@dataclass
class PhoneTagsCfg:
    """Phone-tag lookup service (screenlens.yaml: phone_tags:).

    access_key and secret_key are read from SCREENLENS_PHONE_TAG_* environment
    variables only; app_key may also be set in the file.
    """

    endpoint: str = DEFAULT_PHONE_TAG_ENDPOINT
    timeout: float = 15.0
    app_key: str = ""
    access_key: str = ""
    secret_key: str = ""


@dataclass
class StorageCfg:
    """Local database location (screenlens.yaml: storage:)."""

    db_path: Path = field(default_factory=lambda: _GLOBAL_CONFIG_DIR / "screenlens.db")


@dataclass
class ScreenlensConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    provider: ProviderCfg = field(default_factory=ProviderCfg)
    history: HistoryCfg = field(default_factory=HistoryCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)
    warmup: WarmupCfg = field(default_factory=WarmupCfg)
    image: ImageCfg = field(default_factory=ImageCfg)
    phone_tags: PhoneTagsCfg = field(default_factory=PhoneTagsCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Config file '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must not be stored in config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    screenlens key set   (or export DASHSCOPE_API_KEY=<value>)"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def normalize_history_limit(value: Any) -> int:
    """Return *value* as a retention limit, falling back to the default.

    Values outside HISTORY_LIMIT_CHOICES produce a UserWarning.
    """
    try:
        limit = int(value)
    except (TypeError, ValueError):
        limit = 0
    if limit not in HISTORY_LIMIT_CHOICES:
        warnings.warn(
            f"history.max_count must be one of {list(HISTORY_LIMIT_CHOICES)}, "
            f"got {value!r} — using {DEFAULT_HISTORY_LIMIT}.",
            UserWarning,
            stacklevel=2,
        )
        return DEFAULT_HISTORY_LIMIT
    return limit


def _parse_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> ScreenlensConfig:
    """Build a *ScreenlensConfig* from a merged raw YAML dict."""
    cfg = ScreenlensConfig()

    if "provider" in data:
        p = data["provider"] or {}
        cfg.provider = ProviderCfg(
            base_url=str(p.get("base_url") or ""),
            text_model=str(p.get("text_model") or ""),
            vision_model=str(p.get("vision_model") or ""),
            timeout=float(p.get("timeout", cfg.provider.timeout)),
            num_retries=int(p.get("num_retries", cfg.provider.num_retries)),
        )

    if "history" in data:
        h = data["history"] or {}
        cfg.history = HistoryCfg(
            enabled=_parse_bool(h.get("enabled"), cfg.history.enabled),
            max_count=normalize_history_limit(h.get("max_count", cfg.history.max_count)),
        )

    if "search" in data:
        s = data["search"] or {}
        cfg.search = SearchCfg(
            debounce_ms=int(s.get("debounce_ms", cfg.search.debounce_ms)),
            min_query_length=int(s.get("min_query_length", cfg.search.min_query_length)),
        )

    if "chat" in data:
        c = data["chat"] or {}
        cfg.chat = ChatCfg(display_limit=int(c.get("display_limit", cfg.chat.display_limit)))

    if "warmup" in data:
        w = data["warmup"] or {}
        cfg.warmup = WarmupCfg(
            enabled=_parse_bool(w.get("enabled"), cfg.warmup.enabled),
            delay=float(w.get("delay", cfg.warmup.delay)),
        )

    if "image" in data:
        i = data["image"] or {}
        quality = float(i.get("jpeg_quality", cfg.image.jpeg_quality))
        if not 0.0 < quality <= 1.0:
            raise ConfigError(f"image.jpeg_quality must be in (0, 1], got {quality}")
        cfg.image = ImageCfg(jpeg_quality=quality)

    if "phone_tags" in data:
        t = data["phone_tags"] or {}
        cfg.phone_tags = PhoneTagsCfg(
            endpoint=str(t.get("endpoint") or cfg.phone_tags.endpoint),
            timeout=float(t.get("timeout", cfg.phone_tags.timeout)),
            app_key=str(t.get("app_key") or ""),
        )

    if "storage" in data:
        st = data["storage"] or {}
        if st.get("db_path"):
            cfg.storage = StorageCfg(db_path=Path(str(st["db_path"])).expanduser())

    return cfg


def _apply_env_overrides(cfg: ScreenlensConfig) -> ScreenlensConfig:
    """Apply SCREENLENS_* environment variable overrides (layer 2)."""
    if value := os.environ.get("SCREENLENS_BASE_URL"):
        cfg.provider.base_url = value
    if value := os.environ.get("SCREENLENS_TEXT_MODEL"):
        cfg.provider.text_model = value
    if value := os.environ.get("SCREENLENS_VISION_MODEL"):
        cfg.provider.vision_model = value
    if value := os.environ.get("SCREENLENS_HISTORY_ENABLED"):
        cfg.history.enabled = _parse_bool(value, cfg.history.enabled)
    if value := os.environ.get("SCREENLENS_DB_PATH"):
        cfg.storage.db_path = Path(value).expanduser()
    if value := os.environ.get("SCREENLENS_PHONE_TAG_APP_KEY"):
        cfg.phone_tags.app_key = value
    if value := os.environ.get("SCREENLENS_PHONE_TAG_ACCESS_KEY"):
        cfg.phone_tags.access_key = value
    if value := os.environ.get("SCREENLENS_PHONE_TAG_SECRET_KEY"):
        cfg.phone_tags.secret_key = value
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ScreenlensConfig:
    """Load and return a merged *ScreenlensConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *screenlens.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *ScreenlensConfig* with env var overrides applied.

    Raises:
        ConfigError: If a config file contains credential-like fields or an
            out-of-range value.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_project, project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.screenlens/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# screenlens global configuration.\n"
            "# NEVER store API keys here — use the secret store or the environment:\n"
            "#   screenlens key set\n"
            "#   export DASHSCOPE_API_KEY=sk-...\n"
            "\n"
            "provider:\n"
            f"  base_url: {DEFAULT_BASE_URL}\n"
            f"  text_model: {DEFAULT_TEXT_MODEL}\n"
            f"  vision_model: {DEFAULT_VISION_MODEL}\n"
            "\n"
            "history:\n"
            "  enabled: true\n"
            f"  max_count: {DEFAULT_HISTORY_LIMIT}\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
