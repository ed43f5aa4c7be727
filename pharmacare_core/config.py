# =============================================================================
# pharmacare_core/config.py
# Settings for the Offline-First Persistence Layer
# =============================================================================
"""
Settings are resolved in three layers, later layers winning:

1. Dataclass defaults
2. ``[pharmacare]`` table of a TOML file (``.pharmacare/config.toml`` or the
   path in ``PHARMACARE_CONFIG``)
3. ``PHARMACARE_*`` environment variables

Expected config.toml format:

    [pharmacare]
    api_base_url = "https://<project>.supabase.co/functions/v1/make-server"
    access_token = "your-anon-key"
    request_timeout = 3.0
    storage_path = "local_data/pharmacare.db"
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import toml

from pharmacare_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(".pharmacare") / "config.toml"
ENV_PREFIX = "PHARMACARE_"


@dataclass(frozen=True)
class OfflineSettings:
    """Tunables for the router, monitor, generator and caches."""
    api_base_url: str = ""
    access_token: str = ""
    request_timeout: float = 3.0        # Router remote deadline (seconds)
    probe_timeout: float = 5.0          # Availability probe deadline (seconds)
    probe_path: str = "/medicines"
    recheck_interval: float = 30.0      # Minimum age before is_online() re-probes
    poll_interval: float = 3.0
    dashboard_cache_ttl: float = 60.0
    storage_path: str = "local_data/pharmacare.db"
    key_prefix: str = "pharmacare_"
    max_sequence_attempts: int = 100
    extra_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def remote_configured(self) -> bool:
        """True when a remote base URL is available."""
        return bool(self.api_base_url)


def _coerce(name: str, raw: Any, target: type) -> Any:
    """Convert a raw TOML/env value to the dataclass field type."""
    if target is dict or isinstance(raw, dict):
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Setting '{name}' must be a table",
                config_key=name,
                expected_type="dict",
            )
        return {str(k): str(v) for k, v in raw.items()}
    try:
        if target is float:
            value = float(raw)
        elif target is int:
            value = int(raw)
        else:
            return str(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Setting '{name}' has invalid value {raw!r}",
            config_key=name,
            expected_type=target.__name__,
        )
    if value < 0:
        raise ConfigurationError(
            f"Setting '{name}' must not be negative",
            config_key=name,
            expected_type=target.__name__,
        )
    return value


_FIELD_TYPES = {
    "api_base_url": str,
    "access_token": str,
    "request_timeout": float,
    "probe_timeout": float,
    "probe_path": str,
    "recheck_interval": float,
    "poll_interval": float,
    "dashboard_cache_ttl": float,
    "storage_path": str,
    "key_prefix": str,
    "max_sequence_attempts": int,
    "extra_headers": dict,
}


def _load_toml(path: Path) -> Dict[str, Any]:
    """Read the [pharmacare] table from a TOML file, if present."""
    if not path.exists():
        return {}
    try:
        data = toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigurationError(
            f"Could not read config file {path}: {e}",
            details={"path": str(path)},
        )
    section = data.get("pharmacare", {})
    if not isinstance(section, dict):
        raise ConfigurationError(
            "[pharmacare] must be a table",
            config_key="pharmacare",
            expected_type="table",
        )
    return section


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> OfflineSettings:
    """
    Build settings from defaults, the TOML file and the environment.

    Args:
        config_path: TOML file to read (default: $PHARMACARE_CONFIG or
            .pharmacare/config.toml)
        environ: Environment mapping (default: os.environ)

    Returns:
        Resolved OfflineSettings
    """
    environ = os.environ if environ is None else environ
    path = Path(config_path or environ.get(f"{ENV_PREFIX}CONFIG", DEFAULT_CONFIG_PATH))

    overrides: Dict[str, Any] = {}
    known = {f.name for f in fields(OfflineSettings)}

    for key, raw in _load_toml(path).items():
        if key not in known:
            logger.warning(f"Ignoring unknown setting '{key}' in {path}")
            continue
        overrides[key] = _coerce(key, raw, _FIELD_TYPES[key])

    for key in known:
        env_key = f"{ENV_PREFIX}{key.upper()}"
        if env_key in environ and _FIELD_TYPES[key] is not dict:
            overrides[key] = _coerce(key, environ[env_key], _FIELD_TYPES[key])

    settings = replace(OfflineSettings(), **overrides)
    if not settings.remote_configured:
        logger.info("No remote API configured; running in local-only mode")
    return settings


# Singleton accessor
_settings: Optional[OfflineSettings] = None


def get_settings() -> OfflineSettings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
