# =============================================================================
# finca_core/config.py
# Offline Layer Configuration (secrets.toml + environment)
# =============================================================================
"""
Configuration for the offline data layer.

Values are resolved in this order (later wins):

1. Dataclass defaults
2. ``.streamlit/secrets.toml``::

       [supabase]
       url = "https://your-project.supabase.co"
       key = "your-anon-key"

       [offline]
       db_path = "local_data/finca_offline.db"
       settle_delay = 1.0
       collections = ["animales", "contabilidad", "registros_diarios", "vacunas"]
       log_level = "INFO"
       log_file = "logs/finca_offline.log"

3. Environment: ``SUPABASE_URL``, ``SUPABASE_KEY``, ``FINCA_OFFLINE_DB``,
   ``FINCA_LOG_LEVEL``
4. Keyword overrides passed to :func:`load_config`
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import logging

import toml

from finca_core.errors import ConfigurationError
from finca_core.logging.config import resolve_level

logger = logging.getLogger(__name__)


DEFAULT_SECRETS_PATH = Path(".streamlit") / "secrets.toml"

# Remote entity collections, mirrored from the Supabase schema
SUPABASE_TABLES = ("animales", "contabilidad", "registros_diarios", "vacunas")


@dataclass
class OfflineConfig:
    """Settings for the local store, sync engine and connectivity monitor."""
    db_path: Path = Path("local_data") / "finca_offline.db"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    collections: Tuple[str, ...] = SUPABASE_TABLES
    probe_collection: str = "animales"
    settle_delay: float = 1.0              # Seconds between drain and cache refresh
    pending_poll_interval: float = 30.0    # Seconds between pending-count polls
    was_offline_window: float = 3.0        # Seconds the "connection restored" flag stays set
    check_interval_online: float = 30.0
    check_interval_offline: float = 10.0
    connection_timeout: float = 5.0
    search_fields: Dict[str, Tuple[str, ...]] = field(
        default_factory=lambda: {"animales": ("nombre", "numero_arete")}
    )
    order_by: Dict[str, str] = field(default_factory=lambda: {"animales": "nombre"})
    log_level: Optional[str] = None         # e.g. "INFO"; unset leaves logging to the host app
    log_file: Optional[Path] = None

    def __post_init__(self):
        self.db_path = Path(self.db_path)
        self.collections = tuple(self.collections)
        self.search_fields = {
            name: tuple(columns) for name, columns in self.search_fields.items()
        }
        for name in ("settle_delay", "pending_poll_interval", "was_offline_window",
                     "check_interval_online", "check_interval_offline",
                     "connection_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                raise ConfigurationError(
                    f"'{name}' must be a non-negative number",
                    config_key=name,
                    expected_type="float",
                )
        if not self.collections:
            raise ConfigurationError("At least one collection is required", config_key="collections")
        if self.log_file is not None:
            self.log_file = Path(self.log_file)
        if self.log_level is not None:
            try:
                resolve_level(self.log_level)
            except ValueError as e:
                raise ConfigurationError(str(e), config_key="log_level") from e

    @property
    def has_supabase(self) -> bool:
        """True when remote credentials are configured."""
        return bool(self.supabase_url and self.supabase_key)


def _read_secrets(secrets_path: Path) -> Dict[str, Any]:
    """Load secrets.toml, returning an empty dict when the file is absent."""
    if not secrets_path.exists():
        logger.debug(f"No secrets file at {secrets_path}")
        return {}

    try:
        return toml.load(secrets_path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigurationError(
            f"Could not read {secrets_path}: {e}",
            config_key="secrets.toml",
        ) from e


def load_config(secrets_path: Optional[Path] = None, **overrides: Any) -> OfflineConfig:
    """
    Build an OfflineConfig from secrets.toml, environment and overrides.

    Args:
        secrets_path: Path to the TOML secrets file
        **overrides: Field values that take precedence over everything else

    Returns:
        Resolved OfflineConfig

    Raises:
        ConfigurationError: On unreadable files, unknown keys or bad values
    """
    known = {f.name for f in fields(OfflineConfig)}
    values: Dict[str, Any] = {}

    secrets = _read_secrets(Path(secrets_path) if secrets_path else DEFAULT_SECRETS_PATH)

    supabase = secrets.get("supabase", {})
    if supabase.get("url"):
        values["supabase_url"] = supabase["url"]
    if supabase.get("key"):
        values["supabase_key"] = supabase["key"]

    for key, value in secrets.get("offline", {}).items():
        if key not in known:
            raise ConfigurationError(f"Unknown offline setting '{key}'", config_key=key)
        values[key] = value

    env_mapping = {
        "SUPABASE_URL": "supabase_url",
        "SUPABASE_KEY": "supabase_key",
        "FINCA_OFFLINE_DB": "db_path",
        "FINCA_LOG_LEVEL": "log_level",
    }
    for env_name, key in env_mapping.items():
        env_value = os.getenv(env_name)
        if env_value:
            values[key] = env_value

    for key, value in overrides.items():
        if key not in known:
            raise ConfigurationError(f"Unknown offline setting '{key}'", config_key=key)
        values[key] = value

    return OfflineConfig(**values)
