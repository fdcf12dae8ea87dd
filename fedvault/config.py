"""Service configuration.

Each setting resolves from, in order: an explicit keyword argument, a
``FEDVAULT_*`` environment variable, the JSON config file
(``~/.fedvault/config.json`` or ``$FEDVAULT_CONFIG``), and finally the
built-in default.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from .keys import DEFAULT_DERIVATION_LABEL, DEFAULT_KEY_CURVE, DEFAULT_KEY_NAME

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}

_ENV_VARS = {
    "key_service_url": "FEDVAULT_KEY_SERVICE_URL",
    "key_service_token": "FEDVAULT_KEY_SERVICE_TOKEN",
    "key_service_timeout": "FEDVAULT_KEY_SERVICE_TIMEOUT",
    "key_curve": "FEDVAULT_KEY_CURVE",
    "key_name": "FEDVAULT_KEY_NAME",
    "derivation_label": "FEDVAULT_DERIVATION_LABEL",
    "local_master_secret": "FEDVAULT_MASTER_SECRET",
    "abort_on_undecodable_update": "FEDVAULT_ABORT_ON_UNDECODABLE",
    "default_mode": "FEDVAULT_MODE",
}


def _config_path() -> Path:
    override = os.environ.get("FEDVAULT_CONFIG", "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".fedvault" / "config.json"


def load_config() -> dict[str, Any]:
    """Load the local config file, or ``{}`` if it is missing or unreadable."""
    path = _config_path()
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError):
            logger.warning("Ignoring unreadable config file %s", path)
            return {}
        return data if isinstance(data, dict) else {}
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Persist *config* to the config file."""
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n")
    # May hold the key-service token or the local master secret
    path.chmod(0o600)


@dataclass
class Settings:
    key_service_url: str = ""
    key_service_token: str = ""
    key_service_timeout: float = 30.0
    key_curve: str = DEFAULT_KEY_CURVE
    key_name: str = DEFAULT_KEY_NAME
    derivation_label: str = DEFAULT_DERIVATION_LABEL.decode("ascii")
    local_master_secret: str = ""
    abort_on_undecodable_update: bool = True
    default_mode: str = "PLAIN"

    @classmethod
    def load(cls, **overrides: Any) -> "Settings":
        """Resolve every field from overrides, environment, file and defaults."""
        file_config = load_config()
        values: dict[str, Any] = {}
        for f in fields(cls):
            if overrides.get(f.name) is not None:
                raw: Any = overrides[f.name]
            elif os.environ.get(_ENV_VARS[f.name]):
                raw = os.environ[_ENV_VARS[f.name]]
            elif f.name in file_config:
                raw = file_config[f.name]
            else:
                continue
            values[f.name] = _coerce(f.name, raw, f.default)
        return cls(**values)

    @property
    def master_secret_bytes(self) -> Optional[bytes]:
        if not self.local_master_secret:
            return None
        return bytes.fromhex(self.local_master_secret)


def _coerce(name: str, raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in _TRUE_VALUES
    if isinstance(default, float):
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid value for {name}: {raw!r}") from None
    return str(raw)
