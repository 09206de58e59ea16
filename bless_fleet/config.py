"""Configuration for the bless-fleet daemon.

Two inputs exist, both read once at startup:

- ``FleetConfig``: timing and endpoint tunables, with defaults that match the
  gateway's expectations and optional overrides from ``BLESS_FLEET_*``
  environment variables.
- The account file: a JSON (or YAML) list of ``{"token": ..., "proxy": ...}``
  entries, loaded into immutable ``AccountConfig`` models.

Environment:
    BLESS_FLEET_API_BASE_URL: Gateway base URL
    BLESS_FLEET_IP_LOOKUP_URL: Address-discovery endpoint used with proxies
    BLESS_FLEET_PING_INTERVAL: Seconds between heartbeats (default: 120)
    BLESS_FLEET_RESTART_DELAY: Seconds before a failed node restarts (default: 240)
    BLESS_FLEET_MAX_PING_ERRORS: Consecutive ping failures before restart (default: 3)
    BLESS_FLEET_REQUEST_TIMEOUT: Total timeout per gateway request (default: 30)
    BLESS_FLEET_CLOSE_TIMEOUT: Timeout per session close at shutdown (default: 15)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

import yaml
from pydantic import ValidationError

from bless_fleet.errors import ConfigurationError
from bless_fleet.models import AccountConfig

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://gateway-run.bls.dev/api/v1"
DEFAULT_IP_LOOKUP_URL = "https://tight-block-2413.txlabs.workers.dev"

_ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "api_base_url": ("BLESS_FLEET_API_BASE_URL", str),
    "ip_lookup_url": ("BLESS_FLEET_IP_LOOKUP_URL", str),
    "ping_interval": ("BLESS_FLEET_PING_INTERVAL", float),
    "restart_delay": ("BLESS_FLEET_RESTART_DELAY", float),
    "max_ping_errors": ("BLESS_FLEET_MAX_PING_ERRORS", int),
    "request_timeout": ("BLESS_FLEET_REQUEST_TIMEOUT", float),
    "close_timeout": ("BLESS_FLEET_CLOSE_TIMEOUT", float),
}


@dataclass(frozen=True)
class FleetConfig:
    """Tunables shared by every supervisor in the fleet."""
    api_base_url: str = DEFAULT_API_BASE_URL
    ip_lookup_url: str = DEFAULT_IP_LOOKUP_URL
    ping_interval: float = 120.0  # seconds between heartbeats
    restart_delay: float = 240.0  # seconds before a failed node retries
    max_ping_errors: int = 3  # consecutive ping failures before restart
    request_timeout: float = 30.0
    close_timeout: float = 15.0

    def __post_init__(self) -> None:
        if self.max_ping_errors < 1:
            raise ConfigurationError(
                "max_ping_errors must be at least 1",
                context={"max_ping_errors": self.max_ping_errors},
            )
        for name in ("ping_interval", "restart_delay", "request_timeout", "close_timeout"):
            if getattr(self, name) < 0:
                raise ConfigurationError(
                    f"{name} must not be negative",
                    context={name: getattr(self, name)},
                )

    @classmethod
    def from_env(cls, **overrides: Any) -> "FleetConfig":
        """Build a config from defaults, environment, then explicit overrides.

        Environment values that fail to parse are logged and ignored.
        """
        values: Dict[str, Any] = {}
        for field_name, (env_name, parse) in _ENV_OVERRIDES.items():
            raw = (os.environ.get(env_name) or "").strip()
            if not raw:
                continue
            try:
                values[field_name] = parse(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {env_name}={raw!r}")

        known = {f.name for f in fields(cls)}
        values.update({k: v for k, v in overrides.items() if k in known and v is not None})
        return cls(**values)


def load_accounts(path: str | Path) -> Tuple[AccountConfig, ...]:
    """Load the account list from a JSON or YAML file.

    Args:
        path: Path to the account file. ``.yaml``/``.yml`` files are parsed
            with PyYAML, everything else as JSON.

    Returns:
        Immutable tuple of account entries, in file order.

    Raises:
        ConfigurationError: The file is missing, malformed, empty, or holds an
            invalid entry.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError("Config file not found", config_path=str(config_path))

    try:
        raw_text = config_path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Failed to read the config file: {e}", config_path=str(config_path)) from e

    try:
        if config_path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(raw_text)
        else:
            data = json.loads(raw_text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to parse config file: {e}", config_path=str(config_path)) from e

    if not isinstance(data, list):
        raise ConfigurationError(
            "Config file must contain a list of accounts",
            config_path=str(config_path),
        )
    if not data:
        raise ConfigurationError("Config file lists no accounts", config_path=str(config_path))

    accounts = []
    for index, entry in enumerate(data):
        try:
            accounts.append(AccountConfig.model_validate(entry))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid account entry: {e.errors()[0].get('msg', e)}",
                config_path=str(config_path),
                context={"index": index},
            ) from e

    return tuple(accounts)
