"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Reads a YAML settings file, applies environment overrides, and returns a
validated ``LedgerConfig``.

Precedence (highest first)
--------------------------
1. ``STOCK_LEDGER_<FIELD>`` environment variables (e.g.
   ``STOCK_LEDGER_MISSING_ARRIVAL_POLICY=last``).
2. ``DATABASE_URL`` for the database URL only.
3. The YAML file: ``STOCK_LEDGER_CONFIG`` if set, else the packaged
   ``defaults.yaml``.
4. ``LedgerConfig`` field defaults.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, bad value, or unparseable env override  -> ``ValueError``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from stock_config.schema import LedgerConfig

_logger = logging.getLogger("stock_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_PATH_ENV = "STOCK_LEDGER_CONFIG"
ENV_PREFIX = "STOCK_LEDGER_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

_active_config: LedgerConfig | None = None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def _coerce(name: str, raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{ENV_PREFIX}{name.upper()}: expected a boolean, got {raw!r}")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            raise ValueError(
                f"{ENV_PREFIX}{name.upper()}: expected an integer, got {raw!r}"
            ) from None
    return raw


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect config values from the environment."""
    environ = os.environ if environ is None else environ
    defaults = LedgerConfig()
    overrides: dict[str, Any] = {}

    if environ.get("DATABASE_URL"):
        overrides["database_url"] = environ["DATABASE_URL"]

    for f in fields(LedgerConfig):
        key = f"{ENV_PREFIX}{f.name.upper()}"
        if key in environ:
            overrides[f.name] = _coerce(f.name, environ[key], getattr(defaults, f.name))

    return overrides


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """
    Build a ``LedgerConfig`` from YAML plus environment overrides.

    Args:
        path: YAML file to read.  Defaults to ``$STOCK_LEDGER_CONFIG`` or
            the packaged defaults.
        environ: Environment mapping.  Defaults to ``os.environ``.
    """
    environ = os.environ if environ is None else environ
    if path is None:
        configured = environ.get(CONFIG_PATH_ENV)
        path = Path(configured) if configured else DEFAULT_CONFIG_PATH

    data = load_yaml_file(path)
    overrides = env_overrides(environ)
    data.update(overrides)

    config = LedgerConfig.from_dict(data)

    _logger.info(
        "stock_ledger_config_loaded",
        extra={
            "config_path": str(path),
            "env_overrides": sorted(overrides),
            "missing_arrival_policy": config.missing_arrival_policy,
            "use_lot_arrival_fallback": config.use_lot_arrival_fallback,
        },
    )
    return config


def get_active_config() -> LedgerConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _active_config
    if _active_config is None:
        _active_config = load_config()
    return _active_config


def set_active_config(config: LedgerConfig | None) -> None:
    """Replace (or with None, forget) the process-wide configuration."""
    global _active_config
    _active_config = config
