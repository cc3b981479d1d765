# runtime settings: defaults <- optional YAML file <- environment
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import yaml

from core.money import to_decimal
from db.database import DB_PATH, DEFAULT_TIMEOUT

ENV_PREFIX = "POS_"


@dataclass(frozen=True)
class Settings:
    db_path: str = DB_PATH
    tax_rate: Decimal = Decimal("0.13")
    currency_symbol: str = "₡"
    currency_exponent: int = 2
    session_days: int = 7
    store_timeout: float = DEFAULT_TIMEOUT
    business_name: str = "Till"
    log_level: str = "INFO"

    def __post_init__(self):
        if not Decimal(0) <= self.tax_rate < Decimal(1):
            raise ValueError(f"tax_rate must be in [0, 1), got {self.tax_rate}")
        if self.currency_exponent < 0:
            raise ValueError("currency_exponent cannot be negative")
        if self.session_days < 1:
            raise ValueError("session_days must be at least 1")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log_level: {self.log_level}")


def _coerce(name: str, value: Any) -> Any:
    if name == "tax_rate":
        return to_decimal(value)
    if name in ("currency_exponent", "session_days"):
        return int(value)
    if name == "store_timeout":
        return float(value)
    return str(value)


def _from_mapping(base: Settings, values: Mapping[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    changes: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            raise ValueError(f"Unknown setting: {key}")
        changes[key] = _coerce(key, value)
    return replace(base, **changes)


def load_settings(
    path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> Settings:
    """
    Build Settings from defaults, then the YAML file at `path` (or $POS_CONFIG),
    then POS_* environment variables, e.g. POS_TAX_RATE=0.13.
    """
    environ = os.environ if environ is None else environ
    settings = Settings()

    path = path or environ.get("POS_CONFIG")
    if path:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping")
        settings = _from_mapping(settings, data)

    overrides = {
        f.name: environ[ENV_PREFIX + f.name.upper()]
        for f in fields(Settings)
        if ENV_PREFIX + f.name.upper() in environ
    }
    if environ.get("DEBUG"):
        overrides["log_level"] = "DEBUG"
    return _from_mapping(settings, overrides)
