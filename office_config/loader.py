"""
Configuration Loader (``office_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``office_config.schema`` dataclasses.  Runtime callers go through
``office_config.get_active_config()`` instead.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range or unknown values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from office_config.schema import ModuleDef, OfficeConfig, SeriesFormatDef, TaxDefaults
from office_kernel.domain.roles import ModuleKey


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_rate(value: Any, name: str) -> Decimal:
    """Parse a percentage in 0..100 from a YAML scalar (quoted or bare)."""
    try:
        rate = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name}: not a number: {value!r}") from exc
    if rate < 0 or rate > 100:
        raise ValueError(f"{name}: rate must be within 0..100, got {rate}")
    return rate


def parse_module(data: dict[str, Any]) -> ModuleDef:
    key = data["key"]
    if ModuleKey.parse(key) is None:
        raise ValueError(f"Unknown module key in catalogue: {key!r}")
    return ModuleDef(key=key, label=data.get("label", key), core=bool(data.get("core", False)))


def parse_series(data: dict[str, Any]) -> SeriesFormatDef:
    width = int(data.get("width", 0))
    if width < 0:
        raise ValueError(f"Series {data['series']!r}: width must be >= 0")
    return SeriesFormatDef(series=data["series"], prefix=str(data["prefix"]), width=width)


def parse_tax(data: dict[str, Any]) -> TaxDefaults:
    defaults = TaxDefaults()
    return TaxDefaults(
        **{
            name: parse_rate(data[name], name) if name in data else getattr(defaults, name)
            for name in (
                "vat_standard_rate",
                "vat_reduced_rate",
                "withholding_unverified_rate",
                "withholding_verified_net_rate",
                "withholding_verified_gross_rate",
            )
        }
    )


def parse_config(data: dict[str, Any]) -> OfficeConfig:
    """
    Parse a complete configuration dict.

    Postconditions:
        - ``checksum`` is the SHA-256 of the canonical source dict.
    """
    ttl = float(data.get("settings_cache_ttl_seconds", 30))
    if ttl < 0:
        raise ValueError("settings_cache_ttl_seconds must be >= 0")
    attempts = int(data.get("transient_retry_attempts", 3))
    if attempts < 1:
        raise ValueError("transient_retry_attempts must be >= 1")

    modules = tuple(parse_module(m) for m in data.get("modules", []))
    if len({m.key for m in modules}) != len(modules):
        raise ValueError("Duplicate module key in catalogue")

    return OfficeConfig(
        version=str(data["version"]),
        modules=modules,
        series=tuple(parse_series(s) for s in data.get("series", [])),
        tax=parse_tax(data.get("tax", {})),
        settings_cache_ttl_seconds=ttl,
        transient_retry_attempts=attempts,
        database_url=data.get("database_url"),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    SHA-256 of the canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
