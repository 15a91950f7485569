"""
office_config -- single public entrypoint for configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``OfficeConfig``.

Architecture position:
    Configuration -- sits above ``office_kernel`` and ``office_engines`` and
    below ``office_services``.  The kernel MUST NEVER import from here;
    ``bridges`` translates config values into kernel inputs.

Sources, later wins:
    1. the packaged ``defaults/office.yaml``
    2. the file named by ``OFFICE_CONFIG_PATH`` (or the ``path`` argument)
    3. ``OFFICE_DATABASE_URL`` for the database URL

Audit relevance:
    Every call emits an ``office_config_loaded`` log entry with the version
    and checksum, tying behaviour to the exact configuration in force.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from office_config.loader import load_yaml_file, parse_config
from office_config.schema import ModuleDef, OfficeConfig, SeriesFormatDef, TaxDefaults
from office_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "office.yaml"

CONFIG_PATH_ENV = "OFFICE_CONFIG_PATH"
DATABASE_URL_ENV = "OFFICE_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> OfficeConfig:
    """
    The ONLY public configuration entrypoint.

    Raises:
        FileNotFoundError: the named file does not exist.
        ValueError: validation of the file failed.
    """
    chosen = path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(Path(chosen)))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(config, database_url=database_url)

    _logger.info(
        "office_config_loaded",
        extra={
            "config_path": str(chosen),
            "config_version": config.version,
            "checksum": config.checksum,
            "module_count": len(config.modules),
        },
    )
    return config


__all__ = [
    "get_active_config",
    "ModuleDef",
    "OfficeConfig",
    "SeriesFormatDef",
    "TaxDefaults",
]
