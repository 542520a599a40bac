"""YAML configuration loader.

Reads the ``home`` section of a YAML file on top of the defaults (and
of the PIOHOME_* environment, when requested). Unknown keys are logged
and ignored.

Example YAML:
    home:
      host: 127.0.0.1
      port_begin: 8010
      port_end: 8050
      launch_timeout_seconds: 30
      autoshutdown_timeout_seconds: 3600
      executable: /opt/pio/bin/platformio
"""
from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

import yaml

from .config import HomeConfig

logger = logging.getLogger(__name__)


def load_yaml_config(
    path: str | Path,
    base: HomeConfig | None = None,
) -> HomeConfig:
    """Load a HomeConfig from ``path``.

    Raises FileNotFoundError when the file is missing and ValueError when
    it does not hold a mapping or produces an invalid configuration.
    """
    config_path = Path(path)
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")

    section = raw.get("home") or {}
    if not isinstance(section, dict):
        raise ValueError(f"{config_path}: 'home' must be a mapping")

    known = HomeConfig.field_names()
    unknown = sorted(set(section) - known)
    if unknown:
        logger.warning(
            "Ignoring unknown home config keys in %s: %s",
            config_path, ", ".join(unknown),
        )
    overrides = {k: v for k, v in section.items() if k in known}
    config = replace(base or HomeConfig(), **overrides)
    logger.info("Loaded home config from %s (%d key(s))", config_path, len(overrides))
    return config
