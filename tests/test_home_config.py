from __future__ import annotations

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from piohome.home.config import HomeConfig
from piohome.home.yaml_config import load_yaml_config


def test_defaults_match_launch_constants() -> None:
    cfg = HomeConfig()
    assert cfg.host == "127.0.0.1"
    assert (cfg.port_begin, cfg.port_end) == (8010, 8050)
    assert cfg.max_attempts == 3
    assert cfg.launch_timeout_seconds == 30.0
    assert cfg.autoshutdown_timeout_seconds == 3600
    assert cfg.version_timeout_seconds == 1.0
    assert cfg.sweep_grace_seconds == 2.0


def test_from_env_overrides() -> None:
    env = {
        "PIOHOME_HOST": "home.example.com",
        "PIOHOME_SECURE": "yes",
        "PIOHOME_PORT_BEGIN": "9000",
        "PIOHOME_PORT_END": "9010",
        "PIOHOME_LAUNCH_TIMEOUT": "12.5",
        "PIOHOME_MAX_ATTEMPTS": "5",
    }
    with patch.dict(os.environ, env, clear=False):
        cfg = HomeConfig.from_env()
    assert cfg.host == "home.example.com"
    assert cfg.secure is True
    assert (cfg.port_begin, cfg.port_end) == (9000, 9010)
    assert cfg.launch_timeout_seconds == 12.5
    assert cfg.max_attempts == 5


def test_invalid_range_rejected() -> None:
    with pytest.raises(ValueError):
        HomeConfig(port_begin=8050, port_end=8010)
    with pytest.raises(ValueError):
        HomeConfig(port_begin=0, port_end=10)
    with pytest.raises(ValueError):
        HomeConfig(max_attempts=0)


def test_yaml_config_loads_home_section() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "piohome.yaml"
        config_path.write_text(
            "home:\n"
            "  port_begin: 8100\n"
            "  port_end: 8120\n"
            "  executable: /opt/pio/bin/pio\n"
            "  bogus_key: 1\n"
        )
        cfg = load_yaml_config(config_path)
    assert (cfg.port_begin, cfg.port_end) == (8100, 8120)
    assert cfg.executable == "/opt/pio/bin/pio"
    assert cfg.host == "127.0.0.1"


def test_yaml_config_layers_on_base() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "piohome.yaml"
        config_path.write_text("home:\n  sweep_grace_seconds: 0.5\n")
        cfg = load_yaml_config(config_path, base=HomeConfig(host="10.0.0.2"))
    assert cfg.host == "10.0.0.2"
    assert cfg.sweep_grace_seconds == 0.5


def test_yaml_config_rejects_non_mapping() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "piohome.yaml"
        config_path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_config(config_path)


def test_empty_yaml_gives_defaults() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "piohome.yaml"
        config_path.write_text("")
        assert load_yaml_config(config_path) == HomeConfig()
