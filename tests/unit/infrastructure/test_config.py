"""
Unit tests for infrastructure/config.py - TOML engine configuration
"""
from pathlib import Path

import pytest

from infrastructure.config import (
    DEFAULT_CONFIG_PATH,
    EngineConfig,
    config_from_dict,
    load_config,
    load_toml_config,
)


def test_bundled_config_matches_defaults():
    """The shipped depgraph.toml holds the built-in defaults."""
    assert DEFAULT_CONFIG_PATH.exists()
    assert load_config() == EngineConfig()


def test_override_file(tmp_path):
    path = tmp_path / "depgraph.toml"
    path.write_text(
        "[engine]\n"
        "bottleneck_threshold = 4\n"
        'default_dependency_type = "finish-to-start"\n'
        'changelog_path = "logs"\n'
    )

    config = load_config(path)

    assert config.bottleneck_threshold == 4
    assert config.long_chain_threshold == 5
    assert config.default_dependency_type == "finish-to-start"
    assert config.changelog_path == Path("logs")


def test_missing_file_warns_and_uses_defaults(tmp_path):
    with pytest.warns(UserWarning, match="Failed to load config"):
        config = load_config(tmp_path / "nope.toml")

    assert config == EngineConfig()


def test_invalid_toml_warns(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("[engine\n")

    with pytest.warns(UserWarning):
        assert load_toml_config(path) == {}


def test_engine_must_be_a_table(tmp_path):
    path = tmp_path / "flat.toml"
    path.write_text('engine = "fast"\n')

    with pytest.warns(UserWarning, match="must be a table"):
        assert load_config(path) == EngineConfig()


def test_unknown_keys_are_ignored():
    with pytest.warns(UserWarning, match="colour"):
        config = config_from_dict({"colour": "blue", "long_chain_threshold": 7})

    assert config.long_chain_threshold == 7


def test_unknown_default_type_falls_back_to_blocking():
    with pytest.warns(UserWarning):
        config = EngineConfig(default_dependency_type="whenever")

    assert config.default_dependency_type == "blocking"


def test_with_overrides_copies():
    base = EngineConfig()

    tuned = base.with_overrides(bottleneck_threshold=10)

    assert tuned.bottleneck_threshold == 10
    assert base.bottleneck_threshold == 3
