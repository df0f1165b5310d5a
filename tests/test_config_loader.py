"""Tests for config loader functionality."""

import os
import pytest
import tempfile
import yaml

from autograde.libs.config_loader import load_configs, load_default_configs, get_config


def test_load_single_config():
    """Test loading a single config file."""
    config_data = {
        "gateway": {"url": "https://gw.test/ai"},
        "logging": {"level": "DEBUG"}
    }

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        yaml.dump(config_data, f)
        temp_path = f.name

    try:
        result = load_configs(temp_path)
        assert result == config_data
    finally:
        os.unlink(temp_path)


def test_load_multiple_configs_merge():
    """Later files override earlier ones key by key."""
    config1 = {
        "gateway": {"url": "https://gw.test/ai", "key": ""},
        "grading": {"default_quality": "balanced"}
    }
    config2 = {
        "gateway": {"key": "secret"},
        "grading": {"autorelease": True}
    }

    expected = {
        "gateway": {"url": "https://gw.test/ai", "key": "secret"},
        "grading": {"default_quality": "balanced", "autorelease": True}
    }

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f1:
        yaml.dump(config1, f1)
        temp_path1 = f1.name

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f2:
        yaml.dump(config2, f2)
        temp_path2 = f2.name

    try:
        result = load_configs(temp_path1, temp_path2)
        assert result == expected
    finally:
        os.unlink(temp_path1)
        os.unlink(temp_path2)


def test_load_missing_file():
    """Test that missing files are skipped with warning."""
    config_data = {"gateway": {"url": "https://gw.test/ai"}}

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        yaml.dump(config_data, f)
        temp_path = f.name

    try:
        result = load_configs(temp_path, "nonexistent.yaml")
        assert result == config_data
    finally:
        os.unlink(temp_path)


def test_no_configs_loaded():
    """Test that ValueError is raised when no configs are loaded."""
    with pytest.raises(ValueError, match="No configs loaded"):
        load_configs("nonexistent1.yaml", "nonexistent2.yaml")


def test_invalid_yaml_type():
    """Test that TypeError is raised for non-dict YAML."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write("just a string, not a dict")
        temp_path = f.name

    try:
        with pytest.raises(TypeError, match="must be a dict"):
            load_configs(temp_path)
    finally:
        os.unlink(temp_path)


def test_get_config():
    """Test getting config values by dot-separated key."""
    config = {
        "gateway": {
            "url": "https://gw.test/ai",
            "timeout": 30,
        },
        "activities": {"assign": {12: {"enabled": True}}},
    }

    assert get_config("gateway.url", config) == "https://gw.test/ai"
    assert get_config("gateway.timeout", config) == 30
    assert get_config("activities.assign.12.enabled", config) is True

    with pytest.raises(KeyError):
        get_config("nonexistent.key", config)

    with pytest.raises(KeyError):
        get_config("gateway.nonexistent", config)


def test_get_config_default():
    config = {"gateway": {"url": "https://gw.test/ai"}}

    assert get_config("gateway.key", config, default="") == ""
    assert get_config("grading.autorelease", config, default=False) is False
    assert get_config("gateway.url.deeper", config, default=None) is None


def test_load_default_configs_integration():
    """The shipped default.yaml loads and carries the gateway section."""
    project_root = os.path.dirname(os.path.dirname(__file__))
    default_config_path = os.path.join(project_root, "config", "default.yaml")

    if os.path.exists(default_config_path):
        config = load_default_configs()
        assert isinstance(config, dict)
        assert "gateway" in config
        assert get_config("grading.default_quality", config) == "balanced"
