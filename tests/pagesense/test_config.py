import json

import click
import pytest

from pagesense.command.command_utils import load_config, parse_point, resolve_env_vars
from pagesense.config.pagesense_config import PageSenseConfig, StabilityConfig
from pagesense.util.file_utils import from_json_or_yaml


def test_defaults():
    config = PageSenseConfig()
    assert config.stability.stable_samples == 3
    assert config.scroll.attempts == 3
    assert config.pool.connect_attempts == 3
    assert config.to_dict()["segmenter"]["loading_ratio"] == 0.25


def test_from_dict_tolerates_bad_values():
    config = PageSenseConfig.from_dict(
        {
            "pool": {"connect_attempts": "zero", "idle_ttl": -5},
            "stability": {"timeout": "2.5", "use_overlays": "no", "stable_samples": 0},
            "scroll": "not a mapping",
        }
    )
    assert config.pool.connect_attempts == 3
    assert config.pool.idle_ttl == 1.0
    assert config.stability.timeout == 2.5
    assert config.stability.use_overlays is False
    assert config.stability.stable_samples == 1
    assert config.scroll.attempts == 3


def test_from_file_reads_nested_section(tmp_path):
    path = tmp_path / "pagesense.yaml"
    path.write_text("pagesense:\n  scroll:\n    attempts: 7\n  locator:\n    apply_viewport: false\n")
    config = PageSenseConfig.from_file(path)
    assert config.scroll.attempts == 7
    assert config.locator.apply_viewport is False


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("PAGESENSE_STABILITY_TIMEOUT_SECS", "4.5")
    monkeypatch.setenv("PAGESENSE_VIEWPORT_WIDTH", "1920")
    monkeypatch.setenv("PAGESENSE_STABILITY_OVERLAYS", "off")
    monkeypatch.setenv("PAGESENSE_CONNECT_ATTEMPTS", "not-a-number")
    config = PageSenseConfig.from_env()
    assert config.stability.timeout == 4.5
    assert config.locator.viewport_width == 1920
    assert config.stability.use_overlays is False
    assert config.pool.connect_attempts == 3


def test_json_config_with_env_var_reference(tmp_path, monkeypatch):
    monkeypatch.setenv("BROWSER_CONNECT_TIMEOUT", "12")
    path = tmp_path / "pagesense.json"
    path.write_text(json.dumps({"pool": {"connect_timeout_env_var": "BROWSER_CONNECT_TIMEOUT"}}))
    config = load_config(str(path))
    assert config.pool.connect_timeout == 12.0


def test_resolve_env_vars_keeps_explicit_values(monkeypatch):
    monkeypatch.setenv("SOME_TIMEOUT", "99")
    data = resolve_env_vars({"timeout": 3, "timeout_env_var": "SOME_TIMEOUT"})
    assert data["timeout"] == 3


def test_unsupported_config_format(tmp_path):
    path = tmp_path / "pagesense.toml"
    path.write_text("x = 1")
    with pytest.raises(ValueError):
        from_json_or_yaml(path)
    with pytest.raises(FileNotFoundError):
        from_json_or_yaml(tmp_path / "missing.yaml")


def test_stability_from_dict_ignores_unknown_keys():
    assert StabilityConfig.from_dict({"bogus": 1}) == StabilityConfig()


def test_parse_point():
    assert parse_point("40, 210.5, tr") == {"x": 40.0, "y": 210.5, "tag": "tr"}
    with pytest.raises(click.BadParameter):
        parse_point("40,210")
    with pytest.raises(click.BadParameter):
        parse_point("a,b,tr")
