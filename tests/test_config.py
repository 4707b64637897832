"""Unit tests for sitewalker.config — WalkerConfig."""

from __future__ import annotations

from pathlib import Path

import pytest

from sitewalker.config import WalkerConfig, WalkerConfigError
from sitewalker.engine.retry import RetryPolicy
from sitewalker.models import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_VIEWPORT,
)


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestWalkerConfigDefaults:
    """WalkerConfig should have sensible defaults for every field."""

    def test_default_timeouts(self):
        cfg = WalkerConfig()
        assert cfg.timeout_ms == DEFAULT_TIMEOUT_MS
        assert cfg.network_idle_timeout_ms == 30_000

    def test_default_retry_policy(self):
        assert WalkerConfig().retry_policy() == RetryPolicy(DEFAULT_MAX_RETRIES, DEFAULT_BASE_DELAY_MS)

    def test_default_browser(self):
        cfg = WalkerConfig()
        assert cfg.browser == "chromium"
        assert cfg.headless is True
        assert cfg.viewport == DEFAULT_VIEWPORT

    def test_default_checkpoints(self):
        cfg = WalkerConfig()
        assert cfg.checkpoints_enabled is True
        assert cfg.full_page_screenshots is True
        assert cfg.screenshot_prefix is None
        assert cfg.screenshot_dir == Path("screenshots")

    def test_default_missing_element_policy_is_fail(self):
        assert WalkerConfig().missing_element_policy == "fail"


# ---------------------------------------------------------------------------
# 2. Validation
# ---------------------------------------------------------------------------

class TestWalkerConfigValidation:
    """Out-of-range values raise WalkerConfigError at construction."""

    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"timeout_ms": 0}, "timeout_ms"),
            ({"network_idle_timeout_ms": -1}, "network_idle_timeout_ms"),
            ({"max_retries": 0}, "max_retries"),
            ({"base_delay_ms": -5}, "base_delay_ms"),
            ({"missing_element_policy": "skip"}, "missing_element_policy"),
            ({"browser": "netscape"}, "browser"),
            ({"viewport": (0, 720)}, "viewport"),
        ],
    )
    def test_invalid_values(self, kwargs, field):
        with pytest.raises(WalkerConfigError, match=field):
            WalkerConfig(**kwargs)

    def test_zero_base_delay_allowed(self):
        assert WalkerConfig(base_delay_ms=0).base_delay_ms == 0


# ---------------------------------------------------------------------------
# 3. Loading from file
# ---------------------------------------------------------------------------

class TestWalkerConfigFromFile:

    def test_loads_all_fields(self, tmp_path: Path, sample_config_yaml):
        path = tmp_path / "sitewalker.yaml"
        path.write_text(sample_config_yaml)
        cfg = WalkerConfig.from_file(path)

        assert cfg.timeout_ms == 15_000
        assert cfg.network_idle_timeout_ms == 8_000
        assert cfg.retry_policy() == RetryPolicy(4, 250)
        assert cfg.screenshot_prefix == "shop"
        assert cfg.full_page_screenshots is False
        assert cfg.missing_element_policy == "ignore"
        assert cfg.browser == "firefox"
        assert cfg.headless is False
        assert cfg.viewport == (1920, 1080)

    def test_screenshot_dir_relative_to_config(self, tmp_path: Path, sample_config_yaml):
        path = tmp_path / "sitewalker.yaml"
        path.write_text(sample_config_yaml)
        assert WalkerConfig.from_file(path).screenshot_dir == tmp_path / "shots"

    def test_default_screenshot_dir_next_to_config(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("timeout_ms: 1000\n")
        assert WalkerConfig.from_file(path).screenshot_dir == tmp_path / "screenshots"

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("")
        assert WalkerConfig.from_file(path).timeout_ms == DEFAULT_TIMEOUT_MS

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(WalkerConfigError, match="not found"):
            WalkerConfig.from_file(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("timeout_ms: [1, 2\n")
        with pytest.raises(WalkerConfigError, match="not valid YAML"):
            WalkerConfig.from_file(path)

    def test_non_mapping(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(WalkerConfigError, match="mapping"):
            WalkerConfig.from_file(path)

    def test_non_numeric_timeout(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("timeout_ms: soon\n")
        with pytest.raises(WalkerConfigError, match="numeric"):
            WalkerConfig.from_file(path)

    def test_out_of_range_value_in_file(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("max_retries: 0\n")
        with pytest.raises(WalkerConfigError, match="max_retries"):
            WalkerConfig.from_file(path)

    def test_non_numeric_viewport(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("viewport:\n  width: wide\n  height: 720\n")
        with pytest.raises(WalkerConfigError, match="numeric"):
            WalkerConfig.from_file(path)

    def test_viewport_must_be_mapping(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("viewport: 1920x1080\n")
        with pytest.raises(WalkerConfigError, match="viewport must be a mapping"):
            WalkerConfig.from_file(path)

    def test_partial_viewport_keeps_default_height(self, tmp_path: Path):
        path = tmp_path / "sitewalker.yaml"
        path.write_text("viewport:\n  width: 1024\n")
        assert WalkerConfig.from_file(path).viewport == (1024, DEFAULT_VIEWPORT[1])
