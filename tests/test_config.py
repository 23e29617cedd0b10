"""TOML configuration loading."""

from __future__ import annotations

import pytest

from shared.config import StalkerKitConfig


def test_defaults():
    config = StalkerKitConfig()
    assert config.portal.timezone == "UTC"
    assert config.portal.x_user_agent == "Model: MAG250; Link: WiFi"
    assert config.discovery.max_attempts == 100
    assert config.discovery.attempt_timeout == 5.0
    assert config.discovery.sample_size == 10
    assert config.batch.max_batch_size == 20
    assert config.batch.default_count == 5


def test_load_partial_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        '[portal]\ntimezone = "Europe/Rome"\nunknown_key = 1\n\n'
        "[discovery]\nmax_attempts = 25\nattempt_delay = 0.5\n\n"
        '[global]\nlog_level = "DEBUG"\n'
    )

    config = StalkerKitConfig.load(path)

    assert config.portal.timezone == "Europe/Rome"
    assert config.portal.request_timeout == 10.0
    assert config.discovery.max_attempts == 25
    assert config.discovery.attempt_delay == 0.5
    assert config.global_settings.log_level == "DEBUG"
    assert config.batch.max_batch_size == 20
    assert config.to_dict()["discovery"]["max_attempts"] == 25


def test_missing_explicit_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        StalkerKitConfig.load(tmp_path / "nope.toml")
