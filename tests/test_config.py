"""
Tests for config persistence and counter construction.
"""

import json

import pytest

from winnow.config import (
    DEFAULT_CONFIG,
    counter_from_config,
    load_config,
    save_config,
)
from winnow.errors import ConfigError
from winnow.tokenizer import ApproximateCounter, TiktokenCounter


class TestLoadConfig:
    """Tests for loading config files."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.json")
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_partial_file_merged_with_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"budget": 1234}))
        config = load_config(path)
        assert config["budget"] == 1234
        assert config["tokenizer"] == "approximate"

    def test_invalid_json_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert load_config(path) == DEFAULT_CONFIG

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = DEFAULT_CONFIG.copy()
        config["budget"] = 500
        config["tokenizer"] = "tiktoken"
        assert save_config(config, path) is True
        assert load_config(path) == config


class TestCounterFromConfig:
    """Tests for building counters from config."""

    def test_default_is_approximate(self):
        counter = counter_from_config(DEFAULT_CONFIG)
        assert isinstance(counter, ApproximateCounter)
        assert counter.message_overhead() == 4

    def test_approximate_options(self):
        counter = counter_from_config(
            {"tokenizer": "approximate", "bytes_per_token": 2, "overhead": 0}
        )
        assert counter.count("abcd") == 2
        assert counter.message_overhead() == 0

    def test_tiktoken(self):
        counter = counter_from_config({"tokenizer": "tiktoken", "model": "gpt-4"})
        assert isinstance(counter, TiktokenCounter)
        assert counter.model == "gpt-4"
        assert counter.message_overhead() == 3

    def test_tiktoken_overhead(self):
        counter = counter_from_config({"tokenizer": "TikToken", "overhead": 6})
        assert counter.message_overhead() == 6

    def test_unknown_tokenizer(self):
        with pytest.raises(ConfigError):
            counter_from_config({"tokenizer": "sentencepiece"})

    def test_bad_ratio(self):
        with pytest.raises(ConfigError):
            counter_from_config({"tokenizer": "approximate", "bytes_per_token": 0})
