"""Tests for contextor.settings — TOML engine configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from contextor.errors import ConfigurationError
from contextor.schemas import EngineConfig, FileKind, SelectionStrategy, TaskType
from contextor.settings import default_config_path, load_engine_config


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "engine.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadEngineConfig:
    def test_shipped_defaults_match_builtin_values(self):
        assert default_config_path().exists()
        assert load_engine_config() == EngineConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_engine_config(tmp_path / "nope.toml")

    def test_partial_file_keeps_other_defaults(self, tmp_path):
        path = _write(tmp_path, '[optimizer]\ndefault_strategy = "relevance"\n')
        config = load_engine_config(path)
        assert config.optimizer.default_strategy == SelectionStrategy.RELEVANCE
        assert config.optimizer.default_max_tokens == 8000
        assert config.cache == EngineConfig().cache

    def test_empty_file(self, tmp_path):
        assert load_engine_config(_write(tmp_path, "")) == EngineConfig()

    def test_task_type_boosts(self, tmp_path):
        path = _write(tmp_path, "[scorer.task_type_boosts.debug]\ntest = 0.9\n")
        config = load_engine_config(path)
        assert config.scorer.task_type_boosts == {TaskType.DEBUG: {FileKind.TEST: 0.9}}

    def test_weights_not_summing_to_one(self, tmp_path):
        path = _write(tmp_path, "[scorer.weights]\nkeyword_match = 0.9\n")
        with pytest.raises(ConfigurationError, match="sum to 1.0"):
            load_engine_config(path)

    def test_out_of_range_ratio(self, tmp_path):
        path = _write(tmp_path, "[adaptive]\nunderuse_ratio = 1.5\n")
        with pytest.raises(ConfigurationError, match="underuse_ratio"):
            load_engine_config(path)

    def test_wrong_type_is_configuration_error(self, tmp_path):
        path = _write(tmp_path, '[cache]\nmax_entries = "many"\n')
        with pytest.raises(ConfigurationError, match="Invalid engine config"):
            load_engine_config(path)

    def test_invalid_toml(self, tmp_path):
        path = _write(tmp_path, "[scorer\n")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            load_engine_config(path)

    def test_unknown_section(self, tmp_path):
        path = _write(tmp_path, "[llm]\nmodel = 'x'\n")
        with pytest.raises(ConfigurationError, match="Unknown section"):
            load_engine_config(path)

    def test_section_must_be_a_table(self, tmp_path):
        path = _write(tmp_path, "cache = 3\n")
        with pytest.raises(ConfigurationError, match="must be a table"):
            load_engine_config(path)
