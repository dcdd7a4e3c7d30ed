"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from contextkeeper.config import KeeperConfig, keeper_home
from contextkeeper.core.types import AutoLoadStrategy
from contextkeeper.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _home(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("CONTEXTKEEPER_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("CONTEXTKEEPER_DB_PATH", raising=False)


class TestKeeperConfig:
    def test_defaults(self, tmp_path):
        cfg = KeeperConfig()
        assert cfg.db_path == tmp_path / "home" / "contexts.db"
        assert cfg.retrieval.default_limit == 5
        assert cfg.auto_load.strategy == AutoLoadStrategy.smart
        assert cfg.security.filter_sensitive_data is True

    def test_home_from_env(self, tmp_path):
        assert keeper_home() == tmp_path / "home"

    def test_missing_file_gives_defaults(self, tmp_path):
        assert KeeperConfig.load(tmp_path / "nope.json") == KeeperConfig()

    def test_partial_file_merged(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"retrieval": {"default_limit": 9}, "auto_load": {"strategy": "recent"}}))
        cfg = KeeperConfig.load(path)
        assert cfg.retrieval.default_limit == 9
        assert cfg.retrieval.min_relevance == 0.3
        assert cfg.auto_load.strategy == AutoLoadStrategy.recent
        assert cfg.auto_load.max_size_kb == 10.0

    def test_default_location(self, tmp_path):
        home = tmp_path / "home"
        home.mkdir()
        (home / "config.json").write_text(json.dumps({"extraction": {"max_context_items": 7}}))
        assert KeeperConfig.load().extraction.max_context_items == 7

    def test_env_db_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONTEXTKEEPER_DB_PATH", str(tmp_path / "other.db"))
        assert KeeperConfig.load(tmp_path / "nope.json").db_path == tmp_path / "other.db"

    def test_bad_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{oops")
        with pytest.raises(ConfigError):
            KeeperConfig.load(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            KeeperConfig.load(path)

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"retrieval": {"min_relevance": 4}}))
        with pytest.raises(ConfigError):
            KeeperConfig.load(path)
