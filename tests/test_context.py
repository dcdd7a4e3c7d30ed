"""Tests for auto-load context building."""

import pytest

from contextkeeper.client import ContextKeeper
from contextkeeper.config import AutoLoadSettings, KeeperConfig
from contextkeeper.context import TRUNCATION_MARKER, truncate_text, truncate_to_size
from contextkeeper.core.types import AutoLoadStrategy, FormatStyle


@pytest.fixture
def keeper(tmp_path, jwt_session, npm_session):
    kp = ContextKeeper(KeeperConfig(db_path=tmp_path / "test.db"), project_path="/work/app")
    kp.archive(jwt_session)
    kp.archive(npm_session)
    return kp


def _settings(**kw) -> AutoLoadSettings:
    return AutoLoadSettings(**kw)


class TestTruncateText:
    def test_short(self):
        assert truncate_text("abc", 10) == "abc"

    def test_long(self):
        assert truncate_text("abcdefghij", 6) == "abc..."

    def test_empty(self):
        assert truncate_text("", 5) == ""


class TestTruncateToSize:
    def test_under_budget_unchanged(self):
        assert truncate_to_size("small", 100) == ("small", False)

    def test_over_budget_bounded_with_marker(self):
        content = "line of text\n" * 2000
        out, truncated = truncate_to_size(content, 1024)
        assert truncated is True
        assert len(out.encode("utf-8")) <= 1024
        assert out.endswith(TRUNCATION_MARKER)

    def test_cuts_at_newline(self):
        content = "line of text\n" * 2000
        out, _ = truncate_to_size(content, 1024)
        assert out[: -len(TRUNCATION_MARKER)].endswith("line of text")

    def test_multibyte_never_split(self):
        content = "é" * 2000
        out, truncated = truncate_to_size(content, 500)
        assert truncated
        assert len(out.encode("utf-8")) <= 500
        assert out.endswith(TRUNCATION_MARKER)

    def test_tiny_budget(self):
        out, truncated = truncate_to_size("x" * 100, 10)
        assert truncated
        assert len(out.encode("utf-8")) <= 10

    @pytest.mark.parametrize("budget", [64, 100, 256, 1000, 4096])
    def test_budget_always_respected(self, budget):
        out, _ = truncate_to_size("word " * 5000, budget)
        assert len(out.encode("utf-8")) <= budget


class TestContextLoader:
    def test_disabled(self, keeper):
        loaded = keeper.auto_load(_settings(strategy=AutoLoadStrategy.disabled))
        assert loaded.content == ""
        assert loaded.item_count == 0
        assert loaded.strategy == AutoLoadStrategy.disabled

    def test_enabled_flag_off(self, keeper):
        loaded = keeper.auto_load(_settings(enabled=False))
        assert loaded.strategy == AutoLoadStrategy.disabled

    def test_smart(self, keeper):
        loaded = keeper.auto_load(_settings(strategy=AutoLoadStrategy.smart))
        assert loaded.content.startswith("# Project Context: app")
        assert "## Recent Work" in loaded.content
        assert "## Recurring Patterns" in loaded.content
        assert "`npm test`" in loaded.content
        assert "## Key Decisions" in loaded.content
        assert loaded.item_count > 0
        assert loaded.truncated is False

    def test_recent_sessions_only(self, keeper):
        loaded = keeper.auto_load(_settings(strategy=AutoLoadStrategy.recent))
        assert "## Recent Work" in loaded.content
        assert "## Recurring Patterns" not in loaded.content
        assert "## Key Decisions" not in loaded.content

    def test_size_bound(self, keeper):
        loaded = keeper.auto_load(_settings(strategy=AutoLoadStrategy.smart, max_size_kb=0.25))
        assert loaded.truncated is True
        assert len(loaded.content.encode("utf-8")) <= 256
        assert loaded.size_kb <= 0.25

    def test_relevant(self, keeper):
        loaded = keeper.auto_load(
            _settings(strategy=AutoLoadStrategy.relevant, priority_keywords=["authentication"])
        )
        assert loaded.content.startswith("# Relevant Context for: authentication")
        assert "JWT" in loaded.content

    def test_relevant_falls_back_to_smart(self, keeper):
        loaded = keeper.auto_load(
            _settings(strategy=AutoLoadStrategy.relevant, priority_keywords=["kubernetes"])
        )
        assert loaded.content.startswith("# Project Context")

    def test_custom_types_and_keywords(self, keeper):
        loaded = keeper.auto_load(
            _settings(
                strategy=AutoLoadStrategy.custom,
                include_types=["problems"],
                priority_keywords=["tests"],
            )
        )
        assert "## Problems & Solutions" in loaded.content
        assert "## Recent Work" not in loaded.content
        section = loaded.content.split("## Problems & Solutions", 1)[1]
        assert section.index("tests failing") < section.index("authentication")

    def test_detailed_format(self, keeper):
        loaded = keeper.auto_load(
            _settings(strategy=AutoLoadStrategy.smart, format_style=FormatStyle.detailed)
        )
        assert "- Tools Used:" in loaded.content
        assert "Rationale: because" in loaded.content

    def test_empty_project(self, tmp_path):
        kp = ContextKeeper(KeeperConfig(db_path=tmp_path / "empty.db"), project_path="/none")
        loaded = kp.auto_load()
        assert loaded.item_count == 0
        assert "## Recent Work" not in loaded.content

    def test_preview(self, keeper):
        text = keeper.loader.preview(_settings(strategy=AutoLoadStrategy.recent))
        assert "AUTO-LOAD CONTEXT PREVIEW" in text
        assert "Strategy: recent" in text
