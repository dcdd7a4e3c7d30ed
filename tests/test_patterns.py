"""Tests for cross-session pattern analysis."""

from datetime import datetime, timedelta, timezone

import pytest

from contextkeeper.core.merge import pattern_id
from contextkeeper.core.types import ContextMetadata, ExtractedContext, Pattern, PatternType
from contextkeeper.retrieval.patterns import PatternAnalyzer, similarity, trend_of

T0 = datetime(2026, 5, 1, tzinfo=timezone.utc)


def _pattern(kind, value, freq, day=0):
    when = T0 + timedelta(days=day)
    return Pattern(
        id=pattern_id(kind.value, value),
        type=kind,
        value=value,
        frequency=freq,
        first_seen=when,
        last_seen=when,
    )


def _ctx(sid, patterns, day=0, project="/p", files=()):
    return ExtractedContext(
        session_id=sid,
        timestamp=T0 + timedelta(days=day),
        project_path=project,
        patterns=patterns,
        metadata=ContextMetadata(files_modified=list(files)),
    )


@pytest.fixture
def analyzer(backend):
    backend.store(_ctx("s1", [_pattern(PatternType.command, "npm test", 2), _pattern(PatternType.code, "Edit:a.py", 3)]))
    backend.store(_ctx("s2", [_pattern(PatternType.command, "npm test", 3, day=2)], day=2, files=["a.py"]))
    backend.store(_ctx("s3", [_pattern(PatternType.command, "npm run lint", 2, day=4)], day=4, project="/q"))
    return PatternAnalyzer(backend)


class TestGetPatterns:
    def test_merged_across_sessions(self, analyzer):
        patterns = analyzer.get_patterns()
        assert patterns[0].value == "npm test"
        assert patterns[0].frequency == 5
        assert patterns[0].first_seen == T0
        assert patterns[0].last_seen == T0 + timedelta(days=2)

    def test_sorted_by_frequency_then_recency(self, analyzer):
        values = [p.value for p in analyzer.get_patterns()]
        assert values == ["npm test", "Edit:a.py", "npm run lint"]

    def test_type_filter(self, analyzer):
        patterns = analyzer.get_patterns(type="code")
        assert [p.value for p in patterns] == ["Edit:a.py"]

    def test_min_frequency(self, analyzer):
        assert [p.value for p in analyzer.get_patterns(min_frequency=4)] == ["npm test"]

    def test_limit(self, analyzer):
        assert len(analyzer.get_patterns(limit=1)) == 1

    def test_project_filter(self, analyzer):
        assert [p.value for p in analyzer.get_patterns(project_path="/q")] == ["npm run lint"]

    def test_bad_type(self, analyzer):
        with pytest.raises(ValueError):
            analyzer.get_patterns(type="nonsense")


class TestAnalyzeProject:
    def test_hotspots_and_patterns(self, analyzer):
        analysis = analyzer.analyze_project("/p")
        assert [p.value for p in analysis.patterns] == ["npm test", "Edit:a.py"]
        hotspot = next(i for i in analysis.insights if i.type == "hotspot")
        assert hotspot.data == [["a.py", 1]]

    def test_error_insight_and_recommendations(self, backend):
        errors = [_pattern(PatternType.error_handling, f"err-{i}", 2) for i in range(6)]
        frequent = [_pattern(PatternType.command, "make deploy", 7)]
        backend.store(_ctx("e1", errors + frequent))
        analysis = PatternAnalyzer(backend).analyze_project("/p")
        assert any(i.type == "error-pattern" for i in analysis.insights)
        assert any("error handling" in r for r in analysis.recommendations)
        assert any("make deploy" in r for r in analysis.recommendations)

    def test_empty_project(self, analyzer):
        analysis = analyzer.analyze_project("/nowhere")
        assert analysis.patterns == []
        assert analysis.insights == []
        assert analysis.recommendations == []


class TestSimilarity:
    def test_equal(self):
        a = _pattern(PatternType.command, "npm test", 1)
        assert similarity(a, a) == 1.0

    def test_substring(self):
        a = _pattern(PatternType.command, "npm test", 1)
        b = _pattern(PatternType.command, "npm test -- --watch", 1)
        assert similarity(a, b) == 0.8

    def test_jaccard(self):
        a = _pattern(PatternType.command, "npm run build", 1)
        b = _pattern(PatternType.command, "npm run lint", 1)
        assert similarity(a, b) == pytest.approx(2 / 4)

    def test_different_types(self):
        a = _pattern(PatternType.command, "x", 1)
        b = _pattern(PatternType.code, "x", 1)
        assert similarity(a, b) == 0.0

    def test_find_similar(self, analyzer):
        query = _pattern(PatternType.command, "npm test --coverage", 1)
        assert [p.value for p in analyzer.find_similar(query)] == ["npm test"]


class TestTrend:
    @pytest.mark.parametrize(
        "values, expected",
        [
            ([1, 2, 3, 4], "increasing"),
            ([5, 3, 1], "decreasing"),
            ([2, 2, 2], "stable"),
            ([4], "stable"),
            ([], "stable"),
        ],
    )
    def test_trend_of(self, values, expected):
        assert trend_of(values) == expected

    def test_pattern_trend(self, analyzer):
        trend = analyzer.pattern_trend("npm test", "command")
        assert [o.session_id for o in trend.occurrences] == ["s1", "s2"]
        assert [o.frequency for o in trend.occurrences] == [2, 3]
        assert trend.trend == "increasing"
