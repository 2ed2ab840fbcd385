"""Tests for multi-agent finding aggregation."""

import pytest

from prchorus_core.aggregate import (
    aggregate_multi_agent_output,
    apply_severity_caps,
    calculate_weighted_score,
    deduplicate_findings,
    escalate,
    line_group,
    parse_sub_agent_scores,
)
from prchorus_core.models import Finding, SubAgentScore


def _finding(severity="minor", file="a.py", line=10, category="logic", agent=None, explanation="x"):
    return Finding(
        severity=severity, category=category, file=file, line=line, explanation=explanation, agent_source=agent
    )


class TestEscalate:
    @pytest.mark.parametrize(
        "severity,expected",
        [("nit", "minor"), ("minor", "major"), ("major", "critical"), ("critical", "critical")],
    )
    def test_one_level_up(self, severity, expected):
        assert escalate(severity) == expected


class TestLineGroup:
    def test_buckets_of_five(self):
        assert [line_group(n) for n in (1, 5, 6, 10, 11)] == [1, 1, 6, 6, 11]

    def test_non_positive_lines_fall_in_first_bucket(self):
        assert line_group(0) == 1
        assert line_group(-3) == 1


class TestDeduplicateFindings:
    def test_distinct_findings_kept(self):
        findings = [_finding(line=1), _finding(line=20), _finding(line=1, category="security")]
        assert len(deduplicate_findings(findings)) == 3

    def test_same_agent_duplicates_not_escalated(self):
        findings = [_finding(line=2, agent="code-quality"), _finding(line=4, agent="code-quality")]
        result = deduplicate_findings(findings)
        assert len(result) == 1
        assert result[0].severity == "minor"

    def test_cross_agent_duplicates_escalated_once(self):
        findings = [
            _finding(severity="major", line=2, agent="code-quality"),
            _finding(severity="minor", line=3, agent="security-performance"),
            _finding(severity="minor", line=4, agent="code-patterns"),
        ]
        result = deduplicate_findings(findings)
        assert len(result) == 1
        assert result[0].severity == "critical"

    def test_most_severe_then_most_detailed_wins(self):
        findings = [
            _finding(severity="major", line=2, explanation="short"),
            _finding(severity="major", line=3, explanation="a much longer explanation"),
            _finding(severity="minor", line=4, explanation="the longest explanation of them all, by far"),
        ]
        assert deduplicate_findings(findings)[0].explanation == "a much longer explanation"

    def test_input_not_mutated(self):
        findings = [_finding(line=2, agent="a"), _finding(line=3, agent="b")]
        deduplicate_findings(findings)
        assert [f.severity for f in findings] == ["minor", "minor"]

    def test_line_group_size_configurable(self):
        findings = [_finding(line=1, agent="a"), _finding(line=9, agent="b")]
        assert len(deduplicate_findings(findings)) == 2
        assert len(deduplicate_findings(findings, line_group_size=10)) == 1

    def test_two_agents_same_line_minor_becomes_major(self):
        findings = [
            _finding(severity="minor", file="f.ts", line=1, agent="code-quality"),
            _finding(severity="minor", file="f.ts", line=1, agent="security-performance"),
        ]
        result = deduplicate_findings(findings)
        assert len(result) == 1
        assert result[0].severity == "major"

    def test_idempotent(self):
        findings = [
            _finding(severity="minor", line=1, agent="code-quality"),
            _finding(severity="minor", line=3, agent="code-patterns"),
            _finding(severity="major", line=2, category="security", agent="security-performance"),
            _finding(severity="nit", line=12, agent="code-quality", explanation="naming"),
            _finding(severity="nit", line=14, agent="code-quality", explanation="naming again"),
            _finding(severity="critical", file="b.py", line=36, agent="a"),
            _finding(severity="major", file="b.py", line=38, agent="b"),
        ]
        once = deduplicate_findings(findings)
        assert deduplicate_findings(once) == once
        assert sorted(f.severity for f in once) == ["critical", "major", "major", "nit"]


class TestWeightedScore:
    def test_weighted_mean_rounded(self):
        scores = [
            SubAgentScore("context", 1, 0),
            SubAgentScore("code-quality", 8, 0.25),
            SubAgentScore("code-patterns", 6, 0.25),
            SubAgentScore("security-performance", 5, 0.5),
        ]
        assert calculate_weighted_score(scores) == 6.0

    def test_quarter_quarter_half_weights(self):
        scores = [
            SubAgentScore("code-quality", 8, 0.25),
            SubAgentScore("code-patterns", 6, 0.25),
            SubAgentScore("security-performance", 9, 0.5),
        ]
        assert calculate_weighted_score(scores) == 8.0

    def test_no_weight_defaults_to_five(self):
        assert calculate_weighted_score([]) == 5
        assert calculate_weighted_score([SubAgentScore("context", 9, 0)]) == 5


class TestSeverityCaps:
    def test_critical_caps_at_five(self):
        assert apply_severity_caps(9, [_finding(severity="critical"), _finding(severity="major")]) == 5

    def test_major_caps_at_seven(self):
        assert apply_severity_caps(9, [_finding(severity="major")]) == 7

    def test_lower_score_untouched(self):
        assert apply_severity_caps(3, [_finding(severity="critical")]) == 3

    def test_minor_only_uncapped(self):
        assert apply_severity_caps(9.5, [_finding(severity="minor")]) == 9.5


class TestParseSubAgentScores:
    def test_malformed_entries_dropped(self):
        raw = [
            {"agent": "code-quality", "score": 7, "weight": 0.25},
            {"agent": "x", "score": 11, "weight": 0.25},
            {"agent": "y", "score": 5, "weight": 2},
            {"agent": "z", "score": "7", "weight": 0.5},
            {"score": 7, "weight": 0.5},
            "junk",
        ]
        scores = parse_sub_agent_scores(raw)
        assert [s.agent for s in scores] == ["code-quality"]

    def test_non_list_returns_empty(self):
        assert parse_sub_agent_scores(None) == []


class TestAggregateMultiAgentOutput:
    def _output(self, **overrides):
        output = {
            "findings": [
                {"severity": "minor", "category": "logic", "file": "a.py", "line": 3, "explanation": "e1",
                 "agent_source": "code-quality"},
                {"severity": "minor", "category": "logic", "file": "a.py", "line": 4, "explanation": "e22",
                 "agent_source": "code-patterns"},
                {"severity": "bogus", "file": "a.py", "line": 4, "explanation": "dropped"},
            ],
            "verdict": "Looks fine",
            "quality_score": 8,
            "context_summary": "Refactor",
            "sub_agent_scores": [
                {"agent": "code-quality", "score": 8, "weight": 0.25},
                {"agent": "code-patterns", "score": 8, "weight": 0.25},
                {"agent": "security-performance", "score": 8, "weight": 0.5},
            ],
        }
        output.update(overrides)
        return output

    def test_dedups_escalates_and_caps(self):
        result = aggregate_multi_agent_output(self._output())
        assert len(result.findings) == 1
        assert result.findings[0].severity == "major"
        assert result.quality_score == 7
        assert result.verdict == "Looks fine"
        assert result.context_summary == "Refactor"
        assert len(result.sub_agent_scores) == 3

    def test_divergent_self_report_replaced_by_computed(self):
        result = aggregate_multi_agent_output(self._output(findings=[], quality_score=2))
        assert result.quality_score == 8.0

    def test_close_self_report_kept(self):
        result = aggregate_multi_agent_output(self._output(findings=[], quality_score=6.5))
        assert result.quality_score == 6.5

    def test_missing_fields_get_defaults(self):
        result = aggregate_multi_agent_output({})
        assert result.findings == []
        assert result.quality_score == 5
        assert result.verdict == "No verdict provided"
        assert result.context_summary == ""
