"""Tests for result and queue models."""

import pytest

from prchorus_core.models import (
    Finding,
    QueueItem,
    ReviewResult,
    SubAgentScore,
    ValidationResult,
    parse_findings,
    parse_timestamp,
)


class TestFinding:
    def test_from_dict_fills_defaults(self):
        finding = Finding.from_dict({"severity": "major", "file": "a.py", "line": 3.0, "explanation": "x"})
        assert finding.line == 3
        assert finding.category == "logic"
        assert finding.agent_source is None

    @pytest.mark.parametrize(
        "raw",
        [
            {"severity": "blocker", "file": "a.py", "line": 1, "explanation": "x"},
            {"severity": "major", "line": 1, "explanation": "x"},
            {"severity": "major", "file": "a.py", "line": "1", "explanation": "x"},
            {"severity": "major", "file": "a.py", "line": True, "explanation": "x"},
            "not a dict",
        ],
    )
    def test_from_dict_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            Finding.from_dict(raw)

    def test_parse_findings_drops_malformed(self):
        raw = [{"severity": "nit", "file": "a.py", "line": 1, "explanation": "x"}, {"severity": "?"}]
        assert len(parse_findings(raw)) == 1
        assert parse_findings("nope") == []


class TestReviewResult:
    def test_dict_roundtrip_keeps_chain_metadata(self):
        result = ReviewResult(
            pr_number=3,
            pr_title="T",
            repository_full_name="o/r",
            findings=[Finding("minor", "style", "a.py", 1, "x", agent_source="code-quality")],
            quality_score=6.5,
            review_sequence=2,
            previous_review_id="rh-3-1",
            previous_score=5,
            is_re_review=True,
            sub_agent_scores=[SubAgentScore("code-quality", 6, 0.25)],
            id="rh-3-2",
        )
        assert ReviewResult.from_dict(result.to_dict()) == result

    def test_from_dict_tolerates_bad_score(self):
        assert ReviewResult.from_dict({"quality_score": "high"}).quality_score == 5


class TestValidationResult:
    def test_unknown_issue_type_defaults_to_bug(self):
        assert ValidationResult.from_dict({"issue_type": "question"}).issue_type == "bug"

    def test_affected_files_parsed(self):
        result = ValidationResult.from_dict({"affected_files": [{"path": "a.py", "reason": "crash"}, "junk"]})
        assert [f.path for f in result.affected_files] == ["a.py"]


class TestQueueItem:
    def test_to_dict_includes_result(self):
        item = QueueItem(entity_number=4, status="completed", result=ValidationResult(4, "T", "o/r"))
        d = item.to_dict()
        assert d["entity_number"] == 4
        assert d["result"]["issue_number"] == 4

    def test_new_item_is_queued(self):
        assert QueueItem(entity_number=1).status == "queued"


def test_parse_timestamp_handles_z_suffix_and_garbage():
    assert parse_timestamp("2026-01-01T00:00:00Z").year == 2026
    assert parse_timestamp("garbage").year == 1
