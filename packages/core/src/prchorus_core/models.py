"""Review, validation and queue data models.

Everything that crosses a boundary (event payloads, the key-value store)
goes through to_dict()/from_dict() so the wire format lives in one place.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Lowest to highest. Index doubles as rank.
SEVERITY_LEVELS = ("nit", "minor", "major", "critical")
SEVERITY_RANK = {level: i for i, level in enumerate(SEVERITY_LEVELS)}

CATEGORIES = ("security", "logic", "performance", "style", "codebase-fit")

STEP_TYPES = ("init", "analyzing", "reading", "searching", "tool-use", "processing")

QUEUED = "queued"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, CANCELLED})


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, tolerating the trailing 'Z' GitHub emits."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _number(value, default: float) -> float:
    # bool is an int subclass; a stray true/false is not a score.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return default


def _list(value) -> list:
    return value if isinstance(value, list) else []


def _strings(value) -> list[str]:
    return [v for v in _list(value) if isinstance(v, str)]


def _text(value, default: str = "") -> str:
    return value if isinstance(value, str) and value else default


@dataclass
class ProgressStep:
    """One incremental progress notification from a running agent."""

    step: str
    message: str
    step_type: str = "processing"
    timestamp: str = field(default_factory=utc_now)
    tool_name: str | None = None

    def to_dict(self) -> dict:
        d = {"step": self.step, "message": self.message, "step_type": self.step_type, "timestamp": self.timestamp}
        if self.tool_name:
            d["tool_name"] = self.tool_name
        return d


@dataclass(frozen=True)
class Finding:
    """A single reviewer-reported issue. Frozen: merging produces a new record."""

    severity: str
    category: str
    file: str
    line: int
    explanation: str
    title: str = ""
    code_snippet: str = ""
    suggested_fix: str = ""
    agent_source: str | None = None
    agent_confidence: float | None = None
    addressing_status: str | None = None  # "new" | "persisting" | "regression" on re-reviews

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, d) -> Finding:
        """Build a Finding from agent or stored output.

        Raises ValueError for entries missing the fields needed to place and
        rank the finding (file, line, explanation, a known severity).
        """
        if not isinstance(d, dict):
            raise ValueError("finding is not an object")
        severity = d.get("severity")
        line = d.get("line")
        if severity not in SEVERITY_RANK:
            raise ValueError(f"unknown severity {severity!r}")
        if not isinstance(d.get("file"), str) or not isinstance(d.get("explanation"), str):
            raise ValueError("finding needs string file and explanation")
        if not isinstance(line, (int, float)) or isinstance(line, bool):
            raise ValueError("finding needs a numeric line")
        confidence = d.get("agent_confidence")
        return cls(
            severity=severity,
            category=d.get("category") or "logic",
            file=d["file"],
            line=int(line),
            explanation=d["explanation"],
            title=d.get("title") or "",
            code_snippet=d.get("code_snippet") or "",
            suggested_fix=d.get("suggested_fix") or "",
            agent_source=d.get("agent_source") or None,
            agent_confidence=confidence if isinstance(confidence, (int, float)) else None,
            addressing_status=d.get("addressing_status") or None,
        )


def parse_findings(raw) -> list[Finding]:
    """Convert raw agent output into findings, dropping malformed entries."""
    if not isinstance(raw, list):
        return []
    findings = []
    for entry in raw:
        try:
            findings.append(Finding.from_dict(entry))
        except ValueError as e:
            logger.debug("Dropping malformed finding (%s): %r", e, entry)
    return findings


@dataclass(frozen=True)
class SubAgentScore:
    """Score reported by one specialised sub-agent. weight 0 = context only."""

    agent: str
    score: float
    weight: float
    summary: str = ""
    finding_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> SubAgentScore:
        return cls(
            agent=d.get("agent", ""),
            score=d.get("score", 0),
            weight=d.get("weight", 0),
            summary=d.get("summary", ""),
            finding_count=d.get("finding_count", 0),
        )


@dataclass
class AddressedFinding:
    title: str
    severity: str
    status: str  # "addressed" | "partially-addressed" | "unaddressed" | "new-issue"
    explanation: str = ""


@dataclass
class ReviewResult:
    """The verdict of one PR review run. Becomes a history entry once id is set."""

    pr_number: int
    pr_title: str
    repository_full_name: str
    findings: list[Finding] = field(default_factory=list)
    verdict: str = ""
    quality_score: float = 5
    reviewed_at: str = field(default_factory=utc_now)
    provider: str = ""
    model: str = ""
    cost_usd: float = 0.0
    duration_ms: int = 0
    head_commit_sha: str | None = None
    review_sequence: int | None = None
    previous_review_id: str | None = None
    previous_score: float | None = None
    is_re_review: bool = False
    addressed_findings: list[AddressedFinding] = field(default_factory=list)
    multi_agent: bool = False
    sub_agent_scores: list[SubAgentScore] = field(default_factory=list)
    context_summary: str = ""
    is_imported: bool = False
    id: str | None = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["findings"] = [f.to_dict() for f in self.findings]
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ReviewResult:
        return cls(
            pr_number=d.get("pr_number", 0),
            pr_title=d.get("pr_title", ""),
            repository_full_name=d.get("repository_full_name", ""),
            findings=parse_findings(d.get("findings", [])),
            verdict=d.get("verdict", ""),
            quality_score=_number(d.get("quality_score"), 5),
            reviewed_at=d.get("reviewed_at", ""),
            provider=d.get("provider", ""),
            model=d.get("model", ""),
            cost_usd=_number(d.get("cost_usd"), 0.0),
            duration_ms=d.get("duration_ms", 0),
            head_commit_sha=d.get("head_commit_sha"),
            review_sequence=d.get("review_sequence"),
            previous_review_id=d.get("previous_review_id"),
            previous_score=d.get("previous_score"),
            is_re_review=d.get("is_re_review", False),
            addressed_findings=[
                AddressedFinding(
                    title=a.get("title", ""),
                    severity=a.get("severity", "minor"),
                    status=a.get("status", "unaddressed"),
                    explanation=a.get("explanation", ""),
                )
                for a in _list(d.get("addressed_findings"))
                if isinstance(a, dict)
            ],
            multi_agent=d.get("multi_agent", False),
            sub_agent_scores=[
                SubAgentScore.from_dict(s) for s in _list(d.get("sub_agent_scores")) if isinstance(s, dict)
            ],
            context_summary=d.get("context_summary", ""),
            is_imported=d.get("is_imported", False),
            id=d.get("id"),
        )


@dataclass
class AffectedFile:
    path: str
    reason: str = ""
    snippet: str | None = None


@dataclass
class ValidationResult:
    """The verdict of one issue validation run."""

    issue_number: int
    issue_title: str
    repository_full_name: str
    issue_type: str = "bug"  # "bug" | "feature"
    verdict: str = "uncertain"  # confirmed | likely | uncertain | unlikely | invalid
    confidence: float = 0
    affected_files: list[AffectedFile] = field(default_factory=list)
    complexity: str = "medium"
    suggested_approach: str = ""
    reasoning: str = ""
    prerequisites: list[str] = field(default_factory=list)
    potential_conflicts: list[str] = field(default_factory=list)
    effort_estimate: str = ""
    validated_at: str = field(default_factory=utc_now)
    provider: str = ""
    model: str = ""
    cost_usd: float = 0.0
    duration_ms: int = 0
    id: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> ValidationResult:
        return cls(
            issue_number=d.get("issue_number", 0),
            issue_title=d.get("issue_title", ""),
            repository_full_name=d.get("repository_full_name", ""),
            issue_type=d.get("issue_type") if d.get("issue_type") in ("bug", "feature") else "bug",
            verdict=_text(d.get("verdict"), "uncertain"),
            confidence=_number(d.get("confidence"), 0),
            affected_files=[
                AffectedFile(
                    path=f["path"],
                    reason=_text(f.get("reason")),
                    snippet=f.get("snippet") if isinstance(f.get("snippet"), str) else None,
                )
                for f in _list(d.get("affected_files"))
                if isinstance(f, dict) and isinstance(f.get("path"), str)
            ],
            complexity=_text(d.get("complexity"), "medium"),
            suggested_approach=_text(d.get("suggested_approach")),
            reasoning=_text(d.get("reasoning")),
            prerequisites=_strings(d.get("prerequisites")),
            potential_conflicts=_strings(d.get("potential_conflicts")),
            effort_estimate=_text(d.get("effort_estimate")),
            validated_at=d.get("validated_at", ""),
            provider=d.get("provider", ""),
            model=d.get("model", ""),
            cost_usd=_number(d.get("cost_usd"), 0.0),
            duration_ms=d.get("duration_ms", 0),
            id=d.get("id"),
        )


@dataclass
class QueueItem:
    """Lifecycle record of one queued job. Owned by its dispatcher."""

    entity_number: int
    status: str = QUEUED
    queued_at: str = field(default_factory=utc_now)
    started_at: str | None = None
    completed_at: str | None = None
    result: ReviewResult | ValidationResult | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "entity_number": self.entity_number,
            "status": self.status,
            "queued_at": self.queued_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "result": self.result.to_dict() if self.result is not None else None,
            "error": self.error,
        }


@dataclass
class PullRequest:
    number: int
    title: str
    body: str = ""
    head_ref: str = ""
    base_ref: str = ""
    head_sha: str = ""
    draft: bool = False


@dataclass
class Issue:
    number: int
    title: str
    body: str = ""
    labels: list[str] = field(default_factory=list)


@dataclass
class RepoInfo:
    full_name: str
    default_branch: str = "main"
    url: str = ""
