"""Multi-agent finding aggregation.

Pure functions: deduplicate findings reported by several sub-agents,
compute a weighted quality score, and cap the score by worst severity.
aggregate_multi_agent_output() composes them over raw agent output.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace

from prchorus_core.models import SEVERITY_LEVELS, SEVERITY_RANK, Finding, SubAgentScore, parse_findings

logger = logging.getLogger(__name__)

DEFAULT_LINE_GROUP_SIZE = 5
DEFAULT_SCORE = 5
# Heuristic, not derived: how far the agent's self-reported score may drift
# from the weighted sub-agent score before the computed one is preferred.
DEFAULT_SCORE_DIVERGENCE = 2.0

CRITICAL_SCORE_CAP = 5
MAJOR_SCORE_CAP = 7


def escalate(severity: str) -> str:
    """Raise severity one level; critical is the ceiling."""
    index = SEVERITY_RANK[severity]
    return SEVERITY_LEVELS[min(index + 1, len(SEVERITY_LEVELS) - 1)]


def line_group(line: int, size: int = DEFAULT_LINE_GROUP_SIZE) -> int:
    """Bucket a line into fixed windows: 1-5 -> 1, 6-10 -> 6, ..."""
    safe_line = max(line, 1)
    return (safe_line - 1) // size * size + 1


def deduplicate_findings(findings: list[Finding], line_group_size: int = DEFAULT_LINE_GROUP_SIZE) -> list[Finding]:
    """Collapse findings on the same file, line window and category.

    The most severe (then most detailed) finding represents its group. When
    more than one distinct agent flagged the spot, its severity is escalated
    one level; repeats from a single agent are not corroboration.
    """
    groups: dict[tuple[str, int, str], list[Finding]] = {}
    for finding in findings:
        key = (finding.file, line_group(finding.line, line_group_size), finding.category)
        groups.setdefault(key, []).append(finding)

    result = []
    for group in groups.values():
        if len(group) == 1:
            result.append(group[0])
            continue

        best = sorted(group, key=lambda f: (SEVERITY_RANK[f.severity], len(f.explanation)), reverse=True)[0]
        agents = {f.agent_source for f in group if f.agent_source}
        if len(agents) > 1:
            best = replace(best, severity=escalate(best.severity))
        result.append(best)

    return result


def calculate_weighted_score(scores: list[SubAgentScore]) -> float:
    total_weight = 0.0
    weighted_sum = 0.0
    for agent_score in scores:
        if agent_score.weight > 0:
            weighted_sum += agent_score.score * agent_score.weight
            total_weight += agent_score.weight

    if total_weight == 0:
        return DEFAULT_SCORE
    return round(weighted_sum / total_weight, 1)


def apply_severity_caps(score: float, findings: list[Finding]) -> float:
    """Cap the score at 5 with any critical finding, else at 7 with any major."""
    severities = {f.severity for f in findings}
    if "critical" in severities:
        return min(score, CRITICAL_SCORE_CAP)
    if "major" in severities:
        return min(score, MAJOR_SCORE_CAP)
    return score


def parse_sub_agent_scores(raw) -> list[SubAgentScore]:
    """Keep only well-formed scores: numeric score in [0, 10], weight in [0, 1]."""
    if not isinstance(raw, list):
        return []
    scores = []
    for entry in raw:
        if not isinstance(entry, dict) or not isinstance(entry.get("agent"), str):
            continue
        score = entry.get("score")
        weight = entry.get("weight")
        if not _finite(score) or not _finite(weight):
            continue
        if not (0 <= score <= 10 and 0 <= weight <= 1):
            continue
        scores.append(SubAgentScore.from_dict(entry))
    return scores


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass
class AggregatedReview:
    findings: list[Finding]
    quality_score: float
    verdict: str
    context_summary: str = ""
    sub_agent_scores: list[SubAgentScore] = field(default_factory=list)


def aggregate_multi_agent_output(
    output: dict,
    line_group_size: int = DEFAULT_LINE_GROUP_SIZE,
    score_divergence: float = DEFAULT_SCORE_DIVERGENCE,
) -> AggregatedReview:
    """Turn raw multi-agent output into one bounded, deduplicated verdict.

    Malformed findings and scores are dropped rather than failing the run.
    """
    findings = deduplicate_findings(parse_findings(output.get("findings")), line_group_size)
    scores = parse_sub_agent_scores(output.get("sub_agent_scores"))

    reported = output.get("quality_score")
    agent_score = reported if _finite(reported) else DEFAULT_SCORE
    computed = calculate_weighted_score(scores)

    quality_score = agent_score
    if abs(agent_score - computed) > score_divergence:
        logger.warning(
            "Agent score (%s) diverges from weighted sub-agent score (%s) by more than %s points; using %s.",
            agent_score,
            computed,
            score_divergence,
            computed,
        )
        quality_score = computed

    verdict = output.get("verdict")
    context_summary = output.get("context_summary")
    return AggregatedReview(
        findings=findings,
        quality_score=apply_severity_caps(quality_score, findings),
        verdict=verdict if isinstance(verdict, str) else "No verdict provided",
        context_summary=context_summary if isinstance(context_summary, str) else "",
        sub_agent_scores=scores,
    )
