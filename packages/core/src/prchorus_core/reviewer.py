"""PR review queue: fetch, prompt, stream, enrich, persist."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from prchorus_core.aggregate import DEFAULT_LINE_GROUP_SIZE, DEFAULT_SCORE_DIVERGENCE, aggregate_multi_agent_output
from prchorus_core.dispatcher import JobDispatcher
from prchorus_core.errors import JobError
from prchorus_core.events import ReviewEvents
from prchorus_core.history import ReviewHistory
from prchorus_core.models import AddressedFinding, PullRequest, ReviewResult, parse_findings
from prchorus_core.prompts import build_review_request
from prchorus_core.providers.base import AgentOutput

logger = logging.getLogger(__name__)


class ReviewDispatcher(JobDispatcher):
    EVENTS = ReviewEvents
    ENTITY_KEY = "pr_number"
    ENTITY_LABEL = "PR"

    def __init__(self, forge, history: ReviewHistory, bus, agent_provider, guidelines: str = "", **kwargs):
        super().__init__(forge, history, bus, agent_provider, **kwargs)
        self.guidelines = guidelines

    async def enqueue(
        self,
        pr_number: int,
        project_path: str,
        previous_review_id: str | None = None,
        multi_agent: bool | None = None,
    ) -> None:
        await super().enqueue(pr_number, project_path, previous_review_id=previous_review_id, multi_agent=multi_agent)

    async def _process(self, pr_number: int, project_path: str, options: dict, cancel: asyncio.Event) -> ReviewResult:
        pr = await self._forge_call(self.forge.get_pull_request(project_path, pr_number), f"fetching PR #{pr_number}")
        if pr is None:
            raise JobError(f"PR #{pr_number} not found")

        try:
            diff = await self._forge_call(
                self.forge.get_diff(project_path, pr_number), f"fetching diff for PR #{pr_number}"
            )
        except JobError:
            raise
        except Exception as e:
            raise JobError(f"Could not fetch diff for PR #{pr_number}: {str(e) or e.__class__.__name__}") from e
        if not diff:
            raise JobError(f"Could not fetch diff for PR #{pr_number}")

        repo_name = await self._repo_name(project_path)
        head_sha = await self._head_sha(project_path, pr)
        agent = self._acquire_agent()

        previous = None
        incremental_diff = None
        previous_review_id = options.get("previous_review_id")
        if previous_review_id:
            previous = self.history.get_by_id(previous_review_id)
            if previous is None:
                logger.warning("Previous review %s not found, running as initial review", previous_review_id)
            elif previous.head_commit_sha and head_sha:
                try:
                    incremental_diff = await self.forge.get_commit_diff(
                        project_path, previous.head_commit_sha, head_sha
                    )
                except Exception as e:
                    logger.warning("Failed to get incremental diff, using full diff: %s", e)

        multi_agent = options.get("multi_agent")
        if multi_agent is None:
            multi_agent = self.config.get("review_mode") == "multi-agent"

        request = build_review_request(
            pr,
            repo_name,
            diff,
            self.guidelines,
            project_path,
            previous=previous,
            incremental_diff=incremental_diff,
            multi_agent=multi_agent,
            max_diff_chars=self.config.get("max_diff_chars", 0),
        )
        output = await self._invoke(agent, request, pr_number, cancel)

        result = self._build_result(output, pr, repo_name, multi_agent=multi_agent and previous is None)
        result = self._enrich(result, head_sha, previous)
        return self.history.save(result)

    def _build_result(self, output: AgentOutput, pr: PullRequest, repo_name: str, multi_agent: bool) -> ReviewResult:
        data = output.data
        result = ReviewResult(
            pr_number=pr.number,
            pr_title=pr.title,
            repository_full_name=repo_name,
            provider=self.config.get("provider", ""),
            model=output.model,
            cost_usd=output.cost_usd,
            duration_ms=output.duration_ms,
        )

        if multi_agent:
            aggregated = aggregate_multi_agent_output(
                data,
                line_group_size=self.config.get("line_group_size", DEFAULT_LINE_GROUP_SIZE),
                score_divergence=self.config.get("score_divergence_threshold", DEFAULT_SCORE_DIVERGENCE),
            )
            return replace(
                result,
                findings=aggregated.findings,
                verdict=aggregated.verdict,
                quality_score=aggregated.quality_score,
                context_summary=aggregated.context_summary,
                sub_agent_scores=aggregated.sub_agent_scores,
                multi_agent=True,
            )

        score = data.get("quality_score")
        verdict = data.get("verdict")
        return replace(
            result,
            findings=parse_findings(data.get("findings")),
            verdict=verdict if isinstance(verdict, str) and verdict else "No verdict provided",
            quality_score=score if isinstance(score, (int, float)) and not isinstance(score, bool) and score else 5,
            addressed_findings=_parse_addressed(data.get("addressed_findings")),
        )

    def _enrich(self, result: ReviewResult, head_sha: str | None, previous: ReviewResult | None) -> ReviewResult:
        if previous is None:
            return replace(result, head_commit_sha=head_sha, review_sequence=1)
        return replace(
            result,
            head_commit_sha=head_sha,
            is_re_review=True,
            previous_review_id=previous.id,
            previous_score=previous.quality_score,
            review_sequence=(previous.review_sequence or 1) + 1,
        )

    async def _head_sha(self, project_path: str, pr: PullRequest) -> str | None:
        try:
            return await self.forge.get_head_sha(project_path, pr.number)
        except Exception as e:
            logger.warning("Failed to get HEAD SHA for PR #%d: %s", pr.number, e)
            return pr.head_sha or None


def _parse_addressed(raw) -> list[AddressedFinding]:
    if not isinstance(raw, list):
        return []
    return [
        AddressedFinding(
            title=a.get("title", ""),
            severity=a.get("severity", "minor"),
            status=a.get("status", "unaddressed"),
            explanation=a.get("explanation", ""),
        )
        for a in raw
        if isinstance(a, dict)
    ]
