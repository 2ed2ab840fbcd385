"""Issue validation queue. Same pipeline as reviews, without diffs or chains."""

from __future__ import annotations

import asyncio
import logging

from prchorus_core.dispatcher import JobDispatcher
from prchorus_core.errors import JobError
from prchorus_core.events import ValidationEvents
from prchorus_core.models import ValidationResult, utc_now
from prchorus_core.prompts import build_validation_request

logger = logging.getLogger(__name__)


class ValidationDispatcher(JobDispatcher):
    EVENTS = ValidationEvents
    ENTITY_KEY = "issue_number"
    ENTITY_LABEL = "Issue"

    async def _process(self, issue_number: int, project_path: str, options: dict, cancel: asyncio.Event):
        issue = await self._forge_call(
            self.forge.get_issue(project_path, issue_number), f"fetching issue #{issue_number}"
        )
        if issue is None:
            raise JobError(f"Issue #{issue_number} not found")

        repo_name = await self._repo_name(project_path)

        agent = self._acquire_agent()
        request = build_validation_request(issue, repo_name, project_path)
        output = await self._invoke(agent, request, issue_number, cancel)

        data = dict(output.data)
        data.update(
            issue_number=issue.number,
            issue_title=issue.title,
            repository_full_name=repo_name,
            provider=self.config.get("provider", ""),
            model=output.model,
            cost_usd=output.cost_usd,
            duration_ms=output.duration_ms,
            validated_at=utc_now(),
        )
        data.pop("id", None)
        result = ValidationResult.from_dict(data)
        return self.history.save(result)
