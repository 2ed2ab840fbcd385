"""Base agent implementing the Template Method pattern.

Every capability shares the same streaming contract:
    invoke() -> emit "init" step -> _run() -> channel.complete(output)

_run() is the only part that differs: API agents make one prompted request
(with retry), the Claude Code agent drives a CLI subprocess and turns its
tool use into progress steps. Anything raised out of invoke() becomes the
channel's terminal error, so subclasses simply raise.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable

from prchorus_core.errors import AgentCancelledError, AgentError
from prchorus_core.models import ProgressStep
from prchorus_core.stream import StepChannel

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 8192


@dataclass
class AgentRequest:
    """What to ask the agent. Prompt building lives in prchorus_core.prompts."""

    system_prompt: str
    prompt: str
    output_schema: dict
    label: str = "Review"
    subject: str = ""
    cwd: str | None = None
    sub_agents: dict[str, dict] = field(default_factory=dict)


@dataclass
class AgentOutput:
    data: dict
    model: str = ""
    cost_usd: float = 0.0
    duration_ms: int = 0


class BaseAgent(ABC):
    NAME: str = ""
    MODEL: str = ""

    def __init__(self, model: str | None = None):
        self.model = model or self.MODEL

    async def invoke(self, request: AgentRequest, channel: StepChannel, cancel: asyncio.Event) -> None:
        start = time.monotonic()
        await channel.emit(
            ProgressStep("initializing", f"Starting {self.NAME} for {request.label.lower()}...", "init")
        )
        if cancel.is_set():
            raise AgentCancelledError(request.label)

        output = await self._run(request, channel, cancel)
        if not output.duration_ms:
            output.duration_ms = int((time.monotonic() - start) * 1000)
        await channel.complete(output)

    @abstractmethod
    async def _run(self, request: AgentRequest, channel: StepChannel, cancel: asyncio.Event) -> AgentOutput:
        """Produce the structured output, emitting progress steps on the way.

        Must honour ``cancel``: once it is set, stop promptly and raise
        AgentCancelledError.
        """

    def _parse(self, raw: str, label: str) -> dict:
        """Parse the model's raw text into the output object.

        Strips only the outer ```json fence the model may wrap the response
        in, not backticks inside string values.
        """
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, raw[:200])
            raise AgentError(f"{label} did not produce valid JSON output")
        if not isinstance(data, dict):
            raise AgentError(f"{label} output is not a JSON object")
        return data


def format_prompt(request: AgentRequest) -> str:
    """The user prompt followed by the output schema the reply must match."""
    return f"""{request.prompt}

### Output Format:
Respond with **only** a JSON object matching this JSON schema:

{json.dumps(request.output_schema, indent=2)}

Do not return any text outside the JSON object."""


async def race_cancel(awaitable: Awaitable[Any], cancel: asyncio.Event, label: str) -> Any:
    """Await ``awaitable`` unless ``cancel`` fires first, in which case it is cancelled."""
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise AgentCancelledError(label)
    finally:
        for pending in (task, waiter):
            if not pending.done():
                pending.cancel()


class ApiAgent(BaseAgent):
    """A single prompted request to a hosted model; no repository tools.

    Subclasses implement __init__ (validate and store the SDK client) and
    _call_api (one raw request returning text).
    """

    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    RETRY_BASE_DELAY: float = 1

    async def _run(self, request: AgentRequest, channel: StepChannel, cancel: asyncio.Event) -> AgentOutput:
        await channel.emit(ProgressStep("analyzing", f"Analyzing {request.subject or request.label}", "analyzing"))
        raw = await self._call_with_retry(request, cancel)
        await channel.emit(ProgressStep("processing-result", "Processing result...", "processing"))
        return AgentOutput(data=self._parse(raw, request.label), model=self.model)

    @abstractmethod
    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure; _call_with_retry handles retries and
        logging.
        """

    async def _call_with_retry(self, request: AgentRequest, cancel: asyncio.Event) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff.

        Both the request and the backoff wait stop as soon as ``cancel`` is set.
        """
        user_prompt = format_prompt(request)
        for attempt in range(self.MAX_RETRIES):
            try:
                return await race_cancel(self._call_api(request.system_prompt, user_prompt), cancel, request.label)
            except AgentCancelledError:
                raise
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise AgentError(f"{self.NAME} API failed after {self.MAX_RETRIES} attempts: {e}") from e
                delay = self.RETRY_BASE_DELAY * 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ss...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                await race_cancel(asyncio.sleep(delay), cancel, request.label)
        raise AgentError(f"{self.NAME} API made no attempts")
