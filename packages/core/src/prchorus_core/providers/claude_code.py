"""Claude Code agent: runs the `claude` CLI inside the repository checkout.

Unlike the API agents it can read, grep and glob the codebase, so each
tool call it makes is relayed as a progress step. Output is the CLI's
``stream-json`` format, one JSON event per line.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from collections import deque

from prchorus_core.errors import AgentError
from prchorus_core.models import ProgressStep
from prchorus_core.providers.base import AgentOutput, AgentRequest, BaseAgent, format_prompt, race_cancel
from prchorus_core.stream import StepChannel

logger = logging.getLogger(__name__)

_TOOLS = ["Read", "Grep", "Glob", "Bash"]
_MAX_STDERR_LINES = 20
# stream-json events carry whole file contents; the asyncio default of 64 KiB is too small.
_STREAM_LIMIT = 16 * 1024 * 1024
_TERMINATE_GRACE = 5

ASSISTANT_ERROR_MESSAGES = {
    "authentication_failed": "Claude authentication failed. Please re-authenticate.",
    "billing_error": "Claude billing error. Check your subscription.",
    "rate_limit": "Rate limited by Claude API. Please try again later.",
    "invalid_request": "Invalid request sent to Claude API.",
    "server_error": "Claude API server error. Please try again later.",
    "max_output_tokens": "Claude response exceeded maximum output tokens.",
}


def _truncate(text: str, max_len: int) -> str:
    return text if len(text) <= max_len else text[:max_len] + "..."


def tool_use_step(name: str, tool_input: dict) -> ProgressStep:
    """Describe one tool call as a progress step."""
    if name == "Read":
        file_path = tool_input.get("file_path") or "unknown file"
        return ProgressStep("tool-read", f"Reading {file_path}", "reading", tool_name=name)
    if name == "Grep":
        pattern = _truncate(tool_input.get("pattern") or "", 40)
        where = tool_input.get("path") or "codebase"
        return ProgressStep("tool-grep", f'Searching for "{pattern}" in {where}', "searching", tool_name=name)
    if name == "Glob":
        return ProgressStep(
            "tool-glob", f"Finding files matching {tool_input.get('pattern') or ''}", "searching", tool_name=name
        )
    if name == "Bash":
        command = _truncate(tool_input.get("command") or "", 80)
        return ProgressStep("tool-bash", f"Running command: {command}", "tool-use", tool_name=name)
    if name == "Task":
        description = tool_input.get("description") or ""
        suffix = f": {_truncate(description, 60)}" if description else ""
        return ProgressStep("tool-task", f"Delegating to sub-agent{suffix}", "tool-use", tool_name=name)
    return ProgressStep(f"tool-{name.lower()}", f"Using {name}", "tool-use", tool_name=name)


class ClaudeCodeAgent(BaseAgent):
    NAME = "Claude Code"
    MODEL = "claude-sonnet-4-5-20250929"
    MAX_TURNS = 50

    def __init__(self, model: str | None = None, binary: str = "claude", max_turns: int | None = None):
        super().__init__(model)
        self.binary = binary
        self.max_turns = max_turns or self.MAX_TURNS

    @classmethod
    def available(cls, binary: str = "claude") -> bool:
        return shutil.which(binary) is not None

    def build_command(self, request: AgentRequest) -> list[str]:
        tools = list(_TOOLS)
        command = [
            self.binary,
            "--print",
            format_prompt(request),
            "--output-format",
            "stream-json",
            "--verbose",
            "--model",
            self.model,
            "--append-system-prompt",
            request.system_prompt,
            "--max-turns",
            str(self.max_turns),
        ]
        if request.sub_agents:
            tools.append("Task")
            command += ["--agents", json.dumps(request.sub_agents)]
        command += ["--allowedTools", ",".join(tools)]
        return command

    async def _run(self, request: AgentRequest, channel: StepChannel, cancel: asyncio.Event) -> AgentOutput:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command(request),
                cwd=request.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except FileNotFoundError:
            raise AgentError(
                f"Claude Code CLI not found ({self.binary!r}). Install it and run `claude` once to log in."
            )

        await channel.emit(ProgressStep("reading-pr", f"Analyzing {request.subject or request.label}", "analyzing"))

        stderr_lines: deque[str] = deque(maxlen=_MAX_STDERR_LINES)
        stderr_task = asyncio.ensure_future(self._collect_stderr(proc, stderr_lines))
        try:
            result = await race_cancel(self._consume(proc, channel, request.label), cancel, request.label)
        except AgentError as e:
            if stderr_lines and "cancelled" not in str(e):
                stderr_context = "\n".join(stderr_lines)
                logger.error("stderr output:\n%s", stderr_context)
                raise AgentError(f"{e}\n[stderr]: {stderr_context}") from e
            raise
        finally:
            await self._terminate(proc)
            stderr_task.cancel()
            await asyncio.gather(stderr_task, return_exceptions=True)

        await channel.emit(ProgressStep("processing-result", "Processing result...", "processing"))
        text = result.get("result") or ""
        structured = result.get("structured_output")
        data = structured if isinstance(structured, dict) else self._parse(text, request.label)
        cost = result.get("total_cost_usd")
        return AgentOutput(
            data=data,
            model=self.model,
            cost_usd=cost if isinstance(cost, (int, float)) else 0.0,
            duration_ms=result.get("duration_ms") or 0,
        )

    async def _consume(self, proc, channel: StepChannel, label: str) -> dict:
        """Relay tool use as steps until the final ``result`` event, which is returned."""
        async for raw_line in proc.stdout:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON output line: %s", line[:200])
                continue

            event_type = event.get("type")
            if event_type == "assistant":
                message = event.get("message") or {}
                error = event.get("error") or message.get("error")
                if error:
                    friendly = ASSISTANT_ERROR_MESSAGES.get(str(error), f"Claude agent error: {error}")
                    logger.error("Assistant error: %s (%s)", error, friendly)
                    raise AgentError(friendly)
                for block in message.get("content") or []:
                    if isinstance(block, dict) and block.get("type") == "tool_use":
                        step = tool_use_step(block.get("name") or "tool", block.get("input") or {})
                        logger.info("Step: [%s] %s", step.step_type, step.message)
                        await channel.emit(step)
            elif event_type == "result":
                subtype = event.get("subtype")
                if subtype == "success" and not event.get("is_error"):
                    logger.info("%s completed successfully", label)
                    return event
                if subtype == "error_max_turns":
                    raise AgentError(
                        f"{label} ran out of turns (limit: {self.max_turns}). "
                        "Try raising the turn limit or using a more capable model."
                    )
                errors = event.get("errors") or [event.get("result") or "Unknown error"]
                raise AgentError(f"{label} failed: {subtype} - {', '.join(str(e) for e in errors)}")

        await proc.wait()
        raise AgentError(f"{label} completed without producing a result (exit code {proc.returncode})")

    @staticmethod
    async def _collect_stderr(proc, buffer: deque) -> None:
        async for raw_line in proc.stderr:
            buffer.append(raw_line.decode("utf-8", errors="replace").rstrip())

    @staticmethod
    async def _terminate(proc) -> None:
        if proc.returncode is not None:
            return
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE)
        except asyncio.TimeoutError:
            logger.warning("Claude Code process did not exit after terminate; killing it")
            proc.kill()
            await proc.wait()
