"""Tests for agent capabilities.

Shared behaviour (_parse, _call_with_retry, the streaming contract) lives in
BaseAgent/ApiAgent and is tested once via a lightweight stub. Provider tests
cover only what differs: SDK client setup and _call_api.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from prchorus_core.errors import AgentError
from prchorus_core.providers.anthropic import AnthropicAgent
from prchorus_core.providers.base import AgentRequest, ApiAgent, format_prompt
from prchorus_core.providers.openai import OpenAIAgent
from prchorus_core.providers.registry import get_agent
from prchorus_core.stream import stream_capability

VALID_JSON = json.dumps({"findings": [], "verdict": "LGTM", "quality_score": 9})
REQUEST = AgentRequest(system_prompt="system", prompt="Review this", output_schema={"type": "object"}, subject="PR #1")


class _StubAgent(ApiAgent):
    NAME = "Stub"
    MODEL = "stub-1"
    RETRY_BASE_DELAY = 0

    def __init__(self, responses=None):
        super().__init__()
        self.responses = list(responses or [VALID_JSON])
        self.calls = []

    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


async def _run(agent, cancel=None):
    steps = []

    async def on_step(step):
        steps.append(step)

    cancel = cancel or asyncio.Event()
    output = await stream_capability(lambda channel: agent.invoke(REQUEST, channel, cancel), on_step)
    return output, steps


# ---------------------------------------------------------------------------
# Shared behaviour, tested once through the stub
# ---------------------------------------------------------------------------


class TestParse:
    def test_parses_object(self):
        assert _StubAgent()._parse(VALID_JSON, "Review")["verdict"] == "LGTM"

    def test_strips_outer_fence_only(self):
        payload = json.dumps({"verdict": "Use:\n```python\nfoo()\n```"})
        data = _StubAgent()._parse(f"```json\n{payload}\n```", "Review")
        assert "```python" in data["verdict"]

    def test_invalid_json_raises(self):
        with pytest.raises(AgentError, match="Review did not produce valid JSON output"):
            _StubAgent()._parse("not json", "Review")

    def test_non_object_raises(self):
        with pytest.raises(AgentError, match="not a JSON object"):
            _StubAgent()._parse("[]", "Review")


class TestFormatPrompt:
    def test_appends_schema(self):
        prompt = format_prompt(REQUEST)
        assert prompt.startswith("Review this")
        assert '"type": "object"' in prompt


class TestApiAgent:
    @pytest.mark.asyncio
    async def test_streams_steps_then_result(self):
        output, steps = await _run(_StubAgent())

        assert [s.step_type for s in steps] == ["init", "analyzing", "processing"]
        assert steps[0].message == "Starting Stub for review..."
        assert output.data["quality_score"] == 9
        assert output.model == "stub-1"
        assert output.cost_usd == 0.0

    @pytest.mark.asyncio
    async def test_retries_transient_failure(self):
        agent = _StubAgent([RuntimeError("transient"), VALID_JSON])
        output, _ = await _run(agent)
        assert len(agent.calls) == 2
        assert output.data["verdict"] == "LGTM"

    @pytest.mark.asyncio
    async def test_fails_after_max_retries(self):
        agent = _StubAgent([RuntimeError("network error")])
        with pytest.raises(AgentError, match="Stub API failed after 3 attempts: network error"):
            await _run(agent)
        assert len(agent.calls) == 3

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        cancel = asyncio.Event()
        cancel.set()
        agent = _StubAgent()
        with pytest.raises(AgentError, match="cancelled"):
            await _run(agent, cancel)
        assert agent.calls == []

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self):
        class _SlowRetry(_StubAgent):
            RETRY_BASE_DELAY = 30

        agent = _SlowRetry([RuntimeError("boom")])
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(AgentError, match="Review cancelled by user"):
            await asyncio.wait_for(_run(agent, cancel), timeout=5)
        assert len(agent.calls) == 1


# ---------------------------------------------------------------------------
# Provider-specific
# ---------------------------------------------------------------------------


class TestAnthropicAgent:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError, match="prchorus\\[anthropic\\]"):
                AnthropicAgent(api_key="key")

    @pytest.mark.asyncio
    async def test_call_api_joins_text_blocks(self):
        from anthropic.types import TextBlock

        agent = AnthropicAgent(api_key="key")
        agent.client = MagicMock()
        agent.client.messages.create = AsyncMock(
            return_value=SimpleNamespace(content=[TextBlock(type="text", text=f" {VALID_JSON} ")])
        )

        assert await agent._call_api("system", "user") == VALID_JSON
        kwargs = agent.client.messages.create.call_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["temperature"] == AnthropicAgent.TEMPERATURE
        assert kwargs["model"] == AnthropicAgent.MODEL

    def test_model_override(self):
        assert AnthropicAgent(api_key="key", model="claude-opus").model == "claude-opus"


class TestOpenAIAgent:
    def test_raises_import_error_without_sdk(self):
        import prchorus_core.providers.openai as openai_mod

        with patch.object(openai_mod, "_AsyncOpenAI", None):
            with pytest.raises(ImportError):
                OpenAIAgent(api_key="key")

    @pytest.mark.asyncio
    async def test_call_api_requests_json(self):
        agent = OpenAIAgent(api_key="key")
        message = SimpleNamespace(content=VALID_JSON)
        agent.client = MagicMock()
        agent.client.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)])
        )

        assert await agent._call_api("system", "user") == VALID_JSON
        kwargs = agent.client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}


class TestRegistry:
    def test_anthropic_without_key_is_unavailable(self):
        assert get_agent({"provider": "anthropic"}) is None

    def test_anthropic_with_key(self):
        agent = get_agent({"provider": "anthropic", "anthropic_api_key": "key", "model": "claude-x"})
        assert isinstance(agent, AnthropicAgent)
        assert agent.model == "claude-x"

    def test_openai_with_key(self):
        assert isinstance(get_agent({"provider": "openai", "openai_api_key": "key"}), OpenAIAgent)

    def test_claude_code_requires_binary(self):
        with patch("prchorus_core.providers.claude_code.shutil.which", return_value=None):
            assert get_agent({"provider": "claude-code"}) is None
        with patch("prchorus_core.providers.claude_code.shutil.which", return_value="/usr/bin/claude"):
            assert get_agent({"provider": "claude-code"}).NAME == "Claude Code"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            get_agent({"provider": "llama"})
