"""Tests for discussion summarizer implementations.

Shared behaviour (summarize, _parse, prompts, _call_with_retry) lives in
BaseSummarizer and is tested once via a lightweight stub. Provider-specific
tests cover the SDK call shape and truncated replies.
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from quorum_core.providers.anthropic import AnthropicSummarizer
from quorum_core.providers.base import BaseSummarizer
from quorum_core.providers.openai import OpenAISummarizer
from quorum_core.utils.discussion import DiscussionComment, IssueContext

VALID_JSON = json.dumps(
    {
        "proposal": "Add rate limiting to the API",
        "alignedOn": ["Token bucket"],
        "openForPR": ["Exact limits"],
        "notIncluded": [],
        "metadata": {"commentCount": 2, "participantCount": 2},
    }
)


def _context(authors=("alice", "bob"), author="op"):
    comments = [DiscussionComment(author=a, body=f"comment by {a}", created_at="2026-01-01") for a in authors]
    return IssueContext(title="Rate limiting", body="We need it", author=author, comments=comments)


class _StubSummarizer(BaseSummarizer):
    def __init__(self, response=VALID_JSON):
        self.response = response
        self.calls = 0

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        self.calls += 1
        return self.response


# ---------------------------------------------------------------------------
# Shared behaviour
# ---------------------------------------------------------------------------


class TestSummarize:
    def test_success(self):
        result = _StubSummarizer().summarize(_context())
        assert result.success
        assert result.summary.proposal == "Add rate limiting to the API"

    def test_minimal_summary_without_discussion(self):
        stub = _StubSummarizer()
        result = stub.summarize(_context(authors=()))
        assert result.success
        assert result.summary.proposal == "Rate limiting"
        assert stub.calls == 0

    def test_minimal_summary_when_only_author_commented(self):
        stub = _StubSummarizer()
        result = stub.summarize(_context(authors=("op", "op"), author="op"))
        assert result.success
        assert stub.calls == 0

    def test_hallucinated_counts_rejected(self):
        result = _StubSummarizer().summarize(_context(authors=("alice", "bob", "carol")))
        assert not result.success
        assert "hallucination" in result.reason

    def test_invalid_summary(self):
        result = _StubSummarizer(response='{"proposal": ""}').summarize(_context())
        assert not result.success
        assert "invalid summary" in result.reason


class TestParse:
    def test_strips_code_fence(self):
        assert _StubSummarizer()._parse(f"```json\n{VALID_JSON}\n```") is not None

    def test_invalid_json(self):
        assert _StubSummarizer()._parse("not json") is None


class TestPrompts:
    def test_user_prompt_contains_counts_and_discussion(self):
        prompt = _StubSummarizer()._build_user_prompt(_context())
        assert "Total comments: 2" in prompt
        assert "Unique participants: 2" in prompt
        assert "comment by bob" in prompt

    def test_system_prompt_mentions_readiness(self):
        assert "READY TO IMPLEMENT" in _StubSummarizer()._build_system_prompt()


class TestRetry:
    def test_failure_after_max_retries(self):
        class _AlwaysFail(BaseSummarizer):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                raise RuntimeError("network error")

        with patch("quorum_core.providers.base.time.sleep"):
            result = _AlwaysFail().summarize(_context())
        assert not result.success
        assert result.reason == "summarizer API failed"

    def test_retries_transient_failure(self):
        call_count = 0

        class _FailOnce(BaseSummarizer):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                nonlocal call_count
                call_count += 1
                if call_count == 1:
                    raise RuntimeError("transient")
                return VALID_JSON

        with patch("quorum_core.providers.base.time.sleep"):
            result = _FailOnce().summarize(_context())
        assert result.success
        assert call_count == 2


# ---------------------------------------------------------------------------
# Provider-specific
# ---------------------------------------------------------------------------


class TestAnthropicSummarizer:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            try:
                AnthropicSummarizer(api_key="key")
                assert False, "Expected ImportError"
            except ImportError as e:
                assert "quorum-gov[anthropic]" in str(e)

    def test_model_is_claude(self):
        assert "claude" in AnthropicSummarizer.MODEL

    def test_temperature_is_low(self):
        assert AnthropicSummarizer.TEMPERATURE == 0.2

    def _summarizer(self, stop_reason="end_turn", text=VALID_JSON[1:], model=None):
        sdk = MagicMock()
        sdk.Anthropic.return_value.messages.create.return_value = SimpleNamespace(
            stop_reason=stop_reason, content=[SimpleNamespace(type="text", text=text)]
        )
        with patch.dict("sys.modules", {"anthropic": sdk}):
            summarizer = AnthropicSummarizer(api_key="key", model=model)
        return summarizer, sdk.Anthropic.return_value.messages.create

    def test_prefill_is_restored(self):
        summarizer, create = self._summarizer()
        assert json.loads(summarizer._call_api("sys", "user"))["proposal"] == "Add rate limiting to the API"
        assert create.call_args.kwargs["messages"][-1] == {"role": "assistant", "content": "{"}

    def test_model_override(self):
        summarizer, create = self._summarizer(model="claude-haiku")
        summarizer._call_api("sys", "user")
        assert create.call_args.kwargs["model"] == "claude-haiku"

    def test_truncated_summary_raises(self):
        summarizer, _ = self._summarizer(stop_reason="max_tokens")
        with pytest.raises(RuntimeError, match="cut off"):
            summarizer._call_api("sys", "user")


class TestOpenAISummarizer:
    def test_raises_import_error_without_sdk(self):
        import quorum_core.providers.openai as openai_mod

        real_openai = openai_mod._OpenAI
        openai_mod._OpenAI = None
        try:
            OpenAISummarizer(api_key="key")
            assert False, "Expected ImportError"
        except ImportError:
            pass
        finally:
            openai_mod._OpenAI = real_openai

    def test_call_api_requests_json(self):
        import quorum_core.providers.openai as openai_mod

        fake_client = MagicMock()
        fake_client.chat.completions.create.return_value.choices = [MagicMock(message=MagicMock(content=VALID_JSON))]
        with patch.object(openai_mod, "_OpenAI", return_value=fake_client):
            summarizer = OpenAISummarizer(api_key="key")
        assert summarizer._call_api("sys", "user") == VALID_JSON
        kwargs = fake_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["model"] == "gpt-4o"

    def test_truncated_summary_raises(self):
        import quorum_core.providers.openai as openai_mod

        fake_client = MagicMock()
        fake_client.chat.completions.create.return_value.choices = [
            SimpleNamespace(finish_reason="length", message=SimpleNamespace(content='{"proposal": "Add'))
        ]
        with patch.object(openai_mod, "_OpenAI", return_value=fake_client):
            summarizer = OpenAISummarizer(api_key="key")
        with pytest.raises(RuntimeError, match="cut off"):
            summarizer._call_api("sys", "user")

    def test_model_is_gpt(self):
        assert "gpt" in OpenAISummarizer.MODEL
