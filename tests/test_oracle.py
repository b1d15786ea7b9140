"""
Tests for the Anthropic-backed oracle (client mocked, no network).
"""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from company_intel.errors import OracleUnavailableError
from company_intel.models import ToolAccess
from company_intel.oracle import (
    WEB_FETCH_BETA,
    AnthropicOracle,
    build_oracle,
    split_content_blocks,
    usage_from_response,
)


def text_block(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


def thinking_block(thinking: str) -> SimpleNamespace:
    return SimpleNamespace(type="thinking", thinking=thinking)


def tool_block(block_type: str = "server_tool_use") -> SimpleNamespace:
    return SimpleNamespace(type=block_type)


def make_response(content, stop_reason="end_turn", input_tokens=100, output_tokens=50, searches=0):
    return SimpleNamespace(
        content=content,
        stop_reason=stop_reason,
        usage=SimpleNamespace(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            server_tool_use=SimpleNamespace(web_search_requests=searches, web_fetch_requests=0),
        ),
    )


# =============================================================================
# Content Block Tests
# =============================================================================


class TestSplitContentBlocks:
    """Tests for split_content_blocks."""

    def test_plain_text(self):
        text, reasoning = split_content_blocks([text_block("https://example.com")])
        assert text == "https://example.com"
        assert reasoning == []

    def test_final_text_after_last_tool(self):
        blocks = [
            thinking_block("I should search for the company profile."),
            text_block("Let me search."),
            tool_block("server_tool_use"),
            tool_block("web_search_tool_result"),
            text_block("The address matches. "),
            tool_block("web_fetch_tool_result"),
            text_block("https://example.co.jp/"),
        ]

        text, reasoning = split_content_blocks(blocks)

        assert text == "https://example.co.jp/"
        assert reasoning == [
            "I should search for the company profile.",
            "Let me search.",
            "The address matches.",
        ]

    def test_split_final_text_concatenated(self):
        blocks = [tool_block(), text_block("https://exa"), text_block("mple.com")]
        text, _ = split_content_blocks(blocks)
        assert text == "https://example.com"

    def test_no_text(self):
        text, reasoning = split_content_blocks([tool_block()])
        assert text == ""
        assert reasoning == []


class TestUsageFromResponse:
    """Tests for usage_from_response."""

    def test_reads_counts(self):
        usage = usage_from_response(make_response([], searches=2))
        assert usage.input_tokens == 100
        assert usage.output_tokens == 50
        assert usage.web_search_requests == 2

    def test_missing_usage(self):
        assert usage_from_response(SimpleNamespace()).total_tokens == 0

    def test_mock_values_ignored(self):
        usage = usage_from_response(MagicMock())
        assert usage.total_tokens == 0


# =============================================================================
# AnthropicOracle Tests
# =============================================================================


class TestAnthropicOracle:
    """Tests for AnthropicOracle.generate."""

    def test_requires_api_key(self):
        with pytest.raises(OracleUnavailableError):
            AnthropicOracle(api_key=None)

    @patch("company_intel.oracle.Anthropic")
    def test_client_built_from_key(self, mock_anthropic: MagicMock):
        AnthropicOracle(api_key="test-key")
        mock_anthropic.assert_called_once_with(api_key="test-key")

    def test_no_tools_uses_messages_api(self):
        client = MagicMock()
        client.messages.create.return_value = make_response([text_block("hello")])
        oracle = AnthropicOracle(client=client, model="test-model", max_tokens=1000)

        reply = oracle.generate("Say hello", temperature=0.0)

        assert reply.text == "hello"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"] == [{"role": "user", "content": "Say hello"}]
        assert "tools" not in kwargs
        client.beta.messages.create.assert_not_called()

    def test_research_tools_use_beta_api(self):
        client = MagicMock()
        client.beta.messages.create.return_value = make_response(
            [tool_block(), text_block("https://example.com")]
        )
        oracle = AnthropicOracle(client=client, max_tool_uses=4)

        reply = oracle.generate("Find it", tools=ToolAccess.research())

        assert reply.text == "https://example.com"
        kwargs = client.beta.messages.create.call_args.kwargs
        assert kwargs["betas"] == [WEB_FETCH_BETA]
        tool_types = [t["type"] for t in kwargs["tools"]]
        assert tool_types == ["web_search_20250305", "web_fetch_20250910"]
        assert all(t["max_uses"] == 4 for t in kwargs["tools"])

    def test_search_only_skips_beta(self):
        client = MagicMock()
        client.messages.create.return_value = make_response([text_block("ok")])
        oracle = AnthropicOracle(client=client)

        oracle.generate("Find it", tools=ToolAccess(web_search=True))

        kwargs = client.messages.create.call_args.kwargs
        assert "betas" not in kwargs
        assert [t["name"] for t in kwargs["tools"]] == ["web_search"]

    def test_thinking_enabled_drops_temperature(self):
        client = MagicMock()
        client.messages.create.return_value = make_response(
            [thinking_block("considering"), text_block("NONE")]
        )
        oracle = AnthropicOracle(client=client, max_tokens=8192, thinking_budget=2048)

        reply = oracle.generate("Find it")

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 2048}
        assert "temperature" not in kwargs
        assert reply.reasoning_segments == ["considering"]
        assert reply.text == "NONE"

    def test_pause_turn_continues(self):
        client = MagicMock()
        first = make_response([tool_block(), text_block("still working")], stop_reason="pause_turn")
        second = make_response([tool_block("web_search_tool_result"), text_block("https://example.com")])
        client.messages.create.side_effect = [first, second]
        oracle = AnthropicOracle(client=client)

        reply = oracle.generate("Find it", tools=ToolAccess(web_search=True))

        assert client.messages.create.call_count == 2
        second_messages = client.messages.create.call_args_list[1].kwargs["messages"]
        assert second_messages[-1] == {"role": "assistant", "content": first.content}
        assert reply.text == "https://example.com"
        assert reply.reasoning_segments == ["still working"]
        assert reply.usage.input_tokens == 200
        assert reply.stop_reason == "end_turn"

    def test_pause_turn_limit(self):
        client = MagicMock()
        client.messages.create.return_value = make_response([text_block("...")], stop_reason="pause_turn")
        oracle = AnthropicOracle(client=client, max_continuations=2)

        reply = oracle.generate("Find it")

        assert client.messages.create.call_count == 3
        assert reply.stop_reason == "pause_turn"

    def test_errors_propagate(self):
        client = MagicMock()
        client.messages.create.side_effect = ConnectionError("Network is unreachable")
        oracle = AnthropicOracle(client=client)

        with pytest.raises(ConnectionError):
            oracle.generate("Find it")

    def test_build_oracle_without_key(self, config):
        with pytest.raises(OracleUnavailableError):
            build_oracle(config)

    @patch("company_intel.oracle.Anthropic")
    def test_build_oracle_from_config(self, mock_anthropic: MagicMock, config):
        config.api_key = "test-key"
        oracle = build_oracle(config)
        assert oracle.model == config.model
        assert oracle.thinking_budget == config.thinking_budget
