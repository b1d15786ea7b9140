"""
Oracle boundary - the external reasoning/search capability.

The pipeline depends only on ``Oracle.generate`` returning an OracleReply:
the final text, optional intermediate reasoning segments and (for
observability) token usage. AnthropicOracle implements it with the
Messages API plus the server-side web search and web fetch tools.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from anthropic import Anthropic

from company_intel.config import ResearchConfig
from company_intel.errors import OracleUnavailableError
from company_intel.models import OracleReply, ToolAccess, UsageMetrics


logger = logging.getLogger(__name__)


WEB_SEARCH_TOOL = "web_search_20250305"
WEB_FETCH_TOOL = "web_fetch_20250910"
WEB_FETCH_BETA = "web-fetch-2025-09-10"

# Block types that carry server-side tool activity
TOOL_BLOCK_TYPES = {
    "server_tool_use",
    "web_search_tool_result",
    "web_fetch_tool_result",
}


class Oracle(Protocol):
    """Anything that can answer a natural-language instruction."""

    def generate(
        self,
        instruction: str,
        tools: ToolAccess = ToolAccess(),
        temperature: float = 0.0,
    ) -> OracleReply:
        ...


class AnthropicOracle:
    """Oracle backed by Claude with web search / web fetch server tools."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 8192,
        thinking_budget: int = 0,
        max_tool_uses: int = 8,
        max_continuations: int = 3,
        client: Optional[Anthropic] = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise OracleUnavailableError(
                    "ANTHROPIC_API_KEY environment variable required for the research oracle"
                )
            client = Anthropic(api_key=api_key)
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.thinking_budget = thinking_budget
        self.max_tool_uses = max_tool_uses
        self.max_continuations = max_continuations

    @classmethod
    def from_config(cls, config: ResearchConfig) -> "AnthropicOracle":
        return cls(
            api_key=config.api_key,
            model=config.model,
            max_tokens=config.max_tokens,
            thinking_budget=config.thinking_budget,
            max_tool_uses=config.max_tool_uses,
        )

    def _tool_definitions(self, tools: ToolAccess) -> List[Dict[str, Any]]:
        definitions = []
        if tools.web_search:
            definitions.append({
                "type": WEB_SEARCH_TOOL,
                "name": "web_search",
                "max_uses": self.max_tool_uses,
            })
        if tools.fetch_url:
            definitions.append({
                "type": WEB_FETCH_TOOL,
                "name": "web_fetch",
                "max_uses": self.max_tool_uses,
            })
        return definitions

    def _request_params(self, tools: ToolAccess, temperature: float) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
        }
        definitions = self._tool_definitions(tools)
        if definitions:
            params["tools"] = definitions
        if self.thinking_budget > 0:
            # Extended thinking only runs at the default temperature
            params["thinking"] = {"type": "enabled", "budget_tokens": self.thinking_budget}
        else:
            params["temperature"] = temperature
        if tools.fetch_url:
            params["betas"] = [WEB_FETCH_BETA]
        return params

    def generate(
        self,
        instruction: str,
        tools: ToolAccess = ToolAccess(),
        temperature: float = 0.0,
    ) -> OracleReply:
        """Run one instruction to completion, following pause_turn continuations.

        Args:
            instruction: Natural-language instruction
            tools: Which server tools the model may use
            temperature: Sampling temperature (ignored when thinking is enabled)

        Returns:
            OracleReply with final text, reasoning segments and usage
        """
        params = self._request_params(tools, temperature)
        use_beta = "betas" in params
        messages: List[Dict[str, Any]] = [{"role": "user", "content": instruction}]

        blocks: List[Any] = []
        usage = UsageMetrics()
        stop_reason = None

        for attempt in range(self.max_continuations + 1):
            logger.debug(f"Calling {self.model} (turn {attempt + 1}, tools={tools})")
            if use_beta:
                response = self._client.beta.messages.create(messages=messages, **params)
            else:
                response = self._client.messages.create(messages=messages, **params)

            blocks.extend(response.content)
            usage = usage + usage_from_response(response)
            stop_reason = getattr(response, "stop_reason", None)

            if stop_reason != "pause_turn":
                break
            # Server tool loop hit its iteration limit; hand the turn back to continue
            messages = messages + [{"role": "assistant", "content": response.content}]
        else:
            logger.warning(
                f"Oracle still paused after {self.max_continuations} continuations"
            )

        text, reasoning = split_content_blocks(blocks)
        logger.info(
            f"Oracle reply: {len(text)} chars, {len(reasoning)} reasoning segments, "
            f"{usage.total_tokens} tokens (stop_reason={stop_reason})"
        )
        return OracleReply(
            text=text,
            reasoning_segments=reasoning,
            usage=usage,
            stop_reason=stop_reason,
        )


def split_content_blocks(blocks: List[Any]) -> tuple[str, List[str]]:
    """Separate the final answer from intermediate reasoning.

    The final answer is the concatenation of text blocks after the last
    server tool block. Thinking blocks and any narration emitted before
    the last tool call become reasoning segments.
    """
    last_tool_index = -1
    for i, block in enumerate(blocks):
        if getattr(block, "type", None) in TOOL_BLOCK_TYPES:
            last_tool_index = i

    final_parts: List[str] = []
    reasoning: List[str] = []
    for i, block in enumerate(blocks):
        block_type = getattr(block, "type", None)
        if block_type == "thinking":
            thinking = getattr(block, "thinking", "")
            if thinking:
                reasoning.append(thinking)
        elif block_type == "text":
            text = getattr(block, "text", "") or ""
            if i > last_tool_index:
                final_parts.append(text)
            elif text.strip():
                reasoning.append(text.strip())

    return "".join(final_parts).strip(), reasoning


def usage_from_response(response: Any) -> UsageMetrics:
    """Read token counts from a Messages API response."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return UsageMetrics()
    server_tools = getattr(usage, "server_tool_use", None)
    return UsageMetrics(
        input_tokens=_as_int(getattr(usage, "input_tokens", 0)),
        output_tokens=_as_int(getattr(usage, "output_tokens", 0)),
        web_search_requests=_as_int(getattr(server_tools, "web_search_requests", 0)),
        web_fetch_requests=_as_int(getattr(server_tools, "web_fetch_requests", 0)),
    )


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) else 0


def build_oracle(config: ResearchConfig) -> Oracle:
    """Create the default oracle for a configuration."""
    return AnthropicOracle.from_config(config)
