"""
Anthropic Messages adapter
==========================

Tools are declared as ``{name, description, input_schema}``. The model asks
for calls with ``tool_use`` content blocks; results go back as one ``user``
message holding a ``tool_result`` block per call.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from toolrelay.adapters.base import (
    ConversationTurn,
    ProviderAdapter,
    UsageRecord,
    as_dict,
)
from toolrelay.descriptor import ToolDescriptor, ToolInvocation, ToolResult
from toolrelay.errors import BackendCallError, BackendProtocolError

logger = logging.getLogger(__name__)


DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicAdapter(ProviderAdapter):
    name = "anthropic"
    default_model = DEFAULT_MODEL

    @classmethod
    def create(cls, model: str = None, api_key: str = None, **kwargs) -> "AnthropicAdapter":
        """Build the adapter with an SDK client that never retries."""
        import anthropic

        client_kwargs = {"max_retries": 0}
        if api_key:
            client_kwargs["api_key"] = api_key
        return cls(anthropic.Anthropic(**client_kwargs), model or cls.default_model, **kwargs)

    def _content(self, response: Any) -> list:
        content = as_dict(response).get("content")
        if not isinstance(content, list) or not all(isinstance(b, dict) for b in content):
            raise BackendProtocolError("Anthropic response has no content blocks")
        return content

    @staticmethod
    def _tool_use(block: dict) -> tuple[str, str]:
        """Return (id, name) of a tool_use block."""
        tool_id, name = block.get("id"), block.get("name")
        if not isinstance(tool_id, str) or not tool_id or not isinstance(name, str) or not name:
            raise BackendProtocolError(f"Anthropic tool_use block without id or name: {block!r}")
        return tool_id, name

    def declare_tools(self, descriptors: Sequence[ToolDescriptor]) -> list:
        return [
            {
                "name": d.name,
                "description": d.description,
                "input_schema": d.parameters_schema(),
            }
            for d in descriptors
        ]

    def extract_invocations(self, response: Any) -> list[ToolInvocation]:
        invocations = []
        for block in self._content(response):
            if block.get("type") != "tool_use":
                continue
            tool_id, name = self._tool_use(block)
            invocations.append(
                ToolInvocation(
                    tool_name=name,
                    invocation_id=tool_id,
                    raw_input=block.get("input") or {},
                )
            )
        return invocations

    def format_results(self, results: Sequence[ToolResult]) -> list[dict]:
        return [
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": r.invocation_id,
                        "content": r.content,
                    }
                    for r in results
                ],
            }
        ]

    def extract_final_text(self, response: Any) -> Optional[str]:
        parts = [
            b["text"]
            for b in self._content(response)
            if b.get("type") == "text" and isinstance(b.get("text"), str)
        ]
        return "".join(parts) if parts else None

    def invoke(self, system_prompt: str, messages: list[dict], tools: list) -> dict:
        import anthropic

        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": messages,
            "timeout": self.timeout,
        }
        if tools:
            kwargs["tools"] = tools
        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise BackendCallError(f"Anthropic call failed: {e}") from e
        return as_dict(response)

    def format_turn(self, turn: ConversationTurn) -> dict:
        return {"role": turn.role, "content": turn.text}

    def assistant_message(self, response: Any) -> dict:
        # Echo only the block fields the API accepts back.
        content = []
        for block in self._content(response):
            if block.get("type") == "tool_use":
                tool_id, name = self._tool_use(block)
                content.append(
                    {
                        "type": "tool_use",
                        "id": tool_id,
                        "name": name,
                        "input": block.get("input") or {},
                    }
                )
            elif block.get("type") == "text":
                content.append({"type": "text", "text": block.get("text", "")})
        return {"role": "assistant", "content": content}

    def is_end_turn(self, response: Any) -> bool:
        return as_dict(response).get("stop_reason") == "end_turn"

    def extract_usage(self, response: Any) -> UsageRecord:
        data = as_dict(response)
        usage = data.get("usage") or {}
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        return UsageRecord(
            backend_request_id=data.get("id"),
            model=data.get("model", self.model),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            source=self.name,
        )
