"""
OpenAI Chat Completions adapter
===============================

Tools are declared as ``{type: function, function: {...}}``. Calls arrive as
``tool_calls`` on the assistant message with their arguments encoded as a JSON
string; each result goes back as its own ``tool`` message.

Works with any OpenAI-compatible endpoint (set ``base_url``).
"""

from __future__ import annotations

import json
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


DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIAdapter(ProviderAdapter):
    name = "openai"
    default_model = DEFAULT_MODEL

    @classmethod
    def create(
        cls, model: str = None, api_key: str = None, base_url: str = None, **kwargs
    ) -> "OpenAIAdapter":
        """Build the adapter with an SDK client that never retries."""
        import openai

        client_kwargs = {"max_retries": 0}
        if api_key:
            client_kwargs["api_key"] = api_key
        if base_url:
            client_kwargs["base_url"] = base_url
        return cls(openai.OpenAI(**client_kwargs), model or cls.default_model, **kwargs)

    def _choice(self, response: Any) -> dict:
        choices = as_dict(response).get("choices")
        if (
            not choices
            or not isinstance(choices[0], dict)
            or not isinstance(choices[0].get("message"), dict)
        ):
            raise BackendProtocolError("OpenAI response has no message choice")
        return choices[0]

    def _tool_calls(self, response: Any) -> list[tuple[str, str, str]]:
        """Return (id, name, arguments) of every tool call in the response."""
        calls = []
        for call in self._choice(response)["message"].get("tool_calls") or []:
            function = call.get("function") if isinstance(call, dict) else None
            if not isinstance(function, dict):
                raise BackendProtocolError(f"OpenAI tool call without a function: {call!r}")
            call_id, name = call.get("id"), function.get("name")
            if not isinstance(call_id, str) or not call_id or not isinstance(name, str) or not name:
                raise BackendProtocolError(f"OpenAI tool call without id or name: {call!r}")
            arguments = function.get("arguments") or "{}"
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            calls.append((call_id, name, arguments))
        return calls

    def declare_tools(self, descriptors: Sequence[ToolDescriptor]) -> list:
        return [
            {
                "type": "function",
                "function": {
                    "name": d.name,
                    "description": d.description,
                    "parameters": d.parameters_schema(),
                },
            }
            for d in descriptors
        ]

    def extract_invocations(self, response: Any) -> list[ToolInvocation]:
        invocations = []
        for call_id, name, encoded in self._tool_calls(response):
            try:
                arguments = json.loads(encoded)
            except json.JSONDecodeError:
                logger.warning("Unparsable arguments for %s: %r", name, encoded)
                arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}
            invocations.append(
                ToolInvocation(tool_name=name, invocation_id=call_id, raw_input=arguments)
            )
        return invocations

    def format_results(self, results: Sequence[ToolResult]) -> list[dict]:
        return [
            {"role": "tool", "tool_call_id": r.invocation_id, "content": r.content}
            for r in results
        ]

    def extract_final_text(self, response: Any) -> Optional[str]:
        return self._choice(response)["message"].get("content")

    def invoke(self, system_prompt: str, messages: list[dict], tools: list) -> dict:
        import openai

        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "system", "content": system_prompt}] + messages,
            "timeout": self.timeout,
        }
        if tools:
            kwargs["tools"] = tools
        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise BackendCallError(f"OpenAI call failed: {e}") from e
        return as_dict(response)

    def format_turn(self, turn: ConversationTurn) -> dict:
        return {"role": turn.role, "content": turn.text}

    def assistant_message(self, response: Any) -> dict:
        message = self._choice(response)["message"]
        echoed = {"role": "assistant", "content": message.get("content")}
        calls = self._tool_calls(response)
        if calls:
            echoed["tool_calls"] = [
                {
                    "id": call_id,
                    "type": "function",
                    "function": {"name": name, "arguments": arguments},
                }
                for call_id, name, arguments in calls
            ]
        return echoed

    def is_end_turn(self, response: Any) -> bool:
        return self._choice(response).get("finish_reason") == "stop"

    def extract_usage(self, response: Any) -> UsageRecord:
        data = as_dict(response)
        usage = data.get("usage") or {}
        prompt = usage.get("prompt_tokens", 0)
        completion = usage.get("completion_tokens", 0)
        return UsageRecord(
            backend_request_id=data.get("id"),
            model=data.get("model", self.model),
            input_tokens=prompt,
            output_tokens=completion,
            total_tokens=usage.get("total_tokens", prompt + completion),
            source=self.name,
        )
