"""
AWS Bedrock Converse adapter
============================

Tools are declared as ``{toolSpec: {name, description, inputSchema: {json}}}``.
Calls arrive as ``toolUse`` blocks in ``output.message.content``; results go
back as one ``user`` message of ``toolResult`` blocks.

Usage:
    adapter = BedrockAdapter.create(model="anthropic.claude-3-5-sonnet-20240620-v1:0",
                                    region="us-east-1")
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from toolrelay.adapters.base import (
    DEFAULT_TIMEOUT,
    ConversationTurn,
    ProviderAdapter,
    UsageRecord,
    as_dict,
)
from toolrelay.descriptor import ToolDescriptor, ToolInvocation, ToolResult
from toolrelay.errors import BackendCallError, BackendProtocolError

logger = logging.getLogger(__name__)


DEFAULT_MODEL = "anthropic.claude-3-5-sonnet-20240620-v1:0"


class BedrockAdapter(ProviderAdapter):
    name = "bedrock"
    default_model = DEFAULT_MODEL

    @classmethod
    def create(
        cls,
        model: str = None,
        region: str = None,
        timeout: float = DEFAULT_TIMEOUT,
        **kwargs,
    ) -> "BedrockAdapter":
        """Build the adapter with a bedrock-runtime client that never retries."""
        config = Config(
            read_timeout=timeout,
            connect_timeout=min(timeout, 10),
            retries={"total_max_attempts": 1, "mode": "standard"},
        )
        client = boto3.client("bedrock-runtime", region_name=region, config=config)
        return cls(client, model or cls.default_model, timeout=timeout, **kwargs)

    def _message(self, response: Any) -> dict:
        output = as_dict(response).get("output")
        message = output.get("message") if isinstance(output, dict) else None
        if (
            not isinstance(message, dict)
            or not isinstance(message.get("content"), list)
            or not all(isinstance(b, dict) for b in message["content"])
        ):
            raise BackendProtocolError("Bedrock response has no output message")
        return message

    @staticmethod
    def _tool_use(block: dict) -> dict:
        tool_use = block["toolUse"]
        if (
            not isinstance(tool_use, dict)
            or not isinstance(tool_use.get("toolUseId"), str)
            or not tool_use["toolUseId"]
            or not isinstance(tool_use.get("name"), str)
            or not tool_use["name"]
        ):
            raise BackendProtocolError(f"Bedrock toolUse block without id or name: {block!r}")
        return tool_use

    def declare_tools(self, descriptors: Sequence[ToolDescriptor]) -> list:
        return [
            {
                "toolSpec": {
                    "name": d.name,
                    "description": d.description,
                    "inputSchema": {"json": d.parameters_schema()},
                }
            }
            for d in descriptors
        ]

    def extract_invocations(self, response: Any) -> list[ToolInvocation]:
        invocations = []
        for block in self._message(response)["content"]:
            if "toolUse" not in block:
                continue
            tool_use = self._tool_use(block)
            invocations.append(
                ToolInvocation(
                    tool_name=tool_use["name"],
                    invocation_id=tool_use["toolUseId"],
                    raw_input=tool_use.get("input") or {},
                )
            )
        return invocations

    def format_results(self, results: Sequence[ToolResult]) -> list[dict]:
        return [
            {
                "role": "user",
                "content": [
                    {
                        "toolResult": {
                            "toolUseId": r.invocation_id,
                            "content": [{"text": r.content}],
                        }
                    }
                    for r in results
                ],
            }
        ]

    def extract_final_text(self, response: Any) -> Optional[str]:
        content = self._message(response)["content"]
        parts = [b["text"] for b in content if isinstance(b.get("text"), str)]
        return "".join(parts) if parts else None

    def invoke(self, system_prompt: str, messages: list[dict], tools: list) -> dict:
        kwargs = {
            "modelId": self.model,
            "system": [{"text": system_prompt}],
            "messages": messages,
            "inferenceConfig": {"maxTokens": self.max_tokens},
        }
        if tools:
            kwargs["toolConfig"] = {"tools": tools}
        try:
            response = self.client.converse(**kwargs)
        except (BotoCoreError, ClientError) as e:
            logger.warning("Bedrock converse failed (model=%s): %s", self.model, e)
            raise BackendCallError(f"Bedrock call failed: {e}") from e
        return as_dict(response)

    def format_turn(self, turn: ConversationTurn) -> dict:
        return {"role": turn.role, "content": [{"text": turn.text}]}

    def assistant_message(self, response: Any) -> dict:
        message = self._message(response)
        return {"role": "assistant", "content": message["content"]}

    def is_end_turn(self, response: Any) -> bool:
        return as_dict(response).get("stopReason") == "end_turn"

    def extract_usage(self, response: Any) -> UsageRecord:
        data = as_dict(response)
        usage = data.get("usage") or {}
        input_tokens = usage.get("inputTokens", 0)
        output_tokens = usage.get("outputTokens", 0)
        return UsageRecord(
            backend_request_id=(data.get("ResponseMetadata") or {}).get("RequestId"),
            model=self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=usage.get("totalTokens", input_tokens + output_tokens),
            source=self.name,
        )
