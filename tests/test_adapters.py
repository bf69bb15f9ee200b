"""
Tests for the model backend adapters.

Responses are plain dicts shaped like each backend's wire format; no SDK call
is made except through the fake clients below.
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError, ReadTimeoutError

from toolrelay.adapters import (
    AnthropicAdapter,
    BedrockAdapter,
    ConversationTurn,
    OpenAIAdapter,
    as_dict,
    create_adapter,
)
from toolrelay.descriptor import ToolDescriptor, ToolResult
from toolrelay.errors import BackendCallError, BackendProtocolError, ConfigurationError


@pytest.fixture
def descriptors():
    return [
        ToolDescriptor.from_dict(
            {
                "name": "jirafetchTool",
                "method": "GET",
                "url": "/rest/api/3/issue/{{issue}}",
                "description": "Fetch a jira issue",
                "input_schema": {"issue": {"type": "string", "required": True}},
            }
        ),
        ToolDescriptor.from_dict(
            {
                "name": "sendemail",
                "method": "POST",
                "url": "/me/sendMail",
                "body_fields": ["mail"],
                "description": "Send an email",
                "input_schema": {
                    "mail": {"type": "string", "required": True},
                    "importance": {"type": "string"},
                },
            }
        ),
    ]


RESULTS = [
    ToolResult(invocation_id="call-1", content='{"key": "CORE-1"}'),
    ToolResult(invocation_id="call-2", content="success"),
]


# =============================================================================
# Anthropic
# =============================================================================


ANTHROPIC_TOOL_TURN = {
    "id": "msg_01",
    "type": "message",
    "role": "assistant",
    "model": "claude-sonnet-4-20250514",
    "stop_reason": "tool_use",
    "content": [
        {"type": "text", "text": "Let me look that up."},
        {"type": "tool_use", "id": "call-1", "name": "jirafetchTool", "input": {"issue": "CORE-1"}},
        {"type": "tool_use", "id": "call-2", "name": "sendemail", "input": {"mail": "{}"}},
    ],
    "usage": {"input_tokens": 120, "output_tokens": 40},
}


class TestAnthropicAdapter:
    @pytest.fixture
    def adapter(self):
        return AnthropicAdapter(MagicMock(), "claude-sonnet-4-20250514")

    def test_declare_tools(self, adapter, descriptors):
        tools = adapter.declare_tools(descriptors)
        assert [t["name"] for t in tools] == ["jirafetchTool", "sendemail"]
        assert tools[1]["input_schema"] == descriptors[1].parameters_schema()
        assert tools[1]["input_schema"]["required"] == ["mail"]

    def test_extract_invocations(self, adapter):
        invocations = adapter.extract_invocations(ANTHROPIC_TOOL_TURN)
        assert [(i.tool_name, i.invocation_id) for i in invocations] == [
            ("jirafetchTool", "call-1"),
            ("sendemail", "call-2"),
        ]
        assert invocations[0].raw_input == {"issue": "CORE-1"}

    def test_no_tool_use(self, adapter):
        response = {"content": [{"type": "text", "text": "Done"}], "stop_reason": "end_turn"}
        assert adapter.extract_invocations(response) == []
        assert adapter.is_end_turn(response)
        assert adapter.extract_final_text(response) == "Done"

    def test_format_results_single_user_message(self, adapter):
        messages = adapter.format_results(RESULTS)
        assert messages == [
            {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": "call-1", "content": '{"key": "CORE-1"}'},
                    {"type": "tool_result", "tool_use_id": "call-2", "content": "success"},
                ],
            }
        ]

    def test_assistant_message_echoes_blocks(self, adapter):
        message = adapter.assistant_message(ANTHROPIC_TOOL_TURN)
        assert message["role"] == "assistant"
        assert [b["type"] for b in message["content"]] == ["text", "tool_use", "tool_use"]

    def test_usage(self, adapter):
        usage = adapter.extract_usage(ANTHROPIC_TOOL_TURN)
        assert usage.backend_request_id == "msg_01"
        assert (usage.input_tokens, usage.output_tokens, usage.total_tokens) == (120, 40, 160)
        assert usage.source == "anthropic"

    def test_malformed_response(self, adapter):
        with pytest.raises(BackendProtocolError):
            adapter.extract_invocations({"type": "error"})

    @pytest.mark.parametrize(
        "content",
        [
            [{"type": "tool_use", "name": "jirafetchTool", "input": {}}],
            [{"type": "tool_use", "id": "call-1", "input": {}}],
            ["not a block"],
        ],
    )
    def test_malformed_tool_use_block(self, adapter, content):
        response = {"content": content, "stop_reason": "tool_use"}
        with pytest.raises(BackendProtocolError):
            adapter.extract_invocations(response)
        with pytest.raises(BackendProtocolError):
            adapter.assistant_message(response)

    def test_invoke_passes_system_and_tools(self, adapter):
        adapter.client.messages.create.return_value = ANTHROPIC_TOOL_TURN
        adapter.invoke("be brief", [{"role": "user", "content": "hi"}], [{"name": "t"}])
        kwargs = adapter.client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be brief"
        assert kwargs["tools"] == [{"name": "t"}]
        assert kwargs["timeout"] == adapter.timeout

    def test_invoke_failure(self, adapter):
        import anthropic

        adapter.client.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        with pytest.raises(BackendCallError):
            adapter.invoke("s", [], [])


# =============================================================================
# OpenAI
# =============================================================================


OPENAI_TOOL_TURN = {
    "id": "chatcmpl-1",
    "model": "gpt-4o-mini",
    "choices": [
        {
            "index": 0,
            "finish_reason": "tool_calls",
            "message": {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": "call-1",
                        "type": "function",
                        "function": {"name": "jirafetchTool", "arguments": '{"issue": "CORE-1"}'},
                    },
                    {
                        "id": "call-2",
                        "type": "function",
                        "function": {"name": "sendemail", "arguments": "{not json"},
                    },
                ],
            },
        }
    ],
    "usage": {"prompt_tokens": 90, "completion_tokens": 30, "total_tokens": 120},
}


class TestOpenAIAdapter:
    @pytest.fixture
    def adapter(self):
        return OpenAIAdapter(MagicMock(), "gpt-4o-mini")

    def test_declare_tools(self, adapter, descriptors):
        tools = adapter.declare_tools(descriptors)
        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["name"] == "jirafetchTool"
        assert tools[0]["function"]["parameters"] == descriptors[0].parameters_schema()

    def test_extract_invocations_decodes_arguments(self, adapter):
        invocations = adapter.extract_invocations(OPENAI_TOOL_TURN)
        assert invocations[0].raw_input == {"issue": "CORE-1"}
        assert invocations[0].invocation_id == "call-1"

    def test_unparsable_arguments_become_empty(self, adapter):
        invocations = adapter.extract_invocations(OPENAI_TOOL_TURN)
        assert invocations[1].raw_input == {}

    def test_format_results_one_message_per_result(self, adapter):
        messages = adapter.format_results(RESULTS)
        assert messages == [
            {"role": "tool", "tool_call_id": "call-1", "content": '{"key": "CORE-1"}'},
            {"role": "tool", "tool_call_id": "call-2", "content": "success"},
        ]

    def test_assistant_message_keeps_tool_calls(self, adapter):
        message = adapter.assistant_message(OPENAI_TOOL_TURN)
        assert [c["id"] for c in message["tool_calls"]] == ["call-1", "call-2"]
        assert message["tool_calls"][1]["function"]["arguments"] == "{not json"

    def test_stop(self, adapter):
        response = {
            "choices": [{"finish_reason": "stop", "message": {"role": "assistant", "content": "All done"}}]
        }
        assert adapter.is_end_turn(response)
        assert adapter.extract_invocations(response) == []
        assert adapter.extract_final_text(response) == "All done"

    def test_usage(self, adapter):
        usage = adapter.extract_usage(OPENAI_TOOL_TURN)
        assert usage.backend_request_id == "chatcmpl-1"
        assert usage.total_tokens == 120

    def test_missing_choices(self, adapter):
        with pytest.raises(BackendProtocolError):
            adapter.extract_invocations({"choices": []})

    @pytest.mark.parametrize(
        "call",
        [
            {"type": "function", "function": {"name": "jirafetchTool", "arguments": "{}"}},
            {"id": "call-1", "type": "function", "function": {"arguments": "{}"}},
            {"id": "call-1", "type": "function"},
            "call-1",
        ],
    )
    def test_malformed_tool_call(self, adapter, call):
        response = {
            "choices": [
                {
                    "finish_reason": "tool_calls",
                    "message": {"role": "assistant", "content": None, "tool_calls": [call]},
                }
            ]
        }
        with pytest.raises(BackendProtocolError):
            adapter.extract_invocations(response)
        with pytest.raises(BackendProtocolError):
            adapter.assistant_message(response)

    def test_invoke_prepends_system_message(self, adapter):
        adapter.client.chat.completions.create.return_value = OPENAI_TOOL_TURN
        adapter.invoke("be brief", [{"role": "user", "content": "hi"}], [])
        kwargs = adapter.client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}
        assert "tools" not in kwargs

    def test_invoke_timeout(self, adapter):
        import openai

        adapter.client.chat.completions.create.side_effect = openai.APITimeoutError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
        with pytest.raises(BackendCallError):
            adapter.invoke("s", [], [])

    def test_sdk_objects_are_normalized(self, adapter):
        response = SimpleNamespace(model_dump=lambda exclude_none: OPENAI_TOOL_TURN)
        assert as_dict(response) is OPENAI_TOOL_TURN
        assert len(adapter.extract_invocations(response)) == 2


# =============================================================================
# Bedrock
# =============================================================================


class TestBedrockAdapter:
    @pytest.fixture
    def adapter(self):
        return BedrockAdapter(MagicMock(), "anthropic.claude-3-5-sonnet-20240620-v1:0")

    @pytest.fixture
    def tool_turn(self, bedrock_responses):
        converse_response, tool_use = bedrock_responses
        return converse_response(
            [
                {"text": "Checking."},
                tool_use("call-1", "jirafetchTool", {"issue": "CORE-1"}),
                tool_use("call-2", "sendemail", {"mail": "{}"}),
            ],
            stop_reason="tool_use",
            request_id="aws-req-9",
            tokens=(200, 50),
        )

    def test_declare_tools(self, adapter, descriptors):
        tools = adapter.declare_tools(descriptors)
        spec = tools[1]["toolSpec"]
        assert spec["name"] == "sendemail"
        assert spec["inputSchema"]["json"] == descriptors[1].parameters_schema()

    def test_extract_invocations(self, adapter, tool_turn):
        invocations = adapter.extract_invocations(tool_turn)
        assert [i.invocation_id for i in invocations] == ["call-1", "call-2"]
        assert invocations[0].raw_input == {"issue": "CORE-1"}

    def test_format_results_single_user_message(self, adapter):
        messages = adapter.format_results(RESULTS)
        assert len(messages) == 1
        assert messages[0]["role"] == "user"
        assert messages[0]["content"][1] == {
            "toolResult": {"toolUseId": "call-2", "content": [{"text": "success"}]}
        }

    def test_usage(self, adapter, tool_turn):
        usage = adapter.extract_usage(tool_turn)
        assert usage.backend_request_id == "aws-req-9"
        assert usage.model == "anthropic.claude-3-5-sonnet-20240620-v1:0"
        assert usage.total_tokens == 250
        assert usage.to_dict()["from"] == "bedrock"

    def test_text_and_end_turn(self, adapter, bedrock_responses):
        converse_response, _ = bedrock_responses
        response = converse_response([{"text": "Hello "}, {"text": "there"}])
        assert adapter.extract_final_text(response) == "Hello there"
        assert adapter.is_end_turn(response)

    def test_format_turn(self, adapter):
        turn = ConversationTurn(role="assistant", text="Earlier answer")
        assert adapter.format_turn(turn) == {
            "role": "assistant",
            "content": [{"text": "Earlier answer"}],
        }

    def test_missing_output(self, adapter):
        with pytest.raises(BackendProtocolError):
            adapter.extract_final_text({"stopReason": "end_turn"})

    @pytest.mark.parametrize(
        "content",
        [
            [{"toolUse": {"name": "jirafetchTool", "input": {}}}],
            [{"toolUse": {"toolUseId": "t1", "input": {}}}],
            [{"toolUse": "jirafetchTool"}],
            ["not a block"],
        ],
    )
    def test_malformed_tool_use_block(self, adapter, content):
        response = {"output": {"message": {"role": "assistant", "content": content}}}
        with pytest.raises(BackendProtocolError):
            adapter.extract_invocations(response)

    def test_invoke_builds_converse_call(self, adapter, bedrock_responses):
        converse_response, _ = bedrock_responses
        adapter.client.converse.return_value = converse_response([{"text": "ok"}])
        adapter.invoke("system text", [{"role": "user", "content": [{"text": "hi"}]}], [{"toolSpec": {}}])
        kwargs = adapter.client.converse.call_args.kwargs
        assert kwargs["system"] == [{"text": "system text"}]
        assert kwargs["toolConfig"] == {"tools": [{"toolSpec": {}}]}
        assert kwargs["inferenceConfig"] == {"maxTokens": 4096}

    def test_invoke_client_error(self, adapter):
        adapter.client.converse.side_effect = ClientError(
            {"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "Converse"
        )
        with pytest.raises(BackendCallError):
            adapter.invoke("s", [], [])

    def test_invoke_timeout(self, adapter):
        adapter.client.converse.side_effect = ReadTimeoutError(endpoint_url="https://bedrock")
        with pytest.raises(BackendCallError):
            adapter.invoke("s", [], [])


# =============================================================================
# Factory
# =============================================================================


class TestCreateAdapter:
    def test_with_client(self):
        adapter = create_adapter("openai", client=MagicMock(), max_tokens=512, timeout=5)
        assert isinstance(adapter, OpenAIAdapter)
        assert adapter.model == "gpt-4o-mini"
        assert adapter.max_tokens == 512
        assert adapter.timeout == 5

    def test_model_override(self):
        adapter = create_adapter("anthropic", client=MagicMock(), model="claude-x")
        assert adapter.model == "claude-x"

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_adapter("groq")

    def test_round_trip_preserves_ids(self, descriptors):
        # Every backend hands back the ids it was given.
        for adapter, response in (
            (AnthropicAdapter(None, "m"), ANTHROPIC_TOOL_TURN),
            (OpenAIAdapter(None, "m"), OPENAI_TOOL_TURN),
        ):
            ids = [i.invocation_id for i in adapter.extract_invocations(response)]
            formatted = json.dumps(adapter.format_results(RESULTS))
            for invocation_id in ids:
                assert invocation_id in formatted
