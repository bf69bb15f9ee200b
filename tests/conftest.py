"""
Shared fixtures: fake AWS clients, a scripted model backend and a mocked
HTTP transport. No test touches the network.
"""

import copy
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from toolrelay.adapters import AnthropicAdapter, BedrockAdapter, OpenAIAdapter
from toolrelay.connections import AuthContext, ConnectionResolver
from toolrelay.credentials import CredentialRecord, CredentialResolver
from toolrelay.executor import ToolExecutor
from toolrelay.registry import load_integrations
from toolrelay.secrets import ParameterStore


TENANT_PARAMETERS = {
    "jiradomain": "https://acme.atlassian.net",
    "jirauser": "bot@acme.com",
    "jiratoken": "jira-api-token",
    "microsoftdomain": "https://graph.microsoft.com/v1.0",
    "qbdomain": "https://quickbooks.api.intuit.com/v3/company/4620816365",
}


def make_ssm_client(values, tenant="t0123"):
    """MagicMock SSM client answering get_parameters from ``values``."""

    def get_parameters(Names, WithDecryption):
        found, invalid = [], []
        for path in Names:
            name = path.split("/")[-1]
            if path.startswith(f"/{tenant}/") and name in values:
                found.append({"Name": path, "Value": values[name]})
            else:
                invalid.append(path)
        return {"Parameters": found, "InvalidParameters": invalid}

    client = MagicMock()
    client.get_parameters.side_effect = get_parameters
    return client


class FakeTokenSource:
    """Token source with a fixed answer per provider."""

    def __init__(self, tokens=None, reauth_message="Please sign in again: https://login"):
        self.tokens = tokens or {}
        self.reauth_message = reauth_message
        self.get_calls = []
        self.reauth_calls = []

    def get_token(self, provider, tenant, user_id, channel_id):
        self.get_calls.append((provider, tenant, user_id, channel_id))
        token = self.tokens.get(provider)
        if token is None:
            return CredentialRecord.reauth()
        return CredentialRecord.valid(token)

    def request_reauth(self, provider, user_id, channel_id, tenant):
        self.reauth_calls.append((provider, user_id, channel_id, tenant))
        return self.reauth_message


class FakeBedrockClient:
    """bedrock-runtime stand-in returning scripted converse responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def converse(self, **kwargs):
        # Copy: the loop keeps appending to the same messages list.
        self.calls.append(copy.deepcopy(kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def converse_response(content, stop_reason="end_turn", request_id="req-1", tokens=(10, 5)):
    return {
        "output": {"message": {"role": "assistant", "content": content}},
        "stopReason": stop_reason,
        "usage": {
            "inputTokens": tokens[0],
            "outputTokens": tokens[1],
            "totalTokens": tokens[0] + tokens[1],
        },
        "ResponseMetadata": {"RequestId": request_id},
    }


def tool_use(tool_use_id, name, tool_input):
    return {"toolUse": {"toolUseId": tool_use_id, "name": name, "input": tool_input}}


class ScriptedCalls:
    """SDK ``create`` endpoint returning scripted responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(copy.deepcopy(kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeAnthropicClient:
    def __init__(self, responses):
        self.messages = ScriptedCalls(responses)

    @property
    def calls(self):
        return self.messages.calls


class FakeOpenAIClient:
    def __init__(self, responses):
        self.chat = SimpleNamespace(completions=ScriptedCalls(responses))

    @property
    def calls(self):
        return self.chat.completions.calls


# Per-backend response builders, so loop tests can run against every adapter.


class BedrockScript:
    kind = "bedrock"

    def adapter(self, responses):
        client = FakeBedrockClient(responses)
        return BedrockAdapter(client, "anthropic.claude-3-5-sonnet-20240620-v1:0"), client

    def text_turn(self, text, request_id="req-1"):
        return converse_response([{"text": text}], request_id=request_id)

    def tool_turn(self, calls, text=None, request_id="req-1"):
        content = [{"text": text}] if text else []
        content += [tool_use(*call) for call in calls]
        return converse_response(content, stop_reason="tool_use", request_id=request_id)

    def malformed_tool_turn(self, request_id="req-1"):
        return converse_response(
            [{"toolUse": {"name": "jirafetchTool", "input": {}}}],
            stop_reason="tool_use",
            request_id=request_id,
        )

    def tool_results(self, call):
        return [
            (b["toolResult"]["toolUseId"], b["toolResult"]["content"][0]["text"])
            for b in call["messages"][-1]["content"]
        ]


class AnthropicScript:
    kind = "anthropic"

    def adapter(self, responses):
        client = FakeAnthropicClient(responses)
        return AnthropicAdapter(client, "claude-sonnet-4-20250514"), client

    def _turn(self, content, stop_reason, request_id):
        return {
            "id": request_id,
            "type": "message",
            "role": "assistant",
            "model": "claude-sonnet-4-20250514",
            "content": content,
            "stop_reason": stop_reason,
            "usage": {"input_tokens": 10, "output_tokens": 5},
        }

    def text_turn(self, text, request_id="req-1"):
        return self._turn([{"type": "text", "text": text}], "end_turn", request_id)

    def tool_turn(self, calls, text=None, request_id="req-1"):
        content = [{"type": "text", "text": text}] if text else []
        content += [
            {"type": "tool_use", "id": call_id, "name": name, "input": tool_input}
            for call_id, name, tool_input in calls
        ]
        return self._turn(content, "tool_use", request_id)

    def malformed_tool_turn(self, request_id="req-1"):
        return self._turn(
            [{"type": "tool_use", "name": "jirafetchTool", "input": {}}], "tool_use", request_id
        )

    def tool_results(self, call):
        return [(b["tool_use_id"], b["content"]) for b in call["messages"][-1]["content"]]


class OpenAIScript:
    kind = "openai"

    def adapter(self, responses):
        client = FakeOpenAIClient(responses)
        return OpenAIAdapter(client, "gpt-4o-mini"), client

    def _turn(self, message, finish_reason, request_id):
        return {
            "id": request_id,
            "model": "gpt-4o-mini",
            "choices": [{"index": 0, "finish_reason": finish_reason, "message": message}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        }

    def text_turn(self, text, request_id="req-1"):
        return self._turn({"role": "assistant", "content": text}, "stop", request_id)

    def tool_turn(self, calls, text=None, request_id="req-1"):
        message = {
            "role": "assistant",
            "content": text,
            "tool_calls": [
                {
                    "id": call_id,
                    "type": "function",
                    "function": {"name": name, "arguments": json.dumps(tool_input)},
                }
                for call_id, name, tool_input in calls
            ],
        }
        return self._turn(message, "tool_calls", request_id)

    def malformed_tool_turn(self, request_id="req-1"):
        message = {
            "role": "assistant",
            "content": None,
            "tool_calls": [{"type": "function", "function": {"name": "jirafetchTool"}}],
        }
        return self._turn(message, "tool_calls", request_id)

    def tool_results(self, call):
        results = []
        for message in reversed(call["messages"]):
            if message["role"] != "tool":
                break
            results.insert(0, (message["tool_call_id"], message["content"]))
        return results


@pytest.fixture
def bedrock_responses():
    """Builders for Converse responses: (converse_response, tool_use)."""
    return converse_response, tool_use


@pytest.fixture
def fake_bedrock_client():
    return FakeBedrockClient


@pytest.fixture
def integrations():
    return load_integrations()


@pytest.fixture
def auth_context():
    return AuthContext(
        tenant_id="T0123", user_id="U42", channel_id="C7", email="dana@acme.com"
    )


@pytest.fixture
def token_source():
    return FakeTokenSource(tokens={"quickbooks": "qb-token"})


@pytest.fixture
def connections(token_source):
    store = ParameterStore(client=make_ssm_client(TENANT_PARAMETERS))
    return ConnectionResolver(store, CredentialResolver(token_source))


@pytest.fixture
def http_log():
    """Requests seen by the mock transport."""
    return []


@pytest.fixture
def make_executor(http_log):
    """Build a ToolExecutor whose HTTP client answers with ``handler``."""

    def factory(handler):
        def record(request):
            http_log.append(request)
            return handler(request)

        client = httpx.Client(transport=httpx.MockTransport(record))
        return ToolExecutor(client=client)

    return factory


@pytest.fixture
def json_ok():
    def handler(request):
        return httpx.Response(200, json={"ok": True, "path": request.url.path})

    return handler


@pytest.fixture
def ssm_client():
    """Factory: MagicMock SSM client serving the given parameters."""
    return make_ssm_client


@pytest.fixture
def token_source_cls():
    return FakeTokenSource


@pytest.fixture(params=[BedrockScript, AnthropicScript, OpenAIScript], ids=lambda s: s.kind)
def backend(request):
    """Response builders and a scripted adapter, once per model backend."""
    return request.param()
