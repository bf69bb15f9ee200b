"""
Tool Relay
==========

Lets a language model call declaratively described REST APIs.

Usage:
    from toolrelay import AuthContext, create_adapter, run_agent_loop

    result = run_agent_loop(
        system_prompt="You are a Jira assistant.",
        history=[],
        user_text="What is the status of CORE-123?",
        toolbox=toolbox,
        adapter=create_adapter("bedrock"),
        auth_context=AuthContext(tenant_id="T0123", user_id="U1"),
    )
    print(result.final_text)

Or compile a single tool call yourself:

    from toolrelay import Connection, ToolDescriptor, compile_request

    request = compile_request(descriptor, {"issue": "CORE-123"}, connection)
"""

__version__ = "0.1.0"

from toolrelay.adapters import (
    AnthropicAdapter,
    BedrockAdapter,
    ConversationTurn,
    OpenAIAdapter,
    ProviderAdapter,
    UsageRecord,
    create_adapter,
)

from toolrelay.compiler import CompiledRequest, Connection, compile_request

from toolrelay.connections import AuthContext, ConnectionResolver

from toolrelay.credentials import (
    CredentialRecord,
    CredentialResolver,
    LambdaTokenSource,
)

from toolrelay.descriptor import FieldSpec, ToolDescriptor, ToolInvocation, ToolResult

from toolrelay.executor import ToolExecutor, Toolbox

from toolrelay.loop import AgentResult, AgenticLoop, run_agent_loop

from toolrelay.registry import Integration, get_bundled_integrations, load_integrations

__all__ = [
    # Descriptors and compilation
    "FieldSpec",
    "ToolDescriptor",
    "ToolInvocation",
    "ToolResult",
    "Connection",
    "CompiledRequest",
    "compile_request",
    # Model backends
    "ProviderAdapter",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "BedrockAdapter",
    "ConversationTurn",
    "UsageRecord",
    "create_adapter",
    # Credentials and connections
    "AuthContext",
    "ConnectionResolver",
    "CredentialRecord",
    "CredentialResolver",
    "LambdaTokenSource",
    # Execution
    "ToolExecutor",
    "Toolbox",
    "AgentResult",
    "AgenticLoop",
    "run_agent_loop",
    # Integrations
    "Integration",
    "load_integrations",
    "get_bundled_integrations",
]
