"""
Basic Usage Example
===================

Shows how to run the agentic loop against the bundled integrations.

Requires AWS credentials with access to Bedrock, SSM Parameter Store and the
OAuth Lambda functions (OAUTH_GENERATOR, OAUTH_HANDLER, STAGE env vars).
"""

from toolrelay import (
    AuthContext,
    ConnectionResolver,
    ConversationTurn,
    CredentialResolver,
    LambdaTokenSource,
    ToolExecutor,
    Toolbox,
    create_adapter,
    get_bundled_integrations,
    run_agent_loop,
)
from toolrelay.secrets import ParameterStore

# ─────────────────────────────────────────────────────────────
# Example 1: One question, all bundled integrations
# ─────────────────────────────────────────────────────────────


def agent_example():
    """Ask a Jira question through Bedrock."""
    connections = ConnectionResolver(
        ParameterStore(),
        CredentialResolver(LambdaTokenSource.from_env()),
    )
    toolbox = Toolbox(get_bundled_integrations(), connections, ToolExecutor())

    result = run_agent_loop(
        system_prompt="You are a helpful Jira assistant. Answer briefly.",
        history=[],
        user_text="What is the status of CORE-123?",
        toolbox=toolbox,
        adapter=create_adapter("bedrock"),
        auth_context=AuthContext(
            tenant_id="T0123", user_id="U42", channel_id="C7", email="dana@acme.com"
        ),
    )

    print(f"Status: {result.status}")
    print(f"Answer: {result.final_text}")
    for step in result.steps:
        print(f"  called {step['tool']} with {step['arguments']}")
    for usage in result.usage_log:
        print(f"  {usage.model}: {usage.total_tokens} tokens")


# ─────────────────────────────────────────────────────────────
# Example 2: Continuing a conversation with another backend
# ─────────────────────────────────────────────────────────────


def conversation_example():
    """
    Pass earlier turns as history. Uses Anthropic directly.

    Requires ANTHROPIC_API_KEY and the 'anthropic' extra.
    """
    connections = ConnectionResolver(
        ParameterStore(),
        CredentialResolver(LambdaTokenSource.from_env()),
    )
    toolbox = Toolbox(get_bundled_integrations(), connections, ToolExecutor())

    history = [
        ConversationTurn(role="user", text="Which sprint is active on board 12?"),
        ConversationTurn(role="assistant", text="Sprint 42 is active on board 12."),
    ]
    result = run_agent_loop(
        system_prompt="You are a helpful Jira assistant.",
        history=history,
        user_text="Add CORE-123 to it.",
        toolbox=toolbox,
        adapter=create_adapter("anthropic"),
        auth_context=AuthContext(tenant_id="T0123", user_id="U42"),
        max_recursions=5,
    )
    print(result.final_text)


if __name__ == "__main__":
    print("=" * 60)
    print("Tool Relay Examples")
    print("=" * 60)

    # Uncomment the examples you want to run (with real credentials):
    # agent_example()
    # conversation_example()

    print("\nSet AWS credentials and uncomment an example to try it out!")
