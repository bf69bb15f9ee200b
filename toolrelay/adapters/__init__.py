"""
Model backend adapters.

Usage:
    from toolrelay.adapters import create_adapter

    adapter = create_adapter("bedrock", model="anthropic.claude-3-5-sonnet-20240620-v1:0")
"""

from toolrelay.adapters.anthropic import AnthropicAdapter
from toolrelay.adapters.base import (
    ConversationTurn,
    ProviderAdapter,
    UsageRecord,
    as_dict,
)
from toolrelay.adapters.bedrock import BedrockAdapter
from toolrelay.adapters.openai import OpenAIAdapter
from toolrelay.errors import ConfigurationError

ADAPTERS = {
    "anthropic": AnthropicAdapter,
    "openai": OpenAIAdapter,
    "bedrock": BedrockAdapter,
}


def create_adapter(kind: str, client=None, model: str = None, **kwargs) -> ProviderAdapter:
    """
    Build the adapter for one backend.

    Args:
        kind: "anthropic", "openai" or "bedrock".
        client: Ready-made SDK client. When omitted, one is created with
            retries disabled.
        model: Model id. Defaults per backend.
        **kwargs: max_tokens, timeout, and client options (api_key,
            base_url, region).
    """
    try:
        adapter_cls = ADAPTERS[kind]
    except KeyError:
        raise ConfigurationError(
            f"Unknown AI provider {kind!r}; expected one of {', '.join(ADAPTERS)}"
        ) from None

    if client is None:
        return adapter_cls.create(model=model, **kwargs)

    adapter_kwargs = {k: v for k, v in kwargs.items() if k in ("max_tokens", "timeout")}
    return adapter_cls(client, model or adapter_cls.default_model, **adapter_kwargs)


__all__ = [
    "ADAPTERS",
    "AnthropicAdapter",
    "BedrockAdapter",
    "ConversationTurn",
    "OpenAIAdapter",
    "ProviderAdapter",
    "UsageRecord",
    "as_dict",
    "create_adapter",
]
