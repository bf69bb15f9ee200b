"""
Provider Adapter contract
=========================

Each model backend speaks its own tool-call wire format. An adapter converts
between that format and the engine's ToolDescriptor / ToolInvocation /
ToolResult types so the loop never looks at backend payloads directly.

Responses are handled as plain dicts: SDK response objects are normalized
with ``model_dump`` first, boto3 already returns dicts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from toolrelay.descriptor import ToolDescriptor, ToolInvocation, ToolResult
from toolrelay.errors import BackendProtocolError


DEFAULT_MAX_TOKENS = 4096
DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ConversationTurn:
    """One prior turn of the conversation, as stored by the caller."""

    role: str  # "user" | "assistant"
    text: str


@dataclass(frozen=True)
class UsageRecord:
    """Token usage of one model call."""

    backend_request_id: Optional[str]
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    source: str

    def to_dict(self) -> dict:
        return {
            "id": self.backend_request_id,
            "model": self.model,
            "usage": {
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "total_tokens": self.total_tokens,
            },
            "from": self.source,
        }


def as_dict(response: Any) -> dict:
    """Normalize an SDK response object (or a dict) to a plain dict."""
    if isinstance(response, dict):
        return response
    if hasattr(response, "model_dump"):
        return response.model_dump(exclude_none=True)
    raise BackendProtocolError(
        f"Unsupported response type: {type(response).__name__}"
    )


class ProviderAdapter(ABC):
    """Translates one backend's wire format to and from the engine's types."""

    #: Backend name, used as UsageRecord.source.
    name = "base"
    default_model = ""

    def __init__(
        self,
        client: Any,
        model: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    # =========================================================================
    # Tool declarations and results
    # =========================================================================

    @abstractmethod
    def declare_tools(self, descriptors: Sequence[ToolDescriptor]) -> list:
        """Backend tool declarations, one per descriptor, in order."""

    @abstractmethod
    def extract_invocations(self, response: Any) -> list[ToolInvocation]:
        """Tool calls requested by the response, in backend order."""

    @abstractmethod
    def format_results(self, results: Sequence[ToolResult]) -> list[dict]:
        """Backend messages carrying one batch of tool results."""

    @abstractmethod
    def extract_final_text(self, response: Any) -> Optional[str]:
        """Concatenated text of the response, or None when it has none."""

    # =========================================================================
    # Conversation plumbing
    # =========================================================================

    @abstractmethod
    def invoke(self, system_prompt: str, messages: list[dict], tools: list) -> dict:
        """
        Run one model call and return the response as a dict.

        Raises:
            BackendCallError: The call failed or timed out. Never retried.
        """

    @abstractmethod
    def format_turn(self, turn: ConversationTurn) -> dict:
        """Backend message for one stored conversation turn."""

    @abstractmethod
    def assistant_message(self, response: Any) -> dict:
        """Echo of the assistant turn, to be sent back with its tool results."""

    @abstractmethod
    def is_end_turn(self, response: Any) -> bool:
        """True when the backend explicitly signalled the end of its turn."""

    @abstractmethod
    def extract_usage(self, response: Any) -> UsageRecord:
        """Token usage of the call that produced ``response``."""

    def user_message(self, text: str) -> dict:
        return self.format_turn(ConversationTurn(role="user", text=text))
