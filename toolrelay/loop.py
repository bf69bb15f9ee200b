"""
Agentic Loop
============

Alternates model calls and tool execution until the model gives a final
answer or the recursion budget runs out.

One cycle is one model call plus the execution of every tool call in that
response. Tool calls of a batch run sequentially in the order the backend
returned them, and their results go back to the model together. Each cycle
consumes one recursion however many tool calls it carried.

Tool failures never leave the loop: Toolbox turns them into result text the
model can react to. A model backend failure ends the run with status
``error``; the usage of the calls made so far is still returned.

Usage:
    from toolrelay.loop import run_agent_loop

    result = run_agent_loop(
        system_prompt="You are a Jira assistant.",
        history=[],
        user_text="What is the status of CORE-123?",
        toolbox=toolbox,
        adapter=create_adapter("bedrock"),
        auth_context=AuthContext(tenant_id="T0123", user_id="U1", email="a@b.co"),
    )
    print(result.final_text, result.status)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from toolrelay.adapters.base import ConversationTurn, ProviderAdapter, UsageRecord
from toolrelay.connections import AuthContext
from toolrelay.errors import BackendError
from toolrelay.executor import Toolbox
from toolrelay.prompts import clean_output_text, personalize

logger = logging.getLogger(__name__)


DEFAULT_MAX_RECURSIONS = 10

APOLOGY_MESSAGE = (
    "Sorry, I could not finish working on your request. "
    "Please try again with more details."
)
INCOMPLETE_NOTE = "\n\n_Note: the process may be incomplete._"
FAILURE_MESSAGE = "Sorry, something went wrong while processing your request."
CANCELLED_MESSAGE = "The request was cancelled."


@dataclass
class LoopState:
    """Mutable state of one loop invocation."""

    recursions_remaining: int = DEFAULT_MAX_RECURSIONS
    final_text: Optional[str] = None
    usage_log: list[UsageRecord] = field(default_factory=list)


@dataclass
class AgentResult:
    """Outcome of one loop invocation."""

    final_text: str
    usage_log: list[UsageRecord] = field(default_factory=list)
    status: str = "complete"  # "complete" | "incomplete" | "error" | "cancelled"
    steps: list = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in ("complete", "incomplete")

    def to_dict(self) -> dict:
        return {
            "final_text": self.final_text,
            "status": self.status,
            "usage_log": [u.to_dict() for u in self.usage_log],
            "steps": self.steps,
            "error": self.error,
        }


class AgenticLoop:
    """
    Drives one adapter and one toolbox.

    An instance holds no per-conversation state, so it can serve any number
    of sequential runs.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        toolbox: Toolbox,
        max_recursions: int = DEFAULT_MAX_RECURSIONS,
    ):
        if max_recursions < 1:
            raise ValueError("max_recursions must be at least 1")
        self.adapter = adapter
        self.toolbox = toolbox
        self.max_recursions = max_recursions

    def run(
        self,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        user_text: str,
        auth_context: AuthContext,
        cancel_event: threading.Event | None = None,
    ) -> AgentResult:
        state = LoopState(recursions_remaining=self.max_recursions)
        steps: list = []

        system = personalize(system_prompt, auth_context.email)
        tools = self.adapter.declare_tools(self.toolbox.descriptors())
        messages = [self.adapter.format_turn(turn) for turn in history]
        messages.append(self.adapter.user_message(user_text))

        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Loop cancelled after %d model calls", len(state.usage_log))
                    return AgentResult(
                        final_text=CANCELLED_MESSAGE,
                        usage_log=state.usage_log,
                        status="cancelled",
                        steps=steps,
                    )

                response = self.adapter.invoke(system, messages, tools)
                usage = self.adapter.extract_usage(response)
                state.usage_log.append(usage)
                logger.info("%s usage: %s", self.adapter.name, usage.to_dict())

                text = self.adapter.extract_final_text(response)
                if text:
                    state.final_text = text
                invocations = self.adapter.extract_invocations(response)

                if not invocations or self.adapter.is_end_turn(response):
                    return AgentResult(
                        final_text=clean_output_text(text or ""),
                        usage_log=state.usage_log,
                        status="complete",
                        steps=steps,
                    )

                messages.append(self.adapter.assistant_message(response))
                results = []
                for invocation in invocations:
                    logger.info("Calling tool %s", invocation.tool_name)
                    result = self.toolbox.execute(invocation, auth_context)
                    steps.append(
                        {
                            "tool": invocation.tool_name,
                            "arguments": (
                                dict(invocation.raw_input)
                                if isinstance(invocation.raw_input, Mapping)
                                else invocation.raw_input
                            ),
                            "result": result.content,
                        }
                    )
                    results.append(result)
                messages.extend(self.adapter.format_results(results))

                state.recursions_remaining -= 1
                if state.recursions_remaining <= 0:
                    logger.warning(
                        "Recursion budget of %d exhausted with tool results pending",
                        self.max_recursions,
                    )
                    best = clean_output_text(state.final_text or "") or APOLOGY_MESSAGE
                    return AgentResult(
                        final_text=best + INCOMPLETE_NOTE,
                        usage_log=state.usage_log,
                        status="incomplete",
                        steps=steps,
                    )

        except BackendError as e:
            logger.error("Model backend failed: %s", e)
            return AgentResult(
                final_text=FAILURE_MESSAGE,
                usage_log=state.usage_log,
                status="error",
                steps=steps,
                error=str(e),
            )


def run_agent_loop(
    system_prompt: str,
    history: Sequence[ConversationTurn],
    user_text: str,
    toolbox: Toolbox,
    adapter: ProviderAdapter,
    auth_context: AuthContext,
    max_recursions: int = DEFAULT_MAX_RECURSIONS,
    cancel_event: threading.Event | None = None,
) -> AgentResult:
    """Run one agentic loop. See AgenticLoop."""
    loop = AgenticLoop(adapter, toolbox, max_recursions=max_recursions)
    return loop.run(system_prompt, history, user_text, auth_context, cancel_event)
