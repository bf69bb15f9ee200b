"""
Tool Relay Server
=================

A thin FastAPI surface over the agentic loop. The chat transport calls
``POST /api/agent/run`` with the agent's system prompt, the stored
conversation and the new user message, and gets back the final text and the
usage log of every model call.

Run directly:
    toolrelay

Or with uvicorn:
    uvicorn toolrelay.server:app --host 0.0.0.0 --port 8080
"""

import logging
import os
from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from toolrelay.adapters import ConversationTurn, ProviderAdapter, create_adapter
from toolrelay.config import Settings, load_settings
from toolrelay.connections import AuthContext, ConnectionResolver
from toolrelay.credentials import CredentialResolver, LambdaTokenSource
from toolrelay.errors import ConfigurationError
from toolrelay.executor import ToolExecutor, Toolbox
from toolrelay.loop import run_agent_loop
from toolrelay.prompts import render_prompt
from toolrelay.registry import Integration, get_bundled_integrations, load_integrations
from toolrelay.secrets import ParameterStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


class Runtime:
    """Long-lived collaborators shared by every request."""

    def __init__(
        self,
        settings: Settings,
        integrations: list[Integration],
        connections: ConnectionResolver,
        executor: ToolExecutor,
        adapter: ProviderAdapter,
    ):
        self.settings = settings
        self.integrations = integrations
        self.connections = connections
        self.executor = executor
        self.adapter = adapter

    def toolbox(self, names: Optional[list[str]] = None) -> Toolbox:
        """Toolbox over the named integrations (all of them when None)."""
        if names is None:
            selected = self.integrations
        else:
            known = {i.integration_id: i for i in self.integrations}
            unknown = [n for n in names if n not in known]
            if unknown:
                raise KeyError(", ".join(unknown))
            selected = [known[n] for n in names]
        return Toolbox(selected, self.connections, self.executor)


def build_runtime(settings: Settings) -> Runtime:
    """Wire the engine from settings."""
    if settings.integrations_dir:
        integrations = load_integrations(settings.integrations_dir)
    else:
        integrations = get_bundled_integrations()

    credentials = None
    if settings.oauth_generator and settings.oauth_handler and settings.stage:
        source = LambdaTokenSource(
            generator_function=f"{settings.oauth_generator}-{settings.stage}",
            handler_function=f"{settings.oauth_handler}-{settings.stage}",
            region=settings.aws_region,
        )
        credentials = CredentialResolver(source, ttl=settings.credential_ttl)

    connections = ConnectionResolver(
        ParameterStore(region=settings.aws_region, ttl=settings.credential_ttl),
        credentials,
    )
    executor = ToolExecutor(
        timeout=settings.tool_timeout, log_requests=settings.log_requests
    )

    adapter_kwargs = {"max_tokens": settings.max_tokens, "timeout": settings.model_timeout}
    if settings.ai_provider == "bedrock":
        adapter_kwargs["region"] = settings.aws_region
    adapter = create_adapter(settings.ai_provider, model=settings.ai_model, **adapter_kwargs)

    logger.info(
        "Loaded %d integrations: %s",
        len(integrations),
        ", ".join(i.integration_id for i in integrations),
    )
    logger.info("AI provider: %s (%s)", settings.ai_provider, adapter.model)
    return Runtime(settings, integrations, connections, executor, adapter)


@lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level.upper())
    return build_runtime(settings)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Tool Relay",
    description="Lets language models call declaratively described REST APIs",
    version="0.1.0",
)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class Turn(BaseModel):
    role: str
    text: str


class RunRequest(BaseModel):
    """Request body for /api/agent/run."""

    system_prompt: str
    user_text: str
    history: list[Turn] = []

    variables: dict[str, Any] = {}
    """Values for ``{{name}}`` variables of the system prompt."""

    integrations: Optional[list[str]] = None
    """Integration ids whose tools the model may call. All when omitted."""

    tenant_id: str
    user_id: str = ""
    channel_id: str = ""
    email: str = ""

    max_recursions: Optional[int] = Field(default=None, ge=1)


class RunResponse(BaseModel):
    """Response body for /api/agent/run."""

    final_text: str
    status: str  # "complete" | "incomplete" | "error" | "cancelled"
    usage_log: list[dict]
    steps: Optional[list[dict]] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
def health(runtime: Runtime = Depends(get_runtime)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "integrations_loaded": len(runtime.integrations),
        "ai_provider": runtime.settings.ai_provider,
    }


@app.get("/api/integrations")
def list_integrations(runtime: Runtime = Depends(get_runtime)):
    """List loaded integrations and their tools."""
    result = []
    for integration in runtime.integrations:
        result.append(
            {
                "id": integration.integration_id,
                "name": integration.name,
                "description": integration.description,
                "auth": integration.auth_type,
                "tools": [
                    {"name": d.name, "method": d.method, "description": d.description}
                    for d in integration.descriptors
                ],
            }
        )
    return {"integrations": result}


@app.post("/api/agent/run", response_model=RunResponse)
def run_agent(req: RunRequest, runtime: Runtime = Depends(get_runtime)):
    """
    Run the agentic loop for one user message.

    Backend failures are reported in the body with status "error"; the
    usage log of the calls already made is always returned.
    """
    try:
        toolbox = runtime.toolbox(req.integrations)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Unknown integrations: {e.args[0]}")
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = run_agent_loop(
        system_prompt=render_prompt(req.system_prompt, req.variables),
        history=[ConversationTurn(role=t.role, text=t.text) for t in req.history],
        user_text=req.user_text,
        toolbox=toolbox,
        adapter=runtime.adapter,
        auth_context=AuthContext(
            tenant_id=req.tenant_id,
            user_id=req.user_id,
            channel_id=req.channel_id,
            email=req.email,
        ),
        max_recursions=req.max_recursions or runtime.settings.max_recursions,
    )
    data = result.to_dict()
    return RunResponse(**data)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main():
    import uvicorn

    port = int(os.environ.get("PORT", 8080))
    host = os.environ.get("HOST", "0.0.0.0")

    logging.basicConfig(level=os.environ.get("TOOLRELAY_LOG_LEVEL", "INFO").upper())
    logger.info("Starting Tool Relay on %s:%s", host, port)
    uvicorn.run("toolrelay.server:app", host=host, port=port)


if __name__ == "__main__":
    main()
