"""
Tool Execution
==============

Sends compiled requests to remote APIs and turns every outcome into text the
model can read.

ToolExecutor performs exactly one HTTP request per call, with a timeout and
no retries. Toolbox sits in front of it: it finds the descriptor for an
invocation, resolves the connection, compiles the request and catches every
tool-level failure, so nothing raised by a single tool call reaches the loop.

Usage:
    from toolrelay.executor import ToolExecutor, Toolbox

    toolbox = Toolbox(get_bundled_integrations(), connections, ToolExecutor())
    result = toolbox.execute(invocation, AuthContext(tenant_id="T0123"))
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Sequence

import httpx

from toolrelay.compiler import CompiledRequest, compile_request
from toolrelay.connections import AuthContext, ConnectionResolver, ReauthRequired
from toolrelay.credentials import REAUTH_MESSAGE
from toolrelay.descriptor import ToolDescriptor, ToolInvocation, ToolResult
from toolrelay.errors import CompilationError, ConfigurationError, CredentialError
from toolrelay.registry import Integration

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 30.0

SUCCESS_MESSAGE = "success"
API_ERROR_MESSAGE = "Error accessing {integration} API. Please contact administrator"
UNSUPPORTED_MESSAGE = "Tool {tool} is not supported"
INVALID_INPUT_MESSAGE = "Invalid tool input: {error}"


class RemoteCallError(Exception):
    """A remote API call failed (network error, timeout or non-2xx status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ToolExecutor:
    """Executes CompiledRequests over HTTP."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
        log_requests: bool = False,
    ):
        self.timeout = timeout
        self.log_requests = log_requests
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def send(self, request: CompiledRequest) -> str:
        """
        Send one request and return the response as text.

        Returns:
            The JSON response re-serialized, the response text when it is not
            JSON, or "success" when the body is empty.

        Raises:
            RemoteCallError: Network failure, timeout, or a non-2xx status.
        """
        if self.log_requests:
            logger.info("%s %s body=%s", request.method, request.url, request.body)

        try:
            response = self.client.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                content=request.body,
            )
        except httpx.TimeoutException as e:
            raise RemoteCallError(f"Timed out: {e}") from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise RemoteCallError(f"Request failed: {e}") from e

        if not response.is_success:
            raise RemoteCallError(
                f"HTTP {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        if self.log_requests:
            logger.info("Response %s: %s", response.status_code, response.text)

        if not response.content:
            return SUCCESS_MESSAGE
        try:
            return json.dumps(response.json())
        except ValueError:
            return response.text

    def close(self):
        if self._client:
            self._client.close()
            self._client = None


class Toolbox:
    """The descriptors available to one loop, and how to run them."""

    def __init__(
        self,
        integrations: Sequence[Integration],
        connections: ConnectionResolver,
        executor: ToolExecutor | None = None,
    ):
        self.integrations = list(integrations)
        self.connections = connections
        self.executor = executor or ToolExecutor()

        self._index: dict[str, tuple[Integration, ToolDescriptor]] = {}
        for integration in self.integrations:
            for descriptor in integration.descriptors:
                if descriptor.name in self._index:
                    raise ConfigurationError(
                        f"Tool {descriptor.name} is defined by both "
                        f"{self._index[descriptor.name][0].integration_id} and "
                        f"{integration.integration_id}"
                    )
                self._index[descriptor.name] = (integration, descriptor)

    def descriptors(self) -> list[ToolDescriptor]:
        return [descriptor for _, descriptor in self._index.values()]

    def execute(self, invocation: ToolInvocation, context: AuthContext) -> ToolResult:
        """Run one invocation; failures become the result text."""
        return ToolResult(
            invocation_id=invocation.invocation_id,
            content=self._run(invocation, context),
        )

    def _run(self, invocation: ToolInvocation, context: AuthContext) -> str:
        entry = self._index.get(invocation.tool_name)
        if entry is None:
            logger.warning("Model requested unknown tool %s", invocation.tool_name)
            return UNSUPPORTED_MESSAGE.format(tool=invocation.tool_name)

        integration, descriptor = entry
        apology = API_ERROR_MESSAGE.format(integration=integration.name)
        try:
            return self._call(integration, descriptor, invocation, context, apology)
        except Exception:
            logger.exception("Unexpected failure in tool %s", descriptor.name)
            return apology

    def _call(
        self,
        integration: Integration,
        descriptor: ToolDescriptor,
        invocation: ToolInvocation,
        context: AuthContext,
        apology: str,
    ) -> str:
        try:
            connection = self.connections.resolve(integration, context)
        except (ConfigurationError, CredentialError) as e:
            logger.error("Cannot connect to %s: %s", integration.name, e)
            return apology

        if isinstance(connection, ReauthRequired):
            return self._request_reauth(connection.provider, context)

        try:
            request = compile_request(descriptor, invocation.raw_input, connection)
        except CompilationError as e:
            logger.warning("Compilation failed: %s", e)
            return INVALID_INPUT_MESSAGE.format(error=e)

        try:
            return self.executor.send(request)
        except RemoteCallError as e:
            logger.error(
                "%s call %s failed (status=%s): %s",
                integration.name,
                descriptor.name,
                e.status_code,
                e,
            )
            return apology

    def _request_reauth(self, provider: str, context: AuthContext) -> str:
        try:
            return self.connections.credentials.request_reauth(
                provider, context.user_id, context.channel_id, context.tenant_id
            )
        except CredentialError as e:
            logger.error("Re-authorization request for %s failed: %s", provider, e)
            return REAUTH_MESSAGE.format(provider=provider)
