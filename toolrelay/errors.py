"""
Errors
======

Exception hierarchy for the tool relay engine.

Compilation errors and credential errors are recovered inside the loop and
turned into tool results the model can read. Backend errors end the current
loop invocation.
"""

from __future__ import annotations


class ToolRelayError(Exception):
    """Base class for all tool relay errors."""


class DescriptorError(ToolRelayError):
    """A tool descriptor violates one of its invariants."""


class ConfigurationError(ToolRelayError):
    """Settings or integration definitions are invalid."""


# =============================================================================
# Compilation
# =============================================================================


class CompilationError(ToolRelayError):
    """A model-supplied input could not be compiled into a request."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name}: {message}")


class MissingRequiredFieldError(CompilationError):
    """A required input field is absent from the invocation input."""

    def __init__(self, tool_name: str, fields: list[str]):
        self.fields = fields
        super().__init__(tool_name, f"missing required fields: {', '.join(fields)}")


class TemplateResolutionError(CompilationError):
    """A URL placeholder has no matching input value."""

    def __init__(self, tool_name: str, placeholders: list[str]):
        self.placeholders = placeholders
        super().__init__(
            tool_name, f"unresolved URL placeholders: {', '.join(placeholders)}"
        )


class BodyFieldCollisionError(CompilationError):
    """Two body fields produced the same key in the request body."""

    def __init__(self, tool_name: str, key: str, fields: tuple[str, str]):
        self.key = key
        self.fields = fields
        super().__init__(
            tool_name,
            f"body key '{key}' produced by both '{fields[0]}' and '{fields[1]}'",
        )


# =============================================================================
# Model backends
# =============================================================================


class BackendError(ToolRelayError):
    """The model backend could not produce a usable response."""


class BackendProtocolError(BackendError):
    """The model backend returned a malformed or unexpected response."""


class BackendCallError(BackendError):
    """The call to the model backend failed (network, timeout, API error)."""


# =============================================================================
# Credentials
# =============================================================================


class CredentialError(ToolRelayError):
    """Credential resolution failed for a reason other than re-authorization."""
