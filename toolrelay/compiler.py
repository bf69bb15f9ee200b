"""
Request Compiler
================

Turns a ToolDescriptor plus a model-supplied input into a concrete HTTP
request.

Model backends are told to send nested payloads as JSON strings, so the
compiler decodes one level of string-encoded JSON before building the body.
URL placeholders always use the value exactly as the model sent it.

Usage:
    from toolrelay.compiler import Connection, basic_auth_headers, compile_request

    connection = Connection(
        base_url="https://example.atlassian.net",
        headers=basic_auth_headers("bot@example.com", "api-token"),
    )
    request = compile_request(descriptor, {"issue": "CORE-123"}, connection)
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from toolrelay.descriptor import PLACEHOLDER_RE, ToolDescriptor
from toolrelay.errors import (
    BodyFieldCollisionError,
    CompilationError,
    MissingRequiredFieldError,
    TemplateResolutionError,
)

logger = logging.getLogger(__name__)


DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


@dataclass(frozen=True)
class Connection:
    """Where a tool request goes and how it is authenticated."""

    base_url: str
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CompiledRequest:
    """A fully resolved HTTP request, built fresh for every invocation."""

    method: str
    url: str
    headers: Mapping[str, str]
    body: str | None = None


def basic_auth_headers(username: str, password: str) -> dict[str, str]:
    """Authorization header for service-to-service basic credentials."""
    encoded = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {encoded}"}


def bearer_auth_headers(token: str) -> dict[str, str]:
    """Authorization header for a delegated OAuth access token."""
    return {"Authorization": f"Bearer {token}"}


def decode_value(value: Any) -> Any:
    """Parse a JSON-encoded string; anything else is returned unchanged."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


def decode_input(raw_input: Mapping[str, Any]) -> dict[str, Any]:
    """Decode one level of string-encoded JSON in the input values."""
    return {key: decode_value(value) for key, value in raw_input.items()}


def _url_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def apply_prefixes(
    descriptor: ToolDescriptor, raw_input: Mapping[str, Any]
) -> dict[str, Any]:
    """Prepend declared prefixes to string inputs that lack them."""
    prepared = dict(raw_input)
    for name, prefix in descriptor.input_prefixes.items():
        value = prepared.get(name)
        if isinstance(value, str) and not value.startswith(prefix):
            prepared[name] = f"{prefix}{value}"
    return prepared


def resolve_url(descriptor: ToolDescriptor, raw_input: Mapping[str, Any]) -> str:
    """Substitute every ``{{field}}`` token of the URL template."""
    missing = [
        name
        for name in descriptor.placeholders
        if raw_input.get(name) is None
    ]
    if missing:
        raise TemplateResolutionError(descriptor.name, missing)

    return PLACEHOLDER_RE.sub(
        lambda m: _url_value(raw_input[m.group(1)]), descriptor.url_template
    )


def assemble_body(
    descriptor: ToolDescriptor,
    raw_input: Mapping[str, Any],
    decoded: Mapping[str, Any],
) -> dict[str, Any] | None:
    """
    Build the request body from the descriptor's body fields.

    A structured value is merged into the body root (the field is an
    envelope); any other value is set under its own field name exactly as the
    model sent it. The shape of the runtime value decides, not the descriptor.
    """
    if descriptor.method == "GET" or not descriptor.body_fields:
        return None

    body: dict[str, Any] = {}
    owners: dict[str, str] = {}
    for name in descriptor.body_fields:
        if decoded.get(name) is None:
            continue
        value = decoded[name]
        fragment = value if isinstance(value, dict) else {name: raw_input[name]}
        for key, item in fragment.items():
            if key in owners:
                raise BodyFieldCollisionError(descriptor.name, key, (owners[key], name))
            owners[key] = name
            body[key] = item
    return body


def _recipients(value: Any) -> list[dict[str, Any]]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [
        {"emailAddress": {"address": str(address).strip()}}
        for address in value
        if str(address).strip()
    ]


def graph_mail_body(prepared: Mapping[str, Any]) -> dict[str, Any]:
    """
    Build a Microsoft Graph sendMail payload from flat fields.

    ``to`` and ``cc`` are comma separated address lists; ``contenttype`` is
    "text" or "html".
    """
    return {
        "message": {
            "subject": prepared.get("subject", ""),
            "body": {
                "contentType": prepared.get("contenttype") or "text",
                "content": prepared.get("content", ""),
            },
            "toRecipients": _recipients(prepared.get("to")),
            "ccRecipients": _recipients(prepared.get("cc")),
        }
    }


BODY_BUILDERS = {
    "graph_mail": graph_mail_body,
}


def build_body(descriptor: ToolDescriptor, prepared: Mapping[str, Any]) -> dict[str, Any]:
    """Run the descriptor's named body builder."""
    builder = BODY_BUILDERS.get(descriptor.body_builder)
    if builder is None:
        raise CompilationError(
            descriptor.name, f"unknown body builder {descriptor.body_builder!r}"
        )
    return builder(prepared)


def compile_request(
    descriptor: ToolDescriptor,
    raw_input: Mapping[str, Any],
    connection: Connection,
) -> CompiledRequest:
    """
    Compile one invocation into a CompiledRequest.

    Args:
        descriptor: The tool being invoked.
        raw_input: Input exactly as extracted from the model response.
        connection: Base URL and finished auth headers for the remote API.

    Raises:
        MissingRequiredFieldError: A required field is absent.
        TemplateResolutionError: A URL placeholder cannot be resolved.
        BodyFieldCollisionError: Two body fields produce the same body key.
        CompilationError: The input is not a JSON object, or the descriptor
            names an unknown body builder.
    """
    if not isinstance(raw_input, Mapping):
        raise CompilationError(
            descriptor.name, f"input must be a JSON object, got {type(raw_input).__name__}"
        )

    missing = [
        name for name in descriptor.required_fields if raw_input.get(name) is None
    ]
    if missing:
        raise MissingRequiredFieldError(descriptor.name, missing)

    prepared = apply_prefixes(descriptor, raw_input)
    path = resolve_url(descriptor, prepared)
    if descriptor.body_builder:
        body = build_body(descriptor, prepared)
    else:
        body = assemble_body(descriptor, prepared, decode_input(prepared))

    headers = dict(DEFAULT_HEADERS)
    headers.update(connection.headers)

    request = CompiledRequest(
        method=descriptor.method,
        url=f"{connection.base_url.rstrip('/')}{path}",
        headers=headers,
        body=json.dumps(body) if body is not None else None,
    )
    logger.debug("Compiled %s: %s %s", descriptor.name, request.method, request.url)
    return request
