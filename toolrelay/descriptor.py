"""
Tool Descriptors
================

Static, declarative definition of one remote REST operation a model may call.

A descriptor carries no behavior beyond checking its own invariants: every
``{{placeholder}}`` in the URL template names an input field, and every body
field is an input field.

Usage:
    from toolrelay.descriptor import ToolDescriptor

    fetch_issue = ToolDescriptor.from_dict({
        "name": "jirafetchTool",
        "method": "GET",
        "url": "/rest/api/3/issue/{{issue}}",
        "description": "Fetch a jira issue",
        "input_schema": {
            "issue": {"type": "string", "required": True, "description": "Issue key"},
        },
    })
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping

from toolrelay.errors import DescriptorError


HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})

PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@lru_cache(maxsize=512)
def template_placeholders(url_template: str) -> tuple[str, ...]:
    """Return the placeholder names of a URL template, in order of appearance."""
    seen: list[str] = []
    for name in PLACEHOLDER_RE.findall(url_template):
        if name not in seen:
            seen.append(name)
    return tuple(seen)


@dataclass(frozen=True)
class FieldSpec:
    """Schema of one input field."""

    type: str = "string"
    description: str = ""
    required: bool = False
    # Extra JSON-schema keywords (items, properties, enum, ...) passed through
    # to the model declaration untouched.
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_json_schema(self) -> dict:
        schema = {"type": self.type, "description": self.description}
        schema.update(self.extra)
        return schema

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldSpec":
        extra = {
            k: v
            for k, v in data.items()
            if k not in ("type", "description", "required")
        }
        return cls(
            type=data.get("type", "string"),
            description=data.get("description", ""),
            required=bool(data.get("required", False)),
            extra=MappingProxyType(extra),
        )


@dataclass(frozen=True)
class ToolDescriptor:
    """Definition of one remote operation exposed to the model."""

    name: str
    method: str
    url_template: str
    description: str = ""
    body_fields: tuple[str, ...] = ()
    input_schema: Mapping[str, FieldSpec] = field(default_factory=dict)
    # Field -> prefix the value must start with (added when missing).
    input_prefixes: Mapping[str, str] = field(default_factory=dict)
    # Named compiler hook that builds the whole body from the input.
    body_builder: str | None = None

    def __post_init__(self):
        method = self.method.upper()
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "body_fields", tuple(self.body_fields))
        object.__setattr__(
            self, "input_schema", MappingProxyType(dict(self.input_schema))
        )
        object.__setattr__(
            self, "input_prefixes", MappingProxyType(dict(self.input_prefixes))
        )
        self._validate()

    def _validate(self):
        if not self.name:
            raise DescriptorError("Tool descriptor needs a name")
        if self.method not in HTTP_METHODS:
            raise DescriptorError(
                f"{self.name}: unsupported method {self.method!r}"
            )

        unknown = [p for p in self.placeholders if p not in self.input_schema]
        if unknown:
            raise DescriptorError(
                f"{self.name}: URL placeholders without input fields: "
                f"{', '.join(unknown)}"
            )

        stray = [f for f in self.body_fields if f not in self.input_schema]
        if stray:
            raise DescriptorError(
                f"{self.name}: body fields without input fields: {', '.join(stray)}"
            )
        if len(set(self.body_fields)) != len(self.body_fields):
            raise DescriptorError(f"{self.name}: duplicate body fields")

        if self.method == "GET" and self.body_fields:
            raise DescriptorError(f"{self.name}: GET tools cannot declare body fields")
        if self.body_builder and self.body_fields:
            raise DescriptorError(
                f"{self.name}: body_builder and body_fields are mutually exclusive"
            )
        if self.method == "GET" and self.body_builder:
            raise DescriptorError(f"{self.name}: GET tools cannot declare a body builder")

    @property
    def placeholders(self) -> tuple[str, ...]:
        return template_placeholders(self.url_template)

    @property
    def required_fields(self) -> list[str]:
        return [name for name, spec in self.input_schema.items() if spec.required]

    def parameters_schema(self) -> dict:
        """JSON schema of the tool input, as declared to model backends."""
        return {
            "type": "object",
            "properties": {
                name: spec.to_json_schema() for name, spec in self.input_schema.items()
            },
            "required": self.required_fields,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolDescriptor":
        """Build a descriptor from its registry (JSON) representation."""
        try:
            name = data["name"]
            method = data["method"]
            url = data["url"]
        except KeyError as e:
            raise DescriptorError(f"Tool descriptor missing key {e}") from e

        return cls(
            name=name,
            method=method,
            url_template=url,
            description=data.get("description", ""),
            body_fields=tuple(data.get("body_fields", ())),
            input_schema={
                field_name: FieldSpec.from_dict(spec)
                for field_name, spec in data.get("input_schema", {}).items()
            },
            input_prefixes=data.get("input_prefixes", {}),
            body_builder=data.get("body_builder"),
        )


@dataclass(frozen=True)
class ToolInvocation:
    """One model-requested call to a named tool."""

    tool_name: str
    invocation_id: str
    raw_input: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """Textual outcome of one invocation, correlated by id."""

    invocation_id: str
    content: str
