"""
Connections
===========

Resolves where an integration's requests go and how they authenticate for
one end user.

Service-credential integrations (``basic``) read their user, token and base
URL from the tenant's parameters. Delegated integrations (``oauth2``) read the
base URL from the tenant's parameters and the bearer token from the
CredentialResolver, which may answer that the user has to re-authorize.
"""

from __future__ import annotations

from dataclasses import dataclass

from toolrelay.compiler import Connection, basic_auth_headers, bearer_auth_headers
from toolrelay.credentials import CredentialResolver
from toolrelay.errors import ConfigurationError
from toolrelay.registry import Integration
from toolrelay.secrets import ParameterStore


@dataclass(frozen=True)
class AuthContext:
    """Who the loop runs for: tenant, end user, originating channel."""

    tenant_id: str
    user_id: str = ""
    channel_id: str = ""
    email: str = ""


@dataclass(frozen=True)
class ReauthRequired:
    """The end user must re-authorize ``provider`` before the call can run."""

    provider: str


class ConnectionResolver:
    """Builds a Connection for an integration and an AuthContext."""

    def __init__(
        self,
        parameters: ParameterStore,
        credentials: CredentialResolver | None = None,
    ):
        self.parameters = parameters
        self.credentials = credentials

    def resolve(
        self, integration: Integration, context: AuthContext
    ) -> Connection | ReauthRequired:
        names = integration.auth.get("parameters", {})
        values = self.parameters.get_parameters(context.tenant_id, names.values())

        def param(key: str) -> str:
            name = names[key]
            if not values.get(name):
                raise ConfigurationError(
                    f"Parameter '{name}' is not set for tenant {context.tenant_id}"
                )
            return values[name]

        base_url = param("base_url")

        if integration.auth_type == "basic":
            headers = basic_auth_headers(param("username"), param("password"))
            return Connection(base_url=base_url, headers=headers)

        if self.credentials is None:
            raise ConfigurationError(
                f"{integration.integration_id} needs a credential resolver"
            )
        provider = integration.auth["provider"]
        record = self.credentials.resolve(
            provider, context.tenant_id, context.user_id, context.channel_id
        )
        if record.needs_reauth:
            return ReauthRequired(provider)
        return Connection(base_url=base_url, headers=bearer_auth_headers(record.token))
