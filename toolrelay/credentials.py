"""
Credential Resolver
===================

Maps (tenant, provider) to a delegated OAuth access token, or reports that the
end user has to re-authorize.

Valid tokens are cached per tenant and provider for a bounded TTL. A
``needs_reauth`` answer is never cached, so the first request after the user
re-authorizes picks up the new token.

Usage:
    from toolrelay.credentials import CredentialResolver, LambdaTokenSource

    resolver = CredentialResolver(LambdaTokenSource.from_env())
    record = resolver.resolve("microsoft", tenant="T0123", user_id="U1", channel_id="C1")
    if record.needs_reauth:
        message = resolver.request_reauth("microsoft", "U1", "C1", "T0123")
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from toolrelay.cache import TTLCache
from toolrelay.errors import ConfigurationError, CredentialError

logger = logging.getLogger(__name__)


DEFAULT_TOKEN_TTL = 60 * 60

REAUTH_MESSAGE = "You need to reauthorize {provider}. Please check your messages"


class CredentialStatus(Enum):
    VALID = "valid"
    NEEDS_REAUTH = "needs_reauth"


@dataclass(frozen=True)
class CredentialRecord:
    """Outcome of resolving a credential."""

    status: CredentialStatus
    token: str | None = None

    @property
    def needs_reauth(self) -> bool:
        return self.status is CredentialStatus.NEEDS_REAUTH

    @classmethod
    def valid(cls, token: str) -> "CredentialRecord":
        return cls(CredentialStatus.VALID, token)

    @classmethod
    def reauth(cls) -> "CredentialRecord":
        return cls(CredentialStatus.NEEDS_REAUTH)


class TokenSource(Protocol):
    """Backing store that owns the OAuth tokens."""

    def get_token(
        self, provider: str, tenant: str, user_id: str, channel_id: str
    ) -> CredentialRecord: ...

    def request_reauth(
        self, provider: str, user_id: str, channel_id: str, tenant: str
    ) -> str | None: ...


class CredentialResolver:
    """TTL-cached front of a TokenSource."""

    def __init__(
        self,
        source: TokenSource,
        ttl: float = DEFAULT_TOKEN_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self._cache = TTLCache(ttl, clock=clock)

    def resolve(
        self, provider: str, tenant: str, user_id: str = "", channel_id: str = ""
    ) -> CredentialRecord:
        # One delegated token per tenant and provider, shared by all its users
        # and channels; user_id and channel_id only reach the token source.
        key = (tenant, provider)
        token = self._cache.get(key)
        if token is not None:
            return CredentialRecord.valid(token)

        record = self.source.get_token(provider, tenant, user_id, channel_id)
        if record.status is CredentialStatus.VALID:
            if not record.token:
                raise CredentialError(f"Empty {provider} token for tenant {tenant}")
            self._cache.set(key, record.token)
        else:
            logger.info("Needs user reauth to %s (tenant %s)", provider, tenant)
        return record

    def request_reauth(
        self, provider: str, user_id: str, channel_id: str, tenant: str
    ) -> str:
        """Trigger the out-of-band re-authorization and return the user message."""
        message = self.source.request_reauth(provider, user_id, channel_id, tenant)
        return message or REAUTH_MESSAGE.format(provider=provider)


# =============================================================================
# Lambda-backed token source
# =============================================================================


class LambdaTokenSource:
    """
    Token source backed by two AWS Lambda functions.

    The generator returns ``{"status": "success", "token": ...}`` or
    ``{"status": "reauth"}``; the handler, invoked with
    ``action=initiate_auth``, sends the end user a sign-in link and returns
    the text to show in the conversation.
    """

    def __init__(
        self,
        generator_function: str,
        handler_function: str,
        client: Any = None,
        region: str | None = None,
    ):
        self.generator_function = generator_function
        self.handler_function = handler_function
        self.region = region
        self._client = client

    @classmethod
    def from_env(cls, client: Any = None) -> "LambdaTokenSource":
        generator = os.environ.get("OAUTH_GENERATOR")
        handler = os.environ.get("OAUTH_HANDLER")
        stage = os.environ.get("STAGE")
        if not (generator and handler and stage):
            raise ConfigurationError(
                "OAUTH_GENERATOR, OAUTH_HANDLER and STAGE must be set"
            )
        return cls(
            generator_function=f"{generator}-{stage}",
            handler_function=f"{handler}-{stage}",
            client=client,
            region=os.environ.get("AWS_REGION"),
        )

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("lambda", region_name=self.region)
        return self._client

    def _invoke(self, function_name: str, payload: dict) -> dict:
        try:
            response = self.client.invoke(
                FunctionName=function_name,
                Payload=json.dumps(payload).encode(),
            )
            raw = response["Payload"].read()
        except (BotoCoreError, ClientError) as e:
            raise CredentialError(f"Invoking {function_name} failed: {e}") from e
        try:
            result = json.loads(raw or b"{}")
        except ValueError as e:
            raise CredentialError(f"{function_name} returned invalid JSON") from e
        # Lambda proxies wrap the answer as a JSON string under "body".
        body = result.get("body") if isinstance(result, dict) else None
        if isinstance(body, str):
            try:
                parsed = json.loads(body)
            except ValueError:
                parsed = None
            return parsed if isinstance(parsed, dict) else {"body": body}
        return result if isinstance(result, dict) else {}

    def get_token(
        self, provider: str, tenant: str, user_id: str, channel_id: str
    ) -> CredentialRecord:
        result = self._invoke(
            self.generator_function,
            {
                "provider": provider,
                "userId": user_id,
                "channelId": channel_id,
                "teamId": tenant,
            },
        )
        status = result.get("status")
        if status == "success":
            return CredentialRecord.valid(result.get("token", ""))
        if status == "reauth":
            return CredentialRecord.reauth()
        raise CredentialError(f"Unexpected {provider} token status: {status!r}")

    def request_reauth(
        self, provider: str, user_id: str, channel_id: str, tenant: str
    ) -> str | None:
        result = self._invoke(
            self.handler_function,
            {
                "action": "initiate_auth",
                "provider": provider,
                "userId": user_id,
                "channelId": channel_id,
                "teamId": tenant,
            },
        )
        body = result.get("body")
        return body if isinstance(body, str) else None
