"""
Parameter Store
===============

Per-tenant service parameters (API domains, service users and tokens) read
from AWS Systems Manager Parameter Store and cached in memory.

Parameters live under ``/<tenant>/<name>``; the tenant id is lower-cased.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from toolrelay.cache import TTLCache
from toolrelay.errors import CredentialError

logger = logging.getLogger(__name__)


DEFAULT_TTL = 60 * 60


class ParameterStore:
    """Reads and caches tenant parameters from SSM."""

    def __init__(
        self,
        client: Any = None,
        region: str | None = None,
        ttl: float = DEFAULT_TTL,
    ):
        self._client = client
        self.region = region
        self._cache = TTLCache(ttl)

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("ssm", region_name=self.region)
        return self._client

    @staticmethod
    def parameter_path(tenant: str, name: str) -> str:
        return f"/{tenant.lower()}/{name}"

    def get_parameters(self, tenant: str, names: Iterable[str]) -> dict[str, str]:
        """
        Fetch several parameters for one tenant.

        Returns:
            Mapping of bare parameter name (last path segment) to value.
            Names SSM does not know are absent from the result.
        """
        names = tuple(sorted(set(names)))
        cache_key = (tenant.lower(), names)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Using cached parameters for %s", tenant)
            return dict(cached)

        paths = [self.parameter_path(tenant, n) for n in names]
        try:
            response = self.client.get_parameters(Names=paths, WithDecryption=True)
        except (BotoCoreError, ClientError) as e:
            raise CredentialError(f"Cannot read parameters for {tenant}: {e}") from e

        values = {
            param["Name"].split("/")[-1]: param["Value"]
            for param in response.get("Parameters", [])
        }
        invalid = response.get("InvalidParameters") or []
        if invalid:
            logger.warning("Unknown parameters for %s: %s", tenant, invalid)

        self._cache.set(cache_key, values)
        return dict(values)
