"""
Integration Registry
====================

Loads integration definitions (descriptor lists plus auth config) from JSON
files on disk.

Integrations define:
- How the remote API authenticates (basic service credentials or delegated
  OAuth) and which tenant parameters hold its base URL and secrets
- The ordered list of tool descriptors the model may call

Usage:
    from toolrelay.registry import load_integrations

    integrations = load_integrations()
    for integration in integrations:
        print(f"{integration.name}: {len(integration.descriptors)} tools")
"""

import json
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional

from toolrelay.compiler import BODY_BUILDERS
from toolrelay.descriptor import ToolDescriptor
from toolrelay.errors import ConfigurationError, ToolRelayError

logger = logging.getLogger(__name__)


AUTH_TYPES = ("basic", "oauth2")


@dataclass
class Integration:
    """An integration loaded from a JSON definition file."""

    integration_id: str
    name: str
    description: str
    auth: Dict[str, Any]
    descriptors: List[ToolDescriptor]
    source: str  # "core", "custom"

    @property
    def auth_type(self) -> str:
        return self.auth.get("type", "basic")

    def find_descriptor(self, tool_name: str) -> Optional[ToolDescriptor]:
        for descriptor in self.descriptors:
            if descriptor.name == tool_name:
                return descriptor
        return None


# Default integrations directory (bundled with the package)
INTEGRATIONS_DIR = os.path.join(os.path.dirname(__file__), "integrations")


def parse_integration(config: Dict[str, Any], source: str = "core") -> Integration:
    """
    Build an Integration from its JSON definition.

    Raises:
        ConfigurationError: The definition is incomplete or a descriptor
            violates its invariants.
    """
    integration_id = config.get("integration")
    if not integration_id:
        raise ConfigurationError("Integration definition needs an 'integration' id")

    auth = config.get("auth", {})
    if auth.get("type", "basic") not in AUTH_TYPES:
        raise ConfigurationError(
            f"{integration_id}: unsupported auth type {auth.get('type')!r}"
        )
    if auth.get("type") == "oauth2" and not auth.get("provider"):
        raise ConfigurationError(f"{integration_id}: oauth2 auth needs a provider")
    if "base_url" not in auth.get("parameters", {}):
        raise ConfigurationError(f"{integration_id}: auth parameters need a base_url")

    try:
        descriptors = [ToolDescriptor.from_dict(t) for t in config.get("tools", [])]
    except ToolRelayError as e:
        raise ConfigurationError(f"{integration_id}: {e}") from e

    names = [d.name for d in descriptors]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(
            f"{integration_id}: duplicate tool names {', '.join(duplicates)}"
        )
    for descriptor in descriptors:
        if descriptor.body_builder and descriptor.body_builder not in BODY_BUILDERS:
            raise ConfigurationError(
                f"{integration_id}: {descriptor.name} names unknown body builder "
                f"{descriptor.body_builder!r}"
            )

    return Integration(
        integration_id=integration_id,
        name=config.get("name", integration_id),
        description=config.get("description", ""),
        auth=auth,
        descriptors=descriptors,
        source=source,
    )


def load_json_integrations(directory: str, source: str = "core") -> List[Integration]:
    """
    Load integration JSON files from a directory.

    Files that cannot be read or parsed are logged and skipped.

    Args:
        directory: Path to directory containing .json integration files.
        source: Label for where these integrations came from ("core", "custom").

    Returns:
        List of Integration instances, sorted by file name.
    """
    integrations = []

    if not os.path.exists(directory):
        return integrations

    for filename in sorted(os.listdir(directory)):
        if not filename.endswith(".json"):
            continue

        filepath = os.path.join(directory, filename)
        try:
            with open(filepath, "r") as f:
                config = json.load(f)
            config.setdefault("integration", filename[: -len(".json")])
            integrations.append(parse_integration(config, source=source))
        except (OSError, ValueError, ConfigurationError) as e:
            logger.error("Error loading integration %s: %s", filepath, e)

    return integrations


def load_integrations(directory: str = None) -> List[Integration]:
    """
    Load all integrations from a directory.

    If no directory is specified, loads the bundled integrations.
    """
    if directory is None:
        directory = INTEGRATIONS_DIR
    return load_json_integrations(directory, source="core")


@lru_cache(maxsize=1)
def get_bundled_integrations() -> List[Integration]:
    """
    Load and cache the bundled integrations.

    Call clear_integration_cache() after adding integration files at runtime.
    """
    return load_integrations(INTEGRATIONS_DIR)


def clear_integration_cache():
    """Clear the cached bundled integrations."""
    get_bundled_integrations.cache_clear()


def find_integration(
    integrations: List[Integration], integration_id: str
) -> Optional[Integration]:
    """Find an integration by its id."""
    for integration in integrations:
        if integration.integration_id == integration_id:
            return integration
    return None
