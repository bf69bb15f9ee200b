"""
Tests for the SSM-backed parameter store.
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import EndpointConnectionError

from toolrelay.errors import CredentialError
from toolrelay.secrets import ParameterStore


class TestParameterStore:
    def test_parameter_path_lowercases_tenant(self):
        assert ParameterStore.parameter_path("T0123", "jiratoken") == "/t0123/jiratoken"

    def test_get_parameters(self, ssm_client):
        client = ssm_client({"jiradomain": "https://acme.atlassian.net", "jirauser": "bot"})
        store = ParameterStore(client=client)

        values = store.get_parameters("T0123", ["jirauser", "jiradomain"])

        assert values == {"jiradomain": "https://acme.atlassian.net", "jirauser": "bot"}
        kwargs = client.get_parameters.call_args.kwargs
        assert kwargs["Names"] == ["/t0123/jiradomain", "/t0123/jirauser"]
        assert kwargs["WithDecryption"] is True

    def test_unknown_names_are_absent(self, ssm_client):
        store = ParameterStore(client=ssm_client({"jirauser": "bot"}))
        assert store.get_parameters("T0123", ["jirauser", "jiratoken"]) == {"jirauser": "bot"}

    def test_results_are_cached(self, ssm_client):
        client = ssm_client({"qbdomain": "https://qb"})
        store = ParameterStore(client=client)

        store.get_parameters("T0123", ["qbdomain"])
        store.get_parameters("t0123", ["qbdomain"])
        assert client.get_parameters.call_count == 1

    def test_cached_result_is_a_copy(self, ssm_client):
        store = ParameterStore(client=ssm_client({"qbdomain": "https://qb"}))
        store.get_parameters("T0123", ["qbdomain"])["qbdomain"] = "changed"
        assert store.get_parameters("T0123", ["qbdomain"]) == {"qbdomain": "https://qb"}

    def test_ssm_failure(self):
        client = MagicMock()
        client.get_parameters.side_effect = EndpointConnectionError(endpoint_url="https://ssm")
        with pytest.raises(CredentialError):
            ParameterStore(client=client).get_parameters("T0123", ["jiratoken"])
