"""
Tests for the HTTP estimation endpoint.
"""

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from cloudcost.api.estimate import clear_cost_estimators
from cloudcost.main import app
from cloudcost.services.cost_estimator import CostEstimator


@pytest.fixture(autouse=True)
def fresh_estimators():
    """Each test starts without shared estimators."""
    clear_cost_estimators()
    yield
    clear_cost_estimators()


@pytest.fixture
def client():
    """Test client for FastAPI app."""
    return TestClient(app)


@pytest.fixture
def stub_estimator(make_adapter, catalog_entry, resolver_options):
    """Estimator backed by the in-memory vendorA catalog."""
    estimator = CostEstimator(resolver_options=resolver_options)
    estimator.register_adapter("vendorA", make_adapter(lambda query: [catalog_entry("0.0116")]))
    return estimator


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_estimate_returns_report(client, stub_estimator):
    payload = {
        "declarations": [
            {
                "type": "vendorA_instance",
                "name": "web",
                "attributes": {"instance_type": "t2.micro", "region": "us-east-1", "count": 2, "tags": {"env": "prod"}},
            }
        ],
        "providers": ["aws"],
    }

    with patch("cloudcost.api.estimate.create_cost_estimator", return_value=stub_estimator) as mock_factory:
        response = client.post("/api/estimate", json=payload)

    assert response.status_code == 200
    mock_factory.assert_called_once_with(["aws"])
    body = response.json()
    assert body["status"] == "ok"
    report = body["report"]
    assert report["total_monthly"] == pytest.approx(16.94)
    assert report["by_tag"] == {"env": {"prod": pytest.approx(16.94)}}
    resource = report["resources"][0]
    assert resource["id"] == "vendorA_instance.web"
    assert resource["quantity"] == 2
    assert resource["pricing_details"]["pricing_source"] == "VendorA Pricing API"


def test_estimate_pricing_failures_are_not_http_errors(client, stub_estimator):
    payload = {"declarations": [{"type": "vendorA_widget", "name": "w", "attributes": {}}]}

    with patch("cloudcost.api.estimate.create_cost_estimator", return_value=stub_estimator):
        response = client.post("/api/estimate", json=payload)

    assert response.status_code == 200
    report = response.json()["report"]
    assert report["total_monthly"] == 0
    assert len(report["errors"]) == 1


def test_estimate_rejects_empty_declarations(client):
    response = client.post("/api/estimate", json={"declarations": []})
    assert response.status_code == 400


def test_estimate_rejects_unknown_provider(client):
    payload = {
        "declarations": [{"type": "aws_instance", "name": "web", "attributes": {}}],
        "providers": ["oracle"],
    }
    response = client.post("/api/estimate", json=payload)
    assert response.status_code == 400
    assert "oracle" in response.json()["detail"]


def test_estimate_validates_declaration_shape(client):
    response = client.post("/api/estimate", json={"declarations": [{"type": "aws_instance"}]})
    assert response.status_code == 422


def test_requests_share_estimator_handshake_and_cache(client, make_adapter, catalog_entry, resolver_options):
    adapter = make_adapter(lambda query: [catalog_entry("0.0116")])

    def build_estimator(providers):
        estimator = CostEstimator(resolver_options=resolver_options)
        estimator.register_adapter("vendorA", adapter)
        return estimator

    payload = {
        "declarations": [
            {"type": "vendorA_instance", "name": "web", "attributes": {"instance_type": "t2.micro", "region": "us-east-1"}}
        ],
        "providers": ["aws"],
    }

    with patch("cloudcost.api.estimate.create_cost_estimator", side_effect=build_estimator) as mock_factory:
        first = client.post("/api/estimate", json=payload)
        second = client.post("/api/estimate", json=payload)

    assert first.status_code == 200 and second.status_code == 200
    assert second.json()["report"]["total_monthly"] == pytest.approx(8.47)
    mock_factory.assert_called_once_with(["aws"])
    assert adapter.initialize_calls == 1
    assert len(adapter.queries) == 1


def test_provider_subsets_get_separate_estimators(client, stub_estimator):
    payload = {"declarations": [{"type": "vendorA_widget", "name": "w", "attributes": {}}]}

    with patch("cloudcost.api.estimate.create_cost_estimator", return_value=stub_estimator) as mock_factory:
        client.post("/api/estimate", json=dict(payload, providers=["azure", "aws"]))
        client.post("/api/estimate", json=dict(payload, providers=["aws", "azure"]))
        client.post("/api/estimate", json=dict(payload, providers=["aws"]))

    assert mock_factory.call_count == 2
