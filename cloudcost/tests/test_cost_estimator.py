"""
Tests for the cost estimation service.
"""

import json
import pytest

from cloudcost.parsers.base import Declaration
from cloudcost.parsers.terraform_plan import TerraformPlanParser
from cloudcost.services.cost_estimator import CostEstimator, CostEstimatorError, provider_from_type


@pytest.fixture
def estimator(resolver_options):
    """Estimator with instant retries and no adapters."""
    return CostEstimator(resolver_options=resolver_options)


def web_declaration(**extra):
    attributes = {"instance_type": "t2.micro", "region": "us-east-1", "count": 2}
    attributes.update(extra)
    return Declaration(resource_type="vendorA_instance", name="web", attributes=attributes)


@pytest.mark.parametrize("resource_type,provider", [
    ("aws_instance", "aws"),
    ("azurerm_linux_virtual_machine", "azure"),
    ("azure_vm", "azure"),
    ("google_compute_instance", "gcp"),
    ("vendorA_instance", "vendorA"),
    ("standalone", "standalone"),
])
def test_provider_from_type(resource_type, provider):
    assert provider_from_type(resource_type) == provider


def test_build_resources_infers_attributes(estimator):
    resources, warnings = estimator.build_resources([web_declaration(tags={"env": "prod"})])

    resource = resources[0]
    assert resource.id == "vendorA_instance.web"
    assert resource.provider == "vendorA"
    assert resource.size == "t2.micro"
    assert resource.region == "us-east-1"
    assert resource.quantity == 2
    assert resource.tags == {"env": "prod"}
    assert resource.properties["instance_type"] == "t2.micro"
    assert warnings == []


def test_missing_size_warns_for_priceable_types(estimator, make_adapter):
    estimator.register_adapter("vendorA", make_adapter())
    declarations = [
        Declaration("vendorA_instance", "nosize", {"region": "us-east-1"}),
        Declaration("vendorA_widget", "other", {}),
    ]

    _, warnings = estimator.build_resources(declarations)

    assert len(warnings) == 1
    assert "vendorA_instance.nosize" in warnings[0]


@pytest.mark.asyncio
async def test_exact_price_end_to_end(estimator, make_adapter, catalog_entry):
    adapter = make_adapter(lambda query: [catalog_entry("0.0116")])
    estimator.register_adapter("vendorA", adapter)

    report = await estimator.estimate([web_declaration()])

    resource = report.resources[0]
    assert resource.size == "t2.micro"
    assert resource.region == "us-east-1"
    assert resource.quantity == 2
    assert resource.hourly_price == pytest.approx(0.0116)
    assert resource.monthly_price == pytest.approx(8.468)
    assert resource.yearly_price == pytest.approx(101.616)
    assert report.total_monthly == pytest.approx(16.936)
    assert report.errors == []
    assert report.metadata["priced_count"] == "1"


@pytest.mark.asyncio
async def test_relaxed_price_end_to_end(estimator, make_adapter, catalog_entry):
    def handler(query):
        return [] if query.tier == "exact" else [catalog_entry("0.0116")]

    estimator.register_adapter("vendorA", make_adapter(handler))

    report = await estimator.estimate([web_declaration()])

    resource = report.resources[0]
    assert resource.hourly_price == pytest.approx(0.0116)
    assert "relaxed" in resource.pricing_details.pricing_source


@pytest.mark.asyncio
async def test_unsupported_type_end_to_end(estimator, make_adapter, catalog_entry):
    adapter = make_adapter(lambda query: [catalog_entry("1.0")])
    estimator.register_adapter("vendorA", adapter)

    report = await estimator.estimate([Declaration("vendorA_widget", "thing", {"size": "large"})])

    assert len(report.resources) == 1
    resource = report.resources[0]
    assert resource.hourly_price == 0
    assert "unsupported resource type" in resource.pricing_details.pricing_source.lower()
    assert report.total_monthly == 0
    assert report.total_hourly == 0
    assert adapter.queries == []
    assert len(report.errors) == 1


@pytest.mark.asyncio
async def test_unregistered_provider_is_skipped_not_dropped(estimator):
    report = await estimator.estimate([
        Declaration("google_compute_instance", "vm", {"machine_type": "e2-medium", "zone": "us-central1-a"}),
    ])

    resource = report.resources[0]
    assert resource.hourly_price == 0
    assert resource.pricing_details.pricing_source == (
        "Skipped: no pricing adapter registered for provider 'gcp'"
    )
    assert report.by_provider == {"gcp": 0.0}
    assert report.errors == []
    assert any("gcp" in warning for warning in report.warnings)


@pytest.mark.asyncio
async def test_mixed_results_keep_input_order(estimator, make_adapter, catalog_entry):
    prices = {"t2.micro": "0.0116", "m5.large": "0.096"}

    def handler(query):
        price = prices.get(query.filter_value("instanceType"))
        return [catalog_entry(price)] if price else []

    estimator.register_adapter("vendorA", make_adapter(handler))
    declarations = [
        Declaration("vendorA_instance", "a", {"instance_type": "t2.micro"}),
        Declaration("vendorA_instance", "b", {"instance_type": "x9.huge"}),
        Declaration("vendorA_instance", "c", {"instance_type": "m5.large", "count": 3}),
        Declaration("other_thing", "d", {}),
    ]

    report = await estimator.estimate(declarations)

    assert [resource.name for resource in report.resources] == ["a", "b", "c", "d"]
    assert report.total_hourly == pytest.approx(0.0116 + 0.096 * 3)
    assert [error.split(":")[0] for error in report.errors] == ["vendorA_instance.b"]


@pytest.mark.asyncio
async def test_unexpected_adapter_error_is_isolated(estimator, make_adapter, catalog_entry):
    def handler(query):
        if query.filter_value("instanceType") == "bad.size":
            return RuntimeError("adapter bug")
        return [catalog_entry("0.5")]

    estimator.register_adapter("vendorA", make_adapter(handler))

    report = await estimator.estimate([
        Declaration("vendorA_instance", "good", {"instance_type": "t3.small"}),
        Declaration("vendorA_instance", "bad", {"instance_type": "bad.size"}),
    ])

    good, bad = report.resources
    assert good.hourly_price == pytest.approx(0.5)
    assert bad.hourly_price == 0
    assert bad.pricing_details.pricing_source == "Error: Unexpected error during pricing lookup"


@pytest.mark.asyncio
async def test_adapter_initialized_once_across_resources(make_adapter, catalog_entry, resolver_options):
    estimator = CostEstimator(max_concurrency=4, resolver_options=resolver_options)
    adapter = make_adapter(lambda query: [catalog_entry("0.1")], init_delay=0.01)
    estimator.register_adapter("vendorA", adapter)

    declarations = [
        Declaration("vendorA_instance", f"node{index}", {"instance_type": f"t3.size{index}"})
        for index in range(12)
    ]
    report = await estimator.estimate(declarations)

    assert adapter.initialize_calls == 1
    assert len(adapter.queries) == 12
    assert report.total_hourly == pytest.approx(1.2)


@pytest.mark.asyncio
async def test_estimate_path_with_terraform_plan(estimator, make_adapter, catalog_entry, tmp_path):
    plan = {
        "format_version": "1.2",
        "planned_values": {
            "root_module": {
                "resources": [
                    {"address": "vendorA_instance.web[0]", "mode": "managed", "type": "vendorA_instance",
                     "name": "web", "index": 0, "values": {"instance_type": "t2.micro", "region": "us-east-1"}},
                    {"address": "vendorA_instance.web[1]", "mode": "managed", "type": "vendorA_instance",
                     "name": "web", "index": 1, "values": {"instance_type": "t2.micro", "region": "us-east-1"}},
                ]
            }
        },
    }
    plan_path = tmp_path / "plan.json"
    plan_path.write_text(json.dumps(plan))

    estimator.register_parser(TerraformPlanParser())
    estimator.register_adapter("vendorA", make_adapter(lambda query: [catalog_entry("0.0116")]))

    report = await estimator.estimate_path(plan_path)

    assert report.iac_format == "terraform"
    assert report.metadata["parser"] == "Terraform plan"
    assert report.resources[0].quantity == 2
    assert report.total_monthly == pytest.approx(16.936)


@pytest.mark.asyncio
async def test_estimate_path_errors(estimator, tmp_path):
    with pytest.raises(CostEstimatorError, match="detect"):
        await estimator.estimate_path(tmp_path / "missing")

    (tmp_path / "notes.txt").write_text("hello")
    with pytest.raises(CostEstimatorError, match="Could not determine"):
        await estimator.estimate_path(tmp_path / "notes.txt")

    (tmp_path / "main.tf").write_text('resource "aws_instance" "web" {}')
    with pytest.raises(CostEstimatorError, match="No parser"):
        await estimator.estimate_path(tmp_path / "main.tf")
