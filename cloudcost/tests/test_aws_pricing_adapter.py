"""
Tests for the AWS Price List adapter (boto3 client mocked).
"""

import json
import pytest
from unittest.mock import Mock, patch
from botocore.exceptions import ClientError, EndpointConnectionError

from cloudcost.core.config import config
from cloudcost.domain.resource_models import Resource
from cloudcost.pricing.aws_pricing_client import AWSPricingAdapter, AWSPricingError
from cloudcost.pricing.base import AdapterInitializationError, AdapterState, PriceFilter, PriceQuery
from cloudcost.pricing.price_resolver import PriceResolver


def client_error(code="AccessDeniedException", operation="GetProducts"):
    return ClientError({"Error": {"Code": code, "Message": "denied"}}, operation)


@pytest.fixture
def mock_pricing_client(catalog_entry):
    """Mock boto3 pricing client returning one EC2 price."""
    mock = Mock()
    mock.describe_services = Mock(return_value={"Services": [{"ServiceCode": "AmazonEC2"}]})
    mock.get_products = Mock(return_value={
        "PriceList": [json.dumps(catalog_entry("0.0116", attributes={"instanceType": "t2.micro", "location": "US East (N. Virginia)"}))]
    })
    return mock


@pytest.mark.parametrize("resource_type,service", [
    ("aws_instance", "AmazonEC2"),
    ("aws_db_instance", "AmazonRDS"),
    ("aws_rds_cluster_instance", "AmazonRDS"),
    ("aws_elasticache_cluster", "AmazonElastiCache"),
    ("aws_s3_bucket", None),
])
def test_classification(resource_type, service):
    assert AWSPricingAdapter(pricing_client=Mock()).classify(resource_type) == service


def test_ec2_exact_filters_include_class_dimensions():
    adapter = AWSPricingAdapter(pricing_client=Mock())
    filters = adapter.exact_filters("AmazonEC2", "us-east-1", "t3.micro")
    assert [(f.field, f.value) for f in filters] == [
        ("serviceCode", "AmazonEC2"),
        ("regionCode", "us-east-1"),
        ("instanceType", "t3.micro"),
        ("operatingSystem", "Linux"),
        ("tenancy", "Shared"),
        ("preInstalledSw", "NA"),
        ("capacitystatus", "Used"),
    ]


@pytest.mark.asyncio
async def test_initialize_performs_handshake(mock_pricing_client):
    adapter = AWSPricingAdapter(pricing_client=mock_pricing_client)

    await adapter.ensure_initialized()

    mock_pricing_client.describe_services.assert_called_once_with(MaxResults=1)
    assert adapter.state is AdapterState.READY


@pytest.mark.asyncio
async def test_rejected_credentials_fail_initialization(mock_pricing_client):
    mock_pricing_client.describe_services.side_effect = client_error("UnrecognizedClientException", "DescribeServices")
    adapter = AWSPricingAdapter(pricing_client=mock_pricing_client)

    with pytest.raises(AdapterInitializationError, match="UnrecognizedClientException"):
        await adapter.ensure_initialized()
    assert adapter.state is AdapterState.FAILED


@pytest.mark.asyncio
async def test_unreachable_endpoint_fails_initialization(mock_pricing_client):
    mock_pricing_client.describe_services.side_effect = EndpointConnectionError(endpoint_url="https://api.pricing")
    adapter = AWSPricingAdapter(pricing_client=mock_pricing_client)

    with pytest.raises(AdapterInitializationError):
        await adapter.ensure_initialized()


@pytest.mark.asyncio
async def test_client_built_lazily_from_config():
    with patch("cloudcost.pricing.aws_pricing_client.boto3") as mock_boto3:
        mock_boto3.client.return_value = Mock()
        adapter = AWSPricingAdapter()
        mock_boto3.client.assert_not_called()

        await adapter.ensure_initialized()

    args, kwargs = mock_boto3.client.call_args
    assert args == ("pricing",)
    assert kwargs["region_name"] == config.AWS_PRICING_REGION


@pytest.mark.asyncio
async def test_query_translates_filters(mock_pricing_client):
    adapter = AWSPricingAdapter(pricing_client=mock_pricing_client)
    query = PriceQuery(
        service="AmazonEC2",
        filters=(
            PriceFilter("serviceCode", "AmazonEC2"),
            PriceFilter("regionCode", "us-east-1"),
            PriceFilter("instanceType", "t2.micro"),
        ),
        limit=10,
    )

    entries = await adapter.query(query)

    mock_pricing_client.get_products.assert_called_once_with(
        ServiceCode="AmazonEC2",
        Filters=[
            {"Type": "TERM_MATCH", "Field": "regionCode", "Value": "us-east-1"},
            {"Type": "TERM_MATCH", "Field": "instanceType", "Value": "t2.micro"},
        ],
        MaxResults=10,
    )
    assert entries[0]["terms"]["OnDemand"]["TERM1"]["priceDimensions"]["DIM1"]["pricePerUnit"]["USD"] == "0.0116"


@pytest.mark.asyncio
async def test_query_api_error_is_transport_error(mock_pricing_client):
    mock_pricing_client.get_products.side_effect = client_error("ThrottlingException")
    adapter = AWSPricingAdapter(pricing_client=mock_pricing_client)
    query = PriceQuery(service="AmazonEC2", filters=(PriceFilter("serviceCode", "AmazonEC2"),), limit=1)

    with pytest.raises(AWSPricingError, match="ThrottlingException"):
        await adapter.query(query)


@pytest.mark.asyncio
async def test_malformed_price_list_is_transport_error(mock_pricing_client):
    mock_pricing_client.get_products.return_value = {"PriceList": ["{not json"]}
    adapter = AWSPricingAdapter(pricing_client=mock_pricing_client)
    query = PriceQuery(service="AmazonEC2", filters=(PriceFilter("serviceCode", "AmazonEC2"),), limit=1)

    with pytest.raises(AWSPricingError, match="parse"):
        await adapter.query(query)


@pytest.mark.asyncio
async def test_resolves_ec2_instance_end_to_end(mock_pricing_client, resolver_options):
    adapter = AWSPricingAdapter(pricing_client=mock_pricing_client)
    resolver = PriceResolver(adapter, **resolver_options)
    resource = Resource(
        id="aws_instance.web", name="web", resource_type="aws_instance",
        provider="aws", region="us-east-1", size="t2.micro",
    )

    resolution = await resolver.resolve(resource)

    assert resolution.priced
    assert resource.hourly_price == pytest.approx(0.0116)
    assert resource.pricing_details.pricing_source == "AWS Pricing API"
    assert resource.pricing_details.metadata["location"] == "US East (N. Virginia)"
