"""
AWS Pricing API adapter.
Uses boto3 to query the official AWS Price List API.
"""
from typing import Any, Dict, List, Optional
import asyncio
import json
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cloudcost.core.config import config
from cloudcost.pricing.base import (
    AdapterInitializationError,
    CatalogAdapter,
    CatalogTransportError,
    PriceQuery,
)


logger = logging.getLogger(__name__)


class AWSPricingError(CatalogTransportError):
    """Raised when AWS pricing lookup fails."""
    pass


class AWSPricingAdapter(CatalogAdapter):
    """Catalog adapter for the AWS Price List API (pricing:GetProducts)."""

    name = "AWS"
    provider = "aws"
    currency = "USD"

    service_field = "serviceCode"
    region_field = "regionCode"
    size_field = "instanceType"

    SERVICE_CLASSES = (
        ("aws_instance", "AmazonEC2"),
        ("aws_db_instance", "AmazonRDS"),
        ("aws_rds_cluster_instance", "AmazonRDS"),
        ("aws_elasticache", "AmazonElastiCache"),
    )

    CLASS_DIMENSIONS = {
        "AmazonEC2": (
            ("operatingSystem", "Linux"),
            ("tenancy", "Shared"),
            ("preInstalledSw", "NA"),
            ("capacitystatus", "Used"),
        ),
        "AmazonRDS": (
            ("databaseEngine", "MySQL"),
            ("deploymentOption", "Single-AZ"),
        ),
        "AmazonElastiCache": (
            ("cacheEngine", "Redis"),
        ),
    }

    def __init__(
        self,
        pricing_client: Optional[Any] = None,
        default_region: Optional[str] = None
    ):
        """
        Initialize AWS pricing adapter.

        Args:
            pricing_client: Pre-built boto3 "pricing" client; built lazily on
                initialize() from the ambient AWS credentials if None
            default_region: Region used when a resource declares none
        """
        super().__init__()
        self.pricing_client = pricing_client
        self.default_region = default_region or config.AWS_DEFAULT_REGION

    def _build_client(self) -> Any:
        # No botocore retries, the resolver owns retry and circuit breaking
        boto_config = Config(
            connect_timeout=config.PRICING_QUERY_TIMEOUT_SECONDS,
            read_timeout=config.PRICING_QUERY_TIMEOUT_SECONDS,
            retries={"max_attempts": 0}
        )
        return boto3.client(
            "pricing",
            region_name=config.AWS_PRICING_REGION,
            config=boto_config
        )

    async def initialize(self) -> None:
        """
        Build the client and verify credentials with a minimal DescribeServices call.

        Raises:
            AdapterInitializationError: If credentials are missing or the API is unreachable
        """
        try:
            if self.pricing_client is None:
                self.pricing_client = self._build_client()
            await asyncio.to_thread(self.pricing_client.describe_services, MaxResults=1)
        except ClientError as error:
            code = error.response.get("Error", {}).get("Code", "Unknown")
            raise AdapterInitializationError(
                f"AWS pricing API rejected credentials ({code}): {error}"
            ) from error
        except BotoCoreError as error:
            raise AdapterInitializationError(
                f"Failed to connect to AWS pricing API: {error}"
            ) from error

        logger.info("AWS pricing client ready (endpoint region %s)", config.AWS_PRICING_REGION)

    async def query(self, query: PriceQuery) -> List[Dict[str, Any]]:
        """
        Run pricing:GetProducts for one query.

        Returns:
            Parsed PriceList documents in catalog order

        Raises:
            AWSPricingError: If the API call fails or returns malformed JSON
        """
        filters = [
            {"Type": price_filter.match_type.value, "Field": price_filter.field, "Value": price_filter.value}
            for price_filter in query.filters
            if price_filter.field != self.service_field
        ]

        try:
            response = await asyncio.to_thread(
                self.pricing_client.get_products,
                ServiceCode=query.service,
                Filters=filters,
                MaxResults=query.limit
            )
        except ClientError as error:
            logger.error(f"AWS pricing API error: {error}")
            raise AWSPricingError(f"Failed to query AWS pricing: {str(error)}") from error
        except BotoCoreError as error:
            logger.error(f"AWS pricing API connection error: {error}")
            raise AWSPricingError(f"Failed to connect to AWS pricing API: {str(error)}") from error

        entries = []
        for raw_entry in response.get("PriceList", []):
            try:
                entries.append(json.loads(raw_entry) if isinstance(raw_entry, str) else raw_entry)
            except ValueError as error:
                raise AWSPricingError(f"Failed to parse AWS pricing response: {str(error)}") from error
        return entries
