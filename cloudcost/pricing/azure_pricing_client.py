"""
Azure Retail Prices API adapter.
Uses the public REST API (no authentication required) and normalizes its
items into the same catalog-entry documents the AWS Price List returns.
"""
from typing import Any, Dict, List, Optional
import logging

import httpx

from cloudcost.core.config import config
from cloudcost.pricing.base import (
    AdapterInitializationError,
    CatalogAdapter,
    CatalogTransportError,
    PriceFilter,
    PriceQuery,
)


logger = logging.getLogger(__name__)


MAX_PAGES = 3  # NextPageLink pages followed per query

# Item fields copied into product attributes
ITEM_ATTRIBUTES = (
    "serviceName", "serviceFamily", "productName", "skuName", "armSkuName",
    "armRegionName", "meterName", "type",
)

EXCLUDED_SKU_MARKERS = ("Spot", "Low Priority")

# Only pay-as-you-go items are on-demand prices; Reservation and DevTestConsumption are not
ON_DEMAND_PRICE_TYPE = "Consumption"


class AzurePricingError(CatalogTransportError):
    """Raised when Azure pricing lookup fails."""
    pass


def odata_literal(value: str) -> str:
    """Quote a string for an OData filter; embedded quotes are doubled."""
    return "'" + value.replace("'", "''") + "'"


def normalize_item(item: Dict[str, Any], currency: str = "USD") -> Dict[str, Any]:
    """
    Convert one Retail Prices item into a catalog-entry document.

    Args:
        item: Item from the API's "Items" array
        currency: Currency used when the item carries no currencyCode

    Returns:
        {"product": {"attributes": ...}, "terms": {"OnDemand": ...}} document
    """
    sku_id = str(item.get("skuId") or item.get("armSkuName") or "unknown")
    meter_id = str(item.get("meterId") or sku_id)
    retail_price = item.get("retailPrice")
    return {
        "product": {
            "sku": sku_id,
            "attributes": {
                key: str(item[key]) for key in ITEM_ATTRIBUTES if item.get(key) is not None
            },
        },
        "terms": {
            "OnDemand": {
                sku_id: {
                    "priceDimensions": {
                        meter_id: {
                            "unit": str(item.get("unitOfMeasure", "")),
                            "pricePerUnit": {
                                item.get("currencyCode") or currency:
                                    "" if retail_price is None else str(retail_price),
                            },
                        },
                    },
                },
            },
        },
    }


def _is_excluded(item: Dict[str, Any]) -> bool:
    if item.get("type", ON_DEMAND_PRICE_TYPE) != ON_DEMAND_PRICE_TYPE:
        return True
    names = f"{item.get('skuName', '')} {item.get('meterName', '')}"
    return any(marker in names for marker in EXCLUDED_SKU_MARKERS)


class AzurePricingAdapter(CatalogAdapter):
    """Catalog adapter for the Azure Retail Prices API."""

    name = "Azure"
    provider = "azure"
    currency = "USD"

    service_field = "serviceName"
    region_field = "armRegionName"
    size_field = "armSkuName"

    SERVICE_CLASSES = (
        ("azurerm_linux_virtual_machine", "Virtual Machines"),
        ("azurerm_windows_virtual_machine", "Virtual Machines"),
        ("azurerm_virtual_machine", "Virtual Machines"),
        ("azurerm_mssql_database", "SQL Database"),
        ("azurerm_postgresql_flexible_server", "Azure Database for PostgreSQL"),
        ("azurerm_mysql_flexible_server", "Azure Database for MySQL"),
        ("azurerm_redis_cache", "Redis Cache"),
    )

    CLASS_DIMENSIONS = {
        service: (("priceType", ON_DEMAND_PRICE_TYPE),)
        for _, service in SERVICE_CLASSES
    }

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        api_url: Optional[str] = None,
        default_region: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        """
        Initialize Azure pricing adapter.

        Args:
            http_client: Shared AsyncClient; a short-lived client per request if None
            api_url: Retail Prices endpoint (config.AZURE_PRICING_API_URL if None)
            default_region: ARM region used when a resource declares none
            timeout: Request timeout in seconds
        """
        super().__init__()
        self.http_client = http_client
        self.api_url = api_url or config.AZURE_PRICING_API_URL
        self.default_region = default_region or config.AZURE_DEFAULT_REGION
        self.timeout = timeout if timeout is not None else config.PRICING_QUERY_TIMEOUT_SECONDS

    def relaxed_filters(self, service: str, size: str) -> List[PriceFilter]:
        """Service and size, keeping the price type so the relaxed tier stays on-demand."""
        filters = super().relaxed_filters(service, size)
        filters.extend(self.class_dimensions(service))
        return filters

    def build_filter(self, query: PriceQuery) -> str:
        return " and ".join(
            f"{price_filter.field} eq {odata_literal(price_filter.value)}"
            for price_filter in query.filters
        )

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self.http_client is not None:
            response = await self.http_client.get(url, params=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    async def initialize(self) -> None:
        """
        Probe the API with a single-item request.

        Raises:
            AdapterInitializationError: If the API is unreachable or answers with an error
        """
        try:
            await self._get(self.api_url, params={"$top": 1})
        except httpx.HTTPStatusError as error:
            raise AdapterInitializationError(
                f"Azure pricing API returned {error.response.status_code}"
            ) from error
        except httpx.RequestError as error:
            raise AdapterInitializationError(
                f"Failed to connect to Azure pricing API: {str(error)}"
            ) from error
        except ValueError as error:
            raise AdapterInitializationError(
                f"Azure pricing API returned malformed JSON: {str(error)}"
            ) from error

    async def query(self, query: PriceQuery) -> List[Dict[str, Any]]:
        """
        Fetch items matching the query's filters.

        Non-Consumption items and Spot or Low Priority meters are dropped and Linux items are ordered
        before Windows ones, so the first entries are plain on-demand prices.

        Returns:
            Up to query.limit normalized catalog entries

        Raises:
            AzurePricingError: If the API call fails or returns malformed JSON
        """
        items: List[Dict[str, Any]] = []
        url: Optional[str] = self.api_url
        params: Optional[Dict[str, Any]] = {"$filter": self.build_filter(query)}
        pages = 0

        try:
            while url and pages < MAX_PAGES and len(items) < query.limit:
                data = await self._get(url, params=params)
                pages += 1
                items.extend(item for item in data.get("Items", []) if not _is_excluded(item))
                # NextPageLink already carries the filter
                url = data.get("NextPageLink")
                params = None
        except httpx.HTTPStatusError as error:
            logger.error(f"Azure pricing API HTTP error: {error}")
            raise AzurePricingError(
                f"Failed to query Azure pricing: {error.response.status_code}"
            ) from error
        except httpx.RequestError as error:
            logger.error(f"Azure pricing API request error: {error}")
            raise AzurePricingError(
                f"Failed to connect to Azure pricing API: {str(error)}"
            ) from error
        except ValueError as error:
            logger.error(f"Error parsing Azure pricing response: {error}")
            raise AzurePricingError(
                f"Failed to parse Azure pricing response: {str(error)}"
            ) from error

        items.sort(key=lambda item: "windows" in str(item.get("productName", "")).lower())
        return [normalize_item(item, self.currency) for item in items[:query.limit]]
