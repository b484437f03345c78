"""
Shared pytest fixtures for cloudcost tests.
"""

import sys
import asyncio
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest
from typing import Any, Callable, Dict, List, Optional

from cloudcost.pricing.base import CatalogAdapter, PriceQuery


class StubCatalogAdapter(CatalogAdapter):
    """In-memory catalog for the fictional "vendorA" provider."""

    name = "VendorA"
    provider = "vendorA"
    currency = "USD"
    default_region = "us-east-1"

    SERVICE_CLASSES = (
        ("vendorA_instance", "Compute"),
        ("vendorA_database", "Database"),
        ("vendorA_cache", "Cache"),
    )

    CLASS_DIMENSIONS = {
        "Compute": (("operatingSystem", "Linux"),),
    }

    def __init__(
        self,
        handler: Optional[Callable[[PriceQuery], Any]] = None,
        init_error: Optional[Exception] = None,
        init_delay: float = 0.0,
        query_delay: float = 0.0
    ):
        super().__init__()
        self.handler = handler or (lambda query: [])
        self.init_error = init_error
        self.init_delay = init_delay
        self.query_delay = query_delay
        self.initialize_calls = 0
        self.queries: List[PriceQuery] = []

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.init_delay:
            await asyncio.sleep(self.init_delay)
        if self.init_error is not None:
            raise self.init_error

    async def query(self, query: PriceQuery) -> List[Dict[str, Any]]:
        self.queries.append(query)
        if self.query_delay:
            await asyncio.sleep(self.query_delay)
        result = self.handler(query)
        if isinstance(result, Exception):
            raise result
        return result


def build_entry(price: Any, unit: str = "Hrs", currency: str = "USD", attributes: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Catalog entry document in the AWS Price List shape."""
    return {
        "product": {"attributes": attributes or {"instanceType": "t2.micro"}},
        "terms": {
            "OnDemand": {
                "TERM1": {
                    "priceDimensions": {
                        "DIM1": {"unit": unit, "pricePerUnit": {currency: str(price)}}
                    }
                }
            }
        },
    }


@pytest.fixture
def catalog_entry():
    """Factory for catalog entry documents."""
    return build_entry


@pytest.fixture
def make_adapter():
    """Factory for stub catalog adapters."""
    def factory(handler=None, **kwargs) -> StubCatalogAdapter:
        return StubCatalogAdapter(handler=handler, **kwargs)
    return factory


@pytest.fixture
def resolver_options():
    """Resolver settings that keep retries instant."""
    return {
        "max_attempts": 3,
        "retry_delay": 0.0,
        "query_timeout": 1.0,
        "result_limit": 10,
        "cache_ttl": 3600,
    }
