"""
Registry of pricing catalog adapters keyed by provider name.
"""
from typing import Dict, Iterable, List, Optional
import logging

from cloudcost.pricing.base import CatalogAdapter


logger = logging.getLogger(__name__)


class PricingAdapterRegistry:
    """Maps provider keys ("aws", "azure", ...) to catalog adapters."""

    def __init__(self):
        self._adapters: Dict[str, CatalogAdapter] = {}

    def register(self, provider: str, adapter: CatalogAdapter) -> None:
        if provider in self._adapters:
            logger.info("Replacing pricing adapter for provider '%s'", provider)
        self._adapters[provider] = adapter

    def get(self, provider: str) -> Optional[CatalogAdapter]:
        return self._adapters.get(provider)

    def providers(self) -> List[str]:
        return sorted(self._adapters)

    def classify(self, provider: str, resource_type: str) -> Optional[str]:
        """Service class for a resource type, or None if no adapter handles it."""
        adapter = self._adapters.get(provider)
        if adapter is None:
            return None
        return adapter.classify(resource_type)

    def __contains__(self, provider: str) -> bool:
        return provider in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def build_default_adapters(providers: Optional[Iterable[str]] = None) -> PricingAdapterRegistry:
    """
    Build a registry with the supplied catalog adapters.

    Adapters are cheap to construct; credentials and network are only
    touched on their first ensure_initialized().

    Args:
        providers: Subset of provider keys to enable (all known if None)

    Raises:
        ValueError: If an unknown provider key is requested
    """
    # Imported here so the registry itself does not pull in boto3/httpx
    from cloudcost.pricing.aws_pricing_client import AWSPricingAdapter
    from cloudcost.pricing.azure_pricing_client import AzurePricingAdapter

    factories = {
        "aws": AWSPricingAdapter,
        "azure": AzurePricingAdapter,
    }
    selected = list(providers) if providers is not None else list(factories)

    registry = PricingAdapterRegistry()
    for provider in selected:
        factory = factories.get(provider)
        if factory is None:
            raise ValueError(
                f"Unknown pricing provider '{provider}' (supported: {', '.join(sorted(factories))})"
            )
        registry.register(provider, factory())
    return registry
