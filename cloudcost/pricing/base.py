"""
Pricing catalog adapter contract.

An adapter wraps one provider's pricing catalog behind two operations,
initialize() (auth/handshake) and query(), plus the provider-specific
knowledge the resolver needs to build filters: which resource types map
to which service class, and which filter fields carry service, region
and size.

Lifecycle per adapter instance:
    UNINITIALIZED -> READY   on a successful handshake
    UNINITIALIZED -> FAILED  on a failed handshake (terminal, error cached)
Query failures never move an adapter out of READY.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
import asyncio
import logging


logger = logging.getLogger(__name__)


class PricingError(Exception):
    """Base class for pricing catalog failures."""
    pass


class CatalogTransportError(PricingError):
    """Raised when a catalog query fails at the network/API level."""
    pass


class AdapterInitializationError(PricingError):
    """Raised when an adapter cannot authenticate or reach its catalog."""
    pass


class UnsupportedResourceTypeError(PricingError):
    """Raised when a resource type maps to no catalog service class."""
    pass


class CircuitBreakerError(CatalogTransportError):
    """Raised when a query is refused because the catalog's circuit is open."""
    pass


class FilterType(str, Enum):
    """Match types understood by pricing catalogs."""
    TERM_MATCH = "TERM_MATCH"


class AdapterState(Enum):
    """Adapter lifecycle states."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class PriceFilter:
    """One (field, match type, value) filter in a catalog query."""
    field: str
    value: str
    match_type: FilterType = FilterType.TERM_MATCH


@dataclass(frozen=True)
class PriceQuery:
    """
    A catalog request: service class, ordered filters and a result limit.

    The filter list defines the tier; "exact" carries every known dimension,
    "relaxed" only service and size.
    """
    service: str
    filters: Tuple[PriceFilter, ...]
    limit: int
    tier: str = "exact"

    @property
    def cache_key(self) -> Tuple[Any, ...]:
        return (
            self.service,
            tuple((f.field, f.match_type.value, f.value) for f in self.filters),
            self.limit,
        )

    def filter_value(self, field: str) -> Optional[str]:
        for price_filter in self.filters:
            if price_filter.field == field:
                return price_filter.value
        return None


class CatalogAdapter(ABC):
    """
    Base class for provider pricing catalog adapters.

    Subclasses declare their service classification and filter vocabulary
    as class attributes and implement initialize() and query().
    """

    name: str = ""  # Human-readable catalog name, e.g. "AWS"
    provider: str = ""  # Provider key, e.g. "aws"
    currency: str = "USD"
    default_region: str = ""

    # Filter field names in the catalog's vocabulary
    service_field: str = "serviceCode"
    region_field: str = "regionCode"
    size_field: str = "instanceType"

    # (resource type prefix, service class); first match wins
    SERVICE_CLASSES: Tuple[Tuple[str, str], ...] = ()

    # service class -> mandatory (field, value) dimensions for exact queries
    CLASS_DIMENSIONS: Mapping[str, Tuple[Tuple[str, str], ...]] = {}

    def __init__(self):
        self.state = AdapterState.UNINITIALIZED
        self.initialization_error: Optional[AdapterInitializationError] = None
        self._init_lock = asyncio.Lock()

    def get_name(self) -> str:
        return self.name

    def classify(self, resource_type: str) -> Optional[str]:
        """Map a resource type to a catalog service class, or None if unsupported."""
        for prefix, service in self.SERVICE_CLASSES:
            if resource_type.startswith(prefix):
                return service
        return None

    def require_service_class(self, resource_type: str) -> str:
        """
        Like classify(), but raises for unsupported types.

        Raises:
            UnsupportedResourceTypeError: If no service class matches
        """
        service = self.classify(resource_type)
        if service is None:
            raise UnsupportedResourceTypeError(f"Unsupported resource type: {resource_type}")
        return service

    def class_dimensions(self, service: str) -> List[PriceFilter]:
        return [
            PriceFilter(field=field, value=value)
            for field, value in self.CLASS_DIMENSIONS.get(service, ())
        ]

    def exact_filters(self, service: str, region: str, size: str) -> List[PriceFilter]:
        """Service, region and size (when known), then the class dimensions."""
        filters = [PriceFilter(self.service_field, service)]
        if region:
            filters.append(PriceFilter(self.region_field, region))
        if size:
            filters.append(PriceFilter(self.size_field, size))
        filters.extend(self.class_dimensions(service))
        return filters

    def relaxed_filters(self, service: str, size: str) -> List[PriceFilter]:
        """Service and size only."""
        filters = [PriceFilter(self.service_field, service)]
        if size:
            filters.append(PriceFilter(self.size_field, size))
        return filters

    async def ensure_initialized(self) -> None:
        """
        Run the handshake at most once per adapter instance.

        Concurrent first callers wait on the same lock; later callers see
        READY or the cached FAILED error without touching the network.
        If the handshake is cancelled the adapter stays UNINITIALIZED.

        Raises:
            AdapterInitializationError: If the handshake failed (now or earlier)
        """
        if self.state is AdapterState.READY:
            return
        if self.state is AdapterState.FAILED:
            raise self.initialization_error

        async with self._init_lock:
            if self.state is AdapterState.READY:
                return
            if self.state is AdapterState.FAILED:
                raise self.initialization_error

            try:
                await self.initialize()
            except AdapterInitializationError as error:
                self._mark_failed(error)
                raise
            except PricingError as error:
                failure = AdapterInitializationError(str(error))
                self._mark_failed(failure)
                raise failure from error

            self.state = AdapterState.READY
            logger.info("%s pricing adapter initialized", self.name)

    def _mark_failed(self, error: AdapterInitializationError) -> None:
        self.state = AdapterState.FAILED
        self.initialization_error = error
        logger.error("%s pricing adapter initialization failed: %s", self.name, error)

    @abstractmethod
    async def initialize(self) -> None:
        """
        Authenticate / handshake with the catalog.

        Raises:
            AdapterInitializationError: If the catalog is unreachable or credentials are missing
        """

    @abstractmethod
    async def query(self, query: PriceQuery) -> List[Dict[str, Any]]:
        """
        Run one catalog query.

        Returns:
            Ordered list of catalog entry documents (terms -> OnDemand -> ...)

        Raises:
            CatalogTransportError: If the query failed at the network/API level
        """
