"""
Price resolution engine.

Resolves one enriched Resource into an hourly price against a catalog
adapter, using a tiered protocol:

1. classify the resource type into a catalog service class
2. exact query (service, region, size, class dimensions), with retries
3. scan the first few entries for an on-demand price
4. relaxed query (service, size) when the exact tier found nothing
5. anomaly correction for SKUs known to report a zero price

Every failure is local to the resource: prices are zeroed and the cause
is written to the resource's pricing details. Nothing here raises for a
pricing problem.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import asyncio
import logging
import time

from cloudcost.core.config import config
from cloudcost.domain.resource_models import PriceComponent, PricingDetails, Resource
from cloudcost.pricing.base import (
    AdapterInitializationError,
    CatalogAdapter,
    CatalogTransportError,
    CircuitBreakerError,
    PriceQuery,
    UnsupportedResourceTypeError,
)
from cloudcost.pricing.calibration import CalibrationTable
from cloudcost.resilience.circuit_breaker import CircuitBreaker


logger = logging.getLogger(__name__)


SCAN_LIMIT = 5  # Catalog entries inspected per query

TIER_EXACT = "exact"
TIER_RELAXED = "relaxed"
TIER_ESTIMATED = "estimated"


@dataclass
class ExtractedPrice:
    """On-demand price read from one catalog entry."""
    amount: float
    unit: str
    currency: str
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class ScanResult:
    """Outcome of scanning a query's entries; found and positive are tracked separately."""
    price: Optional[ExtractedPrice] = None
    positive: bool = False
    entry_count: int = 0

    @property
    def found(self) -> bool:
        return self.price is not None


@dataclass
class PriceResolution:
    """Per-resource outcome reported back to the estimator."""
    resource_id: str
    priced: bool
    tier: Optional[str] = None
    error: Optional[str] = None


def _first_value(mapping: Any) -> Any:
    if not isinstance(mapping, Mapping) or not mapping:
        return None
    return next(iter(mapping.values()))


def extract_on_demand_price(entry: Any, currency: str = "USD") -> Optional[ExtractedPrice]:
    """
    Read the on-demand price from a catalog entry.

    Navigates entry -> terms -> OnDemand -> (first term) -> priceDimensions
    -> (first dimension) -> pricePerUnit -> currency.

    Returns:
        ExtractedPrice, or None if the entry is missing any of those fields
        or the amount does not parse as a decimal
    """
    if not isinstance(entry, Mapping):
        return None
    terms = entry.get("terms")
    if not isinstance(terms, Mapping):
        return None
    term = _first_value(terms.get("OnDemand"))
    if not isinstance(term, Mapping):
        return None
    dimension = _first_value(term.get("priceDimensions"))
    if not isinstance(dimension, Mapping):
        return None
    price_per_unit = dimension.get("pricePerUnit")
    if not isinstance(price_per_unit, Mapping):
        return None
    raw_amount = price_per_unit.get(currency)
    if raw_amount is None:
        return None

    try:
        amount = Decimal(str(raw_amount).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None

    attributes: Dict[str, str] = {}
    product = entry.get("product")
    if isinstance(product, Mapping) and isinstance(product.get("attributes"), Mapping):
        attributes = {
            key: value
            for key, value in product["attributes"].items()
            if isinstance(value, str)
        }

    return ExtractedPrice(
        amount=float(amount),
        unit=str(dimension.get("unit", "")),
        currency=currency,
        attributes=attributes,
    )


def scan_entries(
    entries: List[Any],
    currency: str = "USD",
    limit: int = SCAN_LIMIT
) -> ScanResult:
    """
    Pick a price from the first `limit` entries.

    The first strictly positive price wins; if none is positive, the first
    parseable price (zero) is returned with positive=False.
    """
    result = ScanResult(entry_count=len(entries))
    for entry in entries[:limit]:
        extracted = extract_on_demand_price(entry, currency)
        if extracted is None:
            continue
        if extracted.amount > 0:
            result.price = extracted
            result.positive = True
            return result
        if result.price is None:
            result.price = extracted
    return result


class PriceResolver:
    """Resolves prices for resources of one provider through one catalog adapter."""

    def __init__(
        self,
        adapter: CatalogAdapter,
        calibration: Optional[CalibrationTable] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        query_timeout: Optional[float] = None,
        result_limit: Optional[int] = None,
        cache_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize price resolver.

        Args:
            adapter: Catalog adapter shared by every resource of the provider
            calibration: Anomaly calibration rules (default table if None)
            circuit_breaker: Breaker guarding catalog queries (one per resolver if None)
            max_attempts: Attempts per query (config.PRICING_MAX_ATTEMPTS if None)
            retry_delay: Linear backoff unit in seconds
            query_timeout: Per-attempt timeout in seconds
            result_limit: Result limit passed to the catalog
            cache_ttl: Lifetime of cached query results in seconds
            clock: Monotonic time source for the cache
        """
        self.adapter = adapter
        self.calibration = calibration if calibration is not None else CalibrationTable()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(f"{adapter.provider}_pricing")
        self.max_attempts = max_attempts if max_attempts is not None else config.PRICING_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else config.PRICING_RETRY_DELAY_SECONDS
        self.query_timeout = query_timeout if query_timeout is not None else config.PRICING_QUERY_TIMEOUT_SECONDS
        self.result_limit = result_limit if result_limit is not None else config.PRICING_RESULT_LIMIT
        self.cache_ttl = cache_ttl if cache_ttl is not None else config.PRICING_CACHE_TTL_SECONDS
        self._clock = clock

        # In-memory cache: PriceQuery.cache_key -> (entries, timestamp)
        self._cache: Dict[Tuple[Any, ...], Tuple[List[Dict[str, Any]], float]] = {}

    def build_exact_query(self, service: str, region: str, size: str) -> PriceQuery:
        filters = self.adapter.exact_filters(service, region, size)
        return PriceQuery(service=service, filters=tuple(filters), limit=self.result_limit, tier=TIER_EXACT)

    def build_relaxed_query(self, service: str, size: str) -> PriceQuery:
        filters = self.adapter.relaxed_filters(service, size)
        return PriceQuery(service=service, filters=tuple(filters), limit=self.result_limit, tier=TIER_RELAXED)

    async def resolve(self, resource: Resource) -> PriceResolution:
        """
        Price one resource in place.

        Returns:
            PriceResolution describing which tier priced it, or why it failed
        """
        adapter = self.adapter
        try:
            await adapter.ensure_initialized()
        except AdapterInitializationError as error:
            return self._fail(resource, f"{adapter.name} pricing data unavailable: {error}")

        try:
            service = adapter.require_service_class(resource.resource_type)
        except UnsupportedResourceTypeError as error:
            return self._fail(resource, str(error))

        region = resource.region or adapter.default_region
        exact_query = self.build_exact_query(service, region, resource.size)
        try:
            scan = await self._lookup(exact_query)
        except CatalogTransportError as error:
            return self._fail(resource, str(error))

        tier = TIER_EXACT
        if not scan.found and len(exact_query.filters) > 2:
            logger.info(
                "No %s price for %s with exact filters, retrying with relaxed filters",
                adapter.name, resource.id
            )
            relaxed_query = self.build_relaxed_query(service, resource.size)
            try:
                scan = await self._lookup(relaxed_query)
            except CatalogTransportError as error:
                return self._fail(resource, str(error))
            tier = TIER_RELAXED

        if not scan.found:
            if scan.entry_count:
                return self._fail(resource, "No valid on-demand price in pricing data")
            return self._fail(resource, "No pricing data found")

        hourly_price = scan.price.amount
        source = f"{adapter.name} Pricing API"
        if tier == TIER_RELAXED:
            source = f"{source} (relaxed filters)"

        if not scan.positive:
            corrected = await self._correct_anomaly(service, region, resource.size)
            if corrected is not None:
                hourly_price, source = corrected
                tier = TIER_ESTIMATED

        self._apply_price(resource, scan.price, hourly_price, source)
        return PriceResolution(resource_id=resource.id, priced=True, tier=tier)

    async def query_with_retry(self, query: PriceQuery) -> List[Dict[str, Any]]:
        """
        Run a catalog query with bounded, linearly backed-off retries.

        Each attempt carries its own timeout. Successful results are cached.

        Raises:
            CatalogTransportError: If every attempt failed
            CircuitBreakerError: If the circuit for this catalog is open
        """
        cached = self._get_cached(query)
        if cached is not None:
            logger.debug("Pricing cache hit for %s (%s tier)", query.service, query.tier)
            return cached

        adapter_name = self.adapter.name
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            if not self.circuit_breaker.allow_request():
                raise CircuitBreakerError(
                    f"{adapter_name} pricing service temporarily unavailable (circuit breaker open)"
                )

            try:
                entries = await asyncio.wait_for(self.adapter.query(query), timeout=self.query_timeout)
            except asyncio.TimeoutError:
                last_error = CatalogTransportError(f"query timed out after {self.query_timeout:g}s")
            except CatalogTransportError as error:
                last_error = error
            else:
                self.circuit_breaker.record_success()
                self._cache_entries(query, entries)
                return entries

            self.circuit_breaker.record_failure()
            if attempt < self.max_attempts:
                delay = attempt * self.retry_delay
                logger.warning(
                    "%s pricing query failed (attempt %d/%d): %s; retrying in %.1fs",
                    adapter_name, attempt, self.max_attempts, last_error, delay
                )
                await asyncio.sleep(delay)

        raise CatalogTransportError(
            f"Failed to get pricing data after {self.max_attempts} attempts: {last_error}"
        ) from last_error

    async def _lookup(self, query: PriceQuery) -> ScanResult:
        logger.debug(
            "Querying %s %s (%s tier): %s",
            self.adapter.name, query.service, query.tier,
            ", ".join(f"{f.field}={f.value}" for f in query.filters)
        )
        entries = await self.query_with_retry(query)
        return scan_entries(entries, self.adapter.currency)

    async def _correct_anomaly(
        self,
        service: str,
        region: str,
        size: str
    ) -> Optional[Tuple[float, str]]:
        """
        Synthesize a price for a SKU known to report zero.

        Returns:
            (hourly_price, pricing_source) or None when no rule applies or the
            sibling lookup did not produce a positive price
        """
        rule = self.calibration.lookup(service, size)
        if rule is None:
            return None

        sibling_query = self.build_exact_query(service, region, rule.reference_size)
        try:
            scan = await self._lookup(sibling_query)
        except CatalogTransportError as error:
            logger.warning("Sibling lookup for %s failed, keeping zero price: %s", size, error)
            return None

        if not scan.positive:
            logger.warning("Sibling %s has no positive price, keeping zero price for %s", rule.reference_size, size)
            return None

        return scan.price.amount * rule.factor, rule.describe()

    def _apply_price(
        self,
        resource: Resource,
        extracted: ExtractedPrice,
        hourly_price: float,
        source: str
    ) -> None:
        resource.set_hourly_price(hourly_price)
        components = []
        if extracted.unit:
            components.append(PriceComponent(
                name=f"On-Demand {extracted.unit}",
                unit_price=hourly_price,
                units=1,
                total=hourly_price,
            ))
        resource.pricing_details = PricingDetails(
            currency=extracted.currency,
            pricing_source=source,
            price_components=components,
            metadata=dict(extracted.attributes),
        )

    def _fail(self, resource: Resource, message: str) -> PriceResolution:
        resource.clear_prices()
        resource.pricing_details = PricingDetails(
            currency=self.adapter.currency,
            pricing_source=f"Error: {message}",
        )
        logger.warning("Failed to price %s (%s): %s", resource.id, resource.resource_type, message)
        return PriceResolution(resource_id=resource.id, priced=False, error=message)

    def _get_cached(self, query: PriceQuery) -> Optional[List[Dict[str, Any]]]:
        cached = self._cache.get(query.cache_key)
        if cached is None:
            return None
        entries, timestamp = cached
        if self._clock() - timestamp < self.cache_ttl:
            return entries
        del self._cache[query.cache_key]
        return None

    def _cache_entries(self, query: PriceQuery, entries: List[Dict[str, Any]]) -> None:
        if self.cache_ttl > 0:
            self._cache[query.cache_key] = (entries, self._clock())
