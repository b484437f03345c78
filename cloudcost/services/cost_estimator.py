"""
Cost estimator service.
Converts IaC declarations into a priced cost report using provider pricing catalogs.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from pathlib import Path
import asyncio
import logging

from cloudcost.core.config import config
from cloudcost.domain.report_models import Report
from cloudcost.domain.resource_models import PricingDetails, Resource
from cloudcost.inference.attribute_inference import infer_attributes
from cloudcost.parsers.base import Declaration, Parser, ParserError, ParserRegistry
from cloudcost.pricing.base import CatalogAdapter
from cloudcost.pricing.calibration import CalibrationTable
from cloudcost.pricing.price_resolver import PriceResolution, PriceResolver
from cloudcost.pricing.registry import PricingAdapterRegistry
from cloudcost.utils.detector import IaCType, detect_iac_type


logger = logging.getLogger(__name__)


# Resource type prefix -> provider key; longest prefixes first
PROVIDER_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("azurerm_", "azure"),
    ("azure_", "azure"),
    ("google_", "gcp"),
    ("aws_", "aws"),
)


class CostEstimatorError(Exception):
    """Raised when cost estimation cannot start (unreadable or unsupported input)."""
    pass


def provider_from_type(resource_type: str) -> str:
    """
    Derive the provider key from a resource type's prefix.

    Known prefixes map to canonical keys; anything else uses the text
    before the first underscore (the whole type if there is none).
    """
    for prefix, provider in PROVIDER_PREFIXES:
        if resource_type.startswith(prefix):
            return provider
    return resource_type.split("_", 1)[0]


class CostEstimator:
    """Service for estimating costs of IaC declarations."""

    def __init__(
        self,
        adapters: Optional[PricingAdapterRegistry] = None,
        parsers: Optional[ParserRegistry] = None,
        calibration: Optional[CalibrationTable] = None,
        max_concurrency: Optional[int] = None,
        resolver_options: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize cost estimator.

        Args:
            adapters: Pricing adapters by provider (empty registry if None)
            parsers: IaC parsers used by estimate_path()
            calibration: Anomaly calibration table shared by all resolvers
            max_concurrency: Maximum resources priced at once
            resolver_options: Extra keyword arguments for every PriceResolver
                (retry delay, timeouts, cache TTL, ...)
        """
        self.adapters = adapters or PricingAdapterRegistry()
        self.parsers = parsers or ParserRegistry()
        self.calibration = calibration if calibration is not None else CalibrationTable()
        self.max_concurrency = max_concurrency or config.PRICING_MAX_CONCURRENCY
        self.resolver_options = dict(resolver_options or {})
        self._resolvers: Dict[str, PriceResolver] = {}

    def register_adapter(self, provider: str, adapter: CatalogAdapter) -> None:
        self.adapters.register(provider, adapter)
        self._resolvers.pop(provider, None)

    def register_parser(self, parser: Parser) -> None:
        self.parsers.register(parser)

    def resolver_for(self, provider: str) -> Optional[PriceResolver]:
        """Resolver for a provider, created on first use; None if no adapter is registered."""
        resolver = self._resolvers.get(provider)
        if resolver is not None:
            return resolver
        adapter = self.adapters.get(provider)
        if adapter is None:
            return None
        resolver = PriceResolver(adapter, calibration=self.calibration, **self.resolver_options)
        self._resolvers[provider] = resolver
        return resolver

    def build_resource(self, declaration: Declaration) -> Tuple[Resource, List[str]]:
        """
        Enrich one declaration into a Resource.

        Returns:
            Tuple of (resource, warnings)
        """
        warnings = []
        provider = provider_from_type(declaration.resource_type)
        inferred = infer_attributes(declaration.resource_type, declaration.attributes)

        resource = Resource(
            id=f"{declaration.resource_type}.{declaration.name}",
            name=declaration.name,
            resource_type=declaration.resource_type,
            provider=provider,
            region=inferred.region,
            size=inferred.size,
            quantity=inferred.quantity,
            tags=inferred.tags,
            properties=dict(declaration.attributes),
        )

        if not resource.size and self.adapters.classify(provider, resource.resource_type):
            warnings.append(f"Could not infer a size for {resource.id}; pricing uses region and class defaults only")
        return resource, warnings

    def build_resources(self, declarations: Iterable[Declaration]) -> Tuple[List[Resource], List[str]]:
        """
        Enrich declarations into Resources.

        Returns:
            Tuple of (resources, warnings)
        """
        resources = []
        warnings = []
        seen_ids = set()
        for declaration in declarations:
            resource, resource_warnings = self.build_resource(declaration)
            if resource.id in seen_ids:
                warnings.append(f"Duplicate resource id {resource.id}; both declarations are counted")
            seen_ids.add(resource.id)
            resources.append(resource)
            warnings.extend(resource_warnings)
        return resources, warnings

    async def price_resources(self, resources: List[Resource]) -> List[Optional[PriceResolution]]:
        """
        Price resources concurrently, at most max_concurrency at a time.

        Returns when every resource has been resolved. Resources of a
        provider without an adapter are marked skipped and return None.

        Returns:
            One entry per resource, in input order
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def price_one(resource: Resource) -> Optional[PriceResolution]:
            resolver = self.resolver_for(resource.provider)
            if resolver is None:
                resource.clear_prices()
                resource.pricing_details = PricingDetails(
                    currency=config.CURRENCY,
                    pricing_source=f"Skipped: no pricing adapter registered for provider '{resource.provider}'",
                )
                return None

            async with semaphore:
                try:
                    return await resolver.resolve(resource)
                except Exception as error:
                    logger.error(
                        "Unexpected error pricing %s: %s", resource.id, error, exc_info=True
                    )
                    resource.clear_prices()
                    resource.pricing_details = PricingDetails(
                        currency=config.CURRENCY,
                        pricing_source="Error: Unexpected error during pricing lookup",
                    )
                    return PriceResolution(
                        resource_id=resource.id,
                        priced=False,
                        error="Unexpected error during pricing lookup",
                    )

        return list(await asyncio.gather(*(price_one(resource) for resource in resources)))

    async def estimate(
        self,
        declarations: Iterable[Declaration],
        iac_format: Union[IaCType, str] = ""
    ) -> Report:
        """
        Estimate costs for a set of declarations.

        Pricing failures never abort the run; they leave the resource at zero
        and are listed in the report's errors.

        Args:
            declarations: Parsed IaC declarations
            iac_format: Source format recorded on the report

        Returns:
            Report with totals and breakdowns
        """
        resources, warnings = self.build_resources(declarations)
        logger.info("Estimating costs for %d resources", len(resources))

        resolutions = await self.price_resources(resources)

        report = Report(
            currency=config.CURRENCY,
            iac_format=iac_format.value if isinstance(iac_format, IaCType) else iac_format,
        )
        for warning in warnings:
            report.add_warning(warning)

        # Aggregate only after every resolution has completed
        skipped: Dict[str, int] = {}
        for resource, resolution in zip(resources, resolutions):
            report.add_resource(resource)
            if resolution is None:
                skipped[resource.provider] = skipped.get(resource.provider, 0) + 1
            elif not resolution.priced:
                report.add_error(f"{resource.id}: {resolution.error}")

        for provider in sorted(skipped):
            report.add_warning(
                f"No pricing adapter registered for provider '{provider}' "
                f"({skipped[provider]} resource(s) left unpriced)"
            )

        report.metadata["resource_count"] = str(len(resources))
        report.metadata["priced_count"] = str(sum(1 for resource in resources if resource.priced))
        report.metadata["providers"] = ",".join(self.adapters.providers())

        logger.info(
            "Estimate complete: %d resources, monthly total %.2f %s, %d errors",
            len(resources), report.total_monthly, report.currency, len(report.errors)
        )
        return report

    async def estimate_path(self, path: Union[str, Path]) -> Report:
        """
        Detect the IaC format of a path, parse it and estimate its costs.

        Raises:
            CostEstimatorError: If the path is missing, of unknown format,
                has no parser, or cannot be parsed
        """
        try:
            iac_type = detect_iac_type(path)
        except FileNotFoundError as error:
            raise CostEstimatorError(f"Failed to detect IaC type: {error}") from error

        if iac_type is IaCType.UNKNOWN:
            raise CostEstimatorError(f"Could not determine IaC type for path: {path}")
        logger.info("Detected IaC type: %s", iac_type.value)

        parser = self.parsers.find(path)
        if parser is None:
            raise CostEstimatorError(f"No parser available for IaC type: {iac_type.value}")
        logger.info("Using parser: %s", parser.get_name())

        try:
            declarations = parser.parse(path)
        except ParserError as error:
            raise CostEstimatorError(f"Failed to parse IaC files: {error}") from error

        report = await self.estimate(declarations, iac_format=iac_type)
        report.metadata["source"] = str(path)
        report.metadata["parser"] = parser.get_name()
        return report
