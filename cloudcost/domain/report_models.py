"""
Domain models for the aggregated cost report.
Totals and breakdowns are quantity-weighted sums over the resource list.
"""
from typing import List, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
import uuid

from cloudcost.core.config import config
from cloudcost.domain.resource_models import Resource


UNKNOWN_REGION = "unknown"


def _money(value: float) -> Decimal:
    # repr() gives the shortest round-tripping form, so sums stay exact
    return Decimal(repr(float(value)))


def _as_floats(breakdown: Dict[str, Decimal]) -> Dict[str, float]:
    return {key: float(breakdown[key]) for key in sorted(breakdown)}


@dataclass
class Report:
    """
    Represents a complete cost estimation report.

    Accumulators are kept as Decimal so that add_resource() in any order
    and summarize() produce identical totals.
    """
    resources: List[Resource] = field(default_factory=list)
    currency: str = field(default_factory=lambda: config.CURRENCY)
    iac_format: str = ""
    report_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    _total_hourly: Decimal = field(default=Decimal(0), init=False, repr=False)
    _total_monthly: Decimal = field(default=Decimal(0), init=False, repr=False)
    _total_yearly: Decimal = field(default=Decimal(0), init=False, repr=False)
    _by_provider: Dict[str, Decimal] = field(default_factory=dict, init=False, repr=False)
    _by_resource_type: Dict[str, Decimal] = field(default_factory=dict, init=False, repr=False)
    _by_region: Dict[str, Decimal] = field(default_factory=dict, init=False, repr=False)
    _by_tag: Dict[str, Dict[str, Decimal]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.resources:
            self.summarize()

    @property
    def total_hourly(self) -> float:
        return float(self._total_hourly)

    @property
    def total_monthly(self) -> float:
        return float(self._total_monthly)

    @property
    def total_yearly(self) -> float:
        return float(self._total_yearly)

    @property
    def by_provider(self) -> Dict[str, float]:
        return _as_floats(self._by_provider)

    @property
    def by_resource_type(self) -> Dict[str, float]:
        return _as_floats(self._by_resource_type)

    @property
    def by_region(self) -> Dict[str, float]:
        return _as_floats(self._by_region)

    @property
    def by_tag(self) -> Dict[str, Dict[str, float]]:
        return {key: _as_floats(self._by_tag[key]) for key in sorted(self._by_tag)}

    def add_resource(self, resource: Resource) -> None:
        """Append a resource and add its quantity-weighted cost to totals and breakdowns."""
        self.resources.append(resource)
        self._accumulate(resource)

    def summarize(self) -> None:
        """
        Recompute all totals and breakdowns from the current resource list.

        Prior accumulator state is discarded, so calling this after the
        resource list was filtered or edited leaves the report consistent.
        """
        self._reset()
        for resource in self.resources:
            self._accumulate(resource)

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def _reset(self) -> None:
        self._total_hourly = Decimal(0)
        self._total_monthly = Decimal(0)
        self._total_yearly = Decimal(0)
        self._by_provider = {}
        self._by_resource_type = {}
        self._by_region = {}
        self._by_tag = {}

    def _accumulate(self, resource: Resource) -> None:
        quantity = Decimal(resource.quantity)
        monthly = _money(resource.monthly_price) * quantity

        self._total_hourly += _money(resource.hourly_price) * quantity
        self._total_monthly += monthly
        self._total_yearly += _money(resource.yearly_price) * quantity

        provider = resource.provider
        self._by_provider[provider] = self._by_provider.get(provider, Decimal(0)) + monthly
        resource_type = resource.resource_type
        self._by_resource_type[resource_type] = self._by_resource_type.get(resource_type, Decimal(0)) + monthly
        region = resource.region or UNKNOWN_REGION
        self._by_region[region] = self._by_region.get(region, Decimal(0)) + monthly

        for key, value in resource.tags.items():
            values = self._by_tag.setdefault(key, {})
            values[value] = values.get(value, Decimal(0)) + monthly

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        def rounded(breakdown: Dict[str, float]) -> Dict[str, float]:
            return {key: round(value, 2) for key, value in breakdown.items()}

        return {
            "report_id": self.report_id,
            "timestamp": self.timestamp.isoformat(),
            "currency": self.currency,
            "iac_format": self.iac_format,
            "total_hourly": round(self.total_hourly, 6),
            "total_monthly": round(self.total_monthly, 2),
            "total_yearly": round(self.total_yearly, 2),
            "by_provider": rounded(self.by_provider),
            "by_resource_type": rounded(self.by_resource_type),
            "by_region": rounded(self.by_region),
            "by_tag": {key: rounded(values) for key, values in self.by_tag.items()},
            "resources": [resource.to_dict() for resource in self.resources],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "metadata": dict(self.metadata),
        }
