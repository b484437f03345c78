"""
Domain models for priced resources.
A Resource is one cost-bearing unit taken from an IaC declaration.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime

from cloudcost.core.config import config


@dataclass
class PriceComponent:
    """One named component of a resource's price."""
    name: str  # e.g., "On-Demand Hrs"
    unit_price: float
    units: float
    total: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "unit_price": self.unit_price,
            "units": self.units,
            "total": self.total,
        }


@dataclass
class PricingDetails:
    """
    Diagnostic record attached to a resource after price resolution.

    pricing_source is either a catalog name, an estimation label,
    "Skipped: ..." when no adapter handled the provider, or "Error: ..."
    when resolution failed.
    """
    currency: str
    pricing_source: str
    last_updated: datetime = field(default_factory=datetime.now)
    price_components: List[PriceComponent] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.pricing_source.startswith("Error: ")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "currency": self.currency,
            "pricing_source": self.pricing_source,
            "last_updated": self.last_updated.isoformat(),
            "price_components": [component.to_dict() for component in self.price_components],
            "metadata": dict(sorted(self.metadata.items())),
        }


@dataclass
class Resource:
    """
    Represents a cost-bearing resource from an IaC declaration.

    Price fields are either all zero (pricing unresolved) or all derived
    from the same hourly price via set_hourly_price().
    """
    id: str
    name: str
    resource_type: str  # e.g., "aws_instance", "azurerm_linux_virtual_machine"
    provider: str  # "aws", "azure", "gcp", ...
    region: str = ""
    size: str = ""  # e.g., "t3.micro", "Standard_B2s"
    quantity: int = 1
    tags: Dict[str, str] = field(default_factory=dict)
    properties: Dict[str, Any] = field(default_factory=dict)
    hourly_price: float = 0.0
    monthly_price: float = 0.0
    yearly_price: float = 0.0
    pricing_details: Optional[PricingDetails] = None

    def __post_init__(self) -> None:
        self.quantity = clamp_quantity(self.quantity)

    def set_hourly_price(self, hourly_price: float) -> None:
        """Set the hourly price and derive monthly/yearly prices from it."""
        self.hourly_price = hourly_price
        self.monthly_price = hourly_price * config.HOURS_PER_MONTH
        self.yearly_price = hourly_price * config.HOURS_PER_YEAR

    def clear_prices(self) -> None:
        self.hourly_price = 0.0
        self.monthly_price = 0.0
        self.yearly_price = 0.0

    @property
    def priced(self) -> bool:
        """True when a catalog price (or an estimate) was applied."""
        if self.pricing_details is None:
            return False
        return not self.pricing_details.pricing_source.startswith(("Error: ", "Skipped: "))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "resource_type": self.resource_type,
            "provider": self.provider,
            "region": self.region,
            "size": self.size,
            "quantity": self.quantity,
            "tags": dict(sorted(self.tags.items())),
            "hourly_price": round(self.hourly_price, 6),
            "monthly_price": round(self.monthly_price, 2),
            "yearly_price": round(self.yearly_price, 2),
            "pricing_details": self.pricing_details.to_dict() if self.pricing_details else None,
        }


def clamp_quantity(quantity: Any) -> int:
    """
    Coerce a quantity into an integer >= 1.

    Non-numeric, zero and negative values all become 1.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)):
        return 1
    quantity = int(quantity)
    return quantity if quantity >= 1 else 1
