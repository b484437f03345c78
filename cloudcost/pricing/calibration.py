"""
Calibration table for catalog price anomalies.

Some SKUs are reported by the catalog with a spurious zero on-demand price
for their smallest size. A rule names the affected (service, size), the
sibling size to look up instead, and the factor applied to the sibling's
price to synthesize an estimate.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple


@dataclass(frozen=True)
class CalibrationRule:
    """Substitute-price rule for one known-bad SKU."""
    service: str  # catalog service class, e.g. "AmazonEC2"
    size: str  # SKU reported with a zero price, e.g. "t2.nano"
    reference_size: str  # sibling SKU to price instead, e.g. "t2.micro"
    factor: float  # multiplier applied to the sibling's hourly price
    note: str = ""

    @property
    def family(self) -> str:
        return self.size.split(".")[0]

    def describe(self) -> str:
        """Pricing source label for a price synthesized by this rule."""
        label = (
            f"Estimated: {self.factor:g} x {self.reference_size} on-demand price "
            f"(catalog reported zero for {self.size})"
        )
        if self.note:
            label = f"{label}; {self.note}"
        return label


# The t2.nano factor is a placeholder calibration value, not a verified
# pricing fact; it does not generalize to other families.
DEFAULT_CALIBRATION_RULES: Tuple[CalibrationRule, ...] = (
    CalibrationRule(
        service="AmazonEC2",
        size="t2.nano",
        reference_size="t2.micro",
        factor=0.5,
        note="roughly half the vCPU/memory of t2.micro",
    ),
)


class CalibrationTable:
    """Lookup of calibration rules keyed by (service, size)."""

    def __init__(self, rules: Iterable[CalibrationRule] = DEFAULT_CALIBRATION_RULES):
        self._rules: Dict[Tuple[str, str], CalibrationRule] = {}
        for rule in rules:
            self.add(rule)

    def add(self, rule: CalibrationRule) -> None:
        if rule.factor <= 0:
            raise ValueError(f"Calibration factor must be positive (got: {rule.factor})")
        self._rules[(rule.service, rule.size)] = rule

    def lookup(self, service: str, size: str) -> Optional[CalibrationRule]:
        return self._rules.get((service, size))

    def __len__(self) -> int:
        return len(self._rules)
