"""
Attribute inference for schema-less resource declarations.

Maps an open-ended attribute name/value set onto the cost-relevant fields
(size, region, quantity, tags) using name-pattern priorities and
value-shape heuristics. Every function here is pure: no I/O, no state.
When no signal exists the result degrades to a default ("" / 1 / {}).
"""
from typing import Any, Dict, List, Mapping, Tuple
from dataclasses import dataclass, field


# (name pattern, priority), highest priority first.
# A pattern matches an attribute whose name equals it or ends with it.
SIZE_FIELD_PATTERNS: List[Tuple[str, int]] = [
    ("instance_type", 100),
    ("_type", 90),
    ("machine_type", 85),
    ("size", 80),
    ("instance_class", 75),
    ("_class", 70),
    ("_tier", 65),
    ("_size", 60),
    ("node_type", 55),
    ("bundle_id", 50),
    ("sku_name", 45),
    ("flavor", 40),
]

# Priorities for values that only look like a SKU
SHAPE_PRIORITY_WITH_NAME_HINT = 75
SHAPE_PRIORITY = 30
SIZE_NAME_KEYWORDS = ("instance", "type", "size", "class")
SIZE_WORDS = ("nano", "micro", "small", "medium", "large", "xlarge", "2xlarge")

REGION_FIELD_NAMES = ("region", "location", "zone", "availability_zone")
REGION_NAME_KEYWORDS = ("region", "location", "zone")

# Short region codes without any hyphen/digit structure
KNOWN_SHORT_REGIONS = (
    "eastus", "eastus2", "westus", "westus2", "westus3", "centralus",
    "northcentralus", "southcentralus", "northeurope", "westeurope",
    "uksouth", "ukwest", "francecentral", "germanywestcentral",
    "eastasia", "southeastasia", "japaneast", "japanwest",
    "australiaeast", "australiasoutheast", "canadacentral", "brazilsouth",
)


@dataclass(frozen=True)
class AttributeCandidate:
    """A candidate size value found during inference for one resource."""
    value: str
    source: str  # attribute name the value was read from
    priority: int

    def sort_key(self) -> Tuple[int, str, str]:
        return (-self.priority, self.source, self.value)


@dataclass
class InferredAttributes:
    """Cost-relevant fields inferred from one declaration."""
    size: str = ""
    region: str = ""
    quantity: int = 1
    tags: Dict[str, str] = field(default_factory=dict)


def _string_value(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _has_letter_and_digit(text: str) -> bool:
    return any(char.isalpha() for char in text) and any(char.isdigit() for char in text)


def looks_like_instance_type(value: str) -> bool:
    """
    Check whether a string resembles a cloud SKU / instance-class name.

    Recognised shapes:
    - dot-separated class and size: t2.micro, m5.large, c5n.xlarge
    - Standard_ prefixed: Standard_D2s_v3, Standard_B1s
    - hyphen-segmented family-tier(-count): n1-standard-1, e2-medium
    - anything ending in a size word: db.t3.micro, cache.m5.large
    """
    if not value:
        return False

    if "." in value and len(value) >= 4:
        parts = value.split(".")
        if len(parts) >= 2 and len(parts[0]) >= 2 and _has_letter_and_digit(parts[0]):
            return True

    if value.startswith("Standard_") and len(value) > len("Standard_"):
        return True

    if "-" in value:
        parts = value.split("-")
        if (
            len(parts) >= 2
            and all(part.isalnum() for part in parts)
            and _has_letter_and_digit(parts[0])
        ):
            return True

    lowered = value.lower()
    return any(lowered.endswith(word) for word in SIZE_WORDS)


def looks_like_region(value: str) -> bool:
    """
    Check whether a string resembles a cloud region name.

    Recognised shapes:
    - xx-name-N: us-east-1, eu-west-2, ap-southeast-1
    - a known short region code: eastus, westeurope
    - two segments ending in a digit: us-central1, europe-west1
    """
    if not value:
        return False

    parts = value.split("-")
    if len(parts) == 3 and len(value) >= 7:
        if len(parts[0]) == 2 and len(parts[1]) >= 4 and parts[2].isdigit():
            return True

    if value.lower() in KNOWN_SHORT_REGIONS:
        return True

    if len(parts) == 2 and value[-1].isdigit():
        if len(parts[0]) == 2 or len(parts[0]) > 4:
            return True

    return False


def collect_size_candidates(attributes: Mapping[str, Any]) -> List[AttributeCandidate]:
    """
    Collect size candidates in two passes.

    Pass 1 scores attributes whose name matches a known pattern.
    Pass 2 scores the remaining string attributes whose value looks like a SKU.
    Attribute names are visited in sorted order so the result never depends
    on the mapping's iteration order.
    """
    names = sorted(attributes)
    candidates: List[AttributeCandidate] = []
    matched_names = set()

    for pattern, priority in SIZE_FIELD_PATTERNS:
        for name in names:
            if name != pattern and not name.endswith(pattern):
                continue
            value = _string_value(attributes[name])
            if value:
                candidates.append(AttributeCandidate(value, name, priority))
                matched_names.add(name)

    for name in names:
        if name in matched_names:
            continue
        value = _string_value(attributes[name])
        if not value or not looks_like_instance_type(value):
            continue
        lowered = name.lower()
        if any(keyword in lowered for keyword in SIZE_NAME_KEYWORDS):
            priority = SHAPE_PRIORITY_WITH_NAME_HINT
        else:
            priority = SHAPE_PRIORITY
        candidates.append(AttributeCandidate(value, name, priority))

    return candidates


def rank_candidates(candidates: List[AttributeCandidate]) -> List[AttributeCandidate]:
    """
    Deduplicate candidates by value and order them best first.

    A value seen more than once keeps its highest priority (and, among equal
    priorities, the lexicographically first source). Ties across values are
    broken by source attribute name.
    """
    best: Dict[str, AttributeCandidate] = {}
    for candidate in candidates:
        current = best.get(candidate.value)
        if current is None or candidate.sort_key() < current.sort_key():
            best[candidate.value] = candidate
    return sorted(best.values(), key=AttributeCandidate.sort_key)


def infer_size(resource_type: str, attributes: Mapping[str, Any]) -> str:
    """Infer the SKU / instance-class string used for pricing lookup."""
    ranked = rank_candidates(collect_size_candidates(attributes))
    return ranked[0].value if ranked else ""


def infer_region(resource_type: str, attributes: Mapping[str, Any]) -> str:
    """Infer the region from field names first, then from value shape."""
    for name in REGION_FIELD_NAMES:
        value = _string_value(attributes.get(name))
        if value:
            return value

    # Plain substring match: "timezone" or "dns_zone_name" also qualify and
    # outrank a region-shaped value elsewhere in the map
    names = sorted(attributes)
    for name in names:
        lowered = name.lower()
        if any(keyword in lowered for keyword in REGION_NAME_KEYWORDS):
            value = _string_value(attributes[name])
            if value:
                return value

    for name in names:
        value = _string_value(attributes[name])
        if looks_like_region(value):
            return value

    return ""


def infer_quantity(attributes: Mapping[str, Any]) -> int:
    """Read a positive numeric ``count`` attribute, truncated; default 1."""
    count = attributes.get("count")
    if isinstance(count, bool) or not isinstance(count, (int, float)):
        return 1
    if count > 0:
        return max(int(count), 1)
    return 1


def extract_tags(attributes: Mapping[str, Any]) -> Dict[str, str]:
    """Copy the string entries of a ``tags`` mapping."""
    tags = attributes.get("tags")
    if not isinstance(tags, Mapping):
        return {}
    return {
        key: value
        for key, value in tags.items()
        if isinstance(key, str) and isinstance(value, str)
    }


def infer_attributes(resource_type: str, attributes: Mapping[str, Any]) -> InferredAttributes:
    """Run all four inferences for one declaration."""
    return InferredAttributes(
        size=infer_size(resource_type, attributes),
        region=infer_region(resource_type, attributes),
        quantity=infer_quantity(attributes),
        tags=extract_tags(attributes),
    )
