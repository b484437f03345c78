"""
Parser for Terraform plan JSON (the output of `terraform show -json <plan>`).

Only planned managed resources are returned. Instances created by
count/for_each share one declaration whose "count" attribute is the
number of planned instances.
"""
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple
import json
import logging

from cloudcost.parsers.base import Declaration, Parser, ParserError, PathLike


logger = logging.getLogger(__name__)


PLAN_REQUIRED_KEYS = ("format_version", "planned_values")


def load_plan(path: PathLike) -> Dict[str, Any]:
    """
    Read and decode a plan JSON document.

    Raises:
        ParserError: If the file is unreadable, not JSON, or not a plan
    """
    plan_path = Path(path)
    try:
        with plan_path.open("r", encoding="utf-8") as handle:
            document = json.load(handle)
    except OSError as error:
        raise ParserError(f"Cannot read Terraform plan {plan_path}: {error}") from error
    except ValueError as error:
        raise ParserError(f"Invalid JSON in Terraform plan {plan_path}: {error}") from error

    if not isinstance(document, dict) or not all(key in document for key in PLAN_REQUIRED_KEYS):
        raise ParserError(f"{plan_path} is not a Terraform plan JSON document")
    return document


def iter_module_resources(module: Dict[str, Any], module_address: str = "") -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield (module address, resource) pairs for a module and its child modules, depth first."""
    for resource in module.get("resources", []) or []:
        yield module_address, resource
    for child in module.get("child_modules", []) or []:
        yield from iter_module_resources(child, child.get("address", module_address))


class TerraformPlanParser(Parser):
    """Reads planned_values from a Terraform plan JSON file."""

    def get_name(self) -> str:
        return "Terraform plan"

    def can_handle(self, path: PathLike) -> bool:
        plan_path = Path(path)
        if not plan_path.is_file() or plan_path.suffix.lower() != ".json":
            return False
        try:
            load_plan(plan_path)
        except ParserError:
            return False
        return True

    def parse(self, path: PathLike) -> List[Declaration]:
        """
        Parse a plan file into declarations.

        Args:
            path: Path to the JSON plan

        Returns:
            Declarations in first-seen order

        Raises:
            ParserError: If the file is not a readable plan
        """
        document = load_plan(path)
        root_module = (document.get("planned_values") or {}).get("root_module") or {}

        grouped: Dict[Tuple[str, str, str], Declaration] = {}
        instance_counts: Dict[Tuple[str, str, str], int] = {}

        for module_address, resource in iter_module_resources(root_module):
            if resource.get("mode", "managed") != "managed":
                continue
            resource_type = resource.get("type")
            name = resource.get("name")
            if not resource_type or not name:
                logger.warning("Skipping plan resource without type/name: %s", resource.get("address"))
                continue

            key = (module_address, resource_type, name)
            instance_counts[key] = instance_counts.get(key, 0) + 1
            if key in grouped:
                continue

            values = resource.get("values") or {}
            grouped[key] = Declaration(
                resource_type=resource_type,
                name=f"{module_address}.{name}" if module_address else name,
                attributes=dict(values),
                source=str(path),
            )

        declarations = []
        for key, declaration in grouped.items():
            count = instance_counts[key]
            if count > 1:
                declaration.attributes["count"] = count
            declarations.append(declaration)

        logger.info("Parsed %d declarations from %s", len(declarations), path)
        return declarations
