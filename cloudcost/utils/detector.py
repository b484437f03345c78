"""
Filesystem utilities for detecting which IaC format a path contains.
"""
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Union
import json


ARM_SCHEMA_HOST = "schema.management.azure.com"


class IaCType(str, Enum):
    """Infrastructure-as-code formats the estimator can recognise."""
    TERRAFORM = "terraform"
    PULUMI = "pulumi"
    CLOUDFORMATION = "cloudformation"
    AZURE_ARM = "azure_arm"
    ANSIBLE = "ansible"
    UNKNOWN = "unknown"


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def _glob(directory: Path, patterns: Iterable[str]) -> List[Path]:
    found: List[Path] = []
    for pattern in patterns:
        found.extend(sorted(directory.glob(pattern)))
    return [path for path in found if path.is_file()]


def _is_terraform_plan(content: str) -> bool:
    try:
        document = json.loads(content)
    except ValueError:
        return False
    return isinstance(document, dict) and "format_version" in document and "planned_values" in document


def _detect_from_json(content: str) -> IaCType:
    if _is_terraform_plan(content):
        return IaCType.TERRAFORM
    if ARM_SCHEMA_HOST in content and '"$schema"' in content:
        return IaCType.AZURE_ARM
    if '"AWSTemplateFormatVersion"' in content or '"Resources"' in content:
        return IaCType.CLOUDFORMATION
    return IaCType.UNKNOWN


def _detect_from_yaml(content: str) -> IaCType:
    if "AWSTemplateFormatVersion" in content:
        return IaCType.CLOUDFORMATION
    if "hosts:" in content or "tasks:" in content:
        return IaCType.ANSIBLE
    return IaCType.UNKNOWN


def detect_from_file(path: Path) -> IaCType:
    """Determine the IaC format of a single file from its name and content."""
    if path.name in ("Pulumi.yaml", "Pulumi.yml"):
        return IaCType.PULUMI

    suffix = path.suffix.lower()
    if suffix == ".tf":
        return IaCType.TERRAFORM
    if suffix == ".json":
        return _detect_from_json(_read_text(path))
    if suffix in (".yaml", ".yml"):
        return _detect_from_yaml(_read_text(path))
    return IaCType.UNKNOWN


def detect_iac_type(path: Union[str, Path]) -> IaCType:
    """
    Determine the IaC format of a file or directory.

    Directories are checked in a fixed order: Terraform (*.tf or a plan
    JSON), Pulumi project file, CloudFormation templates, ARM templates,
    Ansible playbooks.

    Args:
        path: File or directory to inspect

    Returns:
        Detected IaCType (UNKNOWN if nothing matched)

    Raises:
        FileNotFoundError: If the path does not exist
    """
    target = Path(path)
    if not target.exists():
        raise FileNotFoundError(f"Path not found: {target}")

    if target.is_file():
        return detect_from_file(target)

    if _glob(target, ["*.tf"]):
        return IaCType.TERRAFORM

    json_files = _glob(target, ["*.json"])
    if any(_is_terraform_plan(_read_text(json_file)) for json_file in json_files):
        return IaCType.TERRAFORM

    if (target / "Pulumi.yaml").is_file() or (target / "Pulumi.yml").is_file():
        return IaCType.PULUMI

    if _glob(target, ["*.template", "*.template.json", "*.template.yaml"]):
        return IaCType.CLOUDFORMATION

    for json_file in json_files:
        if _detect_from_json(_read_text(json_file)) is IaCType.AZURE_ARM:
            return IaCType.AZURE_ARM

    for yaml_file in _glob(target, ["*.yml", "*.yaml"]):
        if _detect_from_yaml(_read_text(yaml_file)) is IaCType.ANSIBLE:
            return IaCType.ANSIBLE

    return IaCType.UNKNOWN
