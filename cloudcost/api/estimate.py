"""
API routes for cost estimation.
"""
from typing import Any, Dict, List, Optional, Tuple
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from cloudcost.parsers.base import Declaration
from cloudcost.parsers.terraform_plan import TerraformPlanParser
from cloudcost.pricing.registry import build_default_adapters
from cloudcost.services.cost_estimator import CostEstimator


logger = logging.getLogger(__name__)
router = APIRouter()


class DeclarationModel(BaseModel):
    """A single resource declaration."""
    type: str = Field(..., min_length=1, description="Resource type, e.g. aws_instance")
    name: str = Field(..., min_length=1, description="Resource name, unique per type")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Declared attributes")

    def to_declaration(self) -> Declaration:
        return Declaration(resource_type=self.type, name=self.name, attributes=dict(self.attributes))


class EstimateRequest(BaseModel):
    """Request model for cost estimation."""
    declarations: List[DeclarationModel] = Field(..., description="Resource declarations to price")
    providers: Optional[List[str]] = Field(
        None, description="Pricing providers to enable (default: all supported)"
    )
    iac_format: str = Field(default="", description="Source IaC format recorded on the report")


def create_cost_estimator(providers: Optional[List[str]] = None) -> CostEstimator:
    """
    Build an estimator with the configured pricing adapters.

    Raises:
        ValueError: If an unknown provider is requested
    """
    estimator = CostEstimator(adapters=build_default_adapters(providers))
    estimator.register_parser(TerraformPlanParser())
    return estimator


# Estimators shared across requests, keyed by provider subset; adapters,
# handshakes and price caches live as long as the process
_estimators: Dict[Optional[Tuple[str, ...]], CostEstimator] = {}


def get_cost_estimator(providers: Optional[List[str]] = None) -> CostEstimator:
    """
    Return the shared estimator for a provider subset, building it on first use.

    Raises:
        ValueError: If an unknown provider is requested
    """
    key = tuple(sorted(set(providers))) if providers is not None else None
    estimator = _estimators.get(key)
    if estimator is None:
        estimator = create_cost_estimator(providers)
        _estimators[key] = estimator
        logger.info("Created cost estimator for providers: %s", ", ".join(estimator.adapters.providers()))
    return estimator


def clear_cost_estimators() -> None:
    """Drop shared estimators (and their price caches)."""
    _estimators.clear()


@router.post("/api/estimate")
async def estimate_costs(estimate_request: EstimateRequest) -> Dict[str, Any]:
    """
    Estimate costs for a list of declarations.

    Individual pricing failures do not fail the request; they are reported
    per resource and in the report's errors.

    Args:
        estimate_request: Request body with declarations and optional provider subset

    Returns:
        JSON response with the full cost report

    Raises:
        HTTPException: If the input is empty or names an unknown provider
    """
    if not estimate_request.declarations:
        raise HTTPException(
            status_code=400,
            detail="At least one declaration is required"
        )

    try:
        estimator = get_cost_estimator(estimate_request.providers)
    except ValueError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error

    try:
        report = await estimator.estimate(
            [declaration.to_declaration() for declaration in estimate_request.declarations],
            iac_format=estimate_request.iac_format,
        )
    except Exception as error:
        logger.error("Cost estimation failed: %s", error, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred while estimating costs"
        ) from error

    return {
        "status": "ok",
        "report": report.to_dict()
    }
