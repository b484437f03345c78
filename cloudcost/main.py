"""
Main FastAPI application bootstrap.
Validates configuration and includes routers.
"""
import logging

from fastapi import FastAPI

from cloudcost.core.config import config
from cloudcost.api.estimate import router as estimate_router


logger = logging.getLogger(__name__)

# Validate configuration on startup
try:
    config.validate()
except ValueError as error:
    raise RuntimeError(f"Configuration error: {error}") from error

logger.info(
    "Pricing: %d attempts, %.1fs timeout, concurrency %d, AWS endpoint %s",
    config.PRICING_MAX_ATTEMPTS,
    config.PRICING_QUERY_TIMEOUT_SECONDS,
    config.PRICING_MAX_CONCURRENCY,
    config.AWS_PRICING_REGION,
)


app = FastAPI(
    title="CloudCost",
    description="Cloud cost estimation for infrastructure-as-code declarations",
)

app.include_router(estimate_router)


@app.get("/health")
async def health() -> dict:
    """Liveness check."""
    return {"status": "ok"}
