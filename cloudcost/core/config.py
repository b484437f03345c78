"""
Configuration module for loading environment variables.
Pricing behaviour (retries, timeouts, caching, concurrency) is tuned here.
"""
import os


class Config:
    """Application configuration loaded from environment variables."""
    
    # AWS Price List API is only served from a handful of regions
    AWS_PRICING_REGION: str = os.getenv("AWS_PRICING_REGION", "us-east-1")
    AWS_DEFAULT_REGION: str = os.getenv("CLOUDCOST_AWS_DEFAULT_REGION", "us-east-1")
    
    # Azure Retail Prices API (public, no authentication)
    AZURE_PRICING_API_URL: str = os.getenv(
        "AZURE_PRICING_API_URL",
        "https://prices.azure.com/api/retail/prices"
    )
    AZURE_DEFAULT_REGION: str = os.getenv("CLOUDCOST_AZURE_DEFAULT_REGION", "eastus")
    
    # Pricing query behaviour
    PRICING_CACHE_TTL_SECONDS: int = int(os.getenv("PRICING_CACHE_TTL_SECONDS", "3600"))
    PRICING_MAX_ATTEMPTS: int = int(os.getenv("PRICING_MAX_ATTEMPTS", "3"))
    PRICING_RETRY_DELAY_SECONDS: float = float(os.getenv("PRICING_RETRY_DELAY_SECONDS", "1.0"))
    PRICING_QUERY_TIMEOUT_SECONDS: float = float(os.getenv("PRICING_QUERY_TIMEOUT_SECONDS", "10.0"))
    PRICING_RESULT_LIMIT: int = int(os.getenv("PRICING_RESULT_LIMIT", "10"))
    PRICING_MAX_CONCURRENCY: int = int(os.getenv("PRICING_MAX_CONCURRENCY", "8"))
    
    # Report settings
    CURRENCY: str = os.getenv("CLOUDCOST_CURRENCY", "USD")
    HOURS_PER_MONTH: int = 730  # Standard assumption: 24/7 operation
    HOURS_PER_YEAR: int = 8760
    
    @classmethod
    def validate(cls) -> None:
        """
        Validates that configuration values are usable.
        
        Raises:
            ValueError: If any configuration value is missing or invalid.
        """
        if cls.PRICING_MAX_ATTEMPTS < 1:
            raise ValueError("PRICING_MAX_ATTEMPTS must be at least 1")
        if cls.PRICING_RETRY_DELAY_SECONDS < 0:
            raise ValueError("PRICING_RETRY_DELAY_SECONDS must not be negative")
        if cls.PRICING_QUERY_TIMEOUT_SECONDS <= 0:
            raise ValueError("PRICING_QUERY_TIMEOUT_SECONDS must be positive")
        if cls.PRICING_RESULT_LIMIT < 1:
            raise ValueError("PRICING_RESULT_LIMIT must be at least 1")
        if cls.PRICING_MAX_CONCURRENCY < 1:
            raise ValueError("PRICING_MAX_CONCURRENCY must be at least 1")
        if cls.PRICING_CACHE_TTL_SECONDS < 0:
            raise ValueError("PRICING_CACHE_TTL_SECONDS must not be negative")
        if not cls.AZURE_PRICING_API_URL.startswith(("http://", "https://")):
            raise ValueError(
                f"AZURE_PRICING_API_URL must be a valid URL (got: {cls.AZURE_PRICING_API_URL})"
            )
        if not cls.CURRENCY:
            raise ValueError("CLOUDCOST_CURRENCY is required")


config = Config()
