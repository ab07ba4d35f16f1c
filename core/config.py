"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Remote endpoints for the market-data subgraph and the Ethereum JSON-RPC node
- Router addresses used as allowance spenders for add/remove liquidity
- Per-call timeout and refresh cadence of the dashboard pipelines

Usage:
    from core.config import settings

    print(settings.subgraph_url)
    print(settings.exchange_add_address)
"""

import re
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

NATIVE_TOKEN_SENTINEL = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


class Settings(BaseSettings):
    """
    Application Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        subgraph_url: GraphQL endpoint of the Uniswap v2 subgraph
        rpc_url: Ethereum JSON-RPC endpoint used for balance/allowance reads
        exchange_add_address: Spender checked for token0/token1 allowances
        exchange_remove_address: Spender checked for the pair token allowance
        native_token_address: Sentinel address of the synthesized native entry
        native_token_symbol: Symbol key of the synthesized native entry
        request_timeout: Upper bound for a single remote call in seconds
        pair_refresh_interval: Seconds between pair/historical refreshes
        swaps_refresh_interval: Seconds between swaps/mints-and-burns refreshes
        hourly_lookback_days: Width of the hourly series window
        swaps_limit: Number of swaps requested per refresh
        mints_burns_limit: Number of mints (and of burns) requested per refresh
        historical_limit: Maximum points requested per historical series
        app_host: Host address for the FastAPI adapter
        app_port: Port number for the FastAPI adapter
        environment: Current environment (development, production)
        debug: Enable debug mode with verbose logging
        log_level: Logging level
        cors_origins: Comma-separated list of allowed CORS origins
    """

    # ============================================
    # Remote Endpoints
    # ============================================

    subgraph_url: str = Field(
        default="https://api.thegraph.com/subgraphs/name/uniswap/uniswap-v2",
        description="Uniswap v2 subgraph GraphQL endpoint"
    )

    rpc_url: str = Field(
        default="https://cloudflare-eth.com",
        description="Ethereum JSON-RPC endpoint"
    )

    # ============================================
    # Liquidity Routers
    # ============================================

    exchange_add_address: str = Field(
        default="0xFd8A61F94604aeD5977B31930b48f1a94ff3a195",
        description="Add-liquidity router (spender for token0/token1 allowances)"
    )

    exchange_remove_address: str = Field(
        default="0x418915329226AE7fCcB20A2354BbbF0F6c22Bd92",
        description="Remove-liquidity router (spender for the pair token allowance)"
    )

    native_token_address: str = Field(
        default=NATIVE_TOKEN_SENTINEL,
        description="Sentinel address used for the native currency entry"
    )

    native_token_symbol: str = Field(
        default="ETH",
        description="Symbol of the native currency entry"
    )

    # ============================================
    # Timeouts & Refresh Cadence
    # ============================================

    request_timeout: float = Field(
        default=15.0,
        description="Per-call timeout in seconds for API and chain queries"
    )

    pair_refresh_interval: float = Field(
        default=60.0,
        description="Seconds between pair/historical refreshes"
    )

    swaps_refresh_interval: float = Field(
        default=15.0,
        description="Seconds between swaps/mints-and-burns refreshes"
    )

    hourly_lookback_days: int = Field(
        default=7,
        description="Days covered by the hourly historical series"
    )

    swaps_limit: int = Field(
        default=100,
        description="Number of latest swaps requested"
    )

    mints_burns_limit: int = Field(
        default=50,
        description="Number of latest mints and of latest burns requested"
    )

    historical_limit: int = Field(
        default=1000,
        description="Maximum number of points per historical request"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Convert comma-separated CORS origins string to a list.

        Example:
            >>> settings.cors_origins_list
            ['http://localhost:3000', 'http://localhost:5173']
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to validate (defaults to the global instance)

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # logging.py imports config.py, so the logger is imported lazily
    from core.logging import logger

    config = config or settings

    for field_name in ("exchange_add_address", "exchange_remove_address", "native_token_address"):
        value = getattr(config, field_name)
        if not ADDRESS_PATTERN.match(value):
            raise ValueError(
                f"Invalid {field_name.upper()}: '{value}'. "
                f"Must be a 0x-prefixed 20-byte hex address"
            )

    if config.exchange_add_address.lower() == config.exchange_remove_address.lower():
        raise ValueError("EXCHANGE_ADD_ADDRESS and EXCHANGE_REMOVE_ADDRESS must differ")

    for field_name in ("subgraph_url", "rpc_url"):
        value = getattr(config, field_name)
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"Invalid {field_name.upper()}: '{value}'. Must be an http(s) URL")

    if config.request_timeout <= 0:
        raise ValueError(f"REQUEST_TIMEOUT must be positive, got {config.request_timeout}")

    if config.pair_refresh_interval <= 0 or config.swaps_refresh_interval <= 0:
        raise ValueError("Refresh intervals must be positive")

    if config.hourly_lookback_days < 1:
        raise ValueError(f"HOURLY_LOOKBACK_DAYS must be at least 1, got {config.hourly_lookback_days}")

    if not (1 <= config.app_port <= 65535):
        raise ValueError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Subgraph: {config.subgraph_url}")
    logger.info(f"RPC: {config.rpc_url}")
    logger.info(f"Routers: add={config.exchange_add_address} remove={config.exchange_remove_address}")
    logger.info(f"Request timeout: {config.request_timeout}s")
    logger.info(f"Log level: {config.log_level.upper()}")
