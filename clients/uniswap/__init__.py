"""
Uniswap v2 Market Data Connector

This module implements the MarketDataAPI for the Uniswap v2 subgraph.

Every method returns a FetchResult and never raises: transport failures,
GraphQL errors and malformed entities are reported in ``error``.

Structure:
    clients/uniswap/
    ├── __init__.py          # This file (UniswapApiFetcher class)
    └── api_client.py        # GraphQL client with aiohttp
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from core.config import settings
from core.errors import NetworkError, PairDashError
from core.interfaces import FetchResult, MarketDataAPI
from core.logging import get_logger
from .api_client import UniswapSubgraphClient


class UniswapApiFetcher(MarketDataAPI):
    """
    Uniswap v2 market data source.

    Example:
        >>> fetcher = UniswapApiFetcher()
        >>> await fetcher.initialize()
        >>> data, error = await fetcher.get_pair_overview("0xb4e1...")
        >>> await fetcher.shutdown()
    """

    name = "uniswap-v2"

    def __init__(
        self,
        client: Optional[UniswapSubgraphClient] = None,
        swaps_limit: int = None,
        mints_burns_limit: int = None,
        historical_limit: int = None,
    ):
        self.client = client
        self._owns_client = client is None
        self.swaps_limit = swaps_limit or settings.swaps_limit
        self.mints_burns_limit = mints_burns_limit or settings.mints_burns_limit
        self.historical_limit = historical_limit or settings.historical_limit
        self.logger = get_logger(__name__)

    async def initialize(self) -> None:
        if self.client is not None and self.client.session is not None:
            return
        self.logger.info("Initializing Uniswap v2 market data connector...")
        if self.client is None:
            self.client = UniswapSubgraphClient()
        await self.client.__aenter__()
        self.logger.info(f"✓ Uniswap v2 connector initialized ({self.client.url})")

    async def shutdown(self) -> None:
        if self.client and self._owns_client:
            await self.client.__aexit__(None, None, None)
            self.logger.info("✓ Uniswap v2 connector shut down")

    async def _fetch(self, operation: str, call: Callable[[UniswapSubgraphClient], Awaitable[Any]]) -> FetchResult:
        if self.client is None:
            return FetchResult(error=NetworkError(f"{self.name} connector not initialized"))
        try:
            return FetchResult(data=await call(self.client))
        except PairDashError as e:
            return FetchResult(error=e)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            self.logger.error(f"Malformed {operation} response: {e}")
            return FetchResult(error=NetworkError(f"Malformed {operation} response"))
        except RuntimeError as e:
            # session not initialized
            return FetchResult(error=NetworkError(str(e)))

    # ============================================
    # MarketDataAPI
    # ============================================

    async def get_pair_overview(self, pair_id: str) -> FetchResult:
        result = await self._fetch("pair", lambda c: c.get_pair(pair_id))
        if result.error is None and result.data is None:
            return FetchResult(error=NetworkError(f"Pair {pair_id} not found"))
        return result

    async def get_historical_daily_data(self, pair_id: str, since: datetime) -> FetchResult:
        return await self._fetch(
            "pairDayDatas", lambda c: c.get_pair_day_datas(pair_id, since, self.historical_limit)
        )

    async def get_historical_hourly_data(self, pair_id: str, since: datetime) -> FetchResult:
        return await self._fetch(
            "pairHourDatas", lambda c: c.get_pair_hour_datas(pair_id, since, self.historical_limit)
        )

    async def get_latest_swaps(self, pair_id: str) -> FetchResult:
        return await self._fetch("swaps", lambda c: c.get_swaps(pair_id, self.swaps_limit))

    async def get_mints_and_burns(self, pair_id: str) -> FetchResult:
        return await self._fetch(
            "mintsAndBurns", lambda c: c.get_mints_and_burns(pair_id, self.mints_burns_limit)
        )

    async def get_position_stats(self, account: str) -> FetchResult:
        return await self._fetch(
            "liquidityPositionSnapshots", lambda c: c.get_position_snapshots(account)
        )


__all__ = ["UniswapApiFetcher", "UniswapSubgraphClient"]
