"""
Collaborator Interfaces: Contracts for the Remote Data Sources

The dashboard core talks to two external collaborators and never to a
concrete transport:

- MarketDataAPI: indexed market data (pair overview, historical series,
  swaps, mints/burns, liquidity positions). Every method returns a
  FetchResult and never raises; a failure is reported in ``error``.
- ChainQuery: raw on-chain reads (ERC-20 balanceOf/allowance, native
  balance). Failures raise; there is no built-in retry.

Design Philosophy:
    "Program to an interface, not an implementation"

    The orchestrator and the balance resolver receive these interfaces, so
    tests drive them with in-memory fakes and production wires the aiohttp
    clients from ``clients/``.

Example:
    class UniswapApiFetcher(MarketDataAPI):
        name = "uniswap-v2"

        async def get_pair_overview(self, pair_id):
            ...
            return FetchResult(data=snapshot)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, NamedTuple, Optional

from core.errors import PairDashError


class FetchResult(NamedTuple):
    """
    Result-or-error pair returned by every MarketDataAPI method.

    Example:
        >>> data, error = await api.get_pair_overview("0xabc")
        >>> if error:
        ...     print(f"failed: {error}")
    """

    data: Any = None
    error: Optional[PairDashError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None


class MarketDataAPI(ABC):
    """
    Abstract market data source.

    Class Attributes:
        name: Identifier of the data source, used in log lines

    Abstract Methods (MUST be implemented):
        - get_pair_overview
        - get_historical_daily_data
        - get_historical_hourly_data
        - get_latest_swaps
        - get_mints_and_burns
        - get_position_stats
    """

    name: str = "market-data"

    @abstractmethod
    async def get_pair_overview(self, pair_id: str) -> FetchResult:
        """
        Fetch identity and statistics of a pair.

        Returns:
            FetchResult with a PairSnapshot, or a NetworkError
        """
        ...

    @abstractmethod
    async def get_historical_daily_data(self, pair_id: str, since: datetime) -> FetchResult:
        """
        Fetch daily buckets starting at ``since``.

        Returns:
            FetchResult with List[HistoricalPoint] ordered oldest first
        """
        ...

    @abstractmethod
    async def get_historical_hourly_data(self, pair_id: str, since: datetime) -> FetchResult:
        """
        Fetch hourly buckets starting at ``since``.

        Returns:
            FetchResult with List[HistoricalPoint] ordered oldest first
        """
        ...

    @abstractmethod
    async def get_latest_swaps(self, pair_id: str) -> FetchResult:
        """Fetch the most recent swaps, newest first (List[SwapEvent])."""
        ...

    @abstractmethod
    async def get_mints_and_burns(self, pair_id: str) -> FetchResult:
        """Fetch the most recent mints and burns merged, newest first (List[LiquidityEvent])."""
        ...

    @abstractmethod
    async def get_position_stats(self, account: str) -> FetchResult:
        """Fetch liquidity position statistics of an account (PositionSnapshot)."""
        ...

    async def initialize(self) -> None:
        """Open transport resources. Optional; safe to call twice."""
        pass

    async def shutdown(self) -> None:
        """Release transport resources. Optional; must not raise."""
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}')>"


class ChainQuery(ABC):
    """
    Abstract on-chain reader.

    All amounts are integers in base units (wei for the native currency).
    Implementations raise on failure; the resolver wraps anything outside
    the error taxonomy into NetworkError.
    """

    name: str = "chain"

    @abstractmethod
    async def balance_of(self, token_address: str, account: str) -> int:
        """ERC-20 ``balanceOf(account)`` of ``token_address``."""
        ...

    @abstractmethod
    async def allowance(self, token_address: str, owner: str, spender: str) -> int:
        """ERC-20 ``allowance(owner, spender)`` of ``token_address``."""
        ...

    @abstractmethod
    async def native_balance(self, account: str) -> int:
        """Native currency balance of ``account`` in wei."""
        ...

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}')>"
