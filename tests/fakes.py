"""
In-memory collaborators for the dashboard tests.

FakeMarketData and FakeChain answer from canned results and record every
call. ``hold(...)`` parks the next matching call on an asyncio.Event so a
test can decide the completion order of concurrent cycles.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.interfaces import ChainQuery, FetchResult, MarketDataAPI
from core.schemas import (
    HistoricalPoint,
    LiquidityEvent,
    LiquidityPosition,
    PairSnapshot,
    PositionSnapshot,
    SwapEvent,
    Token,
)


DAI_WETH = "0xa478c2975ab1ea89e8196811f51a7b7ade33eb11"
USDC_WETH = "0xb4e16d0168e52d35cacd2c6185b44281ec28c9dc"
DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
ACCOUNT = "0x1111111111111111111111111111111111111111"
OTHER_ACCOUNT = "0x2222222222222222222222222222222222222222"

ADD_ROUTER = "0xFd8A61F94604aeD5977B31930b48f1a94ff3a195"
REMOVE_ROUTER = "0x418915329226AE7fCcB20A2354BbbF0F6c22Bd92"

FIXED_NOW = datetime(2024, 1, 8, tzinfo=timezone.utc)
CREATED_AT = 1589285616

PAIRS = {
    DAI_WETH: (DAI, "DAI", 18, WETH, "WETH", 18),
    USDC_WETH: (USDC, "USDC", 6, WETH, "WETH", 18),
}


def make_pair(pair_id: str = DAI_WETH, reserve_usd: float = 2500.99, **overrides) -> PairSnapshot:
    token0_id, symbol0, decimals0, token1_id, symbol1, decimals1 = PAIRS.get(
        pair_id.lower(), (DAI, "DAI", 18, WETH, "WETH", 18)
    )
    fields = dict(
        id=pair_id,
        token0=Token(id=token0_id, symbol=symbol0, name=symbol0, decimals=decimals0),
        token1=Token(id=token1_id, symbol=symbol1, name=symbol1, decimals=decimals1),
        created_at_timestamp=CREATED_AT,
        reserve0=1000.0,
        reserve1=0.5,
        reserve_usd=reserve_usd,
        volume_usd=10_000.0,
        token0_price=2000.0,
        token1_price=0.0005,
        tx_count=42,
    )
    fields.update(overrides)
    return PairSnapshot(**fields)


def make_points(interval: str, count: int = 2) -> List[HistoricalPoint]:
    return [
        HistoricalPoint(interval=interval, timestamp=datetime(2024, 1, 1 + i, tzinfo=timezone.utc), volume_usd=100.0 * i)
        for i in range(count)
    ]


def make_swaps(count: int = 2) -> List[SwapEvent]:
    return [
        SwapEvent(id=f"0xswap-{i}", tx_hash=f"0xtx{i}", timestamp=datetime(2024, 1, 7, i, tzinfo=timezone.utc), amount_usd=50.0)
        for i in range(count)
    ]


def make_liquidity_events() -> List[LiquidityEvent]:
    return [
        LiquidityEvent(id="0xmint-0", kind="mint", tx_hash="0xtxm", timestamp=datetime(2024, 1, 7, 2, tzinfo=timezone.utc)),
        LiquidityEvent(id="0xburn-0", kind="burn", tx_hash="0xtxb", timestamp=datetime(2024, 1, 7, 1, tzinfo=timezone.utc)),
    ]


def make_position(account: str = ACCOUNT, pair_id: str = DAI_WETH) -> PositionSnapshot:
    return PositionSnapshot(
        account=account,
        positions=[
            LiquidityPosition(
                pair_id=pair_id,
                timestamp=datetime(2024, 1, 7, tzinfo=timezone.utc),
                liquidity_token_balance=5.0,
                liquidity_token_total_supply=100.0,
            )
        ],
    )


class _Gates:
    """Per-key FIFO of events; the next call for a key waits on the first one."""

    def __init__(self) -> None:
        self._gates: Dict[str, List[asyncio.Event]] = {}

    def hold(self, key: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates.setdefault(key, []).append(gate)
        return gate

    async def pass_through(self, key: str) -> None:
        queue = self._gates.get(key)
        if queue:
            gate = queue.pop(0)
            await gate.wait()


class FakeMarketData(MarketDataAPI):
    """
    MarketDataAPI answering from ``results``.

    A result is either a FetchResult or a callable receiving the call
    arguments and returning one.
    """

    name = "fake-market-data"

    def __init__(self) -> None:
        self.results: Dict[str, Any] = {
            "get_pair_overview": lambda pair_id: FetchResult(data=make_pair(pair_id)),
            "get_historical_daily_data": FetchResult(data=make_points("1d")),
            "get_historical_hourly_data": FetchResult(data=make_points("1h", 3)),
            "get_latest_swaps": FetchResult(data=make_swaps()),
            "get_mints_and_burns": FetchResult(data=make_liquidity_events()),
            "get_position_stats": lambda account: FetchResult(data=make_position(account)),
        }
        self.calls: List[Tuple[str, tuple]] = []
        self.gates = _Gates()

    def fail(self, method: str, error: Exception) -> None:
        self.results[method] = FetchResult(error=error)

    def hold(self, method: str) -> asyncio.Event:
        return self.gates.hold(method)

    def called(self, method: str) -> List[tuple]:
        return [args for name, args in self.calls if name == method]

    async def _respond(self, method: str, *args) -> FetchResult:
        self.calls.append((method, args))
        await self.gates.pass_through(method)
        result = self.results[method]
        if callable(result):
            result = result(*args)
        return result

    async def get_pair_overview(self, pair_id):
        return await self._respond("get_pair_overview", pair_id)

    async def get_historical_daily_data(self, pair_id, since):
        return await self._respond("get_historical_daily_data", pair_id, since)

    async def get_historical_hourly_data(self, pair_id, since):
        return await self._respond("get_historical_hourly_data", pair_id, since)

    async def get_latest_swaps(self, pair_id):
        return await self._respond("get_latest_swaps", pair_id)

    async def get_mints_and_burns(self, pair_id):
        return await self._respond("get_mints_and_burns", pair_id)

    async def get_position_stats(self, account):
        return await self._respond("get_position_stats", account)


class FakeChain(ChainQuery):
    """
    ChainQuery answering from dictionaries.

    Failures are keyed ``"native"``, ``"balance:<token>"`` or
    ``"allowance:<token>"``.
    """

    name = "fake-chain"

    def __init__(self) -> None:
        self.native: Dict[str, int] = {}
        self.balances: Dict[Tuple[str, str], int] = {}
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.gates = _Gates()

    def hold(self, key: str) -> asyncio.Event:
        return self.gates.hold(key)

    async def _answer(self, key: str, call: str, args: tuple, value: Callable[[], int]) -> int:
        self.calls.append((call, args))
        await self.gates.pass_through(key)
        if key in self.failures:
            raise self.failures[key]
        return value()

    async def native_balance(self, account):
        return await self._answer("native", "native_balance", (account,), lambda: self.native.get(account, 0))

    async def balance_of(self, token_address, account):
        return await self._answer(
            f"balance:{token_address}", "balance_of", (token_address, account),
            lambda: self.balances.get((token_address, account), 0),
        )

    async def allowance(self, token_address, owner, spender):
        return await self._answer(
            f"allowance:{token_address}", "allowance", (token_address, owner, spender),
            lambda: self.allowances.get((token_address, owner, spender), 0),
        )


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def spender_of(chain: FakeChain, token: str) -> Optional[str]:
    for call, args in chain.calls:
        if call == "allowance" and args[0] == token:
            return args[2]
    return None
