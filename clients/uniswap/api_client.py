"""
Uniswap v2 Subgraph Client

Async GraphQL client for the Uniswap v2 subgraph (The Graph).
It handles:
- GraphQL POST requests with retry on rate limits
- GraphQL-level error payloads
- Normalization of subgraph entities to our schemas

Subgraph conventions:
    - BigDecimal/BigInt fields are serialized as strings
    - Timestamps are unix seconds
    - Addresses are lowercase hex

Usage:
    async with UniswapSubgraphClient() as client:
        pair = await client.get_pair("0xb4e16d0168e52d35cacd2c6185b44281ec28c9dc")
        swaps = await client.get_swaps(pair.id, limit=50)
"""

import aiohttp
import asyncio
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.config import settings
from core.errors import NetworkError
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import (
    HistoricalPoint,
    LiquidityEvent,
    LiquidityPosition,
    PairSnapshot,
    PositionSnapshot,
    SwapEvent,
    Token,
)
from core.utils.time import to_unix_seconds, to_utc_datetime


TOKEN_FIELDS = "id symbol name decimals"

PAIR_QUERY = f"""
query pair($id: ID!) {{
  pair(id: $id) {{
    id
    token0 {{ {TOKEN_FIELDS} }}
    token1 {{ {TOKEN_FIELDS} }}
    reserve0
    reserve1
    reserveUSD
    volumeUSD
    token0Price
    token1Price
    txCount
    createdAtTimestamp
  }}
}}
"""

PAIR_DAY_DATAS_QUERY = """
query pairDayDatas($pair: Bytes!, $since: Int!, $first: Int!) {
  pairDayDatas(first: $first, orderBy: date, orderDirection: asc,
               where: { pairAddress: $pair, date_gte: $since }) {
    date
    dailyVolumeUSD
    reserveUSD
    reserve0
    reserve1
    dailyTxns
  }
}
"""

PAIR_HOUR_DATAS_QUERY = """
query pairHourDatas($pair: String!, $since: Int!, $first: Int!) {
  pairHourDatas(first: $first, orderBy: hourStartUnix, orderDirection: asc,
                where: { pair: $pair, hourStartUnix_gte: $since }) {
    hourStartUnix
    hourlyVolumeUSD
    reserveUSD
    reserve0
    reserve1
    hourlyTxns
  }
}
"""

SWAPS_QUERY = """
query swaps($pair: String!, $first: Int!) {
  swaps(first: $first, orderBy: timestamp, orderDirection: desc, where: { pair: $pair }) {
    id
    transaction { id }
    timestamp
    amount0In
    amount0Out
    amount1In
    amount1Out
    amountUSD
    to
  }
}
"""

MINTS_AND_BURNS_QUERY = """
query mintsAndBurns($pair: String!, $first: Int!) {
  mints(first: $first, orderBy: timestamp, orderDirection: desc, where: { pair: $pair }) {
    id
    transaction { id }
    timestamp
    amount0
    amount1
    amountUSD
    liquidity
    to
  }
  burns(first: $first, orderBy: timestamp, orderDirection: desc, where: { pair: $pair }) {
    id
    transaction { id }
    timestamp
    amount0
    amount1
    amountUSD
    liquidity
    sender
  }
}
"""

POSITION_SNAPSHOTS_QUERY = """
query liquidityPositionSnapshots($user: String!, $first: Int!) {
  liquidityPositionSnapshots(first: $first, orderBy: timestamp, orderDirection: desc,
                             where: { user: $user }) {
    pair { id }
    timestamp
    liquidityTokenBalance
    liquidityTokenTotalSupply
    reserve0
    reserve1
    reserveUSD
    token0PriceUSD
    token1PriceUSD
  }
}
"""


class UniswapSubgraphClient:
    """
    Async GraphQL client for the Uniswap v2 subgraph.

    All methods return normalized data using our Pydantic schemas and raise
    NetworkError when the subgraph cannot be reached or answers with
    GraphQL errors.

    Attributes:
        url: Subgraph GraphQL endpoint
        session: aiohttp ClientSession for HTTP requests
        logger: Logger instance for debugging

    Example:
        >>> async with UniswapSubgraphClient() as client:
        ...     pair = await client.get_pair("0xb4e1...")
        ...     print(pair.token0.symbol, pair.token1.symbol)
        USDC WETH
    """

    SOURCE = "subgraph"

    def __init__(self, url: str = None, timeout: float = None, max_attempts: int = 3):
        self.url = url or settings.subgraph_url
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.max_attempts = max_attempts
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug("UniswapSubgraphClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("UniswapSubgraphClient session closed")

    # ============================================
    # GraphQL Request Handler with Retry Logic
    # ============================================

    async def _post(self, operation: str, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a GraphQL query and return its ``data`` object.

        Rate limits (HTTP 429/503) are retried with a linear backoff of
        1.5s * attempt; any other HTTP error ends the request.

        Raises:
            NetworkError: Request failed, or the response carried GraphQL errors
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        payload = {"operationName": operation, "query": query, "variables": variables}
        last_error = "no attempt made"

        for attempt in range(self.max_attempts):
            log_api_request(self.SOURCE, operation, variables)
            started = time.monotonic()
            try:
                async with self.session.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    log_api_response(self.SOURCE, operation, resp.status, time.monotonic() - started)

                    if resp.status == 200:
                        body = await resp.json()
                        errors = body.get("errors")
                        if errors:
                            message = errors[0].get("message", str(errors[0]))
                            self.logger.error(f"GraphQL error on {operation}: {message}")
                            raise NetworkError(message)
                        return body.get("data") or {}

                    elif resp.status in (429, 503):
                        last_error = "rate limited"
                        delay = 1.5 * (attempt + 1)
                        self.logger.warning(
                            f"Rate limited (HTTP {resp.status}) on {operation}. "
                            f"Retrying in {delay:.1f}s... (attempt {attempt + 1}/{self.max_attempts})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    else:
                        text = await resp.text()
                        self.logger.error(f"HTTP {resp.status} on {operation}: {text}")
                        raise NetworkError(f"HTTP {resp.status} on {operation}")

            except asyncio.TimeoutError:
                last_error = f"timeout on {operation}"
                self.logger.error(f"Timeout on {operation} (attempt {attempt + 1}/{self.max_attempts})")

            except aiohttp.ClientError as e:
                last_error = str(e)
                self.logger.error(f"Request failed on {operation}: {e} (attempt {attempt + 1}/{self.max_attempts})")

        raise NetworkError(last_error)

    # ============================================
    # Queries
    # ============================================

    async def get_pair(self, pair_id: str) -> Optional[PairSnapshot]:
        """
        Fetch a pair by address.

        Returns:
            PairSnapshot, or None if the subgraph does not know the pair
        """
        data = await self._post("pair", PAIR_QUERY, {"id": pair_id.lower()})
        raw = data.get("pair")
        if raw is None:
            return None
        return self._normalize_pair(raw)

    async def get_pair_day_datas(self, pair_id: str, since: datetime, limit: int = 1000) -> List[HistoricalPoint]:
        data = await self._post(
            "pairDayDatas",
            PAIR_DAY_DATAS_QUERY,
            {"pair": pair_id.lower(), "since": to_unix_seconds(since), "first": limit},
        )
        return [
            HistoricalPoint(
                interval="1d",
                timestamp=to_utc_datetime(item["date"]),
                volume_usd=item.get("dailyVolumeUSD") or 0,
                reserve_usd=item.get("reserveUSD") or 0,
                reserve0=item.get("reserve0") or 0,
                reserve1=item.get("reserve1") or 0,
                tx_count=item.get("dailyTxns") or 0,
            )
            for item in data.get("pairDayDatas") or []
        ]

    async def get_pair_hour_datas(self, pair_id: str, since: datetime, limit: int = 1000) -> List[HistoricalPoint]:
        data = await self._post(
            "pairHourDatas",
            PAIR_HOUR_DATAS_QUERY,
            {"pair": pair_id.lower(), "since": to_unix_seconds(since), "first": limit},
        )
        return [
            HistoricalPoint(
                interval="1h",
                timestamp=to_utc_datetime(item["hourStartUnix"]),
                volume_usd=item.get("hourlyVolumeUSD") or 0,
                reserve_usd=item.get("reserveUSD") or 0,
                reserve0=item.get("reserve0") or 0,
                reserve1=item.get("reserve1") or 0,
                tx_count=item.get("hourlyTxns") or 0,
            )
            for item in data.get("pairHourDatas") or []
        ]

    async def get_swaps(self, pair_id: str, limit: int = 100) -> List[SwapEvent]:
        """Latest swaps of a pair, newest first."""
        data = await self._post("swaps", SWAPS_QUERY, {"pair": pair_id.lower(), "first": limit})
        return [
            SwapEvent(
                id=item["id"],
                tx_hash=item["transaction"]["id"],
                timestamp=to_utc_datetime(item["timestamp"]),
                amount0_in=item.get("amount0In") or 0,
                amount0_out=item.get("amount0Out") or 0,
                amount1_in=item.get("amount1In") or 0,
                amount1_out=item.get("amount1Out") or 0,
                amount_usd=item.get("amountUSD") or 0,
                to=item.get("to"),
            )
            for item in data.get("swaps") or []
        ]

    async def get_mints_and_burns(self, pair_id: str, limit: int = 50) -> List[LiquidityEvent]:
        """
        Latest mints and burns of a pair merged into one list, newest first.

        Both lists are fetched in a single GraphQL request.
        """
        data = await self._post(
            "mintsAndBurns", MINTS_AND_BURNS_QUERY, {"pair": pair_id.lower(), "first": limit}
        )
        events = [self._normalize_liquidity_event(item, "mint") for item in data.get("mints") or []]
        events += [self._normalize_liquidity_event(item, "burn") for item in data.get("burns") or []]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events

    async def get_position_snapshots(self, account: str, limit: int = 1000) -> PositionSnapshot:
        """Liquidity position snapshots of an account, newest first."""
        data = await self._post(
            "liquidityPositionSnapshots",
            POSITION_SNAPSHOTS_QUERY,
            {"user": account.lower(), "first": limit},
        )
        positions = [
            LiquidityPosition(
                pair_id=item["pair"]["id"],
                timestamp=to_utc_datetime(item["timestamp"]),
                liquidity_token_balance=item.get("liquidityTokenBalance") or 0,
                liquidity_token_total_supply=item.get("liquidityTokenTotalSupply") or 0,
                reserve0=item.get("reserve0") or 0,
                reserve1=item.get("reserve1") or 0,
                reserve_usd=item.get("reserveUSD") or 0,
                token0_price_usd=item.get("token0PriceUSD") or 0,
                token1_price_usd=item.get("token1PriceUSD") or 0,
            )
            for item in data.get("liquidityPositionSnapshots") or []
        ]
        return PositionSnapshot(account=account, positions=positions)

    # ============================================
    # Normalization
    # ============================================

    def _normalize_pair(self, raw: Dict[str, Any]) -> PairSnapshot:
        return PairSnapshot(
            id=raw["id"],
            token0=self._normalize_token(raw.get("token0") or {}),
            token1=self._normalize_token(raw.get("token1") or {}),
            created_at_timestamp=int(raw["createdAtTimestamp"]),
            reserve0=raw.get("reserve0") or 0,
            reserve1=raw.get("reserve1") or 0,
            reserve_usd=raw.get("reserveUSD") or 0,
            volume_usd=raw.get("volumeUSD") or 0,
            token0_price=raw.get("token0Price") or 0,
            token1_price=raw.get("token1Price") or 0,
            tx_count=raw.get("txCount") or 0,
        )

    def _normalize_token(self, raw: Dict[str, Any]) -> Token:
        return Token(
            id=raw.get("id"),
            symbol=raw.get("symbol"),
            name=raw.get("name"),
            decimals=raw.get("decimals") or 18,
        )

    def _normalize_liquidity_event(self, raw: Dict[str, Any], kind: str) -> LiquidityEvent:
        return LiquidityEvent(
            id=raw["id"],
            kind=kind,
            tx_hash=raw["transaction"]["id"],
            timestamp=to_utc_datetime(raw["timestamp"]),
            amount0=raw.get("amount0") or 0,
            amount1=raw.get("amount1") or 0,
            amount_usd=raw.get("amountUSD") or 0,
            liquidity=raw.get("liquidity") or 0,
            account=raw.get("to") if kind == "mint" else raw.get("sender"),
        )
