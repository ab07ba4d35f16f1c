"""
Dashboard Data Schemas

Pydantic models for everything the dashboard core fetches, aggregates and
exposes. Remote payloads (subgraph GraphQL, JSON-RPC) are normalized into
these models by the clients, so the orchestration layer never sees raw
camelCase dictionaries.

Models:
    - SelectionKey: Which pair is viewed and which wallet is connected
    - Token / PairSnapshot: Pair identity and statistics
    - HistoricalPoint: One bucket of the daily or hourly series
    - SwapEvent / LiquidityEvent: Recent on-chain events
    - LiquidityPosition / PositionSnapshot: Liquidity positions of an account
    - TokenBalanceEntry: One row of the wallet BalanceMap
    - PairDataPayload / SwapsPayload: Ready payloads of the two fetch groups
    - FetchState: Idle | Loading | Error(reason) | Ready(payload)
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.utils.time import current_utc_datetime


def _lower_address(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value.lower() if value else None


# ============================================
# Selection
# ============================================

class SelectionKey(BaseModel):
    """
    Current interest of the dashboard.

    Addresses are normalized to lowercase and empty strings become None,
    so two keys naming the same pair/account always compare equal.

    Example:
        >>> SelectionKey(pair_id="0xABC", account="") == SelectionKey(pair_id="0xabc")
        True
    """

    model_config = ConfigDict(frozen=True)

    pair_id: Optional[str] = Field(None, description="Pair (pool) address")
    account: Optional[str] = Field(None, description="Connected wallet address")

    @field_validator("pair_id", "account")
    @classmethod
    def normalize_address(cls, v: Optional[str]) -> Optional[str]:
        """Lowercase addresses, blank means absent"""
        return _lower_address(v)

    @property
    def has_pair(self) -> bool:
        return self.pair_id is not None

    @property
    def has_account(self) -> bool:
        return self.account is not None


# ============================================
# Pair Schemas
# ============================================

class Token(BaseModel):
    """
    ERC-20 token as described by the subgraph.

    ``id`` is optional: a pair can be listed before its token metadata is
    indexed, and balance resolution must then fail fast instead of querying.
    """

    id: Optional[str] = Field(None, description="Token contract address")
    symbol: Optional[str] = Field(None, examples=["WETH", "USDC"])
    name: Optional[str] = None
    decimals: int = Field(18, ge=0)

    @field_validator("id")
    @classmethod
    def normalize_id(cls, v: Optional[str]) -> Optional[str]:
        return _lower_address(v)


class PairSnapshot(BaseModel):
    """
    Overview of a two-token pool.

    Identity fields (``id``, ``token0.id``, ``token1.id``,
    ``created_at_timestamp``) never change for a given pair id, except that
    a token id missing before indexing may appear later. Statistical fields
    are replaced on every refresh.

    Example:
        >>> pair = PairSnapshot(
        ...     id="0xa478c2975ab1ea89e8196811f51a7b7ade33eb11",
        ...     token0=Token(id="0x6b17...", symbol="DAI"),
        ...     token1=Token(id="0xc02a...", symbol="WETH"),
        ...     created_at_timestamp=1589285616,
        ...     reserve_usd=85000000.0,
        ... )
    """

    id: str = Field(..., description="Pair contract address (also the liquidity token)")
    token0: Token
    token1: Token
    created_at_timestamp: int = Field(..., ge=0, description="Pair creation time, unix seconds")

    reserve0: float = Field(0.0, ge=0)
    reserve1: float = Field(0.0, ge=0)
    reserve_usd: float = Field(0.0, ge=0)
    volume_usd: float = Field(0.0, ge=0)
    token0_price: float = Field(0.0, ge=0)
    token1_price: float = Field(0.0, ge=0)
    tx_count: int = Field(0, ge=0)

    @field_validator("id")
    @classmethod
    def normalize_id(cls, v: str) -> str:
        return v.strip().lower()

    def identity(self) -> Tuple[str, Optional[str], Optional[str], int]:
        """Fields that must agree across fetches of the same pair"""
        return (self.id, self.token0.id, self.token1.id, self.created_at_timestamp)

    @property
    def liquidity_symbol(self) -> str:
        """Display symbol of the liquidity token, e.g. ``DAI/WETH``"""
        return f"{self.token0.symbol}/{self.token1.symbol}"


class HistoricalPoint(BaseModel):
    """One time bucket of a pair's daily ("1d") or hourly ("1h") series."""

    interval: Literal["1d", "1h"]
    timestamp: datetime = Field(..., description="Bucket start in UTC")
    volume_usd: float = Field(0.0, ge=0)
    reserve_usd: float = Field(0.0, ge=0)
    reserve0: float = Field(0.0, ge=0)
    reserve1: float = Field(0.0, ge=0)
    tx_count: int = Field(0, ge=0)


# ============================================
# Event Schemas
# ============================================

class SwapEvent(BaseModel):
    """A swap executed against the pair."""

    id: str
    tx_hash: str
    timestamp: datetime
    amount0_in: float = 0.0
    amount0_out: float = 0.0
    amount1_in: float = 0.0
    amount1_out: float = 0.0
    amount_usd: float = 0.0
    to: Optional[str] = None


class LiquidityEvent(BaseModel):
    """A liquidity addition ("mint") or removal ("burn")."""

    id: str
    kind: Literal["mint", "burn"]
    tx_hash: str
    timestamp: datetime
    amount0: float = 0.0
    amount1: float = 0.0
    amount_usd: float = 0.0
    liquidity: float = 0.0
    account: Optional[str] = Field(None, description="Provider (mint.to / burn.sender)")


# ============================================
# Position & Balance Schemas
# ============================================

class LiquidityPosition(BaseModel):
    """Snapshot of an account's stake in one pair at one point in time."""

    pair_id: str
    timestamp: datetime
    liquidity_token_balance: float = 0.0
    liquidity_token_total_supply: float = 0.0
    reserve0: float = 0.0
    reserve1: float = 0.0
    reserve_usd: float = 0.0
    token0_price_usd: float = 0.0
    token1_price_usd: float = 0.0

    @property
    def pool_share(self) -> float:
        if self.liquidity_token_total_supply <= 0:
            return 0.0
        return self.liquidity_token_balance / self.liquidity_token_total_supply


class PositionSnapshot(BaseModel):
    """Aggregated liquidity-position statistics for one account."""

    account: str
    positions: List[LiquidityPosition] = Field(default_factory=list)

    def for_pair(self, pair_id: str) -> List[LiquidityPosition]:
        pair_id = pair_id.lower()
        return [p for p in self.positions if p.pair_id == pair_id]

    @property
    def pair_ids(self) -> List[str]:
        seen: Dict[str, None] = {}
        for position in self.positions:
            seen.setdefault(position.pair_id, None)
        return list(seen)


class TokenBalanceEntry(BaseModel):
    """
    One row of the wallet BalanceMap.

    Balances and allowances are raw integers in the token's base units.
    """

    id: str
    symbol: str
    decimals: int = Field(18, ge=0)
    balance: int = Field(0, ge=0)
    allowance: int = Field(0, ge=0)


# ============================================
# Ready Payloads
# ============================================

class PairDataPayload(BaseModel):
    """Pair/historical group: committed atomically as one unit."""

    pair_data: PairSnapshot
    historical_daily_data: List[HistoricalPoint]
    historical_hourly_data: List[HistoricalPoint]
    position_data: Optional[PositionSnapshot] = None


class SwapsPayload(BaseModel):
    """Swaps/mints-and-burns group: committed independently of pair data."""

    swaps: List[SwapEvent]
    mints_and_burns: List[LiquidityEvent]


# ============================================
# Fetch State
# ============================================

FetchStatus = Literal["idle", "loading", "error", "ready"]


class FetchState(BaseModel):
    """
    The externally observable state of one fetch group.

    Tagged variant: ``reason``/``error_kind`` are set only for "error",
    ``payload`` only for "ready". ``generation`` is the selection generation
    the state belongs to.
    """

    model_config = ConfigDict(frozen=True)

    group: str
    status: FetchStatus
    generation: int = 0
    reason: Optional[str] = None
    error_kind: Optional[str] = None
    payload: Optional[Any] = None
    updated_at: datetime = Field(default_factory=current_utc_datetime)

    @classmethod
    def idle(cls, group: str, generation: int = 0) -> "FetchState":
        return cls(group=group, status="idle", generation=generation)

    @classmethod
    def loading(cls, group: str, generation: int) -> "FetchState":
        return cls(group=group, status="loading", generation=generation)

    @classmethod
    def error(cls, group: str, generation: int, reason: str, error_kind: str) -> "FetchState":
        return cls(group=group, status="error", generation=generation, reason=reason, error_kind=error_kind)

    @classmethod
    def ready(cls, group: str, generation: int, payload: Any) -> "FetchState":
        return cls(group=group, status="ready", generation=generation, payload=payload)

    @property
    def is_idle(self) -> bool:
        return self.status == "idle"

    @property
    def is_loading(self) -> bool:
        return self.status == "loading"

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    @property
    def is_ready(self) -> bool:
        return self.status == "ready"
