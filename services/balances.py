"""
Balance & Allowance Resolver

Resolves what the add/remove-liquidity flow needs to know about a wallet
for the selected pair, as one all-or-nothing set of concurrent chain reads:

    native balance
    balanceOf   token0, token1, pair token
    allowance   token0, token1, pair token

The result is a BalanceMap keyed by symbol with exactly four entries:

    "ETH"          native currency (sentinel address, allowance 0)
    token0.symbol  token0 balance + allowance towards the add router
    token1.symbol  token1 balance + allowance towards the add router
    "currentPair"  pair token balance + allowance towards the remove router

Allowances are checked against the router that will actually spend the
token: the pair's own liquidity token is spent by the remove-liquidity
router, everything else by the add-liquidity router.
"""

import asyncio
from typing import Awaitable, Dict, List, Optional, Tuple

from core.config import settings
from core.errors import (
    AggregateIncomplete,
    MissingAddressError,
    NetworkError,
    PairDashError,
    StaleResultDiscarded,
)
from core.interfaces import ChainQuery
from core.logging import get_logger
from core.schemas import PairSnapshot, TokenBalanceEntry
from services.aggregator import Aggregator
from services.selection import CycleTicket


CURRENT_PAIR_KEY = "currentPair"

BalanceMap = Dict[str, TokenBalanceEntry]


class BalanceAllowanceResolver:
    """
    Builds BalanceMaps from concurrent ChainQuery reads.

    Args:
        chain: On-chain reader
        aggregator: Single writer receiving cycle results (cycles only)
        add_spender: Router spending token0/token1 when adding liquidity
        remove_spender: Router spending the pair token when removing liquidity
        native_address: Sentinel id of the native currency entry
        native_symbol: Key and symbol of the native currency entry
        request_timeout: Per-call timeout in seconds

    Example:
        >>> resolver = BalanceAllowanceResolver(chain)
        >>> balances = await resolver.resolve("0xdef...", pair)
        >>> balances["currentPair"].allowance
        0
    """

    def __init__(
        self,
        chain: ChainQuery,
        aggregator: Optional[Aggregator] = None,
        add_spender: str = None,
        remove_spender: str = None,
        native_address: str = None,
        native_symbol: str = None,
        request_timeout: float = None,
    ) -> None:
        self._chain = chain
        self._aggregator = aggregator
        self.add_spender = add_spender or settings.exchange_add_address
        self.remove_spender = remove_spender or settings.exchange_remove_address
        self.native_address = native_address or settings.native_token_address
        self.native_symbol = native_symbol or settings.native_token_symbol
        self._timeout = request_timeout if request_timeout is not None else settings.request_timeout
        self._logger = get_logger(__name__)

    # ============================================
    # Routing
    # ============================================

    def spender_for(self, pair: PairSnapshot, token_address: str) -> str:
        """
        Spender whose allowance matters for ``token_address``.

        Example:
            >>> resolver.spender_for(pair, pair.id) == resolver.remove_spender
            True
        """
        if token_address.lower() == pair.id.lower():
            return self.remove_spender
        return self.add_spender

    # ============================================
    # Resolution
    # ============================================

    async def _query(self, label: str, call: Awaitable[int]) -> int:
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise NetworkError(f"{label} timed out after {self._timeout:g}s")
        except PairDashError:
            raise
        except Exception as e:
            raise NetworkError(f"{label} failed: {e}") from e

    async def resolve(self, account: str, pair: PairSnapshot) -> BalanceMap:
        """
        Read balances and allowances of ``account`` for ``pair``.

        Raises:
            MissingAddressError: A token address is missing; no query was issued
            AggregateIncomplete: At least one chain read failed; the first
                failure in launch order is the reported reason
        """
        addresses = [pair.token0.id, pair.token1.id, pair.id]
        if not all(addresses):
            raise MissingAddressError(
                f"Could not get balance for pair {pair.id} without token address"
            )

        labels: List[str] = ["native_balance"]
        calls: List[Awaitable[int]] = [self._chain.native_balance(account)]
        for name, address in zip(("token0", "token1", "pair"), addresses):
            labels.append(f"{name}_balance")
            calls.append(self._chain.balance_of(address, account))
        for name, address in zip(("token0", "token1", "pair"), addresses):
            labels.append(f"{name}_allowance")
            calls.append(self._chain.allowance(address, account, self.spender_for(pair, address)))

        results = await asyncio.gather(
            *(self._query(label, call) for label, call in zip(labels, calls)),
            return_exceptions=True,
        )
        failures: List[Tuple[str, Exception]] = [
            (label, result) for label, result in zip(labels, results) if isinstance(result, Exception)
        ]
        if failures:
            raise AggregateIncomplete(failures)

        (native_balance,
         token0_balance, token1_balance, pair_balance,
         token0_allowance, token1_allowance, pair_allowance) = results

        balances: BalanceMap = {}
        self._put(balances, self.native_symbol, TokenBalanceEntry(
            id=self.native_address,
            symbol=self.native_symbol,
            decimals=18,
            balance=native_balance,
            allowance=0,
        ))
        for token, balance, allowance in (
            (pair.token0, token0_balance, token0_allowance),
            (pair.token1, token1_balance, token1_allowance),
        ):
            self._put(balances, token.symbol or token.id, TokenBalanceEntry(
                id=token.id,
                symbol=token.symbol or token.id,
                decimals=token.decimals,
                balance=balance,
                allowance=allowance,
            ))
        self._put(balances, CURRENT_PAIR_KEY, TokenBalanceEntry(
            id=pair.id,
            symbol=pair.liquidity_symbol,
            decimals=18,
            balance=pair_balance,
            allowance=pair_allowance,
        ))
        return balances

    def _put(self, balances: BalanceMap, key: str, entry: TokenBalanceEntry) -> None:
        # symbols are not unique on-chain; fall back to the address
        if key in balances:
            self._logger.debug(f"Balance key '{key}' already taken, using {entry.id}")
            key = entry.id
        balances[key] = entry

    # ============================================
    # Cycle
    # ============================================

    async def run_balances_cycle(self, ticket: CycleTicket, pair: PairSnapshot) -> Optional[BalanceMap]:
        """
        Resolve balances for the ticket's account and commit them.

        The caller has already begun the ticket. Returns the committed
        BalanceMap, or None if resolution failed or went stale.
        """
        if self._aggregator is None:
            raise RuntimeError("BalanceAllowanceResolver needs an aggregator to run cycles")
        account = ticket.key.account
        try:
            try:
                balances = await self.resolve(account, pair)
            except (MissingAddressError, AggregateIncomplete) as e:
                self._aggregator.check(ticket)
                self._logger.warning(f"Could not resolve balances for {account} on {pair.id}: {e}")
                self._aggregator.commit_error(ticket, e)
                return None

            self._aggregator.commit_ready(ticket, balances)
            self._logger.info(
                f"balances:query account={account} pair={pair.id} entries={len(balances)}"
            )
            return balances

        except StaleResultDiscarded as stale:
            self._aggregator.discard(stale)
            return None
