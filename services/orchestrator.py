"""
Fetch Orchestrator

Sequences the market-data calls behind the two fetch groups of the pair
view.

Pair group (``run_pair_cycle``):
    1. Pair overview. Hard dependency: the daily window starts at the
       pair's creation time. A failure ends the cycle in Error and nothing
       else is launched.
    2. Concurrently: daily series, hourly series and, with a connected
       account, its position statistics. Joined all-or-nothing.

Swaps group (``run_swaps_cycle``):
    Latest swaps and latest mints/burns, concurrently, joined all-or-nothing.

When several members of a joined set fail, the failure reported is the
first one in launch order:

    pair:  daily > hourly > position
    swaps: swaps > mints_and_burns

Each remote call is bounded by ``request_timeout``; a timeout is reported
as a NetworkError like any other failed call.
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from core.config import settings
from core.errors import (
    AggregateIncomplete,
    NetworkError,
    PairDashError,
    PairIdentityMismatch,
    StaleResultDiscarded,
)
from core.interfaces import FetchResult, MarketDataAPI
from core.logging import get_logger
from core.schemas import PairDataPayload, PairSnapshot, SwapsPayload
from core.utils.formatting import format_usd
from core.utils.time import current_utc_datetime, daily_series_start, hourly_series_start
from services.aggregator import Aggregator
from services.selection import CycleTicket


class FetchOrchestrator:
    """
    Runs pair and swaps cycles against a MarketDataAPI.

    Args:
        api: Market data collaborator
        aggregator: Single writer receiving every result
        request_timeout: Per-call timeout in seconds
        hourly_lookback_days: Width of the hourly window
        clock: Returns "now" as a UTC datetime (injectable for tests)

    Example:
        >>> orchestrator = FetchOrchestrator(api, aggregator)
        >>> ticket = tracker.issue("pair")
        >>> payload = await orchestrator.run_pair_cycle(ticket)
    """

    def __init__(
        self,
        api: MarketDataAPI,
        aggregator: Aggregator,
        request_timeout: float = None,
        hourly_lookback_days: int = None,
        clock: Callable[[], datetime] = current_utc_datetime,
    ) -> None:
        self._api = api
        self._aggregator = aggregator
        self._timeout = request_timeout if request_timeout is not None else settings.request_timeout
        self._lookback_days = hourly_lookback_days if hourly_lookback_days is not None else settings.hourly_lookback_days
        self._clock = clock
        self._logger = get_logger(__name__)

    # ============================================
    # Call Helpers
    # ============================================

    async def _call(self, label: str, call: Awaitable[FetchResult]) -> FetchResult:
        """
        Await one collaborator call under the per-call timeout.

        The collaborator contract is result-or-error; an exception escaping
        it anyway is folded into the result as a NetworkError.
        """
        try:
            result = await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError:
            return FetchResult(error=NetworkError(f"{label} timed out after {self._timeout:g}s"))
        except PairDashError as e:
            return FetchResult(error=e)
        except Exception as e:
            return FetchResult(error=NetworkError(f"{label} failed: {e}"))

        if result.error is None and result.data is None:
            return FetchResult(error=NetworkError(f"{label} returned neither data nor error"))
        return result

    async def _join(self, calls: List[Tuple[str, Awaitable[FetchResult]]]) -> List[Any]:
        """
        Run ``calls`` concurrently and return their data in launch order.

        Raises:
            AggregateIncomplete: If any member failed; failures keep launch
                order, so the first one is the reported reason
        """
        results = await asyncio.gather(*(self._call(label, call) for label, call in calls))
        failures = [
            (label, result.error)
            for (label, _), result in zip(calls, results)
            if result.error is not None
        ]
        if failures:
            raise AggregateIncomplete(failures)
        return [result.data for result in results]

    async def fetch_overview(self, pair_id: str) -> FetchResult:
        """Pair overview under the per-call timeout, for pipelines outside the pair cycle."""
        return await self._call("overview", self._api.get_pair_overview(pair_id))

    # ============================================
    # Pair Group
    # ============================================

    async def run_pair_cycle(
        self,
        ticket: CycleTicket,
        after_overview: Optional[Callable[[PairSnapshot], Any]] = None,
        dependents: Tuple[str, ...] = ("swaps",),
    ) -> Optional[PairDataPayload]:
        """
        Fetch overview, then historical series (and positions), and commit.

        Args:
            ticket: Pair-group ticket captured at launch
            after_overview: Called with the overview once it succeeded and
                is still current, before the dependent calls are launched
            dependents: Groups that wait for the overview and fail with it

        Returns:
            The committed payload, or None if the cycle failed or went stale
        """
        key = ticket.key
        try:
            self._aggregator.begin(ticket)

            overview = await self._call("overview", self._api.get_pair_overview(key.pair_id))
            self._aggregator.check(ticket)

            if overview.error is not None:
                self._logger.warning(f"Could not fetch pair data for {key.pair_id}: {overview.error}")
                self._aggregator.commit_error(ticket, overview.error)
                for group in dependents:
                    self._aggregator.abandon(ticket, group, overview.error)
                return None

            pair: PairSnapshot = overview.data
            if after_overview is not None:
                after_overview(pair)

            # windows first, so no call is created for a cycle that cannot run
            try:
                daily_since = daily_series_start(pair.created_at_timestamp)
                hourly_since = hourly_series_start(self._clock(), self._lookback_days)
            except (ValueError, OverflowError) as e:
                error = NetworkError(f"Malformed overview for {key.pair_id}: {e}")
                self._logger.warning(str(error))
                self._aggregator.commit_error(ticket, error)
                return None

            calls = [
                ("daily", self._api.get_historical_daily_data(key.pair_id, daily_since)),
                ("hourly", self._api.get_historical_hourly_data(key.pair_id, hourly_since)),
            ]
            if key.has_account:
                calls.append(("position", self._api.get_position_stats(key.account)))

            try:
                values = await self._join(calls)
            except AggregateIncomplete as e:
                self._aggregator.check(ticket)
                self._logger.warning(
                    f"Could not fetch historical data for {key.pair_id}: {e} "
                    f"(failed: {', '.join(e.failed_members)})"
                )
                self._aggregator.commit_error(ticket, e)
                return None

            daily, hourly = values[0], values[1]
            position = values[2] if key.has_account else None

            try:
                payload = self._aggregator.commit_pair_data(ticket, pair, daily, hourly, position)
            except PairIdentityMismatch as e:
                self._logger.error(str(e))
                self._aggregator.commit_error(ticket, e)
                return None

            self._logger.info(
                f"pair:query pair={payload.pair_data.id} "
                f"token0={payload.pair_data.token0.symbol} token1={payload.pair_data.token1.symbol} "
                f"reserve={format_usd(payload.pair_data.reserve_usd)} "
                f"daily={len(daily)} hourly={len(hourly)}"
            )
            return payload

        except StaleResultDiscarded as stale:
            self._aggregator.discard(stale)
            return None

    # ============================================
    # Swaps Group
    # ============================================

    async def run_swaps_cycle(self, ticket: CycleTicket) -> Optional[SwapsPayload]:
        """
        Fetch latest swaps and mints/burns and commit them together.

        Returns:
            The committed payload, or None if the cycle failed or went stale
        """
        key = ticket.key
        try:
            self._aggregator.begin(ticket)
            try:
                swaps, mints_and_burns = await self._join([
                    ("swaps", self._api.get_latest_swaps(key.pair_id)),
                    ("mints_and_burns", self._api.get_mints_and_burns(key.pair_id)),
                ])
            except AggregateIncomplete as e:
                self._aggregator.check(ticket)
                self._logger.warning(f"Could not fetch trades data for {key.pair_id}: {e}")
                self._aggregator.commit_error(ticket, e)
                return None

            payload = SwapsPayload(swaps=swaps, mints_and_burns=mints_and_burns)
            self._aggregator.commit_ready(ticket, payload)
            return payload

        except StaleResultDiscarded as stale:
            self._aggregator.discard(stale)
            return None
