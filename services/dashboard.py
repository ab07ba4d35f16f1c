"""
Dashboard Controller

Wires the selection tracker, the aggregator and the two fetch pipelines
(market data and on-chain balances) into the object the HTTP adapter talks
to.

Launching a selection:
    - pair cycle: overview, then daily/hourly/position
    - swaps cycle: spawned once the overview succeeded
    - balances pipeline: independent, only with a connected account

All cycles run as background asyncio tasks. They are never cancelled; a
cycle outlived by a newer selection simply fails its staleness check when
it tries to commit.
"""

import asyncio
import contextlib
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from core.config import settings
from core.errors import PairIdentityMismatch, StaleResultDiscarded
from core.interfaces import ChainQuery, MarketDataAPI
from core.logging import get_logger
from core.schemas import FetchState, PairSnapshot
from core.utils.time import current_utc_datetime
from services.aggregator import GROUPS, Aggregator
from services.balances import BalanceAllowanceResolver
from services.event_bus import STATE_TOPIC, EventBus
from services.orchestrator import FetchOrchestrator
from services.selection import CycleTicket, SelectionTracker


class DashboardController:
    """
    Entry point of the dashboard core.

    Args:
        api: Market data collaborator
        chain: On-chain reader
        bus: Event bus receiving every committed FetchState (optional)
        request_timeout: Per-call timeout in seconds
        pair_refresh_interval: Seconds between periodic pair refreshes
        swaps_refresh_interval: Seconds between periodic swaps refreshes
        hourly_lookback_days: Width of the hourly window
        clock: Returns "now" as a UTC datetime

    Example:
        >>> controller = DashboardController(api, chain)
        >>> await controller.select("0xabc...", "0xdef...")
        >>> await controller.wait_idle()
        >>> controller.aggregator.state("pair").status
        'ready'
    """

    def __init__(
        self,
        api: MarketDataAPI,
        chain: ChainQuery,
        bus: Optional[EventBus] = None,
        request_timeout: float = None,
        pair_refresh_interval: float = None,
        swaps_refresh_interval: float = None,
        hourly_lookback_days: int = None,
        clock: Callable[[], datetime] = current_utc_datetime,
    ) -> None:
        self._logger = get_logger(__name__)
        self.tracker = SelectionTracker()
        self.aggregator = Aggregator(self.tracker)
        self.orchestrator = FetchOrchestrator(
            api,
            self.aggregator,
            request_timeout=request_timeout,
            hourly_lookback_days=hourly_lookback_days,
            clock=clock,
        )
        self.resolver = BalanceAllowanceResolver(
            chain,
            self.aggregator,
            request_timeout=request_timeout,
        )
        self._pair_interval = pair_refresh_interval or settings.pair_refresh_interval
        self._swaps_interval = swaps_refresh_interval or settings.swaps_refresh_interval

        self._bus = bus
        if bus is not None:
            self.aggregator.subscribe(self._publish)

        self._inflight: Set[asyncio.Task] = set()
        self._running = asyncio.Event()
        self._refresh_tasks: Dict[str, asyncio.Task] = {}

    # ============================================
    # Selection
    # ============================================

    async def select(self, pair_id: Optional[str], account: Optional[str] = None) -> int:
        """
        Point the dashboard at ``pair_id`` (and ``account``).

        Re-selecting the current key does nothing. Returns the current
        generation.
        """
        generation, changed = self.tracker.select(pair_id, account)
        if changed:
            self._launch(generation)
        return generation

    async def retry(self) -> int:
        """Relaunch every group for the current key under a new generation."""
        generation = self.tracker.bump()
        self._launch(generation)
        return generation

    def _launch(self, generation: int) -> None:
        key = self.tracker.key
        if not key.has_pair:
            for group in GROUPS:
                self.aggregator.reset(group, generation)
            return

        pair_ticket = self.tracker.issue("pair")
        swaps_ticket = self.tracker.issue("swaps")
        # every group shows Loading before the first await
        self.aggregator.begin(pair_ticket)
        self.aggregator.begin(swaps_ticket)

        if key.has_account:
            balances_ticket = self.tracker.issue("balances")
            self.aggregator.begin(balances_ticket)
            self._spawn(self._balances_pipeline(balances_ticket), balances_ticket)
        else:
            self.aggregator.reset("balances", generation)

        def after_overview(pair: PairSnapshot) -> None:
            self._spawn(self.orchestrator.run_swaps_cycle(swaps_ticket), swaps_ticket)

        self._spawn(
            self.orchestrator.run_pair_cycle(pair_ticket, after_overview, dependents=("swaps",)),
            pair_ticket,
        )

    # ============================================
    # Refresh Triggers
    # ============================================

    def _can_refresh(self, group: str) -> bool:
        key = self.tracker.key
        if not key.has_pair:
            return False
        if group == "balances" and not key.has_account:
            return False
        return self.aggregator.accepts_refresh(group)

    async def refresh_pair(self) -> bool:
        """Refresh pair data in place. Returns False if the trigger was skipped."""
        if not self._can_refresh("pair"):
            return False
        ticket = self.tracker.issue("pair")
        self._spawn(self.orchestrator.run_pair_cycle(ticket, dependents=()), ticket)
        return True

    async def refresh_swaps(self) -> bool:
        if not self._can_refresh("swaps"):
            return False
        ticket = self.tracker.issue("swaps")
        self._spawn(self.orchestrator.run_swaps_cycle(ticket), ticket)
        return True

    async def refresh_balances(self) -> bool:
        """Re-read balances and allowances, e.g. after an approval or a deposit."""
        if not self._can_refresh("balances"):
            return False
        ticket = self.tracker.issue("balances")
        self._spawn(self._balances_pipeline(ticket), ticket)
        return True

    async def refresh(self, group: str) -> bool:
        triggers = {
            "pair": self.refresh_pair,
            "swaps": self.refresh_swaps,
            "balances": self.refresh_balances,
        }
        if group not in triggers:
            raise ValueError(f"Unknown fetch group '{group}'. Available: {', '.join(triggers)}")
        return await triggers[group]()

    # ============================================
    # Balances Pipeline
    # ============================================

    async def _balances_pipeline(self, ticket: CycleTicket) -> None:
        key = ticket.key
        pair = self.aggregator.known_pair(key.pair_id)
        if pair is None:
            overview = await self.orchestrator.fetch_overview(key.pair_id)
            try:
                if overview.error is not None:
                    self.aggregator.check(ticket)
                    self._logger.warning(f"Could not fetch pair {key.pair_id} for balances: {overview.error}")
                    self.aggregator.commit_error(ticket, overview.error)
                    return
                pair = self.aggregator.record_pair(ticket, overview.data)
            except StaleResultDiscarded as stale:
                self.aggregator.discard(stale)
                return
            except PairIdentityMismatch as e:
                self._logger.error(str(e))
                self.aggregator.commit_error(ticket, e)
                return
        await self.resolver.run_balances_cycle(ticket, pair)

    # ============================================
    # Task Management
    # ============================================

    def _spawn(self, coro: Awaitable[Any], ticket: CycleTicket) -> asyncio.Task:
        name = f"{ticket.group}:g{ticket.generation}:s{ticket.sequence}"
        task = asyncio.create_task(coro, name=name)
        self._inflight.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._logger.error(f"Cycle {task.get_name()} crashed: {error!r}")

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    async def wait_idle(self) -> None:
        """Wait until every spawned cycle (and the cycles they spawn) finished."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ============================================
    # Periodic Refresh
    # ============================================

    async def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._logger.info(
            f"Starting periodic refresh (pair every {self._pair_interval:g}s, "
            f"swaps every {self._swaps_interval:g}s)..."
        )
        self._refresh_tasks = {
            "pair": asyncio.create_task(
                self._refresh_loop("pair", self._pair_interval, self.refresh_pair), name="refresh_pair"
            ),
            "swaps": asyncio.create_task(
                self._refresh_loop("swaps", self._swaps_interval, self.refresh_swaps), name="refresh_swaps"
            ),
        }

    async def stop(self) -> None:
        if not self._running.is_set():
            return
        self._logger.info("Stopping periodic refresh...")
        self._running.clear()
        for task in self._refresh_tasks.values():
            task.cancel()
        for task in self._refresh_tasks.values():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._refresh_tasks = {}
        await self.wait_idle()

    @property
    def running(self) -> bool:
        return self._running.is_set()

    async def _refresh_loop(self, group: str, interval: float, trigger: Callable[[], Awaitable[bool]]) -> None:
        while self._running.is_set():
            await asyncio.sleep(interval)
            try:
                launched = await trigger()
                if not launched:
                    self._logger.debug(f"Periodic {group} refresh skipped")
            except Exception as e:
                self._logger.error(f"Periodic {group} refresh failed: {e}")

    # ============================================
    # Exposure
    # ============================================

    def state(self, group: str) -> FetchState:
        return self.aggregator.state(group)

    def states(self) -> Dict[str, FetchState]:
        return self.aggregator.states()

    def diagnostics(self) -> Dict[str, Any]:
        """Point-in-time view of the core for debugging."""
        key = self.tracker.key
        return {
            "generation": self.tracker.current_generation(),
            "selection": {"pair_id": key.pair_id, "account": key.account},
            "states": {
                group: {
                    "status": state.status,
                    "generation": state.generation,
                    "reason": state.reason,
                    "error_kind": state.error_kind,
                    "updated_at": state.updated_at.isoformat(),
                }
                for group, state in self.aggregator.states().items()
            },
            "in_flight": self.in_flight,
            "discarded_stale_results": self.aggregator.discarded_count,
            "last_errors": self.aggregator.last_errors,
            "refreshing": self.running,
        }

    def _publish(self, state: FetchState) -> None:
        self._bus.publish_nowait(STATE_TOPIC, {"type": "state", **state.model_dump(mode="json")})
