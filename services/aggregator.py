"""
Aggregator: Single Writer of Dashboard State

Every cycle result reaches the presentation layer through this module and
nowhere else. Before any mutation the aggregator re-checks the cycle's
ticket:

1. Generation guard: a ticket from a superseded selection is dropped.
2. Sequence guard: within a group, a cycle launched earlier than the last
   committed one is dropped, so a slow refresh cannot overwrite a faster,
   newer one.

Dropped results raise StaleResultDiscarded internally; cycle runners catch
it, nothing is logged above DEBUG and no state changes.

Pair snapshots are merged, not replaced: the identity of a pair id is
recorded the first time it is seen in the session, later snapshots must
agree with it, and only the statistics move.
"""

from typing import Any, Callable, Dict, List, Optional

from core.errors import PairIdentityMismatch, StaleResultDiscarded, describe
from core.logging import get_logger, log_stale_result, log_state_transition
from core.schemas import (
    FetchState,
    HistoricalPoint,
    PairDataPayload,
    PairSnapshot,
    PositionSnapshot,
    Token,
)
from services.fetch_state import FetchStateMachine, Transition
from services.selection import CycleTicket, SelectionTracker


GROUPS = ("pair", "swaps", "balances")

Listener = Callable[[FetchState], Any]


def _same_token(recorded: Token, fresh: Token) -> bool:
    # an unknown id on either side is not a conflict
    return recorded.id is None or fresh.id is None or recorded.id == fresh.id


def _same_identity(recorded: PairSnapshot, fresh: PairSnapshot) -> bool:
    return (
        recorded.id == fresh.id
        and recorded.created_at_timestamp == fresh.created_at_timestamp
        and _same_token(recorded.token0, fresh.token0)
        and _same_token(recorded.token1, fresh.token1)
    )


def _merge_token(recorded: Token, fresh: Token) -> Token:
    return recorded.model_copy(
        update={
            "id": recorded.id or fresh.id,
            "symbol": fresh.symbol,
            "name": fresh.name,
            "decimals": fresh.decimals,
        }
    )


class Aggregator:
    """
    Owns the FetchStateMachines of all groups and the pair identity cache.

    Args:
        tracker: Selection tracker providing the current generation
        groups: Fetch groups exposed to the presentation layer

    Example:
        >>> aggregator = Aggregator(tracker)
        >>> ticket = tracker.issue("pair")
        >>> aggregator.begin(ticket)
        >>> aggregator.commit_ready(ticket, payload)
        >>> aggregator.state("pair").is_ready
        True
    """

    def __init__(self, tracker: SelectionTracker, groups=GROUPS) -> None:
        self._tracker = tracker
        self._machines: Dict[str, FetchStateMachine] = {g: FetchStateMachine(g) for g in groups}
        self._committed_sequence: Dict[str, int] = {g: 0 for g in groups}
        self._identities: Dict[str, PairSnapshot] = {}
        self._listeners: List[Listener] = []
        self._discarded = 0
        self._last_errors: Dict[str, Optional[str]] = {g: None for g in groups}
        self._logger = get_logger(__name__)

    # ============================================
    # Read Access
    # ============================================

    def state(self, group: str) -> FetchState:
        return self._machine(group).state

    def states(self) -> Dict[str, FetchState]:
        return {group: machine.state for group, machine in self._machines.items()}

    def accepts_refresh(self, group: str) -> bool:
        return self._machine(group).accepts_refresh(self._tracker.current_generation())

    def known_pair(self, pair_id: Optional[str]) -> Optional[PairSnapshot]:
        if not pair_id:
            return None
        return self._identities.get(pair_id.lower())

    @property
    def discarded_count(self) -> int:
        return self._discarded

    @property
    def last_errors(self) -> Dict[str, Optional[str]]:
        return dict(self._last_errors)

    def subscribe(self, listener: Listener) -> None:
        """Register a callback invoked with every new FetchState."""
        self._listeners.append(listener)

    # ============================================
    # Merge
    # ============================================

    def merge_pair(self, fresh: PairSnapshot) -> PairSnapshot:
        """
        Merge a freshly fetched snapshot into the session identity cache.

        A token id that was not indexed yet when the pair was recorded is
        adopted from the fresh snapshot; a known id never changes.

        Raises:
            PairIdentityMismatch: If identity fields differ from the ones
                recorded for this pair id earlier in the session
        """
        previous = self._identities.get(fresh.id)
        if previous is None:
            self._identities[fresh.id] = fresh
            return fresh

        if not _same_identity(previous, fresh):
            raise PairIdentityMismatch(
                f"Pair {fresh.id} identity changed: {previous.identity()} -> {fresh.identity()}"
            )

        merged = previous.model_copy(
            update={
                "reserve0": fresh.reserve0,
                "reserve1": fresh.reserve1,
                "reserve_usd": fresh.reserve_usd,
                "volume_usd": fresh.volume_usd,
                "token0_price": fresh.token0_price,
                "token1_price": fresh.token1_price,
                "tx_count": fresh.tx_count,
                # token metadata, ids included, may be filled in late by the indexer
                "token0": _merge_token(previous.token0, fresh.token0),
                "token1": _merge_token(previous.token1, fresh.token1),
            }
        )
        self._identities[fresh.id] = merged
        return merged

    # ============================================
    # Commit Operations
    # ============================================

    def check(self, ticket: CycleTicket) -> None:
        """
        Raise StaleResultDiscarded if ``ticket`` may no longer commit.
        """
        self._tracker.ensure_current(ticket)
        if ticket.sequence < self._committed_sequence.get(ticket.group, 0):
            raise StaleResultDiscarded(
                ticket.group, ticket.generation, self._tracker.current_generation(), ticket.sequence
            )

    def begin(self, ticket: CycleTicket) -> None:
        self._tracker.ensure_current(ticket)
        self._apply(ticket.group, self._machine(ticket.group).begin(ticket.generation))

    def reset(self, group: str, generation: int) -> None:
        if self._tracker.is_stale(generation):
            return
        self._apply(group, self._machine(group).reset(generation))

    def commit_ready(self, ticket: CycleTicket, payload: Any) -> None:
        self.check(ticket)
        self._committed_sequence[ticket.group] = ticket.sequence
        self._apply(ticket.group, self._machine(ticket.group).succeed(ticket.generation, payload))

    def record_pair(self, ticket: CycleTicket, fresh: PairSnapshot) -> PairSnapshot:
        """Guarded merge_pair for cycles that only need the pair identity."""
        self.check(ticket)
        return self.merge_pair(fresh)

    def commit_pair_data(
        self,
        ticket: CycleTicket,
        fresh: PairSnapshot,
        daily: List[HistoricalPoint],
        hourly: List[HistoricalPoint],
        position: Optional[PositionSnapshot] = None,
    ) -> PairDataPayload:
        """
        Merge the overview and commit the pair group as one Ready payload.

        Raises:
            StaleResultDiscarded: Ticket superseded; nothing was touched
            PairIdentityMismatch: Identity changed; nothing was committed
        """
        self.check(ticket)
        payload = PairDataPayload(
            pair_data=self.merge_pair(fresh),
            historical_daily_data=list(daily),
            historical_hourly_data=list(hourly),
            position_data=position,
        )
        self.commit_ready(ticket, payload)
        return payload

    def commit_error(self, ticket: CycleTicket, error: BaseException) -> None:
        self.check(ticket)
        kind, reason = describe(error)
        self._committed_sequence[ticket.group] = ticket.sequence
        self._last_errors[ticket.group] = reason
        self._apply(ticket.group, self._machine(ticket.group).fail(ticket.generation, reason, kind))

    def abandon(self, ticket: CycleTicket, group: str, error: BaseException) -> None:
        """
        Fail ``group`` because a cycle it depends on failed.

        Only a group still Loading in the ticket's generation is affected;
        the dependent cycle was never launched, so there is nothing else
        that could commit for it in this generation.
        """
        self._tracker.ensure_current(ticket)
        machine = self._machine(group)
        if machine.state.generation != ticket.generation or not machine.state.is_loading:
            return
        kind, reason = describe(error)
        self._last_errors[group] = reason
        self._apply(group, machine.fail(ticket.generation, reason, kind))

    def discard(self, stale: StaleResultDiscarded) -> None:
        """Record a result dropped by the guards."""
        self._discarded += 1
        log_stale_result(stale.group, stale.generation, stale.current_generation, stale.sequence)

    # ============================================
    # Internals
    # ============================================

    def _machine(self, group: str) -> FetchStateMachine:
        try:
            return self._machines[group]
        except KeyError:
            raise ValueError(f"Unknown fetch group '{group}'. Available: {', '.join(self._machines)}")

    def _apply(self, group: str, transition: Optional[Transition]) -> None:
        if transition is None:
            return
        previous, current = transition
        log_state_transition(group, previous.status, current.status, current.generation, current.reason)
        for listener in list(self._listeners):
            try:
                listener(current)
            except Exception as e:
                self._logger.error(f"State listener failed for {group}: {e}")
