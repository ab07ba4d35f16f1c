"""
Selection Key Tracker & Staleness Guard

Owns the dashboard's current interest (pair + account) and the generation
counter distinguishing successive selections. Every asynchronous cycle
captures a CycleTicket when it is launched and re-checks it right before
committing anything; a ticket whose generation is no longer current is
stale and its result is dropped.

Nothing is ever cancelled here. Superseded work runs to completion and is
simply not allowed to commit.
"""

from typing import Dict, NamedTuple, Optional, Tuple

from core.errors import StaleResultDiscarded
from core.logging import get_logger
from core.schemas import SelectionKey


class CycleTicket(NamedTuple):
    """
    Captured at launch by every fetch cycle.

    Attributes:
        group: Fetch group the cycle belongs to ("pair", "swaps", "balances")
        generation: Selection generation at launch
        sequence: Launch order of the cycle within its group (all generations)
        key: Selection the cycle fetches for
    """

    group: str
    generation: int
    sequence: int
    key: SelectionKey


class SelectionTracker:
    """
    Holds the current SelectionKey and the monotonic generation counter.

    Example:
        >>> tracker = SelectionTracker()
        >>> generation, changed = tracker.select("0xabc", None)
        >>> ticket = tracker.issue("pair")
        >>> tracker.select("0xdef", None)
        >>> tracker.is_stale(ticket.generation)
        True
    """

    def __init__(self) -> None:
        self._key = SelectionKey()
        self._generation = 0
        self._sequences: Dict[str, int] = {}
        self._logger = get_logger(__name__)

    @property
    def key(self) -> SelectionKey:
        return self._key

    def current_generation(self) -> int:
        return self._generation

    def select(self, pair_id: Optional[str], account: Optional[str]) -> Tuple[int, bool]:
        """
        Record a new selection.

        A generation is minted only if the normalized key differs from the
        current one, so re-selecting the same pair is a no-op.

        Returns:
            (current generation, whether a new generation was minted)
        """
        key = SelectionKey(pair_id=pair_id, account=account)
        if key == self._key and self._generation > 0:
            return self._generation, False
        self._key = key
        self._generation += 1
        self._logger.info(
            f"Selection changed: pair={key.pair_id} account={key.account} | Generation: {self._generation}"
        )
        return self._generation, True

    def bump(self) -> int:
        """Mint a new generation for the unchanged key (explicit retry)."""
        self._generation += 1
        self._logger.info(f"Selection retried: pair={self._key.pair_id} | Generation: {self._generation}")
        return self._generation

    def is_stale(self, captured_generation: int) -> bool:
        return captured_generation != self._generation

    def issue(self, group: str) -> CycleTicket:
        """Capture a ticket for a cycle about to be launched."""
        sequence = self._sequences.get(group, 0) + 1
        self._sequences[group] = sequence
        return CycleTicket(group=group, generation=self._generation, sequence=sequence, key=self._key)

    def ensure_current(self, ticket: CycleTicket) -> None:
        """
        Raise StaleResultDiscarded if the ticket's generation was superseded.

        Raises:
            StaleResultDiscarded: Internal signal, never surfaced as an error
        """
        if self.is_stale(ticket.generation):
            raise StaleResultDiscarded(ticket.group, ticket.generation, self._generation, ticket.sequence)
