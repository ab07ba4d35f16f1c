"""
Error Taxonomy

Every failure the dashboard core can surface derives from PairDashError.
The class name of the error becomes the ``error_kind`` of an Error state and
its message becomes the ``reason``.

    PairDashError
    ├── NetworkError            remote call failed or timed out
    ├── MissingAddressError     pair lacks a required token address
    ├── AggregateIncomplete     not all members of a joined fetch set succeeded
    ├── PairIdentityMismatch    identity fields changed between fetches
    └── StaleResultDiscarded    internal; never shown to the presentation layer
"""

from typing import List, Optional, Tuple


class PairDashError(Exception):
    """Base class for all dashboard errors."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class NetworkError(PairDashError):
    """A remote API or chain query failed."""


class MissingAddressError(PairDashError):
    """The pair lacks a token address required for an on-chain query."""


class PairIdentityMismatch(PairDashError):
    """A refreshed pair snapshot disagrees with the identity recorded earlier."""


class AggregateIncomplete(PairDashError):
    """
    Not every member of a joined fetch set succeeded.

    ``failures`` keeps the failing members in launch order; the first one is
    the reported reason, so the message of the aggregate equals the message
    of the primary failure.
    """

    def __init__(self, failures: List[Tuple[str, Exception]]):
        if not failures:
            raise ValueError("AggregateIncomplete requires at least one failure")
        self.failures = list(failures)
        super().__init__(str(self.primary))

    @property
    def primary(self) -> Exception:
        return self.failures[0][1]

    @property
    def failed_members(self) -> List[str]:
        return [label for label, _ in self.failures]


class StaleResultDiscarded(PairDashError):
    """Raised internally when a superseded cycle tries to commit."""

    def __init__(self, group: str, generation: int, current_generation: int, sequence: Optional[int] = None):
        self.group = group
        self.generation = generation
        self.current_generation = current_generation
        self.sequence = sequence
        super().__init__(
            f"{group} result from generation {generation} discarded (current {current_generation})"
        )


def describe(error: BaseException) -> Tuple[str, str]:
    """
    Return ``(kind, reason)`` for an error about to be exposed.

    Errors outside the taxonomy are reported as NetworkError, since every
    remote failure reaching the core is a transport failure of some sort.
    """
    if isinstance(error, PairDashError):
        return error.kind, str(error)
    return NetworkError.__name__, str(error) or type(error).__name__
