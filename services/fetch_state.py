"""
Finite State Exposure

One FetchStateMachine per fetch group exposes the group's FetchState to the
presentation layer:

    Idle ──select──► Loading ──► Ready(payload)
                        │            │  refresh: stays Ready until the
                        ▼            │  next result replaces the payload
                  Error(reason)      ▼
                                  Error(reason)

- Idle: no pair selected
- Loading: first fetch of a generation in flight, nothing to show yet
- Ready: payload of the latest committed cycle
- Error: terminal for its generation; only a new generation restarts

Transitions never go back to an older generation. The machine itself does
not know about staleness of cycles; the Aggregator checks tickets before
calling it.
"""

from typing import Any, Optional, Tuple

from core.schemas import FetchState


Transition = Tuple[FetchState, FetchState]


class FetchStateMachine:
    """
    State holder for one fetch group.

    Every mutating method returns ``(previous, current)`` when the state
    changed and None otherwise.

    Example:
        >>> machine = FetchStateMachine("pair")
        >>> machine.begin(1)
        >>> machine.succeed(1, payload)
        >>> machine.state.is_ready
        True
    """

    def __init__(self, group: str) -> None:
        self.group = group
        self._state = FetchState.idle(group)

    @property
    def state(self) -> FetchState:
        return self._state

    def _move(self, new_state: FetchState) -> Transition:
        previous, self._state = self._state, new_state
        return previous, new_state

    def _is_older(self, generation: int) -> bool:
        return generation < self._state.generation

    def reset(self, generation: int) -> Optional[Transition]:
        """
        Go Idle for ``generation`` (nothing selected).

        An Idle group only adopts the new generation; that is not a
        transition and nothing is reported.
        """
        if self._is_older(generation):
            return None
        if self._state.is_idle:
            if self._state.generation != generation:
                self._state = self._state.model_copy(update={"generation": generation})
            return None
        return self._move(FetchState.idle(self.group, generation))

    def begin(self, generation: int) -> Optional[Transition]:
        """
        A cycle of ``generation`` is starting.

        A new generation always restarts at Loading and drops the previous
        payload. Within the same generation nothing changes: a Ready state
        keeps showing its payload while the refresh is in flight, and an
        Error stays terminal.
        """
        if self._is_older(generation):
            return None
        if self._state.generation == generation and not self._state.is_idle:
            return None
        return self._move(FetchState.loading(self.group, generation))

    def fail(self, generation: int, reason: str, error_kind: str) -> Optional[Transition]:
        if self._is_older(generation):
            return None
        return self._move(FetchState.error(self.group, generation, reason, error_kind))

    def succeed(self, generation: int, payload: Any) -> Optional[Transition]:
        if self._is_older(generation):
            return None
        if self._state.is_error and self._state.generation == generation:
            # a refresh launched before the failure must not clear the error
            return None
        return self._move(FetchState.ready(self.group, generation, payload))

    def accepts_refresh(self, generation: int) -> bool:
        """Whether a refresh of ``generation`` may be launched for this group."""
        return self._state.generation == generation and self._state.is_ready
