"""
Unit Tests for the Aggregator

These tests verify that the single writer:
- Drops results of superseded generations and older launches
- Commits pair data atomically and merges the pair identity
- Rejects identity changes of a known pair, but adopts late-indexed token ids
- Notifies listeners of every transition and survives failing listeners

Run with:
    pytest tests/unit/test_aggregator.py -v
"""

import pytest

from core.errors import AggregateIncomplete, NetworkError, PairIdentityMismatch, StaleResultDiscarded
from core.schemas import Token
from services.aggregator import Aggregator
from services.selection import SelectionTracker

from tests.fakes import DAI, DAI_WETH, USDC, USDC_WETH, make_pair, make_points


@pytest.fixture
def tracker():
    tracker = SelectionTracker()
    tracker.select(DAI_WETH, None)
    return tracker


@pytest.fixture
def aggregator(tracker):
    return Aggregator(tracker)


class TestStalenessGuard:

    def test_stale_generation_cannot_commit(self, tracker, aggregator):
        old = tracker.issue("pair")
        aggregator.begin(old)
        tracker.select(USDC_WETH, None)
        new = tracker.issue("pair")
        aggregator.begin(new)

        with pytest.raises(StaleResultDiscarded):
            aggregator.commit_ready(old, "old payload")
        assert aggregator.state("pair").is_loading
        assert aggregator.state("pair").generation == 2

    def test_older_launch_cannot_overwrite_newer_commit(self, tracker, aggregator):
        first = tracker.issue("swaps")
        second = tracker.issue("swaps")
        aggregator.begin(first)
        aggregator.commit_ready(second, "newer")

        with pytest.raises(StaleResultDiscarded):
            aggregator.commit_ready(first, "older")
        assert aggregator.state("swaps").payload == "newer"

    def test_discard_counts_without_state_change(self, tracker, aggregator):
        ticket = tracker.issue("pair")
        aggregator.begin(ticket)
        aggregator.discard(StaleResultDiscarded("pair", 1, 2, 1))
        assert aggregator.discarded_count == 1
        assert aggregator.state("pair").is_loading


class TestCommits:

    def test_commit_pair_data_builds_payload(self, tracker, aggregator):
        ticket = tracker.issue("pair")
        aggregator.begin(ticket)
        payload = aggregator.commit_pair_data(ticket, make_pair(), make_points("1d"), make_points("1h"))

        state = aggregator.state("pair")
        assert state.is_ready
        assert state.payload is payload
        assert payload.pair_data.id == DAI_WETH
        assert payload.position_data is None
        assert aggregator.known_pair(DAI_WETH.upper().replace("0X", "0x")) is not None

    def test_commit_error_uses_primary_failure(self, tracker, aggregator):
        ticket = tracker.issue("pair")
        aggregator.begin(ticket)
        error = AggregateIncomplete([("daily", NetworkError("daily down")), ("hourly", NetworkError("hourly down"))])
        aggregator.commit_error(ticket, error)

        state = aggregator.state("pair")
        assert state.is_error
        assert state.reason == "daily down"
        assert state.error_kind == "AggregateIncomplete"
        assert aggregator.last_errors["pair"] == "daily down"

    def test_foreign_exception_reported_as_network_error(self, tracker, aggregator):
        ticket = tracker.issue("balances")
        aggregator.begin(ticket)
        aggregator.commit_error(ticket, ConnectionResetError("reset by peer"))
        assert aggregator.state("balances").error_kind == "NetworkError"

    def test_abandon_only_touches_loading_group(self, tracker, aggregator):
        pair_ticket = tracker.issue("pair")
        swaps_ticket = tracker.issue("swaps")
        aggregator.begin(pair_ticket)
        aggregator.begin(swaps_ticket)

        aggregator.abandon(pair_ticket, "swaps", NetworkError("rate limited"))
        aggregator.abandon(pair_ticket, "balances", NetworkError("rate limited"))

        assert aggregator.state("swaps").is_error
        assert aggregator.state("swaps").reason == "rate limited"
        assert aggregator.state("balances").is_idle

    def test_reset_of_stale_generation_is_ignored(self, tracker, aggregator):
        tracker.select(USDC_WETH, None)
        aggregator.reset("pair", 1)
        assert aggregator.state("pair").generation == 0

    def test_unknown_group_is_rejected(self, tracker, aggregator):
        with pytest.raises(ValueError):
            aggregator.state("prices")


class TestPairMerge:

    def test_refresh_updates_statistics_only(self, aggregator):
        aggregator.merge_pair(make_pair(reserve_usd=100.0))
        merged = aggregator.merge_pair(make_pair(reserve_usd=200.0, tx_count=43))
        assert merged.reserve_usd == 200.0
        assert merged.tx_count == 43
        assert merged.created_at_timestamp == make_pair().created_at_timestamp

    def test_identity_change_is_rejected(self, aggregator):
        aggregator.merge_pair(make_pair())
        changed = make_pair()
        changed = changed.model_copy(update={"token0": changed.token0.model_copy(update={"id": USDC})})
        with pytest.raises(PairIdentityMismatch):
            aggregator.merge_pair(changed)
        assert aggregator.known_pair(DAI_WETH).token0.id != USDC

    def test_late_indexed_token_id_is_adopted(self, aggregator):
        pending = make_pair()
        pending = pending.model_copy(update={"token0": Token(symbol="DAI")})
        aggregator.merge_pair(pending)

        merged = aggregator.merge_pair(make_pair())

        assert merged.token0.id == DAI
        assert aggregator.known_pair(DAI_WETH).token0.id == DAI

    def test_known_token_id_survives_unindexed_snapshot(self, aggregator):
        aggregator.merge_pair(make_pair())
        pending = make_pair()
        pending = pending.model_copy(update={"token0": Token(symbol="DAI")})

        merged = aggregator.merge_pair(pending)

        assert merged.token0.id == DAI

    def test_filled_in_token_id_may_not_change_again(self, aggregator):
        pending = make_pair()
        aggregator.merge_pair(pending.model_copy(update={"token0": Token(symbol="DAI")}))
        aggregator.merge_pair(make_pair())

        changed = make_pair()
        changed = changed.model_copy(update={"token0": changed.token0.model_copy(update={"id": USDC})})
        with pytest.raises(PairIdentityMismatch):
            aggregator.merge_pair(changed)

    def test_stale_ticket_does_not_touch_identity_cache(self, tracker, aggregator):
        ticket = tracker.issue("pair")
        tracker.select(USDC_WETH, None)
        with pytest.raises(StaleResultDiscarded):
            aggregator.record_pair(ticket, make_pair())
        assert aggregator.known_pair(DAI_WETH) is None


class TestListeners:

    def test_listener_sees_every_transition(self, tracker, aggregator):
        seen = []
        aggregator.subscribe(lambda state: seen.append((state.group, state.status)))
        ticket = tracker.issue("swaps")
        aggregator.begin(ticket)
        aggregator.commit_ready(ticket, "payload")
        assert seen == [("swaps", "loading"), ("swaps", "ready")]

    def test_failing_listener_does_not_block_commit(self, tracker, aggregator):
        def broken(state):
            raise RuntimeError("listener down")

        aggregator.subscribe(broken)
        ticket = tracker.issue("swaps")
        aggregator.begin(ticket)
        aggregator.commit_ready(ticket, "payload")
        assert aggregator.state("swaps").is_ready
