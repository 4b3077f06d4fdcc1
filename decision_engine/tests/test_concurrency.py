from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from decision_engine.decisions.config import DecisionConfig
from decision_engine.decisions.errors import StateConflictError, StoreUnavailableError
from decision_engine.decisions.models import DecisionStatus
from decision_engine.decisions.store import InMemoryDecisionStore

from conftest import VISIT

PARTICIPANTS = ["user-alice", "user-bob", "user-carol", "user-dave"]


def _race(*calls):
    """Run every call at the same moment; return (results, errors)."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call(), None
        except Exception as exc:  # collected for assertions
            return None, exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        outcomes = list(pool.map(run, calls))
    return [r for r, _ in outcomes if r is not None], [e for _, e in outcomes if e is not None]


def test_concurrent_completion_produces_one_result(manager, tiered_decision, decision_store, notifier):
    manager.submit_group_vote(tiered_decision.id, "user-bob", ["r-b", "r-a"])

    results, errors = _race(
        *[lambda: manager.complete_tiered_group_decision(tiered_decision.id)] * 4
    )

    assert len(results) == 1
    assert len(errors) == 3
    assert all(isinstance(e, StateConflictError) for e in errors)
    stored = decision_store.get_by_id(tiered_decision.id)
    assert stored.status is DecisionStatus.completed
    assert stored.result == results[0]
    notifier.on_decision_completed.assert_called_once()


def test_close_and_complete_race(manager, tiered_decision, decision_store):
    manager.submit_group_vote(tiered_decision.id, "user-bob", ["r-b"])

    results, errors = _race(
        lambda: manager.complete_tiered_group_decision(tiered_decision.id),
        lambda: manager.close_group_decision(tiered_decision.id, "user-alice"),
    )

    assert len(results) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], StateConflictError)
    stored = decision_store.get_by_id(tiered_decision.id)
    assert stored.status in {DecisionStatus.completed, DecisionStatus.closed}
    assert (stored.result is not None) == (stored.status is DecisionStatus.completed)


def test_concurrent_votes_all_land(manager, tiered_decision, decision_store):
    rankings = {
        "user-alice": ["r-a"],
        "user-bob": ["r-b"],
        "user-carol": ["r-c"],
        "user-dave": ["r-a", "r-b"],
    }

    results, errors = _race(*[
        (lambda uid=uid, ranked=ranked: manager.submit_group_vote(tiered_decision.id, uid, ranked))
        for uid, ranked in rankings.items()
    ])

    assert errors == []
    assert len(results) == 4
    stored = decision_store.get_by_id(tiered_decision.id)
    assert {uid: v.rankings for uid, v in stored.votes.items()} == rankings


def test_concurrent_creation_keeps_single_active(manager, decision_store):
    results, errors = _race(*[
        (lambda: manager.create_group_decision("col-1", "grp-1", PARTICIPANTS, "tiered", VISIT))
        for _ in range(5)
    ])

    assert len(results) == 1
    assert len(errors) == 4
    assert all(isinstance(e, StateConflictError) for e in errors)
    assert decision_store.count == 1


def test_lock_timeout_is_retryable():
    store = InMemoryDecisionStore(DecisionConfig(store_timeout_seconds=0.05))
    store._lock.acquire()
    try:
        with pytest.raises(StoreUnavailableError) as exc:
            store.get_by_id("anything")
    finally:
        store._lock.release()

    assert exc.value.retryable is True
    assert exc.value.status_code == 503


def test_vote_landing_before_completion_is_counted(
    manager, tiered_decision, decision_store, monkeypatch,
):
    manager.submit_group_vote(tiered_decision.id, "user-bob", ["r-b"])
    conditional_update = decision_store.conditional_update_status

    def votes_arrive_first(decision_id, expected_status, mutator):
        manager.submit_group_vote(decision_id, "user-carol", ["r-c"])
        manager.submit_group_vote(decision_id, "user-dave", ["r-c"])
        return conditional_update(decision_id, expected_status, mutator)

    monkeypatch.setattr(decision_store, "conditional_update_status", votes_arrive_first)

    result = manager.complete_tiered_group_decision(tiered_decision.id)

    assert result.restaurant_id == "r-c"
    assert "3 of 4 participants voted" in result.reasoning
    stored = decision_store.get_by_id(tiered_decision.id)
    assert set(stored.votes) == {"user-bob", "user-carol", "user-dave"}
    assert stored.result == result
