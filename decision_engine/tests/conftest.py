from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pandas as pd
import pytest

from decision_engine.decisions.collections import InMemoryCollectionStore, InMemoryGroupDirectory
from decision_engine.decisions.manager import DecisionManager
from decision_engine.decisions.store import InMemoryDecisionStore
from decision_engine.selection.rng import SeededRng

NOW = datetime(2026, 10, 1, 18, 0, tzinfo=timezone.utc)
VISIT = datetime(2026, 10, 3, 19, 30, tzinfo=timezone.utc)

RESTAURANTS = pd.DataFrame([
    {"id": "r-a", "name": "Spice House"},
    {"id": "r-b", "name": "Pasta Palace"},
    {"id": "r-c", "name": "Curry Leaf"},
    {"id": "r-d", "name": "Taco Stand"},
])


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class SequenceRng:
    """Replays fixed draws, cycling when exhausted."""

    def __init__(self, *values: float) -> None:
        self.values = list(values)
        self.calls = 0

    def uniform(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def collection_store() -> InMemoryCollectionStore:
    store = InMemoryCollectionStore(RESTAURANTS)
    store.add_collection("col-1", ["r-a", "r-b", "r-c"], group_id="grp-1", name="Friday dinners")
    store.add_collection("col-2", ["r-a", "r-d"], owner_id="user-alice", name="Lunch spots")
    store.add_collection("col-empty", [], owner_id="user-alice")
    return store


@pytest.fixture
def group_directory() -> InMemoryGroupDirectory:
    directory = InMemoryGroupDirectory()
    directory.set_admins("grp-1", ["user-alice"])
    return directory


@pytest.fixture
def decision_store() -> InMemoryDecisionStore:
    return InMemoryDecisionStore()


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture
def manager(collection_store, decision_store, group_directory, clock, notifier) -> DecisionManager:
    return DecisionManager(
        collections=collection_store,
        decisions=decision_store,
        groups=group_directory,
        clock=clock,
        rng=SeededRng(7),
        notifier=notifier,
    )


@pytest.fixture
def tiered_decision(manager):
    return manager.create_group_decision(
        "col-1",
        "grp-1",
        ["user-alice", "user-bob", "user-carol", "user-dave"],
        "tiered",
        VISIT,
        created_by="user-alice",
    )
