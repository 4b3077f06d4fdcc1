from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone

import pytest

from decision_engine.decisions.errors import EmptyCollectionError, ValidationError
from decision_engine.selection.random_selector import select_restaurant
from decision_engine.selection.rng import DefaultRng, SeededRng
from decision_engine.weighting.weights import SelectionStatistic

from conftest import SequenceRng

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
IDS = ["r-a", "r-b", "r-c"]


def test_empty_collection_rejected():
    with pytest.raises(EmptyCollectionError) as exc:
        select_restaurant([], {}, SequenceRng(0.5), NOW)
    assert isinstance(exc.value, ValidationError)


def test_low_draw_picks_first():
    assert select_restaurant(IDS, {}, SequenceRng(0.0), NOW).restaurant_id == "r-a"


def test_high_draw_picks_last():
    assert select_restaurant(IDS, {}, SequenceRng(0.9999), NOW).restaurant_id == "r-c"


def test_middle_draw_picks_middle():
    # cumulative weights are [1, 2, 3]; r = 1.5 first fits under 2
    assert select_restaurant(IDS, {}, SequenceRng(0.5), NOW).restaurant_id == "r-b"


def test_returns_weights_and_probabilities():
    stats = {"r-a": SelectionStatistic(restaurant_id="r-a", selection_count=20, last_selected=NOW)}
    selection = select_restaurant(IDS, stats, SequenceRng(0.5), NOW)

    assert selection.weights == pytest.approx({"r-a": 0.1, "r-b": 1.0, "r-c": 1.0})
    assert sum(selection.probabilities.values()) == pytest.approx(1.0)
    assert selection.probabilities["r-a"] == pytest.approx(0.1 / 2.1)


def test_reasoning_reports_weight_and_history():
    stats = {"r-a": SelectionStatistic(restaurant_id="r-a", selection_count=20, last_selected=NOW)}
    selection = select_restaurant(IDS, stats, SequenceRng(0.0), NOW)

    assert selection.restaurant_id == "r-a"
    assert selection.reasoning == (
        "Selected using weighted random algorithm. Weight: 0.10, Previous selections: 20"
    )


def test_group_reasoning():
    selection = select_restaurant(IDS, {}, SequenceRng(0.0), NOW, for_group=True)
    assert "weighted random algorithm for group" in selection.reasoning


def test_always_returns_collection_member():
    rng = DefaultRng()
    for _ in range(200):
        assert select_restaurant(IDS, {}, rng, NOW).restaurant_id in IDS


def test_equal_weights_are_uniform():
    rng = SeededRng(2024)
    counts = Counter(select_restaurant(IDS, {}, rng, NOW).restaurant_id for _ in range(10_000))

    assert set(counts) == set(IDS)
    for rid in IDS:
        assert abs(counts[rid] / 10_000 - 1 / 3) < 0.05


def test_penalised_restaurant_is_picked_less():
    stats = {"r-a": SelectionStatistic(restaurant_id="r-a", selection_count=18, last_selected=NOW)}
    rng = SeededRng(11)
    counts = Counter(select_restaurant(IDS, stats, rng, NOW).restaurant_id for _ in range(5_000))

    assert counts["r-a"] < counts["r-b"]
    assert counts["r-a"] < counts["r-c"]
