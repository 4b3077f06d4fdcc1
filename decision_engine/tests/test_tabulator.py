from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from decision_engine.decisions.errors import NoVotesError
from decision_engine.decisions.models import Vote
from decision_engine.voting.tabulator import borda_scores, tabulate
from decision_engine.weighting.weights import SelectionStatistic

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
IDS = ["A", "B", "C"]


def _vote(user: str, *rankings: str) -> Vote:
    return Vote(user_id=user, rankings=list(rankings), submitted_at=NOW)


def test_borda_example():
    votes = [
        _vote("u1", "A", "B", "C"),
        _vote("u2", "B", "A", "C"),
        _vote("u3", "A", "C", "B"),
    ]
    tally = tabulate(IDS, votes, participant_count=3)

    assert tally.scores == {"A": 8, "B": 6, "C": 4}
    assert tally.winner_id == "A"
    assert tally.tied == ["A"]
    assert tally.reasoning == "Clear winner with 8 points (3 of 3 participants voted)"


def test_partial_rankings_score_by_their_own_length():
    scores = borda_scores(IDS, [_vote("u1", "C", "A"), _vote("u2", "B")])
    assert scores == {"A": 1, "B": 1, "C": 2}


def test_unknown_ids_ignored():
    scores = borda_scores(IDS, [_vote("u1", "Z", "A")])
    assert scores == {"A": 1, "B": 0, "C": 0}


def test_reasoning_counts_eligible_participants():
    tally = tabulate(IDS, [_vote("u1", "B")], participant_count=4)
    assert "1 of 4 participants voted" in tally.reasoning
    assert tally.winner_id == "B"


def test_no_votes_rejected():
    with pytest.raises(NoVotesError):
        tabulate(IDS, [])


def test_tie_with_equal_weight_picks_smallest_id():
    votes = [_vote("u1", "C", "B"), _vote("u2", "B", "C")]
    results = {tabulate(IDS, votes, statistics={}, now=NOW).winner_id for _ in range(25)}

    assert results == {"B"}


def test_tie_without_clock_is_still_deterministic():
    votes = [_vote("u1", "C", "B"), _vote("u2", "B", "C")]
    tally = tabulate(IDS, votes)
    assert tally.winner_id == "B"
    assert tally.tied == ["B", "C"]
    assert tally.reasoning.startswith("Tie between 2 restaurants with 3 points each")


def test_tie_prefers_less_recently_chosen():
    votes = [_vote("u1", "C", "B"), _vote("u2", "B", "C")]
    stats = {
        "B": SelectionStatistic(
            restaurant_id="B", selection_count=3, last_selected=NOW - timedelta(days=2),
        ),
    }
    tally = tabulate(IDS, votes, statistics=stats, now=NOW)

    assert tally.winner_id == "C"


def test_tie_weighs_both_contenders():
    votes = [_vote("u1", "C", "B"), _vote("u2", "B", "C")]
    stats = {
        "B": SelectionStatistic(restaurant_id="B", selection_count=1, last_selected=NOW),
        "C": SelectionStatistic(restaurant_id="C", selection_count=4, last_selected=NOW),
    }
    tally = tabulate(IDS, votes, statistics=stats, now=NOW)

    assert tally.winner_id == "B"
