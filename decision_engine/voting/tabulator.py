from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Sequence

from ..decisions.errors import EmptyCollectionError, NoVotesError
from ..decisions.models import Vote
from ..weighting.config import DEFAULT_WEIGHTING_CONFIG, WeightingConfig
from ..weighting.weights import SelectionStatistic, weight_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tabulation:
    winner_id: str
    reasoning: str
    scores: dict[str, int] = field(default_factory=dict)
    tied: list[str] = field(default_factory=list)


def borda_scores(restaurant_ids: Sequence[str], votes: Sequence[Vote]) -> dict[str, int]:
    """
    Sum Borda points per restaurant.

    In a ranking of length ``k`` the restaurant at 1-indexed position ``p``
    earns ``k - p + 1`` points. Unranked restaurants earn nothing from that
    voter and ids outside the collection are ignored.
    """
    scores = {rid: 0 for rid in restaurant_ids}
    for vote in votes:
        k = len(vote.rankings)
        for position, rid in enumerate(vote.rankings, start=1):
            if rid in scores:
                scores[rid] += k - position + 1
    return scores


def _break_tie(
    tied: list[str],
    statistics: Mapping[str, SelectionStatistic],
    now: datetime | None,
    config: WeightingConfig,
) -> str:
    if now is None:
        return min(tied)

    def weight(rid: str) -> float:
        stat = statistics.get(rid) or SelectionStatistic(restaurant_id=rid)
        return weight_for(stat, now, config)

    # Highest weight first, then smallest id
    return min(tied, key=lambda rid: (-weight(rid), rid))


def tabulate(
    restaurant_ids: Sequence[str],
    votes: Sequence[Vote],
    statistics: Mapping[str, SelectionStatistic] | None = None,
    now: datetime | None = None,
    participant_count: int | None = None,
    config: WeightingConfig = DEFAULT_WEIGHTING_CONFIG,
) -> Tabulation:
    """Pick the consensus winner of a tiered decision."""
    if not votes:
        raise NoVotesError()
    if not restaurant_ids:
        raise EmptyCollectionError()

    scores = borda_scores(restaurant_ids, votes)
    top_score = max(scores.values())
    tied = sorted(rid for rid, score in scores.items() if score == top_score)

    eligible = participant_count if participant_count is not None else len(votes)
    turnout = f"{len(votes)} of {eligible} participants voted"

    if len(tied) == 1:
        winner = tied[0]
        reasoning = f"Clear winner with {top_score} points ({turnout})"
    else:
        winner = _break_tie(tied, statistics or {}, now, config)
        reasoning = (
            f"Tie between {len(tied)} restaurants with {top_score} points each ({turnout}); "
            f"selected {winner} by selection weight, then restaurant id"
        )

    logger.debug("Tabulated %d votes: scores=%s winner=%s", len(votes), scores, winner)
    return Tabulation(winner_id=winner, reasoning=reasoning, scores=scores, tied=tied)
