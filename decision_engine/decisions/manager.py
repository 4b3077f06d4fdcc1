from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from ..selection.random_selector import select_restaurant
from ..selection.rng import DefaultRng, Rng
from ..voting.tabulator import tabulate
from ..weighting.config import DEFAULT_WEIGHTING_CONFIG, WeightingConfig
from ..weighting.weights import SelectionStatistic
from .clock import Clock, SystemClock
from .collections import CollectionStore, GroupDirectory
from .config import DEFAULT_DECISION_CONFIG, DecisionConfig
from .errors import (
    DecisionNotActiveError,
    DecisionNotFoundError,
    InvalidRankingError,
    NoVotesError,
    NotAParticipantError,
    NotAuthorizedError,
    RestaurantNotInCollectionError,
    UnsupportedMethodError,
    WrongMethodError,
)
from .models import (
    Decision,
    DecisionMethod,
    DecisionPage,
    DecisionStatistics,
    DecisionStatus,
    DecisionType,
    HistoryFilter,
    Result,
    Vote,
    VoteReceipt,
)
from .notifier import LoggingNotifier, Notifier
from .statistics import build_statistics, weights_for_collection
from .store import DecisionStore

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so every stored timestamp is comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _dedupe(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def _parse_method(method: DecisionMethod | str) -> DecisionMethod:
    try:
        return DecisionMethod(method)
    except ValueError:
        raise UnsupportedMethodError(f"Unknown decision method: {method}") from None


class DecisionManager:
    """
    Owns the decision state machine.

    ``active -> completed`` happens through random selection at creation or
    an explicit tiered completion; ``active -> closed`` through an admin
    close. Terminal decisions never change again. Every transition goes
    through the store's conditional update, so the manager keeps no state
    of its own between calls.
    """

    def __init__(
        self,
        collections: CollectionStore,
        decisions: DecisionStore,
        groups: GroupDirectory,
        clock: Clock | None = None,
        rng: Rng | None = None,
        notifier: Notifier | None = None,
        weighting_config: WeightingConfig = DEFAULT_WEIGHTING_CONFIG,
        config: DecisionConfig = DEFAULT_DECISION_CONFIG,
    ) -> None:
        self.collections = collections
        self.decisions = decisions
        self.groups = groups
        self.clock = clock or SystemClock()
        self.rng = rng or DefaultRng()
        self.notifier = notifier or LoggingNotifier()
        self.weighting_config = weighting_config
        self.config = config

    # ── Helpers ──────────────────────────────────────────────────────────

    def _now(self) -> datetime:
        return _as_utc(self.clock.now())

    def _statistics(self, collection_id: str, now: datetime) -> dict[str, SelectionStatistic]:
        completed = self.decisions.completed_for_collection(collection_id)
        return build_statistics(completed, now, self.weighting_config)

    def _require_decision(self, decision_id: str) -> Decision:
        decision = self.decisions.get_by_id(decision_id)
        if decision is None:
            raise DecisionNotFoundError(f"Decision {decision_id} not found")
        return decision

    def _notify(self, decision: Decision, result: Result) -> None:
        try:
            self.notifier.on_decision_completed(decision, result)
        except Exception:
            logger.warning(
                "Completion notification failed for decision %s", decision.id, exc_info=True,
            )

    def _random_result(self, collection_id: str, now: datetime, for_group: bool) -> Result:
        restaurant_ids = self.collections.list_restaurant_ids(collection_id)
        selection = select_restaurant(
            restaurant_ids,
            self._statistics(collection_id, now),
            self.rng,
            now,
            self.weighting_config,
            for_group=for_group,
        )
        return Result(
            restaurant_id=selection.restaurant_id,
            selected_at=now,
            reasoning=selection.reasoning,
            weights=selection.probabilities,
        )

    @staticmethod
    def _validate_rankings(rankings: Sequence[str], restaurant_ids: Sequence[str]) -> list[str]:
        if not rankings:
            raise InvalidRankingError("Rankings must include at least one restaurant")
        ranked = [str(r) for r in rankings]
        if len(set(ranked)) != len(ranked):
            raise InvalidRankingError("Rankings contain duplicate restaurants")
        allowed = set(restaurant_ids)
        unknown = [r for r in ranked if r not in allowed]
        if unknown:
            raise InvalidRankingError(
                f"Restaurants not in this collection: {', '.join(unknown)}"
            )
        return ranked

    # ── Creation ─────────────────────────────────────────────────────────

    def create_personal_decision(
        self,
        collection_id: str,
        user_id: str,
        method: DecisionMethod | str,
        visit_date: datetime,
    ) -> Decision:
        """
        Create a personal decision and resolve it immediately.

        Only the random method exists for personal decisions; tiered voting
        needs more than one party.
        """
        method = _parse_method(method)
        if method is not DecisionMethod.random:
            raise UnsupportedMethodError(
                f"Personal decisions do not support the {method.value} method"
            )

        now = self._now()
        result = self._random_result(collection_id, now, for_group=False)
        decision = Decision(
            type=DecisionType.personal,
            collection_id=collection_id,
            method=method,
            status=DecisionStatus.completed,
            deadline=now,
            visit_date=_as_utc(visit_date),
            result=result,
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )
        created = self.decisions.create(decision)
        logger.info(
            "Personal decision %s on collection %s selected %s",
            created.id, collection_id, result.restaurant_id,
        )
        self._notify(created, result)
        return created

    def create_group_decision(
        self,
        collection_id: str,
        group_id: str,
        participants: Iterable[str],
        method: DecisionMethod | str,
        visit_date: datetime,
        deadline_hours: float | None = None,
        created_by: str | None = None,
    ) -> Decision:
        """
        Start a group decision.

        Random decisions are stored already completed; tiered decisions stay
        active until completed or closed.
        """
        method = _parse_method(method)
        if method is DecisionMethod.manual:
            raise UnsupportedMethodError("Manual decisions are recorded, not started")

        # Existence check before any work; raises CollectionNotFoundError
        self.collections.get_collection(collection_id)

        now = self._now()
        hours = self.config.default_deadline_hours if deadline_hours is None else deadline_hours
        fields = dict(
            type=DecisionType.group,
            collection_id=collection_id,
            group_id=group_id,
            method=method,
            deadline=now + timedelta(hours=hours),
            visit_date=_as_utc(visit_date),
            participants=_dedupe(participants),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )

        if method is DecisionMethod.random:
            result = self._random_result(collection_id, now, for_group=True)
            created = self.decisions.create(
                Decision(status=DecisionStatus.completed, result=result, **fields)
            )
            logger.info(
                "Group decision %s (random) on collection %s selected %s",
                created.id, collection_id, result.restaurant_id,
            )
            self._notify(created, result)
            return created

        created = self.decisions.create(Decision(**fields))
        logger.info(
            "Group decision %s (tiered) opened on collection %s for %d participants",
            created.id, collection_id, len(created.participants),
        )
        return created

    def record_manual_decision(
        self,
        collection_id: str,
        user_id: str,
        restaurant_id: str,
        visit_date: datetime,
        group_id: str | None = None,
        notes: str | None = None,
    ) -> Decision:
        """Record a visit the user chose themselves; it counts toward selection history."""
        restaurant_ids = self.collections.list_restaurant_ids(collection_id)
        if restaurant_id not in restaurant_ids:
            raise RestaurantNotInCollectionError(
                f"Restaurant {restaurant_id} is not in collection {collection_id}"
            )

        now = self._now()
        visit = _as_utc(visit_date)
        decision = Decision(
            type=DecisionType.group if group_id else DecisionType.personal,
            collection_id=collection_id,
            group_id=group_id,
            method=DecisionMethod.manual,
            status=DecisionStatus.completed,
            deadline=visit,
            visit_date=visit,
            participants=[user_id] if group_id else [],
            result=Result(
                restaurant_id=restaurant_id,
                selected_at=now,
                reasoning=notes or "Manually entered decision",
            ),
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )
        created = self.decisions.create(decision, exclusive=False)
        logger.info("Manual decision %s recorded for restaurant %s", created.id, restaurant_id)
        return created

    # ── Voting ───────────────────────────────────────────────────────────

    def submit_group_vote(
        self,
        decision_id: str,
        user_id: str,
        rankings: Sequence[str],
    ) -> VoteReceipt:
        decision = self._require_decision(decision_id)
        if not decision.is_active:
            raise DecisionNotActiveError(
                f"Decision {decision_id} is {decision.status.value}"
            )
        if user_id not in decision.participants:
            raise NotAParticipantError()

        restaurant_ids = self.collections.list_restaurant_ids(decision.collection_id)
        ranked = self._validate_rankings(rankings, restaurant_ids)

        vote = Vote(user_id=user_id, rankings=ranked, submitted_at=self._now())
        if self.decisions.upsert_vote(decision_id, vote) is None:
            raise DecisionNotActiveError(f"Decision {decision_id} closed before the vote landed")

        logger.debug("Vote from %s stored on decision %s: %s", user_id, decision_id, ranked)
        return VoteReceipt(success=True, message="Vote submitted successfully")

    # ── Transitions ──────────────────────────────────────────────────────

    def complete_tiered_group_decision(self, decision_id: str) -> Result:
        """
        Tally the votes and complete a tiered decision.

        The tally runs inside the store's conditional update, on the votes
        stored at that moment, so every acknowledged vote is counted.
        """
        decision = self._require_decision(decision_id)
        if not decision.is_active:
            raise DecisionNotActiveError(
                f"Decision {decision_id} is {decision.status.value}"
            )
        if decision.method is not DecisionMethod.tiered:
            raise WrongMethodError()
        if not decision.votes:
            raise NoVotesError()

        now = self._now()
        restaurant_ids = self.collections.list_restaurant_ids(decision.collection_id)
        statistics = self._statistics(decision.collection_id, now)
        outcome: list[Result] = []

        def complete(draft: Decision) -> None:
            if not draft.votes:
                raise NoVotesError()
            tally = tabulate(
                restaurant_ids,
                list(draft.votes.values()),
                statistics=statistics,
                now=now,
                participant_count=len(draft.participants),
                config=self.weighting_config,
            )
            result = Result(
                restaurant_id=tally.winner_id,
                selected_at=now,
                reasoning=tally.reasoning,
                weights={rid: float(score) for rid, score in tally.scores.items()},
            )
            draft.status = DecisionStatus.completed
            draft.result = result
            draft.updated_at = now
            outcome.append(result)

        completed = self.decisions.conditional_update_status(
            decision_id, DecisionStatus.active, complete,
        )
        if completed is None:
            raise DecisionNotActiveError(f"Decision {decision_id} was already completed or closed")

        result = outcome[0]
        logger.info(
            "Tiered decision %s completed with %s (%d votes)",
            decision_id, result.restaurant_id, len(completed.votes),
        )
        self._notify(completed, result)
        return result

    def close_group_decision(self, decision_id: str, user_id: str) -> Decision:
        decision = self._require_decision(decision_id)
        if not decision.is_active:
            raise DecisionNotActiveError(f"Decision {decision_id} is not active")
        if decision.group_id is None or not self.groups.is_admin(decision.group_id, user_id):
            raise NotAuthorizedError()

        now = self._now()

        def close(draft: Decision) -> None:
            draft.status = DecisionStatus.closed
            draft.updated_at = now

        closed = self.decisions.conditional_update_status(
            decision_id, DecisionStatus.active, close,
        )
        if closed is None:
            raise DecisionNotActiveError(f"Decision {decision_id} is not active")

        logger.info("Group decision %s closed by %s", decision_id, user_id)
        return closed

    # ── Queries ──────────────────────────────────────────────────────────

    def get_group_decision(self, decision_id: str, user_id: str | None = None) -> Decision:
        """
        Fetch one decision.

        With *user_id* the caller must be a participant, the creator or an
        admin of the decision's group, matching what history shows them.
        """
        decision = self._require_decision(decision_id)
        if user_id is None:
            return decision
        if user_id in decision.participants or decision.created_by == user_id:
            return decision
        if decision.group_id is not None and self.groups.is_admin(decision.group_id, user_id):
            return decision
        raise NotAParticipantError()

    def get_decision_history(self, filters: HistoryFilter | None = None) -> DecisionPage:
        filters = filters or HistoryFilter(limit=self.config.default_history_limit)
        filters = filters.model_copy(update={
            "start_date": _as_utc(filters.start_date) if filters.start_date else None,
            "end_date": _as_utc(filters.end_date) if filters.end_date else None,
            "limit": min(filters.limit, self.config.max_history_limit),
        })

        restaurant_ids = None
        if filters.search and filters.search.strip():
            restaurant_ids = self.collections.find_restaurant_ids(filters.search)

        decisions, total = self.decisions.query(filters, restaurant_ids)
        return DecisionPage(
            decisions=decisions,
            total=total,
            offset=filters.offset,
            limit=filters.limit,
            has_more=filters.offset + filters.limit < total,
        )

    def get_active_group_decisions(
        self, group_id: str, limit: int | None = None, offset: int = 0,
    ) -> DecisionPage:
        return self.get_decision_history(HistoryFilter(
            group_id=group_id,
            type=DecisionType.group,
            status=DecisionStatus.active,
            limit=self.config.default_history_limit if limit is None else limit,
            offset=offset,
        ))

    def get_decision_statistics(self, collection_id: str) -> DecisionStatistics:
        self.collections.get_collection(collection_id)
        now = self._now()
        completed = self.decisions.completed_for_collection(collection_id)
        stats = build_statistics(
            completed, now, self.weighting_config, self.collections.restaurant_name,
        )
        return DecisionStatistics(
            collection_id=collection_id,
            total_decisions=len(completed),
            restaurant_stats=sorted(stats.values(), key=lambda s: s.restaurant_id),
        )

    def get_collection_weights(self, collection_id: str) -> list[SelectionStatistic]:
        restaurant_ids = self.collections.list_restaurant_ids(collection_id)
        now = self._now()
        completed = self.decisions.completed_for_collection(collection_id)
        stats = build_statistics(
            completed, now, self.weighting_config, self.collections.restaurant_name,
        )
        return weights_for_collection(restaurant_ids, stats, self.collections.restaurant_name)
