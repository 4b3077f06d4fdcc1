"""
Decision persistence.

``InMemoryDecisionStore`` is append-only: decisions are inserted once and
afterwards only replaced through conditional writes, never deleted. Every
write runs under one lock so a status check and the mutation it guards are
a single atomic step. A production store would map the same operations onto
conditional updates in its database.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Protocol

from .config import DEFAULT_DECISION_CONFIG, DecisionConfig
from .errors import (
    ActiveDecisionExistsError,
    DecisionNotFoundError,
    StoreUnavailableError,
)
from .models import Decision, DecisionStatus, HistoryFilter, Vote

logger = logging.getLogger(__name__)

Mutator = Callable[[Decision], None]


class DecisionStore(Protocol):
    def create(self, decision: Decision, exclusive: bool = True) -> Decision:
        ...

    def get_by_id(self, decision_id: str) -> Decision | None:
        ...

    def conditional_update_status(
        self, decision_id: str, expected_status: DecisionStatus, mutator: Mutator,
    ) -> Decision | None:
        ...

    def upsert_vote(self, decision_id: str, vote: Vote) -> Decision | None:
        ...

    def query(
        self, filters: HistoryFilter, restaurant_ids: set[str] | None = None,
    ) -> tuple[list[Decision], int]:
        ...

    def completed_for_collection(self, collection_id: str) -> list[Decision]:
        ...


def _matches(
    decision: Decision, filters: HistoryFilter, restaurant_ids: set[str] | None,
) -> bool:
    if filters.collection_id and decision.collection_id != filters.collection_id:
        return False
    if filters.group_id and decision.group_id != filters.group_id:
        return False
    if filters.type and decision.type is not filters.type:
        return False
    if filters.status and decision.status is not filters.status:
        return False
    if filters.participant_id and not (
        filters.participant_id in decision.participants
        or decision.created_by == filters.participant_id
    ):
        return False
    if filters.start_date and decision.visit_date < filters.start_date:
        return False
    if filters.end_date and decision.visit_date > filters.end_date:
        return False

    chosen = decision.result.restaurant_id if decision.result else None
    if filters.restaurant_id and chosen != filters.restaurant_id:
        return False
    if restaurant_ids is not None and chosen not in restaurant_ids:
        return False
    return True


class InMemoryDecisionStore:
    def __init__(self, config: DecisionConfig = DEFAULT_DECISION_CONFIG) -> None:
        self._decisions: dict[str, Decision] = {}
        self._lock = threading.Lock()
        self._timeout = config.store_timeout_seconds

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._timeout):
            raise StoreUnavailableError("Timed out waiting for the decision store")
        try:
            yield
        finally:
            self._lock.release()

    def _require(self, decision_id: str) -> Decision:
        stored = self._decisions.get(decision_id)
        if stored is None:
            raise DecisionNotFoundError(f"Decision {decision_id} not found")
        return stored

    def create(self, decision: Decision, exclusive: bool = True) -> Decision:
        """
        Insert *decision*.

        With ``exclusive`` the insert is conditional: it fails when the
        collection already has an active decision.
        """
        with self._locked():
            if decision.id in self._decisions:
                raise ValueError(f"Decision {decision.id} already exists")
            if exclusive:
                for existing in self._decisions.values():
                    if existing.collection_id == decision.collection_id and existing.is_active:
                        raise ActiveDecisionExistsError(
                            f"Collection {decision.collection_id} already has an active "
                            f"decision ({existing.id})"
                        )
            self._decisions[decision.id] = decision.model_copy(deep=True)
        return decision.model_copy(deep=True)

    def get_by_id(self, decision_id: str) -> Decision | None:
        with self._locked():
            stored = self._decisions.get(decision_id)
            return stored.model_copy(deep=True) if stored else None

    def conditional_update_status(
        self,
        decision_id: str,
        expected_status: DecisionStatus,
        mutator: Mutator,
    ) -> Decision | None:
        """
        Apply *mutator* only if the decision is still in *expected_status*.

        Returns the updated decision, or ``None`` when the status no longer
        matches; the stored record is then left untouched.
        """
        with self._locked():
            stored = self._require(decision_id)
            if stored.status is not expected_status:
                return None
            draft = stored.model_copy(deep=True)
            mutator(draft)
            updated = Decision.model_validate(draft.model_dump())
            self._decisions[decision_id] = updated
            return updated.model_copy(deep=True)

    def upsert_vote(self, decision_id: str, vote: Vote) -> Decision | None:
        """
        Insert or replace the voter's ballot while the decision is active.

        Returns ``None`` when the decision is no longer active. A ballot older
        than the one already stored for the same voter is ignored.
        """
        with self._locked():
            stored = self._require(decision_id)
            if not stored.is_active:
                return None
            previous = stored.votes.get(vote.user_id)
            if previous is not None and previous.submitted_at > vote.submitted_at:
                return stored.model_copy(deep=True)
            updated = stored.model_copy(deep=True)
            updated.votes[vote.user_id] = vote.model_copy(deep=True)
            updated.updated_at = max(updated.updated_at, vote.submitted_at)
            self._decisions[decision_id] = updated
            return updated.model_copy(deep=True)

    def query(
        self,
        filters: HistoryFilter,
        restaurant_ids: set[str] | None = None,
    ) -> tuple[list[Decision], int]:
        """Return one page of matching decisions, newest visit first, plus the total."""
        with self._locked():
            matches = [
                d for d in self._decisions.values() if _matches(d, filters, restaurant_ids)
            ]
            matches.sort(key=lambda d: (d.visit_date, d.created_at), reverse=True)
            page = matches[filters.offset:filters.offset + filters.limit]
            return [d.model_copy(deep=True) for d in page], len(matches)

    def completed_for_collection(self, collection_id: str) -> list[Decision]:
        with self._locked():
            return [
                d.model_copy(deep=True)
                for d in self._decisions.values()
                if d.collection_id == collection_id and d.status is DecisionStatus.completed
            ]

    @property
    def count(self) -> int:
        return len(self._decisions)
