"""
Decision engine error taxonomy.

Every failure an engine operation can surface derives from
``DecisionEngineError`` and belongs to exactly one category:

* ``NotFoundError`` - the collection or decision does not exist.
* ``ValidationError`` - malformed input or an unsupported type/method pair.
* ``StateConflictError`` - the decision is not in a state that allows the call,
  including the loser of a completion race.
* ``AuthorizationError`` - the caller may not vote on or close the decision.
* ``StoreUnavailableError`` - transient infrastructure failure; the only
  category a caller should retry with backoff.

Each concrete error carries a stable ``code`` and a distinct default message
so the HTTP layer and UI can tell "someone already completed this" apart from
"you can't vote here".
"""
from __future__ import annotations


class DecisionEngineError(Exception):
    code = "decision_engine_error"
    default_message = "Decision engine error"
    status_code = 500
    retryable = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ── Categories ───────────────────────────────────────────────────────────


class NotFoundError(DecisionEngineError):
    code = "not_found"
    default_message = "Resource not found"
    status_code = 404


class ValidationError(DecisionEngineError):
    code = "validation_error"
    default_message = "Invalid request"
    status_code = 422


class StateConflictError(DecisionEngineError):
    code = "state_conflict"
    default_message = "Decision state does not allow this operation"
    status_code = 409


class AuthorizationError(DecisionEngineError):
    code = "not_authorized"
    default_message = "Not allowed to perform this operation"
    status_code = 403


class StoreUnavailableError(DecisionEngineError):
    code = "store_unavailable"
    default_message = "Decision store is temporarily unavailable"
    status_code = 503
    retryable = True


# ── Not found ────────────────────────────────────────────────────────────


class CollectionNotFoundError(NotFoundError):
    code = "collection_not_found"
    default_message = "Collection not found"


class DecisionNotFoundError(NotFoundError):
    code = "decision_not_found"
    default_message = "Decision not found"


# ── Validation ───────────────────────────────────────────────────────────


class EmptyCollectionError(ValidationError):
    code = "empty_collection"
    default_message = "No restaurants in collection"


class InvalidRankingError(ValidationError):
    code = "invalid_ranking"
    default_message = "Rankings are invalid"


class UnsupportedMethodError(ValidationError):
    code = "unsupported_method"
    default_message = "Decision method is not supported for this decision type"


class WrongMethodError(ValidationError):
    code = "wrong_method"
    default_message = "This is not a tiered decision"


class RestaurantNotInCollectionError(ValidationError):
    code = "restaurant_not_in_collection"
    default_message = "Restaurant does not belong to this collection"


# ── State conflicts ──────────────────────────────────────────────────────


class ActiveDecisionExistsError(StateConflictError):
    code = "active_decision_exists"
    default_message = "Collection already has an active decision"


class DecisionNotActiveError(StateConflictError):
    code = "decision_not_active"
    default_message = "Decision is no longer active"


class NoVotesError(StateConflictError):
    code = "no_votes"
    default_message = "No votes submitted"


# ── Authorization ────────────────────────────────────────────────────────


class NotAParticipantError(AuthorizationError):
    code = "not_a_participant"
    default_message = "User is not a participant in this decision"


class NotAuthorizedError(AuthorizationError):
    code = "not_group_admin"
    default_message = "Only group admins can close decisions"
