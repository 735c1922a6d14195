"""
Typed failure outcomes.

Every operation failure is a subclass of BracketeerError grouped by category,
so callers can match on the exact kind (``except TournamentFull``) or on the
category (``except StateConflictError``) and render a precise message.

Categories:
    validation      malformed input, rejected before any state is read
    state_conflict  illegal in the current status, decided under the lock
    authorization   caller not entitled to act on the entity
    not_found       unknown id
    timeout         the per-tournament section could not be entered in time
"""

from __future__ import annotations

from typing import ClassVar, Literal

ErrorCategory = Literal["validation", "state_conflict", "authorization", "not_found", "timeout"]


class BracketeerError(Exception):
    """Base class for all engine failures."""

    category: ClassVar[ErrorCategory]

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def code(self) -> str:
        """Stable machine-readable kind, e.g. ``"TournamentFull"``."""
        return type(self).__name__


class ValidationError(BracketeerError):
    category = "validation"


class StateConflictError(BracketeerError):
    category = "state_conflict"


class AuthorizationError(BracketeerError):
    category = "authorization"


class NotFoundError(BracketeerError):
    category = "not_found"


class OperationTimeout(BracketeerError):
    category = "timeout"


# --------------------------------------------------------------------------- #
# Validation                                                                   #
# --------------------------------------------------------------------------- #

class InvalidCapacity(ValidationError):
    pass


class InvalidSettings(ValidationError):
    pass


class InvalidParticipant(ValidationError):
    pass


class InvalidProposedTime(ValidationError):
    pass


class InvalidWinner(ValidationError):
    pass


class InvalidScore(ValidationError):
    pass


# --------------------------------------------------------------------------- #
# State conflicts                                                              #
# --------------------------------------------------------------------------- #

class DuplicateActiveTournament(StateConflictError):
    pass


class TournamentNotOpen(StateConflictError):
    pass


class TournamentFull(StateConflictError):
    pass


class DuplicateOrganizer(StateConflictError):
    pass


class TournamentNotFull(StateConflictError):
    pass


class BracketAlreadyExists(StateConflictError):
    pass


class InsufficientParticipants(StateConflictError):
    pass


class MatchNotSchedulable(StateConflictError):
    pass


class ProposalAlreadyPending(StateConflictError):
    pass


class ProposalNotPending(StateConflictError):
    pass


class MatchNotReportable(StateConflictError):
    pass


class MatchNotAwaitingResult(StateConflictError):
    pass


class MatchDisputed(StateConflictError):
    pass


class MatchAlreadyCompleted(StateConflictError):
    pass


# --------------------------------------------------------------------------- #
# Authorization                                                                #
# --------------------------------------------------------------------------- #

class Unauthorized(AuthorizationError):
    pass


class CannotApproveOwnProposal(AuthorizationError):
    pass


class UnauthorizedReporter(AuthorizationError):
    pass


# --------------------------------------------------------------------------- #
# Not found                                                                    #
# --------------------------------------------------------------------------- #

class TournamentNotFound(NotFoundError):
    def __init__(self, tournament_id: str) -> None:
        self.tournament_id = tournament_id
        super().__init__(f"Tournament {tournament_id!r} not found")


class BracketNotFound(NotFoundError):
    def __init__(self, tournament_id: str) -> None:
        self.tournament_id = tournament_id
        super().__init__(f"Tournament {tournament_id!r} has no bracket yet")


class MatchNotFound(NotFoundError):
    def __init__(self, match_id: str) -> None:
        self.match_id = match_id
        super().__init__(f"Match {match_id!r} not found")


class ProposalNotFound(NotFoundError):
    def __init__(self, proposal_id: str) -> None:
        self.proposal_id = proposal_id
        super().__init__(f"Time proposal {proposal_id!r} not found")
