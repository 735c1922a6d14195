"""
Result Consensus Resolver — turns reported outcomes into a completed match.

Two verification paths:

single_report   one organizer of the match (or an admin) reports the winner
                once the scheduled time has arrived; that report is final.
dual_host       every configured host scope submits a claimed winner.  When
                all scopes are in and agree the match completes; any
                disagreement flags the match disputed until an admin calls
                force().  Scopes and their bound principals are fixed when the
                bracket is built.

A result may carry a score (slot a, slot b).  It is optional, must name the
same winner as the claim, and hosts only agree when winner and score match.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from bracketeer.advancement import complete_match
from bracketeer.errors import (
    InvalidScore,
    InvalidWinner,
    MatchAlreadyCompleted,
    MatchDisputed,
    MatchNotAwaitingResult,
    MatchNotReportable,
    MatchNotSchedulable,
    Unauthorized,
    UnauthorizedReporter,
)
from bracketeer.events import MatchDisputedEvent, ResultSubmittedEvent, TournamentEvent
from bracketeer.models import Match, Participant, ResultSubmission
from bracketeer.scheduling import is_due, promote_if_due
from bracketeer.store import TournamentRecord

logger = logging.getLogger(__name__)


def submit(
    record: TournamentRecord,
    match: Match,
    reporter_id: str,
    scope: str,
    claimed_winner_id: str,
    now: datetime,
    emit: list[TournamentEvent],
    note: str = "",
    score_a: int | None = None,
    score_b: int | None = None,
) -> Match:
    if match.status == "completed":
        raise MatchAlreadyCompleted(f"Match {match.label} is already completed.")
    if match.verification != "dual_host" or match.consensus is None:
        raise MatchNotAwaitingResult(
            f"Match {match.label} is decided by a single report, not host consensus."
        )

    state = match.consensus
    if state.scopes.get(scope) != reporter_id:
        raise UnauthorizedReporter(f"{reporter_id!r} is not the host bound to scope {scope!r}.")
    if match.status != "awaiting_result" and not is_due(match, now):
        raise MatchNotAwaitingResult(f"Match {match.label} is {match.status}, not awaiting a result.")
    if state.disputed:
        raise MatchDisputed(f"Match {match.label} is disputed; an admin must force the result.")
    winner = _require_participant(match, claimed_winner_id)
    score = _require_score(match, winner, score_a, score_b)

    promote_if_due(match, now, emit)

    submission = ResultSubmission(
        id=uuid.uuid4().hex,
        match_id=match.id,
        reporter_id=reporter_id,
        scope=scope,
        claimed_winner_id=claimed_winner_id,
        submitted_at=now,
        note=note,
        score_a=score_a,
        score_b=score_b,
    )
    state.submissions[scope] = submission
    emit.append(
        ResultSubmittedEvent(
            tournament_id=match.tournament_id,
            match_id=match.id,
            submission=submission,
            missing_scopes=state.missing_scopes,
        )
    )
    logger.info(
        "Host %s (%s) reported %s for match %s",
        reporter_id, scope, claimed_winner_id, match.label,
    )

    if state.missing_scopes:
        return match

    claims = {(s.claimed_winner_id, s.score_a, s.score_b) for s in state.submissions.values()}
    if len(claims) == 1:
        complete_match(record, match, winner, now, "consensus", emit, score)
    else:
        state.disputed = True
        emit.append(
            MatchDisputedEvent(
                tournament_id=match.tournament_id,
                match_id=match.id,
                label=match.label,
                submissions=list(state.submissions.values()),
            )
        )
        logger.warning(
            "Match %s disputed: hosts disagree (%s)",
            match.label,
            ", ".join(f"{s.scope}={_describe_claim(s)}" for s in state.submissions.values()),
        )
    return match


def report(
    record: TournamentRecord,
    match: Match,
    reporter_id: str,
    winner_id: str,
    is_admin: bool,
    now: datetime,
    emit: list[TournamentEvent],
    note: str = "",
    score_a: int | None = None,
    score_b: int | None = None,
) -> Match:
    if match.status == "completed":
        raise MatchAlreadyCompleted(f"Match {match.label} is already completed.")
    if reporter_id not in match.organizer_ids and not is_admin:
        raise Unauthorized(f"{reporter_id!r} may not report the result of match {match.label}.")
    if match.verification != "single_report" or not is_due(match, now):
        raise MatchNotReportable(
            f"Match {match.label} is {match.status}"
            + (" and needs host consensus." if match.verification == "dual_host" else
               "; it can be reported once its scheduled time has arrived.")
        )
    winner = _require_participant(match, winner_id)
    score = _require_score(match, winner, score_a, score_b)

    match.report = ResultSubmission(
        id=uuid.uuid4().hex,
        match_id=match.id,
        reporter_id=reporter_id,
        scope="",
        claimed_winner_id=winner_id,
        submitted_at=now,
        note=note,
        score_a=score_a,
        score_b=score_b,
    )
    complete_match(record, match, winner, now, "report", emit, score)
    return match


def force(
    record: TournamentRecord,
    match: Match,
    admin_id: str,
    winner_id: str,
    now: datetime,
    emit: list[TournamentEvent],
    score_a: int | None = None,
    score_b: int | None = None,
) -> Match:
    """Admin tie-break.  Supersedes any submissions or pending negotiation."""
    if match.status == "completed":
        raise MatchAlreadyCompleted(f"Match {match.label} is already completed.")
    if not match.is_resolved:
        raise MatchNotSchedulable(
            f"Match {match.label} is still waiting for earlier results; "
            "its winner cannot be forced yet."
        )
    winner = _require_participant(match, winner_id)
    score = _require_score(match, winner, score_a, score_b)

    match.forced_by = admin_id
    for proposal in record.proposals_for(match.id):
        if proposal.status == "pending":
            proposal.status = "rejected"
            proposal.responded_by = admin_id
            proposal.responded_at = now
    if match.consensus is not None and match.consensus.disputed:
        logger.info("Admin %s resolving dispute on match %s", admin_id, match.label)
    complete_match(record, match, winner, now, "forced", emit, score)
    return match


def awaiting_confirmation(match: Match, reporter_id: str, now: datetime) -> bool:
    """True if reporter_id holds a scope on match that still owes a submission."""
    state = match.consensus
    if state is None or state.disputed:
        return False
    if match.status != "awaiting_result" and not is_due(match, now):
        return False
    return any(
        principal == reporter_id and scope not in state.submissions
        for scope, principal in state.scopes.items()
    )


def _require_participant(match: Match, participant_id: str) -> Participant:
    participant = match.participant_by_id(participant_id)
    if participant is None:
        raise InvalidWinner(
            f"{participant_id!r} is not a participant of match {match.label}."
        )
    return participant


def _require_score(
    match: Match,
    winner: Participant,
    score_a: int | None,
    score_b: int | None,
) -> tuple[int, int] | None:
    """Scores are optional, but when given they must name the same winner."""
    if score_a is None and score_b is None:
        return None
    if score_a is None or score_b is None:
        raise InvalidScore(f"Match {match.label} needs both scores or neither.")
    for value in (score_a, score_b):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InvalidScore(f"Scores must be non-negative integers, got {value!r}.")
    a = match.participant_a
    winner_score, loser_score = (score_a, score_b) if a is not None and a.id == winner.id else (score_b, score_a)
    if winner_score <= loser_score:
        raise InvalidScore(
            f"Score {score_a}-{score_b} does not make {winner.display_name} the winner of {match.label}."
        )
    return score_a, score_b


def _describe_claim(s: ResultSubmission) -> str:
    if s.score_a is None:
        return s.claimed_winner_id
    return f"{s.claimed_winner_id} ({s.score_a}-{s.score_b})"
