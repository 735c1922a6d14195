"""
Scheduling Negotiator — organizers agree on a match time.

A match in `scheduling` takes proposals from either organizer; the other
organizer accepts or rejects.  At most one proposal per match is pending at a
time, so the latest accepted proposal is always the match's scheduled time.
Proposing again after a time was agreed supersedes that agreement, and the
non-proposing organizer may revoke an accepted time while the match has not
started.  Once the scheduled time has arrived the agreement is final.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from bracketeer.errors import (
    CannotApproveOwnProposal,
    InvalidProposedTime,
    MatchNotSchedulable,
    ProposalAlreadyPending,
    ProposalNotPending,
    Unauthorized,
)
from bracketeer.events import (
    MatchAwaitingResultEvent,
    MatchScheduledEvent,
    MatchUnscheduledEvent,
    TimeProposedEvent,
    TournamentEvent,
)
from bracketeer.models import Match, TimeSlotProposal
from bracketeer.store import TournamentRecord

logger = logging.getLogger(__name__)

SCHEDULABLE = ("scheduling", "scheduled")


def validate_time(time: datetime, now: datetime) -> None:
    if time.tzinfo is None or time.utcoffset() is None:
        raise InvalidProposedTime(f"Proposed time {time.isoformat()} has no timezone.")
    if time < now:
        raise InvalidProposedTime(
            f"Proposed time {time.isoformat()} is in the past (now {now.isoformat()})."
        )


def propose(
    record: TournamentRecord,
    match: Match,
    proposer_id: str,
    time: datetime,
    now: datetime,
    emit: list[TournamentEvent],
) -> TimeSlotProposal:
    validate_time(time, now)
    if match.status not in SCHEDULABLE or is_due(match, now):
        raise MatchNotSchedulable(_not_schedulable(match, now))
    if proposer_id not in match.organizer_ids:
        raise Unauthorized(f"{proposer_id!r} does not organize a team in match {match.label}.")
    if any(p.status == "pending" for p in record.proposals_for(match.id)):
        raise ProposalAlreadyPending(f"Match {match.label} already has a pending time proposal.")

    if match.status == "scheduled":
        _unschedule(record, match, proposer_id, now, emit)

    proposal = TimeSlotProposal(
        id=uuid.uuid4().hex,
        match_id=match.id,
        proposer_id=proposer_id,
        proposed_time=time,
        created_at=now,
    )
    record.proposals[proposal.id] = proposal
    emit.append(
        TimeProposedEvent(
            tournament_id=match.tournament_id,
            match_id=match.id,
            proposal_id=proposal.id,
            proposer_id=proposer_id,
            proposed_time=time,
        )
    )
    logger.info("%s proposed %s for match %s", proposer_id, time.isoformat(), match.label)
    return proposal


def respond(
    record: TournamentRecord,
    proposal: TimeSlotProposal,
    responder_id: str,
    accept: bool,
    now: datetime,
    emit: list[TournamentEvent],
) -> TimeSlotProposal:
    match = record.match(proposal.match_id)
    if responder_id not in match.organizer_ids:
        raise Unauthorized(f"{responder_id!r} does not organize a team in match {match.label}.")
    if responder_id == proposal.proposer_id:
        raise CannotApproveOwnProposal("Proposals must be answered by the opposing organizer.")

    if proposal.status == "pending" and accept:
        if match.status != "scheduling":
            raise MatchNotSchedulable(
                f"Match {match.label} is {match.status}; it cannot be scheduled."
            )
        _settle(proposal, "accepted", responder_id, now)
        for other in record.proposals_for(match.id):
            if other.id != proposal.id and other.status == "pending":
                _settle(other, "rejected", responder_id, now)
        match.status = "scheduled"
        match.scheduled_time = proposal.proposed_time
        match.accepted_proposal_id = proposal.id
        emit.append(
            MatchScheduledEvent(
                tournament_id=match.tournament_id,
                match_id=match.id,
                label=match.label,
                scheduled_time=proposal.proposed_time,
            )
        )
        logger.info("Match %s scheduled for %s", match.label, proposal.proposed_time.isoformat())
    elif proposal.status == "pending":
        _settle(proposal, "rejected", responder_id, now)
        logger.info("%s rejected proposal %s for match %s", responder_id, proposal.id, match.label)
    elif (
        proposal.status == "accepted"
        and not accept
        and match.status == "scheduled"
        and match.accepted_proposal_id == proposal.id
    ):
        if is_due(match, now):
            raise MatchNotSchedulable(_not_schedulable(match, now))
        _unschedule(record, match, responder_id, now, emit)
    else:
        raise ProposalNotPending(
            f"Proposal {proposal.id} is {proposal.status}; it can no longer be "
            f"{'accepted' if accept else 'rejected'}."
        )
    return proposal


def list_proposals(record: TournamentRecord, match_id: str) -> list[TimeSlotProposal]:
    """Every proposal ever made for match_id, newest first."""
    record.match(match_id)
    return list(reversed(record.proposals_for(match_id)))


# ------------------------------------------------------------------ #
# Time elapse                                                          #
# ------------------------------------------------------------------ #

def is_due(match: Match, now: datetime) -> bool:
    return (
        match.status == "scheduled"
        and match.scheduled_time is not None
        and now >= match.scheduled_time
    )


def promote_if_due(match: Match, now: datetime, emit: list[TournamentEvent]) -> bool:
    """Move a dual-host match whose time has arrived into awaiting_result."""
    if match.verification != "dual_host" or not is_due(match, now):
        return False
    match.status = "awaiting_result"
    emit.append(
        MatchAwaitingResultEvent(
            tournament_id=match.tournament_id,
            match_id=match.id,
            label=match.label,
            scopes=list(match.consensus.scopes) if match.consensus else [],
        )
    )
    logger.info("Match %s is awaiting host results", match.label)
    return True


def open_due_matches(record: TournamentRecord, now: datetime, emit: list[TournamentEvent]) -> list[str]:
    opened = []
    for match in record.matches.values():
        if promote_if_due(match, now, emit):
            opened.append(match.id)
    return opened


# ------------------------------------------------------------------ #
# Helpers                                                              #
# ------------------------------------------------------------------ #

def _not_schedulable(match: Match, now: datetime) -> str:
    if is_due(match, now):
        return f"Match {match.label} started at {match.scheduled_time.isoformat()}; its time is final."
    return f"Match {match.label} is {match.status}; it cannot be scheduled."


def _settle(proposal: TimeSlotProposal, status: str, responder_id: str, now: datetime) -> None:
    proposal.status = status
    proposal.responded_by = responder_id
    proposal.responded_at = now


def _unschedule(
    record: TournamentRecord,
    match: Match,
    actor_id: str,
    now: datetime,
    emit: list[TournamentEvent],
) -> None:
    proposal_id = match.accepted_proposal_id
    if proposal_id is not None:
        _settle(record.proposals[proposal_id], "rejected", actor_id, now)
    match.status = "scheduling"
    match.scheduled_time = None
    match.accepted_proposal_id = None
    emit.append(
        MatchUnscheduledEvent(
            tournament_id=match.tournament_id,
            match_id=match.id,
            label=match.label,
            proposal_id=proposal_id or "",
        )
    )
    logger.info("Match %s unscheduled by %s; back to negotiation", match.label, actor_id)
