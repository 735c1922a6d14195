"""
Round Advancement Engine — propagates a completed match's winner.

advance() is a fold over bracket state: every WinnerOf(match) slot becomes the
concrete winner, matches whose both slots are now concrete open for
scheduling, and completing the final closes the bracket and the tournament.
Running it again for the same match finds nothing left to replace and no
status left to change, so it is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from bracketeer.bracket import match_ready_event
from bracketeer.events import MatchCompletedEvent, TournamentCompletedEvent, TournamentEvent
from bracketeer.models import Match, Participant, ParticipantSlot, WinnerOf
from bracketeer.store import TournamentRecord

logger = logging.getLogger(__name__)

DecidedBy = Literal["report", "consensus", "forced"]


@dataclass
class AdvancementOutcome:
    ready: list[Match] = field(default_factory=list)   # pending → scheduling
    tournament_completed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.ready) or self.tournament_completed


def advance(record: TournamentRecord, completed: Match, now: datetime) -> AdvancementOutcome:
    outcome = AdvancementOutcome()
    bracket = record.bracket
    if bracket is None or completed.status != "completed" or completed.winner is None:
        return outcome

    winner_slot = ParticipantSlot(completed.winner)
    placeholder = WinnerOf(completed.id)

    for rnd in bracket.rounds:
        if rnd.bye == placeholder:
            rnd.bye = winner_slot

    for match_id in bracket.match_ids:
        match = record.matches[match_id]
        replaced = False
        if match.slot_a == placeholder:
            match.slot_a = winner_slot
            replaced = True
        if match.slot_b == placeholder:
            match.slot_b = winner_slot
            replaced = True
        if replaced and match.status == "pending" and match.is_resolved:
            match.status = "scheduling"
            outcome.ready.append(match)
            logger.info(
                "Match %s (%s) ready: %s vs %s",
                match.label, match.id,
                match.participant_a.display_name, match.participant_b.display_name,
            )

    if completed.id == bracket.final_match_id and bracket.status != "completed":
        t = record.tournament
        bracket.status = "completed"
        bracket.winner = completed.winner
        t.status = "completed"
        t.winner = completed.winner
        t.runner_up = completed.loser
        t.completed_at = now
        outcome.tournament_completed = True
        logger.info(
            "Tournament %s completed: %s beat %s in the final",
            t.id,
            completed.winner.display_name,
            completed.loser.display_name if completed.loser else "?",
        )

    return outcome


def complete_match(
    record: TournamentRecord,
    match: Match,
    winner: Participant,
    now: datetime,
    decided_by: DecidedBy,
    emit: list[TournamentEvent],
    score: tuple[int, int] | None = None,
) -> AdvancementOutcome:
    """Mark match completed with winner (and score, slot a first), then advance the bracket."""
    match.status = "completed"
    match.winner = winner
    match.score_a, match.score_b = score if score is not None else (None, None)
    match.loser = match.opponent_of(winner)
    match.completed_at = now
    logger.info(
        "Match %s (%s) completed by %s: %s advances",
        match.label, match.id, decided_by, winner.display_name,
    )
    emit.append(
        MatchCompletedEvent(
            tournament_id=match.tournament_id,
            match_id=match.id,
            label=match.label,
            round_tag=match.round_tag,
            winner_id=winner.id,
            winner_name=winner.display_name,
            loser_name=match.loser.display_name if match.loser else "",
            decided_by=decided_by,
            score_a=match.score_a,
            score_b=match.score_b,
        )
    )

    outcome = advance(record, match, now)
    emit.extend(match_ready_event(m) for m in outcome.ready)
    if outcome.tournament_completed:
        t = record.tournament
        emit.append(
            TournamentCompletedEvent(
                tournament_id=t.id,
                game=t.game,
                winner_name=t.winner.display_name,
                runner_up_name=t.runner_up.display_name if t.runner_up else "",
            )
        )
    return outcome
