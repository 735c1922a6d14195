"""
Tournament Registry — tournament entities and their capacity/status rules.

Functions here operate on a TournamentRecord whose lock the caller already
holds.  Each validates everything first and mutates last, so a raised error
always leaves the record untouched.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import datetime

from bracketeer.errors import (
    DuplicateActiveTournament,
    DuplicateOrganizer,
    InvalidCapacity,
    InvalidParticipant,
    InvalidSettings,
    TournamentFull,
    TournamentNotOpen,
)
from bracketeer.events import (
    ParticipantRegisteredEvent,
    TournamentEvent,
    TournamentReadyEvent,
)
from bracketeer.models import (
    ROUND_ORDER,
    Participant,
    ParticipantEntry,
    PlayerRef,
    Tournament,
    TournamentSettings,
)
from bracketeer.store import TournamentRecord

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# Validation (no state reads)                                          #
# ------------------------------------------------------------------ #

def validate_new_tournament(
    game: str,
    capacity: int,
    settings: TournamentSettings,
    max_capacity: int,
) -> None:
    if not game or not game.strip():
        raise InvalidSettings("A game identifier is required.")
    if not isinstance(capacity, int) or isinstance(capacity, bool):
        raise InvalidCapacity(f"Capacity must be an integer, got {capacity!r}.")
    if capacity < 2 or capacity > max_capacity:
        raise InvalidCapacity(f"Capacity must be between 2 and {max_capacity}, got {capacity}.")

    unknown = set(settings.dual_host_rounds) - set(ROUND_ORDER)
    if unknown:
        raise InvalidSettings(f"Unknown round tags in dual_host_rounds: {sorted(unknown)}")
    if settings.dual_host_rounds and not settings.host_scopes:
        raise InvalidSettings("Dual-host rounds require at least one host scope.")
    for scope, principal in settings.host_scopes.items():
        if not scope or not principal:
            raise InvalidSettings("Host scopes must map a non-empty scope to a principal.")


def validate_entry(entry: ParticipantEntry) -> None:
    if not entry.display_name.strip():
        raise InvalidParticipant("Participant display name is required.")
    if not entry.organizer_id:
        raise InvalidParticipant("Participant organizer id is required.")
    if not entry.team_id:
        raise InvalidParticipant("Participant team id is required.")


def select_roster(
    entry: ParticipantEntry,
    roster: list[PlayerRef],
    min_roster_size: int,
) -> tuple[PlayerRef, ...]:
    """
    The players entering with the team: entry.player_ids picked from the
    team's current roster, or the whole roster when none are picked.
    """
    if entry.player_ids:
        members = {p.user_id: p for p in roster}
        strangers = [pid for pid in entry.player_ids if pid not in members]
        if strangers:
            raise InvalidParticipant(
                f"Players {strangers} are not members of team {entry.team_id!r}."
            )
        if len(set(entry.player_ids)) != len(entry.player_ids):
            raise InvalidParticipant("A player can only be selected once.")
        selected = tuple(members[pid] for pid in entry.player_ids)
    else:
        selected = tuple(roster)

    if len(selected) < min_roster_size:
        raise InvalidParticipant(
            f"Team {entry.team_id!r} enters with {len(selected)} players; "
            f"at least {min_roster_size} required."
        )
    return selected


# ------------------------------------------------------------------ #
# Operations                                                           #
# ------------------------------------------------------------------ #

def ensure_game_available(records: list[TournamentRecord], game: str) -> None:
    """One open/full/active tournament per game."""
    for record in records:
        t = record.tournament
        if t.game == game and t.is_live:
            raise DuplicateActiveTournament(
                f"Tournament {t.id} for {game!r} is still {t.status}."
            )


def new_tournament(
    game: str,
    capacity: int,
    settings: TournamentSettings,
    now: datetime,
) -> Tournament:
    return Tournament(
        id=uuid.uuid4().hex,
        game=game.strip(),
        capacity=capacity,
        settings=dataclasses.replace(settings, host_scopes=dict(settings.host_scopes)),
        created_at=now,
    )


def register(
    record: TournamentRecord,
    entry: ParticipantEntry,
    roster: tuple[PlayerRef, ...],
    now: datetime,
    emit: list[TournamentEvent],
) -> Participant:
    """
    Add a participant.  On reaching capacity the tournament becomes full and
    a TournamentReadyEvent is emitted; this is the only automatic bracket trigger.
    """
    t = record.tournament
    if t.status != "open":
        raise TournamentNotOpen(f"Tournament {t.id} is {t.status}, not open.")
    if t.participant_count >= t.capacity:
        raise TournamentFull(f"Tournament {t.id} is at capacity ({t.capacity}).")
    if any(p.organizer_id == entry.organizer_id for p in record.participants):
        raise DuplicateOrganizer(
            f"Organizer {entry.organizer_id!r} already has an entry in tournament {t.id}."
        )

    participant = Participant(
        id=uuid.uuid4().hex,
        display_name=entry.display_name.strip(),
        organizer_id=entry.organizer_id,
        team_id=entry.team_id,
        region=entry.region,
        roster=roster,
        registered_at=now,
    )
    record.participants.append(participant)
    t.participant_count += 1

    emit.append(
        ParticipantRegisteredEvent(
            tournament_id=t.id,
            participant_id=participant.id,
            display_name=participant.display_name,
            participant_count=t.participant_count,
            capacity=t.capacity,
        )
    )
    logger.info(
        "Registered %s in tournament %s (%d/%d)",
        participant.display_name, t.id, t.participant_count, t.capacity,
    )

    if t.participant_count == t.capacity:
        t.status = "full"
        emit.append(TournamentReadyEvent(tournament_id=t.id, participant_count=t.participant_count))
        logger.info("Tournament %s is full", t.id)

    return participant


def force_close(record: TournamentRecord, emit: list[TournamentEvent]) -> Tournament:
    t = record.tournament
    if t.status != "open":
        raise TournamentNotOpen(f"Tournament {t.id} is {t.status}, not open.")
    t.status = "full"
    emit.append(
        TournamentReadyEvent(tournament_id=t.id, participant_count=t.participant_count, forced=True)
    )
    logger.info(
        "Tournament %s force-closed at %d/%d participants",
        t.id, t.participant_count, t.capacity,
    )
    return t
