"""
Bracket Builder — turns a full tournament's participants into a match tree.

Rules:
- Participants are shuffled with random.Random(tournament_id), so the same
  tournament always produces the same bracket.
- Round 1 pairs entrants 0v1, 2v3, … ; an odd entrant out receives a bye and
  is carried into the next round without a match.
- Later rounds pair WinnerOf placeholders, with the carried bye entrant placed
  first so it plays in the very next round.
- ceil(log2 N) rounds, N−1 matches, exactly one final.
"""

from __future__ import annotations

import logging
import math
import random
import uuid
from datetime import datetime

from bracketeer.errors import (
    BracketAlreadyExists,
    InsufficientParticipants,
    TournamentNotFull,
)
from bracketeer.events import BracketGeneratedEvent, MatchReadyEvent, TournamentEvent
from bracketeer.models import (
    Bracket,
    ConsensusState,
    Match,
    Participant,
    ParticipantSlot,
    Round,
    RoundTag,
    Slot,
    TournamentSettings,
    WinnerOf,
)
from bracketeer.store import TournamentRecord

logger = logging.getLogger(__name__)


def generate(record: TournamentRecord, now: datetime, emit: list[TournamentEvent]) -> Bracket:
    """
    Check-and-set full → active and attach a freshly built bracket.

    The caller holds the tournament lock; only the first caller after the
    tournament became full gets past the status check.
    """
    t = record.tournament
    if record.bracket is not None or t.status in ("active", "completed"):
        raise BracketAlreadyExists(f"Tournament {t.id} already has bracket {t.bracket_id}.")
    if t.status != "full":
        raise TournamentNotFull(
            f"Tournament {t.id} is {t.status} ({t.participant_count}/{t.capacity}); "
            "it must be full before a bracket can be generated."
        )
    if len(record.participants) < 2:
        raise InsufficientParticipants(
            f"Tournament {t.id} has {len(record.participants)} participant(s); at least 2 required."
        )

    bracket, matches = build_bracket(t.id, record.participants, t.settings, now)

    record.bracket = bracket
    record.matches.update((m.id, m) for m in matches)
    t.bracket_id = bracket.id
    t.status = "active"

    first = bracket.rounds[0]
    labels = {m.id: m.label for m in matches}
    emit.append(
        BracketGeneratedEvent(
            tournament_id=t.id,
            bracket_id=bracket.id,
            total_rounds=len(bracket.rounds),
            match_count=len(matches),
            pairings=[
                (record.matches[mid].label,
                 describe_slot(record.matches[mid].slot_a, labels),
                 describe_slot(record.matches[mid].slot_b, labels))
                for mid in first.match_ids
            ],
            byes=[describe_slot(r.bye, labels) for r in bracket.rounds if r.bye is not None],
        )
    )
    for m in matches:
        if m.status == "scheduling":
            emit.append(match_ready_event(m))

    logger.info(
        "Generated bracket %s for tournament %s: %d participants, %d rounds, %d matches",
        bracket.id, t.id, len(record.participants), len(bracket.rounds), len(matches),
    )
    return bracket


def build_bracket(
    tournament_id: str,
    participants: list[Participant],
    settings: TournamentSettings,
    now: datetime,
) -> tuple[Bracket, list[Match]]:
    """Pure construction; no record is touched."""
    n = len(participants)
    if n < 2:
        raise InsufficientParticipants(f"At least 2 participants required, got {n}.")

    bracket_id = uuid.uuid4().hex
    total_rounds = math.ceil(math.log2(n))

    entrants: list[Slot] = [ParticipantSlot(p) for p in seeded_order(tournament_id, participants)]
    rounds: list[Round] = []
    matches: list[Match] = []

    for round_num in range(1, total_rounds + 1):
        tag = round_tag(round_num, total_rounds)
        bye = entrants.pop() if len(entrants) % 2 else None
        pairs = len(entrants) // 2

        rnd = Round(number=round_num, tag=tag, bye=bye)
        for i in range(pairs):
            slot_a, slot_b = entrants[2 * i], entrants[2 * i + 1]
            verification = settings.verification_for(tag)
            match = Match(
                id=uuid.uuid4().hex,
                bracket_id=bracket_id,
                tournament_id=tournament_id,
                round_number=round_num,
                round_tag=tag,
                position=i,
                label=round_label(round_num, i + 1, tag),
                slot_a=slot_a,
                slot_b=slot_b,
                verification=verification,
                consensus=(
                    ConsensusState(scopes=dict(settings.host_scopes))
                    if verification == "dual_host" else None
                ),
            )
            if match.is_resolved:
                match.status = "scheduling"
            rnd.match_ids.append(match.id)
            matches.append(match)
        rounds.append(rnd)

        winners: list[Slot] = [WinnerOf(mid) for mid in rnd.match_ids]
        entrants = ([bye] if bye is not None else []) + winners

    bracket = Bracket(id=bracket_id, tournament_id=tournament_id, rounds=rounds, created_at=now)
    return bracket, matches


# ------------------------------------------------------------------ #
# Helpers                                                              #
# ------------------------------------------------------------------ #

def seeded_order(tournament_id: str, participants: list[Participant]) -> list[Participant]:
    """Registration order shuffled deterministically by tournament id."""
    order = list(participants)
    random.Random(tournament_id).shuffle(order)
    return order


def round_tag(round_num: int, total_rounds: int) -> RoundTag:
    remaining = total_rounds - round_num
    if remaining == 0:
        return "final"
    if remaining == 1:
        return "semi"
    if remaining == 2:
        return "quarter"
    return "first"


def round_label(round_num: int, match_num: int, tag: RoundTag) -> str:
    """Return a human-readable match label."""
    if tag == "final":
        return "F"
    if tag == "semi":
        return f"SF-{match_num}"
    if tag == "quarter":
        return f"QF-{match_num}"
    return f"R{round_num}-M{match_num}"


def describe_slot(slot: Slot | None, labels: dict[str, str]) -> str:
    match slot:
        case ParticipantSlot(participant=p):
            return p.display_name
        case WinnerOf(match_id=mid):
            return f"Winner of {labels.get(mid, mid)}"
        case _:
            return "BYE"


def match_ready_event(match: Match) -> MatchReadyEvent:
    a, b = match.participant_a, match.participant_b
    return MatchReadyEvent(
        tournament_id=match.tournament_id,
        match_id=match.id,
        label=match.label,
        round_tag=match.round_tag,
        team_a=a.display_name if a else "",
        team_b=b.display_name if b else "",
    )
