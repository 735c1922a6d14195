"""
Read-side snapshots handed to callers outside the tournament lock.

Views are built while the lock is held and share no mutable state with the
store, so a caller can keep one around while the tournament moves on.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from bracketeer.bracket import describe_slot
from bracketeer.models import Match, MatchStatus, ResultSubmission, RoundTag, VerificationKind
from bracketeer.store import TournamentRecord


@dataclass(frozen=True)
class MatchView:
    id: str
    label: str
    round_number: int
    round_tag: RoundTag
    position: int
    team_a: str                      # display name or "Winner of SF-1"
    team_b: str
    team_a_id: str | None
    team_b_id: str | None
    verification: VerificationKind
    status: MatchStatus
    scheduled_time: datetime | None = None
    winner: str | None = None
    loser: str | None = None
    score_a: int | None = None
    score_b: int | None = None
    disputed: bool = False
    forced_by: str | None = None
    submissions: tuple[ResultSubmission, ...] = ()
    missing_scopes: tuple[str, ...] = ()
    completed_at: datetime | None = None


@dataclass(frozen=True)
class RoundView:
    number: int
    tag: RoundTag
    matches: tuple[MatchView, ...]
    bye: str | None = None


@dataclass(frozen=True)
class BracketView:
    tournament_id: str
    bracket_id: str
    game: str
    status: str
    rounds: tuple[RoundView, ...]
    winner: str | None = None

    @property
    def matches(self) -> list[MatchView]:
        return [m for r in self.rounds for m in r.matches]

    def by_label(self, label: str) -> MatchView:
        for m in self.matches:
            if m.label == label:
                return m
        raise KeyError(label)


@dataclass(frozen=True)
class TournamentResults:
    tournament_id: str
    game: str
    status: str
    winner: str | None
    runner_up: str | None
    completed_at: datetime | None
    matches: tuple[MatchView, ...] = field(default_factory=tuple)   # completed, play order


@dataclass(frozen=True)
class DeletionSummary:
    tournament_id: str
    participants: int
    matches: int
    proposals: int


# ------------------------------------------------------------------ #
# Builders (caller holds the lock)                                     #
# ------------------------------------------------------------------ #

def match_view(match: Match, labels: dict[str, str]) -> MatchView:
    a, b = match.participant_a, match.participant_b
    state = match.consensus
    return MatchView(
        id=match.id,
        label=match.label,
        round_number=match.round_number,
        round_tag=match.round_tag,
        position=match.position,
        team_a=describe_slot(match.slot_a, labels),
        team_b=describe_slot(match.slot_b, labels),
        team_a_id=a.id if a else None,
        team_b_id=b.id if b else None,
        verification=match.verification,
        status=match.status,
        scheduled_time=match.scheduled_time,
        winner=match.winner.display_name if match.winner else None,
        loser=match.loser.display_name if match.loser else None,
        score_a=match.score_a,
        score_b=match.score_b,
        disputed=bool(state and state.disputed),
        forced_by=match.forced_by,
        submissions=tuple(state.submissions.values()) if state else (),
        missing_scopes=tuple(state.missing_scopes) if state else (),
        completed_at=match.completed_at,
    )


def bracket_view(record: TournamentRecord) -> BracketView:
    bracket = record.bracket
    labels = {mid: m.label for mid, m in record.matches.items()}
    rounds = tuple(
        RoundView(
            number=rnd.number,
            tag=rnd.tag,
            matches=tuple(match_view(record.matches[mid], labels) for mid in rnd.match_ids),
            bye=describe_slot(rnd.bye, labels) if rnd.bye is not None else None,
        )
        for rnd in bracket.rounds
    )
    return BracketView(
        tournament_id=record.tournament.id,
        bracket_id=bracket.id,
        game=record.tournament.game,
        status=bracket.status,
        rounds=rounds,
        winner=bracket.winner.display_name if bracket.winner else None,
    )


def tournament_results(record: TournamentRecord) -> TournamentResults:
    t = record.tournament
    labels = {mid: m.label for mid, m in record.matches.items()}
    order = record.bracket.match_ids if record.bracket else []
    completed = tuple(
        match_view(record.matches[mid], labels)
        for mid in order
        if record.matches[mid].status == "completed"
    )
    return TournamentResults(
        tournament_id=t.id,
        game=t.game,
        status=t.status,
        winner=t.winner.display_name if t.winner else None,
        runner_up=t.runner_up.display_name if t.runner_up else None,
        completed_at=t.completed_at,
        matches=completed,
    )


# ------------------------------------------------------------------ #
# Serialisation                                                        #
# ------------------------------------------------------------------ #

def to_json_dict(obj: Any) -> Any:
    """
    Convert a view or event dataclass to JSON-safe data.

    Every dataclass at any depth gets a "type" key naming its class so a
    consumer can dispatch on it; datetimes become ISO-8601 strings; tuples,
    sets and frozensets become lists.
    """
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        d: dict[str, Any] = {"type": type(obj).__name__}
        for f in dataclasses.fields(obj):
            d[f.name] = to_json_dict(getattr(obj, f.name))
        return d
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): to_json_dict(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_json_dict(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted(to_json_dict(v) for v in obj)
    return obj
