"""
Tournament entities — the shared types every component folds over.

Relations are explicit ids.  The only place a Participant is embedded is a
ParticipantSlot, and that is a by-value snapshot taken when the bracket is
built, so later roster edits never leak into a running bracket.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

TournamentStatus = Literal["open", "full", "active", "completed"]
BracketStatus = Literal["active", "completed"]
MatchStatus = Literal["pending", "scheduling", "scheduled", "awaiting_result", "completed"]
ProposalStatus = Literal["pending", "accepted", "rejected"]
RoundTag = Literal["first", "quarter", "semi", "final"]
VerificationKind = Literal["single_report", "dual_host"]

ROUND_ORDER: tuple[RoundTag, ...] = ("first", "quarter", "semi", "final")
LIVE_STATUSES: frozenset[str] = frozenset({"open", "full", "active"})


@dataclass(frozen=True)
class PlayerRef:
    user_id: str
    username: str


@dataclass(frozen=True)
class Participant:
    """A registered team entry.  Immutable once created."""

    id: str
    display_name: str
    organizer_id: str
    team_id: str
    region: str
    roster: tuple[PlayerRef, ...]
    registered_at: datetime


@dataclass(frozen=True)
class ParticipantEntry:
    """Registration request as submitted by a team organizer."""

    display_name: str
    organizer_id: str
    team_id: str
    region: str = ""
    player_ids: tuple[str, ...] = ()   # empty: enter the whole roster


# ------------------------------------------------------------------ #
# Slots                                                                #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class ParticipantSlot:
    participant: Participant


@dataclass(frozen=True)
class WinnerOf:
    """Placeholder: filled by the winner of match_id once it completes."""

    match_id: str


Slot = ParticipantSlot | WinnerOf


def slot_participant(slot: Slot | None) -> Participant | None:
    if isinstance(slot, ParticipantSlot):
        return slot.participant
    return None


# ------------------------------------------------------------------ #
# Tournament                                                           #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class TournamentSettings:
    """
    Per-tournament verification policy.

    Matches in dual_host_rounds are decided by unanimous host consensus; all
    other matches by a single authoritative report.  host_scopes binds each
    reporting scope (e.g. a region) to the one principal allowed to use it.
    """

    dual_host_rounds: frozenset[RoundTag] = frozenset()
    host_scopes: dict[str, str] = field(default_factory=dict)

    def verification_for(self, tag: RoundTag) -> VerificationKind:
        return "dual_host" if tag in self.dual_host_rounds else "single_report"


@dataclass
class Tournament:
    id: str
    game: str
    capacity: int
    settings: TournamentSettings
    created_at: datetime
    status: TournamentStatus = "open"
    participant_count: int = 0
    bracket_id: str | None = None
    winner: Participant | None = None
    runner_up: Participant | None = None
    completed_at: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES


# ------------------------------------------------------------------ #
# Bracket & matches                                                    #
# ------------------------------------------------------------------ #

@dataclass
class Round:
    number: int          # 1-based
    tag: RoundTag
    match_ids: list[str] = field(default_factory=list)
    bye: Slot | None = None   # entrant carried to the next round without a match


@dataclass
class Bracket:
    id: str
    tournament_id: str
    rounds: list[Round]
    created_at: datetime
    status: BracketStatus = "active"
    winner: Participant | None = None

    @property
    def final_match_id(self) -> str:
        return self.rounds[-1].match_ids[0]

    @property
    def match_ids(self) -> list[str]:
        return [mid for rnd in self.rounds for mid in rnd.match_ids]


@dataclass(frozen=True)
class ResultSubmission:
    id: str
    match_id: str
    reporter_id: str
    scope: str
    claimed_winner_id: str
    submitted_at: datetime
    note: str = ""
    score_a: int | None = None          # slot_a team, optional
    score_b: int | None = None


@dataclass
class ConsensusState:
    """Dual-host sub-state.  Scopes are fixed when the match is created."""

    scopes: dict[str, str]                       # scope → bound principal
    submissions: dict[str, ResultSubmission] = field(default_factory=dict)
    disputed: bool = False

    @property
    def missing_scopes(self) -> list[str]:
        return [s for s in self.scopes if s not in self.submissions]


@dataclass
class Match:
    id: str
    bracket_id: str
    tournament_id: str
    round_number: int
    round_tag: RoundTag
    position: int        # 0-based index within its round
    label: str           # "R1-M1", "QF-2", "SF-1", "F"
    slot_a: Slot
    slot_b: Slot
    verification: VerificationKind
    status: MatchStatus = "pending"
    scheduled_time: datetime | None = None
    accepted_proposal_id: str | None = None
    winner: Participant | None = None
    loser: Participant | None = None
    score_a: int | None = None
    score_b: int | None = None
    report: ResultSubmission | None = None
    consensus: ConsensusState | None = None
    forced_by: str | None = None
    completed_at: datetime | None = None

    @property
    def participant_a(self) -> Participant | None:
        return slot_participant(self.slot_a)

    @property
    def participant_b(self) -> Participant | None:
        return slot_participant(self.slot_b)

    @property
    def is_resolved(self) -> bool:
        """Both slots hold concrete participants."""
        return self.participant_a is not None and self.participant_b is not None

    @property
    def organizer_ids(self) -> tuple[str, ...]:
        return tuple(
            p.organizer_id for p in (self.participant_a, self.participant_b) if p is not None
        )

    def participant_by_id(self, participant_id: str) -> Participant | None:
        for p in (self.participant_a, self.participant_b):
            if p is not None and p.id == participant_id:
                return p
        return None

    def opponent_of(self, participant: Participant) -> Participant | None:
        a, b = self.participant_a, self.participant_b
        if a is not None and a.id == participant.id:
            return b
        if b is not None and b.id == participant.id:
            return a
        return None


@dataclass
class TimeSlotProposal:
    id: str
    match_id: str
    proposer_id: str
    proposed_time: datetime
    created_at: datetime
    status: ProposalStatus = "pending"
    responded_by: str | None = None
    responded_at: datetime | None = None
