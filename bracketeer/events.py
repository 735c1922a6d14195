"""
Tournament event dataclasses — the shared language between the engine and any
consumer (terminal display, notification service, records, tests).

All events are frozen and carry ids plus display names rather than live
entities, so they are safe to hand to other tasks after the tournament lock
has been released.  views.to_json_dict() serialises them for transport.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from bracketeer.models import ResultSubmission, RoundTag

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TournamentCreatedEvent:
    tournament_id: str
    game: str
    capacity: int
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ParticipantRegisteredEvent:
    tournament_id: str
    participant_id: str
    display_name: str
    participant_count: int
    capacity: int


@dataclass(frozen=True)
class TournamentReadyEvent:
    """Ready-for-bracket signal: the tournament just became full."""

    tournament_id: str
    participant_count: int
    forced: bool = False   # True when an admin closed registration early


@dataclass(frozen=True)
class BracketGeneratedEvent:
    tournament_id: str
    bracket_id: str
    total_rounds: int
    match_count: int
    # Each pairing: (match label, slot A name, slot B name) for round 1
    pairings: list[tuple[str, str, str]]
    byes: list[str]
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class MatchReadyEvent:
    """Both slots are concrete; the organizers may now negotiate a time."""

    tournament_id: str
    match_id: str
    label: str
    round_tag: RoundTag
    team_a: str
    team_b: str


@dataclass(frozen=True)
class TimeProposedEvent:
    tournament_id: str
    match_id: str
    proposal_id: str
    proposer_id: str
    proposed_time: datetime


@dataclass(frozen=True)
class MatchScheduledEvent:
    tournament_id: str
    match_id: str
    label: str
    scheduled_time: datetime


@dataclass(frozen=True)
class MatchUnscheduledEvent:
    """A previously agreed time was revoked or superseded."""

    tournament_id: str
    match_id: str
    label: str
    proposal_id: str


@dataclass(frozen=True)
class MatchAwaitingResultEvent:
    tournament_id: str
    match_id: str
    label: str
    scopes: list[str]


@dataclass(frozen=True)
class ResultSubmittedEvent:
    tournament_id: str
    match_id: str
    submission: ResultSubmission
    missing_scopes: list[str]


@dataclass(frozen=True)
class MatchDisputedEvent:
    """Hosts disagree; an admin must call force_result."""

    tournament_id: str
    match_id: str
    label: str
    submissions: list[ResultSubmission]


@dataclass(frozen=True)
class MatchCompletedEvent:
    tournament_id: str
    match_id: str
    label: str
    round_tag: RoundTag
    winner_id: str
    winner_name: str
    loser_name: str
    decided_by: str   # "report" | "consensus" | "forced"
    score_a: int | None = None
    score_b: int | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class TournamentCompletedEvent:
    tournament_id: str
    game: str
    winner_name: str
    runner_up_name: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class TournamentDeletedEvent:
    tournament_id: str
    deleted_by: str
    participants: int
    matches: int
    proposals: int


# Union type for type-safe pattern matching in consumers
TournamentEvent = (
    TournamentCreatedEvent
    | ParticipantRegisteredEvent
    | TournamentReadyEvent
    | BracketGeneratedEvent
    | MatchReadyEvent
    | TimeProposedEvent
    | MatchScheduledEvent
    | MatchUnscheduledEvent
    | MatchAwaitingResultEvent
    | ResultSubmittedEvent
    | MatchDisputedEvent
    | MatchCompletedEvent
    | TournamentCompletedEvent
    | TournamentDeletedEvent
)

EventHandler = Callable[[TournamentEvent], "Awaitable[None] | None"]


class EventBus:
    """
    Fan-out of committed events to subscribers.

    The engine publishes only after it has left the tournament's critical
    section.  A failing subscriber is logged and skipped; it never undoes or
    fails the operation that produced the event.
    """

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register handler; returns a callable that unsubscribes it."""
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    async def publish(self, events: list[TournamentEvent]) -> None:
        for event in events:
            for handler in list(self._handlers):
                try:
                    result = handler(event)
                    if inspect.isawaitable(result):
                        await result
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(
                        "Event handler %r failed on %s", handler, type(event).__name__
                    )
