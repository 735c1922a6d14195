"""
TournamentEngine — the async facade every caller goes through.

Each operation:
  1. validates its input and consults collaborators (identity, rosters)
     without holding any lock,
  2. enters the tournament's critical section and runs one component
     function, which checks state and mutates last,
  3. leaves the section and publishes the events the component emitted.

A failure at any step raises a BracketeerError subclass and leaves state as
it was; events are only published for operations that succeeded.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Callable

from bracketeer import advancement, bracket, consensus, registry, scheduling
from bracketeer.collaborators import Directory, IdentityResolver, RosterProvider, utc_now
from bracketeer.config import EngineConfig
from bracketeer.errors import BracketeerError, BracketNotFound, Unauthorized
from bracketeer.events import (
    EventBus,
    TournamentCreatedEvent,
    TournamentDeletedEvent,
    TournamentEvent,
    TournamentReadyEvent,
)
from bracketeer.models import (
    Bracket,
    Match,
    Participant,
    ParticipantEntry,
    TimeSlotProposal,
    Tournament,
    TournamentSettings,
    TournamentStatus,
)
from bracketeer.store import Store, TournamentRecord
from bracketeer.views import (
    BracketView,
    DeletionSummary,
    MatchView,
    TournamentResults,
    bracket_view,
    match_view,
    tournament_results,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TournamentEngine:
    def __init__(
        self,
        config: EngineConfig | None = None,
        identity: IdentityResolver | None = None,
        rosters: RosterProvider | None = None,
        clock: Clock = utc_now,
        bus: EventBus | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        directory = Directory()
        self.identity = identity or directory
        self.rosters = rosters or (identity if isinstance(identity, RosterProvider) else directory)
        self.clock = clock
        self.bus = bus or EventBus()
        self.store = Store(lock_timeout=self.config.lock_timeout)
        if self.config.auto_generate_bracket:
            self.bus.subscribe(self._auto_generate)

    # ------------------------------------------------------------------ #
    # Registry                                                             #
    # ------------------------------------------------------------------ #

    async def create_tournament(
        self,
        game: str,
        capacity: int,
        settings: TournamentSettings | None = None,
    ) -> Tournament:
        settings = settings or TournamentSettings()
        registry.validate_new_tournament(game, capacity, settings, self.config.max_capacity)

        async with self.store.catalog():
            registry.ensure_game_available(self.store.records(), game.strip())
            tournament = registry.new_tournament(game, capacity, settings, self.clock())
            self.store.add(TournamentRecord(tournament=tournament))
            snapshot = copy.deepcopy(tournament)

        logger.info(
            "Created tournament %s for %s (capacity %d)", tournament.id, tournament.game, capacity
        )
        await self.bus.publish([
            TournamentCreatedEvent(
                tournament_id=tournament.id,
                game=tournament.game,
                capacity=capacity,
                timestamp=tournament.created_at,
            )
        ])
        return snapshot

    async def register_participant(self, tournament_id: str, entry: ParticipantEntry) -> Participant:
        registry.validate_entry(entry)
        if not self.identity.leads_team(entry.organizer_id, entry.team_id):
            raise Unauthorized(
                f"{entry.organizer_id!r} does not lead team {entry.team_id!r} and cannot register it."
            )
        roster = registry.select_roster(
            entry, self.rosters.roster(entry.team_id), self.config.min_roster_size
        )

        events: list[TournamentEvent] = []
        async with self.store.locked(tournament_id) as record:
            participant = registry.register(
                record, entry, roster, self.clock(), events
            )
        await self.bus.publish(events)
        return participant

    async def force_close(self, tournament_id: str, admin_id: str) -> Tournament:
        self._require_admin(admin_id, "force-close registration")

        events: list[TournamentEvent] = []
        async with self.store.locked(tournament_id) as record:
            tournament = copy.deepcopy(registry.force_close(record, events))
        await self.bus.publish(events)
        return tournament

    async def delete_tournament(self, tournament_id: str, admin_id: str) -> DeletionSummary:
        """Remove a tournament and everything hanging off it."""
        self._require_admin(admin_id, "delete tournaments")

        async with self.store.catalog():
            async with self.store.locked(tournament_id) as record:
                summary = DeletionSummary(
                    tournament_id=tournament_id,
                    participants=len(record.participants),
                    matches=len(record.matches),
                    proposals=len(record.proposals),
                )
                self.store.remove(tournament_id)

        logger.info(
            "Tournament %s deleted by %s (%d participants, %d matches, %d proposals)",
            tournament_id, admin_id, summary.participants, summary.matches, summary.proposals,
        )
        await self.bus.publish([
            TournamentDeletedEvent(
                tournament_id=tournament_id,
                deleted_by=admin_id,
                participants=summary.participants,
                matches=summary.matches,
                proposals=summary.proposals,
            )
        ])
        return summary

    # ------------------------------------------------------------------ #
    # Bracket                                                              #
    # ------------------------------------------------------------------ #

    async def generate_bracket(self, tournament_id: str) -> Bracket:
        events: list[TournamentEvent] = []
        async with self.store.locked(tournament_id) as record:
            built = bracket.generate(record, self.clock(), events)
            self.store.index_matches(record)
            snapshot = copy.deepcopy(built)
        await self.bus.publish(events)
        return snapshot

    async def advance(self, match_id: str) -> advancement.AdvancementOutcome:
        """
        Re-run advancement for an already completed match.

        Completion runs advancement itself; this exists for reconciliation
        and is a no-op when the bracket already reflects the result.
        """
        events: list[TournamentEvent] = []
        async with self.store.locked(self.store.tournament_id_for_match(match_id)) as record:
            outcome = advancement.advance(record, record.match(match_id), self.clock())
            events.extend(bracket.match_ready_event(m) for m in outcome.ready)
            snapshot = copy.deepcopy(outcome)
        await self.bus.publish(events)
        return snapshot

    # ------------------------------------------------------------------ #
    # Scheduling                                                           #
    # ------------------------------------------------------------------ #

    async def propose_time(self, match_id: str, organizer_id: str, time: datetime) -> TimeSlotProposal:
        events: list[TournamentEvent] = []
        tournament_id = self.store.tournament_id_for_match(match_id)
        async with self.store.locked(tournament_id) as record:
            proposal = scheduling.propose(
                record, record.match(match_id), organizer_id, time, self.clock(), events
            )
            self.store.index_proposal(proposal, tournament_id)
            snapshot = copy.deepcopy(proposal)
        await self.bus.publish(events)
        return snapshot

    async def respond_to_time(self, proposal_id: str, organizer_id: str, accept: bool) -> TimeSlotProposal:
        events: list[TournamentEvent] = []
        async with self.store.locked(self.store.tournament_id_for_proposal(proposal_id)) as record:
            proposal = scheduling.respond(
                record, record.proposals[proposal_id], organizer_id, accept, self.clock(), events
            )
            snapshot = copy.deepcopy(proposal)
        await self.bus.publish(events)
        return snapshot

    async def list_proposals(self, match_id: str) -> list[TimeSlotProposal]:
        async with self.store.locked(self.store.tournament_id_for_match(match_id)) as record:
            return copy.deepcopy(scheduling.list_proposals(record, match_id))

    async def open_due_matches(self, tournament_id: str) -> list[str]:
        """Move every dual-host match whose scheduled time has arrived to awaiting_result."""
        events: list[TournamentEvent] = []
        async with self.store.locked(tournament_id) as record:
            opened = scheduling.open_due_matches(record, self.clock(), events)
        await self.bus.publish(events)
        return opened

    # ------------------------------------------------------------------ #
    # Results                                                              #
    # ------------------------------------------------------------------ #

    async def report_result(
        self,
        match_id: str,
        reporter_id: str,
        winner_id: str,
        note: str = "",
        score_a: int | None = None,
        score_b: int | None = None,
    ) -> Match:
        is_admin = self.identity.is_admin(reporter_id)
        events: list[TournamentEvent] = []
        async with self.store.locked(self.store.tournament_id_for_match(match_id)) as record:
            match = consensus.report(
                record, record.match(match_id), reporter_id, winner_id,
                is_admin, self.clock(), events, note=note, score_a=score_a, score_b=score_b,
            )
            snapshot = copy.deepcopy(match)
        await self.bus.publish(events)
        return snapshot

    async def submit_result(
        self,
        match_id: str,
        reporter_id: str,
        scope: str,
        winner_id: str,
        note: str = "",
        score_a: int | None = None,
        score_b: int | None = None,
    ) -> Match:
        events: list[TournamentEvent] = []
        async with self.store.locked(self.store.tournament_id_for_match(match_id)) as record:
            match = consensus.submit(
                record, record.match(match_id), reporter_id, scope, winner_id,
                self.clock(), events, note=note, score_a=score_a, score_b=score_b,
            )
            snapshot = copy.deepcopy(match)
        await self.bus.publish(events)
        return snapshot

    async def force_result(
        self,
        match_id: str,
        admin_id: str,
        winner_id: str,
        score_a: int | None = None,
        score_b: int | None = None,
    ) -> Match:
        self._require_admin(admin_id, "force match results")
        events: list[TournamentEvent] = []
        async with self.store.locked(self.store.tournament_id_for_match(match_id)) as record:
            match = consensus.force(
                record, record.match(match_id), admin_id, winner_id, self.clock(), events,
                score_a=score_a, score_b=score_b,
            )
            snapshot = copy.deepcopy(match)
        await self.bus.publish(events)
        return snapshot

    async def pending_confirmations(self, reporter_id: str) -> list[MatchView]:
        """Dual-host matches where reporter_id still owes a result submission."""
        now = self.clock()
        pending: list[MatchView] = []
        for record in self.store.records():
            labels = {mid: m.label for mid, m in record.matches.items()}
            for match in record.matches.values():
                if consensus.awaiting_confirmation(match, reporter_id, now):
                    pending.append(match_view(match, labels))
        return pending

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    async def get_tournament(self, tournament_id: str) -> Tournament:
        async with self.store.locked(tournament_id) as record:
            return copy.deepcopy(record.tournament)

    async def list_tournaments(
        self,
        status: TournamentStatus | None = None,
        game: str | None = None,
    ) -> list[Tournament]:
        tournaments = [
            copy.deepcopy(r.tournament)
            for r in self.store.records()
            if (status is None or r.tournament.status == status)
            and (game is None or r.tournament.game == game)
        ]
        return sorted(tournaments, key=lambda t: t.created_at)

    async def list_participants(self, tournament_id: str) -> list[Participant]:
        async with self.store.locked(tournament_id) as record:
            return list(record.participants)

    async def get_bracket_view(self, tournament_id: str) -> BracketView:
        async with self.store.locked(tournament_id) as record:
            if record.bracket is None:
                raise BracketNotFound(tournament_id)
            return bracket_view(record)

    async def get_results(self, tournament_id: str) -> TournamentResults:
        async with self.store.locked(tournament_id) as record:
            return tournament_results(record)

    # ------------------------------------------------------------------ #
    # Internal                                                             #
    # ------------------------------------------------------------------ #

    def _require_admin(self, principal_id: str, action: str) -> None:
        if not self.identity.is_admin(principal_id):
            raise Unauthorized(f"{principal_id!r} is not allowed to {action}.")

    async def _auto_generate(self, event: TournamentEvent) -> None:
        if not isinstance(event, TournamentReadyEvent):
            return
        try:
            await self.generate_bracket(event.tournament_id)
        except BracketeerError as exc:
            logger.warning(
                "Automatic bracket generation for tournament %s failed: %s",
                event.tournament_id, exc,
            )
