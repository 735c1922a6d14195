"""
In-memory state store and the per-tournament critical sections.

A TournamentRecord is the unit of serialization: the tournament, its
participants, bracket, matches and proposals all live inside one record and
are only mutated while that record's lock is held.  Indexes map match and
proposal ids back to their tournament so callers can address them directly.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from bracketeer.errors import (
    MatchNotFound,
    OperationTimeout,
    ProposalNotFound,
    TournamentNotFound,
)
from bracketeer.models import Bracket, Match, Participant, TimeSlotProposal, Tournament

logger = logging.getLogger(__name__)


@dataclass
class TournamentRecord:
    tournament: Tournament
    participants: list[Participant] = field(default_factory=list)
    bracket: Bracket | None = None
    matches: dict[str, Match] = field(default_factory=dict)
    proposals: dict[str, TimeSlotProposal] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def match(self, match_id: str) -> Match:
        try:
            return self.matches[match_id]
        except KeyError:
            raise MatchNotFound(match_id) from None

    def proposals_for(self, match_id: str) -> list[TimeSlotProposal]:
        return [p for p in self.proposals.values() if p.match_id == match_id]


class Store:
    def __init__(self, lock_timeout: float = 5.0) -> None:
        self.lock_timeout = lock_timeout
        self._records: dict[str, TournamentRecord] = {}
        self._match_index: dict[str, str] = {}
        self._proposal_index: dict[str, str] = {}
        # Held by create/delete: the one-live-tournament-per-game rule spans records.
        self._catalog_lock = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # Lookup                                                               #
    # ------------------------------------------------------------------ #

    def record(self, tournament_id: str) -> TournamentRecord:
        try:
            return self._records[tournament_id]
        except KeyError:
            raise TournamentNotFound(tournament_id) from None

    def records(self) -> list[TournamentRecord]:
        return list(self._records.values())

    def tournament_id_for_match(self, match_id: str) -> str:
        try:
            return self._match_index[match_id]
        except KeyError:
            raise MatchNotFound(match_id) from None

    def tournament_id_for_proposal(self, proposal_id: str) -> str:
        try:
            return self._proposal_index[proposal_id]
        except KeyError:
            raise ProposalNotFound(proposal_id) from None

    # ------------------------------------------------------------------ #
    # Mutation (callers hold the relevant lock)                            #
    # ------------------------------------------------------------------ #

    def add(self, record: TournamentRecord) -> None:
        self._records[record.tournament.id] = record

    def remove(self, tournament_id: str) -> TournamentRecord:
        record = self._records.pop(tournament_id)
        for match_id in record.matches:
            self._match_index.pop(match_id, None)
        for proposal_id in record.proposals:
            self._proposal_index.pop(proposal_id, None)
        return record

    def index_matches(self, record: TournamentRecord) -> None:
        for match_id in record.matches:
            self._match_index[match_id] = record.tournament.id

    def index_proposal(self, proposal: TimeSlotProposal, tournament_id: str) -> None:
        self._proposal_index[proposal.id] = tournament_id

    # ------------------------------------------------------------------ #
    # Critical sections                                                    #
    # ------------------------------------------------------------------ #

    @asynccontextmanager
    async def catalog(self) -> AsyncIterator[None]:
        await _acquire(self._catalog_lock, self.lock_timeout, "catalog")
        try:
            yield
        finally:
            self._catalog_lock.release()

    @asynccontextmanager
    async def locked(self, tournament_id: str) -> AsyncIterator[TournamentRecord]:
        """
        Enter tournament_id's exclusive section and yield its record.

        The record is re-read after acquisition: a tournament deleted while
        this caller was waiting surfaces as TournamentNotFound.
        """
        record = self.record(tournament_id)
        await _acquire(record.lock, self.lock_timeout, tournament_id)
        try:
            yield self.record(tournament_id)
        finally:
            record.lock.release()


async def _acquire(lock: asyncio.Lock, timeout: float, name: str) -> None:
    try:
        async with asyncio.timeout(timeout):
            await lock.acquire()
    except TimeoutError:
        logger.warning("Timed out after %.1fs waiting for %s lock", timeout, name)
        raise OperationTimeout(
            f"Could not enter the critical section for {name!r} within {timeout:.1f}s"
        ) from None
