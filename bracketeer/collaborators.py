"""
Collaborator interfaces consumed by the engine.

The engine never authenticates anyone and never owns team membership.  It asks
an IdentityResolver whether a principal holds admin rights or leads a team,
and a RosterProvider for a team's players at registration time.  Directory is a
dict-backed implementation of both, used by the scenario driver and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from bracketeer.models import PlayerRef


class IdentityResolver(ABC):
    @abstractmethod
    def is_admin(self, principal_id: str) -> bool:
        """True if principal_id may perform administrative overrides."""
        ...  # pragma: no cover

    @abstractmethod
    def leads_team(self, principal_id: str, team_id: str) -> bool:
        """True if principal_id may enter team_id into tournaments."""
        ...  # pragma: no cover


class RosterProvider(ABC):
    @abstractmethod
    def roster(self, team_id: str) -> list[PlayerRef]:
        """Current members of team_id.  The engine snapshots the result."""
        ...  # pragma: no cover


class Directory(IdentityResolver, RosterProvider):
    """In-memory identity and roster facts."""

    def __init__(
        self,
        admins: set[str] | None = None,
        rosters: dict[str, list[PlayerRef]] | None = None,
        leaders: dict[str, str] | None = None,
    ) -> None:
        self.admins: set[str] = set(admins or ())
        self.rosters: dict[str, list[PlayerRef]] = dict(rosters or {})
        self.leaders: dict[str, str] = dict(leaders or {})   # team_id -> leader

    def is_admin(self, principal_id: str) -> bool:
        return principal_id in self.admins

    def leads_team(self, principal_id: str, team_id: str) -> bool:
        return self.leaders.get(team_id) == principal_id

    def roster(self, team_id: str) -> list[PlayerRef]:
        return list(self.rosters.get(team_id, []))

    def set_roster(self, team_id: str, players: list[PlayerRef]) -> None:
        self.rosters[team_id] = list(players)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ManualClock:
    """A clock that only moves when told to.  Callable like utc_now."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now += delta
        return self._now
