"""
Scenario driver: plays a whole tournament through the engine from a YAML file.

A scenario names the game, the teams and who hosts which region, plus the
outcome of any match worth pinning down.  Everything else is filled in the
way real organizers would act: the team in slot A proposes a time one hour
out, the other organizer accepts, the clock jumps past the start, and the
result is reported (single-report rounds) or confirmed by every host
(dual-host rounds).  Matches listed under `dispute` have their hosts
disagree so that the admin has to force the result.

See scenario.example.yaml for the format.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

import yaml

from bracketeer.collaborators import Directory, ManualClock
from bracketeer.config import EngineConfig
from bracketeer.engine import TournamentEngine
from bracketeer.events import EventHandler
from bracketeer.models import ROUND_ORDER, ParticipantEntry, PlayerRef, TournamentSettings
from bracketeer.views import BracketView, MatchView, TournamentResults

logger = logging.getLogger(__name__)

_LEAD_TIME = timedelta(hours=1)
_MATCH_LENGTH = timedelta(hours=2)


@dataclass
class TeamSpec:
    name: str
    organizer: str
    region: str = ""
    roster: list[str] = field(default_factory=list)

    @property
    def team_id(self) -> str:
        return re.sub(r"[^a-z0-9]+", "-", self.name.lower()).strip("-")


@dataclass
class Scenario:
    game: str
    capacity: int
    admin: str
    teams: list[TeamSpec]
    hosts: dict[str, str] = field(default_factory=dict)        # scope → host principal
    dual_host_rounds: list[str] = field(default_factory=list)
    winners: dict[str, str] = field(default_factory=dict)      # match label → team name
    dispute: list[str] = field(default_factory=list)           # match labels
    start: datetime | None = None

    @property
    def settings(self) -> TournamentSettings:
        return TournamentSettings(
            dual_host_rounds=frozenset(self.dual_host_rounds),
            host_scopes=dict(self.hosts),
        )


@dataclass
class ScenarioOutcome:
    results: TournamentResults
    bracket: BracketView


def load_scenario(path: str | Path) -> Scenario:
    """
    Raises:
        FileNotFoundError: the scenario file is missing.
        ValueError: required fields are absent or invalid.
    """
    scenario_path = Path(path)
    if not scenario_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {scenario_path.resolve()}")

    with scenario_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    try:
        teams = [
            TeamSpec(
                name=str(t["name"]),
                organizer=str(t["organizer"]),
                region=str(t.get("region", "")),
                roster=[str(p) for p in t.get("roster") or []],
            )
            for t in raw["teams"]
        ]
        start = raw.get("start")
        if isinstance(start, str):
            start = datetime.fromisoformat(start)
        scenario = Scenario(
            game=str(raw["game"]),
            capacity=int(raw.get("capacity", len(teams))),
            admin=str(raw["admin"]),
            teams=teams,
            hosts={str(k): str(v) for k, v in (raw.get("hosts") or {}).items()},
            dual_host_rounds=[str(r) for r in raw.get("dual_host_rounds") or []],
            winners={str(k): str(v) for k, v in (raw.get("winners") or {}).items()},
            dispute=[str(label) for label in raw.get("dispute") or []],
            start=start,
        )
    except (AttributeError, KeyError, TypeError) as exc:
        raise ValueError(f"Invalid scenario structure: {exc}") from exc

    _validate(scenario)
    return scenario


def _validate(scenario: Scenario) -> None:
    if len(scenario.teams) < 2:
        raise ValueError("A scenario needs at least two teams")
    if len(scenario.teams) > scenario.capacity:
        raise ValueError(
            f"{len(scenario.teams)} teams listed but capacity is {scenario.capacity}"
        )
    unknown = set(scenario.dual_host_rounds) - set(ROUND_ORDER)
    if unknown:
        raise ValueError(f"Unknown rounds in dual_host_rounds: {sorted(unknown)}")
    names = {t.name for t in scenario.teams}
    if len(names) != len(scenario.teams):
        raise ValueError("Team names must be unique")
    for label, winner in scenario.winners.items():
        if winner not in names:
            raise ValueError(f"winners[{label}] names unknown team {winner!r}")
    if scenario.start is not None and scenario.start.tzinfo is None:
        raise ValueError("start must include a timezone offset")


async def run_scenario(
    scenario: Scenario,
    config: EngineConfig | None = None,
    on_event: EventHandler | None = None,
) -> ScenarioOutcome:
    config = config or EngineConfig()
    clock = ManualClock(scenario.start)
    directory = Directory(admins={scenario.admin})
    for team in scenario.teams:
        directory.set_roster(team.team_id, [PlayerRef(user_id=p, username=p) for p in team.roster])
        directory.leaders[team.team_id] = team.organizer

    engine = TournamentEngine(config, identity=directory, rosters=directory, clock=clock)
    if on_event is not None:
        engine.bus.subscribe(on_event)

    tournament = await engine.create_tournament(scenario.game, scenario.capacity, scenario.settings)
    for team in scenario.teams:
        await engine.register_participant(
            tournament.id,
            ParticipantEntry(
                display_name=team.name,
                organizer_id=team.organizer,
                team_id=team.team_id,
                region=team.region,
            ),
        )
    if len(scenario.teams) < scenario.capacity:
        await engine.force_close(tournament.id, scenario.admin)
    if not config.auto_generate_bracket:
        await engine.generate_bracket(tournament.id)

    organizers = {t.name: t.organizer for t in scenario.teams}
    while True:
        view = await engine.get_bracket_view(tournament.id)
        ready = [m for m in view.matches if m.status == "scheduling"]
        if not ready:
            break
        for m in ready:
            await _play(engine, clock, scenario, organizers, tournament.id, m)

    return ScenarioOutcome(
        results=await engine.get_results(tournament.id),
        bracket=await engine.get_bracket_view(tournament.id),
    )


async def _play(
    engine: TournamentEngine,
    clock: ManualClock,
    scenario: Scenario,
    organizers: dict[str, str],
    tournament_id: str,
    m: MatchView,
) -> None:
    org_a, org_b = organizers[m.team_a], organizers[m.team_b]

    proposal = await engine.propose_time(m.id, org_a, clock() + _LEAD_TIME)
    await engine.respond_to_time(proposal.id, org_b, accept=True)
    clock.advance(_LEAD_TIME + _MATCH_LENGTH)

    winner_name = scenario.winners.get(m.label, m.team_a)
    if winner_name not in (m.team_a, m.team_b):
        logger.warning(
            "Scenario picks %s for %s but the match is %s vs %s; using %s",
            winner_name, m.label, m.team_a, m.team_b, m.team_a,
        )
        winner_name = m.team_a
    winner_id = m.team_a_id if winner_name == m.team_a else m.team_b_id
    loser_id = m.team_b_id if winner_id == m.team_a_id else m.team_a_id

    if m.verification == "single_report":
        await engine.report_result(m.id, org_a, winner_id)
        return

    await engine.open_due_matches(tournament_id)
    disputed = m.label in scenario.dispute and len(scenario.hosts) > 1
    for i, (scope, host) in enumerate(scenario.hosts.items()):
        claim = loser_id if disputed and i == 0 else winner_id
        await engine.submit_result(m.id, host, scope, claim)
    if disputed:
        await engine.force_result(m.id, scenario.admin, winner_id)
