"""
Tests for the scenario loader and driver — a whole tournament played end to
end through the engine.
"""

from __future__ import annotations

import unittest
import uuid
from pathlib import Path

from bracketeer.config import EngineConfig
from bracketeer.events import MatchCompletedEvent, MatchDisputedEvent, TournamentCompletedEvent
from bracketeer.scenario import Scenario, TeamSpec, load_scenario, run_scenario

EXAMPLE = Path(__file__).resolve().parent.parent / "scenario.example.yaml"


def make_scenario(n: int, **kwargs) -> Scenario:
    teams = [
        TeamSpec(name=f"Team {i}", organizer=f"org-{i}", region="eu", roster=[f"player{i}"])
        for i in range(n)
    ]
    return Scenario(game="valorant", capacity=kwargs.pop("capacity", n), admin="admin-1", teams=teams, **kwargs)


class LoadScenarioTests(unittest.TestCase):
    def _write(self, text: str) -> Path:
        path = Path(f".test_scenario_{uuid.uuid4().hex}.yaml")
        path.write_text(text, encoding="utf-8")
        self.addCleanup(lambda: path.unlink(missing_ok=True))
        return path

    def test_example_loads(self):
        scenario = load_scenario(EXAMPLE)
        self.assertEqual(scenario.capacity, 6)
        self.assertEqual(len(scenario.teams), 6)
        self.assertEqual(scenario.settings.host_scopes, {"eu": "host-eu", "na": "host-na"})
        self.assertEqual(scenario.settings.dual_host_rounds, frozenset({"semi", "final"}))
        self.assertIsNotNone(scenario.start.tzinfo)

    def test_team_id_is_slugged(self):
        self.assertEqual(TeamSpec(name="Red Ravens!", organizer="o").team_id, "red-ravens")

    def test_missing_teams_raises(self):
        with self.assertRaisesRegex(ValueError, "Invalid scenario structure"):
            load_scenario(self._write("game: x\nadmin: a\n"))

    def test_unknown_winner_raises(self):
        text = (
            "game: x\nadmin: a\n"
            "teams:\n  - {name: A, organizer: oa}\n  - {name: B, organizer: ob}\n"
            "winners:\n  F: C\n"
        )
        with self.assertRaisesRegex(ValueError, "unknown team"):
            load_scenario(self._write(text))

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_scenario(Path(f".missing_{uuid.uuid4().hex}.yaml"))


class RunScenarioTests(unittest.IsolatedAsyncioTestCase):
    async def test_single_report_tournament_runs_to_completion(self):
        events = []
        outcome = await run_scenario(make_scenario(5), on_event=events.append)

        self.assertEqual(outcome.results.status, "completed")
        self.assertEqual(len(outcome.results.matches), 4)
        self.assertEqual(outcome.bracket.winner, outcome.results.winner)
        self.assertEqual(sum(isinstance(e, MatchCompletedEvent) for e in events), 4)
        self.assertEqual(sum(isinstance(e, TournamentCompletedEvent) for e in events), 1)

    async def test_under_capacity_is_force_closed(self):
        outcome = await run_scenario(make_scenario(3, capacity=8))
        self.assertEqual(outcome.results.status, "completed")
        self.assertEqual(len(outcome.results.matches), 2)

    async def test_example_dispute_is_forced(self):
        events = []
        outcome = await run_scenario(load_scenario(EXAMPLE), on_event=events.append)

        self.assertEqual(outcome.results.status, "completed")
        (disputed,) = [e for e in events if isinstance(e, MatchDisputedEvent)]
        self.assertEqual(disputed.label, "F")
        final = outcome.bracket.by_label("F")
        self.assertEqual(final.forced_by, "admin-1")
        self.assertEqual(final.winner, outcome.results.winner)

    async def test_auto_generate_config(self):
        outcome = await run_scenario(make_scenario(4), EngineConfig(auto_generate_bracket=True))
        self.assertEqual(outcome.results.status, "completed")
        self.assertEqual(len(outcome.results.matches), 3)

    async def test_pinned_winner(self):
        scenario = make_scenario(2, winners={"F": "Team 1"})
        outcome = await run_scenario(scenario)
        self.assertEqual(outcome.results.winner, "Team 1")
        self.assertEqual(outcome.results.runner_up, "Team 0")
