"""
Tests for result resolution: dual-host consensus, disputes and admin
tie-breaks, the single-report path, and round advancement on completion.
"""

from __future__ import annotations

import unittest
from datetime import timedelta

from bracketeer import advancement
from bracketeer.collaborators import Directory, ManualClock
from bracketeer.engine import TournamentEngine
from bracketeer.errors import (
    InvalidScore,
    InvalidWinner,
    MatchAlreadyCompleted,
    MatchDisputed,
    MatchNotAwaitingResult,
    MatchNotReportable,
    MatchNotSchedulable,
    Unauthorized,
    UnauthorizedReporter,
)
from bracketeer.events import (
    MatchAwaitingResultEvent,
    MatchCompletedEvent,
    MatchDisputedEvent,
    MatchReadyEvent,
    TournamentCompletedEvent,
)
from bracketeer.models import ParticipantEntry, PlayerRef, TournamentSettings
from bracketeer.views import MatchView

ADMIN = "admin-1"
HOSTS = {"eu": "host-eu", "na": "host-na"}
HOUR = timedelta(hours=1)


def make_entry(i: int) -> ParticipantEntry:
    return ParticipantEntry(
        display_name=f"Team {i}",
        organizer_id=f"org-{i}",
        team_id=f"team-{i}",
        region="eu" if i % 2 else "na",
    )


class ResultTestCase(unittest.IsolatedAsyncioTestCase):
    dual_host_rounds: frozenset = frozenset({"semi", "final"})

    async def asyncSetUp(self) -> None:
        directory = Directory(
            admins={ADMIN},
            rosters={f"team-{i}": [PlayerRef(f"u{i}", f"player{i}")] for i in range(4)},
            leaders={f"team-{i}": f"org-{i}" for i in range(4)},
        )
        self.clock = ManualClock()
        self.engine = TournamentEngine(identity=directory, rosters=directory, clock=self.clock)
        self.events = []
        self.engine.bus.subscribe(self.events.append)

        settings = TournamentSettings(dual_host_rounds=self.dual_host_rounds, host_scopes=HOSTS)
        t = await self.engine.create_tournament("valorant", 4, settings)
        for i in range(4):
            await self.engine.register_participant(t.id, make_entry(i))
        await self.engine.generate_bracket(t.id)
        self.tournament_id = t.id
        self.organizers = {
            p.id: p.organizer_id for p in await self.engine.list_participants(t.id)
        }

    async def view(self, label: str) -> MatchView:
        return (await self.engine.get_bracket_view(self.tournament_id)).by_label(label)

    async def play_until_due(self, label: str) -> MatchView:
        m = await self.view(label)
        proposal = await self.engine.propose_time(
            m.id, self.organizers[m.team_a_id], self.clock() + HOUR
        )
        await self.engine.respond_to_time(proposal.id, self.organizers[m.team_b_id], accept=True)
        self.clock.advance(2 * HOUR)
        return await self.view(label)

    async def agree(self, label: str, winner_id: str) -> None:
        m = await self.view(label)
        for scope, host in HOSTS.items():
            await self.engine.submit_result(m.id, host, scope, winner_id)


# --------------------------------------------------------------------------- #
# Dual-host consensus                                                          #
# --------------------------------------------------------------------------- #

class TestConsensus(ResultTestCase):
    async def test_agreement_completes_and_fills_final(self):
        sf1 = await self.play_until_due("SF-1")
        sf2 = await self.play_until_due("SF-2")
        await self.agree("SF-1", sf1.team_a_id)
        await self.agree("SF-2", sf2.team_b_id)

        sf1 = await self.view("SF-1")
        self.assertEqual(sf1.status, "completed")
        self.assertEqual(sf1.winner, sf1.team_a)

        final = await self.view("F")
        self.assertEqual(final.status, "scheduling")
        self.assertEqual((final.team_a_id, final.team_b_id), (sf1.team_a_id, sf2.team_b_id))
        ready = [e for e in self.events if isinstance(e, MatchReadyEvent) and e.label == "F"]
        self.assertEqual(len(ready), 1)

    async def test_partial_submissions_do_not_complete(self):
        sf1 = await self.play_until_due("SF-1")
        updated = await self.engine.submit_result(sf1.id, "host-eu", "eu", sf1.team_a_id)
        self.assertEqual(updated.status, "awaiting_result")
        self.assertEqual(updated.consensus.missing_scopes, ["na"])

    async def test_submission_promotes_due_match_lazily(self):
        sf1 = await self.play_until_due("SF-1")
        self.assertEqual(sf1.status, "scheduled")
        await self.engine.submit_result(sf1.id, "host-eu", "eu", sf1.team_a_id)
        self.assertEqual((await self.view("SF-1")).status, "awaiting_result")
        self.assertTrue(any(isinstance(e, MatchAwaitingResultEvent) for e in self.events))

    async def test_sweep_opens_due_matches(self):
        sf1 = await self.play_until_due("SF-1")
        opened = await self.engine.open_due_matches(self.tournament_id)
        self.assertEqual(opened, [sf1.id])
        self.assertEqual(await self.engine.open_due_matches(self.tournament_id), [])

    async def test_due_match_cannot_be_rescheduled(self):
        sf1 = await self.play_until_due("SF-1")
        with self.assertRaises(MatchNotSchedulable):
            await self.engine.propose_time(
                sf1.id, self.organizers[sf1.team_b_id], self.clock() + HOUR
            )
        self.assertEqual((await self.view("SF-1")).status, "scheduled")
        await self.agree("SF-1", sf1.team_a_id)
        self.assertEqual((await self.view("SF-1")).status, "completed")

    async def test_same_scope_resubmission_overwrites(self):
        sf1 = await self.play_until_due("SF-1")
        await self.engine.submit_result(sf1.id, "host-eu", "eu", sf1.team_b_id)
        await self.engine.submit_result(sf1.id, "host-eu", "eu", sf1.team_a_id)
        done = await self.engine.submit_result(sf1.id, "host-na", "na", sf1.team_a_id)
        self.assertEqual(done.status, "completed")
        self.assertEqual(done.winner.id, sf1.team_a_id)

    async def test_too_early(self):
        m = await self.view("SF-1")
        with self.assertRaises(MatchNotAwaitingResult):
            await self.engine.submit_result(m.id, "host-eu", "eu", m.team_a_id)

    async def test_wrong_host_for_scope(self):
        sf1 = await self.play_until_due("SF-1")
        with self.assertRaises(UnauthorizedReporter):
            await self.engine.submit_result(sf1.id, "host-na", "eu", sf1.team_a_id)
        with self.assertRaises(UnauthorizedReporter):
            await self.engine.submit_result(sf1.id, "host-eu", "apac", sf1.team_a_id)

    async def test_claimed_winner_must_play_in_match(self):
        sf1 = await self.play_until_due("SF-1")
        sf2 = await self.view("SF-2")
        with self.assertRaises(InvalidWinner):
            await self.engine.submit_result(sf1.id, "host-eu", "eu", sf2.team_a_id)

    async def test_pending_confirmations(self):
        sf1 = await self.play_until_due("SF-1")
        pending = await self.engine.pending_confirmations("host-na")
        self.assertEqual([m.id for m in pending], [sf1.id])

        await self.engine.submit_result(sf1.id, "host-na", "na", sf1.team_a_id)
        self.assertEqual(await self.engine.pending_confirmations("host-na"), [])
        self.assertEqual([m.id for m in await self.engine.pending_confirmations("host-eu")], [sf1.id])


# --------------------------------------------------------------------------- #
# Disputes                                                                     #
# --------------------------------------------------------------------------- #

class TestDispute(ResultTestCase):
    async def test_disagreement_disputes_until_forced(self):
        sf1 = await self.play_until_due("SF-1")
        await self.engine.submit_result(sf1.id, "host-eu", "eu", sf1.team_a_id)
        disputed = await self.engine.submit_result(sf1.id, "host-na", "na", sf1.team_b_id)

        self.assertEqual(disputed.status, "awaiting_result")
        self.assertTrue(disputed.consensus.disputed)
        (event,) = [e for e in self.events if isinstance(e, MatchDisputedEvent)]
        self.assertEqual(len(event.submissions), 2)

        with self.assertRaises(MatchDisputed):
            await self.engine.submit_result(sf1.id, "host-na", "na", sf1.team_a_id)

        forced = await self.engine.force_result(sf1.id, ADMIN, sf1.team_b_id)
        self.assertEqual(forced.status, "completed")
        self.assertEqual(forced.winner.id, sf1.team_b_id)
        self.assertEqual(forced.forced_by, ADMIN)
        completed = [e for e in self.events if isinstance(e, MatchCompletedEvent)]
        self.assertEqual(completed[-1].decided_by, "forced")

    async def test_force_requires_admin(self):
        sf1 = await self.play_until_due("SF-1")
        with self.assertRaises(Unauthorized):
            await self.engine.force_result(sf1.id, "host-eu", sf1.team_a_id)

    async def test_force_rejects_completed_and_unresolved(self):
        sf1 = await self.view("SF-1")
        await self.engine.force_result(sf1.id, ADMIN, sf1.team_a_id)
        with self.assertRaises(MatchAlreadyCompleted):
            await self.engine.force_result(sf1.id, ADMIN, sf1.team_a_id)

        final = await self.view("F")
        with self.assertRaises(MatchNotSchedulable):
            await self.engine.force_result(final.id, ADMIN, sf1.team_a_id)

    async def test_force_settles_open_negotiation(self):
        sf1 = await self.view("SF-1")
        proposal = await self.engine.propose_time(
            sf1.id, self.organizers[sf1.team_a_id], self.clock() + HOUR
        )
        await self.engine.force_result(sf1.id, ADMIN, sf1.team_a_id)
        (listed,) = await self.engine.list_proposals(sf1.id)
        self.assertEqual(listed.id, proposal.id)
        self.assertEqual(listed.status, "rejected")


# --------------------------------------------------------------------------- #
# Scores                                                                       #
# --------------------------------------------------------------------------- #

class TestScores(ResultTestCase):
    async def test_agreed_score_is_recorded(self):
        sf1 = await self.play_until_due("SF-1")
        for scope, host in HOSTS.items():
            await self.engine.submit_result(sf1.id, host, scope, sf1.team_b_id, score_a=11, score_b=13)

        done = await self.view("SF-1")
        self.assertEqual(done.status, "completed")
        self.assertEqual((done.score_a, done.score_b), (11, 13))
        (completed,) = [e for e in self.events if isinstance(e, MatchCompletedEvent)]
        self.assertEqual((completed.score_a, completed.score_b), (11, 13))
        results = await self.engine.get_results(self.tournament_id)
        self.assertEqual((results.matches[0].score_a, results.matches[0].score_b), (11, 13))

    async def test_different_scores_dispute(self):
        sf1 = await self.play_until_due("SF-1")
        await self.engine.submit_result(sf1.id, "host-eu", "eu", sf1.team_a_id, score_a=13, score_b=7)
        disputed = await self.engine.submit_result(sf1.id, "host-na", "na", sf1.team_a_id, score_a=13, score_b=9)
        self.assertTrue(disputed.consensus.disputed)

        forced = await self.engine.force_result(sf1.id, ADMIN, sf1.team_a_id, score_a=13, score_b=9)
        self.assertEqual((forced.score_a, forced.score_b), (13, 9))

    async def test_score_must_match_claimed_winner(self):
        sf1 = await self.play_until_due("SF-1")
        for score_a, score_b in ((7, 13), (5, 5), (13, None), (-1, -3)):
            with self.subTest(score=(score_a, score_b)), self.assertRaises(InvalidScore):
                await self.engine.submit_result(
                    sf1.id, "host-eu", "eu", sf1.team_a_id, score_a=score_a, score_b=score_b
                )
        self.assertEqual((await self.view("SF-1")).submissions, ())

    async def test_report_and_force_validate_scores(self):
        self.assertIsNone((await self.view("SF-1")).score_a)
        sf2 = await self.view("SF-2")
        with self.assertRaises(InvalidScore):
            await self.engine.force_result(sf2.id, ADMIN, sf2.team_b_id, score_a=2, score_b=0)
        self.assertEqual((await self.view("SF-2")).status, "scheduling")


class TestReportedScores(ResultTestCase):
    dual_host_rounds = frozenset({"final"})

    async def test_reported_score_is_recorded(self):
        sf1 = await self.play_until_due("SF-1")
        organizer = self.organizers[sf1.team_a_id]
        with self.assertRaises(InvalidScore):
            await self.engine.report_result(sf1.id, organizer, sf1.team_a_id, score_a=0, score_b=2)
        done = await self.engine.report_result(sf1.id, organizer, sf1.team_a_id, score_a=2, score_b=0)
        self.assertEqual((done.score_a, done.score_b), (2, 0))
        self.assertEqual((done.report.score_a, done.report.score_b), (2, 0))


# --------------------------------------------------------------------------- #
# Single-report path                                                           #
# --------------------------------------------------------------------------- #

class TestSingleReport(ResultTestCase):
    dual_host_rounds = frozenset({"final"})

    async def test_organizer_report_completes(self):
        sf1 = await self.play_until_due("SF-1")
        done = await self.engine.report_result(
            sf1.id, self.organizers[sf1.team_b_id], sf1.team_b_id, note="2-1"
        )
        self.assertEqual(done.status, "completed")
        self.assertEqual(done.report.note, "2-1")
        self.assertEqual(done.loser.id, sf1.team_a_id)

    async def test_report_before_time_rejected(self):
        sf1 = await self.view("SF-1")
        with self.assertRaises(MatchNotReportable):
            await self.engine.report_result(sf1.id, self.organizers[sf1.team_a_id], sf1.team_a_id)

    async def test_dual_host_match_cannot_be_reported(self):
        sf1 = await self.play_until_due("SF-1")
        sf2 = await self.play_until_due("SF-2")
        await self.engine.force_result(sf1.id, ADMIN, sf1.team_a_id)
        await self.engine.force_result(sf2.id, ADMIN, sf2.team_a_id)
        final = await self.play_until_due("F")
        with self.assertRaises(MatchNotReportable):
            await self.engine.report_result(final.id, ADMIN, final.team_a_id)

    async def test_outsider_cannot_report(self):
        sf1 = await self.play_until_due("SF-1")
        sf2 = await self.view("SF-2")
        with self.assertRaises(Unauthorized):
            await self.engine.report_result(sf1.id, self.organizers[sf2.team_a_id], sf1.team_a_id)

    async def test_admin_may_report(self):
        sf1 = await self.play_until_due("SF-1")
        done = await self.engine.report_result(sf1.id, ADMIN, sf1.team_a_id)
        self.assertEqual(done.status, "completed")

    async def test_full_run_records_winner_and_runner_up(self):
        sf1 = await self.play_until_due("SF-1")
        sf2 = await self.play_until_due("SF-2")
        await self.engine.report_result(sf1.id, self.organizers[sf1.team_a_id], sf1.team_a_id)
        await self.engine.report_result(sf2.id, self.organizers[sf2.team_a_id], sf2.team_a_id)
        final = await self.play_until_due("F")
        for scope, host in HOSTS.items():
            await self.engine.submit_result(final.id, host, scope, final.team_b_id)

        results = await self.engine.get_results(self.tournament_id)
        self.assertEqual(results.status, "completed")
        self.assertEqual(results.winner, final.team_b)
        self.assertEqual(results.runner_up, final.team_a)
        self.assertEqual([m.label for m in results.matches], ["SF-1", "SF-2", "F"])

        view = await self.engine.get_bracket_view(self.tournament_id)
        self.assertEqual(view.status, "completed")
        self.assertEqual(view.winner, final.team_b)
        self.assertEqual(sum(isinstance(e, TournamentCompletedEvent) for e in self.events), 1)


# --------------------------------------------------------------------------- #
# Advancement idempotence                                                      #
# --------------------------------------------------------------------------- #

class TestAdvancement(ResultTestCase):
    async def test_rerunning_advance_changes_nothing(self):
        sf1 = await self.view("SF-1")
        sf2 = await self.view("SF-2")
        await self.engine.force_result(sf1.id, ADMIN, sf1.team_a_id)
        await self.engine.force_result(sf2.id, ADMIN, sf2.team_a_id)
        before = await self.engine.get_bracket_view(self.tournament_id)
        events_before = len(self.events)

        outcome = await self.engine.advance(sf1.id)
        self.assertFalse(outcome.changed)
        self.assertEqual(await self.engine.get_bracket_view(self.tournament_id), before)
        self.assertEqual(len(self.events), events_before)

    async def test_advance_on_unfinished_match_is_noop(self):
        record = self.engine.store.record(self.tournament_id)
        sf1 = await self.view("SF-1")
        outcome = advancement.advance(record, record.match(sf1.id), self.clock())
        self.assertFalse(outcome.changed)
        self.assertEqual((await self.view("F")).status, "pending")

    async def test_final_completion_is_recorded_once(self):
        sf1 = await self.view("SF-1")
        sf2 = await self.view("SF-2")
        await self.engine.force_result(sf1.id, ADMIN, sf1.team_a_id)
        await self.engine.force_result(sf2.id, ADMIN, sf2.team_a_id)
        final = await self.view("F")
        await self.engine.force_result(final.id, ADMIN, final.team_a_id)

        outcome = await self.engine.advance(final.id)
        self.assertFalse(outcome.tournament_completed)
        t = await self.engine.get_tournament(self.tournament_id)
        self.assertEqual(t.status, "completed")
        self.assertEqual(t.winner.id, final.team_a_id)
        self.assertEqual(t.runner_up.id, final.team_b_id)
