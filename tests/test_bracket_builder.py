"""
Tests for the bracket builder — topology, byes, round tags, verification
assignment and the exactly-once generate() guard.  Pure functions only; the
engine-level race is covered in test_engine.py.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from bracketeer.bracket import build_bracket, generate, round_label, round_tag, seeded_order
from bracketeer.errors import BracketAlreadyExists, InsufficientParticipants, TournamentNotFull
from bracketeer.events import BracketGeneratedEvent, MatchReadyEvent
from bracketeer.models import (
    Participant,
    ParticipantSlot,
    Tournament,
    TournamentSettings,
    WinnerOf,
)
from bracketeer.store import TournamentRecord

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


# --------------------------------------------------------------------------- #
# Helpers                                                                      #
# --------------------------------------------------------------------------- #

def make_participants(n: int) -> list[Participant]:
    return [
        Participant(
            id=f"p{i}",
            display_name=f"Team {i}",
            organizer_id=f"org-{i}",
            team_id=f"team-{i}",
            region="eu" if i % 2 else "na",
            roster=(),
            registered_at=NOW,
        )
        for i in range(n)
    ]


def make_record(n: int, status: str = "full", settings: TournamentSettings | None = None) -> TournamentRecord:
    t = Tournament(
        id="t-1",
        game="valorant",
        capacity=n,
        settings=settings or TournamentSettings(),
        created_at=NOW,
        status=status,
        participant_count=n,
    )
    return TournamentRecord(tournament=t, participants=make_participants(n))


# --------------------------------------------------------------------------- #
# Topology                                                                     #
# --------------------------------------------------------------------------- #

class TestTopology:
    @pytest.mark.parametrize("n", range(2, 18))
    def test_match_count_is_n_minus_one(self, n):
        bracket, matches = build_bracket("t-1", make_participants(n), TournamentSettings(), NOW)
        assert len(matches) == n - 1
        assert len(bracket.rounds) == math.ceil(math.log2(n))

    @pytest.mark.parametrize("n", range(2, 18))
    def test_exactly_one_final(self, n):
        bracket, matches = build_bracket("t-1", make_participants(n), TournamentSettings(), NOW)
        finals = [m for m in matches if m.round_tag == "final"]
        assert len(finals) == 1
        assert bracket.final_match_id == finals[0].id
        assert finals[0].label == "F"

    @pytest.mark.parametrize("n", [3, 5, 6, 7, 11])
    def test_every_participant_enters_round_one_once(self, n):
        participants = make_participants(n)
        bracket, matches = build_bracket("t-1", participants, TournamentSettings(), NOW)
        first = bracket.rounds[0]
        by_id = {m.id: m for m in matches}

        entrants = []
        for mid in first.match_ids:
            entrants += [by_id[mid].participant_a.id, by_id[mid].participant_b.id]
        if first.bye is not None:
            entrants.append(first.bye.participant.id)

        assert sorted(entrants) == sorted(p.id for p in participants)

    @pytest.mark.parametrize("n", [4, 5, 6, 9])
    def test_every_non_final_winner_feeds_exactly_one_slot(self, n):
        bracket, matches = build_bracket("t-1", make_participants(n), TournamentSettings(), NOW)
        refs = []
        for m in matches:
            refs += [s.match_id for s in (m.slot_a, m.slot_b) if isinstance(s, WinnerOf)]

        non_final = {m.id for m in matches if m.id != bracket.final_match_id}
        assert sorted(refs) == sorted(non_final)

    def test_four_teams_two_semis_and_placeholder_final(self):
        bracket, matches = build_bracket("t-1", make_participants(4), TournamentSettings(), NOW)
        by_id = {m.id: m for m in matches}
        semis = [by_id[mid] for mid in bracket.rounds[0].match_ids]
        final = by_id[bracket.final_match_id]

        assert [m.label for m in semis] == ["SF-1", "SF-2"]
        assert all(m.status == "scheduling" for m in semis)
        assert final.slot_a == WinnerOf(semis[0].id)
        assert final.slot_b == WinnerOf(semis[1].id)
        assert final.status == "pending"

    def test_three_teams_bye_plays_in_final(self):
        bracket, matches = build_bracket("t-1", make_participants(3), TournamentSettings(), NOW)
        by_id = {m.id: m for m in matches}
        semi_round = bracket.rounds[0]
        final = by_id[bracket.final_match_id]

        assert len(semi_round.match_ids) == 1
        assert isinstance(semi_round.bye, ParticipantSlot)
        assert final.slot_a == semi_round.bye
        assert final.slot_b == WinnerOf(semi_round.match_ids[0])

    def test_six_teams_bye_in_second_round_is_a_placeholder(self):
        bracket, _ = build_bracket("t-1", make_participants(6), TournamentSettings(), NOW)
        assert bracket.rounds[0].bye is None
        assert isinstance(bracket.rounds[1].bye, WinnerOf)
        assert bracket.rounds[1].bye.match_id == bracket.rounds[0].match_ids[-1]

    def test_seeding_is_reproducible(self):
        participants = make_participants(8)
        first = [p.id for p in seeded_order("t-1", participants)]
        second = [p.id for p in seeded_order("t-1", list(participants))]
        assert first == second
        assert sorted(first) == sorted(p.id for p in participants)

    def test_fewer_than_two_raises(self):
        with pytest.raises(InsufficientParticipants):
            build_bracket("t-1", make_participants(1), TournamentSettings(), NOW)


class TestRoundNaming:
    def test_tags_count_back_from_the_final(self):
        assert [round_tag(r, 4) for r in range(1, 5)] == ["first", "quarter", "semi", "final"]
        assert [round_tag(r, 1) for r in range(1, 2)] == ["final"]
        assert [round_tag(r, 5) for r in range(1, 6)] == ["first", "first", "quarter", "semi", "final"]

    def test_labels(self):
        assert round_label(4, 1, "final") == "F"
        assert round_label(3, 2, "semi") == "SF-2"
        assert round_label(2, 4, "quarter") == "QF-4"
        assert round_label(1, 7, "first") == "R1-M7"


class TestVerificationAssignment:
    def test_dual_host_rounds_get_consensus_state(self):
        settings = TournamentSettings(
            dual_host_rounds=frozenset({"final"}),
            host_scopes={"eu": "host-eu", "na": "host-na"},
        )
        bracket, matches = build_bracket("t-1", make_participants(4), settings, NOW)
        for m in matches:
            if m.id == bracket.final_match_id:
                assert m.verification == "dual_host"
                assert m.consensus.scopes == {"eu": "host-eu", "na": "host-na"}
            else:
                assert m.verification == "single_report"
                assert m.consensus is None


# --------------------------------------------------------------------------- #
# generate() guard                                                             #
# --------------------------------------------------------------------------- #

class TestGenerate:
    def test_generate_activates_tournament_and_emits(self):
        record = make_record(4)
        events = []
        bracket = generate(record, NOW, events)

        assert record.tournament.status == "active"
        assert record.tournament.bracket_id == bracket.id
        assert len(record.matches) == 3
        assert isinstance(events[0], BracketGeneratedEvent)
        assert len(events[0].pairings) == 2
        assert sum(isinstance(e, MatchReadyEvent) for e in events) == 2

    def test_second_generate_raises(self):
        record = make_record(4)
        generate(record, NOW, [])
        events = []
        with pytest.raises(BracketAlreadyExists):
            generate(record, NOW, events)
        assert events == []
        assert len(record.matches) == 3

    def test_open_tournament_raises(self):
        record = make_record(4, status="open")
        with pytest.raises(TournamentNotFull):
            generate(record, NOW, [])
        assert record.bracket is None

    def test_force_closed_with_one_entry_raises(self):
        record = make_record(1)
        with pytest.raises(InsufficientParticipants):
            generate(record, NOW, [])
        assert record.tournament.status == "full"
