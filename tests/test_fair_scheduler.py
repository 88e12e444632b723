"""
Tests for round-robin pairing generation and fair group-phase scheduling.
"""
import logging
import math
import pytest
import sys
import os
from datetime import datetime, timedelta
from itertools import combinations

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import group_match, make_teams
from planner.fair_scheduler import (
    TeamScheduleState, analyze_schedule_fairness, balance_home_away, calculate_fairness_score,
    format_fairness_report, generate_group_phase_schedule, generate_round_robin_pairings,
)


def groups_of(sizes):
    teams = make_teams(sizes)
    return {group: [t for t in teams if t.group == group] for group in sizes}


def slots_per_team(matches):
    slots = {}
    for match in matches:
        slots.setdefault(match.team_a, []).append(match.slot)
        slots.setdefault(match.team_b, []).append(match.slot)
    return {team: sorted(s) for team, s in slots.items()}


class TestRoundRobinPairings:
    """Tests for generate_round_robin_pairings."""

    @pytest.mark.parametrize("size", [2, 3, 4, 5, 6, 7])
    def test_every_pair_exactly_once(self, size):
        """Each pair of teams meets once and only once."""
        teams = make_teams({'A': size})
        pairings = generate_round_robin_pairings(teams)
        pairs = [frozenset((home.id, away.id)) for home, away in pairings]
        assert len(pairs) == size * (size - 1) // 2
        assert set(pairs) == {frozenset((a.id, b.id)) for a, b in combinations(teams, 2)}

    def test_no_self_pairing(self):
        """No team is paired with itself."""
        for home, away in generate_round_robin_pairings(make_teams({'A': 5})):
            assert home.id != away.id

    def test_single_team(self):
        """A lone team has nobody to play."""
        assert generate_round_robin_pairings(make_teams({'A': 1})) == []


class TestFairnessScore:
    """Tests for calculate_fairness_score."""

    def test_rest_violation_is_infinite(self):
        """Playing again inside the minimum rest is never allowed."""
        state_a, state_b = TeamScheduleState('a'), TeamScheduleState('b')
        state_a.record(0, 1, home=True)
        assert calculate_fairness_score(state_a, state_b, 1, 1, min_rest_slots=1) == math.inf
        assert calculate_fairness_score(state_a, state_b, 2, 1, min_rest_slots=1) < math.inf

    def test_later_slot_scores_higher(self):
        """Earlier slots are preferred."""
        state_a, state_b = TeamScheduleState('a'), TeamScheduleState('b')
        assert (calculate_fairness_score(state_a, state_b, 3, 1, 0)
                > calculate_fairness_score(state_a, state_b, 0, 1, 0))

    def test_same_field_again_scores_higher(self):
        """Teams are moved between fields when possible."""
        state_a, state_b = TeamScheduleState('a'), TeamScheduleState('b')
        state_a.record(0, 1, home=True)
        state_b.record(0, 2, home=False)
        same_field = calculate_fairness_score(state_a, state_b, 2, 1, 1)
        other_field = calculate_fairness_score(state_a, state_b, 2, 3, 1)
        assert same_field > other_field

    def test_home_away_imbalance_penalized(self):
        """Putting a team at home again costs more than evening it out."""
        state_a, state_b = TeamScheduleState('a'), TeamScheduleState('b')
        state_a.record(0, 1, home=True)
        state_b.record(0, 1, home=False)
        assert (calculate_fairness_score(state_a, state_b, 2, 1, 1)
                > calculate_fairness_score(state_b, state_a, 2, 1, 1))


class TestGroupPhaseSchedule:
    """Tests for generate_group_phase_schedule."""

    def test_every_pairing_scheduled_once(self):
        """Every pairing of every group is scheduled exactly once."""
        groups = groups_of({'A': 4, 'B': 5})
        matches = generate_group_phase_schedule(groups, number_of_fields=2, slot_duration=10)

        assert len(matches) == 6 + 10
        for group, teams in groups.items():
            played = [frozenset((m.team_a, m.team_b)) for m in matches if m.group == group]
            expected = {frozenset((a.id, b.id)) for a, b in combinations(teams, 2)}
            assert len(played) == len(expected)
            assert set(played) == expected

    def test_min_rest_respected(self):
        """Teams always get the minimum rest between matches."""
        groups = groups_of({'A': 5, 'B': 5})
        matches = generate_group_phase_schedule(groups, number_of_fields=3, slot_duration=10, min_rest_slots=1)
        for team, slots in slots_per_team(matches).items():
            for earlier, later in zip(slots, slots[1:]):
                assert later - earlier >= 2, f"{team} plays in slots {earlier} and {later}"

    def test_no_team_twice_in_a_slot(self):
        """A team never plays on two fields at once."""
        groups = groups_of({'A': 6})
        matches = generate_group_phase_schedule(groups, number_of_fields=3, slot_duration=10, min_rest_slots=0)
        for team, slots in slots_per_team(matches).items():
            assert len(slots) == len(set(slots)), f"{team} plays twice in one slot"

    def test_fields_and_ids(self):
        """Matches get sequential ids and distinct slot and field pairs."""
        groups = groups_of({'A': 4, 'B': 4})
        matches = generate_group_phase_schedule(groups, number_of_fields=2, slot_duration=10)
        assert [m.id for m in matches] == [f"g{i}" for i in range(1, len(matches) + 1)]
        for match in matches:
            assert 1 <= match.field <= 2
            assert match.round == match.slot + 1
            assert not match.is_final
        occupied = [(m.slot, m.field) for m in matches]
        assert len(occupied) == len(set(occupied))

    def test_scheduled_times(self):
        """Each slot starts slot duration plus break after the previous one."""
        start = datetime(2026, 5, 1, 9, 0)
        groups = groups_of({'A': 4})
        matches = generate_group_phase_schedule(groups, number_of_fields=1, slot_duration=12,
                                                break_duration=3, start_time=start)
        for match in matches:
            assert match.scheduled_time == start + timedelta(minutes=15 * match.slot)

    def test_without_start_time(self):
        """Without a start time there are no kickoff times."""
        matches = generate_group_phase_schedule(groups_of({'A': 3}), 1, 10)
        assert all(m.scheduled_time is None for m in matches)

    def test_invalid_field_count(self):
        """At least one field is needed."""
        with pytest.raises(ValueError):
            generate_group_phase_schedule(groups_of({'A': 4}), number_of_fields=0, slot_duration=10)

    def test_negative_duration(self):
        """Durations cannot be negative."""
        with pytest.raises(ValueError):
            generate_group_phase_schedule(groups_of({'A': 4}), number_of_fields=1, slot_duration=-5)

    def test_small_group_logs_warning(self, caplog):
        """Groups with one team are skipped with a warning."""
        with caplog.at_level(logging.WARNING, logger='planner.fair_scheduler'):
            matches = generate_group_phase_schedule(groups_of({'A': 1, 'B': 2}), 1, 10)
        assert len(matches) == 1
        assert "Group A has fewer than 2 teams" in caplog.text

    def test_infeasible_constraints_stop(self, caplog):
        """Placement gives up after twice as many slots as pairings."""
        with caplog.at_level(logging.ERROR, logger='planner.fair_scheduler'):
            matches = generate_group_phase_schedule(groups_of({'A': 3}), 1, 10, min_rest_slots=100)
        assert len(matches) == 1
        assert "Could not schedule all matches" in caplog.text

    @pytest.mark.slow
    def test_large_tournament(self):
        """Four groups of six fit into five matches per team."""
        groups = groups_of({'A': 6, 'B': 6, 'C': 6, 'D': 6})
        matches = generate_group_phase_schedule(groups, number_of_fields=4, slot_duration=10)
        assert len(matches) == 4 * 15
        for slots in slots_per_team(matches).values():
            assert len(slots) == 5


class TestBalanceHomeAway:
    """Tests for balance_home_away."""

    def test_swaps_overloaded_home_team(self):
        """A team with too many home matches gets swapped to away."""
        matches = [
            group_match('g1', 'A', 'x', 'a', slot=0),
            group_match('g2', 'A', 'x', 'b', slot=2),
            group_match('g3', 'A', 'x', 'c', slot=4),
        ]
        balanced = balance_home_away(matches)
        assert (balanced[0].team_a, balanced[0].team_b) == ('a', 'x')
        assert [(m.team_a, m.team_b) for m in balanced[1:]] == [('x', 'b'), ('x', 'c')]
        assert matches[0].team_a == 'x'

    def test_balanced_schedule_unchanged(self):
        """An already balanced schedule is left alone."""
        matches = [group_match('g1', 'A', 'x', 'y', slot=0), group_match('g2', 'A', 'y', 'x', slot=2)]
        balanced = balance_home_away(matches)
        assert [(m.team_a, m.team_b) for m in balanced] == [('x', 'y'), ('y', 'x')]


class TestFairnessAnalysis:
    """Tests for analyze_schedule_fairness and its report."""

    @pytest.fixture
    def matches(self):
        return [
            group_match('g1', 'A', 'x', 'y', slot=0, field=1),
            group_match('g2', 'A', 'z', 'x', slot=2, field=2),
            group_match('g3', 'A', 'x', 'w', slot=6, field=1),
        ]

    def test_team_stats(self, matches):
        """Rests, fields and home counts are collected per team."""
        stats = analyze_schedule_fairness(matches).for_team('x')
        assert stats.match_slots == [0, 2, 6]
        assert stats.rests == [2, 4]
        assert (stats.min_rest, stats.max_rest, stats.avg_rest) == (2, 4, 3)
        assert stats.rest_variance == 1
        assert stats.field_distribution == {1: 2, 2: 1}
        assert (stats.home_count, stats.away_count, stats.home_away_balance) == (2, 1, 1)

    def test_single_match_team(self, matches):
        """One match means no rests to measure."""
        stats = analyze_schedule_fairness(matches).for_team('y')
        assert (stats.min_rest, stats.max_rest, stats.avg_rest) == (0, 0, 0)

    def test_unresolved_matches_skipped(self, matches):
        """Matches without both teams are left out of the analysis."""
        matches.append(group_match('semi1', None, None, None, slot=8))
        analysis = analyze_schedule_fairness(matches)
        assert sorted(s.team_id for s in analysis.team_stats) == ['w', 'x', 'y', 'z']

    def test_global_values(self, matches):
        """Global rest values span every team."""
        analysis = analyze_schedule_fairness(matches)
        assert analysis.min_rest_all_teams == 0
        assert analysis.max_rest_all_teams == 4
        data = analysis.to_dict()
        assert data['global']['maxRestAllTeams'] == 4
        assert any(s['teamId'] == 'x' and s['restsInSlots'] == [2, 4] for s in data['teamStats'])

    def test_report(self, matches):
        """The text report names the teams."""
        report = format_fairness_report(analyze_schedule_fairness(matches), {'x': 'Lions'})
        assert report.startswith("Schedule fairness")
        assert "Lions" in report
