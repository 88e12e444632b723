"""
Complete tournament schedules: group phase, break, knockout phase.
"""
import logging
import math
from datetime import timedelta

from planner.fair_scheduler import FairnessAnalysis, analyze_schedule_fairness, generate_group_phase_schedule
from planner.playoff_scheduler import generate_playoff_definitions, generate_playoff_schedule

logger = logging.getLogger(__name__)

ROUND_ROBIN_GROUP = 'all'


class TournamentScheduleResult:
    def __init__(self, group_matches, playoff_matches, fairness_analysis, total_slots,
                 estimated_duration_minutes):
        self.group_matches = group_matches
        self.playoff_matches = playoff_matches
        self.all_matches = list(group_matches) + list(playoff_matches)
        self.fairness_analysis = fairness_analysis
        self.total_slots = total_slots
        self.estimated_duration_minutes = estimated_duration_minutes

    def __repr__(self):
        return (f"TournamentScheduleResult(group_matches={len(self.group_matches)}, "
                f"playoff_matches={len(self.playoff_matches)}, total_slots={self.total_slots})")

    def to_dict(self):
        return {
            'groupMatches': [m.to_dict() for m in self.group_matches],
            'playoffMatches': [m.to_dict() for m in self.playoff_matches],
            'fairnessAnalysis': self.fairness_analysis.to_dict(),
            'totalSlots': self.total_slots,
            'estimatedDurationMinutes': self.estimated_duration_minutes,
        }


def _groups_for(tournament):
    if tournament.group_system == 'roundRobin':
        return {ROUND_ROBIN_GROUP: list(tournament.teams)}
    groups = {}
    for label in tournament.group_labels():
        groups[label] = [team for team in tournament.teams if team.group == label]
    return groups


def _playoff_durations(tournament):
    duration = tournament.final_round_game_duration or tournament.group_phase_game_duration
    if tournament.final_round_break_duration is not None:
        break_duration = tournament.final_round_break_duration
    else:
        break_duration = tournament.group_phase_break_duration or 0
    return duration, break_duration


def generate_tournament_schedule(tournament, start_time=None) -> TournamentScheduleResult:
    """
    Schedule the group phase and, for tournaments with finals, the knockout
    phase after it.

    The knockout phase starts one slot after the group phase, or after as
    many slots as ``break_between_phases`` minutes need.
    """
    group_duration = tournament.group_phase_game_duration
    group_break = tournament.group_phase_break_duration or 0
    min_rest = tournament.min_rest_slots if tournament.min_rest_slots is not None else 1
    groups = _groups_for(tournament)

    group_matches = generate_group_phase_schedule(
        groups,
        number_of_fields=tournament.number_of_fields,
        slot_duration=group_duration,
        break_duration=group_break,
        min_rest_slots=min_rest,
        start_time=start_time,
    )

    playoff_duration, playoff_break = _playoff_durations(tournament)
    playoff_matches = []
    if tournament.group_system == 'groupsAndFinals' and tournament.finals_config.preset != 'none':
        number_of_groups = tournament.number_of_groups or len(groups)
        group_sizes = {label: len(teams) for label, teams in groups.items()}
        definitions = generate_playoff_definitions(number_of_groups, tournament.finals_config, group_sizes)

        last_group_slot = max((m.effective_slot for m in group_matches), default=-1)
        group_slot_length = group_duration + group_break
        if tournament.break_between_phases and group_slot_length > 0:
            break_slots = math.ceil(tournament.break_between_phases / group_slot_length)
        else:
            break_slots = 1
        start_slot = last_group_slot + 1 + break_slots

        playoff_start = None
        if start_time is not None:
            playoff_start = start_time + timedelta(minutes=start_slot * group_slot_length)

        playoff_matches = generate_playoff_schedule(
            definitions,
            number_of_fields=tournament.number_of_fields,
            slot_duration=playoff_duration,
            break_duration=playoff_break,
            start_slot=start_slot,
            start_time=playoff_start,
        )

    all_matches = group_matches + playoff_matches
    fairness = analyze_schedule_fairness(group_matches) if group_matches else FairnessAnalysis([])
    max_slot = max((m.effective_slot for m in all_matches), default=0)
    total_slots = max_slot + 1
    average_slot_length = (group_duration + group_break + playoff_duration + playoff_break) / 2

    logger.info(f"Tournament schedule: {len(group_matches)} group and {len(playoff_matches)} "
                f"playoff matches in {total_slots} slots")
    return TournamentScheduleResult(group_matches, playoff_matches, fairness, total_slots,
                                    total_slots * average_slot_length)


def schedule_tournament(tournament, start_time=None):
    """Copy of the tournament with its matches replaced by a fresh schedule."""
    start = start_time if start_time is not None else tournament.start_time
    result = generate_tournament_schedule(tournament, start)
    return tournament.replace(matches=result.all_matches, start_time=start)
