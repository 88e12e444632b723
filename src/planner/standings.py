"""
League tables and final rankings.

Standings are a pure projection of teams + played matches; nothing here
is stored or mutated.
"""
from functools import cmp_to_key
from typing import Dict, List, Optional, Tuple

from planner.models import Standing, Team, build_team_index


# Ranks decided by each knockout final type, and the label shown for them.
FINAL_TYPE_RANKS = {
    'final': (1, 2),
    'thirdPlace': (3, 4),
    'fifthSixth': (5, 6),
    'seventhEighth': (7, 8),
}

FINAL_TYPE_LABELS = {
    'final': 'Final',
    'thirdPlace': 'Third place',
    'fifthSixth': 'Fifth place',
    'seventhEighth': 'Seventh place',
}

# Head-to-head mini tables always score 3/1/0, whatever the tournament uses.
DIRECT_COMPARISON_POINTS = (3, 1, 0)


def calculate_standings(teams: List[Team], matches, tournament, group: Optional[str] = None) -> List[Standing]:
    """
    Calculate the table for one group, or for all teams when no group is given.

    Only matches with both scores count. Without a group, knockout matches
    are ignored. Ties are broken by the tournament's enabled placement
    criteria in order; teams equal on all of them keep their input order.
    """
    if group is not None:
        relevant_matches = [m for m in matches if m.group == group and m.is_played]
        relevant_teams = [t for t in teams if t.group == group]
    else:
        relevant_matches = [m for m in matches if m.is_played and not m.is_final]
        relevant_teams = list(teams)

    standings = [Standing(team) for team in relevant_teams]
    by_ref = _standing_index(standings)
    point_system = tournament.point_system

    for match in relevant_matches:
        standing_a = by_ref.get(match.team_a)
        standing_b = by_ref.get(match.team_b)
        if standing_a is None or standing_b is None:
            continue

        standing_a.played += 1
        standing_b.played += 1
        standing_a.goals_for += match.score_a
        standing_a.goals_against += match.score_b
        standing_b.goals_for += match.score_b
        standing_b.goals_against += match.score_a

        if match.score_a > match.score_b:
            standing_a.won += 1
            standing_b.lost += 1
            standing_a.points += point_system.win
            standing_b.points += point_system.loss
        elif match.score_a < match.score_b:
            standing_b.won += 1
            standing_a.lost += 1
            standing_b.points += point_system.win
            standing_a.points += point_system.loss
        else:
            standing_a.drawn += 1
            standing_b.drawn += 1
            standing_a.points += point_system.draw
            standing_b.points += point_system.draw

    return sort_by_placement_logic(standings, tournament.placement_logic, relevant_matches)


def _standing_index(standings):
    index = build_team_index([s.team for s in standings])
    by_team_id = {s.team.id: s for s in standings}
    return {ref: by_team_id[team.id] for ref, team in index.items()}


def sort_by_placement_logic(standings: List[Standing], placement_logic, matches=None) -> List[Standing]:
    enabled = [criterion.id for criterion in placement_logic if criterion.enabled]

    def compare(a, b):
        for criterion in enabled:
            if criterion == 'points':
                comparison = b.points - a.points
            elif criterion == 'goalDifference':
                comparison = b.goal_difference - a.goal_difference
            elif criterion == 'goalsFor':
                comparison = b.goals_for - a.goals_for
            elif criterion == 'goalsAgainst':
                comparison = a.goals_against - b.goals_against
            elif criterion == 'wins':
                comparison = b.won - a.won
            elif criterion == 'directComparison':
                comparison = compare_direct_matches(a, b, matches) if matches else 0
            else:
                comparison = 0
            if comparison != 0:
                return comparison
        return 0

    return sorted(standings, key=cmp_to_key(compare))


def compare_direct_matches(a: Standing, b: Standing, matches) -> int:
    """
    Head-to-head between two teams: > 0 if b ranks higher, < 0 if a does.

    Fixed order: points (3/1/0), goal difference, goals scored.
    """
    def plays(ref, standing):
        return ref == standing.team.id or ref == standing.team.name

    win, draw, _ = DIRECT_COMPARISON_POINTS
    a_points = b_points = 0
    a_goals_for = a_goals_against = 0

    direct = [
        m for m in matches
        if m.is_played and (
            (plays(m.team_a, a) and plays(m.team_b, b))
            or (plays(m.team_a, b) and plays(m.team_b, a))
        )
    ]
    if not direct:
        return 0

    for match in direct:
        a_home = plays(match.team_a, a)
        a_score = match.score_a if a_home else match.score_b
        b_score = match.score_b if a_home else match.score_a
        a_goals_for += a_score
        a_goals_against += b_score
        if a_score > b_score:
            a_points += win
        elif b_score > a_score:
            b_points += win
        else:
            a_points += draw
            b_points += draw

    b_goals_for = a_goals_against
    if b_points != a_points:
        return b_points - a_points
    a_diff = a_goals_for - a_goals_against
    b_diff = -a_diff
    if b_diff != a_diff:
        return b_diff - a_diff
    return b_goals_for - a_goals_for


def calculate_group_standings(tournament) -> Dict[str, List[Standing]]:
    """Standings for every group that has teams, keyed by group label."""
    return {
        group: calculate_standings(tournament.teams, tournament.matches, tournament, group)
        for group in tournament.group_labels()
    }


def get_qualified_teams(standings: List[Standing], count: int) -> List[Team]:
    return [standing.team for standing in standings[:count]]


def match_winner(match) -> Optional[Tuple[str, str]]:
    """
    (winner_id, loser_id) of a played, resolved match, or None.

    Penalty and overtime scores are honoured when the match records how it
    was decided. A draw without that data has no winner.
    """
    if not match.is_played or not match.is_resolved:
        return None

    if (match.decided_by == 'penalty'
            and match.penalty_score_a is not None and match.penalty_score_b is not None):
        a_wins = match.penalty_score_a > match.penalty_score_b
        if match.penalty_score_a == match.penalty_score_b:
            return None
    elif (match.decided_by in ('overtime', 'goldenGoal')
            and match.overtime_score_a is not None and match.overtime_score_b is not None):
        total_a = match.score_a + match.overtime_score_a
        total_b = match.score_b + match.overtime_score_b
        if total_a == total_b:
            return None
        a_wins = total_a > total_b
    elif match.score_a != match.score_b:
        a_wins = match.score_a > match.score_b
    else:
        return None

    if a_wins:
        return match.team_a, match.team_b
    return match.team_b, match.team_a


class FinalPlacement:
    def __init__(self, rank, team, decided_by, match_label=None):
        self.rank = rank
        self.team = team
        self.decided_by = decided_by
        self.match_label = match_label

    def __repr__(self):
        return f"FinalPlacement(rank={self.rank}, team={self.team.id}, decided_by={self.decided_by})"

    def to_dict(self):
        data = {'rank': self.rank, 'team': self.team.to_dict(), 'decidedBy': self.decided_by}
        if self.match_label:
            data['matchLabel'] = self.match_label
        return data


class FinalsPlacementResult:
    def __init__(self, placements, completed_finals_count, total_finals_count):
        self.placements = placements
        self.completed_finals_count = completed_finals_count
        self.total_finals_count = total_finals_count

    @property
    def all_finals_completed(self):
        return self.total_finals_count > 0 and self.completed_finals_count == self.total_finals_count

    @property
    def playoff_status(self):
        if self.completed_finals_count == 0:
            return 'not-started'
        if self.completed_finals_count == self.total_finals_count:
            return 'completed'
        return 'in-progress'

    def to_dict(self):
        return {
            'placements': [p.to_dict() for p in self.placements],
            'allFinalsCompleted': self.all_finals_completed,
            'completedFinalsCount': self.completed_finals_count,
            'totalFinalsCount': self.total_finals_count,
            'playoffStatus': self.playoff_status,
        }


def calculate_finals_placement(teams: List[Team], matches) -> FinalsPlacementResult:
    """Placements 1-8 decided by the final, third-place and placement matches."""
    finals = [m for m in matches if m.is_final]
    completed = [m for m in finals if m.is_played]
    index = build_team_index(teams)

    placements = []
    placed = set()
    for final_type, (winner_rank, loser_rank) in FINAL_TYPE_RANKS.items():
        match = next((m for m in completed if m.final_type == final_type), None)
        if match is None:
            continue
        result = match_winner(match)
        if result is None:
            continue
        for team_ref, rank in zip(result, (winner_rank, loser_rank)):
            team = index.get(team_ref)
            if team is not None and team.id not in placed:
                placements.append(FinalPlacement(rank, team, 'playoff', FINAL_TYPE_LABELS[final_type]))
                placed.add(team.id)

    placements.sort(key=lambda p: p.rank)
    return FinalsPlacementResult(placements, len(completed), len(finals))


def get_merged_final_ranking(teams: List[Team], matches, group_standings: List[Standing]):
    """
    Complete ranking: playoff placements first, then everyone else in the
    order of the given group-stage table.

    Returns (ranking, finals_result).
    """
    finals_result = calculate_finals_placement(teams, matches)
    ranking = list(finals_result.placements)
    placed = {p.team.id for p in ranking}

    next_rank = max((p.rank for p in ranking), default=0) + 1
    for standing in group_standings:
        if standing.team.id in placed:
            continue
        ranking.append(FinalPlacement(next_rank, standing.team, 'groupStage'))
        placed.add(standing.team.id)
        next_rank += 1

    return ranking, finals_result
