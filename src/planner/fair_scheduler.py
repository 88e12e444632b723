"""
Fair group-phase scheduling.

Round-robin pairings are generated per group with the circle method and then
placed slot by slot, field by field. For every free field the pending
pairing with the lowest fairness score is picked, so rests stay even, teams
rotate across fields and home/away stays balanced. A final pass swaps home
and away where that improves the balance.
"""
import logging
import math
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from planner.models import Match, Team

logger = logging.getLogger(__name__)

FIELD_REPETITION_WEIGHT = 10
HOME_AWAY_PENALTY = 5
EARLY_SLOT_WEIGHT = 0.1


class TeamScheduleState:
    """Per-team bookkeeping while the greedy placement runs."""

    def __init__(self, team_id):
        self.team_id = team_id
        self.match_slots = []
        self.field_counts = {}
        self.last_slot = None
        self.home_count = 0
        self.away_count = 0

    def average_rest(self, rest_now):
        if len(self.match_slots) < 2:
            return rest_now
        gaps = [b - a for a, b in zip(self.match_slots, self.match_slots[1:])]
        return sum(gaps) / len(gaps)

    def can_play(self, slot, min_rest_slots):
        if self.last_slot is None:
            return True
        return slot - self.last_slot >= min_rest_slots + 1

    def record(self, slot, field, home):
        self.match_slots.append(slot)
        self.last_slot = slot
        self.field_counts[field] = self.field_counts.get(field, 0) + 1
        if home:
            self.home_count += 1
        else:
            self.away_count += 1


def generate_round_robin_pairings(teams: List[Team]) -> List[Tuple[Team, Team]]:
    """
    Every pairing of the group exactly once, in circle-method order.

    Team 0 stays fixed while the others rotate. An odd group gets a bye
    that is dropped from the output. Home/away is not decided here.
    """
    if len(teams) < 2:
        return []

    rotation = list(teams)
    if len(rotation) % 2 == 1:
        rotation.append(None)
    size = len(rotation)

    pairings = []
    for _ in range(size - 1):
        for i in range(size // 2):
            home = rotation[i]
            away = rotation[size - 1 - i]
            if home is not None and away is not None:
                pairings.append((home, away))
        if size > 2:
            rotation = [rotation[0], rotation[-1]] + rotation[1:-1]
    return pairings


def calculate_fairness_score(state_a: TeamScheduleState, state_b: TeamScheduleState,
                             slot: int, field: int, min_rest_slots: int) -> float:
    """Lower is fairer. ``inf`` when either team has not rested long enough."""
    if not state_a.can_play(slot, min_rest_slots) or not state_b.can_play(slot, min_rest_slots):
        return math.inf

    score = 0.0
    for state in (state_a, state_b):
        if state.match_slots:
            rest = slot - state.last_slot
            score += abs(rest - state.average_rest(rest))
            field_count = state.field_counts.get(field, 0)
            score += field_count / len(state.match_slots) * FIELD_REPETITION_WEIGHT

    # state_a would play at home, state_b away
    if abs(state_a.home_count + 1 - state_a.away_count) > abs(state_a.home_count - state_a.away_count):
        score += HOME_AWAY_PENALTY
    if abs(state_b.home_count - (state_b.away_count + 1)) > abs(state_b.home_count - state_b.away_count):
        score += HOME_AWAY_PENALTY

    score += slot * EARLY_SLOT_WEIGHT
    return score


def generate_group_phase_schedule(groups: Dict[str, List[Team]], number_of_fields: int,
                                  slot_duration: int, break_duration: int = 0,
                                  min_rest_slots: int = 1, start_time=None) -> List[Match]:
    """
    Place all round-robin pairings of all groups into slots and fields.

    Args:
        groups: group label -> teams of that group, in the order pairings
            should be generated.
        number_of_fields: fields usable in parallel, at least 1.
        slot_duration: minutes per match.
        break_duration: minutes between two slots.
        min_rest_slots: slots a team must sit out between two matches.
        start_time: optional datetime of slot 0; sets ``scheduled_time``.

    Returns:
        Matches with ids ``g1``, ``g2``... in placement order. If the slot
        counter passes twice the number of pairings the placement stops and
        the matches placed so far are returned.
    """
    if number_of_fields < 1:
        raise ValueError("number_of_fields must be at least 1")
    if slot_duration < 0 or break_duration < 0:
        raise ValueError("Durations cannot be negative")
    if min_rest_slots < 0:
        raise ValueError("min_rest_slots cannot be negative")

    states = {}
    pending = []
    for group_id, teams in groups.items():
        if len(teams) < 2:
            logger.warning(f"Group {group_id} has fewer than 2 teams, no matches generated")
        for team in teams:
            states[team.id] = TeamScheduleState(team.id)
        for home, away in generate_round_robin_pairings(teams):
            pending.append((group_id, home, away))

    total_pairings = len(pending)
    matches = []
    slot = 0
    while pending:
        slot_time = _slot_start(start_time, slot, slot_duration, break_duration)
        busy = set()
        for field in range(1, number_of_fields + 1):
            best_index = None
            best_score = math.inf
            for index, (_, home, away) in enumerate(pending):
                if home.id in busy or away.id in busy:
                    continue
                score = calculate_fairness_score(states[home.id], states[away.id], slot, field, min_rest_slots)
                if score < best_score:
                    best_score = score
                    best_index = index

            if best_index is None:
                continue

            group_id, home, away = pending.pop(best_index)
            matches.append(Match(
                id=f"g{len(matches) + 1}",
                round=slot + 1,
                field=field,
                slot=slot,
                team_a=home.id,
                team_b=away.id,
                group=group_id,
                scheduled_time=slot_time,
            ))
            states[home.id].record(slot, field, home=True)
            states[away.id].record(slot, field, home=False)
            busy.update((home.id, away.id))

        slot += 1
        if slot > total_pairings * 2:
            logger.error(f"Could not schedule all matches with the given constraints, "
                         f"{len(pending)} pairing(s) left unscheduled")
            break

    matches = balance_home_away(matches)
    logger.info(f"Scheduled {len(matches)} group matches over {slot} slot(s) on {number_of_fields} field(s)")
    return matches


def _slot_start(start_time, slot, slot_duration, break_duration):
    if start_time is None:
        return None
    return start_time + timedelta(minutes=slot * (slot_duration + break_duration))


def balance_home_away(matches: List[Match]) -> List[Match]:
    """Swap home and away wherever that strictly reduces the imbalance of both teams."""
    counts = {}
    for match in matches:
        counts.setdefault(match.team_a, [0, 0])[0] += 1
        counts.setdefault(match.team_b, [0, 0])[1] += 1

    balanced = []
    for match in matches:
        home_a, away_a = counts[match.team_a]
        home_b, away_b = counts[match.team_b]
        current = abs(home_a - away_a) + abs(home_b - away_b)
        swapped = abs((home_a - 1) - (away_a + 1)) + abs((home_b + 1) - (away_b - 1))
        if swapped < current:
            counts[match.team_a] = [home_a - 1, away_a + 1]
            counts[match.team_b] = [home_b + 1, away_b - 1]
            match = match.replace(team_a=match.team_b, team_b=match.team_a,
                                  source_a=match.source_b, source_b=match.source_a)
        balanced.append(match)
    return balanced


class TeamFairnessStats:
    def __init__(self, team_id, match_slots, field_distribution, home_count, away_count):
        self.team_id = team_id
        self.match_slots = sorted(match_slots)
        self.rests = [b - a for a, b in zip(self.match_slots, self.match_slots[1:])]
        self.field_distribution = field_distribution
        self.home_count = home_count
        self.away_count = away_count

    @property
    def min_rest(self):
        return min(self.rests) if self.rests else 0

    @property
    def max_rest(self):
        return max(self.rests) if self.rests else 0

    @property
    def avg_rest(self):
        return sum(self.rests) / len(self.rests) if self.rests else 0

    @property
    def rest_variance(self):
        if not self.rests:
            return 0
        avg = self.avg_rest
        return sum((r - avg) ** 2 for r in self.rests) / len(self.rests)

    @property
    def home_away_balance(self):
        return abs(self.home_count - self.away_count)

    def __repr__(self):
        return f"TeamFairnessStats(team_id={self.team_id}, slots={self.match_slots})"

    def to_dict(self):
        return {
            'teamId': self.team_id,
            'matchSlots': self.match_slots,
            'restsInSlots': self.rests,
            'minRest': self.min_rest,
            'maxRest': self.max_rest,
            'avgRest': self.avg_rest,
            'restVariance': self.rest_variance,
            'fieldDistribution': dict(self.field_distribution),
            'homeCount': self.home_count,
            'awayCount': self.away_count,
            'homeAwayBalance': self.home_away_balance,
        }


class FairnessAnalysis:
    def __init__(self, team_stats: List[TeamFairnessStats]):
        self.team_stats = team_stats
        self.min_rest_all_teams = min((s.min_rest for s in team_stats), default=0)
        self.max_rest_all_teams = max((s.max_rest for s in team_stats), default=0)
        self.avg_rest_all_teams = (sum(s.avg_rest for s in team_stats) / len(team_stats)) if team_stats else 0
        self.total_variance = (
            sum((s.avg_rest - self.avg_rest_all_teams) ** 2 for s in team_stats) / len(team_stats)
            if team_stats else 0
        )

    def for_team(self, team_id) -> Optional[TeamFairnessStats]:
        return next((s for s in self.team_stats if s.team_id == team_id), None)

    def to_dict(self):
        return {
            'teamStats': [s.to_dict() for s in self.team_stats],
            'global': {
                'minRestAllTeams': self.min_rest_all_teams,
                'maxRestAllTeams': self.max_rest_all_teams,
                'avgRestAllTeams': self.avg_rest_all_teams,
                'totalVariance': self.total_variance,
            },
        }


def analyze_schedule_fairness(matches: List[Match]) -> FairnessAnalysis:
    """Rest, field and home/away statistics for every team that has a match."""
    slots = {}
    fields = {}
    home_away = {}
    for match in matches:
        if not match.is_resolved:
            continue
        for team_id, is_home in ((match.team_a, True), (match.team_b, False)):
            slots.setdefault(team_id, []).append(match.effective_slot)
            team_fields = fields.setdefault(team_id, {})
            team_fields[match.field] = team_fields.get(match.field, 0) + 1
            counts = home_away.setdefault(team_id, [0, 0])
            counts[0 if is_home else 1] += 1

    team_stats = [
        TeamFairnessStats(team_id, team_slots, fields[team_id], *home_away[team_id])
        for team_id, team_slots in slots.items()
    ]
    return FairnessAnalysis(team_stats)


def format_fairness_report(analysis: FairnessAnalysis, team_names: Optional[Dict[str, str]] = None) -> str:
    team_names = team_names or {}
    lines = [
        "Schedule fairness",
        f"  Rest (slots): min {analysis.min_rest_all_teams}, max {analysis.max_rest_all_teams}, "
        f"avg {analysis.avg_rest_all_teams:.2f}, variance {analysis.total_variance:.2f}",
        "",
        f"  {'Team':<20} {'Slots':<20} {'Rest min/max/avg':<18} {'Home/Away':<10} Fields",
    ]
    for stats in analysis.team_stats:
        name = team_names.get(stats.team_id, stats.team_id)
        slot_text = ','.join(str(s) for s in stats.match_slots)
        rest_text = f"{stats.min_rest}/{stats.max_rest}/{stats.avg_rest:.1f}"
        field_text = ' '.join(f"{f}:{c}" for f, c in sorted(stats.field_distribution.items()))
        lines.append(f"  {name:<20} {slot_text:<20} {rest_text:<18} "
                     f"{stats.home_count}/{stats.away_count:<8} {field_text}")
    return '\n'.join(lines)
