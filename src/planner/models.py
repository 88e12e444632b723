import copy
from datetime import datetime

from planner.sources import TeamRef, format_source, parse_source, is_placeholder


FINALS_PRESETS = ('none', 'final-only', 'top-4', 'top-8', 'top-16', 'all-places')
GROUP_SYSTEMS = ('roundRobin', 'groupsAndFinals')
FINAL_TYPES = ('final', 'thirdPlace', 'fifthSixth', 'seventhEighth')


def _parse_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_datetime(value):
    return value.isoformat() if value is not None else None


class Team:
    def __init__(self, id, name, group=None):
        self.id = id
        self.name = name
        self.group = group

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name}, group={self.group})"

    def __eq__(self, other):
        if not isinstance(other, Team):
            return NotImplemented
        return (self.id, self.name, self.group) == (other.id, other.name, other.group)

    def __hash__(self):
        return hash(self.id)

    def to_dict(self):
        data = {'id': self.id, 'name': self.name}
        if self.group is not None:
            data['group'] = self.group
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(id=str(data['id']), name=data.get('name', str(data['id'])), group=data.get('group'))


class PointSystem:
    def __init__(self, win=3, draw=1, loss=0):
        self.win = win
        self.draw = draw
        self.loss = loss

    def __repr__(self):
        return f"PointSystem(win={self.win}, draw={self.draw}, loss={self.loss})"

    def to_dict(self):
        return {'win': self.win, 'draw': self.draw, 'loss': self.loss}

    @classmethod
    def from_dict(cls, data):
        if not data:
            return cls()
        return cls(win=data.get('win', 3), draw=data.get('draw', 1), loss=data.get('loss', 0))


class PlacementCriterion:
    def __init__(self, id, label=None, enabled=True):
        self.id = id
        self.label = label or id
        self.enabled = enabled

    def __repr__(self):
        return f"PlacementCriterion(id={self.id}, enabled={self.enabled})"

    def to_dict(self):
        return {'id': self.id, 'label': self.label, 'enabled': self.enabled}

    @classmethod
    def from_dict(cls, data):
        return cls(id=data['id'], label=data.get('label'), enabled=data.get('enabled', True))


def default_placement_logic():
    """Points, goal difference and goals scored; the other criteria are off."""
    return [
        PlacementCriterion('points', 'Points', True),
        PlacementCriterion('goalDifference', 'Goal difference', True),
        PlacementCriterion('goalsFor', 'Goals scored', True),
        PlacementCriterion('goalsAgainst', 'Goals conceded', False),
        PlacementCriterion('wins', 'Wins', False),
        PlacementCriterion('directComparison', 'Head-to-head', False),
    ]


class FinalsConfig:
    def __init__(self, preset='none', parallel_semifinals=None, parallel_quarterfinals=None,
                 parallel_round_of_16=None):
        if preset not in FINALS_PRESETS:
            raise ValueError(f"Unknown finals preset: {preset}")
        self.preset = preset
        self.parallel_semifinals = parallel_semifinals
        self.parallel_quarterfinals = parallel_quarterfinals
        self.parallel_round_of_16 = parallel_round_of_16

    def __repr__(self):
        return f"FinalsConfig(preset={self.preset})"

    def to_dict(self):
        data = {'preset': self.preset}
        if self.parallel_semifinals is not None:
            data['parallelSemifinals'] = self.parallel_semifinals
        if self.parallel_quarterfinals is not None:
            data['parallelQuarterfinals'] = self.parallel_quarterfinals
        if self.parallel_round_of_16 is not None:
            data['parallelRoundOf16'] = self.parallel_round_of_16
        return data

    @classmethod
    def from_dict(cls, data):
        if not data:
            return cls()
        return cls(
            preset=data.get('preset', 'none'),
            parallel_semifinals=data.get('parallelSemifinals'),
            parallel_quarterfinals=data.get('parallelQuarterfinals'),
            parallel_round_of_16=data.get('parallelRoundOf16'),
        )


class Match:
    """A scheduled match.

    ``team_a``/``team_b`` hold resolved team IDs, or ``None`` while the side
    is still waiting on its ``source_a``/``source_b``.
    """

    def __init__(self, id, round, field, team_a=None, team_b=None, slot=None,
                 source_a=None, source_b=None, score_a=None, score_b=None,
                 group=None, is_final=False, final_type=None, label=None,
                 depends_on=None, scheduled_time=None, decided_by=None,
                 penalty_score_a=None, penalty_score_b=None,
                 overtime_score_a=None, overtime_score_b=None):
        self.id = id
        self.round = round
        self.field = field
        self.slot = slot
        self.team_a = team_a
        self.team_b = team_b
        self.source_a = source_a if source_a is not None else (TeamRef(team_a) if team_a else None)
        self.source_b = source_b if source_b is not None else (TeamRef(team_b) if team_b else None)
        self.score_a = score_a
        self.score_b = score_b
        self.group = group
        self.is_final = is_final
        self.final_type = final_type
        self.label = label
        self.depends_on = list(depends_on) if depends_on else []
        self.scheduled_time = scheduled_time
        self.decided_by = decided_by
        self.penalty_score_a = penalty_score_a
        self.penalty_score_b = penalty_score_b
        self.overtime_score_a = overtime_score_a
        self.overtime_score_b = overtime_score_b

    def __repr__(self):
        return (f"Match(id={self.id}, slot={self.slot}, field={self.field}, "
                f"teams={self.display_a()} vs {self.display_b()}, "
                f"score={self.score_a}:{self.score_b})")

    @property
    def is_played(self):
        return self.score_a is not None and self.score_b is not None

    @property
    def is_resolved(self):
        return self.team_a is not None and self.team_b is not None

    @property
    def effective_slot(self):
        return self.slot if self.slot is not None else self.round - 1

    def display_a(self):
        return self.team_a if self.team_a is not None else format_source(self.source_a)

    def display_b(self):
        return self.team_b if self.team_b is not None else format_source(self.source_b)

    def replace(self, **changes):
        clone = copy.copy(self)
        clone.depends_on = list(self.depends_on)
        for key, value in changes.items():
            if not hasattr(clone, key):
                raise AttributeError(f"Match has no field '{key}'")
            setattr(clone, key, value)
        return clone

    def to_dict(self):
        data = {
            'id': self.id,
            'round': self.round,
            'field': self.field,
            'teamA': self.display_a(),
            'teamB': self.display_b(),
        }
        if self.slot is not None:
            data['slot'] = self.slot
        if self.score_a is not None:
            data['scoreA'] = self.score_a
        if self.score_b is not None:
            data['scoreB'] = self.score_b
        if self.group is not None:
            data['group'] = self.group
        if self.is_final:
            data['isFinal'] = True
            data['sourceA'] = format_source(self.source_a)
            data['sourceB'] = format_source(self.source_b)
        if self.final_type:
            data['finalType'] = self.final_type
        if self.label:
            data['label'] = self.label
        if self.depends_on:
            data['dependsOn'] = list(self.depends_on)
        if self.scheduled_time is not None:
            data['scheduledTime'] = _format_datetime(self.scheduled_time)
        if self.decided_by:
            data['decidedBy'] = self.decided_by
        for key, value in (('penaltyScoreA', self.penalty_score_a),
                           ('penaltyScoreB', self.penalty_score_b),
                           ('overtimeScoreA', self.overtime_score_a),
                           ('overtimeScoreB', self.overtime_score_b)):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data):
        team_a, source_a = _read_side(data.get('teamA'), data.get('sourceA'))
        team_b, source_b = _read_side(data.get('teamB'), data.get('sourceB'))
        return cls(
            id=str(data['id']),
            round=data.get('round', 1),
            field=data.get('field', 1),
            slot=data.get('slot'),
            team_a=team_a,
            team_b=team_b,
            source_a=source_a,
            source_b=source_b,
            score_a=data.get('scoreA'),
            score_b=data.get('scoreB'),
            group=data.get('group'),
            is_final=bool(data.get('isFinal', False)),
            final_type=data.get('finalType'),
            label=data.get('label'),
            depends_on=data.get('dependsOn'),
            scheduled_time=_parse_datetime(data.get('scheduledTime')),
            decided_by=data.get('decidedBy'),
            penalty_score_a=data.get('penaltyScoreA'),
            penalty_score_b=data.get('penaltyScoreB'),
            overtime_score_a=data.get('overtimeScoreA'),
            overtime_score_b=data.get('overtimeScoreB'),
        )


def _read_side(value, source_text):
    """Split a wire participant into (team_id, source)."""
    if value is None or is_placeholder(str(value)):
        source = parse_source(source_text or value or 'TBD')
        return None, source
    team_id = str(value)
    source = parse_source(source_text) if source_text else TeamRef(team_id)
    return team_id, source


class Standing:
    def __init__(self, team):
        self.team = team
        self.played = 0
        self.won = 0
        self.drawn = 0
        self.lost = 0
        self.goals_for = 0
        self.goals_against = 0
        self.points = 0

    @property
    def goal_difference(self):
        return self.goals_for - self.goals_against

    def __repr__(self):
        return (f"Standing(team={self.team.id}, played={self.played}, points={self.points}, "
                f"goals={self.goals_for}:{self.goals_against})")

    def to_dict(self):
        return {
            'team': self.team.to_dict(),
            'played': self.played,
            'won': self.won,
            'drawn': self.drawn,
            'lost': self.lost,
            'goalsFor': self.goals_for,
            'goalsAgainst': self.goals_against,
            'goalDifference': self.goal_difference,
            'points': self.points,
        }


class PlayoffMatch:
    """Abstract knockout match produced by a finals preset."""

    def __init__(self, id, label, home, away, rank=None, depends_on=None):
        self.id = id
        self.label = label
        self.home = home
        self.away = away
        self.rank = rank
        self.depends_on = list(depends_on) if depends_on else []

    def __repr__(self):
        return f"PlayoffMatch(id={self.id}, home={self.home}, away={self.away}, depends_on={self.depends_on})"


class Tournament:
    def __init__(self, teams=None, matches=None, number_of_groups=None, number_of_fields=1,
                 group_phase_game_duration=10, group_phase_break_duration=0,
                 final_round_game_duration=None, final_round_break_duration=None,
                 break_between_phases=None, min_rest_slots=1, placement_logic=None,
                 point_system=None, finals_config=None, group_system='groupsAndFinals',
                 start_time=None, id=None, title=None):
        if group_system not in GROUP_SYSTEMS:
            raise ValueError(f"Unknown group system: {group_system}")
        self.id = id
        self.title = title
        self.teams = list(teams) if teams else []
        self.matches = list(matches) if matches else []
        self.number_of_groups = number_of_groups
        self.number_of_fields = number_of_fields
        self.group_phase_game_duration = group_phase_game_duration
        self.group_phase_break_duration = group_phase_break_duration
        self.final_round_game_duration = final_round_game_duration
        self.final_round_break_duration = final_round_break_duration
        self.break_between_phases = break_between_phases
        self.min_rest_slots = min_rest_slots
        self.placement_logic = placement_logic if placement_logic is not None else default_placement_logic()
        self.point_system = point_system or PointSystem()
        self.finals_config = finals_config or FinalsConfig()
        self.group_system = group_system
        self.start_time = start_time

    def __repr__(self):
        return (f"Tournament(id={self.id}, teams={len(self.teams)}, matches={len(self.matches)}, "
                f"preset={self.finals_config.preset})")

    def replace(self, **changes):
        clone = copy.copy(self)
        clone.teams = list(self.teams)
        clone.matches = list(self.matches)
        for key, value in changes.items():
            if not hasattr(clone, key):
                raise AttributeError(f"Tournament has no field '{key}'")
            setattr(clone, key, list(value) if key in ('teams', 'matches') else value)
        return clone

    def find_match(self, match_id):
        for match in self.matches:
            if match.id == match_id:
                return match
        return None

    def group_labels(self):
        return sorted({team.group for team in self.teams if team.group})

    def to_dict(self):
        data = {
            'teams': [team.to_dict() for team in self.teams],
            'matches': [match.to_dict() for match in self.matches],
            'numberOfFields': self.number_of_fields,
            'groupPhaseGameDuration': self.group_phase_game_duration,
            'groupPhaseBreakDuration': self.group_phase_break_duration,
            'minRestSlots': self.min_rest_slots,
            'placementLogic': [criterion.to_dict() for criterion in self.placement_logic],
            'pointSystem': self.point_system.to_dict(),
            'finalsConfig': self.finals_config.to_dict(),
            'groupSystem': self.group_system,
        }
        optional = {
            'id': self.id,
            'title': self.title,
            'numberOfGroups': self.number_of_groups,
            'finalRoundGameDuration': self.final_round_game_duration,
            'finalRoundBreakDuration': self.final_round_break_duration,
            'breakBetweenPhases': self.break_between_phases,
            'startTime': _format_datetime(self.start_time),
        }
        for key, value in optional.items():
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data):
        """Build a tournament from its wire format.

        Legacy ``finals`` booleans are accepted when no ``finalsConfig`` is
        present; see ``planner.migration.normalize_tournament`` for the rest
        of the load-time clean-up.
        """
        from planner.migration import migrate_legacy_finals

        if data.get('finalsConfig'):
            finals_config = FinalsConfig.from_dict(data['finalsConfig'])
        elif data.get('finals'):
            finals_config = FinalsConfig(preset=migrate_legacy_finals(data['finals']))
        else:
            finals_config = FinalsConfig()

        placement_logic = data.get('placementLogic')
        return cls(
            id=data.get('id'),
            title=data.get('title'),
            teams=[Team.from_dict(team) for team in data.get('teams', [])],
            matches=[Match.from_dict(match) for match in data.get('matches', [])],
            number_of_groups=data.get('numberOfGroups'),
            number_of_fields=data.get('numberOfFields', 1),
            group_phase_game_duration=data.get('groupPhaseGameDuration', 10),
            group_phase_break_duration=data.get('groupPhaseBreakDuration', 0),
            final_round_game_duration=data.get('finalRoundGameDuration'),
            final_round_break_duration=data.get('finalRoundBreakDuration'),
            break_between_phases=data.get('breakBetweenPhases'),
            min_rest_slots=data.get('minRestSlots', 1),
            placement_logic=([PlacementCriterion.from_dict(c) for c in placement_logic]
                             if placement_logic is not None else None),
            point_system=PointSystem.from_dict(data.get('pointSystem')),
            finals_config=finals_config,
            group_system=data.get('groupSystem', 'groupsAndFinals'),
            start_time=_parse_datetime(data.get('startTime')),
        )


def build_team_index(teams):
    """Map both team IDs and team names to Team objects.

    Match participant fields are meant to hold IDs only. Older data stored
    display names, so lookups fall back to the name. IDs win on collision.
    """
    index = {}
    for team in teams:
        index.setdefault(team.name, team)
    for team in teams:
        index[team.id] = team
    return index
