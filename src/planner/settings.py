"""
YAML configuration for tournaments.

A settings file only needs the keys it changes; everything else comes from
get_default_settings(). Teams are listed per group the same way as in the
group files the tool has always read::

    A:
      - Lions
      - Tigers
    B:
      teams: [Bears, Wolves]
"""
import os
import re
from datetime import date, datetime, time

import yaml

from planner.migration import normalize_group_key
from planner.models import FinalsConfig, PlacementCriterion, PointSystem, Team, Tournament, \
    default_placement_logic


def get_default_settings():
    """Return default settings."""
    return {
        'title': None,
        'group_system': 'groupsAndFinals',
        'number_of_fields': 1,
        'group_phase_game_duration': 10,
        'group_phase_break_duration': 0,
        'final_round_game_duration': None,
        'final_round_break_duration': None,
        'break_between_phases': None,
        'min_rest_slots': 1,
        'start_time': None,
        'finals_preset': 'top-4',
        'parallel_semifinals': None,
        'parallel_quarterfinals': None,
        'parallel_round_of_16': None,
        'point_system': {'win': 3, 'draw': 1, 'loss': 0},
        'placement_logic': ['points', 'goalDifference', 'goalsFor'],
    }


def merge_settings(data):
    """Fill in every key missing from ``data`` with its default."""
    settings = get_default_settings()
    if data:
        for key, value in data.items():
            if key == 'point_system' and isinstance(value, dict):
                settings[key] = dict(settings[key], **value)
            else:
                settings[key] = value
    return settings


def load_settings(path):
    """Load settings from a YAML file, merged over the defaults."""
    if not os.path.exists(path):
        return get_default_settings()
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return merge_settings(data)


def _slug(text):
    return re.sub(r'[^a-z0-9]+', '-', str(text).lower()).strip('-') or str(text)


def teams_from_groups(groups_data):
    """
    Build teams from a group -> names mapping.

    A group is either a plain list or a dict with a ``teams`` list. Entries
    are team names, or dicts with ``name`` and optionally ``id``. IDs
    default to a slug of the name and are made unique.
    """
    teams = []
    used_ids = set()
    for group_name, group_data in (groups_data or {}).items():
        entries = group_data.get('teams', []) if isinstance(group_data, dict) else group_data
        group = normalize_group_key(group_name)
        for entry in entries or []:
            if isinstance(entry, dict):
                name = str(entry['name'])
                team_id = str(entry.get('id') or _slug(name))
            else:
                name = str(entry)
                team_id = _slug(name)
            base_id, counter = team_id, 2
            while team_id in used_ids:
                team_id = f"{base_id}-{counter}"
                counter += 1
            used_ids.add(team_id)
            teams.append(Team(id=team_id, name=name, group=group))
    return teams


def _placement_logic(enabled_ids):
    if enabled_ids is None:
        return default_placement_logic()
    defaults = {criterion.id: criterion for criterion in default_placement_logic()}
    unknown = [criterion_id for criterion_id in enabled_ids if criterion_id not in defaults]
    if unknown:
        raise ValueError(f"Unknown placement criteria: {', '.join(unknown)}")
    logic = [PlacementCriterion(cid, defaults[cid].label, True) for cid in enabled_ids]
    logic += [PlacementCriterion(c.id, c.label, False) for c in defaults.values() if c.id not in enabled_ids]
    return logic


def parse_start_time(value, on_date=None):
    """'09:30' or an ISO datetime -> datetime. None stays None."""
    if value is None or isinstance(value, datetime):
        return value
    on_date = on_date or date.today()
    if isinstance(value, time):
        return datetime.combine(on_date, value)
    if isinstance(value, int):
        # YAML 1.1 reads an unquoted 9:30 as the base-60 integer 570
        return datetime.combine(on_date, time(value // 60, value % 60))
    text = str(value).strip()
    if re.fullmatch(r'\d{1,2}:\d{2}', text):
        return datetime.combine(on_date, datetime.strptime(text, '%H:%M').time())
    return datetime.fromisoformat(text)


def tournament_from_settings(settings, teams):
    """Create an unscheduled Tournament from merged settings and teams."""
    settings = merge_settings(settings)
    if settings['number_of_fields'] < 1:
        raise ValueError("number_of_fields must be at least 1")
    for key in ('group_phase_game_duration', 'group_phase_break_duration', 'final_round_game_duration',
                'final_round_break_duration', 'break_between_phases'):
        if settings[key] is not None and settings[key] < 0:
            raise ValueError(f"{key} cannot be negative")

    groups = sorted({team.group for team in teams if team.group})
    return Tournament(
        title=settings['title'],
        teams=teams,
        number_of_groups=len(groups) or None,
        number_of_fields=settings['number_of_fields'],
        group_phase_game_duration=settings['group_phase_game_duration'],
        group_phase_break_duration=settings['group_phase_break_duration'],
        final_round_game_duration=settings['final_round_game_duration'],
        final_round_break_duration=settings['final_round_break_duration'],
        break_between_phases=settings['break_between_phases'],
        min_rest_slots=settings['min_rest_slots'],
        placement_logic=_placement_logic(settings['placement_logic']),
        point_system=PointSystem.from_dict(settings['point_system']),
        finals_config=FinalsConfig(
            preset=settings['finals_preset'],
            parallel_semifinals=settings['parallel_semifinals'],
            parallel_quarterfinals=settings['parallel_quarterfinals'],
            parallel_round_of_16=settings['parallel_round_of_16'],
        ),
        group_system=settings['group_system'],
        start_time=parse_start_time(settings['start_time']),
    )


def load_tournament_file(path):
    """
    Read a tournament file with a ``teams`` section (groups of team names)
    and an optional ``settings`` section.
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    teams = teams_from_groups(data.get('teams'))
    return tournament_from_settings(data.get('settings'), teams)
