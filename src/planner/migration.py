"""
Load-time normalization of tournament data.

Historical data stores group keys as "A", "Gruppe A" or "a", keeps team
display names instead of IDs in match participant fields, and describes the
finals with four booleans instead of a preset. Everything here runs once
when a tournament is loaded so the rest of the engine only sees IDs and
single-letter upper-case group keys.
"""
import logging
import re
from typing import Dict, Optional

from planner.models import Team, build_team_index
from planner.sources import TeamRef

logger = logging.getLogger(__name__)

LEGACY_GROUP_PREFIXES = ('gruppe', 'group')


def normalize_group_key(key: Optional[str]) -> Optional[str]:
    """'Gruppe A', 'group a', 'a' and 'A' all become 'A'.

    Keys that do not look like a group letter are returned stripped but
    otherwise unchanged.
    """
    if key is None:
        return None
    text = str(key).strip()
    parts = text.split()
    if len(parts) == 2 and parts[0].lower() in LEGACY_GROUP_PREFIXES:
        text = parts[1]
    if re.fullmatch(r'[A-Za-z]', text):
        return text.upper()
    return text


def migrate_legacy_finals(finals: Dict) -> str:
    """Translate legacy finals booleans into a finals preset."""
    if not finals.get('final'):
        return 'none'
    if not finals.get('thirdPlace'):
        return 'final-only'
    if finals.get('fifthSixth') or finals.get('seventhEighth'):
        return 'all-places'
    return 'top-4'


def normalize_tournament(tournament):
    """Return a copy with group keys and team references normalized."""
    teams = [
        team if team.group is None else _with_group(team, normalize_group_key(team.group))
        for team in tournament.teams
    ]
    index = build_team_index(teams)

    matches = []
    renamed = 0
    for match in tournament.matches:
        changes = {}
        group = normalize_group_key(match.group)
        if group != match.group:
            changes['group'] = group
        for side in ('a', 'b'):
            team_id = getattr(match, f'team_{side}')
            if team_id is None or team_id not in index:
                continue
            canonical = index[team_id].id
            if canonical != team_id:
                changes[f'team_{side}'] = canonical
                source = getattr(match, f'source_{side}')
                if isinstance(source, TeamRef):
                    changes[f'source_{side}'] = TeamRef(canonical)
                renamed += 1
        matches.append(match.replace(**changes) if changes else match)

    if renamed:
        logger.info(f"Normalized {renamed} team name reference(s) to team IDs")
    return tournament.replace(teams=teams, matches=matches)


def _with_group(team, group):
    return Team(id=team.id, name=team.name, group=group)
