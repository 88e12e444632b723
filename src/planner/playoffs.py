"""
Finals presets expanded into abstract knockout matches.

Participants are wire source strings (``group-a-1st``, ``semi1-winner``);
``planner.sources.parse_source`` turns them into source objects.
"""
from typing import Dict, List, Optional

from planner.models import FinalsConfig, PlayoffMatch
from planner.sources import group_placement


def _gp(group_index: int, rank: int) -> str:
    return group_placement(chr(ord('a') + group_index), rank)


def _winner(match_id):
    return f"{match_id}-winner"


def _loser(match_id):
    return f"{match_id}-loser"


def generate_playoff_matches(number_of_groups: int, finals_config: FinalsConfig,
                             group_sizes: Optional[Dict[str, int]] = None) -> List[PlayoffMatch]:
    """
    Expand a finals preset into ordered knockout matches.

    Args:
        number_of_groups: groups in the group phase.
        finals_config: the preset to expand.
        group_sizes: group label -> team count. Only ``all-places`` uses it,
            to drop placement matches a group cannot fill.

    Returns:
        Matches in play order, each listing the ids it depends on.
    """
    preset = finals_config.preset
    if preset == 'none' or number_of_groups < 2:
        return []

    if preset == 'final-only':
        return generate_final_only(number_of_groups)
    if preset == 'top-4':
        return generate_top_4(number_of_groups)
    if preset == 'top-8':
        return generate_top_8(number_of_groups)
    if preset == 'top-16':
        return generate_top_16(number_of_groups)
    if preset == 'all-places':
        return generate_all_places(number_of_groups, group_sizes)
    return []


def generate_final_only(number_of_groups: int) -> List[PlayoffMatch]:
    # With more than two groups the group winners of A and B still meet.
    return [PlayoffMatch('final', 'Final', _gp(0, 1), _gp(1, 1), rank=1)]


def _semifinals(home_1, away_1, home_2, away_2, depends_1=None, depends_2=None):
    return [
        PlayoffMatch('semi1', 'Semifinal 1', home_1, away_1, depends_on=depends_1),
        PlayoffMatch('semi2', 'Semifinal 2', home_2, away_2, depends_on=depends_2),
    ]


def _medal_matches():
    return [
        PlayoffMatch('third-place', 'Third place match', _loser('semi1'), _loser('semi2'),
                     rank=3, depends_on=['semi1', 'semi2']),
        PlayoffMatch('final', 'Final', _winner('semi1'), _winner('semi2'),
                     rank=1, depends_on=['semi1', 'semi2']),
    ]


def generate_top_4(number_of_groups: int) -> List[PlayoffMatch]:
    if number_of_groups == 2:
        semis = _semifinals(_gp(0, 2), _gp(1, 1), _gp(0, 1), _gp(1, 2))
    else:
        semis = _semifinals(_gp(0, 1), _gp(1, 2), _gp(1, 1), _gp(0, 2))
    return semis + _medal_matches()


def _quarterfinals_from_groups():
    # A1-D2, B1-C2, C1-B2, D1-A2
    return [
        PlayoffMatch(f'qf{i + 1}', f'Quarterfinal {i + 1}', _gp(i, 1), _gp(3 - i, 2))
        for i in range(4)
    ]


def _semifinals_from_quarterfinals():
    return _semifinals(_winner('qf1'), _winner('qf4'), _winner('qf2'), _winner('qf3'),
                       depends_1=['qf1', 'qf4'], depends_2=['qf2', 'qf3'])


def generate_top_8(number_of_groups: int) -> List[PlayoffMatch]:
    """
    Quarterfinals for four or more groups, with 5th-8th place matches.

    Two or three groups cannot fill a true round of eight, so the bracket
    falls back to top-4.
    """
    if number_of_groups < 4:
        return generate_top_4(number_of_groups)

    return (
        _quarterfinals_from_groups()
        + _semifinals_from_quarterfinals()
        + [
            PlayoffMatch('place56', '5th place match', _loser('qf1'), _loser('qf2'),
                         rank=(5, 6), depends_on=['qf1', 'qf2']),
            PlayoffMatch('place78', '7th place match', _loser('qf3'), _loser('qf4'),
                         rank=(7, 8), depends_on=['qf3', 'qf4']),
        ]
        + _medal_matches()
    )


def generate_top_16(number_of_groups: int) -> List[PlayoffMatch]:
    """Round of 16 for eight or more groups (1A-2H ... 1H-2A), else top-8."""
    if number_of_groups < 8:
        return generate_top_8(number_of_groups)

    round_of_16 = [
        PlayoffMatch(f'r16-{i + 1}', f'Round of 16 match {i + 1}', _gp(i, 1), _gp(7 - i, 2))
        for i in range(8)
    ]
    quarterfinals = []
    for i in range(4):
        first, second = f'r16-{i + 1}', f'r16-{8 - i}'
        quarterfinals.append(PlayoffMatch(f'qf{i + 1}', f'Quarterfinal {i + 1}',
                                          _winner(first), _winner(second),
                                          depends_on=[first, second]))
    return round_of_16 + quarterfinals + _semifinals_from_quarterfinals() + _medal_matches()


def generate_all_places(number_of_groups: int, group_sizes: Optional[Dict[str, int]] = None) -> List[PlayoffMatch]:
    """
    Every rank played out for two groups.

    Order: semifinals, 7th place (both 4th-placed teams), 5th place (both
    3rd-placed teams), third place, final. Each stage depends on the one
    before so a single field plays them in exactly that order. A placement
    stage is left out when the smaller group has no team on that rank.
    Three groups fall back to top-4, four or more to top-8.
    """
    if number_of_groups >= 4:
        return generate_top_8(number_of_groups)
    if number_of_groups != 2:
        return generate_top_4(number_of_groups)

    if group_sizes:
        smallest = min(group_sizes.get('A', 2), group_sizes.get('B', 2))
    else:
        smallest = 4

    matches = _semifinals(_gp(0, 2), _gp(1, 1), _gp(0, 1), _gp(1, 2))
    previous = ['semi1', 'semi2']

    if smallest >= 4:
        matches.append(PlayoffMatch('place78-direct', '7th place match', _gp(0, 4), _gp(1, 4),
                                    rank=(7, 8), depends_on=previous))
        previous = ['place78-direct']
    if smallest >= 3:
        matches.append(PlayoffMatch('place56-direct', '5th place match', _gp(0, 3), _gp(1, 3),
                                    rank=(5, 6), depends_on=previous))
        previous = ['place56-direct']

    third_depends = _merge(['semi1', 'semi2'], previous)
    matches.append(PlayoffMatch('third-place', 'Third place match', _loser('semi1'), _loser('semi2'),
                                rank=3, depends_on=third_depends))
    matches.append(PlayoffMatch('final', 'Final', _winner('semi1'), _winner('semi2'),
                                rank=1, depends_on=['semi1', 'semi2', 'third-place']))
    return matches


def _merge(first, second):
    merged = list(first)
    for item in second:
        if item not in merged:
            merged.append(item)
    return merged


def preset_has_semifinals(preset: str) -> bool:
    return preset in ('top-4', 'top-8', 'top-16', 'all-places')


def preset_has_quarterfinals(preset: str) -> bool:
    return preset in ('top-8', 'top-16', 'all-places')


def get_expected_match_count(preset: str, number_of_groups: int) -> int:
    return len(generate_playoff_matches(number_of_groups, FinalsConfig(preset=preset)))


class FinalsOption:
    def __init__(self, preset, label, description, category, final_teams, min_groups=None):
        self.preset = preset
        self.label = label
        self.description = description
        self.category = category
        self.final_teams = final_teams
        self.min_groups = min_groups

    def __repr__(self):
        return f"FinalsOption(preset={self.preset}, category={self.category})"

    def to_dict(self):
        data = {
            'preset': self.preset,
            'label': self.label,
            'description': self.description,
            'category': self.category,
            'finalTeams': self.final_teams,
        }
        if self.min_groups is not None:
            data['minGroups'] = self.min_groups
        return data


def get_finals_options(number_of_groups: int) -> List[FinalsOption]:
    """Presets that make sense ('recommended') or merely work ('possible') for a group count."""
    options = [FinalsOption('none', 'No finals', 'Group phase only, ranking by table', 'recommended', 0)]
    top_16 = FinalsOption('top-16', 'Top 16 (round of 16)', 'Best 16 teams, round of 16 to final',
                          'recommended', 16, min_groups=8)
    top_8 = FinalsOption('top-8', 'Top 8 (quarterfinals)', 'Top 2 per group, quarterfinals to final',
                         'recommended', 8, min_groups=4)
    top_4 = FinalsOption('top-4', 'Top 4 (semifinals)', 'Semifinals, third place match and final',
                         'recommended', 4)
    final_only = FinalsOption('final-only', 'Final only', 'Group winners meet in the final', 'possible', 2)

    if number_of_groups == 2:
        options += [
            top_4,
            FinalsOption('all-places', 'All places', 'Semifinals plus matches for 3rd, 5th and 7th',
                         'recommended', 8),
            final_only,
        ]
    elif number_of_groups == 3:
        options += [
            top_4,
            final_only,
            FinalsOption('all-places', 'All places', 'Top-4 bracket', 'possible', 6),
        ]
    elif number_of_groups >= 4:
        if number_of_groups >= 8:
            options.append(top_16)
        options += [
            top_8,
            top_4,
            FinalsOption('all-places', 'All places', 'Quarterfinals with 5th-8th place matches',
                         'possible', number_of_groups * 4),
            final_only,
        ]
    return options


def get_recommended_finals_preset(number_of_groups: int) -> str:
    if number_of_groups >= 8:
        return 'top-16'
    if number_of_groups >= 4:
        return 'top-8'
    if number_of_groups >= 2:
        return 'top-4'
    return 'none'
