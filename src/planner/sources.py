"""
Participant sources for knockout matches.

A knockout side is filled from a group placement, from the result of an
earlier knockout match, from the best runner-up, or from a concrete team.
Wire data still carries these as strings ("group-a-1st", "semi1-winner",
"bestSecond", "TBD"), so this module parses and formats that format.
"""
import re
from typing import Optional


GROUP_PLACEMENT_PATTERN = re.compile(r'group-([a-z])-(\d+)(?:st|nd|rd|th)', re.IGNORECASE)
BRACKET_RESULT_PATTERN = re.compile(r'^(.+)-(winner|loser)$')

BEST_SECOND = 'bestSecond'
PENDING = 'TBD'


class GroupPlacement:
    def __init__(self, group, rank):
        self.group = group.upper()
        self.rank = rank

    def __repr__(self):
        return f"GroupPlacement(group={self.group}, rank={self.rank})"

    def __eq__(self, other):
        return isinstance(other, GroupPlacement) and (self.group, self.rank) == (other.group, other.rank)

    def __hash__(self):
        return hash(('group', self.group, self.rank))


class BracketResult:
    def __init__(self, match_id, outcome):
        if outcome not in ('winner', 'loser'):
            raise ValueError(f"Unknown bracket outcome: {outcome}")
        self.match_id = match_id
        self.outcome = outcome

    def __repr__(self):
        return f"BracketResult(match_id={self.match_id}, outcome={self.outcome})"

    def __eq__(self, other):
        return isinstance(other, BracketResult) and (self.match_id, self.outcome) == (other.match_id, other.outcome)

    def __hash__(self):
        return hash(('bracket', self.match_id, self.outcome))


class BestSecond:
    def __repr__(self):
        return "BestSecond()"

    def __eq__(self, other):
        return isinstance(other, BestSecond)

    def __hash__(self):
        return hash(BEST_SECOND)


class Pending:
    def __repr__(self):
        return "Pending()"

    def __eq__(self, other):
        return isinstance(other, Pending)

    def __hash__(self):
        return hash(PENDING)


class TeamRef:
    def __init__(self, team_id):
        self.team_id = team_id

    def __repr__(self):
        return f"TeamRef(team_id={self.team_id})"

    def __eq__(self, other):
        return isinstance(other, TeamRef) and self.team_id == other.team_id

    def __hash__(self):
        return hash(('team', self.team_id))


def ordinal(rank: int) -> str:
    """1 -> '1st', 2 -> '2nd', 11 -> '11th'."""
    if 10 <= rank % 100 <= 20:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(rank % 10, 'th')
    return f"{rank}{suffix}"


def group_placement(group: str, rank: int) -> str:
    """Wire string for a group placement, e.g. ('A', 2) -> 'group-a-2nd'."""
    return f"group-{group.lower()}-{ordinal(rank)}"


def is_placeholder(text: str) -> bool:
    """Legacy test for a participant string that is not a team yet."""
    return (
        text == PENDING
        or 'group-' in text
        or '-1st' in text
        or '-2nd' in text
        or '-3rd' in text
        or BEST_SECOND in text
        or text.endswith('-winner')
        or text.endswith('-loser')
    )


def parse_source(text: Optional[str]):
    if text is None or text == PENDING:
        return Pending()
    if text == BEST_SECOND:
        return BestSecond()

    bracket = BRACKET_RESULT_PATTERN.match(text)
    if bracket:
        return BracketResult(bracket.group(1), bracket.group(2))

    placement = GROUP_PLACEMENT_PATTERN.search(text)
    if placement:
        return GroupPlacement(placement.group(1), int(placement.group(2)))

    if is_placeholder(text):
        # Recognised as a placeholder but not in a shape we can resolve.
        return Pending()
    return TeamRef(text)


def format_source(source) -> str:
    if source is None or isinstance(source, Pending):
        return PENDING
    if isinstance(source, BestSecond):
        return BEST_SECOND
    if isinstance(source, GroupPlacement):
        return group_placement(source.group, source.rank)
    if isinstance(source, BracketResult):
        return f"{source.match_id}-{source.outcome}"
    if isinstance(source, TeamRef):
        return source.team_id
    raise TypeError(f"Not a participant source: {source!r}")


def is_group_derived(source) -> bool:
    """True when the source can be computed from group standings alone."""
    return isinstance(source, (GroupPlacement, BestSecond))
