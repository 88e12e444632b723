"""
Shared pytest fixtures for tournament planner tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from planner.models import FinalsConfig, Match, Team, Tournament
from planner.tournament_scheduler import schedule_tournament


def make_teams(groups):
    """{'A': 2, 'B': 3} -> teams a1, a2, b1, b2, b3 in their groups."""
    teams = []
    for group, count in groups.items():
        for i in range(1, count + 1):
            teams.append(Team(id=f"{group.lower()}{i}", name=f"{group}{i}", group=group))
    return teams


def play_match(tournament, team_x, team_y, goals_x, goals_y):
    """Score the group match between two teams, whichever side each is on."""
    matches = []
    found = False
    for match in tournament.matches:
        if not match.is_final and {match.team_a, match.team_b} == {team_x, team_y}:
            if match.team_a == team_x:
                match = match.replace(score_a=goals_x, score_b=goals_y)
            else:
                match = match.replace(score_a=goals_y, score_b=goals_x)
            found = True
        matches.append(match)
    assert found, f"No group match between {team_x} and {team_y}"
    return tournament.replace(matches=matches)


def score_match(tournament, match_id, score_a, score_b, **extra):
    """Set the score of any match by id without running resolution."""
    return tournament.replace(matches=[
        m.replace(score_a=score_a, score_b=score_b, **extra) if m.id == match_id else m
        for m in tournament.matches
    ])


def group_match(match_id, group, team_a, team_b, score_a=None, score_b=None, slot=0, field=1):
    return Match(id=match_id, round=slot + 1, field=field, slot=slot, team_a=team_a, team_b=team_b,
                 score_a=score_a, score_b=score_b, group=group)


@pytest.fixture
def four_teams():
    """Two groups of two: a1, a2 in A and b1, b2 in B."""
    return make_teams({'A': 2, 'B': 2})


@pytest.fixture
def top4_tournament(four_teams):
    """Scheduled 2x2 tournament with semifinals, third place match and final on one field."""
    tournament = Tournament(teams=four_teams, number_of_groups=2, number_of_fields=1,
                            group_phase_game_duration=10, finals_config=FinalsConfig('top-4'))
    return schedule_tournament(tournament)


@pytest.fixture
def final_only_tournament(four_teams):
    """Scheduled 2x2 tournament where only the group winners meet in a final."""
    tournament = Tournament(teams=four_teams, number_of_groups=2, number_of_fields=1,
                            group_phase_game_duration=10, finals_config=FinalsConfig('final-only'))
    return schedule_tournament(tournament)


@pytest.fixture
def play():
    return play_match


@pytest.fixture
def score():
    return score_match


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app at a temporary data directory."""
    import app as app_module
    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    return tmp_path


@pytest.fixture
def client(temp_data_dir):
    """Create a test client backed by the temporary data directory."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client
