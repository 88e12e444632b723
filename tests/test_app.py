"""
Tests for the Flask JSON API.
"""
import pytest
import sys
import os
import threading
import time

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


TOURNAMENT = {
    'title': 'Spring Cup',
    'teams': {'A': ['A1', 'A2'], 'B': ['B1', 'B2']},
    'settings': {'finals_preset': 'top-4', 'group_phase_game_duration': 12},
}


def group_match_id(data, team):
    return next(m['id'] for m in data['matches'] if not m.get('isFinal') and team in (m['teamA'], m['teamB']))


def enter_result(client, match_id, score_a, score_b, **extra):
    body = dict({'scoreA': score_a, 'scoreB': score_b}, **extra)
    return client.post(f'/api/tournaments/spring-cup/matches/{match_id}/result', json=body)


@pytest.fixture
def created(client):
    response = client.post('/api/tournaments', json=TOURNAMENT)
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def resolved(client, created):
    """Group A won by a1, group B by b2."""
    enter_result(client, group_match_id(created, 'a1'), *score_for(created, 'a1', 'a2', 2, 1))
    enter_result(client, group_match_id(created, 'b1'), *score_for(created, 'b1', 'b2', 0, 3))
    return client.get('/api/tournaments/spring-cup').get_json()


def score_for(data, team_x, team_y, goals_x, goals_y):
    """Orient a score to the stored home/away order."""
    match = next(m for m in data['matches'] if {m['teamA'], m['teamB']} == {team_x, team_y})
    return (goals_x, goals_y) if match['teamA'] == team_x else (goals_y, goals_x)


def find(data, match_id):
    return next(m for m in data['matches'] if m['id'] == match_id)


class TestTournamentRoutes:
    """Tests for creating, listing and loading tournaments."""

    def test_create(self, created):
        """A new tournament is scheduled and returned with its id."""
        assert created['id'] == 'spring-cup'
        assert created['title'] == 'Spring Cup'
        assert [t['id'] for t in created['teams']] == ['a1', 'a2', 'b1', 'b2']
        assert len(created['matches']) == 6
        assert find(created, 'semi1')['teamA'] == 'group-a-2nd'
        assert created['groupPhaseGameDuration'] == 12

    def test_create_saves_yaml(self, created, temp_data_dir):
        """The tournament is written to the data directory."""
        assert (temp_data_dir / 'tournaments' / 'spring-cup.yaml').exists()

    def test_duplicate_title_gets_new_id(self, client, created):
        """A second tournament with the same title gets a numbered id."""
        response = client.post('/api/tournaments', json=TOURNAMENT)
        assert response.get_json()['id'] == 'spring-cup-2'

    def test_concurrent_creates_get_distinct_ids(self, client, temp_data_dir, monkeypatch):
        """Two creates with the same title racing each other never share an id."""
        import app as app_module
        from app import app

        pick_id = app_module._unique_id

        def slow_unique_id(title):
            tournament_id = pick_id(title)
            time.sleep(0.2)
            return tournament_id

        monkeypatch.setattr(app_module, '_unique_id', slow_unique_id)
        ids = []

        def create():
            with app.test_client() as thread_client:
                ids.append(thread_client.post('/api/tournaments', json=TOURNAMENT).get_json()['id'])

        threads = [threading.Thread(target=create) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(ids) == ['spring-cup', 'spring-cup-2']
        assert (temp_data_dir / 'tournaments' / 'spring-cup.yaml').exists()
        assert (temp_data_dir / 'tournaments' / 'spring-cup-2.yaml').exists()

    def test_list(self, client, created):
        """Saved tournaments are listed with a short summary."""
        tournaments = client.get('/api/tournaments').get_json()['tournaments']
        assert tournaments == [{
            'id': 'spring-cup', 'title': 'Spring Cup', 'teams': 4, 'matches': 6, 'finalsPreset': 'top-4',
        }]

    def test_list_empty(self, client):
        """No tournaments gives an empty list."""
        assert client.get('/api/tournaments').get_json() == {'tournaments': []}

    def test_get(self, client, created):
        """A saved tournament loads back unchanged."""
        response = client.get('/api/tournaments/spring-cup')
        assert response.status_code == 200
        assert response.get_json()['matches'] == created['matches']

    def test_get_unknown(self, client):
        """Unknown ids return 404."""
        assert client.get('/api/tournaments/missing').status_code == 404

    def test_get_invalid_id(self, client):
        """Ids that are not slugs never reach the filesystem."""
        assert client.get('/api/tournaments/..%2Fsecret').status_code == 404

    def test_create_without_data(self, client):
        """An empty body is rejected."""
        assert client.post('/api/tournaments', json={}).status_code == 400

    def test_create_with_one_team(self, client):
        """A single team cannot make a tournament."""
        response = client.post('/api/tournaments', json={'title': 'Solo', 'teams': {'A': ['Only']}})
        assert response.status_code == 400

    def test_create_with_invalid_settings(self, client):
        """Settings are validated before scheduling."""
        body = dict(TOURNAMENT, settings={'number_of_fields': 0})
        response = client.post('/api/tournaments', json=body)
        assert response.status_code == 400
        assert 'Invalid tournament' in response.get_json()['error']

    def test_create_with_start_time(self, client):
        """A start time gives every match a kickoff time."""
        body = dict(TOURNAMENT, startTime='2026-05-01T09:00:00')
        data = client.post('/api/tournaments', json=body).get_json()
        assert data['startTime'] == '2026-05-01T09:00:00'
        assert find(data, 'semi1')['scheduledTime'] == '2026-05-01T09:36:00'


class TestResultRoutes:
    """Tests for entering and clearing results."""

    def test_first_group_result(self, client, created):
        """A result before the group phase ends resolves nothing."""
        match_id = group_match_id(created, 'a1')
        response = enter_result(client, match_id, 2, 1)
        assert response.status_code == 200
        data = response.get_json()
        assert data['match']['scoreA'] == 2
        assert data['resolution'] is None

    def test_last_group_result_resolves(self, client, created):
        """The last group result fills the semifinals."""
        enter_result(client, group_match_id(created, 'a1'), 1, 0)
        data = enter_result(client, group_match_id(created, 'b1'), 2, 2).get_json()
        assert data['resolution']['wasResolved'] is True
        assert data['resolution']['updatedMatches'] == 2

        tournament = client.get('/api/tournaments/spring-cup').get_json()
        assert 'group-' not in find(tournament, 'semi1')['teamA']

    def test_semifinals_resolved(self, resolved):
        """Resolved matches keep their placeholder sources."""
        assert (find(resolved, 'semi1')['teamA'], find(resolved, 'semi1')['teamB']) == ('a2', 'b2')
        assert (find(resolved, 'semi2')['teamA'], find(resolved, 'semi2')['teamB']) == ('a1', 'b1')
        assert find(resolved, 'semi1')['sourceA'] == 'group-a-2nd'

    def test_bracket_cascade(self, client, resolved):
        """Semifinal winners move into the final, including penalty wins."""
        enter_result(client, 'semi1', 1, 1, decidedBy='penalty', penaltyScoreA=5, penaltyScoreB=4)
        data = enter_result(client, 'semi2', 0, 2).get_json()
        assert data['resolution']['wasResolved'] is True

        tournament = client.get('/api/tournaments/spring-cup').get_json()
        assert (find(tournament, 'final')['teamA'], find(tournament, 'final')['teamB']) == ('a2', 'b1')
        assert find(tournament, 'semi1')['decidedBy'] == 'penalty'

    def test_unresolved_match_rejected(self, client, created):
        """Matches without both teams cannot take a result."""
        response = enter_result(client, 'final', 1, 0)
        assert response.status_code == 400

    def test_unknown_match(self, client, created):
        """Unknown match ids return 404."""
        assert enter_result(client, 'g99', 1, 0).status_code == 404

    def test_non_integer_score(self, client, created):
        """Scores must be integers."""
        assert enter_result(client, group_match_id(created, 'a1'), 'two', 1).status_code == 400

    def test_negative_score(self, client, created):
        """Scores cannot be negative."""
        assert enter_result(client, group_match_id(created, 'a1'), -1, 1).status_code == 400

    def test_unknown_tournament(self, client):
        """Results for unknown tournaments return 404."""
        response = client.post('/api/tournaments/missing/matches/g1/result', json={'scoreA': 1, 'scoreB': 0})
        assert response.status_code == 404

    def test_clear_result(self, client, created):
        """Deleting a result removes the score."""
        match_id = group_match_id(created, 'a1')
        enter_result(client, match_id, 3, 0)
        response = client.delete(f'/api/tournaments/spring-cup/matches/{match_id}/result')
        assert response.status_code == 200
        assert 'scoreA' not in response.get_json()['match']


class TestStandingsRoute:
    """Tests for the standings endpoint."""

    def test_all_groups(self, client, resolved):
        """Every group is returned in order."""
        standings = client.get('/api/tournaments/spring-cup/standings').get_json()['standings']
        assert list(standings) == ['A', 'B']
        assert [row['team']['id'] for row in standings['B']] == ['b2', 'b1']
        assert standings['B'][0]['points'] == 3

    def test_single_group(self, client, resolved):
        """The group parameter narrows the standings."""
        standings = client.get('/api/tournaments/spring-cup/standings?group=A').get_json()['standings']
        assert list(standings) == ['A']
        assert standings['A'][0]['goalDifference'] == 1

    def test_unknown_group(self, client, created):
        """Unknown groups return 404."""
        assert client.get('/api/tournaments/spring-cup/standings?group=Z').status_code == 404


class TestPlayoffRoutes:
    """Tests for playoff resolution, status, fairness and ranking."""

    def test_status_before_results(self, client, created):
        """Before any result the playoffs have not started."""
        status = client.get('/api/tournaments/spring-cup/playoffs/status').get_json()
        assert status['groupPhaseCompleted'] is False
        assert status['needsResolution'] is True
        assert status['needsReResolution'] is False
        assert status['finals']['playoffStatus'] == 'not-started'

    def test_resolve_before_group_phase(self, client, created):
        """Resolution waits for the group phase."""
        data = client.post('/api/tournaments/spring-cup/playoffs/resolve').get_json()
        assert data['wasResolved'] is False
        assert data['message'] == 'Group phase is not completed yet'

    def test_re_resolve_after_correction(self, client, created, resolved):
        """A corrected group result can be resolved again."""
        enter_result(client, group_match_id(created, 'a1'), *score_for(created, 'a1', 'a2', 0, 1))
        status = client.get('/api/tournaments/spring-cup/playoffs/status').get_json()
        assert status['needsReResolution'] is True

        data = client.post('/api/tournaments/spring-cup/playoffs/re-resolve').get_json()
        assert data['wasResolved'] is True
        assert sorted(data['updatedMatchIds'])[:2] == ['semi1', 'semi2']

        tournament = client.get('/api/tournaments/spring-cup').get_json()
        assert find(tournament, 'semi1')['teamA'] == 'a1'

    def test_fairness(self, client, created):
        """Every team gets fairness statistics."""
        data = client.get('/api/tournaments/spring-cup/fairness').get_json()
        assert len(data['teamStats']) == 4
        assert 'totalVariance' in data['global']

    def test_ranking(self, client, resolved):
        """A finished bracket gives the final ranking."""
        enter_result(client, 'semi1', 2, 0)
        enter_result(client, 'semi2', 0, 1)
        enter_result(client, 'third-place', 1, 0)
        enter_result(client, 'final', 0, 3)
        data = client.get('/api/tournaments/spring-cup/ranking').get_json()
        assert data['playoffStatus'] == 'completed'
        assert [(p['rank'], p['team']['id']) for p in data['ranking']] == [
            (1, 'b1'), (2, 'a2'), (3, 'b2'), (4, 'a1'),
        ]

    def test_unknown_tournament(self, client):
        """Playoff routes return 404 for unknown tournaments."""
        assert client.get('/api/tournaments/missing/ranking').status_code == 404
        assert client.post('/api/tournaments/missing/playoffs/resolve').status_code == 404
