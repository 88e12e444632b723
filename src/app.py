"""
Flask JSON API for the tournament planner.
"""
import os
import re
import yaml
from filelock import FileLock
from flask import Flask, request, jsonify
from planner.fair_scheduler import analyze_schedule_fairness
from planner.migration import normalize_tournament
from planner.models import Team, Tournament
from planner.playoff_resolver import (
    apply_match_result, are_all_group_matches_completed, clear_match_result,
    force_re_resolve_playoffs, needs_playoff_re_resolution, needs_playoff_resolution,
    resolve_playoff_pairings,
)
from planner.settings import parse_start_time, teams_from_groups, tournament_from_settings
from planner.standings import (
    calculate_finals_placement, calculate_group_standings, calculate_standings, get_merged_final_ranking,
)
from planner.tournament_scheduler import schedule_tournament

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))
VALID_ID = re.compile(r'^[a-z0-9][a-z0-9-]*$')


def _tournaments_dir() -> str:
    return os.path.join(DATA_DIR, 'tournaments')


def _tournament_path(tournament_id: str) -> str:
    return os.path.join(_tournaments_dir(), f'{tournament_id}.yaml')


def _lock_for(tournament_id: str) -> FileLock:
    os.makedirs(_tournaments_dir(), exist_ok=True)
    return FileLock(_tournament_path(tournament_id) + '.lock', timeout=10)


def _creation_lock() -> FileLock:
    """Held while a new tournament id is picked and its file first written."""
    os.makedirs(_tournaments_dir(), exist_ok=True)
    return FileLock(os.path.join(_tournaments_dir(), '.create.lock'), timeout=10)


def _slugify(name: str) -> str:
    """Convert tournament title to filesystem-safe slug."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'[\s-]+', '-', slug)
    slug = slug.strip('-')
    return slug or 'tournament'


def _unique_id(title: str) -> str:
    base = _slugify(title or 'tournament')
    candidate, counter = base, 2
    while os.path.exists(_tournament_path(candidate)):
        candidate = f'{base}-{counter}'
        counter += 1
    return candidate


def load_tournament(tournament_id: str):
    """Load a tournament from YAML, normalized. None if it does not exist."""
    if not VALID_ID.match(tournament_id):
        return None
    path = _tournament_path(tournament_id)
    if not os.path.exists(path):
        return None
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if not data:
        return None
    return normalize_tournament(Tournament.from_dict(data))


def save_tournament(tournament):
    """Save a tournament to YAML. Callers hold the tournament's lock."""
    os.makedirs(_tournaments_dir(), exist_ok=True)
    with open(_tournament_path(tournament.id), 'w', encoding='utf-8') as f:
        yaml.dump(tournament.to_dict(), f, default_flow_style=False, sort_keys=False)


def list_tournaments() -> list:
    directory = _tournaments_dir()
    if not os.path.isdir(directory):
        return []
    summaries = []
    for filename in sorted(os.listdir(directory)):
        if not filename.endswith('.yaml'):
            continue
        tournament = load_tournament(filename[:-len('.yaml')])
        if tournament is None:
            continue
        summaries.append({
            'id': tournament.id,
            'title': tournament.title,
            'teams': len(tournament.teams),
            'matches': len(tournament.matches),
            'finalsPreset': tournament.finals_config.preset,
        })
    return summaries


def _teams_from_payload(teams_data):
    if isinstance(teams_data, dict):
        return teams_from_groups(teams_data)
    if isinstance(teams_data, list):
        return [Team.from_dict(team) for team in teams_data]
    raise ValueError('Teams must be a mapping of groups or a list of teams')


def _not_found(tournament_id):
    return jsonify({'error': f'Tournament {tournament_id} not found'}), 404


@app.route('/api/tournaments', methods=['GET'])
def api_list_tournaments():
    return jsonify({'tournaments': list_tournaments()})


@app.route('/api/tournaments', methods=['POST'])
def api_create_tournament():
    """Create and schedule a tournament.

    Body: ``title``, ``teams`` (group -> team names, or a list of
    ``{id, name, group}``), optional ``settings`` and ``startTime``.
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400
    if not data.get('teams'):
        return jsonify({'error': 'At least two teams are required'}), 400

    try:
        teams = _teams_from_payload(data['teams'])
        settings = dict(data.get('settings') or {})
        settings['title'] = data.get('title') or settings.get('title')
        tournament = normalize_tournament(tournament_from_settings(settings, teams))
        start_time = parse_start_time(data.get('startTime'))
    except (ValueError, KeyError, TypeError) as e:
        return jsonify({'error': f'Invalid tournament: {e}'}), 400

    if len(tournament.teams) < 2:
        return jsonify({'error': 'At least two teams are required'}), 400

    with _creation_lock():
        tournament_id = _unique_id(tournament.title)
        with _lock_for(tournament_id):
            tournament = schedule_tournament(tournament.replace(id=tournament_id), start_time)
            save_tournament(tournament)

    app.logger.info(f'Created tournament {tournament_id} with {len(tournament.matches)} matches')
    return jsonify(tournament.to_dict()), 201


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
def api_get_tournament(tournament_id):
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return _not_found(tournament_id)
    return jsonify(tournament.to_dict())


@app.route('/api/tournaments/<tournament_id>/standings', methods=['GET'])
def api_standings(tournament_id):
    """Group tables, or a single group's table with ``?group=A``."""
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return _not_found(tournament_id)

    group = request.args.get('group')
    if group:
        if group not in tournament.group_labels():
            return jsonify({'error': f'Unknown group {group}'}), 404
        tables = {group: calculate_standings(tournament.teams, tournament.matches, tournament, group)}
    elif tournament.group_system == 'roundRobin':
        tables = {'all': calculate_standings(tournament.teams, tournament.matches, tournament)}
    else:
        tables = calculate_group_standings(tournament)

    return jsonify({'standings': {
        label: [standing.to_dict() for standing in table] for label, table in tables.items()
    }})


def _scores_from_payload(data):
    keys = ('scoreA', 'scoreB', 'penaltyScoreA', 'penaltyScoreB', 'overtimeScoreA', 'overtimeScoreB')
    scores = {}
    for key in keys:
        value = data.get(key)
        if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
            raise ValueError(f'{key} must be an integer')
        scores[key] = value
    return scores


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/result', methods=['POST'])
def api_enter_result(tournament_id, match_id):
    """Enter a score; resolves playoff pairings or cascades the bracket when possible."""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    if not VALID_ID.match(tournament_id):
        return _not_found(tournament_id)
    with _lock_for(tournament_id):
        tournament = load_tournament(tournament_id)
        if tournament is None:
            return _not_found(tournament_id)
        try:
            scores = _scores_from_payload(data)
            tournament, resolution = apply_match_result(
                tournament, match_id, scores['scoreA'], scores['scoreB'],
                decided_by=data.get('decidedBy'),
                penalty_score_a=scores['penaltyScoreA'], penalty_score_b=scores['penaltyScoreB'],
                overtime_score_a=scores['overtimeScoreA'], overtime_score_b=scores['overtimeScoreB'],
            )
        except KeyError:
            return jsonify({'error': f'Match {match_id} not found'}), 404
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        save_tournament(tournament)

    if resolution is not None and resolution.was_resolved:
        app.logger.info(f'{tournament_id}: {resolution.message}')
    return jsonify({
        'match': tournament.find_match(match_id).to_dict(),
        'resolution': resolution.to_dict() if resolution is not None else None,
    })


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/result', methods=['DELETE'])
def api_clear_result(tournament_id, match_id):
    if not VALID_ID.match(tournament_id):
        return _not_found(tournament_id)
    with _lock_for(tournament_id):
        tournament = load_tournament(tournament_id)
        if tournament is None:
            return _not_found(tournament_id)
        try:
            tournament = clear_match_result(tournament, match_id)
        except KeyError:
            return jsonify({'error': f'Match {match_id} not found'}), 404
        save_tournament(tournament)
    return jsonify({'match': tournament.find_match(match_id).to_dict()})


def _run_resolution(tournament_id, operation):
    if not VALID_ID.match(tournament_id):
        return _not_found(tournament_id)
    with _lock_for(tournament_id):
        tournament = load_tournament(tournament_id)
        if tournament is None:
            return _not_found(tournament_id)
        result = operation(tournament)
        if result.was_resolved:
            save_tournament(result.tournament)
            app.logger.info(f'{tournament_id}: {result.message}')
    return jsonify(result.to_dict())


@app.route('/api/tournaments/<tournament_id>/playoffs/resolve', methods=['POST'])
def api_resolve_playoffs(tournament_id):
    return _run_resolution(tournament_id, resolve_playoff_pairings)


@app.route('/api/tournaments/<tournament_id>/playoffs/re-resolve', methods=['POST'])
def api_re_resolve_playoffs(tournament_id):
    """Manual override: recompute pairings from current standings. Clears changed matches' scores."""
    return _run_resolution(tournament_id, force_re_resolve_playoffs)


@app.route('/api/tournaments/<tournament_id>/playoffs/status', methods=['GET'])
def api_playoff_status(tournament_id):
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return _not_found(tournament_id)
    finals = calculate_finals_placement(tournament.teams, tournament.matches)
    return jsonify({
        'groupPhaseCompleted': are_all_group_matches_completed(tournament),
        'needsResolution': needs_playoff_resolution(tournament),
        'needsReResolution': needs_playoff_re_resolution(tournament),
        'finals': finals.to_dict(),
    })


@app.route('/api/tournaments/<tournament_id>/fairness', methods=['GET'])
def api_fairness(tournament_id):
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return _not_found(tournament_id)
    group_matches = [m for m in tournament.matches if not m.is_final]
    return jsonify(analyze_schedule_fairness(group_matches).to_dict())


@app.route('/api/tournaments/<tournament_id>/ranking', methods=['GET'])
def api_ranking(tournament_id):
    """Final ranking: playoff placements first, then the overall group-phase table."""
    tournament = load_tournament(tournament_id)
    if tournament is None:
        return _not_found(tournament_id)
    overall = calculate_standings(tournament.teams, tournament.matches, tournament)
    ranking, finals = get_merged_final_ranking(tournament.teams, tournament.matches, overall)
    return jsonify({
        'ranking': [placement.to_dict() for placement in ranking],
        'playoffStatus': finals.playoff_status,
    })


if __name__ == '__main__':
    app.run(debug=True, port=5000)
