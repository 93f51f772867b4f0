"""
Flask web application for Tournament Fixtures.
"""
import os
import re
import shutil
import tempfile
import uuid
import yaml
from datetime import datetime
from filelock import FileLock
from flask import Flask, request, jsonify, abort
from league.models import Fixture, Match, KnockoutMatch, InvalidRoster
from league.scheduler import schedule_groups, count_matchdays, rename_team
from league.standings import calculate_group_standings, top_two, is_group_stage_complete
from league.knockout import BracketError, generate_knockout_bracket, record_knockout_score, get_champion

app = Flask(__name__)
app.logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))

TOURNAMENTS_FILE = os.path.join(DATA_DIR, 'tournaments.yaml')
TOURNAMENTS_DIR = os.path.join(DATA_DIR, 'tournaments')

GROUP_LETTERS = 'ABCDEFGH'
LOCK_TIMEOUT_SECONDS = 10

# One lock object per data directory so nested acquisition stays reentrant
_locks = {}


def _data_lock() -> FileLock:
    """Return the write lock guarding the current data directory."""
    lock = _locks.get(DATA_DIR)
    if lock is None:
        os.makedirs(DATA_DIR, exist_ok=True)
        lock = FileLock(os.path.join(DATA_DIR, '.lock'), timeout=LOCK_TIMEOUT_SECONDS)
        _locks[DATA_DIR] = lock
    return lock


def get_default_settings():
    """Return default tournament settings."""
    return {
        'tournament_name': 'Tournament',
        'number_of_groups': 4,
        'max_teams_per_group': 4,
        'points_for_win': 3,
        'points_for_draw': 1,
    }


def _slugify(name: str) -> str:
    """Convert tournament name to filesystem-safe slug."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'[\s-]+', '-', slug)
    slug = slug.strip('-')
    return slug or 'tournament'


def _tournament_dir(slug: str) -> str:
    """Return the data directory of an existing tournament, or 404."""
    # Slugs come from the URL; refuse anything that could escape TOURNAMENTS_DIR
    if not re.match(r'^[a-z0-9][a-z0-9-]*$', slug):
        abort(404, description=f'Tournament "{slug}" not found.')
    path = os.path.join(TOURNAMENTS_DIR, slug)
    if not os.path.isdir(path):
        abort(404, description=f'Tournament "{slug}" not found.')
    return path


def _load_yaml(path: str, default):
    if not os.path.exists(path):
        return default
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return data if data is not None else default


def _save_yaml(path: str, data):
    """Write YAML atomically: readers see either the old or the new file, never a partial one."""
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.tmp-', suffix='.yaml')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def load_tournaments() -> dict:
    """Load the tournaments registry."""
    try:
        data = _load_yaml(TOURNAMENTS_FILE, {})
    except yaml.YAMLError as e:
        app.logger.warning(f'Failed to parse {TOURNAMENTS_FILE}: {e}')
        data = {}
    if not isinstance(data, dict):
        app.logger.warning(f'Ignoring malformed registry {TOURNAMENTS_FILE}: expected a mapping')
        data = {}
    tournaments = data.get('tournaments') or []
    if not isinstance(tournaments, list):
        app.logger.warning(f'Ignoring malformed registry {TOURNAMENTS_FILE}: tournaments is not a list')
        tournaments = []
    return {'tournaments': tournaments}


def save_tournaments(data: dict):
    _save_yaml(TOURNAMENTS_FILE, data)


def load_settings(slug: str) -> dict:
    """Load tournament settings, filling missing keys from defaults."""
    data = _load_yaml(os.path.join(_tournament_dir(slug), 'settings.yaml'), {})
    return {**get_default_settings(), **data}


def save_settings(slug: str, settings: dict):
    _save_yaml(os.path.join(_tournament_dir(slug), 'settings.yaml'), settings)


def load_groups(slug: str) -> dict:
    """Load groups as {group_id: {'name': ..., 'teams': [...]}}."""
    data = _load_yaml(os.path.join(_tournament_dir(slug), 'groups.yaml'), {})
    normalized = {}
    for group_id in sorted(data):
        group = data[group_id] or {}
        normalized[group_id] = {
            'name': group.get('name', group_id),
            'teams': list(group.get('teams') or []),
        }
    return normalized


def save_groups(slug: str, groups: dict):
    _save_yaml(os.path.join(_tournament_dir(slug), 'groups.yaml'), groups)


def load_fixtures(slug: str) -> list:
    data = _load_yaml(os.path.join(_tournament_dir(slug), 'fixtures.yaml'), [])
    return [Fixture.from_dict(item) for item in data]


def save_fixtures(slug: str, fixtures: list):
    """Replace the whole fixture set in one write."""
    _save_yaml(os.path.join(_tournament_dir(slug), 'fixtures.yaml'), [f.to_dict() for f in fixtures])


def load_matches(slug: str) -> list:
    data = _load_yaml(os.path.join(_tournament_dir(slug), 'matches.yaml'), [])
    return [Match.from_dict(item) for item in data]


def save_matches(slug: str, matches: list):
    _save_yaml(os.path.join(_tournament_dir(slug), 'matches.yaml'), [m.to_dict() for m in matches])


def load_knockout(slug: str) -> list:
    data = _load_yaml(os.path.join(_tournament_dir(slug), 'knockout.yaml'), [])
    return [KnockoutMatch.from_dict(item) for item in data]


def save_knockout(slug: str, matches: list):
    _save_yaml(os.path.join(_tournament_dir(slug), 'knockout.yaml'), [m.to_dict() for m in matches])


def _rosters(groups: dict) -> dict:
    return {group_id: group['teams'] for group_id, group in groups.items()}


def _find_team(groups: dict, name: str):
    """Return the group id holding a team (case-insensitive), or None."""
    lowered = name.lower()
    for group_id, group in groups.items():
        if any(team.lower() == lowered for team in group['teams']):
            return group_id
    return None


def _parse_score(value, field_name):
    if isinstance(value, bool):
        abort(400, description=f'{field_name} must be a whole number.')
    try:
        score = int(value)
    except (TypeError, ValueError):
        abort(400, description=f'{field_name} must be a whole number.')
    if score < 0:
        abort(400, description=f'{field_name} cannot be negative.')
    return score


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description='Request body must be a JSON object.')
    return data


def _options_body() -> dict:
    """Body for endpoints whose JSON options are all optional; no body means defaults."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='Request body must be a JSON object.')
    return data


def determine_tournament_phase(fixtures, knockout):
    """Determine the current phase of the tournament.

    Returns:
        One of: 'setup', 'group_stage', 'knockout', 'complete'.
    """
    if knockout:
        return 'complete' if get_champion(knockout) else 'knockout'
    if not fixtures:
        return 'setup'
    return 'group_stage'


@app.errorhandler(InvalidRoster)
@app.errorhandler(BracketError)
def handle_validation_error(e):
    return jsonify({'error': str(e)}), 400


@app.errorhandler(400)
@app.errorhandler(404)
@app.errorhandler(409)
def handle_http_error(e):
    return jsonify({'error': e.description}), e.code


@app.errorhandler(OSError)
@app.errorhandler(yaml.YAMLError)
def handle_storage_error(e):
    # filelock.Timeout is an OSError subclass and lands here too
    app.logger.error(f'Storage error on {request.method} {request.path}: {e}')
    return jsonify({'error': 'Could not access tournament data. Please try again.'}), 503


@app.route('/api/tournaments', methods=['GET'])
def api_list_tournaments():
    """List all tournaments."""
    return jsonify(load_tournaments())


@app.route('/api/tournaments', methods=['POST'])
def api_create_tournament():
    """Create a new tournament with empty groups."""
    data = _json_body()
    name = str(data.get('name', '')).strip()
    if not name:
        abort(400, description='Tournament name is required.')
    try:
        number_of_groups = int(data.get('number_of_groups', get_default_settings()['number_of_groups']))
    except (TypeError, ValueError):
        abort(400, description='number_of_groups must be a whole number.')
    if not 1 <= number_of_groups <= len(GROUP_LETTERS):
        abort(400, description=f'number_of_groups must be between 1 and {len(GROUP_LETTERS)}.')

    slug = _slugify(name)
    with _data_lock():
        registry = load_tournaments()
        if any(t['slug'] == slug for t in registry['tournaments']):
            abort(409, description=f'A tournament with a similar name already exists ("{slug}").')

        os.makedirs(os.path.join(TOURNAMENTS_DIR, slug), exist_ok=True)
        settings = get_default_settings()
        settings['tournament_name'] = name
        settings['number_of_groups'] = number_of_groups
        save_settings(slug, settings)
        groups = {}
        for letter in GROUP_LETTERS[:number_of_groups]:
            groups[f'group-{letter.lower()}'] = {'name': f'Group {letter}', 'teams': []}
        save_groups(slug, groups)

        registry['tournaments'].append({
            'slug': slug,
            'name': name,
            'created': datetime.now().isoformat()
        })
        save_tournaments(registry)

    app.logger.info(f'Created tournament "{name}" ({slug}) with {number_of_groups} groups')
    return jsonify({'success': True, 'slug': slug, 'name': name}), 201


@app.route('/api/tournaments/<slug>', methods=['DELETE'])
def api_delete_tournament(slug):
    """Delete a tournament and all of its data."""
    with _data_lock():
        path = _tournament_dir(slug)
        registry = load_tournaments()
        registry['tournaments'] = [t for t in registry['tournaments'] if t['slug'] != slug]
        save_tournaments(registry)
        shutil.rmtree(path)
    app.logger.info(f'Deleted tournament {slug}')
    return jsonify({'success': True})


@app.route('/api/tournaments/<slug>', methods=['GET'])
def api_tournament_state(slug):
    """Return everything a tournament view needs in one payload."""
    settings = load_settings(slug)
    groups = load_groups(slug)
    fixtures = load_fixtures(slug)
    matches = load_matches(slug)
    knockout = load_knockout(slug)
    return jsonify({
        'settings': settings,
        'groups': groups,
        'standings': calculate_group_standings(_rosters(groups), matches, settings),
        'fixtures': [f.to_dict() for f in fixtures],
        'total_matchdays': count_matchdays(fixtures),
        'matches': [m.to_dict() for m in matches],
        'knockout': [m.to_dict() for m in knockout],
        'champion': get_champion(knockout),
        'group_stage_complete': is_group_stage_complete(fixtures, matches),
        'phase': determine_tournament_phase(fixtures, knockout),
    })


@app.route('/api/tournaments/<slug>/reset', methods=['POST'])
def api_reset_tournament(slug):
    """Remove all teams, fixtures, results and knockout data. Groups are kept."""
    with _data_lock():
        groups = load_groups(slug)
        for group in groups.values():
            group['teams'] = []
        save_groups(slug, groups)
        save_fixtures(slug, [])
        save_matches(slug, [])
        save_knockout(slug, [])
    app.logger.info(f'Reset tournament {slug}')
    return jsonify({'success': True})


@app.route('/api/tournaments/<slug>/groups/<group_id>/teams', methods=['POST'])
def api_add_team(slug, group_id):
    """Add a team to a group."""
    data = _json_body()
    name = str(data.get('name', '')).strip()
    if not name:
        abort(400, description='Team name is required.')

    with _data_lock():
        settings = load_settings(slug)
        groups = load_groups(slug)
        if group_id not in groups:
            abort(404, description=f'Group "{group_id}" not found.')
        max_teams = settings['max_teams_per_group']
        if len(groups[group_id]['teams']) >= max_teams:
            abort(400, description=f'Maximum {max_teams} teams per group. Limit reached.')
        if _find_team(groups, name):
            abort(409, description=f'A team named "{name}" already exists in the tournament.')
        groups[group_id]['teams'].append(name)
        save_groups(slug, groups)

    return jsonify({'success': True, 'group': groups[group_id]}), 201


@app.route('/api/tournaments/<slug>/groups/<group_id>/teams/<name>', methods=['DELETE'])
def api_remove_team(slug, group_id, name):
    """Remove a team from a group. Stored fixtures are kept until the next regeneration."""
    with _data_lock():
        groups = load_groups(slug)
        if group_id not in groups or name not in groups[group_id]['teams']:
            abort(404, description=f'Team "{name}" not found in group "{group_id}".')
        groups[group_id]['teams'].remove(name)
        save_groups(slug, groups)
    return jsonify({'success': True, 'group': groups[group_id]})


@app.route('/api/tournaments/<slug>/groups/<group_id>/teams/<name>', methods=['PUT'])
def api_rename_team(slug, group_id, name):
    """Rename a team and replace the old name in fixtures, results and the bracket."""
    data = _json_body()
    new_name = str(data.get('name', '')).strip()
    if not new_name:
        abort(400, description='New team name is required.')

    with _data_lock():
        groups = load_groups(slug)
        if group_id not in groups or name not in groups[group_id]['teams']:
            abort(404, description=f'Team "{name}" not found in group "{group_id}".')
        if new_name == name:
            return jsonify({'success': True, 'fixtures_updated': 0})
        holder = _find_team(groups, new_name)
        # Changing only the capitalisation of the same team is allowed
        if holder and new_name.lower() != name.lower():
            abort(409, description=f'A team named "{new_name}" already exists in the tournament.')

        teams = groups[group_id]['teams']
        teams[teams.index(name)] = new_name
        save_groups(slug, groups)

        fixtures = load_fixtures(slug)
        updated_count = sum(1 for f in fixtures if f.involves(name))
        if updated_count:
            save_fixtures(slug, rename_team(fixtures, name, new_name))

        matches = load_matches(slug)
        if any(name in (m.home_team, m.away_team) for m in matches):
            save_matches(slug, [
                Match.from_dict({
                    **m.to_dict(),
                    'home_team': new_name if m.home_team == name else m.home_team,
                    'away_team': new_name if m.away_team == name else m.away_team,
                })
                for m in matches
            ])

        knockout = load_knockout(slug)
        if any(name in (m.home_team, m.away_team) for m in knockout):
            for m in knockout:
                if m.home_team == name:
                    m.home_team = new_name
                if m.away_team == name:
                    m.away_team = new_name
            save_knockout(slug, knockout)

    app.logger.info(f'Renamed team "{name}" to "{new_name}" in {slug} ({updated_count} fixtures)')
    return jsonify({'success': True, 'fixtures_updated': updated_count})


@app.route('/api/tournaments/<slug>/fixtures/generate', methods=['POST'])
def api_generate_fixtures(slug):
    """Generate the double round-robin schedule for every group.

    Existing fixtures are locked: pass {"regenerate": true} to replace them.
    """
    data = _options_body()
    regenerate = bool(data.get('regenerate', False))

    with _data_lock():
        groups = load_groups(slug)
        existing = load_fixtures(slug)
        if existing and not regenerate:
            abort(409, description='Fixtures already generated. Use regenerate to replace them.')

        rosters = _rosters(groups)
        fixtures = schedule_groups(rosters)
        skipped = [group_id for group_id, teams in rosters.items() if len(teams) < 2]
        if fixtures or existing:
            save_fixtures(slug, fixtures)

    if fixtures:
        action = 'Regenerated' if existing else 'Generated'
        app.logger.info(f'{action} {len(fixtures)} fixtures over {count_matchdays(fixtures)} matchdays for {slug}')
    return jsonify({
        'success': True,
        'fixtures': [f.to_dict() for f in fixtures],
        'total_matchdays': count_matchdays(fixtures),
        'skipped_groups': skipped,
    })


@app.route('/api/tournaments/<slug>/fixtures', methods=['GET'])
def api_fixtures(slug):
    """List fixtures, optionally filtered by matchday and group."""
    fixtures = load_fixtures(slug)
    total = count_matchdays(fixtures)
    matchday = request.args.get('matchday', type=int)
    group_id = request.args.get('group_id')
    if matchday is not None:
        fixtures = [f for f in fixtures if f.matchday == matchday]
    if group_id:
        fixtures = [f for f in fixtures if f.group_id == group_id]
    return jsonify({
        'fixtures': [f.to_dict() for f in fixtures],
        'total_matchdays': total,
    })


@app.route('/api/tournaments/<slug>/matches', methods=['POST'])
def api_record_match(slug):
    """Record a group match result. A second result for the same fixture replaces the first."""
    data = _json_body()
    group_id = data.get('group_id')
    home_team = data.get('home_team')
    away_team = data.get('away_team')
    home_score = _parse_score(data.get('home_score'), 'home_score')
    away_score = _parse_score(data.get('away_score'), 'away_score')

    with _data_lock():
        settings = load_settings(slug)
        groups = load_groups(slug)
        if group_id not in groups:
            abort(404, description=f'Group "{group_id}" not found.')
        roster = groups[group_id]['teams']
        for team in (home_team, away_team):
            if team not in roster:
                abort(400, description=f'Team "{team}" is not in group "{group_id}".')
        try:
            match = Match(
                id=uuid.uuid4().hex,
                group_id=group_id,
                home_team=home_team,
                away_team=away_team,
                home_score=home_score,
                away_score=away_score,
                played_at=datetime.now().isoformat(),
            )
        except ValueError as e:
            abort(400, description=str(e))

        matches = [
            m for m in load_matches(slug)
            if (m.group_id, m.home_team, m.away_team) != (group_id, home_team, away_team)
        ]
        matches.append(match)
        save_matches(slug, matches)

    standings = calculate_group_standings(_rosters(groups), matches, settings)
    return jsonify({'success': True, 'match': match.to_dict(), 'standings': standings}), 201


@app.route('/api/tournaments/<slug>/matches/<match_id>', methods=['DELETE'])
def api_delete_match(slug, match_id):
    """Delete a recorded result."""
    with _data_lock():
        matches = load_matches(slug)
        remaining = [m for m in matches if m.id != match_id]
        if len(remaining) == len(matches):
            abort(404, description=f'Match "{match_id}" not found.')
        save_matches(slug, remaining)
    return jsonify({'success': True})


@app.route('/api/tournaments/<slug>/knockout/generate', methods=['POST'])
def api_generate_knockout(slug):
    """Seed the quarterfinals from the top two of every group."""
    data = _options_body()
    with _data_lock():
        if load_knockout(slug) and not data.get('regenerate', False):
            abort(409, description='Knockout bracket already generated. Use regenerate to replace it.')
        settings = load_settings(slug)
        groups = load_groups(slug)
        matches = load_matches(slug)
        if not is_group_stage_complete(load_fixtures(slug), matches):
            abort(400, description='Group stage must be complete before generating the knockout bracket.')
        standings = calculate_group_standings(_rosters(groups), matches, settings)
        bracket = generate_knockout_bracket(top_two(standings, list(groups)))
        save_knockout(slug, bracket)
    app.logger.info(f'Generated knockout bracket for {slug}')
    return jsonify({'success': True, 'knockout': [m.to_dict() for m in bracket]})


@app.route('/api/tournaments/<slug>/knockout/<match_id>', methods=['POST'])
def api_record_knockout_score(slug, match_id):
    """Record a knockout score and advance the winner."""
    data = _json_body()
    home_score = _parse_score(data.get('home_score'), 'home_score')
    away_score = _parse_score(data.get('away_score'), 'away_score')
    with _data_lock():
        knockout = load_knockout(slug)
        if not knockout:
            abort(404, description='Knockout bracket has not been generated.')
        if not any(m.id == match_id for m in knockout):
            abort(404, description=f'Knockout match "{match_id}" not found.')
        knockout = record_knockout_score(knockout, match_id, home_score, away_score)
        save_knockout(slug, knockout)
    champion = get_champion(knockout)
    if champion:
        app.logger.info(f'{slug} champion: {champion}')
    return jsonify({
        'success': True,
        'knockout': [m.to_dict() for m in knockout],
        'champion': champion,
    })


if __name__ == '__main__':
    app.run(debug=True, port=5000)
