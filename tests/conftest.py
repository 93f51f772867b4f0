"""
Shared pytest fixtures for tournament fixtures tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from league.models import Match


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app at an empty temporary data directory."""
    import app as app_module

    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    monkeypatch.setattr(app_module, 'TOURNAMENTS_FILE', str(tmp_path / "tournaments.yaml"))
    monkeypatch.setattr(app_module, 'TOURNAMENTS_DIR', str(tmp_path / "tournaments"))
    return tmp_path


@pytest.fixture
def client(temp_data_dir):
    """Create a test client backed by the temporary data directory."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def tournament(client):
    """Create a tournament with four empty groups and return its slug."""
    response = client.post('/api/tournaments', json={'name': 'Summer Cup', 'number_of_groups': 4})
    assert response.status_code == 201
    return response.get_json()['slug']


@pytest.fixture
def populated_tournament(client, tournament):
    """Tournament with four teams in each of the four groups."""
    for letter in 'abcd':
        for i in range(1, 5):
            response = client.post(f'/api/tournaments/{tournament}/groups/group-{letter}/teams',
                                   json={'name': f'{letter.upper()}{i}'})
            assert response.status_code == 201
    return tournament


@pytest.fixture
def sample_groups():
    """Two groups: one of four teams, one of three."""
    return {
        'group-a': ['Lions', 'Eagles', 'Tigers', 'Bears'],
        'group-b': ['Rovers', 'United', 'City'],
    }


def make_match(home, away, home_score, away_score, group_id='group-a', match_id=None):
    """Build a recorded result for tests."""
    return Match(
        id=match_id or f'{home}-{away}',
        group_id=group_id,
        home_team=home,
        away_team=away,
        home_score=home_score,
        away_score=away_score,
    )
