"""
Pytest configuration and fixtures for the ratings API tests.
"""
import os
import sys
from datetime import date, datetime, timedelta

import pytest
from jose import jwt

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from ratings_api.app import create_app
from ratings_api.auth import Caller
from ratings_api.constants import FORMATS, REFERENCE_TITLES
from ratings_api.models import db, Player, Profile, Rating, State, Title, Tournament, TournamentPlayer


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all tables before each test."""
    db.session.rollback()

    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    # Rows deleted in bulk leave stale objects in the identity map
    db.session.expunge_all()

    yield db.session

    db.session.rollback()


def make_token(user_id: str, secret: str = 'test-jwt-secret', expires_in: int = 3600, **claims) -> str:
    payload = {
        'sub': user_id,
        'aud': 'authenticated',
        'exp': datetime.utcnow() + timedelta(seconds=expires_in),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm='HS256')


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a profile."""
    def build(profile: Profile) -> dict:
        return {'Authorization': f'Bearer {make_token(profile.id)}'}
    return build


def _profile(profile_id: str, role: str, status: str = 'APPROVED') -> Profile:
    profile = Profile(id=profile_id, full_name=f'{role.title()} {profile_id}', role=role, status=status)
    db.session.add(profile)
    db.session.commit()
    return profile


@pytest.fixture
def organizer(db_session):
    return _profile('org-0001', 'ORGANIZER')


@pytest.fixture
def other_organizer(db_session):
    return _profile('org-0002', 'ORGANIZER')


@pytest.fixture
def pending_organizer(db_session):
    return _profile('org-pending', 'ORGANIZER', status='PENDING')


@pytest.fixture
def officer(db_session):
    return _profile('officer-0001', 'OFFICER')


@pytest.fixture
def admin(db_session):
    return _profile('admin-0001', 'ADMIN')


def as_caller(profile: Profile) -> Caller:
    return Caller(user_id=profile.id, role=profile.role, status=profile.status)


@pytest.fixture
def sample_state(db_session):
    state = State(name='Jalisco')
    db.session.add(state)
    db.session.commit()
    return state


@pytest.fixture
def titles(db_session):
    for code, name in REFERENCE_TITLES:
        db.session.add(Title(code=code, name=name))
    db.session.commit()
    return Title.query.all()


def add_player(first_name: str, last_name: str, rating: int = 1200, games_played: int = 0,
               state_id: int = None) -> Player:
    """Insert a player with one rating row per format."""
    player = Player(first_name=first_name, last_name=last_name, state_id=state_id)
    db.session.add(player)
    db.session.flush()
    for format_name in FORMATS:
        db.session.add(Rating(
            player_id=player.id,
            format=format_name,
            rating=rating,
            games_played=games_played,
            is_established=games_played >= 30
        ))
    db.session.commit()
    return player


@pytest.fixture
def sample_players(db_session):
    """Eight players rated 1500..1850 in every format."""
    return [add_player(f'Player{i + 1}', f'Surname{i + 1}', rating=1500 + i * 50, games_played=40)
            for i in range(8)]


def add_tournament(organizer: Profile, status: str = 'APPROVED', rounds: int = 3,
                   pairing_system: str = 'SWISS', format_name: str = 'CLASSICAL',
                   start_date: date = date(2026, 5, 1), name: str = 'Test Open') -> Tournament:
    tournament = Tournament(
        name=name,
        format=format_name,
        pairing_system=pairing_system,
        start_date=start_date,
        end_date=start_date + timedelta(days=2),
        rounds=rounds,
        organizer_id=organizer.id,
        status=status
    )
    db.session.add(tournament)
    db.session.commit()
    return tournament


def register_all(tournament: Tournament, players) -> None:
    for player in players:
        db.session.add(TournamentPlayer(tournament_id=tournament.id, player_id=player.id))
    db.session.commit()


@pytest.fixture
def sample_tournament(organizer):
    """An approved Swiss tournament owned by ``organizer``."""
    return add_tournament(organizer)


@pytest.fixture
def running_tournament(sample_tournament, sample_players):
    """Approved tournament with eight registered players, round 1 not yet paired."""
    register_all(sample_tournament, sample_players)
    return sample_tournament
