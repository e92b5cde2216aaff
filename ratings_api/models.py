from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

from .constants import DEFAULT_RATING, MatchResult, PairingSystem, ProfileStatus

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value else None


class Profile(db.Model):
    """Auth user profile; ``id`` is the auth service's user id."""
    __tablename__ = 'profiles'

    id = db.Column(db.String(64), primary_key=True)
    full_name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(200), nullable=True)
    role = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=ProfileStatus.PENDING.value)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'role': self.role,
            'status': self.status,
        }

    def to_summary(self):
        return {'id': self.id, 'full_name': self.full_name}


class State(db.Model):
    __tablename__ = 'states'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)

    cities = db.relationship('City', back_populates='state', cascade='all, delete-orphan')

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class City(db.Model):
    __tablename__ = 'cities'

    id = db.Column(db.Integer, primary_key=True)
    state_id = db.Column(db.Integer, db.ForeignKey('states.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)

    state = db.relationship('State', back_populates='cities')

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Player(db.Model):
    __tablename__ = 'players'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False, index=True)
    gender = db.Column(db.String(20), nullable=True)
    birth_date = db.Column(db.Date, nullable=True)
    email = db.Column(db.String(200), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    fide_id = db.Column(db.String(20), nullable=True, unique=True)
    state_id = db.Column(db.Integer, db.ForeignKey('states.id'), nullable=True)
    city_id = db.Column(db.Integer, db.ForeignKey('cities.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    state = db.relationship('State')
    city = db.relationship('City')
    ratings = db.relationship('Rating', back_populates='player', cascade='all, delete-orphan',
                              order_by='Rating.format')
    titles = db.relationship('PlayerTitle', back_populates='player', cascade='all, delete-orphan')
    rating_history = db.relationship('RatingHistory', back_populates='player',
                                     order_by='desc(RatingHistory.id)')

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def rating_for(self, format_name: str):
        for rating in self.ratings:
            if rating.format == format_name:
                return rating
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'gender': self.gender,
            'birth_date': _iso(self.birth_date),
            'fide_id': self.fide_id,
            'state': self.state.to_dict() if self.state else None,
            'ratings': [r.to_summary() for r in self.ratings],
        }

    def to_detail(self):
        data = self.to_dict()
        data.update({
            'email': self.email,
            'phone': self.phone,
            'city': self.city.to_dict() if self.city else None,
            'ratings': [r.to_dict() for r in self.ratings],
            'titles': [t.to_dict() for t in self.titles],
            'rating_history': [h.to_dict() for h in self.rating_history],
            'created_at': _iso(self.created_at),
        })
        return data


class Rating(db.Model):
    __tablename__ = 'ratings'

    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('players.id'), nullable=False, index=True)
    format = db.Column(db.String(20), nullable=False)
    rating = db.Column(db.Integer, nullable=False, default=DEFAULT_RATING)
    games_played = db.Column(db.Integer, nullable=False, default=0)
    is_established = db.Column(db.Boolean, nullable=False, default=False)
    bonus_applied = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    player = db.relationship('Player', back_populates='ratings')

    __table_args__ = (
        db.UniqueConstraint('player_id', 'format', name='unique_rating_per_format'),
    )

    def to_summary(self):
        return {
            'format': self.format,
            'rating': self.rating,
            'is_established': self.is_established,
        }

    def to_dict(self):
        data = self.to_summary()
        data.update({
            'games_played': self.games_played,
            'bonus_applied': self.bonus_applied,
        })
        return data


class RatingHistory(db.Model):
    """Append-only log of rating changes, one row per player per rated match."""
    __tablename__ = 'rating_history'

    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('players.id'), nullable=False, index=True)
    format = db.Column(db.String(20), nullable=False)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    match_id = db.Column(db.Integer, db.ForeignKey('matches.id'), nullable=False)
    old_rating = db.Column(db.Integer, nullable=False)
    new_rating = db.Column(db.Integer, nullable=False)
    delta = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    player = db.relationship('Player', back_populates='rating_history')

    __table_args__ = (
        db.UniqueConstraint('match_id', 'player_id', name='unique_history_per_match'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'format': self.format,
            'tournament_id': self.tournament_id,
            'match_id': self.match_id,
            'old_rating': self.old_rating,
            'new_rating': self.new_rating,
            'delta': self.delta,
            'created_at': _iso(self.created_at),
        }


class Title(db.Model):
    __tablename__ = 'titles'

    code = db.Column(db.String(10), primary_key=True)
    name = db.Column(db.String(100), nullable=False)

    def to_dict(self):
        return {'code': self.code, 'name': self.name}


class PlayerTitle(db.Model):
    __tablename__ = 'player_titles'

    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('players.id'), nullable=False)
    title_code = db.Column(db.String(10), db.ForeignKey('titles.code'), nullable=False)
    verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    player = db.relationship('Player', back_populates='titles')
    title = db.relationship('Title')

    __table_args__ = (
        db.UniqueConstraint('player_id', 'title_code', name='unique_title_per_player'),
    )

    def to_dict(self):
        return {
            'title_code': self.title_code,
            'verified': self.verified,
            'title': self.title.to_dict() if self.title else None,
        }


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    format = db.Column(db.String(20), nullable=False)
    pairing_system = db.Column(db.String(20), nullable=False, default=PairingSystem.SWISS.value)
    venue = db.Column(db.String(200), nullable=True)
    state_id = db.Column(db.Integer, db.ForeignKey('states.id'), nullable=True)
    city_id = db.Column(db.Integer, db.ForeignKey('cities.id'), nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    rounds = db.Column(db.Integer, nullable=False)
    organizer_id = db.Column(db.String(64), db.ForeignKey('profiles.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='CREATED')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organizer = db.relationship('Profile')
    state = db.relationship('State')
    city = db.relationship('City')
    registrations = db.relationship('TournamentPlayer', back_populates='tournament',
                                    cascade='all, delete-orphan')
    round_list = db.relationship('Round', back_populates='tournament', cascade='all, delete-orphan',
                                 order_by='Round.round_number')

    @property
    def players(self):
        return [r.player for r in self.registrations]

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'format': self.format,
            'pairing_system': self.pairing_system,
            'venue': self.venue,
            'state': self.state.to_dict() if self.state else None,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'rounds': self.rounds,
            'organizer': self.organizer.to_summary() if self.organizer else None,
            'status': self.status,
            'player_count': len(self.registrations),
            'created_at': _iso(self.created_at),
        }

    def to_detail(self):
        data = self.to_dict()
        data.update({
            'city': self.city.to_dict() if self.city else None,
            'players': [
                {
                    'id': p.id,
                    'first_name': p.first_name,
                    'last_name': p.last_name,
                    'ratings': [r.to_summary() for r in p.ratings],
                }
                for p in self.players
            ],
            'round_list': [r.to_dict() for r in self.round_list],
        })
        return data


class TournamentPlayer(db.Model):
    __tablename__ = 'tournament_players'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('players.id'), nullable=False)
    registered_at = db.Column(db.DateTime, default=datetime.utcnow)

    tournament = db.relationship('Tournament', back_populates='registrations')
    player = db.relationship('Player')

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'player_id', name='unique_player_per_tournament'),
    )


class Round(db.Model):
    __tablename__ = 'rounds'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    round_number = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.DateTime, nullable=True)
    end_time = db.Column(db.DateTime, nullable=True)

    tournament = db.relationship('Tournament', back_populates='round_list')
    matches = db.relationship('Match', back_populates='round', cascade='all, delete-orphan',
                              order_by='Match.board')

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'round_number', name='unique_round_per_tournament'),
    )

    @property
    def is_complete(self) -> bool:
        return all(m.result != MatchResult.PENDING.value for m in self.matches)

    def to_dict(self):
        return {
            'id': self.id,
            'round_number': self.round_number,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'matches': [m.to_dict() for m in self.matches],
        }


class Match(db.Model):
    __tablename__ = 'matches'

    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('rounds.id'), nullable=False, index=True)
    white_player_id = db.Column(db.Integer, db.ForeignKey('players.id'), nullable=False)
    black_player_id = db.Column(db.Integer, db.ForeignKey('players.id'), nullable=True)  # None = bye
    board = db.Column(db.Integer, nullable=False)
    result = db.Column(db.String(20), nullable=False, default=MatchResult.PENDING.value)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    round = db.relationship('Round', back_populates='matches')
    white_player = db.relationship('Player', foreign_keys=[white_player_id])
    black_player = db.relationship('Player', foreign_keys=[black_player_id])

    @property
    def is_bye(self) -> bool:
        return self.black_player_id is None

    def to_dict(self):
        return {
            'id': self.id,
            'round_number': self.round.round_number if self.round else None,
            'board': self.board,
            'white_player_id': self.white_player_id,
            'black_player_id': self.black_player_id,
            'result': self.result,
        }
