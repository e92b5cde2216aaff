import logging
from typing import List, Tuple

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shared.events import Event, EventType, emit
from .constants import FORMATS
from .errors import Conflict, InternalError, NotFound, ValidationError
from .models import db, City, Player, PlayerTitle, Rating, State, Title
from .validation import clean_text, escape_like, parse_bool, parse_choice, parse_date, parse_int

logger = logging.getLogger(__name__)


class PlayerRegistry:
    """
    Player records and their per-format ratings:
    - Search players by name, state and rating range
    - Player detail with ratings, titles and rating history
    - Create players together with their default ratings
    - Grant titles
    """

    def list_players(
        self,
        name: str = None,
        state_id: int = None,
        format_name: str = None,
        min_rating: int = None,
        max_rating: int = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Player], int]:
        """List players with optional filtering. Returns (page_of_players, total)."""
        query = Player.query

        if name:
            pattern = f"%{escape_like(name)}%"
            query = query.filter(or_(
                Player.first_name.ilike(pattern, escape='\\'),
                Player.last_name.ilike(pattern, escape='\\')
            ))

        if state_id is not None:
            query = query.filter(Player.state_id == state_id)

        # A player only matches a rating filter through an existing rating row
        if format_name or min_rating is not None or max_rating is not None:
            query = query.join(Rating, Rating.player_id == Player.id)
            if format_name:
                query = query.filter(Rating.format == format_name)
            if min_rating is not None:
                query = query.filter(Rating.rating >= min_rating)
            if max_rating is not None:
                query = query.filter(Rating.rating <= max_rating)
            query = query.distinct()

        total = query.count()
        players = (
            query.order_by(Player.last_name, Player.first_name, Player.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return players, total

    def get_player(self, player_id: int) -> Player:
        player = db.session.get(Player, player_id)
        if not player:
            raise NotFound('Player not found')
        return player

    def _validate_fields(self, fields: dict) -> dict:
        first_name = clean_text(fields.get('first_name'))
        last_name = clean_text(fields.get('last_name'))
        if not first_name or not last_name:
            raise ValidationError('First name and last name are required')

        state_id = parse_int(fields.get('state_id'), 'state_id')
        city_id = parse_int(fields.get('city_id'), 'city_id')
        if state_id is not None and not db.session.get(State, state_id):
            raise ValidationError(f"Unknown state_id {state_id}")
        if city_id is not None:
            city = db.session.get(City, city_id)
            if not city:
                raise ValidationError(f"Unknown city_id {city_id}")
            if state_id is not None and city.state_id != state_id:
                raise ValidationError('city_id does not belong to state_id')

        return {
            'first_name': first_name,
            'last_name': last_name,
            'gender': clean_text(fields.get('gender')),
            'birth_date': parse_date(fields.get('birth_date'), 'birth_date'),
            'email': clean_text(fields.get('email')),
            'phone': clean_text(fields.get('phone')),
            'fide_id': clean_text(fields.get('fide_id')),
            'state_id': state_id,
            'city_id': city_id,
        }

    def _initial_ratings(self, player: Player) -> List[Rating]:
        default_rating = current_app.config['DEFAULT_RATING']
        return [
            Rating(
                player_id=player.id,
                format=format_name,
                rating=default_rating,
                games_played=0,
                is_established=False,
                bonus_applied=False
            )
            for format_name in FORMATS
        ]

    def create_player(self, fields: dict, created_by: str = None) -> Player:
        """
        Create a player and one default rating per format.

        Both inserts run in one transaction: if the ratings cannot be written
        the player row is rolled back too.
        """
        values = self._validate_fields(fields)

        if values['fide_id'] and Player.query.filter_by(fide_id=values['fide_id']).first():
            raise Conflict(f"A player with fide_id {values['fide_id']} already exists")

        try:
            player = Player(**values)
            db.session.add(player)
            db.session.flush()

            db.session.add_all(self._initial_ratings(player))
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            logger.warning(f"Player creation conflict: {e}")
            raise Conflict('Player could not be created because it conflicts with an existing record')
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception(f"Failed to create player: {e}")
            raise InternalError('Failed to create player')

        emit(Event(EventType.PLAYER_CREATED, str(player.id), data={'created_by': created_by}))
        logger.info(f"Created player {player.id} ({player.full_name})")
        return player

    def grant_title(self, player_id: int, title_code: str, verified: bool = False) -> PlayerTitle:
        """Grant a title to a player; granting it again updates the verified flag."""
        player = self.get_player(player_id)

        code = clean_text(title_code)
        if not code:
            raise ValidationError('title_code is required')
        title = db.session.get(Title, code.upper())
        if not title:
            raise NotFound(f"Title {code} not found")

        verified = bool(parse_bool(verified, 'verified'))

        grant = PlayerTitle.query.filter_by(player_id=player.id, title_code=title.code).first()
        if grant:
            grant.verified = verified
        else:
            grant = PlayerTitle(player_id=player.id, title_code=title.code, verified=verified)
            db.session.add(grant)
        db.session.commit()

        emit(Event(EventType.TITLE_GRANTED, str(player.id), data={'title': title.code, 'verified': grant.verified}))
        return grant

    def parse_filters(self, args) -> dict:
        """Map query-string parameters onto ``list_players`` keyword arguments."""
        min_rating = parse_int(args.get('minRating'), 'minRating')
        max_rating = parse_int(args.get('maxRating'), 'maxRating')
        if min_rating is not None and max_rating is not None and min_rating > max_rating:
            raise ValidationError('minRating cannot be greater than maxRating')
        return {
            'name': clean_text(args.get('name')),
            'state_id': parse_int(args.get('state'), 'state'),
            'format_name': parse_choice(args.get('format'), 'format', FORMATS),
            'min_rating': min_rating,
            'max_rating': max_rating,
        }
