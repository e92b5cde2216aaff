import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from shared.state_machine import TournamentStateMachine, TournamentState, TransitionError
from shared.events import Event, EventType, emit, emit_all, state_changed_event
from .auth import Caller, can_manage
from .constants import FORMATS, PRIVILEGED_ROLES, PairingSystem, ProfileStatus
from .errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from .models import db, City, Player, Profile, State, Tournament, TournamentPlayer
from .validation import clean_text, parse_choice, parse_date, parse_int

logger = logging.getLogger(__name__)

PAIRING_SYSTEMS = [p.value for p in PairingSystem]
STATUSES = [s.value for s in TournamentState]


def transition(tournament: Tournament, action: str, guard_context: dict = None) -> Optional[Event]:
    """
    Apply a lifecycle action to the tournament row; does not commit.

    Returns the state change event for the caller to emit once its
    transaction commits, or None when the state did not change.
    """
    try:
        sm = TournamentStateMachine.from_state_string(tournament.status)
        old_state = sm.state.value
        new_state = sm.transition(action, guard_context)
    except TransitionError as e:
        raise InvalidState(str(e))

    tournament.status = new_state.value
    if old_state == new_state.value:
        return None
    return state_changed_event(tournament.id, old_state, new_state.value)


class TournamentRegistry:
    """
    Manages tournament lifecycle:
    - Create/list/get/delete tournament records
    - Approval workflow and ownership transfer
    - Player registration
    """

    def create_tournament(self, fields: dict, caller: Caller) -> Tournament:
        """Create a tournament owned by the caller.

        Officers and admins publish directly (APPROVED); organizers submit
        for approval (CREATED).
        """
        name = clean_text(fields.get('name'))
        format_name = parse_choice(fields.get('format'), 'format', FORMATS)
        start_date = parse_date(fields.get('start_date'), 'start_date')
        end_date = parse_date(fields.get('end_date'), 'end_date')
        rounds = parse_int(fields.get('rounds'), 'rounds', minimum=1)

        if not name or not format_name or not start_date or not end_date or not rounds:
            raise ValidationError('Missing required tournament fields')
        if end_date < start_date:
            raise ValidationError('end_date cannot be before start_date')

        pairing_system = parse_choice(
            fields.get('pairing_system'), 'pairing_system', PAIRING_SYSTEMS
        ) or PairingSystem.SWISS.value

        state_id = parse_int(fields.get('state_id'), 'state_id')
        city_id = parse_int(fields.get('city_id'), 'city_id')
        if state_id is not None and not db.session.get(State, state_id):
            raise ValidationError(f"Unknown state_id {state_id}")
        if city_id is not None and not db.session.get(City, city_id):
            raise ValidationError(f"Unknown city_id {city_id}")

        status = (TournamentState.APPROVED if caller.role in PRIVILEGED_ROLES
                  else TournamentState.CREATED)

        tournament = Tournament(
            name=name,
            description=clean_text(fields.get('description')),
            format=format_name,
            pairing_system=pairing_system,
            venue=clean_text(fields.get('venue')),
            state_id=state_id,
            city_id=city_id,
            start_date=start_date,
            end_date=end_date,
            rounds=rounds,
            organizer_id=caller.user_id,
            status=status.value
        )

        db.session.add(tournament)
        db.session.commit()

        emit(Event(EventType.TOURNAMENT_CREATED, str(tournament.id),
                   data={'organizer_id': caller.user_id, 'status': tournament.status}))
        logger.info(f"Tournament {tournament.id} created by {caller.user_id} ({caller.role}) as {tournament.status}")
        return tournament

    def get_tournament(self, tournament_id: int) -> Tournament:
        tournament = db.session.get(Tournament, tournament_id)
        if not tournament:
            raise NotFound('Tournament not found')
        return tournament

    def get_managed_tournament(self, tournament_id: int, caller: Caller) -> Tournament:
        """Get a tournament the caller is allowed to modify."""
        tournament = self.get_tournament(tournament_id)
        if not can_manage(caller, tournament.organizer_id):
            raise Forbidden('Only the tournament organizer can modify this tournament')
        return tournament

    def list_tournaments(
        self,
        state_id: int = None,
        format_name: str = None,
        status: str = None,
        from_date=None,
        to_date=None,
        descending: bool = True,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Tournament], int]:
        """List tournaments with optional filtering. Returns (page_of_tournaments, total)."""
        query = Tournament.query

        if state_id is not None:
            query = query.filter_by(state_id=state_id)
        if format_name:
            query = query.filter_by(format=format_name)
        if status:
            query = query.filter_by(status=status)
        if from_date:
            query = query.filter(Tournament.start_date >= from_date)
        if to_date:
            query = query.filter(Tournament.start_date <= to_date)

        total = query.count()

        if descending:
            query = query.order_by(Tournament.start_date.desc(), Tournament.id.desc())
        else:
            query = query.order_by(Tournament.start_date.asc(), Tournament.id.asc())

        tournaments = query.offset((page - 1) * limit).limit(limit).all()
        return tournaments, total

    def parse_filters(self, args) -> dict:
        """Map query-string parameters onto ``list_tournaments`` keyword arguments."""
        from_date = parse_date(args.get('from_date'), 'from_date')
        to_date = parse_date(args.get('to_date'), 'to_date')
        if from_date and to_date and from_date > to_date:
            raise ValidationError('from_date cannot be after to_date')

        sort = (args.get('sort') or 'desc').lower()
        if sort not in ('asc', 'desc'):
            raise ValidationError('sort must be asc or desc')

        return {
            'state_id': parse_int(args.get('state'), 'state'),
            'format_name': parse_choice(args.get('format'), 'format', FORMATS),
            'status': parse_choice(args.get('status'), 'status', STATUSES),
            'from_date': from_date,
            'to_date': to_date,
            'descending': sort == 'desc',
        }

    def list_pending(self) -> List[Tournament]:
        """Organizer submissions waiting for approval, oldest first."""
        return (
            Tournament.query
            .filter_by(status=TournamentState.CREATED.value)
            .order_by(Tournament.created_at.asc(), Tournament.id.asc())
            .all()
        )

    def approve_tournament(self, tournament_id: int, caller: Caller) -> Tournament:
        tournament = self.get_tournament(tournament_id)
        changed = transition(tournament, 'approve')
        db.session.commit()

        emit_all([
            changed,
            Event(EventType.TOURNAMENT_APPROVED, str(tournament.id), data={'approved_by': caller.user_id}),
        ])
        logger.info(f"Tournament {tournament.id} approved by {caller.user_id}")
        return tournament

    def transfer_tournament(self, tournament_id: int, new_organizer_id: str, caller: Caller) -> Tournament:
        """Hand a tournament over to another approved organizer, officer or admin."""
        tournament = self.get_tournament(tournament_id)

        sm = TournamentStateMachine.from_state_string(tournament.status)
        if not sm.can_perform('transfer'):
            raise InvalidState(f"Cannot transfer tournament in {tournament.status} state")

        new_organizer_id = clean_text(new_organizer_id)
        if not new_organizer_id:
            raise ValidationError('organizer_id is required')
        profile = db.session.get(Profile, new_organizer_id)
        if not profile:
            raise NotFound('Organizer not found')
        if profile.status != ProfileStatus.APPROVED.value:
            raise ValidationError('New organizer must have an approved account')

        old_organizer_id = tournament.organizer_id
        tournament.organizer_id = profile.id
        db.session.commit()

        emit(Event(EventType.TOURNAMENT_TRANSFERRED, str(tournament.id), data={
            'from': old_organizer_id,
            'to': profile.id,
            'by': caller.user_id
        }))
        return tournament

    def delete_tournament(self, tournament_id: int, caller: Caller) -> None:
        """Delete a tournament that has not started; rounds and registrations go with it."""
        tournament = self.get_managed_tournament(tournament_id, caller)

        sm = TournamentStateMachine.from_state_string(tournament.status)
        if not sm.can_perform('delete'):
            raise InvalidState(f"Cannot delete tournament in {tournament.status} state")

        db.session.delete(tournament)
        db.session.commit()
        emit(Event(EventType.TOURNAMENT_DELETED, str(tournament_id), data={'by': caller.user_id}))

    def register_player(self, tournament_id: int, player_id, caller: Caller) -> TournamentPlayer:
        """Register a player; registering the same player twice is a Conflict."""
        tournament = self.get_managed_tournament(tournament_id, caller)

        sm = TournamentStateMachine.from_state_string(tournament.status)
        if not sm.can_perform('register_player'):
            raise InvalidState(f"Cannot register players in {tournament.status} state")

        player_id = parse_int(player_id, 'player_id')
        if player_id is None:
            raise ValidationError('player_id is required')
        player = db.session.get(Player, player_id)
        if not player:
            raise NotFound('Player not found')

        existing = TournamentPlayer.query.filter_by(tournament_id=tournament.id, player_id=player.id).first()
        if existing:
            raise Conflict('Player is already registered for this tournament')

        registration = TournamentPlayer(tournament_id=tournament.id, player_id=player.id)
        db.session.add(registration)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict('Player is already registered for this tournament')

        emit(Event(EventType.PLAYER_REGISTERED, str(tournament.id), data={'player_id': player.id}))
        return registration

