"""
Unit tests for TournamentRegistry class.
Tests: create_tournament, list_tournaments, approve_tournament, transfer_tournament,
       delete_tournament, register_player, list_pending
"""
import json
import logging
from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import MultiDict

from conftest import add_player, add_tournament, as_caller, register_all
from ratings_api.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from ratings_api.models import db, Tournament, TournamentPlayer
from ratings_api.tournament_registry import TournamentRegistry


@pytest.fixture
def registry(app):
    return TournamentRegistry()


def tournament_fields(**overrides):
    fields = {
        'name': 'Copa Primavera',
        'format': 'RAPID',
        'start_date': '2026-04-10',
        'end_date': '2026-04-12',
        'rounds': 5,
    }
    fields.update(overrides)
    return fields


class TestCreateTournament:
    """Tests for create_tournament method."""

    def test_organizer_submission_needs_approval(self, registry, organizer):
        tournament = registry.create_tournament(tournament_fields(), as_caller(organizer))

        assert tournament.status == 'CREATED'
        assert tournament.organizer_id == organizer.id
        assert tournament.format == 'RAPID'
        assert tournament.rounds == 5
        assert tournament.pairing_system == 'SWISS'

    def test_officer_publishes_directly(self, registry, officer):
        tournament = registry.create_tournament(tournament_fields(), as_caller(officer))
        assert tournament.status == 'APPROVED'

    def test_admin_publishes_directly(self, registry, admin):
        tournament = registry.create_tournament(tournament_fields(), as_caller(admin))
        assert tournament.status == 'APPROVED'

    def test_round_robin_pairing(self, registry, organizer):
        tournament = registry.create_tournament(
            tournament_fields(pairing_system='round_robin'), as_caller(organizer)
        )
        assert tournament.pairing_system == 'ROUND_ROBIN'

    @pytest.mark.parametrize('missing', ['name', 'format', 'start_date', 'end_date', 'rounds'])
    def test_required_fields(self, registry, organizer, missing):
        fields = tournament_fields()
        del fields[missing]
        with pytest.raises(ValidationError):
            registry.create_tournament(fields, as_caller(organizer))
        assert Tournament.query.count() == 0

    def test_end_before_start(self, registry, organizer):
        with pytest.raises(ValidationError):
            registry.create_tournament(
                tournament_fields(start_date='2026-04-12', end_date='2026-04-10'), as_caller(organizer)
            )

    def test_unknown_format(self, registry, organizer):
        with pytest.raises(ValidationError):
            registry.create_tournament(tournament_fields(format='BULLET'), as_caller(organizer))

    def test_zero_rounds(self, registry, organizer):
        with pytest.raises(ValidationError):
            registry.create_tournament(tournament_fields(rounds=0), as_caller(organizer))


class TestGetTournament:
    """Tests for get_tournament and get_managed_tournament."""

    def test_missing(self, registry, db_session):
        with pytest.raises(NotFound):
            registry.get_tournament(999)

    def test_owner_can_manage(self, registry, sample_tournament, organizer):
        assert registry.get_managed_tournament(sample_tournament.id, as_caller(organizer)) is sample_tournament

    def test_officer_can_manage_any(self, registry, sample_tournament, officer):
        assert registry.get_managed_tournament(sample_tournament.id, as_caller(officer)) is sample_tournament

    def test_other_organizer_forbidden(self, registry, sample_tournament, other_organizer):
        with pytest.raises(Forbidden):
            registry.get_managed_tournament(sample_tournament.id, as_caller(other_organizer))


class TestListTournaments:
    """Tests for list_tournaments."""

    @pytest.fixture
    def season(self, organizer):
        return [
            add_tournament(organizer, name='January Open', start_date=date(2026, 1, 15), format_name='BLITZ'),
            add_tournament(organizer, name='March Open', start_date=date(2026, 3, 15), status='CREATED'),
            add_tournament(organizer, name='June Open', start_date=date(2026, 6, 15)),
        ]

    def test_newest_first_by_default(self, registry, season):
        tournaments, total = registry.list_tournaments()
        assert total == 3
        assert [t.name for t in tournaments] == ['June Open', 'March Open', 'January Open']

    def test_ascending(self, registry, season):
        tournaments, _ = registry.list_tournaments(descending=False)
        assert [t.name for t in tournaments] == ['January Open', 'March Open', 'June Open']

    def test_filters(self, registry, season):
        tournaments, total = registry.list_tournaments(format_name='BLITZ')
        assert total == 1
        assert tournaments[0].name == 'January Open'

        _, total = registry.list_tournaments(status='CREATED')
        assert total == 1

        tournaments, total = registry.list_tournaments(from_date=date(2026, 2, 1), to_date=date(2026, 5, 1))
        assert [t.name for t in tournaments] == ['March Open']

    def test_pagination(self, registry, season):
        tournaments, total = registry.list_tournaments(page=2, limit=2)
        assert total == 3
        assert [t.name for t in tournaments] == ['January Open']

    def test_parse_filters(self, registry):
        filters = registry.parse_filters(MultiDict({'status': 'approved', 'sort': 'ASC', 'from_date': '2026-01-01'}))
        assert filters['status'] == 'APPROVED'
        assert filters['descending'] is False
        assert filters['from_date'] == date(2026, 1, 1)

    def test_parse_filters_bad_sort(self, registry):
        with pytest.raises(ValidationError):
            registry.parse_filters(MultiDict({'sort': 'sideways'}))

    def test_parse_filters_bad_status(self, registry):
        with pytest.raises(ValidationError):
            registry.parse_filters(MultiDict({'status': 'ARCHIVED'}))


class TestApproval:
    """Tests for list_pending and approve_tournament."""

    def test_list_pending(self, registry, organizer):
        pending = add_tournament(organizer, status='CREATED', name='Pending Cup')
        add_tournament(organizer, status='APPROVED')

        assert [t.id for t in registry.list_pending()] == [pending.id]

    def test_approve(self, registry, organizer, officer):
        tournament = add_tournament(organizer, status='CREATED')
        registry.approve_tournament(tournament.id, as_caller(officer))

        assert db.session.get(Tournament, tournament.id).status == 'APPROVED'

    def test_approve_logs_after_commit(self, registry, organizer, officer, caplog):
        tournament = add_tournament(organizer, status='CREATED')

        with caplog.at_level(logging.INFO, logger='ratings_api.events'):
            registry.approve_tournament(tournament.id, as_caller(officer))

        types = [json.loads(r.getMessage())['type'] for r in caplog.records if r.name == 'ratings_api.events']
        assert types == ['state.changed', 'tournament.approved']

    def test_failed_approval_logs_nothing(self, registry, organizer, officer, mocker, caplog):
        tournament = add_tournament(organizer, status='CREATED')
        mocker.patch.object(db.session, 'commit', side_effect=SQLAlchemyError('read-only database'))

        with caplog.at_level(logging.INFO, logger='ratings_api.events'):
            with pytest.raises(SQLAlchemyError):
                registry.approve_tournament(tournament.id, as_caller(officer))

        assert not [r for r in caplog.records if r.name == 'ratings_api.events']

    def test_approve_twice(self, registry, sample_tournament, officer):
        with pytest.raises(InvalidState):
            registry.approve_tournament(sample_tournament.id, as_caller(officer))


class TestTransfer:
    """Tests for transfer_tournament."""

    def test_transfer(self, registry, sample_tournament, other_organizer, admin):
        registry.transfer_tournament(sample_tournament.id, other_organizer.id, as_caller(admin))
        assert sample_tournament.organizer_id == other_organizer.id

    def test_transfer_to_pending_organizer(self, registry, sample_tournament, pending_organizer, admin):
        with pytest.raises(ValidationError):
            registry.transfer_tournament(sample_tournament.id, pending_organizer.id, as_caller(admin))

    def test_transfer_to_unknown_profile(self, registry, sample_tournament, admin):
        with pytest.raises(NotFound):
            registry.transfer_tournament(sample_tournament.id, 'nobody', as_caller(admin))

    def test_completed_tournament_cannot_move(self, registry, organizer, other_organizer, admin):
        tournament = add_tournament(organizer, status='COMPLETED')
        with pytest.raises(InvalidState):
            registry.transfer_tournament(tournament.id, other_organizer.id, as_caller(admin))


class TestDeleteTournament:
    """Tests for delete_tournament method."""

    def test_delete_removes_registrations(self, registry, running_tournament, organizer):
        tournament_id = running_tournament.id
        registry.delete_tournament(tournament_id, as_caller(organizer))

        assert db.session.get(Tournament, tournament_id) is None
        assert TournamentPlayer.query.filter_by(tournament_id=tournament_id).count() == 0

    def test_cannot_delete_started(self, registry, organizer):
        tournament = add_tournament(organizer, status='IN_PROGRESS')
        with pytest.raises(InvalidState):
            registry.delete_tournament(tournament.id, as_caller(organizer))

    def test_other_organizer_cannot_delete(self, registry, sample_tournament, other_organizer):
        with pytest.raises(Forbidden):
            registry.delete_tournament(sample_tournament.id, as_caller(other_organizer))


class TestRegisterPlayer:
    """Tests for register_player."""

    def test_register(self, registry, sample_tournament, organizer, db_session):
        player = add_player('Ana', 'Lopez')
        registration = registry.register_player(sample_tournament.id, player.id, as_caller(organizer))

        assert registration.player_id == player.id
        assert [p.id for p in sample_tournament.players] == [player.id]

    def test_register_twice_conflicts(self, registry, sample_tournament, organizer, db_session):
        player = add_player('Ana', 'Lopez')
        registry.register_player(sample_tournament.id, player.id, as_caller(organizer))

        with pytest.raises(Conflict):
            registry.register_player(sample_tournament.id, player.id, as_caller(organizer))

        assert TournamentPlayer.query.filter_by(tournament_id=sample_tournament.id).count() == 1

    def test_unknown_player(self, registry, sample_tournament, organizer):
        with pytest.raises(NotFound):
            registry.register_player(sample_tournament.id, 4242, as_caller(organizer))

    def test_missing_player_id(self, registry, sample_tournament, organizer):
        with pytest.raises(ValidationError):
            registry.register_player(sample_tournament.id, None, as_caller(organizer))

    def test_closed_after_start(self, registry, organizer, db_session):
        tournament = add_tournament(organizer, status='IN_PROGRESS')
        register_all(tournament, [add_player('Ana', 'Lopez'), add_player('Beto', 'Ruiz')])
        with pytest.raises(InvalidState):
            registry.register_player(tournament.id, add_player('Carla', 'Diaz').id, as_caller(organizer))
