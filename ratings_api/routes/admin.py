from flask import Blueprint, request, current_app, g

from ..auth import approve_organizer as approve_organizer_account, require_capability
from ..responses import success

bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@bp.route('/tournaments/pending', methods=['GET'])
@require_capability('tournament.list_pending')
def list_pending_tournaments():
    """Organizer submissions waiting for approval."""
    tournaments = current_app.tournaments.list_pending()
    return success([t.to_dict() for t in tournaments])


@bp.route('/tournaments/<int:tournament_id>/approve', methods=['POST'])
@require_capability('tournament.approve')
def approve_tournament(tournament_id: int):
    tournament = current_app.tournaments.approve_tournament(tournament_id, g.caller)
    return success(tournament.to_dict(), 'Tournament approved')


@bp.route('/tournaments/<int:tournament_id>/transfer', methods=['POST'])
@require_capability('tournament.transfer')
def transfer_tournament(tournament_id: int):
    """Move a tournament to another organizer."""
    data = request.get_json(silent=True) or {}
    tournament = current_app.tournaments.transfer_tournament(
        tournament_id, data.get('organizer_id'), g.caller
    )
    return success(tournament.to_dict(), 'Tournament transferred')


@bp.route('/organizers/<user_id>/approve', methods=['POST'])
@require_capability('organizer.approve')
def approve_organizer(user_id: str):
    profile = approve_organizer_account(user_id, g.caller)
    return success(profile.to_dict(), 'Organizer approved')


@bp.route('/players/<int:player_id>/titles', methods=['POST'])
@require_capability('title.grant')
def grant_title(player_id: int):
    data = request.get_json(silent=True) or {}
    grant = current_app.players.grant_title(player_id, data.get('title_code'), data.get('verified', False))
    return success(grant.to_dict(), 'Title granted', 201)
