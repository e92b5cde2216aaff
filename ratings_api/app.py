import logging
import os
from datetime import datetime

from flask import Flask, request, jsonify, g

from .auth import TokenVerifier, require_capability
from .config import config
from .errors import register_error_handlers
from .match_engine import MatchEngine
from .models import db
from .player_registry import PlayerRegistry
from .rating_engine import RatingEngine
from .responses import paginated, pagination_args, success
from .tournament_registry import TournamentRegistry


def create_app(config_name: str = None) -> Flask:
    """Application factory for the ratings API."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Initialize extensions
    db.init_app(app)

    # Create tables
    with app.app_context():
        db.create_all()

    # Store services on app for access in routes
    app.players = PlayerRegistry()
    app.tournaments = TournamentRegistry()
    app.rating_engine = RatingEngine()
    app.token_verifier = TokenVerifier(
        secret=app.config['SUPABASE_JWT_SECRET'],
        audience=app.config['JWT_AUDIENCE'],
        algorithms=app.config['JWT_ALGORITHMS']
    )

    register_error_handlers(app)
    register_api_routes(app)

    from .routes import admin
    app.register_blueprint(admin.bp)

    app.logger.info(f"Ratings API configured ({config_name})")
    return app


def register_api_routes(app: Flask):
    """Register API routes."""

    # ==================== Players ====================

    @app.route('/api/players', methods=['GET'])
    def api_list_players():
        """List players with optional name/state/rating filters."""
        page, limit = pagination_args(request.args)
        filters = app.players.parse_filters(request.args)

        players, total = app.players.list_players(page=page, limit=limit, **filters)
        return paginated([p.to_dict() for p in players], page, limit, total)

    @app.route('/api/players/<int:player_id>', methods=['GET'])
    def api_get_player(player_id: int):
        """Player detail with ratings, titles and rating history."""
        player = app.players.get_player(player_id)
        return success(player.to_detail())

    @app.route('/api/players', methods=['POST'])
    @require_capability('player.create')
    def api_create_player():
        """Create a player with default ratings in every format."""
        data = request.get_json(silent=True) or {}
        player = app.players.create_player(data, created_by=g.caller.user_id)
        return success(player.to_detail(), 'Player created successfully', 201)

    # ==================== Tournaments ====================

    @app.route('/api/tournaments', methods=['GET'])
    def api_list_tournaments():
        """List tournaments with optional filtering, newest first by default."""
        page, limit = pagination_args(request.args)
        filters = app.tournaments.parse_filters(request.args)

        tournaments, total = app.tournaments.list_tournaments(page=page, limit=limit, **filters)
        return paginated([t.to_dict() for t in tournaments], page, limit, total)

    @app.route('/api/tournaments/<int:tournament_id>', methods=['GET'])
    def api_get_tournament(tournament_id: int):
        """Tournament detail with players and rounds."""
        tournament = app.tournaments.get_tournament(tournament_id)
        return success(tournament.to_detail())

    @app.route('/api/tournaments', methods=['POST'])
    @require_capability('tournament.create')
    def api_create_tournament():
        """Create a new tournament."""
        data = request.get_json(silent=True) or {}
        tournament = app.tournaments.create_tournament(data, g.caller)
        return success(tournament.to_dict(), 'Tournament created successfully', 201)

    @app.route('/api/tournaments/<int:tournament_id>', methods=['DELETE'])
    @require_capability('tournament.delete')
    def api_delete_tournament(tournament_id: int):
        """Delete a tournament that has not started."""
        app.tournaments.delete_tournament(tournament_id, g.caller)
        return success(message='Tournament deleted')

    @app.route('/api/tournaments/<int:tournament_id>/standings', methods=['GET'])
    def api_tournament_standings(tournament_id: int):
        """Current standings."""
        engine = MatchEngine(tournament_id, app.rating_engine)
        return success(engine.get_standings())

    # ==================== Registration & Rounds ====================

    @app.route('/api/tournaments/<int:tournament_id>/players', methods=['POST'])
    @require_capability('tournament.register_player')
    def api_register_player(tournament_id: int):
        """Register a player for a tournament."""
        data = request.get_json(silent=True) or {}
        registration = app.tournaments.register_player(tournament_id, data.get('player_id'), g.caller)
        return success({
            'tournament_id': registration.tournament_id,
            'player_id': registration.player_id
        }, 'Player registered', 201)

    @app.route('/api/tournaments/<int:tournament_id>/rounds', methods=['POST'])
    @require_capability('tournament.generate_round')
    def api_generate_round(tournament_id: int):
        """Pair the next round."""
        app.tournaments.get_managed_tournament(tournament_id, g.caller)
        data = request.get_json(silent=True) or {}

        engine = MatchEngine(tournament_id, app.rating_engine)
        rnd = engine.generate_round(data.get('round_number'))
        return success(rnd.to_dict(), f"Round {rnd.round_number} generated", 201)

    @app.route('/api/matches/<int:match_id>/result', methods=['POST'])
    @require_capability('match.record_result')
    def api_record_result(match_id: int):
        """Record a match result and update ratings."""
        engine = MatchEngine.for_match(match_id, app.rating_engine)
        app.tournaments.get_managed_tournament(engine.tournament_id, g.caller)

        data = request.get_json(silent=True) or {}
        match = engine.record_result(match_id, data.get('result'))
        return success(match.to_dict(), 'Result recorded')

    # ==================== Health Check ====================

    @app.route('/api/health')
    def health_check():
        """Health check endpoint."""
        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception as e:
            app.logger.error(f"Health check database query failed: {e}")
            db.session.rollback()
            db_ok = False

        code = 200 if db_ok else 503
        return jsonify({
            'status': 'success' if db_ok else 'error',
            'message': 'API is running' if db_ok else 'Database unavailable',
            'database': 'connected' if db_ok else 'disconnected',
            'timestamp': datetime.utcnow().isoformat() + 'Z'
        }), code
