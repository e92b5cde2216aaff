"""
Rating engine.

Turns a recorded match result into rating updates for both players in the
tournament's format. The engine only stages changes on the current session;
the caller owns the transaction so the result write, the rating rows and the
history rows commit (or roll back) together.
"""
import logging
from typing import List, Optional

from flask import current_app

from shared.events import Event, rating_updated_event
from .constants import MatchResult
from .elo_calculator import EloCalculator
from .errors import Conflict, InvalidState, NotFound
from .models import db, Match, Rating, RatingHistory

logger = logging.getLogger(__name__)

WHITE_SCORES = {
    MatchResult.WHITE_WIN.value: 1.0,
    MatchResult.BLACK_WIN.value: 0.0,
    MatchResult.DRAW.value: 0.5,
}


class RatingEngine:

    def __init__(self, calculator: EloCalculator = None):
        self._calculator = calculator

    @property
    def calculator(self) -> EloCalculator:
        if self._calculator is None:
            cfg = current_app.config
            self._calculator = EloCalculator(
                provisional_k=cfg['PROVISIONAL_K_FACTOR'],
                established_k=cfg['ESTABLISHED_K_FACTOR'],
                provisional_threshold=cfg['PROVISIONAL_GAME_THRESHOLD']
            )
        return self._calculator

    def is_processed(self, match_id: int) -> bool:
        return RatingHistory.query.filter_by(match_id=match_id).count() > 0

    def _get_rating(self, player_id: int, format_name: str) -> Rating:
        rating = Rating.query.filter_by(player_id=player_id, format=format_name).first()
        if not rating:
            raise NotFound(f"Player {player_id} has no {format_name} rating")
        return rating

    def apply_result(self, match: Match) -> Optional[List[RatingHistory]]:
        """
        Stage rating updates for a decided match.

        Returns the new history rows, or None for results that are not rated
        (byes). Raises Conflict if the match was already rated.
        """
        if match.result == MatchResult.BYE.value or match.is_bye:
            return None
        if match.result not in WHITE_SCORES:
            raise InvalidState(f"Match {match.id} has no decided result")

        if self.is_processed(match.id):
            raise Conflict(f"Match {match.id} has already been rated")

        tournament = match.round.tournament
        format_name = tournament.format

        white = self._get_rating(match.white_player_id, format_name)
        black = self._get_rating(match.black_player_id, format_name)

        white_change, black_change = self.calculator.rating_changes(
            white.rating,
            black.rating,
            WHITE_SCORES[match.result],
            games_white=white.games_played,
            games_black=black.games_played
        )

        history = [
            self._apply_change(white, white_change, tournament.id, match.id),
            self._apply_change(black, black_change, tournament.id, match.id),
        ]

        logger.info(
            f"Rated match {match.id} ({format_name}): "
            f"white {white.player_id} {white_change:+d}, black {black.player_id} {black_change:+d}"
        )
        return history

    def _apply_change(self, rating: Rating, change: int, tournament_id: int, match_id: int) -> RatingHistory:
        old_rating = rating.rating
        rating.rating = old_rating + change
        rating.games_played += 1
        rating.is_established = self.calculator.is_established(rating.games_played)

        entry = RatingHistory(
            player_id=rating.player_id,
            format=rating.format,
            tournament_id=tournament_id,
            match_id=match_id,
            old_rating=old_rating,
            new_rating=rating.rating,
            delta=change
        )
        db.session.add(entry)
        return entry


def rating_events(history: Optional[List[RatingHistory]]) -> List[Event]:
    """Rating update events for staged history rows, to emit after commit."""
    return [
        rating_updated_event(h.player_id, h.format, h.old_rating, h.new_rating, h.match_id)
        for h in history or []
    ]
