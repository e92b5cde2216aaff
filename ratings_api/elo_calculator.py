import math
from typing import Tuple

from .constants import (
    ESTABLISHED_K_FACTOR,
    PROVISIONAL_GAME_THRESHOLD,
    PROVISIONAL_K_FACTOR,
)


class EloCalculator:
    """
    Elo rating system for expected scores and rating changes.

    Each player is rated with their own K-factor: provisional players
    (fewer than ``provisional_threshold`` rated games) move faster than
    established ones.
    """

    def __init__(
        self,
        provisional_k: int = PROVISIONAL_K_FACTOR,
        established_k: int = ESTABLISHED_K_FACTOR,
        provisional_threshold: int = PROVISIONAL_GAME_THRESHOLD
    ):
        self.provisional_k = provisional_k
        self.established_k = established_k
        self.provisional_threshold = provisional_threshold

    def expected_scores(self, rating_white: int, rating_black: int) -> Tuple[float, float]:
        """
        Expected scores for both sides of a game.

        Returns:
            (expected_white, expected_black) as floats between 0 and 1
        """
        expected_white = 1 / (1 + math.pow(10, (rating_black - rating_white) / 400))
        expected_black = 1 - expected_white
        return (expected_white, expected_black)

    def k_factor(self, games_played: int) -> int:
        if games_played < self.provisional_threshold:
            return self.provisional_k
        return self.established_k

    def is_established(self, games_played: int) -> bool:
        return games_played >= self.provisional_threshold

    def rating_changes(
        self,
        rating_white: int,
        rating_black: int,
        score_white: float,
        games_white: int = PROVISIONAL_GAME_THRESHOLD,
        games_black: int = PROVISIONAL_GAME_THRESHOLD
    ) -> Tuple[int, int]:
        """
        Rating deltas for a finished game without applying them.

        Args:
            rating_white: Pre-game rating of white
            rating_black: Pre-game rating of black
            score_white: 1.0 for a white win, 0.5 for a draw, 0.0 for a loss
            games_white: Rated games white had played before this one
            games_black: Rated games black had played before this one

        Returns:
            (white_change, black_change) - can be positive or negative
        """
        if not 0.0 <= score_white <= 1.0:
            raise ValueError(f"score_white must be between 0 and 1, got {score_white}")

        expected_white, expected_black = self.expected_scores(rating_white, rating_black)
        score_black = 1.0 - score_white

        white_change = round(self.k_factor(games_white) * (score_white - expected_white))
        black_change = round(self.k_factor(games_black) * (score_black - expected_black))

        return (white_change, black_change)
