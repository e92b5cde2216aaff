import logging
from datetime import datetime
from typing import Dict, List

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shared.state_machine import TournamentStateMachine
from shared.events import Event, EventType, emit_all, match_result_event, round_generated_event
from .constants import BYE_POINTS, DRAW_POINTS, WIN_POINTS, MatchResult, PairingSystem
from .errors import ApiError, Conflict, InternalError, InvalidState, NotFound, ValidationError
from .models import db, Match, Round, Tournament
from .pairing import PairingError, Standing, pair_round, rank, round_robin_length
from .rating_engine import RatingEngine, rating_events
from .tournament_registry import transition
from .validation import parse_choice, parse_int

logger = logging.getLogger(__name__)

RECORDABLE_RESULTS = [
    MatchResult.WHITE_WIN.value,
    MatchResult.BLACK_WIN.value,
    MatchResult.DRAW.value,
    MatchResult.BYE.value,
]


class MatchEngine:
    """Rounds, pairings, results and standings for one tournament."""

    def __init__(self, tournament_id: int, rating_engine: RatingEngine = None):
        self.tournament_id = tournament_id
        self.t_record = db.session.get(Tournament, tournament_id)
        if not self.t_record:
            raise NotFound('Tournament not found')
        self.rating_engine = rating_engine or RatingEngine()

    @classmethod
    def for_match(cls, match_id: int, rating_engine: RatingEngine = None) -> "MatchEngine":
        match = db.session.get(Match, match_id)
        if not match:
            raise NotFound('Match not found')
        return cls(match.round.tournament_id, rating_engine)

    def get_current_round(self) -> int:
        rounds = self.t_record.round_list
        return rounds[-1].round_number if rounds else 0

    def final_round_number(self) -> int:
        """Last round to be played; a round robin can end before the scheduled count."""
        if self.t_record.pairing_system == PairingSystem.ROUND_ROBIN.value:
            return min(self.t_record.rounds, round_robin_length(len(self.t_record.registrations)))
        return self.t_record.rounds

    # ==================== Standings ====================

    def build_standings(self) -> Dict[int, Standing]:
        default_rating = current_app.config['DEFAULT_RATING']
        standings = {}
        for player in self.t_record.players:
            rating = player.rating_for(self.t_record.format)
            standings[player.id] = Standing(
                player_id=player.id,
                rating=rating.rating if rating else default_rating
            )

        for rnd in self.t_record.round_list:
            for match in rnd.matches:
                white = standings.get(match.white_player_id)
                black = standings.get(match.black_player_id)

                if match.is_bye:
                    if white:
                        white.had_bye = True
                        if match.result == MatchResult.BYE.value:
                            white.score += BYE_POINTS
                    continue

                if white and black:
                    white.opponents.add(black.player_id)
                    black.opponents.add(white.player_id)
                if white:
                    white.color_balance += 1
                if black:
                    black.color_balance -= 1

                if match.result == MatchResult.WHITE_WIN.value and white:
                    white.score += WIN_POINTS
                elif match.result == MatchResult.BLACK_WIN.value and black:
                    black.score += WIN_POINTS
                elif match.result == MatchResult.DRAW.value:
                    if white:
                        white.score += DRAW_POINTS
                    if black:
                        black.score += DRAW_POINTS

        return standings

    def get_standings(self) -> List[Dict]:
        standings = self.build_standings()
        players = {p.id: p for p in self.t_record.players}

        games = {player_id: 0 for player_id in standings}
        for rnd in self.t_record.round_list:
            for match in rnd.matches:
                if match.result == MatchResult.PENDING.value:
                    continue
                for player_id in (match.white_player_id, match.black_player_id):
                    if player_id in games:
                        games[player_id] += 1

        result = []
        for position, s in enumerate(rank(list(standings.values())), start=1):
            player = players[s.player_id]
            result.append({
                'rank': position,
                'player_id': s.player_id,
                'name': player.full_name,
                'rating': s.rating,
                'score': s.score,
                'games': games[s.player_id],
            })
        return result

    # ==================== Rounds ====================

    def generate_round(self, round_number=None) -> Round:
        """
        Pair the next round.

        Round 1 starts the tournament; later rounds need every result of the
        previous round recorded.
        """
        tournament = self.t_record
        expected = self.get_current_round() + 1

        round_number = parse_int(round_number, 'round_number', minimum=1)
        if round_number is None:
            round_number = expected
        if round_number != expected:
            raise ValidationError(f"Next round to generate is round {expected}")
        if round_number > tournament.rounds:
            raise InvalidState(f"All {tournament.rounds} rounds have already been generated")

        if round_number == 1:
            changed = transition(tournament, 'start', {'players': tournament.players})
        else:
            previous = tournament.round_list[-1]
            if not previous.is_complete:
                raise InvalidState(f"Round {previous.round_number} still has pending results")
            changed = transition(tournament, 'advance', {'matches': [m.to_dict() for m in previous.matches]})

        try:
            pairings = pair_round(tournament.pairing_system, list(self.build_standings().values()), round_number)
        except PairingError as e:
            db.session.rollback()
            raise InvalidState(str(e))

        rnd = Round(tournament_id=tournament.id, round_number=round_number, start_time=datetime.utcnow())
        for p in pairings:
            rnd.matches.append(Match(
                white_player_id=p.white_id,
                black_player_id=p.black_id,
                board=p.board,
                result=MatchResult.BYE.value if p.is_bye else MatchResult.PENDING.value
            ))
        tournament.round_list.append(rnd)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict(f"Round {round_number} has already been generated")

        emit_all([changed, round_generated_event(tournament.id, round_number, len(pairings))])
        logger.info(f"Generated round {round_number} of tournament {tournament.id} with {len(pairings)} boards")
        return rnd

    # ==================== Results ====================

    def get_match(self, match_id: int) -> Match:
        match = db.session.get(Match, match_id)
        if not match or match.round.tournament_id != self.t_record.id:
            raise NotFound('Match not found')
        return match

    def record_result(self, match_id: int, result: str) -> Match:
        """
        Record a match result and rate it.

        The PENDING -> result write is conditional on the row still being
        PENDING, and the rating update shares its transaction, so a match is
        rated at most once. Re-sending the recorded result is a no-op.
        """
        result = parse_choice(result, 'result', RECORDABLE_RESULTS)
        if not result:
            raise ValidationError('result is required')

        match = self.get_match(match_id)

        if match.is_bye:
            if result != MatchResult.BYE.value:
                raise ValidationError('A bye cannot have a played result')
            return match
        if result == MatchResult.BYE.value:
            raise ValidationError('Only unpaired players can receive a bye')

        if match.result != MatchResult.PENDING.value:
            if match.result == result:
                logger.info(f"Match {match.id} already recorded as {result}; nothing to do")
                return match
            raise Conflict(f"Match {match.id} is already recorded as {match.result}")

        sm = TournamentStateMachine.from_state_string(self.t_record.status)
        if not sm.can_perform('record_result'):
            raise InvalidState(f"Cannot record results in {self.t_record.status} state")

        try:
            updated = Match.query.filter_by(id=match.id, result=MatchResult.PENDING.value).update(
                {'result': result, 'updated_at': datetime.utcnow()}
            )
            if updated != 1:
                raise Conflict(f"Match {match.id} was recorded by another request")

            staged = rating_events(self.rating_engine.apply_result(match))
            staged.extend(self._close_round_if_complete(match.round))
            db.session.commit()
        except ApiError:
            db.session.rollback()
            raise
        except IntegrityError as e:
            db.session.rollback()
            logger.warning(f"Concurrent rating of match {match_id}: {e}")
            raise Conflict(f"Match {match_id} has already been rated")
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception(f"Failed to record result for match {match_id}: {e}")
            raise InternalError('Failed to record match result')

        emit_all([match_result_event(self.t_record.id, match.id, result, match.round.round_number)] + staged)
        return match

    def _close_round_if_complete(self, rnd: Round) -> List[Event]:
        """Close a fully recorded round; returns the events to emit after commit."""
        if not rnd.is_complete:
            return []

        rnd.end_time = datetime.utcnow()
        staged = [Event(EventType.ROUND_COMPLETED, str(self.t_record.id), data={'round': rnd.round_number})]

        if rnd.round_number >= self.final_round_number():
            staged.append(transition(self.t_record, 'complete', {'matches': [m.to_dict() for m in rnd.matches]}))
            logger.info(f"Tournament {self.t_record.id} ready to complete after round {rnd.round_number}")
        return staged
