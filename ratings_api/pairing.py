"""Round pairing policies: Swiss system and round robin (circle method)."""
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from .constants import PairingSystem

# Upper bound on backtracking steps across all attempts before falling back to rank order
MAX_SEARCH_STEPS = 200000


class PairingError(Exception):
    pass


@dataclass
class Standing:
    player_id: int
    rating: int
    score: float = 0.0
    opponents: Set[int] = field(default_factory=set)
    had_bye: bool = False
    color_balance: int = 0  # games as white minus games as black


@dataclass
class Pairing:
    board: int
    white_id: int
    black_id: Optional[int] = None  # None = bye

    @property
    def is_bye(self) -> bool:
        return self.black_id is None


def rank(standings: List[Standing]) -> List[Standing]:
    return sorted(standings, key=lambda s: (-s.score, -s.rating, s.player_id))


def _assign_colors(board: int, higher: Standing, lower: Standing) -> Pairing:
    # Whoever has had white less often gets white; ties alternate by board
    if higher.color_balance < lower.color_balance:
        return Pairing(board, higher.player_id, lower.player_id)
    if lower.color_balance < higher.color_balance:
        return Pairing(board, lower.player_id, higher.player_id)
    if board % 2 == 1:
        return Pairing(board, higher.player_id, lower.player_id)
    return Pairing(board, lower.player_id, higher.player_id)


class _Search:
    def __init__(self, max_steps: int):
        self.steps = 0
        self.max_steps = max_steps

    @property
    def exhausted(self) -> bool:
        return self.steps > self.max_steps

    def pair(self, remaining: List[Standing], repeats_left: int = 0) -> Optional[List[Tuple[Standing, Standing]]]:
        """Pair ``remaining`` in rank order using at most ``repeats_left`` rematches."""
        if not remaining:
            return []
        top, rest = remaining[0], remaining[1:]
        for i, opponent in enumerate(rest):
            self.steps += 1
            if self.exhausted:
                return None
            cost = 1 if opponent.player_id in top.opponents else 0
            if cost > repeats_left:
                continue
            tail = self.pair(rest[:i] + rest[i + 1:], repeats_left - cost)
            if tail is not None:
                return [(top, opponent)] + tail
        return None


def _bye_candidates(ranked: List[Standing]) -> List[Optional[Standing]]:
    if len(ranked) % 2 == 0:
        return [None]
    # Lowest ranked first; a second bye only once everyone has had one
    return [s for s in reversed(ranked) if not s.had_bye] or list(reversed(ranked))


def swiss_pairings(standings: List[Standing], max_steps: int = MAX_SEARCH_STEPS) -> List[Pairing]:
    """
    Pair players with similar scores, avoiding repeat opponents.

    With an odd field the lowest-ranked player who has not yet had a bye sits
    out, unless a different eligible bye allows fewer repeats. When repeats
    cannot be avoided the search allows one more rematch at a time, so the
    round has as few as possible. If the search budget runs out the players
    are paired by rank.
    """
    ranked = rank(standings)
    candidates = _bye_candidates(ranked)
    search = _Search(max_steps)

    bye, pairs = candidates[0], None
    for repeats in range(len(ranked) // 2 + 1):
        for candidate in candidates:
            pairs = search.pair([s for s in ranked if s is not candidate], repeats)
            if pairs is not None:
                bye = candidate
                break
            if search.exhausted:
                break
        if pairs is not None or search.exhausted:
            break

    if pairs is None:
        seated = [s for s in ranked if s is not bye]
        pairs = [(seated[i], seated[i + 1]) for i in range(0, len(seated), 2)]

    pairings = [_assign_colors(board, a, b) for board, (a, b) in enumerate(pairs, start=1)]
    if bye is not None:
        pairings.append(Pairing(len(pairings) + 1, bye.player_id, None))
    return pairings


def round_robin_length(player_count: int) -> int:
    """Number of rounds needed for everyone to meet everyone once."""
    if player_count < 2:
        return 0
    return player_count - 1 if player_count % 2 == 0 else player_count


def round_robin_pairings(standings: List[Standing], round_number: int) -> List[Pairing]:
    """
    Pairings for one round of a round-robin schedule.

    Players are seeded by rating and rotated with the circle method; with an
    odd field the player facing the empty seat has the bye.
    """
    seeded = [s.player_id for s in sorted(standings, key=lambda s: (-s.rating, s.player_id))]
    total_rounds = round_robin_length(len(seeded))
    if round_number < 1 or round_number > total_rounds:
        raise PairingError(
            f"Round {round_number} is outside the {total_rounds}-round schedule for {len(seeded)} players"
        )

    if len(seeded) % 2 == 1:
        seeded.append(None)
    n = len(seeded)

    order = seeded
    for _ in range(round_number - 1):
        order = [order[0]] + [order[-1]] + order[1:-1]

    games = []
    byes = []
    for i in range(n // 2):
        a, b = order[i], order[n - 1 - i]
        if a is None or b is None:
            byes.append(a if a is not None else b)
            continue
        # The fixed seat alternates colours each round; other boards alternate by board
        if i == 0:
            white, black = (a, b) if round_number % 2 == 1 else (b, a)
        else:
            white, black = (a, b) if i % 2 == 0 else (b, a)
        games.append((white, black))

    pairings = [Pairing(board, w, b) for board, (w, b) in enumerate(games, start=1)]
    for player_id in byes:
        pairings.append(Pairing(len(pairings) + 1, player_id, None))
    return pairings


def pair_round(system: str, standings: List[Standing], round_number: int) -> List[Pairing]:
    if len(standings) < 2:
        raise PairingError("At least 2 players are needed to pair a round")
    if system == PairingSystem.ROUND_ROBIN.value:
        return round_robin_pairings(standings, round_number)
    return swiss_pairings(standings)
