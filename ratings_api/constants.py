"""Domain constants shared by the registries, the rating engine and config."""
from enum import Enum


class Role(str, Enum):
    ORGANIZER = "ORGANIZER"
    OFFICER = "OFFICER"
    ADMIN = "ADMIN"


class ProfileStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SUSPENDED = "SUSPENDED"


class Format(str, Enum):
    CLASSICAL = "CLASSICAL"
    RAPID = "RAPID"
    BLITZ = "BLITZ"


class PairingSystem(str, Enum):
    SWISS = "SWISS"
    ROUND_ROBIN = "ROUND_ROBIN"


class MatchResult(str, Enum):
    PENDING = "PENDING"
    WHITE_WIN = "WHITE_WIN"
    BLACK_WIN = "BLACK_WIN"
    DRAW = "DRAW"
    BYE = "BYE"


FORMATS = [f.value for f in Format]

# Roles that skip the organizer approval step when creating tournaments
PRIVILEGED_ROLES = {Role.OFFICER.value, Role.ADMIN.value}

# Rating defaults. A new player starts every format at DEFAULT_RATING and is
# provisional until PROVISIONAL_GAME_THRESHOLD rated games have been played.
DEFAULT_RATING = 1200
PROVISIONAL_GAME_THRESHOLD = 30
PROVISIONAL_K_FACTOR = 32
ESTABLISHED_K_FACTOR = 16

# Points per result for standings
WIN_POINTS = 1.0
DRAW_POINTS = 0.5
BYE_POINTS = 1.0

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

REFERENCE_TITLES = [
    ("GM", "Grandmaster"),
    ("IM", "International Master"),
    ("FM", "FIDE Master"),
    ("CM", "Candidate Master"),
    ("WGM", "Woman Grandmaster"),
    ("WIM", "Woman International Master"),
    ("WFM", "Woman FIDE Master"),
    ("WCM", "Woman Candidate Master"),
]
