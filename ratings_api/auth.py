"""
Identity & role gate.

Bearer tokens are issued by the managed auth service and signed with the
project's JWT secret; the ``sub`` claim is the user id. Role and approval
status come from the ``profiles`` table. Which role may run which operation
is defined once, in ``CAPABILITIES``.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable, List

from flask import current_app, g, request
from jose import JWTError, jwt

from shared.events import Event, EventType, emit
from .constants import ProfileStatus, Role
from .errors import Conflict, Forbidden, NotFound, Unauthenticated, ValidationError
from .models import db, Profile

logger = logging.getLogger(__name__)

_ALL_ROLES = frozenset({Role.ORGANIZER.value, Role.OFFICER.value, Role.ADMIN.value})
_OFFICIALS = frozenset({Role.OFFICER.value, Role.ADMIN.value})

CAPABILITIES = {
    'player.create': _ALL_ROLES,
    'tournament.create': _ALL_ROLES,
    'tournament.delete': _ALL_ROLES,
    'tournament.register_player': _ALL_ROLES,
    'tournament.generate_round': _ALL_ROLES,
    'match.record_result': _ALL_ROLES,
    'tournament.approve': _OFFICIALS,
    'tournament.transfer': _OFFICIALS,
    'tournament.list_pending': _OFFICIALS,
    'organizer.approve': _OFFICIALS,
    'title.grant': _OFFICIALS,
}


@dataclass
class Caller:
    user_id: str
    role: str
    status: str

    @property
    def is_official(self) -> bool:
        return self.role in _OFFICIALS


class TokenVerifier:
    """Verifies auth service access tokens and returns the user id."""

    def __init__(self, secret: str, audience: str = 'authenticated', algorithms: List[str] = None):
        self.secret = secret
        self.audience = audience
        self.algorithms = algorithms or ['HS256']

    def verify(self, token: str) -> str:
        if not self.secret:
            logger.error("SUPABASE_JWT_SECRET is not configured; rejecting token")
            raise Unauthenticated('Invalid or expired token')
        try:
            payload = jwt.decode(token, self.secret, algorithms=self.algorithms, audience=self.audience)
        except JWTError as e:
            logger.warning(f"Token verification failed: {e}")
            raise Unauthenticated('Invalid or expired token')

        user_id = payload.get('sub')
        if not user_id:
            raise Unauthenticated('Invalid or expired token')
        return user_id


def _bearer_token(header: str) -> str:
    if not header or not header.startswith('Bearer '):
        raise Unauthenticated('Authentication required')
    token = header[len('Bearer '):].strip()
    if not token:
        raise Unauthenticated('Authentication required')
    return token


def resolve_caller(header: str, verifier: TokenVerifier) -> Caller:
    """Resolve an Authorization header to the calling user's identity."""
    user_id = verifier.verify(_bearer_token(header))

    profile = db.session.get(Profile, user_id)
    if not profile:
        logger.warning(f"No profile for authenticated user {user_id}")
        raise Unauthenticated('Invalid or expired token')

    return Caller(user_id=profile.id, role=profile.role, status=profile.status)


def authorize(caller: Caller, operation: str) -> None:
    """Raise Forbidden unless the caller may perform ``operation``."""
    allowed = CAPABILITIES.get(operation)
    if allowed is None:
        raise KeyError(f"Unknown operation '{operation}'")

    if caller.role == Role.ORGANIZER.value and caller.status != ProfileStatus.APPROVED.value:
        raise Forbidden('Your organizer account is pending approval')
    if caller.status == ProfileStatus.SUSPENDED.value:
        raise Forbidden('Your account is suspended')
    if caller.role not in allowed:
        raise Forbidden()


def can_manage(caller: Caller, organizer_id: str) -> bool:
    """Officials manage every tournament; organizers only their own."""
    return caller.is_official or caller.user_id == organizer_id


def require_capability(operation: str) -> Callable:
    """Route decorator: authenticate, authorize and expose the caller as ``g.caller``."""
    if operation not in CAPABILITIES:
        raise KeyError(f"Unknown operation '{operation}'")

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            caller = resolve_caller(request.headers.get('Authorization'), current_app.token_verifier)
            authorize(caller, operation)
            g.caller = caller
            return view(*args, **kwargs)
        return wrapper
    return decorator


def approve_organizer(user_id: str, caller: Caller) -> Profile:
    """Approve a pending organizer account."""
    profile = db.session.get(Profile, user_id)
    if not profile:
        raise NotFound('Organizer not found')
    if profile.role != Role.ORGANIZER.value:
        raise ValidationError('Only organizer accounts require approval')
    if profile.status == ProfileStatus.APPROVED.value:
        raise Conflict('Organizer is already approved')

    profile.status = ProfileStatus.APPROVED.value
    db.session.commit()

    emit(Event(EventType.ORGANIZER_APPROVED, profile.id, data={'approved_by': caller.user_id}))
    logger.info(f"Organizer {profile.id} approved by {caller.user_id}")
    return profile
