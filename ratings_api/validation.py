"""Helpers for turning request input into typed values."""
from datetime import date, datetime
from typing import Optional

from .errors import ValidationError


def parse_date(value, field: str) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


def parse_int(value, field: str, minimum: int = None) -> Optional[int]:
    if value in (None, ''):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return number


TRUE_WORDS = ('true', '1', 'yes')
FALSE_WORDS = ('false', '0', 'no')


def parse_bool(value, field: str) -> Optional[bool]:
    """Accept JSON booleans and the usual spellings; anything else is a 400."""
    if value in (None, ''):
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    raise ValidationError(f"{field} must be true or false")


def parse_choice(value, field: str, choices) -> Optional[str]:
    if value in (None, ''):
        return None
    normalized = str(value).upper()
    if normalized not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return normalized


def clean_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def escape_like(text: str, escape: str = '\\') -> str:
    """Make LIKE wildcards in user text match literally."""
    for char in (escape, '%', '_'):
        text = text.replace(char, escape + char)
    return text
