"""Uniform response envelope and pagination parameters."""
from typing import Tuple

from flask import current_app, jsonify

from .validation import parse_int
from .errors import ValidationError


def success(data=None, message: str = None, status_code: int = 200):
    body = {'status': 'success'}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    return jsonify(body), status_code


def paginated(items, page: int, limit: int, total: int):
    return jsonify({
        'status': 'success',
        'data': items,
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total
        }
    }), 200


def pagination_args(args) -> Tuple[int, int]:
    """Read ``page``/``limit`` from the query string (1-based pages)."""
    page = parse_int(args.get('page'), 'page', minimum=1) or 1
    limit = parse_int(args.get('limit'), 'limit', minimum=1)
    if limit is None:
        limit = current_app.config['DEFAULT_PAGE_LIMIT']
    max_limit = current_app.config['MAX_PAGE_LIMIT']
    if limit > max_limit:
        raise ValidationError(f"limit must be at most {max_limit}")
    return page, limit
