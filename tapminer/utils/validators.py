import re
import logging
from functools import wraps
from flask import request, jsonify

from tapminer.exceptions import ValidationError
from tapminer.integrations.solana import is_valid_wallet

logger = logging.getLogger(__name__)

BASE58_PATTERN = re.compile(r'^[1-9A-HJ-NP-Za-km-z]+$')


def validate_wallet_address(address, min_length=32, max_length=44) -> str:
    """Validate Solana wallet address format and return it stripped"""
    if not isinstance(address, str):
        raise ValidationError('Invalid wallet', field='wallet')

    address = address.strip()
    if not (min_length <= len(address) <= max_length):
        raise ValidationError('Invalid wallet', field='wallet')
    if not BASE58_PATTERN.match(address) or not is_valid_wallet(address):
        raise ValidationError('Invalid wallet', field='wallet')
    return address


def validate_points(points, max_points=None) -> int:
    """Points must be a positive whole number, optionally capped per request"""
    # bool is an int subclass; JSON true must not count as 1 point
    if isinstance(points, bool):
        raise ValidationError('Invalid data', field='points')
    if isinstance(points, float) and points.is_integer():
        points = int(points)
    if not isinstance(points, int) or points <= 0:
        raise ValidationError('Invalid data', field='points')
    if max_points is not None and points > max_points:
        raise ValidationError(f'Points must be at most {max_points}', field='points')
    return points


def validate_session_id(session_id):
    if session_id is None:
        return None
    if isinstance(session_id, bool):
        raise ValidationError('Invalid session id', field='sessionId')
    try:
        return int(session_id)
    except (TypeError, ValueError):
        raise ValidationError('Invalid session id', field='sessionId')


def require_json(optional=False):
    """Reject non-JSON bodies before the view runs"""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True)
            if data is None and optional and not request.get_data():
                data = {}
            if not isinstance(data, dict):
                logger.warning(f"Rejected non-JSON body on {request.path}")
                return jsonify({'error': 'Content type must be application/json'}), 400
            request.validated_data = data
            return f(*args, **kwargs)
        return wrapper
    return decorator
