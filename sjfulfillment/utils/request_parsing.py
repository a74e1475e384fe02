"""Helpers for reading query strings and JSON bodies in the API blueprints."""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import request, current_app

from sjfulfillment.exceptions import ValidationError


def parse_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    """Safely parse integer from string."""
    if not value:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def parse_bool(value: Optional[str]) -> bool:
    return (value or '').strip().lower() == 'true'


def parse_pagination():
    """Return (page, limit) from the query string, limit capped at API_MAX_PAGE_SIZE."""
    default_limit = current_app.config.get('API_DEFAULT_PAGE_SIZE', 10)
    max_limit = current_app.config.get('API_MAX_PAGE_SIZE', 100)
    page = max(parse_int(request.args.get('page'), 1), 1)
    limit = parse_int(request.args.get('limit'), default_limit)
    limit = min(max(limit, 1), max_limit)
    return page, limit


def get_json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return body


def parse_datetime(value, field: str, errors: list) -> Optional[datetime]:
    """ISO-8601 string to datetime; appends to errors when malformed."""
    if value in (None, ''):
        return None
    if not isinstance(value, str):
        errors.append(f'{field} must be an ISO-8601 date')
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        errors.append(f'{field} must be an ISO-8601 date')
        return None


def parse_decimal(value, field: str, errors: list, positive: bool = True) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        errors.append(f'{field} must be a number')
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append(f'{field} must be a number')
        return None
    if positive and number <= 0:
        errors.append(f'{field} must be positive')
        return None
    return number


def require_int(body: dict, field: str, errors: list, minimum: Optional[int] = None) -> Optional[int]:
    """Integer field from a JSON body; bools and floats are rejected."""
    value = body.get(field)
    if value is None:
        errors.append(f'{field} is required')
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f'{field} must be an integer')
        return None
    if minimum is not None and value < minimum:
        errors.append(f'{field} must be at least {minimum}')
        return None
    return value


def optional_str(body: dict, field: str, errors: list) -> Optional[str]:
    value = body.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(f'{field} must be a string')
        return None
    return value.strip() or None


def parse_id(value, field: str, errors: list) -> Optional[int]:
    """Ids arrive as numbers or numeric strings."""
    if value in (None, ''):
        errors.append(f'{field} is required')
        return None
    if isinstance(value, bool):
        errors.append(f'{field} is invalid')
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        errors.append(f'{field} is invalid')
        return None
