# utils/helpers.py
from errors import ValidationError


def safe_strip(value):
    """Safely strip a string value, handling None"""
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    return value


def parse_limit(value, default, maximum=50):
    """
    Parse a ?limit= query parameter

    Raises:
        ValidationError: If the value is not an integer between 1 and maximum
    """
    value = safe_strip(value)
    if value is None:
        return default

    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError('limit must be an integer')

    if limit < 1 or limit > maximum:
        raise ValidationError(f'limit must be between 1 and {maximum}')

    return limit
