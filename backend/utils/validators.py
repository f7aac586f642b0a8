"""
Input Validation Utilities

Usage:
    from utils.validators import parse_float, ValidationError, NotFoundError

    qty = parse_float(request.form.get('qty'))
    if qty is None:
        ...  # leave the stored value alone
"""

import math
from typing import Dict, Optional


class BOQError(Exception):
    """Base class for errors raised by the BOQ services"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class NotFoundError(BOQError):
    """Referenced BOQ or BOQ item does not exist"""

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class ValidationError(BOQError):
    """Custom validation error with details"""

    def __init__(self, message: str, field: str = None, details: Dict = None):
        self.field = field
        self.details = details or {}
        super().__init__(message)


def sanitize_string(value, max_length: int = None) -> str:
    """
    Trim a form value and drop null bytes.

    HTML escaping is left to Jinja2 autoescaping at render time.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)

    value = value.strip().replace('\x00', '')

    if max_length and len(value) > max_length:
        value = value[:max_length]

    return value


def parse_float(value) -> Optional[float]:
    """
    Parse a submitted numeric value.

    Returns None for blanks and anything that is not a finite number, so the
    caller can skip the field instead of rejecting the request.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None

    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_float_or_zero(value) -> float:
    """Creation-form parsing: unparseable input counts as 0"""
    number = parse_float(value)
    return number if number is not None else 0.0
