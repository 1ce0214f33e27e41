"""
Shared coercion helpers for the invoice_ops adapters.

Every helper here is total: malformed input produces a default, never an
exception. Values that had to be defaulted are reported on this module's
logger at DEBUG level so callers can surface silent data loss.
"""
import logging
import math
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Union

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

Number = Union[int, float]
Clock = Callable[[], datetime]

# 24 hex characters, as issued by the backend for ids
OBJECT_ID_PATTERN = re.compile(r'^[a-fA-F0-9]{24}$')


def system_clock() -> datetime:
    """Return the current local wall-clock time."""
    return datetime.now()


def _representable_int(value: int, fallback: Optional[Number]) -> Optional[Number]:
    """Return ``value`` unless it is too large to convert to float."""
    try:
        float(value)
    except OverflowError:
        logger.debug("Integer of %d bits is out of float range; using %r", value.bit_length(), fallback)
        return fallback
    return value


def to_number(value: Any, fallback: Optional[Number] = 0) -> Optional[Number]:
    """
    Coerce a loosely typed value to a number.

    Integers (and integral strings such as ``"2"``) stay ``int``; everything
    else numeric becomes ``float``. ``None``, blank strings, NaN, infinities
    and anything unparsable return ``fallback``.

    Args:
        value: Raw value from an API payload or a form.
        fallback: Value returned when coercion is impossible. ``None`` lets
            callers tell "not set" apart from zero.

    Returns:
        The parsed number or ``fallback``.
    """
    if value is None:
        return fallback

    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return _representable_int(value, fallback)
    if isinstance(value, (float, Decimal)):
        number = float(value)
        if math.isfinite(number):
            return number
        logger.debug("Non-finite number %r replaced with %r", value, fallback)
        return fallback

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return fallback
        if '_' in text:
            logger.debug("Digit separators are not accepted in %r; using %r", value, fallback)
            return fallback
        try:
            return _representable_int(int(text), fallback)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            logger.debug("Could not parse %r as a number; using %r", value, fallback)
            return fallback
        if math.isfinite(number):
            return number
        logger.debug("Non-finite number %r replaced with %r", value, fallback)
        return fallback

    logger.debug("Unsupported numeric value of type %s; using %r", type(value).__name__, fallback)
    return fallback


def get_path(source: Any, path: str) -> Any:
    """Follow a dotted key path through nested dicts; None when any hop is missing."""
    current = source
    for key in path.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_present(source: Any, *paths: str, default: Any = None) -> Any:
    """Return the first value along ``paths`` that is not None."""
    for path in paths:
        value = get_path(source, path)
        if value is not None:
            return value
    return default


def first_truthy(source: Any, *paths: str, default: Any = None) -> Any:
    """Return the first truthy value along ``paths``."""
    for path in paths:
        value = get_path(source, path)
        if value:
            return value
    return default


def reference_id(value: Any) -> Any:
    """Extract an id from an embedded document (``_id`` then ``id``) or return the bare reference."""
    if isinstance(value, dict):
        return first_truthy(value, '_id', 'id', default='')
    return value or ''


def normalize_reference(value: Any) -> str:
    """Return a trimmed string reference, or '' when blank or not a scalar."""
    if value is None or isinstance(value, (bool, dict, list)):
        return ''
    return str(value).strip()


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))


def as_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a date-like value into a naive local datetime.

    Accepts datetimes, dates, epoch milliseconds and strings understood by
    dateutil. Returns None if the value is blank or unparsable.
    """
    if value is None or value == '' or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return as_local_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (ValueError, OverflowError, OSError):
            logger.debug("Timestamp %r is out of range", value)
            return None

    try:
        return as_local_naive(date_parser.parse(str(value), fuzzy=False))
    except (ValueError, TypeError, OverflowError):
        logger.debug("Could not parse %r as a date", value)
        return None


def as_dict(value: Any) -> Dict[str, Any]:
    """Return ``value`` when it is a dict, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}
