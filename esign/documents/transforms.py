"""
Value Transforms

Formatters applied to user-submitted values before they are written
into a document. A placeholder names its transform in YAML; when it
doesn't, the placeholder type picks one (see DEFAULT_TRANSFORMS).

Usage in YAML:
    - name: START_DATE
      label: Start Date
      type: date
      transform: date_short
"""

import logging
from datetime import datetime, date
from typing import Any, Callable, Dict, Optional

from .types import Placeholder, PlaceholderType

logger = logging.getLogger(__name__)

TransformFunc = Callable[[Any], str]

DATE_INPUT_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y")


def parse_date(value: Any) -> Optional[date]:
    """Parse a date from a date object or one of DATE_INPUT_FORMATS."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_number(value: Any) -> Optional[float]:
    """Parse a number, ignoring currency, percent and grouping characters."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).replace('$', '').replace(',', '').replace('%', '').strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _plain(num: float) -> str:
    """Render 6.0 as '6' and 6.5 as '6.5'."""
    return str(int(num)) if num == int(num) else str(num)


TRANSFORMS: Dict[str, TransformFunc] = {}


def register_transform(name: str, func: TransformFunc = None):
    """
    Register a transform function under a name.

    Works as a plain call or as a decorator:
        register_transform('county', format_county)

        @register_transform('county')
        def format_county(value): ...
    """
    def decorator(f: TransformFunc) -> TransformFunc:
        TRANSFORMS[name] = f
        logger.debug(f"Registered transform: {name}")
        return f

    if func is not None:
        return decorator(func)
    return decorator


@register_transform('date')
def transform_date(value: Any) -> str:
    """2026-01-15 -> January 15, 2026"""
    parsed = parse_date(value)
    if parsed is None:
        logger.warning(f"Could not parse date: {value}")
        return str(value)
    return parsed.strftime("%B %d, %Y")


@register_transform('date_short')
def transform_date_short(value: Any) -> str:
    """2026-01-15 -> 01/15/2026"""
    parsed = parse_date(value)
    if parsed is None:
        logger.warning(f"Could not parse date: {value}")
        return str(value)
    return parsed.strftime("%m/%d/%Y")


@register_transform('number')
def transform_number(value: Any) -> str:
    """1234567 -> 1,234,567 and 1234.5 -> 1,234.5"""
    num = parse_number(value)
    if num is None:
        logger.warning(f"Could not format as number: {value}")
        return str(value)
    if num == int(num):
        return f"{int(num):,}"
    return f"{num:,}"


@register_transform('currency')
def transform_currency(value: Any) -> str:
    """1234.5 -> $1,234.50"""
    num = parse_number(value)
    if num is None:
        logger.warning(f"Could not format as currency: {value}")
        return str(value)
    return f"${num:,.2f}"


@register_transform('percent')
def transform_percent(value: Any) -> str:
    num = parse_number(value)
    if num is None:
        logger.warning(f"Could not format as percent: {value}")
        return str(value)
    return f"{_plain(num)}%"


@register_transform('uppercase')
def transform_uppercase(value: Any) -> str:
    return str(value).upper()


@register_transform('titlecase')
def transform_titlecase(value: Any) -> str:
    return str(value).title()


@register_transform('trim')
def transform_trim(value: Any) -> str:
    return str(value).strip()


DEFAULT_TRANSFORMS = {
    PlaceholderType.TEXT: 'trim',
    PlaceholderType.DATE: 'date',
    PlaceholderType.NUMBER: 'number',
}


def apply_transform(value: Any, transform_name: Optional[str]) -> str:
    """
    Apply a named transform to a value.

    None and blank strings always become ''. An unknown transform name
    falls back to str(value).
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return ""

    if not transform_name:
        return str(value)

    func = TRANSFORMS.get(transform_name)
    if func is None:
        logger.warning(f"Unknown transform: {transform_name}")
        return str(value)
    return func(value)


def format_value(placeholder: Placeholder, value: Any) -> str:
    """Format a filled value with the placeholder's transform or its type default."""
    name = placeholder.transform or DEFAULT_TRANSFORMS.get(placeholder.type)
    return apply_transform(value, name)
