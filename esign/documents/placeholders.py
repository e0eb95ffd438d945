"""
Placeholders and Anchors

Finds, substitutes and validates the two marker kinds a template
document carries:

    {{VAR:FULL_NAME}}        -> replaced with a user-submitted value
    {{DS:SIGNATURE_SIGNER}}  -> left in place; DocuSign anchors a tab on it

Names are upper-case letters and underscores only.
"""

import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional

from .types import Anchor, Placeholder, PlaceholderType, ValidationResult
from .transforms import parse_date, parse_number

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r'^[A-Z_]+$')
PLACEHOLDER_PATTERN = re.compile(r'\{\{VAR:([A-Z_]+)\}\}')
ANCHOR_PATTERN = re.compile(r'\{\{DS:([A-Z_]+)\}\}')


def placeholder_string(name: str) -> str:
    return f"{{{{VAR:{name}}}}}"


def anchor_string(name: str) -> str:
    """The literal text DocuSign searches for when placing a tab."""
    return f"{{{{DS:{name}}}}}"


def _unique_matches(pattern: re.Pattern, content: str) -> List[str]:
    found = []
    for match in pattern.finditer(content or ''):
        if match.group(1) not in found:
            found.append(match.group(1))
    return found


def extract_placeholders(content: str) -> List[str]:
    """Unique placeholder names in the order they first appear."""
    return _unique_matches(PLACEHOLDER_PATTERN, content)


def extract_anchors(content: str) -> List[str]:
    """Unique anchor names in the order they first appear."""
    return _unique_matches(ANCHOR_PATTERN, content)


def replace_placeholders(content: str, values: Mapping[str, Optional[str]]) -> str:
    """
    Replace {{VAR:key}} with values[key] for every key supplied.

    Missing values (None) become ''. Placeholders with no key in
    ``values`` are left untouched.
    """
    result = content
    for key, value in values.items():
        marker = re.escape(placeholder_string(key))
        replacement = '' if value is None else str(value)
        result = re.sub(marker, lambda _m: replacement, result)
    return result


def find_unresolved_placeholders(content: str) -> List[str]:
    return extract_placeholders(content)


def _is_blank(value) -> bool:
    return value is None or str(value).strip() == ''


def validate_placeholders(
    placeholders: Iterable[Placeholder],
    filled_values: Mapping[str, Optional[str]]
) -> ValidationResult:
    """
    Check that every required placeholder has a non-blank value.

    Non-blank values are also checked against the placeholder type:
    dates must parse and numbers must be numeric. Type failures are
    reported in ``invalid`` (name -> reason).
    """
    filled_values = filled_values or {}
    missing = []
    invalid: Dict[str, str] = {}

    for placeholder in placeholders:
        value = filled_values.get(placeholder.name)
        if _is_blank(value):
            if placeholder.required:
                missing.append(placeholder.name)
            continue

        if placeholder.type == PlaceholderType.DATE and parse_date(value) is None:
            invalid[placeholder.name] = f"'{value}' is not a valid date"
        elif placeholder.type == PlaceholderType.NUMBER and parse_number(value) is None:
            invalid[placeholder.name] = f"'{value}' is not a valid number"

    return ValidationResult(valid=not missing and not invalid, missing=missing, invalid=invalid)


def validate_anchors(anchors: Iterable[Anchor], content: str) -> ValidationResult:
    """Check that every required anchor marker appears in the content."""
    content = content or ''
    missing = [
        a.name for a in anchors
        if a.required and anchor_string(a.name) not in content
    ]
    return ValidationResult(valid=not missing, missing=missing)
