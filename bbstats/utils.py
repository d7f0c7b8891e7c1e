"""
Utility Functions
Field extraction, date normalisation and app link-name helpers shared by
the login pipeline and the report workflow.
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Union
from urllib.parse import unquote

logger = logging.getLogger(__name__)

DateInput = Union[int, str, date]

_OFFSET_RE = re.compile(r'^\s*[-+]?\d+\s*$')


def extract(text: str, prefix: str, suffix: str) -> str:
    """
    Capture the text between a prefix pattern and a suffix.

    The capture runs until the first character of ``suffix``, so
    ``extract(html, 'name="sig".+?value="', '"')`` returns the contents
    of the ``value`` attribute. Only the first occurrence is used and the
    result is URL-decoded.

    Args:
        text: Raw HTML / JavaScript to search
        prefix: Regex that must precede the value
        suffix: Regex that must follow the value

    Returns:
        The decoded value, or an empty string if nothing matched
    """
    if not text or not suffix:
        return ""

    stop = re.escape(suffix[0])
    match = re.search(prefix + '([^' + stop + ']*)' + suffix, text)
    if not match:
        return ""
    return unquote(match.group(1))


def normalize_date(value: DateInput, today: date = None) -> date:
    """
    Turn a day offset or a calendar date into a ``date``.

    Args:
        value: Day offset relative to today (e.g. -14), a ``YYYY-MM-DD``
               string, or a ``date``/``datetime``
        today: Reference date for offsets (defaults to the current date)

    Returns:
        The normalised calendar date

    Raises:
        ValueError: If a string is neither an offset nor ``YYYY-MM-DD``
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    today = today or date.today()
    if isinstance(value, int):
        return today + timedelta(days=value)
    if _OFFSET_RE.match(value):
        return today + timedelta(days=int(value))
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def format_iso_date(value: date) -> str:
    """Format a date the way the schedule form expects it (YYYY-MM-DD)."""
    return value.strftime("%Y-%m-%d")


def format_report_date(value: date) -> str:
    """Format a date the way report file names embed it (11_May_2015)."""
    return value.strftime("%d_%b_%Y")


def derive_link_name(name: str) -> str:
    """
    Guess the file-name slug the portal builds from an app name.

    "Super Cool App: Elite Edition" -> "Super_Cool_App_Elite_Edition"

    This mirrors observed report names only; it is not documented anywhere
    and may be wrong for some apps. Prefer the numeric app id when possible.
    """
    slug = re.sub(r'[^a-zA-Z0-9 ]', '', name or '')
    return re.sub(r' +', '_', slug)
