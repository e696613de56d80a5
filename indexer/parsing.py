"""
Parsing utilities for scraped torrent result tables.
"""
import re
import logging
from typing import Optional, Union

from bs4.element import Tag

logger = logging.getLogger(__name__)

SIZE_UNIT_PREFIXES = {
    'K': 1e3,
    'M': 1e6,
    'G': 1e9,
    'T': 1e12,
    'P': 1e15,
}

_SIZE_PATTERN = re.compile(r'([.0-9]+) ([A-Z]?)B')


def parse_size(value: str) -> Optional[float]:
    """
    Convert a human-readable amount of disk space into bytes.

    E.g. `parse_size("309.15 KB")` -> `309150.0`

    Returns:
        Size in bytes, or None if the value can't be parsed.
    """
    match = _SIZE_PATTERN.search(value)
    if not match:
        return None
    try:
        size = float(match.group(1))
    except ValueError:
        return None
    prefix = match.group(2)
    if not prefix:
        return size  # e.g. "347 B"
    multiplier = SIZE_UNIT_PREFIXES.get(prefix)
    if multiplier is None:
        return None
    return size * multiplier


def to_number(value: str) -> Union[int, float]:
    """Coerce scraped text to a number, treating anything non-numeric as 0."""
    try:
        return int(value)
    except ValueError:
        pass
    try:
        number = float(value)
    except ValueError:
        return 0
    # NaN and infinities are not meaningful counts
    if number != number or number in (float('inf'), float('-inf')):
        return 0
    return number


def get_anchor_href(cell: Tag) -> str:
    """Return the href of the first anchor in a table cell, or `?`."""
    anchor = cell.find('a')
    if not isinstance(anchor, Tag):
        logger.warning("Table cell has no anchor element")
        return '?'
    href = anchor.get('href')
    return str(href) if href else '?'
