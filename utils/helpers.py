"""
General utility functions for episode naming and filename matching.
"""
import os
import re
from typing import Optional, Tuple

VIDEO_EXTENSIONS = ('mkv', 'mp4', 'avi')

_SERIALIZED_EPISODE_PATTERN = re.compile(r'^S(\d+)E(\d+)$', re.IGNORECASE)
_VIDEO_EXTENSION_PATTERN = re.compile(r'\.(%s)$' % '|'.join(VIDEO_EXTENSIONS))


def serialize_episode(season: int, episode: int) -> str:
    """Return the canonical `SxxExx` form, e.g. `S03E04`."""
    return f"S{season:02d}E{episode:02d}"


def deserialize_episode(value: str) -> Optional[Tuple[int, int]]:
    """
    Parse a canonical `SxxExx` string.

    Returns:
        Tuple of (season, episode), or None if the value is not in canonical form.
    """
    match = _SERIALIZED_EPISODE_PATTERN.match(value.strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def sanitize_show_name(show_name: str) -> str:
    """Convert periods and plus symbols into spaces and remove `:/` sequences."""
    return re.sub(r'[.+]', ' ', show_name).replace(':/', '').strip()


def parse_filename(filename: str) -> str:
    """Sanitize a filename the same way as show names, lowercased for comparison."""
    return sanitize_show_name(filename).lower()


def get_video_extension(filename: str) -> Optional[str]:
    """Return mkv, mp4 or avi if the filename ends with one of them."""
    match = _VIDEO_EXTENSION_PATTERN.search(filename)
    return match.group(1) if match else None


def matches_episode_filename(path: str, search: str, allow_non_mp4: bool = False) -> bool:
    """
    Check whether a downloaded file belongs to an episode.

    Args:
        path: File path relative to the downloads root
        search: Sanitized, lowercased `show SxxExx` prefix
        allow_non_mp4: Accept every recognised video container, not only `.mp4`
    """
    if not parse_filename(os.path.basename(path)).startswith(search):
        return False
    extension = get_video_extension(path)
    if extension is None:
        return False
    return allow_non_mp4 or extension == 'mp4'
