"""
Conversion between raw daemon torrent records and episode download state.
"""
import logging
import re
from typing import Iterable, List

from models.episode import ConvertedTorrentInfo, DownloadStatus, TorrentRecord

logger = logging.getLogger(__name__)

TORRENT_NAME_PATTERN = re.compile(r'^(.+)(?:\.|\s|\+)S0?(\d+)E0?(\d+)')

# Transmission status codes
DOWNLOAD_STATUS_MAP = {
    0: DownloadStatus.STOPPED,
    1: DownloadStatus.VERIFYING,  # queued to verify
    2: DownloadStatus.VERIFYING,
    3: DownloadStatus.PENDING,    # queued to download
    4: DownloadStatus.PENDING,
    5: DownloadStatus.COMPLETE,   # queued to seed
    6: DownloadStatus.COMPLETE,
}

# Reverse lookup, used when a record has to be rebuilt from converted state
DAEMON_STATUS_CODES = {
    DownloadStatus.STOPPED: 0,
    DownloadStatus.VERIFYING: 2,
    DownloadStatus.PENDING: 4,
    DownloadStatus.COMPLETE: 6,
}


class UnmappableTorrentError(ValueError):
    """Raised when a torrent name does not describe an episode."""


def get_download_status(code: int) -> DownloadStatus:
    status = None
    if isinstance(code, int) and not isinstance(code, bool):
        status = DOWNLOAD_STATUS_MAP.get(code)
    if status is not None:
        return status
    logger.warning(f"Unknown torrent status code '{code}'.")
    return DownloadStatus.UNKNOWN


def to_converted_info(record: TorrentRecord) -> ConvertedTorrentInfo:
    """
    Convert a daemon record into the form useful to client applications.

    Raises:
        UnmappableTorrentError: if the name is missing or doesn't follow `Show.SxxExx`
    """
    if not record.name:
        raise UnmappableTorrentError("Torrent info has no name attribute")
    if not isinstance(record.name, str):
        raise UnmappableTorrentError(f"Torrent name is not a string: {record.name!r}")
    match = TORRENT_NAME_PATTERN.match(record.name)
    if not match:
        raise UnmappableTorrentError(f"Torrent name doesn't match regex: '{record.name}'.")
    show_name, season, episode = match.groups()
    return ConvertedTorrentInfo(
        show_name=show_name.replace('.', ' '),
        season=int(season),
        episode=int(episode),
        status=get_download_status(record.status),
        progress=record.percent_done,
        speed=record.rate_download,
        eta=record.eta,
    )


def to_torrent_record(info: ConvertedTorrentInfo, torrent_id: int) -> TorrentRecord:
    """Rebuild a daemon-style record using the `Show.Name.SxxExx` naming convention."""
    name = f"{info.show_name.replace(' ', '.')}.S{info.season:02d}E{info.episode:02d}"
    return TorrentRecord(
        id=torrent_id,
        name=name,
        status=DAEMON_STATUS_CODES.get(info.status, -1),
        rate_download=info.speed,
        percent_done=info.progress,
        eta=info.eta,
    )


def convert_all(records: Iterable[TorrentRecord]) -> List[ConvertedTorrentInfo]:
    """Convert every mappable record, silently dropping the rest."""
    converted = []
    for record in records:
        try:
            converted.append(to_converted_info(record))
        except UnmappableTorrentError:
            continue
    return converted
