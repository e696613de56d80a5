"""
Episode, torrent and search result data models.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

from utils.helpers import sanitize_show_name, serialize_episode


class DownloadStatus(IntEnum):
    """Download state of an episode as exposed to clients."""
    STOPPED = 1
    PENDING = 2
    COMPLETE = 3
    FAILED = 4
    UNKNOWN = 5
    VERIFYING = 6


@dataclass
class Episode:
    """A single episode of a TV show."""
    show_name: str
    season: int
    episode: int

    @property
    def serialized(self) -> str:
        return serialize_episode(self.season, self.episode)

    def sanitized(self) -> 'Episode':
        """Return a copy with the show name sanitized."""
        return Episode(sanitize_show_name(self.show_name), self.season, self.episode)

    def describe(self) -> str:
        return f"'{self.show_name} {self.serialized}'"


@dataclass
class TorrentRecord:
    """Raw torrent as reported by the daemon."""
    id: int
    name: Optional[str]
    status: int
    rate_download: Optional[int] = None
    percent_done: Optional[float] = None
    eta: Optional[int] = None

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> 'TorrentRecord':
        return cls(
            id=data.get('id'),
            name=data.get('name'),
            status=data.get('status'),
            rate_download=data.get('rateDownload'),
            percent_done=data.get('percentDone'),
            eta=data.get('eta'),
        )


@dataclass
class ConvertedTorrentInfo:
    """Torrent state in the form used by client applications."""
    show_name: str
    season: int
    episode: int
    status: DownloadStatus
    progress: Optional[float] = None
    speed: Optional[int] = None
    eta: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'showName': self.show_name,
            'season': self.season,
            'episode': self.episode,
            'status': self.status.name,
            'progress': self.progress,
            'speed': self.speed,
            'eta': self.eta,
        }


@dataclass
class SearchResult:
    """Torrent search result scraped from an indexer."""
    name: str = ''
    link: Optional[str] = None
    size_human: str = ''
    size: float = 0
    age: str = ''
    seeders: int = 0
    leechers: int = 0
    files: int = 0
    type: str = ''

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'name': self.name,
            'link': self.link,
            'sizeHuman': self.size_human,
            'size': self.size,
            'age': self.age,
            'seeders': self.seeders,
            'leechers': self.leechers,
            'files': self.files,
            'type': self.type,
        }
