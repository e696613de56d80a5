"""
Coordinates episode requests between the torrent daemon, the ledger, the
downloads directory and the torrent indexer.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from indexer.base import TorrentIndexer
from models.episode import ConvertedTorrentInfo, Episode, TorrentRecord
from services.downloads import DownloadsDirectory, DownloadsDirectoryError
from services.ledger import EpisodeLedger
from services.notifications import NotificationHub
from torrents.client import DaemonResponseError, TorrentClientError, TransmissionClient
from torrents.mapping import UnmappableTorrentError, convert_all, to_converted_info
from utils.helpers import sanitize_show_name

logger = logging.getLogger(__name__)

# New torrents are only added while at least 1 GiB is free
MIN_REQUIRED_FREE_BYTES = 1024 ** 3

QUERY_FAILED_MESSAGE = "Could not obtain the current torrent list. Try again later."
DAEMON_ERROR_MESSAGE = "The torrent client could not add the episode."

T = TypeVar('T')


class ResolutionState(Enum):
    FOUND_ACTIVE = 'found_active'
    FILE_ON_DISK = 'file_on_disk'
    QUERY_FAILED = 'query_failed'
    EXHAUSTED = 'exhausted'


@dataclass
class Resolution(Generic[T]):
    state: ResolutionState
    episode: Episode
    value: Optional[T] = None
    message: str = ''

    @property
    def found(self) -> bool:
        return self.state in (ResolutionState.FOUND_ACTIVE, ResolutionState.FILE_ON_DISK)


class AcquireStatus(Enum):
    STARTED = 'started'
    ALREADY_IN_CLIENT = 'already_in_client'
    ALREADY_DOWNLOADED = 'already_downloaded'
    NO_RESULTS = 'no_results'
    INSUFFICIENT_SPACE = 'insufficient_space'
    UNAVAILABLE = 'unavailable'
    DAEMON_ERROR = 'daemon_error'


@dataclass
class AcquireOutcome:
    status: AcquireStatus
    message: str = ''
    entry: Optional[dict] = None
    torrent: Optional[ConvertedTorrentInfo] = None
    free_bytes: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (AcquireStatus.STARTED, AcquireStatus.ALREADY_IN_CLIENT)


class ReleaseStatus(Enum):
    RELEASED = 'released'
    NOT_FOUND = 'not_found'
    UNAVAILABLE = 'unavailable'
    LEDGER_ERROR = 'ledger_error'
    TORRENT_REMOVAL_FAILED = 'torrent_removal_failed'
    FILE_REMOVAL_FAILED = 'file_removal_failed'


@dataclass
class ReleaseOutcome:
    status: ReleaseStatus
    message: str = ''


class TorrentCoordinator:
    """Turns "the user wants episode E" into an outcome."""

    def __init__(self, client: TransmissionClient, ledger: EpisodeLedger, indexer: TorrentIndexer,
                 downloads: DownloadsDirectory, hub: Optional[NotificationHub] = None):
        self.client = client
        self.ledger = ledger
        self.indexer = indexer
        self.downloads = downloads
        self.hub = hub or NotificationHub()

    def list_torrent_infos(self) -> List[ConvertedTorrentInfo]:
        """Converted state of every torrent that follows the episode naming convention."""
        return convert_all(self.client.get_torrents())

    def find_torrent(self, episode: Episode) -> Optional[TorrentRecord]:
        """
        Find the active torrent for an episode.

        Raises:
            TorrentClientError: if the torrent list could not be obtained
        """
        wanted = sanitize_show_name(episode.show_name).lower()
        for record in self.client.get_torrents():
            try:
                info = to_converted_info(record)
            except UnmappableTorrentError as e:
                logger.warning(f"Skipping invalid torrent: {e}")
                continue
            if (info.season == episode.season and info.episode == episode.episode
                    and sanitize_show_name(info.show_name).lower() == wanted):
                return record
        return None

    def resolve(self, episode: Episode,
                on_found: Callable[[TorrentRecord, Episode], Optional[T]],
                on_not_found: Callable[[Episode], Optional[T]]) -> Resolution[T]:
        """
        Resolve an episode request through a chain of strategies.

        `on_found` receives the active torrent and the sanitized episode; returning
        None means the torrent can't satisfy the request yet. `on_not_found` is then
        tried with the sanitized episode, typically searching the downloads on disk.
        """
        try:
            torrent = self.find_torrent(episode)
        except TorrentClientError as e:
            logger.error(f"Could not get torrent info: {e}")
            return Resolution(ResolutionState.QUERY_FAILED, episode.sanitized(), message=QUERY_FAILED_MESSAGE)

        sanitized = episode.sanitized()
        if torrent is not None:
            value = on_found(torrent, sanitized)
            if value is not None:
                return Resolution(ResolutionState.FOUND_ACTIVE, sanitized, value)
        else:
            logger.debug(f"Torrent not found: {sanitized.describe()}")

        value = on_not_found(sanitized)
        if value is not None:
            return Resolution(ResolutionState.FILE_ON_DISK, sanitized, value)
        return Resolution(
            ResolutionState.EXHAUSTED,
            sanitized,
            message=f"Episode {sanitized.describe()} was not found in the downloads."
        )

    def locate_video(self, episode: Episode, allow_non_mp4: bool = False) -> Resolution[str]:
        """Resolve an episode to the path of its video file."""
        def find_on_disk(sanitized: Episode) -> Optional[str]:
            return self.downloads.find_episode(sanitized, allow_non_mp4)

        return self.resolve(episode, lambda torrent, sanitized: find_on_disk(sanitized), find_on_disk)

    def acquire(self, show_id: int, episode: Episode) -> AcquireOutcome:
        """Start downloading an episode unless it has been requested before."""
        sanitized = episode.sanitized()
        label = sanitized.describe()
        if self.ledger.exists(show_id, sanitized.show_name, sanitized.season, sanitized.episode):
            return AcquireOutcome(AcquireStatus.ALREADY_DOWNLOADED, f"Episode {label} is already downloaded.")

        result = self.indexer.find_top_result(sanitized)
        if result is None or not result.link:
            logger.error("Search query turned up empty. Either no torrents available, or indexer is outdated.")
            return AcquireOutcome(AcquireStatus.NO_RESULTS, f"No torrents found for episode {label}.")

        try:
            free_bytes = self.client.get_free_space(self.downloads.root)
        except DaemonResponseError as e:
            logger.error(f"The torrent client refused the free space query: {e}")
            return AcquireOutcome(AcquireStatus.DAEMON_ERROR, DAEMON_ERROR_MESSAGE)
        except TorrentClientError as e:
            logger.error(f"The torrent client is unavailable: {e}")
            return AcquireOutcome(AcquireStatus.UNAVAILABLE, "The torrent client is unavailable.")
        if free_bytes is None:
            return AcquireOutcome(AcquireStatus.UNAVAILABLE, "Could not determine the free disk space.")
        if free_bytes < MIN_REQUIRED_FREE_BYTES:
            logger.error(f"Not enough free space to download torrent. Free space: {free_bytes // 1024} KiB")
            return AcquireOutcome(
                AcquireStatus.INSUFFICIENT_SPACE,
                "Not enough free disk space to download the episode.",
                free_bytes=free_bytes
            )

        # The unique constraint settles concurrent requests for the same episode
        entry = self.ledger.create(show_id, sanitized.show_name, sanitized.season, sanitized.episode)
        if entry is None:
            return AcquireOutcome(AcquireStatus.ALREADY_DOWNLOADED, f"Episode {label} is already downloaded.")

        try:
            added = self.client.add_torrent(result.link)
        except DaemonResponseError as e:
            logger.error(f"The torrent client refused the torrent: {e}")
            self.ledger.delete_for_show_id(show_id, sanitized.season, sanitized.episode)
            return AcquireOutcome(AcquireStatus.DAEMON_ERROR, DAEMON_ERROR_MESSAGE)
        except TorrentClientError as e:
            logger.error(f"The torrent client is unavailable: {e}")
            self.ledger.delete_for_show_id(show_id, sanitized.season, sanitized.episode)
            return AcquireOutcome(AcquireStatus.UNAVAILABLE, "The torrent client is unavailable.")

        if added.is_duplicate:
            logger.info("Duplicate file; no torrents added. Keeping the ledger entry.")
            status, record = AcquireStatus.ALREADY_IN_CLIENT, added.duplicate
        else:
            logger.info("Successfully added new torrent.")
            status, record = AcquireStatus.STARTED, added.added

        torrent = None
        if record is not None:
            try:
                torrent = to_converted_info(record)
            except UnmappableTorrentError as e:
                logger.warning(f"Added torrent can't be mapped to an episode: {e}")
        self.hub.wake_all()
        return AcquireOutcome(status, entry=entry, torrent=torrent, free_bytes=free_bytes)

    def release(self, episode: Episode) -> ReleaseOutcome:
        """Delete an episode's ledger row, torrent and downloaded files."""
        sanitized = episode.sanitized()
        try:
            torrent = self.find_torrent(episode)
        except TorrentClientError as e:
            logger.error(f"Could not get torrent info: {e}")
            return ReleaseOutcome(ReleaseStatus.UNAVAILABLE, QUERY_FAILED_MESSAGE)

        try:
            deleted = self.ledger.delete(sanitized.show_name, sanitized.season, sanitized.episode)
        except SQLAlchemyError as e:
            logger.error(f"Could not delete ledger entry: {e}")
            return ReleaseOutcome(ReleaseStatus.LEDGER_ERROR, "Could not delete the episode from the database.")
        if deleted == 0:
            return ReleaseOutcome(
                ReleaseStatus.NOT_FOUND,
                f"Episode {sanitized.describe()} was not found in the downloads."
            )

        if torrent is not None:
            try:
                self.client.remove_torrent(torrent.id)
            except TorrentClientError as e:
                logger.error(f"Could not remove torrent {torrent.id}: {e}")
                return ReleaseOutcome(
                    ReleaseStatus.TORRENT_REMOVAL_FAILED,
                    "An unknown error occurred while removing the torrent. The database entry was removed."
                )
            self.hub.wake_all()
            target = torrent.name
        else:
            self.hub.wake_all()
            try:
                path = self.downloads.find_episode(sanitized, allow_non_mp4=True)
            except DownloadsDirectoryError:
                return ReleaseOutcome(
                    ReleaseStatus.FILE_REMOVAL_FAILED,
                    "Could not search the downloads for the episode files. The database entry was removed."
                )
            target = self.downloads.relative_name(path) if path else None

        if target:
            try:
                self.downloads.remove(target)
            except DownloadsDirectoryError:
                return ReleaseOutcome(
                    ReleaseStatus.FILE_REMOVAL_FAILED,
                    "An unknown error occurred while removing the files. The torrent and database entry were removed."
                )
        return ReleaseOutcome(ReleaseStatus.RELEASED)
