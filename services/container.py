"""
Explicitly constructed services shared by the request handlers.
"""
import logging
from dataclasses import dataclass

from indexer.base import TorrentIndexer
from indexer.eztv import Eztv
from models import build_engine, build_session_factory, create_tables
from services.coordinator import TorrentCoordinator
from services.downloads import DownloadsDirectory
from services.ledger import EpisodeLedger
from services.notifications import NotificationHub
from services.subtitles import SubtitleClient
from torrents.client import TorrentClientError, TransmissionClient

logger = logging.getLogger(__name__)


@dataclass
class LiveSeriesServices:
    settings: object
    client: TransmissionClient
    ledger: EpisodeLedger
    indexer: TorrentIndexer
    downloads: DownloadsDirectory
    hub: NotificationHub
    coordinator: TorrentCoordinator
    subtitles: SubtitleClient

    @classmethod
    def from_settings(cls, settings) -> 'LiveSeriesServices':
        engine = build_engine(settings.database_url)
        create_tables(engine)
        client = TransmissionClient(
            settings.transmission_url,
            settings.transmission_username,
            settings.transmission_password,
            timeout=settings.transmission_timeout,
            start=False
        )
        ledger = EpisodeLedger(build_session_factory(engine))
        indexer = Eztv(settings.eztv_url)
        downloads = DownloadsDirectory(settings.download_path)
        hub = NotificationHub()
        return cls(
            settings=settings,
            client=client,
            ledger=ledger,
            indexer=indexer,
            downloads=downloads,
            hub=hub,
            coordinator=TorrentCoordinator(client, ledger, indexer, downloads, hub),
            subtitles=SubtitleClient.from_settings(settings),
        )

    def start(self, wait: bool = True) -> None:
        """Start background initialisation; optionally block until the daemon answered."""
        self.client.start()
        self.subtitles.login()
        if not wait:
            return
        try:
            if not self.client.wait_for_initialisation():
                logger.error("Failed to initialise the torrent client.")
                return
        except TorrentClientError as e:
            logger.error(f"Initialisation failure: {e}")
            logger.warning("Ensure that your transmission client is running and that the configuration is correct.")
            logger.warning("The server is operational, but torrent-related requests will fail with HTTP status 503.")
            return
        logger.info("Torrent client initialised successfully.")
