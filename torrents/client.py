"""
Transmission RPC client with session id renewal.
"""
import re
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from models.episode import TorrentRecord

logger = logging.getLogger(__name__)

SESSION_ID_HEADER = 'X-Transmission-Session-Id'
# Older daemons only embed the new session id in the HTML body of the 409 response
SESSION_ID_PATTERN = re.compile(r'<code>X-Transmission-Session-Id: (.+?)</code>')
TORRENT_FIELDS = [
    'id',
    'name',
    'status',
    'rateDownload',
    'percentDone',
    'leftUntilDone',
    'eta',
]


class TorrentClientError(Exception):
    """Base class for torrent daemon errors."""


class DaemonUnavailableError(TorrentClientError):
    """The daemon could not be reached, or cannot be used at all."""


class ClientNotConfiguredError(DaemonUnavailableError):
    """No daemon credentials were configured."""


class StaleSessionError(DaemonUnavailableError):
    """The daemon rejected the session id twice in a row."""


class DaemonResponseError(TorrentClientError):
    """The daemon was reachable but answered with an error."""

    def __init__(self, method: str, status_code: int, reason: str = ''):
        super().__init__(f"Daemon response to {method}: {status_code} {reason}".strip())
        self.method = method
        self.status_code = status_code
        self.reason = reason


@dataclass
class RpcResponse:
    """Decoded RPC response; `arguments` is None when missing or malformed."""
    result: str
    arguments: Optional[Dict[str, Any]]

    @property
    def succeeded(self) -> bool:
        return self.result == 'success'


@dataclass
class SessionStats:
    torrent_count: int
    active_torrent_count: int = 0
    download_speed: int = 0
    upload_speed: int = 0


@dataclass
class AddTorrentResult:
    added: Optional[TorrentRecord] = None
    duplicate: Optional[TorrentRecord] = None

    @property
    def is_duplicate(self) -> bool:
        return self.added is None


class TransmissionClient:
    """Client for the Transmission daemon's JSON RPC interface."""

    def __init__(self, url: str, username: Optional[str], password: Optional[str],
                 timeout: Optional[float] = 30, session: Optional[requests.Session] = None,
                 start: bool = True):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session_id: Optional[str] = None
        self.num_torrents = 0
        self._initialised = threading.Event()
        self._init_thread: Optional[threading.Thread] = None
        self._init_error: Optional[Exception] = None

        if not username or not password:
            logger.error("No TR_USER or TR_PASSWORD variable set.")
            self.configured = False
            self._initialised.set()
            return
        self.configured = True
        self.session.auth = (username, password)
        if start:
            self.start()

    @classmethod
    def from_settings(cls, settings) -> 'TransmissionClient':
        return cls(
            settings.transmission_url,
            settings.transmission_username,
            settings.transmission_password,
            timeout=settings.transmission_timeout,
        )

    def start(self) -> None:
        """Begin initialisation in a background thread."""
        if not self.configured or self._init_thread is not None:
            return
        self._init_thread = threading.Thread(
            target=self._initialise,
            daemon=True,
            name="transmission-init"
        )
        self._init_thread.start()

    def _initialise(self) -> None:
        try:
            self._call('session-get')
            if self.session_id is None:
                logger.warning("The daemon did not issue a session id.")
            stats = self.get_session_stats()
            if stats is not None:
                self.num_torrents = stats.torrent_count
        except Exception as e:
            self._init_error = e
        finally:
            self._initialised.set()

    def wait_for_initialisation(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for background initialisation so that its errors can be surfaced early.

        This is optional; calls wait for initialisation themselves.

        Returns:
            True if the client was initialising, False if there was nothing to wait for.

        Raises:
            TorrentClientError: the error which made initialisation fail
        """
        if self._init_thread is None:
            return False
        self._initialised.wait(timeout)
        if self._init_error is not None:
            error, self._init_error = self._init_error, None
            raise error
        return True

    def _update_session_id(self, response: requests.Response) -> None:
        session_id = response.headers.get(SESSION_ID_HEADER)
        if not session_id:
            match = SESSION_ID_PATTERN.search(response.text or '')
            session_id = match.group(1) if match else None
        if session_id:
            self.session_id = session_id
        else:
            logger.error("Stale session response did not contain a session id.")

    def _post(self, method: str, arguments: Optional[Dict[str, Any]]) -> requests.Response:
        payload: Dict[str, Any] = {'method': method}
        if arguments is not None:
            payload['arguments'] = arguments
        try:
            return self.session.post(
                self.url,
                json=payload,
                headers={SESSION_ID_HEADER: self.session_id or ''},
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Could not obtain a response from the torrent daemon: {e}")
            raise DaemonUnavailableError(f"Torrent daemon unreachable: {e}") from e

    def _call(self, method: str, arguments: Optional[Dict[str, Any]] = None) -> RpcResponse:
        if not self.configured:
            raise ClientNotConfiguredError("The torrent client is not configured.")
        if not method.startswith('session') and self._init_thread is not None:
            self._initialised.wait()

        response = self._post(method, arguments)
        if response.status_code == 409:
            self._update_session_id(response)
            if method != 'session-get':
                logger.warning(f"Retrying {method} due to stale session response")
            response = self._post(method, arguments)
            if response.status_code == 409:
                self._update_session_id(response)
                raise StaleSessionError(f"Session id rejected twice for {method}")

        if not response.ok:
            logger.error(f"Client response to {method}: {response.status_code} {response.reason}")
            raise DaemonResponseError(method, response.status_code, response.reason or '')

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Invalid JSON in response to {method}")
            return RpcResponse(result='', arguments=None)
        if not isinstance(data, dict):
            logger.error(f"Invalid response to {method}: {data!r}")
            return RpcResponse(result='', arguments=None)

        arguments = data.get('arguments')
        if not isinstance(arguments, dict):
            logger.error(f"Invalid response to {method}: {list(data.keys())}")
            arguments = None
        return RpcResponse(result=str(data.get('result', '')), arguments=arguments)

    def get_torrents(self) -> List[TorrentRecord]:
        """Get every torrent known to the daemon."""
        response = self._call('torrent-get', {'fields': TORRENT_FIELDS})
        torrents = response.arguments.get('torrents') if response.arguments else None
        if not isinstance(torrents, list):
            logger.error("Invalid torrent list response")
            return []
        return [TorrentRecord.from_rpc(torrent) for torrent in torrents if isinstance(torrent, dict)]

    def get_free_space(self, path: str) -> Optional[int]:
        """
        Get the free space in bytes at a path on the daemon's host.

        Returns:
            Number of free bytes, or None if the daemon's answer is unusable.
        """
        response = self._call('free-space', {'path': path})
        if response.arguments is None:
            return None
        free_bytes = response.arguments.get('size-bytes')
        if not isinstance(free_bytes, int) or isinstance(free_bytes, bool):
            logger.error(f"Invalid free space response: {list(response.arguments.keys())}")
            return None
        if free_bytes < 0:
            logger.error(f"Invalid free space value, path: {path}, reason: {response.result}")
            return None
        return free_bytes

    def add_torrent(self, link: str) -> AddTorrentResult:
        """
        Add a torrent by magnet link or URL.

        Raises:
            DaemonResponseError: if the daemon refused the torrent
        """
        response = self._call('torrent-add', {'filename': link, 'paused': False})
        if not response.succeeded:
            logger.error(f"Adding the torrent failed: {response.result}")
            raise DaemonResponseError('torrent-add', 200, response.result)
        arguments = response.arguments or {}
        added = arguments.get('torrent-added')
        if isinstance(added, dict):
            self.num_torrents += 1
            return AddTorrentResult(added=TorrentRecord.from_rpc(added))
        duplicate = arguments.get('torrent-duplicate')
        return AddTorrentResult(duplicate=TorrentRecord.from_rpc(duplicate) if isinstance(duplicate, dict) else None)

    def remove_torrent(self, torrent_id: int) -> None:
        """Remove a torrent, leaving its downloaded data in place."""
        response = self._call('torrent-remove', {'ids': [torrent_id], 'delete-local-data': False})
        logger.debug(f"Removed torrent {torrent_id}: {response.result}")
        if self.num_torrents > 0:
            self.num_torrents -= 1

    def get_session_stats(self) -> Optional[SessionStats]:
        response = self._call('session-stats')
        if response.arguments is None:
            return None
        return SessionStats(
            torrent_count=response.arguments.get('torrentCount', 0),
            active_torrent_count=response.arguments.get('activeTorrentCount', 0),
            download_speed=response.arguments.get('downloadSpeed', 0),
            upload_speed=response.arguments.get('uploadSpeed', 0),
        )
