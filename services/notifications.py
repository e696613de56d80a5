"""
Live torrent state notifications for websocket clients.

Each connection answers `poll` messages with the full torrent list after a
throttling delay. State-changing operations call `NotificationHub.wake_all`
to cut every pending delay short so clients see the change immediately.
"""
import json
import time
import logging
import threading
from typing import Any, Callable, List, Optional, Set

from models.episode import ConvertedTorrentInfo, DownloadStatus
from torrents.client import TorrentClientError

logger = logging.getLogger(__name__)

COMPLETE_DELAY_MULTIPLIER = 20
INVALID_POLL_DELAY_MULTIPLIER = 5
# Pending replies check the connection at least this often
WAIT_SLICE_SECONDS = 1.0


class NotificationHub:
    """Process-wide broadcast used to preempt pending poll replies."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: Set[threading.Event] = set()

    def register(self) -> threading.Event:
        event = threading.Event()
        with self._lock:
            self._events.add(event)
        return event

    def unregister(self, event: threading.Event) -> None:
        with self._lock:
            self._events.discard(event)

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._events)

    def wake_all(self) -> None:
        logger.debug("Speeding up websocket messages")
        with self._lock:
            for event in self._events:
                event.set()


def _is_complete(torrent: Any) -> bool:
    if not isinstance(torrent, dict):
        return False
    status = torrent.get('status')
    if isinstance(status, str):
        return status.upper() == DownloadStatus.COMPLETE.name
    return not isinstance(status, bool) and status == DownloadStatus.COMPLETE


def delay_multiplier(torrents: Any) -> int:
    """Poll less often once every known download is complete."""
    if not isinstance(torrents, list):
        logger.warning(f"Received invalid data argument for poll message: '{torrents}'.")
        return INVALID_POLL_DELAY_MULTIPLIER
    if all(_is_complete(torrent) for torrent in torrents):
        return COMPLETE_DELAY_MULTIPLIER
    return 1


class PollChannel:
    """Serves one websocket connection."""

    def __init__(self, fetch_infos: Callable[[], List[ConvertedTorrentInfo]], hub: NotificationHub,
                 send: Callable[[str], None], interval: float = 3.0,
                 clock: Callable[[], float] = time.monotonic,
                 is_connected: Callable[[], bool] = lambda: True):
        self.fetch_infos = fetch_infos
        self.hub = hub
        self.send = send
        self.interval = interval
        self.clock = clock
        self.is_connected = is_connected
        self.last_message_timestamp: Optional[float] = None
        self._closed = False
        self._wakeup = hub.register()

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, multiplier: int) -> float:
        """Return the delay before the next reply and reserve that slot."""
        now = self.clock()
        if self.last_message_timestamp is None:
            elapsed = float('inf')
        else:
            elapsed = max(0.0, now - self.last_message_timestamp)
        delay = max(0.0, self.interval * multiplier - elapsed)
        self.last_message_timestamp = now + delay
        return delay

    def handle_message(self, raw: Any) -> Optional[float]:
        """
        Interpret a client message.

        Returns:
            Seconds to wait before replying, or None if no reply is due.
        """
        try:
            event = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Could not parse websocket message '{raw}'. {e}")
            return None
        if not isinstance(event, dict):
            logger.warning(f"Ignoring non-object websocket message '{raw}'.")
            return None

        message_type = event.get('type')
        if message_type == 'poll':
            return self.schedule(delay_multiplier(event.get('data')))
        if message_type == 'authenticate':
            # Tokens are verified by the identity service in front of this one
            logger.debug("Ignoring authenticate message")
            return None
        logger.warning(f"Unknown message type '{message_type}' received in websocket connection.")
        return None

    def wait(self, delay: float) -> bool:
        """
        Sleep until the reply is due or the hub wakes this connection.

        Returns:
            False if the connection was closed meanwhile.
        """
        deadline = time.monotonic() + delay
        while not self._closed:
            if not self.is_connected():
                logger.debug("Websocket client disconnected while a reply was pending")
                self.close()
                break
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if self._wakeup.wait(min(remaining, WAIT_SLICE_SECONDS)):
                self._wakeup.clear()
                self.last_message_timestamp = None
                break
        return not self._closed

    def reply(self) -> None:
        if self._closed or not self.is_connected():
            return
        data = []
        try:
            data = [info.to_dict() for info in self.fetch_infos()]
        except TorrentClientError as e:
            logger.error(f"Could not obtain torrent infos for websocket reply: {e}")
        self.send(json.dumps({'data': data}))

    def serve(self, receive: Callable[[], Any]) -> None:
        """Answer messages until the client disconnects."""
        try:
            while not self._closed:
                message = receive()
                if message is None:
                    break
                delay = self.handle_message(message)
                if delay is None:
                    continue
                if not self.wait(delay):
                    break
                self.reply()
        finally:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._wakeup.set()
        self.hub.unregister(self._wakeup)
