"""
Unit tests for websocket poll throttling.
"""
import json
import threading
import time
import unittest
from unittest import mock

from models.episode import ConvertedTorrentInfo, DownloadStatus
from services.notifications import (
    COMPLETE_DELAY_MULTIPLIER,
    INVALID_POLL_DELAY_MULTIPLIER,
    NotificationHub,
    PollChannel,
    delay_multiplier,
)
from torrents.client import DaemonUnavailableError


class FakeClock:

    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def poll(data):
    return json.dumps({'type': 'poll', 'data': data})


class TestDelayMultiplier(unittest.TestCase):
    """Test cases for delay_multiplier."""

    def test_delay_multiplier(self):
        test_cases = [
            ([{'status': 'COMPLETE'}, {'status': 3}], COMPLETE_DELAY_MULTIPLIER),
            ([], COMPLETE_DELAY_MULTIPLIER),
            ([{'status': 'COMPLETE'}, {'status': 'PENDING'}], 1),
            ([{'status': 2}], 1),
            ([{'status': True}], 1),
            (None, INVALID_POLL_DELAY_MULTIPLIER),
            ("COMPLETE", INVALID_POLL_DELAY_MULTIPLIER),
        ]

        for data, expected in test_cases:
            with self.subTest(data=data):
                self.assertEqual(delay_multiplier(data), expected)


class TestPollChannel(unittest.TestCase):
    """Test cases for PollChannel."""

    def setUp(self):
        self.hub = NotificationHub()
        self.clock = FakeClock()
        self.sent = []
        self.infos = [ConvertedTorrentInfo("The Bear", 3, 1, DownloadStatus.PENDING, 0.5, 100, 60)]
        self.channel = PollChannel(lambda: self.infos, self.hub, self.sent.append, interval=3.0, clock=self.clock)

    def tearDown(self):
        self.channel.close()

    def test_first_poll_is_immediate(self):
        self.assertEqual(self.channel.handle_message(poll([{'status': 'PENDING'}])), 0)

    def test_complete_downloads_poll_slower(self):
        self.channel.handle_message(poll([]))
        self.clock.now += 1
        pending_delay = PollChannel(lambda: [], self.hub, self.sent.append, clock=self.clock)
        pending_delay.handle_message(poll([]))
        self.clock.now += 1

        complete = self.channel.handle_message(poll([{'status': 'COMPLETE'}]))
        pending = pending_delay.handle_message(poll([{'status': 'PENDING'}]))
        pending_delay.close()

        self.assertAlmostEqual(complete, 3.0 * COMPLETE_DELAY_MULTIPLIER - 2)
        self.assertAlmostEqual(pending, 3.0 - 1)

    def test_invalid_poll_data(self):
        self.channel.handle_message(poll([]))
        delay = self.channel.handle_message(json.dumps({'type': 'poll', 'data': 'oops'}))
        self.assertAlmostEqual(delay, 3.0 * INVALID_POLL_DELAY_MULTIPLIER)

    def test_messages_without_reply(self):
        for raw in ('not json', '[1, 2]', json.dumps({'type': 'authenticate', 'token': 'x'}),
                    json.dumps({'type': 'subscribe'})):
            with self.subTest(raw=raw):
                self.assertIsNone(self.channel.handle_message(raw))

    def test_wake_all_preempts_delay(self):
        self.channel.handle_message(poll([]))
        delay = self.channel.handle_message(poll([]))
        self.assertGreater(delay, 10)

        timer = threading.Timer(0.05, self.hub.wake_all)
        timer.start()
        self.assertTrue(self.channel.wait(delay))
        timer.join()

        # The next reply after a wake-up is not throttled
        self.assertEqual(self.channel.handle_message(poll([])), 0)

    def test_reply(self):
        self.channel.reply()
        self.assertEqual(json.loads(self.sent[0]), {'data': [self.infos[0].to_dict()]})

    def test_reply_when_daemon_unavailable(self):
        def fail():
            raise DaemonUnavailableError("down")

        channel = PollChannel(fail, self.hub, self.sent.append, clock=self.clock)
        channel.reply()
        channel.close()
        self.assertEqual(json.loads(self.sent[0]), {'data': []})

    def test_serve_until_disconnect(self):
        messages = iter([poll([{'status': 'PENDING'}]), json.dumps({'type': 'authenticate'}), None])
        self.assertEqual(self.hub.connection_count, 1)
        self.channel.serve(lambda: next(messages))
        self.assertEqual(len(self.sent), 1)
        self.assertTrue(self.channel.closed)
        self.assertEqual(self.hub.connection_count, 0)


class TestPollChannelDisconnect(unittest.TestCase):
    """Test cases for clients which go away while a reply is pending."""

    def setUp(self):
        self.hub = NotificationHub()
        self.sent = []
        self.fetches = 0
        self.connected = threading.Event()
        self.connected.set()
        self.channel = PollChannel(self.fetch, self.hub, self.sent.append, interval=3.0,
                                   is_connected=self.connected.is_set)

    def tearDown(self):
        self.channel.close()

    def fetch(self):
        self.fetches += 1
        return []

    @mock.patch('services.notifications.WAIT_SLICE_SECONDS', 0.05)
    def test_disconnect_ends_pending_wait(self):
        timer = threading.Timer(0.1, self.connected.clear)
        timer.start()
        started = time.monotonic()
        self.assertFalse(self.channel.wait(60))
        timer.join()

        self.assertLess(time.monotonic() - started, 5)
        self.assertTrue(self.channel.closed)
        self.assertEqual(self.hub.connection_count, 0)

    def test_serve_does_not_reply_after_disconnect(self):
        messages = iter([poll([{'status': 'COMPLETE'}]), poll([{'status': 'COMPLETE'}])])

        def receive():
            message = next(messages, None)
            if self.fetches:
                self.connected.clear()
            return message

        self.channel.serve(receive)

        self.assertEqual(self.fetches, 1)
        self.assertEqual(len(self.sent), 1)
        self.assertTrue(self.channel.closed)

    def test_reply_after_disconnect(self):
        self.connected.clear()
        self.channel.reply()
        self.assertEqual(self.fetches, 0)
        self.assertEqual(self.sent, [])


if __name__ == '__main__':
    unittest.main()
