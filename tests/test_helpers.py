"""
Unit tests for episode naming helpers and torrent record mapping.
"""
import unittest

from models.episode import ConvertedTorrentInfo, DownloadStatus, Episode, TorrentRecord
from torrents.mapping import (
    UnmappableTorrentError,
    convert_all,
    get_download_status,
    to_converted_info,
    to_torrent_record,
)
from utils.helpers import (
    deserialize_episode,
    matches_episode_filename,
    sanitize_show_name,
    serialize_episode,
)


class TestHelpers(unittest.TestCase):
    """Test cases for naming helpers."""

    def test_serialize_episode(self):
        test_cases = [
            ((3, 4), "S03E04"),
            ((13, 15), "S13E15"),
            ((1, 120), "S01E120"),
        ]

        for (season, episode), expected in test_cases:
            with self.subTest(season=season, episode=episode):
                self.assertEqual(serialize_episode(season, episode), expected)
                self.assertEqual(deserialize_episode(expected), (season, episode))

    def test_deserialize_rejects_other_forms(self):
        for value in ("1x02", "S01", "Season 1 Episode 2", ""):
            with self.subTest(value=value):
                self.assertIsNone(deserialize_episode(value))

    def test_sanitize_show_name(self):
        test_cases = [
            ("Chicago.Fire", "Chicago Fire"),
            ("Chicago+Fire", "Chicago Fire"),
            ("Star Trek:/Picard", "Star TrekPicard"),
            (" The Office. ", "The Office"),
        ]

        for name, expected in test_cases:
            with self.subTest(name=name):
                self.assertEqual(sanitize_show_name(name), expected)

    def test_matches_episode_filename(self):
        search = "chicago fire s13e15"
        test_cases = [
            ("Chicago.Fire.S13E15.1080p.mp4", False, True),
            ("Chicago Fire S13E15/Chicago.Fire.S13E15.720p.mkv", False, False),
            ("Chicago Fire S13E15/Chicago.Fire.S13E15.720p.mkv", True, True),
            ("Chicago.Fire.S13E15.nfo", True, False),
            ("Chicago.Fire.S13E16.mp4", True, False),
        ]

        for path, allow_non_mp4, expected in test_cases:
            with self.subTest(path=path, allow_non_mp4=allow_non_mp4):
                self.assertEqual(matches_episode_filename(path, search, allow_non_mp4), expected)


class TestTorrentMapping(unittest.TestCase):
    """Test cases for daemon record conversion."""

    def test_to_converted_info(self):
        record = TorrentRecord(id=7, name="Chicago.Fire.S13E15.1080p.WEB.h264", status=4,
                               rate_download=1000, percent_done=0.5, eta=60)
        info = to_converted_info(record)
        self.assertEqual(info.show_name, "Chicago Fire")
        self.assertEqual((info.season, info.episode), (13, 15))
        self.assertEqual(info.status, DownloadStatus.PENDING)
        self.assertEqual(info.to_dict()['status'], "PENDING")
        self.assertEqual(info.progress, 0.5)

    def test_status_codes(self):
        test_cases = [
            (0, DownloadStatus.STOPPED),
            (2, DownloadStatus.VERIFYING),
            (4, DownloadStatus.PENDING),
            (6, DownloadStatus.COMPLETE),
            (42, DownloadStatus.UNKNOWN),
            ("6", DownloadStatus.UNKNOWN),
            ([6], DownloadStatus.UNKNOWN),
            (True, DownloadStatus.UNKNOWN),
            (None, DownloadStatus.UNKNOWN),
        ]

        for code, expected in test_cases:
            with self.subTest(code=code):
                self.assertEqual(get_download_status(code), expected)

    def test_unmappable_names(self):
        for name in (None, "", 123, b"The.Bear.S03E01", "ubuntu-24.04-desktop-amd64.iso"):
            with self.subTest(name=name):
                with self.assertRaises(UnmappableTorrentError):
                    to_converted_info(TorrentRecord(id=1, name=name, status=6))

    def test_convert_all_skips_unmappable(self):
        records = [
            TorrentRecord(id=1, name="ubuntu.iso", status=6),
            TorrentRecord(id=2, name="The.Bear.S03E01.720p", status=6),
            TorrentRecord(id=3, name=123, status=6),
            TorrentRecord(id=4, name="The.Bear.S03E02.720p", status={"code": 6}),
        ]
        infos = convert_all(records)
        self.assertEqual([(info.episode, info.status) for info in infos],
                         [(1, DownloadStatus.COMPLETE), (2, DownloadStatus.UNKNOWN)])

    def test_to_torrent_record(self):
        info = ConvertedTorrentInfo("The Bear", 3, 1, DownloadStatus.COMPLETE, 1.0, 0, -1)
        record = to_torrent_record(info, 9)
        self.assertEqual(record.name, "The.Bear.S03E01")
        self.assertEqual(to_converted_info(record), info)

    def test_episode_describe(self):
        episode = Episode("Chicago.Fire", 13, 15).sanitized()
        self.assertEqual(episode.describe(), "'Chicago Fire S13E15'")


if __name__ == '__main__':
    unittest.main()
