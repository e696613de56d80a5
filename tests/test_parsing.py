"""
Unit tests for indexer parsing utilities and search result tables.
"""
import unittest

from bs4 import BeautifulSoup

from indexer.base import TorrentIndexer, select_top_result
from indexer.eztv import Eztv
from indexer.parsing import get_anchor_href, parse_size, to_number
from models.episode import Episode, SearchResult

EZTV_HTML = """
<html><body>
<table class="forum_header_border" name="hidebysize">
  <tr><td colspan="6">Search results</td></tr>
  <tr>
    <td>Show</td><td>Episode Name</td><td>Dload</td><td>Size</td><td>Released</td><td>Seeds</td>
  </tr>
  <tr>
    <td><a href="/shows/1/chicago-fire/"><img src="icon.png"></a></td>
    <td><a href="/ep/1/">Chicago Fire S13E15 1080p WEB h264-ETHEL</a></td>
    <td><a href="magnet:?xt=urn:btih:aaa">M</a><a href="https://zoink.ch/torrent/a.torrent">T</a></td>
    <td>2.67 GB</td>
    <td>2 days</td>
    <td>154</td>
  </tr>
  <tr>
    <td><a href="/shows/1/chicago-fire/"><img src="icon.png"></a></td>
    <td><a href="/ep/2/">Chicago Fire S13E15 720p WEB h264-SYNCOPY</a></td>
    <td><a href="https://zoink.ch/torrent/b.torrent"></a></td>
    <td>811.00 MB</td>
    <td>2 days</td>
    <td>-</td>
  </tr>
  <tr><td colspan="6">Advertisement</td></tr>
</table>
</body></html>
"""


def result(size, seeders=0, leechers=0, name=''):
    return SearchResult(name=name, link=f"magnet:{name}", size=size, seeders=seeders, leechers=leechers)


class TestParseSize(unittest.TestCase):
    """Test cases for parse_size."""

    def test_parse_size(self):
        test_cases = [
            ("309.15 KB", 309150.0),
            ("347 B", 347.0),
            ("2.67 GB", 2.67e9),
            ("1 TB", 1e12),
        ]

        for text, expected in test_cases:
            with self.subTest(text=text):
                self.assertAlmostEqual(parse_size(text), expected)

    def test_unparseable_size(self):
        for text in ("", "unknown", "12 XB"):
            with self.subTest(text=text):
                self.assertIsNone(parse_size(text))

    def test_to_number(self):
        test_cases = [
            ("154", 154),
            ("1.5", 1.5),
            ("-", 0),
            ("nan", 0),
            ("inf", 0),
        ]

        for text, expected in test_cases:
            with self.subTest(text=text):
                self.assertEqual(to_number(text), expected)

    def test_get_anchor_href(self):
        soup = BeautifulSoup('<td><a href="magnet:?xt=1">x</a></td><td>plain</td>', 'html.parser')
        with_anchor, without_anchor = soup.find_all('td')
        self.assertEqual(get_anchor_href(with_anchor), "magnet:?xt=1")
        self.assertEqual(get_anchor_href(without_anchor), "?")


class TestSelectTopResult(unittest.TestCase):
    """Test cases for select_top_result."""

    def test_empty_results(self):
        self.assertIsNone(select_top_result([]))

    def test_no_seeders_picks_most_leechers(self):
        results = [result(100, leechers=2, name='a'), result(200, leechers=9, name='b'), result(300, name='c')]
        self.assertEqual(select_top_result(results).name, 'b')

    def test_prefers_seeded_results_below_mean_size(self):
        results = [
            result(3000, seeders=500, name='huge'),
            result(900, seeders=40, name='typical'),
            result(1000, seeders=80, name='popular'),
            result(950, seeders=10, name='unpopular'),
            result(10, seeders=900, name='tiny'),
        ]
        top = select_top_result(results)
        self.assertEqual(top.name, 'popular')
        sizes = [r.size for r in results]
        self.assertLess(top.size, sum(sizes) / len(sizes))

    def test_identical_sizes_have_no_candidates(self):
        results = [result(500, seeders=3), result(500, seeders=7)]
        self.assertIsNone(select_top_result(results))


class TestEztv(unittest.TestCase):
    """Test cases for the EZTV results table."""

    def setUp(self):
        self.indexer = Eztv()

    def test_build_query(self):
        test_cases = [
            (Episode("Chicago Fire", 13, 15), "chicago-fire-s13e15"),
            (Episode("Doctor.Who", 1, 2), "doctor-who-s01e02"),
            (Episode("  Mr Robot ", 4, 10), "mr-robot-s04e10"),
        ]

        for episode, expected in test_cases:
            with self.subTest(episode=episode):
                self.assertEqual(TorrentIndexer.build_query(episode), expected)

    def test_parse_search_results(self):
        results = self.indexer.parse_search_results(BeautifulSoup(EZTV_HTML, 'html.parser'))

        self.assertEqual(len(results), 2)
        first, second = results
        self.assertEqual(first.name, "Chicago Fire S13E15 1080p WEB h264-ETHEL")
        self.assertEqual(first.link, "magnet:?xt=urn:btih:aaa")
        self.assertEqual(first.size_human, "2.67 GB")
        self.assertAlmostEqual(first.size, 2.67e9)
        self.assertEqual(first.seeders, 154)
        self.assertEqual(first.type, "TV")
        self.assertEqual(second.link, "https://zoink.ch/torrent/b.torrent")
        self.assertEqual(second.seeders, 0)

    def test_search_url(self):
        self.assertEqual(Eztv("https://eztv.example/search/").get_search_url("a-s01e01"),
                         "https://eztv.example/search/a-s01e01")


if __name__ == '__main__':
    unittest.main()
