"""
Base torrent indexer and the shared top result selection.
"""
import math
import logging
from typing import Dict, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from models.episode import Episode, SearchResult
from utils.helpers import sanitize_show_name
from .parsing import get_anchor_href, parse_size, to_number

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = ('files', 'seeders', 'leechers')


class IndexerError(Exception):
    """The indexer could not be queried."""


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _standard_deviation(values: Sequence[float], mean: float) -> float:
    return math.sqrt(_mean([(value - mean) ** 2 for value in values]))


def select_top_result(results: List[SearchResult]) -> Optional[SearchResult]:
    """
    Select the best torrent out of an unsorted list of results.

    Well-seeded releases of a typical size are preferred. Results at or above the
    mean size, or more than one standard deviation below it, are rejected.
    """
    if not results:
        logger.warning("Passed empty results list to select_top_result")
        return None
    if all(result.seeders == 0 for result in results):
        logger.warning("All torrent search results have 0 seeders")
        # Leechers might still turn out to be peers
        return max(results, key=lambda result: result.leechers)

    sizes = [result.size for result in results]
    mean = _mean(sizes)
    sigma = _standard_deviation(sizes, mean)
    by_seeders = sorted(results, key=lambda result: result.seeders, reverse=True)
    # size < mean implies sigma > 0
    candidates = [
        result for result in by_seeders
        if result.size < mean and (result.size - mean) / sigma > -1
    ]
    return candidates[0] if candidates else None


class TorrentIndexer:
    """Searches a torrent index website for episode releases."""

    service_url_base: str = ''
    cookie_header: str = ''

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 20):
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36'
        })
        self.timeout = timeout

    def get_search_url(self, query: str) -> str:
        return self.service_url_base + query

    @staticmethod
    def build_query(episode: Episode) -> str:
        """E.g. `chicago-fire-s13e15`."""
        query = f"{sanitize_show_name(episode.show_name)}-{episode.serialized}"
        return '-'.join(query.split()).lower()

    def parse_search_results(self, soup: BeautifulSoup) -> List[SearchResult]:
        raise NotImplementedError

    def _fetch_raw_results(self, query: str) -> Optional[BeautifulSoup]:
        if not query:
            logger.error("Empty query string when searching for torrents.")
            return None
        url = self.get_search_url(query)
        headers = {'Cookie': self.cookie_header} if self.cookie_header else {}
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Torrent indexer request failed: {e}")
            raise IndexerError(str(e)) from e
        return BeautifulSoup(response.text, 'html.parser')

    def search(self, episode: Episode) -> List[SearchResult]:
        """
        Search the indexer for an episode.

        Raises:
            IndexerError: if the indexer could not be reached
        """
        query = self.build_query(episode)
        logger.info(f"Searching for '{query}'.")
        soup = self._fetch_raw_results(query)
        if soup is None:
            return []
        return self.parse_search_results(soup)

    def select_top_result(self, results: List[SearchResult]) -> Optional[SearchResult]:
        return select_top_result(results)

    def find_top_result(self, episode: Episode) -> Optional[SearchResult]:
        """Find the top torrent for an episode; indexer failures count as no results."""
        try:
            results = self.search(episode)
        except IndexerError:
            return None
        if not results:
            logger.warning("No search results found.")
            return None
        return self.select_top_result(results)


class TableStyledTorrentIndexer(TorrentIndexer):
    """Indexer whose search results are laid out in an HTML table."""

    table_css_selector: str = ''
    table_header_translations: Dict[str, str] = {}
    # 0 means the header cells are `th` elements inside `thead`
    table_header_row: int = 0

    def fix_result_properties(self, result: SearchResult, columns: List[Tag]) -> None:
        """Hook for indexer-specific amendments to a parsed result."""

    def _header_selector(self) -> str:
        if self.table_header_row == 0:
            return f"{self.table_css_selector} thead tr th"
        return f"{self.table_css_selector} tr:nth-of-type({self.table_header_row}) td"

    def parse_search_results(self, soup: BeautifulSoup) -> List[SearchResult]:
        header_cells = soup.select(self._header_selector())
        headers: Dict[int, str] = {}
        for index, cell in enumerate(header_cells):
            key = cell.get_text().strip()
            field_name = self.table_header_translations.get(key)
            if not field_name:
                logger.warning(f"Unknown parsed table header value '{key}'.")
                continue
            headers[index] = field_name

        results = []
        rows = soup.select(f"{self.table_css_selector} tr")
        for row in rows[self.table_header_row:]:
            columns = [child for child in row.children if isinstance(child, Tag)]
            if len(columns) != len(header_cells):
                continue
            result = SearchResult()
            for index, column in enumerate(columns):
                field_name = headers.get(index)
                if field_name is None:
                    continue
                value = column.get_text().strip() or get_anchor_href(column)
                if field_name in NUMERIC_FIELDS:
                    setattr(result, field_name, to_number(value))
                elif field_name == 'size':
                    size = parse_size(value)
                    if size is None:
                        logger.warning(f"Obtained null numeric size value: {value}")
                        continue
                    result.size_human = value
                    result.size = size
                else:
                    setattr(result, field_name, value)
            self.fix_result_properties(result, columns)
            if result.type != 'TV':
                logger.debug(f"Discarding non-TV result: {result}")
                continue
            results.append(result)
        return results
