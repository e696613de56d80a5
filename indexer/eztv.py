"""
EZTV torrent indexer.
"""
from typing import List, Optional

import requests
from bs4.element import Tag

from models.episode import SearchResult
from .base import TableStyledTorrentIndexer


class Eztv(TableStyledTorrentIndexer):
    """Scrapes the EZTV search results table."""

    service_url_base = 'https://eztvx.to/search/'
    # Makes EZTV render magnet links in the results table
    cookie_header = 'layout=def_wlinks'
    table_css_selector = 'table.forum_header_border[name="hidebysize"]'
    table_header_row = 2
    table_header_translations = {
        'Show': 'type',
        'Episode Name': 'name',
        'Dload': 'link',
        'Size': 'size',
        'Released': 'age',
        'Seeds': 'seeders',
    }

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None):
        super().__init__(session=session)
        if base_url:
            self.service_url_base = base_url

    def fix_result_properties(self, result: SearchResult, columns: List[Tag]) -> None:
        # Every EZTV result is a TV episode; the first column is only the show's icon
        result.type = 'TV'
        for column in columns:
            magnet = column.select_one('a[href^="magnet:"]')
            if magnet is not None:
                result.link = str(magnet['href'])
                break
        else:
            if result.link == '?':
                result.link = None
