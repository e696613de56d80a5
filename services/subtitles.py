"""
OpenSubtitles API client with an on-disk subtitle cache.
"""
import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import requests

from models.episode import Episode

logger = logging.getLogger(__name__)

SUBTITLES_API_URL = 'https://api.opensubtitles.com/api/v1'
SUBTITLES_DEFAULT_LANGUAGE = 'en'
SUBTITLES_FILENAME = 'subtitles.vtt'

ERROR_MESSAGES = {
    'not_configured': "The subtitle service was not configured correctly. Please contact the server administrator.",
    'not_reachable': "The subtitle service is not reachable.",
    'malformatted': "The subtitles for this request are malformatted.",
    'not_found': "There are no subtitles for this episode.",
    'download_error': "Subtitles for this episode were found but could not be downloaded. Try again later.",
    'malformatted_response': "Subtitles for this episode were found but malformatted. Try again later.",
    'file_download_error': "Downloading the subtitles failed. Try again later.",
    'directory_error': "Could not save the subtitles to the server.",
}


class SubtitleStatus(Enum):
    OK = 200
    NOT_FOUND = 404
    FAILED = 500
    UNREACHABLE = 503


@dataclass
class SubtitleOutcome:
    status: SubtitleStatus
    path: Optional[str] = None
    message: str = ''
    status_code: Optional[int] = None

    @property
    def http_status(self) -> int:
        return self.status_code or self.status.value


class SubtitleClient:
    """Client for the OpenSubtitles REST API."""

    def __init__(self, cache_path: str, api_key: Optional[str] = None, username: Optional[str] = None,
                 password: Optional[str] = None, dev_api_key: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: float = 30):
        self.cache_path = cache_path
        self.api_key = api_key
        self.username = username
        self.password = password
        self.dev_api_key = dev_api_key
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'LiveSeries API v1.0.0',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        })
        self.timeout = timeout
        self.base_url: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> 'SubtitleClient':
        return cls(
            settings.subtitles_path,
            api_key=settings.subtitles_api_key,
            username=settings.subtitles_api_user,
            password=settings.subtitles_api_password,
            dev_api_key=settings.subtitles_api_key_dev,
        )

    @property
    def is_configured(self) -> bool:
        return self.base_url is not None

    def login(self) -> bool:
        """Authenticate against the API; a developer key needs no login."""
        if self.dev_api_key:
            self.session.headers['Api-Key'] = self.dev_api_key
            self.base_url = SUBTITLES_API_URL
            logger.debug("Logged in to OpenSubtitles API as developer")
            return True
        if not self.api_key or not self.username or not self.password:
            logger.error("No SUBTITLES_API_KEY, SUBTITLES_API_USER or SUBTITLES_API_PASSWORD environment variable set")
            return False
        try:
            response = self.session.post(
                f"{SUBTITLES_API_URL}/login",
                json={'username': self.username, 'password': self.password},
                headers={'Api-Key': self.api_key},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Could not log in to the OpenSubtitles API: {e}")
            return False
        except ValueError:
            logger.error("Invalid OpenSubtitles login response")
            return False
        if not isinstance(data, dict) or not data.get('base_url') or not data.get('token'):
            logger.error(f"Invalid OpenSubtitles API response: {data}")
            return False
        self.session.headers.update({
            'Api-Key': self.api_key,
            'Authorization': f"Bearer {data['token']}",
        })
        self.base_url = f"https://{data['base_url']}/api/v1"
        logger.info("Logged in to OpenSubtitles API")
        return True

    def cache_directory(self, episode: Episode) -> str:
        return os.path.join(self.cache_path, episode.show_name, str(episode.season), str(episode.episode))

    def get_subtitles(self, episode: Episode, filename: str, language: str = SUBTITLES_DEFAULT_LANGUAGE) -> SubtitleOutcome:
        """Return cached subtitles for an episode, downloading them on a cache miss."""
        directory = self.cache_directory(episode)
        filepath = os.path.join(directory, SUBTITLES_FILENAME)
        if os.path.isfile(filepath):
            return SubtitleOutcome(SubtitleStatus.OK, path=filepath)
        return self.download(episode, filename, language.lower(), directory)

    @staticmethod
    def choose_subtitle(results: List[dict], query: str, language: str) -> dict:
        """
        Pick the best subtitle out of the search results.

        Results naming the exact release come first, then the requested language
        is preferred, falling back to English and finally the most downloaded file.
        """
        def attributes(result):
            return result.get('attributes') or {}

        ranked = sorted(results, key=lambda result: attributes(result).get('download_count') or 0, reverse=True)
        close = [
            result for result in ranked
            if query in (attributes(result).get('comments') or '') or query in (attributes(result).get('release') or '')
        ]
        matches = close + [result for result in ranked if result not in close]
        for wanted in (language, SUBTITLES_DEFAULT_LANGUAGE):
            for result in matches:
                if attributes(result).get('language') == wanted:
                    return result
        return matches[0]

    def download(self, episode: Episode, filename: str, language: str, directory: str) -> SubtitleOutcome:
        if not self.is_configured:
            return SubtitleOutcome(SubtitleStatus.FAILED, message=ERROR_MESSAGES['not_configured'])

        logger.debug(f"Searching for subtitles '{filename}' {episode.serialized}...")
        try:
            response = self.session.get(
                f"{self.base_url}/subtitles",
                params={
                    'query': filename,
                    'type': 'episode',
                    'season_number': episode.season,
                    'episode_number': episode.episode,
                },
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error getting subtitles: {e}")
            return SubtitleOutcome(SubtitleStatus.UNREACHABLE, message=ERROR_MESSAGES['not_reachable'])
        if not response.ok:
            logger.debug(f"Non-OK subtitles response: {response.status_code} {response.text[:200]}")
            return SubtitleOutcome(
                SubtitleStatus.FAILED,
                message=f"Subtitle service responded with {response.status_code}",
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        results = data.get('data') if isinstance(data, dict) else None
        if not isinstance(results, list):
            logger.error(f"Received malformatted response from OpenSubtitles: {data}")
            return SubtitleOutcome(SubtitleStatus.FAILED, message=ERROR_MESSAGES['malformatted'])
        if not data.get('total_count') or not results:
            return SubtitleOutcome(SubtitleStatus.NOT_FOUND, message=ERROR_MESSAGES['not_found'])

        chosen = self.choose_subtitle(results, filename, language)
        files = (chosen.get('attributes') or {}).get('files') or []
        file_id = files[0].get('file_id') if files else None
        if file_id is None:
            return SubtitleOutcome(SubtitleStatus.FAILED, message=ERROR_MESSAGES['malformatted_response'])

        logger.debug(f"Downloading subtitles with id '{file_id}'")
        try:
            response = self.session.post(
                f"{self.base_url}/download",
                json={
                    'file_id': int(file_id),
                    'file_name': f"{episode.show_name} {episode.serialized}",
                    'sub_format': 'webvtt',
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            link = response.json().get('link')
        except (requests.exceptions.RequestException, ValueError, AttributeError) as e:
            logger.error(f"Requesting the subtitle download failed: {e}")
            return SubtitleOutcome(SubtitleStatus.FAILED, message=ERROR_MESSAGES['download_error'])
        if not link:
            return SubtitleOutcome(SubtitleStatus.FAILED, message=ERROR_MESSAGES['malformatted_response'])

        try:
            response = requests.get(link, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Request GET {link} failed: {e}")
            return SubtitleOutcome(SubtitleStatus.FAILED, message=ERROR_MESSAGES['file_download_error'])

        filepath = os.path.join(directory, SUBTITLES_FILENAME)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(filepath, 'wb') as f:
                f.write(response.content)
        except OSError as e:
            logger.error(f"Could not write subtitles to {directory}: {e}")
            return SubtitleOutcome(SubtitleStatus.FAILED, message=ERROR_MESSAGES['directory_error'])
        return SubtitleOutcome(SubtitleStatus.OK, path=filepath)
