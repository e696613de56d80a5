"""
Configuration settings for the LiveSeries torrent service.
"""
import os
from typing import Optional


def _download_path() -> str:
    path = os.getenv('TR_DOWNLOAD_PATH', '').rstrip('/') or '/var/lib/transmission-daemon/downloads'
    if os.getenv('TR_APPEND_COMPLETE_TO_DOWNLOAD_PATH', 'false').lower() == 'true':
        path += '/complete'
    return path + '/'


def _credentials() -> tuple:
    username = os.getenv('TR_USER')
    password = os.getenv('TR_PASSWORD')
    if username and password:
        return username, password
    # Older deployments pass a single user:password pair
    legacy = os.getenv('TR_AUTH')
    if legacy and ':' in legacy:
        username, password = legacy.split(':', 1)
        return username, password
    return None, None


class Settings:
    """Application configuration settings."""

    # Transmission settings
    transmission_url: str = os.getenv('TRANSMISSION_URL', 'http://localhost:9091/transmission/rpc')
    transmission_username: Optional[str]
    transmission_password: Optional[str]
    transmission_username, transmission_password = _credentials()
    transmission_timeout: float = float(os.getenv('TRANSMISSION_TIMEOUT', '30'))
    download_path: str = _download_path()

    # Indexer settings
    eztv_url: str = os.getenv('EZTV_URL', 'https://eztvx.to/search/')

    # Subtitle settings
    subtitles_path: str = os.getenv('SUBTITLES_PATH', '/var/cache/liveseries/subtitles')
    subtitles_api_key: Optional[str] = os.getenv('SUBTITLES_API_KEY')
    subtitles_api_key_dev: Optional[str] = os.getenv('SUBTITLES_API_KEY_DEV')
    subtitles_api_user: Optional[str] = os.getenv('SUBTITLES_API_USER')
    subtitles_api_password: Optional[str] = os.getenv('SUBTITLES_API_PASSWORD')

    # Live notifications
    ws_message_interval: float = float(os.getenv('WS_MESSAGE_INTERVAL', '3'))

    # Server settings
    port: int = int(os.getenv('PORT', '5017'))
    log_level: str = os.getenv('LOG_LEVEL', 'INFO')

    # Database settings
    @property
    def database_url(self) -> str:
        return os.getenv('DATABASE_URL', 'sqlite:///liveseries.db')

    # Static responses (videos, subtitles) may be cached by browsers for 30 days
    static_cache_duration: int = 30 * 24 * 3600


# Global settings instance
settings = Settings()
