"""
Lookup and removal of completed downloads on disk.
"""
import os
import shutil
import logging
from typing import List, Optional

from models.episode import Episode
from utils.helpers import matches_episode_filename, parse_filename

logger = logging.getLogger(__name__)


class DownloadsDirectoryError(Exception):
    """The downloads directory could not be read or modified."""


class DownloadsDirectory:
    """The directory the torrent daemon downloads into."""

    def __init__(self, root: str):
        self.root = root

    def _resolve(self, relative_path: str) -> str:
        root = os.path.realpath(self.root)
        path = os.path.realpath(os.path.join(root, relative_path))
        if path == root or not path.startswith(root + os.sep):
            raise DownloadsDirectoryError(f"Refusing to access '{relative_path}' outside the downloads directory")
        return path

    def list_files(self) -> List[str]:
        """List every file below the root, as sorted paths relative to it."""
        if not os.path.isdir(self.root):
            raise DownloadsDirectoryError(f"Downloads directory '{self.root}' does not exist")
        files = []
        try:
            for directory, _, filenames in os.walk(self.root, onerror=self._raise):
                for filename in filenames:
                    files.append(os.path.relpath(os.path.join(directory, filename), self.root))
        except OSError as e:
            logger.error(f"Error loading downloaded episodes: {e}")
            raise DownloadsDirectoryError(str(e)) from e
        return sorted(files)

    @staticmethod
    def _raise(error: OSError):
        raise error

    def find_episode(self, episode: Episode, allow_non_mp4: bool = False) -> Optional[str]:
        """
        Search the downloads for a video file of a sanitized episode.

        Returns:
            Absolute path of the first match, or None.

        Raises:
            DownloadsDirectoryError: if the directory could not be read
        """
        search = parse_filename(f"{episode.show_name} {episode.serialized}")
        logger.debug(f"Searching for downloaded episode: '{search}'...")
        for relative_path in self.list_files():
            if matches_episode_filename(relative_path, search, allow_non_mp4):
                return os.path.join(self.root, relative_path)
        return None

    def relative_name(self, path: str) -> str:
        return os.path.relpath(path, self.root)

    def remove(self, relative_path: str) -> None:
        """
        Remove a downloaded file or directory.

        Raises:
            DownloadsDirectoryError: if nothing could be removed
        """
        path = self._resolve(relative_path)
        if not os.path.lexists(path):
            logger.info(f"Nothing to remove at '{relative_path}'")
            return
        try:
            if os.path.isdir(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
        except OSError as e:
            logger.error(f"Could not remove '{path}': {e}")
            raise DownloadsDirectoryError(str(e)) from e
        logger.info(f"Removed downloaded files '{relative_path}'")
