"""
Ledger of episodes which have been requested for download.
"""
import logging
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from models import DownloadedEpisode, show_key

logger = logging.getLogger(__name__)


class EpisodeLedger:
    """Persists which episodes have been acquired, independent of daemon state."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def _matches(show_name: str, season: int, episode: int):
        return and_(
            DownloadedEpisode.show_key == show_key(show_name),
            DownloadedEpisode.season == season,
            DownloadedEpisode.episode == episode,
        )

    def exists(self, show_id: int, show_name: str, season: int, episode: int) -> bool:
        """Check for a row by show id or case-insensitive show name."""
        db = self.session_factory()
        try:
            row = db.query(DownloadedEpisode).filter(
                DownloadedEpisode.season == season,
                DownloadedEpisode.episode == episode,
                or_(
                    DownloadedEpisode.show_id == show_id,
                    DownloadedEpisode.show_key == show_key(show_name),
                ),
            ).first()
            return row is not None
        finally:
            db.close()

    def create(self, show_id: int, show_name: str, season: int, episode: int) -> Optional[dict]:
        """
        Insert a ledger row.

        Returns:
            The created row as a dict, or None if the episode is already in the ledger.
        """
        db = self.session_factory()
        try:
            row = DownloadedEpisode(
                show_id=show_id,
                show_name=show_name,
                show_key=show_key(show_name),
                season=season,
                episode=episode
            )
            db.add(row)
            db.commit()
            return row.to_dict()
        except IntegrityError:
            db.rollback()
            logger.info(f"Ledger already contains show {show_id} S{season:02d}E{episode:02d}")
            return None
        finally:
            db.close()

    def delete(self, show_name: str, season: int, episode: int) -> int:
        """Delete rows for an episode, returning how many were removed."""
        db = self.session_factory()
        try:
            count = db.query(DownloadedEpisode).filter(
                self._matches(show_name, season, episode)
            ).delete(synchronize_session=False)
            db.commit()
            return count
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete_for_show_id(self, show_id: int, season: int, episode: int) -> int:
        db = self.session_factory()
        try:
            count = db.query(DownloadedEpisode).filter_by(
                show_id=show_id, season=season, episode=episode
            ).delete(synchronize_session=False)
            db.commit()
            return count
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_all(self) -> List[dict]:
        db = self.session_factory()
        try:
            rows = db.query(DownloadedEpisode).order_by(DownloadedEpisode.created_at.desc()).all()
            return [row.to_dict() for row in rows]
        finally:
            db.close()
