"""
Data models for the LiveSeries torrent service.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import create_engine, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class DownloadedEpisode(Base):
    """An episode which has been requested for download."""
    __tablename__ = 'downloaded_episodes'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    show_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    show_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Case-folded show name; SQL lower() only folds ASCII
    show_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    episode: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('show_id', 'season', 'episode', name='uq_downloaded_episode'),
        UniqueConstraint('show_key', 'season', 'episode', name='uq_downloaded_episode_show_name'),
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'showId': self.show_id,
            'showName': self.show_name,
            'season': self.season,
            'episode': self.episode,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DownloadedEpisode(show_name={self.show_name}, season={self.season}, episode={self.episode})>"


def show_key(show_name: str) -> str:
    """Comparison key for show names in the ledger."""
    return ' '.join(show_name.split()).casefold()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the database engine; in-memory SQLite shares one connection across threads."""
    if database_url in ('sqlite://', 'sqlite:///:memory:'):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine: Engine) -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=engine)


def drop_tables(engine: Engine) -> None:
    """Drop all tables."""
    Base.metadata.drop_all(bind=engine)


__all__ = [
    'Base',
    'DownloadedEpisode',
    'show_key',
    'build_engine',
    'build_session_factory',
    'create_tables',
    'drop_tables',
]
