import uuid
from datetime import date, datetime

from sqlalchemy import (Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text,
                        UniqueConstraint, create_engine)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def _uuid() -> str:
    return uuid.uuid4().hex


class UserRecord(Base):
    """Reader account"""
    __tablename__ = 'users'

    id = Column(String(64), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=True)
    gender = Column(String(10))  # male / female
    is_premium = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.now)


class UserPhotoRecord(Base):
    """Reference photo for identity-preserving images"""
    __tablename__ = 'user_photos'

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), ForeignKey('users.id'), index=True, nullable=False)
    photo_url = Column(String(1000), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    uploaded_at = Column(DateTime, default=datetime.now)


class StoryArcRecord(Base):
    """30-day serialized story owned by one user"""
    __tablename__ = 'story_arcs'

    id = Column(String(64), primary_key=True, default=_uuid)
    user_id = Column(String(64), ForeignKey('users.id'), index=True, nullable=False)
    template_id = Column(String(100), nullable=False)
    status = Column(String(20), default="active", nullable=False)  # active, paused, completed
    current_day = Column(Integer, default=1, nullable=False)
    total_days = Column(Integer, default=30, nullable=False)

    # optional user-chosen character names
    protagonist_name = Column(String(100))
    counterpart_name = Column(String(100))

    started_at = Column(DateTime, default=datetime.now, nullable=False)
    completed_at = Column(DateTime)


class StoryEpisodeRecord(Base):
    """One day's text and image within an arc"""
    __tablename__ = 'story_episodes'
    __table_args__ = (UniqueConstraint('arc_id', 'episode_number', name='uq_episode_arc_day'),)

    id = Column(String(64), primary_key=True, default=_uuid)
    arc_id = Column(String(64), ForeignKey('story_arcs.id'), index=True, nullable=False)
    episode_number = Column(Integer, nullable=False)

    title = Column(String(300))
    text = Column(Text)
    image_url = Column(String(1000))
    scene_description = Column(Text)
    feedback = Column(String(10), default="none", nullable=False)  # like, neutral, dislike, none

    text_provider = Column(String(50))
    image_provider = Column(String(50))
    text_duration_ms = Column(Integer, default=0)
    image_duration_ms = Column(Integer, default=0)
    cost_estimate = Column(Float, default=0.0)

    delivered_at = Column(DateTime, default=datetime.now, nullable=False)


class ContentGenerationRecord(Base):
    """Quota ledger: one row per generated episode of a non-premium user"""
    __tablename__ = 'content_generations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey('users.id'), index=True, nullable=False)
    generated_on = Column(Date, default=date.today, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now)


def create_session_factory(database_url: str, echo: bool = False) -> sessionmaker:
    """Engine plus session factory; in-memory SQLite shares one connection."""
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(session_factory: sessionmaker):
    """Create missing tables"""
    Base.metadata.create_all(bind=session_factory.kw["bind"])
