import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from ..exceptions import NotFoundError
from ..schemas import ArcStatus, Episode, Feedback, StoryArc, User
from .models import (ContentGenerationRecord, StoryArcRecord, StoryEpisodeRecord, UserPhotoRecord,
                     UserRecord)

logger = logging.getLogger(__name__)


class _SessionMixin:

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def session(self):
        """Session scope: commit on success, roll back on error, always close."""
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class StoryRepository(_SessionMixin):
    """CRUD for users, arcs and episodes; returns pydantic domain objects."""

    # ---------- users ----------

    def get_user(self, user_id: str) -> Optional[User]:
        with self.session() as db:
            record = db.get(UserRecord, user_id)
            return User.model_validate(record) if record else None

    def create_user(self, email: Optional[str] = None, gender: Optional[str] = None,
                    is_premium: bool = False, user_id: Optional[str] = None) -> User:
        with self.session() as db:
            record = UserRecord(email=email, gender=gender, is_premium=is_premium)
            if user_id:
                record.id = user_id
            db.add(record)
            db.flush()
            return User.model_validate(record)

    # ---------- arcs ----------

    def get_arc_by_id(self, arc_id: str) -> Optional[StoryArc]:
        with self.session() as db:
            record = db.get(StoryArcRecord, arc_id)
            return StoryArc.model_validate(record) if record else None

    def get_active_arc(self, user_id: str) -> Optional[StoryArc]:
        with self.session() as db:
            record = (
                db.query(StoryArcRecord)
                .filter(StoryArcRecord.user_id == user_id, StoryArcRecord.status == ArcStatus.ACTIVE.value)
                .order_by(StoryArcRecord.started_at.desc())
                .first()
            )
            return StoryArc.model_validate(record) if record else None

    def list_active_arcs(self) -> List[StoryArc]:
        with self.session() as db:
            records = (
                db.query(StoryArcRecord)
                .filter(StoryArcRecord.status == ArcStatus.ACTIVE.value)
                .order_by(StoryArcRecord.started_at)
                .all()
            )
            return [StoryArc.model_validate(r) for r in records]

    def create_arc(self, user_id: str, template_id: str, total_days: int = 30,
                   protagonist_name: Optional[str] = None,
                   counterpart_name: Optional[str] = None) -> StoryArc:
        with self.session() as db:
            record = StoryArcRecord(
                user_id=user_id,
                template_id=template_id,
                status=ArcStatus.ACTIVE.value,
                current_day=1,
                total_days=total_days,
                protagonist_name=protagonist_name,
                counterpart_name=counterpart_name,
                started_at=datetime.now(),
            )
            db.add(record)
            db.flush()
            logger.info("Created arc %s for user %s (template %s)", record.id, user_id, template_id)
            return StoryArc.model_validate(record)

    def _arc_record(self, db, arc_id: str) -> StoryArcRecord:
        record = db.get(StoryArcRecord, arc_id)
        if record is None:
            raise NotFoundError("arc", arc_id)
        return record

    def _advance(self, record: StoryArcRecord):
        record.current_day += 1
        if record.current_day > record.total_days:
            record.status = ArcStatus.COMPLETED.value
            record.completed_at = datetime.now()
            logger.info("Arc %s completed at day %d", record.id, record.current_day)

    def set_arc_status(self, arc_id: str, status: ArcStatus) -> StoryArc:
        with self.session() as db:
            record = self._arc_record(db, arc_id)
            record.status = status.value
            db.flush()
            return StoryArc.model_validate(record)

    def complete_arc(self, arc_id: str, completed_at: Optional[datetime] = None) -> StoryArc:
        with self.session() as db:
            record = self._arc_record(db, arc_id)
            record.status = ArcStatus.COMPLETED.value
            record.completed_at = completed_at or datetime.now()
            db.flush()
            logger.info("Arc %s completed at day %d", arc_id, record.current_day)
            return StoryArc.model_validate(record)

    # ---------- episodes ----------

    def get_episodes_by_arc(self, arc_id: str) -> List[Episode]:
        with self.session() as db:
            records = (
                db.query(StoryEpisodeRecord)
                .filter(StoryEpisodeRecord.arc_id == arc_id)
                .order_by(StoryEpisodeRecord.episode_number)
                .all()
            )
            return [Episode.model_validate(r) for r in records]

    def get_episode(self, arc_id: str, episode_number: int) -> Optional[Episode]:
        with self.session() as db:
            record = (
                db.query(StoryEpisodeRecord)
                .filter(StoryEpisodeRecord.arc_id == arc_id,
                        StoryEpisodeRecord.episode_number == episode_number)
                .first()
            )
            return Episode.model_validate(record) if record else None

    def get_episode_by_id(self, episode_id: str) -> Optional[Episode]:
        with self.session() as db:
            record = db.get(StoryEpisodeRecord, episode_id)
            return Episode.model_validate(record) if record else None

    def create_episode_and_advance(self, arc_id: str, episode_number: int, **fields) -> Tuple[Episode, StoryArc]:
        """
        Insert the day's episode and move the arc to its next day, completing
        it past the last day. Both writes commit together or not at all.
        """
        with self.session() as db:
            arc = self._arc_record(db, arc_id)
            record = StoryEpisodeRecord(
                arc_id=arc_id,
                episode_number=episode_number,
                delivered_at=datetime.now(),
                **fields,
            )
            db.add(record)
            db.flush()
            self._advance(arc)
            db.flush()
            return Episode.model_validate(record), StoryArc.model_validate(arc)

    def update_episode(self, episode_id: str, **fields) -> Episode:
        with self.session() as db:
            record = db.get(StoryEpisodeRecord, episode_id)
            if record is None:
                raise NotFoundError("episode", episode_id)
            for key, value in fields.items():
                setattr(record, key, value)
            record.delivered_at = datetime.now()
            db.flush()
            return Episode.model_validate(record)

    def set_episode_feedback(self, episode_id: str, feedback: Feedback) -> Episode:
        with self.session() as db:
            record = db.get(StoryEpisodeRecord, episode_id)
            if record is None:
                raise NotFoundError("episode", episode_id)
            record.feedback = feedback.value
            db.flush()
            return Episode.model_validate(record)


class PhotoStore(_SessionMixin):
    """Zero or one active reference photo per user."""

    def get_active_photo_url(self, user_id: str) -> Optional[str]:
        with self.session() as db:
            record = (
                db.query(UserPhotoRecord)
                .filter(UserPhotoRecord.user_id == user_id, UserPhotoRecord.is_active.is_(True))
                .order_by(UserPhotoRecord.uploaded_at.desc())
                .first()
            )
            return record.photo_url if record else None

    def set_active_photo(self, user_id: str, photo_url: str) -> str:
        """Store a new reference photo and retire the previous ones."""
        with self.session() as db:
            (
                db.query(UserPhotoRecord)
                .filter(UserPhotoRecord.user_id == user_id, UserPhotoRecord.is_active.is_(True))
                .update({UserPhotoRecord.is_active: False}, synchronize_session=False)
            )
            record = UserPhotoRecord(user_id=user_id, photo_url=photo_url, is_active=True)
            db.add(record)
            db.flush()
            return record.id


class QuotaTracker(_SessionMixin):
    """One generated episode per calendar day for non-premium users."""

    def __init__(self, session_factory: sessionmaker, today: Callable[[], date] = date.today):
        super().__init__(session_factory)
        self.today = today

    def has_generated_today(self, user_id: str) -> bool:
        with self.session() as db:
            count = (
                db.query(ContentGenerationRecord)
                .filter(ContentGenerationRecord.user_id == user_id,
                        ContentGenerationRecord.generated_on == self.today())
                .count()
            )
            return count > 0

    def record_generation(self, user_id: str):
        with self.session() as db:
            db.add(ContentGenerationRecord(user_id=user_id, generated_on=self.today()))
