import logging
import random
from typing import List, Optional, Tuple

from ..database.repository import QuotaTracker, StoryRepository
from ..exceptions import NotFoundError, StateError, StateReason
from ..schemas import ArcStatus, Episode, Feedback, NameOverrides, StoryArc, User
from ..templates.catalog import TemplateCatalog
from ..templates.models import ARC_LENGTH

logger = logging.getLogger(__name__)

RATINGS = (Feedback.LIKE, Feedback.NEUTRAL, Feedback.DISLIKE)


class ArcProgressionStateMachine:
    """
    Per-arc day counter and generation eligibility.

    active -> active (record_episode), active -> completed (past the last day),
    active <-> paused, completed is terminal.
    """

    def __init__(self, repository: StoryRepository, quota: QuotaTracker):
        self.repository = repository
        self.quota = quota

    def check_can_generate(self, arc: StoryArc, day_number: int, user: User):
        """
        Guards run before any provider is called.

        Raises:
            StateError: arc paused or completed, day past the arc length (the arc
                is completed first), day out of sequence, or daily quota used
        """
        if arc.status == ArcStatus.COMPLETED:
            raise StateError(StateReason.ARC_COMPLETED, f"arc {arc.id} is already completed")
        if arc.status != ArcStatus.ACTIVE:
            raise StateError(StateReason.ARC_INACTIVE, f"arc {arc.id} is {arc.status.value}")

        if day_number > arc.total_days:
            self.repository.complete_arc(arc.id)
            raise StateError(
                StateReason.ARC_DAY_EXCEEDED,
                f"day {day_number} exceeds the {arc.total_days}-day arc",
            )
        if day_number != arc.current_day:
            raise StateError(
                StateReason.DAY_OUT_OF_SEQUENCE,
                f"arc {arc.id} is on day {arc.current_day}, not day {day_number}",
            )

        if not user.is_premium and self.quota.has_generated_today(user.id):
            raise StateError(StateReason.DAILY_QUOTA_EXCEEDED, "today's episode has already been generated")

    def record_episode(self, arc: StoryArc, user: User, day_number: int, **fields) -> Tuple[Episode, StoryArc]:
        """
        Persist a freshly generated day and advance past it.

        The insert and the day counter commit together; the quota is charged
        only after both are stored.
        """
        episode, arc = self.repository.create_episode_and_advance(arc.id, day_number, **fields)
        if not user.is_premium:
            self.quota.record_generation(user.id)
        return episode, arc


class ArcService:
    """Start, pause, resume and abandon arcs; episode queries and feedback."""

    def __init__(self, repository: StoryRepository, catalog: TemplateCatalog,
                 rng: Optional[random.Random] = None):
        self.repository = repository
        self.catalog = catalog
        self.rng = rng or random.Random()

    def get_arc(self, arc_id: str, user: User) -> StoryArc:
        arc = self.repository.get_arc_by_id(arc_id)
        # other users' arcs look exactly like missing ones
        if arc is None or arc.user_id != user.id:
            raise NotFoundError("arc", arc_id)
        return arc

    def get_active_arc(self, user: User) -> Optional[StoryArc]:
        return self.repository.get_active_arc(user.id)

    def start_arc(
        self,
        user: User,
        template_id: Optional[str] = None,
        genre: Optional[str] = None,
        emotion: Optional[str] = None,
        name_overrides: Optional[NameOverrides] = None,
    ) -> StoryArc:
        """
        Begin a new arc for the user.

        The template is the explicit id if given, else a random match for the
        genre/emotion filter, else a random recommended template.

        Raises:
            StateError: the user already has an active arc
            NotFoundError: unknown template id
        """
        if self.repository.get_active_arc(user.id) is not None:
            raise StateError(StateReason.ACTIVE_ARC_EXISTS, "finish or abandon the current arc first")

        if template_id:
            template = self.catalog.get_by_id(template_id)
            if template is None:
                raise NotFoundError("template", template_id)
        else:
            matches = self.catalog.get_for_user(genre=genre, emotion=emotion) if (genre or emotion) else []
            template = self.rng.choice(matches or self.catalog.get_recommended())

        overrides = name_overrides or NameOverrides()
        return self.repository.create_arc(
            user.id,
            template.id,
            total_days=ARC_LENGTH,
            protagonist_name=overrides.protagonist,
            counterpart_name=overrides.counterpart,
        )

    def pause_arc(self, arc_id: str, user: User) -> StoryArc:
        arc = self.get_arc(arc_id, user)
        if arc.status == ArcStatus.PAUSED:
            return arc
        if arc.status == ArcStatus.COMPLETED:
            raise StateError(StateReason.ARC_COMPLETED, f"arc {arc_id} is already completed")
        logger.info("Pausing arc %s at day %d", arc_id, arc.current_day)
        return self.repository.set_arc_status(arc_id, ArcStatus.PAUSED)

    def resume_arc(self, arc_id: str, user: User) -> StoryArc:
        arc = self.get_arc(arc_id, user)
        if arc.status == ArcStatus.ACTIVE:
            return arc
        if arc.status == ArcStatus.COMPLETED:
            raise StateError(StateReason.ARC_COMPLETED, f"arc {arc_id} is already completed")
        active = self.repository.get_active_arc(user.id)
        if active is not None:
            raise StateError(StateReason.ACTIVE_ARC_EXISTS, f"arc {active.id} is already active")
        logger.info("Resuming arc %s at day %d", arc_id, arc.current_day)
        return self.repository.set_arc_status(arc_id, ArcStatus.ACTIVE)

    def abandon_arc(self, arc_id: str, user: User) -> StoryArc:
        arc = self.get_arc(arc_id, user)
        if arc.status == ArcStatus.COMPLETED:
            raise StateError(StateReason.ARC_COMPLETED, f"arc {arc_id} is already completed")
        logger.info("Abandoning arc %s at day %d", arc_id, arc.current_day)
        return self.repository.complete_arc(arc_id)

    def list_episodes(self, arc_id: str, user: User) -> List[Episode]:
        self.get_arc(arc_id, user)
        return self.repository.get_episodes_by_arc(arc_id)

    def get_episode(self, arc_id: str, episode_number: int, user: User) -> Episode:
        self.get_arc(arc_id, user)
        episode = self.repository.get_episode(arc_id, episode_number)
        if episode is None:
            raise NotFoundError("episode", f"{arc_id}/{episode_number}")
        return episode

    def submit_feedback(self, episode_id: str, user: User, rating: str) -> Episode:
        try:
            feedback = Feedback((rating or "").lower())
        except ValueError:
            feedback = None
        if feedback not in RATINGS:
            raise StateError(StateReason.INVALID_FEEDBACK, "rating must be one of like, neutral, dislike")

        episode = self.repository.get_episode_by_id(episode_id)
        if episode is None:
            raise NotFoundError("episode", episode_id)
        self.get_arc(episode.arc_id, user)
        return self.repository.set_episode_feedback(episode_id, feedback)
