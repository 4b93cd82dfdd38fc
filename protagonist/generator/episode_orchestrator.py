import logging
import time
from typing import Optional

from ..ai.image_chain import ImageGenerationChain
from ..ai.text_chain import TextGenerationChain
from ..analyzer.scene_composer import SceneComposer
from ..database.repository import PhotoStore, StoryRepository
from ..exceptions import NotFoundError
from ..schemas import ArcStatus, Episode, EpisodeGenerationResult, NameOverrides, StoryArc, User
from ..templates.catalog import TemplateCatalog
from .arc_progression import ArcProgressionStateMachine
from .continuity import ContinuityContextBuilder

logger = logging.getLogger(__name__)


class EpisodeOrchestrator:
    """
    Produces one arc-day: guards, continuity context, text chain, scene,
    image chain, then persistence and day advance.

    Every step is awaited in sequence; providers are chained, never raced.
    """

    def __init__(
        self,
        repository: StoryRepository,
        photos: PhotoStore,
        progression: ArcProgressionStateMachine,
        catalog: TemplateCatalog,
        text_chain: TextGenerationChain,
        image_chain: ImageGenerationChain,
        scene_composer: Optional[SceneComposer] = None,
        context_builder: Optional[ContinuityContextBuilder] = None,
    ):
        self.repository = repository
        self.photos = photos
        self.progression = progression
        self.catalog = catalog
        self.text_chain = text_chain
        self.image_chain = image_chain
        self.scene_composer = scene_composer or SceneComposer()
        self.context_builder = context_builder or ContinuityContextBuilder()

    async def generate_episode(
        self,
        arc_id: str,
        day_number: int,
        user: User,
        name_overrides: Optional[NameOverrides] = None,
        regenerate: bool = False,
    ) -> EpisodeGenerationResult:
        """
        Generate (or return the stored) episode for one arc-day.

        Args:
            arc_id: arc to progress
            day_number: 1-based day; must be the arc's current day for new episodes
            user: owner of the arc
            name_overrides: character names for this call, merged over the arc's
            regenerate: premium users only; rewrite an existing episode in place

        Returns:
            EpisodeGenerationResult

        Raises:
            NotFoundError: unknown arc, or arc owned by someone else
            StateError: a progression guard rejected the request
            GenerationFailed: every text or every image provider failed
        """
        arc = self.repository.get_arc_by_id(arc_id)
        if arc is None or arc.user_id != user.id:
            raise NotFoundError("arc", arc_id)

        existing = self.repository.get_episode(arc_id, day_number)
        if existing is not None and not (regenerate and user.is_premium):
            logger.info("Arc %s day %d already generated; returning stored episode", arc_id, day_number)
            return self._result(existing, arc, reused=True)

        # in-place regeneration skips the day and quota guards but not a pause
        if existing is None or arc.status == ArcStatus.PAUSED:
            self.progression.check_can_generate(arc, day_number, user)

        start = time.perf_counter()
        template = self.catalog.get_by_id(arc.template_id)
        if template is None:
            raise NotFoundError("template", arc.template_id)
        outline = template.outline_for(day_number)
        if outline is None:
            raise NotFoundError("episode outline", f"{template.id}/day {day_number}")

        # per-call names win field by field over the ones stored on the arc
        requested = name_overrides or NameOverrides()
        overrides = NameOverrides(
            protagonist=requested.protagonist or arc.protagonist_name,
            counterpart=requested.counterpart or arc.counterpart_name,
        )
        context = self.context_builder.build(
            template,
            outline,
            self.repository.get_episodes_by_arc(arc_id),
            gender=user.gender,
            name_overrides=overrides,
            total_days=arc.total_days,
        )

        text = await self.text_chain.generate(context)
        scene = self.scene_composer.compose(text.text, text.scene_description)
        image = await self.image_chain.generate(
            scene,
            gender=user.gender,
            reference_photo_url=self.photos.get_active_photo_url(user.id),
            style=template.visual_style,
            day_number=day_number,
            key_hint=f"{arc_id}-day{day_number}",
        )

        fields = dict(
            title=text.title,
            text=text.text,
            image_url=image.url,
            scene_description=text.scene_description,
            text_provider=text.provider_name,
            image_provider=image.provider_name,
            text_duration_ms=text.duration_ms,
            image_duration_ms=image.duration_ms,
            cost_estimate=round(text.cost + image.cost_estimate, 6),
        )
        if existing is not None:
            episode = self.repository.update_episode(existing.id, **fields)
            logger.info("Regenerated arc %s day %d in place", arc_id, day_number)
        else:
            episode, arc = self.progression.record_episode(arc, user, day_number, **fields)
            logger.info("Generated arc %s day %d (now day %d, %s)",
                        arc_id, day_number, arc.current_day, arc.status.value)

        return self._result(episode, arc, generation_time_ms=int((time.perf_counter() - start) * 1000))

    @staticmethod
    def _result(episode: Episode, arc: StoryArc, reused: bool = False,
                generation_time_ms: Optional[int] = None) -> EpisodeGenerationResult:
        if generation_time_ms is None:
            generation_time_ms = episode.text_duration_ms + episode.image_duration_ms
        return EpisodeGenerationResult(
            episode=episode,
            image_url=episode.image_url,
            text_provider=episode.text_provider,
            image_provider=episode.image_provider,
            generation_time_ms=generation_time_ms,
            cost_estimate=episode.cost_estimate,
            current_day=arc.current_day,
            is_complete=arc.is_complete,
            reused=reused,
        )
