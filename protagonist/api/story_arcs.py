from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from pydantic import BaseModel

from ..schemas import Episode, EpisodeGenerationResult, NameOverrides, StoryArc, User
from ..services import Services
from ..templates.models import StoryTemplate


# ========== dependencies ==========

def get_services(request: Request) -> Services:
    return request.app.state.services


def current_user(
    x_user_id: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> User:
    """Caller identity; authentication happens upstream."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    user = services.repository.get_user(x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="unknown user")
    return user


# ========== request / response models ==========

class StartArcRequest(BaseModel):
    template_id: Optional[str] = None
    genre: Optional[str] = None
    emotion: Optional[str] = None
    protagonist_name: Optional[str] = None
    counterpart_name: Optional[str] = None


class GenerateEpisodeRequest(BaseModel):
    day_number: Optional[int] = None
    protagonist_name: Optional[str] = None
    counterpart_name: Optional[str] = None
    regenerate: bool = False


class FeedbackRequest(BaseModel):
    rating: str


class TemplateSummary(BaseModel):
    id: str
    title: str
    genre: str
    emotion: str
    summary: str
    theme_keywords: List[str]

    @classmethod
    def from_template(cls, template: StoryTemplate) -> "TemplateSummary":
        return cls(
            id=template.id,
            title=template.title,
            genre=template.genre,
            emotion=template.emotion,
            summary=template.summary,
            theme_keywords=sorted(template.theme_keywords),
        )


class ActiveArcResponse(BaseModel):
    arc: Optional[StoryArc] = None
    template: Optional[TemplateSummary] = None


def _overrides(protagonist: Optional[str], counterpart: Optional[str]) -> Optional[NameOverrides]:
    if protagonist or counterpart:
        return NameOverrides(protagonist=protagonist, counterpart=counterpart)
    return None


def create_story_arc_api(app: FastAPI):
    """Register the story-arc endpoints under /api/arcs"""

    # ========== templates ==========

    @app.get("/api/arcs/templates/list", response_model=List[TemplateSummary])
    def list_templates(
        genre: Optional[str] = Query(None),
        emotion: Optional[str] = Query(None),
        services: Services = Depends(get_services),
    ):
        """All templates, optionally filtered by genre / emotion substring."""
        templates = services.catalog.get_for_user(genre=genre, emotion=emotion)
        return [TemplateSummary.from_template(t) for t in templates]

    @app.get("/api/arcs/templates/recommended", response_model=List[TemplateSummary])
    def recommended_templates(services: Services = Depends(get_services)):
        return [TemplateSummary.from_template(t) for t in services.catalog.get_recommended()]

    @app.get("/api/arcs/templates/{template_id}", response_model=StoryTemplate)
    def get_template(template_id: str, services: Services = Depends(get_services)):
        template = services.catalog.get_by_id(template_id)
        if template is None:
            raise HTTPException(status_code=404, detail=f"template {template_id} not found")
        return template

    # ========== arcs ==========

    @app.get("/api/arcs/active", response_model=ActiveArcResponse)
    def active_arc(user: User = Depends(current_user), services: Services = Depends(get_services)):
        arc = services.arcs.get_active_arc(user)
        if arc is None:
            return ActiveArcResponse()
        template = services.catalog.get_by_id(arc.template_id)
        return ActiveArcResponse(arc=arc, template=TemplateSummary.from_template(template) if template else None)

    @app.post("/api/arcs/start", response_model=StoryArc, status_code=201)
    def start_arc(
        body: StartArcRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ):
        return services.arcs.start_arc(
            user,
            template_id=body.template_id,
            genre=body.genre,
            emotion=body.emotion,
            name_overrides=_overrides(body.protagonist_name, body.counterpart_name),
        )

    @app.post("/api/arcs/episodes/{episode_id}/feedback", response_model=Episode)
    def submit_feedback(
        episode_id: str,
        body: FeedbackRequest,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ):
        return services.arcs.submit_feedback(episode_id, user, body.rating)

    @app.get("/api/arcs/{arc_id}", response_model=StoryArc)
    def get_arc(arc_id: str, user: User = Depends(current_user), services: Services = Depends(get_services)):
        return services.arcs.get_arc(arc_id, user)

    @app.get("/api/arcs/{arc_id}/episodes", response_model=List[Episode])
    def list_episodes(arc_id: str, user: User = Depends(current_user), services: Services = Depends(get_services)):
        return services.arcs.list_episodes(arc_id, user)

    @app.get("/api/arcs/{arc_id}/episodes/{episode_number}", response_model=Episode)
    def get_episode(
        arc_id: str,
        episode_number: int,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ):
        return services.arcs.get_episode(arc_id, episode_number, user)

    @app.post("/api/arcs/{arc_id}/generate", response_model=EpisodeGenerationResult)
    async def generate_episode(
        arc_id: str,
        body: Optional[GenerateEpisodeRequest] = None,
        user: User = Depends(current_user),
        services: Services = Depends(get_services),
    ):
        """Generate the arc's current day (or the requested day, for idempotent retries)."""
        body = body or GenerateEpisodeRequest()
        day_number = body.day_number
        if day_number is None:
            day_number = services.arcs.get_arc(arc_id, user).current_day
        return await services.orchestrator.generate_episode(
            arc_id,
            day_number,
            user,
            name_overrides=_overrides(body.protagonist_name, body.counterpart_name),
            regenerate=body.regenerate,
        )

    @app.post("/api/arcs/{arc_id}/pause", response_model=StoryArc)
    def pause_arc(arc_id: str, user: User = Depends(current_user), services: Services = Depends(get_services)):
        return services.arcs.pause_arc(arc_id, user)

    @app.post("/api/arcs/{arc_id}/resume", response_model=StoryArc)
    def resume_arc(arc_id: str, user: User = Depends(current_user), services: Services = Depends(get_services)):
        return services.arcs.resume_arc(arc_id, user)

    @app.post("/api/arcs/{arc_id}/abandon", response_model=StoryArc)
    def abandon_arc(arc_id: str, user: User = Depends(current_user), services: Services = Depends(get_services)):
        return services.arcs.abandon_arc(arc_id, user)
