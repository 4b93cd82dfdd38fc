import random
from datetime import date

import pytest

from protagonist.ai.image_chain import ImageGenerationChain, ImageResult
from protagonist.ai.provider_chain import Provider
from protagonist.ai.text_chain import TextGenerationChain
from protagonist.ai.text_providers import TextResult
from protagonist.analyzer.scene_composer import SceneComposer
from protagonist.config.settings import Settings
from protagonist.database.models import create_session_factory, init_db
from protagonist.database.repository import PhotoStore, QuotaTracker, StoryRepository
from protagonist.exceptions import ProviderError
from protagonist.generator.arc_progression import ArcProgressionStateMachine, ArcService
from protagonist.generator.episode_orchestrator import EpisodeOrchestrator
from protagonist.metrics import MetricsRecorder
from protagonist.templates.catalog import load_default_catalog

STORY = (
    "Victoria stepped into the grand ballroom, her heart pounding. "
    "Adrian caught her eye across the room and smiled. "
    "Tonight the revenge she had planned for years would finally begin!"
)


class FakeTextProvider(Provider):
    def __init__(self, name, fail=False, text=STORY):
        self.name = name
        self.fail = fail
        self.text = text
        self.calls = []

    async def generate(self, context):
        self.calls.append(context)
        if self.fail:
            raise ProviderError(self.name, "service unavailable")
        return TextResult(
            title=f"Day {context.day_number} title",
            text=self.text,
            scene_description=f"Scene for day {context.day_number}",
            cost=0.001,
        )


class FakeImageProvider(Provider):
    def __init__(self, name, fail_times=0, needs_photo=False, cost=0.04):
        self.name = name
        self.fail_times = fail_times
        self.needs_photo = needs_photo
        self.cost = cost
        self.calls = []

    def supports(self, request):
        return bool(request.reference_photo_url) or not self.needs_photo

    async def generate(self, request):
        self.calls.append(request)
        if len(self.calls) <= self.fail_times:
            raise ProviderError(self.name, "timed out")
        return ImageResult(url=f"https://media.test/{self.name}/day{request.day_number}.png", cost=self.cost)


class FakeClock:
    def __init__(self, today=date(2026, 1, 1)):
        self.value = today

    def __call__(self):
        return self.value


async def no_sleep(seconds):
    return None


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        media_root=str(tmp_path / "media"),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def catalog():
    return load_default_catalog()


@pytest.fixture
def session_factory():
    factory = create_session_factory("sqlite:///:memory:")
    init_db(factory)
    return factory


@pytest.fixture
def repository(session_factory):
    return StoryRepository(session_factory)


@pytest.fixture
def photos(session_factory):
    return PhotoStore(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def quota(session_factory, clock):
    return QuotaTracker(session_factory, today=clock)


@pytest.fixture
def metrics():
    return MetricsRecorder()


@pytest.fixture
def text_providers():
    return FakeTextProvider("claude"), FakeTextProvider("openai-text")


@pytest.fixture
def image_providers():
    return (
        FakeImageProvider("replicate", needs_photo=True, cost=0.025),
        FakeImageProvider("openai"),
        FakeImageProvider("dalle"),
        FakeImageProvider("placeholder", cost=0.0),
    )


@pytest.fixture
def text_chain(text_providers, metrics):
    return TextGenerationChain(*text_providers, metrics, sleep=no_sleep)


@pytest.fixture
def image_chain(image_providers, metrics):
    return ImageGenerationChain(*image_providers, metrics, retry_attempts=2, retry_delay_seconds=1.0,
                                sleep=no_sleep)


@pytest.fixture
def orchestrator(repository, photos, quota, catalog, text_chain, image_chain):
    return EpisodeOrchestrator(
        repository,
        photos,
        ArcProgressionStateMachine(repository, quota),
        catalog,
        text_chain,
        image_chain,
        scene_composer=SceneComposer(rng=random.Random(7)),
    )


@pytest.fixture
def arcs(repository, catalog):
    return ArcService(repository, catalog, rng=random.Random(3))


@pytest.fixture
def premium_user(repository):
    return repository.create_user(email="premium@example.com", gender="female", is_premium=True)


@pytest.fixture
def free_user(repository):
    return repository.create_user(email="free@example.com", gender="male")
