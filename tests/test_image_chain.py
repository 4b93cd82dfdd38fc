import asyncio
import base64
from types import SimpleNamespace

import httpx
import openai
import pytest

from conftest import FakeImageProvider, no_sleep
from protagonist.ai.image_chain import ImageGenerationChain, ImageRequest
from protagonist.ai.image_providers import (CinematicImageProvider, OpenAIIdentityImageProvider,
                                            PlaceholderImageProvider)
from protagonist.ai.photomaker_client import PhotoMakerProvider
from protagonist.analyzer import Scene, SceneInventory
from protagonist.exceptions import GenerationFailed, ProviderError, ProviderTimeoutError
from protagonist.generator.prompt_builders import (build_cinematic_prompt, build_identity_lock_prompt,
                                                   build_identity_prompt)
from protagonist.storage import BlobStore, LocalBlobStore

PHOTO = "https://photos.test/me.jpg"
API_URL = "https://api.replicate.test/v1/predictions"
MEDIA = "http://media.test/media"
IMAGES_CDN = "https://images.openai.test"


@pytest.fixture(scope="module")
def scene():
    template = SceneInventory.from_json().pool("business", "revenge")[0]
    return Scene(**template.model_dump())


def test_photo_uses_identity_primary(image_chain, image_providers, scene, metrics):
    result = asyncio.run(image_chain.generate(scene, gender="female", reference_photo_url=PHOTO, day_number=3))

    assert result.provider_name == "replicate"
    assert result.url == "https://media.test/replicate/day3.png"
    assert result.cost_estimate == 0.025
    assert image_providers[0].calls[0].gender == "female"
    assert metrics.snapshot()["replicate"].success_count == 1


def test_primary_retried_then_secondary(image_providers, scene, metrics):
    primary = FakeImageProvider("replicate", fail_times=5, needs_photo=True)
    delays = []

    async def record_sleep(seconds):
        delays.append(seconds)

    chain = ImageGenerationChain(primary, *image_providers[1:], metrics,
                                 retry_attempts=2, retry_delay_seconds=1.0, sleep=record_sleep)

    result = asyncio.run(chain.generate(scene, reference_photo_url=PHOTO))

    assert result.provider_name == "openai"
    assert len(primary.calls) == 2
    assert delays == [1.0]
    snapshot = metrics.snapshot()
    assert snapshot["replicate"].failure_count == 1
    assert snapshot["openai"].success_count == 1


def test_backoff_doubles_per_attempt(image_providers, scene, metrics):
    primary = FakeImageProvider("replicate", fail_times=5, needs_photo=True)
    delays = []

    async def record_sleep(seconds):
        delays.append(seconds)

    chain = ImageGenerationChain(primary, *image_providers[1:], metrics,
                                 retry_attempts=4, retry_delay_seconds=0.5, sleep=record_sleep)
    asyncio.run(chain.generate(scene, reference_photo_url=PHOTO))

    assert delays == [0.5, 1.0, 2.0]
    assert len(primary.calls) == 4


def test_no_photo_skips_primary(image_chain, image_providers, scene, metrics):
    result = asyncio.run(image_chain.generate(scene))

    assert result.provider_name == "openai"
    assert image_providers[0].calls == []
    assert "replicate" not in metrics.snapshot()


def test_unknown_gender_defaults_to_male(image_chain, image_providers, scene):
    asyncio.run(image_chain.generate(scene, gender="other"))

    assert image_providers[1].calls[0].gender == "male"


def test_placeholder_when_everything_fails(scene, metrics):
    chain = ImageGenerationChain(
        FakeImageProvider("replicate", fail_times=9, needs_photo=True),
        FakeImageProvider("openai", fail_times=9),
        FakeImageProvider("dalle", fail_times=9),
        PlaceholderImageProvider("https://placeholder.test/day{day}.png"),
        metrics,
        sleep=no_sleep,
    )

    result = asyncio.run(chain.generate(scene, reference_photo_url=PHOTO, day_number=12))

    assert result.provider_name == "placeholder"
    assert result.url == "https://placeholder.test/day12.png"
    assert result.cost_estimate == 0.0
    snapshot = metrics.snapshot()
    assert [snapshot[name].failure_count for name in ("replicate", "openai", "dalle")] == [1, 1, 1]


def test_chain_without_placeholder_can_fail(scene, metrics):
    failing = [FakeImageProvider(name, fail_times=9) for name in ("a", "b", "c", "d")]
    chain = ImageGenerationChain(*failing, metrics, sleep=no_sleep)

    with pytest.raises(GenerationFailed):
        asyncio.run(chain.generate(scene))


def _photomaker_transport(final_status="succeeded"):
    polls = []

    def handler(request):
        url = str(request.url)
        if request.method == "POST" and url == API_URL:
            assert request.headers["Authorization"] == "Bearer token"
            return httpx.Response(201, json={"id": "p1", "urls": {"get": f"{API_URL}/p1"}})
        if url == f"{API_URL}/p1":
            polls.append(url)
            if len(polls) < 2:
                return httpx.Response(200, json={"status": "processing"})
            if final_status == "succeeded":
                return httpx.Response(200, json={"status": "succeeded", "output": ["https://cdn.test/out.png"]})
            return httpx.Response(200, json={"status": final_status, "error": "NSFW content detected"})
        if url == "https://cdn.test/out.png":
            return httpx.Response(200, content=b"\x89PNG...", headers={"content-type": "image/png"})
        return httpx.Response(404)

    return httpx.MockTransport(handler), polls


def _photomaker(http, tmp_path, **kwargs):
    return PhotoMakerProvider(
        http,
        LocalBlobStore(tmp_path, "http://media.test/media"),
        api_key="token",
        version="v1",
        api_url=API_URL,
        **kwargs,
    )


def test_photomaker_polls_and_stores_output(tmp_path, scene):
    transport, polls = _photomaker_transport()

    async def run():
        async with httpx.AsyncClient(transport=transport) as http:
            provider = _photomaker(http, tmp_path, sleep=no_sleep)
            request = ImageRequest(scene=scene, gender="female", reference_photo_url=PHOTO, key_hint="arc1-day1")
            return await provider.generate(request)

    result = asyncio.run(run())

    assert len(polls) == 2
    assert result.url.startswith("http://media.test/media/generated/")
    assert "arc1-day1-" in result.url
    assert result.cost == 0.025
    stored = list(tmp_path.glob("generated/*/*.png"))
    assert len(stored) == 1
    assert stored[0].read_bytes() == b"\x89PNG..."


def test_photomaker_failed_prediction(tmp_path, scene):
    transport, _ = _photomaker_transport(final_status="failed")

    async def run():
        async with httpx.AsyncClient(transport=transport) as http:
            provider = _photomaker(http, tmp_path, sleep=no_sleep)
            return await provider.generate(ImageRequest(scene=scene, reference_photo_url=PHOTO))

    with pytest.raises(ProviderError, match="NSFW"):
        asyncio.run(run())


def test_photomaker_times_out(tmp_path, scene):
    transport, _ = _photomaker_transport()

    async def run():
        async with httpx.AsyncClient(transport=transport) as http:
            provider = _photomaker(http, tmp_path, timeout_seconds=0.05, poll_interval_seconds=5.0)
            return await provider.generate(ImageRequest(scene=scene, reference_photo_url=PHOTO))

    with pytest.raises(ProviderTimeoutError):
        asyncio.run(run())


def test_photomaker_requires_photo(tmp_path, scene):
    provider = _photomaker(None, tmp_path)

    assert not provider.supports(ImageRequest(scene=scene))
    assert provider.supports(ImageRequest(scene=scene, reference_photo_url=PHOTO))


def test_photomaker_malformed_prediction(tmp_path, scene):
    def handler(request):
        return httpx.Response(201, json={"id": "p1", "urls": None})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            provider = _photomaker(http, tmp_path, sleep=no_sleep)
            return await provider.generate(ImageRequest(scene=scene, reference_photo_url=PHOTO))

    with pytest.raises(ProviderError, match="malformed response"):
        asyncio.run(run())


class FakeImages:
    """Stands in for ``AsyncOpenAI().images``."""

    def __init__(self, data=None, error=None):
        if data is None:
            data = [SimpleNamespace(b64_json=base64.b64encode(b"gpt-png").decode(), url=None)]
        self.data = data
        self.error = error
        self.calls = []

    async def edit(self, **kwargs):
        return self._respond("edit", kwargs)

    async def generate(self, **kwargs):
        return self._respond("generate", kwargs)

    def _respond(self, method, kwargs):
        self.calls.append((method, kwargs))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


class ReadOnlyBlobStore(BlobStore):

    async def save(self, data, content_type="image/png", key_hint=None):
        raise PermissionError("read-only file system")


def _download_transport():
    def handler(request):
        url = str(request.url)
        if url == PHOTO:
            return httpx.Response(200, content=b"face-jpeg", headers={"content-type": "image/jpeg"})
        if url == f"{IMAGES_CDN}/out.png":
            return httpx.Response(200, content=b"dalle-png", headers={"content-type": "image/png"})
        if url == f"{IMAGES_CDN}/empty.png":
            return httpx.Response(200, content=b"", headers={"content-type": "image/png"})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def _openai_image(provider_class, images, tmp_path, request, blob_store=None):
    async def run():
        async with httpx.AsyncClient(transport=_download_transport()) as http:
            provider = provider_class(SimpleNamespace(images=images), http,
                                      blob_store or LocalBlobStore(tmp_path, MEDIA), model="gpt-image-1")
            return await provider.generate(request)

    return asyncio.run(run())


def test_identity_provider_edits_reference_photo(tmp_path, scene):
    images = FakeImages()
    request = ImageRequest(scene=scene, gender="female", reference_photo_url=PHOTO, key_hint="arc1-day4")

    result = _openai_image(OpenAIIdentityImageProvider, images, tmp_path, request)

    method, kwargs = images.calls[0]
    assert method == "edit"
    assert kwargs["prompt"] == build_identity_lock_prompt(scene, "female")
    assert "EXACT SAME FACE" in kwargs["prompt"]
    assert kwargs["image"] == ("reference.png", b"face-jpeg", "image/jpeg")
    assert kwargs["model"] == "gpt-image-1"
    assert result.url.startswith(f"{MEDIA}/generated/")
    assert "arc1-day4-" in result.url
    assert result.cost == 0.04
    stored = list(tmp_path.glob("generated/*/*.png"))
    assert [path.read_bytes() for path in stored] == [b"gpt-png"]


def test_identity_provider_generates_without_photo(tmp_path, scene):
    images = FakeImages()

    result = _openai_image(OpenAIIdentityImageProvider, images, tmp_path, ImageRequest(scene=scene))

    method, kwargs = images.calls[0]
    assert method == "generate"
    assert kwargs["prompt"] == build_identity_prompt(scene, "male")
    assert "image" not in kwargs
    assert result.url.startswith(f"{MEDIA}/generated/")


def test_cinematic_provider_stores_downloaded_output(tmp_path, scene):
    images = FakeImages(data=[SimpleNamespace(b64_json=None, url=f"{IMAGES_CDN}/out.png")])

    result = _openai_image(CinematicImageProvider, images, tmp_path, ImageRequest(scene=scene, day_number=5))

    method, kwargs = images.calls[0]
    assert method == "generate"
    assert kwargs["prompt"] == build_cinematic_prompt(scene, None, 5)
    assert kwargs["quality"] == "standard"
    # the short-lived CDN URL is never handed out
    assert result.url.startswith(f"{MEDIA}/generated/")
    assert [path.read_bytes() for path in tmp_path.glob("generated/*/*.png")] == [b"dalle-png"]


def test_openai_errors_become_provider_errors(tmp_path, scene):
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.test/v1/images"))

    with pytest.raises(ProviderError) as info:
        _openai_image(CinematicImageProvider, FakeImages(error=error), tmp_path, ImageRequest(scene=scene))

    assert info.value.provider == "dalle"


@pytest.mark.parametrize("data,message", [
    ([], "no images"),
    ([SimpleNamespace(b64_json=None, url=None)], "neither"),
    ([SimpleNamespace(b64_json=None, url=f"{IMAGES_CDN}/empty.png")], "could not store"),
    ([SimpleNamespace(b64_json=None, url=f"{IMAGES_CDN}/gone.png")], "HTTP error"),
])
def test_unusable_image_output_is_a_provider_error(tmp_path, scene, data, message):
    with pytest.raises(ProviderError, match=message):
        _openai_image(CinematicImageProvider, FakeImages(data=data), tmp_path, ImageRequest(scene=scene))


def test_unwritable_blob_store_is_a_provider_error(tmp_path, scene):
    with pytest.raises(ProviderError, match="could not store"):
        _openai_image(OpenAIIdentityImageProvider, FakeImages(), tmp_path, ImageRequest(scene=scene),
                      blob_store=ReadOnlyBlobStore())


def test_empty_download_falls_through_to_placeholder(tmp_path, scene, metrics):
    images = FakeImages(data=[SimpleNamespace(b64_json=None, url=f"{IMAGES_CDN}/empty.png")])

    async def run():
        async with httpx.AsyncClient(transport=_download_transport()) as http:
            chain = ImageGenerationChain(
                FakeImageProvider("replicate", fail_times=9, needs_photo=True),
                FakeImageProvider("openai", fail_times=9),
                CinematicImageProvider(SimpleNamespace(images=images), http,
                                       LocalBlobStore(tmp_path, MEDIA), model="dall-e-3"),
                PlaceholderImageProvider("https://placeholder.test/day{day}.png"),
                metrics,
                sleep=no_sleep,
            )
            return await chain.generate(scene, reference_photo_url=PHOTO, day_number=2)

    result = asyncio.run(run())

    assert result.provider_name == "placeholder"
    assert result.url == "https://placeholder.test/day2.png"
    assert metrics.snapshot()["dalle"].failure_count == 1


def test_chains_tag_metrics_by_kind(image_chain, metrics, scene):
    asyncio.run(image_chain.generate(scene, reference_photo_url=PHOTO))

    summary = metrics.cost_summary()
    assert summary["total_images"] == 1
    assert summary["total_texts"] == 0
    assert metrics.snapshot()["replicate"].chain == "image"
