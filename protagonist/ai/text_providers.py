import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, Tuple

from openai import AsyncOpenAI, OpenAIError

from ..exceptions import ParseError, ProviderError
from ..generator.continuity import ContinuityContext
from ..generator.prompt_builders import STORY_SYSTEM_PROMPT, build_simple_story_prompt, build_story_prompt
from .provider_chain import Provider

logger = logging.getLogger(__name__)

# token price table (USD / 1K tokens, prompt and completion blended)
TOKEN_COST: Dict[str, float] = {
    "claude-sonnet-4-5": 0.009,
    "claude-opus-4-5-thinking": 0.045,
    "gpt-4o-mini": 0.0005,
    "gpt-4o": 0.005,
    "gpt-5": 0.006,
}

DEFAULT_TITLE = "Episode"
DEFAULT_SCENE = "Romantic scene with two people"

_TITLE = re.compile(r"TITLE:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_STORY = re.compile(r"STORY:\s*(.*?)(?=SCENE_DESCRIPTION:|$)", re.IGNORECASE | re.DOTALL)
_SCENE = re.compile(r"SCENE_DESCRIPTION:\s*(.+)", re.IGNORECASE | re.DOTALL)
_SENTENCES = re.compile(r"(?<=[.!?])\s+")
_SETTING_WORDS = re.compile(
    r"\b(office|ballroom|restaurant|room|street|garden|palace|kitchen|rooftop|bar|beach|"
    r"car|hall|stage|classroom|library|penthouse|balcony|cafe|church|club|hotel)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class TextResult:
    title: str
    text: str
    scene_description: str
    cost: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    return (prompt_tokens + completion_tokens) / 1000 * TOKEN_COST.get(model, 0.0)


def scene_from_story(text: str) -> str:
    """Pick the first sentence that names a setting, else a generic scene."""
    for sentence in _SENTENCES.split(text.strip()):
        if _SETTING_WORDS.search(sentence):
            return sentence.strip().rstrip(".!?") + ", cinematic romantic scene"
    return DEFAULT_SCENE


def parse_story_output(response: str) -> Tuple[str, str, str]:
    """
    Split a marked-up completion into (title, story, scene description).

    Raises:
        ParseError: neither STORY nor SCENE_DESCRIPTION marker is present
    """
    story_match = _STORY.search(response)
    scene_match = _SCENE.search(response)
    if not story_match and not scene_match:
        raise ParseError("response has no STORY/SCENE_DESCRIPTION markers")

    title_match = _TITLE.search(response)
    title = title_match.group(1).strip() if title_match else DEFAULT_TITLE

    if story_match:
        story = story_match.group(1).strip()
    else:
        # markers for title/scene only: story is whatever sits between them
        story = _SCENE.sub("", _TITLE.sub("", response, count=1)).strip()

    scene = scene_match.group(1).strip() if scene_match else scene_from_story(story)
    return title, story, scene


class OpenAICompatibleTextProvider(Provider):
    """Chat-completions provider on any OpenAI-compatible endpoint."""

    def __init__(
        self,
        name: str,
        client: AsyncOpenAI,
        model: str,
        temperature: float = 0.8,
        max_tokens: int = 1000,
        timeout: float = 120.0,
    ):
        self.name = name
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    def build_messages(self, context: ContinuityContext):
        raise NotImplementedError

    def parse(self, content: str) -> Tuple[str, str, str]:
        raise NotImplementedError

    async def _complete(self, messages) -> Tuple[str, int, int]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e

        if not response.choices:
            raise ProviderError(self.name, "completion returned no choices")
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise ProviderError(self.name, "completion returned empty content")

        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        return content, prompt_tokens, completion_tokens

    async def generate(self, context: ContinuityContext) -> TextResult:
        content, prompt_tokens, completion_tokens = await self._complete(self.build_messages(context))
        title, text, scene = self.parse(content)
        cost = estimate_cost(self.model, prompt_tokens, completion_tokens)
        logger.info("%s wrote day %d (%d chars, ~$%.4f)", self.name, context.day_number, len(text), cost)
        return TextResult(
            title=title,
            text=text,
            scene_description=scene,
            cost=cost,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )


class RichPromptTextProvider(OpenAICompatibleTextProvider):
    """Primary provider: full continuity prompt with a marked output contract."""

    def build_messages(self, context: ContinuityContext):
        return [
            {"role": "system", "content": STORY_SYSTEM_PROMPT},
            {"role": "user", "content": build_story_prompt(context)},
        ]

    def parse(self, content: str) -> Tuple[str, str, str]:
        try:
            return parse_story_output(content)
        except ParseError as e:
            logger.warning("%s: %s; using the whole response as story text", self.name, e)
            return DEFAULT_TITLE, content, scene_from_story(content)


class SimplePromptTextProvider(OpenAICompatibleTextProvider):
    """Fallback provider: short prompt, plain prose back."""

    def build_messages(self, context: ContinuityContext):
        return [
            {"role": "system", "content": STORY_SYSTEM_PROMPT},
            {"role": "user", "content": build_simple_story_prompt(context)},
        ]

    def parse(self, content: str) -> Tuple[str, str, str]:
        return DEFAULT_TITLE, content, scene_from_story(content)

    async def generate(self, context: ContinuityContext) -> TextResult:
        result = await super().generate(context)
        return replace(result, title=f"Day {context.day_number}")
