import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..schemas import Episode, NameOverrides
from ..templates.models import EpisodeOutline, StoryTemplate

RECENT_EPISODES = 3
RECENT_SUMMARY_CHARS = 50
LAST_EPISODE_SUMMARY_CHARS = 100
EMPTY_SUMMARY = "Content unavailable"

FEMALE_NAMES: Dict[str, str] = {
    "Romance": "Emma",
    "Dark Romance": "Bella",
    "Fantasy Romance": "Celeste",
    "New Adult": "Ella",
    "Taboo Romance": "Haley",
    "Romantic Comedy": "Natalie",
    "Celebrity Romance": "Zoe",
    "Forbidden Romance": "Olivia",
}
MALE_NAMES: Dict[str, str] = {
    "Romance": "Liam",
    "Dark Romance": "Nico",
    "Fantasy Romance": "Kieran",
    "New Adult": "Logan",
    "Taboo Romance": "Cole",
    "Romantic Comedy": "Adam",
    "Celebrity Romance": "Ethan",
    "Forbidden Romance": "Alexander",
}
DEFAULT_FEMALE_NAME = "Emma"
DEFAULT_MALE_NAME = "Liam"

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_PROTAGONIST_PATTERN = re.compile(r"([A-Z][a-z]+) (?:was|is)\b")
_CAPITALIZED = re.compile(r"\b[A-Z][a-z]+\b")

# capitalized words in template summaries that are never character names
_NOT_NAMES = frozenset({
    "A", "After", "Armed", "As", "Beneath", "Beyond", "But", "Fate", "From", "He", "Her",
    "His", "In", "It", "Now", "Once", "Posing", "She", "The", "Their", "They", "This",
    "Thrust", "Under", "What", "When", "While", "With",
    "Prince", "Princess", "King", "Queen", "Father", "Mother", "Mr", "Mrs", "Ms", "Dr",
    "Professor", "Lord", "Lady", "Sir",
})
_PLACE_SUFFIXES = frozenset({"Academy", "University", "College", "Hotel", "Street", "Family"})


def summarize(text: str, max_length: int = RECENT_SUMMARY_CHARS) -> str:
    """
    Greedy sentence summary of an episode.

    Sentences are appended while the summary is still shorter than max_length;
    anything longer than the budget is cut and marked with "...".
    """
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text or "") if s.strip()]
    if not sentences:
        return EMPTY_SUMMARY

    summary = sentences[0]
    for sentence in sentences[1:]:
        if len(summary) >= max_length:
            break
        summary += " " + sentence

    if len(summary) > max_length:
        return summary[:max_length] + "..."
    return summary


def _candidate_names(summary: str) -> List[str]:
    tokens = [(m.group(), m.start(), m.end()) for m in _CAPITALIZED.finditer(summary)]
    names = []
    previous_was_name = False
    for i, (word, start, end) in enumerate(tokens):
        following = tokens[i + 1] if i + 1 < len(tokens) else None
        adjacent_next = following is not None and summary[end:following[1]] == " "
        if word in _NOT_NAMES or word in _PLACE_SUFFIXES:
            previous_was_name = False
            continue
        if adjacent_next and following[0] in _PLACE_SUFFIXES:
            previous_was_name = False
            continue
        # second half of a full name ("Damien Wolfe")
        if previous_was_name and summary[tokens[i - 1][2]:start] == " ":
            continue
        names.append(word)
        previous_was_name = True
    return names


def _lookup(table: Dict[str, str], genre: str, default: str) -> str:
    if genre in table:
        return table[genre]
    # "New Adult Romance" resolves through "New Adult"
    matches = [key for key in table if key.lower() in genre.lower()]
    if matches:
        return table[max(matches, key=len)]
    return default


def _is_male(gender: Optional[str]) -> bool:
    return (gender or "").lower() == "male"


def protagonist_name(template: StoryTemplate, gender: Optional[str], override: Optional[str] = None) -> str:
    if override:
        return override.strip()
    match = _PROTAGONIST_PATTERN.search(template.summary)
    if match and match.group(1) not in _NOT_NAMES:
        return match.group(1)
    candidates = _candidate_names(template.summary)
    if candidates:
        return candidates[0]
    if _is_male(gender):
        return _lookup(MALE_NAMES, template.genre, DEFAULT_MALE_NAME)
    return _lookup(FEMALE_NAMES, template.genre, DEFAULT_FEMALE_NAME)


def counterpart_name(
    template: StoryTemplate,
    gender: Optional[str],
    protagonist: str,
    override: Optional[str] = None,
) -> str:
    if override:
        return override.strip()
    for name in _candidate_names(template.summary):
        if name != protagonist:
            return name
    # opposite gender of the reader
    if _is_male(gender):
        return _lookup(FEMALE_NAMES, template.genre, DEFAULT_FEMALE_NAME)
    return _lookup(MALE_NAMES, template.genre, DEFAULT_MALE_NAME)


@dataclass(frozen=True)
class ContinuityContext:
    """Bounded narrative context for one episode's text prompt."""

    day_number: int
    total_days: int
    template_id: str
    title: str
    genre: str
    theme: str
    summary: str
    tone: str
    protagonist: str
    counterpart: str
    plot: str
    key_moments: Tuple[str, ...] = ()
    recent_episodes: Tuple[Tuple[int, str], ...] = ()
    last_episode_summary: Optional[str] = None
    theme_keywords: Tuple[str, ...] = field(default=())

    @property
    def is_finale(self) -> bool:
        return self.day_number >= self.total_days

    def render(self) -> str:
        lines = [
            f"You are writing Episode {self.day_number} of a {self.total_days}-day romance story arc.",
            "",
            "**STORY OVERVIEW:**",
            f"Title: {self.title}",
            f"Genre: {self.genre}",
            f"Theme: {self.theme}",
            f"Summary: {self.summary}",
            "",
            "**CHARACTERS:**",
            f"- Protagonist: {self.protagonist}",
            f"- Love Interest: {self.counterpart}",
            "",
            "**TONE & STYLE:**",
            self.tone,
            "",
            f"**TODAY'S EPISODE (Day {self.day_number}):**",
            f"Plot: {self.plot}",
        ]

        if self.recent_episodes:
            lines += ["", "**STORY CONTINUITY:**", "Previous episodes summary:"]
            lines += [f"Day {number}: {summary}" for number, summary in self.recent_episodes]
        if self.last_episode_summary:
            lines += ["", f"Last episode ended: {self.last_episode_summary}"]

        if self.key_moments:
            lines += ["", "**KEY MOMENTS TO INCLUDE:**"]
            lines += [f"- {moment}" for moment in self.key_moments]

        return "\n".join(lines)


class ContinuityContextBuilder:
    """Assembles the ContinuityContext handed to the text provider chain."""

    def __init__(self, recent_count: int = RECENT_EPISODES,
                 recent_chars: int = RECENT_SUMMARY_CHARS,
                 last_chars: int = LAST_EPISODE_SUMMARY_CHARS):
        self.recent_count = recent_count
        self.recent_chars = recent_chars
        self.last_chars = last_chars

    def build(
        self,
        template: StoryTemplate,
        outline: EpisodeOutline,
        previous_episodes: Sequence[Episode],
        gender: Optional[str] = None,
        name_overrides: Optional[NameOverrides] = None,
        total_days: int = 30,
    ) -> ContinuityContext:
        """
        Build the context for one day.

        Args:
            template: the arc's story template
            outline: today's outline entry
            previous_episodes: earlier episodes of the arc, oldest first
            gender: reader's gender, used only for fallback names
            name_overrides: user-chosen character names
            total_days: arc length

        Returns:
            ContinuityContext
        """
        overrides = name_overrides or NameOverrides()
        protagonist = protagonist_name(template, gender, overrides.protagonist)
        counterpart = counterpart_name(template, gender, protagonist, overrides.counterpart)

        history = sorted(previous_episodes, key=lambda ep: ep.episode_number)
        history = [ep for ep in history if ep.episode_number < outline.day]
        recent = tuple(
            (ep.episode_number, summarize(ep.text, self.recent_chars))
            for ep in history[-self.recent_count:]
        ) if self.recent_count > 0 else ()
        last = summarize(history[-1].text, self.last_chars) if history else None

        return ContinuityContext(
            day_number=outline.day,
            total_days=total_days,
            template_id=template.id,
            title=template.title,
            genre=template.genre,
            theme=template.emotion,
            summary=template.summary,
            tone=template.emotional_tone,
            protagonist=protagonist,
            counterpart=counterpart,
            plot=outline.plot,
            key_moments=tuple(outline.key_moments or ()),
            recent_episodes=recent,
            last_episode_summary=last,
            theme_keywords=tuple(sorted(template.theme_keywords)),
        )
