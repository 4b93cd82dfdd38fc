import re
from dataclasses import dataclass
from typing import List, Tuple

GENRES = ("business", "modern", "urban", "fantasy", "ancient")
EMOTIONS = ("revenge", "favored", "satisfaction", "growth")

DEFAULT_GENRE = "business"
DEFAULT_EMOTION = "growth"


def _rule(chinese: str, english: str) -> re.Pattern:
    # Chinese has no word boundaries; English terms are anchored at the word start
    return re.compile(rf"(?:{chinese})|\b(?:{english})")


# first matching rule wins
GENRE_RULES: List[Tuple[str, re.Pattern]] = [
    ("business", _rule("商业|合同|谈判|公司|企业", "business|contract|corporat|boardroom|shareholder|investor|merger")),
    ("modern", _rule("办公室|会议|职场|同事", "office|workplace|meeting|colleague|campus|classroom|professor")),
    ("fantasy", _rule("魔法|修仙|宗门|仙", "magic|spell|kingdom|enchant|phoenix|sorcer|prophecy")),
    ("ancient", _rule("皇帝|宫廷|古代|王朝", "emperor|empress|palace|dynasty|throne|medieval")),
    ("urban", _rule("城市|街道|广场|公园", "urban|city|street|park|downtown|subway")),
]

EMOTION_RULES: List[Tuple[str, re.Pattern]] = [
    ("favored", _rule("宠爱|霸道|总裁|疼爱", "cared|favored|ceo|cherish|adore|pamper")),
    ("revenge", _rule("打脸|复仇|报复", "revenge|vengeance|face.*slap|betray")),
    ("satisfaction", _rule("成功|胜利|逆袭", "success|victor|triumph")),
]


@dataclass(frozen=True)
class Classification:
    genre: str
    emotion: str
    genre_matched: bool
    emotion_matched: bool

    @property
    def used_default(self) -> bool:
        return not (self.genre_matched and self.emotion_matched)


class StoryClassifier:
    """Keyword classifier mapping story prose to a (genre, emotion) pair."""

    def __init__(self, genre_rules=None, emotion_rules=None):
        self.genre_rules = genre_rules or GENRE_RULES
        self.emotion_rules = emotion_rules or EMOTION_RULES

    @staticmethod
    def _first_match(text: str, rules) -> str:
        for label, pattern in rules:
            if pattern.search(text):
                return label
        return ""

    def classify(self, story_text: str) -> Classification:
        text = story_text.lower()
        genre = self._first_match(text, self.genre_rules)
        emotion = self._first_match(text, self.emotion_rules)
        return Classification(
            genre=genre or DEFAULT_GENRE,
            emotion=emotion or DEFAULT_EMOTION,
            genre_matched=bool(genre),
            emotion_matched=bool(emotion),
        )
