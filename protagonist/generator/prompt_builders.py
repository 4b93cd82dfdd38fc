"""
Prompt builders for the text and image providers.

Text prompts are rendered from a ContinuityContext; image prompts from a Scene.
Identity-preserving providers get the strict identity checklist, the
non-identity provider gets a plain cinematic prompt.
"""
import re
from typing import Optional

from ..analyzer.scene_models import Scene
from ..templates.models import VisualStyleGuide
from .continuity import ContinuityContext

MIN_WORDS = 150
MAX_WORDS = 250

STORY_SYSTEM_PROMPT = (
    "You are a bestselling serial romance author. You write addictive daily episodes "
    "with vivid sensory detail, natural dialogue and a hook at the end of every chapter."
)


def build_story_prompt(context: ContinuityContext) -> str:
    """Rich prompt with a strict TITLE / STORY / SCENE_DESCRIPTION output contract."""
    ending = (
        "Bring the arc to a satisfying conclusion (this is the final episode)"
        if context.is_finale
        else "End with a hook/tease for tomorrow"
    )
    return f"""{context.render()}

**REQUIREMENTS:**
1. Write {MIN_WORDS}-{MAX_WORDS} words
2. Focus on TODAY's plot point only
3. Maintain emotional continuity with previous episodes
4. Include dialogue and sensory details
5. {ending}
6. Write in English with engaging, contemporary prose

**OUTPUT FORMAT:**
TITLE: [Episode title]
STORY: [Your story text]
SCENE_DESCRIPTION: [1-2 sentences describing the visual scene for image generation]"""


def build_simple_story_prompt(context: ContinuityContext) -> str:
    """Short prompt for the fallback provider; asks for plain prose only."""
    previous = ""
    if context.last_episode_summary:
        previous = f"\nPreviously: {context.last_episode_summary}"
    return (
        f"Write day {context.day_number} of the romance serial \"{context.title}\" "
        f"({context.genre}, {context.theme}).\n"
        f"Main characters: {context.protagonist} and {context.counterpart}.{previous}\n"
        f"Today: {context.plot}\n\n"
        f"Write {MIN_WORDS}-{MAX_WORDS} words of story in English with dialogue. "
        "Output only the story text, no title and no preface."
    )


def build_identity_lock_prompt(scene: Scene, gender: str) -> str:
    gender_term = "man" if gender == "male" else "woman"

    identity_lock = """CRITICAL IDENTITY REQUIREMENTS:
1. EXACT SAME FACE as the reference photo - preserve ALL facial features precisely
2. SAME eye shape, eye color, eyebrows, nose, lips, face shape
3. SAME hairstyle and hair color as reference
4. SAME skin tone and complexion
5. Preserve any distinctive features: glasses, freckles, beauty marks, facial hair
6. The face must be RECOGNIZABLE as the SAME PERSON from the reference photo
7. DO NOT change any facial characteristics
8. Match the exact age and appearance from reference photo"""

    scene_detail = f"""SCENE: {scene.description}

SUBJECT: A {gender_term} with the EXACT SAME FACE as the reference photo
ACTION: {scene.camera.action or 'standing confidently'}

ENVIRONMENT: {scene.environment}
ATMOSPHERE: {scene.atmosphere}

CAMERA: {scene.camera.shot}, {scene.camera.angle}, {scene.camera.distance}
LIGHTING: {scene.lighting.type} - {scene.lighting.quality}
EMOTION: {scene.emotion} expression"""

    technical = """STYLE: Photorealistic cinematic photography, not AI-generated looking
QUALITY: Ultra detailed, 8K resolution, professional photography
COMPOSITION: Rule of thirds, leading lines, dynamic framing
DEPTH: Shallow depth of field when appropriate, bokeh effect on background
COLOR: Rich, vibrant colors, cinematic color grading
TEXTURE: Fine details in fabric, skin, environment visible"""

    return f"{identity_lock}\n\n{scene_detail}\n\n{technical}"


def build_identity_prompt(scene: Scene, gender: str) -> str:
    """Identity prompt without a reference image (text-to-image)."""
    gender_term = "man" if gender == "male" else "woman"
    return (
        f"A {gender_term} in the following scene. {scene.description}\n"
        f"Action: {scene.camera.action or 'standing confidently'}\n"
        f"Environment: {scene.environment}. Atmosphere: {scene.atmosphere}.\n"
        f"Camera: {scene.camera.shot}, {scene.camera.angle}, {scene.camera.distance}.\n"
        f"Lighting: {scene.lighting.type} - {scene.lighting.quality}.\n"
        f"Expression: {scene.emotion}. Photorealistic cinematic photography."
    )


def build_photomaker_prompt(scene: Scene, gender: str) -> str:
    """PhotoMaker places the reference face at the "img" trigger word."""
    gender_term = "man" if gender == "male" else "woman"
    identity = f"A photo of a {gender_term} img with the exact same face as the reference image."

    scene_section = f"""{scene.description}

Setting: {scene.environment}
Action: {scene.camera.action or 'standing confidently'}
Camera: {scene.camera.shot}, {scene.camera.angle}, {scene.camera.distance}
Lighting: {scene.lighting.type} - {scene.lighting.quality}
Mood: {scene.emotion} expression, {scene.atmosphere}"""

    quality = """Professional photography, high quality, detailed, realistic.
DSLR camera, sharp focus on face, natural skin texture, cinematic lighting.
Ultra realistic, not AI-generated looking, photorealistic."""

    return f"{identity}\n\n{scene_section}\n\n{quality}"


NEGATIVE_PROMPT = re.sub(r"\s+", " ", """
ugly, deformed, noisy, blurry, low contrast,
cartoon, anime, illustration, painting, drawing,
face distortion, wrong face, different person, changed face,
extra fingers, extra limbs, missing limbs,
plastic skin, over-smoothed skin, wax skin,
beautified face, idealized face, model face,
low resolution, watermark, text, signature,
bad anatomy, bad proportions, disconnected limbs,
mutation, mutated, floating limbs, disfigured
""").strip()


def build_cinematic_prompt(scene: Scene, style: Optional[VisualStyleGuide] = None,
                           day_number: Optional[int] = None) -> str:
    """Plain cinematic prompt for providers that cannot keep a face."""
    lines = ["Romantic story illustration:", "", f"**SCENE:** {scene.description}",
             f"Setting: {scene.environment}. Atmosphere: {scene.atmosphere}.",
             f"Lighting: {scene.lighting.type} - {scene.lighting.quality}."]
    if style is not None:
        lines += [
            "",
            "**VISUAL STYLE:**",
            f"- Tone: {style.tone_color}",
            f"- Setting: {style.setting_imagery}",
            f"- Mood: {style.mood_details}",
        ]
    lines += ["", "**REQUIREMENTS:**", "- Cinematic, high-quality illustration",
              "- Focus on emotional connection between characters"]
    if day_number is not None:
        lines.append(f"- Appropriate for Day {day_number} of romance story arc")
    lines.append("- No text or watermarks")
    return "\n".join(lines)
