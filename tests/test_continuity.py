from datetime import datetime

from protagonist.generator.continuity import (EMPTY_SUMMARY, ContinuityContextBuilder, counterpart_name,
                                              protagonist_name, summarize)
from protagonist.schemas import Episode, NameOverrides
from protagonist.templates.models import StoryTemplate

LONG_TEXT = (
    "She walked into the boardroom with her head held high and every eye turned. "
    "Nobody recognized her. The man at the head of the table went pale. "
    "Tomorrow everything would change."
)


def make_episode(number, text=LONG_TEXT):
    return Episode(
        id=f"ep{number}",
        arc_id="arc",
        episode_number=number,
        title=f"Day {number}",
        text=text,
        image_url="https://media.test/x.png",
        scene_description="scene",
        text_provider="claude",
        image_provider="replicate",
        delivered_at=datetime(2026, 1, number),
    )


def nameless_template(catalog, genre):
    data = catalog.get_by_id("sweet_revenge_shattered_vows").model_dump(mode="json")
    data.update(summary="a story told without any names at all.", genre=genre)
    return StoryTemplate.model_validate(data)


def test_summarize_keeps_short_text():
    assert summarize("Short day. Nice.") == "Short day Nice"


def test_summarize_truncates_with_ellipsis():
    summary = summarize(LONG_TEXT, 50)

    assert summary.endswith("...")
    assert len(summary) == 53
    assert summary.startswith("She walked into the boardroom")


def test_summarize_is_deterministic():
    assert summarize(LONG_TEXT, 100) == summarize(LONG_TEXT, 100)


def test_summarize_empty_text():
    assert summarize("") == EMPTY_SUMMARY
    assert summarize("...!?") == EMPTY_SUMMARY


def test_only_last_three_episodes_are_summarized(catalog):
    template = catalog.get_by_id("sweet_revenge_shattered_vows")
    previous = [make_episode(n) for n in range(1, 6)]

    context = ContinuityContextBuilder().build(template, template.outline_for(6), previous)

    assert [number for number, _ in context.recent_episodes] == [3, 4, 5]
    for _, summary in context.recent_episodes:
        assert summary.endswith("...")
        assert len(summary) <= 53
    assert context.last_episode_summary == summarize(LONG_TEXT, 100)
    assert context.day_number == 6


def test_first_day_has_no_continuity_block(catalog):
    template = catalog.get_by_id("sweet_revenge_shattered_vows")

    context = ContinuityContextBuilder().build(template, template.outline_for(1), [])
    rendered = context.render()

    assert context.recent_episodes == ()
    assert context.last_episode_summary is None
    assert "STORY CONTINUITY" not in rendered
    assert "Plot: Victoria arrives back in her hometown" in rendered


def test_render_includes_names_and_history(catalog):
    template = catalog.get_by_id("sweet_revenge_shattered_vows")
    previous = [make_episode(n, f"Day {n} happened. More followed.") for n in range(1, 3)]

    rendered = ContinuityContextBuilder().build(template, template.outline_for(3), previous).render()

    assert "- Protagonist: Victoria" in rendered
    assert "- Love Interest: Adrian" in rendered
    assert "Day 2: Day 2 happened More followed" in rendered
    assert "Last episode ended:" in rendered


def test_names_come_from_template_summary(catalog):
    expected = {
        "sweet_revenge_shattered_vows": ("Victoria", "Adrian"),
        "dark_obsession_devils_bargain": ("Mia", "Damien"),
        "phoenix_reborn": ("Celeste", "Kieran"),
        "royals_rebels_cruel_elite": ("Ella", "Logan"),
        "blood_roses_vendetta": ("Bella", "Nico"),
        "off_limits_stepbrother": ("Haley", "Cole"),
        "tempting_professor": ("Olivia", "Alexander"),
    }
    for template_id, (lead, counterpart) in expected.items():
        template = catalog.get_by_id(template_id)
        name = protagonist_name(template, "female")
        assert name == lead, template_id
        assert counterpart_name(template, "female", name) == counterpart, template_id


def test_overrides_win(catalog):
    template = catalog.get_by_id("sweet_revenge_shattered_vows")
    overrides = NameOverrides(protagonist="Jordan", counterpart="Sam")

    context = ContinuityContextBuilder().build(template, template.outline_for(1), [], name_overrides=overrides)

    assert (context.protagonist, context.counterpart) == ("Jordan", "Sam")


def test_fallback_names_follow_genre_and_gender(catalog):
    template = nameless_template(catalog, "Dark Romance")

    assert protagonist_name(template, "male") == "Nico"
    assert counterpart_name(template, "male", "Nico") == "Bella"
    assert protagonist_name(template, "female") == "Bella"
    assert counterpart_name(template, "female", "Bella") == "Nico"


def test_fallback_names_for_unknown_genre(catalog):
    template = nameless_template(catalog, "Space Opera")

    assert protagonist_name(template, None) == "Emma"
    assert counterpart_name(template, None, "Emma") == "Liam"
