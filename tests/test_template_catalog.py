import json
import random

import pytest
from pydantic import ValidationError

from protagonist.exceptions import ConfigurationError
from protagonist.templates import ARC_LENGTH, RECOMMENDED_IDS, StoryTemplate, TemplateCatalog


def _template_data(catalog, template_id="sweet_revenge_shattered_vows", **changes):
    data = catalog.get_by_id(template_id).model_dump(mode="json")
    data.update(changes)
    return data


def test_every_template_has_days_one_to_thirty_in_order(catalog):
    assert len(catalog) == 10
    for template in catalog.get_all():
        assert [e.day for e in template.episodes] == list(range(1, ARC_LENGTH + 1))


def test_shattered_vows_is_authored_as_expected(catalog):
    template = catalog.get_by_id("sweet_revenge_shattered_vows")

    assert template.title == "Shattered Vows"
    assert template.genre == "Romance"
    assert template.emotion == "Revenge"
    assert template.episodes[0].plot == (
        "Victoria arrives back in her hometown under an alias, secretly vowing revenge."
    )
    assert "revenge" in template.theme_keywords


def test_get_by_id_unknown_returns_none(catalog):
    assert catalog.get_by_id("no_such_template") is None
    assert catalog.get_episode_outline("no_such_template", 1) is None
    assert catalog.get_all_episode_outlines("no_such_template") == []


def test_get_for_user_without_filter_returns_everything(catalog):
    assert len(catalog.get_for_user()) == len(catalog.get_all())


def test_get_for_user_matches_genre_case_insensitively(catalog):
    matches = catalog.get_for_user(genre="ROMANCE")

    assert matches
    assert all("romance" in t.genre.lower() for t in matches)
    # "Romantic Comedy" does not contain "romance"
    assert "faking_it_dating_deal" not in {t.id for t in matches}


def test_get_for_user_combines_genre_and_emotion(catalog):
    matches = catalog.get_for_user(genre="taboo", emotion="forbidden")

    assert {t.id for t in matches} == {"off_limits_stepbrother", "stepbrother_seduction"}


def test_get_by_genre_and_emotion(catalog):
    assert [t.id for t in catalog.get_by_genre("dark romance")] == ["blood_roses_vendetta"]
    assert [t.id for t in catalog.get_by_emotion("REVENGE")] == ["sweet_revenge_shattered_vows"]


def test_get_for_user_unmatched_filter_is_empty_not_an_error(catalog):
    assert catalog.get_for_user(genre="western") == []
    assert catalog.get_by_emotion("boredom") == []


def test_recommended_is_fixed_set_of_five(catalog):
    recommended = catalog.get_recommended()

    assert len(recommended) == 5
    assert tuple(t.id for t in recommended) == RECOMMENDED_IDS


def test_episode_outline_lookup(catalog):
    outline = catalog.get_episode_outline("sweet_revenge_shattered_vows", 30)

    assert outline.day == 30
    assert outline.plot.startswith("Epilogue")
    assert catalog.get_episode_outline("sweet_revenge_shattered_vows", 31) is None


def test_get_random_uses_given_rng(catalog):
    first = catalog.get_random(random.Random(11))
    second = catalog.get_random(random.Random(11))
    assert first.id == second.id


def test_template_with_missing_day_is_rejected(catalog):
    data = _template_data(catalog)
    data["episodes"] = data["episodes"][:29]

    with pytest.raises(ValidationError):
        StoryTemplate.model_validate(data)


def test_template_with_shuffled_days_is_rejected(catalog):
    data = _template_data(catalog)
    data["episodes"][0], data["episodes"][1] = data["episodes"][1], data["episodes"][0]

    with pytest.raises(ValidationError):
        StoryTemplate.model_validate(data)


def test_duplicate_ids_are_a_configuration_error(catalog):
    template = catalog.get_by_id("sweet_revenge_shattered_vows")

    with pytest.raises(ConfigurationError):
        TemplateCatalog([template, template], recommended_ids=())


def test_missing_recommended_template_is_a_configuration_error(catalog):
    template = catalog.get_by_id("sweet_revenge_shattered_vows")

    with pytest.raises(ConfigurationError):
        TemplateCatalog([template])


def test_from_json_wraps_validation_errors(tmp_path, catalog):
    data = _template_data(catalog)
    data["episodes"] = data["episodes"][:10]
    path = tmp_path / "templates.json"
    path.write_text(json.dumps({"version": 1, "templates": [data]}), encoding="utf-8")

    with pytest.raises(ConfigurationError):
        TemplateCatalog.from_json(path)
