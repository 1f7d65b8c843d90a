import pytest

from property_api.weather import (
    WEATHER_GROUP_CODES,
    WeatherGroup,
    classify,
    matches_any_group,
    parse_weather_groups,
)


def test_groups_are_disjoint():
    seen = set()
    for codes in WEATHER_GROUP_CODES.values():
        assert not (codes & seen)
        seen |= codes


@pytest.mark.parametrize("group", list(WeatherGroup))
def test_classify_members_return_their_group(group):
    for code in WEATHER_GROUP_CODES[group]:
        assert classify(code) is group


@pytest.mark.parametrize("code", [4, 45, 48, 95, 99, -1, 1000, None, "0", True, 2.5])
def test_classify_unmatched_or_non_numeric_is_none(code):
    assert classify(code) is None


def test_classify_accepts_integral_float():
    assert classify(3.0) is WeatherGroup.CLOUDY


@pytest.mark.parametrize("code", [0, 3, 61, 95, None, "x"])
def test_no_requested_groups_matches_everything(code):
    assert matches_any_group(code, []) is True
    assert matches_any_group(code, None) is True


@pytest.mark.parametrize("code", [0, 3, 61, 95, None])
def test_unknown_groups_degrade_to_no_filter(code):
    assert matches_any_group(code, ["not-a-real-group"]) is True


def test_missing_code_never_matches_a_real_group():
    assert matches_any_group(None, ["clear"]) is False
    assert matches_any_group("0", ["clear"]) is False


def test_matches_any_of_several_groups():
    assert matches_any_group(63, ["clear", "rainy"]) is True
    assert matches_any_group(2, ["clear", "rainy"]) is False
    assert matches_any_group(71, [WeatherGroup.SNOW]) is True


def test_unknown_groups_are_discarded_when_valid_ones_remain():
    assert matches_any_group(0, ["bogus", "clear"]) is True
    assert matches_any_group(61, ["bogus", "clear"]) is False


def test_parse_weather_groups_from_comma_string():
    assert parse_weather_groups("clear, Rainy,,bogus") == (WeatherGroup.CLEAR, WeatherGroup.RAINY)


def test_parse_weather_groups_from_repeated_params():
    assert parse_weather_groups(["snow", "clear,snow"]) == (WeatherGroup.SNOW, WeatherGroup.CLEAR)


@pytest.mark.parametrize("raw", [None, "", [], "nope"])
def test_parse_weather_groups_empty(raw):
    assert parse_weather_groups(raw) == ()
