"""Tests for environment-based configuration."""

import pytest


def test_string_values(helper_config, env):
    env.setenv("SOME_KEY", "  value  ")
    assert helper_config.get_string_val("some_key") == "value"
    assert helper_config.get_string_val("UNSET_KEY", default="fallback") == "fallback"
    with pytest.raises(ValueError):
        helper_config.get_string_val("UNSET_KEY")


def test_empty_string_counts_as_unset(helper_config, env):
    env.setenv("EMPTY_KEY", "")
    assert helper_config.get_string_val("EMPTY_KEY", default="x") == "x"


def test_number_values(helper_config, env):
    env.setenv("INT_KEY", "42")
    env.setenv("FLOAT_KEY", "0.25")
    env.setenv("BAD_KEY", "many")
    assert helper_config.get_number_val("INT_KEY") == 42
    assert helper_config.get_number_val("FLOAT_KEY") == 0.25
    assert helper_config.get_number_val("UNSET_KEY", default=7) == 7
    with pytest.raises(ValueError):
        helper_config.get_number_val("BAD_KEY")


def test_optional_number(helper_config, env):
    assert helper_config.get_optional_number_val("SEARCH_THRESHOLD") is None
    env.setenv("SEARCH_THRESHOLD", "0.3")
    assert helper_config.get_optional_number_val("SEARCH_THRESHOLD") == 0.3


@pytest.mark.parametrize("raw, expected", [("true", True), ("1", True), ("YES", True), ("false", False), ("0", False)])
def test_bool_values(helper_config, env, raw, expected):
    env.setenv("FLAG", raw)
    assert helper_config.get_bool_val("FLAG") is expected


def test_list_values(helper_config, env):
    env.setenv("LIST_KEY", "[text, markdown ,]")
    assert helper_config.get_list_val("LIST_KEY") == ["text", "markdown"]
    assert helper_config.get_list_val("UNSET_KEY", default=["text"]) == ["text"]
    env.setenv("NUMBERS", "[1,2]")
    assert helper_config.get_list_val("NUMBERS", element_type=int) == [1, 2]
    env.setenv("LIST_KEY", "text,markdown")
    with pytest.raises(ValueError):
        helper_config.get_list_val("LIST_KEY")
