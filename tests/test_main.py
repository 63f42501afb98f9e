from unittest.mock import Mock

import pytest

from vod_bot.__main__ import COMMANDS, command_filter, register_handlers


@pytest.mark.parametrize(
    "text", ["/vod heat", "vod heat", "VOD heat", "/vod@VodBot heat", "/cached"]
)
def test_command_filter_matches_with_or_without_slash(text):
    name = text.lstrip("/").split("@")[0].split()[0].lower()
    assert command_filter(name).pattern.search(text)


@pytest.mark.parametrize("text", ["vodka", "/vodheat", "please vod heat"])
def test_command_filter_rejects_other_words(text):
    assert command_filter("vod").pattern.search(text) is None


def test_cache_filter_does_not_match_cached():
    assert command_filter("cache").pattern.search("/cached") is None


def test_register_handlers_adds_every_handler():
    application = Mock()

    register_handlers(application)

    # commands, buttons, reactions and digit replies
    assert application.add_handler.call_count == len(COMMANDS) + 3
    application.add_error_handler.assert_called_once()
