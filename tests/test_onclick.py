import pytest

from errors import ParseFailure
from onclick import IdentifierPair, parse_onclick


@pytest.mark.parametrize(
    "onclick, expected",
    [
        ("fn('12AB','xyz_tag')", IdentifierPair("12AB", "xyz_tag")),
        ("loadEpisode(12,34)", IdentifierPair("12", "34")),
        ('loadVideo("EP1", "tag1")', IdentifierPair("EP1", "tag1")),
        ("  loadVideo( 'EP1' , \"tag-1\" );return false;", IdentifierPair("EP1", "tag-1")),
    ],
)
def test_parse_onclick(onclick, expected):
    assert parse_onclick(onclick) == expected


@pytest.mark.parametrize(
    "onclick",
    [
        None,
        "",
        "not a call",
        "fn('only_one')",
        "fn('a','b','c')",
        "fn('','tag')",
        "fn(' ','tag')",
        "fn('a',)",
        "fn('a','b'",
    ],
)
def test_parse_onclick_rejects_malformed(onclick):
    with pytest.raises(ParseFailure):
        parse_onclick(onclick)


def test_parse_failure_keeps_raw_value():
    with pytest.raises(ParseFailure) as exc_info:
        parse_onclick("fn('a','b','c')")
    assert exc_info.value.details == "fn('a','b','c')"
