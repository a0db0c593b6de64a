# onclick.py
"""
Parser for the identifier pairs Drakorkita embeds in inline click handlers,
e.g. ``onclick="loadEpisode('12AB','xyz_tag')"``.

Accepted grammar::

    call     := name "(" argument "," argument ")" ...
    argument := ws? quote? chars quote? ws?

The quote, when present, must be the same single or double quote on both
sides. Anything else (no parentheses, one argument, three arguments, empty
arguments) is a ParseFailure.
"""
import re
from dataclasses import dataclass
from typing import Optional

from errors import ParseFailure

_ARGUMENT_RE = re.compile(r"""^\s*(?P<quote>['"]?)(?P<value>[^'",()]+)(?P=quote)\s*$""")


@dataclass(frozen=True)
class IdentifierPair:
    id: str
    tag: str


def _parse_argument(raw: str, onclick: str) -> str:
    match = _ARGUMENT_RE.match(raw)
    if not match:
        raise ParseFailure(f"Malformed onclick argument {raw!r}", details=onclick)
    value = match.group('value').strip()
    if not value:
        raise ParseFailure(f"Empty onclick argument in {onclick!r}", details=onclick)
    return value


def parse_onclick(onclick: Optional[str]) -> IdentifierPair:
    """
    Extract (id, tag) from a two-argument call string.

    >>> parse_onclick("fn('12AB','xyz_tag')")
    IdentifierPair(id='12AB', tag='xyz_tag')
    >>> parse_onclick("fn(12,34)")
    IdentifierPair(id='12', tag='34')
    """
    if not onclick:
        raise ParseFailure("Missing onclick value")

    start = onclick.find('(')
    end = onclick.find(')', start + 1) if start != -1 else -1
    if start == -1 or end == -1:
        raise ParseFailure(f"No call expression in {onclick!r}", details=onclick)

    inner = onclick[start + 1:end]
    if ',' not in inner:
        raise ParseFailure(f"Expected two arguments in {onclick!r}", details=onclick)

    first, second = inner.split(',', 1)
    return IdentifierPair(
        id=_parse_argument(first, onclick),
        tag=_parse_argument(second, onclick),
    )
