"""Pattern tables for structural detection in rule bodies.

==================  ===========================================  ===========
name                pattern                                      captures
==================  ===========================================  ===========
markdown link       ``[text](target)``                           text, target
reference marker    ``@import "id"`` / ``@include 'id'``         rule id
==================  ===========================================  ===========

Link targets starting with one of ``EXTERNAL_LINK_PREFIXES`` never point at
project files and are skipped by the dead-link check.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final, Iterator

MARKDOWN_LINK: Final[re.Pattern[str]] = re.compile(r"\[([^\]]*)\]\(([^)]+)\)")
REFERENCE_MARKER: Final[re.Pattern[str]] = re.compile(
    r"@(?:import|include)\s+[\"']([^\"']+)[\"']"
)
EXTERNAL_LINK_PREFIXES: Final[tuple[str, ...]] = ("http://", "https://", "#", "mailto:")


@dataclass(frozen=True)
class LinkMatch:
    text: str
    target: str
    offset: int
    line: int


def line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def is_external_link(target: str) -> bool:
    return target.startswith(EXTERNAL_LINK_PREFIXES)


def strip_anchor(target: str) -> str:
    return target.split("#", 1)[0]


def iter_links(text: str) -> Iterator[LinkMatch]:
    for match in MARKDOWN_LINK.finditer(text):
        yield LinkMatch(
            text=match.group(1),
            target=match.group(2).strip(),
            offset=match.start(),
            line=line_of(text, match.start()),
        )


def iter_local_links(text: str) -> Iterator[LinkMatch]:
    for link in iter_links(text):
        if not is_external_link(link.target):
            yield link


def find_references(text: str) -> list[str]:
    """Referenced rule ids in order of first appearance."""
    seen: dict[str, None] = {}
    for match in REFERENCE_MARKER.finditer(text):
        seen.setdefault(match.group(1).strip(), None)
    return list(seen)
