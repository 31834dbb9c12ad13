"""Parsed-document abstraction consumed by the extractor.

The extractor only needs element lookup, attribute reads and text content, so
it runs the same against a live page snapshot (``page.content()``) and against
fixture HTML in tests. The concrete backend is BeautifulSoup with lxml.
"""
from __future__ import annotations

import re
from typing import Optional, Protocol, Sequence

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag

# Elements that start a new line in rendered text
BLOCK_TAGS = frozenset(
    {"p", "div", "li", "ul", "ol", "section", "article", "header", "footer", "tr", "h1", "h2", "h3", "h4", "h5", "h6"}
)
SKIPPED_TAGS = frozenset({"script", "style", "template"})
_WHITESPACE = re.compile(r"\s+")


class Node(Protocol):
    def select(self, css: str) -> Sequence["Node"]: ...

    def select_one(self, css: str) -> Optional["Node"]: ...

    def attr(self, name: str) -> Optional[str]: ...

    def text(self) -> str: ...

    def rendered_text(self) -> str: ...


def _collapse(value: str) -> str:
    return " ".join(value.split())


def _walk(tag: Tag, out: list[str]) -> None:
    for child in tag.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            out.append(_WHITESPACE.sub(" ", str(child)))
            continue
        if not isinstance(child, Tag) or child.name in SKIPPED_TAGS:
            continue
        if child.name == "br":
            out.append("\n")
            continue
        block = child.name in BLOCK_TAGS
        if block:
            out.append("\n")
        _walk(child, out)
        if block:
            out.append("\n")


class SoupNode:
    """``Node`` over a bs4 tag.

    ``text()`` is the whitespace-collapsed text used for short fields.
    ``rendered_text()`` approximates ``innerText``: line breaks from ``<br>``
    and block elements survive, runs of spaces inside a line collapse and
    blank lines are dropped.
    """

    __slots__ = ("tag",)

    def __init__(self, tag: Tag):
        self.tag = tag

    def select(self, css: str) -> list["SoupNode"]:
        return [SoupNode(t) for t in self.tag.select(css)]

    def select_one(self, css: str) -> Optional["SoupNode"]:
        found = self.tag.select_one(css)
        return SoupNode(found) if found is not None else None

    def attr(self, name: str) -> Optional[str]:
        value = self.tag.get(name)
        if isinstance(value, list):  # multi-valued attributes such as class
            return " ".join(value)
        return value

    def text(self) -> str:
        return _collapse(self.tag.get_text(" "))

    def rendered_text(self) -> str:
        parts: list[str] = []
        _walk(self.tag, parts)
        lines = (_collapse(line) for line in "".join(parts).split("\n"))
        return "\n".join(line for line in lines if line)

    def __repr__(self) -> str:  # pragma: no cover
        return f"SoupNode(<{self.tag.name}>)"


def parse_document(html: str) -> SoupNode:
    return SoupNode(BeautifulSoup(html or "", "lxml"))
