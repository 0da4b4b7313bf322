"""Provenance comments for stashed HTML."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol

from bs4 import BeautifulSoup, Comment

from .version import __version__

HTML_MARKER = "<html"


class Annotator(Protocol):
    def annotate(self, content: str, uri: str) -> str:  # pragma: no cover - structural contract
        ...


def _local_now() -> datetime:
    return datetime.now().astimezone()


def provenance_message(uri: str, when: datetime) -> str:
    stamp = when.strftime("%Y-%m-%d %H:%M:%S %z").strip()
    return f"Stashed file retrieved by Upton {__version__} from {uri} at {stamp}"


class SoupAnnotator:
    """Insert a provenance comment as the first child of the ``<html>`` element.

    Content without an ``<html`` marker, or that does not parse to an html
    root, is returned unchanged.
    """

    def __init__(self, parser: str = "html.parser", clock: Callable[[], datetime] = _local_now) -> None:
        self.parser = parser
        self.clock = clock

    def annotate(self, content: str, uri: str) -> str:
        if HTML_MARKER not in content:
            return content
        soup = BeautifulSoup(content, self.parser)
        root = soup.find("html")
        if root is None:
            return content
        root.insert(0, Comment(provenance_message(uri, self.clock())))
        return str(soup)
