from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FetchStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class FetchResult:
    """Content returned by ``Downloader.get``.

    ``content`` and ``from_resource`` are the whole drop-in contract: a skipped
    fetch still looks like ``("", True)``. ``status`` and ``reason`` tell a
    skipped fetch apart from a genuinely empty body.
    """

    content: str
    from_resource: bool
    status: FetchStatus = FetchStatus.OK
    reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.status is FetchStatus.SKIPPED


@dataclass(slots=True, frozen=True)
class FetchOutcome:
    content: str
    status: FetchStatus = FetchStatus.OK
    reason: Optional[str] = None

    @classmethod
    def skipped(cls, reason: str) -> "FetchOutcome":
        return cls(content="", status=FetchStatus.SKIPPED, reason=reason)
