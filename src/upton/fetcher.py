from __future__ import annotations

import functools
import logging
from typing import Optional, Protocol

import requests
from bs4.dammit import EncodingDetector
from urllib3.exceptions import ReadTimeoutError

from .exceptions import (
    ConnectionFailed,
    HTTPStatusError,
    InternalServerError,
    InvalidURI,
    RequestTimeout,
    ResourceNotFound,
    ServiceUnavailable,
)
from .util.http import DEFAULT_TIMEOUT, create_session
from .version import USER_AGENT

LOGGER = logging.getLogger(__name__)

STATUS_ERRORS = {
    404: ResourceNotFound,
    408: RequestTimeout,
    500: InternalServerError,
    503: ServiceUnavailable,
}

INVALID_URI_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
    requests.exceptions.URLRequired,
)


class ResourceFetcher(Protocol):
    def fetch(self, uri: str) -> str:  # pragma: no cover - structural contract
        ...


@functools.lru_cache(maxsize=None)
def shared_session(user_agent: str) -> requests.Session:
    """One pooled session per user agent, reused by every default fetcher."""
    return create_session(user_agent)


def _is_read_timeout(exc: BaseException) -> bool:
    # requests wraps a stall while reading the body in ConnectionError
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, ReadTimeoutError):
            return True
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
        pending.extend([current.__cause__, current.__context__])
    return False


def decode_body(resp: requests.Response) -> str:
    """Body text, honouring a charset from the headers, then the document, then UTF-8."""
    content_type = resp.headers.get("Content-Type", "")
    if "charset" in content_type.lower():
        return resp.text
    declared = EncodingDetector.find_declared_encoding(resp.content, is_html=True)
    if declared:
        resp.encoding = declared
        return resp.text
    try:
        return resp.content.decode("utf-8")
    except UnicodeDecodeError:
        resp.encoding = resp.apparent_encoding
        return resp.text


class RequestsFetcher:
    """Single GET per call, translating ``requests`` failures to ``upton.exceptions``."""

    def __init__(self, session: Optional[requests.Session] = None, user_agent: str = USER_AGENT, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.session = session or shared_session(user_agent)
        self.timeout = timeout

    def fetch(self, uri: str) -> str:
        try:
            resp = self.session.get(uri, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise RequestTimeout(uri, f"Timed out fetching {uri}: {exc}") from exc
        except INVALID_URI_ERRORS as exc:
            raise InvalidURI(uri, f"Invalid URI {uri!r}: {exc}") from exc
        except requests.exceptions.ConnectionError as exc:
            if _is_read_timeout(exc):
                raise RequestTimeout(uri, f"Timed out reading {uri}: {exc}") from exc
            raise ConnectionFailed(uri, f"Could not connect to {uri}: {exc}") from exc

        if resp.status_code >= 400:
            error_cls = STATUS_ERRORS.get(resp.status_code, HTTPStatusError)
            raise error_cls(uri, f"HTTP {resp.status_code} for {uri}", status_code=resp.status_code)
        LOGGER.debug("GET %s -> %s (%d bytes)", uri, resp.status_code, len(resp.content))
        return decode_body(resp)
