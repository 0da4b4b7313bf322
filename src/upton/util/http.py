from __future__ import annotations

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


DEFAULT_TIMEOUT = 30.0


class TimeoutHTTPAdapter(HTTPAdapter):
    def __init__(self, *args, timeout: float = DEFAULT_TIMEOUT, **kwargs) -> None:
        self.timeout = timeout
        super().__init__(*args, **kwargs)

    def send(self, request, **kwargs):  # type: ignore[override]
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().send(request, **kwargs)


def create_session(user_agent: str, timeout: float = DEFAULT_TIMEOUT, connect_retries: int = 2, backoff: float = 0.3) -> requests.Session:
    """Session for stash fetches.

    Only connection setup is retried here. Read timeouts and error statuses
    reach the caller untouched so the downloader can classify them.
    """
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent})
    retry = Retry(
        total=connect_retries,
        connect=connect_retries,
        read=False,
        backoff_factor=backoff,
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    adapter = TimeoutHTTPAdapter(max_retries=retry, timeout=timeout)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
