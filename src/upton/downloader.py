from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from .annotate import Annotator, SoupAnnotator
from .config import DownloaderSettings, load_settings
from .exceptions import SKIPPABLE_ERRORS, RequestTimeout, RetriesExhausted, UptonConfigError
from .fetcher import RequestsFetcher, ResourceFetcher
from .models import FetchOutcome, FetchResult
from .retry import RetryPolicy
from .stash import StashCache

LOGGER = logging.getLogger(__name__)


class Downloader:
    """Download a page, or read it back from the stash directory.

    By default the stash lives in ``<tempdir>/upton`` and entries get an
    md5-based filename; ``readable_filenames=True`` derives the name from the
    URI itself instead. Options not passed explicitly fall back to ``UPTON_*``
    environment variables.

    The stash is only consistent for a single writer per directory.
    """

    def __init__(
        self,
        uri: str,
        settings: Optional[DownloaderSettings] = None,
        fetcher: Optional[ResourceFetcher] = None,
        annotator: Optional[Annotator] = None,
        retry_policy: Optional[RetryPolicy] = None,
        **options: Any,
    ) -> None:
        if settings is not None and options:
            raise UptonConfigError("Pass either settings or keyword options, not both")
        self.uri = uri
        self.settings = settings or load_settings(options)
        self.fetcher = fetcher or RequestsFetcher(user_agent=self.settings.user_agent, timeout=self.settings.timeout)
        self.annotator = annotator or SoupAnnotator()
        self.retry_policy = retry_policy or self.settings.retry_policy
        self.stash = StashCache(self.settings.cache_location, self.settings.readable_filenames)
        self.initialize_cache()

    @property
    def cache_location(self) -> Path:
        return self.settings.cache_location

    @property
    def verbose(self) -> bool:
        return self.settings.verbose

    @property
    def cache_enabled(self) -> bool:
        return self.settings.cache

    def initialize_cache(self) -> bool:
        """Create the stash directory if needed. Safe to call repeatedly."""
        created = self.stash.bootstrap()
        if created:
            self._log("Created stash directory at %s", self.cache_location)
        return created

    def get(self) -> FetchResult:
        if self.cache_enabled:
            self._log("Stashing enabled. Will try reading %s data from cache.", self.uri)
            return self._download_from_stash()
        self._log("Stashing disabled. Will download from the internet.")
        outcome = self._download_from_resource()
        return FetchResult(outcome.content, True, outcome.status, outcome.reason)

    def _log(self, msg: str, *args: Any) -> None:
        LOGGER.log(logging.INFO if self.verbose else logging.DEBUG, msg, *args)

    def _download_from_stash(self) -> FetchResult:
        if self.stash.exists(self.uri):
            self._log("Cache of %s available", self.uri)
            return FetchResult(self.stash.read(self.uri), False)

        if self.settings.readable_filenames:
            self._log("Cache of %s unavailable at %s. Will download from the internet", self.uri, self.stash.filename(self.uri))
        else:
            self._log("Cache of %s unavailable. Will download from the internet", self.uri)
        outcome = self._download_from_resource()

        annotated = self.annotator.annotate(outcome.content, self.uri)
        if self.settings.readable_filenames:
            self._log("Writing %s data to the cache at %s", self.uri, self.stash.path(self.uri))
        else:
            self._log("Writing %s data to the cache", self.uri)
        self.stash.write(self.uri, annotated)

        content = annotated if self.settings.annotated_on_miss else outcome.content
        return FetchResult(content, True, outcome.status, outcome.reason)

    def _download_from_resource(self) -> FetchOutcome:
        attempt = 0
        while True:
            attempt += 1
            try:
                self._log("Downloading from %s", self.uri)
                content = self.fetcher.fetch(self.uri)
            except RequestTimeout as exc:
                self._log("Timeout: %s (attempt %d)", self.uri, attempt)
                if self.retry_policy.exhausted(attempt):
                    raise RetriesExhausted(self.uri, attempt, exc) from exc
                self.retry_policy.wait(attempt)
                continue
            except SKIPPABLE_ERRORS as exc:
                self._log("%s, skipping: %s", type(exc).__name__, self.uri)
                return FetchOutcome.skipped(str(exc))
            self._log("Downloaded %s", self.uri)
            return FetchOutcome(content)
