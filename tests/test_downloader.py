import logging
import os
import stat

import pytest

from upton.config import DownloaderSettings
from upton.downloader import Downloader
from upton.exceptions import (
    ConnectionFailed,
    InternalServerError,
    InvalidURI,
    RequestTimeout,
    ResourceNotFound,
    RetriesExhausted,
    ServiceUnavailable,
    UptonConfigError,
)
from upton.models import FetchStatus
from upton.retry import RetryPolicy
from upton.stash import hashed_filename

URI = "http://www.example.com/page"
PAGE = "<html><body>x</body></html>"


class FakeFetcher:
    """Replays a script of bodies and exceptions, one per fetch."""

    def __init__(self, *script):
        self.script = list(script) or [PAGE]
        self.calls = 0

    def fetch(self, uri):
        self.calls += 1
        step = self.script[min(self.calls, len(self.script)) - 1]
        if isinstance(step, Exception):
            raise step
        return step


def make_downloader(tmp_path, fetcher, **options):
    options.setdefault("cache_location", tmp_path / "stash")
    return Downloader(URI, fetcher=fetcher, **options)


def test_cache_disabled_always_fetches(tmp_path):
    fetcher = FakeFetcher()
    downloader = make_downloader(tmp_path, fetcher, cache=False)
    first = downloader.get()
    second = downloader.get()
    assert first.from_resource is True
    assert second.from_resource is True
    assert first.content == PAGE
    assert fetcher.calls == 2
    assert os.listdir(tmp_path / "stash") == []


def test_miss_then_hit(tmp_path):
    fetcher = FakeFetcher()
    first = make_downloader(tmp_path, fetcher).get()
    assert first.from_resource is True
    assert first.content == PAGE

    stashed = tmp_path / "stash" / hashed_filename(URI)
    assert stashed.exists()
    written = stashed.read_text(encoding="utf-8")

    second = make_downloader(tmp_path, fetcher).get()
    assert second.from_resource is False
    assert second.content == written
    assert fetcher.calls == 1


def test_miss_returns_raw_content_but_stashes_annotated(tmp_path):
    result = make_downloader(tmp_path, FakeFetcher()).get()
    written = (tmp_path / "stash" / hashed_filename(URI)).read_text(encoding="utf-8")
    assert result.content == PAGE
    assert written != PAGE
    assert f"from {URI} at" in written
    assert written.index(URI) < written.index("<body>")


def test_annotated_on_miss_returns_stashed_content(tmp_path):
    result = make_downloader(tmp_path, FakeFetcher(), annotated_on_miss=True).get()
    written = (tmp_path / "stash" / hashed_filename(URI)).read_text(encoding="utf-8")
    assert result.content == written
    assert "Stashed file retrieved by Upton" in result.content


def test_hit_returns_bytes_verbatim(tmp_path):
    stash = tmp_path / "stash"
    stash.mkdir()
    (stash / hashed_filename(URI)).write_text("<html>already here</html>", encoding="utf-8")
    fetcher = FakeFetcher()
    result = make_downloader(tmp_path, fetcher).get()
    assert result.content == "<html>already here</html>"
    assert result.from_resource is False
    assert fetcher.calls == 0


def test_non_html_is_stashed_unchanged(tmp_path):
    make_downloader(tmp_path, FakeFetcher("plain text")).get()
    assert (tmp_path / "stash" / hashed_filename(URI)).read_text(encoding="utf-8") == "plain text"


def test_readable_filenames(tmp_path):
    make_downloader(tmp_path, FakeFetcher(), readable_filenames=True).get()
    assert os.listdir(tmp_path / "stash") == ["httpwwwexamplecompage.html"]


@pytest.mark.parametrize(
    "error_cls",
    [ResourceNotFound, InternalServerError, ServiceUnavailable, InvalidURI],
)
def test_skippable_failures_yield_empty_content(tmp_path, error_cls):
    result = make_downloader(tmp_path, FakeFetcher(error_cls(URI)), cache=False).get()
    assert result.content == ""
    assert result.from_resource is True
    assert result.status is FetchStatus.SKIPPED
    assert result.skipped
    assert result.reason


def test_swallowed_404_is_stashed_as_empty(tmp_path):
    result = make_downloader(tmp_path, FakeFetcher(ResourceNotFound(URI, status_code=404))).get()
    assert (result.content, result.from_resource) == ("", True)
    assert (tmp_path / "stash" / hashed_filename(URI)).read_text(encoding="utf-8") == ""


def test_empty_body_is_not_reported_as_skipped(tmp_path):
    result = make_downloader(tmp_path, FakeFetcher(""), cache=False).get()
    assert (result.content, result.from_resource) == ("", True)
    assert result.status is FetchStatus.OK
    assert result.reason is None


def test_timeouts_are_retried_until_success(tmp_path):
    fetcher = FakeFetcher(*[RequestTimeout(URI)] * 25, PAGE)
    result = make_downloader(tmp_path, fetcher, cache=False).get()
    assert result.content == PAGE
    assert fetcher.calls == 26


def test_bounded_retry_gives_up(tmp_path):
    waits = []
    policy = RetryPolicy(max_attempts=3, delay=1.0, backoff=2.0, sleep=waits.append)
    fetcher = FakeFetcher(RequestTimeout(URI))
    downloader = Downloader(URI, fetcher=fetcher, retry_policy=policy, cache=False, cache_location=tmp_path)
    with pytest.raises(RetriesExhausted) as excinfo:
        downloader.get()
    assert fetcher.calls == 3
    assert waits == [1.0, 2.0]
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.last_error, RequestTimeout)


@pytest.mark.parametrize("max_retries, calls", [(0, 1), (1, 2), (2, 3)])
def test_max_retries_counts_retries_after_first_attempt(tmp_path, max_retries, calls):
    fetcher = FakeFetcher(RequestTimeout(URI))
    downloader = make_downloader(tmp_path, fetcher, cache=False, max_retries=max_retries)
    with pytest.raises(RetriesExhausted):
        downloader.get()
    assert fetcher.calls == calls


def test_one_retry_recovers_from_a_single_timeout(tmp_path):
    fetcher = FakeFetcher(RequestTimeout(URI), PAGE)
    result = make_downloader(tmp_path, fetcher, cache=False, max_retries=1).get()
    assert result.content == PAGE
    assert fetcher.calls == 2


def test_other_failures_propagate_and_nothing_is_stashed(tmp_path):
    fetcher = FakeFetcher(ConnectionFailed(URI))
    with pytest.raises(ConnectionFailed):
        make_downloader(tmp_path, fetcher).get()
    assert os.listdir(tmp_path / "stash") == []


def test_construction_bootstraps_stash(tmp_path):
    downloader = make_downloader(tmp_path, FakeFetcher())
    stash = tmp_path / "stash"
    assert downloader.cache_location == stash
    assert stat.S_IMODE(os.stat(stash).st_mode) == 0o700
    assert downloader.initialize_cache() is False


def test_second_downloader_keeps_existing_permissions(tmp_path):
    stash = tmp_path / "stash"
    stash.mkdir()
    os.chmod(stash, 0o750)
    make_downloader(tmp_path, FakeFetcher())
    make_downloader(tmp_path, FakeFetcher())
    assert stat.S_IMODE(os.stat(stash).st_mode) == 0o750


def test_relative_cache_location_is_made_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    downloader = Downloader(URI, fetcher=FakeFetcher(), cache_location="relative-stash")
    assert downloader.cache_location == tmp_path / "relative-stash"
    assert downloader.cache_location.is_absolute()


def test_settings_and_options_are_exclusive(tmp_path):
    settings = DownloaderSettings(cache_location=tmp_path)
    with pytest.raises(UptonConfigError):
        Downloader(URI, settings=settings, fetcher=FakeFetcher(), verbose=True)


def test_verbose_logs_decisions_at_info(tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="upton.downloader")
    make_downloader(tmp_path, FakeFetcher(), verbose=True).get()
    messages = [record.getMessage() for record in caplog.records]
    assert f"Stashing enabled. Will try reading {URI} data from cache." in messages
    assert f"Writing {URI} data to the cache" in messages


def test_quiet_downloader_stays_below_info(tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="upton.downloader")
    make_downloader(tmp_path, FakeFetcher(), verbose=False).get()
    assert caplog.records == []
