from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from pathlib import Path

LOGGER = logging.getLogger(__name__)

# Longest cache path (directory + filename) that is safe on unixes and Windows XP+.
MAX_FILENAME_LENGTH = 130
EXTENSION = ".html"
CACHE_DIR_MODE = 0o700

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def hashed_filename(uri: str) -> str:
    return hashlib.md5(uri.encode("utf-8")).hexdigest() + EXTENSION


def readable_filename(uri: str, cache_location: Path | str) -> str:
    budget = MAX_FILENAME_LENGTH - len(EXTENSION) - len(str(cache_location))
    clean = _UNSAFE_CHARS.sub("", uri)
    return clean[: max(budget, 0)] + EXTENSION


class StashCache:
    """Flat, append-only directory of fetched pages keyed by URI.

    Entries are never expired or replaced; a file that exists is a hit until
    something outside this package removes it.
    """

    def __init__(self, root: Path, readable_filenames: bool = False) -> None:
        self.root = root
        self.readable_filenames = readable_filenames

    def bootstrap(self) -> bool:
        """Create the cache directory with owner-only permissions.

        Returns ``False`` without touching anything when it already exists.
        """
        if self.root.is_dir():
            return False
        self.root.mkdir(parents=True)
        os.chmod(self.root, CACHE_DIR_MODE)
        LOGGER.debug("Created stash directory %s", self.root)
        return True

    def filename(self, uri: str) -> str:
        if self.readable_filenames:
            return readable_filename(uri, self.root)
        return hashed_filename(uri)

    def path(self, uri: str) -> Path:
        return self.root / self.filename(uri)

    def exists(self, uri: str) -> bool:
        return self.path(uri).exists()

    def read(self, uri: str) -> str:
        with open(self.path(uri), "r", encoding="utf-8", newline="") as handle:
            return handle.read()

    def write(self, uri: str, content: str) -> bool:
        """Persist ``content`` unless an entry already exists.

        The data is written to a temporary file and hard-linked into place, so
        readers never see a partial entry and concurrent writers cannot
        clobber each other. Returns ``False`` when another writer won.
        """
        target = self.path(uri)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".stash-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
            os.link(tmp_name, target)
        except FileExistsError:
            LOGGER.debug("Stash entry %s already written by another writer", target)
            return False
        finally:
            os.unlink(tmp_name)
        return True
