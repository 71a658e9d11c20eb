"""Loading of resources from the files under a local directory."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Sequence

from resloader.comments import COMMENT_SLASHES, remove_line_comments
from resloader.resource import Resource

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60.0
_RELOAD_POLL = 0.05


@dataclass
class File:
    """A file found under the root directory."""

    name: str
    root: str
    path: str
    data: bytes = b""


FileFilter = Callable[[File], bool]
FileHandler = Callable[[list[File]], Any]
EtagEncoder = Callable[[datetime], str]


# --------------------------------------------------------------------------- #
# Filters


def _always_true(file: File) -> bool:
    return True


def _check_filters(caller: str, filters: Sequence[FileFilter]) -> None:
    if any(f is None for f in filters):
        raise TypeError(f"{caller}: filter must not be None")


def or_filter(*filters: FileFilter) -> FileFilter:
    """Return a filter allowing a file if any of ``filters`` allows it."""
    _check_filters("or_filter", filters)
    if not filters:
        return _always_true

    def allow(file: File) -> bool:
        return any(f(file) for f in filters)

    return allow


def and_filter(*filters: FileFilter) -> FileFilter:
    """Return a filter allowing a file only if all of ``filters`` allow it."""
    _check_filters("and_filter", filters)
    if not filters:
        return _always_true

    def allow(file: File) -> bool:
        return all(f(file) for f in filters)

    return allow


def json_file_filter(file: File) -> bool:
    """Allow only files whose name ends with ``.json``."""
    return file.name.endswith(".json")


def _path_components(file: File) -> list[str]:
    refpath = file.path.removeprefix(file.root).removeprefix(os.sep)
    if not refpath:
        return []
    parts = refpath.split(os.sep)
    if refpath.endswith(os.sep):
        parts.pop()
    return parts


def _match_filter(
    match: bool, patterns: Sequence[str], matches: Callable[[str, str], bool]
) -> FileFilter:
    if not patterns:
        return _always_true

    def allow(file: File) -> bool:
        found = any(
            matches(name, pattern)
            for name in _path_components(file)
            for pattern in patterns
        )
        return match if found else not match

    return allow


def allow_prefix_file_filter(*prefixes: str) -> FileFilter:
    """Allow files with a path component starting with one of ``prefixes``."""
    return _match_filter(True, prefixes, str.startswith)


def deny_prefix_file_filter(*prefixes: str) -> FileFilter:
    """Allow files with no path component starting with any of ``prefixes``."""
    return _match_filter(False, prefixes, str.startswith)


def allow_suffix_file_filter(*suffixes: str) -> FileFilter:
    """Allow files with a path component ending with one of ``suffixes``."""
    return _match_filter(True, suffixes, str.endswith)


def deny_suffix_file_filter(*suffixes: str) -> FileFilter:
    """Allow files with no path component ending with any of ``suffixes``."""
    return _match_filter(False, suffixes, str.endswith)


_default_filter = and_filter(json_file_filter, deny_prefix_file_filter("_"))


def default_file_filter(file: File) -> bool:
    """Allow JSON files, none of whose path components start with ``_``."""
    return _default_filter(file)


# --------------------------------------------------------------------------- #
# Decoding and handling


def json_file_decoder(file: File) -> Any:
    """Decode the file data as JSON after removing ``//`` line comments.

    Returns None when there is nothing to decode.
    """
    if not file.data:
        return None
    data = remove_line_comments(file.data, COMMENT_SLASHES)
    if not data:
        return None
    return json.loads(data)


def noop_file_handler(files: list[File]) -> list[File]:
    """Return the files unchanged."""
    return files


def decode_slice_file_handler(files: list[File]) -> list[Any]:
    """Decode every file as a JSON array and concatenate the arrays."""
    resources: list[Any] = []
    for file in files:
        try:
            values = json_file_decoder(file)
            if values is None:
                continue
            if not isinstance(values, list):
                raise ValueError(f"expected an array, got {type(values).__name__}")
        except ValueError as exc:
            raise ValueError(f"fail to decode resource file '{file.path}': {exc}") from exc
        resources.extend(values)
    return resources


# --------------------------------------------------------------------------- #
# Etag


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def md5_hex_etag_encoder(modtime: datetime) -> str:
    """Encode the modification time, in RFC 3339 form, as a hex MD5 digest."""
    return hashlib.md5(_rfc3339(modtime).encode()).hexdigest()


def _ns_to_datetime(ns: int) -> datetime:
    seconds, rest = divmod(ns, 10**9)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return moment.replace(microsecond=rest // 1000).astimezone()


# --------------------------------------------------------------------------- #
# Loader


@dataclass(frozen=True)
class _Info:
    mtime_ns: int
    size: int


@dataclass
class _Entry:
    file: File
    now: _Info
    last: _Info | None = field(default=None)


def _walk_error(root: str, exc: OSError) -> OSError:
    return OSError(exc.errno, f"fail to walk dir '{root}': {exc.strerror or exc}", exc.filename)


class DirLoader:
    """Loads resources from the files in a directory, reloading on change."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._dir = os.path.abspath(os.fspath(directory))
        self._resource: Resource[Any] = Resource()
        self._lock = threading.Lock()
        self._files: dict[str, _Entry] = {}
        self._last_ns: int | None = None
        self._etag = ""
        self._filter: FileFilter = default_file_filter
        self._handler: FileHandler = noop_file_handler
        self._encoder: EtagEncoder = md5_hex_etag_encoder

    @property
    def root_dir(self) -> str:
        """The absolute root directory."""
        return self._dir

    @property
    def resource(self) -> Resource[Any]:
        """The inner resource."""
        return self._resource

    def set_file_filter(self, file_filter: FileFilter) -> DirLoader:
        """Replace the file filter."""
        if file_filter is None:
            raise TypeError("DirLoader.set_file_filter: file filter must not be None")
        with self._lock:
            self._filter = file_filter
        return self

    def set_file_handler(self, handler: FileHandler) -> DirLoader:
        """Replace the file handler."""
        if handler is None:
            raise TypeError("DirLoader.set_file_handler: file handler must not be None")
        with self._lock:
            self._handler = handler
        return self

    def set_etag_encoder(self, encoder: EtagEncoder) -> DirLoader:
        """Replace the etag encoder."""
        if encoder is None:
            raise TypeError("DirLoader.set_etag_encoder: etag encoder must not be None")
        with self._lock:
            self._encoder = encoder
        return self

    def load(self) -> bool:
        """Scan the directory, reload changed files and return whether anything changed."""
        with self._lock:
            self._scan_files()
            if not self._check_files():
                return False

            files = sorted((entry.file for entry in self._files.values()), key=lambda f: f.path)
            value = self._handler(files)
            self._resource.set(value, self._etag)
            return True

    def _walk(self) -> Iterator[tuple[str, str]]:
        try:
            is_dir = os.path.isdir(self._dir) and not os.path.islink(self._dir)
            os.lstat(self._dir)
        except OSError as exc:
            raise _walk_error(self._dir, exc) from exc
        if not is_dir:
            yield self._dir, os.path.basename(self._dir)
            return
        yield from self._walk_dir(self._dir)

    def _walk_dir(self, path: str) -> Iterator[tuple[str, str]]:
        try:
            with os.scandir(path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            raise _walk_error(self._dir, exc) from exc
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                yield from self._walk_dir(entry.path)
            else:
                yield entry.path, entry.name

    def _scan_files(self) -> None:
        seen: set[str] = set()
        for path, name in self._walk():
            file = File(name=name, root=self._dir, path=path)
            if not self._filter(file):
                continue

            try:
                st = os.lstat(path)
            except OSError as exc:
                raise OSError(
                    exc.errno, f"fail to get info of file '{path}': {exc.strerror or exc}", path
                ) from exc

            now = _Info(mtime_ns=st.st_mtime_ns, size=st.st_size)
            entry = self._files.get(path)
            if entry is None:
                logger.info("dir loader finds a new file: file=%s", path)
                self._files[path] = _Entry(file=file, now=now)
            else:
                entry.now = now
            seen.add(path)

        for path in [p for p in self._files if p not in seen]:
            del self._files[path]
            logger.info("dir loader removes a not-exist file: file=%s", path)

    def _check_files(self) -> bool:
        changed = False
        last = self._last_ns
        for path, entry in self._files.items():
            if entry.last == entry.now:
                continue

            changed = True
            try:
                with open(path, "rb") as fh:
                    entry.file.data = fh.read()
            except OSError as exc:
                raise OSError(
                    exc.errno, f"fail to read the file '{path}': {exc.strerror or exc}", path
                ) from exc
            logger.info("dir loader reloads the file: file=%s", path)

            entry.last = entry.now
            if last is None or entry.last.mtime_ns > last:
                last = entry.last.mtime_ns

        if changed and last is not None and last != self._last_ns:
            self._last_ns = last
            self._etag = self._encoder(_ns_to_datetime(last))

        return changed

    def sync(
        self,
        stop: threading.Event,
        interval: float,
        reload: threading.Event | None,
        callback: Callable[[Any], None] | None,
    ) -> None:
        """Reload the files every ``interval`` seconds until ``stop`` is set.

        Setting ``reload`` triggers an extra load. ``callback`` receives the
        resource whenever the files have changed.
        """
        if interval <= 0:
            interval = DEFAULT_INTERVAL

        def run() -> None:
            try:
                logger.debug("start to load the resource: dir=%s", self._dir)
                try:
                    changed = self.load()
                except Exception as exc:
                    logger.error(
                        "dir loader failed to load the resources from the local files: "
                        "dir=%s err=%s",
                        self._dir,
                        exc,
                    )
                    return
                if changed and callback is not None:
                    callback(self._resource.resource)
            except Exception:
                logger.exception("wrap an exception")

        run()
        deadline = time.monotonic() + interval
        while not stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                run()
                deadline = time.monotonic() + interval
            elif reload is None:
                stop.wait(remaining)
            elif reload.wait(min(remaining, _RELOAD_POLL)):
                reload.clear()
                if not stop.is_set():
                    run()