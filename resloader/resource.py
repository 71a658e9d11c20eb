"""A thread-safe holder of a resource and its etag."""

from __future__ import annotations

import threading
from typing import Generic, TypeVar

R = TypeVar("R")


class Resource(Generic[R]):
    """A resource value paired with an etag, safe to share between threads."""

    def __init__(self, resource: R | None = None, etag: str = "") -> None:
        self._lock = threading.Lock()
        self._resource = resource
        self._etag = etag

    @property
    def resource(self) -> R | None:
        """The current resource."""
        with self._lock:
            return self._resource

    @resource.setter
    def resource(self, value: R) -> None:
        with self._lock:
            self._resource = value

    @property
    def etag(self) -> str:
        """The current etag."""
        with self._lock:
            return self._etag

    @etag.setter
    def etag(self, value: str) -> None:
        with self._lock:
            self._etag = value

    def get(self) -> tuple[R | None, str]:
        """Return the resource and the etag together."""
        with self._lock:
            return self._resource, self._etag

    def set(self, resource: R, etag: str) -> None:
        """Replace the resource and the etag together."""
        with self._lock:
            self._resource = resource
            self._etag = etag