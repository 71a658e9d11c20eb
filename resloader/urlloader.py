"""Loading of a resource from a URL, with etag-based change detection."""

from __future__ import annotations

import json
import logging
import threading
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, Protocol, TypeVar, runtime_checkable

from resloader.resource import Resource

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_INTERVAL = 60.0
_RELOAD_POLL = 0.05


@dataclass
class Response:
    """The parts of an HTTP response the loader needs."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


@runtime_checkable
class Client(Protocol):
    """Anything able to send an HTTP request and return a Response."""

    def do(self, request: urllib.request.Request) -> Response:
        """Send the request and return the response."""


class UrllibClient(Client):
    """A client built on urllib, returning error statuses as responses."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def do(self, request: urllib.request.Request) -> Response:
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as resp:
                return Response(resp.status, dict(resp.headers.items()), resp.read())
        except urllib.error.HTTPError as exc:
            with exc:
                return Response(exc.code, dict(exc.headers.items()), exc.read())


class FuncClient(Client):
    """A client that delegates to a plain function."""

    def __init__(self, sender: Callable[[urllib.request.Request], Response]) -> None:
        self._sender = sender

    def do(self, request: urllib.request.Request) -> Response:
        return self._sender(request)


class UrlLoadError(Exception):
    """Raised when the server answers with an unexpected status."""

    def __init__(self, status: int, body: bytes) -> None:
        self.status = status
        self.body = body
        super().__init__(f"code={status}, err={body.decode('utf-8', 'replace')}")


def _header(headers: Mapping[str, str], name: str) -> str:
    wanted = name.lower()
    return next((value for key, value in headers.items() if key.lower() == wanted), "")


class UrlLoader(Generic[T]):
    """Loads a resource from a URL and keeps it with the etag it came with."""

    def __init__(self, url: str) -> None:
        if not url:
            raise ValueError("UrlLoader: url must not be empty")
        self.url = url
        self._resource: Resource[T] = Resource()
        self._decoder: Callable[[bytes], T] = json.loads
        self._client: Client = UrllibClient()
        self._lock = threading.Lock()

    @property
    def resource(self) -> Resource[T]:
        """The inner resource."""
        return self._resource

    def set_client(self, client: Client) -> UrlLoader[T]:
        """Replace the HTTP client."""
        if client is None:
            raise TypeError("UrlLoader.set_client: client must not be None")
        with self._lock:
            self._client = client
        return self

    def set_sender(self, sender: Callable[[urllib.request.Request], Response]) -> UrlLoader[T]:
        """Replace the HTTP client by a function sending the request."""
        if sender is None:
            raise TypeError("UrlLoader.set_sender: request send function must not be None")
        return self.set_client(FuncClient(sender))

    def set_decoder(self, decoder: Callable[[bytes], T]) -> UrlLoader[T]:
        """Replace the function that turns the response body into the resource."""
        if decoder is None:
            raise TypeError("UrlLoader.set_decoder: decode function must not be None")
        with self._lock:
            self._decoder = decoder
        return self

    def load(self) -> tuple[T | None, str]:
        """Fetch the resource if it has changed and return it with its etag."""
        with self._lock:
            self._download()
            return self._resource.get()

    def _download(self) -> None:
        request = urllib.request.Request(self.url, method="GET")
        etag = self._resource.etag
        if etag:
            request.add_header("If-Match", etag)

        response = self._client.do(request)
        if response.status == 304:
            return
        if response.status != 200:
            raise UrlLoadError(response.status, response.body)

        value = self._decoder(response.body)
        self._resource.set(value, _header(response.headers, "Etag"))

    def sync(
        self,
        stop: threading.Event,
        rsctype: str,
        interval: float,
        reload: threading.Event | None,
        callback: Callable[[Any], None] | None,
    ) -> None:
        """Reload the resource every ``interval`` seconds until ``stop`` is set.

        Setting ``reload`` triggers an extra load. ``callback`` receives the
        resource whenever its etag changes.
        """
        if interval <= 0:
            interval = DEFAULT_INTERVAL

        last_etag = ""

        def run() -> None:
            nonlocal last_etag
            try:
                logger.debug("start to load the resource: type=%s", rsctype)
                try:
                    value, etag = self.load()
                except Exception as exc:
                    logger.error(
                        "fail to load the resources from the url: type=%s url=%s err=%s",
                        rsctype,
                        self.url,
                        exc,
                    )
                    return

                if last_etag and etag == last_etag:
                    return
                last_etag = etag
                if callback is not None:
                    callback(value)
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