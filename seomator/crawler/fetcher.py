"""HTTP page retrieval, liveness checks, and manual redirect tracing."""

from __future__ import annotations

import logging
import socket
import threading
import time
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from .config import CrawlConfig
from .constants import (
    DEFAULT_HEAD_TIMEOUT_MS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT_MS,
)
from .errors import FetchError, FetchTimeoutError
from .types import FetchResult, RedirectResult, empty_document


LOGGER = logging.getLogger(__name__)


def parse_document(html: str) -> BeautifulSoup:
    """Parse any response body; bodies lxml cannot handle give an empty document."""

    try:
        return BeautifulSoup(html, "lxml")
    except Exception as exc:
        LOGGER.debug("Falling back to empty document: %s: %s", exc.__class__.__name__, exc)
        return empty_document()


def _seconds(timeout_ms: int | float) -> float:
    return max(0.001, float(timeout_ms) / 1000.0)


def _decode_body(body: bytes, encoding: str | None) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def _abort_response(response: requests.Response) -> None:
    # shutdown() wakes a recv blocked in another thread; close() would wait on the reader.
    connection = getattr(response.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as exc:
        LOGGER.debug("Socket shutdown failed: %s", exc)


class Fetcher:
    """Fetch pages with `requests`.

    Concurrency model: one `requests.Session` per worker thread, created lazily,
    so crawl workers never share connection pools.
    """

    def __init__(self, config: CrawlConfig | None = None) -> None:
        self.config = config or CrawlConfig()

        self._thread_local = threading.local()
        self._sessions_lock = threading.Lock()
        self._sessions: list[requests.Session] = []

    def fetch_page(self, url: str, timeout_ms: int | float = DEFAULT_TIMEOUT_MS) -> FetchResult:
        """GET `url` following redirects and parse the body.

        Non-2xx responses are returned normally. Network failures raise
        `FetchError`. `timeout_ms` bounds the whole fetch, body included;
        exceeding it raises `FetchTimeoutError`.
        """

        session = self._thread_local_session()
        started = time.perf_counter()
        deadline = started + _seconds(timeout_ms)

        try:
            response = session.get(
                url,
                headers=self.config.headers_for(url),
                timeout=_seconds(timeout_ms),
                allow_redirects=True,
                stream=True,
            )
        except requests.Timeout as exc:
            raise FetchTimeoutError(url, f"Request timed out after {int(timeout_ms)}ms") from exc
        except (requests.RequestException, ValueError) as exc:
            raise FetchError(url, f"{exc.__class__.__name__}: {exc}") from exc

        body = self._read_body(response, url, timeout_ms, deadline)
        html = _decode_body(body, response.encoding)

        elapsed_ms = int(round((time.perf_counter() - started) * 1000))
        headers = {str(key).lower(): str(value) for key, value in response.headers.items()}

        LOGGER.debug("GET %s -> %s in %dms", url, response.status_code, elapsed_ms)
        return FetchResult(
            url=url,
            html=html,
            document=parse_document(html),
            headers=headers,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )

    def _read_body(
        self,
        response: requests.Response,
        url: str,
        timeout_ms: int | float,
        deadline: float,
    ) -> bytes:
        """Stream the body, failing once the whole fetch passes `deadline`."""

        def timed_out() -> FetchTimeoutError:
            return FetchTimeoutError(url, f"Request timed out after {int(timeout_ms)}ms")

        watchdog = threading.Timer(max(0.0, deadline - time.perf_counter()), _abort_response, args=(response,))
        watchdog.daemon = True
        watchdog.start()

        chunks: list[bytes] = []
        try:
            for chunk in response.iter_content(chunk_size=16_384):
                if chunk:
                    chunks.append(chunk)
                if time.perf_counter() >= deadline:
                    raise timed_out()
        except requests.RequestException as exc:
            if time.perf_counter() >= deadline:
                raise timed_out() from exc
            raise FetchError(url, f"{exc.__class__.__name__}: {exc}") from exc
        finally:
            watchdog.cancel()
            response.close()

        # A shut-down socket can also end a read-until-close body early without an error.
        if time.perf_counter() >= deadline:
            raise timed_out()
        return b"".join(chunks)

    def fetch_url(self, url: str, timeout_ms: int | float = DEFAULT_HEAD_TIMEOUT_MS) -> int:
        """HEAD `url` following redirects; 0 means unreachable or timed out."""

        session = self._thread_local_session()
        try:
            response = session.head(
                url,
                headers={"User-Agent": self.config.user_agent},
                timeout=_seconds(timeout_ms),
                allow_redirects=True,
            )
        except (requests.RequestException, ValueError) as exc:
            LOGGER.debug("HEAD %s failed: %s: %s", url, exc.__class__.__name__, exc)
            return 0
        return response.status_code

    def fetch_url_with_redirects(
        self,
        url: str,
        timeout_ms: int | float = DEFAULT_HEAD_TIMEOUT_MS,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
    ) -> RedirectResult:
        """Follow `Location` headers by hand, recording every hop.

        Status 0 is returned with the chain built so far when a hop fails or when
        `max_redirects` hops did not reach a non-redirect response.
        """

        session = self._thread_local_session()
        chain = [url]
        current_url = url
        redirect_count = 0

        while redirect_count < max_redirects:
            try:
                response = session.head(
                    current_url,
                    headers={"User-Agent": self.config.user_agent},
                    timeout=_seconds(timeout_ms),
                    allow_redirects=False,
                )
            except (requests.RequestException, ValueError) as exc:
                LOGGER.debug("Redirect trace for %s stopped at %s: %s", url, current_url, exc)
                return RedirectResult(current_url, 0, redirect_count, chain)

            location = response.headers.get("location")
            if 300 <= response.status_code < 400 and location:
                current_url = urljoin(current_url, location)
                chain.append(current_url)
                redirect_count += 1
                continue

            return RedirectResult(current_url, response.status_code, redirect_count, chain)

        LOGGER.debug("Redirect trace for %s exceeded %d hops", url, max_redirects)
        return RedirectResult(current_url, 0, redirect_count, chain)

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _thread_local_session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = requests.Session()
            self._thread_local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session


_default_fetcher: Fetcher | None = None
_default_fetcher_lock = threading.Lock()


def default_fetcher() -> Fetcher:
    global _default_fetcher
    with _default_fetcher_lock:
        if _default_fetcher is None:
            _default_fetcher = Fetcher()
        return _default_fetcher


def fetch_page(url: str, timeout_ms: int | float = DEFAULT_TIMEOUT_MS) -> FetchResult:
    return default_fetcher().fetch_page(url, timeout_ms)


def fetch_url(url: str, timeout_ms: int | float = DEFAULT_HEAD_TIMEOUT_MS) -> int:
    return default_fetcher().fetch_url(url, timeout_ms)


def fetch_url_with_redirects(
    url: str,
    timeout_ms: int | float = DEFAULT_HEAD_TIMEOUT_MS,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
) -> RedirectResult:
    return default_fetcher().fetch_url_with_redirects(url, timeout_ms, max_redirects)


__all__ = [
    "Fetcher",
    "default_fetcher",
    "fetch_page",
    "fetch_url",
    "fetch_url_with_redirects",
    "parse_document",
]
