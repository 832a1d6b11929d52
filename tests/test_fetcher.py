"""Tests for the requests-based fetcher.

Mocking strategy:
- ``Fetcher._thread_local_session`` is patched to hand back a ``MagicMock``
  standing in for ``requests.Session``; no real sockets are opened.
- Responses are ``MagicMock`` objects carrying a ``CaseInsensitiveDict`` for
  headers and an ``iter_content`` body, matching what a streamed ``requests``
  response returns.
- ``TestFetchPageOverSocket`` serves a slow body from a local
  ``ThreadingHTTPServer`` on 127.0.0.1, since the whole-fetch timeout is only
  observable against a real socket.
"""

from __future__ import annotations

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock, patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from seomator.crawler.config import CrawlConfig
from seomator.crawler.constants import DEFAULT_HTTP_HEADERS, DEFAULT_USER_AGENT
from seomator.crawler.errors import FetchError, FetchTimeoutError
from seomator.crawler.fetcher import Fetcher, parse_document


def _response(status_code: int = 200, text: str = "", headers: dict[str, str] | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.encoding = "utf-8"
    response.iter_content.return_value = [text.encode("utf-8")] if text else []
    response.headers = CaseInsensitiveDict(headers or {})
    return response


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def fetcher(session: MagicMock):
    instance = Fetcher()
    with patch.object(Fetcher, "_thread_local_session", return_value=session):
        yield instance


# ---------------------------------------------------------------------------
# fetch_page
# ---------------------------------------------------------------------------

class TestFetchPage:
    def test_returns_parsed_result(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.get.return_value = _response(
            200,
            "<html><body><a href='/x'>x</a></body></html>",
            {"Content-Type": "text/html", "X-Robots-Tag": "noindex"},
        )

        result = fetcher.fetch_page("https://example.com/", 5000)

        assert result.url == "https://example.com/"
        assert result.status_code == 200
        assert result.headers == {"content-type": "text/html", "x-robots-tag": "noindex"}
        assert result.header("Content-Type") == "text/html"
        assert result.document.find("a")["href"] == "/x"
        assert result.elapsed_ms >= 0

    def test_sends_bot_headers_and_timeout(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.get.return_value = _response()

        fetcher.fetch_page("https://example.com/", 2500)

        _, kwargs = session.get.call_args
        assert kwargs["headers"]["User-Agent"] == DEFAULT_USER_AGENT
        assert kwargs["headers"]["Accept"] == DEFAULT_HTTP_HEADERS["Accept"]
        assert kwargs["headers"]["Accept-Language"] == DEFAULT_HTTP_HEADERS["Accept-Language"]
        assert kwargs["timeout"] == 2.5
        assert kwargs["allow_redirects"] is True

    def test_non_2xx_is_not_an_error(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.get.return_value = _response(404, "<h1>Not found</h1>")
        assert fetcher.fetch_page("https://example.com/missing").status_code == 404

    def test_timeout_raises_fetch_timeout(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.get.side_effect = requests.Timeout("slow")

        with pytest.raises(FetchTimeoutError) as excinfo:
            fetcher.fetch_page("https://example.com/", 1000)

        assert "1000ms" in str(excinfo.value)
        assert excinfo.value.url == "https://example.com/"

    def test_connection_error_raises_fetch_error(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(FetchError) as excinfo:
            fetcher.fetch_page("https://example.com/")

        assert not isinstance(excinfo.value, FetchTimeoutError)
        assert "ConnectionError" in str(excinfo.value)

    def test_custom_user_agent(self, session: MagicMock) -> None:
        fetcher = Fetcher(CrawlConfig(user_agent="TestBot/2.0"))
        session.get.return_value = _response()
        with patch.object(Fetcher, "_thread_local_session", return_value=session):
            fetcher.fetch_page("https://example.com/")
        assert session.get.call_args.kwargs["headers"]["User-Agent"] == "TestBot/2.0"

    def test_streams_body_and_closes_response(self, fetcher: Fetcher, session: MagicMock) -> None:
        response = _response(200, "<p>café</p>")
        response.iter_content.return_value = [b"<p>caf", b"\xc3\xa9</p>"]
        session.get.return_value = response

        result = fetcher.fetch_page("https://example.com/")

        assert session.get.call_args.kwargs["stream"] is True
        assert result.html == "<p>café</p>"
        response.close.assert_called_once()

    def test_missing_encoding_decodes_as_utf8(self, fetcher: Fetcher, session: MagicMock) -> None:
        response = _response(200)
        response.encoding = None
        response.iter_content.return_value = ["<p>über</p>".encode("utf-8")]
        session.get.return_value = response

        assert fetcher.fetch_page("https://example.com/").html == "<p>über</p>"

    def test_body_read_error_raises_fetch_error(self, fetcher: Fetcher, session: MagicMock) -> None:
        response = _response(200)
        response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("connection reset")
        session.get.return_value = response

        with pytest.raises(FetchError) as excinfo:
            fetcher.fetch_page("https://example.com/", 5000)

        assert not isinstance(excinfo.value, FetchTimeoutError)
        assert "ChunkedEncodingError" in str(excinfo.value)
        response.close.assert_called_once()


class _TrickleHandler(BaseHTTPRequestHandler):
    """Send headers at once, then the body one byte at a time."""

    body = b"<html><body>slow</body></html>"
    byte_delay_seconds = 0.2

    def do_GET(self) -> None:  # noqa: N802
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        try:
            for index in range(len(self.body)):
                self.wfile.write(self.body[index:index + 1])
                self.wfile.flush()
                if self.path == "/slow":
                    time.sleep(self.byte_delay_seconds)
        except OSError:
            return

    def log_message(self, format: str, *args) -> None:
        pass


@pytest.fixture
def trickle_server(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    monkeypatch.setenv("no_proxy", "127.0.0.1,localhost")
    server = ThreadingHTTPServer(("127.0.0.1", 0), _TrickleHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


class TestFetchPageOverSocket:
    def test_slow_body_times_out_within_budget(self, trickle_server: str) -> None:
        with Fetcher() as fetcher:
            started = time.perf_counter()
            with pytest.raises(FetchTimeoutError) as excinfo:
                fetcher.fetch_page(f"{trickle_server}/slow", 1000)
            elapsed = time.perf_counter() - started

        assert "1000ms" in str(excinfo.value)
        assert elapsed < 2.5

    def test_prompt_body_is_read_in_full(self, trickle_server: str) -> None:
        with Fetcher() as fetcher:
            result = fetcher.fetch_page(f"{trickle_server}/fast", 5000)

        assert result.status_code == 200
        assert result.html == _TrickleHandler.body.decode("utf-8")
        assert result.header("content-type") == "text/html; charset=utf-8"


class TestParseDocument:
    def test_non_html_does_not_raise(self) -> None:
        document = parse_document("%PDF-1.4 \x00\x01 binary")
        assert document.find_all("a") == []

    def test_empty_body(self) -> None:
        assert parse_document("").find("a") is None


# ---------------------------------------------------------------------------
# fetch_url
# ---------------------------------------------------------------------------

class TestFetchUrl:
    def test_returns_status(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.head.return_value = _response(301)
        assert fetcher.fetch_url("https://example.com/") == 301

        _, kwargs = session.head.call_args
        assert kwargs["headers"] == {"User-Agent": DEFAULT_USER_AGENT}
        assert kwargs["allow_redirects"] is True
        assert kwargs["timeout"] == 10.0

    @pytest.mark.parametrize(
        "error",
        [requests.ConnectionError("down"), requests.Timeout("slow"), requests.exceptions.InvalidURL("bad")],
    )
    def test_failures_return_zero(self, fetcher: Fetcher, session: MagicMock, error: Exception) -> None:
        session.head.side_effect = error
        assert fetcher.fetch_url("https://unreachable.invalid/") == 0


# ---------------------------------------------------------------------------
# fetch_url_with_redirects
# ---------------------------------------------------------------------------

class TestFetchUrlWithRedirects:
    def test_follows_relative_locations(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.head.side_effect = [
            _response(301, headers={"Location": "https://example.com/b"}),
            _response(302, headers={"Location": "/c"}),
            _response(200),
        ]

        result = fetcher.fetch_url_with_redirects("https://example.com/a")

        assert result.final_url == "https://example.com/c"
        assert result.status_code == 200
        assert result.redirect_count == 2
        assert result.chain == [
            "https://example.com/a",
            "https://example.com/b",
            "https://example.com/c",
        ]
        assert all(call.kwargs["allow_redirects"] is False for call in session.head.call_args_list)

    def test_no_redirect(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.head.return_value = _response(200)

        result = fetcher.fetch_url_with_redirects("https://example.com/")

        assert (result.status_code, result.redirect_count, result.chain) == (200, 0, ["https://example.com/"])

    def test_loop_exhausts_budget(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.head.return_value = _response(302, headers={"Location": "/loop"})

        result = fetcher.fetch_url_with_redirects("https://example.com/loop", max_redirects=3)

        assert result.status_code == 0
        assert result.redirect_count == 3
        assert len(result.chain) == 4
        assert session.head.call_count == 3

    def test_failure_mid_chain_keeps_partial_chain(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.head.side_effect = [
            _response(301, headers={"Location": "https://example.com/next"}),
            requests.ConnectionError("down"),
        ]

        result = fetcher.fetch_url_with_redirects("https://example.com/start")

        assert result.status_code == 0
        assert result.final_url == "https://example.com/next"
        assert result.chain == ["https://example.com/start", "https://example.com/next"]

    def test_redirect_status_without_location_is_final(self, fetcher: Fetcher, session: MagicMock) -> None:
        session.head.return_value = _response(304)

        result = fetcher.fetch_url_with_redirects("https://example.com/")

        assert result.status_code == 304
        assert result.redirect_count == 0


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

class TestSessionLifecycle:
    def test_session_reused_per_thread_and_closed(self) -> None:
        fetcher = Fetcher()
        first = fetcher._thread_local_session()
        assert fetcher._thread_local_session() is first

        with patch.object(first, "close") as close:
            fetcher.close()
        close.assert_called_once()

    def test_context_manager_closes(self) -> None:
        with patch.object(Fetcher, "close") as close:
            with Fetcher():
                pass
        close.assert_called_once()
