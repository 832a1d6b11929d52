"""Core Web Vitals measurement through a headless browser.

`SeleniumVitalsProvider` is a ready-made `get_core_web_vitals` callback for
`Crawler`. It loads each page in one shared browser and reads TTFB, FCP, LCP
and CLS from the Performance API.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.firefox.options import Options as FirefoxOptions

from .constants import DEFAULT_TIMEOUT_MS, DEFAULT_USER_AGENT
from .types import CoreWebVitals


LOGGER = logging.getLogger(__name__)

# Runs in the page; the last argument is Selenium's async completion callback.
_MEASURE_SCRIPT = """
const done = arguments[arguments.length - 1];
const settleMs = arguments[0];
const metrics = {};

const nav = performance.getEntriesByType('navigation')[0];
if (nav) {
  metrics.ttfb = Math.round(nav.responseStart - nav.requestStart);
}
for (const entry of performance.getEntriesByType('paint')) {
  if (entry.name === 'first-contentful-paint') {
    metrics.fcp = Math.round(entry.startTime);
  }
}

let lcp;
let lcpObserver;
try {
  lcpObserver = new PerformanceObserver((list) => {
    const entries = list.getEntries();
    const last = entries[entries.length - 1];
    if (last) { lcp = Math.round(last.startTime); }
  });
  lcpObserver.observe({type: 'largest-contentful-paint', buffered: true});
} catch (e) {}

let cls = 0;
let clsObserver;
try {
  clsObserver = new PerformanceObserver((list) => {
    for (const entry of list.getEntries()) {
      if (!entry.hadRecentInput) { cls += entry.value; }
    }
  });
  clsObserver.observe({type: 'layout-shift', buffered: true});
} catch (e) {}

setTimeout(() => {
  if (lcpObserver) { lcpObserver.disconnect(); }
  if (clsObserver) { clsObserver.disconnect(); }
  if (lcp !== undefined) { metrics.lcp = lcp; }
  metrics.cls = Math.round(cls * 1000) / 1000;
  done(metrics);
}, settleMs);
"""


class SeleniumVitalsProvider:
    """Callable `(url) -> CoreWebVitals` backed by one headless browser.

    The browser is started lazily and shared; calls are serialized with a lock
    because a single WebDriver session is not safe to drive from several
    threads. Any browser failure propagates to the caller (the crawler records
    it and keeps the page without vitals). When no browser can be started, the
    startup error is remembered and re-raised on later calls without trying
    again.
    """

    def __init__(
        self,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        user_agent: str = DEFAULT_USER_AGENT,
        settle_ms: int = 1000,
    ) -> None:
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent
        self.settle_ms = settle_ms

        self._lock = threading.Lock()
        self._driver = None
        self._startup_error: str | None = None

    def __call__(self, url: str) -> CoreWebVitals:
        return self.measure(url)

    def measure(self, url: str) -> CoreWebVitals:
        timeout_seconds = max(1, int(self.timeout_ms / 1000))
        with self._lock:
            driver = self._get_or_create_driver()
            driver.set_page_load_timeout(timeout_seconds)
            driver.set_script_timeout(timeout_seconds + int(self.settle_ms / 1000) + 1)
            driver.get(url)
            payload: Any = driver.execute_async_script(_MEASURE_SCRIPT, self.settle_ms)

        if not isinstance(payload, dict):
            LOGGER.debug("Unexpected vitals payload for %s: %r", url, payload)
            return CoreWebVitals()
        return CoreWebVitals.from_mapping(payload)

    def close(self) -> None:
        with self._lock:
            if self._driver is None:
                return
            try:
                self._driver.quit()
            except WebDriverException as exc:
                LOGGER.debug("Ignoring browser shutdown error: %s", exc)
            finally:
                self._driver = None

    def __enter__(self) -> "SeleniumVitalsProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _get_or_create_driver(self):
        if self._driver is not None:
            return self._driver
        if self._startup_error is not None:
            raise RuntimeError(self._startup_error)

        errors: list[str] = []

        # Try Chrome first.
        try:
            chrome_options = ChromeOptions()
            chrome_options.add_argument("--headless=new")
            chrome_options.add_argument("--disable-gpu")
            chrome_options.add_argument("--no-sandbox")
            chrome_options.add_argument("--disable-dev-shm-usage")
            chrome_options.add_argument(f"--user-agent={self.user_agent}")
            self._driver = webdriver.Chrome(options=chrome_options)
            return self._driver
        except Exception as exc:
            errors.append(f"Chrome: {exc}")

        # Fallback to Firefox.
        try:
            firefox_options = FirefoxOptions()
            firefox_options.add_argument("-headless")
            firefox_options.set_preference("general.useragent.override", self.user_agent)
            self._driver = webdriver.Firefox(options=firefox_options)
            return self._driver
        except Exception as exc:
            errors.append(f"Firefox: {exc}")

        self._startup_error = "; ".join(errors) or "No usable Selenium driver found"
        LOGGER.warning("No browser available for Core Web Vitals: %s", self._startup_error)
        raise RuntimeError(self._startup_error)


__all__ = ["SeleniumVitalsProvider"]
