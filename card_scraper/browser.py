"""Headless browser session used to load source-site pages."""

from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from loguru import logger
from playwright.sync_api import Error as PlaywrightError, Page, sync_playwright, TimeoutError as PlaywrightTimeout

from card_scraper.config_loader import get_browser_config, get_source_config
from card_scraper.errors import (
    BrowserUnavailableError,
    ExtractionError,
    ScrapeTimeoutError,
    ValidationError,
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]

SCROLL_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"
SCROLL_BY_JS = "(distance) => window.scrollBy(0, distance)"


def validate_source_url(url: Optional[str], domain: Optional[str]) -> str:
    """Check that ``url`` is an absolute http(s) URL on ``domain`` (or a subdomain).

    Raises:
        ValidationError: If the URL is malformed or points at another site.
    """
    if not url or not isinstance(url, str):
        raise ValidationError("Must be a valid URL")
    parsed = urlsplit(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationError("Must be a valid URL")
    if domain:
        host = parsed.hostname.lower()
        domain = domain.lower()
        if host != domain and not host.endswith("." + domain):
            raise ValidationError(f"URL must be a {domain} URL")
    return url.strip()


class BrowserSession:
    """One Playwright browser/context/page, owned by a single scrape request.

    Use as a context manager; every resource is released on exit whether the
    body returned, raised or timed out.
    """

    def __init__(self, config: Dict[str, Any], source: str, headless: Optional[bool] = None):
        browser_config = get_browser_config(config)
        source_config = get_source_config(config, source)

        self.source = source
        self.domain = source_config.get("domain")
        self.timeout = int(source_config.get("timeout", 30000))
        self.viewport = browser_config.get("viewport", {"width": 1920, "height": 1080})
        self.user_agent = browser_config.get("user_agent", DEFAULT_USER_AGENT)
        self.blocked_resource_types = set(browser_config.get("blocked_resource_types", ["font", "media"]))
        self.launch_args = browser_config.get("launch_args", DEFAULT_LAUNCH_ARGS)
        self.executable_path = browser_config.get("executable_path") or None
        self.headless = headless if headless is not None else browser_config.get("headless", True)

        self.page: Optional[Page] = None
        self.playwright = None
        self.browser = None
        self.context = None

    def start(self):
        """Start the browser and create a configured page."""
        logger.debug(f"Launching browser for {self.source} (headless={self.headless})")
        try:
            self.playwright = sync_playwright().start()
            launch_kwargs = {"headless": self.headless, "args": list(self.launch_args)}
            if self.executable_path:
                launch_kwargs["executable_path"] = self.executable_path
            self.browser = self.playwright.chromium.launch(**launch_kwargs)
        except PlaywrightError as e:
            self.stop()
            raise BrowserUnavailableError(f"Failed to launch browser: {e}")

        try:
            self.context = self.browser.new_context(viewport=self.viewport, user_agent=self.user_agent)
            if self.blocked_resource_types:
                self.context.route("**/*", self._route_request)

            self.page = self.context.new_page()
            self.page.set_default_navigation_timeout(self.timeout)
            self.page.set_default_timeout(self.timeout)
        except PlaywrightError as e:
            self.stop()
            raise BrowserUnavailableError(f"Failed to open browser page: {e}")

    def stop(self):
        """Close page, context, browser and driver."""
        for resource in (self.context, self.browser):
            if resource is None:
                continue
            try:
                resource.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing browser resource: {e}")
        if self.playwright:
            try:
                self.playwright.stop()
            except Exception as e:
                logger.debug(f"Ignoring error while stopping Playwright: {e}")
        self.page = None
        self.context = None
        self.browser = None
        self.playwright = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def _route_request(self, route):
        if route.request.resource_type in self.blocked_resource_types:
            route.abort()
        else:
            route.continue_()

    def _require_page(self) -> Page:
        if not self.page:
            raise ExtractionError("Browser not started")
        return self.page

    def open(self, url: str, wait_until: str = "networkidle") -> None:
        """Navigate to a source-site URL.

        Raises:
            ValidationError: URL is malformed or on the wrong domain.
            ScrapeTimeoutError: Navigation exceeded the configured timeout.
            ExtractionError: Any other browser failure.
        """
        url = validate_source_url(url, self.domain)
        page = self._require_page()
        logger.info(f"Navigating to {url}")
        try:
            page.goto(url, wait_until=wait_until, timeout=self.timeout)
        except PlaywrightTimeout as e:
            raise ScrapeTimeoutError(f"Navigation timeout after {self.timeout} ms: {url}") from e
        except PlaywrightError as e:
            raise ExtractionError(f"Failed to load {url}: {e}") from e

    def wait_for_any(self, selectors: List[str], timeout: int) -> bool:
        """Wait until one of the selectors is attached; False when none shows up."""
        page = self._require_page()
        selector = ", ".join(s for s in selectors if s)
        if not selector:
            return False
        try:
            page.wait_for_selector(selector, timeout=timeout, state="attached")
            return True
        except PlaywrightTimeout:
            logger.debug(f"No element matched '{selector}' within {timeout} ms")
            return False

    def settle(self, delay_ms: int) -> None:
        """Give dynamic content a moment to render."""
        if delay_ms > 0:
            self._require_page().wait_for_timeout(delay_ms)

    def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run in-page JavaScript, mapping browser failures to pipeline errors."""
        page = self._require_page()
        try:
            if arg is None:
                return page.evaluate(script)
            return page.evaluate(script, arg)
        except PlaywrightTimeout as e:
            raise ScrapeTimeoutError(f"Page evaluation timed out: {e}") from e
        except PlaywrightError as e:
            raise ExtractionError(f"Page evaluation failed: {e}") from e

    def auto_scroll(self, distance: int = 500, max_scrolls: int = 10, interval_ms: int = 200) -> int:
        """Scroll down to trigger lazy loading.

        Stops once the bottom is reached and the page stopped growing, or after
        ``max_scrolls`` steps. Returns the number of scroll steps performed.
        """
        page = self._require_page()
        last_height = int(self.evaluate(SCROLL_HEIGHT_JS) or 0)
        position = 0
        scrolls = 0
        while scrolls < max_scrolls:
            self.evaluate(SCROLL_BY_JS, distance)
            scrolls += 1
            position += distance
            if interval_ms > 0:
                page.wait_for_timeout(interval_ms)
            height = int(self.evaluate(SCROLL_HEIGHT_JS) or 0)
            if position >= height and height <= last_height:
                break
            last_height = max(last_height, height)
        logger.debug(f"Auto-scroll finished after {scrolls} steps (height={last_height})")
        return scrolls
