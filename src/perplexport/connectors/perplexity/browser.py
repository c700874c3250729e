"""
Playwright browser session for the Perplexity export.

The acquisition engine only ever talks to this adapter through four
capabilities: ``navigate``, ``subscribe``, ``evaluate`` and
``wait_for_selector`` / ``query_selector``. Playwright errors are translated
here so callers only see the package's own exception types.
"""
import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import async_playwright, Page, Response, Error, TimeoutError

from perplexport.utils.logs import report
from perplexport.connectors.perplexity.errors import DecodeError, NavigationFailure

logger = report.settings(__file__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/137.0.0.0 Safari/537.36"
)


class PlaywrightExchange:
    """One observed request/response pair."""
    def __init__(self, response: Response):
        self._response = response

    @property
    def url(self) -> str:
        return self._response.url

    @property
    def method(self) -> str:
        return self._response.request.method

    async def json(self) -> Any:
        """Decode the body, raising DecodeError for anything unreadable."""
        try:
            return await self._response.json()
        except (Error, ValueError) as e:
            raise DecodeError(f"Could not decode response from {self.url}: {e}") from e


ExchangeHandler = Callable[[Any], Awaitable[None]]


class PerplexityBrowser:
    """Manages a Playwright browser instance for the export run."""
    def __init__(self, storage_state_file: Optional[Path] = None):
        self.page: Optional[Page] = None
        self.context = None
        self.browser = None
        self._playwright = None
        self.storage_state_file = storage_state_file
        self.use_storage_state: bool = storage_state_file is not None

    async def start(self, headless: bool = False, use_storage_state: bool = True, fresh: bool = False):
        """Launch Chromium and open the single page the export drives.

        Authentication is interactive, so the default is a headed browser.
        A saved storage state is restored unless *fresh* is set.
        """
        self.use_storage_state = use_storage_state and self.storage_state_file is not None
        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(headless=headless)

        if self.use_storage_state and not fresh and self.storage_state_file.exists():
            self.context = await self.browser.new_context(
                user_agent=USER_AGENT,
                storage_state=str(self.storage_state_file),
            )
            print(f"🔐 Loaded storage state from {self.storage_state_file}")
            logger.info("Restored storage state from %s", self.storage_state_file)
        else:
            self.context = await self.browser.new_context(user_agent=USER_AGENT)

        self.page = await self.context.new_page()
        logger.info("Browser started (headless=%s)", headless)

    # -------------- Capabilities -------------------------------------------

    def subscribe(self, handler: ExchangeHandler) -> None:
        """Invoke *handler* for every response the page receives.

        Playwright emits events synchronously, so each exchange is handed to
        its own task to keep body decoding off the event dispatch path.
        """
        self.page.on(
            "response",
            lambda r: asyncio.create_task(handler(PlaywrightExchange(r))),
        )

    async def navigate(self, url: str, wait_until: str = "networkidle", timeout_ms: int = 45000) -> None:
        """Load *url* and wait for *wait_until*."""
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except (TimeoutError, Error) as e:
            logger.warning("Navigation to %s failed: %s", url, e)
            raise NavigationFailure(f"Navigation to {url} failed: {e}") from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run *script* in the page and return its result."""
        return await self.page.evaluate(script, arg)

    async def wait_for_selector(self, selector: str, timeout_ms: int = 5000) -> bool:
        """Return True once *selector* is attached, False on timeout."""
        try:
            await self.page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
            return True
        except (TimeoutError, Error):
            return False

    async def query_selector(self, selector: str):
        return await self.page.query_selector(selector)

    async def content(self) -> str:
        return await self.page.content()

    # -------------- Lifecycle ----------------------------------------------

    async def save_storage_state(self) -> None:
        """Persist cookies/local storage so the next run can skip login."""
        try:
            if self.use_storage_state and self.context is not None:
                self.storage_state_file.parent.mkdir(parents=True, exist_ok=True)
                await self.context.storage_state(path=str(self.storage_state_file))
                logger.debug("Saved storage state to %s", self.storage_state_file)
                print(f"💾 Saved storage state → {self.storage_state_file}")
        except (Error, TimeoutError, OSError, ValueError) as e:
            logger.warning("Failed to save storage state: %s", e)

    async def close(self):
        """Save session state and shut the browser down."""
        await self.save_storage_state()
        if self.browser:
            await self.browser.close()
        if self._playwright:
            await self._playwright.stop()
        logger.info("Browser closed")
