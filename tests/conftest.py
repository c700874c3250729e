"""
Fake browser sessions for exercising the export engine without Playwright.

They implement the same capabilities the engine uses on the real browser:
``subscribe``, ``navigate``, ``evaluate`` and ``wait_for_selector``.
"""
from urllib.parse import urlsplit

import pytest

from perplexport.connectors.perplexity import library


class FakeExchange:
    """A captured response; ``body`` may be an exception to raise on decode."""
    def __init__(self, url, body=None, method="GET", gate=None):
        self.url = url
        self.method = method
        self.body = body
        self.gate = gate
        self.decoded = 0

    async def json(self):
        if self.gate is not None:
            await self.gate.wait()
        self.decoded += 1
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


class FakeSession:
    """Response stream plus a navigation hook tests can script."""
    def __init__(self):
        self.handlers = []
        self.navigations = []
        self.on_navigate = None

    def subscribe(self, handler):
        self.handlers.append(handler)

    async def emit(self, exchange):
        for handler in self.handlers:
            await handler(exchange)

    async def navigate(self, url, wait_until="load", timeout_ms=45000):
        self.navigations.append(url)
        if self.on_navigate is not None:
            await self.on_navigate(url)


class FakeLibrarySession(FakeSession):
    """A library page with a scripted scroll height and rendered links.

    *heights* is consumed one value per extent read; the last value repeats
    once it runs out. *links* maps a selector to the raw items the link
    script would return for it.
    """
    def __init__(self, heights, links, matching=('a[href*="/search/"]',)):
        super().__init__()
        self._heights = iter(heights)
        self._last_height = 0
        self.links = links
        self.matching = set(matching)
        self.scrolls = 0
        self.probed = []

    async def evaluate(self, script, arg=None):
        if script == library.EXTENT_SCRIPT:
            self._last_height = next(self._heights, self._last_height)
            return self._last_height
        if script == library.SCROLL_SCRIPT:
            self.scrolls += 1
            return None
        if script == library.LINKS_SCRIPT:
            return list(self.links.get(arg, []))
        raise AssertionError(f"unexpected script: {script!r}")

    async def wait_for_selector(self, selector, timeout_ms=5000):
        self.probed.append(selector)
        return selector in self.matching


def thread_body(thread_id):
    return {
        "status": "completed",
        "entries": [{"query_str": f"question {thread_id}", "answer": f"answer {thread_id}"}],
        "has_next_page": False,
        "next_cursor": None,
    }


class FakeBrowser(FakeLibrarySession):
    """Library page plus thread pages that fire their API response on load."""
    def __init__(self, links, heights=(100,), silent=()):
        super().__init__(heights, links)
        self.silent = set(silent)
        self.started = False
        self.closed = False

    async def start(self, headless=False, use_storage_state=True, fresh=False):
        self.started = True

    async def close(self):
        self.closed = True

    async def navigate(self, url, wait_until="load", timeout_ms=45000):
        self.navigations.append(url)
        path = urlsplit(url).path
        if not path.startswith("/search/"):
            return
        thread_id = path.rsplit("/", 1)[-1]
        if thread_id in self.silent:
            return
        api_url = f"https://www.perplexity.ai/rest/thread/{thread_id}?limit=10&version=2"
        await self.emit(FakeExchange(api_url, thread_body(thread_id)))


def link(slug, title=None):
    return {"title": title if title is not None else f"  {slug.upper()} title ", "url": f"https://www.perplexity.ai/search/{slug}"}


@pytest.fixture
def session():
    return FakeSession()

