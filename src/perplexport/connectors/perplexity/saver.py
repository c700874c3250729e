"""
Response correlator for thread pages.

Loading a thread page makes the web app fetch the conversation from its REST
API. We do not call that API ourselves; instead we navigate to the page and
pick the matching JSON response off the browser's response stream. The
navigation and the response are independent signals, so each load cycle owns a
single pending slot that the response handler resolves at most once, raced
against a timeout. A cycle that times out or fails to navigate returns a
placeholder record instead of raising, so one broken thread never ends a run.
"""
import re
import asyncio
from urllib.parse import urlsplit, parse_qs
from typing import Any, Callable, Optional

from perplexport.utils.logs import report
from perplexport.utils.style import ansi
from perplexport.connectors.perplexity.errors import (
    CorrelationTimeout,
    DecodeError,
    NavigationFailure,
)
from perplexport.connectors.perplexity.schema import (
    PAGINATION_PARAM,
    RESERVED_THREAD_IDS,
    THREAD_PATH_MARKERS,
    UNKNOWN_THREAD_ID,
    ConversationPayload,
    ThreadRecord,
)

logger = report.settings(__file__)

DEFAULT_TIMEOUT_MS = 45000

_THREAD_ID_RE = re.compile(r"/thread/([^/?#]+)")


# -------------- URL helpers --------------------------------------------------

def _last_segment(url: str) -> str:
    path = urlsplit(url).path.rstrip("/")
    return path.rsplit("/", 1)[-1] if path else ""


def thread_id_from_api_url(url: str) -> Optional[str]:
    """Return the thread id of a thread API URL, or None for other traffic.

    The path must contain a thread marker *and* the query must carry the
    pagination parameter; list endpoints such as ``list_recent`` are rejected.
    """
    parts = urlsplit(url)
    if not any(marker in parts.path for marker in THREAD_PATH_MARKERS):
        return None
    if PAGINATION_PARAM not in parse_qs(parts.query, keep_blank_values=True):
        return None

    match = _THREAD_ID_RE.search(parts.path)
    # Raw last segment: a bare trailing slash yields an empty id
    thread_id = match.group(1) if match else parts.path.rsplit("/", 1)[-1]
    if not thread_id or thread_id in RESERVED_THREAD_IDS:
        return None
    return thread_id


def thread_id_from_page_url(url: str) -> str:
    """Best-effort id for a page URL: thread segment, else last path segment."""
    match = _THREAD_ID_RE.search(urlsplit(url).path)
    if match:
        return match.group(1)
    return _last_segment(url) or UNKNOWN_THREAD_ID


def placeholder_record(url: str) -> ThreadRecord:
    """Empty record keyed by the id parsed from *url*."""
    return ThreadRecord(id=thread_id_from_page_url(url), payload=ConversationPayload.placeholder())


# -------------- Pending slot -------------------------------------------------

def _noop(_record: ThreadRecord) -> None:
    """Resolver used while no load cycle is pending."""


class _PendingRequest:
    """One load cycle's mailbox: completes exactly once, by data, timeout or navigation error."""
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.future: asyncio.Future = loop.create_future()
        self.timer: Optional[asyncio.TimerHandle] = None
        self.completed = False

    def arm(self, timeout_ms: int) -> None:
        self.timer = self.loop.call_later(timeout_ms / 1000, self._expire, timeout_ms)

    def resolve(self, record: ThreadRecord) -> None:
        if self.completed:
            return
        self.completed = True
        self._cancel_timer()
        self.future.set_result(record)

    def fail(self, exc: Exception) -> None:
        if self.completed:
            return
        self.completed = True
        self._cancel_timer()
        self.future.set_exception(exc)

    def _expire(self, timeout_ms: int) -> None:
        if not self.completed:
            print(f"⏱  Timeout reached ({timeout_ms}ms), using fallback...")
        self.fail(CorrelationTimeout(f"Timeout waiting for thread data after {timeout_ms}ms"))

    def on_navigation_done(self, task: asyncio.Future) -> None:
        """Turn a failed navigation into a cycle failure; success is not a result."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            if not self.completed:
                print("Page loaded, waiting for API response...")
            return
        if not isinstance(exc, NavigationFailure):
            exc = NavigationFailure(str(exc))
        self.fail(exc)

    def release(self) -> None:
        self._cancel_timer()
        if not self.future.done():
            self.future.cancel()

    def _cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


# -------------- Correlator ---------------------------------------------------

class ConversationSaver:
    """Loads thread pages and captures the thread API payload they trigger.

    The browser handles one navigation at a time, so there is only ever one
    pending slot. It is swapped in at the start of every cycle and reset to a
    no-op on every exit path, so a late response from one cycle can never
    resolve the next.
    """
    def __init__(self, session: Any):
        self.session = session
        self._resolve: Callable[[ThreadRecord], None] = _noop

    @property
    def busy(self) -> bool:
        return self._resolve is not _noop

    async def initialize(self) -> None:
        """Subscribe to the session's response stream. Call once."""
        self.session.subscribe(self._on_exchange)

    async def _on_exchange(self, exchange: Any) -> None:
        """Handle one observed exchange; never raises."""
        # Bind to the slot that was current when the exchange arrived
        resolve = self._resolve

        if exchange.method != "GET":
            return
        thread_id = thread_id_from_api_url(exchange.url)
        if thread_id is None:
            return

        try:
            data = await exchange.json()
        except (DecodeError, ValueError) as e:
            logger.debug("Could not parse response for %s: %s", thread_id, e)
            return

        if not isinstance(data, dict) or data.get("entries") is None:
            return
        if not isinstance(data["entries"], list):
            logger.debug("Ignoring response for %s: entries is %s", thread_id, type(data["entries"]).__name__)
            return

        logger.info("Received API data for thread %s", thread_id)
        print(f"{ansi.green}✓{ansi.reset} Received API data for thread {thread_id}")
        resolve(ThreadRecord(id=thread_id, payload=ConversationPayload.from_response(data)))

    async def load_thread_from_url(self, url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ThreadRecord:
        """Navigate to *url* and return the thread data its page requests.

        Returns a placeholder record when no payload arrives within
        *timeout_ms* or the navigation fails. The navigation itself is not
        cancelled on timeout; it finishes in the background.
        """
        if self.busy:
            raise RuntimeError("A thread load is already in progress")

        pending = _PendingRequest(asyncio.get_running_loop())
        self._resolve = pending.resolve
        pending.arm(timeout_ms)

        try:
            print("Loading thread page...")
            logger.info("Loading thread %s", url)
            navigation = asyncio.ensure_future(
                self.session.navigate(url, wait_until="networkidle", timeout_ms=timeout_ms)
            )
            navigation.add_done_callback(pending.on_navigation_done)

            record = await pending.future
            print(f"{ansi.green}✓{ansi.reset} Got API response with {len(record.payload.entries)} entries")
            logger.info("Thread %s resolved with %d entries", record.id, len(record.payload.entries))
            return record

        except (CorrelationTimeout, NavigationFailure) as e:
            print(f"{ansi.yellow}Could not get API response:{ansi.reset} {e}")
            logger.warning("No API response for %s: %s", url, e)

            record = placeholder_record(url)
            print(f"Returning placeholder data with thread ID: {record.id}")
            return record

        finally:
            pending.release()
            self._resolve = _noop
