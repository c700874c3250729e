"""
Library discovery: scroll the lazily rendered conversation list until it stops
growing, then collect the conversation links that have not been exported yet.
"""
import asyncio
from typing import Any, Iterable, List, Optional, Sequence

from perplexport.utils.logs import report
from perplexport.utils.style import ansi
from perplexport.connectors.perplexity.errors import DiscoveryExhausted
from perplexport.connectors.perplexity.schema import (
    Conversation,
    DiscoveryMode,
    DoneFile,
    ScrollOutcome,
)

logger = report.settings(__file__)

# Constants
LIBRARY_PATH = "/library"
MAX_SCROLL_ATTEMPTS = 100
MAX_NO_HEIGHT_CHANGE_ATTEMPTS = 5
SETTLE_DELAY_MS = 2000
SELECTOR_TIMEOUT_MS = 5000

# Scrollable container, most specific first; the page body is the last resort
CONTAINER_SELECTORS = ("div.scrollable-container", '[role="main"]')

# Perplexity's UI changes frequently, so thread links are probed in order
THREAD_SELECTORS = (
    'div[data-testid="thread-title"]',
    'a[href*="/search/"]',
    'a[href*="/thread/"]',
    '[role="listitem"] a',
    '.thread-item',
    'div[class*="thread"] a',
)
FALLBACK_LINK_SELECTOR = 'a[href*="/search/"], a[href*="/thread/"]'
UNTITLED = "Untitled"


# -------------- In-page scripts ----------------------------------------------

EXTENT_SCRIPT = """
(selectors) => {
  let container = null;
  for (const selector of selectors) {
    container = document.querySelector(selector);
    if (container) break;
  }
  container = container || document.body;
  return (container && container.scrollHeight) || document.documentElement.scrollHeight;
}
"""

SCROLL_SCRIPT = """
(selectors) => {
  let container = null;
  for (const selector of selectors) {
    container = document.querySelector(selector);
    if (container) break;
  }
  container = container || document.documentElement;
  container.scrollTo(0, container.scrollHeight);
}
"""

LINKS_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector)).map((el) => {
  const link = el.closest("a");
  return {
    title: link ? (link.textContent || "") : "",
    url: link && link.href ? link.href : null,
  };
})
"""


# -------------- Probes -------------------------------------------------------

async def read_extent(session: Any, container_selectors: Sequence[str] = CONTAINER_SELECTORS) -> int:
    """Scroll height of the list container (container, main role, body)."""
    return await session.evaluate(EXTENT_SCRIPT, list(container_selectors))


async def find_thread_selector(
    session: Any,
    selectors: Sequence[str] = THREAD_SELECTORS,
    timeout_ms: int = SELECTOR_TIMEOUT_MS,
) -> str:
    """Return the first selector that matches anything; first success wins."""
    for selector in selectors:
        if await session.wait_for_selector(selector, timeout_ms=timeout_ms):
            print(f"Found threads with selector: {ansi.cyan}{selector}{ansi.reset}")
            logger.info("Found threads with selector: %s", selector)
            return selector
        logger.debug("Selector matched nothing: %s", selector)

    logger.error("No thread selector matched on the library page")
    raise DiscoveryExhausted(
        "Could not find any conversation threads (tried: " + ", ".join(selectors) + ")"
    )


def _to_conversations(raw_items: Iterable[dict]) -> List[Conversation]:
    """Drop elements without a link, dedupe by URL and default empty titles."""
    conversations: List[Conversation] = []
    seen = set()
    for item in raw_items or []:
        url = (item or {}).get("url")
        if not url:
            continue
        if url in seen:
            continue
        seen.add(url)
        title = (item.get("title") or "").strip() or UNTITLED
        conversations.append(Conversation(title=title, url=url))
    return conversations


async def extract_conversations(session: Any, selector: str) -> List[Conversation]:
    """Collect rendered conversation links in page order.

    Falls back to any search/thread link when the matched selector yields no
    resolvable links.
    """
    conversations = _to_conversations(await session.evaluate(LINKS_SCRIPT, selector))
    if not conversations:
        logger.info("Selector %s yielded no links, falling back to %s", selector, FALLBACK_LINK_SELECTOR)
        conversations = _to_conversations(await session.evaluate(LINKS_SCRIPT, FALLBACK_LINK_SELECTOR))
    return conversations


async def _rendered_known_item(session: Any, selector: str, done_file: DoneFile) -> Optional[str]:
    for conversation in await extract_conversations(session, selector):
        if conversation.url in done_file:
            return conversation.url
    return None


# -------------- Scroll loop --------------------------------------------------

async def scroll_to_bottom_of_conversations(
    session: Any,
    done_file: DoneFile,
    *,
    selector: str = FALLBACK_LINK_SELECTOR,
    mode: DiscoveryMode = DiscoveryMode.SHORT_CIRCUIT,
    max_attempts: int = MAX_SCROLL_ATTEMPTS,
    max_stall: int = MAX_NO_HEIGHT_CHANGE_ATTEMPTS,
    settle_ms: int = SETTLE_DELAY_MS,
) -> ScrollOutcome:
    """Scroll until the list stops growing and report why we stopped.

    In ``SHORT_CIRCUIT`` mode the loop also stops as soon as a conversation
    exported in an earlier run is rendered, since everything older is done.
    ``EXHAUSTIVE`` mode always scrolls to the end.
    """
    current_height = await read_extent(session)
    scroll_attempts = 0
    no_change = 0
    outcome = ScrollOutcome.MAX_ATTEMPTS

    while scroll_attempts < max_attempts and no_change < max_stall:
        if mode is DiscoveryMode.SHORT_CIRCUIT:
            known = await _rendered_known_item(session, selector, done_file)
            if known:
                print(f"Reached an already exported conversation: {ansi.grey}{known}{ansi.reset}")
                logger.info("Stopping scroll at known conversation %s after %d attempts", known, scroll_attempts)
                return ScrollOutcome.KNOWN_ITEM

        await session.evaluate(SCROLL_SCRIPT, list(CONTAINER_SELECTORS))
        await asyncio.sleep(settle_ms / 1000)

        previous_height = current_height
        current_height = await read_extent(session)

        if previous_height == current_height:
            no_change += 1
            print(f"No new content loaded (attempt {no_change}/{max_stall})")
        else:
            no_change = 0
            print(f"Scrolled to height: {current_height}")
        logger.debug("Scroll attempt %d: height %s -> %s", scroll_attempts + 1, previous_height, current_height)

        scroll_attempts += 1

    if no_change >= max_stall:
        outcome = ScrollOutcome.STALLED
        print("Reached end of conversations (no new content after multiple attempts)")
    else:
        print("Reached maximum scroll attempts, proceeding with found conversations")
    logger.info("Scroll finished: %s after %d attempts", outcome.value, scroll_attempts)
    return outcome


# -------------- Public API ---------------------------------------------------

async def get_conversations(
    session: Any,
    done_file: DoneFile,
    *,
    base_url: str = "https://www.perplexity.ai",
    mode: DiscoveryMode = DiscoveryMode.SHORT_CIRCUIT,
    selectors: Sequence[str] = THREAD_SELECTORS,
    selector_timeout_ms: int = SELECTOR_TIMEOUT_MS,
    max_attempts: int = MAX_SCROLL_ATTEMPTS,
    max_stall: int = MAX_NO_HEIGHT_CHANGE_ATTEMPTS,
    settle_ms: int = SETTLE_DELAY_MS,
) -> List[Conversation]:
    """Return library conversations not yet in *done_file*, oldest first.

    Raises DiscoveryExhausted when the library page shows no threads at all.
    """
    print(f"🔍 {ansi.cyan}Navigating to library...{ansi.reset}")
    await session.navigate(base_url.rstrip("/") + LIBRARY_PATH, wait_until="load")

    selector = await find_thread_selector(session, selectors, selector_timeout_ms)

    await scroll_to_bottom_of_conversations(
        session,
        done_file,
        selector=selector,
        mode=mode,
        max_attempts=max_attempts,
        max_stall=max_stall,
        settle_ms=settle_ms,
    )

    conversations = await extract_conversations(session, selector)
    logger.info("Library lists %d conversations", len(conversations))

    # The library is newest-first; export oldest first
    new = [c for c in conversations if c.url not in done_file]
    new.reverse()
    return new
