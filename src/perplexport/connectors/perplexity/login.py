"""Interactive e-mail + one-time-code login."""
from playwright.async_api import Error, TimeoutError

from perplexport.utils.logs import report
from perplexport.utils.style import ansi
from perplexport.connectors.perplexity.browser import PerplexityBrowser

logger = report.settings(__file__)

EMAIL_INPUT = 'input[type="email"]'
CODE_INPUT = 'input[placeholder="Enter Code"]'
ASK_INPUT = "#ask-input"
COOKIE_BUTTON = "button:has-text('Accept All Cookies')"
CONTINUE_BUTTON = "button:has-text('Continue with email')"
LOGIN_TIMEOUT_MS = 120000


async def _already_logged_in(browser: PerplexityBrowser) -> bool:
    """A restored session shows the ask box and no e-mail form."""
    if await browser.query_selector(EMAIL_INPUT):
        return False
    return await browser.wait_for_selector(ASK_INPUT, timeout_ms=5000)


async def login(browser: PerplexityBrowser, email: str, base_url: str = "https://www.perplexity.ai") -> None:
    """Sign in with *email*; the user types the mailed code into the window."""
    page = browser.page
    print(f"🌐 Navigating to {base_url}")
    await page.goto(base_url)

    # The cookie banner is optional
    try:
        await page.click(COOKIE_BUTTON, timeout=5000)
        print("Cookie consent accepted")
    except (TimeoutError, Error):
        print("Cookie button not found or already accepted, continuing...")

    if await _already_logged_in(browser):
        print(f"✅ {ansi.green}Session restored, already logged in{ansi.reset}")
        logger.info("Existing session is authenticated, skipping login")
        return

    await page.wait_for_selector(EMAIL_INPUT)
    await page.fill(EMAIL_INPUT, email)
    await page.click(CONTINUE_BUTTON)

    await page.wait_for_selector(CODE_INPUT)
    print(f"🔐 {ansi.yellow}Check your email and enter the code in the browser window.{ansi.reset}")
    print("   Waiting for you to enter the code and for login to succeed...")
    logger.info("Waiting for one-time code for %s", email)

    await page.wait_for_selector(ASK_INPUT, timeout=LOGIN_TIMEOUT_MS)
    await browser.save_storage_state()

    print(f"✅ {ansi.green}Successfully logged in{ansi.reset}")
    logger.info("Logged in as %s", email)
