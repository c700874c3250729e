"""
Makes sure the Chromium runtime Playwright drives is installed.
"""
import sys
import subprocess

from playwright.sync_api import sync_playwright
from playwright.sync_api import Error as PlaywrightError

from perplexport.utils.logs import report

logger = report.settings(__file__)

def ensure_chromium_installed() -> None:
    """
    Launch headless Chromium once; install it with the Playwright CLI if the
    launch fails because the browser binary is missing.
    """
    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            browser.close()
        logger.debug("Chromium runtime present")

    except PlaywrightError as e:
        logger.info("Chromium launch failed (%s), installing runtime", e)
        print("🔄 Installing Playwright Chromium runtime:")
        subprocess.run(
            [sys.executable, "-m", "playwright", "install", "chromium"],
            check=True
        )
