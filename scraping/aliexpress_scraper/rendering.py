"""
Optional Selenium rendering for pages whose product grid is built client-side.

Enabled with USE_SELENIUM=1. Selenium is imported lazily so the crawler runs
without a browser installed when rendering is off.
"""

from __future__ import annotations

import logging
import os
import time

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_SECONDS = 3.0

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)


def selenium_enabled() -> bool:
    return str(os.getenv("USE_SELENIUM", "")).strip().lower() in {"1", "true", "yes", "y", "on"}


def render_with_selenium(url: str, settle_seconds: float = DEFAULT_SETTLE_SECONDS, timeout: int = 30) -> str:
    """
    Render URL in headless Chrome and return page_source.
    Waits for a product card to show up, then a fixed settle delay so
    lazy-loaded cards finish rendering.
    """
    from selenium import webdriver
    from selenium.common.exceptions import TimeoutException
    from selenium.webdriver.chrome.options import Options
    from selenium.webdriver.chrome.service import Service
    from selenium.webdriver.common.by import By
    from selenium.webdriver.support.ui import WebDriverWait

    from aliexpress_scraper.extract import CARD_SELECTOR

    chromedriver_path = os.getenv("CHROMEDRIVER")
    service = Service(chromedriver_path) if chromedriver_path else Service()

    options = Options()
    options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-blink-features=AutomationControlled")
    options.add_argument("--window-size=1365,900")
    options.add_argument(f"--user-agent={USER_AGENT}")

    driver = webdriver.Chrome(service=service, options=options)
    try:
        driver.set_page_load_timeout(timeout)
        driver.get(url)
        try:
            WebDriverWait(driver, timeout).until(
                lambda d: len(d.find_elements(By.CSS_SELECTOR, CARD_SELECTOR)) > 0
            )
        except TimeoutException:
            logger.info("SELENIUM no product card after %ss url=%s", timeout, url)

        # scroll once so lazy images / cards below the fold are requested
        driver.execute_script("window.scrollTo(0, document.body.scrollHeight);")
        time.sleep(max(0.0, float(settle_seconds)))
        return driver.page_source
    finally:
        driver.quit()
