from pathlib import Path

BOT_NAME = "aliexpress_scraper"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
RAW_DATA_DIR = PROJECT_ROOT / "data" / "raw"

SPIDER_MODULES = ["aliexpress_scraper.spiders"]
NEWSPIDER_MODULE = "aliexpress_scraper.spiders"

LOG_LEVEL = "INFO"

# --------------------
# Crawling behaviour
# --------------------
ROBOTSTXT_OBEY = False

CONCURRENT_REQUESTS = 5
DOWNLOAD_DELAY = 1

AUTOTHROTTLE_ENABLED = True
AUTOTHROTTLE_START_DELAY = 1.0
AUTOTHROTTLE_MAX_DELAY = 10.0

DOWNLOAD_TIMEOUT = 60

# --------------------
# Identity
# --------------------
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

DEFAULT_REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "max-age=0",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Sec-Ch-Ua": '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
}

# one cookie jar per identity (request.meta["cookiejar"])
COOKIES_ENABLED = True

# --------------------
# IMPORTANT: allow blocked responses through to the spider,
# it decides whether to re-issue them with a fresh identity
# --------------------
HTTPERROR_ALLOWED_CODES = [403, 429]

RETRY_ENABLED = True
RETRY_TIMES = 3
RETRY_HTTP_CODES = [500, 502, 503, 504, 522, 524, 408]

# --------------------
# Extraction / crawl control
# --------------------
PAGE_RETRY_TIMES = 3
BLOCKED_MIN_LENGTH = 10_000
ALIEXPRESS_STRATEGIES = ["embedded", "ld_json", "cards"]
LOCATOR_MAX_DEPTH = 14
SELENIUM_SETTLE_SECONDS = 3.0

# --------------------
# Bright Data middlewares
# --------------------
DOWNLOADER_MIDDLEWARES = {
    "scrapy.downloadermiddlewares.useragent.UserAgentMiddleware": 400,

    "aliexpress_scraper.middlewares.BrightDataUnlockerAPIMiddleware": 543,
    "aliexpress_scraper.middlewares.BrightDataProxyMiddleware": 610,

    "scrapy.downloadermiddlewares.retry.RetryMiddleware": 550,
    "scrapy.downloadermiddlewares.redirect.RedirectMiddleware": 600,
    "scrapy.downloadermiddlewares.cookies.CookiesMiddleware": 700,

    # proxy middleware above sets request.meta["proxy"]
    "scrapy.downloadermiddlewares.httpproxy.HttpProxyMiddleware": 800,
}

# --------------------
# Pipelines
# --------------------
ITEM_PIPELINES = {
    "aliexpress_scraper.pipelines.ProductValidationPipeline": 100,
}

FEEDS = {
    str(RAW_DATA_DIR / "%(name)s.jsonl"): {
        "format": "jsonlines",
        "encoding": "utf-8",
    }
}
