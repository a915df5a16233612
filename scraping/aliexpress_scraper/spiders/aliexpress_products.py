# aliexpress_products.py
# Scrapy spider for AliExpress wholesale search pages.
#
# - One pagination line per keyword (or per start_url), page N+1 is only
#   requested after page N produced products
# - Product ids are deduplicated across the whole run, output stops at
#   results_wanted
# - Blocked / challenge pages are re-issued with a fresh identity
#   (cookie jar + proxy session) up to PAGE_RETRY_TIMES, then dropped
# - Optional Selenium render (USE_SELENIUM=1) when static html has no products
#
# Usage:
#   scrapy crawl aliexpress_products -a keyword="bath towel" -a results_wanted=50 -a sort_by=orders
#   scrapy crawl aliexpress_products -a keyword="towel|bath mat" -a min_price=5 -a max_price=30
#
# Output items (JSON lines): one ProductItem per product

from __future__ import annotations

import scrapy
from scrapy.http import HtmlResponse, TextResponse

from aliexpress_scraper.blocking import DEFAULT_MIN_LENGTH, PageStatus, classify_page
from aliexpress_scraper.extract import ExtractionPipeline
from aliexpress_scraper.locator import DEFAULT_MAX_DEPTH
from aliexpress_scraper.rendering import DEFAULT_SETTLE_SECONDS, render_with_selenium, selenium_enabled
from aliexpress_scraper.search import SearchConfig
from aliexpress_scraper.state import CrawlState, PageRequest


class AliexpressProductsSpider(scrapy.Spider):
    name = "aliexpress_products"
    allowed_domains = ["aliexpress.com", "aliexpress.us"]

    crawler_version = "aliexpress_products/1.0"

    DEFAULT_PAGE_RETRY_TIMES = 3

    def __init__(
        self,
        *args,
        keyword=None,
        start_url=None,
        category=None,
        min_price=None,
        max_price=None,
        sort_by=None,
        results_wanted=None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)

        # raises InvalidSearchConfig, the only run-fatal error
        self.search = SearchConfig.from_args(
            keyword=keyword,
            start_url=start_url,
            category=category,
            min_price=min_price,
            max_price=max_price,
            sort_by=sort_by,
            results_wanted=results_wanted,
        )

        self.blocked_min_length = DEFAULT_MIN_LENGTH
        self.selenium_settle = DEFAULT_SETTLE_SECONDS
        self.pipeline = ExtractionPipeline()
        self.state = CrawlState(self.search.results_wanted, max_retries=self.DEFAULT_PAGE_RETRY_TIMES)

    @classmethod
    def from_crawler(cls, crawler, *args, **kwargs):
        spider = super().from_crawler(crawler, *args, **kwargs)
        spider.configure(crawler.settings)
        return spider

    def configure(self, settings):
        self.blocked_min_length = settings.getint("BLOCKED_MIN_LENGTH", DEFAULT_MIN_LENGTH)
        self.selenium_settle = settings.getfloat("SELENIUM_SETTLE_SECONDS", DEFAULT_SETTLE_SECONDS)
        self.state.max_retries = settings.getint("PAGE_RETRY_TIMES", self.DEFAULT_PAGE_RETRY_TIMES)
        self.pipeline = ExtractionPipeline(
            settings.getlist("ALIEXPRESS_STRATEGIES") or None,
            max_depth=settings.getint("LOCATOR_MAX_DEPTH", DEFAULT_MAX_DEPTH),
        )

    # -------- helpers --------

    def _inc_stat(self, key: str, count: int = 1):
        crawler = getattr(self, "crawler", None)
        if crawler is not None and crawler.stats is not None:
            crawler.stats.inc_value(key, count)

    def make_page_request(self, page: PageRequest) -> scrapy.Request:
        return scrapy.Request(
            page.url,
            callback=self.parse,
            errback=self.on_page_error,
            # retries and fresh identities revisit the same url
            dont_filter=page.retry_count > 0,
            meta={
                "page": page,
                "cookiejar": page.session,
                "session_id": page.session or None,
            },
        )

    # -------- crawl --------

    def start_requests(self):
        self.logger.info(
            "START seeds=%s results_wanted=%s sort_by=%s version=%s",
            list(self.search.seeds()),
            self.search.results_wanted,
            self.search.sort_by,
            self.crawler_version,
        )
        for seed in self.search.seeds():
            page = self.state.enqueue(PageRequest(url=self.search.page_url(seed, 1), page_number=1, seed=seed))
            if page is not None:
                yield self.make_page_request(page)

    def parse(self, response):
        page: PageRequest = response.meta["page"]
        body = response.text if isinstance(response, TextResponse) else ""
        self.logger.info(
            "PAGE page=%s seed=%s status=%s bytes=%s url=%s",
            page.page_number,
            page.seed,
            response.status,
            len(body),
            response.url,
        )

        if classify_page(body, status=response.status, min_length=self.blocked_min_length) is PageStatus.BLOCKED:
            yield from self.handle_blocked(page, response)
            return

        result = self.pipeline.extract(body, dom=response)
        if not result.products and selenium_enabled():
            result = self.extract_rendered(response, result)

        if result.rejected:
            self._inc_stat("aliexpress/invalid_records", result.rejected)

        fresh = self.state.claim(result.products)
        self.state.complete(page)

        if fresh:
            self._inc_stat("aliexpress/products_saved", len(fresh))
            self.logger.info(
                "SAVED new=%s strategy=%s total=%s/%s",
                len(fresh),
                result.strategy,
                self.state.saved_count,
                self.state.target,
            )
        yield from fresh

        if not result.products:
            self.logger.warning("NO PRODUCTS page=%s seed=%s url=%s", page.page_number, page.seed, response.url)
            return

        if not self.state.should_follow(len(result.products)):
            self.logger.info("TARGET REACHED saved=%s/%s", self.state.saved_count, self.state.target)
            return

        next_page = self.state.next_page(page, self.search.page_url(page.seed, page.page_number + 1))
        if next_page is not None:
            self.logger.info("NEXT PAGE page=%s url=%s", next_page.page_number, next_page.url)
            yield self.make_page_request(next_page)

    def handle_blocked(self, page: PageRequest, response):
        self._inc_stat("aliexpress/blocked_pages")

        if not self.state.can_retry(page):
            self.state.drop(page, "blocked")
            self._inc_stat("aliexpress/dropped_pages")
            self.logger.error(
                "DROPPED page=%s reason=blocked retries=%s url=%s",
                page.page_number,
                page.retry_count,
                page.url,
            )
            return

        retry = self.state.retry(page)
        if retry is None:
            return
        self.logger.warning(
            "BLOCKED retry=%s/%s session=%s status=%s url=%s",
            retry.retry_count,
            self.state.max_retries,
            retry.session,
            response.status,
            page.url,
        )
        yield self.make_page_request(retry)

    def extract_rendered(self, response, static_result):
        self.logger.warning("SELENIUM fallback url=%s", response.url)
        try:
            html = render_with_selenium(response.url, settle_seconds=self.selenium_settle)
        except Exception as exc:
            self.logger.warning("SELENIUM render failed url=%s err=%s", response.url, exc)
            return static_result

        rendered = HtmlResponse(url=response.url, body=html, encoding="utf-8", request=response.request)
        return self.pipeline.extract(rendered.text, dom=rendered)

    def on_page_error(self, failure):
        request = failure.request
        page = request.meta.get("page")
        self.logger.error("FETCH FAILED url=%s err=%r", request.url, failure.value)
        if page is not None:
            self.state.drop(page, failure.type.__name__)
            self._inc_stat("aliexpress/dropped_pages")

    def closed(self, reason):
        crawler = getattr(self, "crawler", None)
        if crawler is not None and crawler.stats is not None:
            crawler.stats.set_value("aliexpress/results_wanted", self.state.target)
            crawler.stats.set_value("aliexpress/results_saved", self.state.saved_count)
        self.logger.info(
            "Scraping completed. Total products saved: %s/%s dropped_pages=%s reason=%s",
            self.state.saved_count,
            self.state.target,
            len(self.state.dropped),
            reason,
        )
