"""
Per-run crawl state: frontier, seen product ids, saved counter.

Only the spider touches this object. Scrapy runs callbacks one at a time on
the reactor thread, so each method below is atomic with respect to other
pages completing.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class PageRequest:
    url: str
    page_number: int = 1
    retry_count: int = 0
    seed: str = ""
    session: int = 0

    @property
    def key(self) -> tuple:
        return (self.seed, self.page_number)


class CrawlState:
    def __init__(self, target: int, max_retries: int = 3):
        self.target = target
        self.max_retries = max_retries
        self.seen_ids: set[str] = set()
        self.saved_count = 0
        self.frontier: dict[tuple, PageRequest] = {}
        self.dropped: list[tuple[PageRequest, str]] = []
        self._sessions = itertools.count(1)

    @property
    def target_reached(self) -> bool:
        return self.saved_count >= self.target

    @property
    def remaining(self) -> int:
        return max(0, self.target - self.saved_count)

    def enqueue(self, page: PageRequest) -> PageRequest | None:
        if self.target_reached:
            return None
        self.frontier[page.key] = page
        return page

    def complete(self, page: PageRequest) -> None:
        self.frontier.pop(page.key, None)

    def claim(self, products) -> list:
        """
        Keep the products not seen before, up to the remaining target.
        Check and insert happen together so a product id is counted once.
        """
        fresh = []
        for product in products:
            if self.target_reached:
                break
            product_id = product.get("product_id")
            if not product_id or product_id in self.seen_ids:
                continue
            self.seen_ids.add(product_id)
            self.saved_count += 1
            fresh.append(product)
        return fresh

    def can_retry(self, page: PageRequest) -> bool:
        return page.retry_count < self.max_retries

    def retry(self, page: PageRequest) -> PageRequest | None:
        """Re-issue a page with a fresh identity. None once the target is met."""
        self.complete(page)
        return self.enqueue(replace(page, retry_count=page.retry_count + 1, session=next(self._sessions)))

    def drop(self, page: PageRequest, reason: str) -> None:
        self.complete(page)
        self.dropped.append((page, reason))

    def should_follow(self, found: int) -> bool:
        # an empty page is the end of the listing for that seed
        return found > 0 and not self.target_reached

    def next_page(self, page: PageRequest, url: str) -> PageRequest | None:
        return self.enqueue(PageRequest(url=url, page_number=page.page_number + 1, seed=page.seed))
