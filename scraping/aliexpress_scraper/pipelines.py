"""
Item pipelines.

Responsibilities:
- Last gate before feed export: a record without product_id or title is dropped
- Count what reaches the output for the end-of-run report
"""

# scraping/aliexpress_scraper/pipelines.py
from __future__ import annotations

from scrapy.exceptions import DropItem


class ProductValidationPipeline:
    def __init__(self, stats=None):
        self.stats = stats

    @classmethod
    def from_crawler(cls, crawler):
        return cls(crawler.stats)

    def process_item(self, item, spider):
        if not item.get("product_id") or not item.get("title"):
            if self.stats is not None:
                self.stats.inc_value("aliexpress/invalid_records")
            raise DropItem(f"missing product_id or title: {dict(item)!r}")
        if self.stats is not None:
            self.stats.inc_value("aliexpress/products_exported")
        return item
