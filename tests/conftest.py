"""Shared fixtures: captured-page builders and a crawler-bound spider factory.

No test touches the network; pages are hand-built HtmlResponse objects padded
past the blocked-page length threshold.
"""

from __future__ import annotations

import json
from typing import Callable

import pytest
from scrapy.http import HtmlResponse
from scrapy.utils.test import get_crawler

from aliexpress_scraper.spiders.aliexpress_products import AliexpressProductsSpider
from aliexpress_scraper.state import PageRequest

_FILLER = "<div class='filler'>" + ("lorem ipsum dolor sit amet " * 450) + "</div>"


def raw_item(i: int, **overrides) -> dict:
    """One listing object in the shape of the search page's itemList."""
    item = {
        "itemType": "productV3",
        "productId": str(1005000000 + i),
        "title": {"displayTitle": f"Cotton Bath Towel {i}", "seoTitle": f"towel-{i}"},
        "prices": {
            "salePrice": {"currencyCode": "USD", "formattedPrice": f"US ${i}.99", "minPrice": i + 0.99},
            "originalPrice": {"formattedPrice": f"US ${i + 5}.99"},
        },
        "evaluation": {"starRating": 4.7},
        "trade": {"tradeDesc": f"{i},000+ sold"},
        "store": {"storeName": f"Store {i}", "storeId": 9000 + i},
        "image": {"imgUrl": f"//ae01.alicdn.com/kf/S{i}abc.jpg_220x220q75.jpg_.webp"},
        "productDetailUrl": f"//www.aliexpress.com/item/{1005000000 + i}.html?algo=x",
    }
    item.update(overrides)
    return item


def embedded_html(items: list, marker: str = "window._dida_config_", pad: bool = True) -> str:
    payload = {
        "data": {
            "root": {
                "fields": {
                    "mods": {
                        "itemList": {"content": items},
                        "pagination": {"pageSize": 60},
                    }
                }
            }
        }
    }
    script = f"<script>{marker} = {json.dumps(payload)};\nwindow.other = 1;</script>"
    return f"<html><head><title>Search</title>{script}</head><body>{_FILLER if pad else ''}</body></html>"


@pytest.fixture()
def items_factory() -> Callable[..., list]:
    def _make(count: int, start: int = 1) -> list:
        return [raw_item(i) for i in range(start, start + count)]

    return _make


@pytest.fixture()
def page_html() -> Callable[..., str]:
    return embedded_html


@pytest.fixture()
def filler() -> str:
    return _FILLER


@pytest.fixture()
def make_spider() -> Callable[..., AliexpressProductsSpider]:
    def _make(settings: dict | None = None, **kwargs) -> AliexpressProductsSpider:
        crawler = get_crawler(AliexpressProductsSpider, settings or {})
        return AliexpressProductsSpider.from_crawler(crawler, **kwargs)

    return _make


@pytest.fixture()
def make_response() -> Callable[..., HtmlResponse]:
    def _make(spider: AliexpressProductsSpider, page: PageRequest, body: str, status: int = 200) -> HtmlResponse:
        request = spider.make_page_request(page)
        return HtmlResponse(
            url=page.url,
            status=status,
            body=body.encode("utf-8"),
            encoding="utf-8",
            request=request,
        )

    return _make
