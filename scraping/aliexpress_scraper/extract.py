"""
Extraction pipeline.

Strategies run in a fixed order; the first one that produces at least one
valid product wins:

1. embedded  - JSON assigned to known globals / labeled <script> blocks,
               searched with the structured-data locator
2. ld_json   - schema.org Product nodes from application/ld+json blocks
3. cards     - rendered product cards queried through the DOM accessor

Nothing found is a normal outcome (empty result), not an error.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from scrapy.selector import Selector

from aliexpress_scraper.locator import DEFAULT_MAX_DEPTH, find_candidate_arrays
from aliexpress_scraper.normalize import (
    clean,
    extract_price,
    make_product,
    normalize_image_url,
    normalize_item,
    normalize_ld_product,
    parse_count,
    parse_rating,
    product_id_from_url,
    resolve_url,
)

logger = logging.getLogger(__name__)


# -------------------------
# embedded data markers (scanned in this order)
# -------------------------

EMBEDDED_MARKERS = (
    ("dida_config", re.compile(r"window\._dida_config_\s*=\s*")),
    ("run_params", re.compile(r"window\.runParams\s*=\s*")),
    ("initial_state", re.compile(r"__INITIAL_STATE__\s*=\s*")),
    ("init_data", re.compile(r"window\.__INIT_DATA__\s*=\s*")),
    ("next_data", re.compile(r"<script[^>]+id=[\"']__NEXT_DATA__[\"'][^>]*>\s*", re.IGNORECASE)),
    ("json_script", re.compile(r"<script[^>]+type=[\"']application/json[\"'][^>]*>\s*", re.IGNORECASE)),
)

_DECODER = json.JSONDecoder()


# -------------------------
# product card selectors
# -------------------------

CARD_SELECTOR = (
    '[class*="search-card-item"], '
    '[class*="list--gallery--"], '
    '[data-widget="item"], '
    ".product-item, "
    '[class*="CardWrapper"]'
)

# plain selectors read the element's full text, "::attr()" selectors read the attribute
CARD_LINK_SELECTORS = ('a[href*="/item/"]::attr(href)', 'a[href*="aliexpress.com"]::attr(href)')
CARD_TITLE_SELECTORS = ('[class*="title"]', "h1", "h2", "h3", 'a[href*="/item/"]::attr(title)', "img::attr(alt)")
CARD_PRICE_SELECTORS = (
    '[class*="price--current"]',
    '[class*="price-sale"]',
    '[class*="Price--"]',
    '[class*="snow-price"]',
    '[class*="price"] span',
    ".price",
)
CARD_ORIGINAL_PRICE_SELECTORS = ('[class*="price--original"]', '[class*="OriginalPrice"]', '[class*="origin"]')
CARD_RATING_SELECTORS = ('[class*="rating"]', '[class*="star"]')
CARD_REVIEWS_SELECTORS = ('[class*="review"]',)
CARD_SOLD_SELECTORS = ('[class*="sold"]', '[class*="trade"]', '[class*="order"]')
CARD_STORE_NAME_SELECTORS = ('[class*="store"]', '[class*="Shop"]')
CARD_STORE_URL_SELECTORS = ('a[href*="/store/"]::attr(href)',)
CARD_IMAGE_SELECTORS = ('img[src*="alicdn"]::attr(src)', "img[data-src]::attr(data-src)", "img::attr(src)")


@dataclass
class ExtractionResult:
    products: list = field(default_factory=list)
    strategy: str | None = None
    rejected: int = 0


# -------------------------
# helpers
# -------------------------

def iter_embedded_json(body: str):
    """Yield (marker, decoded value) for every embedded data block that parses."""
    for marker, rx in EMBEDDED_MARKERS:
        for m in rx.finditer(body):
            start = m.end()
            if start >= len(body) or body[start] not in "{[":
                continue
            try:
                value, _end = _DECODER.raw_decode(body, start)
            except json.JSONDecodeError as exc:
                logger.warning("EMBEDDED parse failed marker=%s err=%s", marker, exc)
                continue
            yield marker, value


def iter_json_ld(obj):
    if isinstance(obj, dict):
        yield obj
        g = obj.get("@graph")
        if isinstance(g, list):
            for x in g:
                yield from iter_json_ld(x)
        elements = obj.get("itemListElement")
        if isinstance(elements, list):
            for el in elements:
                if isinstance(el, dict) and isinstance(el.get("item"), dict):
                    yield from iter_json_ld(el["item"])
                else:
                    yield from iter_json_ld(el)
    elif isinstance(obj, list):
        for x in obj:
            yield from iter_json_ld(x)


def is_product_node(node: dict) -> bool:
    t = node.get("@type")
    return t == "Product" or (isinstance(t, list) and "Product" in t)


def _first(node, selectors):
    for sel in selectors:
        if "::" in sel:
            v = node.css(sel).get()
        else:
            found = node.css(sel)
            v = found[0].xpath("string()").get() if found else None
        v = clean(v)
        if v:
            return v
    return None


def card_item_ids(card) -> set:
    """Distinct listing ids linked from a card element (its own href included)."""
    hrefs = [card.attrib.get("href")] + card.css('a[href*="/item/"]::attr(href)').getall()
    return {pid for pid in (product_id_from_url(resolve_url(h)) for h in hrefs) if pid}


def card_to_product(card):
    href = card.attrib.get("href") or ""
    link = href if "/item/" in href else _first(card, CARD_LINK_SELECTORS)
    product_url = resolve_url(link)
    product_id = product_id_from_url(product_url)
    if not product_id:
        return None

    price, currency = extract_price(_first(card, CARD_PRICE_SELECTORS))
    return make_product({
        "product_id": product_id,
        "title": _first(card, CARD_TITLE_SELECTORS),
        "price": price,
        "original_price": _first(card, CARD_ORIGINAL_PRICE_SELECTORS),
        "currency": currency,
        "rating": parse_rating(_first(card, CARD_RATING_SELECTORS)),
        "reviews_count": parse_count(_first(card, CARD_REVIEWS_SELECTORS)),
        "orders": parse_count(_first(card, CARD_SOLD_SELECTORS)),
        "store_name": _first(card, CARD_STORE_NAME_SELECTORS),
        "store_url": resolve_url(_first(card, CARD_STORE_URL_SELECTORS)),
        "image_url": normalize_image_url(_first(card, CARD_IMAGE_SELECTORS)),
        "product_url": product_url,
    })


# -------------------------
# pipeline
# -------------------------

class ExtractionPipeline:
    DEFAULT_STRATEGIES = ("embedded", "ld_json", "cards")

    def __init__(self, strategies=None, max_depth: int = DEFAULT_MAX_DEPTH):
        self.strategies = tuple(strategies or self.DEFAULT_STRATEGIES)
        unknown = [s for s in self.strategies if s not in self.DEFAULT_STRATEGIES]
        if unknown:
            raise ValueError(f"unknown extraction strategies: {unknown}")
        self.max_depth = max_depth

    def extract(self, body, dom=None) -> ExtractionResult:
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8", errors="ignore")
        body = body or ""

        # rejected records add up over every strategy that ran
        total_rejected = 0
        for name in self.strategies:
            handler = getattr(self, f"_from_{name}")
            try:
                products, rejected = handler(body, dom)
            except Exception as exc:
                logger.warning("STRATEGY failed name=%s err=%s", name, exc)
                continue
            total_rejected += rejected
            if products:
                return ExtractionResult(products=products, strategy=name, rejected=total_rejected)
            logger.debug("STRATEGY empty name=%s rejected=%s", name, rejected)

        return ExtractionResult(rejected=total_rejected)

    def best_candidate(self, payload) -> tuple[list, int]:
        """
        Normalize every candidate array and keep the one with the most valid
        products. Ties go to the earlier candidate in locator order.
        """
        best, best_rejected, best_path = [], 0, None
        for candidate in find_candidate_arrays(payload, self.max_depth):
            products = [p for p in map(normalize_item, candidate.items) if p is not None]
            if len(products) > len(best):
                best = products
                best_rejected = len(candidate.items) - len(products)
                best_path = candidate.path
        if best:
            logger.debug("CANDIDATE chosen path=%s products=%s", best_path, len(best))
        return best, best_rejected

    def _from_embedded(self, body: str, dom):
        for marker, payload in iter_embedded_json(body):
            products, rejected = self.best_candidate(payload)
            if products:
                logger.info("EMBEDDED marker=%s products=%s", marker, len(products))
                return products, rejected
        return [], 0

    def _from_ld_json(self, body: str, dom):
        if not body.strip():
            return [], 0

        nodes = []
        for block in Selector(text=body).css('script[type="application/ld+json"]::text').getall():
            block = (block or "").strip()
            if not block:
                continue
            try:
                nodes.extend(iter_json_ld(json.loads(block)))
            except json.JSONDecodeError as exc:
                logger.warning("LD_JSON parse failed err=%s", exc)

        product_nodes = [n for n in nodes if is_product_node(n)]
        products = [p for p in map(normalize_ld_product, product_nodes) if p is not None]
        return products, len(product_nodes) - len(products)

    def _from_cards(self, body: str, dom):
        if dom is None:
            return [], 0

        cards = dom.css(CARD_SELECTOR)
        products, seen, rejected = [], set(), 0
        for card in cards:
            ids = card_item_ids(card)
            # no listing link: a card fragment such as a title block;
            # several: a grid wrapper holding whole cards
            if len(ids) != 1:
                continue
            product = card_to_product(card)
            if product is None:
                rejected += 1
                continue
            # the same listing can be rendered twice (ads, carousels)
            if product["product_id"] in seen:
                continue
            seen.add(product["product_id"])
            products.append(product)

        if cards and not products:
            logger.warning("CARDS found=%s but extracted 0 products", len(cards))
        return products, rejected
