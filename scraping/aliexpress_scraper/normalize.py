"""
Field normalizer.

Turns one raw listing object (whatever shape the page happened to ship) into
one canonical ProductItem, or None when the object is not a product.

Every canonical field is resolved through a fallback chain: an ordered tuple
of dotted paths tried against the raw object, first non-empty value wins.
The chains are plain module constants so their order can be tuned without
touching the resolution logic.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote, urljoin

from aliexpress_scraper.items import ProductItem
from aliexpress_scraper.locator import item_view

logger = logging.getLogger(__name__)


BASE_URL = "https://www.aliexpress.com"
PRODUCT_URL_TEMPLATE = BASE_URL + "/item/{}.html"
STORE_URL_TEMPLATE = BASE_URL + "/store/{}"

DEFAULT_CURRENCY = "USD"
CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY", "₹": "INR"}

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")
DEFAULT_IMAGE_EXTENSION = ".jpg"


# -------------------------
# fallback chains
# -------------------------

ID_PATHS = ("productId", "itemId", "id", "product_id", "productID", "sku")
TITLE_PATHS = ("title.displayTitle", "title.seoTitle", "title", "name", "productTitle", "subject")
PRICE_PATHS = ("prices.salePrice", "price", "salePrice", "priceInfo.salePrice", "priceInfo", "minPrice")
ORIGINAL_PRICE_PATHS = (
    "prices.originalPrice",
    "oriPrice",
    "originalPrice",
    "priceInfo.originalPrice",
    "maxPrice",
)
CURRENCY_PATHS = (
    "prices.salePrice.currencyCode",
    "prices.currencyCode",
    "currencyCode",
    "currency",
    "priceInfo.currencyCode",
)
RATING_PATHS = ("evaluation.starRating", "starRating", "averageStar", "rating", "evaluation.averageStar")
REVIEWS_PATHS = ("evaluation.totalCount", "evaluation.reviewCount", "reviewCount", "reviews", "totalReviews")
ORDERS_PATHS = ("trade.tradeDesc", "soldCount", "sold", "trade.realTradeCount", "orders", "tradeCount")
STORE_NAME_PATHS = ("store.storeName", "storeName", "store.name", "sellerName")
STORE_URL_PATHS = ("store.storeUrl", "storeUrl", "store.url")
STORE_ID_PATHS = ("store.storeId", "storeId", "store.id", "sellerId")
IMAGE_PATHS = ("image.imgUrl", "imageUrl", "img", "image", "imgUrl", "images.0", "mainImage")
PRODUCT_URL_PATHS = ("productDetailUrl", "detailUrl", "productUrl", "url", "link")

# sub-keys tried when a price arrives as an object
PRICE_OBJECT_PATHS = (
    "formattedPrice",
    "minPrice",
    "displayPrice",
    "value",
    "amount",
    "price",
    "minAmount.formatted",
    "minAmount.value",
)

# schema.org Product (JSON-LD)
LD_ID_PATHS = ("sku", "productID", "mpn")
LD_PRICE_PATHS = ("offers.price", "offers.lowPrice", "offers.priceSpecification.price")
LD_IMAGE_PATHS = ("image", "image.0", "image.url", "image.0.url")
LD_STORE_PATHS = ("brand.name", "seller.name", "offers.seller.name", "brand")

_COERCION_ERRORS = (TypeError, ValueError, AttributeError, KeyError, IndexError)

_CURRENCY_SYMBOL_RX = re.compile(r"[$€£¥₹]")
_CURRENCY_CODE_RX = re.compile(r"^[A-Za-z]{3}$")
# grouped thousands ("10,000", "1 234", "1.234") or a plain integer; a decimal
# such as a "4.8" rating is not a count
_NUMERIC_RUN_RX = re.compile(
    r"(?<![\d.,])\d{1,3}(?:[,.\s ]\d{3})+(?!\d)|(?<![\d.,])\d+(?![.,]\d)"
)
_DECIMAL_RX = re.compile(r"\d+(?:[.,]\d+)?")
_ITEM_URL_RX = re.compile(r"/item/(\d+)\.html")
_THUMB_SUFFIX_RX = re.compile(r"(\.(?:jpe?g|png|webp|gif))_.*$", re.IGNORECASE)
_SIZE_SUFFIX_RX = re.compile(r"_\d+x\d+[^/]*$")


# -------------------------
# helpers
# -------------------------

def clean(text):
    if text is None:
        return None
    s = re.sub(r"\s+", " ", str(text)).strip()
    return s or None


def dig(obj, path: str):
    cur = obj
    for part in path.split("."):
        if isinstance(cur, dict):
            cur = cur.get(part)
        elif isinstance(cur, list) and part.isdigit():
            idx = int(part)
            cur = cur[idx] if idx < len(cur) else None
        else:
            return None
        if cur is None:
            return None
    return cur


def _present(value) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def first_value(obj, paths, convert=None):
    """
    Walk a fallback chain. A converter that raises, or returns an empty value,
    makes that path count as missing and the next one is tried.
    """
    for path in paths:
        try:
            value = dig(obj, path)
            if convert is not None and _present(value):
                value = convert(value)
        except _COERCION_ERRORS as exc:
            logger.debug("FIELD coercion failed path=%s err=%s", path, exc)
            continue
        if _present(value):
            return value
    return None


# -------------------------
# scalar coercion
# -------------------------

def as_text(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return clean(value)
    return None


def as_identifier(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, (str, int)):
        return clean(value)
    return None


def as_currency_code(value):
    if isinstance(value, str) and _CURRENCY_CODE_RX.match(value.strip()):
        return value.strip().upper()
    return None


def price_text(value):
    """Render a numeric, string or object-shaped price as display text."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return clean(value)
    if isinstance(value, dict):
        return first_value(value, PRICE_OBJECT_PATHS, price_text)
    return None


def currency_from_text(text):
    if not text:
        return None
    m = _CURRENCY_SYMBOL_RX.search(str(text))
    if not m:
        return None
    return CURRENCY_SYMBOLS.get(m.group(0))


def extract_price(value) -> tuple[str | None, str]:
    """Return (display text, currency code) for any supported price shape."""
    try:
        text = price_text(value)
    except _COERCION_ERRORS:
        text = None
    return text, currency_from_text(text) or DEFAULT_CURRENCY


def parse_count(value):
    """
    "10,000+ sold" -> 10000, "1 234 reviews" -> 1234, "sold out" -> None,
    "4.8 1,234 sold" -> 1234. Thousands separators inside the run are dropped.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    m = _NUMERIC_RUN_RX.search(str(value))
    if not m:
        return None
    digits = re.sub(r"\D", "", m.group(0))
    return int(digits) if digits else None


def parse_rating(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    m = _DECIMAL_RX.search(str(value))
    if not m:
        return None
    return m.group(0).replace(",", ".")


# -------------------------
# URLs
# -------------------------

def resolve_url(url, base: str = BASE_URL):
    if not isinstance(url, str):
        return None
    url = clean(url)
    if not url:
        return None
    if url.startswith("//"):
        return "https:" + url
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith(("#", "javascript:", "data:", "mailto:")):
        return None
    return urljoin(base.rstrip("/") + "/", url)


def normalize_image_url(url):
    """
    Canonical full-size image URL from a listing thumbnail URL.

    "//ae01.alicdn.com/kf/S1.jpg_220x220q75.jpg_.webp?x=1"
        -> "https://ae01.alicdn.com/kf/S1.jpg"
    """
    url = resolve_url(url)
    if not url:
        return None
    url = url.split("#", 1)[0].split("?", 1)[0]
    url = _THUMB_SUFFIX_RX.sub(r"\1", url)
    url = _SIZE_SUFFIX_RX.sub("", url)
    if not url.lower().endswith(IMAGE_EXTENSIONS):
        url += DEFAULT_IMAGE_EXTENSION
    return url


def product_id_from_url(url):
    if not url:
        return None
    m = _ITEM_URL_RX.search(url)
    return m.group(1) if m else None


def product_page_url(url):
    """Listing links carry tracking parameters (algo, spm, ...); keep the bare page URL."""
    url = resolve_url(url)
    if not url:
        return None
    return url.split("#", 1)[0].split("?", 1)[0]


def product_url_for(product_id: str) -> str:
    return PRODUCT_URL_TEMPLATE.format(quote(str(product_id), safe=""))


def store_url_for(store_id) -> str | None:
    store_id = as_identifier(store_id)
    if store_id and store_id.isdigit():
        return STORE_URL_TEMPLATE.format(store_id)
    return None


# -------------------------
# records
# -------------------------

def make_product(fields: dict) -> ProductItem | None:
    """
    Final gate shared by every extraction path: no id or no title means
    "not a product". Missing optional fields are filled with None.
    """
    product_id = as_identifier(fields.get("product_id"))
    title = as_text(fields.get("title"))
    if not product_id or not title:
        return None

    record = {name: fields.get(name) for name in ProductItem.fields}
    record["product_id"] = product_id
    record["title"] = title
    record["currency"] = record.get("currency") or DEFAULT_CURRENCY
    record["product_url"] = product_page_url(record.get("product_url")) or product_url_for(product_id)
    return ProductItem(**record)


def _is_product_type(item: dict) -> bool:
    item_type = item.get("itemType")
    if isinstance(item_type, str) and item_type:
        return item_type.lower().startswith("product")
    return True


def normalize_item(raw) -> ProductItem | None:
    item = item_view(raw)
    if item is None or not _is_product_type(item):
        return None

    product_id = first_value(item, ID_PATHS, as_identifier)
    title = first_value(item, TITLE_PATHS, as_text)
    if not product_id or not title:
        return None

    price = first_value(item, PRICE_PATHS, price_text)
    currency = first_value(item, CURRENCY_PATHS, as_currency_code) or currency_from_text(price)

    store_url = first_value(item, STORE_URL_PATHS, resolve_url)
    if not store_url:
        store_url = first_value(item, STORE_ID_PATHS, store_url_for)

    return make_product({
        "product_id": product_id,
        "title": title,
        "price": price,
        "original_price": first_value(item, ORIGINAL_PRICE_PATHS, price_text),
        "currency": currency,
        "rating": first_value(item, RATING_PATHS, parse_rating),
        "reviews_count": first_value(item, REVIEWS_PATHS, parse_count),
        "orders": first_value(item, ORDERS_PATHS, parse_count),
        "store_name": first_value(item, STORE_NAME_PATHS, as_text),
        "store_url": store_url,
        "image_url": first_value(item, IMAGE_PATHS, normalize_image_url),
        "product_url": first_value(item, PRODUCT_URL_PATHS, resolve_url),
    })


def normalize_ld_product(node) -> ProductItem | None:
    """Normalize a schema.org Product node from a JSON-LD block."""
    if not isinstance(node, dict):
        return None

    offers = node.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    view = dict(node, offers=offers if isinstance(offers, dict) else {})

    url = first_value(view, ("url", "offers.url"), resolve_url)
    product_id = first_value(view, LD_ID_PATHS, as_identifier) or product_id_from_url(url)

    price = first_value(view, LD_PRICE_PATHS, price_text)
    original_price = first_value(view, ("offers.highPrice",), price_text)
    if original_price == price:
        original_price = None

    return make_product({
        "product_id": product_id,
        "title": first_value(view, ("name",), as_text),
        "price": price,
        "original_price": original_price,
        "currency": first_value(view, ("offers.priceCurrency",), as_currency_code) or currency_from_text(price),
        "rating": first_value(view, ("aggregateRating.ratingValue",), parse_rating),
        "reviews_count": first_value(
            view, ("aggregateRating.reviewCount", "aggregateRating.ratingCount"), parse_count
        ),
        "store_name": first_value(view, LD_STORE_PATHS, as_text),
        "store_url": first_value(view, ("seller.url", "offers.seller.url"), resolve_url),
        "image_url": first_value(view, LD_IMAGE_PATHS, normalize_image_url),
        "product_url": url,
    })
