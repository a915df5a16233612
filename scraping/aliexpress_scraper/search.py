"""
Search run configuration and deterministic search-URL construction.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, quote, urlencode, urlparse, urlunparse

SEARCH_URL_TEMPLATE = "https://www.aliexpress.com/w/wholesale-{}.html"

DEFAULT_KEYWORD = "Towel"
DEFAULT_RESULTS_WANTED = 20
KEYWORD_SEPARATOR = "|"

SORT_TYPES = {
    "default": None,
    "price_asc": "price_asc",
    "price_desc": "price_desc",
    "orders": "total_tranpro_desc",
}


class InvalidSearchConfig(ValueError):
    """Raised for settings that make the run unusable."""


def _encode_keyword(keyword: str) -> str:
    # same escaping as JS encodeURIComponent
    return quote(re.sub(r"\s+", "-", keyword.strip()), safe="-_.!~*'()")


def _format_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_search_url(
    keyword: str,
    page: int = 1,
    *,
    sort_by: str = "default",
    min_price=None,
    max_price=None,
    category=None,
) -> str:
    params = []
    if page > 1:
        params.append(("page", str(page)))
    sort_type = SORT_TYPES.get(sort_by)
    if sort_type:
        params.append(("SortType", sort_type))
    if min_price:
        params.append(("minPrice", _format_number(min_price)))
    if max_price:
        params.append(("maxPrice", _format_number(max_price)))
    if category:
        params.append(("CatId", str(category)))

    url = SEARCH_URL_TEMPLATE.format(_encode_keyword(keyword))
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def with_page(url: str, page: int) -> str:
    """Set (or, for page 1, leave alone) the page query parameter of a start URL."""
    if page <= 1:
        return url
    u = urlparse(url)
    q = [(k, v) for k, v in parse_qsl(u.query, keep_blank_values=True) if k != "page"]
    q.append(("page", str(page)))
    return urlunparse((u.scheme, u.netloc, u.path, u.params, urlencode(q), u.fragment))


def _parse_price(name: str, value):
    if value is None or value == "":
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise InvalidSearchConfig(f"{name} must be a number, got {value!r}") from None
    if price < 0:
        raise InvalidSearchConfig(f"{name} must not be negative, got {value!r}")
    return price


def _parse_results_wanted(value) -> int:
    if value is None or value == "":
        return DEFAULT_RESULTS_WANTED
    try:
        wanted = int(value)
    except (TypeError, ValueError):
        raise InvalidSearchConfig(f"results_wanted must be a positive integer, got {value!r}") from None
    if wanted < 1:
        raise InvalidSearchConfig(f"results_wanted must be a positive integer, got {value!r}")
    return wanted


@dataclass(frozen=True)
class SearchConfig:
    keywords: tuple = (DEFAULT_KEYWORD,)
    start_url: str | None = None
    category: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    sort_by: str = "default"
    results_wanted: int = DEFAULT_RESULTS_WANTED

    @classmethod
    def from_args(
        cls,
        keyword=None,
        start_url=None,
        category=None,
        min_price=None,
        max_price=None,
        sort_by=None,
        results_wanted=None,
    ) -> "SearchConfig":
        """Build from raw spider arguments (strings from ``-a key=value``)."""
        start_url = (start_url or "").strip() or None

        if keyword is None:
            keyword = DEFAULT_KEYWORD
        keywords = tuple(k.strip() for k in str(keyword).split(KEYWORD_SEPARATOR) if k.strip())
        if not keywords and not start_url:
            raise InvalidSearchConfig("a keyword or a start_url is required")

        sort_by = (sort_by or "default").strip()
        if sort_by not in SORT_TYPES:
            raise InvalidSearchConfig(f"sort_by must be one of {sorted(SORT_TYPES)}, got {sort_by!r}")

        min_price = _parse_price("min_price", min_price)
        max_price = _parse_price("max_price", max_price)
        if min_price is not None and max_price is not None and min_price > max_price:
            raise InvalidSearchConfig("min_price must not exceed max_price")

        return cls(
            keywords=keywords,
            start_url=start_url,
            category=(str(category).strip() or None) if category is not None else None,
            min_price=min_price,
            max_price=max_price,
            sort_by=sort_by,
            results_wanted=_parse_results_wanted(results_wanted),
        )

    def seeds(self) -> tuple:
        """One independent pagination line per seed: the start URL, or each keyword."""
        if self.start_url:
            return (self.start_url,)
        return self.keywords

    def page_url(self, seed: str, page: int) -> str:
        if self.start_url and seed == self.start_url:
            return with_page(seed, page)
        return build_search_url(
            seed,
            page,
            sort_by=self.sort_by,
            min_price=self.min_price,
            max_price=self.max_price,
            category=self.category,
        )
