"""
Structured-data locator.

Walks an arbitrary decoded JSON value (dicts / lists / scalars) and returns
every array that looks like a product list, together with the key path that
leads to it.

The walk is:
- depth-first and recursive, capped at ``max_depth`` levels
- biased towards wrapper keys that usually hold listing data (PRIORITY_KEYS),
  remaining keys are visited in insertion order
- exhaustive: all matches are returned, including arrays nested inside an
  accepted one, so the caller can pick the best one
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 14

# Wrapper keys visited before anything else, in this order.
PRIORITY_KEYS = (
    "itemList",
    "content",
    "items",
    "products",
    "productList",
    "list",
    "mods",
    "data",
    "root",
    "fields",
    "result",
    "results",
)

IDENTITY_KEYS = frozenset({"productId", "itemId", "id", "product_id", "sku", "productID"})
TITLE_KEYS = frozenset({"title", "name", "displayTitle", "productTitle", "subject"})
PRICE_KEYS = frozenset({"price", "prices", "salePrice", "priceInfo", "formattedPrice", "minPrice", "offers"})


class CandidateArray(NamedTuple):
    path: tuple
    items: list


def item_view(raw: Any) -> dict | None:
    """
    Merge an inner ``item`` mapping over its wrapper.

    Some layouts nest the product under {"item": {...}, "trace": {...}};
    the merged view lets both levels be read with one lookup.
    """
    if not isinstance(raw, dict):
        return None
    inner = raw.get("item")
    if isinstance(inner, dict):
        merged = {k: v for k, v in raw.items() if k != "item"}
        merged.update(inner)
        return merged
    return raw


def is_candidate_array(value: Any) -> bool:
    if not isinstance(value, list) or not value:
        return False
    first = item_view(value[0])
    if first is None:
        return False
    keys = first.keys()
    if IDENTITY_KEYS.intersection(keys):
        return True
    return bool(TITLE_KEYS.intersection(keys)) and bool(PRICE_KEYS.intersection(keys))


def _ordered_keys(obj: dict) -> list:
    head = [k for k in PRIORITY_KEYS if k in obj]
    head_set = set(head)
    return head + [k for k in obj if k not in head_set]


def find_candidate_arrays(root: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> list[CandidateArray]:
    found: list[CandidateArray] = []

    def walk(value, path: tuple, depth: int) -> None:
        if depth > max_depth:
            return
        if isinstance(value, list):
            if is_candidate_array(value):
                found.append(CandidateArray(path, value))
            for i, child in enumerate(value):
                if isinstance(child, (dict, list)):
                    walk(child, path + (i,), depth + 1)
        elif isinstance(value, dict):
            for key in _ordered_keys(value):
                child = value[key]
                if isinstance(child, (dict, list)):
                    walk(child, path + (key,), depth + 1)

    walk(root, (), 0)
    logger.debug("LOCATOR candidates=%s paths=%s", len(found), [c.path for c in found[:5]])
    return found
