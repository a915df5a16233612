"""Tests for the extraction pipeline and its three strategies."""

from __future__ import annotations

import json

import pytest
from scrapy.selector import Selector

from aliexpress_scraper.extract import (
    ExtractionPipeline,
    iter_embedded_json,
    iter_json_ld,
)

from conftest import embedded_html, raw_item


_CARDS_HTML = """\
<html><body>
<div class="list--gallery--C2f2tvm">
  <a class="search-card-item" href="//www.aliexpress.com/item/1005001.html?spm=abc">
    <img src="//ae01.alicdn.com/kf/Sone.jpg_220x220.jpg_.webp" />
    <div class="multi--title--G7dOCj3"><h3>Microfiber Towel Set</h3></div>
    <div class="multi--price--1okBCly">
      <div class="multi--price-sale--U-S0jtj">€4,56</div>
      <div class="multi--price-original--1zEQqOK">€9,12</div>
    </div>
    <div class="multi--evaluation--3xoCr4H"><span class="rating">4.8</span></div>
    <span class="multi--trade--Ktbl2jB">2,345 sold</span>
    <span class="cards--store--3GyJcot">Happy Home Store</span>
  </a>
  <a class="search-card-item" href="https://www.aliexpress.com/item/1005002.html">
    <div class="title">Hand Towel</div>
    <span class="price">$1.20</span>
  </a>
  <div class="search-card-item"><a href="/help">no product link</a></div>
</div>
</body></html>
"""


def _ld_html(*nodes) -> str:
    blocks = "".join(
        f'<script type="application/ld+json">{json.dumps(n)}</script>' for n in nodes
    )
    return f"<html><head>{blocks}</head><body></body></html>"


class TestIterEmbeddedJson:
    def test_decodes_nested_payload(self) -> None:
        body = 'x <script>window.runParams = {"a": {"b": "};"}, "c": [1]};</script>'
        assert list(iter_embedded_json(body)) == [("run_params", {"a": {"b": "};"}, "c": [1]})]

    def test_invalid_json_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        body = "<script>window._dida_config_ = {broken: true};</script>"
        assert list(iter_embedded_json(body)) == []
        assert "EMBEDDED parse failed" in caplog.text

    def test_labeled_script_block(self) -> None:
        body = '<script id="__NEXT_DATA__" type="application/json">{"props": {"items": []}}</script>'
        markers = [m for m, _ in iter_embedded_json(body)]
        assert markers[0] == "next_data"

    def test_non_json_assignment_ignored(self) -> None:
        assert list(iter_embedded_json("window.runParams = getParams();")) == []


class TestIterJsonLd:
    def test_graph_and_item_list(self) -> None:
        data = {
            "@graph": [
                {"@type": "ItemList", "itemListElement": [{"@type": "ListItem", "item": {"@type": "Product", "name": "a"}}]},
            ]
        }
        types = [n.get("@type") for n in iter_json_ld(data)]
        assert types == [None, "ItemList", "Product"]


class TestEmbeddedStrategy:
    def test_extracts_products(self) -> None:
        result = ExtractionPipeline().extract(embedded_html([raw_item(i) for i in range(1, 4)]))
        assert result.strategy == "embedded"
        assert [p["product_id"] for p in result.products] == ["1005000001", "1005000002", "1005000003"]

    def test_rejected_items_counted(self) -> None:
        items = [raw_item(1), {"itemType": "ad", "id": "x", "title": "promo"}, raw_item(2)]
        result = ExtractionPipeline().extract(embedded_html(items))
        assert len(result.products) == 2
        assert result.rejected == 1

    def test_picks_candidate_with_most_valid_records(self) -> None:
        payload = {
            "items": [{"id": "nav-1"}, {"id": "nav-2"}],
            "zzz": {"list": [raw_item(1), raw_item(2), raw_item(3)]},
        }
        body = f"<script>window.runParams = {json.dumps(payload)};</script>"
        result = ExtractionPipeline().extract(body)
        assert len(result.products) == 3

    def test_other_markers(self) -> None:
        body = embedded_html([raw_item(1)], marker="window.__INITIAL_STATE__")
        assert ExtractionPipeline().extract(body).strategy == "embedded"

    def test_product_list_inside_module_list(self) -> None:
        payload = {"modules": [{"id": "mod-1", "type": "list", "content": [raw_item(1), raw_item(2)]}]}
        body = f"<script>window.runParams = {json.dumps(payload)};</script>"
        result = ExtractionPipeline().extract(body)
        assert result.strategy == "embedded"
        assert [p["product_id"] for p in result.products] == ["1005000001", "1005000002"]

    def test_broken_block_falls_back_to_next_marker(self) -> None:
        good = json.dumps({"items": [raw_item(5)]})
        body = f"<script>window._dida_config_ = {{oops}};</script><script>window.runParams = {good};</script>"
        result = ExtractionPipeline().extract(body)
        assert [p["product_id"] for p in result.products] == ["1005000005"]


class TestLdJsonStrategy:
    def test_product_nodes(self) -> None:
        body = _ld_html(
            {"@type": "BreadcrumbList"},
            {
                "@type": "ItemList",
                "itemListElement": [
                    {"@type": "ListItem", "item": {"@type": "Product", "name": "A", "sku": "11", "offers": {"price": "2.00", "priceCurrency": "GBP"}}},
                    {"@type": "ListItem", "item": {"@type": "Product", "name": "B", "url": "https://www.aliexpress.com/item/22.html"}},
                    {"@type": "ListItem", "item": {"@type": "Product", "sku": "33"}},
                ],
            },
        )
        result = ExtractionPipeline().extract(body)
        assert result.strategy == "ld_json"
        assert [p["product_id"] for p in result.products] == ["11", "22"]
        assert result.products[0]["currency"] == "GBP"
        assert result.rejected == 1

    def test_invalid_ld_block_skipped(self) -> None:
        body = '<script type="application/ld+json">{nope</script>' + _ld_html({"@type": "Product", "name": "A", "sku": "1"})
        result = ExtractionPipeline().extract(body)
        assert [p["product_id"] for p in result.products] == ["1"]


class TestCardsStrategy:
    def test_cards_from_dom(self) -> None:
        result = ExtractionPipeline().extract(_CARDS_HTML, dom=Selector(text=_CARDS_HTML))
        assert result.strategy == "cards"
        first, second = result.products

        assert first["product_id"] == "1005001"
        assert first["title"] == "Microfiber Towel Set"
        assert first["price"] == "€4,56"
        assert first["currency"] == "EUR"
        assert first["original_price"] == "€9,12"
        assert first["rating"] == "4.8"
        assert first["orders"] == 2345
        assert first["store_name"] == "Happy Home Store"
        assert first["image_url"] == "https://ae01.alicdn.com/kf/Sone.jpg"
        assert first["product_url"] == "https://www.aliexpress.com/item/1005001.html"

        assert second["product_id"] == "1005002"
        assert second["title"] == "Hand Towel"
        assert second["price"] == "$1.20"
        assert second["currency"] == "USD"

    def test_child_class_reusing_card_name(self) -> None:
        html = """
        <div class="list--gallery--x">
          <a class="search-card-item" href="//www.aliexpress.com/item/11.html">
            <div class="search-card-item-title"><h3>Bath Sheet</h3></div>
            <div class="price">$5.00</div>
          </a>
          <a class="search-card-item" href="//www.aliexpress.com/item/12.html?spm=2">
            <div class="search-card-item-title"><h3>Face Cloth</h3></div>
          </a>
        </div>
        """
        result = ExtractionPipeline().extract(html, dom=Selector(text=html))
        assert [p["product_id"] for p in result.products] == ["11", "12"]
        assert [p["title"] for p in result.products] == ["Bath Sheet", "Face Cloth"]
        assert result.products[1]["product_url"] == "https://www.aliexpress.com/item/12.html"
        assert result.rejected == 0

    def test_no_dom_no_cards(self) -> None:
        assert ExtractionPipeline().extract(_CARDS_HTML).products == []


class TestPipelineOrder:
    def test_embedded_wins_over_ld_and_cards(self) -> None:
        body = embedded_html([raw_item(1)]) + _ld_html({"@type": "Product", "name": "LD", "sku": "9"}) + _CARDS_HTML
        result = ExtractionPipeline().extract(body, dom=Selector(text=body))
        assert result.strategy == "embedded"

    def test_configured_order(self) -> None:
        body = embedded_html([raw_item(1)]) + _ld_html({"@type": "Product", "name": "LD", "sku": "9"})
        result = ExtractionPipeline(strategies=["ld_json", "embedded"]).extract(body)
        assert result.strategy == "ld_json"

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError):
            ExtractionPipeline(strategies=["magic"])

    def test_nothing_found_is_empty_result(self) -> None:
        result = ExtractionPipeline().extract("<html><body><p>no results</p></body></html>", dom=Selector(text="<p/>"))
        assert result.products == []
        assert result.strategy is None

    def test_rejected_kept_when_nothing_found(self) -> None:
        items = [{"itemType": "productV3", "productId": str(i)} for i in range(3)]
        result = ExtractionPipeline().extract(embedded_html(items))
        assert result.products == []
        assert result.strategy is None
        assert result.rejected == 3

    def test_empty_body(self) -> None:
        assert ExtractionPipeline().extract(None).products == []
        assert ExtractionPipeline().extract(b"").products == []
