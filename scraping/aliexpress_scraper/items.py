"""
Item definitions.

Responsibilities:
- Define the canonical product record emitted by the spider
- Act as a shared schema between extraction, spider and pipelines
"""

import scrapy


class ProductItem(scrapy.Item):
    product_id = scrapy.Field()
    title = scrapy.Field()
    price = scrapy.Field()
    original_price = scrapy.Field()
    currency = scrapy.Field()
    rating = scrapy.Field()
    reviews_count = scrapy.Field()
    orders = scrapy.Field()
    store_name = scrapy.Field()
    store_url = scrapy.Field()
    image_url = scrapy.Field()
    product_url = scrapy.Field()
