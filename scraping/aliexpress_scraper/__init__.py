"""AliExpress search-results scraper (Scrapy project)."""
