"""
Downloader middlewares for routing AliExpress traffic through Bright Data.

- BrightDataProxyMiddleware: residential proxy with a sticky session per
  crawl identity, so a re-issued page leaves through a different exit node
- BrightDataUnlockerAPIMiddleware: lets the Web Unlocker API fetch the page
  and hands the html back to Scrapy as the download result

Both stay out of the way when their BRIGHTDATA_* variables are not set.

Unlocker payload is {"zone", "url", "format": "raw", "headers"}; a "method"
key makes the API answer 400.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import requests
from scrapy.http import HtmlResponse

from aliexpress_scraper.blocking import DEFAULT_MIN_LENGTH, PageStatus, classify_page

logger = logging.getLogger(__name__)

DEFAULT_PROXY_HOST = "brd.superproxy.io"
DEFAULT_PROXY_PORT = "22225"


def _proxy_parts() -> dict | None:
    username = os.getenv("BRIGHTDATA_USERNAME")
    password = os.getenv("BRIGHTDATA_PASSWORD")
    if not (username and password):
        return None
    return {
        "username": username,
        "password": password,
        "host": os.getenv("BRIGHTDATA_HOST", DEFAULT_PROXY_HOST),
        "port": os.getenv("BRIGHTDATA_PORT", DEFAULT_PROXY_PORT),
    }


class BrightDataProxyMiddleware:
    def __init__(self, explicit_proxy: str | None, parts: dict | None):
        self.explicit_proxy = explicit_proxy
        self.parts = parts

    @classmethod
    def from_crawler(cls, crawler):
        explicit = (os.getenv("BRIGHTDATA_PROXY") or "").strip() or None
        return cls(explicit, _proxy_parts())

    def proxy_url(self, session: int | None = None) -> str | None:
        """A fixed BRIGHTDATA_PROXY is used as is; otherwise the username gets a session suffix."""
        if self.explicit_proxy:
            return self.explicit_proxy
        if not self.parts:
            return None
        user = self.parts["username"]
        if session:
            user = f"{user}-session-{session}"
        return f"http://{user}:{self.parts['password']}@{self.parts['host']}:{self.parts['port']}"

    def process_request(self, request, spider):
        proxy = self.proxy_url(request.meta.get("session_id"))
        if proxy:
            request.meta.setdefault("proxy", proxy)
        return None


class BrightDataUnlockerAPIMiddleware:
    """
    Download search pages through the Bright Data Web Unlocker API.

    The original request headers travel along (language, user agent) with
    Accept-Encoding forced to identity. A page that still classifies as
    blocked is asked for once more before it is handed to the spider, which
    owns the real retry budget. API or transport failures return None so the
    normal downloader takes the request.
    """

    API_URL = "https://api.brightdata.com/request"

    def __init__(
        self,
        token: Optional[str],
        zone: Optional[str],
        timeout: int = 60,
        min_length: int = DEFAULT_MIN_LENGTH,
    ):
        self.token = token
        self.zone = zone
        self.timeout = timeout
        self.min_length = min_length
        self.session = requests.Session()

    @classmethod
    def from_crawler(cls, crawler):
        return cls(
            os.getenv("BRIGHTDATA_TOKEN"),
            os.getenv("BRIGHTDATA_ZONE"),
            int(os.getenv("BRIGHTDATA_TIMEOUT", "60")),
            crawler.settings.getint("BLOCKED_MIN_LENGTH", DEFAULT_MIN_LENGTH),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.zone)

    @staticmethod
    def forwarded_headers(scrapy_headers) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for name, values in scrapy_headers.items():
            if isinstance(name, (bytes, bytearray)):
                name = name.decode("utf-8", errors="ignore")
            if isinstance(values, (list, tuple)):
                values = b",".join(v if isinstance(v, bytes) else str(v).encode() for v in values)
            if isinstance(values, (bytes, bytearray)):
                values = values.decode("utf-8", errors="ignore")
            headers[str(name)] = str(values)
        headers["Accept-Encoding"] = "identity"
        return headers

    def build_payload(self, request) -> Dict[str, Any]:
        return {
            "zone": self.zone,
            "url": request.url,
            "format": "raw",
            "headers": self.forwarded_headers(request.headers),
        }

    def fetch(self, payload: Dict[str, Any]) -> requests.Response | None:
        try:
            resp = self.session.post(
                self.API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("UNLOCKER transport error url=%s err=%s", payload["url"], exc)
            return None

        if resp.status_code >= 400:
            logger.error(
                "UNLOCKER api error status=%s url=%s body=%s",
                resp.status_code,
                payload["url"],
                (resp.text or "")[:800],
            )
            return None
        return resp

    def process_request(self, request, spider):
        if not self.enabled or request.meta.get("skip_brightdata_unlocker"):
            return None

        payload = self.build_payload(request)
        resp = self.fetch(payload)
        if resp is None:
            return None

        body = resp.content or b""
        if classify_page(body, min_length=self.min_length) is PageStatus.BLOCKED:
            logger.info("UNLOCKER blocked html, asking again url=%s", request.url)
            second = self.fetch(payload)
            if second is not None and second.content:
                body = second.content

        request.meta["brightdata_via_unlocker"] = True
        return HtmlResponse(
            url=request.url,
            status=resp.status_code,
            body=body,
            encoding=resp.encoding or "utf-8",
            request=request,
        )
