# app/adapters/clients/classifieds.py
from __future__ import annotations

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode, urljoin

import certifi
import httpx
from bs4 import BeautifulSoup

from ...config import settings
from ...domain.parsing import parse_price_text
from ...models import VendorType

log = logging.getLogger(__name__)

REAL_ESTATE_CATEGORY = "9"
SALE_TYPE_CODE = "2"
PROPERTY_KIND_CODES: dict[str, str] = {
    "appartement": "1",
    "maison": "2",
    "studio": "3",
    "loft": "4",
    "penthouse": "5",
}

_SURFACE = re.compile(r"(\d+)\s*m²")
_ROOMS = re.compile(r"(\d+)\s*pièce")
_POSTAL_CODE = re.compile(r"\b(\d{5})\b")


@dataclass
class ClassifiedsSearchParams:
    location: str
    price_min: int | None = None
    price_max: int | None = None
    surface_min: int | None = None
    surface_max: int | None = None
    property_kind: str | None = None  # appartement|maison|studio|loft|penthouse
    rooms: int | None = None
    pages: int | None = None


@dataclass
class ScrapeHealth:
    fetched: int = 0
    failed_pages: int = 0
    parsed_cards: int = 0
    skipped_cards: int = 0
    last_error: str | None = None


def _range(lo: int | None, hi: int | None) -> str | None:
    if hi:
        return f"{lo or 0}-{hi}"
    if lo:
        return str(lo)
    return None


def build_search_url(params: ClassifiedsSearchParams, page: int = 1, base_url: str | None = None) -> str:
    base = (base_url or settings.CLASSIFIEDS_BASE_URL).rstrip("/")
    q: dict[str, str] = {
        "category": REAL_ESTATE_CATEGORY,
        "real_estate_type": PROPERTY_KIND_CODES.get(params.property_kind or "", SALE_TYPE_CODE),
        "locations": params.location,
    }
    price = _range(params.price_min, params.price_max)
    if price:
        q["price"] = price
    square = _range(params.surface_min, params.surface_max)
    if square:
        q["square"] = square
    if params.rooms:
        q["rooms"] = str(params.rooms)
    q["page"] = str(page)
    return f"{base}/recherche?{urlencode(q)}"


def parse_search_page(
    html: str,
    base_url: str | None = None,
    health: ScrapeHealth | None = None,
) -> list[dict[str, Any]]:
    """
    Parse result cards. A card we can't read is skipped, never the page;
    skips are counted on `health` when given.
    """
    base = (base_url or settings.CLASSIFIEDS_BASE_URL).rstrip("/") + "/"
    soup = BeautifulSoup(html, "lxml")
    cards: list[dict[str, Any]] = []
    skipped = 0

    for el in soup.select('[data-qa-id="aditem_container"]'):
        try:
            title_el = el.select_one('[data-qa-id="aditem_title"]')
            title = title_el.get_text(" ", strip=True) if title_el else ""
            if not title:
                skipped += 1
                continue

            price_el = el.select_one('[data-qa-id="aditem_price"]')
            price = parse_price_text(price_el.get_text() if price_el else "")
            if price == 0:
                skipped += 1
                continue

            link = el if el.name == "a" and el.get("href") else el.find("a", href=True)
            url = urljoin(base, link["href"]) if link else ""

            criteria_el = el.select_one('[data-qa-id="aditem_criteria"]')
            criteria = criteria_el.get_text(" ", strip=True) if criteria_el else ""
            surface_m = _SURFACE.search(criteria)
            rooms_m = _ROOMS.search(criteria)

            location_el = el.select_one('[data-qa-id="aditem_location"]')
            location = location_el.get_text(" ", strip=True) if location_el else ""
            cp_m = _POSTAL_CODE.search(location)
            city = _POSTAL_CODE.sub("", location).strip(" ,-") if location else ""

            images: list[str] = []
            for img in el.find_all("img"):
                src = img.get("src") or img.get("data-src")
                if src and "placeholder" not in src:
                    images.append(src if src.startswith("http") else urljoin(base, src))

            cards.append(
                {
                    "title": title,
                    "price": price,
                    "surface": int(surface_m.group(1)) if surface_m else None,
                    "rooms": int(rooms_m.group(1)) if rooms_m else None,
                    "city": city,
                    "postal_code": cp_m.group(1) if cp_m else None,
                    "url": url,
                    "images": images,
                    "description": title,
                }
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            log.debug("skipping unreadable card: %r", e)
            skipped += 1
            continue

    if health is not None:
        health.skipped_cards += skipped
    return cards


class ClassifiedsScraper:
    """
    Conservative scraper for the classifieds search pages:
      - browser-like headers, certifi-verified TLS
      - per-page retry with linear backoff
      - a failed page is logged and skipped
      - randomized polite delay between pages
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        page_sleep: tuple[float, float] | None = None,
        retry_sleep_s: float | None = None,
    ) -> None:
        self.base_url = settings.CLASSIFIEDS_BASE_URL.rstrip("/")
        self.api_url = settings.CLASSIFIEDS_API_URL.rstrip("/")
        self.timeout = settings.CLASSIFIEDS_TIMEOUT_S
        self.retries = max(1, settings.CLASSIFIEDS_RETRIES)
        self.page_sleep = page_sleep or (settings.CLASSIFIEDS_PAGE_SLEEP_MIN_S, settings.CLASSIFIEDS_PAGE_SLEEP_MAX_S)
        self.retry_sleep_s = settings.CLASSIFIEDS_RETRY_SLEEP_S if retry_sleep_s is None else retry_sleep_s
        self.health = ScrapeHealth()
        self._http = http_client

    def _http_verify(self) -> bool | str:
        """
        httpx 'verify' can be:
          - True/False
          - path to CA bundle
        """
        if not settings.CLASSIFIEDS_VERIFY_SSL:
            return False
        if settings.CLASSIFIEDS_CA_BUNDLE:
            return settings.CLASSIFIEDS_CA_BUNDLE
        return certifi.where()

    def _headers(self, accept: str) -> dict[str, str]:
        return {
            "User-Agent": settings.CLASSIFIEDS_USER_AGENT,
            "Accept": accept,
            "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
        }

    async def _get(self, url: str, accept: str) -> httpx.Response:
        headers = self._headers(accept)
        if self._http is not None:
            return await self._http.get(url, headers=headers)
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            verify=self._http_verify(),
        ) as client:
            return await client.get(url, headers=headers)

    async def _fetch_html(self, url: str) -> str:
        last_exc: Exception | None = None
        for attempt in range(self.retries):
            self.health.fetched += 1
            try:
                r = await self._get(url, "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8")
                r.raise_for_status()
                return r.text
            except httpx.HTTPError as e:
                last_exc = e
                log.info("classifieds fetch failed (attempt %d/%d) %s: %r", attempt + 1, self.retries, url, e)
                if attempt < self.retries - 1 and self.retry_sleep_s > 0:
                    await asyncio.sleep(self.retry_sleep_s * (attempt + 1))

        assert last_exc is not None
        raise last_exc

    async def scrape(self, params: ClassifiedsSearchParams) -> list[dict[str, Any]]:
        max_pages = params.pages or settings.CLASSIFIEDS_PAGES
        out: list[dict[str, Any]] = []

        for page in range(1, max_pages + 1):
            url = build_search_url(params, page, self.base_url)
            try:
                html = await self._fetch_html(url)
            except httpx.HTTPError as e:
                self.health.failed_pages += 1
                self.health.last_error = repr(e)
                log.warning("classifieds page %d failed, continuing: %r", page, e)
                continue

            cards = parse_search_page(html, self.base_url, self.health)
            self.health.parsed_cards += len(cards)
            log.info("classifieds page %d: %d cards", page, len(cards))
            out.extend(cards)

            if page < max_pages:
                lo, hi = self.page_sleep
                if hi > 0:
                    await asyncio.sleep(random.uniform(lo, hi))

        return out

    async def owner_type(self, ad_id: str) -> VendorType | None:
        """
        GET {api}/finder/classified/{id} -> owner.type (private|pro).
        Not a documented API: any failure means "don't know".
        """
        url = f"{self.api_url}/finder/classified/{ad_id}"
        try:
            r = await self._get(url, "application/json")
            if r.status_code != 200:
                return None
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            log.info("owner lookup failed for %s: %r", ad_id, e)
            return None

        owner = data.get("owner") if isinstance(data, dict) else None
        owner_type = owner.get("type") if isinstance(owner, dict) else None
        if owner_type == "private":
            return VendorType.particulier
        if owner_type == "pro":
            return VendorType.professionnel
        return None
