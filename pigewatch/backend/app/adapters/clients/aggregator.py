# app/adapters/clients/aggregator.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ...config import settings
from ...domain.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderQuotaError,
    ProviderRequestError,
)
from .http_resilience import resilient_request

log = logging.getLogger(__name__)

DEFAULT_TYPES = ["sale", "rental"]


@dataclass
class AggregatorSearchParams:
    page: int = 1
    max_length: int = 50
    types: list[str] | None = None
    categories: list[str] | None = None
    price_min: float | None = None
    price_max: float | None = None
    surface_min: float | None = None
    surface_max: float | None = None
    rooms_min: int | None = None
    rooms_max: int | None = None
    bedrooms_min: int | None = None
    bedrooms_max: int | None = None
    # [{"postalCode": "75001"}, {"departmentCode": 33}]
    locations: list[dict[str, Any]] | None = None
    radius: int | None = None
    keywords: list[str] | None = None
    keywords_operator: str | None = None  # and|or
    options: list[str] | None = None
    with_count: bool = False


@dataclass
class AggregatorPage:
    ads: list[dict[str, Any]] = field(default_factory=list)
    count: int | None = None
    page: int = 1
    max_length: int = 50


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


# body key -> params attribute, sent only when not None
_OPTIONAL_FILTERS: tuple[tuple[str, str], ...] = (
    ("priceMin", "price_min"),
    ("priceMax", "price_max"),
    ("surfaceMin", "surface_min"),
    ("surfaceMax", "surface_max"),
    ("roomsMin", "rooms_min"),
    ("roomsMax", "rooms_max"),
    ("bedroomsMin", "bedrooms_min"),
    ("bedroomsMax", "bedrooms_max"),
)


def build_search_body(params: AggregatorSearchParams, api_key: str) -> dict[str, Any]:
    page = _clamp(params.page or 1, 1, 100)
    max_length = _clamp(params.max_length or 50, 1, 1000)

    body: dict[str, Any] = {
        "apiKey": api_key,
        "page": page,
        "maxLength": max_length,
        "types": params.types or list(DEFAULT_TYPES),
        "withCount": bool(params.with_count),
    }

    if params.categories:
        body["categories"] = params.categories
    for key, attr in _OPTIONAL_FILTERS:
        value = getattr(params, attr)
        if value is not None:
            body[key] = value
    if params.locations:
        body["locations"] = params.locations
    if params.radius is not None:
        body["radius"] = _clamp(params.radius, 1, 100)
    if params.keywords:
        body["keywords"] = params.keywords
        body["keywordsOperator"] = params.keywords_operator or "and"
    if params.options:
        body["options"] = params.options

    return body


def _error_detail(resp: httpx.Response) -> str:
    text = resp.text
    try:
        data = resp.json()
    except ValueError:
        return text
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or text)
    return text


def raise_for_provider_status(resp: httpx.Response) -> None:
    status = resp.status_code
    detail = f"aggregator API error ({status}): {_error_detail(resp)}"

    if status == 400:
        raise ProviderRequestError(f"invalid request: {detail}", status)
    if status in (401, 403):
        raise ProviderAuthError(f"invalid or expired API key: {detail}", status)
    if status == 429:
        raise ProviderQuotaError(f"quota exceeded (300 req/min max): {detail}", status)
    raise ProviderError(detail, status)


class AggregatorClient:
    """
    Low-level client for the paid aggregation API.
    Returns raw ad dicts; normalization lives in domain/normalize.py.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.AGGREGATOR_API_KEY
        self._base_url = (base_url or settings.AGGREGATOR_BASE_URL or "").rstrip("/")
        self._http = http_client

    def _require_key(self) -> str:
        if not self._api_key:
            raise ProviderAuthError("AGGREGATOR_API_KEY is not set")
        return self._api_key

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            return await resilient_request(method, url, client=self._http, **kwargs)
        except httpx.HTTPStatusError as e:
            raise_for_provider_status(e.response)
            raise  # unreachable, keeps type checkers quiet
        except httpx.HTTPError as e:
            raise ProviderError(f"aggregator call failed: {e!r}") from e

    async def search(self, params: AggregatorSearchParams) -> AggregatorPage:
        """POST {base}/api/ads"""
        body = build_search_body(params, self._require_key())

        log.info(
            "aggregator search page=%s maxLength=%s types=%s locations=%d price_filter=%s surface_filter=%s",
            body["page"],
            body["maxLength"],
            body["types"],
            len(body.get("locations") or []),
            "priceMin" in body or "priceMax" in body,
            "surfaceMin" in body or "surfaceMax" in body,
        )

        resp = await self._call("POST", "/api/ads", json=body, headers={"Content-Type": "application/json"})
        data = resp.json()
        if not isinstance(data, dict):
            raise ProviderError("aggregator returned a non-object payload")

        ads = [x for x in (data.get("ads") or []) if isinstance(x, dict)]
        log.info("aggregator search page=%s -> %d ads", body["page"], len(ads))

        return AggregatorPage(
            ads=ads,
            count=data.get("count"),
            page=data.get("page") or body["page"],
            max_length=data.get("maxLength") or body["maxLength"],
        )

    async def statistics(self) -> dict[str, Any]:
        """GET {base}/api/statistics"""
        resp = await self._call("GET", "/api/statistics", params={"apiKey": self._require_key()})
        return resp.json()

    async def is_healthy(self) -> bool:
        if not self._api_key:
            return False
        try:
            await self.search(
                AggregatorSearchParams(page=1, max_length=1, locations=[{"postalCode": "75000"}])
            )
        except (ProviderError, httpx.HTTPError) as e:
            log.warning("aggregator health check failed: %s", e)
            return False
        return True
