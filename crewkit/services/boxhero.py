"""
BoxHero API client.
Read-only access to the BoxHero inventory catalog (items and locations).
"""
import re
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog

from crewkit.config import settings
from crewkit.error import ExternalServiceError

logger = structlog.get_logger(__name__)

MAX_RETRIES = 3
RETRY_DELAY = 1.0      # seconds, when a 429 carries no reset header
PAGE_DELAY = 0.2       # BoxHero allows ~5 requests per second
PAGE_SIZE = 100
MAX_PAGES = 100

UNIT_TYPES = {
    "UNIT": "UNIT", "UNITS": "UNIT", "EA": "UNIT", "EACH": "UNIT",
    "PCS": "UNIT", "PIECE": "UNIT", "PIECES": "UNIT",
    "BOX": "BOX", "BOXES": "BOX", "BX": "BOX",
    "CASE": "CASE", "CASES": "CASE", "CS": "CASE",
    "PALLET": "PALLET", "PALLETS": "PALLET", "PLT": "PALLET",
    "FOOT": "FOOT", "FEET": "FOOT", "FT": "FOOT",
    "YARD": "YARD", "YARDS": "YARD", "YD": "YARD",
    "POUND": "POUND", "POUNDS": "POUND", "LB": "POUND", "LBS": "POUND",
}

PRICE_KEYS = [
    "price", "unit_price", "unit price", "cost", "unit_cost", "unit cost",
    "price_per_unit", "retail_price", "sale_price",
]


class BoxHeroError(ExternalServiceError):
    """BoxHero could not be reached or answered with an error."""


class BoxHeroClient:
    """Client for the BoxHero REST API"""

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_token = api_token or settings.boxhero_api_token
        self.base_url = (base_url or settings.boxhero_base_url).rstrip("/")
        self.timeout = timeout or settings.boxhero_timeout_seconds
        self.transport = transport
        self.sleep = sleep

        if not self.api_token:
            raise BoxHeroError("BOXHERO_API_TOKEN is not configured")

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.api_token}"}

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(MAX_RETRIES + 1):
                try:
                    response = client.request(method, url, headers=self._headers(), **kwargs)
                except httpx.HTTPError as e:
                    raise BoxHeroError(f"BoxHero request failed: {e}") from e

                if response.status_code != 429:
                    break
                if attempt == MAX_RETRIES:
                    raise BoxHeroError("Rate limit exceeded, max retries reached")

                reset = response.headers.get("X-Ratelimit-Reset")
                wait = float(reset) if reset and reset.replace(".", "", 1).isdigit() else RETRY_DELAY
                logger.info("boxhero_rate_limited", endpoint=endpoint, wait_seconds=wait, attempt=attempt + 1)
                self.sleep(wait)

        if response.is_error:
            try:
                body = response.json()
                title = body.get("title") or response.reason_phrase
                kind = body.get("type") or "/errors/unknown"
            except ValueError:
                title, kind = f"HTTP {response.status_code}: {response.reason_phrase}", "/errors/unknown"
            logger.error("boxhero_error", endpoint=endpoint, status=response.status_code, title=title)
            raise BoxHeroError(f"BoxHero API Error: {title} ({kind})")

        try:
            return response.json()
        except ValueError as e:
            raise BoxHeroError("BoxHero returned a non-JSON response") from e

    def get_items(self, location_ids: Optional[List[int]] = None) -> List[Dict[str, Any]]:
        """Fetch every item, following the cursor until BoxHero reports no more pages."""
        items: List[Dict[str, Any]] = []
        cursor = None

        for page in range(1, MAX_PAGES + 1):
            params: List[tuple] = [("limit", PAGE_SIZE)]
            if cursor:
                params.append(("cursor", cursor))
            for location_id in location_ids or []:
                params.append(("location_ids", location_id))

            response = self._request("GET", "/v1/items", params=params)
            batch = extract_items(response)
            has_more, cursor = extract_pagination(response)
            items.extend(batch)
            logger.debug("boxhero_items_page", page=page, count=len(batch), has_more=has_more)

            if not (has_more and cursor):
                break
            self.sleep(PAGE_DELAY)

        logger.info("boxhero_items_fetched", total=len(items))
        return items

    def get_locations(self) -> List[Dict[str, Any]]:
        response = self._request("GET", "/v1/locations")
        if isinstance(response, list):
            return response
        for key in ("data", "locations"):
            if isinstance(response.get(key), list):
                return response[key]
        logger.warning("boxhero_unexpected_locations", keys=list(response))
        return []


def extract_items(response: Any) -> List[Dict[str, Any]]:
    """BoxHero has answered with a bare list and with data/items/results envelopes."""
    if isinstance(response, list):
        return response
    for key in ("data", "items", "results"):
        if isinstance(response.get(key), list):
            return response[key]
    logger.warning("boxhero_unexpected_items", keys=list(response))
    return []


def extract_pagination(response: Any) -> tuple[bool, Optional[str]]:
    if isinstance(response, list):
        return False, None
    has_more = response.get("has_more", response.get("hasMore", False))
    cursor = response.get("cursor") or response.get("next_cursor")
    return bool(has_more), cursor


def map_unit_type(value: Optional[str]) -> str:
    if not value:
        return "UNIT"
    return UNIT_TYPES.get(str(value).strip().upper(), "OTHER")


def _to_price(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^0-9.\-]", "", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return None


def extract_price(item: Dict[str, Any]) -> float:
    attributes = item.get("attributes") or {}
    by_lower = {str(k).lower(): v for k, v in attributes.items()}

    for key in PRICE_KEYS:
        price = _to_price(by_lower.get(key))
        if price is not None:
            return price

    for key, value in by_lower.items():
        if "price" in key or "cost" in key:
            price = _to_price(value)
            if price is not None:
                return price
    return 0.0


def item_sku(item: Dict[str, Any]) -> str:
    for key in ("barcode", "sku"):
        value = (item.get(key) or "").strip()
        if value:
            return value
    return f"BH-{item['id']}"


def total_quantity(item: Dict[str, Any]) -> int:
    return sum(int(q.get("quantity") or 0) for q in item.get("quantities") or [])


def normalize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a BoxHero item like a local Equipment row."""
    attributes = item.get("attributes") or {}
    return {
        "boxhero_id": item["id"],
        "name": item.get("name") or "Unnamed Item",
        "sku": item_sku(item),
        "description": item.get("memo") or None,
        "price_per_unit": extract_price(item),
        "unit_type": map_unit_type(attributes.get("unit_type")),
        "quantity": total_quantity(item),
        "photo_url": item.get("photo_url") or None,
        "quantities": [
            {
                "location_id": q.get("location_id"),
                "location_name": q.get("location_name"),
                "quantity": int(q.get("quantity") or 0),
            }
            for q in item.get("quantities") or []
        ],
    }


def get_boxhero_client() -> BoxHeroClient:
    """FastAPI dependency, overridden in tests."""
    return BoxHeroClient()
