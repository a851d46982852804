"""Client utilities for the Google Places API (New)."""

import logging
from typing import Any, Dict, Iterable, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)
_BASE_URL = "https://places.googleapis.com/v1"

SEARCH_FIELDS = ("places.id", "places.displayName", "places.formattedAddress", "places.location")
DETAIL_FIELDS = (
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "types",
    "rating",
    "userRatingCount",
    "websiteUri",
    "googleMapsUri",
    "nationalPhoneNumber",
    "internationalPhoneNumber",
    "regularOpeningHours",
    "addressComponents",
    "priceLevel",
    "reservable",
    "delivery",
    "photos",
    "editorialSummary",
)
NEARBY_FIELDS = (
    "places.id",
    "places.displayName",
    "places.rating",
    "places.userRatingCount",
    "places.location",
)


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response or cannot be reached."""

    def __init__(self, message: str, status: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status = status
        self.detail = detail


def build_session(total_retries: int = 2) -> requests.Session:
    """Session that retries connection errors and gateway failures a couple of times."""
    session = requests.Session()
    retries = Retry(
        total=total_retries,
        backoff_factor=0.5,
        status_forcelist=(502, 503, 504),
        allowed_methods=("GET", "POST"),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _decode(response: requests.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


class GooglePlacesClient:
    """Thin wrapper over the text search, place details and nearby search endpoints."""

    def __init__(self, api_key: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        if not api_key:
            raise GooglePlacesError("GOOGLE_MAPS_API_KEY is required")
        self._api_key = api_key
        self._session = session or build_session()
        self._timeout = timeout

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        field_mask: Iterable[str],
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {
            "X-Goog-Api-Key": self._api_key,
            "X-Goog-FieldMask": ",".join(field_mask),
        }
        url = f"{_BASE_URL}/{endpoint}"
        try:
            response = self._session.request(method, url, headers=headers, json=body, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.error("Places request to %s failed: %s", endpoint, exc)
            raise GooglePlacesError("Google Places API request failed", detail={"error": str(exc)}) from exc

        payload = _decode(response)
        if not response.ok:
            logger.error("Places %s returned status=%s detail=%s", endpoint, response.status_code, payload)
            raise GooglePlacesError("Google Places API request failed", status=response.status_code, detail=payload)
        return payload

    def search_text(
        self,
        text_query: str,
        *,
        region_code: str = "US",
        language_code: str = "en",
        max_results: int = 3,
    ) -> Dict[str, Any]:
        body = {
            "textQuery": text_query,
            "regionCode": region_code,
            "languageCode": language_code,
            "maxResultCount": max_results,
        }
        return self._request("POST", "places:searchText", field_mask=SEARCH_FIELDS, body=body)

    def get_place(self, place_id: str) -> Dict[str, Any]:
        return self._request("GET", f"places/{place_id}", field_mask=DETAIL_FIELDS)

    def search_nearby(self, lat: float, lng: float, *, radius_m: int = 1500, max_results: int = 20) -> Dict[str, Any]:
        body = {
            "maxResultCount": max_results,
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": lat, "longitude": lng},
                    "radius": radius_m,
                }
            },
        }
        return self._request("POST", "places:searchNearby", field_mask=NEARBY_FIELDS, body=body)
