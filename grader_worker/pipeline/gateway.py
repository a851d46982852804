"""Adapter between the scan pipeline and the Places / PageSpeed vendors."""

import logging
from typing import List, Mapping, Optional

from grader_worker.core.models import (
    BusinessInput,
    CompetitorRecord,
    Degraded,
    Ok,
    PerformanceReport,
    PlaceDetails,
    ResolvedPlace,
    StageResult,
)
from grader_worker.etl.transform import (
    extract_performance_score,
    normalize_nearby_results,
    normalize_place_details,
    normalize_search_result,
)
from grader_worker.vendors.google_places import GooglePlacesClient, GooglePlacesError
from grader_worker.vendors.pagespeed import PageSpeedClient, PageSpeedError

logger = logging.getLogger(__name__)

# Raised by the normalizers when a vendor returns an unexpected shape.
_MALFORMED_PAYLOAD = (AttributeError, KeyError, TypeError, ValueError)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


def build_search_query(business_input: BusinessInput) -> str:
    parts = [business_input.business_name, business_input.city]
    return ", ".join(part.strip() for part in parts if part and part.strip())


class PlaceGateway:
    """Resolve, enrich and benchmark a place.

    Only ``resolve_place`` lets upstream errors escape; every enrichment call
    returns a StageResult and degrades to a fallback value instead.
    """

    def __init__(
        self,
        places: GooglePlacesClient,
        pagespeed: Optional[PageSpeedClient] = None,
        *,
        region_code: str = "US",
        language_code: str = "en",
        nearby_radius_m: int = 1500,
        nearby_max_results: int = 20,
    ):
        self._places = places
        self._pagespeed = pagespeed
        self._region_code = region_code
        self._language_code = language_code
        self._nearby_radius_m = nearby_radius_m
        self._nearby_max_results = nearby_max_results

    def resolve_place(self, business_input: BusinessInput) -> Optional[ResolvedPlace]:
        """First text-search hit for the business, or None when nothing matches."""
        query = build_search_query(business_input)
        if not query:
            logger.info("No business name or city to search for; treating as not found")
            return None

        payload = self._places.search_text(
            query,
            region_code=self._region_code,
            language_code=self._language_code,
        )
        places = payload.get("places") if isinstance(payload, Mapping) else None
        if not isinstance(places, list) or not places:
            logger.info("Text search returned no places for query=%s", query)
            return None
        return normalize_search_result(places[0])

    def fetch_place_details(self, place_id: str) -> StageResult[PlaceDetails]:
        try:
            details = normalize_place_details(self._places.get_place(place_id))
        except GooglePlacesError as exc:
            logger.error(
                "Failed to fetch place details for %s: status=%s detail=%s", place_id, exc.status, exc.detail
            )
            return Degraded("details_unavailable")
        except _MALFORMED_PAYLOAD as exc:
            logger.error("Malformed place details payload for %s: %r", place_id, exc)
            return Degraded("details_unavailable")

        if details is None:
            return Degraded("details_empty")
        return Ok(details)

    def fetch_nearby_competitors(
        self, lat: Optional[float], lng: Optional[float], exclude_place_id: Optional[str]
    ) -> StageResult[List[CompetitorRecord]]:
        if not _is_number(lat) or not _is_number(lng):
            logger.warning(
                "Skipping competitor fetch due to missing coordinates lat=%s lng=%s place=%s",
                lat,
                lng,
                exclude_place_id,
            )
            return Degraded("missing_coordinates", [])

        try:
            payload = self._places.search_nearby(
                lat,
                lng,
                radius_m=self._nearby_radius_m,
                max_results=self._nearby_max_results,
            )
            competitors = normalize_nearby_results(payload, {"lat": lat, "lng": lng}, exclude_place_id)
        except GooglePlacesError as exc:
            logger.error(
                "Failed to fetch competitors near (%s, %s) excluding %s: status=%s detail=%s",
                lat,
                lng,
                exclude_place_id,
                exc.status,
                exc.detail,
            )
            return Degraded("competitors_unavailable", [])
        except _MALFORMED_PAYLOAD as exc:
            logger.error("Malformed nearby payload around (%s, %s): %r", lat, lng, exc)
            return Degraded("competitors_unavailable", [])

        return Ok(competitors)

    def fetch_performance_metrics(self, url: Optional[str]) -> StageResult[PerformanceReport]:
        if not url:
            return Degraded("no_website")
        if self._pagespeed is None:
            return Degraded("performance_disabled")

        try:
            payload = self._pagespeed.run(url)
            score = extract_performance_score(payload)
        except PageSpeedError as exc:
            logger.warning("PageSpeed fetch failed for %s: %s", url, exc)
            return Degraded("performance_unavailable")
        except _MALFORMED_PAYLOAD as exc:
            logger.warning("Malformed PageSpeed payload for %s: %r", url, exc)
            return Degraded("performance_unavailable")

        report = PerformanceReport(url=url, strategy="mobile", performance_score=score, raw=payload)
        if score is None:
            logger.warning("PageSpeed response for %s carried no performance score", url)
            return Degraded("performance_unavailable", report)
        return Ok(report)
