"""Utilities for transforming Places and PageSpeed responses into worker records.

Every vendor field-name alias is handled here; nothing else in the worker
reads raw vendor payloads.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from grader_worker.core.geo import haversine_meters
from grader_worker.core.models import CompetitorRecord, PlaceDetails, ResolvedPlace

logger = logging.getLogger(__name__)

MAX_COMPETITOR_ROWS = 10


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def extract_place_id(resource: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Return ``id``, or the last segment of a ``places/<id>`` resource name."""
    if not isinstance(resource, Mapping) or not resource:
        return None
    if resource.get("id"):
        return resource["id"]
    name = resource.get("name")
    if isinstance(name, str) and name.startswith("places/"):
        return name.split("/")[-1]
    return resource.get("place_id")


def display_name(resource: Mapping[str, Any]) -> Optional[str]:
    value = resource.get("displayName")
    if isinstance(value, Mapping):
        return value.get("text")
    if isinstance(value, str):
        return value
    name = resource.get("name")
    # ``name`` is the resource path in the new API and the label in the legacy one.
    if isinstance(name, str) and not name.startswith("places/"):
        return name
    return None


def extract_coordinates(resource: Mapping[str, Any]) -> Dict[str, Optional[float]]:
    location = resource.get("location")
    if isinstance(location, Mapping):
        lat = _number(location.get("latitude"))
        lng = _number(location.get("longitude"))
        if lat is not None and lng is not None:
            return {"lat": lat, "lng": lng}
    legacy = _mapping(_mapping(resource.get("geometry")).get("location"))
    return {"lat": _number(legacy.get("lat")), "lng": _number(legacy.get("lng"))}


def normalize_address_components(components: Any) -> List[Dict[str, Any]]:
    if not isinstance(components, list):
        return []
    return [
        {
            "long_name": _first(component, "long_name", "longText"),
            "short_name": _first(component, "short_name", "shortText"),
            "types": component.get("types") or [],
        }
        for component in components
        if isinstance(component, Mapping)
    ]


def _normalize_opening_hours(hours: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(hours, Mapping):
        return None
    return {
        "periods": hours.get("periods"),
        "weekday_text": _first(hours, "weekdayDescriptions", "weekday_text") or [],
    }


def _normalize_editorial_summary(summary: Any) -> Optional[Dict[str, Any]]:
    if isinstance(summary, str):
        return {"overview": summary, "review": None}
    if not isinstance(summary, Mapping):
        return None
    overview = _first(summary, "overview", "text")
    if isinstance(overview, Mapping):
        overview = overview.get("text")
    return {"overview": overview, "review": summary.get("review")}


def normalize_place_details(payload: Optional[Mapping[str, Any]]) -> Optional[PlaceDetails]:
    """Map a detail payload from either API generation onto PlaceDetails."""
    if not isinstance(payload, Mapping) or not payload:
        return None

    photos = payload.get("photos")
    coordinates = extract_coordinates(payload)

    return PlaceDetails(
        place_id=extract_place_id(payload),
        name=display_name(payload),
        formatted_address=_first(payload, "formattedAddress", "formatted_address"),
        formatted_phone_number=_first(payload, "nationalPhoneNumber", "formattedPhoneNumber", "formatted_phone_number"),
        international_phone_number=_first(payload, "internationalPhoneNumber", "international_phone_number"),
        website=_first(payload, "websiteUri", "website"),
        url=_first(payload, "googleMapsUri", "url"),
        address_components=normalize_address_components(_first(payload, "addressComponents", "address_components")),
        types=list(payload.get("types") or []),
        rating=_number(payload.get("rating")),
        user_ratings_total=_first(payload, "userRatingCount", "user_ratings_total"),
        price_level=_first(payload, "priceLevel", "price_level"),
        opening_hours=_normalize_opening_hours(_first(payload, "regularOpeningHours", "opening_hours")),
        reservable=payload.get("reservable"),
        delivery=payload.get("delivery"),
        photos=list(photos) if isinstance(photos, list) else [],
        photo_count=len(photos) if isinstance(photos, list) else None,
        lat=coordinates["lat"],
        lng=coordinates["lng"],
        editorial_summary=_normalize_editorial_summary(_first(payload, "editorialSummary", "editorial_summary")),
    )


def normalize_search_result(place: Mapping[str, Any]) -> Optional[ResolvedPlace]:
    if not isinstance(place, Mapping):
        return None
    place_id = extract_place_id(place)
    if not place_id:
        logger.debug("Skipping search result without place id: %s", place)
        return None
    coordinates = extract_coordinates(place)
    return ResolvedPlace(
        place_id=place_id,
        lat=coordinates["lat"],
        lng=coordinates["lng"],
        formatted_address=_first(place, "formattedAddress", "formatted_address"),
    )


def normalize_nearby_place(
    place: Optional[Mapping[str, Any]], origin: Optional[Mapping[str, Any]]
) -> Optional[CompetitorRecord]:
    if not isinstance(place, Mapping) or not place:
        return None
    distance = haversine_meters(origin, extract_coordinates(place))
    return CompetitorRecord(
        place_id=extract_place_id(place),
        name=display_name(place),
        rating=_number(place.get("rating")),
        user_ratings_total=_first(place, "userRatingCount", "user_ratings_total"),
        distance_m=round(distance) if distance is not None else None,
    )


def normalize_nearby_results(
    payload: Mapping[str, Any], origin: Mapping[str, Any], exclude_place_id: Optional[str]
) -> List[CompetitorRecord]:
    places = _mapping(payload).get("places")
    if not isinstance(places, list):
        return []
    competitors = []
    for place in places:
        record = normalize_nearby_place(place, origin)
        if record is None or not record.place_id or record.place_id == exclude_place_id:
            continue
        competitors.append(record)
    return competitors


def to_competitor_rows(
    scan_id: str, competitors: Sequence[CompetitorRecord], limit: int = MAX_COMPETITOR_ROWS
) -> List[Dict[str, Any]]:
    """Competitor rows ranked by return order, which stands in for map-pack position."""
    return [
        {
            "scan_id": scan_id,
            "place_id": competitor.place_id,
            "name": competitor.name,
            "rating": competitor.rating,
            "reviews": competitor.user_ratings_total,
            "distance_m": competitor.distance_m,
            "rank_map_pack": index + 1,
            "rank_organic": None,
        }
        for index, competitor in enumerate(competitors[:limit])
    ]


def extract_performance_score(payload: Optional[Mapping[str, Any]]) -> Optional[float]:
    """Lighthouse performance category score (0-1), if present."""
    categories = _mapping(_mapping(_mapping(payload).get("lighthouseResult")).get("categories"))
    score = _mapping(categories.get("performance")).get("score")
    return _number(score)
