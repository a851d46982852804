"""Core data models shared by the scan pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

T = TypeVar("T")

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"


@dataclass(slots=True)
class BusinessInput:
    """Free-form business identification submitted by the user."""

    business_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    cuisine: Optional[str] = None
    website: Optional[str] = None


@dataclass(slots=True)
class ScanJob:
    """One decoded queue delivery."""

    scan_id: str
    business_input: BusinessInput = field(default_factory=BusinessInput)
    place_id: Optional[str] = None
    city: Optional[str] = None
    cuisine: Optional[str] = None


@dataclass(slots=True)
class ResolvedPlace:
    place_id: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    formatted_address: Optional[str] = None


@dataclass(slots=True)
class PlaceDetails:
    """Normalized view of a Places detail record.

    Downstream code reads only these fields, never the vendor payload.
    """

    place_id: Optional[str] = None
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    formatted_phone_number: Optional[str] = None
    international_phone_number: Optional[str] = None
    website: Optional[str] = None
    url: Optional[str] = None
    address_components: List[Dict[str, Any]] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[str] = None
    opening_hours: Optional[Dict[str, Any]] = None
    reservable: Optional[bool] = None
    delivery: Optional[bool] = None
    photos: List[Dict[str, Any]] = field(default_factory=list, repr=False)
    photo_count: Optional[int] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    editorial_summary: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class CompetitorRecord:
    place_id: Optional[str]
    name: Optional[str] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    distance_m: Optional[int] = None


@dataclass(slots=True)
class PerformanceReport:
    url: str
    strategy: str = "mobile"
    performance_score: Optional[float] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)


@dataclass(slots=True)
class Issue:
    key: str
    label: str
    severity: str = SEVERITY_MEDIUM
    weight: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"key": self.key, "label": self.label, "severity": self.severity}
        if self.weight is not None:
            payload["weight"] = self.weight
        return payload


@dataclass(slots=True)
class ScoreResult:
    """Derived score; always recomputed in full from its inputs."""

    total: float
    raw_total: float
    breakdown: Dict[str, float]
    provenance: Dict[str, str] = field(default_factory=dict)


# ---------- Stage results ----------


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    @property
    def provenance(self) -> str:
        return "ok"


@dataclass(frozen=True, slots=True)
class Degraded(Generic[T]):
    """A stage whose upstream call failed or was skipped; ``value`` is the fallback."""

    reason: str
    value: T = None  # type: ignore[assignment]

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def provenance(self) -> str:
        return self.reason


StageResult = Union[Ok[T], Degraded[T]]
