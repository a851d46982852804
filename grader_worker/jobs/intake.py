"""Job intake: decode deliveries and run them on a fixed-size worker pool."""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Mapping, Optional, Protocol

from grader_worker.core.config import ConfigError, Settings
from grader_worker.core.db import ScanStore, init_pool
from grader_worker.core.models import BusinessInput, ScanJob
from grader_worker.pipeline.gateway import PlaceGateway
from grader_worker.pipeline.orchestrator import ScanOrchestrator
from grader_worker.vendors.google_places import GooglePlacesClient
from grader_worker.vendors.pagespeed import PageSpeedClient

logger = logging.getLogger(__name__)

_BUSINESS_INPUT_KEYS = {
    "business_name": ("businessName", "business_name", "name"),
    "address": ("address",),
    "city": ("city",),
    "cuisine": ("cuisine",),
    "website": ("website", "websiteUrl", "website_url"),
}


class InvalidJobError(ValueError):
    """Raised when a delivery payload cannot be decoded into a scan job."""


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def parse_business_input(raw: Any) -> BusinessInput:
    """Accept a mapping or a JSON-encoded object; anything unparsable is an empty input."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Unparsable businessInput string; continuing with an empty input")
            return BusinessInput()
    if not isinstance(raw, Mapping):
        return BusinessInput()
    return BusinessInput(**{field: _clean(_pick(raw, *aliases)) for field, aliases in _BUSINESS_INPUT_KEYS.items()})


def decode_job(payload: Any) -> ScanJob:
    if not isinstance(payload, Mapping):
        raise InvalidJobError("job payload must be a JSON object")

    scan_id = _clean(_pick(payload, "scanId", "scan_id"))
    if not scan_id:
        raise InvalidJobError("scanId is required")

    business_input = parse_business_input(_pick(payload, "businessInput", "business_input"))
    city = _clean(payload.get("city"))
    cuisine = _clean(payload.get("cuisine"))
    if not business_input.city:
        business_input.city = city
    if not business_input.cuisine:
        business_input.cuisine = cuisine

    return ScanJob(
        scan_id=scan_id,
        business_input=business_input,
        place_id=_clean(_pick(payload, "placeId", "place_id")),
        city=city,
        cuisine=cuisine,
    )


class JobReporter(Protocol):
    def completed(self, job: ScanJob) -> None: ...

    def failed(self, job: ScanJob, error: BaseException) -> None: ...


class LoggingJobReporter:
    """Reports delivery outcomes to the log, which is what alerting watches."""

    def completed(self, job: ScanJob) -> None:
        logger.info("[scan:%s] completed", job.scan_id)

    def failed(self, job: ScanJob, error: BaseException) -> None:
        logger.error("[scan:%s] failed: %s", job.scan_id, error)


class ScanWorkerPool:
    """Runs each delivered job once on a bounded thread pool."""

    def __init__(
        self,
        orchestrator: ScanOrchestrator,
        concurrency: int = 1,
        reporter: Optional[JobReporter] = None,
    ):
        self._orchestrator = orchestrator
        self._reporter = reporter or LoggingJobReporter()
        self._executor = ThreadPoolExecutor(max_workers=max(1, concurrency), thread_name_prefix="scan")

    def handle_delivery(self, job: ScanJob) -> bool:
        """Process one delivery and report its outcome; True when it completed."""
        try:
            self._orchestrator.process_scan(job)
        except Exception as exc:  # noqa: BLE001
            self._reporter.failed(job, exc)
            return False
        self._reporter.completed(job)
        return True

    def submit(self, job: ScanJob) -> Future:
        logger.info("[scan:%s] queued", job.scan_id)
        return self._executor.submit(self.handle_delivery, job)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def build_orchestrator(settings: Settings) -> ScanOrchestrator:
    """Wire the store, vendor clients and gateway into an orchestrator."""
    if not settings.google_maps_api_key:
        raise ConfigError("GOOGLE_MAPS_API_KEY must be set for the scan worker to run.")
    connection_pool = init_pool(settings.database_url, minconn=1, maxconn=settings.db_pool_max)
    store = ScanStore(connection_pool)

    places = GooglePlacesClient(settings.google_maps_api_key, timeout=settings.http_timeout)
    pagespeed = PageSpeedClient(settings.psi_api_key) if settings.psi_api_key else None
    gateway = PlaceGateway(
        places,
        pagespeed,
        region_code=settings.places_region_code,
        language_code=settings.places_language_code,
        nearby_radius_m=settings.nearby_radius_m,
        nearby_max_results=settings.nearby_max_results,
    )
    return ScanOrchestrator(store, gateway)


def job_summary(job: ScanJob) -> Dict[str, Any]:
    return {"scan_id": job.scan_id, "place_id": job.place_id, "city": job.business_input.city}
