"""Drives one scan through resolution, enrichment and scoring.

Each stage is announced by a status write before it runs, so anyone polling
the scan row sees the stages in order. Enrichment failures degrade the score;
only a missing place, a duplicate, or an unexpected error end the scan early.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from grader_worker.core.db import ScanStore, ScanTransitionConflict
from grader_worker.core.models import (
    SEVERITY_HIGH,
    SEVERITY_LOW,
    CompetitorRecord,
    Issue,
    PerformanceReport,
    PlaceDetails,
    ResolvedPlace,
    ScanJob,
    ScoreResult,
    StageResult,
)
from grader_worker.core.status import ScanStatus, validate_transition
from grader_worker.etl.transform import to_competitor_rows
from grader_worker.pipeline.gateway import PlaceGateway
from grader_worker.pipeline.scoring import calculate_score, derive_issues, top_issues

logger = logging.getLogger(__name__)

PLACE_NOT_FOUND = Issue(key="place_not_found", label="Google Business Profile not found.", severity=SEVERITY_HIGH)
DUPLICATE_SCAN = Issue(key="duplicate_scan", label="This business was already graded today.", severity=SEVERITY_LOW)
UNEXPECTED_ERROR = Issue(
    key="unexpected_error",
    label="We hit a snag while grading. Our team has been notified.",
    severity=SEVERITY_HIGH,
)


class ScanProcessingError(RuntimeError):
    """Raised after an unexpected failure has been recorded on the scan."""

    def __init__(self, scan_id: str, cause: BaseException):
        super().__init__(f"scan {scan_id} failed: {cause}")
        self.scan_id = scan_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _ScanRun:
    """Per-delivery state: the status we last wrote and the scan it belongs to."""

    def __init__(self, store: ScanStore, job: ScanJob):
        self.store = store
        self.job = job
        self.status = ScanStatus.QUEUED

    @property
    def tag(self) -> str:
        return f"[scan:{self.job.scan_id}]"

    def advance(self, status: ScanStatus, fields: Optional[Mapping[str, Any]] = None) -> bool:
        validate_transition(self.status, status)
        written = self.store.transition(self.job.scan_id, status, fields)
        self.status = status
        if written:
            logger.info("%s %s", self.tag, status.value)
        else:
            logger.info("%s %s already passed; replaying stage without a status write", self.tag, status.value)
        return written


class ScanOrchestrator:
    def __init__(
        self,
        store: ScanStore,
        gateway: PlaceGateway,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._gateway = gateway
        self._clock = clock

    @property
    def store(self) -> ScanStore:
        return self._store

    def process_scan(self, job: ScanJob) -> None:
        """Run the full pipeline for one delivery of ``job``.

        Raises ScanProcessingError when the scan had to be marked as failed
        because of an unexpected error, so the transport can record the
        delivery as failed.
        """
        run = _ScanRun(self._store, job)
        try:
            self._run(run)
        except ScanTransitionConflict as exc:
            # Another delivery already moved the row past where this one can write.
            logger.warning("%s stopping, stored status no longer accepts %s", run.tag, exc.status.value)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s failed during %s", run.tag, run.status.value)
            self._mark_failed(run)
            raise ScanProcessingError(job.scan_id, exc) from exc

    # ---------- Stages ----------

    def _run(self, run: _ScanRun) -> None:
        job = run.job
        try:
            run.advance(ScanStatus.RESOLVING)
        except ScanTransitionConflict:
            logger.info("%s already finished; ignoring redelivery", run.tag)
            return

        resolved = self._resolve(job)
        if resolved is None:
            logger.info("%s place not found", run.tag)
            run.advance(
                ScanStatus.FAILED,
                {
                    "issues_json": [PLACE_NOT_FOUND.to_dict()],
                    "top_issues": [],
                    "completed_at": self._clock(),
                },
            )
            return

        if not self._persist_resolved(run, resolved):
            return

        details = self._gateway.fetch_place_details(resolved.place_id)
        lat, lng = self._backfill_coordinates(run, resolved, details.value)

        run.advance(ScanStatus.COMPETITORS)
        competitors = self._gateway.fetch_nearby_competitors(lat, lng, resolved.place_id)
        self._store.insert_competitors(to_competitor_rows(job.scan_id, competitors.value or []))

        run.advance(ScanStatus.PERFORMANCE)
        website = details.value.website if details.value else None
        performance = self._gateway.fetch_performance_metrics(website)

        run.advance(ScanStatus.SCORING)
        score = calculate_score(details, performance, competitors)
        issues = derive_issues(details.value)

        run.advance(ScanStatus.DONE, self._final_fields(score, issues, details, performance, competitors))
        logger.info("%s completed score=%s raw=%s", run.tag, score.total, score.raw_total)

    def _resolve(self, job: ScanJob) -> Optional[ResolvedPlace]:
        if job.place_id:
            return ResolvedPlace(place_id=job.place_id)
        return self._gateway.resolve_place(job.business_input)

    def _persist_resolved(self, run: _ScanRun, resolved: ResolvedPlace) -> bool:
        """Record the resolved place; False when it turns out to be a same-day duplicate."""
        try:
            run.advance(
                ScanStatus.DETAILS,
                {
                    "place_id": resolved.place_id,
                    "lat": resolved.lat,
                    "lng": resolved.lng,
                    "city": run.job.business_input.city,
                },
            )
        except Exception as exc:  # noqa: BLE001
            if not self._store.is_duplicate_scan_error(exc):
                raise
            logger.warning("%s duplicate scan detected for place %s", run.tag, resolved.place_id)
            run.advance(
                ScanStatus.DUPLICATE,
                {
                    "issues_json": [DUPLICATE_SCAN.to_dict()],
                    "top_issues": [DUPLICATE_SCAN.to_dict()],
                    "completed_at": self._clock(),
                },
            )
            return False
        return True

    def _backfill_coordinates(
        self, run: _ScanRun, resolved: ResolvedPlace, details: Optional[PlaceDetails]
    ) -> Tuple[Optional[float], Optional[float]]:
        lat, lng = resolved.lat, resolved.lng
        if details is None or (lat is not None and lng is not None):
            return lat, lng
        if details.lat is None or details.lng is None:
            return lat, lng

        lat, lng = details.lat, details.lng
        try:
            self._store.update_scan(run.job.scan_id, {"lat": lat, "lng": lng})
        except Exception as exc:  # noqa: BLE001
            logger.error("%s failed to update coordinates after details: %s", run.tag, exc)
        return lat, lng

    def _final_fields(
        self,
        score: ScoreResult,
        issues: List[Issue],
        details: StageResult[PlaceDetails],
        performance: StageResult[PerformanceReport],
        competitors: StageResult[List[CompetitorRecord]],
    ) -> Dict[str, Any]:
        report = performance.value
        return {
            "score": score.total,
            "score_raw": score.raw_total,
            "score_breakdown_json": score.breakdown,
            "issues_json": [issue.to_dict() for issue in issues],
            "top_issues": [issue.to_dict() for issue in top_issues(issues)],
            "insights_json": {
                "details": details.value.to_dict() if details.value else None,
                "psi": report.raw if report else None,
                "competitors": len(competitors.value or []),
                "provenance": score.provenance,
            },
            "completed_at": self._clock(),
        }

    # ---------- Failure ----------

    def _mark_failed(self, run: _ScanRun) -> None:
        if run.status.is_terminal:
            return
        try:
            run.advance(
                ScanStatus.FAILED,
                {
                    "issues_json": [UNEXPECTED_ERROR.to_dict()],
                    "top_issues": [UNEXPECTED_ERROR.to_dict()],
                    "completed_at": self._clock(),
                },
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("%s failed to mark scan failed: %s", run.tag, exc)
