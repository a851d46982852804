import pytest

from grader_worker.core.config import ConfigError, Settings
from grader_worker.jobs import intake
from grader_worker.pipeline.orchestrator import ScanProcessingError


class DummyOrchestrator:
    def __init__(self, error=None):
        self.error = error
        self.jobs = []

    def process_scan(self, job):
        self.jobs.append(job)
        if self.error is not None:
            raise self.error


class RecordingReporter:
    def __init__(self):
        self.completed_jobs = []
        self.failed_jobs = []

    def completed(self, job):
        self.completed_jobs.append(job.scan_id)

    def failed(self, job, error):
        self.failed_jobs.append((job.scan_id, error))


def test_decode_job_with_object_input():
    job = intake.decode_job(
        {
            "scanId": "scan-1",
            "businessInput": {"businessName": " Joe's Pizza ", "city": "Austin", "website": "https://joes.example"},
            "placeId": None,
            "cuisine": "pizza",
        }
    )

    assert job.scan_id == "scan-1"
    assert job.business_input.business_name == "Joe's Pizza"
    assert job.business_input.city == "Austin"
    assert job.business_input.cuisine == "pizza"
    assert job.business_input.website == "https://joes.example"
    assert job.place_id is None


def test_decode_job_with_string_input_and_job_level_city():
    job = intake.decode_job(
        {"scanId": "scan-2", "businessInput": '{"businessName": "Acme"}', "city": "Leeds", "placeId": "pid"}
    )

    assert job.business_input.business_name == "Acme"
    assert job.business_input.city == "Leeds"
    assert job.place_id == "pid"


def test_decode_job_with_unparsable_input_is_empty():
    job = intake.decode_job({"scan_id": "scan-3", "business_input": "{not json"})
    assert job.business_input.business_name is None


@pytest.mark.parametrize("payload", [{}, {"scanId": "  "}, ["scan-1"], None])
def test_decode_job_requires_scan_id(payload):
    with pytest.raises(intake.InvalidJobError):
        intake.decode_job(payload)


def test_handle_delivery_reports_completion():
    reporter = RecordingReporter()
    pool = intake.ScanWorkerPool(DummyOrchestrator(), reporter=reporter)

    assert pool.handle_delivery(intake.decode_job({"scanId": "scan-1"})) is True
    assert reporter.completed_jobs == ["scan-1"]
    pool.shutdown()


def test_handle_delivery_reports_failure_once():
    error = ScanProcessingError("scan-1", RuntimeError("db down"))
    orchestrator = DummyOrchestrator(error=error)
    reporter = RecordingReporter()
    pool = intake.ScanWorkerPool(orchestrator, reporter=reporter)

    assert pool.handle_delivery(intake.decode_job({"scanId": "scan-1"})) is False
    assert reporter.failed_jobs == [("scan-1", error)]
    assert len(orchestrator.jobs) == 1
    pool.shutdown()


def test_submit_runs_on_the_pool():
    orchestrator = DummyOrchestrator()
    pool = intake.ScanWorkerPool(orchestrator, concurrency=2, reporter=RecordingReporter())

    futures = [pool.submit(intake.decode_job({"scanId": f"scan-{i}"})) for i in range(3)]

    assert [future.result(timeout=5) for future in futures] == [True, True, True]
    assert sorted(job.scan_id for job in orchestrator.jobs) == ["scan-0", "scan-1", "scan-2"]
    pool.shutdown()


def test_build_orchestrator_requires_places_key():
    settings = Settings(google_maps_api_key="", psi_api_key="", database_url="postgres://")
    with pytest.raises(ConfigError):
        intake.build_orchestrator(settings)


def test_build_orchestrator_wires_collaborators(monkeypatch):
    monkeypatch.setattr(intake, "init_pool", lambda url, minconn, maxconn: ("pool", url, maxconn))
    settings = Settings(
        google_maps_api_key="key",
        psi_api_key="",
        database_url="postgres://db",
        db_pool_max=3,
    )

    orchestrator = intake.build_orchestrator(settings)

    assert orchestrator.store._pool == ("pool", "postgres://db", 3)
    assert orchestrator._gateway._pagespeed is None
