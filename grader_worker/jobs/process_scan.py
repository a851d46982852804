"""CLI job to run (or replay) a single scan synchronously."""

import argparse
import logging
from typing import Optional

from grader_worker.core.config import ConfigError, get_settings
from grader_worker.jobs.intake import build_orchestrator, decode_job
from grader_worker.pipeline.orchestrator import ScanProcessingError

logger = logging.getLogger(__name__)


def run_scan_job(
    *,
    scan_id: str,
    business_name: Optional[str],
    city: Optional[str],
    cuisine: Optional[str],
    place_id: Optional[str],
) -> None:
    job = decode_job(
        {
            "scanId": scan_id,
            "businessInput": {"businessName": business_name, "city": city, "cuisine": cuisine},
            "placeId": place_id,
            "city": city,
            "cuisine": cuisine,
        }
    )
    orchestrator = build_orchestrator(get_settings())

    logger.info("Running scan %s", job.scan_id)
    orchestrator.process_scan(job)
    status = orchestrator.store.get_status(job.scan_id)
    logger.info("Scan %s finished with status=%s", job.scan_id, status.value if status else "missing")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one local visibility scan")
    parser.add_argument("--scan-id", dest="scan_id", required=True, help="Existing scan row id")
    parser.add_argument("--business-name", dest="business_name", help="Business name to resolve")
    parser.add_argument("--city", dest="city", help="City used in the place search")
    parser.add_argument("--cuisine", dest="cuisine", help="Cuisine, kept with the scan input")
    parser.add_argument("--place-id", dest="place_id", help="Pre-resolved place id; skips the text search")
    return parser


def main(argv: Optional[list] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        run_scan_job(
            scan_id=args.scan_id,
            business_name=args.business_name,
            city=args.city,
            cuisine=args.cuisine,
            place_id=args.place_id,
        )
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    except ScanProcessingError as exc:
        logger.error("Scan failed: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
