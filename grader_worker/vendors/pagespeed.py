"""Client for the PageSpeed Insights API."""

import logging
from typing import Any, Dict, Optional

import requests

from grader_worker.vendors.google_places import build_session

logger = logging.getLogger(__name__)
_BASE_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"


class PageSpeedError(RuntimeError):
    """Raised when a PageSpeed run cannot be obtained."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class PageSpeedClient:
    # Lighthouse runs are slow; the default timeout is well above the Places one.
    def __init__(self, api_key: str, session: Optional[requests.Session] = None, timeout: float = 60.0):
        self._api_key = api_key
        self._session = session or build_session(total_retries=1)
        self._timeout = timeout

    def run(self, url: str, strategy: str = "mobile") -> Dict[str, Any]:
        params = {"url": url, "strategy": strategy}
        if self._api_key:
            params["key"] = self._api_key
        try:
            response = self._session.get(_BASE_URL, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise PageSpeedError(f"PageSpeed request failed: {exc}") from exc

        if not response.ok:
            logger.warning("PageSpeed returned status=%s for %s", response.status_code, url)
            raise PageSpeedError(f"PageSpeed returned status {response.status_code}", status=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise PageSpeedError("PageSpeed returned a non-JSON body", status=response.status_code) from exc
        if not isinstance(payload, dict):
            raise PageSpeedError("PageSpeed returned an unexpected payload", status=response.status_code)
        return payload
