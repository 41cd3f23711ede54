"""HTTP client for the remote render and send functions."""

import logging
import random
import time
from typing import Any, Dict, Optional

import requests
from flask import current_app

from estimator.errors import (
    NotFoundError,
    PermissionDeniedError,
    RemoteCallError,
    TransientError,
)

logger = logging.getLogger(__name__)

GENERATE_PDF = "generate-pdf"
SEND_ESTIMATE_EMAIL = "send-estimate-email"


class FunctionsClient:
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 15,
        max_retries: int = 3,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        self.session.headers.update(
            {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        )

    @classmethod
    def from_config(cls, config=None) -> "FunctionsClient":
        config = config or current_app.config
        return cls(
            config["FUNCTIONS_BASE_URL"],
            config.get("FUNCTIONS_API_KEY", ""),
            timeout=config.get("FUNCTIONS_TIMEOUT", 15),
            max_retries=config.get("FUNCTIONS_MAX_RETRIES", 3),
        )

    def _backoff(self, tries: int) -> None:
        delay = min(2 ** tries, 30) + random.random()
        time.sleep(delay)

    def invoke(self, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``payload`` to function ``name`` and return its JSON body.

        Network errors, timeouts, 429 and 5xx are retried with exponential
        backoff and end in ``TransientError``; other 4xx answers are permanent.
        """
        url = f"{self.base_url}/{name}"
        tries = 0
        while True:
            start = time.monotonic()
            try:
                r = self.session.post(url, json=payload, timeout=self.timeout)
            except requests.Timeout as e:
                tries += 1
                logger.warning("%s timed out after %.1fs (try %s)", name, self.timeout, tries)
                if tries > self.max_retries:
                    raise TransientError(f"{name} timed out", timed_out=True) from e
                self._backoff(tries)
                continue
            except requests.RequestException as e:  # network issue
                tries += 1
                logger.warning("%s network error: %s (try %s)", name, e, tries)
                if tries > self.max_retries:
                    raise TransientError(f"{name} unreachable") from e
                self._backoff(tries)
                continue
            latency = (time.monotonic() - start) * 1000
            logger.info("function %s %s %.1fms", name, r.status_code, latency)
            if r.status_code == 429 or r.status_code >= 500:
                tries += 1
                if tries > self.max_retries:
                    raise TransientError(
                        f"{name} unavailable", details={"status": r.status_code}
                    )
                self._backoff(tries)
                continue
            if r.status_code >= 400:
                raise self._permanent_error(name, r, payload)
            return self._json(r)

    @staticmethod
    def _json(r) -> Dict[str, Any]:
        try:
            data = r.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _permanent_error(self, name: str, r, payload: Dict[str, Any]):
        message = self._json(r).get("error") or f"{name} failed with {r.status_code}"
        if r.status_code == 404:
            return NotFoundError("Estimate", payload.get("estimateId"))
        if r.status_code in (401, 403):
            return PermissionDeniedError(message)
        return RemoteCallError(name, message, status=r.status_code)

    def generate_pdf(self, estimate_id: int) -> Optional[str]:
        """Render the estimate; returns the artifact URL when the function reports it."""
        data = self.invoke(GENERATE_PDF, {"estimateId": estimate_id})
        return data.get("pdfUrl")

    def send_estimate_email(self, estimate_id: int) -> Dict[str, Any]:
        return self.invoke(SEND_ESTIMATE_EMAIL, {"estimateId": estimate_id})
