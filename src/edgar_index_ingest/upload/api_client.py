"""Thin `requests` wrapper around the filings admin API.

All endpoints live under ``{api_base}/api/admin/sec/filings`` and take a
bearer token. Token acquisition is outside this package: the token comes
from configuration.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import certifi
import requests  # type: ignore[import-untyped]

from edgar_index_ingest.config import Settings
from edgar_index_ingest.exceptions import ApiError
from edgar_index_ingest.models import (
    BulkInsertRequest,
    DbStats,
    DimensionInsertResponse,
    FilingInsertResponse,
    SetupResponse,
    SetupStatus,
)
from edgar_index_ingest.records import Company, FilingRecord

log = logging.getLogger(__name__)

FILINGS_PATH = "/api/admin/sec/filings"


class FilingsApiClient:
    """Client for the bulk-insert, setup and stats endpoints.

    Args:
        api_base: Base URL, e.g. ``https://example.com``.
        token: Bearer token.
        timeout: Optional per-request timeout in seconds; None waits forever.
        session: Optional pre-built `requests.Session` (used by tests).
    """

    def __init__(
        self,
        api_base: str,
        token: str,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise RuntimeError("API_TOKEN is required for filings API calls. Set it in .env.")
        self.base_url = api_base.rstrip("/") + FILINGS_PATH
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})
        self.session.verify = certifi.where()

    @classmethod
    def from_settings(cls, settings: Settings) -> FilingsApiClient:
        return cls(settings.api_base, settings.api_token, timeout=settings.request_timeout)

    # --------------------------------------------------
    # Bulk insert
    # --------------------------------------------------
    def insert_dimensions(self, form_types: list[str], extensions: list[str]) -> DimensionInsertResponse:
        body = BulkInsertRequest.for_dimensions(form_types, extensions)
        data = self._post("/bulk-insert", body.to_wire(), "Failed to upload form types and extensions")
        return DimensionInsertResponse.model_validate(data)

    def insert_companies(self, companies: Sequence[Company], chunk: int) -> dict[str, Any]:
        body = BulkInsertRequest.for_companies(list(companies))
        return self._post(
            "/bulk-insert", body.to_wire(), f"Failed to upload companies chunk {chunk}", require_body=False
        )

    def insert_filings(self, filings: Sequence[FilingRecord], chunk: int) -> FilingInsertResponse:
        """Send filings that already carry server dimension IDs."""
        body = BulkInsertRequest.for_filings(list(filings))
        data = self._post("/bulk-insert", body.to_wire(), f"Failed to upload filings chunk {chunk}")
        return FilingInsertResponse.model_validate(data)

    # --------------------------------------------------
    # Setup / stats
    # --------------------------------------------------
    def setup_status(self) -> SetupStatus:
        return SetupStatus.model_validate(self._get("/setup-status", "Failed to check setup status"))

    def stats(self) -> DbStats:
        return DbStats.model_validate(self._get("/stats", "Failed to fetch stats"))

    def setup(self, connection_string: str | None = None) -> SetupResponse:
        body: dict[str, Any] = {}
        if connection_string:
            body["connectionString"] = connection_string
        return SetupResponse.model_validate(self._post("/setup", body, "Failed to setup tables"))

    # --------------------------------------------------
    # Helpers
    # --------------------------------------------------
    def _get(self, path: str, fallback: str) -> dict[str, Any]:
        resp = self.session.get(self.base_url + path, timeout=self.timeout)
        return self._json_or_raise(resp, fallback)

    def _post(
        self, path: str, body: dict[str, Any], fallback: str, require_body: bool = True
    ) -> dict[str, Any]:
        log.debug("POST %s", path)
        resp = self.session.post(self.base_url + path, json=body, timeout=self.timeout)
        return self._json_or_raise(resp, fallback, require_body)

    @staticmethod
    def _json_or_raise(resp: requests.Response, fallback: str, require_body: bool = True) -> dict[str, Any]:
        """Return the JSON body or raise `ApiError` with the server's message."""
        if not resp.ok:
            message = fallback
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("error"):
                message = str(payload["error"])
            raise ApiError(message, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            if not require_body:
                return {}
            raise ApiError(f"{fallback}: response is not JSON", status_code=resp.status_code) from exc
        if not isinstance(data, dict):
            raise ApiError(f"{fallback}: unexpected response shape", status_code=resp.status_code)
        return data
