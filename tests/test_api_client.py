from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from edgar_index_ingest.exceptions import ApiError
from edgar_index_ingest.records import Company, FilingRecord
from edgar_index_ingest.upload.api_client import FilingsApiClient

BASE = "https://api.example.com/"


def make_response(payload: object = None, status_code: int = 200, json_error: bool = False) -> MagicMock:
    resp = MagicMock()
    resp.ok = status_code < 400
    resp.status_code = status_code
    if json_error:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


def make_client(resp: MagicMock) -> tuple[FilingsApiClient, MagicMock]:
    session = MagicMock()
    session.headers = {}
    session.post.return_value = resp
    session.get.return_value = resp
    return FilingsApiClient(BASE, "secret", timeout=30, session=session), session


def test_token_is_required() -> None:
    with pytest.raises(RuntimeError):
        FilingsApiClient(BASE, "", session=MagicMock())


def test_insert_dimensions_body_and_response() -> None:
    client, session = make_client(make_response({"formTypeMap": {"10-K": 7}, "extensionMap": {"txt": 3}, "x": 1}))

    result = client.insert_dimensions(["10-K"], ["txt"])

    assert result.form_type_map == {"10-K": 7}
    assert result.extension_map == {"txt": 3}
    url = session.post.call_args.args[0]
    assert url == "https://api.example.com/api/admin/sec/filings/bulk-insert"
    assert session.post.call_args.kwargs["json"] == {
        "formTypes": ["10-K"],
        "extensions": ["txt"],
        "companies": [],
        "filings": [],
    }
    assert session.post.call_args.kwargs["timeout"] == 30
    assert session.headers["Authorization"] == "Bearer secret"


def test_insert_filings_wire_format() -> None:
    client, session = make_client(make_response({"inserted": 1}))

    result = client.insert_filings([FilingRecord(1000275, 101, 19737, 950103, 123, 201)], chunk=5)

    assert result.inserted == 1
    assert session.post.call_args.kwargs["json"]["filings"] == [
        {
            "cik": 1000275,
            "form_type_id": 101,
            "filed_date": 19737,
            "accession_filer": 950103,
            "accession_seq": 123,
            "ext_id": 201,
        }
    ]


def test_insert_companies_accepts_empty_body() -> None:
    client, session = make_client(make_response(json_error=True))
    assert client.insert_companies([Company(1, "A")], chunk=2) == {}
    assert session.post.call_args.kwargs["json"]["companies"] == [{"cik": 1, "name": "A"}]


def test_error_message_from_body() -> None:
    client, _ = make_client(make_response({"error": "duplicate key"}, status_code=500))
    with pytest.raises(ApiError, match="duplicate key") as excinfo:
        client.insert_filings([], chunk=4)
    assert excinfo.value.status_code == 500


def test_error_without_json_uses_fallback() -> None:
    client, _ = make_client(make_response(status_code=502, json_error=True))
    with pytest.raises(ApiError, match="Failed to upload companies chunk 3"):
        client.insert_companies([Company(1, "A")], chunk=3)


def test_filing_response_must_be_json() -> None:
    client, _ = make_client(make_response(json_error=True))
    with pytest.raises(ApiError, match="not JSON"):
        client.insert_filings([], chunk=4)


def test_setup_status_and_stats() -> None:
    client, session = make_client(make_response({"tablesExist": True, "configured": True}))
    status = client.setup_status()
    assert status.tables_exist and status.configured
    assert session.get.call_args.args[0].endswith("/api/admin/sec/filings/setup-status")

    session.get.return_value = make_response({"filings": 10, "companies": 2, "formTypes": 3})
    stats = client.stats()
    assert (stats.filings, stats.companies, stats.form_types) == (10, 2, 3)


def test_setup_sends_connection_string() -> None:
    client, session = make_client(make_response({"success": True}))
    assert client.setup("postgresql://x").success
    assert session.post.call_args.kwargs["json"] == {"connectionString": "postgresql://x"}
    client.setup()
    assert session.post.call_args.kwargs["json"] == {}
