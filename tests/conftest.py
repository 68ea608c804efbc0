from __future__ import annotations

import gzip
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest

from edgar_index_ingest.exceptions import ApiError
from edgar_index_ingest.models import DbStats, DimensionInsertResponse, FilingInsertResponse, SetupStatus
from edgar_index_ingest.records import Company, DictionaryEntry, FilingRecord, PreparedImport


SAMPLE_INDEX = """Description:           Daily Index of EDGAR Dissemination Feed by Company Name
Last Data Received:    January 15, 2024
Comments:              webmaster@sec.gov
Anonymous FTP:         ftp://ftp.sec.gov/edgar/

CIK|Company Name|Form Type|Date Filed|File Name
--------------------------------------------------------------------------------
1000275|ACME CORP|10-K|20240115|edgar/data/1000275/0000950103-24-000123.txt
1000275|ACME CORPORATION|8-K|20240115|edgar/data/1000275/0000950103-24-000124.txt
55|BAD ROW INC|10-Q|20240115|edgar/data/55/badfile.txt
2000|BETA LLC|10-K|20240116|edgar/data/2000/0002000-24-000001.htm
"""


def make_rows(n: int, start_cik: int = 1) -> str:
    """Return `n` valid data lines with distinct CIKs."""
    return "".join(
        f"{start_cik + i}|CO {i}|10-K|20240102|edgar/data/{start_cik + i}/0000000001-24-{i:06d}.txt\n"
        for i in range(n)
    )


@pytest.fixture
def write_index(tmp_path: Path) -> Callable[..., Path]:
    """Write index text to a file, gzip-compressing it for `.gz` names."""

    def _write(text: str = SAMPLE_INDEX, name: str = "master.20240115.idx") -> Path:
        path = tmp_path / name
        data = text.encode("latin-1")
        path.write_bytes(gzip.compress(data) if name.endswith(".gz") else data)
        return path

    return _write


def make_prepared(companies: int, filings: int, form_types: int = 3, extensions: int = 2) -> PreparedImport:
    """Synthetic import; every filing references form type 1 and extension 1."""
    return PreparedImport(
        form_types=tuple(DictionaryEntry(i, f"F{i}") for i in range(1, form_types + 1)),
        extensions=tuple(DictionaryEntry(i, f"e{i}") for i in range(1, extensions + 1)),
        companies=tuple(Company(cik, f"CO {cik}") for cik in range(1, companies + 1)),
        filings=tuple(FilingRecord(i % 7 + 1, 1, 19737, 1, i, 1) for i in range(filings)),
    )


class FakeClient:
    """In-memory filings API; server IDs are 100+n for form types and 200+n for extensions."""

    def __init__(
        self,
        form_type_map: dict[str, int] | None = None,
        extension_map: dict[str, int] | None = None,
        fail_on: Sequence[int] = (),
        inserted: int | None = None,
        tables_exist: bool = True,
    ) -> None:
        self.form_type_map = form_type_map
        self.extension_map = extension_map
        self.fail_on: dict[int, BaseException] = {n: ApiError("boom", status_code=500) for n in fail_on}
        self.inserted = inserted
        self.tables_exist = tables_exist
        self.sent: list[int] = []
        self.companies: list[Company] = []
        self.filings: list[FilingRecord] = []

    def _check(self, chunk: int) -> None:
        if chunk in self.fail_on:
            raise self.fail_on[chunk]
        self.sent.append(chunk)

    def insert_dimensions(self, form_types: list[str], extensions: list[str]) -> DimensionInsertResponse:
        self._check(1)
        return DimensionInsertResponse(
            form_type_map=self.form_type_map
            if self.form_type_map is not None
            else {code: 100 + i for i, code in enumerate(form_types, start=1)},
            extension_map=self.extension_map
            if self.extension_map is not None
            else {code: 200 + i for i, code in enumerate(extensions, start=1)},
        )

    def insert_companies(self, companies: Sequence[Company], chunk: int) -> dict[str, Any]:
        self._check(chunk)
        self.companies.extend(companies)
        return {}

    def insert_filings(self, filings: Sequence[FilingRecord], chunk: int) -> FilingInsertResponse:
        self._check(chunk)
        self.filings.extend(filings)
        return FilingInsertResponse(inserted=self.inserted)

    def setup_status(self) -> SetupStatus:
        return SetupStatus(tables_exist=self.tables_exist, configured=True)

    def stats(self) -> DbStats:
        return DbStats(filings=len(self.filings), companies=len(self.companies), form_types=0)
