"""Parsing helpers for SEC master index files.

`parse_master_index` is the second streaming pass over a file: it classifies
lines with the same gate as the row counter, decodes each data row, registers
its dimensions in a `DimensionNormalizer` and returns a `PreparedImport`.

Malformed rows (too few fields, unparsable accession path, impossible date)
are skipped silently; they simply do not appear in the output.
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import closing
from datetime import date, timedelta
from typing import Callable

from edgar_index_ingest.exceptions import DecompressionError
from edgar_index_ingest.ingest.count_rows import DataRowGate
from edgar_index_ingest.ingest.stream import DEFAULT_ENCODING, READ_SIZE, IndexSource, open_lines
from edgar_index_ingest.normalize.dimensions import DimensionNormalizer
from edgar_index_ingest.records import Accession, FilingRecord, PreparedImport, ProcessingStats

log = logging.getLogger(__name__)

ACCESSION_RE = re.compile(r"^(\d+)-(\d+)-(\d+)\.([A-Za-z0-9_]+)$")
DATE_RE = re.compile(r"^(\d{4})-?(\d{2})-?(\d{2})$")
EPOCH = date(1970, 1, 1)
PROGRESS_EVERY = 10_000

ProgressCallback = Callable[[ProcessingStats], None]


def parse_accession(file_path: str) -> Accession | None:
    """Decode the accession components of a filing path.

    Args:
        file_path: Path field such as
            ``edgar/data/1000275/0000950103-24-000123.txt``.

    Returns:
        `Accession` with filer, sequence and extension, or None when the
        last path segment is not ``<digits>-<digits>-<digits>.<ext>``.
    """
    filename = file_path.rsplit("/", 1)[-1]
    m = ACCESSION_RE.match(filename)
    if not m:
        return None
    return Accession(filer=int(m.group(1)), sequence=int(m.group(3)), extension=m.group(4))


def date_to_days(yyyymmdd: str) -> int:
    """Convert a ``YYYYMMDD`` (or ``YYYY-MM-DD``) string to days since 1970-01-01.

    Raises:
        ValueError: if the string is not a valid calendar date.
    """
    m = DATE_RE.match(yyyymmdd)
    if not m:
        raise ValueError(f"Not a YYYYMMDD date: {yyyymmdd!r}")
    year, month, day = (int(g) for g in m.groups())
    return (date(year, month, day) - EPOCH).days


def days_to_date(days: int) -> date:
    """Inverse of `date_to_days`."""
    return EPOCH + timedelta(days=days)


def days_to_yyyymmdd(days: int) -> str:
    return days_to_date(days).strftime("%Y%m%d")


def parse_data_line(line: str, normalizer: DimensionNormalizer) -> FilingRecord | None:
    """Decode one data line and register its dimensions.

    Returns None for malformed rows; nothing is registered for those.
    """
    parts = line.split("|")
    if len(parts) < 5:
        return None

    try:
        cik = int(parts[0])
    except ValueError:
        return None
    company_name = parts[1].strip()
    form_type = parts[2].strip()
    date_filed = parts[3].strip()
    file_path = parts[4].strip()

    accession = parse_accession(file_path)
    if accession is None:
        return None
    try:
        filed_date = date_to_days(date_filed)
    except ValueError:
        return None

    normalizer.intern_company(cik, company_name)
    form_type_id = normalizer.intern_form_type(form_type)
    ext_id = normalizer.intern_extension(accession.extension)

    return FilingRecord(
        cik=cik,
        form_type_id=form_type_id,
        filed_date=filed_date,
        accession_filer=accession.filer,
        accession_seq=accession.sequence,
        ext_id=ext_id,
    )


def parse_master_index(
    source: IndexSource,
    row_limit: int | None = None,
    on_progress: ProgressCallback | None = None,
    read_size: int = READ_SIZE,
    encoding: str = DEFAULT_ENCODING,
) -> PreparedImport:
    """Parse a master index file into normalized, upload-ready collections.

    Args:
        source: Master index file (plain or `.gz`).
        row_limit: Optional cap on emitted filings ("test mode"). Reading
            stops and the file is closed as soon as the cap is reached.
        on_progress: Optional callback receiving a `ProcessingStats` copy
            every 10,000 rows and once at the end.
        read_size: Block size for streaming reads.
        encoding: Text encoding of the file.

    Returns:
        `PreparedImport` with form types, extensions, companies and filings.

    Raises:
        DecompressionError: if the gzip stream is corrupt. Rows parsed before
            the failure are discarded; `on_progress` first receives a final
            snapshot whose `errors` carries the message.
    """
    if row_limit is not None and row_limit < 1:
        raise ValueError(f"row_limit must be >= 1, got {row_limit}")

    started = time.perf_counter()
    stats = ProcessingStats(total_bytes=source.size)
    normalizer = DimensionNormalizer()
    gate = DataRowGate()
    filings: list[FilingRecord] = []

    log.info("Parsing %s (row_limit=%s)", source.name, row_limit)

    try:
        with closing(open_lines(source, read_size=read_size, encoding=encoding)) as lines:
            for line in lines:
                stats.bytes_read = line.bytes_read
                if not gate.is_data(line.text):
                    continue

                record = parse_data_line(line.text, normalizer)
                if record is None:
                    continue

                filings.append(record)
                stats.rows_processed += 1

                if stats.rows_processed % PROGRESS_EVERY == 0:
                    _update_counts(stats, normalizer, started)
                    if on_progress is not None:
                        on_progress(stats.snapshot())

                if row_limit is not None and stats.rows_processed >= row_limit:
                    stats.reached_limit = True
                    break
    except DecompressionError as exc:
        stats.errors.append(str(exc))
        _update_counts(stats, normalizer, started)
        log.error("Parsing %s failed after %d rows: %s", source.name, stats.rows_processed, exc)
        if on_progress is not None:
            on_progress(stats.snapshot())
        raise

    if stats.reached_limit:
        log.info("Row limit %d reached; stopped reading %s", row_limit, source.name)

    _update_counts(stats, normalizer, started)
    if on_progress is not None:
        on_progress(stats.snapshot())

    log.info(
        "Parsed %d filings from %s in %.2fs (%d companies, %d form types)",
        stats.rows_processed,
        source.name,
        stats.elapsed_time,
        stats.companies_found,
        stats.form_types_found,
    )
    return normalizer.prepare(filings, stats)


def _update_counts(stats: ProcessingStats, normalizer: DimensionNormalizer, started: float) -> None:
    stats.companies_found = normalizer.company_count
    stats.form_types_found = normalizer.form_type_count
    stats.extensions_found = normalizer.extension_count
    stats.elapsed_time = time.perf_counter() - started
