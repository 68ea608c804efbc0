from __future__ import annotations

from edgar_index_ingest.normalize.dimensions import DimensionNormalizer
from edgar_index_ingest.records import Company, DictionaryEntry, FilingRecord, ProcessingStats


def test_ids_are_dense_and_first_seen_ordered() -> None:
    n = DimensionNormalizer()
    assert [n.intern_form_type(c) for c in ["10-K", "8-K", "10-K", "S-1", "8-K"]] == [1, 2, 1, 3, 2]
    assert n.form_types == (DictionaryEntry(1, "10-K"), DictionaryEntry(2, "8-K"), DictionaryEntry(3, "S-1"))
    assert n.form_type_id("S-1") == 3
    assert n.form_type_id("10-Q") is None


def test_extension_table_is_independent_of_form_types() -> None:
    n = DimensionNormalizer()
    n.intern_form_type("10-K")
    assert n.intern_extension("txt") == 1
    assert n.intern_extension("htm") == 2
    assert n.extension_id("txt") == 1
    assert n.extension_count == 2


def test_company_keeps_first_name() -> None:
    n = DimensionNormalizer()
    n.intern_company(1000275, "ACME CORP")
    n.intern_company(2000, "BETA LLC")
    n.intern_company(1000275, "ACME CORPORATION")
    assert n.companies == (Company(1000275, "ACME CORP"), Company(2000, "BETA LLC"))
    assert n.company_count == 2


def test_prepare_freezes_collections() -> None:
    n = DimensionNormalizer()
    n.intern_company(1, "A")
    filings = [FilingRecord(1, n.intern_form_type("10-K"), 0, 1, 1, n.intern_extension("txt"))]
    stats = ProcessingStats(rows_processed=1)

    prepared = n.prepare(filings, stats)
    stats.rows_processed = 99
    n.intern_form_type("8-K")

    assert prepared.filings == tuple(filings)
    assert prepared.stats.rows_processed == 1
    assert len(prepared.form_types) == 1
    assert prepared.total_rows == 2


def test_prepare_without_stats() -> None:
    prepared = DimensionNormalizer().prepare([])
    assert prepared.total_rows == 0
    assert prepared.stats == ProcessingStats()
