"""Dimension normalization for one parse run.

`DimensionNormalizer` deduplicates form type codes, file extensions and
companies, handing out dense 1-based local IDs in first-seen order. The
tables are append-only: an assigned ID never changes, and a company keeps
the first name seen for its CIK.
"""

from __future__ import annotations

import logging
from typing import Iterable

from edgar_index_ingest.records import (
    Company,
    DictionaryEntry,
    FilingRecord,
    PreparedImport,
    ProcessingStats,
)

log = logging.getLogger(__name__)


class _InternTable:
    """Natural key → monotonic local ID."""

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}

    def intern(self, key: str) -> tuple[int, bool]:
        """Return `(local_id, is_new)` for `key`."""
        local_id = self._ids.get(key)
        if local_id is not None:
            return local_id, False
        local_id = len(self._ids) + 1
        self._ids[key] = local_id
        return local_id, True

    def lookup(self, key: str) -> int | None:
        return self._ids.get(key)

    def entries(self) -> tuple[DictionaryEntry, ...]:
        # dicts keep insertion order, which is assignment order
        return tuple(DictionaryEntry(id=i, code=k) for k, i in self._ids.items())

    def __len__(self) -> int:
        return len(self._ids)


class DimensionNormalizer:
    """Append-only dictionaries for form types, extensions and companies.

    Single-threaded and single-pass: only the parse pass calls the intern
    methods, and the tables are read-only once `prepare` has been called.
    """

    def __init__(self) -> None:
        self._form_types = _InternTable()
        self._extensions = _InternTable()
        self._companies: dict[int, str] = {}

    def intern_form_type(self, code: str) -> int:
        local_id, is_new = self._form_types.intern(code)
        if is_new:
            log.debug("New form type %r -> %d", code, local_id)
        return local_id

    def intern_extension(self, ext: str) -> int:
        local_id, is_new = self._extensions.intern(ext)
        if is_new:
            log.debug("New extension %r -> %d", ext, local_id)
        return local_id

    def intern_company(self, cik: int, name: str) -> None:
        """Register `cik` with `name` unless the CIK is already known."""
        if cik not in self._companies:
            self._companies[cik] = name

    def form_type_id(self, code: str) -> int | None:
        return self._form_types.lookup(code)

    def extension_id(self, ext: str) -> int | None:
        return self._extensions.lookup(ext)

    @property
    def form_types(self) -> tuple[DictionaryEntry, ...]:
        return self._form_types.entries()

    @property
    def extensions(self) -> tuple[DictionaryEntry, ...]:
        return self._extensions.entries()

    @property
    def companies(self) -> tuple[Company, ...]:
        return tuple(Company(cik=cik, name=name) for cik, name in self._companies.items())

    @property
    def form_type_count(self) -> int:
        return len(self._form_types)

    @property
    def extension_count(self) -> int:
        return len(self._extensions)

    @property
    def company_count(self) -> int:
        return len(self._companies)

    def prepare(
        self,
        filings: Iterable[FilingRecord],
        stats: ProcessingStats | None = None,
    ) -> PreparedImport:
        """Freeze the dictionaries and `filings` into a `PreparedImport`."""
        prepared = PreparedImport(
            form_types=self.form_types,
            extensions=self.extensions,
            companies=self.companies,
            filings=tuple(filings),
            stats=stats.snapshot() if stats is not None else ProcessingStats(),
        )
        log.info(
            "Prepared import: %d form types, %d extensions, %d companies, %d filings",
            len(prepared.form_types),
            len(prepared.extensions),
            len(prepared.companies),
            len(prepared.filings),
        )
        return prepared
