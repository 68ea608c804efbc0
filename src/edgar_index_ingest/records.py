"""In-memory records produced while processing one master index file.

Per-row records are NamedTuples to keep millions of rows compact and
hashable; the smaller containers are frozen dataclasses. Nothing here is
persisted between runs.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import NamedTuple


class RawLine(NamedTuple):
    """One text line of the source file.

    Attributes:
        number: 1-based ordinal of the line in the file.
        text: Line content without the trailing newline.
        bytes_read: Source bytes consumed when the line was produced.
    """
    number: int
    text: str
    bytes_read: int


@dataclass(frozen=True)
class Accession:
    """Accession components decoded from a filing path.

    `edgar/data/1000275/0000950103-24-000123.txt` decodes to
    ``Accession(filer=950103, sequence=123, extension="txt")``.
    """
    filer: int
    sequence: int
    extension: str


class FilingRecord(NamedTuple):
    """One valid data row referencing dimension local IDs.

    Field names match the bulk-insert wire format.
    """
    cik: int
    form_type_id: int
    filed_date: int
    accession_filer: int
    accession_seq: int
    ext_id: int


@dataclass(frozen=True)
class DictionaryEntry:
    """A dimension value and its dense 1-based local ID."""
    id: int
    code: str


@dataclass(frozen=True)
class Company:
    """Company keyed by CIK; the first name seen for a CIK is kept."""
    cik: int
    name: str


@dataclass
class ProcessingStats:
    """Counters maintained by the parse pass.

    Attributes:
        rows_processed: Filing records emitted so far.
        companies_found: Distinct CIKs registered.
        form_types_found: Distinct form type codes registered.
        extensions_found: Distinct file extensions registered.
        errors: Fatal error messages for the run, such as a decompression
            failure reported to the progress callback.
        bytes_read: Source bytes consumed.
        total_bytes: Size of the source in bytes.
        elapsed_time: Seconds spent in the parse pass.
        reached_limit: True when a row limit stopped the pass early.
    """
    rows_processed: int = 0
    companies_found: int = 0
    form_types_found: int = 0
    extensions_found: int = 0
    errors: list[str] = field(default_factory=list)
    bytes_read: int = 0
    total_bytes: int = 0
    elapsed_time: float = 0.0
    reached_limit: bool = False

    def snapshot(self) -> ProcessingStats:
        """Return a full value copy safe from later mutation."""
        return copy.deepcopy(self)

    @property
    def percent_read(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return min(100.0, self.bytes_read / self.total_bytes * 100.0)


@dataclass(frozen=True)
class PreparedImport:
    """Normalized output of one parse run, ready for chunking.

    Collections are in assignment order (dimensions, companies) and file
    order (filings). They are never mutated after the parse pass.
    """
    form_types: tuple[DictionaryEntry, ...]
    extensions: tuple[DictionaryEntry, ...]
    companies: tuple[Company, ...]
    filings: tuple[FilingRecord, ...]
    stats: ProcessingStats = field(default_factory=ProcessingStats, compare=False)

    @property
    def total_rows(self) -> int:
        """Companies plus filings; drives the chunk-size presets."""
        return len(self.companies) + len(self.filings)
