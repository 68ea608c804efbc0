"""Partition a prepared import into ordered upload chunks.

Layout (1-based, contiguous):
- chunk 1: every form type and extension, never split;
- chunks 2 .. 1 + company_chunks: company slices of `chunk_size`;
- the remaining chunks: filing slices of `chunk_size`.

Dimensions always go first because filing chunks reference server-assigned
dimension IDs that only exist once chunk 1 has been acknowledged.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

import pandas as pd

from edgar_index_ingest.records import Company, DictionaryEntry, FilingRecord, PreparedImport


class ChunkKind(str, Enum):
    SETUP = "setup"
    COMPANIES = "companies"
    FILINGS = "filings"


@dataclass(frozen=True)
class Chunk:
    """One upload unit.

    Attributes:
        number: 1-based chunk number.
        kind: What the chunk carries.
        start: 0-based start offset into the collection (0 for setup).
        end: Exclusive end offset (number of dimension rows for setup).
        form_types: Dimension entries (setup chunk only).
        extensions: Dimension entries (setup chunk only).
        companies: Company slice (company chunks only).
        filings: Filing slice with local dimension IDs (filing chunks only).
    """
    number: int
    kind: ChunkKind
    start: int
    end: int
    form_types: tuple[DictionaryEntry, ...] = ()
    extensions: tuple[DictionaryEntry, ...] = ()
    companies: tuple[Company, ...] = ()
    filings: tuple[FilingRecord, ...] = ()

    @property
    def size(self) -> int:
        if self.kind is ChunkKind.SETUP:
            return len(self.form_types) + len(self.extensions)
        return self.end - self.start


def chunk_size_presets(total_rows: int) -> list[int]:
    """Return the chunk-size choices offered for a dataset of `total_rows`.

    The last preset is `total_rows` itself (one chunk per collection)
    unless it already is one of the fixed sizes.
    """
    if total_rows >= 100_000:
        presets = [5000, 10_000, 20_000, 50_000, 100_000]
    elif total_rows >= 50_000:
        presets = [5000, 10_000, 20_000, 50_000]
    elif total_rows >= 10_000:
        presets = [1000, 5000, 10_000]
    else:
        presets = [500, 1000, 5000]
    if total_rows > 0 and total_rows not in presets:
        presets.append(total_rows)
    return presets


class ChunkPlan:
    """Read-only view of a `PreparedImport` as numbered chunks."""

    def __init__(self, prepared: PreparedImport, chunk_size: int) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.prepared = prepared
        self.chunk_size = chunk_size

    @property
    def company_chunks(self) -> int:
        return math.ceil(len(self.prepared.companies) / self.chunk_size)

    @property
    def filing_chunks(self) -> int:
        return math.ceil(len(self.prepared.filings) / self.chunk_size)

    @property
    def total_chunks(self) -> int:
        return 1 + self.company_chunks + self.filing_chunks

    def kind_of(self, number: int) -> ChunkKind:
        self._check(number)
        if number == 1:
            return ChunkKind.SETUP
        if number <= 1 + self.company_chunks:
            return ChunkKind.COMPANIES
        return ChunkKind.FILINGS

    def chunk(self, number: int) -> Chunk:
        """Return chunk `number` (1-based).

        Raises:
            ValueError: if `number` is outside ``1..total_chunks``.
        """
        kind, start, end = self._span(number)
        p = self.prepared
        if kind is ChunkKind.SETUP:
            return Chunk(
                number=1,
                kind=kind,
                start=start,
                end=end,
                form_types=p.form_types,
                extensions=p.extensions,
            )
        if kind is ChunkKind.COMPANIES:
            return Chunk(number=number, kind=kind, start=start, end=end, companies=p.companies[start:end])
        return Chunk(number=number, kind=kind, start=start, end=end, filings=p.filings[start:end])

    def chunks(self, from_chunk: int = 1) -> Iterator[Chunk]:
        for number in range(from_chunk, self.total_chunks + 1):
            yield self.chunk(number)

    def describe(self, number: int) -> str:
        """Human readable summary of a chunk's contents."""
        kind, start, end = self._span(number)
        p = self.prepared
        if kind is ChunkKind.SETUP:
            return f"Setup: {len(p.form_types)} form types, {len(p.extensions)} extensions"
        label = "Companies" if kind is ChunkKind.COMPANIES else "Filings"
        return f"{label}: {end - start:,} {label.lower()} ({start + 1:,}-{end:,})"

    def to_frame(self) -> pd.DataFrame:
        """Return one row per chunk: number, kind, start, end, records."""
        rows = []
        for number in range(1, self.total_chunks + 1):
            kind, start, end = self._span(number)
            rows.append(
                {
                    "chunk": number,
                    "kind": kind.value,
                    "start": start + 1 if kind is not ChunkKind.SETUP else 0,
                    "end": end,
                    "records": end - start,
                }
            )
        return pd.DataFrame(rows, columns=["chunk", "kind", "start", "end", "records"])

    def _span(self, number: int) -> tuple[ChunkKind, int, int]:
        """Return `(kind, start, end)` offsets of chunk `number` in its collection."""
        kind = self.kind_of(number)
        p = self.prepared
        if kind is ChunkKind.SETUP:
            return kind, 0, len(p.form_types) + len(p.extensions)
        if kind is ChunkKind.COMPANIES:
            index, total = number - 2, len(p.companies)
        else:
            index, total = number - 2 - self.company_chunks, len(p.filings)
        start = index * self.chunk_size
        return kind, start, min(start + self.chunk_size, total)

    def _check(self, number: int) -> None:
        if not 1 <= number <= self.total_chunks:
            raise ValueError(f"chunk must be in 1..{self.total_chunks}, got {number}")
