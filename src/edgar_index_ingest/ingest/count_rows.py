"""Pass 1: count data rows without retaining them.

The header/data classification lives here as `DataRowGate` and is shared
with the parse pass so that both passes agree on what a data row is.
"""

from __future__ import annotations

import logging
import re
from contextlib import closing

from edgar_index_ingest.ingest.stream import DEFAULT_ENCODING, READ_SIZE, IndexSource, open_lines

log = logging.getLogger(__name__)

DATA_ROW_RE = re.compile(r"^\d+\|")


def looks_like_data_row(line: str) -> bool:
    """Return True when `line` starts with digits followed by a pipe."""
    return DATA_ROW_RE.match(line) is not None


class DataRowGate:
    """Two-state header/data classifier.

    Starts in header-skip state. Lines starting with ``CIK|``, containing a
    dash rule, or blank are header noise, as is any other line that does not
    look like a data row. The first data row switches the gate to data state;
    from then on every line is judged only by `looks_like_data_row`.
    """

    def __init__(self) -> None:
        self.in_data = False

    def is_data(self, line: str) -> bool:
        if not self.in_data:
            if line.startswith("CIK|") or "---" in line or not line.strip():
                return False
            if not looks_like_data_row(line):
                return False
            self.in_data = True
            return True
        return looks_like_data_row(line)


def count_data_rows(
    source: IndexSource,
    read_size: int = READ_SIZE,
    encoding: str = DEFAULT_ENCODING,
) -> int:
    """Stream `source` once and return the number of data rows.

    Args:
        source: Master index file (plain or `.gz`).
        read_size: Block size for streaming reads.
        encoding: Text encoding of the file.

    Returns:
        Total data rows, used to size progress and pick chunk-size presets.

    Raises:
        DecompressionError: if the gzip stream is corrupt.
    """
    gate = DataRowGate()
    rows = 0
    with closing(open_lines(source, read_size=read_size, encoding=encoding)) as lines:
        for line in lines:
            if gate.is_data(line.text):
                rows += 1

    log.info("Counted %d data rows in %s", rows, source.name)
    return rows
