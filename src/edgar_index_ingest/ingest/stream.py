"""Streaming decode helpers for master index files.

`IndexSource` wraps something that can be re-opened from byte zero (a path or
an in-memory upload). `iter_decoded_blocks` is the Decoder: it yields
decompressed blocks without holding the file in memory. `iter_lines` is the
Line Splitter: it turns those blocks into complete text lines. Each pass over
a file builds a fresh, cold pipeline with `open_lines`.
"""

from __future__ import annotations

import gzip
import io
import logging
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator

from edgar_index_ingest.exceptions import DecompressionError
from edgar_index_ingest.records import RawLine

log = logging.getLogger(__name__)

READ_SIZE = 64 * 1024
DEFAULT_ENCODING = "latin-1"


@dataclass(frozen=True)
class IndexSource:
    """A re-openable master index file.

    Attributes:
        name: File name; a `.gz` suffix marks the content as gzip.
        size: Size of the stored (possibly compressed) content in bytes.
        opener: Callable returning a fresh binary handle positioned at 0.
    """
    name: str
    size: int
    opener: Callable[[], BinaryIO]

    @classmethod
    def from_path(cls, path: Path) -> IndexSource:
        path = Path(path)
        return cls(name=path.name, size=path.stat().st_size, opener=lambda: path.open("rb"))

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> IndexSource:
        return cls(name=name, size=len(data), opener=lambda: io.BytesIO(data))

    @property
    def compressed(self) -> bool:
        return self.name.lower().endswith(".gz")

    def open(self) -> BinaryIO:
        return self.opener()


def iter_decoded_blocks(
    source: IndexSource,
    compressed: bool | None = None,
    read_size: int = READ_SIZE,
) -> Iterator[tuple[bytes, int]]:
    """Yield decoded blocks of `source` with the raw bytes consumed so far.

    The file handle is closed when iteration finishes or when the consumer
    closes the generator early.

    Args:
        source: File to read.
        compressed: Override for gzip detection (defaults to the `.gz` check).
        read_size: Maximum size of each yielded block.

    Yields:
        Tuples of `(block, raw_offset)`, where `raw_offset` is the position
        in the stored file after the block was produced.

    Raises:
        DecompressionError: if the gzip stream is corrupt or truncated.
    """
    if compressed is None:
        compressed = source.compressed

    raw = source.open()
    try:
        if not compressed:
            while True:
                block = raw.read(read_size)
                if not block:
                    return
                yield block, raw.tell()

        with gzip.GzipFile(fileobj=raw, mode="rb") as stream:
            while True:
                try:
                    block = stream.read(read_size)
                except (OSError, EOFError, zlib.error) as exc:
                    raise DecompressionError(f"Failed to decompress {source.name}: {exc}") from exc
                if not block:
                    return
                yield block, raw.tell()
    finally:
        raw.close()


def iter_lines(
    blocks: Iterable[tuple[bytes, int]],
    encoding: str = DEFAULT_ENCODING,
) -> Iterator[RawLine]:
    """Split decoded blocks into text lines.

    Keeps one pending partial line between blocks. A non-empty remainder at
    end of stream is yielded as the final line.
    """
    pending = b""
    number = 0
    offset = 0
    try:
        for block, offset in blocks:
            pending += block
            *complete, pending = pending.split(b"\n")
            for segment in complete:
                number += 1
                yield RawLine(number, segment.decode(encoding, errors="replace"), offset)

        if pending:
            number += 1
            yield RawLine(number, pending.decode(encoding, errors="replace"), offset)
    finally:
        # closing the splitter early must release the underlying file
        close = getattr(blocks, "close", None)
        if close is not None:
            close()


def open_lines(
    source: IndexSource,
    read_size: int = READ_SIZE,
    encoding: str = DEFAULT_ENCODING,
) -> Iterator[RawLine]:
    """Build a fresh Decoder + Line Splitter pipeline from byte zero."""
    log.debug("Opening %s (compressed=%s, %d bytes)", source.name, source.compressed, source.size)
    return iter_lines(iter_decoded_blocks(source, read_size=read_size), encoding=encoding)


def preview_lines(
    source: IndexSource,
    limit: int = 50,
    encoding: str = DEFAULT_ENCODING,
    decompress: bool = False,
) -> list[str]:
    """Return the first `limit` lines of `source`.

    By default the stored bytes are shown as-is, so any file can be
    inspected. With `decompress=True` a `.gz` source is shown as the text
    the parser will see.

    Raises:
        DecompressionError: if `decompress` is set and the gzip stream is
            corrupt.
    """
    lines: list[str] = []
    compressed = source.compressed if decompress else False
    reader = iter_lines(iter_decoded_blocks(source, compressed=compressed), encoding=encoding)
    try:
        for line in reader:
            lines.append(line.text)
            if len(lines) >= limit:
                break
    finally:
        reader.close()
    return lines
