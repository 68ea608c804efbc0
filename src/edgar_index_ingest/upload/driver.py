"""Upload driver: sends a chunk plan to the filings API, one chunk at a time.

State machine::

    pending -> running -> paused | completed | failed
    paused  -> running   (resume)
    failed  -> running   (manual resume from the failed chunk)

Cancelling is not a state: `cancel` drops the local state and the ID
remapping without calling the server. Chunks are sent strictly in ascending
order and the next chunk is only sent after the previous response arrived.
Nothing is retried automatically.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, NamedTuple, Protocol, Sequence

import requests  # type: ignore[import-untyped]
from pydantic import ValidationError

from edgar_index_ingest.exceptions import IngestError, MissingIdMappingError, UploadError, UploadStoppedError
from edgar_index_ingest.models import DimensionInsertResponse, FilingInsertResponse
from edgar_index_ingest.records import Company, DictionaryEntry, FilingRecord
from edgar_index_ingest.upload.chunk_plan import ChunkKind, ChunkPlan

log = logging.getLogger(__name__)

STOPPED_BY_USER = "Upload stopped by user"


class BulkInsertClient(Protocol):
    def insert_dimensions(self, form_types: list[str], extensions: list[str]) -> DimensionInsertResponse: ...

    def insert_companies(self, companies: Sequence[Company], chunk: int) -> dict[str, Any]: ...

    def insert_filings(self, filings: Sequence[FilingRecord], chunk: int) -> FilingInsertResponse: ...


class UploadStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class UploadedCounts:
    """Rows acknowledged by the server, per category."""
    form_types: int = 0
    extensions: int = 0
    companies: int = 0
    filings: int = 0


@dataclass
class UploadState:
    """Progress of one upload run; the driver loop is its only writer.

    Attributes:
        status: Current state machine state.
        total_chunks: Number of chunks in the plan.
        current_chunk: Chunk being sent, the last completed chunk when
            paused, or the chunk that failed.
        next_chunk: Chunk a resume would send first.
        progress: Percent of chunks reached.
        counts: Server-acknowledged rows per category.
        error: Failure message, including the user-stop message.
        stopped_by_user: True when `error` comes from `stop` rather than
            from the server or the network.
    """
    status: UploadStatus = UploadStatus.PENDING
    total_chunks: int = 0
    current_chunk: int = 0
    next_chunk: int = 1
    progress: int = 0
    counts: UploadedCounts = field(default_factory=UploadedCounts)
    error: str | None = None
    stopped_by_user: bool = False

    @property
    def filings_imported(self) -> int:
        """Server-reported inserted filings, the authoritative total."""
        return self.counts.filings

    def snapshot(self) -> UploadState:
        return copy.deepcopy(self)


@dataclass(frozen=True)
class IdRemapping:
    """Local dimension ID → server dimension ID, built once from chunk 1.

    IDs missing from a map pass through unchanged.
    """
    form_type_map: Mapping[int, int]
    extension_map: Mapping[int, int]
    unmapped_form_types: tuple[str, ...] = ()
    unmapped_extensions: tuple[str, ...] = ()

    @classmethod
    def from_response(
        cls,
        form_types: Sequence[DictionaryEntry],
        extensions: Sequence[DictionaryEntry],
        response: DimensionInsertResponse,
    ) -> IdRemapping:
        form_type_map, missing_forms = _map_entries(form_types, response.form_type_map)
        extension_map, missing_exts = _map_entries(extensions, response.extension_map)
        return cls(
            form_type_map=form_type_map,
            extension_map=extension_map,
            unmapped_form_types=tuple(missing_forms),
            unmapped_extensions=tuple(missing_exts),
        )

    @property
    def complete(self) -> bool:
        return not self.unmapped_form_types and not self.unmapped_extensions

    def apply(self, record: FilingRecord) -> FilingRecord:
        return record._replace(
            form_type_id=self.form_type_map.get(record.form_type_id, record.form_type_id),
            ext_id=self.extension_map.get(record.ext_id, record.ext_id),
        )


def _map_entries(
    entries: Sequence[DictionaryEntry],
    server_ids: Mapping[str, int],
) -> tuple[dict[int, int], list[str]]:
    mapping: dict[int, int] = {}
    missing: list[str] = []
    for entry in entries:
        server_id = server_ids.get(entry.code)
        if server_id is None:
            missing.append(entry.code)
        else:
            mapping[entry.id] = server_id
    return mapping, missing


class ChunkResult(NamedTuple):
    inserted: int
    has_more: bool


ProgressCallback = Callable[[UploadState], None]


class UploadDriver:
    """Runs the chunked upload of one `ChunkPlan`.

    Args:
        client: Object implementing the bulk-insert calls.
        plan: Chunk layout over the prepared import.
        auto_upload: When False, pause after every successful chunk.
        strict_id_mapping: Fail chunk 1 when the server omits an ID for a
            local dimension value instead of passing the local ID through.
        on_progress: Optional callback receiving a state copy after each
            transition.
    """

    def __init__(
        self,
        client: BulkInsertClient,
        plan: ChunkPlan,
        auto_upload: bool = True,
        strict_id_mapping: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.client = client
        self.plan = plan
        self.auto_upload = auto_upload
        self.strict_id_mapping = strict_id_mapping
        self.on_progress = on_progress
        self.id_remapping: IdRemapping | None = None
        self.state = UploadState(total_chunks=plan.total_chunks)
        self._stop = threading.Event()
        # bumped by cancel; a loop or chunk from an older generation stops writing state
        self._generation = 0

    # --------------------------------------------------
    # Operator actions
    # --------------------------------------------------
    def run(self, from_chunk: int = 0) -> UploadState:
        """Send chunks starting at `from_chunk` until done, paused or failed.

        `from_chunk <= 1` starts a fresh run and resets the counts. A later
        chunk resumes with the already prepared data and the remapping from
        an earlier chunk 1, without re-sending anything before it.

        Returns:
            A copy of the final state of this call.

        Raises:
            UploadError: if the driver is already running.
            ValueError: if `from_chunk` is past the last chunk.
        """
        if self.state.status is UploadStatus.RUNNING:
            raise UploadError("Upload already running")

        total = self.plan.total_chunks
        current = from_chunk if from_chunk > 0 else 1
        if current > total:
            raise ValueError(f"from_chunk must be in 1..{total}, got {from_chunk}")

        self._stop.clear()
        generation = self._generation
        if current == 1:
            self.state.counts = UploadedCounts()
        self.state.status = UploadStatus.RUNNING
        self.state.total_chunks = total
        self.state.current_chunk = current
        self.state.next_chunk = current
        self.state.error = None
        self.state.stopped_by_user = False

        log.info(
            "Starting chunked upload: %d chunks, from chunk %d (auto=%s)",
            total,
            current,
            self.auto_upload,
        )
        self._emit()

        try:
            while current <= total:
                if self._cancelled(generation):
                    return self.state.snapshot()
                if self._stop.is_set():
                    raise UploadStoppedError(STOPPED_BY_USER, chunk=current)

                self.state.current_chunk = current
                self.state.next_chunk = current
                self.state.progress = round(current / total * 100)
                self._emit()

                if self._cancelled(generation):
                    return self.state.snapshot()

                log.info("Chunk %d/%d (%s)", current, total, self.plan.describe(current))
                result = self.send_chunk(current)
                if self._cancelled(generation):
                    log.info("Upload cancelled during chunk %d", current)
                    return self.state.snapshot()

                if not result.has_more:
                    self.state.status = UploadStatus.COMPLETED
                    self.state.current_chunk = total
                    self.state.next_chunk = total + 1
                    self.state.progress = 100
                    log.info("Upload complete. Total filings inserted: %d", self.state.filings_imported)
                    self._emit()
                    return self.state.snapshot()

                current += 1
                self.state.next_chunk = current

                if not self.auto_upload:
                    self.state.status = UploadStatus.PAUSED
                    self.state.current_chunk = current - 1
                    log.info("Paused after chunk %d; next chunk is %d", current - 1, current)
                    self._emit()
                    return self.state.snapshot()

        except UploadStoppedError as exc:
            log.warning("Upload stopped by user before chunk %s", exc.chunk)
            self._fail(str(exc), stopped_by_user=True)
        except (IngestError, requests.RequestException, ValidationError) as exc:
            if self._cancelled(generation):
                log.info("Chunk %d failed after cancel: %s", current, exc)
                return self.state.snapshot()
            log.exception("Chunk %d failed: %s", current, exc)
            self._fail(str(exc) or exc.__class__.__name__)
        finally:
            # interrupted from outside (KeyboardInterrupt, UI rerun): keep it resumable
            if self.state.status is UploadStatus.RUNNING:
                log.warning("Upload interrupted during chunk %d", current)
                self.state.status = UploadStatus.FAILED
                self.state.error = STOPPED_BY_USER
                self.state.stopped_by_user = True

        return self.state.snapshot()

    def resume(self) -> UploadState:
        """Continue at the recorded next chunk (after a pause or a failure)."""
        return self.run(self.state.next_chunk)

    def stop(self) -> None:
        """Ask the loop to stop before its next chunk.

        Safe to call from another thread or a signal handler. An in-flight
        request is never interrupted.
        """
        log.info("Stop requested")
        self._stop.set()

    def cancel(self) -> None:
        """Drop local upload state; already-sent chunks stay on the server.

        May be called while `run` is active (from a progress callback or
        another thread): the loop returns before its next chunk without
        touching the reset state, and an in-flight chunk 1 does not install
        its remapping.
        """
        self._generation += 1
        self.id_remapping = None
        self.state = UploadState(total_chunks=self.plan.total_chunks)
        log.info("Upload cancelled and local state reset")
        self._emit()

    # --------------------------------------------------
    # Chunk sending
    # --------------------------------------------------
    def send_chunk(self, number: int) -> ChunkResult:
        """Send one chunk and update the counts.

        Raises:
            ApiError: on a non-success response.
            MissingIdMappingError: for a filing chunk before chunk 1 has
                been acknowledged, or a strict mapping violation.
            requests.RequestException: on transport failures.
        """
        chunk = self.plan.chunk(number)
        has_more = number < self.plan.total_chunks
        generation = self._generation
        counts = self.state.counts

        if chunk.kind is ChunkKind.SETUP:
            response = self.client.insert_dimensions(
                [e.code for e in chunk.form_types],
                [e.code for e in chunk.extensions],
            )
            remapping = IdRemapping.from_response(chunk.form_types, chunk.extensions, response)
            if not remapping.complete:
                if self.strict_id_mapping:
                    raise MissingIdMappingError(
                        "Server did not return IDs for form types "
                        f"{list(remapping.unmapped_form_types)} / extensions "
                        f"{list(remapping.unmapped_extensions)}",
                        chunk=number,
                    )
                log.warning(
                    "Server returned no IDs for form types %s / extensions %s; local IDs will be sent",
                    list(remapping.unmapped_form_types),
                    list(remapping.unmapped_extensions),
                )
            if self._cancelled(generation):
                return ChunkResult(inserted=0, has_more=has_more)
            self.id_remapping = remapping
            counts.form_types = len(response.form_type_map)
            counts.extensions = len(response.extension_map)
            return ChunkResult(inserted=0, has_more=has_more)

        if chunk.kind is ChunkKind.COMPANIES:
            self.client.insert_companies(chunk.companies, number)
            counts.companies += len(chunk.companies)
            return ChunkResult(inserted=0, has_more=has_more)

        if self.id_remapping is None:
            raise MissingIdMappingError("ID mappings not available - run chunk 1 first", chunk=number)
        remapped = [self.id_remapping.apply(f) for f in chunk.filings]
        response = self.client.insert_filings(remapped, number)
        inserted = response.inserted if response.inserted is not None else len(remapped)
        counts.filings += inserted
        return ChunkResult(inserted=inserted, has_more=has_more)

    # --------------------------------------------------
    # Helpers
    # --------------------------------------------------
    def _cancelled(self, generation: int) -> bool:
        return generation != self._generation

    def _fail(self, message: str, stopped_by_user: bool = False) -> None:
        self.state.status = UploadStatus.FAILED
        self.state.error = message
        self.state.stopped_by_user = stopped_by_user
        self._emit()

    def _emit(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self.state.snapshot())
