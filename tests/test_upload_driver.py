from __future__ import annotations

import logging

import pytest
import requests  # type: ignore[import-untyped]

from edgar_index_ingest.exceptions import UploadError
from edgar_index_ingest.records import FilingRecord
from edgar_index_ingest.upload.chunk_plan import ChunkPlan
from edgar_index_ingest.upload.driver import (
    STOPPED_BY_USER,
    IdRemapping,
    UploadDriver,
    UploadState,
    UploadStatus,
)

from conftest import FakeClient, make_prepared


def ten_chunk_plan() -> ChunkPlan:
    # 1 setup + 2 company chunks + 7 filing chunks
    return ChunkPlan(make_prepared(companies=4, filings=14), chunk_size=2)


# --------------------------------------------------
# Happy path
# --------------------------------------------------
def test_auto_upload_sends_every_chunk_in_order() -> None:
    client = FakeClient()
    seen: list[UploadState] = []
    driver = UploadDriver(client, ten_chunk_plan(), on_progress=seen.append)

    state = driver.run()

    assert state.status is UploadStatus.COMPLETED
    assert client.sent == list(range(1, 11))
    assert state.current_chunk == 10
    assert state.progress == 100
    assert state.counts.form_types == 3
    assert state.counts.extensions == 2
    assert state.counts.companies == 4
    assert state.filings_imported == 14
    progress = [s.progress for s in seen]
    assert progress == sorted(progress)
    assert seen[-1].status is UploadStatus.COMPLETED


def test_filings_are_sent_with_server_ids() -> None:
    client = FakeClient()
    UploadDriver(client, ten_chunk_plan()).run()
    assert {(f.form_type_id, f.ext_id) for f in client.filings} == {(101, 201)}
    assert [f.accession_seq for f in client.filings] == list(range(14))


def test_inserted_count_comes_from_server() -> None:
    state = UploadDriver(FakeClient(inserted=1), ten_chunk_plan()).run()
    assert state.filings_imported == 7


def test_server_reporting_zero_inserted_is_kept() -> None:
    state = UploadDriver(FakeClient(inserted=0), ten_chunk_plan()).run()
    assert state.filings_imported == 0


def test_fresh_run_resets_counts() -> None:
    driver = UploadDriver(FakeClient(), ten_chunk_plan())
    driver.run()
    state = driver.run(1)
    assert state.counts.companies == 4
    assert state.filings_imported == 14


# --------------------------------------------------
# ID remapping
# --------------------------------------------------
def test_missing_server_id_passes_local_id_through(caplog: pytest.LogCaptureFixture) -> None:
    client = FakeClient(form_type_map={"F2": 12, "F3": 13})
    driver = UploadDriver(client, ten_chunk_plan())

    with caplog.at_level(logging.WARNING):
        state = driver.run()

    assert state.status is UploadStatus.COMPLETED
    assert state.counts.form_types == 2
    assert {f.form_type_id for f in client.filings} == {1}
    assert driver.id_remapping is not None
    assert driver.id_remapping.unmapped_form_types == ("F1",)
    assert "F1" in caplog.text


def test_strict_mapping_fails_setup_chunk() -> None:
    client = FakeClient(extension_map={"e1": 7})
    driver = UploadDriver(client, ten_chunk_plan(), strict_id_mapping=True)

    state = driver.run()

    assert state.status is UploadStatus.FAILED
    assert state.current_chunk == 1
    assert "e2" in (state.error or "")
    assert driver.id_remapping is None
    assert client.sent == [1]


def test_filing_chunk_without_setup_fails() -> None:
    client = FakeClient()
    driver = UploadDriver(client, ten_chunk_plan())

    state = driver.run(4)

    assert state.status is UploadStatus.FAILED
    assert state.current_chunk == 4
    assert state.error == "ID mappings not available - run chunk 1 first"
    assert client.sent == []


def test_id_remapping_apply() -> None:
    remap = IdRemapping(form_type_map={1: 50}, extension_map={})
    record = FilingRecord(1, 1, 0, 1, 1, 3)
    assert remap.apply(record) == FilingRecord(1, 50, 0, 1, 1, 3)
    assert remap.complete


# --------------------------------------------------
# Failure and resume
# --------------------------------------------------
def test_failure_then_resume_sends_only_remaining_chunks() -> None:
    client = FakeClient(fail_on=[4])
    driver = UploadDriver(client, ten_chunk_plan())

    state = driver.run()
    assert state.status is UploadStatus.FAILED
    assert state.current_chunk == 4
    assert state.next_chunk == 4
    assert state.error == "boom"
    assert not state.stopped_by_user
    assert state.counts.companies == 4

    client.fail_on.clear()
    client.sent.clear()
    state = driver.resume()

    assert client.sent == list(range(4, 11))
    assert state.status is UploadStatus.COMPLETED
    assert state.counts.companies == 4
    assert state.filings_imported == 14


def test_transport_error_marks_failed() -> None:
    client = FakeClient()
    client.fail_on[2] = requests.ConnectionError("connection refused")
    state = UploadDriver(client, ten_chunk_plan()).run()
    assert state.status is UploadStatus.FAILED
    assert state.current_chunk == 2
    assert "connection refused" in (state.error or "")


def test_external_interrupt_is_recorded_as_user_stop() -> None:
    client = FakeClient()
    client.fail_on[3] = KeyboardInterrupt()
    driver = UploadDriver(client, ten_chunk_plan())

    with pytest.raises(KeyboardInterrupt):
        driver.run()

    assert driver.state.status is UploadStatus.FAILED
    assert driver.state.stopped_by_user
    assert driver.state.current_chunk == 3
    assert driver.state.next_chunk == 3


# --------------------------------------------------
# Operator actions
# --------------------------------------------------
def test_manual_mode_pauses_after_each_chunk() -> None:
    client = FakeClient()
    driver = UploadDriver(client, ten_chunk_plan(), auto_upload=False)

    state = driver.run()
    assert state.status is UploadStatus.PAUSED
    assert (state.current_chunk, state.next_chunk) == (1, 2)

    pauses = 1
    while state.status is UploadStatus.PAUSED:
        state = driver.resume()
        pauses += state.status is UploadStatus.PAUSED

    assert pauses == 9
    assert state.status is UploadStatus.COMPLETED
    assert client.sent == list(range(1, 11))


def test_stop_takes_effect_before_next_chunk() -> None:
    client = FakeClient()
    driver = UploadDriver(client, ten_chunk_plan())

    def stop_on_three(s: UploadState) -> None:
        if s.status is UploadStatus.RUNNING and s.current_chunk == 3:
            driver.stop()

    driver.on_progress = stop_on_three
    state = driver.run()

    assert client.sent == [1, 2, 3]
    assert state.status is UploadStatus.FAILED
    assert state.stopped_by_user
    assert state.error == STOPPED_BY_USER
    assert state.next_chunk == 4

    driver.on_progress = None
    assert driver.resume().status is UploadStatus.COMPLETED
    assert client.sent == list(range(1, 11))


def test_cancel_resets_local_state() -> None:
    driver = UploadDriver(FakeClient(fail_on=[5]), ten_chunk_plan())
    driver.run()
    driver.cancel()
    assert driver.state == UploadState(total_chunks=10)
    assert driver.id_remapping is None


def test_run_rejects_reentry_and_bad_chunk() -> None:
    driver = UploadDriver(FakeClient(), ten_chunk_plan())
    with pytest.raises(ValueError):
        driver.run(11)
    driver.state.status = UploadStatus.RUNNING
    with pytest.raises(UploadError):
        driver.run()


def test_cancel_during_run_leaves_reset_state() -> None:
    client = FakeClient()
    driver = UploadDriver(client, ten_chunk_plan())

    def cancel_on_three(s: UploadState) -> None:
        if s.status is UploadStatus.RUNNING and s.current_chunk == 3:
            driver.cancel()

    driver.on_progress = cancel_on_three
    driver.run()

    assert client.sent == [1, 2]
    assert driver.state == UploadState(total_chunks=10)
    assert driver.id_remapping is None


def test_cancel_while_setup_chunk_in_flight_drops_remapping() -> None:
    driver: UploadDriver

    class CancellingClient(FakeClient):
        def insert_dimensions(self, form_types, extensions):  # type: ignore[no-untyped-def]
            response = super().insert_dimensions(form_types, extensions)
            driver.cancel()
            return response

    client = CancellingClient()
    driver = UploadDriver(client, ten_chunk_plan())
    driver.run()

    assert client.sent == [1]
    assert driver.id_remapping is None
    assert driver.state == UploadState(total_chunks=10)
