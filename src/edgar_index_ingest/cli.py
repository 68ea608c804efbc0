"""Command-line interface for the ingest pipeline.

Provides subcommands: `preview`, `count`, `parse`, `plan`, `upload`,
`status`, `setup` and `fetch`. Each command is implemented as a `cmd_*`
function that accepts an argparse namespace.
"""
from __future__ import annotations

import argparse
import logging
import signal
from datetime import date
from pathlib import Path

import requests  # type: ignore[import-untyped]
from dotenv import load_dotenv
from pydantic import ValidationError

from edgar_index_ingest.config import Settings, get_settings, require_user_agent
from edgar_index_ingest.exceptions import IngestError
from edgar_index_ingest.logging_config import configure_logging
from edgar_index_ingest.records import PreparedImport, ProcessingStats

# INGEST
from edgar_index_ingest.ingest.count_rows import count_data_rows
from edgar_index_ingest.ingest.fetch_index import IndexTarget, download_master_idx
from edgar_index_ingest.ingest.parse_index import parse_master_index
from edgar_index_ingest.ingest.stream import IndexSource, preview_lines

# UPLOAD
from edgar_index_ingest.upload.api_client import FilingsApiClient
from edgar_index_ingest.upload.chunk_plan import ChunkPlan, chunk_size_presets
from edgar_index_ingest.upload.driver import UploadDriver, UploadState, UploadStatus

log = logging.getLogger(__name__)


# --------------------------------------------------
# Helpers
# --------------------------------------------------
def _source(args: argparse.Namespace) -> IndexSource:
    path = Path(args.file)
    if not path.is_file():
        raise SystemExit(f"File not found: {path}")
    return IndexSource.from_path(path)


def _log_progress(stats: ProcessingStats) -> None:
    log.info(
        "Processed %d rows (%.1f%% of file, %d companies, %d form types)",
        stats.rows_processed,
        stats.percent_read,
        stats.companies_found,
        stats.form_types_found,
    )


def _prepare(args: argparse.Namespace, s: Settings) -> PreparedImport:
    """Run pass 1 (count) and pass 2 (parse) over the selected file."""
    source = _source(args)
    total = count_data_rows(source, read_size=s.read_size, encoding=s.index_encoding)
    log.info("%s: %d data rows", source.name, total)

    row_limit = args.test_rows if args.test_rows else None
    return parse_master_index(
        source,
        row_limit=row_limit,
        on_progress=_log_progress,
        read_size=s.read_size,
        encoding=s.index_encoding,
    )


def _log_upload_state(state: UploadState) -> None:
    log.debug(
        "Upload %s: chunk %d/%d (%d%%)",
        state.status.value,
        state.current_chunk,
        state.total_chunks,
        state.progress,
    )


def _ask(prompt: str) -> str:
    """Read an operator answer with the default Ctrl-C behaviour.

    Ctrl-C or end of input at the prompt counts as `q`.
    """
    handler = signal.signal(signal.SIGINT, signal.default_int_handler)
    try:
        return input(prompt).strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        return "q"
    finally:
        signal.signal(signal.SIGINT, handler)


# --------------------------------------------------
# INSPECT
# --------------------------------------------------
def cmd_preview(args: argparse.Namespace) -> None:
    """Print the first lines of a file, raw unless `--decompress` is given."""
    lines = preview_lines(_source(args), limit=args.lines, decompress=args.decompress)
    for i, line in enumerate(lines, start=1):
        print(f"{i:>2}: {line}")


def cmd_count(args: argparse.Namespace) -> None:
    """Pass 1 only: print the number of data rows."""
    s = get_settings()
    source = _source(args)
    total = count_data_rows(source, read_size=s.read_size, encoding=s.index_encoding)
    print(total)
    print("chunk size presets:", ", ".join(f"{p:,}" for p in chunk_size_presets(total)))


def cmd_parse(args: argparse.Namespace) -> None:
    """Run both passes and print a summary of the normalized data."""
    s = get_settings()
    prepared = _prepare(args, s)
    print(f"form types: {len(prepared.form_types):,}")
    print(f"extensions: {len(prepared.extensions):,}")
    print(f"companies:  {len(prepared.companies):,}")
    print(f"filings:    {len(prepared.filings):,}")
    if prepared.stats.reached_limit:
        print(f"(stopped at test row limit {args.test_rows:,})")


def cmd_plan(args: argparse.Namespace) -> None:
    """Show how a file would be split into upload chunks."""
    s = get_settings()
    prepared = _prepare(args, s)
    plan = ChunkPlan(prepared, args.chunk_size or s.chunk_size)
    print(plan.to_frame().to_string(index=False))
    print(f"total chunks: {plan.total_chunks}")


# --------------------------------------------------
# UPLOAD
# --------------------------------------------------
def cmd_upload(args: argparse.Namespace) -> int:
    """Parse a file and upload it chunk by chunk.

    Returns:
        Process exit code: 0 when completed or paused by the operator,
        1 when the upload failed or was stopped and the operator quit
        instead of retrying.
    """
    s = get_settings()
    client = FilingsApiClient.from_settings(s)

    status = client.setup_status()
    if not status.tables_exist:
        raise RuntimeError("Filings tables do not exist. Run `setup` first.")

    prepared = _prepare(args, s)
    plan = ChunkPlan(prepared, args.chunk_size or s.chunk_size)
    log.info("Upload plan: %d chunks of up to %d records", plan.total_chunks, plan.chunk_size)

    driver = UploadDriver(
        client,
        plan,
        auto_upload=not args.manual,
        strict_id_mapping=args.strict_ids or s.strict_id_mapping,
        on_progress=_log_upload_state,
    )

    start = args.start_chunk
    if start > plan.total_chunks:
        raise SystemExit(f"--start-chunk must be in 1..{plan.total_chunks}, got {start}")
    if start > 1:
        # ID mappings live only in this process; chunk 1 rebuilds them
        log.warning("Starting at chunk %d: re-sending chunk 1 to rebuild ID mappings", start)
        try:
            driver.send_chunk(1)
        except (IngestError, requests.RequestException, ValidationError) as exc:
            raise SystemExit(f"Could not rebuild ID mappings from chunk 1: {exc}") from exc

    # Ctrl-C only stops before the next chunk; the in-flight request finishes
    previous = signal.signal(signal.SIGINT, lambda *_: driver.stop())
    try:
        state = driver.run(start)
        while state.status in (UploadStatus.PAUSED, UploadStatus.FAILED):
            if state.status is UploadStatus.FAILED:
                print(f"Chunk {state.current_chunk} failed: {state.error}")
                prompt = f"Enter to retry from chunk {state.next_chunk}, q to quit: "
            else:
                prompt = (
                    f"Chunk {state.current_chunk}/{state.total_chunks} done. "
                    f"Enter to send chunk {state.next_chunk}, q to quit: "
                )
            if _ask(prompt) == "q":
                break
            state = driver.resume()
    finally:
        signal.signal(signal.SIGINT, previous)

    if state.status is UploadStatus.PAUSED:
        print(f"Paused before chunk {state.next_chunk} of {state.total_chunks}.")
        return 0

    c = state.counts
    print(
        f"{state.status.value}: form types={c.form_types} extensions={c.extensions} "
        f"companies={c.companies} filings={c.filings}"
    )
    if state.status is UploadStatus.FAILED:
        print(f"error at chunk {state.current_chunk}: {state.error}")
        return 1

    stats = client.stats()
    print(f"store totals: filings={stats.filings:,} companies={stats.companies:,} form types={stats.form_types:,}")
    return 0


# --------------------------------------------------
# SERVER
# --------------------------------------------------
def cmd_status(_: argparse.Namespace) -> None:
    """Print setup status and, when tables exist, aggregate counts."""
    client = FilingsApiClient.from_settings(get_settings())
    status = client.setup_status()
    print(f"configured={status.configured} tables_exist={status.tables_exist}")
    if status.tables_exist:
        stats = client.stats()
        print(f"filings={stats.filings:,} companies={stats.companies:,} form types={stats.form_types:,}")


def cmd_setup(args: argparse.Namespace) -> None:
    """Create the filings tables on the server."""
    client = FilingsApiClient.from_settings(get_settings())
    result = client.setup(args.connection_string)
    if not result.success:
        raise RuntimeError(result.error or "Failed to setup tables")
    log.info("Filings tables ready.")


def cmd_fetch(args: argparse.Namespace) -> None:
    """Download a daily or quarterly master index into the local cache."""
    s = get_settings()
    if args.day:
        target = IndexTarget.for_day(date.fromisoformat(args.day))
    else:
        if args.year is None or args.quarter is None:
            raise SystemExit("fetch needs --day or both --year and --quarter")
        target = IndexTarget(year=args.year, quarter=args.quarter)
    path = download_master_idx(target, s.edgar_data_dir, require_user_agent(s))
    print(path)


# --------------------------------------------------
# CLI
# --------------------------------------------------
def _add_file_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("file", help="master index file (.idx, .txt or .gz)")
    p.add_argument("--test-rows", type=int, default=None, help="stop after N filings (test mode)")


def build_parser() -> argparse.ArgumentParser:
    """Build and return the top-level argument parser for the CLI.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    p = argparse.ArgumentParser(prog="edgar-index-ingest")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_preview = sub.add_parser("preview")
    p_preview.add_argument("file")
    p_preview.add_argument("--lines", type=int, default=50)
    p_preview.add_argument("--decompress", action="store_true", help="show .gz content as decoded text")

    p_count = sub.add_parser("count")
    p_count.add_argument("file")

    _add_file_args(sub.add_parser("parse"))

    p_plan = sub.add_parser("plan")
    _add_file_args(p_plan)
    p_plan.add_argument("--chunk-size", type=int, default=None)

    p_upload = sub.add_parser("upload")
    _add_file_args(p_upload)
    p_upload.add_argument("--chunk-size", type=int, default=None)
    p_upload.add_argument("--start-chunk", type=int, default=0)
    p_upload.add_argument("--manual", action="store_true", help="pause after every chunk")
    p_upload.add_argument("--strict-ids", action="store_true")

    sub.add_parser("status")

    p_setup = sub.add_parser("setup")
    p_setup.add_argument("--connection-string", default=None)

    p_fetch = sub.add_parser("fetch")
    p_fetch.add_argument("--day", default=None, help="YYYY-MM-DD for a daily index")
    p_fetch.add_argument("--year", type=int, default=None)
    p_fetch.add_argument("--quarter", type=int, choices=[1, 2, 3, 4], default=None)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entry point: parse args, configure logging and dispatch commands."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(Path("logs/ingest.log"), level=logging.DEBUG if args.verbose else logging.INFO)

    if args.cmd == "preview":
        cmd_preview(args)
    elif args.cmd == "count":
        cmd_count(args)
    elif args.cmd == "parse":
        cmd_parse(args)
    elif args.cmd == "plan":
        cmd_plan(args)
    elif args.cmd == "upload":
        return cmd_upload(args)
    elif args.cmd == "status":
        cmd_status(args)
    elif args.cmd == "setup":
        cmd_setup(args)
    elif args.cmd == "fetch":
        cmd_fetch(args)
    else:
        raise SystemExit(2)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
