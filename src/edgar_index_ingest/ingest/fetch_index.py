"""Utilities to identify and download SEC master index files.

`IndexTarget` represents either a quarterly full index (year, quarter) or a
single daily index (a specific date). Downloads are cached on disk and can
then be fed to the parser like any other local file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path

log = logging.getLogger(__name__)

BASE = "https://www.sec.gov/Archives"


@dataclass(frozen=True)
class IndexTarget:
    """Target master index file.

    Attributes:
        year: Four-digit year (e.g. 2024).
        quarter: Quarter number (1-4).
        day: Optional filing date; selects the daily index for that date.
    """
    year: int
    quarter: int  # 1-4
    day: date | None = None

    @classmethod
    def for_day(cls, day: date) -> IndexTarget:
        return cls(year=day.year, quarter=(day.month - 1) // 3 + 1, day=day)

    @property
    def file_name(self) -> str:
        if self.day is not None:
            return f"master.{self.day:%Y%m%d}.idx"
        return f"master_{self.year}_QTR{self.quarter}.gz"


def master_idx_url(target: IndexTarget) -> str:
    """Return the SEC master index URL for a target.

    Args:
        target: Quarterly or daily `IndexTarget`.

    Returns:
        Fully-qualified URL string. Quarterly targets point at the gzip
        compressed `master.gz`; daily targets at `master.YYYYMMDD.idx`.
    """
    if target.day is not None:
        return f"{BASE}/edgar/daily-index/{target.year}/QTR{target.quarter}/master.{target.day:%Y%m%d}.idx"
    return f"{BASE}/edgar/full-index/{target.year}/QTR{target.quarter}/master.gz"


def download_master_idx(target: IndexTarget, out_dir: Path, user_agent: str, timeout: float = 60) -> Path:
    """Download or return cached SEC master index file for a target.

    Args:
        target: `IndexTarget` to download.
        out_dir: Local directory to cache downloaded index files.
        user_agent: SEC User-Agent header value to send with the request.
        timeout: Request timeout in seconds.

    Returns:
        Path to the downloaded (or cached) index file.

    Raises:
        requests.HTTPError if the remote request fails (non-2xx status).
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    url = master_idx_url(target)
    out_path = out_dir / target.file_name

    if out_path.exists() and out_path.stat().st_size > 0:
        log.info("Cache hit: %s", out_path)
        return out_path

    log.info("Downloading %s", url)
    import requests  # type: ignore[import-untyped]  # local import to avoid requiring type stubs at module import
    with requests.get(url, headers={"User-Agent": user_agent}, timeout=timeout, stream=True) as r:
        r.raise_for_status()
        tmp_path = out_path.with_suffix(out_path.suffix + ".part")
        with tmp_path.open("wb") as fh:
            for block in r.iter_content(chunk_size=64 * 1024):
                fh.write(block)
        tmp_path.replace(out_path)
    log.info("Saved: %s (%d bytes)", out_path, out_path.stat().st_size)
    return out_path
