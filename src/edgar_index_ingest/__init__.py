"""edgar_index_ingest package.

Streams SEC EDGAR master index files (plain or gzip-compressed), normalizes
them into dimension dictionaries and compact filing records, and loads them
into a remote filings store through a chunked, resumable upload protocol.

Architecture:
- Decoder → Line Splitter → Row Counter (pass 1) / Index Parser (pass 2)
- Dimension Normalizer assigns dense local IDs
- Chunk Planner + Upload Driver talk to the filings API via `requests`
- Pydantic models validate wire payloads
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
