"""Streaming ingest of master index files.

Provides the Decoder and Line Splitter (`stream`), the counting pass
(`count_rows`), the parsing pass (`parse_index`) and an optional SEC
archive downloader (`fetch_index`).
"""
