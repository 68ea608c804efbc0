"""Chunked, resumable upload of a prepared import to the filings API.

`chunk_plan` lays out the ordered chunks, `api_client` wraps the HTTP
endpoints, and `driver` runs the pause/resume/cancel state machine.
"""
