"""Pydantic models for the filings API wire format.

Request models serialize with the camelCase names the API expects; response
models ignore unknown fields so that server-side additions do not break the
client.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from edgar_index_ingest.records import Company, FilingRecord


class CompanyPayload(BaseModel):
    """Company row as sent to the bulk-insert endpoint."""
    model_config = ConfigDict(extra="forbid")
    cik: int = Field(..., ge=0)
    name: str


class FilingPayload(BaseModel):
    """Filing row as sent to the bulk-insert endpoint (server dimension IDs)."""
    model_config = ConfigDict(extra="forbid")
    cik: int = Field(..., ge=0)
    form_type_id: int
    filed_date: int
    accession_filer: int
    accession_seq: int
    ext_id: int


class BulkInsertRequest(BaseModel):
    """Body of `POST /api/admin/sec/filings/bulk-insert`.

    Exactly one of the four collections is non-empty per chunk, except for
    chunk 1 which carries both form types and extensions.
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    form_types: list[str] = Field(default_factory=list, alias="formTypes")
    extensions: list[str] = Field(default_factory=list)
    companies: list[CompanyPayload] = Field(default_factory=list)
    filings: list[FilingPayload] = Field(default_factory=list)

    @classmethod
    def for_dimensions(cls, form_types: list[str], extensions: list[str]) -> BulkInsertRequest:
        return cls(form_types=form_types, extensions=extensions)

    @classmethod
    def for_companies(cls, companies: list[Company]) -> BulkInsertRequest:
        return cls(companies=[CompanyPayload(cik=c.cik, name=c.name) for c in companies])

    @classmethod
    def for_filings(cls, filings: list[FilingRecord]) -> BulkInsertRequest:
        return cls(filings=[FilingPayload(**f._asdict()) for f in filings])

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DimensionInsertResponse(BaseModel):
    """Response to the dimension-only (chunk 1) call."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    form_type_map: dict[str, int] = Field(default_factory=dict, alias="formTypeMap")
    extension_map: dict[str, int] = Field(default_factory=dict, alias="extensionMap")

    @field_validator("form_type_map", "extension_map", mode="before")
    @classmethod
    def _null_map_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class FilingInsertResponse(BaseModel):
    """Response to a filing chunk; `inserted` may differ from the slice size."""
    model_config = ConfigDict(extra="ignore")
    inserted: int | None = Field(default=None, ge=0)


class SetupStatus(BaseModel):
    """Whether the target tables exist on the server."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    tables_exist: bool = Field(default=False, alias="tablesExist")
    configured: bool = False
    error: str | None = None


class DbStats(BaseModel):
    """Aggregate row counts in the target store."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    filings: int = 0
    companies: int = 0
    form_types: int = Field(default=0, alias="formTypes")


class SetupResponse(BaseModel):
    """Response to the table setup call."""
    model_config = ConfigDict(extra="ignore")
    success: bool = False
    error: str | None = None
