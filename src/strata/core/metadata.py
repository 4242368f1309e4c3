"""Backup sidecar metadata models.

The sidecar is a JSON object written next to every table bundle::

    {
      "name": "team",
      "branch": "main",
      "commit": "3f2a9c1",
      "date": "2025-01-04T17:22:05.118000Z",
      "hash": "9b1e...",
      "version": [1, 2, 0],
      "schema": [{"columnName": "id", "dataType": "INTEGER"}, ...]
    }

Every field is required; a sidecar missing any of them is rejected on load.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

IDENTIFIER = r"^[A-Za-z_][A-Za-z0-9_]*$"
# "character varying(255)", "timestamp with time zone", "int[]"; SQLite allows no type at all
DATA_TYPE = r"^([A-Za-z][A-Za-z0-9_ ,()\[\]-]*)?$"


class ColumnSchema(BaseModel):
    """One column of a table's physical structure, as reported by the catalog."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    column_name: str = Field(..., pattern=IDENTIFIER, alias="columnName", description="Storage column name")
    data_type: str = Field(..., pattern=DATA_TYPE, alias="dataType", description="Declared type, used for restore coercion")


class TableMetadata(BaseModel):
    """Sidecar describing one table bundle."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., pattern=IDENTIFIER, description="Storage table name")
    branch: str = Field(..., description="VCS branch at bundle creation")
    commit: str = Field(..., description="Short VCS commit at bundle creation")
    date: datetime = Field(..., description="Bundle creation time (ISO-8601)")
    hash: str = Field(..., pattern=r"^[0-9a-f]+$", description="Table content hash")
    version: tuple[int, int, int] = Field(..., description="Database version at bundle creation")
    columns: list[ColumnSchema] = Field(..., alias="schema", description="Table schema at bundle creation")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


__all__ = [
    "ColumnSchema",
    "TableMetadata",
]
