"""
Declarative table schemas.

Each target table is described by the Tally collection it is exported from,
the ordered list of fields with their semantic type, and optional filters and
fetch lists. Schemas are loaded once from YAML and shared read-only.
"""
from __future__ import annotations
from pathlib import Path
from typing import Literal, NamedTuple
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .exceptions import ConfigurationError

FieldType = Literal["text", "logical", "date", "number", "amount", "quantity", "rate"]


class TableField(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    field: str
    type: FieldType = "text"


class TableSchema(BaseModel):
    """One target table and the Tally collection that feeds it."""

    model_config = ConfigDict(frozen=True)

    name: str
    collection: str
    fields: tuple[TableField, ...]
    filters: tuple[str, ...] = ()
    fetch: tuple[str, ...] = ()

    @field_validator("fields")
    @classmethod
    def _fields_not_empty(cls, v):
        if not v:
            raise ValueError("a table needs at least one field")
        return v

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def field_types(self) -> list[str]:
        return [f.type for f in self.fields]

    def with_filters(self, *filters: str) -> "TableSchema":
        """Return a copy with extra filters appended (AND-ed by Tally)."""
        return self.model_copy(update={"filters": self.filters + tuple(filters)})


class TableSchemas(NamedTuple):
    master: list[TableSchema]
    transaction: list[TableSchema]

    @property
    def all(self) -> list[TableSchema]:
        return self.master + self.transaction

    def select(self, names: list[str] | None) -> "TableSchemas":
        """Restrict to the named tables (None keeps everything)."""
        if not names:
            return self
        wanted = set(names)
        unknown = wanted - {t.name for t in self.all}
        if unknown:
            raise ConfigurationError(f"Unknown tables: {', '.join(sorted(unknown))}")
        return TableSchemas(
            [t for t in self.master if t.name in wanted],
            [t for t in self.transaction if t.name in wanted],
        )


def parse_table_schemas(document: dict) -> TableSchemas:
    if not isinstance(document, dict):
        raise ConfigurationError("Table definition must be a mapping with master/transaction lists")
    try:
        master = [TableSchema.model_validate(t) for t in document.get("master") or []]
        transaction = [TableSchema.model_validate(t) for t in document.get("transaction") or []]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid table definition: {e}") from e
    return TableSchemas(master, transaction)


def load_table_schemas(path: str | Path) -> TableSchemas:
    """Load master and transaction table schemas from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Table definition file not found: {path}")
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    return parse_table_schemas(document)
