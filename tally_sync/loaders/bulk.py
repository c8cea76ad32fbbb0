"""
Batched, tenant-scoped loading of exported rows.

Every table holds rows of all tenants, so each row is prefixed with the
tenant's company_id and division_id, and truncation only deletes the rows of
the tenant being synced.
"""
from __future__ import annotations
from pathlib import Path
from typing import Iterable, Optional
from loguru import logger

from ..config import Tenant
from ..exceptions import LoadError
from ..parsers.output import ROW_SEPARATOR, split_rows
from ..schema import TableSchema
from .base import Database
from .dialects import Dialect

TENANT_COLUMNS = ["company_id", "division_id"]

DEFAULT_MAX_STATEMENT_BYTES = 50000
DEFAULT_MAX_BATCH_ROWS = 1000
DELETE_KEYS_PER_STATEMENT = 1000


class BulkLoader:
    """
    Turns normalized rows into batched INSERT statements.

    A batch is closed when the statement would reach max_statement_bytes or
    already holds max_batch_rows rows, whichever comes first.
    """

    def __init__(
        self,
        database: Database,
        dialect: Dialect,
        max_statement_bytes: int = DEFAULT_MAX_STATEMENT_BYTES,
        max_batch_rows: int = DEFAULT_MAX_BATCH_ROWS,
    ):
        self.database = database
        self.dialect = dialect
        self.max_statement_bytes = max_statement_bytes
        self.max_batch_rows = max_batch_rows

    def tenant_predicate(self, tenant: Tenant) -> str:
        q = self.dialect.quote_text
        return f"company_id = {q(tenant.company_id)} and division_id = {q(tenant.division_id)}"

    def encode_row(self, tenant: Tenant, values: list[str], types: list[str]) -> str:
        literals = [self.dialect.quote_text(tenant.company_id), self.dialect.quote_text(tenant.division_id)]
        literals.extend(self.dialect.encode(v, t) for v, t in zip(values, types))
        return "(" + ",".join(literals) + ")"

    def build_insert_statements(self, table: str, columns: list[str], fragments: Iterable[str]) -> list[str]:
        """Group encoded row fragments into INSERT statements."""
        prefix = f"insert into {table} ({','.join(columns)}) values "
        statements = []
        batch: list[str] = []
        length = len(prefix)
        for fragment in fragments:
            if batch and (
                length + len(fragment) + 1 >= self.max_statement_bytes
                or len(batch) >= self.max_batch_rows
            ):
                statements.append(prefix + ",".join(batch))
                batch, length = [], len(prefix)
            batch.append(fragment)
            length += len(fragment) + 1
        if batch:
            statements.append(prefix + ",".join(batch))
        return statements

    def truncate_statements(self, tables: list[str], tenant: Tenant) -> list[str]:
        predicate = self.tenant_predicate(tenant)
        return [f"delete from {table} where {predicate}" for table in tables]

    def truncate(self, tables: list[str], tenant: Tenant):
        """Delete the tenant's rows from every table in one transaction."""
        if not tables:
            return
        try:
            self.database.execute_non_query(self.truncate_statements(tables, tenant))
        except LoadError as e:
            raise LoadError(f"Truncate failed for {tenant.key}", statement=e.statement) from e
        logger.info(f"Truncated {len(tables)} tables for {tenant.label}")

    def delete_keys_statements(
        self, table: str, tenant: Tenant, key_column: str, keys: list[str]
    ) -> list[str]:
        """Statements removing the tenant's rows whose key is about to be re-imported."""
        predicate = self.tenant_predicate(tenant)
        statements = []
        for i in range(0, len(keys), DELETE_KEYS_PER_STATEMENT):
            chunk = keys[i:i + DELETE_KEYS_PER_STATEMENT]
            in_list = ",".join(self.dialect.quote_text(k) for k in chunk)
            statements.append(f"delete from {table} where {predicate} and {key_column} in ({in_list})")
        return statements

    def load_rows(
        self,
        schema: TableSchema,
        tenant: Tenant,
        rows: list[list[str]],
        replace_key: Optional[str] = None,
    ) -> int:
        """
        Insert rows for one tenant.

        Args:
            schema: Target table
            tenant: Tenant whose ids are prepended to every row
            rows: Raw values in field-declaration order
            replace_key: Field whose existing values are deleted first (incremental sync)

        Returns:
            Number of rows written

        Raises:
            LoadError: On a malformed row or a failed write
        """
        if not rows:
            return 0
        types = schema.field_types
        width = len(types)
        for i, row in enumerate(rows, start=1):
            if len(row) != width:
                raise LoadError(
                    f"Row {i} has {len(row)} values, expected {width}", table=schema.name
                )

        statements = []
        if replace_key:
            position = schema.field_names.index(replace_key)
            keys = list(dict.fromkeys(row[position] for row in rows))
            statements.extend(self.delete_keys_statements(schema.name, tenant, replace_key, keys))

        columns = TENANT_COLUMNS + schema.field_names
        fragments = (self.encode_row(tenant, row, types) for row in rows)
        statements.extend(self.build_insert_statements(schema.name, columns, fragments))

        try:
            self.database.execute_non_query(statements)
        except LoadError as e:
            raise LoadError(f"Load failed for {tenant.key}", table=schema.name, statement=e.statement) from e
        logger.debug(f"Wrote {len(rows)} rows to {schema.name} in {len(statements)} statements")
        return len(rows)

    def load_file(
        self,
        path: Path,
        schema: TableSchema,
        tenant: Tenant,
        replace_key: Optional[str] = None,
    ) -> int:
        """Load a table file (header line, then normalized rows)."""
        content = Path(path).read_text(encoding="utf-8")
        header, _, _ = content.partition(ROW_SEPARATOR)
        # the body keeps its leading separator so a lone empty value still counts as a row
        rows = split_rows(content[len(header):])
        return self.load_rows(schema, tenant, rows, replace_key)
