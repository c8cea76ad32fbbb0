"""
Per-tenant bookkeeping in the target database's config table.

The config table is shared by all tenants: every value is stored as
"<value>_<company_id>_<division_id>" under a fixed name, e.g.
name='Last AlterID Master', value='1520_C1_D1'.
"""
from __future__ import annotations
from datetime import date, datetime
from typing import Optional
from loguru import logger

from ..config import Tenant
from ..models import AlterIds, CompanyInfo
from ..parsers.base import parse_int
from .base import Database
from .dialects import Dialect

CONFIG_TABLE = "config"

COMPANY_NAME = "Company Name"
COMPANY_GUID = "Company GUID"
COMPANY_ID = "Company ID"
DIVISION_ID = "Division ID"
LAST_ALTER_ID_MASTER = "Last AlterID Master"
LAST_ALTER_ID_TRANSACTION = "Last AlterID Transaction"
PERIOD_FROM = "Period From"
PERIOD_TO = "Period To"
LAST_SYNC = "Last Sync"


def tenant_suffix(tenant: Tenant) -> str:
    return f"_{tenant.company_id}_{tenant.division_id}"


class BookkeepingStore:
    """Reads and writes the tenant-suffixed rows of the config table."""

    def __init__(self, database: Database, dialect: Dialect, table: str = CONFIG_TABLE):
        self.database = database
        self.dialect = dialect
        self.table = table

    def _match(self, name: str, tenant: Tenant) -> str:
        q = self.dialect.quote_text
        suffix = tenant_suffix(tenant)
        return f"name = {q(name)} and right(value, {len(suffix)}) = {q(suffix)}"

    def read(self, name: str, tenant: Tenant) -> Optional[str]:
        """Stored value for the tenant, without its suffix (None if absent)."""
        value = self.database.execute_scalar(
            f"select value from {self.table} where {self._match(name, tenant)}"
        )
        if value is None:
            return None
        return str(value)[: -len(tenant_suffix(tenant))]

    def stored_alter_ids(self, tenant: Tenant) -> AlterIds:
        """AlterIDs recorded by the last successful sync (0 when never synced)."""
        return AlterIds(
            parse_int(self.read(LAST_ALTER_ID_MASTER, tenant)),
            parse_int(self.read(LAST_ALTER_ID_TRANSACTION, tenant)),
        )

    def save_statements(self, tenant: Tenant, values: dict[str, str]) -> list[str]:
        q = self.dialect.quote_text
        suffix = tenant_suffix(tenant)
        statements = []
        for name, value in values.items():
            statements.append(f"delete from {self.table} where {self._match(name, tenant)}")
            statements.append(
                f"insert into {self.table} (name, value) values ({q(name)}, {q(str(value) + suffix)})"
            )
        return statements

    def save(self, tenant: Tenant, values: dict[str, str]):
        """Upsert the given keys for the tenant in one transaction."""
        self.database.execute_non_query(self.save_statements(tenant, values))

    def save_sync(
        self,
        tenant: Tenant,
        company: CompanyInfo,
        alter_ids: AlterIds,
        from_date: date,
        to_date: date,
    ):
        """Record the outcome of a successful tenant sync."""
        self.save(
            tenant,
            {
                COMPANY_NAME: company.name,
                COMPANY_GUID: company.guid,
                COMPANY_ID: tenant.company_id,
                DIVISION_ID: tenant.division_id,
                LAST_ALTER_ID_MASTER: str(alter_ids.master),
                LAST_ALTER_ID_TRANSACTION: str(alter_ids.transaction),
                PERIOD_FROM: from_date.isoformat(),
                PERIOD_TO: to_date.isoformat(),
                LAST_SYNC: datetime.now().isoformat(timespec="seconds"),
            },
        )
        logger.debug(f"Saved bookkeeping for {tenant.label}: AlterIDs {alter_ids.master}/{alter_ids.transaction}")
