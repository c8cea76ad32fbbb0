"""
Main sync orchestration.

One pass walks every configured tenant (company x division) in order:

    Idle -> DecidingStrategy -> FullSync | IncrementalSync -> PersistingBookkeeping -> Idle

Full sync optionally truncates the tenant's rows and re-imports every table.
Incremental sync (SQL databases only) compares AlterIDs and re-imports only
the changed category, filtered by $AlterID. A failing tenant is logged and
the pass moves on; failing to open or close the database fails the pass.
"""
from __future__ import annotations
import time
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional
from loguru import logger

from .client import TallyClient
from .config import SyncConfig, Tenant, is_fixed_date
from .exceptions import ConfigurationError, NoCompanyOpenError, TallySyncError
from .loaders import BookkeepingStore, BulkLoader, Database, get_dialect
from .models import AlterIds, CompanyInfo
from .parsers import normalize_output, parse_company_info, split_rows
from .requests import compile_report, company_info_request
from .schema import TableSchema, TableSchemas, load_table_schemas
from .versions import VersionTracker

REPLACE_KEY = "guid"
DATA_SUFFIX = ".data"


@dataclass(frozen=True)
class RunContext:
    """Everything one tenant's sync needs; never shared across tenants."""

    tenant: Tenant
    company: CompanyInfo
    from_date: date
    to_date: date
    import_master: bool
    import_transaction: bool
    truncate: bool
    work_dir: Path

    def substitutions(self) -> dict[str, Any]:
        values: dict[str, Any] = {"fromDate": self.from_date, "toDate": self.to_date}
        if self.tenant.company:
            values["targetCompany"] = self.tenant.company
        return values


def financial_year_start(d: date) -> date:
    """1st April of the financial year containing d."""
    return date(d.year if d.month >= 4 else d.year - 1, 4, 1)


def resolve_period(config: SyncConfig, company: CompanyInfo) -> tuple[date, date]:
    """
    Resolve the from/to dates for one tenant.

    Fixed YYYY-MM-DD values are used as is; anything else ('auto') derives
    from the company's books-from and last voucher dates.
    """
    if is_fixed_date(config.to_date):
        to_date = date.fromisoformat(config.to_date.strip())
    else:
        to_date = company.last_voucher_date or date.today()

    if is_fixed_date(config.from_date):
        from_date = date.fromisoformat(config.from_date.strip())
    else:
        from_date = company.books_from or financial_year_start(to_date)

    return from_date, to_date


class TallySync:
    """
    Multi-tenant synchronization orchestrator.

    Usage:
        config = load_config("config.json")
        sync = TallySync(config)
        results = sync.run()
    """

    def __init__(
        self,
        config: SyncConfig,
        schemas: Optional[TableSchemas] = None,
        database: Optional[Database] = None,
        client_factory: Optional[Callable[[str], TallyClient]] = None,
    ):
        self.config = config
        self.schemas = schemas or load_table_schemas(config.tables_file)
        self._client_factory = client_factory or (
            lambda url: TallyClient(url, timeout=config.request_timeout)
        )
        self._running = False

        if config.uses_database:
            dialect = get_dialect(config.db_technology)
            self.database = database or Database(config)
            self.loader: Optional[BulkLoader] = BulkLoader(
                self.database,
                dialect,
                max_statement_bytes=config.max_statement_bytes,
                max_batch_rows=config.max_batch_rows,
            )
            self.bookkeeping: Optional[BookkeepingStore] = BookkeepingStore(self.database, dialect)
            self.versions: Optional[VersionTracker] = VersionTracker(self.bookkeeping)
        else:
            self.database = None
            self.loader = None
            self.bookkeeping = None
            self.versions = None

    @property
    def is_running(self) -> bool:
        return self._running

    def run(self) -> Optional[dict]:
        """
        Run one sync pass over all tenants.

        Returns:
            Dict of tenant key -> result, or None if a pass was already running
        """
        if self._running:
            logger.warning("A sync pass is already running, skipping this trigger")
            return None

        self._running = True
        started = time.monotonic()
        results = {}
        try:
            if self.database is not None:
                self.database.open_pool()
            try:
                for tenant in self.config.tenants:
                    results[tenant.key] = self._sync_division(tenant)
            finally:
                if self.database is not None:
                    self.database.close_pool()
        finally:
            self._running = False

        elapsed = round(time.monotonic() - started, 3)
        failed = sum(1 for r in results.values() if r["status"] == "failed")
        logger.info(f"Sync pass finished in {elapsed} seconds ({len(results)} divisions, {failed} failed)")
        return results

    def _sync_division(self, tenant: Tenant) -> dict:
        """Sync one tenant, converting its failure into a logged result."""
        logger.info(f"=== Syncing {tenant.label} ===")
        try:
            tables = self.sync_tenant(tenant)
            return {"status": "completed", "tables": tables}
        except ConfigurationError:
            raise
        except NoCompanyOpenError as e:
            logger.warning(f"{tenant.label}: {e}")
            return {"status": "skipped", "tables": {}, "error": str(e)}
        except TallySyncError as e:
            logger.error(f"{tenant.label}: sync failed: {e}")
            return {"status": "failed", "tables": {}, "error": str(e)}
        except Exception as e:
            logger.exception(f"{tenant.label}: unexpected error: {e}")
            return {"status": "failed", "tables": {}, "error": str(e)}

    def sync_tenant(self, tenant: Tenant) -> dict[str, int]:
        """
        Sync one tenant with the configured strategy.

        Returns:
            Dict of table name -> rows imported
        """
        client = self._client_factory(tenant.server)
        try:
            if self.config.sync_mode == "incremental":
                if self.config.supports_incremental:
                    return self._run_incremental(tenant, client)
                logger.info(f"Incremental sync is not available for {self.config.db_technology}, running full sync")
            return self._run_full(tenant, client)
        finally:
            client.close()

    def _run_full(self, tenant: Tenant, client: TallyClient) -> dict[str, int]:
        company = self.fetch_company_info(tenant, client)
        ctx = self._context(tenant, company)
        tables = self._tables(ctx)

        if ctx.truncate and self.loader is not None:
            self.loader.truncate([t.name for t in tables], tenant)

        counts = {}
        for schema in tables:
            counts[schema.name] = self._import_table(ctx, client, schema)

        self._persist(ctx, company.alter_ids)
        return counts

    def _run_incremental(self, tenant: Tenant, client: TallyClient) -> dict[str, int]:
        changes = self.versions.detect(tenant, client)
        if not changes.any_changed:
            logger.info(f"{tenant.label}: no change in Tally data")
            return {}

        company = self.fetch_company_info(tenant, client)
        ctx = self._context(tenant, company)

        counts = {}
        if changes.master_changed and ctx.import_master:
            predicate = f"$AlterID > {changes.stored.master}"
            for schema in self.schemas.master:
                counts[schema.name] = self._import_table(
                    ctx, client, schema.with_filters(predicate), incremental=True
                )
        if changes.transaction_changed and ctx.import_transaction:
            predicate = f"$AlterID > {changes.stored.transaction}"
            for schema in self.schemas.transaction:
                counts[schema.name] = self._import_table(
                    ctx, client, schema.with_filters(predicate), incremental=True
                )

        # AlterIDs read before fetching, so edits made during the fetch are picked up next pass
        self._persist(ctx, changes.live, stored=changes.stored)
        return counts

    def fetch_company_info(self, tenant: Tenant, client: TallyClient) -> CompanyInfo:
        """
        Fetch name, GUID, period and AlterIDs of the tenant's company.

        Raises:
            NoCompanyOpenError: If no company is open in Tally
        """
        company = parse_company_info(client.post_xml(company_info_request(tenant.company)))
        if company is None:
            raise NoCompanyOpenError(client.base_url)
        return company

    def _context(self, tenant: Tenant, company: CompanyInfo) -> RunContext:
        from_date, to_date = resolve_period(self.config, company)
        logger.info(f"{tenant.label}: company '{company.name}', period {from_date} to {to_date}")
        return RunContext(
            tenant=tenant,
            company=company,
            from_date=from_date,
            to_date=to_date,
            import_master=self.config.import_master,
            import_transaction=self.config.import_transaction,
            truncate=self.config.truncate,
            work_dir=self._prepare_work_dir(tenant),
        )

    def _prepare_work_dir(self, tenant: Tenant) -> Path:
        """Create the working directory and clear table files left by an earlier run."""
        work_dir = self.config.csv_dir
        if not self.config.uses_database:
            # csv technology keeps the files, one folder per tenant
            work_dir = work_dir / tenant.key
        work_dir.mkdir(parents=True, exist_ok=True)
        # only table files are ours; anything else in the directory is left alone
        for stale in work_dir.glob(f"*{DATA_SUFFIX}"):
            stale.unlink()
        return work_dir

    def _tables(self, ctx: RunContext) -> list[TableSchema]:
        tables = []
        if ctx.import_master:
            tables.extend(self.schemas.master)
        if ctx.import_transaction:
            tables.extend(self.schemas.transaction)
        return tables

    def _import_table(
        self, ctx: RunContext, client: TallyClient, schema: TableSchema, incremental: bool = False
    ) -> int:
        """Fetch one table from Tally and load it. Returns the row count."""
        started = time.monotonic()

        response = client.post_xml(compile_report(schema, ctx.substitutions()))
        if not response:
            raise NoCompanyOpenError(client.base_url)
        output = normalize_output(response)

        data_file = ctx.work_dir / f"{schema.name}{DATA_SUFFIX}"
        data_file.write_text("\t".join(schema.field_names) + output, encoding="utf-8")

        if self.loader is None:
            rows = len(split_rows(output))
            logger.info(f"  saved {rows} rows to {data_file}")
            return rows

        replace_key = REPLACE_KEY if incremental and REPLACE_KEY in schema.field_names else None
        rows = self.loader.load_file(data_file, schema, ctx.tenant, replace_key=replace_key)
        data_file.unlink()

        elapsed = round(time.monotonic() - started, 3)
        logger.info(f"  {schema.name}: imported {rows} rows in {elapsed} seconds")
        return rows

    def _persist(self, ctx: RunContext, live: AlterIds, stored: Optional[AlterIds] = None):
        """
        Record the sync in the bookkeeping table.

        A category that was not imported keeps its stored AlterID, so its
        edits are still pending for the next pass that imports it.
        """
        if self.bookkeeping is None:
            logger.debug(f"{ctx.tenant.label}: no database, bookkeeping not recorded")
            return
        if not (ctx.import_master and ctx.import_transaction):
            if stored is None:
                stored = self.bookkeeping.stored_alter_ids(ctx.tenant)
            live = AlterIds(
                live.master if ctx.import_master else stored.master,
                live.transaction if ctx.import_transaction else stored.transaction,
            )
        self.bookkeeping.save_sync(ctx.tenant, ctx.company, live, ctx.from_date, ctx.to_date)

    def test_connection(self) -> dict:
        """
        Test every tenant's Tally endpoint.

        Returns:
            Dict of tenant key -> status dict (connected, no_company or failed)
        """
        results = {}
        for tenant in self.config.tenants:
            client = self._client_factory(tenant.server)
            try:
                company = self.fetch_company_info(tenant, client)
                results[tenant.key] = {
                    "status": "connected",
                    "url": tenant.server,
                    "company": company.name,
                    "alter_ids": tuple(company.alter_ids),
                }
            except NoCompanyOpenError as e:
                results[tenant.key] = {"status": "no_company", "url": tenant.server, "error": str(e)}
            except TallySyncError as e:
                results[tenant.key] = {"status": "failed", "url": tenant.server, "error": str(e)}
            finally:
                client.close()
        return results


def run_sync(
    config: SyncConfig,
    tables: Optional[list[str]] = None,
    mode: Optional[str] = None,
) -> Optional[dict]:
    """
    Convenience function to run one sync pass.

    Args:
        config: Validated configuration
        tables: Restrict the pass to these table names
        mode: Override the configured sync mode ('full' or 'incremental')
    """
    if mode:
        if mode not in ("full", "incremental"):
            raise ConfigurationError(f"Unknown mode: {mode}. Valid: full, incremental")
        config = replace(config, sync_mode=mode)
    schemas = load_table_schemas(config.tables_file).select(tables)
    return TallySync(config, schemas=schemas).run()
