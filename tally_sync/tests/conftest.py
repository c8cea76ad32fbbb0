"""
Shared fixtures.

FakeDatabase runs the generated SQL against an in-memory SQLite database so
tenant scoping and bookkeeping can be checked on real rows.
"""
import sqlite3
import pytest

from tally_sync.config import SyncConfig, Tenant
from tally_sync.exceptions import LoadError
from tally_sync.schema import TableField, TableSchema, TableSchemas


def _rgt(value, n):
    if value is None:
        return None
    return value[-n:] if n > 0 else ""


def _sqlite(sql):
    # "right" is a keyword in SQLite 3.39+, so the function is registered as rgt
    return sql.replace("right(value,", "rgt(value,")


class FakeDatabase:
    """Stand-in for Database backed by sqlite3."""

    def __init__(self):
        self.conn = sqlite3.connect(":memory:")
        self.conn.create_function("rgt", 2, _rgt)
        self.opened = 0
        self.closed = 0
        self.statements = []

    def create_table(self, name, columns):
        self.conn.execute(f"create table {name} ({', '.join(columns)})")

    def open_pool(self):
        self.opened += 1

    def close_pool(self):
        self.closed += 1

    def execute_scalar(self, sql):
        row = self.conn.execute(_sqlite(sql)).fetchone()
        return row[0] if row else None

    def execute_non_query(self, sql):
        statements = [sql] if isinstance(sql, str) else list(sql)
        current = None
        try:
            with self.conn:
                for current in statements:
                    self.conn.execute(_sqlite(current))
        except sqlite3.Error as e:
            raise LoadError(f"Statement failed: {e}", statement=current) from e
        self.statements.extend(statements)
        return len(statements)

    def rows(self, sql):
        return self.conn.execute(sql).fetchall()


@pytest.fixture
def tenant():
    return Tenant(company_id="C1", division_id="D1", name="Acme", server="http://tally:9000")


@pytest.fixture
def group_schema():
    return TableSchema(
        name="mst_group",
        collection="Group",
        fields=(
            TableField(name="guid", field="Guid"),
            TableField(name="name", field="Name"),
        ),
    )


@pytest.fixture
def voucher_schema():
    return TableSchema(
        name="trn_voucher",
        collection="Voucher",
        fields=(
            TableField(name="guid", field="Guid"),
            TableField(name="date", field="Date", type="date"),
            TableField(name="amount", field="Amount", type="amount"),
        ),
        filters=("NOT $IsCancelled",),
    )


@pytest.fixture
def schemas(group_schema, voucher_schema):
    return TableSchemas([group_schema], [voucher_schema])


@pytest.fixture
def fake_db():
    db = FakeDatabase()
    db.create_table("config", ["name", "value"])
    db.create_table("mst_group", ["company_id", "division_id", "guid", "name"])
    db.create_table("trn_voucher", ["company_id", "division_id", "guid", "date", "amount"])
    return db


@pytest.fixture
def sync_config(tmp_path, tenant, monkeypatch):
    monkeypatch.delenv("TALLY_URL", raising=False)
    return SyncConfig(
        db_technology="postgres",
        db_url="postgresql://test@localhost/test",
        sync_mode="full",
        from_date="auto",
        to_date="auto",
        import_master=True,
        import_transaction=True,
        truncate=True,
        csv_dir=tmp_path / "csv",
        tenants=[tenant],
    )
