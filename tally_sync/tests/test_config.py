"""
Tests for configuration and table schema loading.
"""
import json
import pytest
from tally_sync.config import SyncConfig, Tenant, load_config
from tally_sync.exceptions import ConfigurationError
from tally_sync.schema import TableField, TableSchema, load_table_schemas, parse_table_schemas

CONFIG = {
    "database": {"technology": "mysql", "url": "mysql://u:p@localhost/tally", "batch_rows": 500},
    "tally": {"sync": "incremental", "fromdate": "auto", "todate": "2025-03-31", "truncate": False},
    "companies": [
        {
            "company_id": "C1",
            "name": "Acme",
            "server": "http://tally-a:9000",
            "divisions": [
                {"division_id": "D1"},
                {"division_id": "D2", "server": "https://tally-b:9443", "company": "Acme Branch"},
            ],
        }
    ],
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TALLY_URL", "DB_TECHNOLOGY", "DB_URL", "TALLY_SYNC_MODE", "TALLY_FROM_DATE", "TALLY_TO_DATE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    def write(data):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path
    return write


class TestSyncConfig:
    """Tests for configuration handling."""

    def test_load(self, config_file):
        config = load_config(config_file(CONFIG))
        assert config.db_technology == "mysql"
        assert config.max_batch_rows == 500
        assert config.max_statement_bytes == 50000
        assert config.sync_mode == "incremental"
        assert config.supports_incremental
        assert config.truncate is False
        assert [t.key for t in config.tenants] == ["C1_D1", "C1_D2"]

    def test_division_inherits_company(self, config_file):
        d1, d2 = load_config(config_file(CONFIG)).tenants
        assert d1.server == "http://tally-a:9000"
        assert d1.company is None
        assert d1.name == "Acme"
        assert d2.server == "https://tally-b:9443"
        assert d2.company == "Acme Branch"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "nope.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_bad_date(self, config_file):
        data = dict(CONFIG, tally={"fromdate": "01/04/2024"})
        with pytest.raises(ConfigurationError) as exc:
            load_config(config_file(data))
        assert "from date" in str(exc.value)

    def test_impossible_date(self):
        config = SyncConfig(to_date="2025-02-30", tenants=[Tenant(company_id="C", division_id="D")])
        assert any("not a valid date" in e for e in config.validate())

    def test_validation_errors(self):
        config = SyncConfig(db_technology="oracle", sync_mode="sometimes", db_url="x")
        errors = config.validate()
        assert any("technology" in e for e in errors)
        assert any("sync mode" in e for e in errors)
        assert any("at least one" in e for e in errors)

    def test_duplicate_tenant_and_bad_server(self):
        tenant = Tenant(company_id="C", division_id="D", server="tally:9000")
        errors = SyncConfig(db_url="x", tenants=[tenant, tenant]).validate()
        assert any("duplicate" in e for e in errors)
        assert any("http://" in e for e in errors)

    def test_csv_needs_no_database(self):
        config = SyncConfig(db_technology="csv", db_url="", tenants=[Tenant(company_id="C", division_id="D")])
        assert config.validate() == []
        assert not config.uses_database
        assert not config.supports_incremental

    def test_bad_division_declaration(self, config_file):
        data = dict(CONFIG, companies=[{"company_id": "C1", "divisions": [{"name": "no id"}]}])
        with pytest.raises(ConfigurationError):
            load_config(config_file(data))

    def test_from_env_single_tenant(self, monkeypatch):
        monkeypatch.setenv("TALLY_URL", "http://localhost:9000")
        config = SyncConfig.from_env()
        assert len(config.tenants) == 1
        assert config.tenants[0].server == "http://localhost:9000"

    def test_underscore_in_id_rejected(self, config_file):
        data = dict(CONFIG, companies=[{"company_id": "X_C1", "divisions": [{"division_id": "D1"}]}])
        with pytest.raises(ConfigurationError):
            load_config(config_file(data))

    def test_from_env_underscore_id(self, monkeypatch):
        monkeypatch.setenv("TALLY_URL", "http://localhost:9000")
        monkeypatch.setenv("TALLY_DIVISION_ID", "HO_1")
        with pytest.raises(ConfigurationError):
            SyncConfig.from_env()


class TestTableSchemas:
    """Tests for YAML table definitions."""

    def test_default_definition(self):
        schemas = load_table_schemas(SyncConfig().tables_file)
        master = [t.name for t in schemas.master]
        transaction = [t.name for t in schemas.transaction]
        assert "mst_ledger" in master
        assert "trn_accounting" in transaction
        assert all("guid" in t.field_names for t in schemas.all)

    def test_select(self):
        schemas = load_table_schemas(SyncConfig().tables_file).select(["mst_ledger"])
        assert [t.name for t in schemas.all] == ["mst_ledger"]

    def test_select_unknown(self):
        with pytest.raises(ConfigurationError):
            load_table_schemas(SyncConfig().tables_file).select(["mst_nothing"])

    def test_invalid_type(self):
        document = {"master": [{"name": "t", "collection": "Group", "fields": [{"name": "a", "field": "A", "type": "blob"}]}]}
        with pytest.raises(ConfigurationError):
            parse_table_schemas(document)

    def test_no_fields(self):
        with pytest.raises(ConfigurationError):
            parse_table_schemas({"master": [{"name": "t", "collection": "Group", "fields": []}]})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text("master: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_table_schemas(path)

    def test_with_filters_copies(self):
        schema = TableSchema(name="t", collection="Voucher", fields=(TableField(name="guid", field="Guid"),))
        filtered = schema.with_filters("$AlterID > 3")
        assert filtered.filters == ("$AlterID > 3",)
        assert schema.filters == ()
