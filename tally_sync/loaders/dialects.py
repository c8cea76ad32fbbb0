"""
SQL literal encoding per target dialect.
"""
from __future__ import annotations
from dataclasses import dataclass

from ..exceptions import ConfigurationError

# Tally emits $$StrByCharCode:241 for an empty date
DATE_NULL_SENTINEL = "ñ"

NUMERIC_TYPES = ("logical", "number", "amount", "quantity", "rate")


@dataclass(frozen=True)
class Dialect:
    name: str
    # MySQL and BigQuery treat backslash as an escape inside string literals
    escape_backslash: bool = False
    # SQL Server needs N'...' for non-ASCII text
    wide_prefix: bool = False

    def quote_text(self, value: str) -> str:
        value = value.replace("'", "''")
        if self.escape_backslash:
            value = value.replace("\\", "\\\\")
        prefix = "N" if self.wide_prefix and not value.isascii() else ""
        return f"{prefix}'{value}'"

    def encode(self, value: str, field_type: str) -> str:
        """Render one raw field value as a SQL literal."""
        if field_type == "date":
            value = value.strip()
            if not value or value == DATE_NULL_SENTINEL:
                return "NULL"
            return self.quote_text(value)
        if field_type in NUMERIC_TYPES:
            value = value.strip()
            return value if value else "0"
        return self.quote_text(value)


DIALECTS = {
    "postgres": Dialect("postgres"),
    "mysql": Dialect("mysql", escape_backslash=True),
    "mssql": Dialect("mssql", wide_prefix=True),
    "bigquery": Dialect("bigquery", escape_backslash=True),
}


def get_dialect(technology: str) -> Dialect:
    try:
        return DIALECTS[technology]
    except KeyError:
        raise ConfigurationError(f"No SQL dialect for {technology}") from None
