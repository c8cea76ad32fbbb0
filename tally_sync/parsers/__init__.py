"""
Parsers for Tally responses.

- Report output: tagged rows flattened into tab-separated text
- Company info: bookkeeping report (name, GUID, period, AlterIDs)
"""

from .base import sanitize_xml, parse_xml, parse_tally_date, parse_int
from .company import parse_company_info
from .output import normalize_output, split_rows, ROW_SEPARATOR, FIELD_SEPARATOR

__all__ = [
    "sanitize_xml",
    "parse_xml",
    "parse_tally_date",
    "parse_int",
    "parse_company_info",
    "normalize_output",
    "split_rows",
    "ROW_SEPARATOR",
    "FIELD_SEPARATOR",
]
