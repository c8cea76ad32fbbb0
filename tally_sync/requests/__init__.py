"""
TDL report definitions for the Tally XML export interface.

A table schema is compiled into a report whose parts walk the collection
path one level at a time; the innermost line carries the real fields, each
tagged F01..Fnn so the response can be flattened into tab-separated rows.
Requests are Jinja2 templates rendered from this directory.
"""
from __future__ import annotations
import html
import re
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional
from xml.sax.saxutils import escape
from jinja2 import Environment, FileSystemLoader

from ..exceptions import CompilationError
from ..schema import TableField, TableSchema

# Template directory
TEMPLATE_DIR = Path(__file__).parent

TEMPLATES = {
    "report": "report.xml.j2",
    "alter_ids": "alter_ids.xml.j2",
    "company_info": "company_info.xml.j2",
}

# Plain or parent-relative (..) field names; anything else is a literal formula
_IDENTIFIER = re.compile(r"^(\.\.)?[A-Za-z0-9_]+$")

_EXPRESSIONS = {
    "text": "{ref}",
    "logical": "if {ref} then 1 else 0",
    "date": 'if $$IsEmpty:{ref} then $$StrByCharCode:241 else $$PyrlYYYYMMDDFormat:{ref}:"-"',
    "number": 'if $$IsEmpty:{ref} then "0" else $$String:{ref}',
    "amount": (
        '$$StringFindAndReplace:(if $$IsDebit:{ref} then -$$NumValue:{ref} '
        'else $$NumValue:{ref}):"(-)":"-"'
    ),
    "quantity": (
        '$$StringFindAndReplace:(if $$IsInwards:{ref} then $$Number:$$String:{ref}:"TailUnits" '
        'else -$$Number:$$String:{ref}:"TailUnits"):"(-)":"-"'
    ),
    "rate": "if $$IsEmpty:{ref} then 0 else $$Number:{ref}",
}

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.filters["xmltext"] = escape


def get_template_path(name: str) -> Path:
    """Get path to a template file."""
    if name not in TEMPLATES:
        raise ValueError(f"Unknown template: {name}. Valid: {list(TEMPLATES.keys())}")
    return TEMPLATE_DIR / TEMPLATES[name]


def field_expression(field: TableField) -> str:
    """TDL expression producing the export value of one field."""
    if not _IDENTIFIER.match(field.field):
        return field.field
    template = _EXPRESSIONS.get(field.type)
    if template is None:
        return field.field
    return template.format(ref=f"${field.field}")


def compile_report(schema: TableSchema, substitutions: Optional[Mapping[str, Any]] = None) -> str:
    """
    Compile a table schema into a TDL export request.

    Args:
        schema: Table to export
        substitutions: Optional runtime values (fromDate, toDate, targetCompany).
            Date variables and the company override are only declared when given.

    Returns:
        XML request string

    Raises:
        CompilationError: If the schema has no fields or no collection
    """
    routes = [r.strip() for r in schema.collection.split(".")]
    if not routes or not all(routes):
        raise CompilationError(f"Invalid collection path {schema.collection!r} for {schema.name}")
    if not schema.fields:
        raise CompilationError(f"Table {schema.name} declares no fields")

    collection = routes.pop(0)
    routes.insert(0, "MyCollection")

    parts = [
        {"name": f"MyPart{i + 1:02d}", "line": f"MyLine{i + 1:02d}", "route": route}
        for i, route in enumerate(routes)
    ]
    lines = [
        {"name": f"MyLine{i + 1:02d}", "explode": f"MyPart{i + 2:02d}"}
        for i in range(len(routes) - 1)
    ]
    fields = [
        {"name": f"Fld{i + 1:02d}", "tag": f"F{i + 1:02d}", "expression": field_expression(f)}
        for i, f in enumerate(schema.fields)
    ]
    filters = [
        {"name": f"Fltr{i + 1:02d}", "formula": formula}
        for i, formula in enumerate(schema.filters)
    ]

    substitutions = substitutions or {}
    xml = _env.get_template(TEMPLATES["report"]).render(
        has_dates="fromDate" in substitutions and "toDate" in substitutions,
        has_company=bool(substitutions.get("targetCompany")),
        parts=parts,
        lines=lines,
        field_line=f"MyLine{len(routes):02d}",
        fields=fields,
        collection=collection,
        fetch=list(schema.fetch),
        filters=filters,
    )
    return substitute_parameters(xml, substitutions) if substitutions else xml


def format_tally_date(d: date) -> str:
    """Format a date as d-MMM-yyyy (e.g. 1-Apr-2024)."""
    return f"{d.day}-{d.strftime('%b-%Y')}"


def substitute_parameters(xml: str, substitutions: Mapping[str, Any]) -> str:
    """
    Replace {name} placeholders with runtime values.

    Strings are HTML-escaped, numbers stringified, dates formatted d-MMM-yyyy,
    booleans mapped to Yes/No. Other values are left in place.
    """
    for key, value in substitutions.items():
        placeholder = "{" + key + "}"
        if isinstance(value, bool):
            text = "Yes" if value else "No"
        elif isinstance(value, str):
            text = html.escape(value)
        elif isinstance(value, (int, float)):
            text = str(value)
        elif isinstance(value, date):
            text = format_tally_date(value)
        else:
            continue
        xml = xml.replace(placeholder, text)
    return xml


def alter_id_request(company: Optional[str] = None) -> str:
    """Request for the active company's last master/transaction AlterIDs."""
    return _env.get_template(TEMPLATES["alter_ids"]).render(
        company=html.escape(company) if company else None
    )


def company_info_request(company: Optional[str] = None) -> str:
    """Request for the active company's name, GUID, period and AlterIDs."""
    return _env.get_template(TEMPLATES["company_info"]).render(
        company=html.escape(company) if company else None
    )
