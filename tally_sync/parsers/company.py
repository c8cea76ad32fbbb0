"""
Parser for the company-info bookkeeping report.
"""
from __future__ import annotations
from typing import Optional
from lxml import etree

from ..exceptions import TallyResponseError
from ..models import AlterIds, CompanyInfo
from .base import parse_xml, parse_tally_date, parse_int


def parse_company_info(xml_text: str) -> Optional[CompanyInfo]:
    """
    Parse the company-info report.

    Returns None when the response carries no company (nothing is open).

    Raises:
        TallyResponseError: If the response is not well-formed XML
    """
    if not xml_text or not xml_text.strip():
        return None
    try:
        root = parse_xml(xml_text)
    except etree.XMLSyntaxError as e:
        raise TallyResponseError(f"Invalid company info XML from Tally: {e}") from e

    name = (root.findtext(".//COMPANYNAME") or "").strip()
    if not name:
        return None

    return CompanyInfo(
        name=name,
        guid=(root.findtext(".//GUID") or "").strip(),
        books_from=parse_tally_date(root.findtext(".//BOOKSFROM")),
        last_voucher_date=parse_tally_date(root.findtext(".//LASTVOUCHERDATE")),
        alter_ids=AlterIds(
            parse_int(root.findtext(".//ALTERMASTER")),
            parse_int(root.findtext(".//ALTERTRANSACTION")),
        ),
    )
