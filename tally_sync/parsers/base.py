"""
Base utilities for parsing Tally responses.

Provides:
- XML sanitization
- Date parsing
- Integer parsing
"""
from __future__ import annotations
import re
from datetime import datetime, date
from typing import Optional
from lxml import etree
from loguru import logger


def sanitize_xml(xml_text: str) -> str:
    """
    Remove invalid XML characters and fix common issues.

    Tally sometimes produces XML with control characters or invalid sequences.
    """
    if not xml_text:
        return xml_text

    xml_text = xml_text.replace("\x00", "").lstrip("\ufeff")

    # Tally outputs &#4; and similar references to control characters
    xml_text = re.sub(r"&#([0-8]|1[0-2]|1[4-9]|2[0-9]|3[01]);", "", xml_text)
    xml_text = re.sub(r"&#x([0-8bBcCeEfF]|1[0-9a-fA-F]);", "", xml_text)

    # XML 1.0 only allows #x9 | #xA | #xD | [#x20-#xD7FF] | [#xE000-#xFFFD]
    xml_text = re.sub(r"[\x01-\x08\x0B\x0C\x0E-\x1F]", "", xml_text)

    # Unescaped ampersands (but not valid entities)
    xml_text = re.sub(r"&(?!(amp|lt|gt|apos|quot|#\d+|#x[\da-fA-F]+);)", "&amp;", xml_text)

    # lxml refuses str input carrying an encoding declaration
    xml_text = re.sub(r"^\s*<\?xml[^>]*\?>", "", xml_text)

    return xml_text


def parse_xml(xml_text: str) -> etree._Element:
    """Parse a sanitized Tally XML response."""
    return etree.fromstring(sanitize_xml(xml_text).encode("utf-8"))


def parse_tally_date(s: str | None) -> Optional[date]:
    """
    Parse Tally date string to Python date.

    Tally uses multiple date formats:
    - YYYYMMDD
    - YYYY-MM-DD
    - DD-MMM-YYYY (e.g., "01-Apr-2024")

    Returns None for empty or unparseable strings.
    """
    if not s:
        return None

    s = str(s).strip()
    if not s or s.lower() in ("null", "none"):
        return None

    formats = [
        "%Y%m%d",
        "%Y-%m-%d",
        "%d-%b-%Y",
        "%d-%b-%y",
    ]

    for fmt in formats:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue

    logger.warning(f"Could not parse date: {s}")
    return None


def parse_int(s: str | None, default: int = 0) -> int:
    """
    Parse Tally integer string.

    Tally sometimes formats AlterIDs with spaces or commas ("1 234").
    """
    if not s:
        return default

    s = str(s).strip().replace(",", "").replace(" ", "")
    if not s or s.lower() in ("null", "none"):
        return default

    try:
        return int(float(s))
    except ValueError:
        logger.warning(f"Could not parse int: {s}")
        return default
