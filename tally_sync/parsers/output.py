"""
Normalization of Tally report output into tab-separated rows.

A data report answers with one block per record, each field wrapped in its
numbered tag (F01..Fnn):

    <ENVELOPE>
        <F01>abc</F01>
        <F02>Sundry Debtors</F02>
        ...
    </ENVELOPE>

The rewrites below turn that into "\\n<f1>\\t<f2>..." with one leading line
break per record. They are order dependent: whitespace and line breaks must be
collapsed before field tags become separators.
"""
from __future__ import annotations
import re

ROW_SEPARATOR = "\n"
FIELD_SEPARATOR = "\t"

_FIELD_TAG = re.compile(r"<F\d+>")

# Envelope and line-break cleanup, safe to apply to any text
_ENVELOPE_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"<ENVELOPE>"), ""),
    (re.compile(r"</ENVELOPE>"), ""),
    (re.compile(r"<FLDBLANK></FLDBLANK>|<FLDBLANK\s*/>"), ""),
    (re.compile(r"\s+\r\n"), ""),
    (re.compile(r"\r\n"), ""),
]

# Field tags to separators, then entity decoding
_RECORD_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\s+$"), ""),
    (re.compile(r"\t"), " "),
    (re.compile(r"\s+<F"), "<F"),
    (re.compile(r"</F\d+>"), ""),
    (re.compile(r"<F01>"), ROW_SEPARATOR),
    (_FIELD_TAG, FIELD_SEPARATOR),
    (re.compile(r"&lt;"), "<"),
    (re.compile(r"&gt;"), ">"),
    (re.compile(r"&quot;"), '"'),
    (re.compile(r"&apos;"), "'"),
    (re.compile(r"&tab;"), ""),
    (re.compile(r"&#\d+;"), ""),
    # last, so that escaped entity text survives as text
    (re.compile(r"&amp;"), "&"),
]


def normalize_output(text: str) -> str:
    """
    Flatten a tagged Tally report response into tab-separated rows.

    Record rules apply only to a raw response, one that still holds the
    envelope and at least one field tag. Normalized output has neither
    envelope nor field tags of its own, so it passes through unchanged even
    when a decoded value reads like a field tag ("&lt;F02&gt;" becomes "<F02>").
    A value that decodes to a literal "<ENVELOPE>" is the one case a second
    pass would rewrite.
    """
    if not text:
        return ""
    has_records = "<ENVELOPE>" in text and _FIELD_TAG.search(text) is not None
    for pattern, replacement in _ENVELOPE_RULES:
        text = pattern.sub(replacement, text)
    if not has_records:
        return text
    for pattern, replacement in _RECORD_RULES:
        text = pattern.sub(replacement, text)
    return text


def split_rows(text: str) -> list[list[str]]:
    """
    Split normalized output into rows of raw field values.

    Every record starts with a row separator, so only the segment before the
    first one is skipped; "\\n" alone is one record holding one empty value.
    """
    if not text:
        return []
    lines = text.split(ROW_SEPARATOR)
    if not lines[0]:
        lines = lines[1:]
    return [line.split(FIELD_SEPARATOR) for line in lines]
