"""Quote-aware CSV tokenizer.

Records are single text lines. Inside a quoted field a doubled quote (``""``)
is read as one literal quote; any other quote toggles the quoted state and is
never emitted.
"""
import logging
from typing import Dict, List, Tuple

from anomaly_analyst.exceptions import ParseError
from anomaly_analyst.models import Dataset

log = logging.getLogger(__name__)


def split_record(line: str, line_number: int) -> List[str]:
    """Split one record into trimmed field values."""
    values: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    if in_quotes:
        raise ParseError("unterminated quoted field", line_number=line_number)

    values.append("".join(current).strip())
    return values


def _dedupe_headers(headers: List[str]) -> List[str]:
    seen: Dict[str, int] = {}
    out = []
    for name in headers:
        if name in seen:
            seen[name] += 1
            candidate = f"{name}.{seen[name]}"
            while candidate in seen:
                seen[name] += 1
                candidate = f"{name}.{seen[name]}"
            seen[candidate] = 0
            log.warning("Duplicate header '%s' renamed to '%s'", name, candidate)
            out.append(candidate)
        else:
            seen[name] = 0
            out.append(name)
    return out


def parse_csv(content: str) -> Tuple[List[str], List[List[str]]]:
    """
    Tokenizes raw CSV text into a header row and data rows.
    The first non-blank line is always the header. Blank lines are skipped.
    """
    headers: List[str] = []
    rows: List[List[str]] = []
    have_header = False

    # Records end at "\n" only; other Unicode line breaks are field data
    for line_number, line in enumerate(content.split("\n"), start=1):
        if line.endswith("\r"):
            line = line[:-1]
        if not line.strip():
            continue
        values = split_record(line, line_number)
        if not have_header:
            headers = _dedupe_headers([v.replace('"', '').strip() for v in values])
            have_header = True
        else:
            rows.append(values)

    if not have_header:
        raise ParseError("input contains no header row")

    log.debug("Parsed %d columns and %d rows", len(headers), len(rows))
    return headers, rows


def load_dataset(content: str) -> Dataset:
    headers, rows = parse_csv(content)
    return Dataset(headers=tuple(headers), rows=tuple(tuple(r) for r in rows))
