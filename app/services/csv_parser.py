"""
Line-level CSV splitting for the upstream transactions report.

The report embeds CSV text inside JSON. Fields may be wrapped in double
quotes to protect commas; escaped quotes inside a field are not supported.
Malformed quoting never raises, it just yields a best-effort split.
"""
from typing import List


def split_csv_rows(text: str) -> List[str]:
    """Split report text into non-blank lines."""
    if not text:
        return []
    return [line for line in text.replace("\r\n", "\n").split("\n") if line.strip()]


def parse_csv_line(line: str) -> List[str]:
    """
    Split one CSV line into trimmed field values.

    A double quote toggles the in-quotes flag and is dropped; commas outside
    quotes separate fields. The final field is always emitted, so a trailing
    comma produces a trailing empty value.
    """
    values = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)

    values.append("".join(current).strip())
    return values


def parse_header_line(line: str) -> List[str]:
    """Header names: plain comma split with quotes removed."""
    return [header.strip().replace('"', "") for header in line.split(",")]
