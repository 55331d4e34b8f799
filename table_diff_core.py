# table_diff_core.py
# Purpose: Match "before"/"after" table snapshots by key and classify every row
# as unmodified, added, removed or modified.

import calendar
import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ";"
KEY_PAD_CHAR = " "
NULL_SENTINEL = "?"
NULL_LITERAL = "null"
INVALID_DATE = "Invalid date"


class InvalidInput(ValueError):
    """Raised when a header or row list is absent or not shaped like a table."""


# ---------- Transform rules ----------
class TransformKind(Enum):
    DATE = "DATE"
    CHECK_NULL = "CHECK_NULL"


@dataclass(frozen=True)
class Transform:
    column: str
    kind: TransformKind
    from_format: Optional[str] = None
    to_format: Optional[str] = None

    @classmethod
    def date(cls, column: str, from_format: str, to_format: str) -> "Transform":
        return cls(column, TransformKind.DATE, from_format, to_format)

    @classmethod
    def check_null(cls, column: str) -> "Transform":
        return cls(column, TransformKind.CHECK_NULL)

    def apply(self, value: str) -> str:
        if self.kind is TransformKind.DATE:
            return reformat_date(value, self.from_format, self.to_format)
        if self.kind is TransformKind.CHECK_NULL:
            return NULL_LITERAL if value == NULL_SENTINEL else value
        raise InvalidInput(f"Unsupported transform kind: {self.kind!r}")


# moment-style tokens, longest first so "YYYY" wins over "YY"
DATE_TOKEN_RE = re.compile(r"\[[^\]]*\]|YYYY|YY|MMMM|MMM|MM|M|DD|D|HH|H|hh|h|mm|m|ss|s|SSS|A|a")

_TOKEN_PATTERNS = {
    "YYYY": r"(\d{4})", "YY": r"(\d{2})",
    "MMMM": r"([A-Za-z]+)", "MMM": r"([A-Za-z]+)", "MM": r"(\d{1,2})", "M": r"(\d{1,2})",
    "DD": r"(\d{1,2})", "D": r"(\d{1,2})",
    "HH": r"(\d{1,2})", "H": r"(\d{1,2})", "hh": r"(\d{1,2})", "h": r"(\d{1,2})",
    "mm": r"(\d{1,2})", "m": r"(\d{1,2})", "ss": r"(\d{1,2})", "s": r"(\d{1,2})",
    "SSS": r"(\d{1,3})", "A": r"([AaPp][Mm])", "a": r"([AaPp][Mm])",
}
_SEPARATOR = r"[^0-9A-Za-z]*"
_MONTHS = {m.lower(): i for i, m in enumerate(calendar.month_abbr) if m}


def _literal_pattern(text: str) -> str:
    # separators match loosely; letters and digits must appear as written
    return "".join(re.escape(c) if c.isalnum() else _SEPARATOR for c in text)


def date_pattern(pattern: str) -> Tuple[re.Pattern, List[str]]:
    """Compile a moment-style pattern ("DD/MM/YYYY") into a forgiving regex.

    The regex matches from the start of a value; trailing text is ignored and
    any run of non-alphanumeric characters stands in for a separator.
    """
    out, tokens, pos = [r"\s*"], [], 0
    for m in DATE_TOKEN_RE.finditer(pattern):
        out.append(_literal_pattern(pattern[pos:m.start()]))
        tok = m.group(0)
        if tok.startswith("["):
            out.append(re.escape(tok[1:-1]))
        else:
            out.append(_SEPARATOR + _TOKEN_PATTERNS[tok])
            tokens.append(tok)
        pos = m.end()
    out.append(_literal_pattern(pattern[pos:]))
    return re.compile("".join(out)), tokens


def parse_moment(value: str, pattern: str) -> Optional[pd.Timestamp]:
    """Parse ``value`` the way moment's non-strict mode does, or None."""
    regex, tokens = date_pattern(pattern)
    m = regex.match(value)
    if m is None:
        return None
    parts = {"year": 1970, "month": 1, "day": 1, "hour": 0, "minute": 0, "second": 0, "microsecond": 0}
    meridiem = None
    for tok, text in zip(tokens, m.groups()):
        if tok == "YYYY":
            parts["year"] = int(text)
        elif tok == "YY":
            yy = int(text)
            parts["year"] = 2000 + yy if yy <= 68 else 1900 + yy
        elif tok in ("MMMM", "MMM"):
            month = _MONTHS.get(text[:3].lower())
            if month is None:
                return None
            parts["month"] = month
        elif tok in ("MM", "M"):
            parts["month"] = int(text)
        elif tok in ("DD", "D"):
            parts["day"] = int(text)
        elif tok in ("HH", "H", "hh", "h"):
            parts["hour"] = int(text)
        elif tok in ("mm", "m"):
            parts["minute"] = int(text)
        elif tok in ("ss", "s"):
            parts["second"] = int(text)
        elif tok == "SSS":
            parts["microsecond"] = int(text.ljust(3, "0")) * 1000
        else:
            meridiem = text.lower()
    if meridiem == "pm" and parts["hour"] < 12:
        parts["hour"] += 12
    elif meridiem == "am" and parts["hour"] == 12:
        parts["hour"] = 0
    try:
        return pd.Timestamp(**parts)
    except ValueError:
        return None


def format_moment(ts: pd.Timestamp, pattern: str) -> str:
    def token(tok: str) -> str:
        if tok.startswith("["):
            return tok[1:-1]
        hour12 = ts.hour % 12 or 12
        values = {
            "YYYY": f"{ts.year:04d}", "YY": f"{ts.year % 100:02d}",
            "MMMM": ts.strftime("%B"), "MMM": ts.strftime("%b"),
            "MM": f"{ts.month:02d}", "M": str(ts.month),
            "DD": f"{ts.day:02d}", "D": str(ts.day),
            "HH": f"{ts.hour:02d}", "H": str(ts.hour),
            "hh": f"{hour12:02d}", "h": str(hour12),
            "mm": f"{ts.minute:02d}", "m": str(ts.minute),
            "ss": f"{ts.second:02d}", "s": str(ts.second),
            "SSS": f"{ts.microsecond // 1000:03d}",
            "A": "AM" if ts.hour < 12 else "PM", "a": "am" if ts.hour < 12 else "pm",
        }
        return values[tok]

    return DATE_TOKEN_RE.sub(lambda m: token(m.group(0)), pattern)


def reformat_date(value: str, from_format: Optional[str], to_format: Optional[str]) -> str:
    """Keep the original value and append it re-rendered in ``to_format``.

    "?" and "null" pass through untouched; unparseable values become an
    ``[invalid date] ...`` marker so they still compare deterministically.
    """
    if value in (NULL_SENTINEL, NULL_LITERAL):
        return value
    if not from_format or not to_format:
        raise InvalidInput("DATE transform needs both 'from' and 'to' formats")
    parsed = parse_moment(value, from_format)
    if parsed is None:
        return f"[invalid date] {value} - {INVALID_DATE}"
    return f"{value} - {format_moment(parsed, to_format)}"


# ---------- Records ----------
@dataclass(frozen=True)
class HeaderField:
    name: str
    original_index: int


@dataclass(frozen=True)
class Record:
    values: Dict[str, str]
    source_index: int
    key_parts: Tuple[str, ...] = ()
    sort_key: str = ""

    @classmethod
    def build(cls, header: Sequence[HeaderField], values: Dict[str, str], source_index: int,
              key_parts: Tuple[str, ...] = ()) -> "Record":
        missing = [h.name for h in header if h.name not in values]
        if missing:
            raise InvalidInput(f"Record {source_index} lacks header fields: {', '.join(missing)}")
        ordered = {h.name: values[h.name] for h in header}
        return cls(ordered, source_index, tuple(key_parts))

    def __getitem__(self, name: str) -> str:
        return self.values[name]

    def get(self, name: str, default: str = "") -> str:
        value = self.values.get(name)
        return default if value is None else value


@dataclass
class MappedSheet:
    records: List[Record]
    header: List[HeaderField]
    key_lengths: List[int]


def _check_table(header: Any, rows: Any) -> None:
    if header is None or not isinstance(header, (list, tuple)):
        raise InvalidInput(f"header must be a list of column names, got {type(header).__name__}")
    if rows is None or not isinstance(rows, (list, tuple)):
        raise InvalidInput(f"rows must be a list of row lists, got {type(rows).__name__}")
    for i, row in enumerate(rows):
        if not isinstance(row, (list, tuple)):
            raise InvalidInput(f"row {i} must be a list, got {type(row).__name__}")


def _cell(row: Sequence[Any], idx: int) -> str:
    if idx >= len(row) or row[idx] is None:
        return ""
    return str(row[idx]).strip()


def build_header(header: Sequence[Any], compare_columns: Optional[Sequence[str]] = None) -> List[HeaderField]:
    fields = [HeaderField("" if h is None else str(h).strip(), i) for i, h in enumerate(header)]
    if compare_columns is not None:
        allowed = set(compare_columns)
        fields = [f for f in fields if f.name in allowed]
    return fields


def map_sheet(
    header: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    keys: Optional[Sequence[str]] = None,
    transforms: Sequence[Transform] = (),
    compare_columns: Optional[Sequence[str]] = None,
) -> MappedSheet:
    """Turn raw header + rows into records carrying unpadded key parts.

    With no ``keys`` the row index is used as the only key part. Input rows are
    never modified.
    """
    _check_table(header, rows)
    fields = build_header(header, compare_columns)
    names = {f.name for f in fields}
    for t in transforms:
        if t.column not in names:
            logger.warning("Transform %s skipped: column '%s' not in header", t.kind.value, t.column)
    active = [t for t in transforms if t.column in names]
    key_names = list(keys or [])
    if any(k not in names for k in key_names):
        logger.warning("Key column(s) missing from header; keying rows by position")
        key_names = []

    records = []
    for i, row in enumerate(rows):
        values = {f.name: _cell(row, f.original_index) for f in fields}
        for t in active:
            values[t.column] = t.apply(values[t.column])
        parts = tuple(values[k] for k in key_names) if key_names else (str(i),)
        records.append(Record.build(fields, values, i, parts))

    width = len(key_names) or 1
    key_lengths = [max((len(r.key_parts[k]) for r in records), default=0) for k in range(width)]
    logger.debug("Mapped %d rows over %d columns", len(records), len(fields))
    return MappedSheet(records, fields, key_lengths)


# ---------- Key normalizer ----------
def merge_key_lengths(*tables: Sequence[int]) -> List[int]:
    """Per key position, the widest value seen on any side."""
    width = max((len(t) for t in tables), default=0)
    return [max((t[i] for t in tables if i < len(t)), default=0) for i in range(width)]


def pad_key(parts: Sequence[str], key_lengths: Sequence[int]) -> str:
    return KEY_SEPARATOR.join(p.rjust(n, KEY_PAD_CHAR) for p, n in zip(parts, key_lengths))


def index_records(records: Sequence[Record], key_lengths: Sequence[int]) -> List[Record]:
    """Return new records with padded sort keys, stably sorted by that key."""
    keyed = [replace(r, sort_key=pad_key(r.key_parts, key_lengths)) for r in records]
    return sorted(keyed, key=lambda r: r.sort_key)


def count_duplicate_keys(records: Sequence[Record]) -> int:
    dupes = 0
    for prev, cur in zip(records, records[1:]):
        if prev.sort_key == cur.sort_key:
            dupes += 1
    return dupes


# ---------- Diff result model ----------
class DiffKind(IntEnum):
    UNMODIFIED = 0
    ADDED = 1
    REMOVED = 2
    MODIFIED = 3


@dataclass(frozen=True)
class DiffEntry:
    kind: ClassVar[DiffKind]
    key: str


@dataclass(frozen=True)
class Unmodified(DiffEntry):
    kind: ClassVar[DiffKind] = DiffKind.UNMODIFIED
    record: Record


@dataclass(frozen=True)
class Added(DiffEntry):
    kind: ClassVar[DiffKind] = DiffKind.ADDED
    record: Record


@dataclass(frozen=True)
class Removed(DiffEntry):
    kind: ClassVar[DiffKind] = DiffKind.REMOVED
    record: Record


@dataclass(frozen=True)
class Modified(DiffEntry):
    kind: ClassVar[DiffKind] = DiffKind.MODIFIED
    before: Record
    after: Record
    changed_fields: Tuple[str, ...] = ()


# ---------- Aligner ----------
def changed_fields(before: Record, after: Record, header: Sequence[HeaderField],
                   ignore_fields: Sequence[str] = ()) -> List[str]:
    ignored = set(ignore_fields)
    return [h.name for h in header
            if h.name not in ignored and before.get(h.name) != after.get(h.name)]


def compare_entries(
    before: Sequence[Record],
    after: Sequence[Record],
    header: Sequence[HeaderField],
    ignore_fields: Sequence[str] = (),
) -> List[DiffEntry]:
    """Walk two ascending key-sorted sequences once and classify each position."""
    entries: List[DiffEntry] = []
    i, j = 0, 0
    n, m = len(before), len(after)
    while i < n or j < m:
        if i == n:
            entries.append(Added(after[j].sort_key, after[j]))
            j += 1
        elif j == m:
            entries.append(Removed(before[i].sort_key, before[i]))
            i += 1
        else:
            left, right = before[i], after[j]
            if right.sort_key > left.sort_key:
                entries.append(Removed(left.sort_key, left))
                i += 1
            elif right.sort_key < left.sort_key:
                entries.append(Added(right.sort_key, right))
                j += 1
            else:
                diffs = changed_fields(left, right, header, ignore_fields)
                if diffs:
                    entries.append(Modified(left.sort_key, left, right, tuple(diffs)))
                else:
                    entries.append(Unmodified(left.sort_key, left))
                i += 1
                j += 1
    return entries


def group_entries(entries: Sequence[DiffEntry]) -> List[DiffEntry]:
    """Regroup by kind (unmodified, added, removed, modified), then key."""
    return sorted(entries, key=lambda e: (e.kind, e.key))


# ---------- Orchestration ----------
@dataclass
class ComparisonResult:
    entries: List[DiffEntry]
    header: List[HeaderField]
    keys_used: List[str]
    key_lengths: List[int] = field(default_factory=list)

    def counts(self) -> Dict[DiffKind, int]:
        out = {k: 0 for k in DiffKind}
        for e in self.entries:
            out[e.kind] += 1
        return out


def resolve_keys(keys: Optional[Sequence[str]], before_header: Sequence[HeaderField],
                 after_header: Sequence[HeaderField]) -> List[str]:
    """Keys usable on both sides, or [] to fall back to row-index keying."""
    keys = [k.strip() for k in (keys or []) if k and k.strip()]
    if not keys:
        return []
    before_names = {h.name for h in before_header}
    after_names = {h.name for h in after_header}
    absent = [k for k in keys if k not in before_names or k not in after_names]
    if absent:
        logger.warning("Key column(s) %s not present in both tables; pairing by row order",
                       ", ".join(absent))
        return []
    return keys


def compare_tables(
    before_header: Sequence[Any],
    before_rows: Sequence[Sequence[Any]],
    after_header: Sequence[Any],
    after_rows: Sequence[Sequence[Any]],
    keys: Optional[Sequence[str]] = None,
    remap_before: Sequence[Transform] = (),
    remap_after: Sequence[Transform] = (),
    compare_columns: Optional[Sequence[str]] = None,
    ignore_fields: Sequence[str] = (),
    group: bool = False,
) -> ComparisonResult:
    _check_table(before_header, before_rows)
    _check_table(after_header, after_rows)
    keys_used = resolve_keys(keys, build_header(before_header, compare_columns),
                             build_header(after_header, compare_columns))

    before = map_sheet(before_header, before_rows, keys_used, remap_before, compare_columns)
    after = map_sheet(after_header, after_rows, keys_used, remap_after, compare_columns)
    if [h.name for h in before.header] != [h.name for h in after.header]:
        logger.warning("Column sets differ between tables; comparing on the 'before' columns")

    key_lengths = merge_key_lengths(before.key_lengths, after.key_lengths)
    before_sorted = index_records(before.records, key_lengths)
    after_sorted = index_records(after.records, key_lengths)
    for label, recs in (("before", before_sorted), ("after", after_sorted)):
        dupes = count_duplicate_keys(recs)
        if dupes:
            logger.warning("%d duplicate key(s) in %s table; pairing them by position", dupes, label)

    entries = compare_entries(before_sorted, after_sorted, before.header, ignore_fields)
    if group:
        entries = group_entries(entries)
    logger.debug("Compared %d before / %d after rows into %d entries (keys: %s)",
                 len(before_sorted), len(after_sorted), len(entries), keys_used or "row order")
    return ComparisonResult(entries, before.header, keys_used, key_lengths)


# ---------- Source loading ----------
def _read_excel(obj, sheet_name):
    try:
        return pd.read_excel(obj, sheet_name=sheet_name or 0, header=None, dtype=str,
                             keep_default_na=False, engine="openpyxl")
    except TypeError:
        return pd.read_excel(obj, sheet_name=sheet_name or 0, header=None, dtype=str,
                             keep_default_na=False)


def _read_csv(source):
    # rows longer than the header line are cut to its width; shorter ones pad with ""
    width = pd.read_csv(source, header=None, nrows=1, dtype=str, keep_default_na=False).shape[1]
    if hasattr(source, "seek"):
        source.seek(0)
    return pd.read_csv(source, header=None, dtype=str, keep_default_na=False,
                       engine="python", on_bad_lines=lambda line: line[:width])


def load_rows(source: Any, sheet: Optional[str] = None) -> Tuple[List[str], List[List[str]]]:
    """Read a CSV or workbook into ``(header, rows)`` of plain strings."""
    if hasattr(source, "seek"):
        source.seek(0)

    name = str(source) if isinstance(source, (str, Path)) else getattr(source, "name", "uploaded")
    if name.lower().endswith((".csv", ".txt")):
        df = _read_csv(source)
    else:
        df = _read_excel(source, sheet)

    if isinstance(df, dict):  # dict of sheets → pick first
        df = df[next(iter(df))]
    if df is None or df.empty:
        raise InvalidInput(f"load_rows: no rows read from {name}")

    table = df.fillna("").astype(str).values.tolist()
    logger.debug("Loaded %d data rows from %s", len(table) - 1, name)
    return table[0], table[1:]
