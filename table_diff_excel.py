# table_diff_excel.py
# Purpose: Render a ComparisonResult as a styled Excel workbook.

import io
from typing import List, Optional, Sequence

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import PatternFill, Font, Alignment
from openpyxl.utils import get_column_letter

from table_diff_core import (
    Added,
    ComparisonResult,
    DiffEntry,
    DiffKind,
    HeaderField,
    Modified,
    Removed,
    Unmodified,
    group_entries,
)

RESULT_MODE_INLINE = "inline"
RESULT_MODE_SIDE = "side"


class ReportConfig:
    def __init__(
        self,
        # Layout
        result_mode: str = RESULT_MODE_INLINE,   # "inline" | "side"
        result_group: bool = False,
        include_unmodified: bool = False,
        side_spacing: int = 0,
        include_captions: bool = True,
        captions_spacing: int = 1,
        include_operation: bool = True,
        operation_spacing: int = 1,
        row_spacing: int = 0,

        # Environment labels
        before_label: str = "BEFORE",
        after_label: str = "AFTER",

        # Fills (RGB hex)
        unmodified_color: str = "E2E4E6",
        added_color: str = "61FFAC",
        removed_color: str = "FD919B",
        modified_before_color: str = "FFE269",
        modified_after_color: str = "92CDDC",
        modified_field_color: str = "B1A0C7",
    ):
        mode = (result_mode or RESULT_MODE_INLINE).lower()
        if mode not in (RESULT_MODE_INLINE, RESULT_MODE_SIDE):
            raise ValueError(f"result_mode must be 'inline' or 'side', got {result_mode!r}")
        self.result_mode = mode
        self.result_group = result_group
        self.include_unmodified = include_unmodified
        self.side_spacing = side_spacing
        self.include_captions = include_captions
        self.captions_spacing = captions_spacing
        self.include_operation = include_operation
        self.operation_spacing = operation_spacing
        self.row_spacing = row_spacing
        self.before_label = before_label
        self.after_label = after_label
        self.unmodified_color = unmodified_color
        self.added_color = added_color
        self.removed_color = removed_color
        self.modified_before_color = modified_before_color
        self.modified_after_color = modified_after_color
        self.modified_field_color = modified_field_color

    @property
    def side(self) -> bool:
        return self.result_mode == RESULT_MODE_SIDE


def _fill(rgb: str) -> PatternFill:
    return PatternFill(start_color=rgb, end_color=rgb, fill_type="solid")


def status_label(entry: DiffEntry) -> str:
    return {
        DiffKind.UNMODIFIED: "UNMODIFIED",
        DiffKind.ADDED: "ADDED",
        DiffKind.REMOVED: "REMOVED",
        DiffKind.MODIFIED: "MODIFIED",
    }[entry.kind]


def entries_to_frame(entries: Sequence[DiffEntry], limit: Optional[int] = None) -> pd.DataFrame:
    """Compact one-line-per-entry preview for UIs."""
    rows = []
    for e in entries[:limit] if limit else entries:
        rows.append({
            "Key": e.key.strip(),
            "Status": status_label(e),
            "Changed fields": ", ".join(e.changed_fields) if isinstance(e, Modified) else "",
        })
    return pd.DataFrame(rows, columns=["Key", "Status", "Changed fields"])


class _SheetWriter:
    """Writes values at 0-based (x, y) offsets."""

    def __init__(self, ws):
        self.ws = ws

    def put(self, x: int, y: int, value, fill: Optional[PatternFill] = None, font: Optional[Font] = None):
        cell = self.ws.cell(row=y + 1, column=x + 1, value=value)
        if isinstance(value, str):
            # data such as "=1+" stays text, never a formula
            cell.data_type = "s"
        if fill is not None:
            cell.fill = fill
        if font is not None:
            cell.font = font
        return cell

    def put_row(self, x: int, y: int, values: Sequence, fills: Sequence[Optional[PatternFill]]):
        for i, (v, f) in enumerate(zip(values, fills)):
            self.put(x + i, y, v, f)


def write_excel(result: ComparisonResult, cfg: ReportConfig) -> bytes:
    header: List[HeaderField] = result.header
    names = [h.name for h in header]
    width = len(names)

    wb = Workbook()
    ws = wb.active
    ws.title = "Table difference"
    out = _SheetWriter(ws)

    header_font = Font(bold=True)
    fill_unmodified = _fill(cfg.unmodified_color)
    fill_added = _fill(cfg.added_color)
    fill_removed = _fill(cfg.removed_color)
    fill_mod_before = _fill(cfg.modified_before_color)
    fill_mod_after = _fill(cfg.modified_after_color)
    fill_mod_field = _fill(cfg.modified_field_color)

    right_x = width + cfg.side_spacing
    for i, name in enumerate(names):
        out.put(i, 0, name, font=header_font)
        if cfg.side:
            out.put(right_x + i, 0, name, font=header_font)
    current = width * 2 + cfg.side_spacing if cfg.side else width

    operation_x = current + cfg.operation_spacing
    if cfg.include_operation:
        out.put(operation_x, 0, "Operation", font=header_font)
        current += 1 + cfg.operation_spacing

    ops = {
        "unmodified": ("No changes", fill_unmodified),
        "created": (f"Created in {cfg.after_label}", fill_added),
        "removed": (f"Removed from {cfg.after_label}", fill_removed),
        "modified_before": (f"Modified (record in {cfg.before_label})", fill_mod_before),
        "modified_after": (f"Modified (record in {cfg.after_label})", fill_mod_after),
        "modified": ("Modified", fill_mod_after),
        "value_modified": (f"Value modified in {cfg.after_label}", fill_mod_field),
    }

    def operation(y: int, op: str):
        if cfg.include_operation:
            text, fill = ops[op]
            out.put(operation_x, y, text, fill)

    if cfg.include_captions:
        legend_x = current + cfg.captions_spacing
        captions = ["unmodified"] if cfg.include_unmodified else []
        captions += ["created", "removed", "modified_before", "modified_after", "value_modified"]
        out.put(legend_x, 0, "LEGEND", font=header_font)
        for y, op in enumerate(captions, start=1):
            text, fill = ops[op]
            out.put(legend_x, y, text, fill)

    def values(record) -> List[str]:
        return [record.get(n) for n in names]

    entries = result.entries
    if cfg.result_group:
        entries = group_entries(entries)

    y = 1
    for e in entries:
        if isinstance(e, Unmodified):
            if not cfg.include_unmodified:
                continue
            row = values(e.record)
            out.put_row(0, y, row, [fill_unmodified] * width)
            if cfg.side:
                out.put_row(right_x, y, row, [fill_unmodified] * width)
            operation(y, "unmodified")
        elif isinstance(e, Added):
            out.put_row(right_x if cfg.side else 0, y, values(e.record), [fill_added] * width)
            operation(y, "created")
        elif isinstance(e, Removed):
            out.put_row(0, y, values(e.record), [fill_removed] * width)
            operation(y, "removed")
        elif isinstance(e, Modified):
            after_fills = [fill_mod_field if n in e.changed_fields else fill_mod_after for n in names]
            out.put_row(0, y, values(e.before), [fill_mod_before] * width)
            if cfg.side:
                out.put_row(right_x, y, values(e.after), after_fills)
                operation(y, "modified")
            else:
                out.put_row(0, y + 1, values(e.after), after_fills)
                operation(y, "modified_before")
                operation(y + 1, "modified_after")
                y += 1
        y += 1 + cfg.row_spacing

    # Freeze header, auto-widths
    ws.freeze_panes = "A2"
    for col_idx, col_cells in enumerate(ws.columns, start=1):
        max_len = max(len(str(c.value)) if c.value is not None else 0 for c in list(col_cells)[:5000])
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max_len + 3, 60)

    _write_summary(wb, result, cfg, header_font)

    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


def _write_summary(wb: Workbook, result: ComparisonResult, cfg: ReportConfig, header_font: Font):
    ws2 = wb.create_sheet("Summary")
    counts = result.counts()
    ws2.append(["Metric", "Value"])
    for k, v in [
        ("Keys used", ", ".join(result.keys_used) if result.keys_used else "Row order"),
        ("Environments", f"{cfg.before_label} → {cfg.after_label}"),
        ("Total entries", len(result.entries)),
        ("Unmodified", counts[DiffKind.UNMODIFIED]),
        (f"Created in {cfg.after_label}", counts[DiffKind.ADDED]),
        (f"Removed from {cfg.after_label}", counts[DiffKind.REMOVED]),
        ("Modified", counts[DiffKind.MODIFIED]),
    ]:
        ws2.append([k, v])
    for cell in ws2[1]:
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws2.column_dimensions["A"].width = 28
    ws2.column_dimensions["B"].width = 22
