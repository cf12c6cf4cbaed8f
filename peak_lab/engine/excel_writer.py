from __future__ import annotations

import csv
import json
import math
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

import numpy as np
from openpyxl import Workbook

from peak_lab.engine.spectrum import Spectrum


def _ensure_parent(path: Path) -> None:
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


def _clean_value(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        value = value.tolist()
    elif isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, (list, tuple, set)):
        return json.dumps([_clean_value(v) for v in value])
    if isinstance(value, dict):
        return json.dumps({str(k): _clean_value(v) for k, v in value.items()})
    if isinstance(value, (Path, os.PathLike)):
        value = os.fspath(value)
    if isinstance(value, str) and value and value[0] in "=+-@" and not value.startswith("'"):
        # keep spreadsheet apps from evaluating text as a formula
        return "'" + value
    return value


def _peak_rows(processed: Sequence[Spectrum]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for spec in processed:
        peaks = (spec.meta or {}).get("features", {}).get("peaks", [])
        for rank, peak in enumerate(peaks, start=1):
            row = {"spectrum": spec.identifier, "peak": rank}
            row.update(peak)
            rows.append(row)
    return rows


def _write_dict_rows(ws, rows: List[Dict[str, Any]], headers: List[str] | None = None):
    if not rows:
        return
    if headers is None:
        headers = []
        for row in rows:
            headers.extend(key for key in row if key not in headers)
    ws.append(headers)
    for row in rows:
        ws.append([_clean_value(row.get(header)) for header in headers])


def write_peak_workbook(
    out_path: str | Path,
    processed: Sequence[Spectrum],
    qc_table: Iterable[Dict[str, Any]],
    audit: Iterable[str] | None = None,
) -> Path:
    workbook_path = Path(out_path)
    _ensure_parent(workbook_path)

    wb = Workbook()
    ws_peaks = wb.active
    ws_peaks.title = "Peaks"
    _write_dict_rows(ws_peaks, _peak_rows(processed))

    ws_qc = wb.create_sheet("QC")
    _write_dict_rows(ws_qc, [dict(row) for row in qc_table])

    ws_audit = wb.create_sheet("Audit_Log")
    ws_audit.append(["Index", "Entry"])
    for idx, entry in enumerate(audit or [], start=1):
        ws_audit.append([idx, _clean_value(entry)])

    wb.save(workbook_path)
    return workbook_path


def write_peak_csv(out_path: str | Path, spectrum: Spectrum) -> Path:
    """Write the peak table of ``spectrum`` to a CSV file and return the path."""

    csv_path = Path(out_path)
    _ensure_parent(csv_path)
    rows = _peak_rows([spectrum])
    headers = ["spectrum", "peak", "index", spectrum.axis_key, "intensity"]
    with csv_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(headers)
        for row in rows:
            writer.writerow([_clean_value(row.get(header)) for header in headers])
    return csv_path
