from __future__ import annotations

import csv
import io
import logging
import re
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd

from peak_lab.engine.spectrum import Spectrum

logger = logging.getLogger(__name__)


class SignalFormatError(ValueError):
    """Raised when a signal file cannot be turned into a numeric trace."""


def sniff_locale(sample: str) -> Dict[str, str]:
    """Infer delimiter and decimal separator from a text sample.

    Decimal commas are only recognised next to semicolon or tab delimiters;
    ``0,1,9`` is three integers, not a decimal.  Whitespace separated tables
    come back with the regex delimiter ``\\s+``.
    """

    if not sample:
        return {"decimal": ".", "delimiter": ","}

    lines = [ln for ln in sample.splitlines() if ln.strip()]
    trimmed = "\n".join(lines)

    dot_matches = re.findall(r"\d\.\d", trimmed)
    comma_matches = re.findall(r"\d,\d", trimmed)
    decimal = "."
    if len(comma_matches) > len(dot_matches) and (";" in trimmed or "\t" in trimmed):
        decimal = ","

    delimiter = None
    try:
        delimiter = csv.Sniffer().sniff(trimmed, delimiters=",;\t").delimiter
    except (csv.Error, ValueError):
        pass

    if delimiter == "," and decimal == ",":
        delimiter = ";" if ";" in trimmed else "\t"

    if not delimiter:
        counts = {sep: trimmed.count(sep) for sep in (";", "\t", ",")}
        if decimal == ",":
            counts[","] = 0
        delimiter = max(counts, key=counts.get)
        if counts[delimiter] == 0:
            delimiter = r"\s+" if lines and re.search(r"\S[ \t]+\S", lines[0]) else ","

    return {"decimal": decimal, "delimiter": delimiter}


def _has_header(first_line: str, delimiter: str) -> bool:
    cells = re.split(delimiter, first_line.strip()) if delimiter == r"\s+" else first_line.split(delimiter)
    for cell in cells:
        text = cell.strip().strip('"').replace(",", ".")
        if not text:
            continue
        try:
            float(text)
        except ValueError:
            return True
    return False


def read_signal(
    path: str | Path,
    *,
    column: Optional[str | int] = None,
    axis_column: Optional[str | int] = None,
) -> Spectrum:
    """Load a one- or two-column text table into a :class:`Spectrum`.

    With a single column the axis is the sample position.  With more columns the
    first is the axis and the last the intensity, unless ``axis_column`` or
    ``column`` select otherwise (by header name or 0-based position).
    """

    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise SignalFormatError(f"Cannot read signal file {source}: {exc}") from exc
    lines = [ln for ln in text.splitlines() if ln.strip()]
    if not lines:
        raise SignalFormatError(f"Signal file {source} is empty")

    locale = sniff_locale("\n".join(lines[:50]))
    header = 0 if _has_header(lines[0], locale["delimiter"]) else None
    try:
        frame = pd.read_csv(
            io.StringIO("\n".join(lines)),
            sep=locale["delimiter"],
            decimal=locale["decimal"],
            header=header,
            engine="python",
        )
    except (pd.errors.ParserError, ValueError) as exc:
        raise SignalFormatError(f"Cannot parse signal file {source}: {exc}") from exc

    frame = frame.apply(pd.to_numeric, errors="coerce")
    if frame.empty or frame.shape[1] == 0:
        raise SignalFormatError(f"Signal file {source} has no data")

    def pick(selector):
        if isinstance(selector, int):
            if not -frame.shape[1] <= selector < frame.shape[1]:
                raise SignalFormatError(f"Column {selector} out of range in {source} ({frame.shape[1]} column(s))")
            return frame.iloc[:, selector]
        if selector not in frame.columns:
            raise SignalFormatError(f"Column '{selector}' not found in {source}")
        return frame[selector]

    intensity = pick(column) if column is not None else frame.iloc[:, -1]
    if axis_column is not None:
        axis = pick(axis_column).to_numpy(dtype=float)
        axis_key = str(axis_column)
    elif frame.shape[1] > 1:
        axis = frame.iloc[:, 0].to_numpy(dtype=float)
        axis_key = str(frame.columns[0]) if header is not None else "x"
    else:
        axis = np.arange(len(frame), dtype=float)
        axis_key = "position"

    values = intensity.to_numpy(dtype=float)
    if not np.any(np.isfinite(values)):
        raise SignalFormatError(f"Signal file {source} contains no numeric intensities")
    logger.info("Loaded %d point(s) from %s", values.size, source)
    return Spectrum(
        axis=axis,
        intensity=values,
        meta={"source": str(source), "sample_id": source.stem, "axis_key": axis_key},
    )
