from __future__ import annotations

import io
import re
from typing import Dict, Iterable

import matplotlib

matplotlib.use("Agg", force=True)
from matplotlib.figure import Figure
import numpy as np

from peak_lab.engine.spectrum import Spectrum


def _sanitise_figure_name(*parts: str, ext: str = "png") -> str:
    stem = "_".join(str(part) for part in parts if part)
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", stem).strip("_") or "figure"
    return f"{stem}.{ext}"


def build_peak_figure(spec: Spectrum) -> Figure:
    axis = np.asarray(spec.axis, dtype=float)
    intensity = np.asarray(spec.intensity, dtype=float)
    peaks = (spec.meta or {}).get("features", {}).get("peaks", [])
    idx = np.asarray([row["index"] for row in peaks], dtype=np.intp)

    fig = Figure(figsize=(8, 4))
    ax = fig.add_subplot(111)
    ax.plot(axis, intensity, lw=1.0, color="#1f77b4", label="signal")
    if idx.size:
        ax.plot(axis[idx], intensity[idx], "v", color="#d62728", ms=6, label=f"peaks ({idx.size})")
    unit = (spec.meta or {}).get("axis_unit")
    ax.set_xlabel(f"{spec.axis_key} ({unit})" if unit else spec.axis_key)
    ax.set_ylabel("intensity")
    ax.set_title(spec.identifier)
    ax.grid(True, alpha=0.2)
    ax.legend(loc="best")
    fig.tight_layout()
    return fig


def render_peak_figure(spec: Spectrum, fmt: str = "png") -> bytes:
    fig = build_peak_figure(spec)
    buf = io.BytesIO()
    save_kwargs = {"format": fmt}
    if fmt == "png":
        save_kwargs["dpi"] = 150
    fig.savefig(buf, **save_kwargs)
    buf.seek(0)
    return buf.read()


def generate_figures(specs: Iterable[Spectrum], fmt: str = "png") -> Dict[str, bytes]:
    figures: Dict[str, bytes] = {}
    for position, spec in enumerate(specs, start=1):
        name = _sanitise_figure_name(f"{position:03d}", spec.identifier, "peaks", ext=fmt)
        figures[name] = render_peak_figure(spec, fmt)
    return figures
