"""Peak detection pipeline.

Turns a batch of spectra plus a recipe into annotated spectra, one QC row per
spectrum and an audit trail.  Spectra are never modified in place.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from peak_lab.engine.audit import log_step, start_audit
from peak_lab.engine.figures import generate_figures
from peak_lab.engine.local_maxima import (
    collapse_plateaus,
    find_local_maxima,
    verify_variants_agree,
)
from peak_lab.engine.recipe_model import Recipe, RecipeValidationError
from peak_lab.engine.spectrum import BatchResult, Spectrum

__all__ = [
    "build_peak_features",
    "detect_spectrum_peaks",
    "run_pipeline",
    "run_batch",
]

logger = logging.getLogger(__name__)


def _as_recipe(recipe: Recipe | Mapping[str, Any] | None) -> Recipe:
    if isinstance(recipe, Recipe):
        return recipe
    if recipe is None:
        return Recipe()
    if "params" in recipe:
        return Recipe.from_dict(dict(recipe))
    return Recipe(params=dict(recipe))


def build_peak_features(
    axis: np.ndarray,
    intensity: np.ndarray,
    indices: np.ndarray,
    *,
    axis_key: str = "position",
    max_peaks: int = 0,
    min_height: float | None = None,
) -> List[Dict[str, object]]:
    features: List[Dict[str, object]] = []
    for idx in np.asarray(indices, dtype=np.intp):
        value = float(intensity[idx])
        if min_height is not None and value < min_height:
            continue
        features.append(
            {
                "index": int(idx),
                axis_key: float(axis[idx]) if idx < axis.size else float("nan"),
                "intensity": value,
            }
        )
    if max_peaks and len(features) > max_peaks:
        strongest = sorted(features, key=lambda row: row["intensity"], reverse=True)[:max_peaks]
        features = sorted(strongest, key=lambda row: row["index"])
    return features


def detect_spectrum_peaks(
    spec: Spectrum,
    recipe: Recipe | Mapping[str, Any] | None = None,
) -> Tuple[Spectrum, Dict[str, Any]]:
    """Return an annotated copy of ``spec`` and its QC row."""

    cfg = _as_recipe(recipe).peak_config()
    intensity = np.asarray(spec.intensity, dtype=float)
    axis = np.asarray(spec.axis, dtype=float)
    half_window = int(float(cfg.get("half_window", 2)))
    method = str(cfg.get("method"))
    policy = str(cfg.get("plateau_policy") or "all")
    verify = bool(cfg.get("verify_variants", False))

    qc_row: Dict[str, Any] = {
        "id": spec.identifier,
        "points": int(intensity.size),
        "half_window": half_window,
        "method": method,
        "verified": False,
        "plateau_policy": policy,
        "candidates": 0,
        "peaks": 0,
    }

    features: List[Dict[str, object]] = []
    if bool(cfg.get("enabled", True)):
        if verify:
            indices = verify_variants_agree(intensity, half_window, prefer=method)
            qc_row["verified"] = True
        else:
            indices = find_local_maxima(intensity, half_window, method=method)
        qc_row["candidates"] = int(indices.size)
        indices = collapse_plateaus(intensity, indices, policy)
        min_height = cfg.get("min_height")
        features = build_peak_features(
            axis,
            intensity,
            indices,
            axis_key=spec.axis_key,
            max_peaks=int(cfg.get("max_peaks") or 0),
            min_height=float(min_height) if min_height is not None else None,
        )
        if intensity.size and not features:
            logger.warning("No peaks found in %s (half_window=%d)", spec.identifier, half_window)
    qc_row["peaks"] = len(features)

    meta = dict(spec.meta or {})
    meta["features"] = dict(meta.get("features") or {})
    meta["features"]["peaks"] = features
    annotated = Spectrum(axis=axis.copy(), intensity=intensity.copy(), meta=meta)
    return annotated, qc_row


def run_pipeline(
    specs: Iterable[Spectrum],
    recipe: Recipe | Mapping[str, Any] | None = None,
    *,
    audit: Optional[List[str]] = None,
) -> Tuple[List[Spectrum], List[Dict[str, Any]]]:
    recipe_obj = _as_recipe(recipe)
    errs = recipe_obj.validate()
    if errs:
        raise RecipeValidationError(errs)

    specs_list = list(specs)
    processed: List[Spectrum] = []
    qc_rows: List[Dict[str, Any]] = []
    for position, spec in enumerate(specs_list, start=1):
        logger.info("Detecting peaks [%d/%d]: %s", position, len(specs_list), spec.identifier)
        annotated, qc_row = detect_spectrum_peaks(spec, recipe_obj)
        processed.append(annotated)
        qc_rows.append(qc_row)
        if audit is not None:
            log_step(
                audit,
                f"{qc_row['id']}: {qc_row['peaks']} peak(s) via {qc_row['method']} "
                f"(h={qc_row['half_window']}, verified={qc_row['verified']})",
            )
    return processed, qc_rows


def run_batch(
    specs: Iterable[Spectrum],
    recipe: Recipe | Mapping[str, Any] | None = None,
    *,
    render_figures: bool = False,
) -> BatchResult:
    audit = start_audit()
    recipe_obj = _as_recipe(recipe)
    log_step(audit, f"Recipe {recipe_obj.module} v{recipe_obj.version}")
    processed, qc_rows = run_pipeline(specs, recipe_obj, audit=audit)

    figures: Dict[str, bytes] = {}
    if render_figures:
        figures = generate_figures(processed)
        log_step(audit, f"Rendered {len(figures)} figure(s)")

    total = sum(row["peaks"] for row in qc_rows)
    report = f"{len(processed)} spectrum/spectra processed, {total} peak(s) detected"
    log_step(audit, report)
    return BatchResult(
        processed=processed,
        qc_table=qc_rows,
        figures=figures,
        audit=audit,
        report_text=report,
    )
