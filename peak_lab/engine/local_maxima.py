"""Windowed local-maximum detection.

A position ``i`` is a peak when its full neighbourhood ``[i - h, i + h]`` fits
inside the signal and no element of that neighbourhood strictly exceeds
``signal[i]``.  Three variants of the same detector are provided; they differ
only in how much work they do, never in what they return, and
:func:`verify_variants_agree` is the check that keeps it that way.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
from scipy.ndimage import maximum_filter1d

logger = logging.getLogger(__name__)

PLATEAU_POLICIES = ("all", "first", "last", "center")


class VariantMismatchError(AssertionError):
    """Raised when two detector variants disagree on the same input."""

    def __init__(self, reference: str, variant: str, missing: Sequence[int], extra: Sequence[int]):
        self.reference = reference
        self.variant = variant
        self.missing = list(missing)
        self.extra = list(extra)
        super().__init__(
            f"Variant '{variant}' disagrees with '{reference}': "
            f"missing={self.missing[:10]} extra={self.extra[:10]}"
        )


def _as_signal(signal) -> np.ndarray:
    return np.asarray(signal, dtype=float).ravel()


def _empty() -> np.ndarray:
    return np.zeros(0, dtype=np.intp)


def candidate_slice(length: int, half_window: int) -> slice:
    """Return the positions whose whole neighbourhood lies inside the signal.

    The slice is empty when ``half_window`` is negative or the signal is
    shorter than ``2 * half_window + 1``.
    """

    h = int(half_window)
    if h < 0 or length < 2 * h + 1:
        return slice(0, 0)
    return slice(h, length - h)


def local_maxima_full_scan(signal, half_window: int = 2) -> np.ndarray:
    values = _as_signal(signal)
    h = int(half_window)
    candidates = candidate_slice(values.size, h)
    peaks: List[int] = []
    for i in range(candidates.start, candidates.stop):
        center = values[i]
        if np.isnan(center):
            continue
        exceeded = False
        for j in range(i - h, i + h + 1):
            # keep scanning, every neighbour gets compared
            if values[j] > center:
                exceeded = True
        if not exceeded:
            peaks.append(i)
    return np.asarray(peaks, dtype=np.intp)


def local_maxima_early_exit(signal, half_window: int = 2) -> np.ndarray:
    values = _as_signal(signal)
    h = int(half_window)
    candidates = candidate_slice(values.size, h)
    peaks: List[int] = []
    for i in range(candidates.start, candidates.stop):
        center = values[i]
        if np.isnan(center):
            continue
        for j in range(i - h, i + h + 1):
            if values[j] > center:
                break
        else:
            peaks.append(i)
    return np.asarray(peaks, dtype=np.intp)


def local_maxima_rolling_max(signal, half_window: int = 2) -> np.ndarray:
    values = _as_signal(signal)
    h = int(half_window)
    candidates = candidate_slice(values.size, h)
    if candidates.stop <= candidates.start:
        return _empty()

    # NaN never wins a comparison in the loop variants, so it must never win
    # the windowed maximum either.
    filled = np.where(np.isnan(values), -np.inf, values)
    window_max = maximum_filter1d(filled, size=2 * h + 1, mode="nearest")

    centers = values[candidates]
    is_peak = ~(window_max[candidates] > centers) & ~np.isnan(centers)

    pad = np.zeros(h, dtype=bool)
    flags = np.concatenate([pad, is_peak, pad])
    return np.flatnonzero(flags).astype(np.intp, copy=False)


VARIANTS: Dict[str, Callable[..., np.ndarray]] = {
    "full_scan": local_maxima_full_scan,
    "early_exit": local_maxima_early_exit,
    "rolling_max": local_maxima_rolling_max,
}

DEFAULT_METHOD = "rolling_max"


def find_local_maxima(signal, half_window: int = 2, *, method: str = DEFAULT_METHOD) -> np.ndarray:
    """Return the sorted 0-based positions of windowed local maxima.

    Parameters
    ----------
    signal:
        Any 1-D array-like of numbers.  The input is never modified.
    half_window:
        Number of neighbours examined on each side.  Negative values, or a
        signal shorter than ``2 * half_window + 1``, give an empty result.
    method:
        One of :data:`VARIANTS`.  All variants return identical output.
    """

    try:
        detector = VARIANTS[method]
    except KeyError:
        raise ValueError(
            f"Unknown peak detection method '{method}' (expected one of {', '.join(VARIANTS)})"
        ) from None
    logger.debug("Detecting local maxima with %s (half_window=%s)", method, half_window)
    return detector(signal, half_window)


def compare_variants(
    signal,
    half_window: int = 2,
    *,
    variants: Optional[Mapping[str, Callable[..., np.ndarray]]] = None,
) -> Dict[str, np.ndarray]:
    variants = VARIANTS if variants is None else variants
    return {name: np.asarray(func(signal, half_window), dtype=np.intp) for name, func in variants.items()}


def verify_variants_agree(
    signal,
    half_window: int = 2,
    *,
    variants: Optional[Mapping[str, Callable[..., np.ndarray]]] = None,
    prefer: Optional[str] = None,
) -> np.ndarray:
    """Run every variant on the same input and return the agreed result.

    Raises :class:`VariantMismatchError` on the first variant whose output is
    not exactly equal to the first one's.  The returned array is the one
    produced by ``prefer`` when given, otherwise the first variant's.
    """

    results = compare_variants(signal, half_window, variants=variants)
    if not results:
        return _empty()
    names = list(results)
    reference_name = names[0]
    reference = results[reference_name]
    for name in names[1:]:
        candidate = results[name]
        if not np.array_equal(reference, candidate):
            missing = np.setdiff1d(reference, candidate).tolist()
            extra = np.setdiff1d(candidate, reference).tolist()
            raise VariantMismatchError(reference_name, name, missing, extra)
    logger.debug("%d variants agree on %d peak(s)", len(names), reference.size)
    if prefer is not None:
        if prefer not in results:
            raise ValueError(f"Unknown peak detection method '{prefer}' (expected one of {', '.join(names)})")
        return results[prefer]
    return reference


def _plateau_runs(values: np.ndarray, indices: np.ndarray) -> Iterable[np.ndarray]:
    if indices.size == 0:
        return []
    breaks = np.flatnonzero(
        (np.diff(indices) != 1) | (values[indices[1:]] != values[indices[:-1]])
    ) + 1
    return np.split(indices, breaks)


def collapse_plateaus(signal, indices, policy: str = "all") -> np.ndarray:
    """Reduce each run of adjacent, equal valued peaks to one representative.

    ``"all"`` returns ``indices`` unchanged.
    """

    if policy not in PLATEAU_POLICIES:
        raise ValueError(
            f"Unknown plateau policy '{policy}' (expected one of {', '.join(PLATEAU_POLICIES)})"
        )
    idx = np.asarray(indices, dtype=np.intp).ravel()
    if policy == "all" or idx.size == 0:
        return idx
    values = _as_signal(signal)
    kept: List[int] = []
    for run in _plateau_runs(values, idx):
        if policy == "first":
            kept.append(int(run[0]))
        elif policy == "last":
            kept.append(int(run[-1]))
        else:
            kept.append(int(run[(run.size - 1) // 2]))
    if len(kept) != idx.size:
        logger.debug("Collapsed %d plateau peak(s) to %d using '%s'", idx.size, len(kept), policy)
    return np.asarray(kept, dtype=np.intp)
