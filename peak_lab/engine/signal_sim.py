"""Reproducible synthetic signals for exercising the peak detectors.

Randomness is always drawn from an explicit :class:`numpy.random.Generator`;
pass ``rng`` to share a generator between calls or ``seed`` to get a fresh,
reproducible one.  Nothing here touches numpy's global random state.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from peak_lab.engine.spectrum import Spectrum

logger = logging.getLogger(__name__)

DISTRIBUTIONS = ("normal", "uniform", "integers")


def make_rng(seed: Optional[int] = None, rng: Optional[np.random.Generator] = None) -> np.random.Generator:
    if rng is not None:
        return rng
    return np.random.default_rng(seed)


def gaussian_band(x, amplitude: float, center: float, sigma: float, offset: float = 0.0) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    return amplitude * np.exp(-((x - center) ** 2) / (2 * sigma ** 2)) + offset


def _random_bands(
    rng: np.random.Generator,
    n_bands: int,
    x_range: Tuple[float, float],
) -> List[Dict[str, float]]:
    lo, hi = float(min(x_range)), float(max(x_range))
    span = hi - lo
    bands = []
    for center in np.sort(rng.uniform(lo + 0.05 * span, hi - 0.05 * span, size=n_bands)):
        bands.append(
            {
                "center": float(center),
                "sigma": float(rng.uniform(0.002, 0.01) * span),
                "amplitude": float(rng.uniform(0.2, 1.0)),
            }
        )
    return bands


def simulate_spectrum(
    n_points: int = 1024,
    *,
    bands: Optional[Sequence[Dict[str, float]]] = None,
    n_bands: int = 5,
    x_range: Tuple[float, float] = (400.0, 4000.0),
    noise_sigma: float = 0.01,
    baseline_slope: float = 0.0,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> Spectrum:
    """Build a spectrum from Gaussian bands, a linear baseline and white noise.

    ``bands`` entries need ``center``, ``sigma`` and ``amplitude``; when omitted
    ``n_bands`` random bands are drawn from the generator.
    """

    generator = make_rng(seed, rng)
    n_points = max(int(n_points), 0)
    x = np.linspace(float(x_range[0]), float(x_range[1]), n_points)
    if bands is None:
        bands = _random_bands(generator, int(n_bands), x_range)
    else:
        bands = [dict(band) for band in bands]

    y = np.zeros_like(x)
    for band in bands:
        y += gaussian_band(x, band["amplitude"], band["center"], band["sigma"])
    if baseline_slope and n_points:
        y += baseline_slope * (x - x[0])
    if noise_sigma and noise_sigma > 0:
        y += generator.normal(0.0, noise_sigma, size=n_points)

    logger.debug("Simulated spectrum with %d point(s) and %d band(s)", n_points, len(bands))
    return Spectrum(
        axis=x,
        intensity=y,
        meta={
            "source": "simulated",
            "axis_key": "wavenumber",
            "axis_unit": "cm-1",
            "bands": bands,
            "noise_sigma": float(noise_sigma),
            "seed": seed,
        },
    )


def random_signal(
    n_points: int,
    *,
    distribution: str = "normal",
    low: int = 0,
    high: int = 5,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Return ``n_points`` i.i.d. draws.

    ``"integers"`` draws from ``[low, high)`` and produces many ties, which is
    the interesting case for plateau handling.
    """

    generator = make_rng(seed, rng)
    if distribution == "normal":
        return generator.normal(size=n_points)
    if distribution == "uniform":
        return generator.uniform(size=n_points)
    if distribution == "integers":
        return generator.integers(low, high, size=n_points).astype(float)
    raise ValueError(f"Unknown distribution '{distribution}' (expected one of {', '.join(DISTRIBUTIONS)})")
