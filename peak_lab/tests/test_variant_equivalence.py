import numpy as np
import pytest

from peak_lab.engine.local_maxima import (
    VARIANTS,
    VariantMismatchError,
    compare_variants,
    local_maxima_early_exit,
    local_maxima_full_scan,
    verify_variants_agree,
)
from peak_lab.engine.signal_sim import random_signal, simulate_spectrum


@pytest.mark.parametrize("seed", range(6))
@pytest.mark.parametrize("half_window", [0, 1, 2, 5, 17])
@pytest.mark.parametrize("distribution", ["normal", "integers"])
def test_variants_agree_on_random_signals(seed, half_window, distribution):
    rng = np.random.default_rng(seed)
    n_points = int(rng.integers(0, 300))
    signal = random_signal(n_points, distribution=distribution, rng=rng)
    results = compare_variants(signal, half_window)
    reference = results["full_scan"]
    for name, result in results.items():
        assert np.array_equal(result, reference), name


def test_variants_agree_with_nan_and_infinities():
    rng = np.random.default_rng(11)
    signal = rng.integers(0, 3, size=400).astype(float)
    signal[rng.choice(400, size=40, replace=False)] = np.nan
    signal[rng.choice(400, size=10, replace=False)] = np.inf
    signal[rng.choice(400, size=10, replace=False)] = -np.inf
    for half_window in (0, 1, 3):
        verify_variants_agree(signal, half_window)


def test_variants_agree_on_simulated_spectrum():
    spectrum = simulate_spectrum(2048, n_bands=8, noise_sigma=0.005, seed=2024)
    agreed = verify_variants_agree(spectrum.intensity, 10)
    assert agreed.size > 0
    for func in VARIANTS.values():
        assert np.array_equal(func(spectrum.intensity, 10), agreed)


def test_verify_returns_agreed_indices():
    assert verify_variants_agree([1, 2, 9, 3, 1], 1).tolist() == [2]


def test_verify_reports_the_disagreeing_variant():
    def off_by_one(signal, half_window):
        return local_maxima_full_scan(signal, half_window) + 1

    variants = {
        "full_scan": local_maxima_full_scan,
        "early_exit": local_maxima_early_exit,
        "broken": off_by_one,
    }
    with pytest.raises(VariantMismatchError) as excinfo:
        verify_variants_agree([1, 2, 9, 3, 1, 0, 0], 1, variants=variants)
    err = excinfo.value
    assert err.reference == "full_scan"
    assert err.variant == "broken"
    assert err.missing == [2]
    assert err.extra == [3]


def test_verify_with_no_variants_is_empty():
    assert verify_variants_agree([1, 2, 1], 1, variants={}).size == 0


def test_verify_returns_the_preferred_variant_result():
    produced = {}

    def recording(name, func):
        def run(signal, half_window):
            produced[name] = np.asarray(func(signal, half_window), dtype=np.intp)
            return produced[name]

        return run

    variants = {name: recording(name, func) for name, func in VARIANTS.items()}
    agreed = verify_variants_agree([1, 2, 9, 3, 1, 4, 0], 1, variants=variants, prefer="early_exit")
    assert agreed is produced["early_exit"]
    assert agreed.tolist() == [2, 5]

    with pytest.raises(ValueError, match="Unknown peak detection method 'fastest'"):
        verify_variants_agree([1, 2, 1], 1, prefer="fastest")
