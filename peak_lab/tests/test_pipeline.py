import numpy as np
import pytest

from peak_lab.engine import pipeline as core_pipeline
from peak_lab.engine.recipe_model import Recipe, RecipeValidationError
from peak_lab.engine.signal_sim import simulate_spectrum
from peak_lab.engine.spectrum import Spectrum


def _spectrum(values, **meta):
    values = np.asarray(values, dtype=float)
    meta.setdefault("sample_id", "S1")
    return Spectrum(axis=np.arange(values.size, dtype=float) * 10.0, intensity=values, meta=meta)


def test_pipeline_annotates_copy_with_peak_features():
    spec = _spectrum([0, 1, 4, 1, 0, 2, 7, 2, 0])
    processed, qc_rows = core_pipeline.run_pipeline([spec], {"features": {"peaks": {"half_window": 1}}})

    peaks = processed[0].meta["features"]["peaks"]
    assert [row["index"] for row in peaks] == [2, 6]
    assert [row["position"] for row in peaks] == [20.0, 60.0]
    assert [row["intensity"] for row in peaks] == [4.0, 7.0]
    assert "features" not in spec.meta
    assert processed[0].intensity is not spec.intensity
    assert qc_rows == [
        {
            "id": "S1",
            "points": 9,
            "half_window": 1,
            "method": "rolling_max",
            "verified": False,
            "plateau_policy": "all",
            "candidates": 2,
            "peaks": 2,
        }
    ]


def test_pipeline_verifies_variants_when_requested():
    spec = simulate_spectrum(600, seed=3)
    _, qc_rows = core_pipeline.run_pipeline(
        [spec], {"features": {"peaks": {"half_window": 4, "verify_variants": True}}}
    )
    assert qc_rows[0]["verified"] is True
    assert qc_rows[0]["peaks"] > 0


def test_max_peaks_keeps_strongest_in_index_order():
    spec = _spectrum([0, 3, 0, 9, 0, 5, 0, 1, 0])
    processed, _ = core_pipeline.run_pipeline(
        [spec], {"features": {"peaks": {"half_window": 1, "max_peaks": 2}}}
    )
    assert [row["index"] for row in processed[0].meta["features"]["peaks"]] == [3, 5]


def test_min_height_and_plateau_policy():
    spec = _spectrum([0, 5, 5, 5, 0, 1, 0])
    recipe = {"features": {"peaks": {"half_window": 1, "plateau_policy": "center", "min_height": 2}}}
    processed, qc_rows = core_pipeline.run_pipeline([spec], recipe)
    assert [row["index"] for row in processed[0].meta["features"]["peaks"]] == [2]
    assert qc_rows[0]["candidates"] == 4
    assert qc_rows[0]["peaks"] == 1


def test_disabled_detection_reports_nothing():
    spec = _spectrum([0, 1, 0])
    processed, qc_rows = core_pipeline.run_pipeline([spec], {"features": {"peaks": {"enabled": False}}})
    assert processed[0].meta["features"]["peaks"] == []
    assert qc_rows[0]["peaks"] == 0


def test_short_signal_logs_warning(caplog):
    spec = _spectrum([1.0, 2.0])
    with caplog.at_level("WARNING"):
        processed, _ = core_pipeline.run_pipeline([spec], Recipe())
    assert processed[0].meta["features"]["peaks"] == []
    assert "No peaks found in S1" in caplog.text


def test_invalid_recipe_raises_before_processing():
    with pytest.raises(RecipeValidationError, match="Half-window must not be negative"):
        core_pipeline.run_pipeline([_spectrum([0, 1, 0])], {"features": {"peaks": {"half_window": -3}}})


def test_run_batch_collects_audit_and_figures():
    specs = [simulate_spectrum(300, seed=seed) for seed in (1, 2)]
    result = core_pipeline.run_batch(specs, {"features": {"peaks": {"half_window": 6}}}, render_figures=True)
    assert len(result.processed) == 2
    assert len(result.qc_table) == 2
    assert len(result.figures) == 2
    assert all(blob.startswith(b"\x89PNG") for blob in result.figures.values())
    assert result.audit[0].startswith("Session start:")
    assert any("peak(s) via rolling_max" in entry for entry in result.audit)
    assert result.report_text.startswith("2 spectrum/spectra processed")


def test_verified_detection_returns_configured_method(monkeypatch):
    seen = []
    real_verify = core_pipeline.verify_variants_agree

    def recording_verify(signal, half_window, **kwargs):
        seen.append(kwargs.get("prefer"))
        return real_verify(signal, half_window, **kwargs)

    monkeypatch.setattr(core_pipeline, "verify_variants_agree", recording_verify)
    spec = _spectrum([0, 1, 4, 1, 0, 2, 7, 2, 0])
    recipe = {"features": {"peaks": {"half_window": 1, "method": "early_exit", "verify_variants": True}}}
    processed, qc_rows = core_pipeline.run_pipeline([spec], recipe)
    assert seen == ["early_exit"]
    assert qc_rows[0]["method"] == "early_exit"
    assert qc_rows[0]["verified"] is True
    assert [row["index"] for row in processed[0].meta["features"]["peaks"]] == [2, 6]
