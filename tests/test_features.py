"""
Feature extraction tests
"""
import math

import numpy as np
import pandas as pd
import pytest

from holter_hrv import features as features_module
from holter_hrv.config import Config
from holter_hrv.features import (
    CATCH22_NAMES,
    DESCRIPTIVE_NAMES,
    FeatureComputationError,
    approximate_entropy,
    coefficient_of_variation,
    descriptive_features,
    detrended_fluctuation_alpha,
    extract_series_features,
    extract_subject_features,
    feature_names,
    sample_entropy,
    summarize_missing,
)
from holter_hrv.windowing import downsample_windows, window_beats


def _random_series(n=200, seed=0):
    rng = np.random.default_rng(seed)
    return 70.0 + rng.normal(0.0, 3.0, n)


def test_descriptive_features():
    x = np.array([1.0, 2.0, 3.0, 4.0, np.nan])

    d = descriptive_features(x)

    assert d["mean"] == pytest.approx(2.5)
    assert d["sd"] == pytest.approx(np.std([1, 2, 3, 4], ddof=1))
    assert d["max"] == 4.0
    assert d["min"] == 1.0
    assert d["median"] == pytest.approx(2.5)
    assert d["iqr"] == pytest.approx(1.5)
    assert d["cv"] == pytest.approx(d["sd"] / d["mean"])


def test_cv_is_nan_for_zero_mean():
    assert math.isnan(coefficient_of_variation(np.array([-1.0, 1.0])))
    assert math.isnan(coefficient_of_variation(np.zeros(5)))


def test_entropies_on_random_series():
    x = _random_series()
    r = 0.2 * np.std(x, ddof=1)

    apen = approximate_entropy(x, 2, r)
    sampen = sample_entropy(x, 2, r)

    assert np.isfinite(apen) and apen > 0
    assert np.isfinite(sampen) and sampen > 0


def test_entropy_rejects_short_and_constant_series():
    with pytest.raises(FeatureComputationError):
        approximate_entropy(np.array([1.0, 2.0, 3.0]), 2, 0.1)
    with pytest.raises(FeatureComputationError):
        sample_entropy(np.full(50, 60.0), 2, 0.0)


def test_dfa_requires_twice_the_largest_window():
    with pytest.raises(FeatureComputationError):
        detrended_fluctuation_alpha(_random_series(20), window_range=(4, 16), n_points=8)

    alpha = detrended_fluctuation_alpha(_random_series(300), window_range=(4, 16), n_points=8)
    assert np.isfinite(alpha)


def test_series_features_complete_on_long_series():
    result = extract_series_features(_random_series(), Config())

    assert set(feature_names(Config())) <= set(result.values)
    assert np.isfinite(result.values["DN_Mean"])
    assert result.values["DN_Mean"] == pytest.approx(result.values["mean"])
    for name in DESCRIPTIVE_NAMES + ("apen", "sampen", "permen", "dfa_alpha"):
        assert np.isfinite(result.values[name]), name


def test_short_series_fails_per_feature():
    result = extract_series_features(np.array([60.0, 62.0]), Config())

    assert not result.ok
    # catch24 still reports what it can define on two values
    assert result.values["DN_Mean"] == pytest.approx(61.0)
    assert not any(name in result.errors for name in CATCH22_NAMES)
    for name in ("apen", "sampen", "permen", "dfa_alpha"):
        assert math.isnan(result.values[name])
        assert name in result.errors
    # Descriptive statistics are still computed
    assert result.values["mean"] == pytest.approx(61.0)
    assert result.values["max"] == 62.0
    assert "mean" not in result.errors


def test_constant_series_entropy_is_nan():
    result = extract_series_features(np.full(50, 60.0), Config())

    assert math.isnan(result.values["apen"])
    assert math.isnan(result.values["sampen"])
    assert math.isnan(result.values["dfa_alpha"])
    assert result.values["sd"] == 0.0
    assert result.values["cv"] == 0.0
    assert result.values["DN_Mean"] == pytest.approx(60.0)
    assert "DN_Mean" not in result.errors


def test_library_failure_is_isolated(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("catch22 crashed")

    monkeypatch.setattr(features_module.pycatch22, "catch22_all", broken)

    result = extract_series_features(_random_series(), Config())

    assert all(math.isnan(result.values[name]) for name in CATCH22_NAMES)
    assert "catch22 crashed" in result.errors["CO_f1ecac"]
    assert np.isfinite(result.values["apen"])
    assert np.isfinite(result.values["mean"])


def test_subject_features_end_to_end(holter_beats):
    windows = downsample_windows(window_beats(holter_beats, 60.0), modulus=5, phase=1)
    assert windows.groupby("id").size().tolist() == [2, 2, 2]

    features, failures = extract_subject_features(windows, Config())

    assert len(features) == 3
    assert features["id"].tolist() == ["a1nn", "c1nn", "n1nn"]
    assert features[["id", "condition", "status"]].notna().all().all()
    assert features.loc[features["id"] == "c1nn", "hr_mean"].item() == pytest.approx(60.0)
    assert features.loc[features["id"] == "n1nn", "hr_mean"].item() == pytest.approx(60.0 / 0.857)
    # SDNN of constant intervals is 0 in every window, so its CV is NaN
    assert math.isnan(features.loc[features["id"] == "c1nn", "sdnn_cv"].item())
    assert {"hr", "sdnn", "rmssd"} == set(failures["series"])


def test_feature_names_are_unique_after_prefixing(holter_beats):
    windows = window_beats(holter_beats, 60.0)
    features, _ = extract_subject_features(windows, Config())

    assert features.columns.is_unique
    for prefix in ("hr_", "sdnn_", "rmssd_"):
        assert any(c.startswith(prefix) for c in features.columns)


def test_subject_without_a_series_is_kept():
    windows = pd.DataFrame({
        "id": ["n1nn", "n1nn", "c1nn", "c1nn"],
        "condition": ["Normal", "Normal", "CHF", "CHF"],
        "status": ["Healthy", "Healthy", "CHF", "CHF"],
        "window_index": [0, 1, 0, 1],
        "mean_hr": [70.0, 72.0, 60.0, 61.0],
        "sdnn": [0.05, 0.04, 0.02, 0.03],
        "rmssd": [0.03, 0.02, np.nan, np.nan],
        "n_beats": [60, 60, 1, 1],
    })

    features, failures = extract_subject_features(windows, Config())

    assert features["id"].tolist() == ["c1nn", "n1nn"]
    c1 = features[features["id"] == "c1nn"]
    assert c1["rmssd_mean"].isna().all()
    assert c1["hr_mean"].item() == pytest.approx(60.5)
    assert ((failures["id"] == "c1nn") & (failures["series"] == "rmssd") & (failures["feature"] == "*")).any()


def test_summarize_missing():
    features = pd.DataFrame({
        "id": ["a", "b"], "condition": ["Normal", "CHF"], "status": ["Healthy", "CHF"],
        "hr_mean": [1.0, 2.0], "hr_apen": [np.nan, np.nan], "hr_sampen": [np.nan, 1.0],
    })

    missing = summarize_missing(features, threshold=0.5)

    assert missing.to_dict() == {"hr_apen": 1.0}
