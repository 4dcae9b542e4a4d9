"""
Window statistics, windowing and downsampling tests
"""
import math

import numpy as np
import pandas as pd
import pytest

from holter_hrv.config import parse_window_duration
from holter_hrv.windowing import (
    WindowComputationError,
    compute_rmssd,
    downsample_windows,
    summarize_window,
    window_beats,
)

from conftest import make_beats


def test_constant_intervals_give_hr_60():
    summary = summarize_window(np.full(10, 1.0))

    assert summary.mean_hr == pytest.approx(60.0)
    assert summary.sdnn == 0.0
    assert summary.rmssd == 0.0
    assert summary.n_beats == 10


def test_mean_hr_converts_each_interval():
    # mean(60/0.5, 60/1.0) = 90, whereas 60 / mean(0.5, 1.0) = 80
    summary = summarize_window(np.array([0.5, 1.0]))
    assert summary.mean_hr == pytest.approx(90.0)


def test_sdnn_is_sample_sd_and_rmssd_uses_successive_differences():
    intervals = np.array([1.0, 0.8, 1.0])
    summary = summarize_window(intervals)

    assert summary.sdnn == pytest.approx(np.std(intervals, ddof=1))
    assert summary.rmssd == pytest.approx(0.2)


@pytest.mark.parametrize("intervals", [[], [0.9]])
def test_short_windows_give_nan_variability(intervals):
    summary = summarize_window(np.array(intervals))

    assert math.isnan(summary.sdnn)
    assert math.isnan(summary.rmssd)
    assert summary.n_beats == len(intervals)


def test_rmssd_raises_for_single_beat():
    with pytest.raises(WindowComputationError):
        compute_rmssd(np.array([1.0]))


def test_ten_minutes_give_ten_windows(holter_beats):
    windows = window_beats(holter_beats, 60.0)

    counts = windows.groupby("id").size()
    assert counts.to_dict() == {"a1nn": 10, "c1nn": 10, "n1nn": 10}
    assert (windows["n_beats"] == 60).all()

    c1 = windows[windows["id"] == "c1nn"]
    np.testing.assert_allclose(c1["mean_hr"], 60.0)
    n1 = windows[windows["id"] == "n1nn"]
    np.testing.assert_allclose(n1["mean_hr"], 60.0 / 0.857)


def test_windows_carry_subject_labels(holter_beats):
    windows = window_beats(holter_beats, 60.0)

    labels = windows.drop_duplicates("id").set_index("id")
    assert labels.loc["a1nn", "condition"] == "AtrialFibrillation"
    assert labels.loc["a1nn", "status"] == "Healthy"
    assert labels.loc["c1nn", "status"] == "CHF"


def test_window_beats_sorts_by_elapsed_time():
    beats = make_beats("n1nn", [1.0, 0.5, 1.0, 0.5], [3.0, 0.5, 1.5, 2.0])

    windows = window_beats(beats, 60.0)

    # Time order: 0.5, 1.0, 0.5, 1.0 -> successive differences of 0.5
    assert windows["rmssd"].iloc[0] == pytest.approx(0.5)


def test_gaps_do_not_create_empty_windows():
    elapsed = np.concatenate([np.arange(0, 60), np.arange(300, 360)]).astype(float)
    beats = make_beats("n1nn", np.full(len(elapsed), 1.0), elapsed)

    windows = window_beats(beats, 60.0)

    assert windows["window_index"].tolist() == [0, 5]


def test_single_beat_window_is_retained():
    beats = make_beats("n1nn", [1.0, 1.0, 1.0], [10.0, 20.0, 70.0])

    windows = window_beats(beats, 60.0)

    assert windows["window_index"].tolist() == [0, 1]
    assert windows["n_beats"].tolist() == [2, 1]
    assert math.isnan(windows["rmssd"].iloc[1])
    assert math.isnan(windows["sdnn"].iloc[1])


def test_windowing_is_idempotent(holter_beats):
    first = window_beats(holter_beats, 60.0)

    # Reconstruct beats at their window start; re-windowing keeps boundaries and counts
    rebuilt = holter_beats.copy()
    rebuilt["elapsed_s"] = np.floor(rebuilt["elapsed_s"] / 60.0) * 60.0
    second = window_beats(rebuilt, 60.0)

    pd.testing.assert_frame_equal(
        first[["id", "window_index", "n_beats"]],
        second[["id", "window_index", "n_beats"]],
    )
    pd.testing.assert_frame_equal(first, window_beats(holter_beats.sample(frac=1.0, random_state=0), 60.0))


def test_five_minute_windows(holter_beats):
    windows = window_beats(holter_beats, parse_window_duration("5min"))

    assert windows.groupby("id").size().tolist() == [2, 2, 2]
    assert (windows["n_beats"] == 300).all()


def test_window_seconds_must_be_positive(holter_beats):
    with pytest.raises(ValueError):
        window_beats(holter_beats, 0.0)


def test_downsample_keeps_phase_one(holter_beats):
    windows = window_beats(holter_beats, 60.0)

    kept = downsample_windows(windows, modulus=5, phase=1)

    assert len(kept) == 6
    for _, group in kept.groupby("id"):
        assert group["window_index"].tolist() == [1, 6]


@pytest.mark.parametrize("n_windows", [1, 4, 5, 6, 11, 288])
@pytest.mark.parametrize("phase", [0, 1, 4])
def test_downsample_count_and_phase(n_windows, phase):
    windows = pd.DataFrame({
        "id": "n1nn",
        "condition": "Normal",
        "status": "Healthy",
        "window_index": np.arange(n_windows),
    })

    kept = downsample_windows(windows, modulus=5, phase=phase)

    assert len(kept) in {n_windows // 5, math.ceil(n_windows / 5)}
    assert len(kept) == sum(1 for i in range(n_windows) if i % 5 == phase)
    assert (kept["window_index"] % 5 == phase).all()


def test_downsample_rejects_out_of_range_phase(holter_beats):
    windows = window_beats(holter_beats, 60.0)
    with pytest.raises(ValueError):
        downsample_windows(windows, modulus=5, phase=5)


@pytest.mark.parametrize(
    "text, seconds",
    [("1min", 60.0), ("5min", 300.0), ("300s", 300.0), ("90", 90.0), ("2.5min", 150.0)],
)
def test_parse_window_duration(text, seconds):
    assert parse_window_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "abc", "0", "-1min"])
def test_parse_window_duration_rejects(text):
    with pytest.raises(ValueError):
        parse_window_duration(text)
