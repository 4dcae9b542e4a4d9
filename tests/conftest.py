"""Shared fixtures: synthetic Holter beat files and tables."""
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from holter_hrv.labels import condition_from_subject_id, status_from_condition


def write_beat_file(directory: Path, subject_id: str, intervals, elapsed) -> Path:
    """Write "<interval> <marker> <elapsed>" rows like the database export."""
    path = directory / f"{subject_id}.txt"
    lines = [f"{iv:.3f} N {t:.3f}" for iv, t in zip(intervals, elapsed)]
    path.write_text("\n".join(lines) + "\n")
    return path


def make_beats(subject_id: str, intervals, elapsed) -> pd.DataFrame:
    condition = condition_from_subject_id(subject_id)
    return pd.DataFrame({
        "id": subject_id,
        "interval_s": np.asarray(intervals, dtype=float),
        "marker": 0.0,
        "elapsed_s": np.asarray(elapsed, dtype=float),
        "condition": condition.value,
        "status": status_from_condition(condition).value,
    })


def ten_minute_subjects():
    """n1nn (HR ~70), a1nn (alternating 0.5/1.2 s), c1nn (HR 60); one beat per second for 10 minutes."""
    elapsed = np.arange(600, dtype=float)
    return {
        "n1nn": (np.full(600, 0.857), elapsed),
        "a1nn": (np.tile([0.5, 1.2], 300), elapsed),
        "c1nn": (np.full(600, 1.0), elapsed),
    }


@pytest.fixture
def holter_dir(tmp_path):
    data_dir = tmp_path / "holter_rr"
    data_dir.mkdir()
    for subject_id, (intervals, elapsed) in ten_minute_subjects().items():
        write_beat_file(data_dir, f"{subject_id}", intervals, elapsed)
    return data_dir


@pytest.fixture
def holter_beats():
    return pd.concat(
        [make_beats(s, iv, t) for s, (iv, t) in ten_minute_subjects().items()],
        ignore_index=True,
    )
