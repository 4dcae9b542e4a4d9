"""
Beat windowing module.

Provides:
- Per-window HRV summaries (mean heart rate, SDNN, RMSSD)
- Grouped windowing of the beats table into fixed, non-overlapping windows
- Phase-selective downsampling of 1-minute windows
"""

from typing import Dict, List, Tuple
from dataclasses import dataclass, asdict

import numpy as np
import pandas as pd

from .config import Config, default_config


WINDOW_KEYS: Tuple[str, ...] = ("id", "condition", "status", "window_index")
WINDOW_COLUMNS: Tuple[str, ...] = WINDOW_KEYS + ("mean_hr", "sdnn", "rmssd", "n_beats")


class WindowComputationError(ValueError):
    """A window holds too few beats for the requested statistic."""


@dataclass
class WindowSummary:
    """HRV summary of one window."""
    mean_hr: float  # Mean of 60 / interval (bpm)
    sdnn: float     # Sample standard deviation of intervals (s)
    rmssd: float    # Root mean square of successive differences (s)
    n_beats: int    # Beats in the window

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def _require_beats(intervals: np.ndarray, n_min: int, statistic: str) -> None:
    if len(intervals) < n_min:
        raise WindowComputationError(
            f"{statistic} needs at least {n_min} beats, window has {len(intervals)}"
        )


def compute_sdnn(intervals: np.ndarray) -> float:
    """Sample (Bessel-corrected) standard deviation of the intervals."""
    _require_beats(intervals, 2, "SDNN")
    return float(np.std(intervals, ddof=1))


def compute_rmssd(intervals: np.ndarray) -> float:
    """Root mean square of successive interval differences, in time order."""
    _require_beats(intervals, 2, "RMSSD")
    diff = np.diff(intervals)
    return float(np.sqrt(np.mean(diff ** 2)))


def summarize_window(intervals: np.ndarray) -> WindowSummary:
    """
    Summarize the intervals of one window.

    Parameters
    ----------
    intervals : np.ndarray
        Inter-beat intervals in seconds, ordered by elapsed time.

    Returns
    -------
    WindowSummary
        Window statistics. SDNN and RMSSD are NaN when the window holds
        fewer than two beats; mean HR is NaN only for an empty window.
    """
    intervals = np.asarray(intervals, dtype=np.float64)

    # Each interval is converted before averaging, not 60 / mean(interval)
    mean_hr = float(np.mean(60.0 / intervals)) if len(intervals) else np.nan

    try:
        sdnn = compute_sdnn(intervals)
    except WindowComputationError:
        sdnn = np.nan

    try:
        rmssd = compute_rmssd(intervals)
    except WindowComputationError:
        rmssd = np.nan

    return WindowSummary(mean_hr=mean_hr, sdnn=sdnn, rmssd=rmssd, n_beats=len(intervals))


def assign_window_index(elapsed_s: pd.Series, window_seconds: float) -> pd.Series:
    """Index of the half-open window ``[i * d, (i + 1) * d)`` holding each beat."""
    if window_seconds <= 0:
        raise ValueError(f"window_seconds must be positive, got {window_seconds}")
    return np.floor(elapsed_s.astype(np.float64) / window_seconds).astype(np.int64)


def window_beats(
    beats: pd.DataFrame,
    window_seconds: float = None,
    config: Config = default_config,
) -> pd.DataFrame:
    """
    Partition each subject's beats into fixed, non-overlapping windows.

    Beats are sorted by elapsed time within each subject before windowing.
    One row is produced per window index present in the data; gaps in a
    recording do not produce empty windows.

    Parameters
    ----------
    beats : pd.DataFrame
        Beats table with ``id``, ``condition``, ``status``,
        ``interval_s`` and ``elapsed_s`` columns.
    window_seconds : float, optional
        Window duration in seconds. Defaults to config.WINDOW_SECONDS.
    config : Config
        Pipeline configuration.

    Returns
    -------
    pd.DataFrame
        Windows table with columns ``WINDOW_COLUMNS``.
    """
    if window_seconds is None:
        window_seconds = config.WINDOW_SECONDS

    missing = {"id", "condition", "status", "interval_s", "elapsed_s"} - set(beats.columns)
    if missing:
        raise ValueError(f"Beats table is missing columns: {sorted(missing)}")

    ordered = beats.sort_values(["id", "elapsed_s"], kind="mergesort")
    ordered = ordered.assign(window_index=assign_window_index(ordered["elapsed_s"], window_seconds))

    rows: List[Dict[str, object]] = [
        {
            **dict(zip(WINDOW_KEYS, keys)),
            **summarize_window(group["interval_s"].to_numpy(dtype=np.float64)).to_dict(),
        }
        for keys, group in ordered.groupby(list(WINDOW_KEYS), sort=True)
    ]

    windows = pd.DataFrame(rows, columns=list(WINDOW_COLUMNS))
    windows["window_index"] = windows["window_index"].astype(np.int64)
    windows["n_beats"] = windows["n_beats"].astype(np.int64)
    return windows


def downsample_windows(
    windows: pd.DataFrame,
    modulus: int = None,
    phase: int = None,
    config: Config = default_config,
) -> pd.DataFrame:
    """
    Keep one window per super-window of ``modulus`` windows.

    Selects rows with ``window_index % modulus == phase`` to emulate the
    lower sampling cadence of a wearable device.

    Parameters
    ----------
    windows : pd.DataFrame
        Windows table from ``window_beats``.
    modulus : int, optional
        Windows per super-window. Defaults to config.DOWNSAMPLE_MODULUS.
    phase : int, optional
        Retained position in each super-window. Defaults to config.DOWNSAMPLE_PHASE.
    config : Config
        Pipeline configuration.

    Returns
    -------
    pd.DataFrame
        Subset of ``windows`` with a fresh index.
    """
    if modulus is None:
        modulus = config.DOWNSAMPLE_MODULUS
    if phase is None:
        phase = config.DOWNSAMPLE_PHASE

    if modulus < 1:
        raise ValueError(f"modulus must be >= 1, got {modulus}")
    if not 0 <= phase < modulus:
        raise ValueError(f"phase must be in [0, {modulus}), got {phase}")

    keep = windows["window_index"] % modulus == phase
    return windows[keep].reset_index(drop=True)
