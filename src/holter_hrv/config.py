"""holter_hrv configuration.

Centralizes configurable parameters for beat-file ingestion, windowing,
feature extraction and group comparison.
"""

import re
from pathlib import Path
from dataclasses import dataclass
from typing import Tuple


@dataclass
class Config:
    """Pipeline configuration parameters."""

    # ==========================================================================
    # Input Files
    # ==========================================================================
    # One file per subject: "<interval_s> <marker> <elapsed_s>", no header.
    # The subject id is the file name with this suffix's extension removed
    # (e.g. "n1nn.txt" -> "n1nn").
    FILE_SUFFIX: str = "nn.txt"

    # ==========================================================================
    # Windowing
    # ==========================================================================
    WINDOW_SECONDS: float = 60.0  # 1-minute windows

    # Downsampling keeps one 1-minute window per super-window of
    # DOWNSAMPLE_MODULUS windows, at index % DOWNSAMPLE_MODULUS == DOWNSAMPLE_PHASE.
    # Phase 1 matches the sampling phase of the companion wearable dataset.
    DOWNSAMPLE_MODULUS: int = 5
    DOWNSAMPLE_PHASE: int = 1

    # ==========================================================================
    # Feature Extraction
    # ==========================================================================
    # Approximate / sample entropy: embedding dimension and r = factor * SD
    ENTROPY_DIMENSION: int = 2
    ENTROPY_TOLERANCE_FACTOR: float = 0.2

    # catch22 plus DN_Mean / DN_Spread_Std
    CATCH24: bool = True

    # DFA: window sizes (in samples) and number of log-spaced scales
    DFA_WINDOW_RANGE: Tuple[int, int] = (4, 16)
    DFA_N_POINTS: int = 8

    # Windowed series -> column prefix in the merged feature table
    SERIES_PREFIXES: Tuple[Tuple[str, str], ...] = (
        ("mean_hr", "hr"),
        ("sdnn", "sdnn"),
        ("rmssd", "rmssd"),
    )

    # ==========================================================================
    # Group Comparison
    # ==========================================================================
    COMPARISON_ALPHA: float = 0.05
    # Feature columns with a larger NaN fraction are listed in the run summary
    NAN_REPORT_THRESHOLD: float = 0.5

    # ==========================================================================
    # Directory Structure
    # ==========================================================================
    DATA_DIR: str = "Data"
    RESULTS_DIR: str = "Results"

    RAW_SUBDIR: str = "holter_rr"
    STATS_SUBDIR: str = "stats"

    # ==========================================================================
    # Output File Naming
    # ==========================================================================
    FEATURES_FILE: str = "holter_features.csv"
    COMPARISON_FILE: str = "group_comparison_results.csv"
    PROMISING_FILE: str = "promising_metrics.csv"
    PCA_VARIANCE_FILE: str = "pca_explained_variance.csv"
    PCA_LOADINGS_FILE: str = "pca_loadings.csv"
    PCA_SCORES_FILE: str = "pca_scores.csv"

    def get_project_root(self) -> Path:
        """Get project root directory."""
        return Path(__file__).parent.parent.parent

    def get_data_dir(self) -> Path:
        """Get directory holding the raw beat-interval files."""
        return self.get_project_root() / self.DATA_DIR / self.RAW_SUBDIR

    def get_results_dir(self) -> Path:
        """Get results directory path."""
        return self.get_project_root() / self.RESULTS_DIR

    def get_features_path(self) -> Path:
        """Get path for the wide per-subject feature table."""
        results_dir = self.get_results_dir()
        results_dir.mkdir(parents=True, exist_ok=True)
        return results_dir / self.FEATURES_FILE

    def get_stats_dir(self) -> Path:
        """Get centralized directory for group comparison outputs."""
        stats_dir = self.get_results_dir() / self.STATS_SUBDIR
        stats_dir.mkdir(parents=True, exist_ok=True)
        return stats_dir


_DURATION_RE = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>min|m|s|sec)?\s*$", re.IGNORECASE)


def parse_window_duration(text: str) -> float:
    """Parse a window duration such as "1min", "5min", "300s" or "60" into seconds."""
    match = _DURATION_RE.match(str(text))
    if match is None:
        raise ValueError(f"Invalid window duration: {text!r} (expected e.g. 1min, 5min, 300s)")

    value = float(match.group("value"))
    unit = (match.group("unit") or "s").lower()
    seconds = value * 60.0 if unit in {"min", "m"} else value

    if seconds <= 0:
        raise ValueError(f"Window duration must be positive: {text!r}")
    return seconds


# Default configuration instance
default_config = Config()
