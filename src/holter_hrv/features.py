"""
Per-subject feature extraction over windowed HRV series.

Provides:
- catch22 / catch24 canonical time-series features (pycatch22)
- Descriptive statistics (mean, SD, range, CV, IQR, median)
- Nonlinear features: approximate, sample and permutation entropy,
  DFA scaling exponent (neurokit2)
- Per-subject extraction for each windowed series and an outer merge
  into one wide row per subject

Every feature is computed in isolation: a failing estimator yields NaN for
that feature only and is recorded in ``FeatureResult.errors``.
"""

from functools import reduce
from typing import Callable, Dict, List, Tuple
from dataclasses import dataclass, field
import warnings

import numpy as np
import pandas as pd
import neurokit2 as nk
import pycatch22

from .config import Config, default_config


SUBJECT_KEYS: Tuple[str, ...] = ("id", "condition", "status")

CATCH22_NAMES: Tuple[str, ...] = (
    "DN_HistogramMode_5",
    "DN_HistogramMode_10",
    "CO_f1ecac",
    "CO_FirstMin_ac",
    "CO_HistogramAMI_even_2_5",
    "CO_trev_1_num",
    "MD_hrv_classic_pnn40",
    "SB_BinaryStats_mean_longstretch1",
    "SB_TransitionMatrix_3ac_sumdiagcov",
    "PD_PeriodicityWang_th0_01",
    "CO_Embed2_Dist_tau_d_expfit_meandiff",
    "IN_AutoMutualInfoStats_40_gaussian_fmmi",
    "FC_LocalSimple_mean1_tauresrat",
    "DN_OutlierInclude_p_001_mdrmd",
    "DN_OutlierInclude_n_001_mdrmd",
    "SP_Summaries_welch_rect_area_5_1",
    "SB_BinaryStats_diff_longstretch0",
    "SB_MotifThree_quantile_hh",
    "SC_FluctAnal_2_rsrangefit_50_1_logi_prop_r1",
    "SC_FluctAnal_2_dfa_50_1_2_logi_prop_r1",
    "SP_Summaries_welch_rect_centroid",
    "FC_LocalSimple_mean3_stderr",
)
CATCH24_EXTRA_NAMES: Tuple[str, ...] = ("DN_Mean", "DN_Spread_Std")

DESCRIPTIVE_NAMES: Tuple[str, ...] = ("mean", "sd", "max", "min", "cv", "iqr", "median")
NONLINEAR_NAMES: Tuple[str, ...] = ("apen", "sampen", "permen", "dfa_alpha")


class FeatureComputationError(ValueError):
    """A feature estimator could not produce a value for the series."""


@dataclass
class FeatureResult:
    """Features of one series, with failures kept as NaN."""
    values: Dict[str, float] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True if every feature was computed."""
        return not self.errors

    def prefixed(self, prefix: str) -> Dict[str, float]:
        """Feature values keyed ``<prefix>_<name>``."""
        return {f"{prefix}_{name}": value for name, value in self.values.items()}


def catch22_names(catch24: bool = True) -> Tuple[str, ...]:
    """Feature names returned by ``catch22_features``."""
    return CATCH22_NAMES + CATCH24_EXTRA_NAMES if catch24 else CATCH22_NAMES


def feature_names(config: Config = default_config) -> Tuple[str, ...]:
    """Unprefixed feature names produced by ``extract_series_features``."""
    return catch22_names(config.CATCH24) + DESCRIPTIVE_NAMES + NONLINEAR_NAMES


def _finite(series) -> np.ndarray:
    x = np.asarray(series, dtype=np.float64)
    return x[np.isfinite(x)]


def _require_length(x: np.ndarray, n_min: int, estimator: str) -> None:
    if len(x) < n_min:
        raise FeatureComputationError(
            f"{estimator} needs at least {n_min} values, series has {len(x)}"
        )


def _check_finite(value: float, estimator: str) -> float:
    value = float(value)
    if not np.isfinite(value):
        raise FeatureComputationError(f"{estimator} returned a non-finite value ({value})")
    return value


# =============================================================================
# Canonical time-series features
# =============================================================================

def catch22_features(series: np.ndarray, catch24: bool = True) -> Dict[str, float]:
    """
    Compute the catch22 feature set (plus mean and SD when ``catch24``).

    Parameters
    ----------
    series : np.ndarray
        Windowed HRV series in window order. NaNs are dropped.
    catch24 : bool
        Include DN_Mean and DN_Spread_Std.

    Returns
    -------
    Dict[str, float]
        Feature name -> value. Values the library cannot define for
        this series (e.g. autocorrelation of a constant) are NaN.

    Raises
    ------
    FeatureComputationError
        If the series has no finite values.
    """
    x = _finite(series)
    _require_length(x, 1, "catch22")

    result = pycatch22.catch22_all(x.tolist(), catch24=catch24)
    return {name: float(value) for name, value in zip(result["names"], result["values"])}


# =============================================================================
# Descriptive statistics
# =============================================================================

def coefficient_of_variation(series: np.ndarray) -> float:
    """SD / mean; NaN when the mean is 0 or fewer than two values exist."""
    x = _finite(series)
    if len(x) < 2:
        return np.nan
    mean = np.mean(x)
    if mean == 0:
        return np.nan
    return float(np.std(x, ddof=1) / mean)


def descriptive_features(series: np.ndarray) -> Dict[str, float]:
    """Mean, SD, max, min, CV, IQR and median, ignoring NaNs."""
    x = _finite(series)
    if len(x) == 0:
        return {name: np.nan for name in DESCRIPTIVE_NAMES}

    q25, q75 = np.percentile(x, [25, 75])
    return {
        "mean": float(np.mean(x)),
        "sd": float(np.std(x, ddof=1)) if len(x) >= 2 else np.nan,
        "max": float(np.max(x)),
        "min": float(np.min(x)),
        "cv": coefficient_of_variation(x),
        "iqr": float(q75 - q25),
        "median": float(np.median(x)),
    }


# =============================================================================
# Nonlinear features
# =============================================================================

def entropy_tolerance(series: np.ndarray, factor: float = default_config.ENTROPY_TOLERANCE_FACTOR) -> float:
    """Entropy tolerance r = factor * sample SD of the series."""
    x = _finite(series)
    _require_length(x, 2, "tolerance")
    return float(factor * np.std(x, ddof=1))


def _tolerance_or_raise(x: np.ndarray, tolerance: float, estimator: str) -> float:
    if tolerance is None:
        tolerance = entropy_tolerance(x)
    if not np.isfinite(tolerance) or tolerance <= 0:
        raise FeatureComputationError(f"{estimator} undefined for a constant series (r={tolerance})")
    return tolerance


def approximate_entropy(
    series: np.ndarray,
    dimension: int = default_config.ENTROPY_DIMENSION,
    tolerance: float = None,
) -> float:
    """Approximate entropy (ApEn) with embedding ``dimension`` and absolute ``tolerance``."""
    x = _finite(series)
    _require_length(x, dimension + 2, "ApEn")
    tolerance = _tolerance_or_raise(x, tolerance, "ApEn")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        apen, _ = nk.entropy_approximate(x, delay=1, dimension=dimension, tolerance=tolerance)
    return _check_finite(apen, "ApEn")


def sample_entropy(
    series: np.ndarray,
    dimension: int = default_config.ENTROPY_DIMENSION,
    tolerance: float = None,
) -> float:
    """Sample entropy (SampEn) with embedding ``dimension`` and absolute ``tolerance``."""
    x = _finite(series)
    _require_length(x, dimension + 2, "SampEn")
    tolerance = _tolerance_or_raise(x, tolerance, "SampEn")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        sampen, _ = nk.entropy_sample(x, delay=1, dimension=dimension, tolerance=tolerance)
    return _check_finite(sampen, "SampEn")


def permutation_entropy(series: np.ndarray) -> float:
    """Normalized permutation entropy with the estimator's default order."""
    x = _finite(series)
    _require_length(x, 4, "PermEn")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        permen, _ = nk.entropy_permutation(x)
    return _check_finite(permen, "PermEn")


def dfa_scales(window_range: Tuple[int, int], n_points: int) -> np.ndarray:
    """Log-spaced integer window sizes between ``window_range`` bounds."""
    lo, hi = window_range
    if lo < 2 or hi <= lo:
        raise ValueError(f"Invalid DFA window range: {window_range}")
    scales = np.floor(np.logspace(np.log10(lo), np.log10(hi), n_points)).astype(int)
    return np.unique(scales)


def detrended_fluctuation_alpha(
    series: np.ndarray,
    window_range: Tuple[int, int] = default_config.DFA_WINDOW_RANGE,
    n_points: int = default_config.DFA_N_POINTS,
) -> float:
    """
    DFA scaling exponent (alpha) over the given window sizes.

    The series must be at least twice as long as the largest window.
    """
    x = _finite(series)
    scales = dfa_scales(window_range, n_points)
    _require_length(x, 2 * int(scales[-1]), "DFA")
    if np.std(x) == 0:
        raise FeatureComputationError("DFA undefined for a constant series")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        alpha, _ = nk.fractal_dfa(x, scale=scales, show=False)
    return _check_finite(alpha, "DFA")


# =============================================================================
# Series / subject extraction
# =============================================================================

def _compute_into(
    result: FeatureResult,
    names: Tuple[str, ...],
    compute: Callable[[], Dict[str, float]],
) -> None:
    """Run one estimator; on failure fill its names with NaN and record the error."""
    try:
        values = compute()
    except Exception as e:
        for name in names:
            result.values[name] = np.nan
            result.errors[name] = f"{type(e).__name__}: {e}"
        return

    for name, value in values.items():
        result.values[name] = float(value)
    for name in names:
        result.values.setdefault(name, np.nan)


def extract_series_features(
    series: np.ndarray,
    config: Config = default_config,
) -> FeatureResult:
    """
    Compute the full feature vector of one windowed series.

    Parameters
    ----------
    series : np.ndarray
        Windowed HRV series (mean HR, SDNN or RMSSD) in window order.
    config : Config
        Pipeline configuration (entropy, catch22 and DFA parameters).

    Returns
    -------
    FeatureResult
        Values for every name in ``feature_names(config)``; failed
        features are NaN with their error message in ``errors``.
    """
    x = _finite(series)
    result = FeatureResult()

    _compute_into(
        result,
        catch22_names(config.CATCH24),
        lambda: catch22_features(x, catch24=config.CATCH24),
    )
    _compute_into(result, DESCRIPTIVE_NAMES, lambda: descriptive_features(x))

    def _tolerance() -> float:
        return entropy_tolerance(x, config.ENTROPY_TOLERANCE_FACTOR)

    _compute_into(
        result,
        ("apen",),
        lambda: {"apen": approximate_entropy(x, config.ENTROPY_DIMENSION, _tolerance())},
    )
    _compute_into(
        result,
        ("sampen",),
        lambda: {"sampen": sample_entropy(x, config.ENTROPY_DIMENSION, _tolerance())},
    )
    _compute_into(result, ("permen",), lambda: {"permen": permutation_entropy(x)})
    _compute_into(
        result,
        ("dfa_alpha",),
        lambda: {"dfa_alpha": detrended_fluctuation_alpha(x, config.DFA_WINDOW_RANGE, config.DFA_N_POINTS)},
    )

    return result


def extract_subject_features(
    windows: pd.DataFrame,
    config: Config = default_config,
    verbose: bool = False,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Extract features for every subject and windowed series.

    For each series (mean HR, SDNN, RMSSD) the windows of a subject are
    ordered by ``window_index`` and reduced to a ``FeatureResult``. Feature
    names are prefixed with the series prefix and the per-series tables
    are outer-joined on (id, condition, status), so a subject without a
    usable series keeps NaN columns for it.

    Parameters
    ----------
    windows : pd.DataFrame
        Windows table from ``window_beats`` / ``downsample_windows``.
    config : Config
        Pipeline configuration.
    verbose : bool
        Print per-subject progress.

    Returns
    -------
    Tuple[pd.DataFrame, pd.DataFrame]
        Wide feature table (one row per subject) and a failure table with
        columns id, series, feature, error.
    """
    keys = list(SUBJECT_KEYS)
    names = feature_names(config)
    ordered = windows.sort_values(keys + ["window_index"], kind="mergesort")

    tables: List[pd.DataFrame] = []
    failures: List[Dict[str, str]] = []

    for column, prefix in config.SERIES_PREFIXES:
        columns = keys + [f"{prefix}_{name}" for name in names]
        rows: List[Dict[str, object]] = []

        for subject_keys, group in ordered.groupby(keys, sort=True):
            subject = dict(zip(keys, subject_keys))
            series = group[column].to_numpy(dtype=np.float64)

            if not np.isfinite(series).any():
                failures.append({
                    "id": subject["id"], "series": prefix, "feature": "*",
                    "error": "no finite values in series",
                })
                continue

            result = extract_series_features(series, config)
            rows.append({**subject, **result.prefixed(prefix)})

            for name, message in result.errors.items():
                failures.append({"id": subject["id"], "series": prefix, "feature": name, "error": message})

            if verbose and not result.ok:
                print(f"    {subject['id']} [{prefix}]: {len(result.errors)} features NaN")

        tables.append(pd.DataFrame(rows) if rows else pd.DataFrame(columns=columns))

    features = reduce(lambda left, right: pd.merge(left, right, on=keys, how="outer"), tables)
    features = features.sort_values("id", kind="mergesort").reset_index(drop=True)

    failure_table = pd.DataFrame(failures, columns=["id", "series", "feature", "error"])
    return features, failure_table


def summarize_missing(features: pd.DataFrame, threshold: float = default_config.NAN_REPORT_THRESHOLD) -> pd.Series:
    """NaN fraction of feature columns above ``threshold``, largest first."""
    feature_cols = [c for c in features.columns if c not in SUBJECT_KEYS]
    if not feature_cols or features.empty:
        return pd.Series(dtype=float)
    fraction = features[feature_cols].isna().mean()
    return fraction[fraction > threshold].sort_values(ascending=False)
