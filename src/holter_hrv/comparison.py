"""Group comparison of per-subject features.

Each feature ("metric") is tested independently:

- two-group  : Status (Healthy vs CHF)
    parametric     -> Welch t-test (unequal variances)
    nonparametric  -> Mann-Whitney U (two-sided)
- three-group: Condition (Normal vs AtrialFibrillation vs CHF)
    parametric     -> one-way ANOVA
    nonparametric  -> Kruskal-Wallis H

Both tests of a pair are always reported; there is no normality-based
selection. A test that cannot run (missing group, fewer than two finite
observations in a group, identical values everywhere) yields an NA row with
the reason in ``error`` and does not affect other tests or metrics.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from .config import default_config
from .features import SUBJECT_KEYS
from .labels import Condition, Status


TWO_GROUP_PARAMETRIC = "two_group_parametric"
TWO_GROUP_NONPARAMETRIC = "two_group_nonparametric"
THREE_GROUP_PARAMETRIC = "three_group_parametric"
THREE_GROUP_NONPARAMETRIC = "three_group_nonparametric"

TEST_KINDS = (
    TWO_GROUP_PARAMETRIC,
    TWO_GROUP_NONPARAMETRIC,
    THREE_GROUP_PARAMETRIC,
    THREE_GROUP_NONPARAMETRIC,
)

TEST_NAMES: Dict[str, str] = {
    TWO_GROUP_PARAMETRIC: "welch_t",
    TWO_GROUP_NONPARAMETRIC: "mann_whitney_u",
    THREE_GROUP_PARAMETRIC: "anova",
    THREE_GROUP_NONPARAMETRIC: "kruskal_wallis",
}

EFFECT_MEASURES: Dict[str, str] = {
    TWO_GROUP_PARAMETRIC: "cohens_d",
    TWO_GROUP_NONPARAMETRIC: "rank_biserial",
    THREE_GROUP_PARAMETRIC: "eta_squared",
    THREE_GROUP_NONPARAMETRIC: "epsilon_squared",
}

RESULT_COLUMNS = (
    "metric",
    "test_kind",
    "test",
    "groups",
    "n_groups",
    "n_obs",
    "group_means",
    "statistic",
    "p_value",
    "effect_measure",
    "effect_size",
    "mean_diff",
    "median_diff",
    "error",
)

UNKNOWN_LABELS = {Condition.UNKNOWN.value, Status.UNKNOWN.value}


class ComparisonError(ValueError):
    """A group test cannot be run on the given observations."""


def _group_arrays(values: Sequence[float], groups: Sequence[str]) -> Dict[str, np.ndarray]:
    """Finite observations per group label, labels sorted."""
    df = pd.DataFrame({
        "value": pd.to_numeric(pd.Series(list(values), dtype=object), errors="coerce").to_numpy(dtype=float),
        "group": list(groups),
    })
    df = df[np.isfinite(df["value"]) & df["group"].notna()]
    return {
        str(label): g["value"].to_numpy(dtype=float)
        for label, g in df.groupby("group", sort=True)
    }


def _validate(arrays: Dict[str, np.ndarray], n_groups: int) -> None:
    if len(arrays) != n_groups:
        raise ComparisonError(f"expected {n_groups} groups, found {len(arrays)} ({sorted(arrays)})")

    small = {label: len(x) for label, x in arrays.items() if len(x) < 2}
    if small:
        raise ComparisonError(f"fewer than 2 observations in groups {small}")

    pooled = np.concatenate(list(arrays.values()))
    if np.ptp(pooled) == 0:
        raise ComparisonError("zero variance: all observations are identical")


def _format_means(arrays: Dict[str, np.ndarray]) -> str:
    return "|".join(f"{label}={np.mean(x):.6g}" for label, x in arrays.items() if len(x))


def _na_row(test_kind: str, arrays: Dict[str, np.ndarray], error: str) -> Dict[str, object]:
    return {
        "test_kind": test_kind,
        "test": TEST_NAMES[test_kind],
        "groups": "|".join(arrays),
        "n_groups": len(arrays),
        "n_obs": int(sum(len(x) for x in arrays.values())),
        "group_means": _format_means(arrays),
        "statistic": float("nan"),
        "p_value": float("nan"),
        "effect_measure": EFFECT_MEASURES[test_kind],
        "effect_size": float("nan"),
        "mean_diff": float("nan"),
        "median_diff": float("nan"),
        "error": error,
    }


def _finite_p(p: float, test_kind: str) -> float:
    p = float(p)
    if not np.isfinite(p):
        raise ComparisonError(f"{TEST_NAMES[test_kind]} returned a non-finite p-value")
    return p


def _cohens_d(a: np.ndarray, b: np.ndarray) -> float:
    n_a, n_b = len(a), len(b)
    pooled_var = ((n_a - 1) * np.var(a, ddof=1) + (n_b - 1) * np.var(b, ddof=1)) / (n_a + n_b - 2)
    if not pooled_var > 0:
        return float("nan")
    return float((np.mean(b) - np.mean(a)) / np.sqrt(pooled_var))


def _eta_squared(arrays: Sequence[np.ndarray]) -> float:
    pooled = np.concatenate(arrays)
    grand_mean = np.mean(pooled)
    ss_total = np.sum((pooled - grand_mean) ** 2)
    ss_between = sum(len(x) * (np.mean(x) - grand_mean) ** 2 for x in arrays)
    return float(ss_between / ss_total) if ss_total > 0 else float("nan")


def compare_two_groups(values: Sequence[float], groups: Sequence[str]) -> List[Dict[str, object]]:
    """
    Welch t-test and Mann-Whitney U between two groups.

    Differences and effect sizes are oriented as second group minus first
    group, with group labels in sorted order (e.g. Healthy - CHF).

    Returns
    -------
    List[Dict[str, object]]
        One row per test kind (parametric, nonparametric).
    """
    arrays = _group_arrays(values, groups)
    try:
        _validate(arrays, n_groups=2)
    except ComparisonError as e:
        return [_na_row(kind, arrays, str(e)) for kind in (TWO_GROUP_PARAMETRIC, TWO_GROUP_NONPARAMETRIC)]

    a, b = arrays.values()
    mean_diff = float(np.mean(b) - np.mean(a))
    median_diff = float(np.median(b) - np.median(a))

    rows: List[Dict[str, object]] = []

    try:
        res = stats.ttest_ind(b, a, equal_var=False)
        rows.append({
            **_na_row(TWO_GROUP_PARAMETRIC, arrays, ""),
            "statistic": float(res.statistic),
            "p_value": _finite_p(res.pvalue, TWO_GROUP_PARAMETRIC),
            "effect_size": _cohens_d(a, b),
            "mean_diff": mean_diff,
            "median_diff": median_diff,
        })
    except ValueError as e:
        rows.append(_na_row(TWO_GROUP_PARAMETRIC, arrays, str(e)))

    try:
        res = stats.mannwhitneyu(b, a, alternative="two-sided")
        rank_biserial = 2.0 * float(res.statistic) / (len(a) * len(b)) - 1.0
        rows.append({
            **_na_row(TWO_GROUP_NONPARAMETRIC, arrays, ""),
            "statistic": float(res.statistic),
            "p_value": _finite_p(res.pvalue, TWO_GROUP_NONPARAMETRIC),
            "effect_size": rank_biserial,
            "mean_diff": mean_diff,
            "median_diff": median_diff,
        })
    except ValueError as e:
        rows.append(_na_row(TWO_GROUP_NONPARAMETRIC, arrays, str(e)))

    return rows


def compare_three_groups(values: Sequence[float], groups: Sequence[str]) -> List[Dict[str, object]]:
    """
    One-way ANOVA and Kruskal-Wallis H across three groups.

    Returns
    -------
    List[Dict[str, object]]
        One row per test kind (parametric, nonparametric).
    """
    arrays = _group_arrays(values, groups)
    n_obs = int(sum(len(x) for x in arrays.values()))

    try:
        _validate(arrays, n_groups=3)
    except ComparisonError as e:
        return [_na_row(kind, arrays, str(e)) for kind in (THREE_GROUP_PARAMETRIC, THREE_GROUP_NONPARAMETRIC)]

    samples = list(arrays.values())
    rows: List[Dict[str, object]] = []

    try:
        res = stats.f_oneway(*samples)
        rows.append({
            **_na_row(THREE_GROUP_PARAMETRIC, arrays, ""),
            "statistic": float(res.statistic),
            "p_value": _finite_p(res.pvalue, THREE_GROUP_PARAMETRIC),
            "effect_size": _eta_squared(samples),
        })
    except ValueError as e:
        rows.append(_na_row(THREE_GROUP_PARAMETRIC, arrays, str(e)))

    try:
        res = stats.kruskal(*samples)
        rows.append({
            **_na_row(THREE_GROUP_NONPARAMETRIC, arrays, ""),
            "statistic": float(res.statistic),
            "p_value": _finite_p(res.pvalue, THREE_GROUP_NONPARAMETRIC),
            "effect_size": float(res.statistic) / (n_obs - 1),
        })
    except ValueError as e:
        rows.append(_na_row(THREE_GROUP_NONPARAMETRIC, arrays, str(e)))

    return rows


def to_long_format(features: pd.DataFrame) -> pd.DataFrame:
    """Melt the wide feature table to (id, condition, status, metric, value)."""
    keys = [k for k in SUBJECT_KEYS if k in features.columns]
    long_df = features.melt(id_vars=keys, var_name="metric", value_name="value")
    long_df["value"] = pd.to_numeric(long_df["value"], errors="coerce")
    return long_df


def run_comparisons(
    long_df: pd.DataFrame,
    two_group_col: str = "status",
    three_group_col: str = "condition",
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Run both two-group and both three-group tests for every metric.

    Parameters
    ----------
    long_df : pd.DataFrame
        Long-form table from ``to_long_format``.
    two_group_col : str
        Column holding the two-level grouping.
    three_group_col : str
        Column holding the three-level grouping.
    verbose : bool
        Print a per-run summary of failed tests.

    Returns
    -------
    pd.DataFrame
        One row per (metric, test_kind) with columns ``RESULT_COLUMNS``.
    """
    rows: List[Dict[str, object]] = []

    for metric, d in long_df.groupby("metric", sort=False):
        two = d[~d[two_group_col].isin(UNKNOWN_LABELS)]
        three = d[~d[three_group_col].isin(UNKNOWN_LABELS)]

        for row in compare_two_groups(two["value"], two[two_group_col]):
            rows.append({"metric": metric, **row})
        for row in compare_three_groups(three["value"], three[three_group_col]):
            rows.append({"metric": metric, **row})

    results = pd.DataFrame(rows, columns=list(RESULT_COLUMNS))

    if verbose and not results.empty:
        n_failed = int((results["error"] != "").sum())
        print(f"Tests run: {len(results)} ({results['metric'].nunique()} metrics), NA results: {n_failed}")

    return results


def promising_metrics(
    results: pd.DataFrame,
    alpha: float = default_config.COMPARISON_ALPHA,
    test_kind: str = THREE_GROUP_PARAMETRIC,
) -> pd.DataFrame:
    """
    Metrics whose ``test_kind`` p-value is below ``alpha``.

    NA results never qualify. Sorted by ascending p-value.
    """
    if test_kind not in TEST_KINDS:
        raise ValueError(f"Unknown test kind: {test_kind}")

    d = results[(results["test_kind"] == test_kind) & results["p_value"].notna()]
    d = d[d["p_value"] < alpha]
    return d[["metric", "p_value", "effect_size"]].sort_values("p_value", kind="mergesort").reset_index(drop=True)
