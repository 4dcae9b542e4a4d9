#!/usr/bin/env python3
"""Step 2: Group Comparison, PCA & Visualization

This script runs group-level statistics on the per-subject feature table
produced by Step 1.

Input:
    Results/holter_features.csv

Behavior:
    - Pivot the wide feature table to long form (id, condition, status, metric, value).
    - Per metric, run both two-group tests on status (Welch t-test,
      Mann-Whitney U) and both three-group tests on condition
      (one-way ANOVA, Kruskal-Wallis). Subjects labelled Unknown are excluded.
    - Tests that cannot run (too few observations, identical values) are
      reported as NA instead of aborting the run.
    - Metrics with three-group ANOVA p < alpha are "promising" and feed the PCA.

Outputs:
    Results/stats/
        group_comparison_results.csv
        promising_metrics.csv
        pca_explained_variance.csv
        pca_loadings.csv
        pca_scores.csv
        box_status_{metric}.png
        box_condition_{metric}.png
        pca_biplot.png
        pca_loadings_heatmap.png

Usage:
    python src/run_group_comparison.py
    python src/run_group_comparison.py --features Results/holter_features.csv --alpha 0.01 --no-plots
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

# Ensure this script works when executed from any CWD.
sys.path.insert(0, str(Path(__file__).resolve().parent))

from holter_hrv.config import Config
from holter_hrv.comparison import (
    THREE_GROUP_PARAMETRIC,
    promising_metrics,
    run_comparisons,
    to_long_format,
)
from holter_hrv.labels import Condition, Status
from holter_hrv.pca import run_pca


STATUS_ORDER = [Status.HEALTHY.value, Status.CHF.value]
CONDITION_ORDER = [Condition.NORMAL.value, Condition.ATRIAL_FIBRILLATION.value, Condition.CHF.value]


def load_features(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(
            f"Feature table not found: {path}\n"
            "Run Step 1 first (run_feature_extraction.py) to generate it."
        )

    if path.suffix.lower() in {".parquet", ".pq"}:
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path)

    required = {"id", "condition", "status"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"Feature table is missing required columns: {sorted(missing)}\nPath: {path}")

    df["id"] = df["id"].astype(str)
    return df


def _run_plots(long_df, metrics, pca_result, out_dir: Path, verbose: bool) -> None:
    from holter_hrv.plots import plot_loading_heatmap, plot_metric_boxplots, plot_pca_biplot

    saved = []
    saved += plot_metric_boxplots(long_df, metrics, by="status", out_dir=out_dir, order=STATUS_ORDER)
    saved += plot_metric_boxplots(long_df, metrics, by="condition", out_dir=out_dir, order=CONDITION_ORDER)

    if pca_result is not None:
        biplot = plot_pca_biplot(pca_result, label_col="condition", out_path=out_dir / "pca_biplot.png")
        if biplot is not None:
            saved.append(biplot)
        saved.append(plot_loading_heatmap(pca_result, out_dir / "pca_loadings_heatmap.png"))

    if verbose:
        for path in saved:
            print(f"Saved: {path.name}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Step 2: Group comparison, PCA and visualization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Compare all features in Results/holter_features.csv
    python src/run_group_comparison.py

    # Stricter selection, no plots
    python src/run_group_comparison.py --alpha 0.01 --no-plots
        """,
    )

    config = Config()

    parser.add_argument(
        "--features",
        "-f",
        type=Path,
        default=None,
        help="Wide feature table from Step 1 (default: Results/holter_features.csv)",
    )

    parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=None,
        help="Directory for statistics and plots (default: Results/stats)",
    )

    parser.add_argument(
        "--alpha",
        type=float,
        default=config.COMPARISON_ALPHA,
        help=f"Three-group p-value threshold for promising metrics (default: {config.COMPARISON_ALPHA})",
    )

    parser.add_argument(
        "--no-plots",
        action="store_true",
        help="Skip plot generation",
    )

    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress progress messages",
    )

    args = parser.parse_args(argv)
    verbose = not args.quiet

    features_path = args.features if args.features is not None else config.get_results_dir() / config.FEATURES_FILE

    try:
        features = load_features(features_path)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    out_dir = args.output_dir if args.output_dir is not None else config.get_stats_dir()
    out_dir.mkdir(parents=True, exist_ok=True)

    if verbose:
        print("=" * 60)
        print("Group Comparison - Step 2")
        print("=" * 60)
        print(f"Features: {features_path}")
        print(f"Subjects: {len(features)}")
        print(features.groupby(["condition", "status"]).size().to_string())

    long_df = to_long_format(features)

    # Stats
    results = run_comparisons(long_df, verbose=verbose)
    results_path = out_dir / config.COMPARISON_FILE
    results.to_csv(results_path, index=False)

    if verbose:
        print(f"Saved stats: {results_path}")

    promising = promising_metrics(results, alpha=args.alpha, test_kind=THREE_GROUP_PARAMETRIC)
    promising.to_csv(out_dir / config.PROMISING_FILE, index=False)

    if verbose:
        print(f"Promising metrics (ANOVA p < {args.alpha}): {len(promising)}")

    # PCA on promising metrics, all metrics if none qualify
    pca_metrics = promising["metric"].tolist() or None
    pca_result = None
    try:
        pca_result = run_pca(features, metrics=pca_metrics)
    except ValueError as e:
        print(f"  ⚠ Warning: PCA skipped: {e}")

    if pca_result is not None:
        pca_result.explained.to_csv(out_dir / config.PCA_VARIANCE_FILE, index=False)
        pca_result.loadings.to_csv(out_dir / config.PCA_LOADINGS_FILE)
        pca_result.scores.to_csv(out_dir / config.PCA_SCORES_FILE, index=False)

        if verbose:
            print(
                f"PCA: {len(pca_result.features)} features, {len(pca_result.scores)} subjects "
                f"({len(pca_result.dropped_columns)} constant/empty columns, "
                f"{pca_result.n_dropped_rows} incomplete subjects dropped)"
            )
            for _, row in pca_result.explained.head(5).iterrows():
                print(
                    f"  {row['PC']:>4s}: {row['explained_variance_ratio']:.4f}"
                    f"   (cum {row['cumulative_explained_variance']:.4f})"
                )

    # Plots
    if not args.no_plots:
        plot_metrics = promising["metric"].tolist()
        _run_plots(long_df, plot_metrics, pca_result, out_dir, verbose)

    if verbose:
        print("Done.")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
