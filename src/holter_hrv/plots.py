"""Presentation plots for the group comparison step.

- Box + strip plots per metric, grouped by status or condition
- PCA biplot (PC1 vs PC2 scores with the strongest loading arrows)
- PCA loading heatmap
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .pca import PCAResult


def _pyplot():
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    return plt


def _safe_name(metric: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in metric)


def plot_metric_boxplots(
    long_df: pd.DataFrame,
    metrics: Sequence[str],
    by: str,
    out_dir: Path,
    order: Optional[Sequence[str]] = None,
) -> List[Path]:
    """
    Save one box + strip plot per metric, grouped by ``by``.

    Returns
    -------
    List[Path]
        Paths of the written PNG files.
    """
    plt = _pyplot()
    import seaborn as sns

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    saved: List[Path] = []
    for metric in metrics:
        plot_long = long_df[long_df["metric"] == metric].dropna(subset=["value"])
        if plot_long.empty:
            continue

        group_order = list(order) if order is not None else sorted(plot_long[by].dropna().unique())

        fig, ax = plt.subplots(figsize=(6.5, 4.0))

        sns.boxplot(data=plot_long, x=by, y="value", order=group_order, ax=ax, showfliers=False)
        sns.stripplot(
            data=plot_long,
            x=by,
            y="value",
            order=group_order,
            ax=ax,
            color="black",
            alpha=0.6,
            jitter=0.2,
            size=3,
        )

        ax.set_title(f"{metric} by {by}")
        ax.set_xlabel(by)
        ax.set_ylabel(metric)
        ax.grid(True, axis="y", alpha=0.2)

        out_path = out_dir / f"box_{by}_{_safe_name(metric)}.png"
        fig.tight_layout()
        fig.savefig(out_path, dpi=150)
        plt.close(fig)
        saved.append(out_path)

    return saved


def plot_pca_biplot(
    result: PCAResult,
    label_col: str,
    out_path: Path,
    n_arrows: int = 8,
) -> Optional[Path]:
    """Scatter PC1/PC2 scores coloured by ``label_col`` with the top loading arrows."""
    if "PC2" not in result.scores.columns:
        return None

    plt = _pyplot()
    import seaborn as sns

    evr = result.explained_variance_ratio

    fig, ax = plt.subplots(figsize=(7.0, 6.0))
    sns.scatterplot(data=result.scores, x="PC1", y="PC2", hue=label_col, ax=ax, s=50)

    # Arrow length scaled to the score cloud
    scale = float(np.abs(result.scores[["PC1", "PC2"]].to_numpy()).max())
    strength = np.hypot(result.loadings["PC1"], result.loadings["PC2"])
    top = strength.sort_values(ascending=False).head(n_arrows).index

    for feature in top:
        x = result.loadings.loc[feature, "PC1"] * scale
        y = result.loadings.loc[feature, "PC2"] * scale
        ax.arrow(0, 0, x, y, color="grey", alpha=0.7, width=0.002 * scale, head_width=0.03 * scale)
        ax.text(x * 1.08, y * 1.08, feature, fontsize=7, color="dimgrey")

    ax.axhline(0, color="black", linewidth=0.5, alpha=0.3)
    ax.axvline(0, color="black", linewidth=0.5, alpha=0.3)
    ax.set_xlabel(f"PC1 ({evr[0]:.1%})")
    ax.set_ylabel(f"PC2 ({evr[1]:.1%})")
    ax.set_title(f"PCA biplot ({len(result.features)} features, {len(result.scores)} subjects)")

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path


def plot_loading_heatmap(
    result: PCAResult,
    out_path: Path,
    n_components: int = 5,
) -> Path:
    """Heatmap of feature loadings on the first ``n_components`` PCs."""
    plt = _pyplot()
    import seaborn as sns

    loadings = result.loadings.iloc[:, :n_components]

    height = max(4.0, 0.25 * len(loadings))
    fig, ax = plt.subplots(figsize=(1.2 * loadings.shape[1] + 4.0, height))
    sns.heatmap(loadings, cmap="vlag", center=0.0, ax=ax, cbar_kws={"label": "loading"})
    ax.set_title("PCA loadings")

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path
