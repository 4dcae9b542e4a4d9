"""
PCA projection of the per-subject feature table.

Features are standardized to zero mean / unit variance before fitting.
Columns without variance and subjects with any missing feature value are
dropped explicitly, since PCA cannot handle either.
"""

from typing import List, Optional, Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from .features import SUBJECT_KEYS


@dataclass
class PCAResult:
    """Container for a fitted PCA."""
    scores: pd.DataFrame      # Subject keys + PC1..PCk
    loadings: pd.DataFrame    # Feature x PC
    explained: pd.DataFrame   # PC, explained_variance_ratio, cumulative_explained_variance
    features: List[str]       # Columns used for the fit
    dropped_columns: List[str]
    n_dropped_rows: int

    @property
    def explained_variance_ratio(self) -> np.ndarray:
        return self.explained["explained_variance_ratio"].to_numpy(dtype=float)


def prepare_pca_matrix(
    features: pd.DataFrame,
    metrics: Optional[Sequence[str]] = None,
) -> tuple:
    """
    Select the PCA input from the wide feature table.

    Parameters
    ----------
    features : pd.DataFrame
        Wide feature table (subject keys + numeric feature columns).
    metrics : Sequence[str], optional
        Restrict to these feature columns (e.g. promising metrics).

    Returns
    -------
    tuple
        (matrix, keys, dropped_columns, n_dropped_rows) where ``matrix`` holds
        numeric columns with nonzero variance and only complete rows, and
        ``keys`` the subject keys of those rows.
    """
    keys = [k for k in SUBJECT_KEYS if k in features.columns]
    if metrics is None:
        candidates = [c for c in features.columns if c not in keys]
    else:
        missing = [m for m in metrics if m not in features.columns]
        if missing:
            raise ValueError(f"Metrics not in feature table: {missing}")
        candidates = list(metrics)

    numeric = features[candidates].apply(pd.to_numeric, errors="coerce")

    variance = numeric.var(skipna=True)
    usable = [c for c in numeric.columns if np.isfinite(variance[c]) and variance[c] > 0]
    dropped_columns = [c for c in numeric.columns if c not in usable]

    matrix = numeric[usable]
    complete = matrix.notna().all(axis=1)
    n_dropped_rows = int((~complete).sum())

    return (
        matrix[complete].reset_index(drop=True),
        features.loc[complete, keys].reset_index(drop=True),
        dropped_columns,
        n_dropped_rows,
    )


def run_pca(
    features: pd.DataFrame,
    metrics: Optional[Sequence[str]] = None,
    n_components: Optional[int] = None,
) -> PCAResult:
    """
    Standardize the feature matrix and fit PCA.

    Parameters
    ----------
    features : pd.DataFrame
        Wide feature table.
    metrics : Sequence[str], optional
        Restrict the fit to these feature columns.
    n_components : int, optional
        Number of components (default: all).

    Returns
    -------
    PCAResult
        Scores, loadings and explained variance ratio per component.

    Raises
    ------
    ValueError
        If fewer than 2 complete rows or no usable column remain.
    """
    matrix, keys, dropped_columns, n_dropped_rows = prepare_pca_matrix(features, metrics)

    if matrix.shape[0] < 2 or matrix.shape[1] < 1:
        raise ValueError(
            f"Not enough data for PCA after cleaning: {matrix.shape[0]} rows x {matrix.shape[1]} columns"
        )

    Xs = StandardScaler().fit_transform(matrix.to_numpy(dtype=float))

    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(Xs)

    pcs = [f"PC{i + 1}" for i in range(pca.components_.shape[0])]
    evr = pca.explained_variance_ratio_

    explained = pd.DataFrame({
        "PC": pcs,
        "explained_variance_ratio": evr,
        "cumulative_explained_variance": np.cumsum(evr),
    })
    loadings = pd.DataFrame(pca.components_.T, index=matrix.columns, columns=pcs)
    loadings.index.name = "feature"

    return PCAResult(
        scores=pd.concat([keys, pd.DataFrame(scores, columns=pcs)], axis=1),
        loadings=loadings,
        explained=explained,
        features=list(matrix.columns),
        dropped_columns=dropped_columns,
        n_dropped_rows=n_dropped_rows,
    )
