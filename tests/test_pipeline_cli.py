"""
End-to-end runner tests (Step 1 feature extraction, Step 2 group comparison)
"""
import numpy as np
import pandas as pd

import run_feature_extraction
import run_group_comparison
from holter_hrv.pca import run_pca
from holter_hrv.plots import plot_loading_heatmap, plot_metric_boxplots, plot_pca_biplot
from holter_hrv.comparison import to_long_format

from test_comparison import _feature_table
from conftest import write_beat_file


def test_feature_extraction_end_to_end(holter_dir, tmp_path):
    out = tmp_path / "features.csv"
    windows_out = tmp_path / "windows.csv"

    code = run_feature_extraction.main([
        "--input-dir", str(holter_dir),
        "--window-seconds", "1min",
        "--downsample-phase", "1",
        "--output", str(out),
        "--windows-output", str(windows_out),
        "--quiet",
    ])

    assert code == 0
    windows = pd.read_csv(windows_out)
    for _, group in windows.groupby("id"):
        assert group["window_index"].tolist() == [1, 6]

    features = pd.read_csv(out)
    assert len(features) == 3
    assert sorted(features["id"]) == ["a1nn", "c1nn", "n1nn"]
    assert features[["id", "condition", "status"]].notna().all().all()
    assert dict(zip(features["id"], features["condition"])) == {
        "a1nn": "AtrialFibrillation", "c1nn": "CHF", "n1nn": "Normal",
    }


def test_feature_extraction_skips_bad_file(holter_dir, tmp_path, capsys):
    (holter_dir / "c2nn.txt").write_text("not a beat file\n")
    out = tmp_path / "features.csv"

    code = run_feature_extraction.main(["--input-dir", str(holter_dir), "--output", str(out)])

    assert code == 0
    assert len(pd.read_csv(out)) == 3
    assert "c2nn.txt" in capsys.readouterr().out


def test_five_minute_windows_are_not_downsampled(tmp_path):
    data_dir = tmp_path / "holter_rr"
    data_dir.mkdir()
    elapsed = np.arange(3600, dtype=float)
    write_beat_file(data_dir, "n1nn", np.full(3600, 0.857), elapsed)
    windows_out = tmp_path / "windows.csv"

    code = run_feature_extraction.main([
        "--input-dir", str(data_dir),
        "--window-seconds", "5min",
        "--output", str(tmp_path / "features.csv"),
        "--windows-output", str(windows_out),
        "--quiet",
    ])

    assert code == 0
    assert pd.read_csv(windows_out)["window_index"].tolist() == list(range(12))


def test_summary_reports_dropped_intervals(holter_dir, tmp_path, capsys):
    write_beat_file(holter_dir, "c2nn", [1.0, 0.0, 1.0, -0.2], [1.0, 1.0, 2.0, 2.0])

    code = run_feature_extraction.main(["--input-dir", str(holter_dir), "--output", str(tmp_path / "f.csv")])

    assert code == 0
    out = capsys.readouterr().out
    assert "Non-positive intervals dropped: 2" in out
    assert "c2nn.txt: 2" in out


def test_feature_extraction_empty_dir_fails(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()

    code = run_feature_extraction.main(["--input-dir", str(empty), "--output", str(tmp_path / "f.csv"), "--quiet"])

    assert code == 1


def test_group_comparison_end_to_end(tmp_path):
    features_path = tmp_path / "features.csv"
    _feature_table().to_csv(features_path, index=False)
    out_dir = tmp_path / "stats"

    code = run_group_comparison.main([
        "--features", str(features_path), "--output-dir", str(out_dir), "--no-plots", "--quiet",
    ])

    assert code == 0
    results = pd.read_csv(out_dir / "group_comparison_results.csv")
    assert len(results) == 12
    promising = pd.read_csv(out_dir / "promising_metrics.csv")
    assert "hr_mean" in promising["metric"].tolist()
    explained = pd.read_csv(out_dir / "pca_explained_variance.csv")
    assert np.isclose(explained["explained_variance_ratio"].sum(), 1.0)


def test_group_comparison_missing_features(tmp_path):
    code = run_group_comparison.main(["--features", str(tmp_path / "missing.csv"), "--quiet"])
    assert code == 1


def test_plots_are_written(tmp_path):
    features = _feature_table()
    long_df = to_long_format(features)
    result = run_pca(features)

    boxes = plot_metric_boxplots(long_df, ["hr_mean"], by="condition", out_dir=tmp_path)
    biplot = plot_pca_biplot(result, label_col="condition", out_path=tmp_path / "biplot.png")
    heatmap = plot_loading_heatmap(result, tmp_path / "heatmap.png")

    assert [p.name for p in boxes] == ["box_condition_hr_mean.png"]
    assert biplot.exists()
    assert heatmap.exists()
