#!/usr/bin/env python3
"""
Step 1: Holter Windowing & Feature Extraction

This script turns raw 24-hour beat-interval recordings into one feature row
per subject:
1. Load every "*nn.txt" file (interval, marker, elapsed time) from the input directory
2. Tag each subject with condition (Normal / AtrialFibrillation / CHF) and status
3. Window each recording (1-minute or 5-minute) into mean HR, SDNN and RMSSD
4. For 1-minute windows, keep one window per 5-minute block (wearable cadence)
5. Extract catch24, descriptive, entropy and DFA features per series
6. Export the wide feature table (CSV or Parquet)

Usage:
    python src/run_feature_extraction.py --input-dir Data/holter_rr
    python src/run_feature_extraction.py --input-dir Data/holter_rr --window-seconds 5min
    python src/run_feature_extraction.py --input-dir Data/holter_rr --downsample-phase 0
Output:
    Results/holter_features.csv  - One row per subject: id, condition, status, <series>_<feature>
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

# Ensure this script works when executed from any CWD.
sys.path.insert(0, str(Path(__file__).resolve().parent))

from holter_hrv.config import Config, parse_window_duration
from holter_hrv.io_utils import load_beat_directory
from holter_hrv.windowing import window_beats, downsample_windows
from holter_hrv.features import extract_subject_features, summarize_missing


def write_table(df: pd.DataFrame, path: Path) -> None:
    """Write a table as Parquet when the suffix asks for it, else CSV."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in {".parquet", ".pq"}:
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Step 1: Holter windowing and per-subject feature extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # 1-minute windows, downsampled to one window per 5 minutes (phase 1)
    python src/run_feature_extraction.py --input-dir Data/holter_rr

    # 5-minute windows (never downsampled)
    python src/run_feature_extraction.py --input-dir Data/holter_rr --window-seconds 5min
        """
    )

    config = Config()

    parser.add_argument(
        "--input-dir", "-i",
        type=Path,
        default=None,
        help=f"Directory with one beat-interval file per subject (default: {config.get_data_dir()})"
    )

    parser.add_argument(
        "--pattern",
        type=str,
        default=config.FILE_SUFFIX,
        help=f"Required file name ending (default: {config.FILE_SUFFIX})"
    )

    parser.add_argument(
        "--window-seconds", "-w",
        type=str,
        default="1min",
        help="Window duration: 1min, 5min, <n>s or seconds (default: 1min)"
    )

    parser.add_argument(
        "--downsample-phase",
        type=int,
        default=config.DOWNSAMPLE_PHASE,
        help=f"Window kept per block: index %% modulus == phase (default: {config.DOWNSAMPLE_PHASE})"
    )

    parser.add_argument(
        "--downsample-modulus",
        type=int,
        default=config.DOWNSAMPLE_MODULUS,
        help=f"Windows per downsampling block (default: {config.DOWNSAMPLE_MODULUS})"
    )

    parser.add_argument(
        "--no-downsample",
        action="store_true",
        help="Use every 1-minute window (no wearable-cadence downsampling)"
    )

    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Output feature table (.csv or .parquet)"
    )

    parser.add_argument(
        "--windows-output",
        type=Path,
        default=None,
        help="Also save the windowed series table"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress progress messages"
    )

    args = parser.parse_args(argv)
    verbose = not args.quiet

    try:
        window_seconds = parse_window_duration(args.window_seconds)
    except ValueError as e:
        parser.error(str(e))

    input_dir = args.input_dir if args.input_dir is not None else config.get_data_dir()

    # Wearable-cadence downsampling picks 1-minute windows; longer windows are kept whole
    downsample = not args.no_downsample and window_seconds == config.WINDOW_SECONDS

    if verbose:
        print("=" * 60)
        print("Holter Feature Extraction - Step 1")
        print("=" * 60)
        print(f"Input directory: {input_dir}")
        print(f"Window: {window_seconds:.0f} s")
        if args.no_downsample:
            print("Downsampling: off")
        elif not downsample:
            print(f"Downsampling: off (only applies to {config.WINDOW_SECONDS:.0f} s windows)")
        else:
            print(f"Downsampling: index % {args.downsample_modulus} == {args.downsample_phase}")

    # Load beats
    try:
        ingestion = load_beat_directory(input_dir, config, suffix=args.pattern, verbose=verbose)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1

    # Window + downsample
    windows = window_beats(ingestion.beats, window_seconds, config)

    if downsample:
        try:
            windows = downsample_windows(
                windows, modulus=args.downsample_modulus, phase=args.downsample_phase, config=config
            )
        except ValueError as e:
            parser.error(str(e))

    if verbose:
        per_subject = windows.groupby("id").size()
        print(f"\nWindows: {len(windows)} ({per_subject.min() if len(per_subject) else 0}"
              f"-{per_subject.max() if len(per_subject) else 0} per subject)")

    if args.windows_output is not None:
        write_table(windows, args.windows_output)
        if verbose:
            print(f"Windows saved to: {args.windows_output}")

    # Features
    if verbose:
        print("\nExtracting features...")
    features, failures = extract_subject_features(windows, config, verbose=verbose)

    output_path = args.output if args.output is not None else config.get_features_path()
    write_table(features, output_path)

    if verbose:
        print("\n" + "=" * 60)
        print("SUMMARY")
        print("=" * 60)
        print(f"Files loaded: {len(ingestion.loaded)}")
        print(f"Files skipped: {len(ingestion.skipped)}")
        for name, reason in ingestion.skipped:
            print(f"  ✗ {name}: {reason}")
        if ingestion.dropped_intervals:
            print(f"Non-positive intervals dropped: {ingestion.n_dropped_intervals}")
            for name, n_dropped in ingestion.dropped_intervals:
                print(f"  ⚠ {name}: {n_dropped}")
        print(f"Subjects: {len(features)}")
        print(f"Feature columns: {features.shape[1] - 3}")
        print(f"NaN features (subject x series x feature): {len(failures)}")

        nan_heavy = summarize_missing(features, config.NAN_REPORT_THRESHOLD)
        if not nan_heavy.empty:
            print(f"\n⚠ Columns with > {config.NAN_REPORT_THRESHOLD:.0%} NaN:")
            for column, fraction in nan_heavy.items():
                print(f"  - {column}: {fraction:.0%}")

        print(f"\nOutput saved to: {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
