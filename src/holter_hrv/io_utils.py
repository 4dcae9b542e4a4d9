"""
I/O utilities for the Holter HRV pipeline.

Handles:
- Discovery of per-subject beat-interval files
- Parsing of the three-column "interval marker elapsed" text format
- Subject / condition / status tagging
- Skip-and-continue loading of a whole directory
"""

from pathlib import Path
from typing import List, Tuple
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .config import Config, default_config
from .labels import condition_from_subject_id, status_from_condition


# Beats table columns
BEAT_COLUMNS: Tuple[str, ...] = ("id", "interval_s", "marker", "elapsed_s", "condition", "status")
RAW_COLUMNS: Tuple[str, ...] = ("interval_s", "marker", "elapsed_s")


class IngestionError(ValueError):
    """A beat-interval file could not be parsed."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path.name}: {reason}")


@dataclass
class IngestionResult:
    """Container for a directory load."""
    beats: pd.DataFrame                                        # Concatenated beats table
    loaded: List[str] = field(default_factory=list)            # Subject ids loaded
    skipped: List[Tuple[str, str]] = field(default_factory=list)  # (file name, reason)
    dropped_intervals: List[Tuple[str, int]] = field(default_factory=list)  # (file name, non-positive rows)

    @property
    def n_subjects(self) -> int:
        """Number of subjects in the beats table."""
        return len(self.loaded)

    @property
    def n_dropped_intervals(self) -> int:
        """Non-positive intervals dropped across all loaded files."""
        return sum(n for _, n in self.dropped_intervals)


def subject_id_from_path(path: Path, suffix: str = default_config.FILE_SUFFIX) -> str:
    """
    Derive the subject id from a beat file name.

    The extension of ``suffix`` is stripped, so "n1nn.txt" -> "n1nn".
    """
    name = Path(path).name
    extension = Path(suffix).suffix
    if extension and name.endswith(extension):
        return name[: -len(extension)]
    return Path(path).stem


def list_beat_files(
    input_dir: Path,
    suffix: str = default_config.FILE_SUFFIX,
) -> List[Path]:
    """
    List all beat-interval files in a directory.

    Parameters
    ----------
    input_dir : Path
        Directory with one text file per subject.
    suffix : str
        Required file name ending (e.g. "nn.txt").

    Returns
    -------
    List[Path]
        Sorted list of matching file paths.

    Raises
    ------
    FileNotFoundError
        If the directory does not exist or holds no matching files.
    """
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise FileNotFoundError(f"Input directory not found: {input_dir}")

    beat_files = sorted(p for p in input_dir.iterdir() if p.is_file() and p.name.endswith(suffix))

    if not beat_files:
        raise FileNotFoundError(f"No '*{suffix}' files found in: {input_dir}")

    return beat_files


def load_beat_file(
    path: Path,
    suffix: str = default_config.FILE_SUFFIX,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Load one subject's beat-interval file.

    Parameters
    ----------
    path : Path
        Whitespace-separated text file with columns
        ``interval_s marker elapsed_s`` and no header.
    suffix : str
        File suffix used to derive the subject id.
    verbose : bool
        Print warnings about dropped rows.

    Returns
    -------
    pd.DataFrame
        Beats table with columns ``BEAT_COLUMNS``.

    Raises
    ------
    IngestionError
        If the file cannot be read, is empty, does not have exactly
        three columns, or has non-numeric interval / elapsed values.
    """
    beats, _ = _read_beat_file(path, suffix, verbose)
    return beats


def _read_beat_file(path: Path, suffix: str, verbose: bool) -> Tuple[pd.DataFrame, int]:
    """Parse and tag one beat file; also return the number of dropped non-positive intervals."""
    path = Path(path)

    try:
        raw = pd.read_csv(path, sep=r"\s+", header=None, comment="#", dtype=str)
    except pd.errors.EmptyDataError:
        raise IngestionError(path, "file is empty")
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise IngestionError(path, f"unparseable text ({e})")
    except OSError as e:
        raise IngestionError(path, f"unreadable ({e})")

    if raw.empty:
        raise IngestionError(path, "file is empty")

    if raw.shape[1] != len(RAW_COLUMNS):
        raise IngestionError(path, f"expected {len(RAW_COLUMNS)} columns, found {raw.shape[1]}")

    raw.columns = list(RAW_COLUMNS)

    # The marker column is carried as read; only interval and elapsed time must be numeric
    values = raw.copy()
    for column in ("interval_s", "elapsed_s"):
        values[column] = pd.to_numeric(raw[column], errors="coerce")

    numeric = values[["interval_s", "elapsed_s"]].to_numpy(dtype=np.float64)
    bad_rows = ~np.isfinite(numeric).all(axis=1)
    if bad_rows.any():
        first_bad = int(np.flatnonzero(bad_rows)[0]) + 1
        raise IngestionError(
            path, f"{int(bad_rows.sum())} non-numeric rows (first at line {first_bad})"
        )

    # Non-positive intervals are recording artifacts, not beats
    non_positive = values["interval_s"] <= 0
    if non_positive.any():
        if verbose:
            print(f"  ⚠ Warning: {path.name}: dropping {int(non_positive.sum())} non-positive intervals")
        values = values[~non_positive]

    if values.empty:
        raise IngestionError(path, "no positive intervals")

    subject_id = subject_id_from_path(path, suffix)
    condition = condition_from_subject_id(subject_id)
    status = status_from_condition(condition)

    beats = values.reset_index(drop=True)
    beats.insert(0, "id", subject_id)
    beats["condition"] = condition.value
    beats["status"] = status.value

    return beats[list(BEAT_COLUMNS)], int(non_positive.sum())


def load_beat_directory(
    input_dir: Path,
    config: Config = default_config,
    suffix: str = None,
    verbose: bool = True,
) -> IngestionResult:
    """
    Load every beat-interval file in a directory.

    Files that raise ``IngestionError`` are reported and skipped; the
    remaining files are still loaded.

    Parameters
    ----------
    input_dir : Path
        Directory with one text file per subject.
    config : Config
        Pipeline configuration.
    suffix : str, optional
        File name ending. Defaults to config.FILE_SUFFIX.
    verbose : bool
        Print progress messages.

    Returns
    -------
    IngestionResult
        Concatenated beats plus loaded / skipped bookkeeping.

    Raises
    ------
    FileNotFoundError
        If the directory is missing, holds no matching files, or
        none of the files could be loaded.
    """
    if suffix is None:
        suffix = config.FILE_SUFFIX

    beat_files = list_beat_files(input_dir, suffix)

    frames: List[pd.DataFrame] = []
    result = IngestionResult(beats=pd.DataFrame(columns=list(BEAT_COLUMNS)))

    for path in beat_files:
        try:
            beats, n_dropped = _read_beat_file(path, suffix, verbose)
        except IngestionError as e:
            result.skipped.append((path.name, e.reason))
            if verbose:
                print(f"  ✗ Skipping {path.name}: {e.reason}")
            continue

        frames.append(beats)
        result.loaded.append(str(beats["id"].iloc[0]))
        if n_dropped:
            result.dropped_intervals.append((path.name, n_dropped))
        if verbose:
            print(
                f"  Loaded {path.name}: {len(beats)} beats "
                f"({beats['condition'].iloc[0]}, {beats['status'].iloc[0]})"
            )

    if not frames:
        raise FileNotFoundError(f"None of the {len(beat_files)} files in {input_dir} could be loaded")

    result.beats = pd.concat(frames, ignore_index=True)
    return result
