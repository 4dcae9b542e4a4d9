# Holter HRV Feature Pipeline
# ingestion -> windowing -> feature extraction -> group comparison

from .config import Config, parse_window_duration
from .labels import Condition, Status, condition_from_subject_id, status_from_condition
from .io_utils import IngestionError, IngestionResult, load_beat_file, load_beat_directory
from .windowing import WindowComputationError, summarize_window, window_beats, downsample_windows
from .features import FeatureComputationError, FeatureResult, extract_series_features, extract_subject_features
from .comparison import ComparisonError, to_long_format, run_comparisons, promising_metrics
from .pca import PCAResult, run_pca

__all__ = [
    "Config",
    "parse_window_duration",
    "Condition",
    "Status",
    "condition_from_subject_id",
    "status_from_condition",
    "IngestionError",
    "IngestionResult",
    "load_beat_file",
    "load_beat_directory",
    "WindowComputationError",
    "summarize_window",
    "window_beats",
    "downsample_windows",
    "FeatureComputationError",
    "FeatureResult",
    "extract_series_features",
    "extract_subject_features",
    "ComparisonError",
    "to_long_format",
    "run_comparisons",
    "promising_metrics",
    "PCAResult",
    "run_pca",
]
