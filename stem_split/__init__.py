"""Stem Split - Neural stem separation with tempo/key analysis.

Architecture Layers:
    1. core/        - Buffers, model descriptors, errors, constants
    2. input/       - Decoding, resampling, tag reading
    3. separation/  - Normalization, Demucs adapter, lazy loader, split pipelines
    4. processing/  - Per-stem filtering and click repair
    5. analysis/    - Tempo and key estimation
    6. output/      - WAV export
"""

__version__ = "0.3.0"

# Core types
from .core import (
    PcmBuffer,
    SeparationConfig,
    StemSplitError,
    DecodeError,
    ResampleError,
    InferenceError,
    IoError,
    ConfigError,
)

# Input layer
from .input import decode_file, resample

# Separation layer
from .separation import (
    LazyModelLoader,
    SeparationService,
    StemSet,
    split_track,
    split_vocal_instrumental,
)

# Processing layer
from .processing import FilterSettings, post_process_stem, remove_clicks_pops

# Analysis layer
from .analysis import TempoAnalyzer, KeyEstimator, detect_features

# Output layer
from .output import write_wav

__all__ = [
    # Core
    "PcmBuffer",
    "SeparationConfig",
    "StemSplitError",
    "DecodeError",
    "ResampleError",
    "InferenceError",
    "IoError",
    "ConfigError",
    # Input
    "decode_file",
    "resample",
    # Separation
    "LazyModelLoader",
    "SeparationService",
    "StemSet",
    "split_track",
    "split_vocal_instrumental",
    # Processing
    "FilterSettings",
    "post_process_stem",
    "remove_clicks_pops",
    # Analysis
    "TempoAnalyzer",
    "KeyEstimator",
    "detect_features",
    # Output
    "write_wav",
]
