"""Core types, constants and errors for Stem Split."""

from .buffer import PcmBuffer
from .config import SeparationConfig, load_model_catalog, find_model, resolve_model
from .constants import (
    DEFAULT_SAMPLE_RATE,
    DEFAULT_TEMPO,
    DEFAULT_KEY,
    KEY_LABELS,
)
from .errors import (
    StemSplitError,
    DecodeError,
    ResampleError,
    InferenceError,
    IoError,
    ConfigError,
)

__all__ = [
    "PcmBuffer",
    "SeparationConfig",
    "load_model_catalog",
    "find_model",
    "resolve_model",
    "DEFAULT_SAMPLE_RATE",
    "DEFAULT_TEMPO",
    "DEFAULT_KEY",
    "KEY_LABELS",
    "StemSplitError",
    "DecodeError",
    "ResampleError",
    "InferenceError",
    "IoError",
    "ConfigError",
]
