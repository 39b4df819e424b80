"""Analysis layer - Track-level musical features.

- Tempo (envelope peak spacing)
- Key (fixed-vocabulary placeholder)
"""

from .tempo import TempoAnalyzer, TempoEstimate, detect_bpm
from .key import KeyEstimator, detect_key
from .features import TrackFeatures, detect_features

__all__ = [
    "TempoAnalyzer",
    "TempoEstimate",
    "detect_bpm",
    "KeyEstimator",
    "detect_key",
    "TrackFeatures",
    "detect_features",
]
