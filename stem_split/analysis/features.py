"""Best-effort track features for project metadata.

Feature detection never blocks the separation workflow: any failure leaves
the corresponding value as None.
"""

import logging
import warnings
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core.errors import StemSplitError
from ..input.decoder import decode_file
from .key import KeyEstimator
from .tempo import TempoAnalyzer

logger = logging.getLogger(__name__)


@dataclass
class TrackFeatures:
    """Tempo and key of a track; None where detection failed."""

    bpm: Optional[float] = None
    key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def detect_features(
    path: Union[str, Path],
    tempo_analyzer: Optional[TempoAnalyzer] = None,
    key_estimator: Optional[KeyEstimator] = None,
) -> TrackFeatures:
    """
    Detect tempo and key of a file without ever raising.

    The file is decoded once and shared by both estimators.

    Args:
        path: Audio file
        tempo_analyzer: Tempo estimator (default settings if None)
        key_estimator: Key estimator (default if None)

    Returns:
        TrackFeatures with None for any feature that failed
    """
    tempo_analyzer = tempo_analyzer or TempoAnalyzer()
    key_estimator = key_estimator or KeyEstimator()
    features = TrackFeatures()

    try:
        track = decode_file(path)
    except StemSplitError as e:
        warnings.warn(f"Feature detection skipped: {e}")
        return features

    try:
        features.bpm = tempo_analyzer.detect(track.samples, track.sample_rate)
    except (StemSplitError, ValueError, ArithmeticError, MemoryError) as e:
        warnings.warn(f"Tempo detection failed for {path}: {e}")

    try:
        features.key = key_estimator.estimate(track.samples)
    except (StemSplitError, ValueError, ArithmeticError) as e:
        warnings.warn(f"Key detection failed for {path}: {e}")

    logger.info("Features for %s: bpm=%s key=%s", Path(path).name, features.bpm, features.key)
    return features
