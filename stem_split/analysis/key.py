"""Key estimation placeholder.

This is NOT pitch-class analysis. The label is picked from a fixed list of
seven major keys by the sample count, so it is deterministic but carries no
musical meaning. Stored projects depend on exactly these labels; replacing it
with chroma/key-profile detection changes the label vocabulary and needs a
migration.
"""

import logging
from pathlib import Path
from typing import List, Union

import numpy as np

from ..core.constants import DEFAULT_KEY, KEY_LABELS
from ..input.decoder import decode_file

logger = logging.getLogger(__name__)


class KeyEstimator:
    """Deterministic key label for a track."""

    LABELS: List[str] = list(KEY_LABELS)

    def estimate(self, audio: np.ndarray) -> str:
        """
        Pick a key label for an audio array.

        Args:
            audio: Mono array or (channels, samples) array

        Returns:
            "C major" for empty input, otherwise ``LABELS[n % 7]`` where ``n``
            is the number of (downmixed) samples
        """
        audio = np.asarray(audio)
        sample_count = audio.shape[-1] if audio.ndim > 0 else 0
        if sample_count == 0:
            return DEFAULT_KEY
        key = self.LABELS[sample_count % len(self.LABELS)]
        logger.debug("Key placeholder for %d samples: %s", sample_count, key)
        return key

    def detect_file(self, path: Union[str, Path]) -> str:
        """
        Decode a file and pick its key label.

        Raises:
            DecodeError: If the file cannot be decoded
        """
        track = decode_file(path)
        return self.estimate(track.samples)


def detect_key(path: Union[str, Path]) -> str:
    """Key label of an audio file."""
    return KeyEstimator().detect_file(path)
