"""Tempo estimation from the amplitude envelope."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np

from ..core.constants import DEFAULT_TEMPO, MAX_TEMPO, MIN_TEMPO
from ..input.decoder import decode_file

logger = logging.getLogger(__name__)


@dataclass
class TempoEstimate:
    """Container for tempo estimation results."""

    bpm: float
    is_fallback: bool = False  # True when the default tempo was returned
    peak_count: int = 0
    window_size: int = 0  # Smoothing window in samples


def _sliding_mean(x: np.ndarray, w: int) -> np.ndarray:
    """Mean of every ``w``-sample window, ``len(x) - w + 1`` values."""
    csum = np.concatenate(([0.0], np.cumsum(x)))
    return (csum[w:] - csum[:-w]) / w


def _window_max(x: np.ndarray, m: int) -> np.ndarray:
    """``out[j] = max(x[j:j+m])`` for every full window."""
    k = 1
    table = x
    # table[j] holds max(x[j:j+k]); double k while it fits in the window
    while k * 2 <= m:
        table = np.maximum(table[:-k], table[k:])
        k *= 2
    n_out = len(x) - m + 1
    return np.maximum(table[:n_out], table[m - k:m - k + n_out])


class TempoAnalyzer:
    """Estimate tempo (BPM) from envelope peaks.

    The envelope is smoothed with a 100 ms moving average, strong local maxima
    are taken as beats, and the mean spacing between them gives the tempo.
    The estimator always produces a number: on silence or too little signal it
    returns the default tempo and marks the estimate as a fallback.
    """

    def __init__(
        self,
        smoothing_seconds: float = 0.1,
        peak_threshold: float = 0.3,
        default_tempo: float = DEFAULT_TEMPO,
        tempo_range: tuple = (MIN_TEMPO, MAX_TEMPO),
    ):
        """
        Initialize TempoAnalyzer.

        Args:
            smoothing_seconds: Moving-average window of the envelope
            peak_threshold: Fraction of the envelope maximum a peak must exceed
            default_tempo: Tempo returned when no estimate is possible
            tempo_range: (min, max) BPM the estimate is clamped to
        """
        self.smoothing_seconds = smoothing_seconds
        self.peak_threshold = peak_threshold
        self.default_tempo = default_tempo
        self.tempo_range = tempo_range

    def _fallback(self, reason: str, **kwargs) -> TempoEstimate:
        logger.debug("Tempo fallback (%s), returning %.1f", reason, self.default_tempo)
        return TempoEstimate(bpm=self.default_tempo, is_fallback=True, **kwargs)

    def find_peaks(self, signal: np.ndarray, margin: int) -> np.ndarray:
        """
        Indices of strong local maxima.

        An index ``i`` with ``margin <= i < len - margin`` is a peak when its
        value exceeds ``peak_threshold * max`` and is strictly greater than
        every value in the ``margin`` samples before and after it.
        """
        n = len(signal)
        if n == 0 or margin < 1 or n <= 2 * margin:
            return np.array([], dtype=np.int64)

        max_val = float(signal.max())
        if max_val <= 0.0:
            return np.array([], dtype=np.int64)

        threshold = max_val * self.peak_threshold
        idx = np.arange(margin, n - margin)
        window_max = _window_max(signal, margin)
        before = window_max[idx - margin]
        after = window_max[idx + 1]
        current = signal[idx]

        mask = (current > threshold) & (current > before) & (current > after)
        return idx[mask]

    def estimate(self, audio: np.ndarray, sr: int) -> TempoEstimate:
        """
        Estimate tempo of an audio array.

        Args:
            audio: Mono array or (channels, samples) array
            sr: Sample rate

        Returns:
            TempoEstimate with bpm clamped to ``tempo_range``
        """
        audio = np.asarray(audio, dtype=np.float64)
        if audio.ndim > 1:
            audio = audio.mean(axis=0)

        n = len(audio)
        if n == 0:
            return self._fallback("empty input")

        envelope = np.abs(audio)

        w = int(round(sr * self.smoothing_seconds))
        w = min(max(w, 1), n // 4)
        if w < 1 or n < 2 * w:
            return self._fallback("too few samples", window_size=w)

        smoothed = _sliding_mean(envelope, w)

        margin = min(max(w // 4, 1), len(smoothed) // 4)
        peaks = self.find_peaks(smoothed, margin)
        if len(peaks) < 2:
            return self._fallback("fewer than two peaks", peak_count=len(peaks), window_size=w)

        avg_interval = float(np.diff(peaks).mean())
        # Peak spacing is in smoothed-index units; scaled by the window size
        samples_per_peak = avg_interval * w
        bpm = (sr / samples_per_peak) * 60.0

        low, high = self.tempo_range
        clamped = float(min(max(bpm, low), high))
        logger.debug(
            "Tempo %.2f BPM (raw %.2f, interval %.1f, window %d, %d peaks)",
            clamped, bpm, avg_interval, w, len(peaks),
        )
        return TempoEstimate(bpm=clamped, peak_count=len(peaks), window_size=w)

    def detect(self, audio: np.ndarray, sr: int) -> float:
        """Estimate tempo in BPM."""
        return self.estimate(audio, sr).bpm

    def detect_file(self, path: Union[str, Path]) -> float:
        """
        Decode a file and estimate its tempo.

        Raises:
            DecodeError: If the file cannot be decoded
        """
        track = decode_file(path)
        return self.detect(track.samples, track.sample_rate)


def detect_bpm(path: Union[str, Path]) -> float:
    """Tempo of an audio file in BPM (default 120.0 when undetectable)."""
    return TempoAnalyzer().detect_file(path)
