"""Per-channel filters used to shape separated stems.

All routines take a 1-D channel and return a new float32 array. They are
total: empty or too-short input comes back unchanged.

- Single-pole (RC) high-pass and low-pass IIR filters
- Band-pass as high-pass followed by low-pass
- Moving-average noise reduction
- Click/pop repair
- Gain and soft limiting
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.signal import lfilter


@dataclass
class FilterSettings:
    """Tunable constants of the filter bank.

    Attributes:
        noise_window_seconds: Half window of the noise-reduction average (default: 10 ms)
        noise_blend: Weight of the smoothed signal in the blend (default: 0.3)
        click_window_seconds: Neighbourhood used by click repair (default: 1 ms)
        click_threshold: Absolute level a sample must exceed to be a click (default: 0.9)
        click_ratio: How far above a neighbour average a click must be (default: 3.0)
        limiter_threshold: Soft limiter knee (default: 0.95)
        limiter_ratio: Compression applied above the knee (default: 0.1)
    """

    noise_window_seconds: float = 0.01
    noise_blend: float = 0.3
    click_window_seconds: float = 0.001
    click_threshold: float = 0.9
    click_ratio: float = 3.0
    limiter_threshold: float = 0.95
    limiter_ratio: float = 0.1


DEFAULT_SETTINGS = FilterSettings()


def _as_channel(samples: Sequence[float]) -> np.ndarray:
    return np.asarray(samples, dtype=np.float64).reshape(-1)


def _rc_coefficients(sample_rate: int, cutoff: float):
    rc = 1.0 / (2.0 * np.pi * cutoff)
    dt = 1.0 / sample_rate
    return rc, dt


def high_pass(samples: Sequence[float], sample_rate: int, cutoff: float) -> np.ndarray:
    """
    Single-pole high-pass filter.

    Implements ``y[n] = alpha * (y[n-1] + x[n] - x[n-1])`` with
    ``alpha = rc / (rc + dt)`` and zero initial state.

    Args:
        samples: One channel of audio
        sample_rate: Sample rate in Hz
        cutoff: Cutoff frequency in Hz

    Returns:
        Filtered channel
    """
    x = _as_channel(samples)
    if x.size == 0:
        return x.astype(np.float32)
    rc, dt = _rc_coefficients(sample_rate, cutoff)
    alpha = rc / (rc + dt)
    y = lfilter([alpha, -alpha], [1.0, -alpha], x)
    return y.astype(np.float32)


def low_pass(samples: Sequence[float], sample_rate: int, cutoff: float) -> np.ndarray:
    """
    Single-pole low-pass filter.

    Implements ``y[n] = y[n-1] + alpha * (x[n] - y[n-1])`` with
    ``alpha = dt / (rc + dt)`` and zero initial state.

    Args:
        samples: One channel of audio
        sample_rate: Sample rate in Hz
        cutoff: Cutoff frequency in Hz

    Returns:
        Filtered channel
    """
    x = _as_channel(samples)
    if x.size == 0:
        return x.astype(np.float32)
    rc, dt = _rc_coefficients(sample_rate, cutoff)
    alpha = dt / (rc + dt)
    y = lfilter([alpha], [1.0, alpha - 1.0], x)
    return y.astype(np.float32)


def band_pass(
    samples: Sequence[float],
    sample_rate: int,
    low_cut: float,
    high_cut: float,
) -> np.ndarray:
    """Band-pass as a high-pass at ``low_cut`` followed by a low-pass at ``high_cut``."""
    return low_pass(high_pass(samples, sample_rate, low_cut), sample_rate, high_cut)


def reduce_noise(
    samples: Sequence[float],
    sample_rate: int,
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> np.ndarray:
    """
    Blend the channel with a centered moving average of itself.

    The average covers ``w`` samples on each side where
    ``w = round(sample_rate * noise_window_seconds)``. Only the interior
    ``[w, len - w)`` is touched; channels shorter than ``2w`` are returned
    unchanged.

    Args:
        samples: One channel of audio
        sample_rate: Sample rate in Hz
        settings: Filter settings

    Returns:
        Smoothed channel
    """
    x = _as_channel(samples)
    w = int(round(sample_rate * settings.noise_window_seconds))
    if w < 2 or x.size < 2 * w:
        return x.astype(np.float32)

    csum = np.concatenate(([0.0], np.cumsum(x)))
    idx = np.arange(w, x.size - w)
    smoothed = (csum[idx + w] - csum[idx - w]) / (2 * w)

    out = x.copy()
    blend = settings.noise_blend
    out[w:x.size - w] = x[w:x.size - w] * (1.0 - blend) + smoothed * blend
    return out.astype(np.float32)


def repair_clicks(
    samples: Sequence[float],
    sample_rate: int,
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> np.ndarray:
    """
    Replace isolated clicks/pops with the local neighbour level.

    A sample at index ``i`` in ``[w, len - w)`` is a click when its magnitude
    exceeds ``click_threshold`` and is more than ``click_ratio`` times the mean
    magnitude of the ``w`` samples before it or the ``w`` samples after it.
    Clicks are replaced by ``sign(x) * (prev_avg + next_avg) / 2``. Samples are
    visited in order and repaired in place, so a repair is visible to the
    neighbourhood of later samples. The first and last ``w`` samples are never
    modified.

    Args:
        samples: One channel of audio
        sample_rate: Sample rate in Hz
        settings: Filter settings

    Returns:
        Repaired channel
    """
    x = _as_channel(samples).copy()
    w = int(round(sample_rate * settings.click_window_seconds))
    n = x.size
    if w < 1 or n <= 2 * w:
        return x.astype(np.float32)

    magnitude = np.abs(x)
    # Only samples already above the threshold can be clicks; a sample is never
    # modified before it is visited.
    candidates = np.nonzero(magnitude[w:n - w] > settings.click_threshold)[0] + w

    for i in candidates:
        current = abs(x[i])
        prev_avg = np.abs(x[i - w:i]).mean()
        next_avg = np.abs(x[i + 1:i + w + 1]).mean()
        if current > prev_avg * settings.click_ratio or current > next_avg * settings.click_ratio:
            x[i] = np.sign(x[i]) * (prev_avg + next_avg) / 2.0

    return x.astype(np.float32)


def apply_gain(samples: Sequence[float], gain: float) -> np.ndarray:
    """Scale a channel by a linear gain."""
    return (_as_channel(samples) * gain).astype(np.float32)


def apply_soft_limiter(
    samples: Sequence[float],
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> np.ndarray:
    """Compress the part of each sample above ``limiter_threshold``."""
    x = _as_channel(samples)
    magnitude = np.abs(x)
    threshold = settings.limiter_threshold
    over = magnitude > threshold
    compressed = threshold + (magnitude - threshold) * settings.limiter_ratio
    out = np.where(over, np.sign(x) * compressed, x)
    return out.astype(np.float32)
