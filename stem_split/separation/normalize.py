"""Whole-buffer normalization around model inference.

Mean and standard deviation are taken over the entire multichannel buffer,
not per channel, matching how the separation models were trained.
"""

from typing import Tuple

import numpy as np

from ..core.constants import STD_FLOOR


def safe_std(std: float) -> float:
    """Floor the standard deviation so division never blows up."""
    return max(float(std), STD_FLOOR)


def compute_stats(samples: np.ndarray) -> Tuple[float, float]:
    """
    Global mean and (unbiased) standard deviation of a buffer.

    Returns:
        Tuple of (mean, std); std is 0.0 for fewer than two samples
    """
    x = np.asarray(samples, dtype=np.float64)
    if x.size == 0:
        return 0.0, 0.0
    mean = float(x.mean())
    std = float(x.std(ddof=1)) if x.size > 1 else 0.0
    return mean, std


def normalize(samples: np.ndarray, mean: float, std: float) -> np.ndarray:
    """``(x - mean) / max(std, 1e-8)``"""
    x = np.asarray(samples, dtype=np.float64)
    return ((x - mean) / safe_std(std)).astype(np.float32)


def denormalize(samples: np.ndarray, mean: float, std: float) -> np.ndarray:
    """``y * max(std, 1e-8) + mean``"""
    y = np.asarray(samples, dtype=np.float64)
    return (y * safe_std(std) + mean).astype(np.float32)
