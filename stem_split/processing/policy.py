"""Per-source post-processing policies.

Each separated source gets a fixed frequency-shaping policy, looked up by
name. Unknown names pass through untouched.
"""

import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional

import numpy as np

from .filters import (
    DEFAULT_SETTINGS,
    FilterSettings,
    band_pass,
    high_pass,
    low_pass,
    reduce_noise,
    repair_clicks,
)


class FilterKind(Enum):
    """Frequency shaping applied to a stem."""
    NONE = "none"
    HIGH_PASS = "high_pass"
    LOW_PASS = "low_pass"
    BAND_PASS = "band_pass"


@dataclass(frozen=True)
class FilterPolicy:
    """How one source is shaped after separation."""
    kind: FilterKind = FilterKind.NONE
    low_cut: Optional[float] = None  # high-pass cutoff (Hz)
    high_cut: Optional[float] = None  # low-pass cutoff (Hz)
    noise_reduction: bool = False

    def __post_init__(self):
        needs_low = self.kind in (FilterKind.HIGH_PASS, FilterKind.BAND_PASS)
        needs_high = self.kind in (FilterKind.LOW_PASS, FilterKind.BAND_PASS)
        if needs_low and not self.low_cut:
            raise ValueError(f"{self.kind.value} policy needs low_cut")
        if needs_high and not self.high_cut:
            raise ValueError(f"{self.kind.value} policy needs high_cut")
        if self.kind == FilterKind.BAND_PASS and self.low_cut >= self.high_cut:
            raise ValueError(
                f"band_pass low_cut {self.low_cut} must be below high_cut {self.high_cut}"
            )

    def apply(
        self,
        channel: np.ndarray,
        sample_rate: int,
        settings: FilterSettings = DEFAULT_SETTINGS,
    ) -> np.ndarray:
        """Shape one channel according to this policy."""
        if self.kind == FilterKind.HIGH_PASS:
            channel = high_pass(channel, sample_rate, self.low_cut)
        elif self.kind == FilterKind.LOW_PASS:
            channel = low_pass(channel, sample_rate, self.high_cut)
        elif self.kind == FilterKind.BAND_PASS:
            channel = band_pass(channel, sample_rate, self.low_cut, self.high_cut)

        if self.noise_reduction:
            channel = reduce_noise(channel, sample_rate, settings)

        return np.asarray(channel, dtype=np.float32)


PASSTHROUGH = FilterPolicy()

FILTER_POLICIES: Dict[str, FilterPolicy] = {
    # Cut low rumble, then smooth the grainy residue
    "other": FilterPolicy(FilterKind.HIGH_PASS, low_cut=80.0, noise_reduction=True),
    # Frequency shaping only; the stem level is left as separated
    "bass": FilterPolicy(FilterKind.LOW_PASS, high_cut=400.0),
    "vocals": FilterPolicy(FilterKind.BAND_PASS, low_cut=300.0, high_cut=3400.0),
    "drums": PASSTHROUGH,
    "guitar": FilterPolicy(FilterKind.BAND_PASS, low_cut=80.0, high_cut=8000.0),
    "piano": FilterPolicy(FilterKind.BAND_PASS, low_cut=80.0, high_cut=15000.0),
}


def policy_for(source: str) -> FilterPolicy:
    """Get the policy for a source name (pass-through for unknown names)."""
    return FILTER_POLICIES.get(source, PASSTHROUGH)


def validate_sources(sources: Iterable[str]) -> Dict[str, FilterPolicy]:
    """
    Resolve the filter policy of every source a model produces.

    Args:
        sources: Ordered source names

    Returns:
        Mapping of source name to policy

    Raises:
        ValueError: If the list is empty, has duplicates or non-string names
    """
    sources = list(sources)
    if not sources:
        raise ValueError("model declares no sources")

    policies = {}
    for name in sources:
        if not isinstance(name, str) or not name:
            raise ValueError(f"invalid source name: {name!r}")
        if name in policies:
            raise ValueError(f"duplicate source name: {name}")
        if name not in FILTER_POLICIES:
            warnings.warn(f"No post-processing policy for source '{name}', passing through")
        policies[name] = policy_for(name)
    return policies


def post_process_stem(
    samples: np.ndarray,
    source: str,
    sample_rate: int,
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> np.ndarray:
    """
    Apply the source's shaping policy to every channel.

    Args:
        samples: Stem audio, shape (channels, frames)
        source: Source name selecting the policy
        sample_rate: Sample rate in Hz
        settings: Filter settings

    Returns:
        Shaped audio with the same shape
    """
    samples = np.atleast_2d(np.asarray(samples, dtype=np.float32))
    policy = policy_for(source)
    if policy.kind == FilterKind.NONE and not policy.noise_reduction:
        return samples.copy()
    return np.stack([policy.apply(ch, sample_rate, settings) for ch in samples])


def remove_clicks_pops(
    samples: np.ndarray,
    sample_rate: int,
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> np.ndarray:
    """Run click/pop repair over every channel."""
    samples = np.atleast_2d(np.asarray(samples, dtype=np.float32))
    return np.stack([repair_clicks(ch, sample_rate, settings) for ch in samples])


def finish_stem(
    samples: np.ndarray,
    source: str,
    sample_rate: int,
    settings: FilterSettings = DEFAULT_SETTINGS,
) -> np.ndarray:
    """Shape a stem with its policy, then repair clicks."""
    shaped = post_process_stem(samples, source, sample_rate, settings)
    return remove_clicks_pops(shaped, sample_rate, settings)
