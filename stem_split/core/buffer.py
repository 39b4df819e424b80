"""Multichannel PCM buffer."""

from dataclasses import dataclass

import numpy as np


@dataclass
class PcmBuffer:
    """Decoded audio as per-channel float samples.

    ``samples`` has shape ``(channel_count, length)``.
    """

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        if samples.ndim != 2:
            raise ValueError(
                f"PcmBuffer expects (channels, frames), got shape {samples.shape}"
            )
        if samples.shape[0] == 0:
            raise ValueError("PcmBuffer needs at least one channel")
        if self.sample_rate <= 0:
            raise ValueError(f"Invalid sample rate: {self.sample_rate}")
        self.samples = samples
        self.sample_rate = int(self.sample_rate)

    @property
    def channel_count(self) -> int:
        return self.samples.shape[0]

    @property
    def length(self) -> int:
        """Number of frames per channel."""
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.length / self.sample_rate

    def to_mono(self) -> np.ndarray:
        """Downmix to mono by averaging channels sample by sample."""
        if self.channel_count == 1:
            return self.samples[0].copy()
        return self.samples.mean(axis=0)

    def with_samples(self, samples: np.ndarray) -> "PcmBuffer":
        """Return a new buffer with the same rate and different samples."""
        return PcmBuffer(samples=samples, sample_rate=self.sample_rate)

    @classmethod
    def silence(cls, channels: int, length: int, sample_rate: int) -> "PcmBuffer":
        return cls(np.zeros((channels, length), dtype=np.float32), sample_rate)
