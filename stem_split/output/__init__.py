"""Output layer - Stem export."""

from .wav import write_wav

__all__ = ["write_wav"]
