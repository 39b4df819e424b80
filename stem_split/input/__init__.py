"""Input layer - Decoding, resampling and tag reading."""

from .decoder import decode_file, resample, conform_channels
from .metadata import extract_cover_image

__all__ = [
    "decode_file",
    "resample",
    "conform_channels",
    "extract_cover_image",
]
