"""Separation layer - Neural source separation (Demucs).

Sources depend on the model:
- htdemucs: drums, bass, other, vocals
- htdemucs_6s: drums, bass, other, vocals, guitar, piano

The model is loaded lazily and used by one request at a time.
"""

from .normalize import compute_stats, normalize, denormalize, safe_std
from .model import (
    SeparationModel,
    DemucsModel,
    ModelHandle,
    select_device,
    get_device_info,
    load_demucs,
    run_inference,
)
from .loader import LazyModelLoader, LoaderState
from .splitter import (
    StemSet,
    prepare_track,
    separate,
    split_track,
    split_vocal_instrumental,
)
from .service import SeparationService, limit_native_threads

__all__ = [
    "compute_stats",
    "normalize",
    "denormalize",
    "safe_std",
    "SeparationModel",
    "DemucsModel",
    "ModelHandle",
    "select_device",
    "get_device_info",
    "load_demucs",
    "run_inference",
    "LazyModelLoader",
    "LoaderState",
    "StemSet",
    "prepare_track",
    "separate",
    "split_track",
    "split_vocal_instrumental",
    "SeparationService",
    "limit_native_threads",
]
